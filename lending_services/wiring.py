"""
Wiring -- builds a ready BackofficeOperations from EngineSettings.

This is the only place where ``lending_config`` values meet kernel
constructors: the store URL and pool sizes go to ``LedgerStore.from_url``,
the log level to ``configure_logging``, the retry policy to
``retry_on_conflict``, and the shipped rate defaults seed ``system_settings``
and back the settings Rate Provider.
"""

from functools import partial
from typing import Callable, TypeVar

from lending_config import EngineSettings, RetrySettings, StoreSettings, get_engine_settings
from lending_kernel.db.engine import LedgerStore
from lending_kernel.domain.audit import AuditEmitter
from lending_kernel.domain.clock import Clock
from lending_kernel.logging_config import configure_logging
from lending_kernel.services.system_settings import SystemSettingsService
from lending_services.backoffice import BackofficeOperations
from lending_services.retry import retry_on_conflict

T = TypeVar("T")


def build_store(settings: StoreSettings) -> LedgerStore:
    return LedgerStore.from_url(
        settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
    )


def build_retry(settings: RetrySettings) -> Callable[[Callable[[], T]], T]:
    """``retry_on_conflict`` bound to the configured attempts and backoff."""
    return partial(
        retry_on_conflict,
        max_attempts=settings.max_attempts,
        backoff_seconds=float(settings.backoff_seconds),
    )


def seed_settings(store: LedgerStore, settings: EngineSettings) -> int:
    """Insert missing rate defaults; returns the number of rows added."""
    with store.unit_of_work() as session:
        added = SystemSettingsService(session).seed_defaults(settings.settings)
    return added


def build_operations(
    settings: EngineSettings | None = None,
    *,
    store: LedgerStore | None = None,
    clock: Clock | None = None,
    audit_emitter: AuditEmitter | None = None,
    create_tables: bool = False,
) -> BackofficeOperations:
    """
    Assemble the request boundary.

    Args:
        settings: Parsed configuration; loaded with ``get_engine_settings()``
            when omitted.
        store: Existing store to reuse instead of building one from
            ``settings.store``.
        clock: Time source handed to every service.
        audit_emitter: Audit sink; logging emitter by default.
        create_tables: Create the schema before seeding (local/dev stores).
    """
    settings = settings or get_engine_settings()
    configure_logging(level=settings.log_level)

    store = store or build_store(settings.store)
    if create_tables:
        store.create_tables()
    seed_settings(store, settings)

    return BackofficeOperations(
        store,
        clock=clock,
        audit_emitter=audit_emitter,
        default_settings=settings.defaults_mapping(),
    )
