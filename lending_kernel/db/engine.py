"""
Module: lending_kernel.db.engine
Responsibility: The Ledger Store handle.  Owns one SQLAlchemy engine and its
    session factory, and provides the unit-of-work scope that every mutating
    operation runs inside.
Architecture position: Kernel > DB.  May import from db/base.py and the
    kernel exceptions.  create_tables() imports models to populate metadata.

Invariants enforced:
    - No process-wide singleton: a LedgerStore is constructed explicitly and
      handed to whoever needs it.  Two stores never share state.
    - Atomicity: unit_of_work() commits on normal exit and rolls back on any
      exception, so a failure midway leaves no partial state visible.
    - Conflict surfacing: optimistic-version misses (StaleDataError) and
      PostgreSQL serialization failures / deadlocks are rolled back and
      re-raised as ConcurrentModificationError, never silently retried.
    - PostgreSQL runs at READ COMMITTED with explicit row locks
      (SELECT ... FOR UPDATE) and version counters on every mutable row.
      SQLite (tests, local tooling) relies on the version counters alone.

Failure modes:
    - ConcurrentModificationError when another transaction won the race.
    - Any other exception propagates unchanged after rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import QueuePool

from lending_kernel.exceptions import ConcurrentModificationError
from lending_kernel.logging_config import get_logger

logger = get_logger("db.engine")

# serialization_failure, deadlock_detected
_PG_CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_conflict(exc: DBAPIError) -> bool:
    """True when the driver error means 'another transaction got there first'."""
    orig = exc.orig
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate in _PG_CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


class LedgerStore:
    """
    Durable relational state for investments, financings, installments,
    account balances and the transaction log.

    Contract:
        Services never commit.  They receive the Session yielded by
        ``unit_of_work()`` and flush into it; the store decides commit or
        rollback for the whole unit.

    Usage:
        store = LedgerStore.from_url("postgresql://...")
        with store.unit_of_work() as session:
            FinancingLifecycleService(session, ...).force_liquidate(...)
    """

    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine, expire_on_commit=False
        )

    @classmethod
    def from_url(
        cls,
        database_url: str,
        *,
        echo: bool = False,
        pool_size: int = 20,
        max_overflow: int = 10,
        pool_pre_ping: bool = True,
        pool_timeout: int = 30,
        pool_recycle: int = 1800,
    ) -> "LedgerStore":
        """
        Build a store from a database URL.

        PostgreSQL gets a pooled engine at READ COMMITTED.  SQLite gets the
        dialect's default pool with foreign keys switched on.
        """
        url = make_url(database_url)
        dialect = url.get_backend_name()

        if dialect == "sqlite":
            engine = create_engine(url, echo=echo)
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        else:
            engine = create_engine(
                url,
                echo=echo,
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_pre_ping=pool_pre_ping,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                isolation_level="READ COMMITTED",
            )

        logger.info(
            "ledger_store_initialized",
            extra={"dialect": dialect, "echo": echo},
        )
        return cls(engine)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def session(self) -> Session:
        """A plain session for read-only work (selectors, stats)."""
        return self._session_factory()

    @contextmanager
    def unit_of_work(self) -> Generator[Session, None, None]:
        """
        Provide one atomic, all-or-nothing scope.

        Postconditions: on normal exit the session is committed and closed.
            On exception it is rolled back and closed; optimistic-lock and
            serialization conflicts are re-raised as
            ConcurrentModificationError, everything else unchanged.
        """
        session = self._session_factory()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except StaleDataError as exc:
            session.rollback()
            logger.warning("transaction_conflict", extra={"detail": str(exc)})
            raise ConcurrentModificationError(str(exc)) from exc
        except DBAPIError as exc:
            session.rollback()
            if _is_conflict(exc):
                logger.warning("transaction_conflict", extra={"detail": str(exc.orig)})
                raise ConcurrentModificationError(str(exc.orig)) from exc
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """Create every lending table (idempotent)."""
        from lending_kernel.db.base import Base
        import lending_kernel.models  # noqa: F401  (registers all tables)

        Base.metadata.create_all(self._engine)

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from lending_kernel.db.base import Base
        import lending_kernel.models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def dispose(self) -> None:
        """Release all pooled connections."""
        self._engine.dispose()
