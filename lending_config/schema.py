"""
Lending engine settings schema.

The YAML file is parsed into these frozen types by the loader; nothing else
in the system reads the file or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from lending_kernel.services.system_settings import SettingDefault


@dataclass(frozen=True)
class StoreSettings:
    """How to reach the ledger store."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class RetrySettings:
    """Caller-side retry policy for conflicting units of work."""

    max_attempts: int = 3
    backoff_seconds: Decimal = Decimal("0.05")


@dataclass(frozen=True)
class EngineSettings:
    """Everything the request boundary needs to start."""

    store: StoreSettings
    retry: RetrySettings
    log_level: str
    settings: tuple[SettingDefault, ...]
    checksum: str

    def defaults_mapping(self) -> dict[str, str]:
        """key -> value of the shipped defaults (Rate Provider fallback)."""
        return {s.key: s.value for s in self.settings}
