"""
System settings -- the store-backed Rate Provider.

Responsibility:
    Reads rates and limits from the ``system_settings`` table, seeds the
    table with the shipped defaults, and updates single values.

Architecture position:
    Kernel > Services.  The defaults themselves are supplied by the caller
    (``lending_config`` loads them from YAML); the kernel never imports the
    configuration package.

Failure modes:
    - RateNotConfiguredError when neither the table nor the fallback
      defaults hold a numeric value for a requested key.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from lending_kernel.domain.rates import RateProvider, parse_rate
from lending_kernel.logging_config import get_logger
from lending_kernel.models.system_setting import SystemSetting
from lending_kernel.services.base import BaseService

logger = get_logger("services.settings")


@dataclass(frozen=True)
class SettingDefault:
    """One shipped default, e.g. ``rates.penalty_rate = "3"``."""

    key: str
    value: str
    category: str
    description: str | None = None
    value_type: str = "number"


class SettingsRateProvider(RateProvider):
    """
    Rate provider over the ``system_settings`` table.

    A key missing from the table falls back to ``fallback`` (typically the
    YAML defaults); a key missing from both is a configuration error
    surfaced by ``get_decimal``.
    """

    def __init__(self, session: Session, fallback: Mapping[str, str] | None = None):
        self._session = session
        self._fallback = dict(fallback or {})

    def get_raw(self, key: str) -> str | None:
        value = self._session.execute(
            select(SystemSetting.value).where(SystemSetting.key == key)
        ).scalar_one_or_none()
        if value is None:
            return self._fallback.get(key)
        return value


class SystemSettingsService(BaseService[SystemSetting]):
    """Seeds and updates rows of ``system_settings``."""

    def seed_defaults(self, defaults: Iterable[SettingDefault]) -> int:
        """Insert every default whose key is not present yet. Returns rows added."""
        existing = set(self.session.execute(select(SystemSetting.key)).scalars())
        added = 0
        for default in defaults:
            if default.key in existing:
                continue
            self.session.add(
                SystemSetting(
                    key=default.key,
                    value=default.value,
                    value_type=default.value_type,
                    category=default.category,
                    description=default.description,
                )
            )
            added += 1
        self.session.flush()
        logger.info("settings_seeded", extra={"added": added})
        return added

    def get(self, key: str) -> str | None:
        return self.session.execute(
            select(SystemSetting.value).where(SystemSetting.key == key)
        ).scalar_one_or_none()

    def set(self, key: str, value: str) -> str | None:
        """
        Update an existing numeric setting.

        Returns:
            The previous value.

        Raises:
            KeyError: no such setting.
            RateNotConfiguredError: value is not a decimal number.
        """
        setting = self.session.execute(
            select(SystemSetting).where(SystemSetting.key == key).with_for_update()
        ).scalar_one_or_none()
        if setting is None:
            raise KeyError(key)
        if setting.value_type == "number":
            parse_rate(key, value)
        previous = setting.value
        setting.value = str(value).strip()
        self.session.flush()
        logger.info(
            "setting_updated",
            extra={"key": key, "old_value": previous, "new_value": setting.value},
        )
        return previous
