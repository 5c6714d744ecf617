"""
Rate Provider -- the read-only source of configured percentages and limits.

Responsibility:
    Supplies the numeric configuration the engines consult: penalty rate,
    financing percentage, collateral yield rate and the financing limits.
    Values are addressed by string key and returned as decimal strings,
    parsed here into ``Decimal``.

Architecture position:
    Kernel > Domain -- pure.  Store-backed implementations live in
    ``lending_kernel.services.system_settings``.

Failure modes:
    - RateNotConfiguredError when a key has no value or a non-numeric one.
      Missing configuration is an integrity failure: the kernel never
      substitutes zero for a rate it could not read.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Mapping

from lending_kernel.exceptions import RateNotConfiguredError


class RateKey:
    """Well-known configuration keys."""

    PENALTY_RATE = "rates.penalty_rate"
    FCI_ANNUAL_RATE = "rates.fci_annual_rate"
    FINANCING_PERCENTAGE = "limits.financing_percentage"
    FINANCING_MIN_AMOUNT = "limits.financing_min_amount"
    FINANCING_MIN_INSTALLMENTS = "limits.financing_min_installments"
    FINANCING_MAX_INSTALLMENTS = "limits.financing_max_installments"
    INVESTMENT_MIN_AMOUNT = "limits.investment_min_amount"
    INSTALLMENT_DUE_DAY = "operations.installment_due_day"


def parse_rate(key: str, raw: str | None) -> Decimal:
    """Parse a raw setting string into a finite Decimal."""
    if raw is None or not str(raw).strip():
        raise RateNotConfiguredError(key)
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise RateNotConfiguredError(key, str(raw)) from exc
    if not value.is_finite():
        raise RateNotConfiguredError(key, str(raw))
    return value


class RateProvider(ABC):
    """
    Read-only configuration source.

    Contract:
        ``get_raw`` returns the stored decimal string or None.  Callers use
        ``get_decimal`` / ``get_int``, which never return a default for a
        missing key.
    """

    @abstractmethod
    def get_raw(self, key: str) -> str | None:
        ...

    def get_decimal(self, key: str) -> Decimal:
        return parse_rate(key, self.get_raw(key))

    def get_int(self, key: str) -> int:
        value = self.get_decimal(key)
        if value != value.to_integral_value():
            raise RateNotConfiguredError(key, str(value))
        return int(value)

    def penalty_rate(self) -> Decimal:
        return self.get_decimal(RateKey.PENALTY_RATE)

    def financing_percentage(self) -> Decimal:
        return self.get_decimal(RateKey.FINANCING_PERCENTAGE)


class StaticRateProvider(RateProvider):
    """Rate provider over a fixed mapping (tests, embedding, fallbacks)."""

    def __init__(self, values: Mapping[str, str | int | Decimal]):
        self._values = {k: str(v) for k, v in values.items()}

    def get_raw(self, key: str) -> str | None:
        return self._values.get(key)
