"""
Money arithmetic for the lending kernel.

Every amount is a ``Decimal`` with two fraction digits.  All rounding goes
through ``round_money`` (half-up), applied at the same points the ledger
rounds: credit limits, installment amounts and penalties.  Binary floats are
refused at the boundary rather than converted.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from lending_kernel.exceptions import InvalidAmountError

MONEY_PLACES = 2
_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)  # Decimal("0.01")

ZERO = Decimal("0.00")
HUNDRED = Decimal(100)


def round_money(value: Decimal) -> Decimal:
    """Round to the ledger precision using ROUND_HALF_UP.

    The only sanctioned rounding function for money in the kernel.
    """
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Convert an operator- or store-supplied amount into a ledger Decimal.

    Raises:
        TypeError: for floats (and anything else that is not Decimal/int/str).
        ValueError: for strings that are not numbers, or non-finite values.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money must not be built from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a monetary amount: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported money type: {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"Monetary amount must be finite: {value!r}")
    return round_money(result)


def percent_of(value: Decimal, pct: Decimal) -> Decimal:
    """``value * pct / 100`` rounded half-up to the ledger precision."""
    return round_money(value * pct / HUNDRED)


def split_evenly(total: Decimal, parts: int) -> list[Decimal]:
    """
    Split ``total`` into ``parts`` rounded amounts that sum exactly to it.

    Every part but the last is ``round_money(total / parts)``; the last one
    absorbs the rounding remainder.
    """
    if parts < 1:
        raise ValueError("parts must be >= 1")
    share = round_money(total / parts)
    head = [share] * (parts - 1)
    return head + [total - share * (parts - 1)]


def parse_amount(field: str, value: Decimal | int | str, *, positive: bool = True) -> Decimal:
    """
    ``to_money`` for operator input: conversion failures and non-positive
    amounts become InvalidAmountError naming the field.
    """
    try:
        amount = to_money(value)
    except (TypeError, ValueError) as exc:
        raise InvalidAmountError(field, value, str(exc)) from exc
    if positive and amount <= ZERO:
        raise InvalidAmountError(field, amount, "must be positive")
    if amount < ZERO:
        raise InvalidAmountError(field, amount, "must not be negative")
    return amount
