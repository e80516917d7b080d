from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

CENT = Decimal("0.01")
# One trillion currency units; a 5000x payout still fits a 64-bit column.
MAX_CENTS = 10**14

Amount = Union[Decimal, int, str]


def to_decimal(value: Amount) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def has_cent_precision(value: Decimal) -> bool:
    return value == quantize(value)


def quantize(value: Decimal) -> Decimal:
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value!r}") from exc


def to_cents(value: Amount) -> int:
    cents = int(quantize(to_decimal(value)) * 100)
    if abs(cents) > MAX_CENTS:
        raise ValueError(f"Amount out of range: {value!r}")
    return cents


def from_cents(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(CENT)
