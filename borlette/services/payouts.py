"""Game payout rules applied by settlement."""

from __future__ import annotations

from collections import Counter
from decimal import Decimal
from math import factorial
from typing import Any, Dict, Optional, Sequence

from ..config import PayoutSettings
from ..money import quantize, to_decimal

ZERO = Decimal("0")


def distinct_orderings(number: str) -> int:
    """Number of distinct permutations of the digits of ``number``."""
    count = factorial(len(number))
    for repeats in Counter(number).values():
        count //= factorial(repeats)
    return count


def borlette_winnings(number: str, amount: Decimal, lots: Sequence[str], payouts: PayoutSettings) -> Decimal:
    # Lots past the third pay the third-lot multiplier.
    lots = list(lots)
    if number not in lots:
        return ZERO
    index = min(lots.index(number), len(payouts.borlette) - 1)
    return amount * Decimal(payouts.borlette[index])


def lotto3_winnings(
    number: str, amount: Decimal, lots: Sequence[str], lucky_number: Optional[int], payouts: PayoutSettings
) -> Decimal:
    if lucky_number is None or not lots:
        return ZERO
    if number != f"{int(lucky_number) % 10}{lots[0]}":
        return ZERO
    return amount * payouts.multiplier("lotto3")


def lotto_winnings(game: str, number: str, option: int, amount: Decimal, lots: Sequence[str], payouts: PayoutSettings) -> Decimal:
    digits = "".join(lots)
    size = len(number)
    base = payouts.multiplier(game)
    if option == 1:
        won = digits[:size] == number
    elif option == 2:
        won = digits[-size:] == number
    elif option == 3:
        if sorted(digits[:size]) != sorted(number):
            return ZERO
        return amount * base / distinct_orderings(number)
    else:
        raise ValueError(f"unknown option {option} for {game}")
    return amount * base if won else ZERO


def marriage_winnings(number: str, amount: Decimal, lots: Sequence[str], payouts: PayoutSettings) -> Decimal:
    first, second = number.split("*")
    top = list(lots[:3])
    if first not in top:
        return ZERO
    remaining = top[:]
    remaining.remove(first)
    if second not in remaining:
        return ZERO
    return amount * payouts.multiplier("marriage")


def bet_winnings(
    bet: Dict[str, Any],
    lots: Sequence[str],
    lucky_number: Optional[int],
    payouts: PayoutSettings,
) -> Decimal:
    """Winnings of one stored bet record against a published result, quantized to cents."""
    game = bet["game"]
    number = str(bet["number"])
    amount = to_decimal(bet["amount"])

    if game == "borlette":
        won = borlette_winnings(number, amount, lots, payouts)
    elif game == "lotto3":
        won = lotto3_winnings(number, amount, lots, lucky_number, payouts)
    elif game in ("lotto4", "auto_lotto4", "lotto5", "auto_lotto5"):
        won = lotto_winnings(game, number, int(bet.get("option") or 1), amount, lots, payouts)
    elif game in ("marriage", "auto_marriage"):
        won = marriage_winnings(number, amount, lots, payouts)
    else:
        raise ValueError(f"unknown game {game!r}")
    return quantize(won)
