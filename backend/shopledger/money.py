# Overview: Integer-cents arithmetic helpers shared by checkout and credit checks.

"""
All monetary amounts are stored and computed as integer cents (2 fractional
digits). Rounding happens once per line, before summing.
"""

from __future__ import annotations


def round_half_up_div(numerator: int, denominator: int) -> int:
    """Integer division rounding halves away from zero."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator >= 0:
        return (numerator * 2 + denominator) // (denominator * 2)
    return -((-numerator * 2 + denominator) // (denominator * 2))


def apply_bps(amount_cents: int, rate_bps: int) -> int:
    """amount * rate, where rate is in basis points (1% = 100 bps)."""
    return round_half_up_div(amount_cents * rate_bps, 10_000)
