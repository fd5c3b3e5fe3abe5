"""Checked and wrapping integer helpers for reserve bookkeeping.

Reserve amounts must never go negative, so subtraction is checked and
raises instead of producing a negative balance. Accumulators (cumulative
reserves, fee growth) are the exception: they are unsigned fixed-width
counters and wrap around on overflow.

Usage pattern:
    from rmm.safe_int import checked_sub, wrapping_add

    remaining = checked_sub(reserve, amount)   # Raises Underflow
    cumulative = wrapping_add(cumulative, reserve * elapsed)
"""

from __future__ import annotations

from rmm.constants import ACCUMULATOR_BITS

UINT256_MAX = 2**256 - 1


class SafeIntError(ArithmeticError):
    """Base class for checked arithmetic errors."""

    pass


class DivisionByZero(SafeIntError):
    """Division or modulo by zero."""

    pass


class Underflow(SafeIntError):
    """Subtraction would produce negative result."""

    pass


def checked_sub(a: int, b: int) -> int:
    """Subtract b from a.

    Raises:
        Underflow: If result would be negative
    """
    result = a - b
    if result < 0:
        raise Underflow(f"Underflow: {a} - {b} = {result}")
    return result


def ceiling_div(a: int, b: int) -> int:
    """Ceiling division of non-negative integers.

    Raises:
        DivisionByZero: If b is zero
    """
    if b == 0:
        raise DivisionByZero(f"Ceiling division by zero: {a}")
    return (a + b - 1) // b


def floor_div(a: int, b: int) -> int:
    """Floor division of non-negative integers.

    Raises:
        DivisionByZero: If b is zero
    """
    if b == 0:
        raise DivisionByZero(f"Division by zero: {a} // 0")
    return a // b


def wrapping_add(a: int, b: int, bits: int = ACCUMULATOR_BITS) -> int:
    """Add modulo 2**bits, like an unsigned counter of that width."""
    return (a + b) % (1 << bits)


def wrapping_sub(a: int, b: int, bits: int = ACCUMULATOR_BITS) -> int:
    """Subtract modulo 2**bits.

    Used to take the difference of two accumulator readings even when
    the counter wrapped between them.
    """
    return (a - b) % (1 << bits)
