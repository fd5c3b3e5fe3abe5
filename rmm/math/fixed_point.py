"""18-decimal fixed-point arithmetic with explicit rounding.

Every division that lands back in base units takes a ``Rounding`` argument,
so the direction that favours the pool is visible at each call site.

The natural ``exp``/``ln`` use the digit-extraction and series expansion of
Balancer's LogExpMath, evaluated over signed integers only, so the results
are identical on every platform.
"""

from __future__ import annotations

from enum import Enum
from math import isqrt

from rmm.errors import MathDomainError
from rmm.safe_int import ceiling_div, floor_div

__all__ = [
    "Rounding",
    "mul_div",
    "mul_wad",
    "div_wad",
    "sqrt_wad",
    "ln",
    "exp",
    "ONE_18",
    "ONE_20",
    "MIN_NATURAL_EXPONENT",
    "MAX_NATURAL_EXPONENT",
]

# =============================================================================
# Constants
# =============================================================================

ONE_18 = 10**18
ONE_20 = 10**20

MAX_NATURAL_EXPONENT = 130 * ONE_18  # e^130 is the max we can handle
MIN_NATURAL_EXPONENT = -41 * ONE_18  # e^-41 is close to zero

# x values are exponents (powers of 2), a values are e^x

# 18-decimal precision constants (for large values)
X_18 = {
    0: 128 * ONE_18,  # 2^7
    1: 64 * ONE_18,  # 2^6
}
A_18 = {
    0: 38877084059945950922200000000000000000000000000000000000,  # e^128
    1: 6235149080811616882910000000,  # e^64
}

# 20-decimal precision constants (for medium values)
X_20 = {
    2: 3_200_000_000_000_000_000_000,  # 2^5
    3: 1_600_000_000_000_000_000_000,  # 2^4
    4: 800_000_000_000_000_000_000,  # 2^3
    5: 400_000_000_000_000_000_000,  # 2^2
    6: 200_000_000_000_000_000_000,  # 2^1
    7: 100_000_000_000_000_000_000,  # 2^0
    8: 50_000_000_000_000_000_000,  # 2^-1
    9: 25_000_000_000_000_000_000,  # 2^-2
    10: 12_500_000_000_000_000_000,  # 2^-3
    11: 6_250_000_000_000_000_000,  # 2^-4
}
A_20 = {
    2: 7_896_296_018_268_069_516_100_000_000_000_000,  # e^32
    3: 888_611_052_050_787_263_676_000_000,  # e^16
    4: 298_095_798_704_172_827_474_000,  # e^8
    5: 5_459_815_003_314_423_907_810,  # e^4
    6: 738_905_609_893_065_022_723,  # e^2
    7: 271_828_182_845_904_523_536,  # e^1
    8: 164_872_127_070_012_814_685,  # e^0.5
    9: 128_402_541_668_774_148_407,  # e^0.25
    10: 113_314_845_306_682_631_683,  # e^0.125
    11: 106_449_445_891_785_942_956,  # e^0.0625
}


class Rounding(Enum):
    """Direction in which a fixed-point quotient is quantized."""

    DOWN = "down"
    UP = "up"


# =============================================================================
# Rounding-explicit arithmetic (unsigned)
# =============================================================================


def mul_div(a: int, b: int, denominator: int, *, rounding: Rounding) -> int:
    """Compute a * b / denominator, quantized in the given direction.

    Args:
        a: Non-negative multiplicand
        b: Non-negative multiplier
        denominator: Positive divisor
        rounding: Rounding.DOWN floors, Rounding.UP takes the ceiling

    Raises:
        DivisionByZero: If denominator is zero
        MathDomainError: If any operand is negative
    """
    if a < 0 or b < 0 or denominator < 0:
        raise MathDomainError(f"mul_div expects non-negative operands: {a}, {b}, {denominator}")
    if rounding is Rounding.UP:
        return ceiling_div(a * b, denominator)
    return floor_div(a * b, denominator)


def mul_wad(a: int, b: int, *, rounding: Rounding) -> int:
    """Multiply two wad values: a * b / 10^18."""
    return mul_div(a, b, ONE_18, rounding=rounding)


def div_wad(a: int, b: int, *, rounding: Rounding) -> int:
    """Divide two wad values: a * 10^18 / b."""
    return mul_div(a, ONE_18, b, rounding=rounding)


def sqrt_wad(a: int) -> int:
    """Square root of a wad value, rounded down."""
    if a < 0:
        raise MathDomainError(f"Square root of negative value: {a}")
    return isqrt(a * ONE_18)


# =============================================================================
# Signed helpers
# =============================================================================


def _div_trunc(a: int, b: int) -> int:
    """Integer division with truncation toward zero.

    Python's // rounds toward negative infinity. Signed fixed-point values
    (log-moneyness, normal quantiles) are quantized toward zero instead so
    that f(-x) == -f(x) holds bit for bit for odd functions.

    Examples:
        -7 // 3 = -3 (floor)
        _div_trunc(-7, 3) = -2 (truncate)
    """
    if b == 0:
        raise ZeroDivisionError("Division by zero in _div_trunc")

    if (a >= 0) == (b >= 0):
        return a // b
    return -(abs(a) // abs(b))


def _ln(a: int) -> int:
    """Natural logarithm of a positive wad value.

    Uses digit extraction and the arctanh series
    ln(a) = 2 * (z + z^3/3 + z^5/5 + ...), z = (a-1)/(a+1).
    """
    if a < ONE_18:
        # ln(a) = -ln(1/a)
        return -_ln((ONE_18 * ONE_18) // a)

    sum_val = 0

    # Extract large powers of e (18-decimal precision)
    for i in range(2):
        if a >= A_18[i] * ONE_18:
            a //= A_18[i]
            sum_val += X_18[i]

    # Scale up to 20-decimal precision
    sum_val *= 100
    a *= 100

    # Extract medium powers of e (20-decimal precision)
    for i in range(2, 12):
        if a >= A_20[i]:
            a = (a * ONE_20) // A_20[i]
            sum_val += X_20[i]

    z = ((a - ONE_20) * ONE_20) // (a + ONE_20)
    z_squared = (z * z) // ONE_20

    num = z
    series_sum = num

    for i in range(3, 12, 2):  # i = 3, 5, 7, 9, 11
        num = (num * z_squared) // ONE_20
        series_sum += num // i

    series_sum *= 2

    return (sum_val + series_sum) // 100


def ln(a: int) -> int:
    """Natural logarithm of a wad value.

    Raises:
        MathDomainError: If a is not positive
    """
    if a <= 0:
        raise MathDomainError(f"Logarithm of non-positive value: {a}")
    return _ln(a)


def exp(x: int) -> int:
    """Compute e^x where x is a signed wad value.

    Raises:
        MathDomainError: If x is outside [MIN_NATURAL_EXPONENT, MAX_NATURAL_EXPONENT]
    """
    if not (MIN_NATURAL_EXPONENT <= x <= MAX_NATURAL_EXPONENT):
        raise MathDomainError(f"Exponent {x} outside valid range")

    if x < 0:
        # e^-x = 1 / e^x
        return (ONE_18 * ONE_18) // exp(-x)

    # Extract large powers of e (18-decimal)
    if x >= X_18[0]:
        x -= X_18[0]
        first_an = A_18[0]
    elif x >= X_18[1]:
        x -= X_18[1]
        first_an = A_18[1]
    else:
        first_an = 1

    # Scale to 20-decimal precision
    x *= 100

    # Extract medium powers of e (20-decimal)
    product = ONE_20
    for i in range(2, 10):
        if x >= X_20[i]:
            x -= X_20[i]
            product = (product * A_20[i]) // ONE_20

    # Taylor series up to x^12/12!
    series_sum = ONE_20
    term = x
    series_sum += term

    for i in range(2, 13):
        term = ((term * x) // ONE_20) // i
        series_sum += term

    return (((product * series_sum) // ONE_20) * first_an) // 100
