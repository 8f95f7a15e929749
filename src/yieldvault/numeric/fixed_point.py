"""
Fixed-point helpers for basis-point and ratio arithmetic.

All amounts are Python ints interpreted as unsigned 256-bit quantities.
Division truncates toward zero; callers that need to round up ask for it
explicitly (`Rounding.UP` pre-adds `denominator - 1`). Results outside the
uint256 range raise `ArithmeticOverflow` instead of wrapping.
"""
from __future__ import annotations

from enum import Enum

from ..errors import ArithmeticOverflow, InvalidInput

MAX_BPS = 10_000
MAX_UINT256 = 2**256 - 1


class Rounding(Enum):
    DOWN = "down"
    UP = "up"


def checked(value: int) -> int:
    """Return `value` unchanged if it fits in uint256, else raise."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInput("not_an_integer", f"expected int amount, got {type(value).__name__}")
    if value < 0:
        raise ArithmeticOverflow("underflow", f"negative result {value}")
    if value > MAX_UINT256:
        raise ArithmeticOverflow("overflow", "result exceeds uint256")
    return value


def mul_div(a: int, b: int, denominator: int, rounding: Rounding = Rounding.DOWN) -> int:
    checked(a)
    checked(b)
    if checked(denominator) == 0:
        raise ArithmeticOverflow("division_by_zero", "mul_div denominator is zero")
    product = checked(a * b)
    if rounding is Rounding.UP:
        return checked(product + denominator - 1) // denominator
    return product // denominator


def ceil_div(a: int, b: int) -> int:
    return mul_div(a, 1, b, Rounding.UP)


def bps_of(value: int, bps: int) -> int:
    """value * bps / 10000, truncated."""
    return mul_div(value, bps, MAX_BPS)


def to_bps(part: int, whole: int) -> int:
    """Share of `whole` represented by `part`, in bps; 0 for an empty whole."""
    if checked(whole) == 0:
        return 0
    return mul_div(part, MAX_BPS, whole)


def minimum(a: int, b: int) -> int:
    return checked(a) if checked(a) <= checked(b) else b


def maximum(a: int, b: int) -> int:
    return checked(a) if checked(a) >= checked(b) else b


def safe_sub(a: int, b: int) -> int:
    """a - b, floored at zero."""
    if checked(b) > checked(a):
        return 0
    return a - b


def checked_add(a: int, b: int) -> int:
    return checked(checked(a) + checked(b))


def checked_sub(a: int, b: int) -> int:
    return checked(checked(a) - checked(b))
