"""Basis-point and ratio arithmetic."""

from .fixed_point import (
    MAX_BPS,
    MAX_UINT256,
    Rounding,
    bps_of,
    ceil_div,
    checked,
    checked_add,
    checked_sub,
    maximum,
    minimum,
    mul_div,
    safe_sub,
    to_bps,
)

__all__ = [
    "MAX_BPS",
    "MAX_UINT256",
    "Rounding",
    "bps_of",
    "ceil_div",
    "checked",
    "checked_add",
    "checked_sub",
    "maximum",
    "minimum",
    "mul_div",
    "safe_sub",
    "to_bps",
]
