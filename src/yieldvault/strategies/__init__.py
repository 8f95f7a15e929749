"""Yield sources: the interface and an in-memory lending placement."""

from .base import YieldSource
from .simulated import SimulatedLendingStrategy

__all__ = ["SimulatedLendingStrategy", "YieldSource"]
