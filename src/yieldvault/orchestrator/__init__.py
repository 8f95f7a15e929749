"""Strategy registry and capital routing."""

from .manager import DEFAULT_MAX_STRATEGIES, StrategyManager
from .model import HarvestResult, StrategyEntry

__all__ = ["DEFAULT_MAX_STRATEGIES", "HarvestResult", "StrategyEntry", "StrategyManager"]
