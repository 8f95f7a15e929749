"""Settings loading and validation."""

from .loader import StrategySettings, VaultSettings, load_settings

__all__ = ["StrategySettings", "VaultSettings", "load_settings"]
