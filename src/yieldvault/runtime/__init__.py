"""Execution runtime: transactional chain, re-entrancy guard and token books."""

from .chain import Chain, Component
from .guard import atomic, non_reentrant, vault_routed
from .token import Asset, Balances

__all__ = ["Asset", "Balances", "Chain", "Component", "atomic", "non_reentrant", "vault_routed"]
