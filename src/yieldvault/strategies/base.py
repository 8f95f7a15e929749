from __future__ import annotations

"""
Yield source interface.

A yield source (strategy) takes custody of capital handed to it by the
strategy manager and places it somewhere that earns yield. The manager is
the only principal allowed to move funds through it; all returned funds go
back to the manager.
"""

from ..errors import AuthorizationFailure
from ..runtime.chain import Chain, Component
from ..runtime.token import Asset


class YieldSource(Component):
    """Base yield source.

    Subclasses implement the placement-specific hooks. Views
    (`estimated_total_assets`, `current_yield_rate`, `is_active`) must be
    side-effect-free; they may raise when the underlying placement is broken.
    """

    def __init__(self, chain: Chain, address: str, asset: Asset, manager: str):
        super().__init__(chain, address)
        self.asset = asset
        self.manager = manager

    def _only_manager(self, sender: str) -> None:
        if sender != self.manager:
            raise AuthorizationFailure("only_manager", f"{sender!r} is not the manager of {self.address}")

    def accepted_asset(self) -> str:
        return self.asset.address

    def deposit(self, *, sender: str) -> None:
        """Sweep any asset balance held by this source into the placement."""
        raise NotImplementedError

    def withdraw(self, amount: int, *, sender: str) -> int:
        """Return up to `amount` to the manager; returns what was actually sent."""
        raise NotImplementedError

    def withdraw_all(self, *, sender: str) -> int:
        raise NotImplementedError

    def harvest(self, *, sender: str) -> None:
        """Claim rewards; the effect is only visible as a manager balance change."""
        raise NotImplementedError

    def estimated_total_assets(self) -> int:
        raise NotImplementedError

    def current_yield_rate(self) -> int:
        """Current yield in bps per year."""
        return 0

    def emergency_withdraw(self, *, sender: str) -> None:
        """Best-effort full exit to the manager; may realize a loss."""
        raise NotImplementedError

    def is_active(self) -> bool:
        return True
