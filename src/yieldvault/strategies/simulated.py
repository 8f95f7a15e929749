from __future__ import annotations

"""
In-memory lending placement.

Models the parts of a lending market the vault cares about:
- supplied balance that grows when interest accrues,
- a liquidity cap (low utilization headroom) that limits withdrawals,
- reward emissions claimed on harvest,
- losses, and injected failures of any hook.

Used by the demo entry point and the test-suite in place of real adapters.
"""

import logging
from typing import Optional, Set

from ..errors import ExternalFailure
from ..numeric.fixed_point import bps_of, checked_add, checked_sub, minimum
from ..runtime.chain import Chain
from ..runtime.token import Asset
from .base import YieldSource

logger = logging.getLogger(__name__)


class SimulatedLendingStrategy(YieldSource):
    state_fields = (
        "supplied",
        "pending_rewards",
        "liquidity_cap",
        "failing",
        "active",
        "apy_bps",
        "emergency_haircut_bps",
    )

    def __init__(
        self,
        chain: Chain,
        address: str,
        asset: Asset,
        manager: str,
        apy_bps: int = 0,
        liquidity_cap: Optional[int] = None,
        emergency_haircut_bps: int = 0,
    ):
        super().__init__(chain, address, asset, manager)
        self.pool = f"{address}/pool"
        self.supplied = 0
        self.pending_rewards = 0
        self.liquidity_cap = liquidity_cap
        self.failing: Set[str] = set()
        self.active = True
        self.apy_bps = apy_bps
        self.emergency_haircut_bps = emergency_haircut_bps

    # ---- world hooks (simulation only) ----

    def fail(self, *operations: str) -> None:
        """Make the named hooks raise until `recover` is called."""
        self.failing.update(operations)

    def recover(self, *operations: str) -> None:
        if not operations:
            self.failing.clear()
        self.failing.difference_update(operations)

    def accrue(self, bps: int) -> int:
        """Pay `bps` of the supplied balance as interest into the placement."""
        interest = bps_of(self.supplied, bps)
        if interest:
            self.asset.mint(self.pool, interest)
            self.supplied = checked_add(self.supplied, interest)
        return interest

    def add_rewards(self, amount: int) -> None:
        self.pending_rewards = checked_add(self.pending_rewards, amount)

    def realize_loss(self, amount: int) -> int:
        lost = minimum(amount, self.supplied)
        if lost:
            self.asset.burn(self.pool, lost)
            self.supplied -= lost
        return lost

    def set_liquidity_cap(self, cap: Optional[int]) -> None:
        self.liquidity_cap = cap

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.failing:
            raise ExternalFailure(f"{operation}_reverted", f"{self.address}: {operation} reverted")

    # ---- YieldSource ----

    def available_liquidity(self) -> int:
        if self.liquidity_cap is None:
            return self.supplied
        return minimum(self.supplied, self.liquidity_cap)

    def deposit(self, *, sender: str) -> None:
        self._only_manager(sender)
        self._maybe_fail("deposit")
        amount = self.asset.balance_of(self.address)
        if amount == 0 or not self.active:
            return
        self.asset.transfer(self.address, self.pool, amount)
        self.supplied = checked_add(self.supplied, amount)

    def _release(self, amount: int) -> int:
        loose = minimum(amount, self.asset.balance_of(self.address))
        if loose:
            self.asset.transfer(self.address, self.manager, loose)
        from_pool = minimum(amount - loose, self.available_liquidity())
        if from_pool:
            self.asset.transfer(self.pool, self.manager, from_pool)
            self.supplied = checked_sub(self.supplied, from_pool)
        return loose + from_pool

    def withdraw(self, amount: int, *, sender: str) -> int:
        self._only_manager(sender)
        self._maybe_fail("withdraw")
        actual = self._release(amount)
        if actual < amount:
            logger.info("%s: partial withdraw %d of %d (liquidity)", self.address, actual, amount)
        return actual

    def withdraw_all(self, *, sender: str) -> int:
        self._only_manager(sender)
        self._maybe_fail("withdraw_all")
        return self._release(self.estimated_total_assets())

    def harvest(self, *, sender: str) -> None:
        self._only_manager(sender)
        self._maybe_fail("harvest")
        rewards, self.pending_rewards = self.pending_rewards, 0
        if rewards:
            # Reward token claimed and swapped to the asset in one step.
            self.asset.mint(self.manager, rewards)

    def estimated_total_assets(self) -> int:
        self._maybe_fail("estimated_total_assets")
        return self.supplied + self.asset.balance_of(self.address)

    def current_yield_rate(self) -> int:
        self._maybe_fail("current_yield_rate")
        return self.apy_bps

    def emergency_withdraw(self, *, sender: str) -> None:
        self._only_manager(sender)
        self._maybe_fail("emergency_withdraw")
        haircut = bps_of(self.available_liquidity(), self.emergency_haircut_bps)
        if haircut:
            self.realize_loss(haircut)
        self._release(self.estimated_total_assets())
        self.active = False

    def is_active(self) -> bool:
        return self.active
