"""
Vault: the accounting ledger.

What it does:
- Issues and burns shares against deposits and withdrawals of the single
  underlying asset at `shares = assets * total_shares / total_assets`.
- Rounds every conversion in the pool's favor: down when shares are issued
  or assets paid out, up when shares are burned or assets charged.
- Sources withdrawal liquidity from the strategy manager when idle assets
  run short, and aborts the withdrawal if the manager cannot deliver.
- Charges the withdrawal fee to the fee recipient; exposes the performance
  fee configuration the manager applies on harvest.

Every mutating entry point is guarded by one per-vault re-entrancy lock and
runs as a single transaction (full rollback on failure).
"""
from __future__ import annotations

import logging
from typing import Optional

from ..access.roles import ADMIN, GUARDIAN, STRATEGIST, AccessControl
from ..errors import InsufficientLiquidity, InvalidInput, InvariantViolation
from ..events.schema import (
    Deposit,
    DepositLimitUpdated,
    FeeRecipientUpdated,
    FeesUpdated,
    Paused,
    SharesTransferred,
    StrategyManagerUpdated,
    Unpaused,
    Withdraw,
)
from ..numeric.fixed_point import MAX_UINT256, Rounding, bps_of, checked, mul_div, safe_sub
from ..runtime.chain import Chain, Component
from ..runtime.guard import non_reentrant
from ..runtime.token import Asset, Balances
from .model import VaultSnapshot

logger = logging.getLogger(__name__)

MAX_WITHDRAWAL_FEE_BPS = 100  # 1%
MAX_PERFORMANCE_FEE_BPS = 2000  # 20%
DEFAULT_WITHDRAWAL_FEE_BPS = 10
DEFAULT_PERFORMANCE_FEE_BPS = 1000


def _check_fees(withdrawal_fee_bps: int, performance_fee_bps: int) -> None:
    if not 0 <= withdrawal_fee_bps <= MAX_WITHDRAWAL_FEE_BPS:
        raise InvalidInput("withdrawal_fee_above_cap", f"withdrawal fee {withdrawal_fee_bps} bps > {MAX_WITHDRAWAL_FEE_BPS}")
    if not 0 <= performance_fee_bps <= MAX_PERFORMANCE_FEE_BPS:
        raise InvalidInput(
            "performance_fee_above_cap", f"performance fee {performance_fee_bps} bps > {MAX_PERFORMANCE_FEE_BPS}"
        )


class Vault(Component):
    state_fields = (
        "shares",
        "deposit_limit",
        "withdrawal_fee_bps",
        "performance_fee_bps",
        "fee_recipient",
        "paused",
        "strategy_manager",
    )

    def __init__(
        self,
        chain: Chain,
        address: str,
        asset: Asset,
        roles: AccessControl,
        fee_recipient: str,
        name: str = "Yield Vault Share",
        symbol: str = "yvSHARE",
        deposit_limit: int = MAX_UINT256,
        withdrawal_fee_bps: int = DEFAULT_WITHDRAWAL_FEE_BPS,
        performance_fee_bps: int = DEFAULT_PERFORMANCE_FEE_BPS,
    ):
        if not fee_recipient:
            raise InvalidInput("zero_address", "fee recipient required")
        _check_fees(withdrawal_fee_bps, performance_fee_bps)
        super().__init__(chain, address)
        self.asset = asset
        self.roles = roles
        self.name = name
        self.shares = Balances(symbol, asset.decimals)
        self.deposit_limit = checked(deposit_limit)
        self.withdrawal_fee_bps = withdrawal_fee_bps
        self.performance_fee_bps = performance_fee_bps
        self.fee_recipient = fee_recipient
        self.paused = False
        self.strategy_manager: Optional[str] = None

    def _emit(self, event_cls, **fields) -> None:
        self.chain.emit(event_cls(ts=self.chain.now(), emitter=self.address, **fields))

    # ---- share token views ----

    @property
    def symbol(self) -> str:
        return self.shares.symbol

    def total_supply(self) -> int:
        return self.shares.total_supply

    def balance_of(self, account: str) -> int:
        return self.shares.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.shares.allowance(owner, spender)

    # ---- accounting views ----

    def _manager(self):
        if self.strategy_manager is None:
            return None
        return self.chain.resolve(self.strategy_manager)

    def idle_assets(self) -> int:
        return self.asset.balance_of(self.address)

    def total_assets(self) -> int:
        manager = self._manager()
        deployed = manager.total_assets_in_strategies() if manager is not None else 0
        return self.idle_assets() + deployed

    def _to_shares(self, assets: int, rounding: Rounding) -> int:
        supply = self.shares.total_supply
        if supply == 0:
            return checked(assets)
        total = self.total_assets()
        if total == 0:
            # Shares outstanding but nothing backing them; no fair price exists.
            return 0
        return mul_div(assets, supply, total, rounding)

    def _to_assets(self, shares: int, rounding: Rounding) -> int:
        supply = self.shares.total_supply
        if supply == 0:
            return checked(shares)
        return mul_div(shares, self.total_assets(), supply, rounding)

    def convert_to_shares(self, assets: int) -> int:
        return self._to_shares(assets, Rounding.DOWN)

    def convert_to_assets(self, shares: int) -> int:
        return self._to_assets(shares, Rounding.DOWN)

    def preview_deposit(self, assets: int) -> int:
        return self._to_shares(assets, Rounding.DOWN)

    def preview_mint(self, shares: int) -> int:
        return self._to_assets(shares, Rounding.UP)

    def preview_withdraw(self, assets: int) -> int:
        return self._to_shares(assets, Rounding.UP)

    def preview_redeem(self, shares: int) -> int:
        return self._to_assets(shares, Rounding.DOWN)

    def max_deposit(self, receiver: str) -> int:
        if self.paused:
            return 0
        return safe_sub(self.deposit_limit, self.total_assets())

    def max_mint(self, receiver: str) -> int:
        if self.paused:
            return 0
        if self.deposit_limit == MAX_UINT256:
            return MAX_UINT256
        return self.convert_to_shares(self.max_deposit(receiver))

    def max_withdraw(self, owner: str) -> int:
        return self.preview_redeem(self.balance_of(owner))

    def max_redeem(self, owner: str) -> int:
        return self.balance_of(owner)

    def price_per_share(self) -> int:
        """Assets redeemable for one whole share (10**decimals units)."""
        return self.convert_to_assets(10 ** self.shares.decimals)

    def snapshot(self) -> VaultSnapshot:
        manager = self._manager()
        return VaultSnapshot(
            ts=self.chain.now(),
            asset=self.asset.address,
            total_assets=self.total_assets(),
            total_shares=self.shares.total_supply,
            idle=self.idle_assets(),
            paused=self.paused,
            withdrawal_fee_bps=self.withdrawal_fee_bps,
            performance_fee_bps=self.performance_fee_bps,
            shares=self.shares.holders(),
            strategies=manager.snapshot() if manager is not None else {},
            strategy_assets=manager.strategy_assets() if manager is not None else {},
        )

    # ---- user entry points ----

    @non_reentrant
    def deposit(self, assets: int, receiver: str, *, sender: str) -> int:
        """Deposit exactly `assets`; returns the shares minted to `receiver`."""
        if checked(assets) == 0:
            raise InvalidInput("zero_assets", "deposit of zero assets")
        if not receiver:
            raise InvalidInput("zero_address", "receiver required")
        limit = self.max_deposit(receiver)
        if assets > limit:
            raise InvalidInput("exceeds_max_deposit", f"deposit {assets} exceeds max deposit {limit}")
        shares = self.preview_deposit(assets)
        if shares == 0:
            raise InvalidInput("zero_shares", f"deposit of {assets} would mint zero shares")
        self._deposit(sender, receiver, assets, shares)
        return shares

    @non_reentrant
    def mint(self, shares: int, receiver: str, *, sender: str) -> int:
        """Mint exactly `shares`; returns the assets charged to `sender`."""
        if checked(shares) == 0:
            raise InvalidInput("zero_shares", "mint of zero shares")
        if not receiver:
            raise InvalidInput("zero_address", "receiver required")
        assets = self.preview_mint(shares)
        if assets == 0:
            raise InvalidInput("zero_assets", f"mint of {shares} shares would cost zero assets")
        limit = self.max_deposit(receiver)
        if assets > limit:
            raise InvalidInput("exceeds_max_deposit", f"mint cost {assets} exceeds max deposit {limit}")
        self._deposit(sender, receiver, assets, shares)
        return assets

    def _deposit(self, sender: str, receiver: str, assets: int, shares: int) -> None:
        self.asset.transfer_from(self.address, sender, self.address, assets)
        self.shares.mint(receiver, shares)
        self._emit(Deposit, sender=sender, owner=receiver, assets=assets, shares=shares)
        logger.debug("deposit %d assets -> %d shares for %s", assets, shares, receiver)

    @non_reentrant
    def withdraw(self, assets: int, receiver: str, owner: str, *, sender: str) -> int:
        """Withdraw exactly `assets` (gross of fee); returns the shares burned."""
        if checked(assets) == 0:
            raise InvalidInput("zero_assets", "withdraw of zero assets")
        if not receiver:
            raise InvalidInput("zero_address", "receiver required")
        limit = self.max_withdraw(owner)
        if assets > limit:
            raise InvalidInput("exceeds_max_withdraw", f"withdraw {assets} exceeds max withdraw {limit}")
        shares = self.preview_withdraw(assets)
        if shares > self.balance_of(owner):
            raise InvalidInput("exceeds_max_withdraw", f"needs {shares} shares, {owner} holds {self.balance_of(owner)}")
        self._withdraw(sender, receiver, owner, assets, shares)
        return shares

    @non_reentrant
    def redeem(self, shares: int, receiver: str, owner: str, *, sender: str) -> int:
        """Redeem exactly `shares`; returns the gross assets released (fee included)."""
        if checked(shares) == 0:
            raise InvalidInput("zero_shares", "redeem of zero shares")
        if not receiver:
            raise InvalidInput("zero_address", "receiver required")
        if shares > self.balance_of(owner):
            raise InvalidInput("exceeds_max_redeem", f"redeem {shares} exceeds balance {self.balance_of(owner)}")
        assets = self.preview_redeem(shares)
        if assets == 0:
            raise InvalidInput("zero_assets", f"redeem of {shares} shares would pay zero assets")
        self._withdraw(sender, receiver, owner, assets, shares)
        return assets

    def _withdraw(self, sender: str, receiver: str, owner: str, assets: int, shares: int) -> int:
        if sender != owner:
            self.shares.spend_allowance(owner, sender, shares)
        self.shares.burn(owner, shares)
        self._ensure_liquidity(assets)
        fee = bps_of(assets, self.withdrawal_fee_bps)
        if fee:
            self.asset.transfer(self.address, self.fee_recipient, fee)
        net = assets - fee
        self.asset.transfer(self.address, receiver, net)
        self._emit(Withdraw, sender=sender, receiver=receiver, owner=owner, assets=assets, shares=shares, fee=fee)
        return net

    def _ensure_liquidity(self, amount: int) -> None:
        idle = self.idle_assets()
        if idle >= amount:
            return
        shortfall = amount - idle
        manager = self._manager()
        if manager is not None:
            manager.withdraw_from_strategies(shortfall, sender=self.address)
        available = self.idle_assets()
        if available < amount:
            raise InsufficientLiquidity(
                "insufficient_liquidity", f"needed {amount}, strategies could only free up to {available}"
            )

    # ---- share token transfers ----

    @non_reentrant
    def transfer(self, to: str, shares: int, *, sender: str) -> None:
        self.shares.transfer(sender, to, shares)
        self._emit(SharesTransferred, sender=sender, receiver=to, shares=shares)

    @non_reentrant
    def approve(self, spender: str, shares: int, *, sender: str) -> None:
        self.shares.approve(sender, spender, shares)

    @non_reentrant
    def transfer_from(self, owner: str, to: str, shares: int, *, sender: str) -> None:
        self.shares.transfer_from(sender, owner, to, shares)
        self._emit(SharesTransferred, sender=owner, receiver=to, shares=shares)

    # ---- administration ----

    @non_reentrant
    def set_strategy_manager(self, manager: str, *, sender: str) -> None:
        self.roles.require(ADMIN, sender)
        if not manager:
            raise InvalidInput("zero_address", "strategy manager address required")
        candidate = self.chain.resolve(manager)
        if getattr(candidate, "vault", None) != self.address:
            raise InvariantViolation("manager_vault_mismatch", f"{manager!r} does not serve {self.address!r}")
        old = self._manager()
        if old is not None:
            if old.total_assets_in_strategies() > 0:
                raise InvariantViolation(
                    "manager_holds_capital", f"{old.address!r} still holds capital; emergency withdraw first"
                )
            self.asset.approve(self.address, old.address, 0)
        self.asset.approve(self.address, manager, MAX_UINT256)
        self.strategy_manager = manager
        self._emit(StrategyManagerUpdated, strategy_manager=manager)

    @non_reentrant
    def set_deposit_limit(self, limit: int, *, sender: str) -> None:
        self.roles.require(ADMIN, sender)
        self.deposit_limit = checked(limit)
        self._emit(DepositLimitUpdated, deposit_limit=limit)

    @non_reentrant
    def set_fees(self, withdrawal_fee_bps: int, performance_fee_bps: int, *, sender: str) -> None:
        self.roles.require(ADMIN, sender)
        _check_fees(withdrawal_fee_bps, performance_fee_bps)
        self.withdrawal_fee_bps = withdrawal_fee_bps
        self.performance_fee_bps = performance_fee_bps
        self._emit(FeesUpdated, withdrawal_fee_bps=withdrawal_fee_bps, performance_fee_bps=performance_fee_bps)

    @non_reentrant
    def set_fee_recipient(self, recipient: str, *, sender: str) -> None:
        self.roles.require(ADMIN, sender)
        if not recipient:
            raise InvalidInput("zero_address", "fee recipient required")
        self.fee_recipient = recipient
        self._emit(FeeRecipientUpdated, fee_recipient=recipient)

    @non_reentrant
    def deposit_to_strategies(self, amount: Optional[int] = None, *, sender: str) -> int:
        """Push idle assets (all of them when `amount` is None) to the strategies.

        Returns the amount that ended up deployed; the rest stays idle.
        """
        self.roles.require(STRATEGIST, sender)
        manager = self._manager()
        if manager is None:
            raise InvariantViolation("no_strategy_manager", "strategy manager not set")
        idle = self.idle_assets()
        amount = idle if amount is None else checked(amount)
        if amount == 0:
            raise InvalidInput("zero_assets", "nothing to deploy")
        if amount > idle:
            raise InvalidInput("exceeds_idle", f"deploy {amount} exceeds idle {idle}")
        return manager.deposit_to_strategies(amount, sender=self.address)

    @non_reentrant
    def pause(self, *, sender: str) -> None:
        """Stop deposits and mints. Withdrawals stay open."""
        self.roles.require(GUARDIAN, sender)
        self.paused = True
        self._emit(Paused, account=sender)
        logger.warning("vault %s paused by %s", self.address, sender)

    @non_reentrant
    def unpause(self, *, sender: str) -> None:
        self.roles.require(GUARDIAN, sender)
        self.paused = False
        self._emit(Unpaused, account=sender)
        logger.info("vault %s unpaused by %s", self.address, sender)

    @non_reentrant
    def emergency_withdraw_all(self, *, sender: str) -> int:
        """Force every strategy back to idle regardless of targets; returns the amount recovered."""
        self.roles.require(GUARDIAN, sender)
        manager = self._manager()
        if manager is None:
            return 0
        return manager.emergency_withdraw_all(sender=self.address)
