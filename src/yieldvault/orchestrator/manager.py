"""
Strategy manager: registry of yield sources and the capital routing between
the vault and those sources.

What it does:
- Keeps an ordered, dense registry of strategies (list + address->index map,
  swap-with-last-and-pop on removal) with bps allocation weights whose sum
  never exceeds 10000.
- Fans vault capital out by weight, pulls it back on demand, rebalances
  (drain everything, then refill by weight), harvests rewards and runs the
  emergency exit.

Custody: funds only pass through the manager. Anything left on its balance
at the end of a call (rounding remainders, recovered capital, harvest profit
net of the performance fee) is forwarded to the vault.

Failure isolation is chosen per call site:
- withdraw_from_strategies: an `ExternalFailure` from one source is rolled
  back and counted as zero delivered; the vault decides if the total is enough.
- emergency_withdraw_all: any failure of one source is rolled back, logged
  and skipped.
- harvest_all: propagates unless `isolate_failures=True`.
- everything else: failure aborts the whole call.
A `ReentrancyError` is never isolated.

The vault-only routing methods take over the chain-wide lock from the vault
when it calls them mid-operation; every other entry point refuses to run
while any guarded call is in flight.
"""
from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from ..access.roles import STRATEGIST, AccessControl
from ..errors import AuthorizationFailure, ExternalFailure, InvalidInput, InvariantViolation, ReentrancyError
from ..events.schema import (
    AllocationUpdated,
    EmergencyWithdrawn,
    FundsDeployed,
    FundsRecalled,
    Rebalanced,
    StrategyAdded,
    StrategyCallFailed,
    StrategyHarvested,
    StrategyRemoved,
)
from ..numeric.fixed_point import MAX_BPS, MAX_UINT256, bps_of, checked_add, minimum, safe_sub
from ..runtime.chain import Chain, Component
from ..runtime.guard import non_reentrant, vault_routed
from ..runtime.token import Asset
from ..strategies.base import YieldSource
from .model import HarvestResult, StrategyEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_STRATEGIES = 10


class StrategyManager(Component):
    state_fields = ("entries", "index", "sources", "history", "max_strategies")

    def __init__(
        self,
        chain: Chain,
        address: str,
        vault: str,
        asset: Asset,
        roles: AccessControl,
        max_strategies: int = DEFAULT_MAX_STRATEGIES,
    ):
        super().__init__(chain, address)
        if not vault:
            raise InvalidInput("zero_address", "vault address required")
        self.vault = vault
        self.asset = asset
        self.roles = roles
        self.max_strategies = max_strategies
        self.entries: List[StrategyEntry] = []
        self.index: Dict[str, int] = {}
        self.sources: Dict[str, YieldSource] = {}
        self.history: Dict[str, StrategyEntry] = {}

    # ---- views ----

    def strategies(self) -> List[StrategyEntry]:
        """Active entries in registry order (copies)."""
        return [StrategyEntry(**e.to_dict()) for e in self.entries]

    def strategy_count(self) -> int:
        return len(self.entries)

    def is_registered(self, strategy: str) -> bool:
        return strategy in self.index

    def get_strategy(self, strategy: str) -> StrategyEntry:
        return StrategyEntry(**self._entry(strategy).to_dict())

    def total_allocation_bps(self) -> int:
        return sum(e.allocation_bps for e in self.entries)

    def total_assets_in_strategies(self) -> int:
        total = self.asset.balance_of(self.address)
        for entry in self.entries:
            total += self._estimate(entry)
        return total

    def strategy_assets(self) -> Dict[str, int]:
        return {e.address: self._estimate(e) for e in self.entries}

    def snapshot(self) -> Dict[str, Dict]:
        return {e.address: e.to_dict() for e in self.entries}

    def _estimate(self, entry: StrategyEntry) -> int:
        # A broken source must not break total_assets(); fall back to bookkeeping.
        try:
            return self.sources[entry.address].estimated_total_assets()
        except ReentrancyError:
            raise
        except Exception as exc:
            self._log_failure(entry.address, "estimated_total_assets", exc, level=logging.WARNING)
            return entry.total_deposited

    def _entry(self, strategy: str) -> StrategyEntry:
        pos = self.index.get(strategy)
        if pos is None:
            raise InvalidInput("strategy_not_active", f"{strategy!r} is not an active strategy")
        return self.entries[pos]

    def _only_vault(self, sender: str) -> None:
        if sender != self.vault:
            raise AuthorizationFailure("only_vault", f"{sender!r} is not the vault")

    def _vault_component(self):
        return self.chain.resolve(self.vault)

    def _sweep_to_vault(self) -> int:
        held = self.asset.balance_of(self.address)
        if held:
            self.asset.transfer(self.address, self.vault, held)
        return held

    def _log_failure(self, strategy: str, operation: str, exc: BaseException, level: int = logging.ERROR) -> None:
        payload = {
            "event": "strategy_call_failed",
            "strategy": strategy,
            "operation": operation,
            "error": type(exc).__name__,
            "reason": getattr(exc, "reason", str(exc)),
        }
        logger.log(level, json.dumps(payload, separators=(",", ":")))

    def _report_failure(self, strategy: str, operation: str, exc: BaseException) -> None:
        self._log_failure(strategy, operation, exc)
        self.chain.emit(StrategyCallFailed(
            ts=self.chain.now(), emitter=self.address, strategy=strategy,
            operation=operation, error=f"{type(exc).__name__}: {exc}",
        ))

    # ---- registry ----

    @non_reentrant
    def add_strategy(self, strategy: str, allocation_bps: int, *, sender: str) -> None:
        self.roles.require(STRATEGIST, sender)
        if not strategy:
            raise InvalidInput("zero_address", "strategy address required")
        if len(self.entries) >= self.max_strategies:
            raise InvalidInput("too_many_strategies", f"registry holds the maximum of {self.max_strategies}")
        if strategy in self.index:
            raise InvalidInput("strategy_exists", f"{strategy!r} already registered")
        if allocation_bps < 0 or allocation_bps > MAX_BPS:
            raise InvalidInput("invalid_allocation", f"allocation {allocation_bps} outside 0..{MAX_BPS}")
        try:
            source = self.chain.resolve(strategy)
        except KeyError:
            raise InvalidInput("unknown_strategy", f"no yield source at {strategy!r}") from None
        if not isinstance(source, YieldSource):
            raise InvalidInput("not_a_yield_source", f"{strategy!r} is not a yield source")
        if source.accepted_asset() != self.asset.address:
            raise InvariantViolation(
                "asset_mismatch", f"{strategy!r} accepts {source.accepted_asset()!r}, vault uses {self.asset.address!r}"
            )
        if self.total_allocation_bps() + allocation_bps > MAX_BPS:
            raise InvariantViolation(
                "allocation_exceeds_max",
                f"total allocation would be {self.total_allocation_bps() + allocation_bps} bps",
            )
        self.asset.approve(self.address, strategy, MAX_UINT256)
        self.index[strategy] = len(self.entries)
        self.entries.append(StrategyEntry(address=strategy, allocation_bps=allocation_bps))
        self.sources[strategy] = source
        self.history.pop(strategy, None)
        self.chain.emit(StrategyAdded(
            ts=self.chain.now(), emitter=self.address, strategy=strategy, allocation_bps=allocation_bps,
        ))
        logger.info("strategy added: %s at %d bps", strategy, allocation_bps)

    @non_reentrant
    def remove_strategy(self, strategy: str, *, sender: str) -> int:
        """Drain `strategy` back to the vault and drop it from the registry.

        Fails if the source still reports capital after `withdraw_all`.
        Returns the amount recovered.
        """
        self.roles.require(STRATEGIST, sender)
        entry = self._entry(strategy)
        source = self.sources[strategy]
        before = self.asset.balance_of(self.address)
        source.withdraw_all(sender=self.address)
        recovered = safe_sub(self.asset.balance_of(self.address), before)
        left = source.estimated_total_assets()
        if left > 0:
            raise InvariantViolation(
                "strategy_not_drained", f"{strategy!r} still holds {left} after withdraw_all"
            )
        self._sweep_to_vault()
        self.asset.approve(self.address, strategy, 0)

        # swap-with-last-and-pop
        pos = self.index.pop(strategy)
        last = self.entries.pop()
        if last.address != strategy:
            self.entries[pos] = last
            self.index[last.address] = pos
        del self.sources[strategy]

        entry.is_active = False
        entry.allocation_bps = 0
        entry.total_deposited = 0
        self.history[strategy] = entry
        self.chain.emit(StrategyRemoved(
            ts=self.chain.now(), emitter=self.address, strategy=strategy, recovered=recovered,
        ))
        logger.info("strategy removed: %s, recovered %d", strategy, recovered)
        return recovered

    @non_reentrant
    def update_allocation(self, strategy: str, new_bps: int, *, sender: str) -> None:
        self.roles.require(STRATEGIST, sender)
        entry = self._entry(strategy)
        if new_bps < 0 or new_bps > MAX_BPS:
            raise InvalidInput("invalid_allocation", f"allocation {new_bps} outside 0..{MAX_BPS}")
        others = self.total_allocation_bps() - entry.allocation_bps
        if others + new_bps > MAX_BPS:
            raise InvariantViolation("allocation_exceeds_max", f"total allocation would be {others + new_bps} bps")
        old_bps, entry.allocation_bps = entry.allocation_bps, new_bps
        self.chain.emit(AllocationUpdated(
            ts=self.chain.now(), emitter=self.address, strategy=strategy, old_bps=old_bps, new_bps=new_bps,
        ))

    # ---- capital routing (vault only) ----

    def _fan_out(self, amount: int) -> int:
        """Send `amount * bps / 10000` to each deployable strategy; return total sent."""
        remaining = amount
        for entry in self.entries:
            if remaining == 0:
                break
            source = self.sources[entry.address]
            if entry.allocation_bps == 0 or not source.is_active():
                continue
            share = minimum(remaining, bps_of(amount, entry.allocation_bps))
            if share == 0:
                continue
            self.asset.transfer(self.address, entry.address, share)
            source.deposit(sender=self.address)
            entry.total_deposited = checked_add(entry.total_deposited, share)
            remaining -= share
        return amount - remaining

    @vault_routed
    def deposit_to_strategies(self, amount: int, *, sender: str) -> int:
        """Pull `amount` from the vault and spread it by weight.

        The undeployed remainder goes straight back to the vault.
        Returns the amount placed with strategies.
        """
        self._only_vault(sender)
        if amount <= 0:
            raise InvalidInput("zero_amount", "deposit_to_strategies amount must be positive")
        self.asset.transfer_from(self.address, self.vault, self.address, amount)
        deployed = self._fan_out(amount)
        self._sweep_to_vault()
        self.chain.emit(FundsDeployed(ts=self.chain.now(), emitter=self.address, amount=amount, deployed=deployed))
        return deployed

    @vault_routed
    def withdraw_from_strategies(self, amount: int, *, sender: str) -> int:
        """Pull up to `amount` back to the vault in registry order.

        Returns what actually reached the vault, which may be less than
        `amount` when sources are illiquid or fail.
        """
        self._only_vault(sender)
        if amount == 0:
            return 0
        start = self.asset.balance_of(self.address)
        remaining = amount
        # Index-based: a rolled-back step replaces the entry list.
        for pos in range(len(self.entries)):
            if remaining == 0:
                break
            entry = self.entries[pos]
            source = self.sources[entry.address]
            try:
                with self.chain.atomic():
                    request = minimum(remaining, source.estimated_total_assets())
                    if request == 0:
                        continue
                    before = self.asset.balance_of(self.address)
                    source.withdraw(request, sender=self.address)
                    got = safe_sub(self.asset.balance_of(self.address), before)
            except ExternalFailure as exc:
                self._report_failure(self.entries[pos].address, "withdraw", exc)
                continue
            entry.total_deposited = safe_sub(entry.total_deposited, got)
            remaining = safe_sub(remaining, got)
        withdrawn = safe_sub(self.asset.balance_of(self.address), start)
        self._sweep_to_vault()
        self.chain.emit(FundsRecalled(
            ts=self.chain.now(), emitter=self.address, requested=amount, withdrawn=withdrawn,
        ))
        if withdrawn < amount:
            logger.warning("short recall: %d of %d requested", withdrawn, amount)
        return withdrawn

    @vault_routed
    def emergency_withdraw_all(self, *, sender: str) -> int:
        """Exit every strategy independently; one failure never blocks the rest.

        Returns the amount swept to the vault.
        """
        self._only_vault(sender)
        failed: List[str] = []
        for pos in range(len(self.entries)):
            entry = self.entries[pos]
            source = self.sources[entry.address]
            before = self.asset.balance_of(self.address)
            try:
                with self.chain.atomic():
                    source.emergency_withdraw(sender=self.address)
            except ReentrancyError:
                raise
            except Exception as exc:
                failed.append(entry.address)
                self._report_failure(entry.address, "emergency_withdraw", exc)
                continue
            got = safe_sub(self.asset.balance_of(self.address), before)
            entry.total_deposited = safe_sub(entry.total_deposited, got)
        recovered = self._sweep_to_vault()
        self.chain.emit(EmergencyWithdrawn(
            ts=self.chain.now(), emitter=self.address, recovered=recovered, failed=failed,
        ))
        logger.warning("emergency withdraw: recovered %d, failed %s", recovered, failed)
        return recovered

    # ---- operator actions ----

    @non_reentrant
    def rebalance(self, *, sender: str) -> int:
        """Drain every strategy, then refill each by its current weight.

        Capital a source cannot release stays where it is; whatever cannot be
        redeployed returns to the vault. Returns the amount redeployed.
        """
        self.roles.require(STRATEGIST, sender)
        start = self.asset.balance_of(self.address)
        for entry in self.entries:
            source = self.sources[entry.address]
            before = self.asset.balance_of(self.address)
            source.withdraw_all(sender=self.address)
            got = safe_sub(self.asset.balance_of(self.address), before)
            entry.total_deposited = safe_sub(entry.total_deposited, got)
        recalled = safe_sub(self.asset.balance_of(self.address), start)
        redeployed = self._fan_out(recalled) if recalled else 0
        self._sweep_to_vault()
        self.chain.emit(Rebalanced(
            ts=self.chain.now(), emitter=self.address, recalled=recalled, redeployed=redeployed,
        ))
        logger.info("rebalanced: recalled %d, redeployed %d", recalled, redeployed)
        return redeployed

    def _harvest_one(self, entry: StrategyEntry) -> HarvestResult:
        source = self.sources[entry.address]
        before = self.asset.balance_of(self.address)
        source.harvest(sender=self.address)
        after = self.asset.balance_of(self.address)
        profit = safe_sub(after, before)
        # Losses are not charged against share value here; recorded as zero.
        loss = 0
        fee = 0
        vault = self._vault_component()
        if profit:
            fee = bps_of(profit, vault.performance_fee_bps)
            if fee:
                self.asset.transfer(self.address, vault.fee_recipient, fee)
        self._sweep_to_vault()
        now = self.chain.now()
        entry.last_harvest_timestamp = now
        entry.total_profit = checked_add(entry.total_profit, profit)
        self.chain.emit(StrategyHarvested(
            ts=now, emitter=self.address, strategy=entry.address, profit=profit, loss=loss, performance_fee=fee,
        ))
        return HarvestResult(strategy=entry.address, profit=profit, loss=loss, performance_fee=fee, timestamp=now)

    @non_reentrant
    def harvest(self, strategy: str, *, sender: str) -> HarvestResult:
        self.roles.require(STRATEGIST, sender)
        return self._harvest_one(self._entry(strategy))

    @non_reentrant
    def harvest_all(self, *, sender: str, isolate_failures: bool = False) -> List[HarvestResult]:
        self.roles.require(STRATEGIST, sender)
        results: List[HarvestResult] = []
        for pos in range(len(self.entries)):
            entry = self.entries[pos]
            if not isolate_failures:
                results.append(self._harvest_one(entry))
                continue
            try:
                with self.chain.atomic():
                    result = self._harvest_one(entry)
            except ReentrancyError:
                raise
            except Exception as exc:
                self._report_failure(entry.address, "harvest", exc)
                continue
            results.append(result)
        return results

    def find(self, strategy: str) -> Optional[StrategyEntry]:
        """Active or historical entry for `strategy`, if any."""
        if strategy in self.index:
            return self.get_strategy(strategy)
        return self.history.get(strategy)
