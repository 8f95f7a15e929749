import random

import pytest

from src.yieldvault.errors import InsufficientLiquidity, ReentrancyError, VaultError
from src.yieldvault.strategies.simulated import SimulatedLendingStrategy

from .conftest import GUARDIAN, STRATEGIST, TREASURY, conservation_holds, fund


def test_full_exit_through_two_strategies(system):
    """Deposit, deploy 50/50, then redeem everything: the vault pulls from both."""
    vault = system.vault
    fund(system, "alice", 1000)
    assert vault.deposit(1000, "alice", sender="alice") == 1000
    vault.deposit_to_strategies(sender=STRATEGIST)
    assert system.manager.strategy_assets() == {"alpha": 500, "beta": 500}
    assert vault.idle_assets() == 0

    assets = vault.redeem(1000, "alice", "alice", sender="alice")
    assert assets == 1000
    assert system.asset.balance_of("alice") == 999
    assert system.asset.balance_of(TREASURY) == 1
    assert vault.total_supply() == 0
    assert vault.total_assets() == 0
    assert system.manager.strategy_assets() == {"alpha": 0, "beta": 0}


def test_partial_withdraw_pulls_only_the_shortfall(make_system):
    system = make_system(strategies=[("alpha", 3000)], withdrawal_fee_bps=100)
    vault = system.vault
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    assert vault.idle_assets() == 700

    burned = vault.withdraw(800, "alice", "alice", sender="alice")
    assert burned == 800
    assert system.asset.balance_of("alice") == 792
    assert system.asset.balance_of(TREASURY) == 8
    assert system.manager.strategy_assets() == {"alpha": 200}
    assert vault.idle_assets() == 0
    recalled = system.chain.events("funds_recalled")[-1]
    assert recalled.requested == 100


def test_remove_strategy_returns_capital_to_idle(system):
    vault = system.vault
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)

    recovered = system.manager.remove_strategy("alpha", sender=STRATEGIST)
    assert recovered == 500
    assert vault.idle_assets() == 500
    assert vault.total_assets() == 1000
    assert [e.address for e in system.manager.strategies()] == ["beta"]
    assert system.manager.total_allocation_bps() == 5000


def test_emergency_exit_survives_one_broken_strategy(system, caplog):
    vault = system.vault
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    system.strategies["alpha"].fail("emergency_withdraw")

    with caplog.at_level("ERROR"):
        recovered = vault.emergency_withdraw_all(sender=GUARDIAN)
    assert recovered == 500
    assert vault.idle_assets() == 500
    assert system.manager.strategy_assets() == {"alpha": 500, "beta": 0}
    assert vault.total_assets() == 1000
    assert not system.strategies["beta"].is_active()
    assert system.strategies["alpha"].is_active()

    ev = system.chain.events("emergency_withdrawn")[-1]
    assert ev.failed == ["alpha"]
    assert ev.recovered == 500
    failed = system.chain.events("strategy_call_failed")[-1]
    assert (failed.strategy, failed.operation) == ("alpha", "emergency_withdraw")
    assert any('"strategy":"alpha"' in r.getMessage() for r in caplog.records if r.levelname == "ERROR")
    # emergency exit does not pause the vault
    assert not vault.paused


def test_emergency_exit_applies_haircut(make_system):
    system = make_system(strategies=[("alpha", 10_000)])
    system.strategies["alpha"].emergency_haircut_bps = 100
    fund(system, "alice", 1000)
    system.vault.deposit(1000, "alice", sender="alice")
    system.vault.deposit_to_strategies(sender=STRATEGIST)
    assert system.vault.emergency_withdraw_all(sender=GUARDIAN) == 990
    assert system.vault.total_assets() == 990


def test_insufficient_liquidity_aborts_withdrawal(system):
    vault = system.vault
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    system.strategies["alpha"].fail("withdraw")
    before = vault.snapshot()
    n_events = len(system.chain.log)

    with pytest.raises(InsufficientLiquidity):
        vault.withdraw(600, "alice", "alice", sender="alice")
    assert vault.snapshot() == before
    assert system.asset.balance_of("alice") == 0
    assert len(system.chain.log) == n_events

    # within what the healthy strategy can free up, the withdrawal goes through
    vault.withdraw(400, "alice", "alice", sender="alice")
    assert system.asset.balance_of("alice") == 400
    assert system.manager.strategy_assets() == {"alpha": 500, "beta": 100}


class ReentrantStrategy(SimulatedLendingStrategy):
    """Runs `target` from inside the manager-driven hook named `hook`."""

    def __init__(self, *args, target=None, hook="withdraw", **kwargs):
        super().__init__(*args, **kwargs)
        self.target = target
        self.hook = hook

    def _call_back(self, name):
        if name == self.hook:
            self.target(self)

    def withdraw(self, amount, *, sender):
        self._call_back("withdraw")
        return super().withdraw(amount, sender=sender)

    def withdraw_all(self, *, sender):
        self._call_back("withdraw_all")
        return super().withdraw_all(sender=sender)

    def harvest(self, *, sender):
        self._call_back("harvest")
        return super().harvest(sender=sender)

    def emergency_withdraw(self, *, sender):
        self._call_back("emergency_withdraw")
        return super().emergency_withdraw(sender=sender)


@pytest.mark.parametrize("attack", ["deposit", "redeem", "manager", "routing"])
def test_reentrant_strategy_is_refused(make_system, attack):
    system = make_system(strategies=[])
    vault, manager = system.vault, system.manager

    def target(strategy):
        if attack == "deposit":
            vault.deposit(1, strategy.address, sender=strategy.address)
        elif attack == "redeem":
            vault.redeem(1, strategy.address, "alice", sender=strategy.address)
        elif attack == "manager":
            manager.rebalance(sender=STRATEGIST)
        else:
            manager.withdraw_from_strategies(1, sender=vault.address)

    ReentrantStrategy(system.chain, "evil", system.asset, manager=manager.address, target=target)
    manager.add_strategy("evil", 10_000, sender=STRATEGIST)
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    before = vault.snapshot()

    with pytest.raises(ReentrancyError):
        vault.redeem(500, "alice", "alice", sender="alice")
    assert vault.snapshot() == before
    assert system.chain.lock_holder is None
    # the lock is released: plain calls work again
    fund(system, "bob", 10)
    assert vault.deposit(10, "bob", sender="bob") == 10


@pytest.mark.parametrize(
    "hook,reenter,run",
    [
        ("harvest", "deposit", lambda v, m: m.harvest_all(sender=STRATEGIST)),
        ("harvest", "deposit", lambda v, m: m.harvest_all(sender=STRATEGIST, isolate_failures=True)),
        ("withdraw_all", "deposit", lambda v, m: m.rebalance(sender=STRATEGIST)),
        ("emergency_withdraw", "deposit", lambda v, m: v.emergency_withdraw_all(sender=GUARDIAN)),
        ("emergency_withdraw", "rebalance", lambda v, m: v.emergency_withdraw_all(sender=GUARDIAN)),
    ],
)
def test_strategy_hook_cannot_enter_during_manager_operations(make_system, hook, reenter, run):
    system = make_system(strategies=[("alpha", 5000)])
    vault, manager = system.vault, system.manager
    fund(system, "mallory", 100)

    def target(strategy):
        if reenter == "deposit":
            vault.deposit(100, "mallory", sender="mallory")
        else:
            manager.rebalance(sender=STRATEGIST)

    ReentrantStrategy(system.chain, "evil", system.asset, manager=manager.address, target=target, hook=hook)
    manager.add_strategy("evil", 5000, sender=STRATEGIST)
    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    system.strategies["alpha"].add_rewards(40)
    before = vault.snapshot()
    n_events = len(system.chain.log)

    # never isolated, even where ordinary strategy failures are
    with pytest.raises(ReentrancyError):
        run(vault, manager)
    assert vault.balance_of("mallory") == 0
    assert vault.snapshot() == before
    assert system.strategies["alpha"].pending_rewards == 40
    assert len(system.chain.log) == n_events
    assert system.chain.lock_holder is None


def test_accounting_identity_over_random_operations(make_system):
    system = make_system(strategies=[("alpha", 4000), ("beta", 3500), ("gamma", 2000)])
    vault, manager, asset = system.vault, system.manager, system.asset
    rng = random.Random(7)
    users = ["alice", "bob", "carol"]
    for u in users:
        fund(system, u, 10_000_000)

    def step():
        op = rng.choice(["deposit", "mint", "withdraw", "redeem", "deploy", "accrue", "harvest", "rebalance", "loss"])
        user = rng.choice(users)
        if op == "deposit":
            vault.deposit(rng.randint(1, 50_000), user, sender=user)
        elif op == "mint":
            vault.mint(rng.randint(1, 50_000), user, sender=user)
        elif op == "withdraw":
            vault.withdraw(rng.randint(1, max(1, vault.max_withdraw(user))), user, user, sender=user)
        elif op == "redeem":
            vault.redeem(rng.randint(1, max(1, vault.max_redeem(user))), user, user, sender=user)
        elif op == "deploy":
            vault.deposit_to_strategies(sender=STRATEGIST)
        elif op == "accrue":
            system.strategies[rng.choice(list(system.strategies))].accrue(rng.randint(1, 50))
        elif op == "harvest":
            system.strategies[rng.choice(list(system.strategies))].add_rewards(rng.randint(0, 500))
            manager.harvest_all(sender=STRATEGIST)
        elif op == "rebalance":
            manager.rebalance(sender=STRATEGIST)
        else:
            system.strategies[rng.choice(list(system.strategies))].realize_loss(rng.randint(0, 100))

    for _ in range(300):
        try:
            step()
        except VaultError:
            pass
        assert conservation_holds(system)
        assert asset.balance_of(manager.address) == 0
        assert sum(vault.shares.holders().values()) == vault.total_supply()
        assert manager.total_allocation_bps() <= 10_000