import json
import logging

import pytest
from prometheus_client import REGISTRY

from src.yieldvault.errors import InvalidInput
from src.yieldvault.events import bus
from src.yieldvault.events.schema import Deposit, EventEnvelope
from src.yieldvault.metrics import vault as vault_metrics

from .conftest import GUARDIAN, STRATEGIST, fund


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_committed_events_are_logged_as_json(system, caplog):
    fund(system, "alice", 1000)
    with caplog.at_level(logging.INFO, logger="yieldvault.events"):
        system.vault.deposit(1000, "alice", sender="alice")
    lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "yieldvault.events"]
    assert len(lines) == 1
    rec = lines[0]
    assert rec["schema_version"] == "v1"
    assert rec["event"]["event_type"] == "deposit"
    assert rec["event"]["assets"] == 1000


def test_rolled_back_call_publishes_nothing(system, caplog):
    with caplog.at_level(logging.INFO, logger="yieldvault.events"):
        with pytest.raises(InvalidInput):
            system.vault.deposit(10, "alice", sender="alice")
    assert not [r for r in caplog.records if r.name == "yieldvault.events"]


def test_subscribers_receive_envelopes(system):
    seen = []
    bus.subscribe(seen.append)
    try:
        fund(system, "alice", 500)
        system.vault.deposit(500, "alice", sender="alice")
        system.vault.deposit_to_strategies(sender=STRATEGIST)
    finally:
        bus.unsubscribe(seen.append)
    types = [env.event.event_type for env in seen]
    assert types == ["deposit", "funds_deployed"]
    assert seen[0].correlation_id != seen[1].correlation_id


def test_failing_subscriber_does_not_break_publish(caplog):
    def broken(env):
        raise RuntimeError("subscriber down")

    bus.subscribe(broken)
    try:
        env = EventEnvelope(
            correlation_id="tx-x", sequence=0,
            event=Deposit(ts=1, emitter="v", sender="a", owner="a", assets=1, shares=1),
        )
        with caplog.at_level(logging.ERROR, logger="yieldvault.events"):
            bus.publish(env)
    finally:
        bus.unsubscribe(broken)
    assert any("subscriber failed" in r.getMessage() for r in caplog.records)


def test_metrics_track_flows_and_fees(make_system):
    system = make_system()
    vault = system.vault
    dep0 = _sample("vault_assets_deposited_total", {"vault": vault.address})
    wd0 = _sample("vault_assets_withdrawn_total", {"vault": vault.address})
    perf0 = _sample("vault_fees_collected_total", {"kind": "performance"})
    ev0 = _sample("vault_events_total", {"type": "deposit"})

    fund(system, "alice", 1000)
    vault.deposit(1000, "alice", sender="alice")
    vault.deposit_to_strategies(sender=STRATEGIST)
    system.strategies["alpha"].add_rewards(200)
    system.manager.harvest("alpha", sender=STRATEGIST)
    vault.withdraw(300, "alice", "alice", sender="alice")

    assert _sample("vault_assets_deposited_total", {"vault": vault.address}) - dep0 == 1000
    assert _sample("vault_assets_withdrawn_total", {"vault": vault.address}) - wd0 == 300
    assert _sample("vault_fees_collected_total", {"kind": "performance"}) - perf0 == 20
    assert _sample("vault_events_total", {"type": "deposit"}) - ev0 == 1
    assert _sample("strategy_allocation_bps", {"strategy": "alpha"}) == 5000


def test_pause_gauge_and_failure_counter(system):
    fund(system, "alice", 100)
    system.vault.deposit(100, "alice", sender="alice")
    system.vault.deposit_to_strategies(sender=STRATEGIST)
    system.vault.pause(sender=GUARDIAN)
    assert _sample("vault_paused", {"vault": system.vault.address}) == 1
    system.vault.unpause(sender=GUARDIAN)
    assert _sample("vault_paused", {"vault": system.vault.address}) == 0

    labels = {"strategy": "beta", "operation": "emergency_withdraw"}
    before = _sample("strategy_call_failures_total", labels)
    system.strategies["beta"].fail("emergency_withdraw")
    system.vault.emergency_withdraw_all(sender=GUARDIAN)
    assert _sample("strategy_call_failures_total", labels) - before == 1


def test_metrics_server_registers_vault_series(monkeypatch):
    started = []
    monkeypatch.setattr(vault_metrics, "start_http_server", started.append)
    assert vault_metrics.start_metrics_server(9311, vaults=["fresh-vault"], strategies=["fresh-strat"]) == 9311
    assert started == [9311]
    # series exist at zero before any event touches them
    assert REGISTRY.get_sample_value("vault_assets_deposited_total", {"vault": "fresh-vault"}) == 0.0
    assert REGISTRY.get_sample_value("vault_paused", {"vault": "fresh-vault"}) == 0.0
    assert REGISTRY.get_sample_value("strategy_allocation_bps", {"strategy": "fresh-strat"}) == 0.0


def test_metrics_server_tolerates_bind_failure(monkeypatch, caplog):
    def busy(port):
        raise OSError("address in use")

    monkeypatch.setattr(vault_metrics, "start_http_server", busy)
    with caplog.at_level(logging.WARNING):
        assert vault_metrics.start_metrics_server(9312) is None
    assert any("address in use" in r.getMessage() for r in caplog.records)
