from __future__ import annotations

import logging
import os
from typing import Iterable, Optional

from prometheus_client import Counter, Gauge, REGISTRY, start_http_server

logger = logging.getLogger(__name__)

_events_total: Optional[Counter] = None
_assets_deposited_total: Optional[Counter] = None
_assets_withdrawn_total: Optional[Counter] = None
_fees_collected_total: Optional[Counter] = None
_harvest_profit_total: Optional[Counter] = None
_strategy_failures_total: Optional[Counter] = None
_strategy_allocation_bps: Optional[Gauge] = None
_vault_paused: Optional[Gauge] = None


class _NoOp:
    def labels(self, *args, **kwargs):
        return self
    def inc(self, *args, **kwargs):
        return None
    def set(self, *args, **kwargs):
        return None
    def remove(self, *args, **kwargs):
        return None


def _find_existing(name: str):
    try:
        coll = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if coll is not None:
            return coll
        for coll in list(getattr(REGISTRY, "_collector_to_names", {}).keys()):  # type: ignore[attr-defined]
            if getattr(coll, "_name", None) == name:
                return coll
    except Exception:
        pass
    return None


def _safe_counter(name: str, doc: str, labelnames):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Counter(name, doc, labelnames)
    except ValueError:
        # Already registered (module reloaded or imported under two names)
        return _find_existing(name) or _NoOp()


def _safe_gauge_labels(name: str, doc: str, labelnames):
    if os.getenv("DISABLE_PROMETHEUS", "0") == "1":
        return _NoOp()
    try:
        return Gauge(name, doc, labelnames)
    except ValueError:
        coll = _find_existing(name)
        return coll if isinstance(coll, Gauge) else _NoOp()


def get_events_total():
    global _events_total
    if _events_total is None:
        _events_total = _safe_counter("vault_events_total", "Committed vault events", ["type"])
    return _events_total


def get_assets_deposited_total():
    global _assets_deposited_total
    if _assets_deposited_total is None:
        _assets_deposited_total = _safe_counter("vault_assets_deposited_total", "Assets deposited", ["vault"])
    return _assets_deposited_total


def get_assets_withdrawn_total():
    """Counter: gross assets withdrawn (before withdrawal fee)."""
    global _assets_withdrawn_total
    if _assets_withdrawn_total is None:
        _assets_withdrawn_total = _safe_counter("vault_assets_withdrawn_total", "Assets withdrawn", ["vault"])
    return _assets_withdrawn_total


def get_fees_collected_total():
    global _fees_collected_total
    if _fees_collected_total is None:
        _fees_collected_total = _safe_counter("vault_fees_collected_total", "Fees paid to the fee recipient", ["kind"])
    return _fees_collected_total


def get_harvest_profit_total():
    global _harvest_profit_total
    if _harvest_profit_total is None:
        _harvest_profit_total = _safe_counter("strategy_harvest_profit_total", "Realized harvest profit", ["strategy"])
    return _harvest_profit_total


def get_strategy_failures_total():
    """Counter: isolated strategy call failures, labeled by strategy and operation."""
    global _strategy_failures_total
    if _strategy_failures_total is None:
        _strategy_failures_total = _safe_counter(
            "strategy_call_failures_total", "Isolated strategy call failures", ["strategy", "operation"]
        )
    return _strategy_failures_total


def get_strategy_allocation_bps():
    global _strategy_allocation_bps
    if _strategy_allocation_bps is None:
        _strategy_allocation_bps = _safe_gauge_labels(
            "strategy_allocation_bps", "Target allocation per active strategy", ["strategy"]
        )
    return _strategy_allocation_bps


def get_vault_paused():
    global _vault_paused
    if _vault_paused is None:
        _vault_paused = _safe_gauge_labels("vault_paused", "1 while deposits are paused", ["vault"])
    return _vault_paused


def record_event(event) -> None:
    """Update metrics for one committed event. Metrics never raise."""
    try:
        get_events_total().labels(event.event_type).inc()
        kind = event.event_type
        if kind == "deposit":
            get_assets_deposited_total().labels(event.emitter).inc(event.assets)
        elif kind == "withdraw":
            get_assets_withdrawn_total().labels(event.emitter).inc(event.assets)
            if event.fee > 0:
                get_fees_collected_total().labels("withdrawal").inc(event.fee)
        elif kind == "strategy_harvested":
            if event.profit > 0:
                get_harvest_profit_total().labels(event.strategy).inc(event.profit)
            if event.performance_fee > 0:
                get_fees_collected_total().labels("performance").inc(event.performance_fee)
        elif kind == "strategy_call_failed":
            get_strategy_failures_total().labels(event.strategy, event.operation).inc()
        elif kind == "strategy_added":
            get_strategy_allocation_bps().labels(event.strategy).set(event.allocation_bps)
        elif kind == "allocation_updated":
            get_strategy_allocation_bps().labels(event.strategy).set(event.new_bps)
        elif kind == "strategy_removed":
            get_strategy_allocation_bps().labels(event.strategy).set(0)
        elif kind in ("paused", "unpaused"):
            get_vault_paused().labels(event.emitter).set(1 if kind == "paused" else 0)
    except Exception:
        # Metrics are optional in constrained environments
        pass


def register_all(vaults: Iterable[str] = (), strategies: Iterable[str] = ()) -> None:
    """Create every metric up front so a scrape sees zeros before the first event."""
    for getter in (
        get_events_total,
        get_assets_deposited_total,
        get_assets_withdrawn_total,
        get_fees_collected_total,
        get_harvest_profit_total,
        get_strategy_failures_total,
    ):
        getter()
    for kind in ("withdrawal", "performance"):
        get_fees_collected_total().labels(kind)
    for vault in vaults:
        get_assets_deposited_total().labels(vault)
        get_assets_withdrawn_total().labels(vault)
        get_vault_paused().labels(vault)
    for strategy in strategies:
        get_harvest_profit_total().labels(strategy)
        get_strategy_allocation_bps().labels(strategy)


def start_metrics_server(port: int, vaults: Iterable[str] = (), strategies: Iterable[str] = ()) -> Optional[int]:
    """Register the vault metrics and serve them on `port`.

    Returns the port, or None when it cannot be bound (the demo keeps running).
    """
    register_all(vaults, strategies)
    try:
        start_http_server(port)
    except OSError as e:
        logger.warning("metrics server not started on :%d: %s", port, e)
        return None
    logger.info("metrics server listening on :%d", port)
    return port
