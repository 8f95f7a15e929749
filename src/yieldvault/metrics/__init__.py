"""Prometheus metrics for the vault and its strategies."""

from .vault import record_event, register_all, start_metrics_server

__all__ = ["record_event", "register_all", "start_metrics_server"]
