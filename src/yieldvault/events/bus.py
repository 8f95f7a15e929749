from __future__ import annotations

import json
import logging
from typing import Callable, List

from .schema import EventEnvelope
from ..metrics.vault import record_event


log = logging.getLogger("yieldvault.events")

Subscriber = Callable[[EventEnvelope], None]

_subscribers: List[Subscriber] = []


def subscribe(fn: Subscriber) -> None:
    _subscribers.append(fn)


def unsubscribe(fn: Subscriber) -> None:
    try:
        _subscribers.remove(fn)
    except ValueError:
        pass


def to_json(env: EventEnvelope) -> str:
    return json.dumps({
        "schema_version": env.schema_version,
        "correlation_id": env.correlation_id,
        "sequence": env.sequence,
        "event": env.event.model_dump(),
    }, separators=(",", ":"))


def publish(env: EventEnvelope) -> None:
    """Record metrics, log a single-line JSON record and notify subscribers.

    Called only for committed transactions. A failing subscriber is logged
    and skipped; the ledger state is already final at this point.
    """
    record_event(env.event)
    log.info(to_json(env))
    for fn in list(_subscribers):
        try:
            fn(env)
        except Exception:
            log.exception("event subscriber failed: %s", getattr(fn, "__name__", fn))
