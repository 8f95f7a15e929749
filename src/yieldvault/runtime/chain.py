"""
Transactional execution model.

What it does:
- Keeps a registry of stateful components (tokens, vault, manager, yield sources).
- `Chain.atomic()` checkpoints every component's declared `state_fields` and
  restores them if the block raises, so a failed call has no partial effect.
  Blocks nest; an inner block that fails and is caught by its caller rolls
  back only its own effects.
- Buffers emitted events and publishes them only once the outermost block
  commits. Events from rolled-back blocks are dropped.
- Provides the block clock used for harvest timestamps (`warp` in tests).
"""
from __future__ import annotations

import copy
import itertools
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..events.schema import BaseEvent, EventEnvelope


class Component:
    """A stateful participant whose `state_fields` are rolled back on failure."""

    state_fields: Tuple[str, ...] = ()

    def __init__(self, chain: "Chain", address: str):
        if not address:
            raise ValueError("component address required")
        self.chain = chain
        self.address = address
        chain.register(self)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address!r})"


Checkpoint = Tuple[List[Tuple[Component, Dict[str, Any]]], int]


class Chain:
    def __init__(self, publisher: Optional[Callable[[EventEnvelope], None]] = None):
        if publisher is None:
            from ..events.bus import publish as publisher
        self._publisher = publisher
        self._components: List[Component] = []
        self._by_address: Dict[str, Component] = {}
        self._pending: List[BaseEvent] = []
        self._depth = 0
        self._tx_ids = itertools.count(1)
        self._now: Optional[int] = None
        # Component running a guarded call; not checkpointed.
        self.lock_holder: Optional[Component] = None
        self.log: List[EventEnvelope] = []

    # ---- registry ----

    def register(self, component: Component) -> None:
        if component.address in self._by_address:
            raise ValueError(f"address already registered: {component.address}")
        self._components.append(component)
        self._by_address[component.address] = component

    def resolve(self, address: str) -> Component:
        try:
            return self._by_address[address]
        except KeyError:
            raise KeyError(f"unknown address: {address}") from None

    # ---- clock ----

    def now(self) -> int:
        return self._now if self._now is not None else int(time.time())

    def warp(self, ts: int) -> None:
        self._now = int(ts)

    # ---- transactions ----

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def emit(self, event: BaseEvent) -> None:
        if not self.in_transaction:
            raise RuntimeError("events can only be emitted inside a transaction")
        self._pending.append(event)

    def _checkpoint(self) -> Checkpoint:
        # Component references inside state stay shared, not cloned.
        memo: Dict[int, Any] = {id(c): c for c in self._components}
        memo[id(self)] = self
        saved = [
            (c, {name: copy.deepcopy(getattr(c, name), memo) for name in c.state_fields})
            for c in self._components
        ]
        return saved, len(self._pending)

    def _restore(self, checkpoint: Checkpoint) -> None:
        saved, pending_len = checkpoint
        for component, state in saved:
            for name, value in state.items():
                setattr(component, name, value)
        del self._pending[pending_len:]

    @contextmanager
    def atomic(self) -> Iterator[None]:
        checkpoint = self._checkpoint()
        self._depth += 1
        try:
            yield
        except BaseException:
            self._restore(checkpoint)
            raise
        finally:
            self._depth -= 1
        if self._depth == 0:
            self._commit()

    def _commit(self) -> None:
        events, self._pending = self._pending, []
        if not events:
            return
        correlation_id = f"tx-{next(self._tx_ids)}"
        for seq, event in enumerate(events):
            env = EventEnvelope(correlation_id=correlation_id, sequence=seq, event=event)
            self.log.append(env)
            self._publisher(env)

    def events(self, event_type: Optional[str] = None) -> List[BaseEvent]:
        """Committed events, optionally filtered by `event_type`."""
        return [env.event for env in self.log if event_type is None or env.event.event_type == event_type]
