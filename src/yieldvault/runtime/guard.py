from __future__ import annotations

import functools
from typing import Any, Callable, TypeVar

from ..errors import ReentrancyError

F = TypeVar("F", bound=Callable[..., Any])


def atomic(method: F) -> F:
    """Run a component method inside `self.chain.atomic()`."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.atomic():
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


def _enter(self, method, args, kwargs, may_nest: bool):
    chain = self.chain
    holder = chain.lock_holder
    if holder is not None and not may_nest:
        raise ReentrancyError(
            "reentrant_call",
            f"{type(self).__name__}.{method.__name__} called while {holder!r} holds the lock",
        )
    chain.lock_holder = self
    try:
        with chain.atomic():
            return method(self, *args, **kwargs)
    finally:
        chain.lock_holder = holder


def non_reentrant(method: F) -> F:
    """Atomic, and refuses entry while any guarded method of any component on
    the same chain is in flight (one lock for the whole guarded surface)."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        return _enter(self, method, args, kwargs, may_nest=False)

    return wrapper  # type: ignore[return-value]


def vault_routed(method: F) -> F:
    """Like `non_reentrant`, but the component's vault may call it while the
    vault itself holds the lock. The lock passes to this component for the
    duration, so nothing further down can enter the vault or this method again.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        holder = self.chain.lock_holder
        sender = kwargs.get("sender")
        may_nest = holder is not None and holder.address == self.vault and sender == self.vault
        return _enter(self, method, args, kwargs, may_nest=may_nest)

    return wrapper  # type: ignore[return-value]
