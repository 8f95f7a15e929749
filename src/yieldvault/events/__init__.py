"""Event records emitted by the vault and the strategy manager."""

from .schema import AnyEvent, BaseEvent, EventEnvelope

__all__ = ["AnyEvent", "BaseEvent", "EventEnvelope"]
