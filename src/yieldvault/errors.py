"""Error taxonomy shared by the ledger, the orchestrator and yield sources.

Every failure aborts the enclosing transaction (see `runtime.chain.Chain.atomic`)
unless a call site explicitly isolates it. `reason` is a short machine-readable
tag naming the precondition that failed.
"""
from __future__ import annotations


class VaultError(Exception):
    """Base class for all yieldvault failures."""

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class InvalidInput(VaultError, ValueError):
    """Zero amount, empty address, or an amount beyond a declared limit."""


class AuthorizationFailure(VaultError, PermissionError):
    """Caller lacks the required role or allowance."""


class InvariantViolation(VaultError):
    """Allocation sum, asset mismatch, arithmetic overflow and similar."""


class ArithmeticOverflow(InvariantViolation):
    """A result fell outside the uint256 range, or a division by zero."""


class ExternalFailure(VaultError):
    """A yield source raised or delivered less than required."""


class InsufficientLiquidity(ExternalFailure):
    """Strategies could not free enough capital for a withdrawal."""


class ReentrancyError(VaultError):
    """A guarded entry point was entered while another guarded call was in flight."""
