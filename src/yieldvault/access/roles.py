"""Role-based permission checks.

Three named capabilities, each authorizing its own set of operations:
- ADMIN: configuration (fees, limits, manager wiring) and role grants.
- STRATEGIST: strategy registry, deployment of idle funds, harvest, rebalance.
- GUARDIAN: pause/unpause and emergency withdrawal.

One `AccessControl` component is shared by the vault and the strategy
manager; grants roll back with the transaction that made them.
"""
from __future__ import annotations

from typing import Dict, Iterable, Set

from ..errors import AuthorizationFailure, InvalidInput
from ..runtime.chain import Chain, Component
from ..runtime.guard import atomic

ADMIN = "admin"
STRATEGIST = "strategist"
GUARDIAN = "guardian"

ROLES = (ADMIN, STRATEGIST, GUARDIAN)


class AccessControl(Component):
    state_fields = ("members",)

    def __init__(
        self,
        chain: Chain,
        address: str,
        admin: str,
        strategists: Iterable[str] = (),
        guardians: Iterable[str] = (),
    ):
        if not admin:
            raise InvalidInput("zero_address", "admin principal required")
        super().__init__(chain, address)
        self.members: Dict[str, Set[str]] = {role: set() for role in ROLES}
        self.members[ADMIN].add(admin)
        self.members[STRATEGIST].update(strategists)
        self.members[GUARDIAN].update(guardians)

    def has_role(self, role: str, account: str) -> bool:
        return account in self.members.get(role, set())

    def require(self, role: str, account: str) -> None:
        if not self.has_role(role, account):
            raise AuthorizationFailure(f"missing_role:{role}", f"{account!r} lacks role {role!r}")

    @atomic
    def grant(self, role: str, account: str, *, sender: str) -> None:
        self.require(ADMIN, sender)
        if role not in self.members:
            raise InvalidInput("unknown_role", f"unknown role {role!r}")
        if not account:
            raise InvalidInput("zero_address", "cannot grant a role to an empty address")
        self.members[role].add(account)

    @atomic
    def revoke(self, role: str, account: str, *, sender: str) -> None:
        self.require(ADMIN, sender)
        self.members.get(role, set()).discard(account)

    def snapshot(self) -> Dict[str, Set[str]]:
        return {role: set(accts) for role, accts in self.members.items()}
