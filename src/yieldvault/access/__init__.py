"""Access control helpers."""

from .roles import ADMIN, GUARDIAN, ROLES, STRATEGIST, AccessControl

__all__ = ["ADMIN", "GUARDIAN", "ROLES", "STRATEGIST", "AccessControl"]
