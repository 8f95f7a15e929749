"""Ledger package.

Public API:
- Vault: share/asset accounting, deposit/mint/withdraw/redeem, fees, pause, emergency exit.
- VaultSnapshot: point-in-time dump of shares and the strategy registry.
"""

from .model import VaultSnapshot
from .vault import Vault  # re-export

__all__ = ["Vault", "VaultSnapshot"]
