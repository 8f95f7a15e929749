"""yieldvault: pooled share ledger with weighted allocation across yield sources.

Public API:
- Vault: the accounting ledger (deposit/mint/withdraw/redeem, fees, pause).
- StrategyManager: strategy registry, fan-out, recall, rebalance, harvest, emergency exit.
- YieldSource / SimulatedLendingStrategy: the strategy interface and an in-memory placement.
- Chain / Asset: the transactional runtime and the underlying asset.
"""

from .ledger.vault import Vault
from .orchestrator.manager import StrategyManager
from .runtime.chain import Chain
from .runtime.token import Asset
from .strategies.base import YieldSource
from .strategies.simulated import SimulatedLendingStrategy

__all__ = ["Asset", "Chain", "SimulatedLendingStrategy", "StrategyManager", "Vault", "YieldSource"]
