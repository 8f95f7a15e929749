from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass
class StrategyEntry:
    """Registry record for one yield source.

    `total_deposited` and `total_profit` are best-effort bookkeeping; the
    source's own `estimated_total_assets()` is authoritative for accounting.
    """

    address: str
    allocation_bps: int
    total_deposited: int = 0
    total_profit: int = 0
    last_harvest_timestamp: int = 0
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class HarvestResult:
    strategy: str
    profit: int
    loss: int
    performance_fee: int
    timestamp: int
