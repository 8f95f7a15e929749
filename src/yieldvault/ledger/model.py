from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict


@dataclass
class VaultSnapshot:
    """Point-in-time dump of the share ledger and the strategy registry."""

    ts: int
    asset: str
    total_assets: int
    total_shares: int
    idle: int
    paused: bool
    withdrawal_fee_bps: int
    performance_fee_bps: int
    shares: Dict[str, int] = field(default_factory=dict)
    strategies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    strategy_assets: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def deployed(self) -> int:
        return sum(self.strategy_assets.values())
