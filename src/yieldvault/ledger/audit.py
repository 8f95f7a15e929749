from __future__ import annotations

import os
from typing import Dict

import pandas as pd

from .model import VaultSnapshot


def snapshot_frames(snap: VaultSnapshot) -> Dict[str, pd.DataFrame]:
    """Tabular view of a snapshot: one frame of share holders, one of strategies."""
    shares_df = pd.DataFrame(
        [{"account": acct, "shares": str(bal)} for acct, bal in sorted(snap.shares.items())],
        columns=["account", "shares"],
    )
    rows = []
    for addr, entry in snap.strategies.items():
        row = dict(entry)
        row["estimated_assets"] = snap.strategy_assets.get(addr, 0)
        rows.append(row)
    strategies_df = pd.DataFrame(
        rows,
        columns=[
            "address",
            "allocation_bps",
            "total_deposited",
            "total_profit",
            "last_harvest_timestamp",
            "is_active",
            "estimated_assets",
        ],
    )
    # uint256 amounts do not fit int64; keep them exact as text.
    for col in ("total_deposited", "total_profit", "estimated_assets"):
        strategies_df[col] = strategies_df[col].astype(str)
    return {"shares": shares_df, "strategies": strategies_df}


def write_parquet(snap: VaultSnapshot, base_dir: str = "data") -> None:
    os.makedirs(base_dir, exist_ok=True)
    frames = snapshot_frames(snap)
    frames["shares"].to_parquet(os.path.join(base_dir, "shares.parquet"))
    frames["strategies"].to_parquet(os.path.join(base_dir, "strategies.parquet"))
