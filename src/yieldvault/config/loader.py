"""
Configuration loader for yieldvault.

What it does:
- Reads static settings from `config/config.yaml`.
- Lets role principals and the fee recipient be overridden from environment
  variables: `YIELDVAULT_ADMIN`, `YIELDVAULT_FEE_RECIPIENT`, and the
  comma-separated `YIELDVAULT_STRATEGISTS` / `YIELDVAULT_GUARDIANS`.
- Validates the result with Pydantic models, including the fee caps and
  the allocation sum of the configured strategies.

Where it is used:
- `yieldvault.main` builds a `VaultSettings` and hands it to
  `yieldvault.bootstrap.build_system`.
"""

import os
import yaml
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from ..ledger.vault import MAX_PERFORMANCE_FEE_BPS, MAX_WITHDRAWAL_FEE_BPS
from ..numeric.fixed_point import MAX_BPS
from ..orchestrator.manager import DEFAULT_MAX_STRATEGIES

ENV_PREFIX = "YIELDVAULT"


class AssetSettings(BaseModel):
    address: str = "asset"
    symbol: str = "USDC"
    decimals: int = Field(default=6, ge=0, le=36)


class RoleSettings(BaseModel):
    admin: str
    strategists: List[str] = []
    guardians: List[str] = []

    @field_validator("admin")
    @classmethod
    def not_empty(cls, v):
        if not v:
            raise ValueError("admin principal required")
        return v


class VaultConfig(BaseModel):
    address: str = "vault"
    name: str = "Yield Vault Share"
    symbol: str = "yvSHARE"
    deposit_limit: Optional[int] = Field(default=None, ge=0)
    withdrawal_fee_bps: int = Field(default=10, ge=0, le=MAX_WITHDRAWAL_FEE_BPS)
    performance_fee_bps: int = Field(default=1000, ge=0, le=MAX_PERFORMANCE_FEE_BPS)
    fee_recipient: str = "treasury"


class ManagerConfig(BaseModel):
    address: str = "strategy-manager"
    max_strategies: int = Field(default=DEFAULT_MAX_STRATEGIES, ge=1)


class StrategySettings(BaseModel):
    """One simulated lending placement."""
    address: str
    allocation_bps: int = Field(ge=0, le=MAX_BPS)
    apy_bps: int = Field(default=0, ge=0)
    liquidity_cap: Optional[int] = Field(default=None, ge=0)
    emergency_haircut_bps: int = Field(default=0, ge=0, le=MAX_BPS)


class VaultSettings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    asset: AssetSettings = Field(default_factory=AssetSettings)
    vault: VaultConfig = Field(default_factory=VaultConfig)
    manager: ManagerConfig = Field(default_factory=ManagerConfig)
    roles: RoleSettings
    strategies: List[StrategySettings] = []
    metrics_port: Optional[int] = None

    @model_validator(mode="after")
    def allocations_fit(self):
        total = sum(s.allocation_bps for s in self.strategies)
        if total > MAX_BPS:
            raise ValueError(f"strategy allocations sum to {total} bps (> {MAX_BPS})")
        if len(self.strategies) > self.manager.max_strategies:
            raise ValueError(f"{len(self.strategies)} strategies configured, max is {self.manager.max_strategies}")
        names = [s.address for s in self.strategies]
        if len(set(names)) != len(names):
            raise ValueError("duplicate strategy address")
        return self


def _split(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    cfg = dict(config or {})
    roles = dict(cfg.get("roles") or {})
    vault = dict(cfg.get("vault") or {})
    admin = os.getenv(f"{ENV_PREFIX}_ADMIN", "")
    if admin:
        roles["admin"] = admin
    strategists = os.getenv(f"{ENV_PREFIX}_STRATEGISTS", "")
    if strategists:
        roles["strategists"] = _split(strategists)
    guardians = os.getenv(f"{ENV_PREFIX}_GUARDIANS", "")
    if guardians:
        roles["guardians"] = _split(guardians)
    recipient = os.getenv(f"{ENV_PREFIX}_FEE_RECIPIENT", "")
    if recipient:
        vault["fee_recipient"] = recipient
    port = os.getenv(f"{ENV_PREFIX}_METRICS_PORT", "")
    if port:
        cfg["metrics_port"] = int(port)
    cfg["roles"] = roles
    cfg["vault"] = vault
    return cfg


def load_settings(path: str = "config/config.yaml") -> VaultSettings:
    """Load YAML config, apply env overrides, and return VaultSettings."""
    with open(path, "r") as f:
        config = yaml.safe_load(f) or {}
    return VaultSettings(**apply_env_overrides(config))
