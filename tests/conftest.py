import pytest

from src.yieldvault.bootstrap import build_system
from src.yieldvault.config.loader import VaultSettings
from src.yieldvault.runtime.chain import Chain

ADMIN = "admin"
STRATEGIST = "strategist"
GUARDIAN = "guardian"
TREASURY = "treasury"
T0 = 1_700_000_000


def make_settings(strategies=None, max_strategies=10, **vault):
    if strategies is None:
        strategies = [("alpha", 5000), ("beta", 5000)]
    vault_cfg = {"address": "vault", "fee_recipient": TREASURY}
    vault_cfg.update(vault)
    return VaultSettings(
        asset={"address": "usdc", "symbol": "USDC", "decimals": 6},
        vault=vault_cfg,
        manager={"address": "manager", "max_strategies": max_strategies},
        roles={"admin": ADMIN, "strategists": [STRATEGIST], "guardians": [GUARDIAN]},
        strategies=[{"address": addr, "allocation_bps": bps} for addr, bps in strategies],
    )


@pytest.fixture
def make_system():
    """Factory: make_system(strategies=[(addr, bps), ...], max_strategies=10, **vault_settings)."""

    def _make(strategies=None, max_strategies=10, **vault):
        chain = Chain()
        chain.warp(T0)
        return build_system(make_settings(strategies, max_strategies, **vault), chain=chain)

    return _make


@pytest.fixture
def system(make_system):
    return make_system()


def fund(system, account, amount):
    """Give `account` assets and approve the vault to pull them."""
    system.asset.mint(account, amount)
    system.asset.approve(account, system.vault.address, amount)


def conservation_holds(system) -> bool:
    vault, manager = system.vault, system.manager
    deployed = sum(s.estimated_total_assets() for s in system.strategies.values() if manager.is_registered(s.address))
    manager_held = system.asset.balance_of(manager.address)
    return vault.total_assets() == vault.idle_assets() + manager_held + deployed
