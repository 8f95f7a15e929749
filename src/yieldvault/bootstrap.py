"""
Wire a complete system from settings.

Order mirrors a production rollout: asset, roles, vault, strategy manager,
link manager into the vault, yield sources, then register each source at its
configured weight.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .access.roles import STRATEGIST, AccessControl
from .config.loader import VaultSettings
from .ledger.vault import Vault
from .numeric.fixed_point import MAX_UINT256
from .orchestrator.manager import StrategyManager
from .runtime.chain import Chain
from .runtime.token import Asset
from .strategies.simulated import SimulatedLendingStrategy

logger = logging.getLogger(__name__)


@dataclass
class System:
    chain: Chain
    asset: Asset
    roles: AccessControl
    vault: Vault
    manager: StrategyManager
    strategies: Dict[str, SimulatedLendingStrategy] = field(default_factory=dict)


def build_system(settings: VaultSettings, chain: Optional[Chain] = None) -> System:
    chain = chain or Chain()
    admin = settings.roles.admin
    asset = Asset(chain, settings.asset.address, settings.asset.symbol, settings.asset.decimals)
    roles = AccessControl(
        chain,
        f"{settings.vault.address}/roles",
        admin=admin,
        strategists=settings.roles.strategists,
        guardians=settings.roles.guardians,
    )
    limit = settings.vault.deposit_limit
    vault = Vault(
        chain,
        settings.vault.address,
        asset,
        roles,
        fee_recipient=settings.vault.fee_recipient,
        name=settings.vault.name,
        symbol=settings.vault.symbol,
        deposit_limit=MAX_UINT256 if limit is None else limit,
        withdrawal_fee_bps=settings.vault.withdrawal_fee_bps,
        performance_fee_bps=settings.vault.performance_fee_bps,
    )
    manager = StrategyManager(
        chain,
        settings.manager.address,
        vault=vault.address,
        asset=asset,
        roles=roles,
        max_strategies=settings.manager.max_strategies,
    )
    vault.set_strategy_manager(manager.address, sender=admin)
    logger.info("vault %s linked to strategy manager %s", vault.address, manager.address)

    system = System(chain=chain, asset=asset, roles=roles, vault=vault, manager=manager)
    if not settings.strategies:
        return system

    # Registering strategies needs the strategist role; the admin grants it to
    # itself for the duration of the rollout if it does not hold it already.
    had_role = roles.has_role(STRATEGIST, admin)
    if not had_role:
        roles.grant(STRATEGIST, admin, sender=admin)
    for cfg in settings.strategies:
        strat = SimulatedLendingStrategy(
            chain,
            cfg.address,
            asset,
            manager=manager.address,
            apy_bps=cfg.apy_bps,
            liquidity_cap=cfg.liquidity_cap,
            emergency_haircut_bps=cfg.emergency_haircut_bps,
        )
        manager.add_strategy(strat.address, cfg.allocation_bps, sender=admin)
        system.strategies[strat.address] = strat
        logger.info("strategy %s registered at %d bps", strat.address, cfg.allocation_bps)
    if not had_role:
        roles.revoke(STRATEGIST, admin, sender=admin)
    return system
