"""
Main entrypoint for yieldvault.

What it does:
- Loads settings from `config/config.yaml` (path overridable with
  `YIELDVAULT_CONFIG`) plus `YIELDVAULT_*` environment overrides.
- Builds the vault, strategy manager and simulated strategies.
- Runs one demo cycle: deposit, deploy idle funds, accrue interest and
  rewards, harvest, rebalance, redeem everything.
- Logs the snapshot after each step and exits (no long-running loop).

Optional:
- `PROMETHEUS_PORT` starts the metrics server (default: `metrics_port` from config).
- `AUDIT_DIR` writes the final snapshot as parquet files.
"""
import json
import logging
import os

from .bootstrap import build_system
from .config.loader import load_settings
from .ledger.audit import write_parquet
from .metrics.vault import start_metrics_server


def _log_snapshot(label: str, system) -> None:
    snap = system.vault.snapshot()
    logging.info(
        f"{label}: total_assets={snap.total_assets} idle={snap.idle} "
        f"shares={snap.total_shares} deployed={json.dumps(snap.strategy_assets)}"
    )


def run_demo(system, depositor: str = "alice", amount: int = 1_000_000_000) -> int:
    """Drive one full cycle through the system; returns assets paid to `depositor`."""
    vault, asset = system.vault, system.asset
    roles = system.roles.snapshot()
    strategist = sorted(roles["strategist"])[0] if roles["strategist"] else None

    asset.mint(depositor, amount)
    asset.approve(depositor, vault.address, amount)
    shares = vault.deposit(amount, depositor, sender=depositor)
    logging.info(f"{depositor} deposited {amount} for {shares} shares")
    _log_snapshot("after deposit", system)

    if strategist is None:
        logging.warning("no strategist configured; skipping deployment, harvest and rebalance")
    else:
        vault.deposit_to_strategies(sender=strategist)
        _log_snapshot("after deploy", system)

        for strat in system.strategies.values():
            strat.accrue(strat.apy_bps // 12)  # roughly one month of interest
            strat.add_rewards(strat.supplied // 1000)
        results = system.manager.harvest_all(sender=strategist, isolate_failures=True)
        for r in results:
            logging.info(f"harvest {r.strategy}: profit={r.profit} fee={r.performance_fee}")
        _log_snapshot("after harvest", system)

        system.manager.rebalance(sender=strategist)
        _log_snapshot("after rebalance", system)

    before = asset.balance_of(depositor)
    vault.redeem(vault.balance_of(depositor), depositor, depositor, sender=depositor)
    paid = asset.balance_of(depositor) - before
    logging.info(f"{depositor} redeemed all shares for {paid}")
    _log_snapshot("after redeem", system)
    return paid


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    settings = load_settings(os.getenv("YIELDVAULT_CONFIG", "config/config.yaml"))
    logging.info(f"Vault: {settings.vault.address} ({settings.vault.symbol}) over {settings.asset.symbol}")

    system = build_system(settings)
    prom_port = os.getenv("PROMETHEUS_PORT") or settings.metrics_port
    if prom_port:
        start_metrics_server(int(prom_port), vaults=[system.vault.address], strategies=list(system.strategies))

    logging.info(f"strategies: {[s.address for s in system.manager.strategies()]}")
    run_demo(system)

    audit_dir = os.getenv("AUDIT_DIR")
    if audit_dir:
        write_parquet(system.vault.snapshot(), audit_dir)
        logging.info(f"audit snapshot written to {audit_dir}")
    logging.info("demo complete")


if __name__ == "__main__":
    main()
