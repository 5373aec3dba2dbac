"""
Epoch runner for all Trading vaults in a store.

Designed to be run once per epoch (via cron or Task Scheduler):
1. Loads every Trading vault with active withdrawal or redemption requests
2. Settles cash-only vaults at their cash equity (or --equity for a single vault)
3. Settles basket vaults against a price snapshot (--prices)
4. Saves updated vaults and queues, and writes per-epoch reports

Usage:
    python scripts/run_epoch.py --store-dir output --prices prices.csv

For automated scheduling (daily at 00:00 UTC):
    0 0 * * * cd /path/to/vault-ledger && python scripts/run_epoch.py
"""

import sys
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vault_ledger.amounts import LedgerError
from vault_ledger.basket import settle_basket_epoch
from vault_ledger.basket.pricing import PriceSnapshot
from vault_ledger.config import get_output_dir
from vault_ledger.data import (
    DataLoadError,
    FileVaultStore,
    StoreError,
    load_price_snapshot,
    save_settlement_report,
    save_transfer_instructions,
)
from vault_ledger.engine import calculate_epoch_settlement
from vault_ledger.engine.guards import has_open_positions
from vault_ledger.logging import get_logger
from vault_ledger.logging.ledger_log import DEFAULT_LOG_FILENAME
from vault_ledger.models import RedemptionKind, VaultStage


# Configure logging
log_dir = Path(__file__).parent.parent / "logs"
log_dir.mkdir(exist_ok=True)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(log_dir / "epoch_runs.log"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)


def settle_vault(
    store: FileVaultStore,
    vault_id: str,
    snapshot: Optional[PriceSnapshot],
    report_dir: Path,
    equity: Optional[str] = None,
) -> bool:
    """
    Settle one vault's queue for this epoch.

    Returns:
        True if the vault was settled or had nothing to do, False on failure
    """
    vault = store.get_vault(vault_id)
    if vault.stage != VaultStage.TRADING:
        logger.info(f"Skipping {vault_id}: stage {vault.stage.value}")
        return True

    requests = store.get_requests(vault_id)
    if not any(r.is_active for r in requests):
        logger.info(f"Skipping {vault_id}: no active requests")
        return True

    ledger_log = get_logger()
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    try:
        has_positions = has_open_positions(vault)
    except LedgerError as e:
        logger.error(f"{vault_id}: unreadable positions: {e}")
        return False
    # In-kind requests only settle through the basket path, even when positions are flat
    is_basket = has_positions or any(
        r.is_active and r.kind == RedemptionKind.IN_KIND for r in requests
    )

    if is_basket:
        if snapshot is None and has_positions:
            logger.warning(f"Skipping basket vault {vault_id}: no price snapshot given")
            return False

        # Flat positions need no prices
        outcome = settle_basket_epoch(vault, requests, snapshot or {})
        if not outcome.success:
            ledger_log.log_rejected(vault_id, "Basket settlement", outcome.error_kind, outcome.error)
            logger.error(f"{vault_id}: basket settlement rejected: {outcome.error}")
            return False

        settlement = outcome.value
        store.save_settlement(settlement.updated_vault, settlement.processed_requests)
        ledger_log.log_basket_epoch_settled(vault_id, settlement)
        save_settlement_report(
            settlement.processed_requests, report_dir / f"{vault_id}_{stamp}_settlement.csv"
        )
        if settlement.transfer_instructions:
            save_transfer_instructions(
                settlement.transfer_instructions, report_dir / f"{vault_id}_{stamp}_transfers.csv"
            )

        logger.info(f"{vault_id}: burned {settlement.total_shares_burned} shares")
        logger.info(f"  Cash paid: {settlement.total_cash_paid}")
        logger.info(f"  In-kind fills: {len(settlement.transfer_instructions)}")
        return True

    # Cash-only vault: equity is its cash unless marked externally
    epoch_equity = equity or vault.cash_usdc
    outcome = calculate_epoch_settlement(vault, requests, epoch_equity)
    if not outcome.success:
        ledger_log.log_rejected(vault_id, "Epoch settlement", outcome.error_kind, outcome.error)
        logger.error(f"{vault_id}: epoch settlement rejected: {outcome.error}")
        return False

    settlement = outcome.value
    store.save_settlement(settlement.updated_vault, settlement.processed_requests)
    ledger_log.log_epoch_settled(vault_id, epoch_equity, settlement)
    save_settlement_report(
        settlement.processed_requests, report_dir / f"{vault_id}_{stamp}_settlement.csv"
    )

    logger.info(f"{vault_id}: burned {settlement.total_shares_burned} shares")
    logger.info(f"  Net paid: {settlement.total_net_paid}")
    logger.info(f"  Exit fees retained: {settlement.total_exit_fees_retained}")
    return True


def main():
    """Epoch runner entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Settle withdrawal and redemption queues for all Trading vaults"
    )
    parser.add_argument(
        "--store-dir",
        type=str,
        default=None,
        help="Vault store directory (default: $VAULT_LEDGER_OUTPUT_DIR or ./output)",
    )
    parser.add_argument(
        "--prices",
        type=str,
        default=None,
        help="Price snapshot CSV for basket vaults",
    )
    parser.add_argument(
        "--vault",
        type=str,
        default=None,
        help="Settle only this vault",
    )
    parser.add_argument(
        "--equity",
        type=str,
        default=None,
        help="Mark-to-market equity for --vault (cash-only vaults)",
    )

    args = parser.parse_args()

    if args.equity and not args.vault:
        parser.error("--equity requires --vault")

    root = get_output_dir(args.store_dir)
    store = FileVaultStore(root)
    get_logger(root / DEFAULT_LOG_FILENAME)
    report_dir = root / "reports"

    logger.info("=" * 60)
    logger.info("Vault Ledger - Epoch Runner")
    logger.info(f"Run Date: {datetime.now().isoformat()}")
    logger.info(f"Store: {root}")
    logger.info("=" * 60)

    snapshot = None
    if args.prices:
        try:
            snapshot = load_price_snapshot(args.prices)
        except DataLoadError as e:
            logger.error(f"Cannot load price snapshot: {e}")
            return 1

    vault_ids = [args.vault] if args.vault else store.list_vaults()

    failed = []
    for vault_id in vault_ids:
        try:
            ok = settle_vault(store, vault_id, snapshot, report_dir, equity=args.equity)
        except StoreError as e:
            logger.error(f"{vault_id}: {e}")
            ok = False
        if not ok:
            failed.append(vault_id)

    logger.info("=" * 60)
    logger.info("Epoch Run Complete")
    logger.info(f"  Vaults: {len(vault_ids)}")
    logger.info(f"  Failed: {', '.join(failed) if failed else 'none'}")
    logger.info("=" * 60)

    return 0 if not failed else 1


if __name__ == "__main__":
    sys.exit(main())
