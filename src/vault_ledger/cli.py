"""
Command-line interface for the Vault Ledger.

Provides commands for:
- create / load / show: Create or import a vault and inspect its state
- deposit, withdraw-open, withdraw-early: Immediate balance changes
- request-withdrawal, cancel, settle-epoch: Queued withdrawals during trading
- start-trading, end-trading, finalize, redeem: Lifecycle and closed-stage exits
- equity, request-redemption, settle-basket: Basket vault pricing and redemptions

Every command loads the vault from a store directory, runs one ledger
operation, and saves the updated vault only if the operation succeeded.
"""

import sys
from datetime import datetime
from typing import Optional

import click

from vault_ledger import __version__
from vault_ledger.basket import (
    compute_equity,
    create_redemption_request,
    settle_basket_epoch,
)
from vault_ledger.config import ConfigurationError, get_output_dir, load_protocol_limits, load_vault_config
from vault_ledger.data import (
    DataLoadError,
    FileVaultStore,
    StoreError,
    load_price_snapshot,
    save_settlement_report,
    save_transfer_instructions,
)
from vault_ledger.engine import (
    calculate_deposit,
    calculate_epoch_settlement,
    calculate_redemption,
    cancel_withdrawal,
    create_vault,
    end_trading,
    finalize_close,
    request_withdrawal,
    start_trading,
    withdraw_early,
    withdraw_open,
)
from vault_ledger.engine.guards import check_stage
from vault_ledger.logging import LedgerLogger, get_logger
from vault_ledger.logging.ledger_log import DEFAULT_LOG_FILENAME
from vault_ledger.models import Outcome, PriceMode, RedemptionKind, Vault, VaultStage, WithdrawalRequest


DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]

store_option = click.option(
    "--store-dir", "-s",
    type=click.Path(file_okay=False),
    default=None,
    help="Vault store directory. Defaults to $VAULT_LEDGER_OUTPUT_DIR or ./output.",
)


def _open_store(store_dir: Optional[str]) -> tuple[FileVaultStore, LedgerLogger]:
    root = get_output_dir(store_dir)
    root.mkdir(parents=True, exist_ok=True)
    return FileVaultStore(root), get_logger(root / DEFAULT_LOG_FILENAME)


def _load_vault(store: FileVaultStore, vault_id: str) -> Vault:
    try:
        return store.get_vault(vault_id)
    except StoreError as e:
        click.echo(f"Error loading vault: {e}", err=True)
        sys.exit(1)


def _load_requests(store: FileVaultStore, vault_id: str) -> list[WithdrawalRequest]:
    try:
        return store.get_requests(vault_id)
    except StoreError as e:
        click.echo(f"Error loading requests: {e}", err=True)
        sys.exit(1)


def _save_settlement(store: FileVaultStore, vault: Vault, requests: list[WithdrawalRequest]) -> None:
    try:
        store.save_settlement(vault, requests)
    except StoreError as e:
        click.echo(f"Error saving settlement: {e}", err=True)
        sys.exit(1)


def _exit_rejected(logger: LedgerLogger, vault_id: str, operation: str, outcome: Outcome) -> None:
    logger.log_rejected(vault_id, operation, outcome.error_kind, outcome.error)
    kind = outcome.error_kind.value if outcome.error_kind else "Error"
    click.echo(f"{operation} rejected [{kind}]: {outcome.error}", err=True)
    sys.exit(1)


def _echo_balances(vault: Vault) -> None:
    click.echo(f"  Cash: {vault.cash_usdc} USDC")
    click.echo(f"  Total shares: {vault.total_shares}")


@click.group()
@click.version_option(version=__version__, prog_name="vault-ledger")
def main():
    """
    Vault Ledger.

    Fixed-point accounting for pooled trading vaults: deposits, queued
    withdrawals, epoch settlement, performance fees and basket redemptions.
    """
    pass


@main.command()
@click.argument("vault_id")
@click.option("--name", "-n", required=True, help="Vault name (max 32 bytes)")
@click.option("--symbol", required=True, help="Vault symbol (max 8 bytes)")
@click.option("--deposit-fee-bps", type=int, default=0, show_default=True)
@click.option("--perf-fee-bps", type=int, default=0, show_default=True)
@click.option("--early-exit-fee-bps", type=int, default=500, show_default=True)
@click.option("--buffer-bps", type=int, default=1000, show_default=True,
              help="Liquidity buffer held back from withdrawals")
@click.option("--trading-start", type=click.DateTime(DATETIME_FORMATS), default=None)
@click.option("--trading-end", type=click.DateTime(DATETIME_FORMATS), default=None)
@click.option(
    "--limits", "-l",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Protocol limits YAML file",
)
@store_option
def create(
    vault_id: str,
    name: str,
    symbol: str,
    deposit_fee_bps: int,
    perf_fee_bps: int,
    early_exit_fee_bps: int,
    buffer_bps: int,
    trading_start: Optional[datetime],
    trading_end: Optional[datetime],
    limits: Optional[str],
    store_dir: Optional[str],
):
    """Create a new Open vault."""
    store, logger = _open_store(store_dir)

    if store.has_vault(vault_id):
        click.echo(f"Vault already exists: {vault_id}", err=True)
        sys.exit(1)

    try:
        protocol_limits = load_protocol_limits(limits)
    except ConfigurationError as e:
        click.echo(f"Error loading limits: {e}", err=True)
        sys.exit(1)

    outcome = create_vault(
        vault_id=vault_id,
        name=name,
        symbol=symbol,
        deposit_fee_bps=deposit_fee_bps,
        perf_fee_bps=perf_fee_bps,
        early_exit_fee_bps=early_exit_fee_bps,
        liquidity_buffer_bps=buffer_bps,
        trading_start=trading_start,
        trading_end=trading_end,
        limits=protocol_limits,
    )
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Create vault", outcome)

    store.save_vault(outcome.value)
    logger.log_vault_created(outcome.value)
    click.echo(f"Vault {vault_id} created ({symbol}), stage Open")


@main.command()
@click.option(
    "--config", "-c",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to vault definition YAML file",
)
@store_option
def load(config: str, store_dir: Optional[str]):
    """Import a vault from a YAML definition into the store."""
    store, logger = _open_store(store_dir)

    click.echo("Loading configuration...")
    try:
        vault = load_vault_config(config)
    except ConfigurationError as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)

    if store.has_vault(vault.vault_id):
        click.echo(f"Vault already exists: {vault.vault_id}", err=True)
        sys.exit(1)

    try:
        store.save_vault(vault)
    except StoreError as e:
        click.echo(f"Error saving vault: {e}", err=True)
        sys.exit(1)

    logger.log_config_loaded(vault, config)
    click.echo(f"Vault {vault.vault_id} loaded, stage {vault.stage.value}")
    _echo_balances(vault)


@main.command()
@click.argument("vault_id")
@store_option
def show(vault_id: str, store_dir: Optional[str]):
    """Show vault state and its request queue."""
    store, _ = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    click.echo(f"Vault {vault.vault_id}: {vault.name} ({vault.symbol})")
    click.echo(f"  Stage: {vault.stage.value}")
    _echo_balances(vault)
    click.echo(f"  High water mark: {vault.high_water_mark}")
    click.echo(f"  Initial AUM: {vault.initial_aum_usdc}")
    click.echo(
        f"  Fees (bps): deposit {vault.deposit_fee_bps}, perf {vault.perf_fee_bps}, "
        f"early exit {vault.early_exit_fee_bps}; buffer {vault.liquidity_buffer_bps}"
    )
    if vault.perf_fee_due_usdc != "0.000000" or vault.perf_fee_paid:
        paid = "paid" if vault.perf_fee_paid else "unpaid"
        click.echo(f"  Performance fee due: {vault.perf_fee_due_usdc} ({paid})")

    if vault.positions:
        click.echo()
        click.echo("Positions:")
        for position in vault.positions:
            click.echo(f"  {position.market_id:<20} {position.side.value:<4} {position.shares}")

    requests = _load_requests(store, vault_id)

    if requests:
        click.echo()
        click.echo("Requests:")
        for req in requests:
            line = (
                f"  {req.request_id:<18} {req.kind.value:<8} {req.status.value:<16} "
                f"{req.shares_filled}/{req.shares_requested}"
            )
            if req.invalid_reason:
                line += f"  ({req.invalid_reason})"
            click.echo(line)


@main.command()
@click.argument("vault_id")
@click.argument("amount")
@store_option
def deposit(vault_id: str, amount: str, store_dir: Optional[str]):
    """Deposit AMOUNT USDC into an Open vault and mint shares."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = calculate_deposit(vault, amount)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Deposit", outcome)

    quote = outcome.value
    store.save_vault(quote.updated_vault)
    logger.log_deposit(vault_id, amount, quote)

    click.echo(f"Deposited {amount} USDC into {vault_id}")
    click.echo(f"  Deposit fee: {quote.deposit_fee}")
    click.echo(f"  Shares minted: {quote.shares_to_mint}")
    _echo_balances(quote.updated_vault)


@main.command("withdraw-open")
@click.argument("vault_id")
@click.argument("shares")
@click.option("--holder-shares", required=True, help="Holder's current share balance")
@store_option
def withdraw_open_cmd(vault_id: str, shares: str, holder_shares: str, store_dir: Optional[str]):
    """Withdraw SHARES pro-rata from an Open vault (no fee)."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = withdraw_open(vault, shares, holder_shares)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Open withdrawal", outcome)

    quote = outcome.value
    store.save_vault(quote.updated_vault)
    logger.log_withdrawal(vault_id, shares, quote, early=False)

    click.echo(f"Withdrew {shares} shares from {vault_id}: payout {quote.payout} USDC")
    _echo_balances(quote.updated_vault)


@main.command("withdraw-early")
@click.argument("vault_id")
@click.argument("shares")
@click.option("--holder-shares", required=True, help="Holder's active share balance")
@click.option("--equity", default=None, help="Mark-to-market equity (defaults to vault cash)")
@store_option
def withdraw_early_cmd(
    vault_id: str,
    shares: str,
    holder_shares: str,
    equity: Optional[str],
    store_dir: Optional[str],
):
    """Withdraw SHARES instantly during trading, paying the early exit fee."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = withdraw_early(vault, shares, holder_shares, equity=equity)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Early withdrawal", outcome)

    quote = outcome.value
    store.save_vault(quote.updated_vault)
    logger.log_withdrawal(vault_id, shares, quote, early=True)

    click.echo(f"Early withdrawal of {shares} shares from {vault_id}")
    click.echo(f"  Gross value: {quote.gross_value}")
    click.echo(f"  Exit fee: {quote.exit_fee}")
    click.echo(f"  Payout: {quote.payout}")
    _echo_balances(quote.updated_vault)


@main.command("request-withdrawal")
@click.argument("vault_id")
@click.argument("shares")
@click.option("--holder-shares", required=True, help="Holder's active share balance")
@click.option("--holder", default="", help="Holder identifier")
@store_option
def request_withdrawal_cmd(
    vault_id: str,
    shares: str,
    holder_shares: str,
    holder: str,
    store_dir: Optional[str],
):
    """Queue a withdrawal of SHARES for the next epoch."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = request_withdrawal(vault, shares, holder_shares, holder=holder)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Withdrawal request", outcome)

    escrow = outcome.value
    requests = _load_requests(store, vault_id)
    requests.append(escrow.request)
    store.save_requests(vault_id, requests)
    logger.log_withdrawal_requested(vault_id, escrow.request)

    click.echo(f"Request {escrow.request.request_id} queued: {escrow.shares_to_escrow} shares escrowed")


@main.command()
@click.argument("vault_id")
@click.argument("request_id")
@store_option
def cancel(vault_id: str, request_id: str, store_dir: Optional[str]):
    """Cancel the unfilled remainder of REQUEST_ID."""
    store, logger = _open_store(store_dir)
    _load_vault(store, vault_id)

    requests = _load_requests(store, vault_id)
    index = next((i for i, r in enumerate(requests) if r.request_id == request_id), None)
    if index is None:
        click.echo(f"Request not found: {request_id}", err=True)
        sys.exit(1)

    outcome = cancel_withdrawal(requests[index])
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Cancel", outcome)

    requests[index] = outcome.value.request
    store.save_requests(vault_id, requests)
    logger.log_withdrawal_cancelled(vault_id, outcome.value)

    click.echo(f"Request {request_id} cancelled: {outcome.value.shares_to_return} shares returned")


@main.command("start-trading")
@click.argument("vault_id")
@store_option
def start_trading_cmd(vault_id: str, store_dir: Optional[str]):
    """Move an Open vault to Trading."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = start_trading(vault)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Start trading", outcome)

    store.save_vault(outcome.value)
    logger.log_stage_changed(
        outcome.value, vault.stage, {"initial_aum_usdc": outcome.value.initial_aum_usdc}
    )
    click.echo(f"Vault {vault_id} is Trading (initial AUM {outcome.value.initial_aum_usdc})")


@main.command("end-trading")
@click.argument("vault_id")
@store_option
def end_trading_cmd(vault_id: str, store_dir: Optional[str]):
    """Move a Trading vault to Settlement."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = end_trading(vault)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "End trading", outcome)

    store.save_vault(outcome.value)
    logger.log_stage_changed(outcome.value, vault.stage)
    click.echo(f"Vault {vault_id} is in Settlement")


@main.command()
@click.argument("vault_id")
@store_option
def finalize(vault_id: str, store_dir: Optional[str]):
    """Close a settled vault and assess the performance fee."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = finalize_close(vault)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Finalize", outcome)

    quote = outcome.value
    store.save_vault(quote.updated_vault)
    logger.log_stage_changed(
        quote.updated_vault, vault.stage,
        {"profit": quote.profit, "perf_fee_due": quote.perf_fee_due},
    )
    click.echo(f"Vault {vault_id} is Closed")
    click.echo(f"  Profit: {quote.profit}")
    click.echo(f"  Performance fee due: {quote.perf_fee_due}")


@main.command("settle-epoch")
@click.argument("vault_id")
@click.option("--equity", "-e", required=True, help="Mark-to-market vault equity")
@click.option(
    "--report", "-r",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the per-request settlement report to this CSV",
)
@store_option
def settle_epoch(vault_id: str, equity: str, report: Optional[str], store_dir: Optional[str]):
    """Settle queued withdrawal requests at EQUITY."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    requests = _load_requests(store, vault_id)

    outcome = calculate_epoch_settlement(vault, requests, equity)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Epoch settlement", outcome)

    settlement = outcome.value
    _save_settlement(store, settlement.updated_vault, settlement.processed_requests)
    logger.log_epoch_settled(vault_id, equity, settlement)

    click.echo(f"Epoch settled for {vault_id}")
    click.echo(f"  Available liquidity: {settlement.available_liquidity}")
    click.echo(f"  Shares burned: {settlement.total_shares_burned}")
    click.echo(f"  Net paid: {settlement.total_net_paid}")
    click.echo(f"  Exit fees retained: {settlement.total_exit_fees_retained}")
    _echo_balances(settlement.updated_vault)

    invalid = [r for r in settlement.processed_requests if r.invalid_reason]
    for req in invalid:
        click.echo(f"  Invalid request {req.request_id}: {req.invalid_reason}", err=True)

    if report:
        path = save_settlement_report(settlement.processed_requests, report)
        click.echo(f"  Report saved: {path}")


@main.command()
@click.argument("vault_id")
@click.argument("shares")
@store_option
def redeem(vault_id: str, shares: str, store_dir: Optional[str]):
    """Redeem SHARES pro-rata from a Closed vault."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    outcome = calculate_redemption(vault, shares)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Redemption", outcome)

    payout = outcome.value
    store.save_vault(payout.updated_vault)
    logger.log_redemption(vault_id, shares, payout)

    click.echo(f"Redeemed {shares} shares from {vault_id}: payout {payout.payout} USDC")
    if payout.fee_deducted != "0.000000":
        click.echo(f"  Performance fee deducted: {payout.fee_deducted}")
    _echo_balances(payout.updated_vault)


def _load_snapshot(prices: str):
    try:
        return load_price_snapshot(prices)
    except DataLoadError as e:
        click.echo(f"Error loading prices: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("vault_id")
@click.option("--prices", "-p", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Price snapshot CSV")
@click.option("--mode", "-m", type=click.Choice([m.value for m in PriceMode]), default="MID",
              show_default=True)
@store_option
def equity(vault_id: str, prices: str, mode: str, store_dir: Optional[str]):
    """Mark a basket vault's positions to a price snapshot."""
    store, _ = _open_store(store_dir)
    vault = _load_vault(store, vault_id)
    snapshot = _load_snapshot(prices)

    outcome = compute_equity(vault, snapshot, PriceMode(mode))
    if not outcome.success:
        click.echo(f"Equity rejected [{outcome.error_kind.value}]: {outcome.error}", err=True)
        sys.exit(1)

    click.echo(f"{vault_id} equity ({mode}): {outcome.value}")


@main.command("request-redemption")
@click.argument("vault_id")
@click.argument("shares")
@click.option("--kind", "-k", type=click.Choice([k.value for k in RedemptionKind]),
              default="CASH", show_default=True)
@click.option("--holder", default="", help="Holder identifier")
@store_option
def request_redemption(vault_id: str, shares: str, kind: str, holder: str, store_dir: Optional[str]):
    """Queue a basket redemption of SHARES (CASH or IN_KIND)."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)

    rejected = check_stage(vault, VaultStage.TRADING, "Redemption request")
    if rejected:
        _exit_rejected(logger, vault_id, "Redemption request", rejected)

    outcome = create_redemption_request(kind, shares, holder=holder)
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Redemption request", outcome)

    request = outcome.value
    requests = _load_requests(store, vault_id)
    requests.append(request)
    store.save_requests(vault_id, requests)
    logger.log_withdrawal_requested(vault_id, request)
    click.echo(f"Request {request.request_id} queued: {kind} {request.shares_requested} shares")


@main.command("settle-basket")
@click.argument("vault_id")
@click.option("--prices", "-p", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Price snapshot CSV")
@click.option("--cash-nav-mode", type=click.Choice([m.value for m in PriceMode]), default="BID",
              show_default=True, help="Price mode for cash redemption NAV")
@click.option("--in-kind-cash/--no-in-kind-cash", default=True, show_default=True,
              help="Include a pro-rata USDC slice in in-kind redemptions")
@click.option("--report", "-r", type=click.Path(dir_okay=False), default=None,
              help="Write the per-request settlement report to this CSV")
@click.option("--transfers", "-t", type=click.Path(dir_okay=False), default=None,
              help="Write in-kind transfer instructions to this CSV")
@store_option
def settle_basket(
    vault_id: str,
    prices: str,
    cash_nav_mode: str,
    in_kind_cash: bool,
    report: Optional[str],
    transfers: Optional[str],
    store_dir: Optional[str],
):
    """Settle queued CASH and IN_KIND redemptions of a basket vault."""
    store, logger = _open_store(store_dir)
    vault = _load_vault(store, vault_id)
    snapshot = _load_snapshot(prices)

    requests = _load_requests(store, vault_id)

    outcome = settle_basket_epoch(
        vault,
        requests,
        snapshot,
        cash_nav_mode=PriceMode(cash_nav_mode),
        in_kind_include_cash=in_kind_cash,
    )
    if not outcome.success:
        _exit_rejected(logger, vault_id, "Basket settlement", outcome)

    settlement = outcome.value
    _save_settlement(store, settlement.updated_vault, settlement.processed_requests)
    logger.log_basket_epoch_settled(vault_id, settlement)

    click.echo(f"Basket epoch settled for {vault_id}")
    click.echo(f"  NAV equity ({settlement.nav_mode_used.value}): {settlement.nav_equity_used}")
    click.echo(f"  Shares burned: {settlement.total_shares_burned}")
    click.echo(f"  Cash paid: {settlement.total_cash_paid}")
    click.echo(f"  In-kind requests filled: {len(settlement.transfer_instructions)}")
    _echo_balances(settlement.updated_vault)

    if report:
        path = save_settlement_report(settlement.processed_requests, report)
        click.echo(f"  Report saved: {path}")
    if transfers:
        path = save_transfer_instructions(settlement.transfer_instructions, transfers)
        click.echo(f"  Transfers saved: {path}")


if __name__ == "__main__":
    main()
