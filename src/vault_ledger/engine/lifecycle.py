"""
Vault lifecycle transitions.

Open -> Trading -> Settlement -> Closed. Starting trading snapshots the
initial AUM; finalizing the close assesses the performance fee on profit
above that snapshot.
"""

from dataclasses import replace
from datetime import datetime
from typing import Optional

from vault_ledger.amounts import (
    LedgerError,
    apply_bps,
    format_amount,
    parse_balance,
    parse_basis_points,
)
from vault_ledger.engine.guards import check_stage, failure, has_open_positions
from vault_ledger.models import (
    CloseQuote,
    ErrorKind,
    Outcome,
    ProtocolLimits,
    Vault,
    VaultStage,
)


MAX_NAME_BYTES = 32
MAX_SYMBOL_BYTES = 8
DEFAULT_EARLY_EXIT_FEE_BPS = 500
DEFAULT_BUFFER_BPS = 1000


def create_vault(
    vault_id: str,
    name: str,
    symbol: str,
    deposit_fee_bps: int | str = 0,
    perf_fee_bps: int | str = 0,
    early_exit_fee_bps: int | str = DEFAULT_EARLY_EXIT_FEE_BPS,
    liquidity_buffer_bps: int | str = DEFAULT_BUFFER_BPS,
    trading_start: Optional[datetime] = None,
    trading_end: Optional[datetime] = None,
    limits: Optional[ProtocolLimits] = None,
) -> Outcome[Vault]:
    """
    Create an empty Open vault after validating its parameters.

    Args:
        vault_id: Unique vault identifier
        name: Display name (1-32 bytes UTF-8)
        symbol: Ticker (1-8 bytes UTF-8)
        deposit_fee_bps: Deposit fee, capped by limits.max_deposit_fee_bps
        perf_fee_bps: Performance fee, capped by limits.max_perf_fee_bps
        early_exit_fee_bps: Early exit fee, capped by limits.max_early_exit_fee_bps
        liquidity_buffer_bps: Buffer, at least limits.min_buffer_bps
        trading_start: Earliest time trading may start
        trading_end: Earliest time trading may end
        limits: Protocol caps (defaults apply when omitted)

    Returns:
        Outcome wrapping the new Vault
    """
    limits = limits or ProtocolLimits()

    if not vault_id:
        return Outcome.fail(ErrorKind.INVALID_PARAMETER, "vault_id cannot be empty")
    if not name:
        return Outcome.fail(ErrorKind.INVALID_PARAMETER, "Vault name cannot be empty")
    if len(name.encode("utf-8")) > MAX_NAME_BYTES:
        return Outcome.fail(
            ErrorKind.INVALID_PARAMETER, f"Vault name too long (max {MAX_NAME_BYTES} bytes)"
        )
    if not symbol:
        return Outcome.fail(ErrorKind.INVALID_PARAMETER, "Vault symbol cannot be empty")
    if len(symbol.encode("utf-8")) > MAX_SYMBOL_BYTES:
        return Outcome.fail(
            ErrorKind.INVALID_PARAMETER, f"Vault symbol too long (max {MAX_SYMBOL_BYTES} bytes)"
        )

    try:
        deposit_fee = parse_basis_points(deposit_fee_bps, "deposit_fee_bps")
        perf_fee = parse_basis_points(perf_fee_bps, "perf_fee_bps")
        exit_fee = parse_basis_points(early_exit_fee_bps, "early_exit_fee_bps")
        buffer = parse_basis_points(liquidity_buffer_bps, "liquidity_buffer_bps")
    except LedgerError as e:
        return failure(e)

    caps = [
        (deposit_fee > limits.max_deposit_fee_bps,
         f"Deposit fee exceeds maximum ({limits.max_deposit_fee_bps} bps)"),
        (perf_fee > limits.max_perf_fee_bps,
         f"Performance fee exceeds maximum ({limits.max_perf_fee_bps} bps)"),
        (exit_fee > limits.max_early_exit_fee_bps,
         f"Early exit fee exceeds maximum ({limits.max_early_exit_fee_bps} bps)"),
        (buffer < limits.min_buffer_bps,
         f"Liquidity buffer below minimum ({limits.min_buffer_bps} bps)"),
    ]
    for violated, message in caps:
        if violated:
            return Outcome.fail(ErrorKind.INVALID_PARAMETER, message)

    if trading_start and trading_end and trading_end <= trading_start:
        return Outcome.fail(
            ErrorKind.TIMING_VIOLATION, "Trading end time must be after start time"
        )

    return Outcome.ok(
        Vault(
            vault_id=vault_id,
            name=name,
            symbol=symbol,
            stage=VaultStage.OPEN,
            deposit_fee_bps=deposit_fee,
            perf_fee_bps=perf_fee,
            early_exit_fee_bps=exit_fee,
            liquidity_buffer_bps=buffer,
            trading_start=trading_start,
            trading_end=trading_end,
        )
    )


def start_trading(vault: Vault, now: Optional[datetime] = None) -> Outcome[Vault]:
    """
    Move an Open vault to Trading and snapshot its initial AUM.

    Args:
        vault: Vault in Open stage
        now: Current time, checked against trading_start

    Returns:
        Outcome wrapping the updated Vault
    """
    rejected = check_stage(vault, VaultStage.OPEN, "Starting trading")
    if rejected:
        return rejected

    now = now or datetime.now()
    if vault.trading_start and now < vault.trading_start:
        return Outcome.fail(ErrorKind.TIMING_VIOLATION, "Trading period has not started yet")

    try:
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
    except LedgerError as e:
        return failure(e)

    return Outcome.ok(
        replace(vault, stage=VaultStage.TRADING, initial_aum_usdc=format_amount(cash))
    )


def end_trading(vault: Vault, now: Optional[datetime] = None) -> Outcome[Vault]:
    """Move a Trading vault to Settlement once the trading period has ended."""
    rejected = check_stage(vault, VaultStage.TRADING, "Ending trading")
    if rejected:
        return rejected

    now = now or datetime.now()
    if vault.trading_end and now < vault.trading_end:
        return Outcome.fail(ErrorKind.TIMING_VIOLATION, "Trading period has not ended yet")

    return Outcome.ok(replace(vault, stage=VaultStage.SETTLEMENT))


def finalize_close(vault: Vault) -> Outcome[CloseQuote]:
    """
    Close a settled vault and assess its performance fee.

    profit = max(0, cash - initial_aum); fee = profit * perf_fee_bps / 10000.
    The fee is recorded as due and unpaid; the first closed-stage redemption
    deducts it.

    Args:
        vault: Vault in Settlement stage holding only cash

    Returns:
        Outcome wrapping a CloseQuote with the Closed vault
    """
    rejected = check_stage(vault, VaultStage.SETTLEMENT, "Finalizing close")
    if rejected:
        return rejected

    try:
        if has_open_positions(vault):
            return Outcome.fail(
                ErrorKind.OPEN_POSITIONS,
                "Vault must hold only USDC to finalize (close all positions first)",
            )
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        initial_aum = parse_balance(vault.initial_aum_usdc, "initial_aum_usdc")
        perf_fee_bps = parse_basis_points(vault.perf_fee_bps, "perf_fee_bps")
    except LedgerError as e:
        return failure(e)

    profit = max(cash - initial_aum, 0)
    perf_fee = apply_bps(profit, perf_fee_bps)

    updated = replace(
        vault,
        stage=VaultStage.CLOSED,
        perf_fee_due_usdc=format_amount(perf_fee),
        perf_fee_paid=False,
    )

    return Outcome.ok(
        CloseQuote(
            profit=format_amount(profit),
            perf_fee_due=format_amount(perf_fee),
            updated_vault=updated,
        )
    )
