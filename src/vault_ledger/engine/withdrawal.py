"""
Withdrawal requests, cancellation and immediate withdrawals.

During trading a holder exits by escrowing shares into a withdrawal request
that is filled later by epoch settlement. Cancelling returns only the
unfilled remainder. Two immediate paths exist outside the queue: a fee-free
pro-rata withdrawal while the vault is still Open, and an early withdrawal
during Trading that is paid straight from cash when the liquidity buffer
can absorb it.
"""

from dataclasses import replace
from typing import Optional

from vault_ledger.amounts import (
    LedgerError,
    apply_bps,
    format_amount,
    parse_amount,
    parse_balance,
    parse_basis_points,
    require_non_negative,
    validate_positive_amount,
)
from vault_ledger.engine.guards import check_stage, failure
from vault_ledger.models import (
    CancelQuote,
    ErrorKind,
    Outcome,
    RequestStatus,
    Vault,
    VaultStage,
    WithdrawalEscrow,
    WithdrawalQuote,
    WithdrawalRequest,
)


def request_withdrawal(
    vault: Vault,
    shares: str,
    holder_shares: str,
    holder: str = "",
) -> Outcome[WithdrawalEscrow]:
    """
    Record a holder's intent to exit during trading.

    Only validates and escrows: no shares are burned and nothing is paid
    until an epoch settlement fills the request.

    Args:
        vault: Current vault state (must be Trading)
        shares: Shares to withdraw
        holder_shares: Holder's active (unescrowed) share balance
        holder: Holder identifier stored on the request

    Returns:
        Outcome wrapping the escrow amount and the new Pending request
    """
    rejected = check_stage(vault, VaultStage.TRADING, "Withdrawal requests")
    if rejected:
        return rejected

    try:
        shares_micros = validate_positive_amount(shares, "shares_to_withdraw")
        holder_micros = parse_balance(holder_shares, "holder_shares")
    except LedgerError as e:
        return failure(e)

    if shares_micros > holder_micros:
        return Outcome.fail(ErrorKind.INSUFFICIENT_SHARES, "Insufficient holder shares")

    escrowed = format_amount(shares_micros)
    return Outcome.ok(
        WithdrawalEscrow(
            shares_to_escrow=escrowed,
            request=WithdrawalRequest.create(shares_requested=escrowed, holder=holder),
        )
    )


def cancel_withdrawal(request: WithdrawalRequest) -> Outcome[CancelQuote]:
    """
    Cancel the unfilled remainder of a request.

    Filled shares stay burned and paid; only requested - filled returns to
    the holder's active balance.

    Args:
        request: Request to cancel

    Returns:
        Outcome wrapping the shares to return and the Cancelled request
    """
    if request.status in (RequestStatus.CANCELLED, RequestStatus.INVALID):
        return Outcome.fail(
            ErrorKind.NOTHING_TO_CANCEL,
            f"Request is {request.status.value}; nothing left to cancel",
        )

    try:
        requested = require_non_negative(
            parse_amount(request.shares_requested, "shares_requested"), "shares_requested"
        )
        filled = require_non_negative(
            parse_amount(request.shares_filled, "shares_filled"), "shares_filled"
        )
    except LedgerError as e:
        return failure(e)

    if filled > requested:
        return Outcome.fail(
            ErrorKind.CORRUPT_REQUEST,
            "Corrupt request: filled > requested",
        )

    unfilled = requested - filled
    if unfilled <= 0:
        return Outcome.fail(
            ErrorKind.NOTHING_TO_CANCEL,
            "Nothing left to cancel (fully filled)",
        )

    return Outcome.ok(
        CancelQuote(
            shares_to_return=format_amount(unfilled),
            request=replace(request, status=RequestStatus.CANCELLED),
        )
    )


def withdraw_open(vault: Vault, shares: str, holder_shares: str) -> Outcome[WithdrawalQuote]:
    """
    Withdraw from an Open vault: burn shares for their pro-rata cash, no fee.

    Args:
        vault: Current vault state (must be Open)
        shares: Shares to burn
        holder_shares: Holder's share balance

    Returns:
        Outcome wrapping a WithdrawalQuote
    """
    rejected = check_stage(vault, VaultStage.OPEN, "Open-stage withdrawals")
    if rejected:
        return rejected

    try:
        shares_micros = validate_positive_amount(shares, "shares")
        holder_micros = parse_balance(holder_shares, "holder_shares")
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        total_shares = parse_balance(vault.total_shares, "total_shares")
    except LedgerError as e:
        return failure(e)

    shortfall = _check_share_balances(shares_micros, holder_micros, total_shares)
    if shortfall:
        return shortfall

    payout = shares_micros * cash // total_shares
    return Outcome.ok(_quote(vault, payout, 0, cash - payout, total_shares - shares_micros))


def withdraw_early(
    vault: Vault,
    shares: str,
    holder_shares: str,
    equity: Optional[str] = None,
) -> Outcome[WithdrawalQuote]:
    """
    Withdraw instantly during trading, paid from the liquidity buffer.

    value = shares * equity / total_shares (equity defaults to vault cash),
    payout = value - early exit fee. The withdrawal succeeds only if cash
    still covers the buffer on the post-withdrawal balance; otherwise the
    holder must queue a withdrawal request.

    Args:
        vault: Current vault state (must be Trading)
        shares: Shares to burn
        holder_shares: Holder's active share balance
        equity: Mark-to-market vault equity, if known

    Returns:
        Outcome wrapping a WithdrawalQuote, or InsufficientBuffer
    """
    rejected = check_stage(vault, VaultStage.TRADING, "Early withdrawals")
    if rejected:
        return rejected

    try:
        shares_micros = validate_positive_amount(shares, "shares")
        holder_micros = parse_balance(holder_shares, "holder_shares")
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        total_shares = parse_balance(vault.total_shares, "total_shares")
        valuation_base = cash if equity is None else parse_balance(equity, "equity")
        exit_fee_bps = parse_basis_points(vault.early_exit_fee_bps, "early_exit_fee_bps")
        buffer_bps = parse_basis_points(vault.liquidity_buffer_bps, "liquidity_buffer_bps")
    except LedgerError as e:
        return failure(e)

    shortfall = _check_share_balances(shares_micros, holder_micros, total_shares)
    if shortfall:
        return shortfall

    gross = shares_micros * valuation_base // total_shares
    fee = apply_bps(gross, exit_fee_bps)
    payout = gross - fee

    post_withdrawal_cash = max(cash - payout, 0)
    min_buffer = apply_bps(post_withdrawal_cash, buffer_bps)
    if cash < payout + min_buffer:
        return Outcome.fail(
            ErrorKind.INSUFFICIENT_BUFFER,
            "Insufficient liquidity buffer for instant withdrawal; "
            "queue a withdrawal request instead",
        )

    return Outcome.ok(_quote(vault, gross, fee, cash - payout, total_shares - shares_micros))


def _check_share_balances(
    shares: int,
    holder_shares: int,
    total_shares: int,
) -> Optional[Outcome]:
    """Shared balance checks for immediate withdrawals."""
    if total_shares <= 0:
        return Outcome.fail(ErrorKind.ZERO_SHARES, "Vault has no shares outstanding")
    if shares > holder_shares:
        return Outcome.fail(ErrorKind.INSUFFICIENT_SHARES, "Insufficient holder shares")
    if shares > total_shares:
        return Outcome.fail(ErrorKind.INSUFFICIENT_SHARES, "Insufficient total shares in vault")
    return None


def _quote(
    vault: Vault,
    gross: int,
    fee: int,
    new_cash: int,
    new_total_shares: int,
) -> WithdrawalQuote:
    updated = replace(
        vault,
        cash_usdc=format_amount(new_cash),
        total_shares=format_amount(new_total_shares),
    )
    return WithdrawalQuote(
        gross_value=format_amount(gross),
        exit_fee=format_amount(fee),
        payout=format_amount(gross - fee),
        new_vault_usdc=format_amount(new_cash),
        new_total_shares=format_amount(new_total_shares),
        updated_vault=updated,
    )
