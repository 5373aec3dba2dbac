"""
Epoch settlement of queued withdrawal requests.

Once per epoch, pending requests are filled in arrival order (FIFO) against
the cash left after the liquidity buffer, priced at the caller-supplied
mark-to-market equity. Requests that do not fit are partially filled or
left pending for a later epoch; the early exit fee on every fill stays in
the vault.

All request pricing in one epoch uses the epoch-opening equity and share
count, so a request's terms depend only on how much liquidity is left when
its turn comes, never on the fills before it.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from vault_ledger.amounts import (
    BPS_DIVISOR,
    LedgerError,
    Micros,
    apply_bps,
    format_amount,
    parse_amount,
    parse_balance,
    parse_basis_points,
    require_non_negative,
)
from vault_ledger.engine.guards import check_stage, failure
from vault_ledger.models import (
    TERMINAL_STATUSES,
    EpochSettlement,
    ErrorKind,
    Outcome,
    RedemptionKind,
    RequestStatus,
    Vault,
    VaultStage,
    WithdrawalRequest,
)


logger = logging.getLogger(__name__)

# Bounded micro-share step-downs when floor rounding pushes a payout past
# the remaining liquidity
MAX_ROUNDING_RETRIES = 3


class CorruptRequestError(LedgerError):
    """Raised when a request's share fields are inconsistent."""
    kind = ErrorKind.CORRUPT_REQUEST


@dataclass
class CashFill:
    """Shares filled and USDC amounts for one cash fill."""
    shares: Micros
    gross: Micros
    fee: Micros
    net: Micros


def remaining_shares(request: WithdrawalRequest) -> tuple[Micros, Micros, Micros]:
    """
    Validate a request's share fields.

    Returns:
        Tuple of (requested, filled, remaining) in micro-units

    Raises:
        LedgerError: If the fields are malformed, negative, zero-requested
            or filled beyond the requested amount
    """
    requested = require_non_negative(
        parse_amount(request.shares_requested, "shares_requested"), "shares_requested"
    )
    filled = require_non_negative(
        parse_amount(request.shares_filled, "shares_filled"), "shares_filled"
    )
    if requested == 0:
        raise CorruptRequestError("shares_requested must be > 0")
    if filled > requested:
        raise CorruptRequestError("shares_filled exceeds shares_requested")
    return requested, filled, Micros(requested - filled)


def cash_for_shares(
    shares: int,
    equity: int,
    total_shares: int,
    exit_fee_bps: int,
) -> CashFill:
    """Gross value, exit fee and net payout of `shares` at equity / total_shares."""
    gross = shares * equity // total_shares
    fee = apply_bps(gross, exit_fee_bps)
    return CashFill(
        shares=Micros(shares),
        gross=Micros(gross),
        fee=fee,
        net=Micros(gross - fee),
    )


def fill_cash_request(
    remaining: int,
    liquidity: int,
    equity: int,
    total_shares: int,
    exit_fee_bps: int,
    share_cap: Optional[int] = None,
) -> Optional[CashFill]:
    """
    Size the largest cash fill that fits in the remaining liquidity.

    max_fillable = liquidity * 10000 * total_shares / (equity * (10000 - fee_bps))
    is the largest share count whose net-of-fee payout fits. If floor
    rounding still pushes the net payout past the liquidity, the fill steps
    down one micro-share at a time, at most MAX_ROUNDING_RETRIES times.

    Args:
        remaining: Unfilled shares on the request
        liquidity: Cash still available this epoch
        equity: Epoch-opening equity
        total_shares: Epoch-opening shares outstanding
        exit_fee_bps: Early exit fee
        share_cap: Upper bound on shares burned (live shares outstanding)

    Returns:
        The fill, or None if nothing can be paid this epoch
    """
    if liquidity <= 0 or equity <= 0 or total_shares <= 0:
        return None

    net_factor = BPS_DIVISOR - exit_fee_bps
    max_fillable = liquidity * BPS_DIVISOR * total_shares // (equity * net_factor)

    shares = min(remaining, max_fillable)
    if share_cap is not None:
        shares = min(shares, share_cap)
    if shares <= 0:
        return None

    fill = cash_for_shares(shares, equity, total_shares, exit_fee_bps)

    retries = 0
    while fill.net > liquidity and fill.shares > 1 and retries < MAX_ROUNDING_RETRIES:
        logger.debug(
            "Rounding step-down: net %s exceeds liquidity %s at %s shares",
            fill.net, liquidity, fill.shares,
        )
        fill = cash_for_shares(fill.shares - 1, equity, total_shares, exit_fee_bps)
        retries += 1

    if fill.net <= 0 or fill.net > liquidity:
        return None

    return fill


def mark_invalid(request: WithdrawalRequest, reason: str) -> WithdrawalRequest:
    """Copy of a request flagged Invalid with the given reason."""
    return replace(request, status=RequestStatus.INVALID, invalid_reason=reason)


def calculate_epoch_settlement(
    vault: Vault,
    requests: list[WithdrawalRequest],
    equity: str,
    now: Optional[datetime] = None,
) -> Outcome[EpochSettlement]:
    """
    Settle queued withdrawal requests for one epoch.

    Available liquidity is cash minus the liquidity buffer
    (cash * liquidity_buffer_bps / 10000). Requests are processed in list
    order; each is filled as far as the remaining liquidity allows, priced at
    equity / total_shares less the early exit fee. Completed, cancelled and
    invalid requests pass through untouched, as do in-kind requests. A
    request with corrupt share fields is flagged Invalid and does not stop
    the rest of the queue.

    Args:
        vault: Current vault state (must be Trading)
        requests: Withdrawal requests in arrival order
        equity: Mark-to-market vault equity (cash + positions)
        now: Timestamp recorded on filled requests (defaults to now)

    Returns:
        Outcome wrapping an EpochSettlement; inputs are not modified
    """
    rejected = check_stage(vault, VaultStage.TRADING, "Epoch processing")
    if rejected:
        return rejected

    if not any(r.status not in TERMINAL_STATUSES for r in requests):
        return Outcome.fail(ErrorKind.NO_PENDING_REQUESTS, "No pending withdrawal requests")

    try:
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        total_shares = parse_balance(vault.total_shares, "total_shares")
        equity_micros = require_non_negative(parse_amount(equity, "equity"), "equity")
        if equity_micros == 0:
            return Outcome.fail(
                ErrorKind.ZERO_EQUITY, "Equity is 0; cannot compute NAV"
            )
        if total_shares == 0:
            return Outcome.fail(
                ErrorKind.ZERO_SHARES, "Total shares is 0; no shareholders to process"
            )
        buffer_bps = parse_basis_points(vault.liquidity_buffer_bps, "liquidity_buffer_bps")
        exit_fee_bps = parse_basis_points(vault.early_exit_fee_bps, "early_exit_fee_bps")
    except LedgerError as e:
        return failure(e)

    processed_at = now or datetime.now()

    required_buffer = apply_bps(cash, buffer_bps)
    available_liquidity = max(cash - required_buffer, 0)
    remaining_liquidity = available_liquidity
    live_shares = total_shares

    total_net_paid = 0
    total_shares_burned = 0
    total_fees_retained = 0

    processed: list[WithdrawalRequest] = []

    for request in requests:
        if request.status in TERMINAL_STATUSES:
            processed.append(request)
            continue

        # In-kind requests wait for a basket settlement
        if request.kind != RedemptionKind.CASH:
            processed.append(request)
            continue

        try:
            _, filled, remaining = remaining_shares(request)
        except LedgerError as e:
            processed.append(mark_invalid(request, str(e)))
            continue

        if remaining == 0:
            processed.append(replace(request, status=RequestStatus.COMPLETED))
            continue

        fill = fill_cash_request(
            remaining,
            remaining_liquidity,
            equity_micros,
            total_shares,
            exit_fee_bps,
            share_cap=live_shares,
        )
        if fill is None:
            processed.append(request)
            continue

        remaining_liquidity -= fill.net
        live_shares -= fill.shares
        total_net_paid += fill.net
        total_shares_burned += fill.shares
        total_fees_retained += fill.fee

        processed.append(
            replace(
                request,
                shares_filled=format_amount(filled + fill.shares),
                status=(
                    RequestStatus.COMPLETED
                    if fill.shares == remaining
                    else RequestStatus.PARTIALLY_FILLED
                ),
                payout_this_epoch=format_amount(fill.net),
                exit_fee_this_epoch=format_amount(fill.fee),
                last_processed_at=processed_at,
            )
        )

    new_cash = cash - total_net_paid
    new_total_shares = total_shares - total_shares_burned

    updated = replace(
        vault,
        cash_usdc=format_amount(new_cash),
        total_shares=format_amount(new_total_shares),
    )

    return Outcome.ok(
        EpochSettlement(
            processed_requests=processed,
            total_shares_burned=format_amount(total_shares_burned),
            total_net_paid=format_amount(total_net_paid),
            total_exit_fees_retained=format_amount(total_fees_retained),
            required_buffer=format_amount(required_buffer),
            available_liquidity=format_amount(available_liquidity),
            new_vault_usdc=format_amount(new_cash),
            new_total_shares=format_amount(new_total_shares),
            updated_vault=updated,
        )
    )
