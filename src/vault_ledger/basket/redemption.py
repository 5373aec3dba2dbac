"""
Dual-mode (cash / in-kind) redemption for basket vaults.

Both modes settle in the same epoch:
- IN_KIND requests are always filled in full with a pro-rata slice of the
  epoch-opening cash and of every position. Slices are computed against the
  epoch-opening totals, so every in-kind request in an epoch gets the same
  terms whatever its place in the queue. No fee.
- CASH requests are filled FIFO against the cash left after the liquidity
  buffer, priced at the conservative (bid-marked) equity, with the early
  exit fee retained by the vault.

The cash owed to in-kind requests is reserved before any cash request is
filled, so neither mode can starve the other.

This module does not trade. For cash redemptions larger than the vault's
cash, an execution layer has to sell positions and report the new cash
balance before settlement runs.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from vault_ledger.amounts import (
    LedgerError,
    apply_bps,
    format_amount,
    parse_balance,
    parse_basis_points,
    validate_positive_amount,
)
from vault_ledger.basket.pricing import PriceSnapshot, equity_micros
from vault_ledger.engine.epoch import fill_cash_request, mark_invalid, remaining_shares
from vault_ledger.engine.guards import check_stage, failure
from vault_ledger.engine.withdrawal import cancel_withdrawal
from vault_ledger.models import (
    TERMINAL_STATUSES,
    BasketEpochSettlement,
    CancelQuote,
    ErrorKind,
    Outcome,
    Position,
    PositionSide,
    PriceMode,
    RedemptionKind,
    RequestStatus,
    Transfer,
    TransferInstruction,
    TransferType,
    Vault,
    VaultStage,
    WithdrawalRequest,
)


logger = logging.getLogger(__name__)


def create_redemption_request(
    kind: RedemptionKind | str,
    shares_requested: str,
    holder: str = "",
) -> Outcome[WithdrawalRequest]:
    """
    Create a pending basket redemption request.

    Args:
        kind: CASH or IN_KIND
        shares_requested: Shares to redeem
        holder: Holder identifier

    Returns:
        Outcome wrapping the new request
    """
    try:
        kind = RedemptionKind(kind)
    except ValueError:
        return Outcome.fail(
            ErrorKind.INVALID_PARAMETER, 'kind must be "CASH" or "IN_KIND"'
        )

    try:
        shares = validate_positive_amount(shares_requested, "shares_requested")
    except LedgerError as e:
        return failure(e)

    return Outcome.ok(
        WithdrawalRequest.create(
            shares_requested=format_amount(shares),
            kind=kind,
            holder=holder,
        )
    )


def cancel_redemption_request(request: WithdrawalRequest) -> Outcome[CancelQuote]:
    """Cancel the unfilled remainder of a basket redemption request."""
    return cancel_withdrawal(request)


def settle_basket_epoch(
    vault: Vault,
    requests: list[WithdrawalRequest],
    snapshot: PriceSnapshot,
    cash_nav_mode: PriceMode = PriceMode.BID,
    in_kind_include_cash: bool = True,
    now: Optional[datetime] = None,
) -> Outcome[BasketEpochSettlement]:
    """
    Settle a mixed queue of CASH and IN_KIND redemption requests.

    Args:
        vault: Basket vault (must be Trading)
        requests: Redemption requests in arrival order
        snapshot: Price quotes keyed by market id
        cash_nav_mode: Price mode for the equity behind cash payouts
        in_kind_include_cash: Whether in-kind slices include vault cash
        now: Timestamp recorded on filled requests (defaults to now)

    Returns:
        Outcome wrapping a BasketEpochSettlement; inputs are not modified
    """
    rejected = check_stage(vault, VaultStage.TRADING, "Epoch processing")
    if rejected:
        return rejected

    if not any(r.status not in TERMINAL_STATUSES for r in requests):
        return Outcome.fail(ErrorKind.NO_PENDING_REQUESTS, "No pending redemption requests")

    try:
        total_shares = parse_balance(vault.total_shares, "total_shares")
        if total_shares == 0:
            return Outcome.fail(ErrorKind.ZERO_SHARES, "Total shares must be > 0")
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        buffer_bps = parse_basis_points(vault.liquidity_buffer_bps, "liquidity_buffer_bps")
        exit_fee_bps = parse_basis_points(vault.early_exit_fee_bps, "early_exit_fee_bps")
        equity = equity_micros(vault, snapshot, cash_nav_mode)
        if equity == 0:
            return Outcome.fail(
                ErrorKind.ZERO_EQUITY,
                "Equity is 0; cannot compute NAV for cash redemptions",
            )
        opening_positions = [
            (p, parse_balance(p.shares, f"position_shares({p.market_id})"))
            for p in vault.positions
        ]
    except LedgerError as e:
        return failure(e)

    processed_at = now or datetime.now()

    # Epoch-opening terms shared by every request in this epoch
    opening_cash = cash
    opening_shares = total_shares

    required_buffer = apply_bps(cash, buffer_bps)
    in_kind_cash_reserved = 0
    if in_kind_include_cash:
        in_kind_cash_reserved = opening_cash * _in_kind_shares_due(requests, opening_shares) // opening_shares
    available_cash = max(cash - required_buffer - in_kind_cash_reserved, 0)

    live_positions: dict[tuple[str, PositionSide], int] = {}
    for position, shares in opening_positions:
        key = (position.market_id, position.side)
        live_positions[key] = live_positions.get(key, 0) + shares

    live_cash = cash
    live_shares = total_shares
    total_shares_burned = 0
    total_cash_paid = 0
    total_fees_retained = 0

    processed: list[WithdrawalRequest] = []
    instructions: list[TransferInstruction] = []

    for request in requests:
        if request.status in TERMINAL_STATUSES:
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

        if request.kind == RedemptionKind.IN_KIND:
            if remaining > live_shares:
                processed.append(mark_invalid(request, "Request exceeds shares outstanding"))
                continue

            transfers: list[Transfer] = []

            if in_kind_include_cash and opening_cash > 0:
                cash_slice = min(opening_cash * remaining // opening_shares, live_cash)
                if cash_slice > 0:
                    transfers.append(
                        Transfer(transfer_type=TransferType.USDC, amount=format_amount(cash_slice))
                    )
                    live_cash -= cash_slice

            for position, shares in opening_positions:
                if shares <= 0:
                    continue
                key = (position.market_id, position.side)
                move = min(shares * remaining // opening_shares, live_positions[key])
                if move <= 0:
                    continue
                transfers.append(
                    Transfer(
                        transfer_type=TransferType.POSITION,
                        amount=format_amount(move),
                        market_id=position.market_id,
                        side=position.side,
                    )
                )
                live_positions[key] -= move

            live_shares -= remaining
            total_shares_burned += remaining

            processed.append(
                replace(
                    request,
                    shares_filled=format_amount(filled + remaining),
                    status=RequestStatus.COMPLETED,
                    last_processed_at=processed_at,
                )
            )
            instructions.append(TransferInstruction(request_id=request.request_id, transfers=transfers))
            continue

        if request.kind == RedemptionKind.CASH:
            fill = fill_cash_request(
                remaining,
                available_cash,
                equity,
                opening_shares,
                exit_fee_bps,
                share_cap=live_shares,
            )
            if fill is None:
                processed.append(request)
                continue

            available_cash -= fill.net
            live_cash -= fill.net
            live_shares -= fill.shares
            total_cash_paid += fill.net
            total_fees_retained += fill.fee
            total_shares_burned += fill.shares

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
            continue

        processed.append(mark_invalid(request, f"Unknown redemption kind: {request.kind}"))

    logger.debug(
        "Basket epoch for %s: burned %s, cash paid %s, %d in-kind transfers",
        vault.vault_id, total_shares_burned, total_cash_paid, len(instructions),
    )

    updated = replace(
        vault,
        cash_usdc=format_amount(live_cash),
        total_shares=format_amount(live_shares),
        positions=[
            Position(market_id=market_id, side=side, shares=format_amount(shares))
            for (market_id, side), shares in live_positions.items()
        ],
    )

    return Outcome.ok(
        BasketEpochSettlement(
            processed_requests=processed,
            transfer_instructions=instructions,
            total_shares_burned=format_amount(total_shares_burned),
            total_cash_paid=format_amount(total_cash_paid),
            total_exit_fees_retained=format_amount(total_fees_retained),
            cash_buffer_reserved=format_amount(required_buffer),
            nav_equity_used=format_amount(equity),
            nav_mode_used=cash_nav_mode,
            new_cash_usdc=format_amount(live_cash),
            new_total_shares=format_amount(live_shares),
            updated_vault=updated,
        )
    )


def _in_kind_shares_due(requests: list[WithdrawalRequest], share_cap: int) -> int:
    """Unfilled shares across valid, active in-kind requests (capped at shares outstanding)."""
    due = 0
    for request in requests:
        if request.status in TERMINAL_STATUSES or request.kind != RedemptionKind.IN_KIND:
            continue
        try:
            _, _, remaining = remaining_shares(request)
        except LedgerError:
            continue
        if due + remaining > share_cap:
            break
        due += remaining
    return due
