"""
Closed-stage redemption.

After a vault closes, holders redeem shares for a pro-rata slice of its cash.
The performance fee assessed at close leaves the vault exactly once, on the
first redemption: it is deducted before that redeemer's payout is computed,
so every holder in the closing cohort shares it through a lower
cash-per-share.
"""

from dataclasses import replace

from vault_ledger.amounts import (
    LedgerError,
    format_amount,
    parse_balance,
    validate_positive_amount,
)
from vault_ledger.engine.guards import check_stage, failure
from vault_ledger.models import (
    ErrorKind,
    Outcome,
    RedemptionPayout,
    Vault,
    VaultStage,
)


def calculate_redemption(vault: Vault, shares: str) -> Outcome[RedemptionPayout]:
    """
    Calculate a closed-stage redemption.

    payout = shares * (cash after performance fee) / total_shares

    Args:
        vault: Current vault state (must be Closed)
        shares: Shares to redeem

    Returns:
        Outcome wrapping a RedemptionPayout. The updated vault records
        perf_fee_paid so later redemptions skip the fee.
    """
    rejected = check_stage(vault, VaultStage.CLOSED, "Redemption")
    if rejected:
        return rejected

    try:
        shares_micros = validate_positive_amount(shares, "shares")
        total_shares = parse_balance(vault.total_shares, "total_shares")
        cash = parse_balance(vault.cash_usdc, "cash_usdc")
        perf_fee_due = parse_balance(vault.perf_fee_due_usdc, "perf_fee_due_usdc")
    except LedgerError as e:
        return failure(e)

    if shares_micros > total_shares:
        return Outcome.fail(
            ErrorKind.INSUFFICIENT_SHARES, "Insufficient total shares in vault"
        )

    fee_deducted = 0
    if perf_fee_due > 0 and not vault.perf_fee_paid:
        if cash < perf_fee_due:
            return Outcome.fail(
                ErrorKind.INSUFFICIENT_FUNDS,
                "Insufficient cash to pay performance fee",
            )
        cash -= perf_fee_due
        fee_deducted = perf_fee_due

    payout = shares_micros * cash // total_shares
    new_cash = cash - payout
    new_total_shares = total_shares - shares_micros
    perf_fee_paid_after = vault.perf_fee_paid or fee_deducted > 0

    updated = replace(
        vault,
        cash_usdc=format_amount(new_cash),
        total_shares=format_amount(new_total_shares),
        perf_fee_paid=perf_fee_paid_after,
    )

    return Outcome.ok(
        RedemptionPayout(
            payout=format_amount(payout),
            fee_deducted=format_amount(fee_deducted),
            perf_fee_paid_after=perf_fee_paid_after,
            new_vault_usdc=format_amount(new_cash),
            new_total_shares=format_amount(new_total_shares),
            updated_vault=updated,
        )
    )
