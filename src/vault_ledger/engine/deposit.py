"""
Deposit calculation for open-stage vaults.

New capital pays the deposit fee, and the net amount mints shares at the
current cash-per-share ratio (1:1 for the first depositor).
"""

from dataclasses import replace

from vault_ledger.amounts import (
    LedgerError,
    apply_bps,
    format_amount,
    parse_balance,
    parse_basis_points,
    validate_positive_amount,
)
from vault_ledger.engine.guards import check_stage, failure, has_open_positions
from vault_ledger.models import (
    DepositQuote,
    ErrorKind,
    Outcome,
    Vault,
    VaultStage,
)


def calculate_deposit(vault: Vault, amount: str) -> Outcome[DepositQuote]:
    """
    Calculate the fee, minted shares and new vault totals for a deposit.

    fee = amount * deposit_fee_bps / 10000 (floor), net = amount - fee.
    An empty vault mints net shares 1:1; otherwise shares are minted as
    net * total_shares / vault_cash. The high-water mark becomes
    max(old mark, new cash).

    Args:
        vault: Current vault state (must be Open with no open positions)
        amount: Deposit amount as a positive decimal string

    Returns:
        Outcome wrapping a DepositQuote; the input vault is not modified
    """
    rejected = check_stage(vault, VaultStage.OPEN, "Deposits")
    if rejected:
        return rejected

    try:
        if has_open_positions(vault):
            return Outcome.fail(
                ErrorKind.OPEN_POSITIONS,
                "Cannot deposit while positions are open",
            )

        amount_micros = validate_positive_amount(amount, "amount")
        fee_bps = parse_basis_points(vault.deposit_fee_bps, "deposit_fee_bps")

        fee = apply_bps(amount_micros, fee_bps)
        net = amount_micros - fee
        if net <= 0:
            return Outcome.fail(
                ErrorKind.INSUFFICIENT_FUNDS,
                "Deposit too small (rounds to 0 after fees)",
            )

        vault_cash = parse_balance(vault.cash_usdc, "cash_usdc")
        total_shares = parse_balance(vault.total_shares, "total_shares")

        if total_shares == 0:
            shares_to_mint = net
        else:
            if vault_cash == 0:
                return Outcome.fail(
                    ErrorKind.ZERO_EQUITY,
                    "Vault has shares but no USDC (data corruption)",
                )
            shares_to_mint = net * total_shares // vault_cash

        if shares_to_mint <= 0:
            return Outcome.fail(
                ErrorKind.INSUFFICIENT_SHARES,
                "Calculated shares is 0 (deposit too small)",
            )

        old_hwm = parse_balance(vault.high_water_mark, "high_water_mark")
    except LedgerError as e:
        return failure(e)

    new_cash = vault_cash + net
    new_total_shares = total_shares + shares_to_mint
    new_hwm = max(old_hwm, new_cash)

    updated = replace(
        vault,
        cash_usdc=format_amount(new_cash),
        total_shares=format_amount(new_total_shares),
        high_water_mark=format_amount(new_hwm),
    )

    return Outcome.ok(
        DepositQuote(
            deposit_fee=format_amount(fee),
            net_amount=format_amount(net),
            shares_to_mint=format_amount(shares_to_mint),
            new_vault_usdc=format_amount(new_cash),
            new_total_shares=format_amount(new_total_shares),
            new_high_water_mark=format_amount(new_hwm),
            updated_vault=updated,
        )
    )
