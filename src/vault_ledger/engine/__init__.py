"""
Ledger engine for the Vault Ledger.

Provides the pure settlement operations: deposits, withdrawal escrow and
cancellation, epoch settlement, closed-stage redemption and lifecycle
transitions. Every operation takes vault state as input and returns an
Outcome carrying the new state; nothing is mutated in place.
"""

from vault_ledger.engine.deposit import calculate_deposit
from vault_ledger.engine.withdrawal import (
    request_withdrawal,
    cancel_withdrawal,
    withdraw_open,
    withdraw_early,
)
from vault_ledger.engine.epoch import (
    calculate_epoch_settlement,
    fill_cash_request,
    MAX_ROUNDING_RETRIES,
)
from vault_ledger.engine.redemption import calculate_redemption
from vault_ledger.engine.lifecycle import (
    create_vault,
    start_trading,
    end_trading,
    finalize_close,
)

__all__ = [
    "calculate_deposit",
    "request_withdrawal",
    "cancel_withdrawal",
    "withdraw_open",
    "withdraw_early",
    "calculate_epoch_settlement",
    "fill_cash_request",
    "MAX_ROUNDING_RETRIES",
    "calculate_redemption",
    "create_vault",
    "start_trading",
    "end_trading",
    "finalize_close",
]
