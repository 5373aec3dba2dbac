"""
Append-only action log for the Vault Ledger.

Every state-changing ledger action, and every rejected one, is written as a
single JSON line so a vault's history can be replayed and audited.
"""

import json
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from vault_ledger.models import (
    ActionType,
    BasketEpochSettlement,
    CancelQuote,
    DepositQuote,
    EpochSettlement,
    ErrorKind,
    LedgerLogEntry,
    RedemptionPayout,
    Vault,
    VaultStage,
    WithdrawalQuote,
    WithdrawalRequest,
)


DEFAULT_LOG_FILENAME = "ledger_log.jsonl"


class LedgerLogger:
    """
    Append-only ledger logger.

    Writes all actions to a JSONL file for audit purposes.
    Each line is a complete JSON object representing one action.
    """

    def __init__(self, log_path: str | Path):
        """
        Initialize the ledger logger.

        Args:
            log_path: Path to the log file (will be created if not exists)
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, entry: LedgerLogEntry) -> None:
        """
        Write a ledger log entry.

        Args:
            entry: LedgerLogEntry to write
        """
        record = {
            "timestamp": entry.timestamp.isoformat(),
            "action_type": entry.action_type.value,
            "vault_id": entry.vault_id,
            "details": entry.details,
        }

        with open(self.log_path, "a") as f:
            f.write(json.dumps(record, cls=DecimalEncoder) + "\n")

    def _write(self, action_type: ActionType, vault_id: Optional[str], details: dict) -> None:
        self.log(LedgerLogEntry.create(action_type=action_type, vault_id=vault_id, details=details))

    def log_config_loaded(self, vault: Vault, config_path: str) -> None:
        """
        Log configuration loading.

        Args:
            vault: Loaded vault
            config_path: Path to configuration file
        """
        self._write(ActionType.CONFIG_LOADED, vault.vault_id, {
            "config_path": config_path,
            "stage": vault.stage,
            "cash_usdc": vault.cash_usdc,
            "total_shares": vault.total_shares,
        })

    def log_vault_created(self, vault: Vault) -> None:
        self._write(ActionType.VAULT_CREATED, vault.vault_id, {
            "name": vault.name,
            "symbol": vault.symbol,
            "deposit_fee_bps": vault.deposit_fee_bps,
            "perf_fee_bps": vault.perf_fee_bps,
            "early_exit_fee_bps": vault.early_exit_fee_bps,
            "liquidity_buffer_bps": vault.liquidity_buffer_bps,
        })

    def log_stage_changed(
        self,
        vault: Vault,
        previous_stage: VaultStage,
        extra: Optional[dict] = None,
    ) -> None:
        """
        Log a lifecycle transition.

        Args:
            vault: Vault after the transition
            previous_stage: Stage before the transition
            extra: Additional details (e.g. initial AUM, performance fee due)
        """
        details = {
            "from_stage": previous_stage,
            "to_stage": vault.stage,
        }
        details.update(extra or {})
        self._write(ActionType.STAGE_CHANGED, vault.vault_id, details)

    def log_deposit(self, vault_id: str, amount: str, quote: DepositQuote) -> None:
        self._write(ActionType.DEPOSIT_PROCESSED, vault_id, {
            "amount": amount,
            "deposit_fee": quote.deposit_fee,
            "net_amount": quote.net_amount,
            "shares_minted": quote.shares_to_mint,
            "new_vault_usdc": quote.new_vault_usdc,
            "new_total_shares": quote.new_total_shares,
        })

    def log_withdrawal(self, vault_id: str, shares: str, quote: WithdrawalQuote, early: bool) -> None:
        self._write(ActionType.WITHDRAWAL_PROCESSED, vault_id, {
            "shares": shares,
            "early": early,
            "gross_value": quote.gross_value,
            "exit_fee": quote.exit_fee,
            "payout": quote.payout,
            "new_vault_usdc": quote.new_vault_usdc,
            "new_total_shares": quote.new_total_shares,
        })

    def log_withdrawal_requested(self, vault_id: str, request: WithdrawalRequest) -> None:
        self._write(ActionType.WITHDRAWAL_REQUESTED, vault_id, {
            "request_id": request.request_id,
            "kind": request.kind,
            "holder": request.holder,
            "shares_escrowed": request.shares_requested,
        })

    def log_withdrawal_cancelled(self, vault_id: str, quote: CancelQuote) -> None:
        self._write(ActionType.WITHDRAWAL_CANCELLED, vault_id, {
            "request_id": quote.request.request_id,
            "shares_returned": quote.shares_to_return,
        })

    def log_epoch_settled(self, vault_id: str, equity: str, settlement: EpochSettlement) -> None:
        """
        Log a withdrawal settlement epoch.

        Args:
            vault_id: Vault identifier
            equity: Equity figure the epoch was priced at
            settlement: Settlement result
        """
        statuses: dict[str, int] = {}
        for request in settlement.processed_requests:
            statuses[request.status.value] = statuses.get(request.status.value, 0) + 1

        self._write(ActionType.EPOCH_SETTLED, vault_id, {
            "equity": equity,
            "total_shares_burned": settlement.total_shares_burned,
            "total_net_paid": settlement.total_net_paid,
            "total_exit_fees_retained": settlement.total_exit_fees_retained,
            "required_buffer": settlement.required_buffer,
            "available_liquidity": settlement.available_liquidity,
            "request_statuses": statuses,
            "invalid_request_ids": [
                r.request_id for r in settlement.processed_requests if r.invalid_reason
            ],
        })

    def log_basket_epoch_settled(self, vault_id: str, settlement: BasketEpochSettlement) -> None:
        self._write(ActionType.BASKET_EPOCH_SETTLED, vault_id, {
            "nav_mode": settlement.nav_mode_used,
            "nav_equity": settlement.nav_equity_used,
            "total_shares_burned": settlement.total_shares_burned,
            "total_cash_paid": settlement.total_cash_paid,
            "total_exit_fees_retained": settlement.total_exit_fees_retained,
            "cash_buffer_reserved": settlement.cash_buffer_reserved,
            "in_kind_request_ids": [i.request_id for i in settlement.transfer_instructions],
        })

    def log_redemption(self, vault_id: str, shares: str, payout: RedemptionPayout) -> None:
        self._write(ActionType.REDEMPTION_PROCESSED, vault_id, {
            "shares": shares,
            "payout": payout.payout,
            "perf_fee_deducted": payout.fee_deducted,
            "new_vault_usdc": payout.new_vault_usdc,
            "new_total_shares": payout.new_total_shares,
        })

    def log_rejected(
        self,
        vault_id: Optional[str],
        operation: str,
        error_kind: Optional[ErrorKind],
        error: Optional[str],
    ) -> None:
        """
        Log a rejected operation.

        Args:
            vault_id: Vault identifier (if known)
            operation: Name of the attempted operation
            error_kind: Failure category
            error: Failure message
        """
        self._write(ActionType.OPERATION_REJECTED, vault_id, {
            "operation": operation,
            "error_kind": error_kind,
            "error": error,
        })

    def read_log(self) -> list[LedgerLogEntry]:
        """
        Read all entries from the log file.

        Returns:
            List of LedgerLogEntry objects
        """
        if not self.log_path.exists():
            return []

        entries = []
        with open(self.log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                record = json.loads(line)
                entries.append(
                    LedgerLogEntry(
                        timestamp=datetime.fromisoformat(record["timestamp"]),
                        action_type=ActionType(record["action_type"]),
                        vault_id=record.get("vault_id"),
                        details=record.get("details", {}),
                    )
                )

        return entries

    def filter_by_vault(self, vault_id: str) -> list[LedgerLogEntry]:
        """Get log entries for a specific vault."""
        return [e for e in self.read_log() if e.vault_id == vault_id]

    def filter_by_action_type(self, action_type: ActionType) -> list[LedgerLogEntry]:
        """Get log entries of a specific type."""
        return [e for e in self.read_log() if e.action_type == action_type]


class DecimalEncoder(json.JSONEncoder):
    """JSON encoder that handles Decimal, date and Enum values."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (date, datetime)):
            return obj.isoformat()
        return super().default(obj)


# Global logger instance (initialized on first use)
_global_logger: Optional[LedgerLogger] = None


def get_logger(log_path: Optional[str | Path] = None) -> LedgerLogger:
    """
    Get or create the global ledger logger.

    Args:
        log_path: Optional path to initialize logger

    Returns:
        LedgerLogger instance
    """
    global _global_logger

    if _global_logger is None:
        if log_path is None:
            from vault_ledger.config import get_output_dir
            log_path = get_output_dir() / DEFAULT_LOG_FILENAME
        _global_logger = LedgerLogger(log_path)
    elif log_path is not None:
        _global_logger = LedgerLogger(log_path)

    return _global_logger


def log_action(
    action_type: ActionType,
    vault_id: Optional[str],
    details: dict,
    log_path: Optional[str | Path] = None,
) -> None:
    """
    Convenience function to log an action.

    Args:
        action_type: Type of action
        vault_id: Vault identifier (optional)
        details: Action details dictionary
        log_path: Optional path to log file
    """
    logger = get_logger(log_path)
    entry = LedgerLogEntry.create(
        action_type=action_type,
        vault_id=vault_id,
        details=details,
    )
    logger.log(entry)
