"""
Ledger logging module for the Vault Ledger.

Provides an append-only action log for audit and reproducibility.
"""

from vault_ledger.logging.ledger_log import (
    LedgerLogger,
    log_action,
    get_logger,
)

__all__ = [
    "LedgerLogger",
    "log_action",
    "get_logger",
]
