"""
Data ingestion and persistence for the Vault Ledger.

Provides CSV loading and saving for request queues, price snapshots and
settlement outputs, and the vault stores used by the CLI.
"""

from vault_ledger.data.loaders import (
    DataLoadError,
    load_requests,
    save_requests,
    load_price_snapshot,
    save_settlement_report,
    save_transfer_instructions,
)
from vault_ledger.data.schemas import (
    REQUESTS_SCHEMA,
    PRICE_SNAPSHOT_SCHEMA,
    SETTLEMENT_REPORT_SCHEMA,
    TRANSFERS_SCHEMA,
)
from vault_ledger.data.store import (
    FileVaultStore,
    InMemoryVaultStore,
    StoreError,
    VaultStore,
)

__all__ = [
    "DataLoadError",
    "load_requests",
    "save_requests",
    "load_price_snapshot",
    "save_settlement_report",
    "save_transfer_instructions",
    "REQUESTS_SCHEMA",
    "PRICE_SNAPSHOT_SCHEMA",
    "SETTLEMENT_REPORT_SCHEMA",
    "TRANSFERS_SCHEMA",
    "FileVaultStore",
    "InMemoryVaultStore",
    "StoreError",
    "VaultStore",
]
