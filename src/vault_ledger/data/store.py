"""
Persistence for vault records and their request queues.

The ledger engine itself is pure; a store is where the CLI and scripts load
a vault from and save the updated copy back to once an operation succeeds.
"""

import copy
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path

from vault_ledger.config import ConfigurationError, load_vault_config, write_vault_config
from vault_ledger.data.loaders import DataLoadError, load_requests, save_requests
from vault_ledger.models import Vault, WithdrawalRequest


_VAULT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class StoreError(Exception):
    """Raised when a vault or its requests cannot be read or written."""
    pass


class VaultStore(ABC):
    """Storage interface for vaults and their request queues."""

    @abstractmethod
    def get_vault(self, vault_id: str) -> Vault:
        """
        Fetch a vault by id.

        Raises:
            StoreError: If the vault does not exist or cannot be read
        """

    @abstractmethod
    def save_vault(self, vault: Vault) -> None:
        """Create or replace a vault record."""

    @abstractmethod
    def list_vaults(self) -> list[str]:
        """Ids of all stored vaults, sorted."""

    @abstractmethod
    def get_requests(self, vault_id: str) -> list[WithdrawalRequest]:
        """Request queue of a vault in arrival order (empty if none)."""

    @abstractmethod
    def save_requests(self, vault_id: str, requests: list[WithdrawalRequest]) -> None:
        """Replace the request queue of a vault."""

    def save_settlement(self, vault: Vault, requests: list[WithdrawalRequest]) -> None:
        """
        Persist the result of an epoch: the processed queue, then the vault.

        The queue goes first so a fill is never paid twice. A final queue next
        to a stale vault record needs a manual balance correction; a debited
        vault next to a pending queue would pay out again next epoch.
        """
        self.save_requests(vault.vault_id, requests)
        self.save_vault(vault)

    def has_vault(self, vault_id: str) -> bool:
        return vault_id in self.list_vaults()


class InMemoryVaultStore(VaultStore):
    """Dictionary-backed store; returns copies so callers cannot alias stored state."""

    def __init__(self):
        self._vaults: dict[str, Vault] = {}
        self._requests: dict[str, list[WithdrawalRequest]] = {}

    def get_vault(self, vault_id: str) -> Vault:
        if vault_id not in self._vaults:
            raise StoreError(f"Vault not found: {vault_id}")
        return copy.deepcopy(self._vaults[vault_id])

    def save_vault(self, vault: Vault) -> None:
        self._vaults[vault.vault_id] = copy.deepcopy(vault)

    def list_vaults(self) -> list[str]:
        return sorted(self._vaults)

    def get_requests(self, vault_id: str) -> list[WithdrawalRequest]:
        return copy.deepcopy(self._requests.get(vault_id, []))

    def save_requests(self, vault_id: str, requests: list[WithdrawalRequest]) -> None:
        self._requests[vault_id] = copy.deepcopy(requests)


class FileVaultStore(VaultStore):
    """
    Directory-backed store.

    Layout:
        <root>/vaults/<vault_id>.yaml    vault record
        <root>/requests/<vault_id>.csv   request queue
    """

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.vaults_dir = self.root / "vaults"
        self.requests_dir = self.root / "requests"

    def _vault_path(self, vault_id: str) -> Path:
        if not _VAULT_ID_PATTERN.match(vault_id):
            raise StoreError(f"Invalid vault id: {vault_id!r}")
        return self.vaults_dir / f"{vault_id}.yaml"

    def _requests_path(self, vault_id: str) -> Path:
        if not _VAULT_ID_PATTERN.match(vault_id):
            raise StoreError(f"Invalid vault id: {vault_id!r}")
        return self.requests_dir / f"{vault_id}.csv"

    def get_vault(self, vault_id: str) -> Vault:
        path = self._vault_path(vault_id)
        if not path.exists():
            raise StoreError(f"Vault not found: {vault_id}")
        try:
            return load_vault_config(path)
        except ConfigurationError as e:
            raise StoreError(f"Cannot read vault {vault_id}: {e}")

    def save_vault(self, vault: Vault) -> None:
        write_vault_config(vault, self._vault_path(vault.vault_id))

    def list_vaults(self) -> list[str]:
        if not self.vaults_dir.exists():
            return []
        return sorted(p.stem for p in self.vaults_dir.glob("*.yaml"))

    def get_requests(self, vault_id: str) -> list[WithdrawalRequest]:
        path = self._requests_path(vault_id)
        if not path.exists():
            return []
        try:
            return load_requests(path)
        except DataLoadError as e:
            raise StoreError(f"Cannot read requests for vault {vault_id}: {e}")

    def save_requests(self, vault_id: str, requests: list[WithdrawalRequest]) -> None:
        save_requests(requests, self._requests_path(vault_id))

    def save_settlement(self, vault: Vault, requests: list[WithdrawalRequest]) -> None:
        """
        Write both files to temporaries first, then move them into place.

        A failed write leaves the stored vault and queue untouched. Only an
        interruption between the two renames can split them, and then the
        queue is already final (see VaultStore.save_settlement).
        """
        requests_path = self._requests_path(vault.vault_id)
        vault_path = self._vault_path(vault.vault_id)
        requests_tmp = requests_path.with_name(requests_path.name + ".tmp")
        vault_tmp = vault_path.with_name(vault_path.name + ".tmp")

        try:
            save_requests(requests, requests_tmp)
            write_vault_config(vault, vault_tmp)
        except OSError as e:
            requests_tmp.unlink(missing_ok=True)
            vault_tmp.unlink(missing_ok=True)
            raise StoreError(f"Cannot save settlement for vault {vault.vault_id}: {e}")

        os.replace(requests_tmp, requests_path)
        os.replace(vault_tmp, vault_path)
