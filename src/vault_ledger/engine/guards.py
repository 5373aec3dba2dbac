"""
Shared precondition checks for ledger operations.
"""

from typing import Optional

from vault_ledger.amounts import LedgerError, parse_balance
from vault_ledger.models import ErrorKind, Outcome, Vault, VaultStage


def failure(error: LedgerError) -> Outcome:
    """Convert a raised ledger error into a failed Outcome."""
    return Outcome.fail(error.kind, str(error))


def check_stage(vault: Vault, allowed: VaultStage, action: str) -> Optional[Outcome]:
    """
    Return a failed Outcome if the vault is not in the allowed stage.

    Args:
        vault: Vault to check
        allowed: Stage the operation requires
        action: Human-readable operation name for the message

    Returns:
        None if the stage matches, otherwise a StageViolation Outcome
    """
    if vault.stage != allowed:
        return Outcome.fail(
            ErrorKind.STAGE_VIOLATION,
            f"{action} only allowed in {allowed.value} stage "
            f"(vault is {vault.stage.value})",
        )
    return None


def has_open_positions(vault: Vault) -> bool:
    """
    True if any basket position holds shares.

    Raises:
        LedgerError: If a position share count is malformed or negative
    """
    return any(
        parse_balance(p.shares, f"position_shares({p.market_id})") > 0
        for p in vault.positions
    )
