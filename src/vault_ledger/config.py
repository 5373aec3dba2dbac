"""
Configuration loading and management for the Vault Ledger.

This module handles loading vault definitions and protocol limits from YAML
files, the output directory setting, and validation of configuration
parameters.
"""

import os
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import yaml

from vault_ledger.amounts import LedgerError, format_amount, parse_amount, parse_basis_points
from vault_ledger.engine.lifecycle import create_vault
from vault_ledger.models import Position, PositionSide, ProtocolLimits, Vault, VaultStage


DEFAULT_OUTPUT_DIR = "output"
OUTPUT_DIR_ENV_VAR = "VAULT_LEDGER_OUTPUT_DIR"


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


def get_output_dir(override: str | Path | None = None) -> Path:
    """
    Resolve the output directory for stores, logs and reports.

    Priority: explicit override, then the VAULT_LEDGER_OUTPUT_DIR
    environment variable, then "output".
    """
    if override:
        return Path(override)
    return Path(os.environ.get(OUTPUT_DIR_ENV_VAR) or DEFAULT_OUTPUT_DIR)


def load_vault_config(config_path: str | Path) -> Vault:
    """
    Load a vault definition from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Vault with validated settings

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    raw = _read_yaml(config_path)
    return parse_vault_config(raw)


def parse_vault_config(raw: dict[str, Any]) -> Vault:
    """
    Parse and validate a raw configuration dictionary into a Vault.

    Args:
        raw: Dictionary loaded from YAML

    Returns:
        Validated Vault

    Raises:
        ConfigurationError: If required fields are missing or invalid
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Vault configuration must be a mapping")

    if "vault_id" not in raw:
        raise ConfigurationError("Missing required configuration field: vault_id")

    vault_id = str(raw["vault_id"])
    if not vault_id:
        raise ConfigurationError("vault_id cannot be empty")

    stage_value = raw.get("stage", VaultStage.OPEN.value)
    try:
        stage = VaultStage(stage_value)
    except ValueError:
        valid = ", ".join(s.value for s in VaultStage)
        raise ConfigurationError(f"Invalid stage: {stage_value}. Expected one of: {valid}")

    positions = []
    for entry in raw.get("positions") or []:
        positions.append(_parse_position(entry))

    return Vault(
        vault_id=vault_id,
        name=str(raw.get("name", "")),
        symbol=str(raw.get("symbol", "")),
        stage=stage,
        cash_usdc=_parse_amount(raw.get("cash_usdc", "0"), "cash_usdc"),
        total_shares=_parse_amount(raw.get("total_shares", "0"), "total_shares"),
        high_water_mark=_parse_amount(raw.get("high_water_mark", "0"), "high_water_mark"),
        initial_aum_usdc=_parse_amount(raw.get("initial_aum_usdc", "0"), "initial_aum_usdc"),
        deposit_fee_bps=_parse_bps(raw.get("deposit_fee_bps", 0), "deposit_fee_bps"),
        perf_fee_bps=_parse_bps(raw.get("perf_fee_bps", 0), "perf_fee_bps"),
        early_exit_fee_bps=_parse_bps(raw.get("early_exit_fee_bps", 500), "early_exit_fee_bps"),
        liquidity_buffer_bps=_parse_bps(raw.get("liquidity_buffer_bps", 1000), "liquidity_buffer_bps"),
        perf_fee_due_usdc=_parse_amount(raw.get("perf_fee_due_usdc", "0"), "perf_fee_due_usdc"),
        perf_fee_paid=_parse_bool(raw.get("perf_fee_paid", False), "perf_fee_paid"),
        positions=positions,
        trading_start=_parse_datetime(raw.get("trading_start"), "trading_start"),
        trading_end=_parse_datetime(raw.get("trading_end"), "trading_end"),
    )


def load_protocol_limits(config_path: str | Path | None = None) -> ProtocolLimits:
    """
    Load protocol fee caps from YAML, or return the defaults.

    Args:
        config_path: Optional path to a limits YAML file

    Returns:
        ProtocolLimits

    Raises:
        ConfigurationError: If the file is invalid
    """
    if config_path is None:
        return ProtocolLimits()

    raw = _read_yaml(config_path)
    if not isinstance(raw, dict):
        raise ConfigurationError("Protocol limits must be a mapping")

    defaults = ProtocolLimits()
    try:
        interval = int(raw.get("default_epoch_interval_secs", defaults.default_epoch_interval_secs))
    except (TypeError, ValueError):
        raise ConfigurationError("default_epoch_interval_secs must be an integer")
    if interval <= 0:
        raise ConfigurationError("default_epoch_interval_secs must be positive")

    return ProtocolLimits(
        max_deposit_fee_bps=_parse_bps(
            raw.get("max_deposit_fee_bps", defaults.max_deposit_fee_bps), "max_deposit_fee_bps"
        ),
        max_perf_fee_bps=_parse_bps(
            raw.get("max_perf_fee_bps", defaults.max_perf_fee_bps), "max_perf_fee_bps"
        ),
        max_early_exit_fee_bps=_parse_bps(
            raw.get("max_early_exit_fee_bps", defaults.max_early_exit_fee_bps), "max_early_exit_fee_bps"
        ),
        min_buffer_bps=_parse_bps(
            raw.get("min_buffer_bps", defaults.min_buffer_bps), "min_buffer_bps"
        ),
        default_epoch_interval_secs=interval,
    )


def create_default_vault(
    vault_id: str,
    name: str,
    symbol: str,
    output_path: str | Path | None = None,
) -> Vault:
    """
    Create an empty Open vault with default fee and buffer parameters.

    Useful for programmatic configuration without a YAML file.

    Args:
        vault_id: Unique vault identifier
        name: Display name
        symbol: Ticker
        output_path: Optional path to write the vault YAML

    Returns:
        Vault with default parameters

    Raises:
        ConfigurationError: If the name, symbol or id is rejected
    """
    outcome = create_vault(vault_id, name, symbol)
    if not outcome.success:
        raise ConfigurationError(outcome.error)

    vault = outcome.value
    if output_path:
        write_vault_config(vault, output_path)

    return vault


def vault_to_dict(vault: Vault) -> dict[str, Any]:
    """Serializable mapping of a vault, the inverse of parse_vault_config."""
    record: dict[str, Any] = {
        "vault_id": vault.vault_id,
        "name": vault.name,
        "symbol": vault.symbol,
        "stage": vault.stage.value,
        "cash_usdc": vault.cash_usdc,
        "total_shares": vault.total_shares,
        "high_water_mark": vault.high_water_mark,
        "initial_aum_usdc": vault.initial_aum_usdc,
        "deposit_fee_bps": int(vault.deposit_fee_bps),
        "perf_fee_bps": int(vault.perf_fee_bps),
        "early_exit_fee_bps": int(vault.early_exit_fee_bps),
        "liquidity_buffer_bps": int(vault.liquidity_buffer_bps),
        "perf_fee_due_usdc": vault.perf_fee_due_usdc,
        "perf_fee_paid": vault.perf_fee_paid,
        "positions": [
            {"market_id": p.market_id, "side": p.side.value, "shares": p.shares}
            for p in vault.positions
        ],
    }
    if vault.trading_start:
        record["trading_start"] = vault.trading_start.isoformat()
    if vault.trading_end:
        record["trading_end"] = vault.trading_end.isoformat()
    return record


def write_vault_config(vault: Vault, output_path: str | Path) -> Path:
    """
    Write a Vault to a YAML file.

    Args:
        vault: The vault to write
        output_path: Path to write the YAML file

    Returns:
        Path to the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        yaml.safe_dump(vault_to_dict(vault), f, default_flow_style=False, sort_keys=False)

    return output_path


def _read_yaml(config_path: str | Path) -> Any:
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")


def _parse_position(entry: Any) -> Position:
    """Parse one `positions` entry."""
    if not isinstance(entry, dict) or "market_id" not in entry:
        raise ConfigurationError(f"Invalid position entry: {entry}")

    side_value = entry.get("side", "")
    if isinstance(side_value, bool):
        # YAML 1.1 loads bare yes/no as booleans
        side_value = "YES" if side_value else "NO"

    try:
        side = PositionSide(str(side_value).upper())
    except ValueError:
        raise ConfigurationError(
            f"Invalid side for position {entry['market_id']}: {entry.get('side')}"
        )

    return Position(
        market_id=str(entry["market_id"]),
        side=side,
        shares=_parse_amount(entry.get("shares", "0"), f"position_shares({entry['market_id']})"),
    )


def _parse_amount(value: Any, field_name: str) -> str:
    """
    Normalize an amount to a 6-decimal string.

    YAML may load unquoted amounts as numbers; ints are accepted, floats are
    rejected since they cannot carry exact micro-units.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise ConfigurationError(
            f"{field_name} must be a quoted decimal string or an integer, got {value!r}"
        )
    try:
        micros = parse_amount(str(value), field_name)
    except LedgerError as e:
        raise ConfigurationError(f"Invalid value for {field_name}: {e}")
    if micros < 0:
        raise ConfigurationError(f"{field_name} must be >= 0, got {value}")
    return format_amount(micros)


def _parse_bps(value: Any, field_name: str) -> int:
    try:
        return int(parse_basis_points(value, field_name))
    except LedgerError as e:
        raise ConfigurationError(str(e))


def _parse_bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be true or false, got {value!r}")
    return value


def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
    """
    Parse an optional timestamp from YAML.

    Raises:
        ConfigurationError: If the value cannot be parsed
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass

    raise ConfigurationError(
        f"Invalid datetime format for {field_name}: {value}. Expected ISO 8601"
    )
