"""
Data loading and saving functions for CSV files.

Handles ingestion of request queues and price snapshots, as well as output
of settlement reports and in-kind transfer instructions.

Amounts are read and written as text. Request rows are not validated here:
a malformed amount must still reach settlement, which flags the request
Invalid instead of failing the whole epoch.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from vault_ledger.basket.pricing import PriceSnapshot
from vault_ledger.models import (
    PriceQuote,
    RedemptionKind,
    RequestStatus,
    TransferInstruction,
    WithdrawalRequest,
)
from vault_ledger.data.schemas import (
    FileSchema,
    PRICE_SNAPSHOT_SCHEMA,
    REQUESTS_SCHEMA,
    SETTLEMENT_REPORT_SCHEMA,
    TRANSFERS_SCHEMA,
)


class DataLoadError(Exception):
    """Raised when data cannot be loaded or is invalid."""
    pass


def load_requests(file_path: str | Path) -> list[WithdrawalRequest]:
    """
    Load a request queue from CSV, preserving file order.

    Args:
        file_path: Path to CSV file with request columns

    Returns:
        List of WithdrawalRequest objects in arrival order

    Raises:
        DataLoadError: If file cannot be loaded or has invalid status/kind values
    """
    file_path = Path(file_path)
    df = _load_csv(file_path, REQUESTS_SCHEMA)

    requests = []
    for idx, row in df.iterrows():
        request_id = row["request_id"].strip()
        if not request_id:
            raise DataLoadError(f"Row {idx + 1} in {file_path} has an empty request_id")

        try:
            status = RequestStatus(row["status"].strip())
        except ValueError:
            raise DataLoadError(f"Invalid status for request {request_id}: {row['status']}")

        try:
            kind = RedemptionKind(row.get("kind", "").strip() or RedemptionKind.CASH.value)
        except ValueError:
            raise DataLoadError(f"Invalid kind for request {request_id}: {row['kind']}")

        created_at = _optional_datetime(row.get("created_at"), "created_at", request_id)
        requests.append(
            WithdrawalRequest(
                request_id=request_id,
                shares_requested=row["shares_requested"].strip(),
                shares_filled=row["shares_filled"].strip(),
                status=status,
                kind=kind,
                holder=row.get("holder", ""),
                created_at=created_at or datetime.now(),
                invalid_reason=_optional_text(row.get("invalid_reason")),
                payout_this_epoch=_optional_text(row.get("payout_this_epoch")),
                exit_fee_this_epoch=_optional_text(row.get("exit_fee_this_epoch")),
                last_processed_at=_optional_datetime(
                    row.get("last_processed_at"), "last_processed_at", request_id
                ),
            )
        )

    return requests


def save_requests(
    requests: list[WithdrawalRequest],
    output_path: str | Path,
) -> Path:
    """
    Save a request queue to CSV file.

    Args:
        requests: Requests in arrival order
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for req in requests:
        records.append({
            "request_id": req.request_id,
            "shares_requested": req.shares_requested,
            "shares_filled": req.shares_filled,
            "status": req.status.value,
            "kind": req.kind.value,
            "holder": req.holder,
            "created_at": req.created_at.isoformat(),
            "invalid_reason": req.invalid_reason or "",
            "payout_this_epoch": req.payout_this_epoch or "",
            "exit_fee_this_epoch": req.exit_fee_this_epoch or "",
            "last_processed_at": req.last_processed_at.isoformat() if req.last_processed_at else "",
        })

    df = pd.DataFrame(records, columns=REQUESTS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def load_price_snapshot(file_path: str | Path) -> PriceSnapshot:
    """
    Load a price snapshot from CSV file.

    Args:
        file_path: Path to CSV file with columns: market_id, bid_yes, ask_yes, mid_yes

    Returns:
        Dictionary mapping market_id -> PriceQuote

    Raises:
        DataLoadError: If file cannot be loaded or lists a market twice
    """
    file_path = Path(file_path)
    df = _load_csv(file_path, PRICE_SNAPSHOT_SCHEMA)

    snapshot: PriceSnapshot = {}
    for _, row in df.iterrows():
        market_id = row["market_id"].strip()
        if not market_id:
            continue
        if market_id in snapshot:
            raise DataLoadError(f"Duplicate market {market_id} in price snapshot {file_path}")
        snapshot[market_id] = PriceQuote(
            market_id=market_id,
            bid_yes=_optional_text(row.get("bid_yes")),
            ask_yes=_optional_text(row.get("ask_yes")),
            mid_yes=_optional_text(row.get("mid_yes")),
        )

    return snapshot


def save_settlement_report(
    requests: list[WithdrawalRequest],
    output_path: str | Path,
) -> Path:
    """
    Save the per-request outcome of a settlement epoch to CSV file.

    Args:
        requests: Processed requests from an epoch settlement
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for req in requests:
        records.append({
            "request_id": req.request_id,
            "kind": req.kind.value,
            "status": req.status.value,
            "shares_requested": req.shares_requested,
            "shares_filled": req.shares_filled,
            "payout_this_epoch": req.payout_this_epoch or "",
            "exit_fee_this_epoch": req.exit_fee_this_epoch or "",
            "invalid_reason": req.invalid_reason or "",
        })

    df = pd.DataFrame(records, columns=SETTLEMENT_REPORT_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def save_transfer_instructions(
    instructions: list[TransferInstruction],
    output_path: str | Path,
) -> Path:
    """
    Save in-kind transfer instructions to CSV file, one row per transfer.

    Args:
        instructions: Transfer instructions from a basket epoch
        output_path: Path for output CSV file

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    records = []
    for instruction in instructions:
        for transfer in instruction.transfers:
            records.append({
                "request_id": instruction.request_id,
                "transfer_type": transfer.transfer_type.value,
                "amount": transfer.amount,
                "market_id": transfer.market_id or "",
                "side": transfer.side.value if transfer.side else "",
            })

    df = pd.DataFrame(records, columns=TRANSFERS_SCHEMA.all_columns)
    df.to_csv(output_path, index=False)

    return output_path


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _optional_datetime(value: Optional[str], field_name: str, request_id: str) -> Optional[datetime]:
    text = _optional_text(value)
    if text is None:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise DataLoadError(f"Invalid {field_name} for request {request_id}: {text}")


def _load_csv(file_path: Path, schema: FileSchema) -> pd.DataFrame:
    """
    Load a CSV file as text columns and validate against schema.

    Args:
        file_path: Path to CSV file
        schema: Expected file schema

    Returns:
        Loaded DataFrame (every cell a string, blanks as "")

    Raises:
        DataLoadError: If file cannot be loaded or has missing columns
    """
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    except Exception as e:
        raise DataLoadError(f"Failed to load CSV file {file_path}: {e}")

    is_valid, missing = schema.validate_columns(df.columns.tolist())
    if not is_valid:
        raise DataLoadError(
            f"File {file_path} is missing required columns: {missing}"
        )

    return df
