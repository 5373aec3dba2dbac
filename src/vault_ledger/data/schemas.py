"""
Data schemas for CSV file validation.

Defines expected columns for request queues, price snapshots and the
settlement outputs. Amount columns are fixed-point decimal strings and are
always read as text so no precision is lost to float parsing.
"""

from dataclasses import dataclass


@dataclass
class ColumnSchema:
    """Schema definition for a single column."""
    name: str
    dtype: str = "str"  # pandas dtype string
    required: bool = True
    nullable: bool = False


@dataclass
class FileSchema:
    """Schema definition for a file."""
    name: str
    columns: list[ColumnSchema]
    description: str

    @property
    def required_columns(self) -> list[str]:
        """Get list of required column names."""
        return [c.name for c in self.columns if c.required]

    @property
    def all_columns(self) -> list[str]:
        """Get list of all column names."""
        return [c.name for c in self.columns]

    def validate_columns(self, df_columns: list[str]) -> tuple[bool, list[str]]:
        """
        Validate that a dataframe has the required columns.

        Args:
            df_columns: List of column names from the dataframe

        Returns:
            Tuple of (is_valid, list of missing columns)
        """
        missing = [col for col in self.required_columns if col not in df_columns]
        return len(missing) == 0, missing


# Withdrawal / redemption request queue (input/output)
REQUESTS_SCHEMA = FileSchema(
    name="requests",
    description="Withdrawal and redemption requests in arrival order",
    columns=[
        ColumnSchema(name="request_id"),
        ColumnSchema(name="shares_requested"),
        ColumnSchema(name="shares_filled"),
        ColumnSchema(name="status"),
        ColumnSchema(name="kind", required=False),
        ColumnSchema(name="holder", required=False, nullable=True),
        ColumnSchema(name="created_at", required=False),
        ColumnSchema(name="invalid_reason", required=False, nullable=True),
        ColumnSchema(name="payout_this_epoch", required=False, nullable=True),
        ColumnSchema(name="exit_fee_this_epoch", required=False, nullable=True),
        ColumnSchema(name="last_processed_at", required=False, nullable=True),
    ],
)

# Market price snapshot, quoted on the YES side
PRICE_SNAPSHOT_SCHEMA = FileSchema(
    name="price_snapshot",
    description="YES-side bid/ask/mid quotes by market",
    columns=[
        ColumnSchema(name="market_id"),
        ColumnSchema(name="bid_yes", required=False, nullable=True),
        ColumnSchema(name="ask_yes", required=False, nullable=True),
        ColumnSchema(name="mid_yes", required=False, nullable=True),
    ],
)

# Per-request settlement report (output)
SETTLEMENT_REPORT_SCHEMA = FileSchema(
    name="settlement_report",
    description="Per-request fills from one settlement epoch",
    columns=[
        ColumnSchema(name="request_id"),
        ColumnSchema(name="kind"),
        ColumnSchema(name="status"),
        ColumnSchema(name="shares_requested"),
        ColumnSchema(name="shares_filled"),
        ColumnSchema(name="payout_this_epoch", nullable=True),
        ColumnSchema(name="exit_fee_this_epoch", nullable=True),
        ColumnSchema(name="invalid_reason", nullable=True),
    ],
)

# In-kind transfer instructions (output)
TRANSFERS_SCHEMA = FileSchema(
    name="transfers",
    description="Asset transfers owed to in-kind redemption requests",
    columns=[
        ColumnSchema(name="request_id"),
        ColumnSchema(name="transfer_type"),
        ColumnSchema(name="amount"),
        ColumnSchema(name="market_id", nullable=True),
        ColumnSchema(name="side", nullable=True),
    ],
)
