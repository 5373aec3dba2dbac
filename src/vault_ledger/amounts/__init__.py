"""
Fixed-point amount handling for the Vault Ledger.

Provides parsing/formatting between decimal strings and integer micro-units,
basis-point validation and non-negativity guards.
"""

from vault_ledger.amounts.fixed_point import (
    BPS_DIVISOR,
    DECIMALS,
    ONE,
    SCALE,
    ZERO,
    BasisPoints,
    InvalidFormatError,
    InvalidParameterError,
    LedgerError,
    Micros,
    NegativeValueError,
    PrecisionExceededError,
    apply_bps,
    format_amount,
    parse_amount,
    parse_balance,
    parse_basis_points,
    require_non_negative,
    to_decimal,
    validate_positive_amount,
)

__all__ = [
    "BPS_DIVISOR",
    "DECIMALS",
    "ONE",
    "SCALE",
    "ZERO",
    "BasisPoints",
    "InvalidFormatError",
    "InvalidParameterError",
    "LedgerError",
    "Micros",
    "NegativeValueError",
    "PrecisionExceededError",
    "apply_bps",
    "format_amount",
    "parse_amount",
    "parse_balance",
    "parse_basis_points",
    "require_non_negative",
    "to_decimal",
    "validate_positive_amount",
]
