"""
Fixed-point arithmetic for ledger amounts.

Amounts cross the ledger boundary as decimal strings with at most six
fractional digits ("123.456789") and are held internally as integer
micro-units (1 USDC = 1_000_000). Every share and cash computation in the
engine is integer arithmetic with floor division; converting back to a
string is the only place the scale becomes visible.
"""

import re
from decimal import Decimal
from typing import Any, NewType

from vault_ledger.models import ErrorKind


DECIMALS = 6
SCALE = 10 ** DECIMALS
BPS_DIVISOR = 10_000

# Micro-units at the fixed scale above; kept distinct from plain ints so
# type checkers flag accidental mixing with unscaled values.
Micros = NewType("Micros", int)
BasisPoints = NewType("BasisPoints", int)

ZERO = Micros(0)
ONE = Micros(SCALE)

_AMOUNT_PATTERN = re.compile(r"^-?\d*\.?\d*$", re.ASCII)
_POSITIVE_PATTERN = re.compile(r"^\d+(\.\d+)?$", re.ASCII)
_BPS_PATTERN = re.compile(r"^\d+$", re.ASCII)


class LedgerError(Exception):
    """Base class for ledger input errors; carries the failure kind."""

    kind = ErrorKind.INVALID_FORMAT

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class InvalidFormatError(LedgerError):
    """Raised when an amount or basis-point string is malformed."""
    kind = ErrorKind.INVALID_FORMAT


class PrecisionExceededError(LedgerError):
    """Raised when an amount carries more than DECIMALS fractional digits."""
    kind = ErrorKind.PRECISION_EXCEEDED


class InvalidParameterError(LedgerError):
    """Raised when a basis-point parameter is out of range."""
    kind = ErrorKind.INVALID_PARAMETER


class NegativeValueError(LedgerError):
    """Raised when a balance that must be non-negative is negative."""
    kind = ErrorKind.NEGATIVE_VALUE


def parse_amount(value: Any, name: str = "amount") -> Micros:
    """
    Parse a decimal string into micro-units.

    Accepts an optional leading minus, digits and at most one decimal point.
    "1.5" -> 1_500_000, "-0.000001" -> -1, "7." -> 7_000_000.

    Args:
        value: Decimal string to parse
        name: Field name for error messages

    Returns:
        Amount in micro-units

    Raises:
        InvalidFormatError: If the string is empty or malformed
        PrecisionExceededError: If more than DECIMALS fractional digits are given
    """
    if not isinstance(value, str):
        raise InvalidFormatError(
            f"{name} must be a decimal string (got {type(value).__name__})"
        )

    text = value.strip()
    if not _AMOUNT_PATTERN.match(text) or text in ("", ".", "-", "-."):
        raise InvalidFormatError(f'Invalid number format for {name}: "{text}"')

    negative = text.startswith("-")
    unsigned = text[1:] if negative else text
    integer_part, _, fractional_part = unsigned.partition(".")

    if len(fractional_part) > DECIMALS:
        raise PrecisionExceededError(
            f"Precision mismatch for {name}: {len(fractional_part)} decimals "
            f"provided, max {DECIMALS} allowed"
        )

    micros = int(integer_part or "0") * SCALE + int(fractional_part.ljust(DECIMALS, "0"))
    return Micros(-micros if negative else micros)


def format_amount(micros: int) -> str:
    """
    Format micro-units as a decimal string with exactly DECIMALS places.

    1_500_000 -> "1.500000", -1 -> "-0.000001"
    """
    negative = micros < 0
    integer_part, fractional_part = divmod(abs(micros), SCALE)
    sign = "-" if negative else ""
    return f"{sign}{integer_part}.{fractional_part:0{DECIMALS}d}"


def parse_basis_points(value: Any, name: str = "bps") -> BasisPoints:
    """
    Parse a basis-point parameter.

    Only non-negative integers strictly below 10000 are accepted: a fee or
    buffer can never reach 100%.

    Raises:
        InvalidFormatError: If the value is not a non-negative integer
        InvalidParameterError: If the value is >= 10000
    """
    if isinstance(value, bool):
        raise InvalidFormatError(f"{name} must be a non-negative integer (got {value!r})")

    if isinstance(value, int):
        if value < 0:
            raise InvalidFormatError(f"{name} must be a non-negative integer (got {value})")
        bps = value
    else:
        text = str(value).strip()
        if not _BPS_PATTERN.match(text):
            raise InvalidFormatError(f'{name} must be a non-negative integer (got "{text}")')
        bps = int(text)

    if bps >= BPS_DIVISOR:
        raise InvalidParameterError(f"{name} must be < {BPS_DIVISOR} (got {bps})")

    return BasisPoints(bps)


def require_non_negative(micros: int, name: str) -> Micros:
    """
    Assert a balance is non-negative.

    Returns:
        The value unchanged

    Raises:
        NegativeValueError: If the value is below zero
    """
    if micros < 0:
        raise NegativeValueError(f"{name} cannot be negative (got {format_amount(micros)})")
    return Micros(micros)


def parse_balance(value: Any, name: str) -> Micros:
    """Parse a stored balance, treating a missing value as zero and rejecting negatives."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return ZERO
    return require_non_negative(parse_amount(value, name), name)


def validate_positive_amount(value: Any, name: str = "amount") -> Micros:
    """
    Validate a user-supplied amount: plain positive decimal, no sign.

    Raises:
        InvalidFormatError: If the string is not a plain positive number
        PrecisionExceededError: If more than DECIMALS fractional digits are given
        InvalidParameterError: If the amount is zero
    """
    text = str(value).strip()
    if not _POSITIVE_PATTERN.match(text):
        raise InvalidFormatError(f"{name} must be a positive number (got \"{text}\")")

    micros = parse_amount(text, name)
    if micros <= 0:
        raise InvalidParameterError(f"{name} must be positive")

    return micros


def apply_bps(micros: int, bps: int) -> Micros:
    """Floor of micros * bps / 10000."""
    return Micros(micros * bps // BPS_DIVISOR)


def to_decimal(micros: int) -> Decimal:
    """Exact Decimal view of a micro-unit amount, for reporting."""
    return Decimal(micros).scaleb(-DECIMALS)
