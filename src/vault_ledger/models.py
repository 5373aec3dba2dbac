"""
Core data models for the Vault Ledger.

This module defines the fundamental data structures used throughout the system,
including vaults, withdrawal/redemption requests, basket positions, price
quotes, settlement results and the outcome wrapper returned by every ledger
operation. Monetary and share quantities cross this boundary as fixed-point
decimal strings (6 implied decimals); all arithmetic happens on integer
micro-units inside the engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar
import uuid


T = TypeVar("T")


class VaultStage(Enum):
    """Vault lifecycle stage."""
    OPEN = "Open"              # Deposits allowed, no trading
    TRADING = "Trading"        # Deposits locked, manager trades, withdrawals queue
    SETTLEMENT = "Settlement"  # No new trades, manager closes positions
    CLOSED = "Closed"          # Holders redeem pro-rata


class RequestStatus(Enum):
    """Withdrawal/redemption request status."""
    PENDING = "Pending"
    PARTIALLY_FILLED = "PartiallyFilled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    INVALID = "Invalid"


class RedemptionKind(Enum):
    """How a request is paid out."""
    CASH = "CASH"
    IN_KIND = "IN_KIND"


class PositionSide(Enum):
    """Outcome side held by a basket position."""
    YES = "YES"
    NO = "NO"


class PriceMode(Enum):
    """Which side of the book a position is marked against."""
    MID = "MID"
    BID = "BID"
    ASK = "ASK"


class TransferType(Enum):
    """Asset carried by an in-kind transfer."""
    USDC = "USDC"
    POSITION = "POSITION"


class ErrorKind(Enum):
    """Reason attached to a failed ledger operation."""
    INVALID_FORMAT = "InvalidFormat"
    PRECISION_EXCEEDED = "PrecisionExceeded"
    INVALID_PARAMETER = "InvalidParameter"
    NEGATIVE_VALUE = "NegativeValue"
    STAGE_VIOLATION = "StageViolation"
    OPEN_POSITIONS = "OpenPositions"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    INSUFFICIENT_SHARES = "InsufficientShares"
    INSUFFICIENT_BUFFER = "InsufficientBuffer"
    ZERO_EQUITY = "ZeroEquity"
    ZERO_SHARES = "ZeroShares"
    NO_PENDING_REQUESTS = "NoPendingRequests"
    NOTHING_TO_CANCEL = "NothingToCancel"
    CORRUPT_REQUEST = "CorruptRequest"
    MISSING_PRICE = "MissingPrice"
    TIMING_VIOLATION = "TimingViolation"


class ActionType(Enum):
    """Types of logged actions for the ledger log."""
    CONFIG_LOADED = "CONFIG_LOADED"
    VAULT_CREATED = "VAULT_CREATED"
    STAGE_CHANGED = "STAGE_CHANGED"
    DEPOSIT_PROCESSED = "DEPOSIT_PROCESSED"
    WITHDRAWAL_PROCESSED = "WITHDRAWAL_PROCESSED"
    WITHDRAWAL_REQUESTED = "WITHDRAWAL_REQUESTED"
    WITHDRAWAL_CANCELLED = "WITHDRAWAL_CANCELLED"
    EPOCH_SETTLED = "EPOCH_SETTLED"
    BASKET_EPOCH_SETTLED = "BASKET_EPOCH_SETTLED"
    REDEMPTION_PROCESSED = "REDEMPTION_PROCESSED"
    OPERATION_REJECTED = "OPERATION_REJECTED"


# Statuses a settlement pass never touches
TERMINAL_STATUSES = frozenset({
    RequestStatus.COMPLETED,
    RequestStatus.CANCELLED,
    RequestStatus.INVALID,
})


@dataclass
class Position:
    """
    A basket holding in a single binary market.

    Attributes:
        market_id: Market identifier, key into the price snapshot
        side: YES or NO
        shares: Outcome shares held (fixed-point string)
    """
    market_id: str
    side: PositionSide
    shares: str = "0.000000"


@dataclass
class PriceQuote:
    """
    Price snapshot entry for one market, quoted on the YES side.

    NO prices are derived from these under the chosen PriceMode.
    """
    market_id: str
    bid_yes: Optional[str] = None
    ask_yes: Optional[str] = None
    mid_yes: Optional[str] = None


@dataclass
class Vault:
    """
    Pooled-fund vault state.

    The persisted record of a vault: balances are fixed-point strings exactly
    as stored, fee and buffer parameters are basis points. Ledger operations
    never mutate a Vault in place; they return an updated copy.

    Attributes:
        vault_id: Unique vault identifier
        stage: Lifecycle stage
        cash_usdc: USDC held by the vault
        total_shares: Shares outstanding (including escrowed shares)
        high_water_mark: Peak vault value, never decreases
        initial_aum_usdc: Cash snapshot taken when trading starts
        deposit_fee_bps: Fee on deposits
        perf_fee_bps: Fee on profit above initial AUM, charged at close
        early_exit_fee_bps: Fee on withdrawals settled during trading
        liquidity_buffer_bps: Share of cash held back from withdrawals
        perf_fee_due_usdc: Performance fee computed at close
        perf_fee_paid: Whether the performance fee has left the vault
        positions: Basket positions (empty for cash-only vaults)
    """
    vault_id: str
    stage: VaultStage = VaultStage.OPEN
    name: str = ""
    symbol: str = ""
    cash_usdc: str = "0.000000"
    total_shares: str = "0.000000"
    high_water_mark: str = "0.000000"
    initial_aum_usdc: str = "0.000000"
    deposit_fee_bps: int | str = 0
    perf_fee_bps: int | str = 0
    early_exit_fee_bps: int | str = 500
    liquidity_buffer_bps: int | str = 1000
    perf_fee_due_usdc: str = "0.000000"
    perf_fee_paid: bool = False
    positions: list[Position] = field(default_factory=list)
    trading_start: Optional[datetime] = None
    trading_end: Optional[datetime] = None


@dataclass
class WithdrawalRequest:
    """
    A holder's queued request to exit the vault.

    Also used for basket redemption requests, where `kind` selects cash or
    in-kind settlement. Only epoch settlement (fill) and cancellation
    (unfilled remainder) change a request after it is created.

    Attributes:
        request_id: Unique identifier
        shares_requested: Shares escrowed for this request
        shares_filled: Shares already burned and paid
        status: Current status
        kind: CASH or IN_KIND
        holder: Holder identifier (optional)
        created_at: Arrival time; settlement is FIFO in list order
        invalid_reason: Why the request was flagged Invalid
        payout_this_epoch: Net USDC paid in the most recent epoch
        exit_fee_this_epoch: Fee retained in the most recent epoch
        last_processed_at: When the request was last filled
    """
    request_id: str
    shares_requested: str
    shares_filled: str = "0.000000"
    status: RequestStatus = RequestStatus.PENDING
    kind: RedemptionKind = RedemptionKind.CASH
    holder: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    invalid_reason: Optional[str] = None
    payout_this_epoch: Optional[str] = None
    exit_fee_this_epoch: Optional[str] = None
    last_processed_at: Optional[datetime] = None

    @classmethod
    def create(
        cls,
        shares_requested: str,
        kind: RedemptionKind = RedemptionKind.CASH,
        holder: str = "",
    ) -> "WithdrawalRequest":
        """Factory method to create a pending request with auto-generated ID."""
        prefix = "red" if kind == RedemptionKind.IN_KIND else "wr"
        return cls(
            request_id=f"{prefix}-{uuid.uuid4().hex[:12]}",
            shares_requested=shares_requested,
            kind=kind,
            holder=holder,
        )

    @property
    def is_active(self) -> bool:
        """True while the request can still be filled or cancelled."""
        return self.status not in TERMINAL_STATUSES


@dataclass
class ProtocolLimits:
    """
    Protocol-wide caps applied when vaults are created.

    Attributes:
        max_deposit_fee_bps: Maximum deposit fee (300 = 3%)
        max_perf_fee_bps: Maximum performance fee (3000 = 30%)
        max_early_exit_fee_bps: Maximum early exit fee (500 = 5%)
        min_buffer_bps: Minimum liquidity buffer (500 = 5%)
        default_epoch_interval_secs: Settlement cadence (86400 = 24h)
    """
    max_deposit_fee_bps: int = 300
    max_perf_fee_bps: int = 3000
    max_early_exit_fee_bps: int = 500
    min_buffer_bps: int = 500
    default_epoch_interval_secs: int = 86400


@dataclass
class Outcome(Generic[T]):
    """
    Result of a ledger operation: either a value or a failure reason.

    Ledger operations never raise for domain failures; callers inspect
    `success` and surface `error` to the user.
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error_kind: ErrorKind, error: str) -> "Outcome[T]":
        return cls(success=False, error=error, error_kind=error_kind)


@dataclass
class DepositQuote:
    """Fee split, minted shares and the resulting vault totals for a deposit."""
    deposit_fee: str
    net_amount: str
    shares_to_mint: str
    new_vault_usdc: str
    new_total_shares: str
    new_high_water_mark: str
    updated_vault: Vault


@dataclass
class WithdrawalQuote:
    """Payout for an immediate (open-stage or early) withdrawal."""
    gross_value: str
    exit_fee: str
    payout: str
    new_vault_usdc: str
    new_total_shares: str
    updated_vault: Vault


@dataclass
class WithdrawalEscrow:
    """Shares moved from the holder's active balance into escrow."""
    shares_to_escrow: str
    request: WithdrawalRequest


@dataclass
class CancelQuote:
    """Unfilled shares returned to the holder's active balance."""
    shares_to_return: str
    request: WithdrawalRequest


@dataclass
class EpochSettlement:
    """
    Output of one withdrawal settlement epoch.

    Attributes:
        processed_requests: Requests in input order, with fills applied
        total_shares_burned: Shares burned across all fills
        total_net_paid: USDC paid out, net of fees
        total_exit_fees_retained: Fees kept in the vault
        required_buffer: Cash held back by the buffer policy
        available_liquidity: Cash available to requests at epoch start
        new_vault_usdc: Vault cash after payouts
        new_total_shares: Shares outstanding after burns
        updated_vault: Vault with the new totals applied
    """
    processed_requests: list[WithdrawalRequest]
    total_shares_burned: str
    total_net_paid: str
    total_exit_fees_retained: str
    required_buffer: str
    available_liquidity: str
    new_vault_usdc: str
    new_total_shares: str
    updated_vault: Vault


@dataclass
class RedemptionPayout:
    """Closed-stage pro-rata payout."""
    payout: str
    fee_deducted: str
    perf_fee_paid_after: bool
    new_vault_usdc: str
    new_total_shares: str
    updated_vault: Vault


@dataclass
class CloseQuote:
    """Performance fee assessment made when a vault closes."""
    profit: str
    perf_fee_due: str
    updated_vault: Vault


@dataclass
class Transfer:
    """One asset movement out of the vault for an in-kind redemption."""
    transfer_type: TransferType
    amount: str
    market_id: Optional[str] = None
    side: Optional[PositionSide] = None


@dataclass
class TransferInstruction:
    """All transfers owed to one in-kind request."""
    request_id: str
    transfers: list[Transfer]


@dataclass
class BasketEpochSettlement:
    """
    Output of one basket redemption epoch (CASH and IN_KIND together).

    Attributes:
        processed_requests: Requests in input order, with fills applied
        transfer_instructions: In-kind transfers, one entry per filled request
        total_shares_burned: Shares burned by both modes
        total_cash_paid: USDC paid to CASH requests, net of fees
        total_exit_fees_retained: Fees kept in the vault
        cash_buffer_reserved: Cash held back by the buffer policy
        nav_equity_used: Equity used to price CASH redemptions
        nav_mode_used: Price mode behind nav_equity_used
        new_cash_usdc: Vault cash after all settlements
        new_total_shares: Shares outstanding after burns
        updated_vault: Vault with cash, shares and positions applied
    """
    processed_requests: list[WithdrawalRequest]
    transfer_instructions: list[TransferInstruction]
    total_shares_burned: str
    total_cash_paid: str
    total_exit_fees_retained: str
    cash_buffer_reserved: str
    nav_equity_used: str
    nav_mode_used: PriceMode
    new_cash_usdc: str
    new_total_shares: str
    updated_vault: Vault


@dataclass
class LedgerLogEntry:
    """
    Entry for the append-only ledger log.

    Attributes:
        timestamp: When the action occurred
        action_type: Type of action
        vault_id: Vault involved (if applicable)
        details: JSON-serializable details dictionary
    """
    timestamp: datetime
    action_type: ActionType
    vault_id: Optional[str]
    details: dict

    @classmethod
    def create(
        cls,
        action_type: ActionType,
        vault_id: Optional[str],
        details: dict,
    ) -> "LedgerLogEntry":
        """Factory method with auto-generated timestamp."""
        return cls(
            timestamp=datetime.now(),
            action_type=action_type,
            vault_id=vault_id,
            details=details,
        )
