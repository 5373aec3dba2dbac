"""
Basket position pricing and equity.

Positions are binary-market outcome shares priced between 0 and 1 USDC.
Snapshots quote the YES side only; NO prices are derived:
- MID: NO = 1 - YES mid
- BID: NO bid = 1 - YES ask
- ASK: NO ask = 1 - YES bid
"""

from typing import Optional

from vault_ledger.amounts import (
    ONE,
    LedgerError,
    Micros,
    format_amount,
    parse_amount,
    parse_balance,
)
from vault_ledger.engine.guards import failure
from vault_ledger.models import (
    ErrorKind,
    Outcome,
    Position,
    PositionSide,
    PriceMode,
    PriceQuote,
    Vault,
)


PriceSnapshot = dict[str, PriceQuote]


class MissingPriceError(LedgerError):
    """Raised when the snapshot has no usable price for a position."""
    kind = ErrorKind.MISSING_PRICE


def _clamp(price: int) -> Micros:
    return Micros(min(max(price, 0), ONE))


def _first_price(quote: PriceQuote, *candidates: Optional[str]) -> Micros:
    for candidate in candidates:
        if candidate is not None and str(candidate).strip():
            return _clamp(parse_amount(str(candidate), f"price({quote.market_id})"))
    raise MissingPriceError(f"Missing YES price in snapshot for market {quote.market_id}")


def yes_price(quote: PriceQuote, mode: PriceMode) -> Micros:
    """
    YES price for a quote under the given mode, clamped to [0, 1].

    MID falls back to the bid/ask midpoint, then to whichever side is quoted.
    """
    if mode == PriceMode.BID:
        return _first_price(quote, quote.bid_yes)
    if mode == PriceMode.ASK:
        return _first_price(quote, quote.ask_yes)
    if mode == PriceMode.MID:
        if quote.mid_yes is not None and str(quote.mid_yes).strip():
            return _first_price(quote, quote.mid_yes)
        if quote.bid_yes is not None and quote.ask_yes is not None:
            bid = _first_price(quote, quote.bid_yes)
            ask = _first_price(quote, quote.ask_yes)
            return Micros((bid + ask) // 2)
        return _first_price(quote, quote.bid_yes, quote.ask_yes)
    raise ValueError(f"Unknown price mode: {mode}")


def price_for(
    snapshot: PriceSnapshot,
    market_id: str,
    side: PositionSide,
    mode: PriceMode = PriceMode.MID,
) -> Micros:
    """
    Price of one outcome share in micro-units.

    Raises:
        MissingPriceError: If the market or the needed quote is missing
    """
    quote = snapshot.get(market_id)
    if quote is None:
        raise MissingPriceError(f"Missing snapshot for market {market_id}")

    if side == PositionSide.YES:
        return yes_price(quote, mode)

    if mode == PriceMode.MID:
        return Micros(ONE - yes_price(quote, PriceMode.MID))
    if mode == PriceMode.BID:
        return Micros(ONE - _first_price(quote, quote.ask_yes, quote.mid_yes, quote.bid_yes))
    if mode == PriceMode.ASK:
        return Micros(ONE - _first_price(quote, quote.bid_yes, quote.mid_yes, quote.ask_yes))
    raise ValueError(f"Unknown price mode: {mode}")


def equity_micros(
    vault: Vault,
    snapshot: PriceSnapshot,
    mode: PriceMode = PriceMode.MID,
) -> Micros:
    """
    cash + sum(position shares * price) in micro-units.

    Raises:
        LedgerError: On negative balances or missing prices
    """
    cash = parse_balance(vault.cash_usdc, "cash_usdc")
    position_value = 0
    for position in vault.positions:
        shares = parse_balance(position.shares, f"position_shares({position.market_id})")
        if shares == 0:
            continue
        price = price_for(snapshot, position.market_id, position.side, mode)
        position_value += shares * price // ONE
    return Micros(cash + position_value)


def compute_equity(
    vault: Vault,
    snapshot: PriceSnapshot,
    mode: PriceMode = PriceMode.MID,
) -> Outcome[str]:
    """
    Vault equity marked against a price snapshot.

    Args:
        vault: Vault with cash and positions
        snapshot: Quotes keyed by market id
        mode: Pricing mode (MID for reporting, BID for cash redemptions)

    Returns:
        Outcome wrapping the equity as a decimal string
    """
    try:
        return Outcome.ok(format_amount(equity_micros(vault, snapshot, mode)))
    except LedgerError as e:
        return failure(e)


def build_inverse_positions(positions: list[Position]) -> list[Position]:
    """Positions with every side flipped (YES <-> NO), same share counts."""
    return [
        Position(
            market_id=p.market_id,
            side=PositionSide.NO if p.side == PositionSide.YES else PositionSide.YES,
            shares=p.shares,
        )
        for p in positions
    ]
