"""
Tests for basket pricing and dual-mode (cash / in-kind) redemption.
"""

from dataclasses import replace

import pytest

from vault_ledger.amounts import parse_amount
from vault_ledger.basket import (
    MissingPriceError,
    build_inverse_positions,
    cancel_redemption_request,
    compute_equity,
    create_redemption_request,
    price_for,
    settle_basket_epoch,
)
from vault_ledger.models import (
    ErrorKind,
    Position,
    PositionSide,
    PriceMode,
    PriceQuote,
    RedemptionKind,
    RequestStatus,
    TransferType,
    Vault,
    VaultStage,
)


IN_KIND = RedemptionKind.IN_KIND


class TestPricing:
    """Tests for outcome-share prices."""

    @pytest.mark.parametrize("side,mode,expected", [
        (PositionSide.YES, PriceMode.MID, 450_000),
        (PositionSide.YES, PriceMode.BID, 400_000),
        (PositionSide.YES, PriceMode.ASK, 500_000),
        (PositionSide.NO, PriceMode.MID, 550_000),
        (PositionSide.NO, PriceMode.BID, 500_000),  # 1 - ask_yes
        (PositionSide.NO, PriceMode.ASK, 600_000),  # 1 - bid_yes
    ])
    def test_derived_prices(self, price_snapshot, side, mode, expected):
        assert price_for(price_snapshot, "MKT-A", side, mode) == expected

    def test_mid_falls_back_to_midpoint(self, price_snapshot):
        assert price_for(price_snapshot, "MKT-B", PositionSide.YES, PriceMode.MID) == 250_000

    def test_prices_clamped(self):
        snapshot = {"M": PriceQuote(market_id="M", bid_yes="-0.10", ask_yes="1.20")}

        assert price_for(snapshot, "M", PositionSide.YES, PriceMode.BID) == 0
        assert price_for(snapshot, "M", PositionSide.YES, PriceMode.ASK) == 1_000_000

    def test_no_bid_falls_back_to_mid(self):
        snapshot = {"M": PriceQuote(market_id="M", mid_yes="0.45")}

        assert price_for(snapshot, "M", PositionSide.NO, PriceMode.BID) == 550_000

    def test_missing_market(self, price_snapshot):
        with pytest.raises(MissingPriceError):
            price_for(price_snapshot, "MKT-Z", PositionSide.YES)

    def test_missing_side(self):
        snapshot = {"M": PriceQuote(market_id="M", mid_yes="0.45")}

        with pytest.raises(MissingPriceError):
            price_for(snapshot, "M", PositionSide.YES, PriceMode.BID)


class TestEquity:
    """Tests for compute_equity."""

    def test_mid_equity(self, basket_vault: Vault, price_snapshot):
        # 1000 cash + 500 * 0.45 + 200 * 0.75
        assert compute_equity(basket_vault, price_snapshot).value == "1375.000000"

    def test_bid_equity(self, basket_vault: Vault, price_snapshot):
        # 1000 cash + 500 * 0.40 + 200 * (1 - 0.30)
        assert compute_equity(basket_vault, price_snapshot, PriceMode.BID).value == "1340.000000"

    def test_flat_positions_need_no_price(self, basket_vault: Vault):
        vault = replace(basket_vault, positions=[
            Position(market_id="MKT-Z", side=PositionSide.YES, shares="0"),
        ])

        assert compute_equity(vault, {}).value == "1000.000000"

    def test_missing_price_fails(self, basket_vault: Vault, price_snapshot):
        del price_snapshot["MKT-B"]

        outcome = compute_equity(basket_vault, price_snapshot)

        assert outcome.error_kind == ErrorKind.MISSING_PRICE

    def test_inverse_positions(self, basket_vault: Vault):
        inverse = build_inverse_positions(basket_vault.positions)

        assert [p.side for p in inverse] == [PositionSide.NO, PositionSide.YES]
        assert [p.shares for p in inverse] == ["500.000000", "200.000000"]


class TestRedemptionRequests:
    """Tests for creating and cancelling basket redemption requests."""

    def test_create_in_kind(self):
        request = create_redemption_request("IN_KIND", "10", holder="bob").value

        assert request.kind == RedemptionKind.IN_KIND
        assert request.shares_requested == "10.000000"
        assert request.status == RequestStatus.PENDING
        assert request.request_id.startswith("red-")

    def test_invalid_kind(self):
        assert create_redemption_request("BOTH", "10").error_kind == ErrorKind.INVALID_PARAMETER

    def test_invalid_shares(self):
        assert create_redemption_request(IN_KIND, "0").error_kind == ErrorKind.INVALID_PARAMETER

    def test_cancel(self, make_request):
        request = make_request("10.000000", kind=IN_KIND)

        outcome = cancel_redemption_request(request)

        assert outcome.value.shares_to_return == "10.000000"
        assert outcome.value.request.status == RequestStatus.CANCELLED


class TestSettleBasketEpoch:
    """Tests for settle_basket_epoch."""

    def test_in_kind_slice(self, basket_vault: Vault, price_snapshot, make_request):
        """Test an in-kind request receives a pro-rata slice of cash and every position."""
        request = make_request("100.000000", kind=IN_KIND)

        settlement = settle_basket_epoch(basket_vault, [request], price_snapshot).value

        instruction = settlement.transfer_instructions[0]
        assert instruction.request_id == request.request_id
        transfers = [(t.transfer_type, t.amount, t.market_id, t.side) for t in instruction.transfers]
        assert transfers == [
            (TransferType.USDC, "100.000000", None, None),
            (TransferType.POSITION, "50.000000", "MKT-A", PositionSide.YES),
            (TransferType.POSITION, "20.000000", "MKT-B", PositionSide.NO),
        ]

        assert settlement.processed_requests[0].status == RequestStatus.COMPLETED
        assert settlement.processed_requests[0].shares_filled == "100.000000"
        assert settlement.total_cash_paid == "0.000000"
        assert settlement.new_cash_usdc == "900.000000"
        assert settlement.new_total_shares == "900.000000"
        assert [p.shares for p in settlement.updated_vault.positions] == ["450.000000", "180.000000"]

    def test_in_kind_without_cash(self, basket_vault: Vault, price_snapshot, make_request):
        request = make_request("100.000000", kind=IN_KIND)

        settlement = settle_basket_epoch(
            basket_vault, [request], price_snapshot, in_kind_include_cash=False
        ).value

        types = [t.transfer_type for t in settlement.transfer_instructions[0].transfers]
        assert TransferType.USDC not in types
        assert settlement.new_cash_usdc == "1000.000000"

    def test_cash_priced_at_bid(self, basket_vault: Vault, price_snapshot, make_request):
        """Test cash redemptions use conservative bid-marked equity and pay the exit fee."""
        request = make_request("100.000000")

        settlement = settle_basket_epoch(basket_vault, [request], price_snapshot).value

        filled = settlement.processed_requests[0]
        assert settlement.nav_mode_used == PriceMode.BID
        assert settlement.nav_equity_used == "1340.000000"
        assert filled.status == RequestStatus.COMPLETED
        assert filled.payout_this_epoch == "127.300000"
        assert filled.exit_fee_this_epoch == "6.700000"
        assert settlement.cash_buffer_reserved == "100.000000"
        assert settlement.new_cash_usdc == "872.700000"
        assert settlement.transfer_instructions == []

    def test_mixed_queue_order_independent_for_in_kind(self, basket_vault: Vault, price_snapshot, make_request):
        """Test in-kind terms do not depend on where the request sits in the queue."""
        cash_first = [make_request("100.000000"), make_request("100.000000", kind=IN_KIND)]
        in_kind_first = [make_request("100.000000", kind=IN_KIND), make_request("100.000000")]

        a = settle_basket_epoch(basket_vault, cash_first, price_snapshot).value
        b = settle_basket_epoch(basket_vault, in_kind_first, price_snapshot).value

        amounts_a = [t.amount for t in a.transfer_instructions[0].transfers]
        amounts_b = [t.amount for t in b.transfer_instructions[0].transfers]
        assert amounts_a == amounts_b == ["100.000000", "50.000000", "20.000000"]
        assert a.new_cash_usdc == b.new_cash_usdc == "772.700000"
        assert a.new_total_shares == b.new_total_shares == "800.000000"

    def test_in_kind_cash_reserved_before_cash_fills(self, basket_vault: Vault, price_snapshot, make_request):
        """Test a large cash request cannot take the in-kind holder's cash."""
        requests = [make_request("1000.000000"), make_request("100.000000", kind=IN_KIND)]

        settlement = settle_basket_epoch(basket_vault, requests, price_snapshot).value

        cash_request, in_kind = settlement.processed_requests
        assert cash_request.status == RequestStatus.PARTIALLY_FILLED
        assert parse_amount(cash_request.payout_this_epoch) <= parse_amount("800")
        assert in_kind.status == RequestStatus.COMPLETED
        assert settlement.transfer_instructions[0].transfers[0].amount == "100.000000"
        assert parse_amount(settlement.new_cash_usdc) >= 0

    def test_share_and_asset_conservation(self, basket_vault: Vault, price_snapshot, make_request):
        requests = [
            make_request("333.333333", kind=IN_KIND),
            make_request("250.000000"),
            make_request("123.456789", kind=IN_KIND),
        ]

        settlement = settle_basket_epoch(basket_vault, requests, price_snapshot).value

        burned = sum(parse_amount(r.shares_filled) for r in settlement.processed_requests)
        assert parse_amount(settlement.total_shares_burned) == burned
        assert parse_amount(settlement.new_total_shares) == parse_amount("1000") - burned

        moved_a = sum(
            parse_amount(t.amount)
            for i in settlement.transfer_instructions for t in i.transfers
            if t.market_id == "MKT-A"
        )
        remaining_a = parse_amount(settlement.updated_vault.positions[0].shares)
        assert moved_a + remaining_a == parse_amount("500")

        cash_out = sum(
            parse_amount(t.amount)
            for i in settlement.transfer_instructions for t in i.transfers
            if t.transfer_type == TransferType.USDC
        ) + parse_amount(settlement.total_cash_paid)
        assert parse_amount(settlement.new_cash_usdc) == parse_amount("1000") - cash_out

    def test_oversized_in_kind_request_invalid(self, basket_vault: Vault, price_snapshot, make_request):
        request = make_request("2000.000000", kind=IN_KIND)

        settlement = settle_basket_epoch(basket_vault, [request], price_snapshot).value

        assert settlement.processed_requests[0].status == RequestStatus.INVALID
        assert settlement.new_total_shares == "1000.000000"

    def test_corrupt_request_invalid(self, basket_vault: Vault, price_snapshot, make_request):
        corrupt = make_request("10.000000", "20.000000", status=RequestStatus.PARTIALLY_FILLED, kind=IN_KIND)

        settlement = settle_basket_epoch(basket_vault, [corrupt], price_snapshot).value

        assert settlement.processed_requests[0].status == RequestStatus.INVALID
        assert settlement.transfer_instructions == []

    def test_missing_price(self, basket_vault: Vault, price_snapshot, make_request):
        del price_snapshot["MKT-A"]

        outcome = settle_basket_epoch(basket_vault, [make_request("10")], price_snapshot)

        assert outcome.error_kind == ErrorKind.MISSING_PRICE

    def test_zero_equity(self, trading_vault: Vault, make_request):
        vault = replace(trading_vault, cash_usdc="0")

        outcome = settle_basket_epoch(vault, [make_request("10")], {})

        assert outcome.error_kind == ErrorKind.ZERO_EQUITY

    def test_zero_shares(self, basket_vault: Vault, price_snapshot, make_request):
        vault = replace(basket_vault, total_shares="0")

        outcome = settle_basket_epoch(vault, [make_request("10")], price_snapshot)

        assert outcome.error_kind == ErrorKind.ZERO_SHARES

    def test_wrong_stage(self, basket_vault: Vault, price_snapshot, make_request):
        vault = replace(basket_vault, stage=VaultStage.CLOSED)

        outcome = settle_basket_epoch(vault, [make_request("10")], price_snapshot)

        assert outcome.error_kind == ErrorKind.STAGE_VIOLATION

    def test_no_pending(self, basket_vault: Vault, price_snapshot):
        assert settle_basket_epoch(basket_vault, [], price_snapshot).error_kind == ErrorKind.NO_PENDING_REQUESTS
