"""
Tests for withdrawal requests, cancellation and immediate withdrawals.
"""

from dataclasses import replace

from vault_ledger.engine import (
    cancel_withdrawal,
    request_withdrawal,
    withdraw_early,
    withdraw_open,
)
from vault_ledger.models import ErrorKind, RedemptionKind, RequestStatus, Vault


class TestRequestWithdrawal:
    """Tests for request_withdrawal."""

    def test_escrows_shares(self, trading_vault: Vault):
        outcome = request_withdrawal(trading_vault, "50", "100", holder="alice")

        assert outcome.success
        escrow = outcome.value
        assert escrow.shares_to_escrow == "50.000000"
        assert escrow.request.shares_requested == "50.000000"
        assert escrow.request.shares_filled == "0.000000"
        assert escrow.request.status == RequestStatus.PENDING
        assert escrow.request.kind == RedemptionKind.CASH
        assert escrow.request.holder == "alice"
        assert escrow.request.request_id.startswith("wr-")

    def test_does_not_touch_vault(self, trading_vault: Vault):
        """Test requesting only escrows; nothing is burned or paid."""
        before = replace(trading_vault)

        request_withdrawal(trading_vault, "50", "100")

        assert trading_vault == before

    def test_more_than_holder_balance(self, trading_vault: Vault):
        outcome = request_withdrawal(trading_vault, "150", "100")

        assert outcome.error_kind == ErrorKind.INSUFFICIENT_SHARES

    def test_only_during_trading(self, open_vault: Vault):
        outcome = request_withdrawal(open_vault, "10", "100")

        assert outcome.error_kind == ErrorKind.STAGE_VIOLATION

    def test_zero_shares(self, trading_vault: Vault):
        assert request_withdrawal(trading_vault, "0", "100").error_kind == ErrorKind.INVALID_PARAMETER


class TestCancelWithdrawal:
    """Tests for cancel_withdrawal."""

    def test_returns_unfilled_remainder(self, make_request):
        request = make_request(
            "100.000000", "30.000000", status=RequestStatus.PARTIALLY_FILLED
        )

        outcome = cancel_withdrawal(request)

        assert outcome.success
        assert outcome.value.shares_to_return == "70.000000"
        assert outcome.value.request.status == RequestStatus.CANCELLED
        assert outcome.value.request.shares_filled == "30.000000"
        # Original request untouched
        assert request.status == RequestStatus.PARTIALLY_FILLED

    def test_pending_returns_everything(self, make_request):
        outcome = cancel_withdrawal(make_request("25.500000"))

        assert outcome.value.shares_to_return == "25.500000"

    def test_already_cancelled(self, make_request):
        request = make_request("100.000000", status=RequestStatus.CANCELLED)

        assert cancel_withdrawal(request).error_kind == ErrorKind.NOTHING_TO_CANCEL

    def test_invalid_request(self, make_request):
        request = make_request("100.000000", status=RequestStatus.INVALID)

        assert cancel_withdrawal(request).error_kind == ErrorKind.NOTHING_TO_CANCEL

    def test_fully_filled(self, make_request):
        request = make_request("100.000000", "100.000000", status=RequestStatus.COMPLETED)

        outcome = cancel_withdrawal(request)

        assert outcome.error_kind == ErrorKind.NOTHING_TO_CANCEL
        assert "fully filled" in outcome.error

    def test_corrupt_request(self, make_request):
        request = make_request("100.000000", "120.000000", status=RequestStatus.PARTIALLY_FILLED)

        assert cancel_withdrawal(request).error_kind == ErrorKind.CORRUPT_REQUEST

    def test_malformed_request(self, make_request):
        assert cancel_withdrawal(make_request("abc")).error_kind == ErrorKind.INVALID_FORMAT


class TestWithdrawOpen:
    """Tests for fee-free withdrawals while the vault is Open."""

    def test_pro_rata_payout(self, open_vault: Vault):
        # 1000 USDC / 800 shares: 80 shares -> 100 USDC
        outcome = withdraw_open(open_vault, "80", "200")

        assert outcome.success
        quote = outcome.value
        assert quote.exit_fee == "0.000000"
        assert quote.payout == "100.000000"
        assert quote.new_vault_usdc == "900.000000"
        assert quote.new_total_shares == "720.000000"
        assert quote.updated_vault.cash_usdc == "900.000000"

    def test_more_than_holder_balance(self, open_vault: Vault):
        assert withdraw_open(open_vault, "80", "50").error_kind == ErrorKind.INSUFFICIENT_SHARES

    def test_more_than_total_shares(self, open_vault: Vault):
        assert withdraw_open(open_vault, "900", "900").error_kind == ErrorKind.INSUFFICIENT_SHARES

    def test_wrong_stage(self, trading_vault: Vault):
        assert withdraw_open(trading_vault, "10", "100").error_kind == ErrorKind.STAGE_VIOLATION


class TestWithdrawEarly:
    """Tests for instant withdrawals during trading."""

    def test_paid_from_cash_with_fee(self, trading_vault: Vault):
        outcome = withdraw_early(trading_vault, "10", "100")

        assert outcome.success
        quote = outcome.value
        assert quote.gross_value == "10.000000"
        assert quote.exit_fee == "0.500000"
        assert quote.payout == "9.500000"
        assert quote.new_vault_usdc == "990.500000"
        assert quote.new_total_shares == "990.000000"

    def test_priced_at_supplied_equity(self, trading_vault: Vault):
        """Test value uses mark-to-market equity, not just cash."""
        outcome = withdraw_early(trading_vault, "500", "500", equity="2000")

        assert outcome.success
        assert outcome.value.gross_value == "1000.000000"
        assert outcome.value.payout == "950.000000"
        assert outcome.value.new_vault_usdc == "50.000000"

    def test_insufficient_buffer(self, trading_vault: Vault):
        """Test payouts larger than cash must go through the queue."""
        outcome = withdraw_early(trading_vault, "600", "600", equity="2000")

        assert not outcome.success
        assert outcome.error_kind == ErrorKind.INSUFFICIENT_BUFFER

    def test_wrong_stage(self, open_vault: Vault):
        assert withdraw_early(open_vault, "10", "100").error_kind == ErrorKind.STAGE_VIOLATION

    def test_holder_balance(self, trading_vault: Vault):
        assert withdraw_early(trading_vault, "10", "5").error_kind == ErrorKind.INSUFFICIENT_SHARES
