"""
Tests for closed-stage redemption and the one-time performance fee.
"""

from dataclasses import replace

from vault_ledger.amounts import parse_amount
from vault_ledger.engine import calculate_redemption
from vault_ledger.models import ErrorKind, Vault


class TestRedemption:
    """Tests for calculate_redemption."""

    def test_first_redemption_pays_fee(self, closed_vault: Vault):
        """Test 100 of 1000 shares after a 100 USDC fee on 1500 USDC pays 140."""
        outcome = calculate_redemption(closed_vault, "100")

        assert outcome.success
        payout = outcome.value
        assert payout.fee_deducted == "100.000000"
        assert payout.payout == "140.000000"
        assert payout.perf_fee_paid_after is True
        assert payout.new_vault_usdc == "1260.000000"
        assert payout.new_total_shares == "900.000000"
        assert payout.updated_vault.perf_fee_paid is True

    def test_fee_deducted_once(self, closed_vault: Vault):
        """Test later redemptions see the same cash-per-share and no fee."""
        vault = calculate_redemption(closed_vault, "100").value.updated_vault

        second = calculate_redemption(vault, "100").value

        assert second.fee_deducted == "0.000000"
        assert second.payout == "140.000000"
        assert second.new_vault_usdc == "1120.000000"

    def test_full_cohort_shares_fee(self, closed_vault: Vault):
        """Test redeeming every share pays out exactly cash minus the fee."""
        vault = closed_vault
        total_paid = 0
        for _ in range(10):
            payout = calculate_redemption(vault, "100").value
            total_paid += parse_amount(payout.payout)
            vault = payout.updated_vault

        assert total_paid == parse_amount("1400")
        assert vault.cash_usdc == "0.000000"
        assert vault.total_shares == "0.000000"

    def test_no_fee_due(self, closed_vault: Vault):
        vault = replace(closed_vault, perf_fee_due_usdc="0.000000")

        payout = calculate_redemption(vault, "100").value

        assert payout.payout == "150.000000"
        assert payout.perf_fee_paid_after is False

    def test_insufficient_cash_for_fee(self, closed_vault: Vault):
        vault = replace(closed_vault, cash_usdc="50.000000")

        outcome = calculate_redemption(vault, "100")

        assert outcome.error_kind == ErrorKind.INSUFFICIENT_FUNDS

    def test_more_than_total_shares(self, closed_vault: Vault):
        assert calculate_redemption(closed_vault, "1000.000001").error_kind == ErrorKind.INSUFFICIENT_SHARES

    def test_wrong_stage(self, trading_vault: Vault):
        assert calculate_redemption(trading_vault, "10").error_kind == ErrorKind.STAGE_VIOLATION

    def test_input_vault_not_modified(self, closed_vault: Vault):
        calculate_redemption(closed_vault, "100")

        assert closed_vault.cash_usdc == "1500.000000"
        assert closed_vault.perf_fee_paid is False
