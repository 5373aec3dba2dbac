"""
Tests for deposit calculation.
"""

from dataclasses import replace

from vault_ledger.engine import calculate_deposit
from vault_ledger.models import ErrorKind, Position, PositionSide, Vault, VaultStage


class TestBootstrapDeposit:
    """Tests for the first deposit into an empty vault."""

    def test_first_deposit_mints_one_to_one(self, empty_vault: Vault):
        """Test net USDC mints shares 1:1 when no shares exist."""
        outcome = calculate_deposit(empty_vault, "1000")

        assert outcome.success
        quote = outcome.value
        assert quote.deposit_fee == "0.000000"
        assert quote.shares_to_mint == "1000.000000"
        assert quote.new_vault_usdc == "1000.000000"
        assert quote.new_total_shares == "1000.000000"
        assert quote.new_high_water_mark == "1000.000000"

    def test_first_deposit_with_fee(self, empty_vault: Vault):
        """Test the fee is taken before shares are minted."""
        vault = replace(empty_vault, deposit_fee_bps=100)

        quote = calculate_deposit(vault, "1000").value

        assert quote.deposit_fee == "10.000000"
        assert quote.net_amount == "990.000000"
        assert quote.shares_to_mint == "990.000000"
        assert quote.updated_vault.cash_usdc == "990.000000"


class TestProportionalDeposit:
    """Tests for deposits into a vault with existing holders."""

    def test_mints_at_cash_per_share(self, open_vault: Vault):
        """Test shares are minted at total_shares / cash."""
        # 1% fee: 101 in, 1.01 fee, 99.99 net at 1.25 USDC/share
        quote = calculate_deposit(open_vault, "101").value

        assert quote.deposit_fee == "1.010000"
        assert quote.net_amount == "99.990000"
        assert quote.shares_to_mint == "79.992000"
        assert quote.new_vault_usdc == "1099.990000"
        assert quote.new_total_shares == "879.992000"

    def test_share_count_floors(self):
        """Test minted shares round down, never up."""
        vault = Vault(vault_id="V", cash_usdc="3.000000", total_shares="1.000000")

        quote = calculate_deposit(vault, "1.000001").value

        assert quote.shares_to_mint == "0.333333"

    def test_high_water_mark_never_decreases(self):
        vault = Vault(
            vault_id="V",
            cash_usdc="100.000000",
            total_shares="100.000000",
            high_water_mark="500.000000",
        )

        quote = calculate_deposit(vault, "10").value

        assert quote.new_high_water_mark == "500.000000"

    def test_input_vault_not_modified(self, open_vault: Vault):
        before = replace(open_vault)

        calculate_deposit(open_vault, "100")

        assert open_vault == before


class TestDepositRejections:
    """Tests for rejected deposits."""

    def test_wrong_stage(self, trading_vault: Vault):
        outcome = calculate_deposit(trading_vault, "100")

        assert not outcome.success
        assert outcome.error_kind == ErrorKind.STAGE_VIOLATION

    def test_open_positions(self, empty_vault: Vault):
        vault = replace(
            empty_vault,
            positions=[Position(market_id="MKT-A", side=PositionSide.YES, shares="5")],
        )

        outcome = calculate_deposit(vault, "100")

        assert outcome.error_kind == ErrorKind.OPEN_POSITIONS

    def test_flat_positions_allowed(self, empty_vault: Vault):
        """Test positions with zero shares do not block deposits."""
        vault = replace(
            empty_vault,
            positions=[Position(market_id="MKT-A", side=PositionSide.YES, shares="0")],
        )

        assert calculate_deposit(vault, "100").success

    def test_too_small_to_mint(self):
        """Test a deposit worth less than one micro-share is rejected."""
        vault = Vault(vault_id="V", cash_usdc="1000.000000", total_shares="0.000001")

        outcome = calculate_deposit(vault, "1")

        assert outcome.error_kind == ErrorKind.INSUFFICIENT_SHARES

    def test_shares_without_cash(self):
        vault = Vault(vault_id="V", cash_usdc="0", total_shares="100.000000")

        outcome = calculate_deposit(vault, "100")

        assert outcome.error_kind == ErrorKind.ZERO_EQUITY

    def test_invalid_amounts(self, empty_vault: Vault):
        assert calculate_deposit(empty_vault, "abc").error_kind == ErrorKind.INVALID_FORMAT
        assert calculate_deposit(empty_vault, "0").error_kind == ErrorKind.INVALID_PARAMETER
        assert calculate_deposit(empty_vault, "-5").error_kind == ErrorKind.INVALID_FORMAT
        assert calculate_deposit(empty_vault, "1.0000001").error_kind == ErrorKind.PRECISION_EXCEEDED

    def test_corrupt_vault_balance(self, empty_vault: Vault):
        vault = replace(empty_vault, cash_usdc="-5.000000", total_shares="10.000000")

        outcome = calculate_deposit(vault, "100")

        assert outcome.error_kind == ErrorKind.NEGATIVE_VALUE
        assert outcome.value is None

    def test_closed_vault(self, closed_vault: Vault):
        assert calculate_deposit(closed_vault, "100").error_kind == ErrorKind.STAGE_VIOLATION
        assert closed_vault.stage == VaultStage.CLOSED
