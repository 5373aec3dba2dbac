"""
Tests for the vault-ledger command-line interface.
"""

from pathlib import Path

import pytest
from click.testing import CliRunner

from vault_ledger.cli import main
from vault_ledger.data import FileVaultStore
from vault_ledger.logging import LedgerLogger
from vault_ledger.models import ActionType, RequestStatus, Vault, VaultStage


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def store_dir(tmp_path: Path) -> str:
    return str(tmp_path / "store")


def invoke(runner: CliRunner, store_dir: str, *args: str):
    return runner.invoke(main, [*args, "--store-dir", store_dir])


class TestCashVaultFlow:
    """Tests for a cash-only vault driven through the CLI."""

    def test_deposit_request_and_settle(self, runner: CliRunner, store_dir: str, tmp_path: Path):
        result = invoke(runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT")
        assert result.exit_code == 0, result.output

        result = invoke(runner, store_dir, "deposit", "VAULT001", "1000")
        assert result.exit_code == 0, result.output
        assert "Shares minted: 1000.000000" in result.output

        assert invoke(runner, store_dir, "start-trading", "VAULT001").exit_code == 0

        result = invoke(
            runner, store_dir, "request-withdrawal", "VAULT001", "50", "--holder-shares", "1000"
        )
        assert result.exit_code == 0, result.output

        report = tmp_path / "report.csv"
        result = invoke(
            runner, store_dir, "settle-epoch", "VAULT001", "--equity", "1100", "--report", str(report)
        )
        assert result.exit_code == 0, result.output
        assert "Net paid: 52.250000" in result.output
        assert report.exists()

        store = FileVaultStore(store_dir)
        vault = store.get_vault("VAULT001")
        assert vault.cash_usdc == "947.750000"
        assert vault.total_shares == "950.000000"
        assert store.get_requests("VAULT001")[0].status == RequestStatus.COMPLETED

        log = LedgerLogger(Path(store_dir) / "ledger_log.jsonl")
        assert [e.action_type for e in log.read_log()] == [
            ActionType.VAULT_CREATED,
            ActionType.DEPOSIT_PROCESSED,
            ActionType.STAGE_CHANGED,
            ActionType.WITHDRAWAL_REQUESTED,
            ActionType.EPOCH_SETTLED,
        ]

    def test_rejection_exits_nonzero_and_is_logged(self, runner: CliRunner, store_dir: str):
        invoke(runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT")
        invoke(runner, store_dir, "start-trading", "VAULT001")

        result = invoke(runner, store_dir, "deposit", "VAULT001", "100")

        assert result.exit_code == 1
        assert "StageViolation" in result.output
        vault = FileVaultStore(store_dir).get_vault("VAULT001")
        assert vault.cash_usdc == "0.000000"
        log = LedgerLogger(Path(store_dir) / "ledger_log.jsonl")
        assert log.read_log()[-1].action_type == ActionType.OPERATION_REJECTED

    def test_cancel(self, runner: CliRunner, store_dir: str):
        invoke(runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT")
        invoke(runner, store_dir, "deposit", "VAULT001", "100")
        invoke(runner, store_dir, "start-trading", "VAULT001")
        invoke(runner, store_dir, "request-withdrawal", "VAULT001", "40", "--holder-shares", "100")
        request_id = FileVaultStore(store_dir).get_requests("VAULT001")[0].request_id

        result = invoke(runner, store_dir, "cancel", "VAULT001", request_id)

        assert result.exit_code == 0, result.output
        assert "40.000000 shares returned" in result.output
        assert FileVaultStore(store_dir).get_requests("VAULT001")[0].status == RequestStatus.CANCELLED

        assert invoke(runner, store_dir, "cancel", "VAULT001", request_id).exit_code == 1
        assert invoke(runner, store_dir, "cancel", "VAULT001", "wr-unknown").exit_code == 1

    def test_close_and_redeem(self, runner: CliRunner, store_dir: str):
        invoke(
            runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT",
            "--perf-fee-bps", "1000",
        )
        invoke(runner, store_dir, "deposit", "VAULT001", "1000")
        invoke(runner, store_dir, "start-trading", "VAULT001")
        store = FileVaultStore(store_dir)
        vault = store.get_vault("VAULT001")
        vault.cash_usdc = "1200.000000"
        store.save_vault(vault)
        invoke(runner, store_dir, "end-trading", "VAULT001")

        result = invoke(runner, store_dir, "finalize", "VAULT001")
        assert "Performance fee due: 20.000000" in result.output

        result = invoke(runner, store_dir, "redeem", "VAULT001", "500")
        assert result.exit_code == 0, result.output
        assert "payout 590.000000 USDC" in result.output
        assert store.get_vault("VAULT001").perf_fee_paid is True

    def test_create_rejects_duplicate_and_caps(self, runner: CliRunner, store_dir: str):
        invoke(runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT")

        assert invoke(
            runner, store_dir, "create", "VAULT001", "--name", "Again", "--symbol", "AGN"
        ).exit_code == 1
        result = invoke(
            runner, store_dir, "create", "VAULT002", "--name", "Greedy", "--symbol", "GRD",
            "--deposit-fee-bps", "900",
        )
        assert result.exit_code == 1
        assert "InvalidParameter" in result.output

    def test_load_imports_vault_and_logs_config(self, runner: CliRunner, store_dir: str, tmp_path: Path):
        config = tmp_path / "vault.yaml"
        config.write_text(
            "vault_id: VAULT009\nname: Imported\nsymbol: IMP\nstage: Trading\n"
            "cash_usdc: \"500\"\ntotal_shares: \"400\"\n"
        )

        result = invoke(runner, store_dir, "load", "--config", str(config))

        assert result.exit_code == 0, result.output
        vault = FileVaultStore(store_dir).get_vault("VAULT009")
        assert vault.stage == VaultStage.TRADING
        assert vault.cash_usdc == "500.000000"
        entry = LedgerLogger(Path(store_dir) / "ledger_log.jsonl").read_log()[-1]
        assert entry.action_type == ActionType.CONFIG_LOADED
        assert entry.details["config_path"] == str(config)

        assert invoke(runner, store_dir, "load", "--config", str(config)).exit_code == 1

    def test_show_unknown_vault(self, runner: CliRunner, store_dir: str):
        result = invoke(runner, store_dir, "show", "NOPE")

        assert result.exit_code == 1
        assert "not found" in result.output


class TestBasketFlow:
    """Tests for basket commands."""

    @pytest.fixture
    def prices_csv(self, tmp_path: Path) -> Path:
        path = tmp_path / "prices.csv"
        path.write_text("market_id,bid_yes,ask_yes,mid_yes\nMKT-A,0.40,0.50,0.45\nMKT-B,0.20,0.30,\n")
        return path

    def test_equity_and_settlement(
        self,
        runner: CliRunner,
        store_dir: str,
        basket_vault: Vault,
        prices_csv: Path,
        tmp_path: Path,
    ):
        FileVaultStore(store_dir).save_vault(basket_vault)

        result = invoke(runner, store_dir, "equity", "VAULT001", "--prices", str(prices_csv))
        assert result.exit_code == 0, result.output
        assert "1375.000000" in result.output

        result = invoke(runner, store_dir, "request-redemption", "VAULT001", "100", "--kind", "IN_KIND")
        assert result.exit_code == 0, result.output

        transfers = tmp_path / "transfers.csv"
        result = invoke(
            runner, store_dir, "settle-basket", "VAULT001",
            "--prices", str(prices_csv), "--transfers", str(transfers),
        )
        assert result.exit_code == 0, result.output
        assert "In-kind requests filled: 1" in result.output
        assert len(transfers.read_text().splitlines()) == 4

        vault = FileVaultStore(store_dir).get_vault("VAULT001")
        assert vault.stage == VaultStage.TRADING
        assert vault.cash_usdc == "900.000000"
        assert vault.total_shares == "900.000000"

    def test_redemption_request_requires_trading(self, runner: CliRunner, store_dir: str):
        invoke(runner, store_dir, "create", "VAULT001", "--name", "Test Vault", "--symbol", "TVLT")

        result = invoke(runner, store_dir, "request-redemption", "VAULT001", "10", "--kind", "IN_KIND")

        assert result.exit_code == 1
        assert "StageViolation" in result.output
        assert FileVaultStore(store_dir).get_requests("VAULT001") == []
