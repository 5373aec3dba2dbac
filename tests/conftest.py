"""
Pytest fixtures for the Vault Ledger tests.

Provides common vault states, request factories and price snapshots used
across test modules.
"""

from datetime import datetime
from typing import Callable

import pytest

from vault_ledger.models import (
    Position,
    PositionSide,
    PriceQuote,
    RedemptionKind,
    RequestStatus,
    Vault,
    VaultStage,
    WithdrawalRequest,
)


@pytest.fixture
def empty_vault() -> Vault:
    """A freshly created Open vault with no deposits."""
    return Vault(
        vault_id="VAULT001",
        name="Test Vault",
        symbol="TVLT",
        stage=VaultStage.OPEN,
        deposit_fee_bps=0,
        perf_fee_bps=2000,
        early_exit_fee_bps=500,
        liquidity_buffer_bps=1000,
    )


@pytest.fixture
def open_vault() -> Vault:
    """An Open vault with 1000 USDC backing 800 shares (1.25 USDC/share)."""
    return Vault(
        vault_id="VAULT001",
        name="Test Vault",
        symbol="TVLT",
        stage=VaultStage.OPEN,
        cash_usdc="1000.000000",
        total_shares="800.000000",
        high_water_mark="1000.000000",
        deposit_fee_bps=100,
    )


@pytest.fixture
def trading_vault() -> Vault:
    """A Trading vault with 1000 USDC and 1000 shares, 5% exit fee, 10% buffer."""
    return Vault(
        vault_id="VAULT001",
        name="Test Vault",
        symbol="TVLT",
        stage=VaultStage.TRADING,
        cash_usdc="1000.000000",
        total_shares="1000.000000",
        high_water_mark="1000.000000",
        initial_aum_usdc="1000.000000",
        perf_fee_bps=2000,
        early_exit_fee_bps=500,
        liquidity_buffer_bps=1000,
    )


@pytest.fixture
def closed_vault() -> Vault:
    """A Closed vault with 1500 USDC, 1000 shares and a 100 USDC fee due."""
    return Vault(
        vault_id="VAULT001",
        name="Test Vault",
        symbol="TVLT",
        stage=VaultStage.CLOSED,
        cash_usdc="1500.000000",
        total_shares="1000.000000",
        initial_aum_usdc="1000.000000",
        perf_fee_bps=2000,
        perf_fee_due_usdc="100.000000",
        perf_fee_paid=False,
    )


@pytest.fixture
def basket_vault(trading_vault: Vault) -> Vault:
    """A Trading basket vault holding 500 YES of MKT-A and 200 NO of MKT-B."""
    trading_vault.positions = [
        Position(market_id="MKT-A", side=PositionSide.YES, shares="500.000000"),
        Position(market_id="MKT-B", side=PositionSide.NO, shares="200.000000"),
    ]
    return trading_vault


@pytest.fixture
def price_snapshot() -> dict[str, PriceQuote]:
    """Snapshot quoting MKT-A with a mid and MKT-B with bid/ask only."""
    return {
        "MKT-A": PriceQuote(market_id="MKT-A", bid_yes="0.40", ask_yes="0.50", mid_yes="0.45"),
        "MKT-B": PriceQuote(market_id="MKT-B", bid_yes="0.20", ask_yes="0.30"),
    }


@pytest.fixture
def make_request() -> Callable[..., WithdrawalRequest]:
    """Factory for requests with deterministic ids and timestamps."""
    counter = {"n": 0}

    def _make(
        shares_requested: str,
        shares_filled: str = "0.000000",
        status: RequestStatus = RequestStatus.PENDING,
        kind: RedemptionKind = RedemptionKind.CASH,
    ) -> WithdrawalRequest:
        counter["n"] += 1
        return WithdrawalRequest(
            request_id=f"req-{counter['n']:03d}",
            shares_requested=shares_requested,
            shares_filled=shares_filled,
            status=status,
            kind=kind,
            holder=f"holder-{counter['n']}",
            created_at=datetime(2025, 1, 1, 12, 0, counter["n"]),
        )

    return _make
