"""
Basket vault support for the Vault Ledger.

Provides snapshot pricing of binary-market positions, equity computation
and dual-mode (cash / in-kind) epoch redemption.
"""

from vault_ledger.basket.pricing import (
    MissingPriceError,
    PriceSnapshot,
    build_inverse_positions,
    compute_equity,
    price_for,
)
from vault_ledger.basket.redemption import (
    cancel_redemption_request,
    create_redemption_request,
    settle_basket_epoch,
)

__all__ = [
    "MissingPriceError",
    "PriceSnapshot",
    "build_inverse_positions",
    "compute_equity",
    "price_for",
    "cancel_redemption_request",
    "create_redemption_request",
    "settle_basket_epoch",
]
