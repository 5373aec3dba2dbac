"""
Vault Ledger

A pooled-fund ledger for trading vaults. Computes deposits, withdrawal
escrow, epoch-based redemption settlement, performance-fee assessment and
dual-mode cash/in-kind redemption for basket vaults, using exact
fixed-point integer arithmetic throughout.

The ledger consumes an already-computed equity figure or price snapshot and
produces settlement outputs. It does not place trades.
"""

__version__ = "0.1.0"
__author__ = "Vault Ledger Team"
