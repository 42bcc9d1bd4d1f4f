"""Porg: wallet valuation and batched dust liquidation planning."""

__version__ = "0.1.0"
