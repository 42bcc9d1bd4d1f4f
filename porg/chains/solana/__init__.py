"""Solana chain client."""
from .client import SolanaClient

__all__ = ["SolanaClient"]
