"""Swap quote providers."""
from .jupiter import JupiterQuoteClient, parse_quote

__all__ = ["JupiterQuoteClient", "parse_quote"]
