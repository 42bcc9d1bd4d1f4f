"""Protocol interfaces for the engine's external collaborators."""
from .bridge import BridgeQuoteProvider
from .chain import ChainClient
from .price_feed import PriceFeed
from .quote_provider import QuoteProvider
from .registry import TokenRegistry
from .store import CacheBackend, Store

__all__ = [
    "BridgeQuoteProvider",
    "CacheBackend",
    "ChainClient",
    "PriceFeed",
    "QuoteProvider",
    "Store",
    "TokenRegistry",
]
