"""Price oracles."""
from .price_feed import HttpPriceFeed

__all__ = ["HttpPriceFeed"]
