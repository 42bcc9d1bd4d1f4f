"""Price feed protocol: unit price lookup."""
from typing import Protocol


class PriceFeed(Protocol):
    """Abstract interface for fetching a token's unit price; may raise."""

    async def lookup_price(self, mint: str) -> float: ...
