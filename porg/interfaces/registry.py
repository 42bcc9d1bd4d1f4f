"""Token registry protocol: display metadata lookup."""
from typing import Protocol

from ..models import MetadataEntry


class TokenRegistry(Protocol):
    """Abstract interface for fetching token metadata; may raise."""

    async def lookup_metadata(self, mint: str) -> MetadataEntry: ...
