"""Bridge quote protocol: cross-chain transfer cost estimates."""
from typing import Protocol

from ..models import BridgeFees


class BridgeQuoteProvider(Protocol):
    """Abstract interface for estimating bridge fees; may raise."""

    async def bridge_fees(
        self, source_chain: str, target_chain: str, token_mint: str | None = None
    ) -> BridgeFees: ...
