"""Quote provider protocol: per-token swap quotes."""
from typing import Protocol

from ..models import SwapQuote


class QuoteProvider(Protocol):
    """Abstract interface for requesting a swap quote."""

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        raw_amount: int,
        slippage_bps: int,
    ) -> SwapQuote: ...
