"""Jupiter aggregator quote client."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import QuoteConfig
from ..exceptions import UpstreamUnavailable
from ..models import SwapQuote

logger = logging.getLogger(__name__)


def parse_quote(data: dict[str, Any]) -> SwapQuote:
    """Parse a Jupiter v6 ``/quote`` response into a SwapQuote.

    Raw amounts are strings in the response. ``outputDecimals`` and a
    top-level ``feeAmount`` are optional; when the top-level fee is absent,
    route fees charged in the output mint are summed instead.
    """
    output_mint = data["outputMint"]
    route_plan = data.get("routePlan") or []

    fee_amount = data.get("feeAmount")
    if fee_amount is None:
        fee_amount = sum(
            int(step.get("swapInfo", {}).get("feeAmount", 0))
            for step in route_plan
            if step.get("swapInfo", {}).get("feeMint") == output_mint
        )

    decimals = data.get("outputDecimals")

    return SwapQuote(
        input_mint=data["inputMint"],
        output_mint=output_mint,
        in_amount=int(data["inAmount"]),
        out_amount=int(data["outAmount"]),
        min_output_threshold=int(data.get("otherAmountThreshold", data["outAmount"])),
        fee_amount=int(fee_amount),
        output_decimals=int(decimals) if decimals is not None else None,
        slippage_bps=int(data.get("slippageBps", 0)),
        price_impact_pct=float(data.get("priceImpactPct") or 0.0),
        route=tuple(
            step.get("swapInfo", {}).get("label", "") for step in route_plan
        ),
    )


class JupiterQuoteClient:
    """Request swap quotes from the Jupiter ``/quote`` endpoint."""

    def __init__(self, config: QuoteConfig) -> None:
        self.url = config.url.rstrip("/")
        self.timeout = config.timeout
        self.max_accounts = config.max_accounts
        self.only_direct_routes = config.only_direct_routes

    async def quote(
        self,
        input_mint: str,
        output_mint: str,
        raw_amount: int,
        slippage_bps: int,
    ) -> SwapQuote:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(raw_amount),
            "slippageBps": str(slippage_bps),
            "onlyDirectRoutes": "true" if self.only_direct_routes else "false",
            "maxAccounts": str(self.max_accounts),
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    f"{self.url}/quote",
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        raise UpstreamUnavailable(
                            f"Quote API returned HTTP {response.status} "
                            f"for {input_mint} -> {output_mint}",
                            source="quotes",
                        )
                    data = await response.json()
        except UpstreamUnavailable:
            raise
        except Exception as e:
            logger.error("Error getting quote for %s: %s", input_mint, e)
            raise UpstreamUnavailable(
                f"Quote request failed for {input_mint}: {e}", source="quotes"
            ) from e

        try:
            quote = parse_quote(data)
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed quote payload for {input_mint}", source="quotes"
            ) from e

        logger.debug(
            "Quote %s -> %s: in=%d out=%d min=%d",
            input_mint, output_mint, quote.in_amount, quote.out_amount,
            quote.min_output_threshold,
        )
        return quote
