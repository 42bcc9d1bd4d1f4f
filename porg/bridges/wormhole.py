"""Wormhole bridge fee client."""
from __future__ import annotations

import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import BridgeConfig
from ..exceptions import UpstreamUnavailable
from ..models import BridgeFees

logger = logging.getLogger(__name__)


def parse_bridge_fees(data: dict[str, Any], source_chain: str, target_chain: str) -> BridgeFees:
    """Parse a fee estimate; amounts arrive as decimal strings."""
    base_fee = float(data["baseFee"])
    gas_estimate = float(data.get("gasEstimate", 0))
    total = data.get("totalFee")
    return BridgeFees(
        source_chain=data.get("sourceChain", source_chain),
        target_chain=data.get("targetChain", target_chain),
        base_fee=base_fee,
        gas_estimate=gas_estimate,
        total_fee=float(total) if total is not None else base_fee + gas_estimate,
        usd_equivalent=float(data.get("usdEquivalent", 0)),
    )


class WormholeBridgeClient:
    """Fetch bridge fee estimates from ``{api_url}/fees``."""

    def __init__(self, config: BridgeConfig) -> None:
        self.url = config.api_url.rstrip("/")
        self.timeout = config.timeout
        self.chains = dict(config.chains)

    async def bridge_fees(
        self, source_chain: str, target_chain: str, token_mint: str | None = None
    ) -> BridgeFees:
        """Return the fee estimate for one transfer route.

        Raises:
            UpstreamUnavailable: on transport errors, non-200 responses or a
                payload without a ``baseFee``.
        """
        params = {
            "sourceChain": str(self.chains.get(source_chain, source_chain)),
            "targetChain": str(self.chains.get(target_chain, target_chain)),
        }
        if token_mint:
            params["tokenMint"] = token_mint

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    f"{self.url}/fees",
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        raise UpstreamUnavailable(
                            f"Bridge API returned HTTP {response.status} "
                            f"for {source_chain} -> {target_chain}",
                            source="bridge",
                        )
                    data = await response.json()
        except UpstreamUnavailable:
            raise
        except Exception as e:
            logger.error("Error getting bridge fees to %s: %s", target_chain, e)
            raise UpstreamUnavailable(
                f"Bridge fee request failed for {target_chain}: {e}", source="bridge"
            ) from e

        try:
            fees = parse_bridge_fees(data, source_chain, target_chain)
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed bridge fee payload for {target_chain}", source="bridge"
            ) from e

        logger.debug(
            "Bridge fees %s -> %s: total %.6f SOL ($%.2f)",
            source_chain, target_chain, fees.total_fee, fees.usd_equivalent,
        )
        return fees
