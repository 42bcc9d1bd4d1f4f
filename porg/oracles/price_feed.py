"""HTTP price feed: unit prices in USD keyed by mint."""
import logging
import ssl

import aiohttp
import certifi

from ..config import PriceFeedConfig
from ..exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)


class HttpPriceFeed:
    """Fetch a token's unit price from ``{url}/{mint}``."""

    def __init__(self, config: PriceFeedConfig) -> None:
        self.url = config.url.rstrip("/")
        self.timeout = config.timeout

    async def lookup_price(self, mint: str) -> float:
        """Return the unit price for ``mint``.

        Raises:
            UpstreamUnavailable: on transport errors, non-200 responses or a
                payload without a numeric ``price``.
        """
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    f"{self.url}/{mint}",
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        raise UpstreamUnavailable(
                            f"Price feed returned HTTP {response.status} for {mint}",
                            source="price_feed",
                        )
                    data = await response.json()
        except UpstreamUnavailable:
            raise
        except Exception as e:
            logger.error("Error fetching price for %s: %s", mint, e)
            raise UpstreamUnavailable(
                f"Price feed request failed for {mint}: {e}", source="price_feed"
            ) from e

        try:
            price = float(data["price"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed price payload for {mint}", source="price_feed"
            ) from e

        logger.debug("Fetched price for %s: $%.6f", mint, price)
        return price
