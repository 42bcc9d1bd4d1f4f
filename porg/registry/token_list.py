"""HTTP token-list registry: symbol, name, icon and decimals per mint."""
import logging
import ssl

import aiohttp
import certifi

from ..config import RegistryConfig
from ..exceptions import UpstreamUnavailable
from ..models import MetadataEntry

logger = logging.getLogger(__name__)


class HttpTokenRegistry:
    """Fetch token metadata from ``{url}/{mint}``."""

    def __init__(self, config: RegistryConfig) -> None:
        self.url = config.url.rstrip("/")
        self.timeout = config.timeout

    async def lookup_metadata(self, mint: str) -> MetadataEntry:
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
                            f"Token registry returned HTTP {response.status} for {mint}",
                            source="registry",
                        )
                    data = await response.json()
        except UpstreamUnavailable:
            raise
        except Exception as e:
            logger.error("Error fetching metadata for %s: %s", mint, e)
            raise UpstreamUnavailable(
                f"Token registry request failed for {mint}: {e}", source="registry"
            ) from e

        try:
            return MetadataEntry(
                mint=mint,
                symbol=str(data["symbol"]),
                name=str(data["name"]),
                decimals=int(data["decimals"]),
                icon=data.get("logoURI"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamUnavailable(
                f"Malformed registry payload for {mint}", source="registry"
            ) from e
