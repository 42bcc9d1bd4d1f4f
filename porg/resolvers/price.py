"""Unit price resolution with last-known-good fallback."""
from __future__ import annotations

import logging

from ..cache import LayeredCache
from ..exceptions import UpstreamUnavailable
from ..interfaces.price_feed import PriceFeed
from ..models import Provenance, Resolved

logger = logging.getLogger(__name__)


class PriceResolver:
    """Resolve unit prices; absorbs feed failures.

    Resolution order is the cache's (memory, store, feed). When the feed
    fails and nothing was ever cached, ``fallback_price`` is returned tagged
    ``Provenance.DEFAULT`` so callers can tell it from a real price.
    """

    def __init__(
        self,
        feed: PriceFeed,
        cache: LayeredCache[float],
        fallback_price: float = 1.0,
    ) -> None:
        self._feed = feed
        self._cache = cache
        self._fallback_price = fallback_price

    async def resolve(self, mint: str) -> Resolved[float]:
        try:
            return await self._cache.resolve(mint, lambda: self._feed.lookup_price(mint))
        except UpstreamUnavailable as e:
            logger.warning(
                "No price available for %s, substituting %.4f: %s",
                mint, self._fallback_price, e,
            )
            return Resolved(self._fallback_price, Provenance.DEFAULT)
