"""Token metadata resolution through the metadata cache."""
from __future__ import annotations

import logging

from ..cache import LayeredCache
from ..exceptions import UpstreamUnavailable
from ..interfaces.registry import TokenRegistry
from ..models import MetadataEntry, Provenance, Resolved

logger = logging.getLogger(__name__)

UNKNOWN_DECIMALS = 9


def unknown_metadata(mint: str) -> MetadataEntry:
    """Sentinel used when the registry cannot describe ``mint``."""
    return MetadataEntry(
        mint=mint, symbol="UNKNOWN", name="Unknown Token", decimals=UNKNOWN_DECIMALS
    )


class MetadataResolver:
    """Resolve display metadata; never raises for a registry failure."""

    def __init__(self, registry: TokenRegistry, cache: LayeredCache[MetadataEntry]) -> None:
        self._registry = registry
        self._cache = cache

    async def resolve(self, mint: str) -> Resolved[MetadataEntry]:
        try:
            return await self._cache.resolve(
                mint, lambda: self._registry.lookup_metadata(mint)
            )
        except UpstreamUnavailable as e:
            logger.warning("Metadata unavailable for %s, using placeholder: %s", mint, e)
            return Resolved(unknown_metadata(mint), Provenance.DEFAULT)
