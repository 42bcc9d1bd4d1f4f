"""Cached metadata and price resolution."""
from .metadata import UNKNOWN_DECIMALS, MetadataResolver, unknown_metadata
from .price import PriceResolver

__all__ = ["MetadataResolver", "PriceResolver", "UNKNOWN_DECIMALS", "unknown_metadata"]
