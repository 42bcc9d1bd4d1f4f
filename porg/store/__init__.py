"""Persistent store and cache backends."""
from .backends import MetadataCacheBackend, PortfolioCacheBackend, PriceCacheBackend
from .sqlite import SqliteStore

__all__ = [
    "MetadataCacheBackend",
    "PortfolioCacheBackend",
    "PriceCacheBackend",
    "SqliteStore",
]
