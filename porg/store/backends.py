"""Cache backends mapping LayeredCache keys onto store tables."""
from __future__ import annotations

from datetime import datetime

from ..interfaces.store import Store
from ..models import MetadataEntry, Portfolio, PriceEntry


def _newer(stored_at: datetime, newer_than: datetime | None) -> bool:
    return newer_than is None or stored_at > newer_than


class MetadataCacheBackend:
    """Keyed by mint; entries never expire unless the cache sets a window."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def load(self, key: str, newer_than: datetime | None) -> tuple[MetadataEntry, datetime] | None:
        found = self._store.get_metadata(key)
        if found is None or not _newer(found[1], newer_than):
            return None
        return found

    def save(self, key: str, value: MetadataEntry, stored_at: datetime) -> None:
        self._store.upsert_metadata(value, stored_at)


class PriceCacheBackend:
    """Keyed by mint; each save appends one observation to the history."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def load(self, key: str, newer_than: datetime | None) -> tuple[float, datetime] | None:
        entry = self._store.latest_price(key)
        if entry is None or not _newer(entry.observed_at, newer_than):
            return None
        return entry.price, entry.observed_at

    def save(self, key: str, value: float, stored_at: datetime) -> None:
        self._store.insert_price(PriceEntry(mint=key, price=value, observed_at=stored_at))


class PortfolioCacheBackend:
    """Keyed by wallet address."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def load(self, key: str, newer_than: datetime | None) -> tuple[Portfolio, datetime] | None:
        found = self._store.latest_portfolio(key)
        if found is None or not _newer(found[1], newer_than):
            return None
        return found

    def save(self, key: str, value: Portfolio, stored_at: datetime) -> None:
        self._store.insert_portfolio(value, stored_at)
