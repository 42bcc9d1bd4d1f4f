"""Persistent store protocols."""
from datetime import datetime
from typing import Any, Protocol

from ..models import MetadataEntry, Portfolio, PriceEntry, TransactionRecord


class CacheBackend(Protocol):
    """Persistent layer behind a LayeredCache."""

    def load(self, key: str, newer_than: datetime | None) -> tuple[Any, datetime] | None: ...

    def save(self, key: str, value: Any, stored_at: datetime) -> None: ...


class Store(Protocol):
    """Keyed upsert/query for cached entries and classified transactions."""

    def upsert_metadata(self, entry: MetadataEntry, updated_at: datetime) -> None: ...

    def get_metadata(self, mint: str) -> tuple[MetadataEntry, datetime] | None: ...

    def insert_price(self, entry: PriceEntry) -> None: ...

    def latest_price(self, mint: str) -> PriceEntry | None: ...

    def price_history(self, mint: str, limit: int = 10) -> list[PriceEntry]: ...

    def insert_portfolio(self, portfolio: Portfolio, created_at: datetime) -> None: ...

    def latest_portfolio(self, wallet: str) -> tuple[Portfolio, datetime] | None: ...

    def upsert_transaction(self, record: TransactionRecord) -> None: ...

    def get_transaction(self, signature: str) -> TransactionRecord | None: ...

    def list_transactions(
        self,
        wallet: str,
        limit: int = 10,
        before: str | None = None,
        exclude_unknown: bool = False,
    ) -> list[TransactionRecord]: ...

    def sweep(
        self, now: datetime, portfolio_max_age_hours: int, price_history_limit: int
    ) -> tuple[int, int]: ...
