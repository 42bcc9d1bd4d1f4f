"""SQLite persistent store for cached entries and classified transactions."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Any

from ..models import (
    BridgeLeg,
    MetadataEntry,
    Portfolio,
    PriceEntry,
    Provenance,
    TokenHolding,
    TokenLeg,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime) -> float:
    return value.timestamp()


def _dt(value: float) -> datetime:
    return datetime.fromtimestamp(value, timezone.utc)


# ---------------------------------------------------------------------------
# JSON codecs
# ---------------------------------------------------------------------------


def holding_to_dict(holding: TokenHolding) -> dict[str, Any]:
    data = asdict(holding)
    data["price_provenance"] = holding.price_provenance.value
    data["metadata_provenance"] = holding.metadata_provenance.value
    return data


def holding_from_dict(data: dict[str, Any]) -> TokenHolding:
    return TokenHolding(
        mint=data["mint"],
        symbol=data["symbol"],
        name=data["name"],
        decimals=int(data["decimals"]),
        raw_balance=int(data["raw_balance"]),
        balance=float(data["balance"]),
        price=float(data["price"]),
        value=float(data["value"]),
        percentage=float(data.get("percentage", 0.0)),
        icon=data.get("icon"),
        price_provenance=Provenance(data.get("price_provenance", "fresh")),
        metadata_provenance=Provenance(data.get("metadata_provenance", "fresh")),
    )


def _leg_from_dict(data: dict[str, Any] | None) -> TokenLeg | None:
    if not data:
        return None
    return TokenLeg(
        mint=data["mint"], amount=float(data["amount"]), symbol=data.get("symbol", "")
    )


def _bridge_from_dict(data: dict[str, Any] | None) -> BridgeLeg | None:
    if not data:
        return None
    return BridgeLeg(
        source_chain=data["source_chain"],
        target_chain=data["target_chain"],
        recipient_address=data["recipient_address"],
    )


def _dumps(value: Any) -> str | None:
    return json.dumps(value) if value is not None else None


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SqliteStore:
    """Keyed upsert/query over a single SQLite database."""

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self.ensure_tables()

    def ensure_tables(self) -> None:
        with self._lock, self._conn:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS token_metadata (
                    mint TEXT PRIMARY KEY,
                    symbol TEXT NOT NULL,
                    name TEXT NOT NULL,
                    icon TEXT,
                    decimals INTEGER NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS token_prices (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    mint TEXT NOT NULL,
                    price REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    UNIQUE(mint, updated_at)
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_token_prices_mint ON token_prices(mint)"
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS portfolio_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    wallet_address TEXT NOT NULL,
                    total_value REAL NOT NULL,
                    tokens TEXT NOT NULL,
                    created_at REAL NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_portfolio_cache_wallet "
                "ON portfolio_cache(wallet_address)"
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    signature TEXT PRIMARY KEY,
                    wallet_address TEXT NOT NULL,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    fee REAL NOT NULL,
                    timestamp REAL NOT NULL,
                    input_tokens TEXT,
                    output_token TEXT,
                    bridge_details TEXT,
                    created_at REAL NOT NULL
                )
                """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_wallet "
                "ON transactions(wallet_address)"
            )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def upsert_metadata(self, entry: MetadataEntry, updated_at: datetime) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO token_metadata (mint, symbol, name, icon, decimals, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(mint) DO UPDATE SET
                    symbol = excluded.symbol,
                    name = excluded.name,
                    icon = excluded.icon,
                    decimals = excluded.decimals,
                    updated_at = excluded.updated_at
                """,
                (entry.mint, entry.symbol, entry.name, entry.icon, entry.decimals, _ts(updated_at)),
            )

    def get_metadata(self, mint: str) -> tuple[MetadataEntry, datetime] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM token_metadata WHERE mint = ?", (mint,)
            ).fetchone()
        if row is None:
            return None
        entry = MetadataEntry(
            mint=row["mint"],
            symbol=row["symbol"],
            name=row["name"],
            decimals=int(row["decimals"]),
            icon=row["icon"],
        )
        return entry, _dt(row["updated_at"])

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def insert_price(self, entry: PriceEntry) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO token_prices (mint, price, updated_at) VALUES (?, ?, ?)",
                (entry.mint, entry.price, _ts(entry.observed_at)),
            )

    def price_history(self, mint: str, limit: int = 10) -> list[PriceEntry]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT mint, price, updated_at FROM token_prices "
                "WHERE mint = ? ORDER BY updated_at DESC LIMIT ?",
                (mint, limit),
            ).fetchall()
        return [
            PriceEntry(mint=r["mint"], price=float(r["price"]), observed_at=_dt(r["updated_at"]))
            for r in rows
        ]

    def latest_price(self, mint: str) -> PriceEntry | None:
        history = self.price_history(mint, limit=1)
        return history[0] if history else None

    # ------------------------------------------------------------------
    # Portfolio snapshots
    # ------------------------------------------------------------------

    def insert_portfolio(self, portfolio: Portfolio, created_at: datetime) -> None:
        tokens = [holding_to_dict(h) for h in portfolio.holdings]
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO portfolio_cache (wallet_address, total_value, tokens, created_at) "
                "VALUES (?, ?, ?, ?)",
                (portfolio.wallet, portfolio.total_value, json.dumps(tokens), _ts(created_at)),
            )

    def latest_portfolio(self, wallet: str) -> tuple[Portfolio, datetime] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM portfolio_cache WHERE wallet_address = ? "
                "ORDER BY created_at DESC, id DESC LIMIT 1",
                (wallet,),
            ).fetchone()
        if row is None:
            return None
        created_at = _dt(row["created_at"])
        portfolio = Portfolio(
            wallet=row["wallet_address"],
            total_value=float(row["total_value"]),
            holdings=tuple(holding_from_dict(d) for d in json.loads(row["tokens"])),
            valued_at=created_at,
        )
        return portfolio, created_at

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def upsert_transaction(self, record: TransactionRecord) -> None:
        """Insert or update keyed by signature; ``created_at`` keeps the first sighting."""
        now = datetime.now(timezone.utc)
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO transactions (
                    signature, wallet_address, type, status, fee, timestamp,
                    input_tokens, output_token, bridge_details, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(signature) DO UPDATE SET
                    wallet_address = excluded.wallet_address,
                    type = excluded.type,
                    status = excluded.status,
                    fee = excluded.fee,
                    timestamp = excluded.timestamp,
                    input_tokens = excluded.input_tokens,
                    output_token = excluded.output_token,
                    bridge_details = excluded.bridge_details
                """,
                (
                    record.signature,
                    record.wallet,
                    record.type.value,
                    record.status.value,
                    record.fee,
                    _ts(record.timestamp),
                    json.dumps([asdict(leg) for leg in record.input_tokens]),
                    _dumps(asdict(record.output_token) if record.output_token else None),
                    _dumps(asdict(record.bridge) if record.bridge else None),
                    _ts(now),
                ),
            )

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> TransactionRecord:
        inputs = json.loads(row["input_tokens"]) if row["input_tokens"] else []
        return TransactionRecord(
            signature=row["signature"],
            wallet=row["wallet_address"],
            type=TransactionType(row["type"]),
            timestamp=_dt(row["timestamp"]),
            status=TransactionStatus(row["status"]),
            fee=float(row["fee"]),
            input_tokens=tuple(
                leg for leg in (_leg_from_dict(d) for d in inputs) if leg is not None
            ),
            output_token=_leg_from_dict(
                json.loads(row["output_token"]) if row["output_token"] else None
            ),
            bridge=_bridge_from_dict(
                json.loads(row["bridge_details"]) if row["bridge_details"] else None
            ),
        )

    def get_transaction(self, signature: str) -> TransactionRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM transactions WHERE signature = ?", (signature,)
            ).fetchone()
        return self._record_from_row(row) if row is not None else None

    def list_transactions(
        self,
        wallet: str,
        limit: int = 10,
        before: str | None = None,
        exclude_unknown: bool = False,
    ) -> list[TransactionRecord]:
        """Page of a wallet's records, newest block time first.

        ``before`` restricts the page to records older than that signature's;
        an unknown ``before`` signature yields an empty page.
        """
        query = "SELECT * FROM transactions WHERE wallet_address = ?"
        params: list[Any] = [wallet]
        if exclude_unknown:
            query += " AND type != ?"
            params.append(TransactionType.UNKNOWN.value)

        with self._lock:
            if before:
                anchor = self._conn.execute(
                    "SELECT timestamp FROM transactions WHERE signature = ?", (before,)
                ).fetchone()
                if anchor is None:
                    return []
                query += " AND timestamp < ?"
                params.append(anchor["timestamp"])

            query += " ORDER BY timestamp DESC, signature DESC LIMIT ?"
            params.append(limit)
            rows = self._conn.execute(query, params).fetchall()

        return [self._record_from_row(r) for r in rows]

    def count_transactions(self) -> int:
        with self._lock:
            return int(self._conn.execute("SELECT COUNT(*) FROM transactions").fetchone()[0])

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def sweep(
        self, now: datetime, portfolio_max_age_hours: int = 24, price_history_limit: int = 10
    ) -> tuple[int, int]:
        """Drop old portfolio snapshots and surplus price history.

        Returns:
            ``(portfolios_deleted, prices_deleted)``
        """
        cutoff = now - timedelta(hours=portfolio_max_age_hours)
        with self._lock, self._conn:
            portfolios = self._conn.execute(
                "DELETE FROM portfolio_cache WHERE created_at < ?", (_ts(cutoff),)
            ).rowcount
            prices = self._conn.execute(
                """
                DELETE FROM token_prices
                WHERE id IN (
                    SELECT id FROM (
                        SELECT id, ROW_NUMBER() OVER (
                            PARTITION BY mint ORDER BY updated_at DESC
                        ) AS row_num
                        FROM token_prices
                    )
                    WHERE row_num > ?
                )
                """,
                (price_history_limit,),
            ).rowcount

        logger.info(
            "Cache sweep removed %d portfolio snapshots and %d price rows",
            portfolios, prices,
        )
        return portfolios, prices
