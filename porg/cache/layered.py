"""Freshness-aware cache: in-memory slot -> persistent backend -> origin."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Generic, TypeVar

from ..exceptions import UpstreamUnavailable
from ..interfaces.store import CacheBackend
from ..models import Provenance, Resolved

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Slot(Generic[V]):
    value: V
    stored_at: datetime


class LayeredCache(Generic[V]):
    """Named cache with its own freshness window and fallback policy.

    Args:
        name: Label used in logs.
        ttl: Freshness window in seconds; ``None`` means entries never expire.
        backend: Persistent layer, or ``None`` for memory only.
        clock: Returns the current UTC time.
        stale_fallback: Serve an expired in-memory value when the origin fails.
        origin_timeout: Seconds allowed for one origin call.
    """

    def __init__(
        self,
        name: str,
        ttl: float | None,
        backend: CacheBackend | None = None,
        clock: Clock = utc_now,
        stale_fallback: bool = True,
        origin_timeout: float | None = 10.0,
    ) -> None:
        self.name = name
        self._ttl = timedelta(seconds=ttl) if ttl is not None else None
        self._backend = backend
        self._clock = clock
        self._stale_fallback = stale_fallback
        self._origin_timeout = origin_timeout
        self._memory: dict[str, _Slot[V]] = {}

    # ------------------------------------------------------------------
    # Freshness helpers
    # ------------------------------------------------------------------

    def _cutoff(self) -> datetime | None:
        if self._ttl is None:
            return None
        return self._clock() - self._ttl

    def _is_fresh(self, slot: _Slot[V]) -> bool:
        cutoff = self._cutoff()
        return cutoff is None or slot.stored_at > cutoff

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    def get(self, key: str) -> tuple[V | None, bool]:
        """Return ``(value, found)`` from memory or the backend; never calls origin."""
        slot = self._memory.get(key)
        if slot is not None and self._is_fresh(slot):
            return slot.value, True

        if self._backend is None:
            return None, False

        try:
            loaded = self._backend.load(key, self._cutoff())
        except Exception as e:
            logger.warning("%s cache backend read failed for %s: %s", self.name, key, e)
            return None, False

        if loaded is None:
            return None, False

        value, stored_at = loaded
        # Keep the backend timestamp so the entry expires on schedule.
        self._memory[key] = _Slot(value, stored_at)
        return value, True

    def put(self, key: str, value: V) -> None:
        """Write through to the backend, then the in-memory slot."""
        now = self._clock()
        if self._backend is not None:
            try:
                self._backend.save(key, value, now)
            except Exception as e:
                logger.warning(
                    "%s cache backend write failed for %s: %s", self.name, key, e
                )
        self._memory[key] = _Slot(value, now)

    def peek_stale(self, key: str) -> V | None:
        """In-memory value regardless of age."""
        slot = self._memory.get(key)
        return slot.value if slot is not None else None

    def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)

    async def resolve(
        self,
        key: str,
        origin: Callable[[], Awaitable[V]],
        cacheable: Callable[[V], bool] | None = None,
    ) -> Resolved[V]:
        """Look up ``key`` through every layer, falling back to a stale value.

        A fetched value rejected by ``cacheable`` is returned but not stored.

        Raises:
            UpstreamUnavailable: origin failed and no usable value exists.
        """
        value, found = self.get(key)
        if found:
            return Resolved(value, Provenance.CACHED)

        try:
            if self._origin_timeout is not None:
                fetched = await asyncio.wait_for(origin(), self._origin_timeout)
            else:
                fetched = await origin()
        except Exception as e:
            stale = self._memory.get(key)
            if self._stale_fallback and stale is not None:
                logger.warning(
                    "%s origin failed for %s (%s); serving value stored at %s",
                    self.name, key, _describe(e), stale.stored_at.isoformat(),
                )
                return Resolved(stale.value, Provenance.STALE)
            if isinstance(e, UpstreamUnavailable):
                raise
            raise UpstreamUnavailable(
                f"{self.name} origin failed for {key}: {_describe(e)}",
                source=self.name,
            ) from e

        if cacheable is None or cacheable(fetched):
            self.put(key, fetched)
        else:
            logger.debug("%s value for %s not cached", self.name, key)
        return Resolved(fetched, Provenance.FRESH)

    def __len__(self) -> int:
        return len(self._memory)


def _describe(error: Any) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or type(error).__name__
