"""
Snapshot cache for spotistats.

Holds the last serialized snapshot and serves it while it is
younger than the TTL. A miss triggers one refresh through the Aggregator.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Optional

from .aggregator import serialize_snapshot
from .models import CacheEntry

if TYPE_CHECKING:
    from .aggregator import Aggregator


class SnapshotCache:
    """Single-slot TTL cache in front of the Aggregator."""

    def __init__(
        self,
        aggregator: "Aggregator",
        ttl_seconds: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize SnapshotCache.

        Args:
            aggregator: Builds fresh snapshots on a miss
            ttl_seconds: How long a stored snapshot is served
            clock: Monotonic time source (seconds)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.logger = logging.getLogger(__name__)
        self.aggregator = aggregator
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[CacheEntry] = None
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._refresh_failures = 0

    def _fresh_entry(self) -> Optional[CacheEntry]:
        """Return the stored entry if still within TTL. Caller holds the lock."""
        entry = self._entry
        if entry is not None and self._clock() - entry.stored_at < self.ttl_seconds:
            return entry
        return None

    async def get_or_refresh(self) -> bytes:
        """
        Return the current snapshot bytes, refreshing if stale or empty.

        The returned bytes are immutable, so no reader can alter what the
        next reader sees. The lock is never held while the Aggregator talks
        to Spotify, so concurrent misses each refresh.

        Raises:
            Exception: whatever the refresh raised; the stored entry is kept
        """
        with self._lock:
            entry = self._fresh_entry()
            if entry is not None:
                self._hits += 1
                return entry.payload
            self._misses += 1

        self.logger.debug("Snapshot cache miss, refreshing")
        try:
            snapshot = await self.aggregator.get_snapshot()
            payload = serialize_snapshot(snapshot)
        except BaseException:
            with self._lock:
                self._refresh_failures += 1
            raise

        new_entry = CacheEntry(payload=payload, captured_at=snapshot.captured_at, stored_at=self._clock())
        with self._lock:
            # Never replace a newer entry stored by a concurrent refresh
            if self._entry is None or self._entry.stored_at <= new_entry.stored_at:
                self._entry = new_entry
        self.logger.info("Snapshot cache refreshed (captured at %s)", snapshot.captured_at.isoformat())
        return new_entry.payload

    def peek(self) -> Optional[CacheEntry]:
        """Return the stored entry regardless of age, or None if empty."""
        with self._lock:
            return self._entry

    def stats(self) -> dict:
        """
        Get statistics about the cache.

        Returns:
            Dictionary with cache statistics
        """
        with self._lock:
            entry = self._entry
            age = self._clock() - entry.stored_at if entry else None
            return {
                "populated": entry is not None,
                "age_seconds": age,
                "ttl_seconds": self.ttl_seconds,
                "size_bytes": len(entry.payload) if entry else 0,
                "hits": self._hits,
                "misses": self._misses,
                "refresh_failures": self._refresh_failures,
            }
