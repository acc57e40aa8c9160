"""
Snapshot aggregation for spotistats.

Runs the four Spotify fetches concurrently and merges their results into a
single Snapshot. Each fetch reports through its own FetchOutcome; the merge
happens only after every task has finished.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

from .config import FailurePolicy
from .errors import SerializationError, SpotifyStatsError
from .models import Snapshot

if TYPE_CHECKING:
    from .client import SpotifyClient

# Fixed order: used for task naming and to pick which error is reported
FETCH_ORDER = ("currently_playing", "top_artists", "top_tracks", "recently_played")


@dataclass(frozen=True)
class FetchOutcome:
    """Result slot for one sub-fetch."""

    name: str
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Aggregator:
    """Builds snapshots from the four Spotify endpoints."""

    def __init__(self, client: "SpotifyClient", failure_policy: FailurePolicy = FailurePolicy.LENIENT):
        """
        Initialize Aggregator.

        Args:
            client: SpotifyClient (or any object with the four fetch coroutines)
            failure_policy: LENIENT nulls failed sections, STRICT fails the snapshot
        """
        self.logger = logging.getLogger(__name__)
        self.client = client
        self.failure_policy = failure_policy

    def _fetchers(self) -> Dict[str, Callable[[], Awaitable[Any]]]:
        return {
            "currently_playing": self.client.fetch_currently_playing,
            "top_artists": self.client.fetch_top_artists,
            "top_tracks": self.client.fetch_top_tracks,
            "recently_played": self.client.fetch_recently_played,
        }

    async def get_snapshot(self) -> Snapshot:
        """
        Fetch all four sections concurrently and merge them.

        If the calling task is cancelled (e.g. by a request timeout), every
        pending fetch is cancelled and awaited before the cancellation
        propagates.

        Raises:
            SpotifyStatsError: per the failure policy
        """
        fetchers = self._fetchers()
        tasks = [
            asyncio.ensure_future(self._run_fetch(name, fetchers[name]))
            for name in FETCH_ORDER
        ]
        try:
            outcomes: List[FetchOutcome] = list(await asyncio.gather(*tasks))
        finally:
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                # Join cancelled fetches so nothing outlives this call
                await asyncio.gather(*pending, return_exceptions=True)

        return self._merge(outcomes)

    async def _run_fetch(self, name: str, fetch: Callable[[], Awaitable[Any]]) -> FetchOutcome:
        try:
            value = await fetch()
        except SpotifyStatsError as e:
            self.logger.warning("Error fetching %s: %s (%s)", name.replace("_", " "), e, e.kind)
            return FetchOutcome(name=name, error=e)
        except Exception as e:
            self.logger.error("Unexpected error fetching %s: %s", name.replace("_", " "), e, exc_info=True)
            return FetchOutcome(name=name, error=e)
        return FetchOutcome(name=name, value=value)

    def _merge(self, outcomes: List[FetchOutcome]) -> Snapshot:
        failures = [outcome for outcome in outcomes if not outcome.ok]

        if failures:
            first_error = failures[0].error
            if self.failure_policy is FailurePolicy.STRICT:
                self.logger.error(
                    "Snapshot failed (strict policy): %s failed with %s",
                    failures[0].name,
                    first_error,
                )
                raise first_error
            if len(failures) == len(outcomes):
                self.logger.error("Snapshot failed: all fetches failed, first error: %s", first_error)
                raise first_error
            self.logger.info(
                "Serving partial snapshot, missing: %s",
                ", ".join(outcome.name for outcome in failures),
            )

        values = {outcome.name: outcome.value for outcome in outcomes if outcome.ok}
        return Snapshot(
            currently_playing=values.get("currently_playing"),
            top_artists=values.get("top_artists"),
            top_tracks=values.get("top_tracks"),
            recently_played=values.get("recently_played"),
            captured_at=datetime.now(timezone.utc),
        )


def serialize_snapshot(snapshot: Snapshot) -> bytes:
    """
    Encode a snapshot as indented JSON with a stable key order.

    Raises:
        SerializationError: the snapshot holds a value JSON cannot encode
    """
    try:
        return json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to serialize snapshot: {e}") from e
