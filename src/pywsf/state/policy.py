"""Cache policy profiles.

Each upstream endpoint falls into one volatility class:

- ``FREQUENT``: live data (vessel positions, sailing space). Short-lived,
  refetched on a timer.
- ``INFREQUENT``: reference data that rarely changes. Cached for weeks and
  refreshed only when the domain's flush marker moves.
- ``COHERENCY_CHECK``: the flush-marker poll itself.
"""

from __future__ import annotations

from datetime import timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pywsf._constants import MAX_RETRY_DELAY_SECONDS, MINUTE, MONTH, SECOND, WEEK


class CacheStrategy(StrEnum):
    FREQUENT = "frequent"
    INFREQUENT = "infrequent"
    COHERENCY_CHECK = "coherency_check"


class CachePolicy(BaseModel):
    """Staleness, retention, refresh and retry settings for cached queries.

    Parameters
    ----------
    stale_time : timedelta
        Age after which cached data is eligible for a background refresh.
    gc_time : timedelta
        Time an entry without subscribers is retained before eviction.
    refetch_interval : timedelta or None
        Period of automatic refetches while subscribed and focused.
    refetch_on_focus : bool
        Refetch stale subscribed entries when focus is regained.
    retry : int
        Extra attempts after a failed fetch.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    stale_time: timedelta
    gc_time: timedelta
    refetch_interval: timedelta | None = None
    refetch_on_focus: bool = True
    retry: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1 * SECOND, ge=0)
    max_retry_delay: float = Field(default=MAX_RETRY_DELAY_SECONDS, ge=0)

    def retry_delay(self, attempt_index: int) -> float:
        """Exponential back-off in seconds, capped at ``max_retry_delay``."""
        return min(self.retry_base_delay * 2**attempt_index, self.max_retry_delay)

    def is_stale(self, updated_at: float | None, now: float) -> bool:
        if updated_at is None:
            return True
        return now - updated_at >= self.stale_time.total_seconds()

    def is_collectable(self, last_used: float, now: float) -> bool:
        return now - last_used >= self.gc_time.total_seconds()

    def with_overrides(self, **changes: Any) -> CachePolicy:
        """Return a validated copy with *changes* applied."""
        return type(self).model_validate({**self.model_dump(), **changes})


FREQUENT = CachePolicy(
    stale_time=timedelta(seconds=30 * SECOND),
    gc_time=timedelta(seconds=2 * MINUTE),
    refetch_interval=timedelta(seconds=5 * SECOND),
    refetch_on_focus=True,
    retry=3,
)

# Flush-marker invalidation keeps these fresh; no timer.
INFREQUENT = CachePolicy(
    stale_time=timedelta(seconds=WEEK),
    gc_time=timedelta(seconds=MONTH),
    refetch_interval=None,
    refetch_on_focus=True,
    retry=5,
)

COHERENCY_CHECK = CachePolicy(
    stale_time=timedelta(seconds=5 * MINUTE),
    gc_time=timedelta(seconds=10 * MINUTE),
    refetch_interval=timedelta(seconds=2 * MINUTE),
    refetch_on_focus=True,
    retry=5,
)

CACHE_POLICIES: dict[CacheStrategy, CachePolicy] = {
    CacheStrategy.FREQUENT: FREQUENT,
    CacheStrategy.INFREQUENT: INFREQUENT,
    CacheStrategy.COHERENCY_CHECK: COHERENCY_CHECK,
}


def policy_for(strategy: CacheStrategy | str) -> CachePolicy:
    return CACHE_POLICIES[CacheStrategy(strategy)]

