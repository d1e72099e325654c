"""
Sliding window of hourly buckets (counter store and retention).

BucketWindow keeps an ordered, contiguous run of TimeBuckets whose newest
member covers the current unit. Two locks are involved:

  - the window lock (RLock) serializes every structural change: creating,
    evicting, clearing and resizing, plus the copy taken by snapshot().
  - each TimeBucket's own lock guards its counters.

update() only touches the window lock when the unit changes; in steady state
it increments the current bucket under that bucket's lock alone.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from .unit import DEFAULT_TOP_N, BucketSnapshot, Entry, TimeBucket

logger = logging.getLogger(__name__)


class BucketWindow:
    """
    Ordered ring of TimeBuckets bounded by ``limit_hours``.

    Inputs (constructor):
        limit_hours: Maximum number of hourly buckets kept
        top_n: Capacity of the per-bucket top-N trackers

    Outputs:
        BucketWindow instance

    Example:
        >>> w = BucketWindow(limit_hours=24)
        >>> w.advance(100)
        []
        >>> [s.unit_id for s in w.snapshot()]
        [100]
    """

    def __init__(self, limit_hours: int, top_n: int = DEFAULT_TOP_N) -> None:
        if limit_hours < 1:
            raise ValueError("limit_hours must be >= 1")
        self._lock = threading.RLock()
        self._limit_hours = int(limit_hours)
        self._top_n = max(1, int(top_n))
        self._buckets: List[TimeBucket] = []
        # Newest bucket; read without the window lock on the hot path.
        self._current: Optional[TimeBucket] = None
        # Buckets closed by rotation and not yet handed to take_closed().
        self._closed: List[TimeBucket] = []

    @property
    def limit_hours(self) -> int:
        return self._limit_hours

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def update(self, entry: Entry, unit_id: int) -> None:
        """
        Record an entry into the bucket for ``unit_id``.

        Inputs:
            entry: Validated, normalized Entry
            unit_id: Current unit

        Outputs:
            None

        Entries stamped with a unit older than the newest bucket are counted
        in the newest bucket; the window never moves backwards.
        """
        bucket = self._current
        if bucket is None or bucket.unit_id < unit_id:
            with self._lock:
                self._advance_locked(unit_id)
                bucket = self._current
        assert bucket is not None
        bucket.add(entry)

    def advance(self, unit_id: int) -> List[TimeBucket]:
        """
        Rotate the window so that its newest bucket covers ``unit_id``.

        Inputs:
            unit_id: Current unit

        Outputs:
            The previously newest bucket when this rotation closed it and it
            is still inside the window (the caller persists it). Empty when
            nothing moved.
        """
        with self._lock:
            return self._advance_locked(unit_id)

    def _advance_locked(self, unit_id: int) -> List[TimeBucket]:
        newest = self._buckets[-1].unit_id if self._buckets else None
        if newest is not None and newest >= unit_id:
            return []

        oldest_kept = unit_id - self._limit_hours + 1
        closed = []
        if newest is not None and newest >= oldest_kept:
            closed.append(self._buckets[-1])
        kept = [b for b in self._buckets if b.unit_id >= oldest_kept]
        evicted = len(self._buckets) - len(kept)
        self._buckets = kept

        # Fill skipped hours so unit ids stay contiguous.
        start = unit_id if newest is None else max(newest + 1, oldest_kept)
        for uid in range(start, unit_id + 1):
            self._buckets.append(TimeBucket(unit_id=uid, top_n=self._top_n))
        self._current = self._buckets[-1]

        if evicted:
            logger.debug(
                "Stats: evicted %d bucket(s) older than unit %d", evicted, oldest_kept
            )
        assert len(self._buckets) <= self._limit_hours
        self._closed.extend(closed)
        return closed

    def set_limit_hours(self, hours: int) -> int:
        """
        Change the window cap, evicting the oldest buckets when it shrinks.

        Inputs:
            hours: New cap in hours (>= 1)

        Outputs:
            Number of buckets evicted.
        """
        if hours < 1:
            raise ValueError("limit_hours must be >= 1")
        with self._lock:
            self._limit_hours = int(hours)
            excess = len(self._buckets) - self._limit_hours
            if excess <= 0:
                return 0
            del self._buckets[:excess]
            assert len(self._buckets) <= self._limit_hours
            return excess

    def clear(self) -> None:
        with self._lock:
            self._buckets = []
            self._current = None
            self._closed = []

    def take_closed(self) -> List[TimeBucket]:
        """Return and forget the buckets closed by rotations since the last call."""
        with self._lock:
            closed, self._closed = self._closed, []
            return closed

    def load(self, buckets: List[TimeBucket], unit_id: int) -> None:
        """
        Replace the window with persisted buckets.

        Buckets outside the window for ``unit_id`` or newer than it are
        ignored, gaps are filled with empty buckets, and the newest bucket is
        brought up to ``unit_id``.
        """
        oldest_kept = unit_id - self._limit_hours + 1
        by_unit = {
            b.unit_id: b for b in buckets if oldest_kept <= b.unit_id <= unit_id
        }
        with self._lock:
            self._buckets = []
            self._current = None
            if not by_unit:
                return
            first = min(by_unit)
            for uid in range(first, unit_id + 1):
                bucket = by_unit.get(uid)
                if bucket is None:
                    bucket = TimeBucket(unit_id=uid, top_n=self._top_n)
                self._buckets.append(bucket)
            self._current = self._buckets[-1]
            assert len(self._buckets) <= self._limit_hours

    def buckets(self) -> List[TimeBucket]:
        """Return a shallow copy of the live bucket list, oldest first."""
        with self._lock:
            return list(self._buckets)

    def snapshot(self) -> List[BucketSnapshot]:
        """
        Take a read-consistent copy of the window, oldest first.

        The bucket list is captured under the window lock, so a concurrent
        eviction is either fully visible or not at all.
        """
        with self._lock:
            return [b.snapshot() for b in self._buckets]
