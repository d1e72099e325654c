"""Approximate top-N tracking with bounded memory."""

from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

TOPK_PRUNE_FACTOR = 4


class TopK:
    """
    Approximate top-K heavy hitters tracker with bounded memory.

    Inputs (constructor):
        capacity: Number of top items kept after a prune (K)
        prune_factor: Multiplier for pruning threshold (default 4)

    Outputs:
        TopK instance for adding keys and exporting top N

    Counts live in a dict that is pruned back to ``capacity`` entries once it
    grows past ``capacity * prune_factor``. The prune uses a stable sort, so
    keys with equal counts keep their insertion order and the earliest
    inserted keys survive. A name that arrives after a prune and does not
    catch up with the retained minimum is dropped at the next prune.

    TopK is not thread-safe; callers hold the owning bucket's lock.

    Example:
        >>> tracker = TopK(capacity=3, prune_factor=2)
        >>> for _ in range(10):
        ...     tracker.add("example.com")
        >>> for _ in range(5):
        ...     tracker.add("google.com")
        >>> tracker.export(1)
        [('example.com', 10)]
    """

    def __init__(self, capacity: int = 100, prune_factor: int = TOPK_PRUNE_FACTOR) -> None:
        self.capacity = max(1, capacity)
        self.prune_factor = max(2, prune_factor)
        self.counts: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.counts)

    def add(self, key: str, delta: int = 1) -> None:
        """
        Increment count for a key.

        Inputs:
            key: String key to track
            delta: Amount to add (default 1)

        Outputs:
            None
        """
        self.counts[key] = self.counts.get(key, 0) + delta

        if len(self.counts) > self.capacity * self.prune_factor:
            self._prune()

    def export(self, n: int | None = None) -> List[Tuple[str, int]]:
        """
        Export top N items sorted by count descending.

        Inputs:
            n: Number of top items to return (default: capacity)

        Outputs:
            List of (key, count) tuples sorted by count descending

        Example:
            >>> tracker = TopK(capacity=5)
            >>> tracker.add("a")
            >>> tracker.add("a")
            >>> tracker.add("b")
            >>> tracker.export(2)
            [('a', 2), ('b', 1)]
        """
        limit = self.capacity if n is None else n
        items = sorted(self.counts.items(), key=lambda x: x[1], reverse=True)
        return items[:limit]

    def _prune(self) -> None:
        """Prune to top capacity items by count."""
        if len(self.counts) <= self.capacity:
            return

        items = sorted(self.counts.items(), key=lambda x: x[1], reverse=True)
        self.counts = dict(items[: self.capacity])

    @classmethod
    def from_pairs(
        cls, pairs: Iterable[Tuple[str, int]], capacity: int = 100
    ) -> "TopK":
        """Rebuild a tracker from exported (key, count) pairs."""
        tracker = cls(capacity=capacity)
        for key, count in pairs:
            tracker.counts[str(key)] = int(count)
        tracker._prune()
        return tracker


def merge_top(lists: Iterable[Iterable[Tuple[str, int]]], n: int) -> List[Tuple[str, int]]:
    """
    Merge several exported top lists into a single top-N list.

    Inputs:
        lists: Iterable of (key, count) sequences, e.g. one per hourly bucket
        n: Number of entries to return

    Outputs:
        List of (key, count) tuples sorted by count descending.

    The result is approximate: each input list already dropped its low-count
    keys. Ties keep first-seen order across the inputs.

    Example:
        >>> merge_top([[("a", 2)], [("b", 1), ("a", 1)]], 2)
        [('a', 3), ('b', 1)]
    """
    totals: Dict[str, int] = {}
    for pairs in lists:
        for key, count in pairs:
            totals[key] = totals.get(key, 0) + count
    items = sorted(totals.items(), key=lambda x: x[1], reverse=True)
    return items[: max(0, n)]
