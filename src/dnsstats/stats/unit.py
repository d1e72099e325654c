"""
Data units of the statistics engine: query entries and hourly buckets.

An Entry describes one completed DNS query as handed over by the request
pipeline. A TimeBucket aggregates every Entry recorded during one unit (one
wall-clock hour). Buckets keep domain and client names only in bounded TopK
trackers so memory stays flat regardless of traffic diversity.
"""

from __future__ import annotations

import enum
import functools
import ipaddress
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from .errors import StatsStorageError
from .topk import TopK

DEFAULT_TOP_N = 100


class Result(enum.IntEnum):
    """Result of DNS request processing."""

    NOT_FILTERED = 1
    FILTERED = 2
    SAFE_BROWSING = 3
    SAFE_SEARCH = 4
    PARENTAL = 5


@dataclass(frozen=True)
class Entry:
    """
    One completed DNS query.

    Inputs (constructor):
        domain: Queried domain name
        client: Client IP address (text form)
        result: Filtering Result
        elapsed_ms: Processing time in milliseconds

    Example:
        >>> Entry("example.com", "192.0.2.1", Result.FILTERED, 12).result.name
        'FILTERED'
    """

    domain: str
    client: str
    result: Result
    elapsed_ms: int = 0


@functools.lru_cache(maxsize=1024)
def normalize_domain(domain: str) -> str:
    """
    Normalize domain name for statistics tracking.

    Inputs:
        domain: Raw domain name string (may have trailing dot, mixed case)

    Outputs:
        Normalized lowercase domain without trailing dot

    Example:
        >>> normalize_domain("Example.COM.")
        'example.com'
    """
    return domain.rstrip(".").lower()


def normalize_client(client: Any) -> str | None:
    """Return canonical text for an IP address, or None when it does not parse."""
    try:
        return str(ipaddress.ip_address(client))
    except ValueError:
        return None


@dataclass(frozen=True)
class BucketSnapshot:
    """Immutable copy of one TimeBucket taken under its lock."""

    unit_id: int
    counts_by_result: Dict[Result, int]
    total_queries: int
    total_elapsed_ms: int
    top_domains: List[Tuple[str, int]]
    top_blocked_domains: List[Tuple[str, int]]
    top_clients: List[Tuple[str, int]]

    def count(self, result: Result) -> int:
        return self.counts_by_result.get(result, 0)


@dataclass
class TimeBucket:
    """
    Aggregate counters for one unit ID.

    Inputs (constructor):
        unit_id: Hour number this bucket covers
        top_n: Capacity of the per-bucket top-N trackers

    Outputs:
        TimeBucket instance; add() is safe to call from many threads

    Each bucket owns a private lock so that the hot path only contends with
    other writers of the same hour, never with restructuring of the window.

    Example:
        >>> b = TimeBucket(unit_id=10)
        >>> b.add(Entry("example.com", "192.0.2.1", Result.NOT_FILTERED, 4))
        >>> b.snapshot().total_queries
        1
    """

    unit_id: int
    top_n: int = DEFAULT_TOP_N
    counts_by_result: Dict[Result, int] = field(default_factory=dict)
    total_queries: int = 0
    total_elapsed_ms: int = 0
    top_domains: TopK = field(init=False)
    top_blocked_domains: TopK = field(init=False)
    top_clients: TopK = field(init=False)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self.top_domains = TopK(capacity=self.top_n)
        self.top_blocked_domains = TopK(capacity=self.top_n)
        self.top_clients = TopK(capacity=self.top_n)

    def add(self, entry: Entry) -> None:
        """Record one entry. The entry must already be validated and normalized."""
        with self._lock:
            self.counts_by_result[entry.result] = (
                self.counts_by_result.get(entry.result, 0) + 1
            )
            self.total_queries += 1
            self.total_elapsed_ms += entry.elapsed_ms
            self.top_domains.add(entry.domain)
            if entry.result != Result.NOT_FILTERED:
                self.top_blocked_domains.add(entry.domain)
            self.top_clients.add(entry.client)

    def snapshot(self) -> BucketSnapshot:
        with self._lock:
            return BucketSnapshot(
                unit_id=self.unit_id,
                counts_by_result=dict(self.counts_by_result),
                total_queries=self.total_queries,
                total_elapsed_ms=self.total_elapsed_ms,
                top_domains=self.top_domains.export(),
                top_blocked_domains=self.top_blocked_domains.export(),
                top_clients=self.top_clients.export(),
            )

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize the bucket into a JSON-compatible mapping.

        Outputs:
            Dict with keys unit_id, results, total, time_ms, domains,
            blocked_domains, clients. Top lists are stored as [key, count]
            pairs.
        """
        snap = self.snapshot()
        return {
            "unit_id": snap.unit_id,
            "results": {r.name: n for r, n in snap.counts_by_result.items()},
            "total": snap.total_queries,
            "time_ms": snap.total_elapsed_ms,
            "domains": [list(p) for p in snap.top_domains],
            "blocked_domains": [list(p) for p in snap.top_blocked_domains],
            "clients": [list(p) for p in snap.top_clients],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], top_n: int = DEFAULT_TOP_N) -> "TimeBucket":
        """
        Rebuild a bucket from to_dict() output.

        Raises:
            StatsStorageError: when the mapping is malformed.
        """
        try:
            bucket = cls(unit_id=int(data["unit_id"]), top_n=top_n)
            bucket.counts_by_result = {
                Result[str(name)]: int(n) for name, n in data["results"].items()
            }
            bucket.total_queries = int(data["total"])
            bucket.total_elapsed_ms = int(data["time_ms"])
            bucket.top_domains = TopK.from_pairs(
                ((k, n) for k, n in data["domains"]), capacity=top_n
            )
            bucket.top_blocked_domains = TopK.from_pairs(
                ((k, n) for k, n in data["blocked_domains"]), capacity=top_n
            )
            bucket.top_clients = TopK.from_pairs(
                ((k, n) for k, n in data["clients"]), capacity=top_n
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise StatsStorageError(f"malformed statistics unit: {exc!r}") from exc
        return bucket
