"""
Query engine: turn hourly bucket snapshots into dashboard data.

The engine is unit-agnostic. Callers choose hours or days; the policy that
picks one for the dashboard lives in the HTTP layer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from .topk import merge_top
from .unit import BucketSnapshot, Result

HOURS_PER_DAY = 24


class TimeUnit(enum.Enum):
    """Granularity of reported data points."""

    HOURS = "hours"
    DAYS = "days"


@dataclass
class StatsPoint:
    """Aggregated counters for one reported point (an hour or a day)."""

    total_queries: int = 0
    total_elapsed_ms: int = 0
    counts_by_result: Dict[Result, int] = field(default_factory=dict)

    def add(self, snap: BucketSnapshot) -> None:
        self.total_queries += snap.total_queries
        self.total_elapsed_ms += snap.total_elapsed_ms
        for result, n in snap.counts_by_result.items():
            self.counts_by_result[result] = self.counts_by_result.get(result, 0) + n

    def count(self, result: Result) -> int:
        return self.counts_by_result.get(result, 0)

    @property
    def avg_processing_time(self) -> float:
        """Average processing time in milliseconds; 0.0 when there were no queries."""
        if self.total_queries == 0:
            return 0.0
        return self.total_elapsed_ms / self.total_queries


@dataclass
class StatsData:
    """
    Reporting snapshot produced by build_stats_data().

    ``points`` is ordered oldest first (most recent last). ``totals`` sums
    every point. Top lists are merged across the whole reported window.
    """

    time_units: TimeUnit
    points: List[StatsPoint]
    totals: StatsPoint
    top_queried_domains: List[Tuple[str, int]]
    top_blocked_domains: List[Tuple[str, int]]
    top_clients: List[Tuple[str, int]]


def _group_points(snapshots: Sequence[BucketSnapshot], unit: TimeUnit) -> List[StatsPoint]:
    size = HOURS_PER_DAY if unit is TimeUnit.DAYS else 1
    points: List[StatsPoint] = []
    for start in range(0, len(snapshots), size):
        point = StatsPoint()
        # A trailing group shorter than a day is reported as a partial day.
        for snap in snapshots[start : start + size]:
            point.add(snap)
        points.append(point)
    return points


def build_stats_data(
    snapshots: Sequence[BucketSnapshot], unit: TimeUnit, top_n: int = 10
) -> StatsData:
    """
    Build a StatsData report from bucket snapshots.

    Inputs:
        snapshots: Bucket snapshots ordered oldest first
        unit: TimeUnit.HOURS (one point per bucket) or TimeUnit.DAYS (groups
            of 24 consecutive buckets starting at the oldest)
        top_n: Length of the merged top lists

    Outputs:
        StatsData

    Example:
        >>> data = build_stats_data([], TimeUnit.DAYS)
        >>> data.points, data.totals.avg_processing_time
        ([], 0.0)
    """
    points = _group_points(snapshots, unit)

    totals = StatsPoint()
    for snap in snapshots:
        totals.add(snap)

    return StatsData(
        time_units=unit,
        points=points,
        totals=totals,
        top_queried_domains=merge_top((s.top_domains for s in snapshots), top_n),
        top_blocked_domains=merge_top(
            (s.top_blocked_domains for s in snapshots), top_n
        ),
        top_clients=merge_top((s.top_clients for s in snapshots), top_n),
    )


def _top_list(pairs: List[Tuple[str, int]]) -> List[Dict[str, int]]:
    return [{name: count} for name, count in pairs]


def format_stats_data(data: StatsData) -> Dict[str, Any]:
    """
    Convert StatsData into the JSON payload served to dashboards.

    Inputs:
        data: StatsData to serialize

    Outputs:
        Dict with per-point arrays (dns_queries, blocked_filtering,
        replaced_safebrowsing, replaced_safesearch, replaced_parental,
        avg_processing_times), window totals (num_* and avg_processing_time,
        milliseconds) and top lists as ``[{name: count}, ...]``.
    """
    points = data.points
    totals = data.totals
    return {
        "time_units": data.time_units.value,
        "num_dns_queries": totals.total_queries,
        "num_blocked_filtering": totals.count(Result.FILTERED),
        "num_replaced_safebrowsing": totals.count(Result.SAFE_BROWSING),
        "num_replaced_safesearch": totals.count(Result.SAFE_SEARCH),
        "num_replaced_parental": totals.count(Result.PARENTAL),
        "avg_processing_time": round(totals.avg_processing_time, 3),
        "dns_queries": [p.total_queries for p in points],
        "blocked_filtering": [p.count(Result.FILTERED) for p in points],
        "replaced_safebrowsing": [p.count(Result.SAFE_BROWSING) for p in points],
        "replaced_safesearch": [p.count(Result.SAFE_SEARCH) for p in points],
        "replaced_parental": [p.count(Result.PARENTAL) for p in points],
        "avg_processing_times": [round(p.avg_processing_time, 3) for p in points],
        "top_queried_domains": _top_list(data.top_queried_domains),
        "top_blocked_domains": _top_list(data.top_blocked_domains),
        "top_clients": _top_list(data.top_clients),
    }
