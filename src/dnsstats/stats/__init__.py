"""
Statistics for a DNS filtering server.

Records the outcome of every processed DNS query into hourly buckets kept in
a sliding retention window and reports them per hour or per day.

Example:
    >>> from dnsstats.stats import Entry, Result, StatsConfig, TimeUnit, new_stats
    >>> ctx = new_stats(StatsConfig(limit_days=7))
    >>> ctx.update(Entry("example.com", "192.0.2.1", Result.NOT_FILTERED, 3))
    >>> ctx.get_data(TimeUnit.HOURS).totals.total_queries
    1
    >>> ctx.close()
"""

from .diskconfig import DiskConfig, load_disk_config, save_disk_config
from .engine import (
    SUPPORTED_INTERVALS,
    StatsConfig,
    StatsContext,
    StatsRotator,
    check_interval,
    current_hour_unit,
    new_stats,
)
from .errors import StatsError, StatsStorageError, StatsValidationError
from .http import RouteRegistrar
from .query import StatsData, StatsPoint, TimeUnit, format_stats_data
from .unit import Entry, Result

__all__ = [
    "DiskConfig",
    "Entry",
    "Result",
    "RouteRegistrar",
    "SUPPORTED_INTERVALS",
    "StatsConfig",
    "StatsContext",
    "StatsData",
    "StatsError",
    "StatsPoint",
    "StatsRotator",
    "StatsStorageError",
    "StatsValidationError",
    "TimeUnit",
    "check_interval",
    "current_hour_unit",
    "format_stats_data",
    "load_disk_config",
    "new_stats",
    "save_disk_config",
]
