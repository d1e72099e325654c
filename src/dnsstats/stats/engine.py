"""
Statistics engine: one context object owning the bucket window, its
optional SQLite mirror and the background rotation thread.

A StatsContext is created once at startup (new_stats()) and handed to the DNS
request pipeline, which calls update() for every completed query, and to the
admin HTTP layer, which reads reports and changes retention.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from .diskconfig import DEFAULT_INTERVAL_DAYS, DiskConfig
from .errors import StatsStorageError, StatsValidationError
from .http import RouteRegistrar, register_routes
from .query import StatsData, TimeUnit, build_stats_data
from .store import StatsSQLiteStore, remove_database_files
from .topk import merge_top
from .unit import (
    DEFAULT_TOP_N,
    Entry,
    Result,
    TimeBucket,
    normalize_client,
    normalize_domain,
)
from .window import BucketWindow

logger = logging.getLogger(__name__)

SUPPORTED_INTERVALS = (1, 7, 30, 90, 365)
HOURS_PER_DAY = 24

CurrentUnitSource = Callable[[], int]


def check_interval(days: Any) -> bool:
    """Return True when ``days`` is one of the supported retention intervals."""
    if isinstance(days, bool) or not isinstance(days, int):
        return False
    return days in SUPPORTED_INTERVALS


def current_hour_unit() -> int:
    """Return the current wall-clock hour number (hours since the epoch)."""
    return int(time.time()) // 3600


@dataclass
class StatsConfig:
    """
    Engine configuration.

    Inputs (constructor):
        limit_days: Retention interval in days (one of SUPPORTED_INTERVALS)
        filename: Optional SQLite database path; None keeps data in memory only
        unit_id: Optional callable returning the current unit id. When None,
            the current wall-clock hour number is used.
        config_modified: Optional callback fired after set_limit() or clear()
            succeeds
        http_register: Optional RouteRegistrar used to expose HTTP handlers
        top_n: Capacity of the per-bucket top-N lists and length of reported
            top lists
        rotation_interval_seconds: Period of the background rotation thread;
            0 disables the thread (advance() may then be called directly)
    """

    limit_days: int = DEFAULT_INTERVAL_DAYS
    filename: Optional[str] = None
    unit_id: Optional[CurrentUnitSource] = None
    config_modified: Optional[Callable[[], None]] = None
    http_register: Optional[RouteRegistrar] = None
    top_n: int = DEFAULT_TOP_N
    rotation_interval_seconds: float = 60.0


class StatsContext:
    """
    Statistics engine instance.

    Inputs (constructor):
        conf: StatsConfig

    Outputs:
        StatsContext; use new_stats() to construct and start it.

    Thread-safety: update(), get_data(), get_top_clients(), set_limit(),
    clear() and advance() may be called from any thread. close() is not
    thread safe: it must not run in parallel with any other method, so
    callers stop feeding update() and serving HTTP first.

    Example:
        >>> ctx = new_stats(StatsConfig(unit_id=lambda: 100, rotation_interval_seconds=0))
        >>> ctx.update(Entry("example.com", "192.0.2.1", Result.FILTERED, 5))
        >>> ctx.get_data(TimeUnit.HOURS).totals.total_queries
        1
        >>> ctx.close()
    """

    def __init__(self, conf: StatsConfig) -> None:
        self.conf = conf

        limit_days = conf.limit_days
        if not check_interval(limit_days):
            logger.warning(
                "Stats: unsupported interval %r, using %d day(s)",
                limit_days,
                DEFAULT_INTERVAL_DAYS,
            )
            limit_days = DEFAULT_INTERVAL_DAYS
        self._limit_days: int = limit_days

        self._unit_source: CurrentUnitSource = conf.unit_id or current_hour_unit
        self._top_n = max(1, int(conf.top_n))
        self._window = BucketWindow(limit_days * HOURS_PER_DAY, top_n=self._top_n)

        # Serializes retention changes, clearing and persistence.
        self._store_lock = threading.RLock()
        self._store: Optional[StatsSQLiteStore] = None
        self._storage_error: Optional[StatsStorageError] = None
        # Closed buckets written by the previous flush. An update that picked
        # one up just before rotation may land after that write, so they are
        # written once more by the next flush.
        self._last_flushed: List[TimeBucket] = []
        self._rotator: Optional[StatsRotator] = None

        if conf.filename:
            self._open_store(conf.filename)

        logger.debug(
            "Stats: initialized, limit=%d day(s), db=%s", limit_days, conf.filename
        )

    # ------------------------------------------------------------------
    # Setup and lifecycle
    # ------------------------------------------------------------------
    def _open_store(self, filename: str) -> None:
        unit = self._unit_source()
        try:
            self._store = StatsSQLiteStore(filename, top_n=self._top_n)
            buckets = self._store.load_units(unit - self.limit_hours + 1)
        except StatsStorageError as exc:
            logger.error("Stats: persisted statistics are unreadable: %s", exc)
            self._storage_error = exc
            return
        self._window.load(buckets, unit)
        logger.info("Stats: loaded %d unit(s) from %s", len(buckets), filename)

    def init_web(self, register: RouteRegistrar) -> None:
        """Register HTTP handlers through ``register``."""
        register_routes(self, register)

    def start(self) -> None:
        """Start the background rotation thread when configured."""
        interval = float(self.conf.rotation_interval_seconds or 0)
        if interval <= 0 or self._rotator is not None:
            return
        self._rotator = StatsRotator(self, interval_seconds=interval)
        self._rotator.start()

    def close(self) -> None:
        """
        Stop background rotation, flush buckets to the store and close it.

        Not thread safe: callers must make sure no other call is in flight.
        """
        if self._rotator is not None:
            self._rotator.stop()
            self._rotator = None

        with self._store_lock:
            if self._store is not None:
                self._flush_locked(include_current=True)
                self._store.close()
                self._store = None
        logger.debug("Stats: closed")

    # ------------------------------------------------------------------
    # Counting
    # ------------------------------------------------------------------
    def update(self, entry: Entry) -> None:
        """
        Record one completed DNS query.

        Inputs:
            entry: Entry for the query

        Outputs:
            None. Invalid entries (empty domain, unknown result, client that
            is not an IP address, negative time) are dropped.
        """
        normalized = self._normalize_entry(entry)
        if normalized is None:
            logger.debug("Stats: dropping invalid entry %r", entry)
            return
        try:
            unit = self._unit_source()
        except Exception:  # pragma: no cover - user supplied callback
            logger.exception("Stats: unit id source failed; entry dropped")
            return
        self._window.update(normalized, unit)

    @staticmethod
    def _normalize_entry(entry: Entry) -> Optional[Entry]:
        if not isinstance(entry.domain, str):
            return None
        domain = normalize_domain(entry.domain)
        if not domain:
            return None
        try:
            result = Result(entry.result)
        except ValueError:
            return None
        client = normalize_client(entry.client)
        if client is None:
            return None
        try:
            elapsed_ms = int(entry.elapsed_ms)
        except (TypeError, ValueError):
            return None
        if elapsed_ms < 0:
            return None
        return Entry(domain=domain, client=client, result=result, elapsed_ms=elapsed_ms)

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------
    def advance(self) -> None:
        """
        Run one housekeeping pass.

        Rotates the window to the current unit (evicting expired buckets) and
        writes buckets closed since the previous pass to the store. Cooperates
        with the lazy rotation done by update(): whichever runs first rotates,
        the other finds nothing to do.
        """
        self._window.advance(self._unit_source())
        with self._store_lock:
            if self._store is not None:
                self._flush_locked(include_current=False)

    def _flush_locked(self, include_current: bool) -> None:
        assert self._store is not None
        closed = self._window.take_closed()
        live = self._window.buckets()
        live_ids = {b.unit_id for b in live}
        by_unit = {b.unit_id: b for b in self._last_flushed + closed}
        if include_current and live:
            by_unit[live[-1].unit_id] = live[-1]
        buckets = [b for uid, b in sorted(by_unit.items()) if uid in live_ids]
        self._last_flushed = [b for b in closed if b.unit_id in live_ids]
        try:
            written = self._store.save_units(buckets)
            if live:
                self._store.delete_before(live[0].unit_id)
        except StatsStorageError as exc:
            logger.error("Stats: failed to persist units: %s", exc)
            return
        if written:
            logger.debug(
                "Stats: flushed %d unit(s) to %s", written, self._store.db_path
            )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------
    def get_data(self, unit: TimeUnit) -> StatsData:
        """
        Build a report of the retained window.

        Inputs:
            unit: TimeUnit.HOURS or TimeUnit.DAYS

        Outputs:
            StatsData

        Raises:
            StatsStorageError: while persisted statistics are unreadable. The
            condition is cleared by clear().
        """
        if self._storage_error is not None:
            raise StatsStorageError(
                f"stored statistics are unreadable: {self._storage_error}"
            )

        start = time.perf_counter()
        if len(self._window):
            self._window.advance(self._unit_source())
        snapshots = self._window.snapshot()
        data = build_stats_data(snapshots, unit, top_n=self._top_n)
        logger.debug(
            "Stats: prepared data (%s, %d unit(s)) in %.3fms",
            unit.value,
            len(snapshots),
            (time.perf_counter() - start) * 1000.0,
        )
        return data

    def get_top_clients(self, limit: int) -> List[str]:
        """Return up to ``limit`` of the most active client addresses in the window."""
        snapshots = self._window.snapshot()
        top = merge_top((s.top_clients for s in snapshots), limit)
        return [client for client, _ in top]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    @property
    def limit_days(self) -> int:
        return self._limit_days

    @property
    def limit_hours(self) -> int:
        return self._limit_days * HOURS_PER_DAY

    def set_limit(self, days: int) -> None:
        """
        Change the retention interval.

        Inputs:
            days: New interval in days; must be in SUPPORTED_INTERVALS

        Outputs:
            None. Fires config_modified once on success.

        Raises:
            StatsValidationError: for unsupported values; nothing changes.
        """
        if not check_interval(days):
            raise StatsValidationError(
                f"unsupported statistics interval {days!r}; "
                f"supported: {', '.join(str(d) for d in SUPPORTED_INTERVALS)}"
            )

        with self._store_lock:
            self._limit_days = days
            evicted = self._window.set_limit_hours(days * HOURS_PER_DAY)
            if evicted and self._store is not None:
                live = self._window.buckets()
                if live:
                    try:
                        self._store.delete_before(live[0].unit_id)
                    except StatsStorageError as exc:
                        logger.error("Stats: failed to trim persisted units: %s", exc)

        logger.info(
            "Stats: interval set to %d day(s), evicted %d unit(s)", days, evicted
        )
        self._notify_config_modified()

    def clear(self) -> None:
        """
        Discard all statistics, in memory and on disk.

        The retention interval is kept. Fires config_modified once on success.

        Raises:
            StatsStorageError: when the database cannot be recreated.
        """
        with self._store_lock:
            self._window.clear()
            self._last_flushed = []
            filename = self.conf.filename
            if filename:
                if self._store is not None:
                    self._store.clear()
                else:
                    remove_database_files(filename)
                    self._store = StatsSQLiteStore(filename, top_n=self._top_n)
            self._storage_error = None

        logger.info("Stats: cleared")
        self._notify_config_modified()

    def write_disk_config(self, dc: DiskConfig) -> None:
        """Fill ``dc`` with the settings that are persisted on disk."""
        dc.interval = self._limit_days

    def _notify_config_modified(self) -> None:
        if self.conf.config_modified is not None:
            self.conf.config_modified()


class StatsRotator(threading.Thread):
    """
    Background daemon thread running StatsContext.advance() periodically.

    Inputs (constructor):
        ctx: StatsContext to rotate
        interval_seconds: Seconds between passes

    Outputs:
        StatsRotator thread instance (call start() to begin)

    Example:
        >>> rotator = StatsRotator(ctx, interval_seconds=60)  # doctest: +SKIP
        >>> rotator.start()  # doctest: +SKIP
        >>> rotator.stop()  # doctest: +SKIP
    """

    def __init__(self, ctx: StatsContext, interval_seconds: float = 60.0) -> None:
        super().__init__(daemon=True, name="StatsRotator")
        self.ctx = ctx
        self.interval_seconds = max(0.01, float(interval_seconds))
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.ctx.advance()
            except Exception as e:  # pragma: no cover
                logger.error("StatsRotator error: %s", e, exc_info=True)

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the rotator to stop and wait for the thread to exit."""
        self._stop_event.set()
        self.join(timeout=timeout)


def new_stats(conf: StatsConfig) -> StatsContext:
    """
    Create a StatsContext, register its HTTP handlers and start rotation.

    Inputs:
        conf: StatsConfig

    Outputs:
        Running StatsContext. Call close() on shutdown.
    """
    ctx = StatsContext(conf)
    if conf.http_register is not None:
        ctx.init_web(conf.http_register)
    ctx.start()
    return ctx
