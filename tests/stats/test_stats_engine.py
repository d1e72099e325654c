"""
Brief: Tests for StatsContext (counting, retention changes, clearing, callbacks).

Inputs:
  - None

Outputs:
  - None
"""

import logging
import threading

import pytest

from dnsstats.stats import (
    DiskConfig,
    Entry,
    Result,
    StatsValidationError,
    TimeUnit,
    check_interval,
)


def _entry(i=0, result=Result.NOT_FILTERED):
    return Entry(f"host{i % 5}.example.com", f"192.0.2.{i % 7 + 1}", result, 2)


def test_check_interval_allow_list():
    """
    Brief: check_interval accepts only the supported day counts.

    Inputs:
      - None

    Outputs:
      - None: Asserts accepted and rejected values
    """
    for days in (1, 7, 30, 90, 365):
        assert check_interval(days)
    for days in (0, 2, 3, -1, 366, "7", 7.0, True, None):
        assert not check_interval(days)


def test_totals_match_number_of_updates(make_stats):
    ctx = make_stats()
    results = list(Result)
    for i in range(100):
        ctx.update(_entry(i, results[i % len(results)]))
    data = ctx.get_data(TimeUnit.HOURS)
    assert data.totals.total_queries == 100
    assert sum(data.totals.counts_by_result.values()) == 100
    assert data.totals.count(Result.FILTERED) == 20


def test_concurrent_updates_are_exact(make_stats):
    """
    Brief: 50 threads x 200 updates are all counted.

    Inputs:
      - make_stats fixture

    Outputs:
      - None: Asserts total equals 10000
    """
    ctx = make_stats()
    barrier = threading.Barrier(50)

    def worker():
        barrier.wait()
        for i in range(200):
            ctx.update(_entry(i))

    threads = [threading.Thread(target=worker) for _ in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert ctx.get_data(TimeUnit.HOURS).totals.total_queries == 10000


def test_invalid_entries_are_dropped(make_stats):
    ctx = make_stats()
    ctx.update(Entry("", "192.0.2.1", Result.NOT_FILTERED, 1))
    ctx.update(Entry("example.com", "not-an-ip", Result.NOT_FILTERED, 1))
    ctx.update(Entry("example.com", "192.0.2.1", 42, 1))
    ctx.update(Entry("example.com", "192.0.2.1", Result.NOT_FILTERED, -5))
    ctx.update(Entry("Example.COM.", "192.0.2.1", Result.NOT_FILTERED, 1))
    data = ctx.get_data(TimeUnit.HOURS)
    assert data.totals.total_queries == 1
    assert data.top_queried_domains == [("example.com", 1)]


def test_updates_across_hours_create_contiguous_points(make_stats, clock):
    ctx = make_stats()
    ctx.update(_entry())
    clock.tick(3)
    ctx.update(_entry())
    data = ctx.get_data(TimeUnit.HOURS)
    assert [p.total_queries for p in data.points] == [1, 0, 0, 1]


def test_get_data_rotates_idle_window(make_stats, clock):
    ctx = make_stats()
    ctx.update(_entry())
    clock.tick(30)
    data = ctx.get_data(TimeUnit.HOURS)
    assert len(data.points) == 24
    assert data.totals.total_queries == 0


def test_empty_window_reports_zeroes(make_stats):
    data = make_stats().get_data(TimeUnit.DAYS)
    assert data.points == []
    assert data.totals.total_queries == 0
    assert data.totals.avg_processing_time == 0


def test_unsupported_startup_interval_falls_back(make_stats, caplog):
    caplog.set_level(logging.WARNING)
    ctx = make_stats(limit_days=3)
    assert ctx.limit_days == 1
    assert "unsupported interval" in caplog.text


def test_set_limit_rejects_unsupported_values(make_stats):
    calls = []
    ctx = make_stats(limit_days=7, config_modified=lambda: calls.append(1))
    for bad in (3, 0, -7, "7", True):
        with pytest.raises(StatsValidationError):
            ctx.set_limit(bad)
    assert ctx.limit_days == 7
    assert calls == []


def test_set_limit_shrinks_window_and_notifies_once(make_stats, clock):
    calls = []
    ctx = make_stats(limit_days=7, config_modified=lambda: calls.append(1))
    for _ in range(48):
        ctx.update(_entry())
        clock.tick()
    ctx.update(_entry())
    assert len(ctx.get_data(TimeUnit.HOURS).points) == 49

    ctx.set_limit(1)
    assert calls == [1]
    assert ctx.limit_days == 1
    data = ctx.get_data(TimeUnit.HOURS)
    assert len(data.points) == 24
    assert data.totals.total_queries == 24


def test_clear_empties_and_keeps_interval(make_stats):
    calls = []
    ctx = make_stats(limit_days=30, config_modified=lambda: calls.append(1))
    for i in range(10):
        ctx.update(_entry(i))
    ctx.clear()
    assert calls == [1]
    assert ctx.limit_days == 30
    data = ctx.get_data(TimeUnit.DAYS)
    assert data.totals.total_queries == 0
    assert data.top_clients == []


def test_get_top_clients_orders_by_activity(make_stats):
    ctx = make_stats()
    for _ in range(3):
        ctx.update(Entry("a.com", "192.0.2.9", Result.NOT_FILTERED, 1))
    ctx.update(Entry("a.com", "192.0.2.8", Result.NOT_FILTERED, 1))
    ctx.update(Entry("a.com", "2001:DB8::1", Result.NOT_FILTERED, 1))
    assert ctx.get_top_clients(2) == ["192.0.2.9", "192.0.2.8"]
    assert "2001:db8::1" in ctx.get_top_clients(10)


def test_write_disk_config_copies_interval(make_stats):
    ctx = make_stats(limit_days=90)
    dc = DiskConfig()
    ctx.write_disk_config(dc)
    assert dc.interval == 90


def test_config_modified_can_read_new_interval(make_stats):
    seen = []
    holder = []

    def on_modified():
        dc = DiskConfig()
        holder[0].write_disk_config(dc)
        seen.append(dc.interval)

    ctx = make_stats(config_modified=on_modified)
    holder.append(ctx)
    ctx.set_limit(365)
    ctx.clear()
    assert seen == [365, 365]


def test_http_register_receives_routes(make_stats):
    registered = []
    make_stats(http_register=lambda m, p, h: registered.append((m, p)))
    assert ("GET", "/control/stats") in registered
    assert ("GET", "/control/stats_info") in registered
    assert ("POST", "/control/stats_config") in registered
    assert ("POST", "/control/stats_reset") in registered
