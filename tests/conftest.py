"""
Brief: Global pytest configuration: src/ import path, per-test timeout and
shared statistics fixtures.

Inputs:
  - None

Outputs:
  - None
"""

import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so the 'dnsstats' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class FakeClock:
    """Brief: Settable unit id source for deterministic bucketing.

    Inputs (constructor):
      - unit: Initial unit id (hour number).

    Outputs:
      - Callable returning the current unit id.
    """

    def __init__(self, unit: int = 1000) -> None:
        self.unit = unit

    def __call__(self) -> int:
        return self.unit

    def tick(self, hours: int = 1) -> int:
        self.unit += hours
        return self.unit


@pytest.fixture
def clock():
    """Brief: Provide a FakeClock starting at unit 1000."""
    return FakeClock()


@pytest.fixture
def make_stats(clock):
    """Brief: Factory fixture creating StatsContext objects that are closed after the test.

    Inputs:
      - clock: FakeClock fixture used as the default unit id source.

    Outputs:
      - Callable accepting StatsConfig keyword overrides.
    """
    from dnsstats.stats import StatsConfig, new_stats

    created = []

    def _make(**overrides):
        overrides.setdefault("unit_id", clock)
        overrides.setdefault("rotation_interval_seconds", 0)
        ctx = new_stats(StatsConfig(**overrides))
        created.append(ctx)
        return ctx

    yield _make
    for ctx in created:
        ctx.close()
