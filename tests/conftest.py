"""Shared pytest configuration for microloop tests."""

import signal

import pytest

from microloop import Context

DEFAULT_TIMEOUT = 5.0


def pytest_configure(config):
    config.addinivalue_line("markers", "timeout(seconds): fail the test once it has run this long")


@pytest.fixture(autouse=True)
def wall_clock_guard(request):
    """Fail a test that never returns, e.g. a loop that keeps re-queueing work.

    The alarm is only available where the platform has SIGALRM.
    """
    if not hasattr(signal, "SIGALRM"):
        yield
        return

    marker = request.node.get_closest_marker("timeout")
    seconds = float(marker.args[0]) if marker else DEFAULT_TIMEOUT

    def expire(signum, frame):
        pytest.fail(f"{request.node.name} still running after {seconds}s")

    previous = signal.signal(signal.SIGALRM, expire)
    signal.setitimer(signal.ITIMER_REAL, seconds)
    try:
        yield
    finally:
        signal.setitimer(signal.ITIMER_REAL, 0)
        signal.signal(signal.SIGALRM, previous)


@pytest.fixture
def logging_context():
    """A Context whose console.log lines are collected in a list."""
    lines = []
    return Context(log_fn=lines.append), lines
