"""
Shared fixtures for RDB analyzer tests.
"""

import datetime

import pytest

from rdb_analyzer.events import EventSource
from rdb_analyzer.stats import DatabaseStats, KeyStats, ListStats, Stats, StringStats


class ScriptedEventSource(EventSource):
    """Event source that replays a fixed list of (stream kind, event) pairs."""

    def __init__(self, events, error=None, sized_kinds=None, maxsize=None):
        super().__init__(maxsize=maxsize)
        self.events = list(events)
        self.error = error
        self.scanned_path = None
        if sized_kinds is not None:
            self.SIZED_KINDS = frozenset(sized_kinds)

    def _scan(self, path):
        self.scanned_path = path
        for kind, event in self.events:
            self.emit(kind, event)
        if self.error is not None:
            raise self.error


@pytest.fixture
def scripted_source():
    """Factory for scripted event sources."""
    return ScriptedEventSource


@pytest.fixture
def fixed_now():
    return datetime.datetime(2024, 1, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def sample_stats():
    """Two databases, ten keys (3 expired, 2 expiring), 5 strings and 2 lists."""
    return Stats(
        database=DatabaseStats(count=2),
        keys=KeyStats(count=10, expired=3, expiring=2),
        strings=StringStats(count=5, total_byte_size=500),
        lists=ListStats(count=2, total_byte_size=300),
    ).freeze()


@pytest.fixture
def empty_stats():
    return Stats().freeze()
