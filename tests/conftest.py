"""Shared fixtures: a fixed clock origin and a small project snapshot."""

import pytest
from datetime import datetime, timedelta

from worktally.models import TaskNode, TimeEntry

T0 = datetime(2025, 10, 20, 9, 0, 0)


def at(seconds: int) -> datetime:
    """T0 shifted by a number of seconds."""
    return T0 + timedelta(seconds=seconds)


class FakeClock:
    """Monotonic clock stand-in for the stats cache."""

    def __init__(self, start: float = 100.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float):
        self.value += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def project():
    """
    Parent P (no entries) with children C1 and C2, plus an unrelated task D.

    C1 has 5400 stored seconds from two closed entries: 30 minutes for one
    person and one hour for two people.
    """
    parent = TaskNode(id="P", title="Build booth")
    c1 = TaskNode(
        id="C1",
        title="Lay carpet",
        parent_id="P",
        direct_seconds=5400,
        time_entries=[
            TimeEntry(start_time=at(0), end_time=at(1800), personnel_count=1),
            TimeEntry(start_time=at(3600), end_time=at(7200), personnel_count=2),
        ],
    )
    c2 = TaskNode(id="C2", title="Hang lights", parent_id="P")
    other = TaskNode(id="D", title="Order furniture")
    return [parent, c1, c2, other]
