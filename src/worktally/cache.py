"""
Short-lived memoization of aggregated task stats.

Several views read the same task within one UI tick; a one second TTL
collapses that burst into a single computation. Mutations must invalidate the
task and its ancestors synchronously; TaskPolicy does so after every change.
"""
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence
from pydantic import BaseModel, Field

from . import aggregate
from .logs import get_logger
from .models import TaskNode

log = get_logger("cache")

DEFAULT_TTL = 1.0

class AggregatedStats(BaseModel):
    total_seconds: int = Field(description="Elapsed seconds of the task and its descendants")
    direct_seconds: int = Field(description="Elapsed seconds of the task alone")
    total_person_hours: float = Field(description="Person-hours of the task and its descendants")
    direct_person_hours: float = Field(description="Person-hours of the task alone")
    personnel_counts: List[int] = Field(default_factory=list, description="Distinct crew sizes used, ascending")
    has_multi_person: bool = Field(default=False, description="Whether any entry had more than one person")
    cached_at: Optional[float] = Field(default=None, description="Cache clock reading when stored, null if uncached")

def compute_stats(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> AggregatedStats:
    """Aggregate everything a task row needs, against a single ``now``."""
    return AggregatedStats(
        total_seconds=aggregate.total_seconds_now(task, all_tasks, now),
        direct_seconds=aggregate.direct_seconds_now(task, now),
        total_person_hours=aggregate.total_person_hours(task, all_tasks, now),
        direct_person_hours=aggregate.direct_person_hours(task, now),
        personnel_counts=sorted(aggregate.personnel_counts(task, all_tasks)),
        has_multi_person=aggregate.has_multi_person_entries(task, all_tasks),
    )

class StatsCache:
    """Per-task stats keyed by task id, each valid for ``ttl`` seconds of ``clock``."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, AggregatedStats] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._entries

    def get_stats(self, task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> AggregatedStats:
        cached = self._entries.get(task.id)
        if cached is not None and self.clock() - cached.cached_at < self.ttl:
            return cached

        stats = compute_stats(task, all_tasks, now).model_copy(update={'cached_at': self.clock()})
        self._entries[task.id] = stats
        return stats

    def invalidate(self, task_id: str):
        """Drop one task's entry. Unknown ids are ignored."""
        self._entries.pop(task_id, None)

    def invalidate_lineage(self, task: TaskNode, all_tasks: Sequence[TaskNode]):
        """Drop the task and every ancestor whose totals include it."""
        by_id = {t.id: t for t in all_tasks}
        seen = set()
        current: Optional[TaskNode] = task
        while current is not None and current.id not in seen:
            seen.add(current.id)
            self.invalidate(current.id)
            current = by_id.get(current.parent_id) if current.parent_id else None
        log.debug(f"Invalidated {len(seen)} cached entries from {task.id}")

    def invalidate_all(self):
        self._entries.clear()
