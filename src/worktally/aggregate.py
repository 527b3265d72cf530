"""
Time, effort and personnel roll-up over a flat task snapshot.

Every function here is pure: it reads the snapshot and the ``now`` it was given
and never samples the clock, so sibling sums inside one call cannot drift apart.
Children are found by scanning the snapshot for ``parent_id`` matches rather
than through a stored list, which keeps the results correct when the snapshot
is refreshed between calls.
"""
from datetime import datetime
from typing import Iterator, List, Optional, Sequence, Set

from .models import TaskNode

SECONDS_PER_HOUR = 3600.0

def children_of(task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[TaskNode]:
    """All nodes in the snapshot whose parent is ``task``."""
    return [t for t in all_tasks if t.parent_id == task.id]

def iter_subtree(task: TaskNode, all_tasks: Sequence[TaskNode], _seen: Optional[Set[str]] = None) -> Iterator[TaskNode]:
    """
    Yield ``task`` followed by every descendant, depth first.

    No depth limit is assumed. A node reached twice through a malformed
    parent chain is yielded only once.
    """
    seen = _seen if _seen is not None else set()
    if task.id in seen:
        return
    seen.add(task.id)
    yield task
    for child in children_of(task, all_tasks):
        yield from iter_subtree(child, all_tasks, seen)

def descendants_of(task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[TaskNode]:
    return list(iter_subtree(task, all_tasks))[1:]

# --- Elapsed time ---

def direct_seconds_now(task: TaskNode, now: datetime) -> int:
    """Stored seconds plus the running timer's elapsed time, if any."""
    total = task.direct_seconds
    active = task.active_entry
    if active is not None:
        total += active.duration_seconds(now)
    return max(0, total)

def total_seconds_now(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> int:
    """Direct seconds of the task and all of its descendants."""
    return sum(direct_seconds_now(t, now) for t in iter_subtree(task, all_tasks))

# --- Effort ---

def direct_person_seconds(task: TaskNode, now: datetime) -> int:
    """Sum of duration x personnel over the task's own entries."""
    return sum(e.duration_seconds(now) * e.personnel_count for e in task.time_entries)

def total_person_seconds(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> int:
    return sum(direct_person_seconds(t, now) for t in iter_subtree(task, all_tasks))

def direct_person_hours(task: TaskNode, now: datetime) -> float:
    return direct_person_seconds(task, now) / SECONDS_PER_HOUR

def total_person_hours(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> float:
    return total_person_seconds(task, all_tasks, now) / SECONDS_PER_HOUR

# --- Personnel ---

def personnel_counts(task: TaskNode, all_tasks: Sequence[TaskNode]) -> Set[int]:
    """Every crew size used by an entry of the task or its descendants."""
    return {e.personnel_count for t in iter_subtree(task, all_tasks) for e in t.time_entries}

def has_multi_person_entries(task: TaskNode, all_tasks: Sequence[TaskNode]) -> bool:
    return any(
        e.personnel_count > 1
        for t in iter_subtree(task, all_tasks)
        for e in t.time_entries
    )

# --- Subtask counts ---

def completed_children_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
    return sum(1 for c in children_of(task, all_tasks) if c.is_completed)

def incomplete_children_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
    return sum(1 for c in children_of(task, all_tasks) if not c.is_completed)

def descendant_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
    return len(descendants_of(task, all_tasks))

def completed_descendant_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
    return sum(1 for d in descendants_of(task, all_tasks) if d.is_completed)
