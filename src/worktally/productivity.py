"""
Quantity and productivity metrics.

A quantifiable task has a ``unit`` and tracks how much work was done
(``quantity``) against a target (``expected_quantity``). Rates are expressed
in units per person-hour and only count closed time entries, so a running
timer does not drag the live rate down mid-session.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence
from pydantic import BaseModel, Field

from .aggregate import SECONDS_PER_HOUR, total_seconds_now
from .estimate import effective_estimate
from .models import TaskNode, TimeEntry, as_utc

# Current rate within this fraction of the required rate counts as on pace
PACE_TOLERANCE = 0.1

class PaceStatus(Enum):
    AHEAD = "ahead"
    ON_PACE = "on_pace"
    BEHIND = "behind"

class ProductivityPace(BaseModel):
    status: PaceStatus = Field(description="Whether the crew is ahead of, on or behind the required rate")
    percentage: int = Field(default=0, description="How far ahead or behind, in whole percent; 0 when on pace")

def _closed_entries(task: TaskNode) -> List[TimeEntry]:
    return [e for e in task.time_entries if e.end_time is not None]

def tracked_hours(task: TaskNode) -> Optional[float]:
    """Hours of the task's closed entries, or None when nothing is closed yet."""
    closed = _closed_entries(task)
    if not closed:
        return None
    return sum(e.duration_seconds() for e in closed) / SECONDS_PER_HOUR

def tracked_person_hours(task: TaskNode) -> Optional[float]:
    """Person-hours of the task's closed entries, or None when nothing is closed yet."""
    closed = _closed_entries(task)
    if not closed:
        return None
    return sum(e.duration_seconds() * e.personnel_count for e in closed) / SECONDS_PER_HOUR

def live_productivity_rate(task: TaskNode) -> Optional[float]:
    """Units completed per person-hour so far; works for tasks still in progress."""
    if not task.is_quantifiable or not task.quantity:
        return None
    person_hours = tracked_person_hours(task)
    if not person_hours:
        return None
    return task.quantity / person_hours

def units_per_hour(task: TaskNode) -> Optional[float]:
    """Units per person-hour, the figure reported for finished work."""
    return live_productivity_rate(task)

def _planned_crew(task: TaskNode) -> int:
    return task.expected_personnel_count or 1

def required_productivity_rate(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[float]:
    """
    Rate needed to finish the remaining quantity in the remaining estimate.

    None when there is no target, no estimate, nothing left to do or no time
    left to do it in.
    """
    if not task.is_quantifiable or not task.expected_quantity:
        return None
    estimate = effective_estimate(task, all_tasks)
    if not estimate:
        return None

    remaining = task.expected_quantity - (task.quantity or 0)
    if remaining <= 0:
        return None
    remaining_seconds = estimate - total_seconds_now(task, all_tasks, now)
    if remaining_seconds <= 0:
        return None

    remaining_person_hours = remaining_seconds / SECONDS_PER_HOUR * _planned_crew(task)
    return remaining / remaining_person_hours

def minimum_required_productivity_rate(task: TaskNode, all_tasks: Sequence[TaskNode]) -> Optional[float]:
    """Rate needed to deliver the whole target within the whole estimate."""
    if not task.is_quantifiable or not task.expected_quantity:
        return None
    estimate = effective_estimate(task, all_tasks)
    if not estimate:
        return None
    return task.expected_quantity / (estimate / SECONDS_PER_HOUR * _planned_crew(task))

def productivity_pace(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[ProductivityPace]:
    current = live_productivity_rate(task)
    required = required_productivity_rate(task, all_tasks, now)
    if current is None or required is None:
        return None

    ratio = current / required
    if ratio >= 1.0 + PACE_TOLERANCE:
        return ProductivityPace(status=PaceStatus.AHEAD, percentage=int((ratio - 1.0) * 100))
    elif ratio >= 1.0 - PACE_TOLERANCE:
        return ProductivityPace(status=PaceStatus.ON_PACE)
    return ProductivityPace(status=PaceStatus.BEHIND, percentage=int((1.0 - ratio) * 100))

def quantity_progress(task: TaskNode) -> Optional[float]:
    """Completed quantity as a fraction of the target (may exceed 1.0)."""
    if not task.expected_quantity:
        return None
    return (task.quantity or 0) / task.expected_quantity

def quantity_remaining(task: TaskNode) -> Optional[float]:
    """Quantity still to do; negative once the target is exceeded."""
    if task.expected_quantity is None:
        return None
    return task.expected_quantity - (task.quantity or 0)

# --- Today ---

def today_entries(task: TaskNode, now: datetime) -> List[TimeEntry]:
    """Closed entries that ended on the same UTC day as ``now``."""
    today = as_utc(now).date()
    return [e for e in _closed_entries(task) if e.end_time.date() == today]

def today_hours(task: TaskNode, now: datetime) -> float:
    return sum(e.duration_seconds() for e in today_entries(task, now)) / SECONDS_PER_HOUR

def today_person_hours(task: TaskNode, now: datetime) -> float:
    return sum(e.duration_seconds() * e.personnel_count for e in today_entries(task, now)) / SECONDS_PER_HOUR
