"""
Estimate roll-up and estimate-vs-actual progress.

A parent's effective estimate is the sum of its children's unless the user
entered a custom value, in which case the custom value wins. A custom value
below the children's sum is allowed but reported by validate_custom_estimate.
"""
from datetime import datetime
from typing import Optional, Sequence, Set
from pydantic import BaseModel, Field

from .aggregate import children_of, total_seconds_now
from .models import EstimateStatus, TaskNode

class EstimateValidation(BaseModel):
    is_valid: bool = Field(default=True, description="Whether the proposed estimate passes the soft checks")
    message: Optional[str] = Field(default=None, description="Why the estimate was flagged")
    children_total: Optional[int] = Field(default=None, description="Sum of the children's effective estimates")

def format_duration(seconds: int) -> str:
    """Format seconds as "2h 30m", "45m" or "3h"."""
    minutes = max(0, seconds) // 60
    hours, mins = divmod(minutes, 60)
    if hours > 0 and mins > 0:
        return f"{hours}h {mins}m"
    elif hours > 0:
        return f"{hours}h"
    return f"{mins}m"

def calculated_estimate_from_children(task: TaskNode, all_tasks: Sequence[TaskNode], _seen: Optional[Set[str]] = None) -> Optional[int]:
    """Sum of the children's effective estimates, or None when there is nothing to sum."""
    seen = set(_seen or ()) | {task.id}
    children = [c for c in children_of(task, all_tasks) if c.id not in seen]
    if not children:
        return None
    total = sum(effective_estimate(c, all_tasks, _seen=seen) or 0 for c in children)
    return total if total > 0 else None

def effective_estimate(task: TaskNode, all_tasks: Sequence[TaskNode], _seen: Optional[Set[str]] = None) -> Optional[int]:
    if task.has_custom_estimate:
        return task.estimated_seconds
    calculated = calculated_estimate_from_children(task, all_tasks, _seen=_seen)
    return calculated if calculated is not None else task.estimated_seconds

def is_using_calculated_estimate(task: TaskNode, all_tasks: Sequence[TaskNode]) -> bool:
    return not task.has_custom_estimate and calculated_estimate_from_children(task, all_tasks) is not None

def time_progress(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[float]:
    """Total tracked time as a fraction of the effective estimate."""
    estimate = effective_estimate(task, all_tasks)
    if not estimate:
        return None
    return total_seconds_now(task, all_tasks, now) / float(estimate)

def estimate_status(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[EstimateStatus]:
    progress = time_progress(task, all_tasks, now)
    if progress is None:
        return None
    return EstimateStatus.from_progress(progress)

def is_over_estimate(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> bool:
    progress = time_progress(task, all_tasks, now)
    return progress is not None and progress > 1.0

def time_remaining(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[int]:
    """Seconds left on the estimate; negative once over."""
    estimate = effective_estimate(task, all_tasks)
    if estimate is None:
        return None
    return estimate - total_seconds_now(task, all_tasks, now)

def estimate_accuracy(task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> Optional[float]:
    """
    Ratio of estimated to actual time for a completed task.

    1.0 is a perfect estimate; 0.8 means the work took 25% longer than planned.
    """
    if not task.is_completed:
        return None
    estimate = effective_estimate(task, all_tasks)
    if not estimate:
        return None
    actual = total_seconds_now(task, all_tasks, now)
    if actual <= 0:
        return None
    return estimate / float(actual)

def validate_custom_estimate(task: TaskNode, all_tasks: Sequence[TaskNode], proposed_seconds: int) -> EstimateValidation:
    """Flag a custom estimate that is lower than what the subtasks already add up to."""
    children_total = calculated_estimate_from_children(task, all_tasks)
    if children_total is None:
        return EstimateValidation()

    if proposed_seconds < children_total:
        return EstimateValidation(
            is_valid=False,
            message=(f"Custom estimate ({format_duration(proposed_seconds)}) cannot be less than "
                     f"subtask estimates total ({format_duration(children_total)})"),
            children_total=children_total,
        )
    return EstimateValidation(children_total=children_total)

def estimate_from_effort(effort_hours: float, personnel: Optional[int] = None) -> int:
    """Calendar duration, in seconds, for an effort spread over a crew."""
    crew = personnel or 1
    if crew < 1:
        raise ValueError("personnel must be at least 1")
    return int(effort_hours / crew * 3600)
