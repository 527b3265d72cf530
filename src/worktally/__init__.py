"""
worktally - time, effort and status roll-up for tasks with one level of subtasks.

The engine works on a flat snapshot of task nodes plus a caller supplied "now":
aggregate sums elapsed time and person-hours up the hierarchy, status derives
blocked/ready/in-progress/completed, cache memoizes the roll-up for a second,
and policy is the single writer that validates and applies task mutations.
"""

from .version import VERSION, SNAPSHOT_SCHEMA_VERSION
from .models import (
    TaskStatus,
    EstimateStatus,
    TimeEntry,
    TaskNode,
    TaskGraph,
)
from .cache import AggregatedStats, StatsCache, compute_stats
from .config import EngineSettings, load_settings
from .estimate import effective_estimate
from .policy import ActionResult, PolicyError, PolicyErrorKind, TaskPolicy
from .productivity import PaceStatus, ProductivityPace, productivity_pace
from .status import blocking_dependencies, derive_status

__version__ = VERSION

__all__ = [
    "VERSION",
    "SNAPSHOT_SCHEMA_VERSION",
    "TaskStatus",
    "EstimateStatus",
    "TimeEntry",
    "TaskNode",
    "TaskGraph",
    "AggregatedStats",
    "StatsCache",
    "compute_stats",
    "EngineSettings",
    "load_settings",
    "effective_estimate",
    "ActionResult",
    "PolicyError",
    "PolicyErrorKind",
    "TaskPolicy",
    "PaceStatus",
    "ProductivityPace",
    "productivity_pace",
    "blocking_dependencies",
    "derive_status",
]
