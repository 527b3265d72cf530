from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List, Dict, Iterable
from uuid import uuid4
import yaml

from .version import SNAPSHOT_SCHEMA_VERSION

def _new_id() -> str:
    return uuid4().hex

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to naive UTC.

    Offset-aware values are converted to UTC and stripped of their tzinfo;
    naive values are taken to be UTC already.
    """
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

class TaskStatus(Enum):
    BLOCKED = "blocked"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

# Fractions of the effective estimate already used
WARNING_THRESHOLD = 0.75
OVER_THRESHOLD = 1.0

class EstimateStatus(Enum):
    ON_TRACK = "on_track"
    WARNING = "warning"
    OVER = "over"

    @classmethod
    def from_progress(cls, progress: float) -> 'EstimateStatus':
        """Derive the status from a progress ratio (0.0 to 1.0+)."""
        if progress >= OVER_THRESHOLD:
            return cls.OVER
        elif progress >= WARNING_THRESHOLD:
            return cls.WARNING
        return cls.ON_TRACK

class BaseYAMLModel(BaseModel):
    """Pydantic model that can round-trip through a YAML document."""

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode="json"), default_flow_style=False, sort_keys=False, indent=2, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str):
        data = yaml.safe_load(text) or {}
        return cls.model_validate(data)

class TimeEntry(BaseModel):
    """A worked interval. An absent end_time means the timer is still running."""

    id: str = Field(default_factory=_new_id, description="Unique identifier for the entry")
    start_time: datetime = Field(description="When work started")
    end_time: Optional[datetime] = Field(default=None, description="When work stopped, null while the timer runs")
    personnel_count: int = Field(default=1, ge=1, description="How many people worked during the interval")
    note: Optional[str] = Field(default=None, description="Optional description of the work done")

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_utc(cls, v):
        return as_utc(v)

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    def duration_seconds(self, now: Optional[datetime] = None) -> int:
        """
        Elapsed whole seconds, never negative.

        A running entry is measured up to ``now``; without ``now`` it counts as 0.
        An end edited to before the start clamps to 0.
        """
        end = self.end_time if self.end_time is not None else as_utc(now)
        if end is None:
            return 0
        return max(0, int((end - self.start_time).total_seconds()))

    def has_valid_interval(self) -> bool:
        return self.end_time is None or self.end_time > self.start_time

class TaskNode(BaseModel):
    """A task in a project; top-level tasks may own one level of subtasks."""

    id: str = Field(default_factory=_new_id, description="Stable identity of the task")
    title: str = Field(default="", description="The human readable name of the task")
    is_completed: bool = Field(default=False, description="Whether the task has been completed")
    completed_at: Optional[datetime] = Field(default=None, description="When the task was completed")
    direct_seconds: int = Field(default=0, ge=0, description="Minute-rounded seconds of closed entries, excluding any running timer")
    time_entries: List[TimeEntry] = Field(default_factory=list, description="Time entries owned by the task")
    estimated_seconds: Optional[int] = Field(default=None, ge=0, description="Manual estimate in seconds")
    has_custom_estimate: bool = Field(default=False, description="True when the estimate overrides the sum of subtask estimates")
    expected_personnel_count: Optional[int] = Field(default=None, ge=1, description="Planned crew size, used when starting a timer")
    depends_on: List[str] = Field(default_factory=list, description="Ids of tasks that must complete first")
    parent_id: Optional[str] = Field(default=None, description="Id of the parent task, null for top-level tasks")
    project_id: Optional[str] = Field(default=None, description="Id of the owning project")
    unit: Optional[str] = Field(default=None, description="Unit the work is measured in, e.g. 'm2'; null when not quantifiable")
    quantity: Optional[float] = Field(default=None, ge=0, description="Amount of work completed, in unit")
    expected_quantity: Optional[float] = Field(default=None, ge=0, description="Target amount of work, in unit")

    @field_validator('depends_on')
    @classmethod
    def validate_unique_dependencies(cls, v):
        return list(dict.fromkeys(v))

    @field_validator('completed_at')
    @classmethod
    def validate_utc(cls, v):
        return as_utc(v)

    @model_validator(mode='after')
    def validate_custom_estimate(self):
        if self.has_custom_estimate and self.estimated_seconds is None:
            raise ValueError("has_custom_estimate requires estimated_seconds")
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError("a task cannot be its own parent")
        return self

    @model_validator(mode='after')
    def validate_single_running_entry(self):
        running = sum(1 for e in self.time_entries if e.end_time is None)
        if running > 1:
            raise ValueError(f"task {self.id} has {running} running time entries, at most one is allowed")
        return self

    @property
    def is_quantifiable(self) -> bool:
        return self.unit is not None

    @property
    def active_entry(self) -> Optional[TimeEntry]:
        return next((e for e in self.time_entries if e.end_time is None), None)

    @property
    def has_active_timer(self) -> bool:
        return self.active_entry is not None

    @property
    def is_subtask(self) -> bool:
        return self.parent_id is not None

    def find_entry(self, entry_id: str) -> Optional[TimeEntry]:
        """Find a time entry by id."""
        return next((e for e in self.time_entries if e.id == entry_id), None)

class TaskGraph(BaseYAMLModel):
    """A flat snapshot of every task node, as handed to the aggregator."""

    schema_version: str = Field(default=SNAPSHOT_SCHEMA_VERSION, description="Version of the snapshot layout")
    tasks: List[TaskNode] = Field(default_factory=list, description="All task nodes, top-level and subtasks alike")

    @model_validator(mode='after')
    def validate_unique_ids(self):
        seen = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id: {task.id}")
            seen.add(task.id)
        return self

    def __len__(self) -> int:
        return len(self.tasks)

    def index(self) -> Dict[str, TaskNode]:
        return {t.id: t for t in self.tasks}

    def get(self, task_id: str) -> Optional[TaskNode]:
        """Find a task by id."""
        return next((t for t in self.tasks if t.id == task_id), None)

    def children_of(self, task: TaskNode) -> List[TaskNode]:
        return [t for t in self.tasks if t.parent_id == task.id]

    def parent_of(self, task: TaskNode) -> Optional[TaskNode]:
        if task.parent_id is None:
            return None
        return self.get(task.parent_id)

    def dependencies_of(self, task: TaskNode) -> List[TaskNode]:
        """Resolve dependency ids, skipping ids that no longer exist."""
        by_id = self.index()
        return [by_id[d] for d in task.depends_on if d in by_id]

    def dependents_of(self, task: TaskNode) -> List[TaskNode]:
        return [t for t in self.tasks if task.id in t.depends_on]

    def top_level(self) -> List[TaskNode]:
        return [t for t in self.tasks if t.parent_id is None]

    def add(self, task: TaskNode) -> TaskNode:
        if self.get(task.id) is not None:
            raise ValueError(f"Duplicate task id: {task.id}")
        self.tasks.append(task)
        return task

    def remove(self, task_ids: Iterable[str]) -> int:
        """Drop tasks by id. Returns how many were removed."""
        doomed = set(task_ids)
        before = len(self.tasks)
        self.tasks = [t for t in self.tasks if t.id not in doomed]
        return before - len(self.tasks)
