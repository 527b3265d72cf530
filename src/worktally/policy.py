"""
TaskPolicy - the single writer for task mutations.

Every action checks its preconditions, applies the change and invalidates the
stats cache before returning. Refusals are returned as ActionResult values
carrying a PolicyErrorKind; they are expected outcomes for the caller to turn
into confirmations or alerts, so nothing here raises for them.
"""
from collections import deque
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Set
from pydantic import BaseModel, Field

from .aggregate import children_of, descendants_of, incomplete_children_count
from .cache import StatsCache
from .config import EngineSettings
from .estimate import EstimateValidation, validate_custom_estimate
from .logs import get_logger
from .models import TaskNode, TaskStatus, TimeEntry, as_utc
from .status import blocking_dependencies, derive_status

log = get_logger("policy")

class PolicyErrorKind(Enum):
    TASK_BLOCKED = "task_blocked"
    TASK_COMPLETED = "task_completed"
    TIMER_ALREADY_RUNNING = "timer_already_running"
    NO_ACTIVE_TIMER = "no_active_timer"
    INVALID_INTERVAL = "invalid_interval"
    CIRCULAR_DEPENDENCY = "circular_dependency"
    INVALID_HIERARCHY = "invalid_hierarchy"
    INVALID_PERSONNEL = "invalid_personnel"
    UNKNOWN_ENTRY = "unknown_entry"

class PolicyError(BaseModel):
    kind: PolicyErrorKind = Field(description="Which precondition failed")
    message: str = Field(description="Explanation suitable for an alert")
    blocking_ids: List[str] = Field(default_factory=list, description="Ids of the incomplete dependencies, for TASK_BLOCKED")

class ActionResult(BaseModel):
    ok: bool = Field(description="Whether the action was applied")
    error: Optional[PolicyError] = Field(default=None, description="Why the action was refused")
    entry: Optional[TimeEntry] = Field(default=None, description="The time entry the action opened, closed or changed")
    validation: Optional[EstimateValidation] = Field(default=None, description="Soft estimate checks, for set_estimate")
    removed_ids: List[str] = Field(default_factory=list, description="Task ids the caller should drop, for delete_task")

    def __bool__(self) -> bool:
        return self.ok

    @property
    def kind(self) -> Optional[PolicyErrorKind]:
        return self.error.kind if self.error else None

    @classmethod
    def success(cls, **kwargs) -> 'ActionResult':
        return cls(ok=True, **kwargs)

    @classmethod
    def failure(cls, kind: PolicyErrorKind, message: str, blocking_ids: Sequence[str] = ()) -> 'ActionResult':
        log.info(f"Refused: {kind.value}: {message}")
        return cls(ok=False, error=PolicyError(kind=kind, message=message, blocking_ids=list(blocking_ids)))

def round_to_minute(seconds: int) -> int:
    """Round seconds to the nearest whole minute, halves rounding up (30s -> 60s, 89s -> 60s, 90s -> 120s)."""
    return ((max(0, seconds) + 30) // 60) * 60

def _stored_seconds(entry: TimeEntry) -> int:
    # What a closed entry contributed to direct_seconds
    if entry.end_time is None:
        return 0
    return round_to_minute(entry.duration_seconds())

def _blocked_message(deps: List[TaskNode]) -> str:
    if not deps:
        return "Task is blocked"
    names = [d.title or d.id for d in deps]
    if len(names) == 1:
        return f"Blocked by: {names[0]}"
    more = f" +{len(names) - 2} more" if len(names) > 2 else ""
    return f"Blocked by: {', '.join(names[:2])}{more}"

class TaskPolicy:
    """Validated mutations over a task snapshot."""

    def __init__(self, cache: Optional[StatsCache] = None, settings: Optional[EngineSettings] = None):
        self.settings = settings or EngineSettings()
        self.cache = cache if cache is not None else StatsCache(ttl=self.settings.cache_ttl_seconds)

    def status(self, task: TaskNode, all_tasks: Sequence[TaskNode]) -> TaskStatus:
        """Status under the configured subtask blocking rule."""
        return derive_status(task, all_tasks, include_subtask_dependencies=self.settings.inherit_subtask_blocking)

    def _blocked(self, task: TaskNode, all_tasks: Sequence[TaskNode]) -> Optional[ActionResult]:
        if self.status(task, all_tasks) != TaskStatus.BLOCKED:
            return None
        deps = blocking_dependencies(task, all_tasks)
        if not deps and self.settings.inherit_subtask_blocking:
            deps = [d for c in children_of(task, all_tasks) for d in blocking_dependencies(c, all_tasks)]
        return ActionResult.failure(PolicyErrorKind.TASK_BLOCKED, _blocked_message(deps), [d.id for d in deps])

    def _check_personnel(self, count: int) -> Optional[ActionResult]:
        if count < 1 or count > self.settings.max_personnel_count:
            return ActionResult.failure(
                PolicyErrorKind.INVALID_PERSONNEL,
                f"Personnel must be between 1 and {self.settings.max_personnel_count}",
            )
        return None

    # --- Timers ---

    def start_timer(self, task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime, force: bool = False) -> ActionResult:
        """
        Open a time entry at ``now``.

        ``force`` overrides blocking dependencies only; a completed task must
        be reopened with uncomplete first.
        """
        if task.is_completed:
            return ActionResult.failure(PolicyErrorKind.TASK_COMPLETED, "Task is already completed")
        if not force:
            refused = self._blocked(task, all_tasks)
            if refused is not None:
                return refused
        if task.has_active_timer:
            return ActionResult.failure(PolicyErrorKind.TIMER_ALREADY_RUNNING, "Timer is already running")

        entry = TimeEntry(
            start_time=now,
            personnel_count=task.expected_personnel_count or self.settings.default_personnel_count,
        )
        task.time_entries.append(entry)
        self.cache.invalidate_lineage(task, all_tasks)
        log.debug(f"Started timer on {task.id} (force={force})")
        return ActionResult.success(entry=entry)

    def _close(self, task: TaskNode, entry: TimeEntry, now: datetime):
        entry.end_time = as_utc(now)
        task.direct_seconds += _stored_seconds(entry)

    def stop_timer(self, task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime) -> ActionResult:
        entry = task.active_entry
        if entry is None:
            return ActionResult.failure(PolicyErrorKind.NO_ACTIVE_TIMER, "No active timer to stop")

        self._close(task, entry, now)
        self.cache.invalidate_lineage(task, all_tasks)
        log.debug(f"Stopped timer on {task.id}, direct_seconds now {task.direct_seconds}")
        return ActionResult.success(entry=entry)

    # --- Completion ---

    def _mark_complete(self, task: TaskNode, now: datetime):
        active = task.active_entry
        if active is not None:
            self._close(task, active, now)
        task.is_completed = True
        task.completed_at = as_utc(now)

    def complete(self, task: TaskNode, all_tasks: Sequence[TaskNode], now: datetime, force: bool = False,
                 include_children: bool = False) -> ActionResult:
        """
        Complete a task, stopping its timer.

        Incomplete children are left alone unless ``include_children`` is set;
        callers ask the user first, using incomplete_children_count.
        """
        if not force:
            refused = self._blocked(task, all_tasks)
            if refused is not None:
                return refused

        self._mark_complete(task, now)
        if include_children:
            for child in children_of(task, all_tasks):
                if not child.is_completed:
                    self._mark_complete(child, now)
            self.cache.invalidate_all()
        else:
            self.cache.invalidate_lineage(task, all_tasks)
        log.info(f"Completed {task.id} (force={force}, include_children={include_children})")
        return ActionResult.success()

    def uncomplete(self, task: TaskNode, all_tasks: Sequence[TaskNode], include_children: bool = False) -> ActionResult:
        task.is_completed = False
        task.completed_at = None
        if include_children:
            for child in children_of(task, all_tasks):
                child.is_completed = False
                child.completed_at = None
            self.cache.invalidate_all()
        else:
            self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success()

    @staticmethod
    def incomplete_children_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
        return incomplete_children_count(task, all_tasks)

    # --- Time entries ---

    def add_manual_entry(self, task: TaskNode, all_tasks: Sequence[TaskNode], start: datetime, end: datetime,
                         personnel_count: int = 1, note: Optional[str] = None) -> ActionResult:
        start, end = as_utc(start), as_utc(end)
        if end <= start:
            return ActionResult.failure(PolicyErrorKind.INVALID_INTERVAL, "End time must be after start time")
        refused = self._check_personnel(personnel_count)
        if refused is not None:
            return refused

        entry = TimeEntry(start_time=start, end_time=end, personnel_count=personnel_count, note=note)
        task.time_entries.append(entry)
        task.direct_seconds += _stored_seconds(entry)
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success(entry=entry)

    def edit_entry(self, task: TaskNode, all_tasks: Sequence[TaskNode], entry_id: str, start: datetime,
                   end: Optional[datetime], personnel_count: Optional[int] = None) -> ActionResult:
        """Replace an entry's interval (and optionally its crew size), keeping direct_seconds in step."""
        entry = task.find_entry(entry_id)
        if entry is None:
            return ActionResult.failure(PolicyErrorKind.UNKNOWN_ENTRY, f"No time entry {entry_id} on this task")
        start, end = as_utc(start), as_utc(end)
        if end is None and entry.end_time is not None:
            return ActionResult.failure(PolicyErrorKind.INVALID_INTERVAL, "A closed entry needs an end time")
        if end is not None and end <= start:
            return ActionResult.failure(PolicyErrorKind.INVALID_INTERVAL, "End time must be after start time")
        if personnel_count is not None:
            refused = self._check_personnel(personnel_count)
            if refused is not None:
                return refused

        before = _stored_seconds(entry)
        entry.start_time = start
        entry.end_time = end
        if personnel_count is not None:
            entry.personnel_count = personnel_count
        task.direct_seconds = max(0, task.direct_seconds - before + _stored_seconds(entry))
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success(entry=entry)

    def delete_entry(self, task: TaskNode, all_tasks: Sequence[TaskNode], entry_id: str) -> ActionResult:
        entry = task.find_entry(entry_id)
        if entry is None:
            return ActionResult.failure(PolicyErrorKind.UNKNOWN_ENTRY, f"No time entry {entry_id} on this task")

        task.time_entries = [e for e in task.time_entries if e.id != entry_id]
        task.direct_seconds = max(0, task.direct_seconds - _stored_seconds(entry))
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success(entry=entry)

    # --- Dependencies ---

    def _would_cycle(self, task: TaskNode, dependency: TaskNode, all_tasks: Sequence[TaskNode]) -> bool:
        """
        Walk everything ``dependency`` waits on, including its children's
        dependencies since those hold the parent back too. Reaching ``task``
        (or the parent it blocks) means the new link would close a loop.
        """
        by_id = {t.id: t for t in all_tasks}
        targets = {task.id}
        if task.parent_id:
            targets.add(task.parent_id)

        visited: Set[str] = set()
        queue = deque([dependency])
        while queue:
            current = queue.popleft()
            if current.id in targets:
                return True
            if current.id in visited:
                continue
            visited.add(current.id)
            queue.extend(by_id[d] for d in current.depends_on if d in by_id)
            for child in children_of(current, all_tasks):
                queue.extend(by_id[d] for d in child.depends_on if d in by_id)
        return False

    def add_dependency(self, task: TaskNode, dependency: TaskNode, all_tasks: Sequence[TaskNode]) -> ActionResult:
        if dependency.id == task.id:
            return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY, "A task cannot depend on itself")
        if dependency.id in task.depends_on:
            return ActionResult.success()
        if any(d.id == dependency.id for d in descendants_of(task, all_tasks)):
            return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY, "A task cannot depend on its own subtasks")
        if task.parent_id == dependency.id:
            return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY, "A subtask cannot depend on its parent")
        if self._would_cycle(task, dependency, all_tasks):
            return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY,
                                        "Adding this dependency would create a circular reference")

        task.depends_on.append(dependency.id)
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success()

    def remove_dependency(self, task: TaskNode, dependency_id: str, all_tasks: Sequence[TaskNode]) -> ActionResult:
        task.depends_on = [d for d in task.depends_on if d != dependency_id]
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success()

    def available_dependencies(self, task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[TaskNode]:
        """Tasks that add_dependency would accept as new dependencies of ``task``."""
        descendant_ids = {d.id for d in descendants_of(task, all_tasks)}
        return [
            t for t in all_tasks
            if t.id != task.id
            and t.id not in task.depends_on
            and t.id not in descendant_ids
            and t.id != task.parent_id
            and not self._would_cycle(task, t, all_tasks)
        ]

    # --- Hierarchy ---

    def set_parent(self, task: TaskNode, parent: Optional[TaskNode], all_tasks: Sequence[TaskNode]) -> ActionResult:
        """Move a task under ``parent``, or to the top level when ``parent`` is None."""
        if parent is not None:
            if parent.id == task.id:
                return ActionResult.failure(PolicyErrorKind.INVALID_HIERARCHY, "A task cannot be its own parent")
            if parent.parent_id is not None:
                return ActionResult.failure(PolicyErrorKind.INVALID_HIERARCHY, "Subtasks cannot have subtasks of their own")
            if children_of(task, all_tasks):
                return ActionResult.failure(PolicyErrorKind.INVALID_HIERARCHY, "A task with subtasks cannot become a subtask")
            if parent.id in task.depends_on:
                return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY, "A subtask cannot depend on its parent")
            if task.id in parent.depends_on:
                return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY, "A task cannot depend on its own subtasks")
            # Once moved, the task's dependencies hold the new parent back too
            by_id = {t.id: t for t in all_tasks}
            if any(self._would_cycle(parent, by_id[d], all_tasks) for d in task.depends_on if d in by_id):
                return ActionResult.failure(PolicyErrorKind.CIRCULAR_DEPENDENCY,
                                            "Moving this task would create a circular reference")

        task.parent_id = parent.id if parent is not None else None
        if parent is not None:
            task.project_id = parent.project_id
        # Old and new parents both change totals
        self.cache.invalidate_all()
        return ActionResult.success()

    # --- Estimates ---

    def set_estimate(self, task: TaskNode, all_tasks: Sequence[TaskNode], seconds: Optional[int], custom: bool = False) -> ActionResult:
        """
        Store an estimate. A custom value below the subtask total is kept but
        reported through ``validation``.
        """
        if seconds is None:
            task.has_custom_estimate = False
            task.estimated_seconds = None
            validation = EstimateValidation()
        else:
            validation = validate_custom_estimate(task, all_tasks, seconds) if custom else EstimateValidation()
            task.estimated_seconds = max(0, seconds)
            task.has_custom_estimate = custom
        self.cache.invalidate_lineage(task, all_tasks)
        return ActionResult.success(validation=validation)

    # --- Deletion ---

    def delete_task(self, task: TaskNode, all_tasks: Sequence[TaskNode]) -> ActionResult:
        """
        Detach a task and its subtasks from every relationship.

        The caller drops ``removed_ids`` from its store afterwards; no other
        task keeps a reference to them.
        """
        doomed = [task] + descendants_of(task, all_tasks)
        doomed_ids = {t.id for t in doomed}

        for other in all_tasks:
            if other.id not in doomed_ids and any(d in doomed_ids for d in other.depends_on):
                other.depends_on = [d for d in other.depends_on if d not in doomed_ids]
        for t in doomed:
            t.depends_on = []
            t.time_entries = []
            t.parent_id = None

        self.cache.invalidate_all()
        log.info(f"Deleted {task.id} with {len(doomed) - 1} subtasks")
        return ActionResult.success(removed_ids=[t.id for t in doomed])
