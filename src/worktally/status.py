"""
Lifecycle status, derived on every read and never stored.

Precedence: completed, then in progress (a timer is running), then blocked
(an incomplete dependency), then ready. By default only the task's own
dependencies can block it; subtask dependencies are reported through
blocking_subtask_dependencies and count towards the status only when
``include_subtask_dependencies`` is set.
"""
from typing import List, Sequence, Tuple

from .aggregate import children_of
from .models import TaskNode, TaskStatus

def _resolve(ids: Sequence[str], all_tasks: Sequence[TaskNode]) -> List[TaskNode]:
    # Dangling ids belong to deleted tasks and cannot block anything
    by_id = {t.id: t for t in all_tasks}
    return [by_id[i] for i in ids if i in by_id]

def blocking_dependencies(task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[TaskNode]:
    """The task's own dependencies that are not completed yet."""
    return [d for d in _resolve(task.depends_on, all_tasks) if not d.is_completed]

def blocking_subtask_dependencies(task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[Tuple[TaskNode, TaskNode]]:
    """(subtask, dependency) pairs for every incomplete dependency of a child."""
    blocks = []
    for child in children_of(task, all_tasks):
        for dep in blocking_dependencies(child, all_tasks):
            blocks.append((child, dep))
    return blocks

def is_blocked(task: TaskNode, all_tasks: Sequence[TaskNode], include_subtask_dependencies: bool = False) -> bool:
    if blocking_dependencies(task, all_tasks):
        return True
    if include_subtask_dependencies:
        return bool(blocking_subtask_dependencies(task, all_tasks))
    return False

def derive_status(task: TaskNode, all_tasks: Sequence[TaskNode], include_subtask_dependencies: bool = False) -> TaskStatus:
    if task.is_completed:
        return TaskStatus.COMPLETED
    if task.has_active_timer:
        return TaskStatus.IN_PROGRESS
    if is_blocked(task, all_tasks, include_subtask_dependencies):
        return TaskStatus.BLOCKED
    return TaskStatus.READY

def can_start_work(task: TaskNode, all_tasks: Sequence[TaskNode], include_subtask_dependencies: bool = False) -> bool:
    return not task.is_completed and not is_blocked(task, all_tasks, include_subtask_dependencies)

def blocking_reasons(task: TaskNode, all_tasks: Sequence[TaskNode]) -> List[str]:
    """Human readable lines explaining what the task is waiting on."""
    reasons = [f"Waiting on: {dep.title or dep.id}" for dep in blocking_dependencies(task, all_tasks)]
    for child, dep in blocking_subtask_dependencies(task, all_tasks):
        reasons.append(f"Subtask '{child.title or child.id}' blocked by: {dep.title or dep.id}")
    return reasons

def total_block_count(task: TaskNode, all_tasks: Sequence[TaskNode]) -> int:
    """Incomplete dependencies across the task and its children."""
    return len(blocking_dependencies(task, all_tasks)) + len(blocking_subtask_dependencies(task, all_tasks))
