"""Unit tests for derived task status."""

import pytest

from worktally import status
from worktally.models import TaskNode, TaskStatus, TimeEntry

from conftest import at


@pytest.fixture
def chain():
    """T depends on Dep; Parent has child Sub which depends on Dep."""
    dep = TaskNode(id="Dep", title="Pour foundation")
    task = TaskNode(id="T", title="Frame walls", depends_on=["Dep"])
    parent = TaskNode(id="Parent", title="Roof")
    sub = TaskNode(id="Sub", title="Trusses", parent_id="Parent", depends_on=["Dep"])
    return [dep, task, parent, sub]


class TestDeriveStatus:
    """Test the status precedence."""

    def test_blocked_then_ready(self, chain):
        dep, task = chain[0], chain[1]
        assert status.derive_status(task, chain) == TaskStatus.BLOCKED
        dep.is_completed = True
        assert status.derive_status(task, chain) == TaskStatus.READY

    def test_completed_wins(self, chain):
        task = chain[1]
        task.is_completed = True
        task.time_entries.append(TimeEntry(start_time=at(0)))
        assert status.derive_status(task, chain) == TaskStatus.COMPLETED

    def test_running_timer_before_blocked(self, chain):
        task = chain[1]
        task.time_entries.append(TimeEntry(start_time=at(0)))
        assert status.derive_status(task, chain) == TaskStatus.IN_PROGRESS

    def test_subtask_dependencies_opt_in(self, chain):
        parent = chain[2]
        assert status.derive_status(parent, chain) == TaskStatus.READY
        assert status.derive_status(parent, chain, include_subtask_dependencies=True) == TaskStatus.BLOCKED

    def test_dangling_dependency_ignored(self):
        task = TaskNode(depends_on=["gone"])
        assert status.derive_status(task, [task]) == TaskStatus.READY

    def test_closed_entries_alone_are_ready(self):
        task = TaskNode(direct_seconds=60, time_entries=[TimeEntry(start_time=at(0), end_time=at(60))])
        assert status.derive_status(task, [task]) == TaskStatus.READY


class TestBlockingReports:
    """Test blocking lists and reasons."""

    def test_blocking_dependencies(self, chain):
        assert [d.id for d in status.blocking_dependencies(chain[1], chain)] == ["Dep"]

    def test_blocking_subtask_dependencies(self, chain):
        pairs = status.blocking_subtask_dependencies(chain[2], chain)
        assert [(s.id, d.id) for s, d in pairs] == [("Sub", "Dep")]

    def test_reasons(self, chain):
        assert status.blocking_reasons(chain[1], chain) == ["Waiting on: Pour foundation"]
        assert status.blocking_reasons(chain[2], chain) == ["Subtask 'Trusses' blocked by: Pour foundation"]

    def test_total_block_count(self, chain):
        assert status.total_block_count(chain[2], chain) == 1
        chain[0].is_completed = True
        assert status.total_block_count(chain[2], chain) == 0

    def test_can_start_work(self, chain):
        assert not status.can_start_work(chain[1], chain)
        assert status.can_start_work(chain[2], chain)
        assert not status.can_start_work(chain[2], chain, include_subtask_dependencies=True)
