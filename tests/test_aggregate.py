"""Unit tests for the time and effort roll-up."""

from worktally import aggregate
from worktally.models import TaskNode, TimeEntry

from conftest import at


def by_id(tasks, task_id):
    return next(t for t in tasks if t.id == task_id)


class TestDirectSeconds:
    """Test direct_seconds_now."""

    def test_stored_only(self):
        task = TaskNode(direct_seconds=600)
        assert aggregate.direct_seconds_now(task, at(10_000)) == 600

    def test_running_timer_adds_elapsed(self):
        """A read 125s after starting sees 125s."""
        task = TaskNode(time_entries=[TimeEntry(start_time=at(0))])
        assert aggregate.direct_seconds_now(task, at(125)) == 125

    def test_clock_skew_clamps_to_zero(self):
        task = TaskNode(direct_seconds=60, time_entries=[TimeEntry(start_time=at(500))])
        assert aggregate.direct_seconds_now(task, at(0)) == 60

    def test_closed_entries_not_added_again(self):
        task = TaskNode(
            direct_seconds=3600,
            time_entries=[TimeEntry(start_time=at(0), end_time=at(3600))],
        )
        assert aggregate.direct_seconds_now(task, at(99_999)) == 3600


class TestTotalSeconds:
    """Test the recursive roll-up."""

    def test_childless_task_equals_direct(self):
        task = TaskNode(direct_seconds=900)
        assert aggregate.total_seconds_now(task, [task], at(0)) == aggregate.direct_seconds_now(task, at(0))

    def test_parent_sums_children(self, project):
        """The parent rolls up 1800 + 3600 seconds from its child."""
        parent = by_id(project, "P")
        assert aggregate.total_seconds_now(parent, project, at(10_000)) == 5400

    def test_sum_property(self, project):
        parent = by_id(project, "P")
        now = at(20_000)
        expected = aggregate.direct_seconds_now(parent, now) + sum(
            aggregate.total_seconds_now(c, project, now) for c in aggregate.children_of(parent, project)
        )
        assert aggregate.total_seconds_now(parent, project, now) == expected

    def test_concurrent_timers_use_one_now(self, project):
        parent = by_id(project, "P")
        parent.time_entries.append(TimeEntry(start_time=at(0)))
        by_id(project, "C2").time_entries.append(TimeEntry(start_time=at(100)))
        assert aggregate.total_seconds_now(parent, project, at(200)) == 200 + 5400 + 100

    def test_monotonic_while_running(self, project):
        child = by_id(project, "C2")
        child.time_entries.append(TimeEntry(start_time=at(0)))
        parent = by_id(project, "P")
        earlier = aggregate.total_seconds_now(parent, project, at(60))
        later = aggregate.total_seconds_now(parent, project, at(61))
        assert later >= earlier

    def test_recurses_past_two_levels(self):
        """Depth is enforced on mutation, not assumed by the roll-up."""
        a = TaskNode(id="a", direct_seconds=1)
        b = TaskNode(id="b", parent_id="a", direct_seconds=10)
        c = TaskNode(id="c", parent_id="b", direct_seconds=100)
        assert aggregate.total_seconds_now(a, [a, b, c], at(0)) == 111

    def test_parent_loop_counted_once(self):
        a = TaskNode(id="a", parent_id="b", direct_seconds=1)
        b = TaskNode(id="b", parent_id="a", direct_seconds=10)
        assert aggregate.total_seconds_now(a, [a, b], at(0)) == 11

    def test_children_resolved_from_snapshot(self, project):
        """A child added to the snapshot after the fact is picked up."""
        parent = by_id(project, "P")
        project.append(TaskNode(id="C3", parent_id="P", direct_seconds=60))
        assert aggregate.total_seconds_now(parent, project, at(0)) == 5460


class TestPersonSeconds:
    """Test effort roll-up."""

    def test_person_seconds_weighted_by_crew(self, project):
        parent = by_id(project, "P")
        assert aggregate.total_person_seconds(parent, project, at(10_000)) == 1800 * 1 + 3600 * 2

    def test_person_hours_conversion(self, project):
        parent = by_id(project, "P")
        assert aggregate.total_person_hours(parent, project, at(10_000)) == 2.5
        assert aggregate.direct_person_hours(parent, at(10_000)) == 0.0

    def test_running_entry_uses_now(self):
        task = TaskNode(time_entries=[TimeEntry(start_time=at(0), personnel_count=3)])
        assert aggregate.direct_person_seconds(task, at(100)) == 300

    def test_inverted_entry_contributes_zero(self):
        task = TaskNode(time_entries=[
            TimeEntry(start_time=at(1000), end_time=at(0), personnel_count=4),
            TimeEntry(start_time=at(0), end_time=at(60)),
        ])
        assert aggregate.direct_person_seconds(task, at(2000)) == 60


class TestPersonnel:
    """Test personnel sets and flags."""

    def test_counts_include_descendants(self, project):
        parent = by_id(project, "P")
        assert aggregate.personnel_counts(parent, project) == {1, 2}

    def test_multi_person_flag(self, project):
        assert aggregate.has_multi_person_entries(by_id(project, "P"), project)
        assert not aggregate.has_multi_person_entries(by_id(project, "C2"), project)

    def test_empty_task(self):
        task = TaskNode()
        assert aggregate.personnel_counts(task, [task]) == set()


class TestSubtaskCounts:
    """Test child and descendant counters."""

    def test_direct_counts(self, project):
        parent = by_id(project, "P")
        by_id(project, "C1").is_completed = True
        assert aggregate.completed_children_count(parent, project) == 1
        assert aggregate.incomplete_children_count(parent, project) == 1
        assert aggregate.descendant_count(parent, project) == 2
        assert aggregate.completed_descendant_count(parent, project) == 1
