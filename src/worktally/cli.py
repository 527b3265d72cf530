"""
Command Line Interface for worktally.

A thin driver over the engine: it loads a YAML snapshot, runs aggregation or a
policy action against it and, for actions, writes the snapshot back.
"""

import sys
import click
from .version import VERSION
from .cache import StatsCache
from .config import load_settings
from .estimate import effective_estimate, estimate_status, format_duration
from .models import TaskGraph, TaskNode, as_utc, utc_now
from .policy import TaskPolicy
from .productivity import productivity_pace
from .recovery import WorkTallyError
from .snapshot import load_graph, save_graph
from .status import blocking_reasons

NOW_FORMATS = ["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M"]

STATUS_ICONS = {
    "blocked": "⛔",
    "ready": "⚪",
    "in_progress": "🔵",
    "completed": "✅",
}


def _load(snapshot: str) -> TaskGraph:
    try:
        return load_graph(snapshot)
    except WorkTallyError as e:
        click.echo(f"❌ Error loading snapshot: {e}")
        sys.exit(1)


def _save(graph: TaskGraph, snapshot: str):
    try:
        save_graph(graph, snapshot)
    except WorkTallyError as e:
        click.echo(f"❌ Error saving snapshot: {e}")
        sys.exit(1)


def _policy(config) -> TaskPolicy:
    try:
        settings = load_settings(config)
    except WorkTallyError as e:
        click.echo(f"❌ Error loading settings: {e}")
        sys.exit(1)
    return TaskPolicy(StatsCache(ttl=settings.cache_ttl_seconds), settings)


def _find(graph: TaskGraph, task_id: str) -> TaskNode:
    task = graph.get(task_id)
    if task is None:
        click.echo(f"❌ No task with id {task_id}")
        sys.exit(1)
    return task


@click.group()
@click.version_option(version=VERSION, prog_name="worktally")
@click.option('--config', type=click.Path(dir_okay=False), default=None, help='YAML settings file')
@click.pass_context
def main(ctx, config):
    """
    worktally - time, effort and status roll-up for tasks and subtasks.
    """
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@main.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.option('--task', 'task_id', default=None, help='Only show this task')
@click.option('--now', type=click.DateTime(formats=NOW_FORMATS), default=None, help="Evaluate at this time (UTC) instead of the current time")
@click.pass_context
def stats(ctx, snapshot, task_id, now):
    """Show tracked time, person-hours and estimate progress."""
    graph = _load(snapshot)
    policy = _policy(ctx.obj['config'])
    now = as_utc(now) if now else utc_now()
    tasks = [_find(graph, task_id)] if task_id else graph.top_level()

    if not tasks:
        click.echo("📭 No tasks in snapshot")
        return

    for task in tasks:
        result = policy.cache.get_stats(task, graph.tasks, now)
        status = policy.status(task, graph.tasks)
        click.echo(f"{STATUS_ICONS[status.value]} {task.title or task.id}")
        click.echo(f"   ⏱️  Total: {format_duration(result.total_seconds)} (direct {format_duration(result.direct_seconds)})")
        if result.has_multi_person:
            click.echo(f"   👥 Person-hours: {result.total_person_hours:.1f}")
        estimate = effective_estimate(task, graph.tasks)
        if estimate:
            progress = estimate_status(task, graph.tasks, now)
            click.echo(f"   📊 Estimate: {format_duration(estimate)} ({progress.value})")
        if task.is_quantifiable and task.expected_quantity:
            click.echo(f"   📦 Quantity: {task.quantity or 0:g}/{task.expected_quantity:g} {task.unit}")
            pace = productivity_pace(task, graph.tasks, now)
            if pace is not None:
                click.echo(f"   🏃 Pace: {pace.status.value}" + (f" ({pace.percentage}%)" if pace.percentage else ""))


@main.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.pass_context
def status(ctx, snapshot):
    """Show each task's status and what blocks it."""
    graph = _load(snapshot)
    policy = _policy(ctx.obj['config'])

    for task in graph.tasks:
        current = policy.status(task, graph.tasks)
        indent = "   " if task.parent_id else ""
        click.echo(f"{indent}{STATUS_ICONS[current.value]} {task.title or task.id}: {current.value}")
        for reason in blocking_reasons(task, graph.tasks):
            click.echo(f"{indent}   🔗 {reason}")


@main.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('task_id')
@click.option('--force', is_flag=True, help='Start even if the task is blocked')
@click.pass_context
def start(ctx, snapshot, task_id, force):
    """Start the timer on a task."""
    graph = _load(snapshot)
    policy = _policy(ctx.obj['config'])
    task = _find(graph, task_id)

    result = policy.start_timer(task, graph.tasks, utc_now(), force=force)
    if not result:
        click.echo(f"❌ {result.error.message}")
        sys.exit(1)

    _save(graph, snapshot)
    click.echo(f"▶️  Timer started on {task.title or task.id}")


@main.command()
@click.argument('snapshot', type=click.Path(dir_okay=False))
@click.argument('task_id')
@click.pass_context
def stop(ctx, snapshot, task_id):
    """Stop the running timer on a task."""
    graph = _load(snapshot)
    policy = _policy(ctx.obj['config'])
    task = _find(graph, task_id)

    result = policy.stop_timer(task, graph.tasks, utc_now())
    if not result:
        click.echo(f"❌ {result.error.message}")
        sys.exit(1)

    _save(graph, snapshot)
    click.echo(f"⏹️  Timer stopped, {format_duration(task.direct_seconds)} recorded on {task.title or task.id}")


if __name__ == "__main__":
    main()
