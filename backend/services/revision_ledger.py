"""
Revision Ledger for SmartSpec
Builds immutable task-list snapshots and scores how they drift.

Scoring:
- edit_distance: positional tree diff, one unit per added/removed/modified task
- accuracy: 1 - distance / (tasks in both trees), 1.0 for two empty trees
"""
from datetime import datetime, timedelta
from typing import Optional, List, Sequence

from models.initiative import (
    Task, Revision, RevisionType, RevisionMetadata, check_tree_bounds, utc_now
)


def count_tasks(tasks: Sequence[Task]) -> int:
    """Count every node in the tree, subtasks included"""
    return sum(1 + count_tasks(task.subtasks) for task in tasks)


def sum_story_points(tasks: Sequence[Task]) -> int:
    """Sum story points over every node in the tree"""
    return sum(task.story_points + sum_story_points(task.subtasks) for task in tasks)


def _fields_differ(a: Task, b: Task) -> bool:
    return (
        a.kind != b.kind
        or a.summary != b.summary
        or a.description != b.description
        or a.priority != b.priority
        or a.story_points != b.story_points
    )


def edit_distance(a: Sequence[Task], b: Sequence[Task]) -> int:
    """
    Structural distance between two ordered task trees.

    Tasks are matched by position within each level. A matched pair costs 1
    if any of its own fields changed, plus the distance between its subtasks.
    An unmatched task costs the size of its whole subtree.
    """
    distance = 0
    for left, right in zip(a, b):
        if _fields_differ(left, right):
            distance += 1
        distance += edit_distance(left.subtasks, right.subtasks)

    matched = min(len(a), len(b))
    distance += count_tasks(a[matched:]) + count_tasks(b[matched:])
    return distance


def accuracy(suggested: Sequence[Task], final: Sequence[Task]) -> float:
    """Normalized closeness of the final tree to the suggested one, in [0, 1]"""
    max_distance = count_tasks(suggested) + count_tasks(final)
    if max_distance == 0:
        return 1.0
    score = 1.0 - edit_distance(suggested, final) / max_distance
    return min(1.0, max(0.0, score))


def next_timestamp(previous: Optional[Revision], now: datetime) -> datetime:
    """Keep revision timestamps strictly ascending even if the clock stalls"""
    if previous is not None and now <= previous.timestamp:
        return previous.timestamp + timedelta(microseconds=1)
    return now


def build_revision(
    revision_type: RevisionType,
    tasks: List[Task],
    previous: Optional[Revision] = None,
    baseline: Optional[Revision] = None,
    now: Optional[datetime] = None
) -> Revision:
    """
    Create a new immutable revision with freshly derived metadata.

    Args:
        revision_type: Suggestion, UserEdit or Final
        tasks: Full task snapshot for this revision
        previous: Immediately preceding revision (edit distance reference)
        baseline: Initial Suggestion revision (accuracy reference)
        now: Creation time, defaults to the current UTC time
    """
    check_tree_bounds(tasks)

    edit_dist = None
    if revision_type != RevisionType.SUGGESTION and previous is not None:
        edit_dist = edit_distance(previous.tasks, tasks)

    acc = None
    if revision_type == RevisionType.FINAL and baseline is not None:
        acc = accuracy(baseline.tasks, tasks)

    metadata = RevisionMetadata(
        total_tasks=count_tasks(tasks),
        total_story_points=sum_story_points(tasks),
        accuracy=acc,
        edit_distance=edit_dist,
    )

    return Revision(
        timestamp=next_timestamp(previous, now or utc_now()),
        type=revision_type,
        tasks=list(tasks),
        metadata=metadata,
    )
