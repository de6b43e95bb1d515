"""
Tests for revision scoring: totals, edit distance, accuracy and revision construction.
"""
import pytest
from datetime import datetime, timedelta, timezone

from models.initiative import (
    Task, RevisionType, TaskTreeError, MAX_TASK_DEPTH, MAX_TREE_SIZE, check_tree_bounds
)
from services.revision_ledger import (
    count_tasks, sum_story_points, edit_distance, accuracy, build_revision
)
from tests.fakes import SAMPLE_TASKS, task_payload


def tasks_from(payloads):
    return [Task.model_validate(p) for p in payloads]


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestTotals:
    """Recursive count and story point sum."""

    def test_counts_subtasks(self):
        assert count_tasks(tasks_from(SAMPLE_TASKS)) == 3

    def test_sums_points_over_subtasks(self):
        assert sum_story_points(tasks_from(SAMPLE_TASKS)) == 15

    def test_empty_tree(self):
        assert count_tasks([]) == 0
        assert sum_story_points([]) == 0


class TestEditDistance:
    """Positional tree diff."""

    def test_identical_trees_have_zero_distance(self):
        tasks = tasks_from(SAMPLE_TASKS)
        assert edit_distance(tasks, tasks_from(SAMPLE_TASKS)) == 0

    def test_modified_field_counts_one(self):
        base = tasks_from([task_payload("A"), task_payload("B")])
        changed = tasks_from([task_payload("A"), task_payload("B", points=5)])
        assert edit_distance(base, changed) == 1

    def test_modified_subtask_counts_one(self):
        base = tasks_from([task_payload("A", subtasks=[task_payload("A1")])])
        changed = tasks_from([task_payload("A", subtasks=[task_payload("A1", priority="High")])])
        assert edit_distance(base, changed) == 1

    def test_appending_a_task_strictly_increases_distance(self):
        base = tasks_from([task_payload("A")])
        changed = tasks_from([task_payload("A", points=3)])
        before = edit_distance(base, changed)
        after = edit_distance(base, changed + tasks_from([task_payload("C")]))
        assert after > before

    def test_removed_task_counts_its_subtree(self):
        base = tasks_from([task_payload("A"), task_payload("B", subtasks=[task_payload("B1"), task_payload("B2")])])
        trimmed = tasks_from([task_payload("A")])
        assert edit_distance(base, trimmed) == 3

    def test_symmetric(self):
        a = tasks_from(SAMPLE_TASKS)
        b = tasks_from([task_payload("X")])
        assert edit_distance(a, b) == edit_distance(b, a)


class TestAccuracy:
    """1 - distance / combined size, clamped to [0, 1]."""

    def test_unchanged_final_is_perfect(self):
        assert accuracy(tasks_from(SAMPLE_TASKS), tasks_from(SAMPLE_TASKS)) == 1.0

    def test_two_empty_trees_are_perfect(self):
        assert accuracy([], []) == 1.0

    def test_completely_replaced_tree_is_zero(self):
        assert accuracy(tasks_from([task_payload("A")]), []) == 0.0

    def test_partial_edit_is_between_bounds(self):
        suggested = tasks_from([task_payload("A"), task_payload("B")])
        final = tasks_from([task_payload("A"), task_payload("B", points=8)])
        assert accuracy(suggested, final) == pytest.approx(0.75)


class TestTreeBounds:
    """Depth and size caps."""

    def test_rejects_excess_depth(self):
        node = task_payload("leaf")
        for level in range(MAX_TASK_DEPTH):
            node = task_payload(f"level {level}", subtasks=[node])
        with pytest.raises(TaskTreeError):
            check_tree_bounds(tasks_from([node]))

    def test_accepts_max_depth(self):
        node = task_payload("leaf")
        for level in range(MAX_TASK_DEPTH - 1):
            node = task_payload(f"level {level}", subtasks=[node])
        check_tree_bounds(tasks_from([node]))

    def test_rejects_excess_size(self):
        tasks = tasks_from([task_payload(f"T{i}") for i in range(MAX_TREE_SIZE + 1)])
        with pytest.raises(TaskTreeError):
            check_tree_bounds(tasks)


class TestBuildRevision:
    """Derived metadata and timestamps."""

    def test_suggestion_has_totals_only(self):
        revision = build_revision(RevisionType.SUGGESTION, tasks_from(SAMPLE_TASKS), now=NOW)
        assert revision.metadata.total_tasks == 3
        assert revision.metadata.total_story_points == 15
        assert revision.metadata.edit_distance is None
        assert revision.metadata.accuracy is None
        assert revision.id.startswith("rev_")

    def test_user_edit_has_edit_distance(self):
        suggestion = build_revision(RevisionType.SUGGESTION, tasks_from(SAMPLE_TASKS), now=NOW)
        edit = build_revision(
            RevisionType.USER_EDIT, tasks_from(SAMPLE_TASKS[:1]), previous=suggestion,
            now=NOW + timedelta(minutes=5)
        )
        assert edit.metadata.edit_distance == 1
        assert edit.metadata.accuracy is None

    def test_final_has_accuracy_against_baseline(self):
        suggestion = build_revision(RevisionType.SUGGESTION, tasks_from(SAMPLE_TASKS), now=NOW)
        final = build_revision(
            RevisionType.FINAL, tasks_from(SAMPLE_TASKS), previous=suggestion, baseline=suggestion,
            now=NOW + timedelta(minutes=5)
        )
        assert final.metadata.accuracy == 1.0
        assert final.metadata.edit_distance == 0

    def test_timestamp_bumped_when_clock_stalls(self):
        first = build_revision(RevisionType.SUGGESTION, tasks_from(SAMPLE_TASKS), now=NOW)
        second = build_revision(RevisionType.USER_EDIT, tasks_from(SAMPLE_TASKS), previous=first, now=NOW)
        assert second.timestamp > first.timestamp

    def test_revision_is_immutable(self):
        revision = build_revision(RevisionType.SUGGESTION, tasks_from(SAMPLE_TASKS), now=NOW)
        with pytest.raises(Exception):
            revision.type = RevisionType.FINAL
