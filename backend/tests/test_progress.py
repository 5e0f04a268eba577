"""
Progress aggregation tests - pure computation over plain snapshots
"""
import random
from types import SimpleNamespace

import pytest

from backend.models.milestone import MilestoneStatus
from backend.models.task import TaskStatus, ApprovalStatus
from backend.services.progress import (
    ApprovalPolicy,
    compute_booking_progress,
    compute_milestone_progress,
    is_effectively_complete,
    round_half_up,
)

CONSERVATIVE = ApprovalPolicy(includes_pending_approval=False)


def task(status=TaskStatus.PENDING, approval=ApprovalStatus.NOT_REQUIRED):
    return SimpleNamespace(status=status, approval_status=approval)


def milestone(progress, weight=1.0, status=MilestoneStatus.IN_PROGRESS):
    return SimpleNamespace(progress_percentage=progress, weight=weight, status=status)


# ===================== ROUNDING =====================


@pytest.mark.parametrize("value,expected", [(0, 0), (12.5, 13), (66.6666, 67), (87.5, 88), (49.49, 49), (100, 100)])
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


# ===================== MILESTONE PROGRESS =====================


def test_scenario_a_cancelled_tasks_are_excluded():
    tasks = [
        task(TaskStatus.COMPLETED),
        task(TaskStatus.COMPLETED),
        task(TaskStatus.IN_PROGRESS),
        task(TaskStatus.CANCELLED),
    ]
    assert compute_milestone_progress(tasks) == 67


def test_no_tasks_is_zero():
    assert compute_milestone_progress([]) == 0


def test_only_cancelled_tasks_is_zero():
    assert compute_milestone_progress([task(TaskStatus.CANCELLED)] * 3) == 0


def test_completion_override_without_countable_tasks():
    assert compute_milestone_progress([], completion_override=True) == 100
    assert compute_milestone_progress([task(TaskStatus.CANCELLED)], completion_override=True) == 100


def test_override_ignored_when_tasks_exist():
    tasks = [task(TaskStatus.COMPLETED), task(TaskStatus.PENDING)]
    assert compute_milestone_progress(tasks, completion_override=True) == 50


def test_one_in_eight_rounds_half_up():
    tasks = [task(TaskStatus.COMPLETED)] + [task(TaskStatus.PENDING)] * 7
    assert compute_milestone_progress(tasks) == 13


def test_all_completed_is_hundred():
    assert compute_milestone_progress([task(TaskStatus.COMPLETED)] * 5) == 100


def test_rejected_task_does_not_count():
    tasks = [task(TaskStatus.COMPLETED, ApprovalStatus.REJECTED), task(TaskStatus.COMPLETED)]
    assert compute_milestone_progress(tasks) == 50


class TestApprovalPolicy:
    def test_pending_counts_by_default(self):
        tasks = [task(TaskStatus.COMPLETED, ApprovalStatus.PENDING), task(TaskStatus.PENDING)]
        assert compute_milestone_progress(tasks) == 50

    def test_conservative_policy_excludes_pending(self):
        tasks = [task(TaskStatus.COMPLETED, ApprovalStatus.PENDING), task(TaskStatus.PENDING)]
        assert compute_milestone_progress(tasks, CONSERVATIVE) == 0

    def test_approved_counts_under_both_policies(self):
        t = task(TaskStatus.COMPLETED, ApprovalStatus.APPROVED)
        assert is_effectively_complete(t)
        assert is_effectively_complete(t, CONSERVATIVE)

    def test_incomplete_never_counts(self):
        assert not is_effectively_complete(task(TaskStatus.IN_PROGRESS, ApprovalStatus.APPROVED))


# ===================== BOOKING PROGRESS =====================


def test_scenario_b_weighted_average():
    assert compute_booking_progress([milestone(50, 1.0), milestone(100, 3.0)]) == 88


def test_no_milestones_is_zero():
    assert compute_booking_progress([]) == 0


def test_cancelled_milestones_are_excluded():
    milestones = [
        milestone(40, 1.0),
        milestone(0, 5.0, MilestoneStatus.CANCELLED),
    ]
    assert compute_booking_progress(milestones) == 40


def test_only_cancelled_milestones_is_zero():
    assert compute_booking_progress([milestone(100, 2.0, MilestoneStatus.CANCELLED)]) == 0


def test_fractional_weights():
    # (100*0.1 + 0*0.2) / 0.3 = 33.33
    assert compute_booking_progress([milestone(100, 0.1), milestone(0, 0.2)]) == 33


# ===================== PROPERTIES =====================


def test_results_are_order_independent_and_idempotent():
    rng = random.Random(7)
    statuses = list(TaskStatus)
    approvals = list(ApprovalStatus)
    for _ in range(50):
        tasks = [task(rng.choice(statuses), rng.choice(approvals)) for _ in range(rng.randint(0, 12))]
        expected = compute_milestone_progress(tasks)
        assert 0 <= expected <= 100
        shuffled = tasks[:]
        rng.shuffle(shuffled)
        assert compute_milestone_progress(shuffled) == expected
        assert compute_milestone_progress(tasks) == expected

        milestones = [
            milestone(rng.randint(0, 100), rng.choice([0.5, 1.0, 2.0, 3.0]), rng.choice(list(MilestoneStatus)))
            for _ in range(rng.randint(0, 6))
        ]
        booking_progress = compute_booking_progress(milestones)
        assert 0 <= booking_progress <= 100
        rng.shuffle(milestones)
        assert compute_booking_progress(milestones) == booking_progress
