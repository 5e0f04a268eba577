"""
Progress aggregation - pure computation, no database access.

Task completion rolls up into a milestone percentage, milestone percentages
roll up (weighted) into the booking percentage. Inputs can be ORM rows or any
object with the same attributes; results never depend on input order.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from backend.models.milestone import MilestoneStatus
from backend.models.task import TaskStatus, ApprovalStatus


@dataclass(frozen=True)
class ApprovalPolicy:
    """How approval state gates whether a completed task counts"""
    includes_pending_approval: bool = True

    @classmethod
    def from_settings(cls, settings) -> "ApprovalPolicy":
        return cls(includes_pending_approval=settings.APPROVAL_COUNTS_PENDING)


DEFAULT_POLICY = ApprovalPolicy()


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero (67.5 -> 68)"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp(value: int) -> int:
    return max(0, min(100, value))


def is_countable(task) -> bool:
    return task.status != TaskStatus.CANCELLED


def is_effectively_complete(task, policy: ApprovalPolicy = DEFAULT_POLICY) -> bool:
    if task.status != TaskStatus.COMPLETED:
        return False
    if task.approval_status == ApprovalStatus.REJECTED:
        return False
    if task.approval_status == ApprovalStatus.PENDING and not policy.includes_pending_approval:
        return False
    return True


def compute_milestone_progress(
    tasks: Iterable,
    policy: ApprovalPolicy = DEFAULT_POLICY,
    completion_override: bool = False,
) -> int:
    """
    Percentage of countable (non-cancelled) tasks that are effectively complete.

    With no countable tasks the result is 0, or 100 when the caller applies
    the explicit completion override.
    """
    countable = [t for t in tasks if is_countable(t)]
    if not countable:
        return 100 if completion_override else 0

    completed = sum(1 for t in countable if is_effectively_complete(t, policy))
    # Exact rational arithmetic so 2/3 -> 66.666.. and 1/8 -> 12.5 round consistently
    ratio = Decimal(100 * completed) / Decimal(len(countable))
    return _clamp(int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def compute_booking_progress(milestones: Iterable) -> int:
    """Weighted average of non-cancelled milestone progress"""
    total_weight = Decimal(0)
    weighted = Decimal(0)
    for m in milestones:
        if m.status == MilestoneStatus.CANCELLED:
            continue
        weight = Decimal(str(m.weight if m.weight is not None else 1.0))
        total_weight += weight
        weighted += Decimal(m.progress_percentage or 0) * weight

    if total_weight <= 0:
        return 0
    return _clamp(int((weighted / total_weight).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def has_countable_tasks(tasks: Iterable) -> bool:
    return any(is_countable(t) for t in tasks)
