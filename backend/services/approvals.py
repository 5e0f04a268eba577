"""
Approval workflow - sign-off gating for tasks and milestones.

    pending -> approved   (terminal)
    pending -> rejected   (terminal, target goes back to rework)

Records are never edited after resolution; asking again after a rejection
opens a new record so the whole history stays auditable.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.approval import ApprovalRecord, ApprovalRecordStatus, ApprovalTargetType
from backend.models.booking import Booking
from backend.models.milestone import Milestone, MilestoneStatus
from backend.models.task import Task, TaskStatus, ApprovalStatus
from backend.models.user import User
from backend.services.access import require_approve, require_mutate, require_read
from backend.services.errors import AlreadyResolved, InvalidTransition, Locked
from backend.services.events import EventBus, EventKind, ProgressEvent, event_bus
from backend.services.locks import booking_transaction
from backend.services.lookup import (
    booking_id_for_approval,
    booking_id_for_milestone,
    booking_id_for_task,
    get_approval,
    get_booking,
    get_milestone,
    get_task,
)
from backend.services.recalculation import RecalculationTrigger, get_trigger
from backend.services.tasks import apply_status
from backend.utils.logger import get_logger

logger = get_logger(__name__)

TASK_APPROVAL_STATUS = {
    ApprovalRecordStatus.APPROVED: ApprovalStatus.APPROVED,
    ApprovalRecordStatus.REJECTED: ApprovalStatus.REJECTED,
}


async def _booking_id_for_target(db: AsyncSession, target_type: ApprovalTargetType, target_id: int) -> int:
    if target_type == ApprovalTargetType.TASK:
        return await booking_id_for_task(db, target_id)
    return await booking_id_for_milestone(db, target_id)


async def _load_target(
    db: AsyncSession, target_type: ApprovalTargetType, target_id: int
) -> Tuple[Optional[Task], Milestone]:
    if target_type == ApprovalTargetType.TASK:
        task = await get_task(db, target_id)
        return task, await get_milestone(db, task.milestone_id)
    return None, await get_milestone(db, target_id)


def _target_filter(target_type: ApprovalTargetType, target_id: int):
    if target_type == ApprovalTargetType.TASK:
        return ApprovalRecord.task_id == target_id
    return ApprovalRecord.milestone_id == target_id


async def request_approval(
    db: AsyncSession,
    principal: User,
    target_type: ApprovalTargetType,
    target_id: int,
    comment: Optional[str] = None,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> ApprovalRecord:
    trigger = trigger or get_trigger()
    bus = bus or event_bus
    target_type = ApprovalTargetType(target_type)

    booking_id = await _booking_id_for_target(db, target_type, target_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        task, milestone = await _load_target(db, target_type, target_id)
        if not milestone.editable or (task is not None and not task.editable):
            raise Locked(f"{target_type.value.capitalize()} is locked and cannot be submitted for approval")

        open_request = await db.execute(
            select(ApprovalRecord.id).where(
                _target_filter(target_type, target_id),
                ApprovalRecord.status == ApprovalRecordStatus.PENDING,
            )
        )
        if open_request.scalars().first() is not None:
            raise InvalidTransition(f"An approval request for this {target_type.value} is already pending")

        approval = ApprovalRecord(
            booking_id=booking.id,
            target_type=target_type,
            task_id=task.id if task is not None else None,
            milestone_id=milestone.id if task is None else None,
            user_id=principal.id,
            status=ApprovalRecordStatus.PENDING,
            comment=comment,
        )
        db.add(approval)
        if task is not None:
            task.approval_status = ApprovalStatus.PENDING
        await db.flush()
        # Pending sign-off may stop a task from counting under a strict policy
        result = await trigger.recalculate(db, booking, milestone)

    logger.info(f"Approval {approval.id} requested on {target_type.value} {target_id} by user {principal.id}")
    events = result.events(task_id=approval.task_id)
    events.append(ProgressEvent(
        booking_id=booking_id,
        kind=EventKind.APPROVAL_REQUESTED,
        milestone_id=milestone.id,
        task_id=approval.task_id,
        approval_id=approval.id,
        approval_status=ApprovalRecordStatus.PENDING.value,
    ))
    await bus.publish_all(events)
    return approval


def _apply_to_task(task: Task, milestone: Milestone, decision: ApprovalRecordStatus) -> None:
    task.approval_status = TASK_APPROVAL_STATUS[decision]
    if decision == ApprovalRecordStatus.REJECTED and task.status == TaskStatus.COMPLETED:
        if task.editable and milestone.editable:
            apply_status(task, TaskStatus.IN_PROGRESS)
        else:
            logger.warning(f"Task {task.id} rejected but locked; status kept as {task.status.value}")


def _apply_to_milestone(milestone: Milestone, decision: ApprovalRecordStatus) -> None:
    if not milestone.editable or milestone.status == MilestoneStatus.CANCELLED:
        return
    if decision == ApprovalRecordStatus.APPROVED:
        if milestone.status != MilestoneStatus.COMPLETED:
            milestone.status = MilestoneStatus.COMPLETED
            milestone.completed_at = datetime.utcnow()
        milestone.completion_override = True
    elif decision == ApprovalRecordStatus.REJECTED and milestone.status == MilestoneStatus.COMPLETED:
        milestone.status = MilestoneStatus.IN_PROGRESS
        milestone.completed_at = None
        milestone.completion_override = False


async def resolve_approval(
    db: AsyncSession,
    principal: User,
    approval_id: int,
    decision: ApprovalRecordStatus,
    notes: Optional[str] = None,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> ApprovalRecord:
    """
    Approve or reject a pending record.

    The resolver must be a counterpart on the booking: whoever requested the
    sign-off cannot grant it, admins excepted.
    """
    trigger = trigger or get_trigger()
    bus = bus or event_bus
    decision = ApprovalRecordStatus(decision)
    if decision == ApprovalRecordStatus.PENDING:
        raise InvalidTransition("Decision must be approved or rejected")

    booking_id = await booking_id_for_approval(db, approval_id)
    async with booking_transaction(db, booking_id) as booking:
        approval = await get_approval(db, approval_id)
        require_approve(principal, booking, approval)
        if approval.is_resolved:
            raise AlreadyResolved(f"Approval was already {approval.status.value}")

        resolved_at = datetime.utcnow()
        outcome = await db.execute(
            update(ApprovalRecord)
            .where(ApprovalRecord.id == approval_id, ApprovalRecord.status == ApprovalRecordStatus.PENDING)
            .values(
                status=decision,
                resolved_by=principal.id,
                resolution_notes=notes,
                resolved_at=resolved_at,
            )
        )
        if outcome.rowcount == 0:
            raise AlreadyResolved("Approval was resolved concurrently")
        await db.refresh(approval)

        task, milestone = await _load_target(db, approval.target_type, approval.target_id)
        if task is not None:
            _apply_to_task(task, milestone, decision)
            await db.flush()
            result = await trigger.recalculate(db, booking, milestone)
        else:
            _apply_to_milestone(milestone, decision)
            await db.flush()
            result = await trigger.recalculate(db, booking, milestone, promote=False)

    logger.info(f"Approval {approval_id} {decision.value} by user {principal.id}")
    events = result.events(task_id=approval.task_id)
    events.append(ProgressEvent(
        booking_id=booking_id,
        kind=EventKind.APPROVAL_RESOLVED,
        milestone_id=milestone.id,
        task_id=approval.task_id,
        approval_id=approval.id,
        approval_status=decision.value,
        new_progress=result.new_booking_progress,
    ))
    await bus.publish_all(events)
    return approval


async def get_approval_for(db: AsyncSession, principal: User, approval_id: int) -> ApprovalRecord:
    approval = await get_approval(db, approval_id)
    require_read(principal, await get_booking(db, approval.booking_id))
    return approval


async def list_approvals(
    db: AsyncSession,
    principal: User,
    booking_id: int,
    status: Optional[ApprovalRecordStatus] = None,
) -> List[ApprovalRecord]:
    booking: Booking = await get_booking(db, booking_id)
    require_read(principal, booking)
    query = (
        select(ApprovalRecord)
        .where(ApprovalRecord.booking_id == booking_id)
        .order_by(ApprovalRecord.created_at.desc(), ApprovalRecord.id.desc())
    )
    if status:
        query = query.where(ApprovalRecord.status == ApprovalRecordStatus(status))
    result = await db.execute(query)
    return list(result.scalars().all())
