"""
Booking-level reads and maintenance: breakdown, progress analytics,
explicit recalculation and deletion.
"""
from dataclasses import dataclass, asdict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.models.approval import ApprovalRecord, ApprovalRecordStatus
from backend.models.booking import Booking
from backend.models.milestone import Milestone, MilestoneStatus
from backend.models.task import Task, TaskStatus
from backend.models.user import User
from backend.services import cascade
from backend.services.access import require_admin, require_mutate, require_read
from backend.services.errors import NotFound
from backend.services.events import EventBus, event_bus
from backend.services.locks import booking_transaction
from backend.services.recalculation import RecalcResult, RecalculationTrigger, get_trigger
from backend.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProgressAnalytics:
    booking_id: int
    booking_title: Optional[str]
    booking_status: str
    booking_progress: int
    total_milestones: int
    completed_milestones: int
    in_progress_milestones: int
    pending_milestones: int
    total_tasks: int
    completed_tasks: int
    in_progress_tasks: int
    pending_tasks: int
    cancelled_tasks: int
    overdue_tasks: int
    pending_approvals: int
    total_estimated_hours: float
    total_actual_hours: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_overdue(task: Task, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return (
        task.due_date is not None
        and task.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)
        and task.due_date < today
    )


async def get_breakdown(db: AsyncSession, principal: User, booking_id: int) -> Booking:
    """Booking with its milestones and their tasks eagerly loaded"""
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.milestones).selectinload(Milestone.tasks))
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFound("Booking not found")
    require_read(principal, booking)
    return booking


def summarize(booking: Booking, milestones: List[Milestone], tasks: List[Task], pending_approvals: int,
              today: Optional[date] = None) -> ProgressAnalytics:
    def count_milestones(status):
        return sum(1 for m in milestones if m.status == status)

    def count_tasks(status):
        return sum(1 for t in tasks if t.status == status)

    return ProgressAnalytics(
        booking_id=booking.id,
        booking_title=booking.title,
        booking_status=booking.status,
        booking_progress=booking.progress_percentage or 0,
        total_milestones=len(milestones),
        completed_milestones=count_milestones(MilestoneStatus.COMPLETED),
        in_progress_milestones=count_milestones(MilestoneStatus.IN_PROGRESS),
        pending_milestones=count_milestones(MilestoneStatus.PENDING),
        total_tasks=len(tasks),
        completed_tasks=count_tasks(TaskStatus.COMPLETED),
        in_progress_tasks=count_tasks(TaskStatus.IN_PROGRESS),
        pending_tasks=count_tasks(TaskStatus.PENDING),
        cancelled_tasks=count_tasks(TaskStatus.CANCELLED),
        overdue_tasks=sum(1 for t in tasks if is_overdue(t, today)),
        pending_approvals=pending_approvals,
        total_estimated_hours=round(sum(t.estimated_hours or 0 for t in tasks), 2),
        total_actual_hours=round(sum(t.actual_hours or 0 for t in tasks), 2),
    )


async def get_progress_analytics(db: AsyncSession, principal: User, booking_id: int) -> ProgressAnalytics:
    booking = await get_breakdown(db, principal, booking_id)
    milestones = list(booking.milestones)
    tasks = [t for m in milestones for t in m.tasks]

    pending = await db.execute(
        select(func.count(ApprovalRecord.id)).where(
            ApprovalRecord.booking_id == booking_id,
            ApprovalRecord.status == ApprovalRecordStatus.PENDING,
        )
    )
    return summarize(booking, milestones, tasks, pending.scalar() or 0)


async def recalculate_booking(
    db: AsyncSession,
    principal: User,
    booking_id: int,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> RecalcResult:
    """Re-derive every milestone and the booking from current task state"""
    trigger = trigger or get_trigger()
    bus = bus or event_bus

    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        result = await trigger.recalculate_booking(db, booking)

    logger.info(
        f"Booking {booking_id} recalculated by user {principal.id}: "
        f"{result.old_booking_progress}% -> {result.new_booking_progress}%"
    )
    await bus.publish_all(result.events())
    return result


async def delete_booking(db: AsyncSession, principal: User, booking_id: int) -> None:
    require_admin(principal)
    async with booking_transaction(db, booking_id):
        await cascade.delete_booking(db, booking_id)
