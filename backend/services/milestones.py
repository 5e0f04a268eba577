"""
Milestone store - weighted phases of a booking's work.

A milestone's status is informational; its progress comes from its tasks.
The one exception is an explicitly completed milestone without countable
tasks, which reports 100.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.milestone import Milestone, MilestoneStatus
from backend.models.user import User
from backend.services import cascade
from backend.services.access import is_provider_side, require_mutate, require_read
from backend.services.errors import Forbidden, InvalidTransition, Locked
from backend.services.events import EventBus, event_bus
from backend.services.locks import booking_transaction
from backend.services.lookup import booking_id_for_milestone, get_booking, get_milestone
from backend.services.recalculation import RecalculationTrigger, get_trigger
from backend.utils.logger import get_logger

logger = get_logger(__name__)

EDITABLE_FIELDS = {"title", "description", "weight", "due_date", "order_index"}


def _validate_weight(weight) -> float:
    if weight is None or float(weight) <= 0:
        raise ValueError("Milestone weight must be a positive number")
    return float(weight)


def _ensure_editable(milestone: Milestone) -> None:
    if not milestone.editable:
        raise Locked("Milestone is locked and cannot be modified")


async def create_milestone(
    db: AsyncSession,
    principal: User,
    booking_id: int,
    title: str,
    description: Optional[str] = None,
    weight: float = 1.0,
    due_date: Optional[date] = None,
    order_index: int = 0,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> Milestone:
    trigger = trigger or get_trigger()
    bus = bus or event_bus
    weight = _validate_weight(weight)

    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        milestone = Milestone(
            booking_id=booking.id,
            title=title,
            description=description,
            weight=weight,
            due_date=due_date,
            order_index=order_index,
            status=MilestoneStatus.PENDING,
            progress_percentage=0,
            completion_override=False,
            editable=True,
            created_by=principal.id,
        )
        db.add(milestone)
        await db.flush()
        result = await trigger.recalculate(db, booking, milestone)

    logger.info(f"Milestone {milestone.id} created in booking {booking_id} by user {principal.id}")
    await bus.publish_all(result.events())
    return milestone


async def update_milestone(
    db: AsyncSession,
    principal: User,
    milestone_id: int,
    updates: dict,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> Milestone:
    """Edit descriptive fields and weight; a weight change re-weighs the booking"""
    trigger = trigger or get_trigger()
    bus = bus or event_bus

    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated here: {sorted(unknown)}")
    if "weight" in updates:
        updates = {**updates, "weight": _validate_weight(updates["weight"])}

    booking_id = await booking_id_for_milestone(db, milestone_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        milestone = await get_milestone(db, milestone_id)
        _ensure_editable(milestone)

        for key, value in updates.items():
            setattr(milestone, key, value)
        milestone.updated_at = datetime.utcnow()
        await db.flush()
        result = await trigger.recalculate(db, booking)

    await bus.publish_all(result.events())
    return milestone


async def update_milestone_status(
    db: AsyncSession,
    principal: User,
    milestone_id: int,
    new_status: MilestoneStatus,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> Milestone:
    """
    Set the display status explicitly.

    Completing a milestone with no countable tasks is the completion
    override (progress 100); leaving completed drops it again.
    """
    trigger = trigger or get_trigger()
    bus = bus or event_bus
    new_status = MilestoneStatus(new_status)

    booking_id = await booking_id_for_milestone(db, milestone_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        milestone = await get_milestone(db, milestone_id)
        _ensure_editable(milestone)

        current = MilestoneStatus(milestone.status)
        if current == MilestoneStatus.CANCELLED:
            raise InvalidTransition("Cancelled milestones cannot change status")
        if current == new_status:
            raise InvalidTransition(f"Milestone is already {current.value}")

        milestone.status = new_status
        milestone.completion_override = new_status == MilestoneStatus.COMPLETED
        if new_status == MilestoneStatus.COMPLETED:
            milestone.completed_at = datetime.utcnow()
        elif current == MilestoneStatus.COMPLETED:
            milestone.completed_at = None
        await db.flush()
        # An explicit status is kept as set; the next task change re-derives it
        result = await trigger.recalculate(db, booking, milestone, promote=False)

    logger.info(f"Milestone {milestone_id} {current.value} -> {new_status.value} by user {principal.id}")
    await bus.publish_all(result.events())
    return milestone


async def lock_milestone(db: AsyncSession, principal: User, milestone_id: int) -> Milestone:
    """Freeze a milestone (e.g. once a contract is signed)"""
    booking_id = await booking_id_for_milestone(db, milestone_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        if not is_provider_side(principal, booking):
            raise Forbidden("Only the provider or an admin can lock a milestone")
        milestone = await get_milestone(db, milestone_id)
        _ensure_editable(milestone)
        milestone.editable = False
        milestone.updated_at = datetime.utcnow()

    logger.info(f"Milestone {milestone_id} locked by user {principal.id}")
    return milestone


async def delete_milestone(
    db: AsyncSession,
    principal: User,
    milestone_id: int,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> None:
    trigger = trigger or get_trigger()
    bus = bus or event_bus

    booking_id = await booking_id_for_milestone(db, milestone_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        milestone = await get_milestone(db, milestone_id)
        _ensure_editable(milestone)

        await cascade.delete_milestones(db, [milestone.id])
        result = await trigger.recalculate(db, booking)

    logger.info(f"Milestone {milestone_id} deleted by user {principal.id}")
    await bus.publish_all(result.events())


async def get_milestone_for(db: AsyncSession, principal: User, milestone_id: int) -> Milestone:
    milestone = await get_milestone(db, milestone_id)
    require_read(principal, await get_booking(db, milestone.booking_id))
    return milestone


async def list_milestones(db: AsyncSession, principal: User, booking_id: int) -> List[Milestone]:
    require_read(principal, await get_booking(db, booking_id))
    result = await db.execute(
        select(Milestone)
        .where(Milestone.booking_id == booking_id)
        .order_by(Milestone.order_index, Milestone.id)
    )
    return list(result.scalars().all())
