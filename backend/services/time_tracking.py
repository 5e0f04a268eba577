"""
Time tracking - start/stop work timers on tasks.

A user has at most one running timer; starting a new one stops the others
first. Stopping a timer records its whole minutes and recomputes the task's
actual_hours under the booking lock, so two timers stopping at once on the
same booking never lose each other's time.
"""
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.booking import Booking
from backend.models.task import Task, TaskStatus
from backend.models.time_entry import TimeEntry
from backend.models.user import User
from backend.services.access import is_admin, require_mutate, require_read
from backend.services.errors import Forbidden, InvalidTransition, Locked
from backend.services.locks import booking_transaction
from backend.services.lookup import (
    booking_id_for_task,
    booking_id_for_time_entry,
    get_booking,
    get_milestone,
    get_task,
    get_time_entry,
)
from backend.utils.logger import get_logger

logger = get_logger(__name__)


def elapsed_minutes(start: datetime, end: datetime) -> int:
    seconds = Decimal(str(max((end - start).total_seconds(), 0)))
    return int((seconds / 60).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


async def _refresh_actual_hours(db: AsyncSession, task: Task) -> None:
    await db.flush()
    result = await db.execute(
        # Running timers have no duration yet and drop out of the sum
        select(func.coalesce(func.sum(TimeEntry.duration_minutes), 0))
        .where(TimeEntry.task_id == task.id)
    )
    minutes = result.scalar() or 0
    task.actual_hours = round(minutes / 60, 2)


async def _check_trackable(db: AsyncSession, principal: User, booking: Booking, task_id: int) -> Task:
    require_mutate(principal, booking)
    task = await get_task(db, task_id)
    milestone = await get_milestone(db, task.milestone_id)
    if not milestone.editable or not task.editable:
        raise Locked("Task is locked and cannot be modified")
    if task.status == TaskStatus.CANCELLED:
        raise InvalidTransition("Cannot track time on a cancelled task")
    return task


async def _active_entry_ids(db: AsyncSession, user_id: int) -> List[int]:
    result = await db.execute(
        select(TimeEntry.id).where(TimeEntry.user_id == user_id, TimeEntry.is_active.is_(True))
    )
    return list(result.scalars().all())


async def stop_time_tracking(db: AsyncSession, principal: User, entry_id: int) -> TimeEntry:
    """Stop a running timer; only its owner or an admin may stop it"""
    booking_id = await booking_id_for_time_entry(db, entry_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        entry = await get_time_entry(db, entry_id)
        if entry.user_id != principal.id and not is_admin(principal):
            raise Forbidden("Only the owner can stop this timer")
        if not entry.is_active:
            raise InvalidTransition("Time entry is already stopped")

        entry.end_time = datetime.utcnow()
        entry.duration_minutes = elapsed_minutes(entry.start_time, entry.end_time)
        entry.is_active = False
        task = await get_task(db, entry.task_id)
        await _refresh_actual_hours(db, task)

    logger.info(
        f"Time entry {entry_id} stopped after {entry.duration_minutes} min; "
        f"task {task.id} now at {task.actual_hours}h"
    )
    return entry


async def start_time_tracking(
    db: AsyncSession,
    principal: User,
    task_id: int,
    description: Optional[str] = None,
) -> TimeEntry:
    booking_id = await booking_id_for_task(db, task_id)
    await _check_trackable(db, principal, await get_booking(db, booking_id), task_id)

    # Each running timer is stopped under its own booking's lock, before
    # this booking's lock is taken
    for running_id in await _active_entry_ids(db, principal.id):
        await stop_time_tracking(db, principal, running_id)

    async with booking_transaction(db, booking_id) as booking:
        task = await _check_trackable(db, principal, booking, task_id)
        entry = TimeEntry(
            task_id=task.id,
            user_id=principal.id,
            description=description,
            start_time=datetime.utcnow(),
            is_active=True,
        )
        db.add(entry)
        await db.flush()

    logger.info(f"Time entry {entry.id} started on task {task_id} by user {principal.id}")
    return entry


async def get_active_entry(db: AsyncSession, principal: User) -> Optional[TimeEntry]:
    result = await db.execute(
        select(TimeEntry)
        .where(TimeEntry.user_id == principal.id, TimeEntry.is_active.is_(True))
        .order_by(TimeEntry.start_time.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_time_entries(db: AsyncSession, principal: User, task_id: int) -> List[TimeEntry]:
    task = await get_task(db, task_id)
    milestone = await get_milestone(db, task.milestone_id)
    require_read(principal, await get_booking(db, milestone.booking_id))
    result = await db.execute(
        select(TimeEntry)
        .where(TimeEntry.task_id == task_id)
        .order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc())
    )
    return list(result.scalars().all())
