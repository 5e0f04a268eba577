"""
Entity lookups that raise NotFound instead of returning None
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.approval import ApprovalRecord
from backend.models.booking import Booking
from backend.models.comment import Comment
from backend.models.milestone import Milestone
from backend.models.task import Task
from backend.models.time_entry import TimeEntry
from backend.services.errors import NotFound


async def _fetch(db: AsyncSession, model, entity_id: int):
    result = await db.execute(
        select(model).where(model.id == entity_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_booking(db: AsyncSession, booking_id: int) -> Booking:
    booking = await _fetch(db, Booking, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    return booking


async def get_milestone(db: AsyncSession, milestone_id: int) -> Milestone:
    milestone = await _fetch(db, Milestone, milestone_id)
    if not milestone:
        raise NotFound("Milestone not found")
    return milestone


async def get_task(db: AsyncSession, task_id: int) -> Task:
    task = await _fetch(db, Task, task_id)
    if not task:
        raise NotFound("Task not found")
    return task


async def get_approval(db: AsyncSession, approval_id: int) -> ApprovalRecord:
    approval = await _fetch(db, ApprovalRecord, approval_id)
    if not approval:
        raise NotFound("Approval not found")
    return approval


async def get_time_entry(db: AsyncSession, entry_id: int) -> TimeEntry:
    entry = await _fetch(db, TimeEntry, entry_id)
    if not entry:
        raise NotFound("Time entry not found")
    return entry


async def get_comment(db: AsyncSession, comment_id: int) -> Comment:
    comment = await _fetch(db, Comment, comment_id)
    if not comment:
        raise NotFound("Comment not found")
    return comment


async def booking_id_for_milestone(db: AsyncSession, milestone_id: int) -> int:
    result = await db.execute(select(Milestone.booking_id).where(Milestone.id == milestone_id))
    booking_id = result.scalar_one_or_none()
    if booking_id is None:
        raise NotFound("Milestone not found")
    return booking_id


async def booking_id_for_task(db: AsyncSession, task_id: int) -> int:
    result = await db.execute(
        select(Milestone.booking_id)
        .join(Task, Task.milestone_id == Milestone.id)
        .where(Task.id == task_id)
    )
    booking_id = result.scalar_one_or_none()
    if booking_id is None:
        raise NotFound("Task not found")
    return booking_id


async def booking_id_for_approval(db: AsyncSession, approval_id: int) -> int:
    result = await db.execute(select(ApprovalRecord.booking_id).where(ApprovalRecord.id == approval_id))
    booking_id = result.scalar_one_or_none()
    if booking_id is None:
        raise NotFound("Approval not found")
    return booking_id


async def booking_id_for_time_entry(db: AsyncSession, entry_id: int) -> int:
    result = await db.execute(
        select(Milestone.booking_id)
        .join(Task, Task.milestone_id == Milestone.id)
        .join(TimeEntry, TimeEntry.task_id == Task.id)
        .where(TimeEntry.id == entry_id)
    )
    booking_id = result.scalar_one_or_none()
    if booking_id is None:
        raise NotFound("Time entry not found")
    return booking_id


async def booking_id_for_comment(db: AsyncSession, comment_id: int) -> int:
    result = await db.execute(select(Comment.booking_id).where(Comment.id == comment_id))
    booking_id = result.scalar_one_or_none()
    if booking_id is None:
        raise NotFound("Comment not found")
    return booking_id
