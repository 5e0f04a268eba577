"""
Ownership-aware deletion: Booking -> Milestone -> Task -> ApprovalRecord,
plus the comments and time entries hanging off tasks and milestones.

Bulk deletes run bottom-up so foreign keys hold at every step, with or
without the SQLite foreign_keys pragma.
"""
from typing import Iterable

from sqlalchemy import delete, select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.approval import ApprovalRecord
from backend.models.booking import Booking
from backend.models.comment import Comment
from backend.models.milestone import Milestone
from backend.models.task import Task
from backend.models.time_entry import TimeEntry
from backend.utils.logger import get_logger

logger = get_logger(__name__)


async def _delete_comments(db: AsyncSession, *where) -> None:
    comment_ids = (await db.execute(select(Comment.id).where(or_(*where)))).scalars().all()
    if not comment_ids:
        return
    # Replies first
    await db.execute(delete(Comment).where(Comment.parent_id.in_(comment_ids)))
    await db.execute(delete(Comment).where(Comment.id.in_(comment_ids)))


async def delete_comment_thread(db: AsyncSession, comment_id: int) -> None:
    await db.execute(delete(Comment).where(Comment.parent_id == comment_id))
    await db.execute(delete(Comment).where(Comment.id == comment_id))


async def delete_tasks(db: AsyncSession, task_ids: Iterable[int]) -> int:
    task_ids = list(task_ids)
    if not task_ids:
        return 0
    await db.execute(delete(ApprovalRecord).where(ApprovalRecord.task_id.in_(task_ids)))
    await db.execute(delete(TimeEntry).where(TimeEntry.task_id.in_(task_ids)))
    await _delete_comments(db, Comment.task_id.in_(task_ids))
    result = await db.execute(delete(Task).where(Task.id.in_(task_ids)))
    return result.rowcount or 0


async def delete_milestones(db: AsyncSession, milestone_ids: Iterable[int]) -> int:
    milestone_ids = list(milestone_ids)
    if not milestone_ids:
        return 0
    task_ids = select(Task.id).where(Task.milestone_id.in_(milestone_ids))
    await db.execute(
        delete(ApprovalRecord)
        .where(or_(
            ApprovalRecord.milestone_id.in_(milestone_ids),
            ApprovalRecord.task_id.in_(task_ids),
        ))
    )
    await db.execute(delete(TimeEntry).where(TimeEntry.task_id.in_(task_ids)))
    await _delete_comments(db, Comment.milestone_id.in_(milestone_ids), Comment.task_id.in_(task_ids))
    await db.execute(delete(Task).where(Task.milestone_id.in_(milestone_ids)))
    result = await db.execute(delete(Milestone).where(Milestone.id.in_(milestone_ids)))
    return result.rowcount or 0


async def delete_booking(db: AsyncSession, booking_id: int) -> None:
    milestone_ids = (
        await db.execute(select(Milestone.id).where(Milestone.booking_id == booking_id))
    ).scalars().all()
    removed = await delete_milestones(db, milestone_ids)
    # Stray records whose target vanished outside this routine
    await db.execute(delete(ApprovalRecord).where(ApprovalRecord.booking_id == booking_id))
    await _delete_comments(db, Comment.booking_id == booking_id)
    await db.execute(delete(Booking).where(Booking.id == booking_id))
    logger.info(f"Deleted booking {booking_id} with {removed} milestones")
