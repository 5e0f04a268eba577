"""
Comments on tasks and milestones.

Any party to the booking may comment. Internal comments are provider-side
notes: only the booking's provider or an admin writes or sees them.
Replies are one level deep and live on the same target as their parent.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.booking import Booking
from backend.models.comment import Comment, CommentTarget, CommentType
from backend.models.user import User
from backend.services import cascade
from backend.services.access import is_admin, is_provider_side, require_mutate, require_read
from backend.services.errors import Forbidden, NotFound
from backend.services.locks import booking_transaction
from backend.services.lookup import (
    booking_id_for_comment,
    booking_id_for_milestone,
    booking_id_for_task,
    get_booking,
    get_comment,
)
from backend.utils.logger import get_logger

logger = get_logger(__name__)

CONTENT_MAX_LENGTH = 1000


def validate_content(content: Optional[str]) -> str:
    content = (content or "").strip()
    if not content:
        raise ValueError("Comment cannot be empty")
    if len(content) > CONTENT_MAX_LENGTH:
        raise ValueError(f"Comment cannot exceed {CONTENT_MAX_LENGTH} characters")
    return content


def can_see(principal: User, booking: Booking, comment: Comment) -> bool:
    return not comment.is_internal or is_provider_side(principal, booking)


def _require_author(principal: User, comment: Comment) -> None:
    if comment.user_id != principal.id and not is_admin(principal):
        raise Forbidden("Only the author can change this comment")


async def _resolve_target(
    db: AsyncSession, target_type: CommentTarget, target_id: int
) -> Tuple[int, Optional[int], Optional[int]]:
    """booking_id, task_id, milestone_id for a comment target"""
    if target_type == CommentTarget.TASK:
        return await booking_id_for_task(db, target_id), target_id, None
    return await booking_id_for_milestone(db, target_id), None, target_id


async def add_comment(
    db: AsyncSession,
    principal: User,
    target_type: CommentTarget,
    target_id: int,
    content: str,
    comment_type: CommentType = CommentType.GENERAL,
    is_internal: bool = False,
    parent_id: Optional[int] = None,
) -> Comment:
    target_type = CommentTarget(target_type)
    content = validate_content(content)
    booking_id, task_id, milestone_id = await _resolve_target(db, target_type, target_id)

    if parent_id is not None:
        parent = await get_comment(db, parent_id)
        booking = await get_booking(db, booking_id)
        require_read(principal, booking)
        if not can_see(principal, booking, parent):
            raise NotFound("Comment not found")
        if parent.task_id != task_id or parent.milestone_id != milestone_id:
            raise ValueError("A reply must be on the same task or milestone as its parent")
        if parent.parent_id is not None:
            raise ValueError("Replies cannot be nested")

    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        if is_internal and not is_provider_side(principal, booking):
            raise Forbidden("Only the provider can write internal comments")

        comment = Comment(
            booking_id=booking.id,
            task_id=task_id,
            milestone_id=milestone_id,
            parent_id=parent_id,
            user_id=principal.id,
            content=content,
            comment_type=CommentType(comment_type),
            is_internal=bool(is_internal),
        )
        db.add(comment)
        await db.flush()

    logger.info(f"Comment {comment.id} added on {target_type.value} {target_id} by user {principal.id}")
    return comment


async def list_comments(
    db: AsyncSession,
    principal: User,
    target_type: CommentTarget,
    target_id: int,
) -> List[Comment]:
    """Oldest first; internal comments only for the provider side"""
    target_type = CommentTarget(target_type)
    booking_id, task_id, milestone_id = await _resolve_target(db, target_type, target_id)
    booking = await get_booking(db, booking_id)
    require_read(principal, booking)

    query = select(Comment).order_by(Comment.created_at, Comment.id)
    if task_id is not None:
        query = query.where(Comment.task_id == task_id)
    else:
        query = query.where(Comment.milestone_id == milestone_id)
    if not is_provider_side(principal, booking):
        query = query.where(Comment.is_internal.is_(False))

    result = await db.execute(query)
    return list(result.scalars().all())


async def update_comment(
    db: AsyncSession,
    principal: User,
    comment_id: int,
    content: Optional[str] = None,
    comment_type: Optional[CommentType] = None,
) -> Comment:
    if content is not None:
        content = validate_content(content)

    booking_id = await booking_id_for_comment(db, comment_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        comment = await get_comment(db, comment_id)
        if not can_see(principal, booking, comment):
            raise NotFound("Comment not found")
        _require_author(principal, comment)

        if content is not None:
            comment.content = content
        if comment_type is not None:
            comment.comment_type = CommentType(comment_type)
        comment.updated_at = datetime.utcnow()

    return comment


async def delete_comment(db: AsyncSession, principal: User, comment_id: int) -> None:
    """Delete a comment together with its replies"""
    booking_id = await booking_id_for_comment(db, comment_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        comment = await get_comment(db, comment_id)
        if not can_see(principal, booking, comment):
            raise NotFound("Comment not found")
        _require_author(principal, comment)
        await cascade.delete_comment_thread(db, comment.id)

    logger.info(f"Comment {comment_id} deleted by user {principal.id}")
