"""
Task store - CRUD and status transitions for units of work.

Every mutation runs under the owning booking's lock and ends with a
recalculation of the milestone and booking progress.
"""
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.models.milestone import Milestone
from backend.models.task import Task, TaskStatus, ApprovalStatus, TaskPriority
from backend.models.user import User
from backend.services import cascade
from backend.services.access import is_admin, is_provider_side, require_mutate, require_read
from backend.services.errors import Forbidden, InvalidTransition, Locked
from backend.services.events import EventBus, event_bus
from backend.services.locks import booking_transaction
from backend.services.lookup import booking_id_for_milestone, booking_id_for_task, get_booking, get_milestone, get_task
from backend.services.recalculation import RecalculationTrigger, get_trigger
from backend.utils.logger import get_logger

logger = get_logger(__name__)

TASK_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
    TaskStatus.COMPLETED: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.CANCELLED: set(),
}

EDITABLE_FIELDS = {"title", "description", "estimated_hours", "actual_hours", "priority", "due_date", "order_index"}


def check_transition(current: TaskStatus, new: TaskStatus, override: bool = False) -> None:
    """Raise InvalidTransition unless current -> new is allowed"""
    current, new = TaskStatus(current), TaskStatus(new)
    if current == TaskStatus.CANCELLED:
        raise InvalidTransition("Cancelled tasks cannot change status", detail={"from": current.value, "to": new.value})
    if current == new:
        raise InvalidTransition(f"Task is already {current.value}", detail={"from": current.value, "to": new.value})
    if override:
        return
    if new not in TASK_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot move task from {current.value} to {new.value}",
            detail={"from": current.value, "to": new.value},
        )


def apply_status(task: Task, new_status: TaskStatus) -> None:
    """Set status with its side effects on completed_at and stale sign-off"""
    previous = task.status
    task.status = new_status
    if new_status == TaskStatus.COMPLETED:
        task.completed_at = datetime.utcnow()
    elif previous == TaskStatus.COMPLETED:
        task.completed_at = None
        if task.approval_status == ApprovalStatus.APPROVED:
            task.approval_status = ApprovalStatus.NOT_REQUIRED


def _ensure_editable(milestone: Milestone, task: Optional[Task] = None) -> None:
    if not milestone.editable:
        raise Locked("Milestone is locked and cannot be modified")
    if task is not None and not task.editable:
        raise Locked("Task is locked and cannot be modified")


async def create_task(
    db: AsyncSession,
    principal: User,
    milestone_id: int,
    title: str,
    description: Optional[str] = None,
    estimated_hours: float = 0,
    priority: TaskPriority = TaskPriority.NORMAL,
    due_date: Optional[date] = None,
    order_index: int = 0,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> Task:
    trigger = trigger or get_trigger()
    bus = bus or event_bus

    booking_id = await booking_id_for_milestone(db, milestone_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        milestone = await get_milestone(db, milestone_id)
        _ensure_editable(milestone)

        task = Task(
            milestone_id=milestone.id,
            title=title,
            description=description,
            estimated_hours=estimated_hours or 0,
            priority=TaskPriority(priority),
            due_date=due_date,
            order_index=order_index,
            status=TaskStatus.PENDING,
            approval_status=ApprovalStatus.NOT_REQUIRED,
            created_by=principal.id,
        )
        db.add(task)
        await db.flush()
        result = await trigger.recalculate(db, booking, milestone)

    logger.info(f"Task {task.id} created in milestone {milestone_id} by user {principal.id}")
    await bus.publish_all(result.events(task_id=task.id))
    return task


async def update_task_status(
    db: AsyncSession,
    principal: User,
    task_id: int,
    new_status: TaskStatus,
    override: bool = False,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> Task:
    """
    Move a task through its state machine.

    pending -> in_progress -> completed, completed -> in_progress (reopen,
    provider/admin only), any non-cancelled state -> cancelled. ``override``
    is the admin-only path that skips the table; cancelled stays terminal.
    """
    trigger = trigger or get_trigger()
    bus = bus or event_bus
    new_status = TaskStatus(new_status)

    booking_id = await booking_id_for_task(db, task_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        if override and not is_admin(principal):
            raise Forbidden("Only admins can override task transitions")

        task = await get_task(db, task_id)
        milestone = await get_milestone(db, task.milestone_id)
        _ensure_editable(milestone, task)

        check_transition(task.status, new_status, override=override)
        if (
            not override
            and task.status == TaskStatus.COMPLETED
            and new_status == TaskStatus.IN_PROGRESS
            and not is_provider_side(principal, booking)
        ):
            raise Forbidden("Only the provider or an admin can reopen a completed task")

        previous = task.status
        apply_status(task, new_status)
        await db.flush()
        result = await trigger.recalculate(db, booking, milestone)

    logger.info(
        f"Task {task_id} {previous.value} -> {new_status.value} by user {principal.id}"
        + (" (override)" if override else "")
    )
    await bus.publish_all(result.events(task_id=task_id))
    return task


async def update_task(
    db: AsyncSession,
    principal: User,
    task_id: int,
    updates: dict,
) -> Task:
    """Edit descriptive fields; status goes through update_task_status"""
    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated here: {sorted(unknown)}")
    if updates.get("priority") is not None:
        updates = {**updates, "priority": TaskPriority(updates["priority"])}

    booking_id = await booking_id_for_task(db, task_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        task = await get_task(db, task_id)
        milestone = await get_milestone(db, task.milestone_id)
        _ensure_editable(milestone, task)

        for key, value in updates.items():
            setattr(task, key, value)
        task.updated_at = datetime.utcnow()

    return task


async def delete_task(
    db: AsyncSession,
    principal: User,
    task_id: int,
    trigger: Optional[RecalculationTrigger] = None,
    bus: Optional[EventBus] = None,
) -> None:
    trigger = trigger or get_trigger()
    bus = bus or event_bus

    booking_id = await booking_id_for_task(db, task_id)
    async with booking_transaction(db, booking_id) as booking:
        require_mutate(principal, booking)
        task = await get_task(db, task_id)
        milestone = await get_milestone(db, task.milestone_id)
        _ensure_editable(milestone)

        await cascade.delete_tasks(db, [task.id])
        result = await trigger.recalculate(db, booking, milestone)

    logger.info(f"Task {task_id} deleted by user {principal.id}")
    await bus.publish_all(result.events(task_id=task_id))


async def get_task_for(db: AsyncSession, principal: User, task_id: int) -> Task:
    task = await get_task(db, task_id)
    milestone = await get_milestone(db, task.milestone_id)
    require_read(principal, await get_booking(db, milestone.booking_id))
    return task


async def list_tasks(db: AsyncSession, principal: User, milestone_id: int) -> List[Task]:
    milestone = await get_milestone(db, milestone_id)
    require_read(principal, await get_booking(db, milestone.booking_id))
    result = await db.execute(
        select(Task)
        .where(Task.milestone_id == milestone_id)
        .order_by(Task.order_index, Task.id)
    )
    return list(result.scalars().all())
