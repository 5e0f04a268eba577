"""
Recalculation trigger - the single writer of derived progress fields.

Called in-process after every task/milestone mutation and approval
resolution, inside the caller's transaction and booking lock:

    tasks -> milestone.progress_percentage (+ status auto-promotion)
    milestones -> booking.progress_percentage

The caller commits once, so readers never see a fresh milestone next to a
stale booking.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.database import supports_savepoints
from backend.models.booking import Booking
from backend.models.milestone import Milestone, MilestoneStatus
from backend.models.task import Task
from backend.services.errors import InternalError
from backend.services.events import EventKind, ProgressEvent
from backend.services.progress import (
    ApprovalPolicy,
    compute_booking_progress,
    compute_milestone_progress,
    has_countable_tasks,
)
from backend.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class MilestoneChange:
    milestone_id: int
    old_progress: int
    new_progress: int
    old_status: str
    new_status: str

    @property
    def changed(self) -> bool:
        return self.old_progress != self.new_progress


@dataclass
class RecalcResult:
    booking_id: int
    old_booking_progress: int
    new_booking_progress: int
    milestones: List[MilestoneChange] = field(default_factory=list)

    @property
    def booking_changed(self) -> bool:
        return self.old_booking_progress != self.new_booking_progress

    def milestone(self, milestone_id: int) -> Optional[MilestoneChange]:
        for change in self.milestones:
            if change.milestone_id == milestone_id:
                return change
        return None

    def events(self, task_id: Optional[int] = None) -> List[ProgressEvent]:
        events = [
            ProgressEvent(
                booking_id=self.booking_id,
                kind=EventKind.MILESTONE_PROGRESS,
                milestone_id=change.milestone_id,
                task_id=task_id,
                new_progress=change.new_progress,
            )
            for change in self.milestones
            if change.changed
        ]
        if self.booking_changed:
            events.append(ProgressEvent(
                booking_id=self.booking_id,
                kind=EventKind.BOOKING_PROGRESS,
                task_id=task_id,
                new_progress=self.new_booking_progress,
            ))
        return events


def completion_override_applies(milestone: Milestone, tasks: List[Task]) -> bool:
    """An explicitly completed milestone with nothing countable reports 100"""
    return (
        bool(milestone.completion_override)
        and milestone.status == MilestoneStatus.COMPLETED
        and not has_countable_tasks(tasks)
    )


def promote_status(milestone: Milestone, progress: int) -> None:
    """
    Derive display status from progress for editable milestones.
    Locked milestones keep their status as a snapshot; on_hold and
    cancelled are only ever changed by a principal.
    """
    if not milestone.editable:
        return
    if milestone.status in (MilestoneStatus.ON_HOLD, MilestoneStatus.CANCELLED):
        return
    if progress >= 100:
        if milestone.status != MilestoneStatus.COMPLETED:
            milestone.status = MilestoneStatus.COMPLETED
            milestone.completed_at = datetime.utcnow()
    elif progress > 0:
        if milestone.status != MilestoneStatus.IN_PROGRESS:
            milestone.status = MilestoneStatus.IN_PROGRESS
            milestone.completed_at = None
            milestone.completion_override = False
    elif milestone.status == MilestoneStatus.COMPLETED:
        # Completed work was reopened or removed
        milestone.status = MilestoneStatus.PENDING
        milestone.completed_at = None
        milestone.completion_override = False


class RecalculationTrigger:
    def __init__(self, policy: Optional[ApprovalPolicy] = None, auto_promote: Optional[bool] = None):
        settings = get_settings()
        self.policy = policy or ApprovalPolicy.from_settings(settings)
        self.auto_promote = settings.AUTO_PROMOTE_MILESTONES if auto_promote is None else auto_promote

    async def _attempt(self, db: AsyncSession, fn: Callable[[], Awaitable[T]]) -> T:
        # A failed statement aborts a PostgreSQL transaction unless it ran in a savepoint
        if supports_savepoints(db):
            async with db.begin_nested():
                return await fn()
        return await fn()

    async def _read(self, db: AsyncSession, what: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Reads are retried once on a transient database error"""
        try:
            return await self._attempt(db, fn)
        except OperationalError as e:
            logger.warning(f"Transient error reading {what}, retrying once: {e}")
        try:
            return await self._attempt(db, fn)
        except OperationalError as e:
            raise InternalError(f"Failed to read {what} for recalculation", detail={"reason": "persistence"}) from e

    async def _load_tasks(self, db: AsyncSession, milestone_id: int) -> List[Task]:
        async def fetch():
            result = await db.execute(
                select(Task)
                .where(Task.milestone_id == milestone_id)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        return await self._read(db, f"tasks of milestone {milestone_id}", fetch)

    async def _load_milestones(self, db: AsyncSession, booking_id: int) -> List[Milestone]:
        async def fetch():
            result = await db.execute(
                select(Milestone)
                .where(Milestone.booking_id == booking_id)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
        return await self._read(db, f"milestones of booking {booking_id}", fetch)

    async def _refresh_milestone(self, db: AsyncSession, milestone: Milestone, promote: bool) -> MilestoneChange:
        tasks = await self._load_tasks(db, milestone.id)
        old_progress = milestone.progress_percentage or 0
        old_status = milestone.status

        progress = compute_milestone_progress(
            tasks,
            self.policy,
            completion_override=completion_override_applies(milestone, tasks),
        )
        milestone.progress_percentage = progress
        if promote and self.auto_promote:
            promote_status(milestone, progress)

        return MilestoneChange(
            milestone_id=milestone.id,
            old_progress=old_progress,
            new_progress=progress,
            old_status=old_status,
            new_status=milestone.status,
        )

    async def _refresh_booking(self, db: AsyncSession, booking: Booking, changes: List[MilestoneChange]) -> RecalcResult:
        await db.flush()
        milestones = await self._load_milestones(db, booking.id)
        old_progress = booking.progress_percentage or 0
        booking.progress_percentage = compute_booking_progress(milestones)
        await db.flush()

        result = RecalcResult(
            booking_id=booking.id,
            old_booking_progress=old_progress,
            new_booking_progress=booking.progress_percentage,
            milestones=changes,
        )
        logger.debug(
            f"Recalculated booking {booking.id}: {old_progress}% -> {booking.progress_percentage}% "
            f"({len(changes)} milestone(s) refreshed)"
        )
        return result

    async def recalculate(
        self,
        db: AsyncSession,
        booking: Booking,
        milestone: Optional[Milestone] = None,
        promote: bool = True,
    ) -> RecalcResult:
        """Refresh one milestone (if any) then the booking it belongs to"""
        changes = []
        if milestone is not None:
            changes.append(await self._refresh_milestone(db, milestone, promote))
        return await self._refresh_booking(db, booking, changes)

    async def recalculate_booking(self, db: AsyncSession, booking: Booking) -> RecalcResult:
        """Refresh every milestone of a booking, e.g. after a repair"""
        milestones = await self._load_milestones(db, booking.id)
        changes = [await self._refresh_milestone(db, m, promote=True) for m in milestones]
        return await self._refresh_booking(db, booking, changes)


def get_trigger() -> RecalculationTrigger:
    return RecalculationTrigger()
