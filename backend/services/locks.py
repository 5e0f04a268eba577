"""
Per-booking serialization for read-modify-write of progress fields.

Mutations under the same booking queue on one asyncio.Lock with a bounded
wait; different bookings never contend. On PostgreSQL the booking row is also
locked (SELECT ... FOR UPDATE) so separate worker processes serialize too,
with the same bound applied through lock_timeout.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import get_settings
from backend.database import is_postgres, supports_row_locks
from backend.models.booking import Booking
from backend.services.errors import (
    InternalError,
    LockTimeout,
    NotFound,
    ProgressEngineError,
    VALIDATION_ERRORS,
)
from backend.utils.logger import get_logger

logger = get_logger(__name__)

# SQLSTATE lock_not_available
PG_LOCK_NOT_AVAILABLE = "55P03"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


async def _acquire(lock: asyncio.Lock, timeout: float) -> bool:
    """
    Wait up to timeout seconds for the lock.

    Unlike wait_for(lock.acquire()), an acquire that completes at the same
    moment as the deadline is handed back instead of leaking a held lock.
    """
    waiter = asyncio.ensure_future(lock.acquire())
    try:
        done, _ = await asyncio.wait({waiter}, timeout=timeout)
    except asyncio.CancelledError:
        if waiter.done() and not waiter.cancelled():
            lock.release()
        else:
            waiter.cancel()
        raise
    if done:
        return True
    waiter.cancel()
    try:
        await waiter
    except asyncio.CancelledError:
        return False
    # acquire() won the race against cancel()
    lock.release()
    return False


class BookingLockRegistry:
    def __init__(self, timeout: Optional[float] = None):
        self._timeout = timeout
        self._entries: Dict[int, _Entry] = {}

    @property
    def timeout(self) -> float:
        if self._timeout is not None:
            return self._timeout
        return get_settings().RECALC_LOCK_TIMEOUT_SECONDS

    def is_locked(self, booking_id: int) -> bool:
        entry = self._entries.get(booking_id)
        return entry is not None and entry.lock.locked()

    def active_bookings(self) -> list[int]:
        return list(self._entries.keys())

    @asynccontextmanager
    async def hold(self, booking_id: int, timeout: Optional[float] = None):
        entry = self._entries.get(booking_id)
        if entry is None:
            entry = self._entries[booking_id] = _Entry()
        entry.users += 1
        wait = self.timeout if timeout is None else timeout
        try:
            if not await _acquire(entry.lock, wait):
                logger.warning(f"Timed out after {wait}s waiting for booking {booking_id}")
                raise LockTimeout(
                    f"Booking {booking_id} is busy, retry the request",
                    detail={"booking_id": booking_id},
                )
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(booking_id) is entry:
                del self._entries[booking_id]


booking_locks = BookingLockRegistry()


def is_lock_not_available(error: DBAPIError) -> bool:
    """True when PostgreSQL gave up waiting for a row lock"""
    orig = getattr(error, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == PG_LOCK_NOT_AVAILABLE


async def lock_booking_row(db: AsyncSession, booking_id: int, timeout: Optional[float] = None) -> Optional[Booking]:
    """Load the booking, taking a row lock where the database supports it"""
    query = select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
    if not supports_row_locks(db):
        result = await db.execute(query)
        return result.scalar_one_or_none()

    if timeout is not None and is_postgres(db):
        # SET does not take bind parameters; the value is an int we built
        await db.execute(text(f"SET LOCAL lock_timeout = '{max(int(timeout * 1000), 1)}ms'"))
    try:
        result = await db.execute(query.with_for_update())
    except DBAPIError as e:
        if is_lock_not_available(e):
            logger.warning(f"Timed out after {timeout}s waiting for the row lock on booking {booking_id}")
            raise LockTimeout(
                f"Booking {booking_id} is busy, retry the request",
                detail={"booking_id": booking_id},
            ) from e
        raise
    return result.scalar_one_or_none()


@asynccontextmanager
async def booking_transaction(db: AsyncSession, booking_id: int, registry: Optional[BookingLockRegistry] = None):
    """
    One serialized unit of work on a booking.

    Yields the row-locked booking and commits before the lock is released.
    Raises NotFound when the booking is gone and InternalError when the
    database fails underneath the work.
    """
    registry = registry or booking_locks
    async with registry.hold(booking_id):
        try:
            booking = await lock_booking_row(db, booking_id, timeout=registry.timeout)
            if booking is None:
                raise NotFound("Booking not found")
            yield booking
            await db.commit()
        except VALIDATION_ERRORS:
            # Nothing was written; only a held row lock needs releasing
            if supports_row_locks(db):
                await db.rollback()
            raise
        except ProgressEngineError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Database failure on booking {booking_id}: {e}")
            raise InternalError("Failed to persist changes", detail={"reason": "persistence"}) from e
        except Exception:
            await db.rollback()
            raise
