"""
Access control for a booking's work breakdown.

Only the booking's client, its provider, or an admin may read or mutate the
breakdown. Every check fails closed.
"""
from typing import Optional

from backend.models.user import User, UserRole
from backend.models.booking import Booking
from backend.models.approval import ApprovalRecord
from backend.services.errors import Forbidden
from backend.utils.logger import get_logger

logger = get_logger(__name__)


def is_admin(principal: Optional[User]) -> bool:
    return principal is not None and bool(principal.is_active) and principal.role == UserRole.ADMIN


def is_provider_side(principal: Optional[User], booking: Optional[Booking]) -> bool:
    """The booking's provider or an admin (may reopen completed work)"""
    if is_admin(principal):
        return True
    return principal is not None and booking is not None and principal.id == booking.provider_id


def can_mutate(principal: Optional[User], booking: Optional[Booking]) -> bool:
    try:
        if principal is None or booking is None or not principal.is_active:
            return False
        return (
            principal.id == booking.client_id
            or principal.id == booking.provider_id
            or principal.role == UserRole.ADMIN
        )
    except Exception:
        logger.exception("Access check failed, denying")
        return False


def can_read(principal: Optional[User], booking: Optional[Booking]) -> bool:
    return can_mutate(principal, booking)


def can_approve(principal: Optional[User], booking: Optional[Booking], approval: Optional[ApprovalRecord]) -> bool:
    """Counterpart principals only - a requester never resolves their own request unless admin"""
    if approval is None or not can_mutate(principal, booking):
        return False
    if is_admin(principal):
        return True
    return principal.id != approval.user_id


def require_mutate(principal: Optional[User], booking: Optional[Booking]) -> None:
    if not can_mutate(principal, booking):
        raise Forbidden("Access denied")


def require_read(principal: Optional[User], booking: Optional[Booking]) -> None:
    if not can_read(principal, booking):
        raise Forbidden("Access denied")


def require_approve(principal: Optional[User], booking: Optional[Booking], approval: ApprovalRecord) -> None:
    if not can_approve(principal, booking, approval):
        if can_mutate(principal, booking):
            raise Forbidden("You cannot resolve your own approval request")
        raise Forbidden("Access denied")


def require_admin(principal: Optional[User]) -> None:
    if not is_admin(principal):
        raise Forbidden("Admin only")
