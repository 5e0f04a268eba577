"""
Booking API endpoints - progress breakdown, analytics and maintenance
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel

from backend.database import get_db
from backend.models.user import User
from backend.models.milestone import MilestoneStatus
from backend.api.auth import get_current_user
from backend.api.milestones import MilestoneResponse
from backend.api.tasks import TaskResponse
from backend.services import analytics

router = APIRouter()


# --- Pydantic Schemas ---

class MilestoneWithTasks(MilestoneResponse):
    tasks: List[TaskResponse] = []


class BookingBreakdown(BaseModel):
    id: int
    client_id: int
    provider_id: int
    title: Optional[str]
    status: str
    progress_percentage: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    milestones: List[MilestoneWithTasks] = []

    class Config:
        from_attributes = True


class ProgressAnalyticsResponse(BaseModel):
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


class MilestoneChangeResponse(BaseModel):
    milestone_id: int
    old_progress: int
    new_progress: int
    old_status: MilestoneStatus
    new_status: MilestoneStatus

    class Config:
        from_attributes = True


class RecalculateResponse(BaseModel):
    booking_id: int
    old_booking_progress: int
    new_booking_progress: int
    milestones: List[MilestoneChangeResponse]

    class Config:
        from_attributes = True


# --- Endpoints ---

@router.get("/{booking_id}", response_model=BookingBreakdown)
async def get_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Booking with milestones and tasks"""
    return await analytics.get_breakdown(db, current_user, booking_id)


@router.get("/{booking_id}/progress", response_model=ProgressAnalyticsResponse)
async def get_progress(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Progress summary: counts, overdue tasks, pending approvals, hours"""
    summary = await analytics.get_progress_analytics(db, current_user, booking_id)
    return summary.to_dict()


@router.post("/{booking_id}/recalculate", response_model=RecalculateResponse)
async def recalculate(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Re-derive all milestone and booking progress from task state"""
    return await analytics.recalculate_booking(db, current_user, booking_id)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a booking with all milestones, tasks and approvals (admin only)"""
    await analytics.delete_booking(db, current_user, booking_id)
    return {"message": "Booking deleted"}
