"""
Milestone API endpoints - weighted phases of a booking
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field

from backend.database import get_db
from backend.models.user import User
from backend.models.milestone import MilestoneStatus
from backend.api.auth import get_current_user
from backend.services import milestones as milestone_store

router = APIRouter()


# --- Pydantic Schemas ---

class MilestoneResponse(BaseModel):
    id: int
    booking_id: int
    title: str
    description: Optional[str]
    status: MilestoneStatus
    progress_percentage: int
    completion_override: bool
    weight: float
    order_index: int
    due_date: Optional[date]
    editable: bool
    completed_at: Optional[datetime]
    created_by: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class MilestoneCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    weight: float = Field(default=1.0, gt=0)
    due_date: Optional[date] = None
    order_index: int = 0


class MilestoneUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    weight: Optional[float] = Field(default=None, gt=0)
    due_date: Optional[date] = None
    order_index: Optional[int] = None


class MilestoneStatusUpdate(BaseModel):
    status: MilestoneStatus


# --- Endpoints ---

@router.get("/bookings/{booking_id}/milestones", response_model=List[MilestoneResponse])
async def list_milestones(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List milestones of a booking in display order"""
    return await milestone_store.list_milestones(db, current_user, booking_id)


@router.post("/bookings/{booking_id}/milestones", response_model=MilestoneResponse, status_code=201)
async def create_milestone(
    booking_id: int,
    data: MilestoneCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Add a milestone to a booking"""
    try:
        return await milestone_store.create_milestone(db, current_user, booking_id, **data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/milestones/{milestone_id}", response_model=MilestoneResponse)
async def get_milestone(
    milestone_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await milestone_store.get_milestone_for(db, current_user, milestone_id)


@router.put("/milestones/{milestone_id}", response_model=MilestoneResponse)
async def update_milestone(
    milestone_id: int,
    data: MilestoneUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update milestone details and weight"""
    updates = data.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        return await milestone_store.update_milestone(db, current_user, milestone_id, updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/milestones/{milestone_id}/status", response_model=MilestoneResponse)
async def update_milestone_status(
    milestone_id: int,
    data: MilestoneStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Set the display status of a milestone"""
    return await milestone_store.update_milestone_status(db, current_user, milestone_id, data.status)


@router.post("/milestones/{milestone_id}/lock", response_model=MilestoneResponse)
async def lock_milestone(
    milestone_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Freeze a milestone against further edits"""
    return await milestone_store.lock_milestone(db, current_user, milestone_id)


@router.delete("/milestones/{milestone_id}")
async def delete_milestone(
    milestone_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a milestone with its tasks and approval history"""
    await milestone_store.delete_milestone(db, current_user, milestone_id)
    return {"message": "Milestone deleted"}
