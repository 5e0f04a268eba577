"""
Time tracking API endpoints - work timers on tasks
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from backend.database import get_db
from backend.models.user import User
from backend.api.auth import get_current_user
from backend.services import time_tracking

router = APIRouter()


# --- Pydantic Schemas ---

class TimeEntryResponse(BaseModel):
    id: int
    task_id: int
    user_id: int
    description: Optional[str]
    start_time: datetime
    end_time: Optional[datetime]
    duration_minutes: Optional[int]
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class TimeEntryStart(BaseModel):
    description: Optional[str] = Field(default=None, max_length=2000)


# --- Endpoints ---

@router.post("/tasks/{task_id}/time-entries/start", response_model=TimeEntryResponse, status_code=201)
async def start_timer(
    task_id: int,
    data: Optional[TimeEntryStart] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Start a timer on a task, stopping any timer the user already has running"""
    description = data.description if data else None
    return await time_tracking.start_time_tracking(db, current_user, task_id, description=description)


@router.post("/time-entries/{entry_id}/stop", response_model=TimeEntryResponse)
async def stop_timer(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await time_tracking.stop_time_tracking(db, current_user, entry_id)


@router.get("/time-entries/active", response_model=Optional[TimeEntryResponse])
async def get_active_timer(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """The current user's running timer, or null"""
    return await time_tracking.get_active_entry(db, current_user)


@router.get("/tasks/{task_id}/time-entries", response_model=List[TimeEntryResponse])
async def list_time_entries(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await time_tracking.list_time_entries(db, current_user, task_id)
