"""
Task API endpoints - units of work inside a milestone
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field

from backend.database import get_db
from backend.models.user import User
from backend.models.task import TaskStatus, ApprovalStatus, TaskPriority
from backend.api.auth import get_current_user
from backend.services import tasks as task_store

router = APIRouter()


# --- Pydantic Schemas ---

class TaskResponse(BaseModel):
    id: int
    milestone_id: int
    title: str
    description: Optional[str]
    status: TaskStatus
    approval_status: ApprovalStatus
    estimated_hours: float
    actual_hours: float
    priority: TaskPriority
    due_date: Optional[date]
    order_index: int
    editable: bool
    completed_at: Optional[datetime]
    created_by: Optional[int]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    estimated_hours: float = Field(default=0, ge=0)
    priority: TaskPriority = TaskPriority.NORMAL
    due_date: Optional[date] = None
    order_index: int = 0


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    order_index: Optional[int] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    override: bool = False


# --- Endpoints ---

@router.get("/milestones/{milestone_id}/tasks", response_model=List[TaskResponse])
async def list_tasks(
    milestone_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List tasks of a milestone in display order"""
    return await task_store.list_tasks(db, current_user, milestone_id)


@router.post("/milestones/{milestone_id}/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    milestone_id: int,
    data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Add a task to a milestone"""
    return await task_store.create_task(db, current_user, milestone_id, **data.model_dump())


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await task_store.get_task_for(db, current_user, task_id)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update task details (status has its own endpoint)"""
    updates = data.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    return await task_store.update_task(db, current_user, task_id, updates)


@router.patch("/tasks/{task_id}/status", response_model=TaskResponse)
async def update_task_status(
    task_id: int,
    data: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Move a task through its state machine"""
    return await task_store.update_task_status(
        db, current_user, task_id, data.status, override=data.override
    )


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Remove a task and its approval history"""
    await task_store.delete_task(db, current_user, task_id)
    return {"message": "Task deleted"}
