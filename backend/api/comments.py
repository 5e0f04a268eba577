"""
Comment API endpoints - discussion on tasks and milestones
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from backend.database import get_db
from backend.models.user import User
from backend.models.comment import CommentTarget, CommentType
from backend.api.auth import get_current_user
from backend.services import comments as comment_store
from backend.services.comments import CONTENT_MAX_LENGTH

router = APIRouter()


# --- Pydantic Schemas ---

class CommentResponse(BaseModel):
    id: int
    booking_id: int
    target_type: CommentTarget
    task_id: Optional[int]
    milestone_id: Optional[int]
    parent_id: Optional[int]
    user_id: int
    content: str
    comment_type: CommentType
    is_internal: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=CONTENT_MAX_LENGTH)
    comment_type: CommentType = CommentType.GENERAL
    is_internal: bool = False
    parent_id: Optional[int] = None


class CommentUpdate(BaseModel):
    content: Optional[str] = Field(default=None, min_length=1, max_length=CONTENT_MAX_LENGTH)
    comment_type: Optional[CommentType] = None


# --- Endpoints ---

async def _add(db, user, target_type, target_id, data: CommentCreate):
    try:
        return await comment_store.add_comment(db, user, target_type, target_id, **data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/tasks/{task_id}/comments", response_model=CommentResponse, status_code=201)
async def add_task_comment(
    task_id: int,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _add(db, current_user, CommentTarget.TASK, task_id, data)


@router.get("/tasks/{task_id}/comments", response_model=List[CommentResponse])
async def list_task_comments(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Task discussion, oldest first"""
    return await comment_store.list_comments(db, current_user, CommentTarget.TASK, task_id)


@router.post("/milestones/{milestone_id}/comments", response_model=CommentResponse, status_code=201)
async def add_milestone_comment(
    milestone_id: int,
    data: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await _add(db, current_user, CommentTarget.MILESTONE, milestone_id, data)


@router.get("/milestones/{milestone_id}/comments", response_model=List[CommentResponse])
async def list_milestone_comments(
    milestone_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Milestone discussion, oldest first"""
    return await comment_store.list_comments(db, current_user, CommentTarget.MILESTONE, milestone_id)


@router.put("/comments/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    updates = data.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        return await comment_store.update_comment(db, current_user, comment_id, **updates)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Delete a comment and its replies"""
    await comment_store.delete_comment(db, current_user, comment_id)
    return {"message": "Comment deleted"}
