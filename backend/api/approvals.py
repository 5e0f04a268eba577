"""
Approval API endpoints - request and resolve sign-off on tasks and milestones
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from backend.database import get_db
from backend.models.user import User
from backend.models.approval import ApprovalRecordStatus, ApprovalTargetType
from backend.api.auth import get_current_user
from backend.services import approvals as approval_store

router = APIRouter()


# --- Pydantic Schemas ---

class ApprovalResponse(BaseModel):
    id: int
    booking_id: int
    target_type: ApprovalTargetType
    task_id: Optional[int]
    milestone_id: Optional[int]
    user_id: int
    status: ApprovalRecordStatus
    comment: Optional[str]
    resolved_by: Optional[int]
    resolution_notes: Optional[str]
    created_at: Optional[datetime]
    resolved_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApprovalRequest(BaseModel):
    target_type: ApprovalTargetType
    target_id: int
    comment: Optional[str] = Field(default=None, max_length=2000)


class ApprovalDecision(BaseModel):
    status: ApprovalRecordStatus
    notes: Optional[str] = Field(default=None, max_length=2000)


# --- Endpoints ---

@router.post("/approvals", response_model=ApprovalResponse, status_code=201)
async def request_approval(
    data: ApprovalRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Open a pending approval request on a task or milestone"""
    return await approval_store.request_approval(
        db, current_user, data.target_type, data.target_id, comment=data.comment
    )


@router.get("/approvals/{approval_id}", response_model=ApprovalResponse)
async def get_approval(
    approval_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return await approval_store.get_approval_for(db, current_user, approval_id)


@router.post("/approvals/{approval_id}/resolve", response_model=ApprovalResponse)
async def resolve_approval(
    approval_id: int,
    data: ApprovalDecision,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Approve or reject a pending request"""
    return await approval_store.resolve_approval(
        db, current_user, approval_id, data.status, notes=data.notes
    )


@router.get("/bookings/{booking_id}/approvals", response_model=List[ApprovalResponse])
async def list_approvals(
    booking_id: int,
    status: Optional[ApprovalRecordStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Approval history of a booking, newest first"""
    return await approval_store.list_approvals(db, current_user, booking_id, status=status)
