"""
Task model - the smallest trackable unit of work, owned by a milestone
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Boolean, Float, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from backend.database import Base


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApprovalStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class TaskPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    milestone_id = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(TaskStatus, native_enum=False), nullable=False, default=TaskStatus.PENDING)
    approval_status = Column(
        SQLEnum(ApprovalStatus, native_enum=False),
        nullable=False,
        default=ApprovalStatus.NOT_REQUIRED,
    )
    estimated_hours = Column(Float, nullable=False, default=0)
    actual_hours = Column(Float, nullable=False, default=0)
    priority = Column(SQLEnum(TaskPriority, native_enum=False), nullable=False, default=TaskPriority.NORMAL)
    due_date = Column(Date, nullable=True)
    order_index = Column(Integer, nullable=False, default=0)
    editable = Column(Boolean, nullable=False, default=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    milestone = relationship("Milestone", back_populates="tasks")
