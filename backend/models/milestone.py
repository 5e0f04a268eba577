"""
Milestone model - a weighted phase of a booking's work
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Boolean, Float, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from backend.database import Base


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    CANCELLED = "cancelled"


class Milestone(Base):
    __tablename__ = "milestones"
    __table_args__ = (
        CheckConstraint("weight > 0", name="ck_milestone_positive_weight"),
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="ck_milestone_progress_range",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(SQLEnum(MilestoneStatus, native_enum=False), nullable=False, default=MilestoneStatus.PENDING)

    # Derived from tasks, except for the zero-task completion override
    progress_percentage = Column(Integer, nullable=False, default=0)
    # Set only by an explicit completion (status change or approval)
    completion_override = Column(Boolean, nullable=False, default=False)

    weight = Column(Float, nullable=False, default=1.0)
    order_index = Column(Integer, nullable=False, default=0)
    due_date = Column(Date, nullable=True)
    editable = Column(Boolean, nullable=False, default=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    booking = relationship("Booking", back_populates="milestones")
    tasks = relationship(
        "Task",
        back_populates="milestone",
        order_by="Task.order_index",
        passive_deletes=True,
    )
