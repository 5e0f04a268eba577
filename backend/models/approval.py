"""
Approval records - audit-trailed sign-off requests on tasks and milestones.
A record is created pending and resolved exactly once; re-requesting after a
rejection always creates a new row.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from backend.database import Base


class ApprovalTargetType(str, Enum):
    TASK = "task"
    MILESTONE = "milestone"


class ApprovalRecordStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalRecord(Base):
    __tablename__ = "approval_records"
    __table_args__ = (
        CheckConstraint(
            "(task_id IS NULL) <> (milestone_id IS NULL)",
            name="ck_approval_single_target",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    target_type = Column(SQLEnum(ApprovalTargetType, native_enum=False), nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    milestone_id = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=True, index=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # requester
    status = Column(
        SQLEnum(ApprovalRecordStatus, native_enum=False),
        nullable=False,
        default=ApprovalRecordStatus.PENDING,
    )
    comment = Column(Text, nullable=True)

    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolution_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    # Relationships
    requester = relationship("User", foreign_keys=[user_id])
    resolver = relationship("User", foreign_keys=[resolved_by])

    @property
    def target_id(self) -> int:
        if self.target_type == ApprovalTargetType.TASK:
            return self.task_id
        return self.milestone_id

    @property
    def is_resolved(self) -> bool:
        return self.status != ApprovalRecordStatus.PENDING
