"""
Comments - discussion threads on tasks and milestones.
Internal comments are provider-side notes hidden from the booking's client.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Boolean, CheckConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum
from backend.database import Base


class CommentTarget(str, Enum):
    TASK = "task"
    MILESTONE = "milestone"


class CommentType(str, Enum):
    GENERAL = "general"
    FEEDBACK = "feedback"
    QUESTION = "question"
    ISSUE = "issue"


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        CheckConstraint(
            "(task_id IS NULL) <> (milestone_id IS NULL)",
            name="ck_comment_single_target",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    milestone_id = Column(Integer, ForeignKey("milestones.id", ondelete="CASCADE"), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    comment_type = Column(SQLEnum(CommentType, native_enum=False), nullable=False, default=CommentType.GENERAL)
    is_internal = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    author = relationship("User")

    @property
    def target_type(self) -> CommentTarget:
        return CommentTarget.TASK if self.task_id is not None else CommentTarget.MILESTONE
