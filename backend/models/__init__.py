from backend.models.user import User, UserRole
from backend.models.booking import Booking
from backend.models.milestone import Milestone, MilestoneStatus
from backend.models.task import Task, TaskStatus, ApprovalStatus, TaskPriority
from backend.models.approval import ApprovalRecord, ApprovalTargetType, ApprovalRecordStatus
from backend.models.time_entry import TimeEntry
from backend.models.comment import Comment, CommentTarget, CommentType

__all__ = [
    "User",
    "UserRole",
    "Booking",
    "Milestone",
    "MilestoneStatus",
    "Task",
    "TaskStatus",
    "ApprovalStatus",
    "TaskPriority",
    "ApprovalRecord",
    "ApprovalTargetType",
    "ApprovalRecordStatus",
    "TimeEntry",
    "Comment",
    "CommentTarget",
    "CommentType",
]
