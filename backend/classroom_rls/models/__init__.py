"""SQLAlchemy models for the classroom access layer."""

from .enums import UserRole, ProgressStatus
from .user import User
from .classroom import Classroom, ClassroomEnrollment
from .assignment import Assignment
from .progress import Progress

__all__ = [
    "User",
    "UserRole",
    "Classroom",
    "ClassroomEnrollment",
    "Assignment",
    "Progress",
    "ProgressStatus",
]
