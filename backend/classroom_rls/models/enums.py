"""Shared enums for models and policy."""
import enum


class UserRole(enum.Enum):
    student = "student"
    teacher = "teacher"
    admin = "admin"


class ProgressStatus(enum.Enum):
    pending = "pending"
    submitted = "submitted"
    graded = "graded"

    @property
    def rank(self) -> int:
        """Position in the pending -> submitted -> graded lifecycle."""
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [ProgressStatus.pending, ProgressStatus.submitted, ProgressStatus.graded]
