"""Pydantic payload schemas for insert rows and update patches.

Each relation has an insert schema (the full new row) and an update schema
(every field optional; only the fields a caller sets form the patch).
Unknown fields are rejected so a typo never silently widens a write.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import UserRole, ProgressStatus


class Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


# users

class UserInsert(Payload):
    id: Optional[str] = None
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    role: UserRole = UserRole.student


class UserUpdate(Payload):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    role: Optional[UserRole] = None


# classrooms

class ClassroomInsert(Payload):
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    teacher_id: str


class ClassroomUpdate(Payload):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    teacher_id: Optional[str] = None


# classroom_enrollments

class EnrollmentInsert(Payload):
    id: Optional[str] = None
    classroom_id: str
    user_id: str


class EnrollmentUpdate(Payload):
    classroom_id: Optional[str] = None
    user_id: Optional[str] = None


# assignments

class AssignmentInsert(Payload):
    id: Optional[str] = None
    classroom_id: str
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: int = Field(default=100, gt=0)


class AssignmentUpdate(Payload):
    classroom_id: Optional[str] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: Optional[int] = Field(default=None, gt=0)


# progress

class ProgressInsert(Payload):
    id: Optional[str] = None
    user_id: str
    assignment_id: str
    status: ProgressStatus = ProgressStatus.pending
    submission_text: Optional[str] = None
    points_earned: int = Field(default=0, ge=0)
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None


class ProgressUpdate(Payload):
    user_id: Optional[str] = None
    assignment_id: Optional[str] = None
    status: Optional[ProgressStatus] = None
    submission_text: Optional[str] = None
    points_earned: Optional[int] = Field(default=None, ge=0)
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

    @field_validator("status")
    @classmethod
    def status_not_null(cls, v):
        if v is None:
            raise ValueError("status cannot be cleared")
        return v
