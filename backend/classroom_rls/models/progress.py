"""Progress model."""

from sqlalchemy import (
    Column, String, Text, DateTime, ForeignKey, Integer, Enum as SQLEnum,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from ..database import Base
from .enums import ProgressStatus


class Progress(Base):
    """A student's record for one assignment: pending, submitted, then graded."""
    __tablename__ = "progress"
    __table_args__ = (
        UniqueConstraint("user_id", "assignment_id", name="uq_progress_user_assignment"),
        CheckConstraint("points_earned >= 0", name="ck_progress_points_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    assignment_id = Column(String(36), ForeignKey("assignments.id"), nullable=False, index=True)
    status = Column(SQLEnum(ProgressStatus, name="assignment_status"), nullable=False, default=ProgressStatus.pending)
    submission_text = Column(Text)
    points_earned = Column(Integer, nullable=False, default=0)
    feedback = Column(Text)
    submitted_at = Column(DateTime(timezone=True))
    graded_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="progress")
    assignment = relationship("Assignment", back_populates="progress")

    def __repr__(self):
        return f"<Progress(id={self.id}, user_id={self.user_id}, status={self.status.value})>"

    @property
    def is_pending(self):
        return self.status == ProgressStatus.pending

    @property
    def is_submitted(self):
        return self.status == ProgressStatus.submitted

    @property
    def is_graded(self):
        return self.status == ProgressStatus.graded

    @property
    def percentage(self):
        """Score as a percentage of the assignment's max points, once graded."""
        if not self.is_graded or not self.assignment or not self.assignment.max_points:
            return None
        return round(100.0 * self.points_earned / self.assignment.max_points, 1)
