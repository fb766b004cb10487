"""Classroom and ClassroomEnrollment models."""

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid

from ..database import Base


class Classroom(Base):
    """Classroom model, owned by exactly one teacher."""
    __tablename__ = "classrooms"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    teacher_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    teacher = relationship("User", back_populates="classrooms")
    enrollments = relationship("ClassroomEnrollment", back_populates="classroom", cascade="all, delete-orphan")
    assignments = relationship("Assignment", back_populates="classroom", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Classroom(id={self.id}, name='{self.name}')>"

    @property
    def enrollment_count(self):
        """Get count of students enrolled in this classroom."""
        return len(self.enrollments)


class ClassroomEnrollment(Base):
    """Membership edge between a student and a classroom."""
    __tablename__ = "classroom_enrollments"
    __table_args__ = (
        UniqueConstraint("classroom_id", "user_id", name="uq_enrollment_classroom_user"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    classroom_id = Column(String(36), ForeignKey("classrooms.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    classroom = relationship("Classroom", back_populates="enrollments")
    user = relationship("User", back_populates="enrollments")

    def __repr__(self):
        return f"<ClassroomEnrollment(classroom_id={self.classroom_id}, user_id={self.user_id})>"
