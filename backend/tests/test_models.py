"""Test cases for SQLAlchemy models."""

import pytest
from sqlalchemy.exc import IntegrityError

from classroom_rls.models import (
    User, UserRole,
    Classroom, ClassroomEnrollment,
    Assignment,
    Progress, ProgressStatus,
)


class TestUserModel:
    """Test cases for User model."""

    def test_create_user(self, db_session):
        """Test creating a user."""
        user = User(
            email="teacher@school.edu",
            full_name="Ms. Sarah Johnson",
            role=UserRole.teacher,
        )
        db_session.add(user)
        db_session.commit()

        assert user.id is not None
        assert len(user.id) == 36
        assert user.role == UserRole.teacher
        assert user.created_at is not None

    def test_user_unique_email(self, db_session):
        """Test that user email must be unique."""
        db_session.add(User(email="duplicate@test.com", full_name="One", role=UserRole.student))
        db_session.commit()

        db_session.add(User(email="duplicate@test.com", full_name="Two", role=UserRole.student))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_user_role_properties(self, sample_teacher, sample_student):
        """Test role helper properties."""
        assert sample_teacher.is_teacher
        assert not sample_teacher.is_student
        assert not sample_teacher.is_admin
        assert sample_student.is_student

    def test_user_repr(self, sample_teacher):
        repr_str = repr(sample_teacher)
        assert "User" in repr_str
        assert sample_teacher.email in repr_str
        assert "teacher" in repr_str


class TestClassroomModel:
    """Test cases for Classroom and ClassroomEnrollment models."""

    def test_create_classroom(self, sample_classroom, sample_teacher):
        assert sample_classroom.id is not None
        assert sample_classroom.teacher == sample_teacher
        assert sample_classroom in sample_teacher.classrooms

    def test_enrollment_count(self, db_session, sample_classroom, sample_student):
        db_session.add(ClassroomEnrollment(classroom_id=sample_classroom.id, user_id=sample_student.id))
        db_session.commit()
        db_session.refresh(sample_classroom)

        assert sample_classroom.enrollment_count == 1
        assert sample_student.enrollments[0].classroom == sample_classroom

    def test_enrollment_is_unique_per_student(self, db_session, sample_classroom, sample_student):
        """Test that a student cannot be enrolled twice in one classroom."""
        db_session.add(ClassroomEnrollment(classroom_id=sample_classroom.id, user_id=sample_student.id))
        db_session.commit()

        db_session.add(ClassroomEnrollment(classroom_id=sample_classroom.id, user_id=sample_student.id))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_classroom_requires_existing_teacher(self, db_session):
        """Test that the owning teacher foreign key is enforced."""
        db_session.add(Classroom(name="Orphan", teacher_id="no-such-user"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()


class TestAssignmentModel:
    """Test cases for Assignment model."""

    def test_default_max_points(self, db_session, sample_classroom):
        assignment = Assignment(classroom_id=sample_classroom.id, title="Quiz")
        db_session.add(assignment)
        db_session.commit()

        assert assignment.max_points == 100

    def test_max_points_must_be_positive(self, db_session, sample_classroom):
        db_session.add(Assignment(classroom_id=sample_classroom.id, title="Broken", max_points=0))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_submission_count(self, db_session, sample_assignment, sample_progress):
        assert sample_assignment.submission_count == 0

        sample_progress.status = ProgressStatus.submitted
        db_session.commit()
        db_session.refresh(sample_assignment)

        assert sample_assignment.submission_count == 1


class TestProgressModel:
    """Test cases for Progress model."""

    def test_defaults(self, sample_progress):
        """Test that a new record starts pending with zero points."""
        assert sample_progress.status == ProgressStatus.pending
        assert sample_progress.points_earned == 0
        assert sample_progress.is_pending
        assert sample_progress.percentage is None

    def test_percentage_once_graded(self, db_session, sample_progress):
        sample_progress.status = ProgressStatus.graded
        sample_progress.points_earned = 40
        db_session.commit()

        assert sample_progress.is_graded
        assert sample_progress.percentage == 80.0

    def test_one_record_per_student_assignment(self, db_session, sample_progress):
        db_session.add(Progress(user_id=sample_progress.user_id, assignment_id=sample_progress.assignment_id))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_points_cannot_be_negative(self, db_session, sample_progress):
        sample_progress.points_earned = -1
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    def test_status_rank_order(self):
        assert ProgressStatus.pending.rank < ProgressStatus.submitted.rank < ProgressStatus.graded.rank

    def test_ownership_chain(self, sample_progress, sample_teacher):
        """Test that progress reaches its teacher through assignment and classroom."""
        assert sample_progress.assignment.classroom.teacher == sample_teacher

    def test_cascade_from_classroom(self, db_session, sample_classroom, sample_progress):
        """Test that deleting a classroom removes its assignments and progress."""
        progress_id = sample_progress.id
        db_session.delete(sample_classroom)
        db_session.commit()

        assert db_session.get(Progress, progress_id) is None

    def test_cascade_from_user(self, db_session, sample_student, sample_classroom, sample_progress):
        """Test that deleting a student removes their enrollments and progress."""
        db_session.add(ClassroomEnrollment(classroom_id=sample_classroom.id, user_id=sample_student.id))
        db_session.commit()
        progress_id = sample_progress.id

        db_session.delete(sample_student)
        db_session.commit()

        assert db_session.get(Progress, progress_id) is None
        assert db_session.query(ClassroomEnrollment).count() == 0
        assert db_session.get(Classroom, sample_classroom.id) is not None
