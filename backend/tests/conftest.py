"""Test configuration and fixtures."""

import pytest

from classroom_rls.database import Database
from classroom_rls.gateway import QueryGateway
from classroom_rls.audit import TEST_USERS, load_seed
from classroom_rls.models import UserRole
from classroom_rls.security import PolicyEngine, Principal


# Use in-memory SQLite for testing
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture
def database():
    """Create a fresh in-memory database with every table."""
    database = Database(TEST_DATABASE_URL)
    database.create_tables()
    yield database
    database.drop_tables()
    database.dispose()


@pytest.fixture
def db_session(database):
    """Create a raw session that bypasses the gateway."""
    session = database.SessionLocal()
    yield session
    session.close()


@pytest.fixture
def seeded_database(database):
    """Load the seed classrooms, enrollments, assignments and progress."""
    with database.session() as session:
        load_seed(session)
    return database


@pytest.fixture
def gateway(seeded_database):
    """Gateway over the seeded database with default policy."""
    return QueryGateway(seeded_database, policy=PolicyEngine(strict_transitions=False))


@pytest.fixture
def teacher1():
    return Principal(id=TEST_USERS["TEACHER_1"], role=UserRole.teacher)


@pytest.fixture
def teacher2():
    return Principal(id=TEST_USERS["TEACHER_2"], role=UserRole.teacher)


@pytest.fixture
def admin():
    return Principal(id=TEST_USERS["ADMIN"], role=UserRole.admin)


@pytest.fixture
def student1():
    return Principal(id=TEST_USERS["STUDENT_1"], role=UserRole.student)


@pytest.fixture
def student2():
    return Principal(id=TEST_USERS["STUDENT_2"], role=UserRole.student)


@pytest.fixture
def sample_teacher(db_session):
    """Create a sample teacher for model tests."""
    from classroom_rls.models import User
    teacher = User(
        email="teacher@test.com",
        full_name="Jane Smith",
        role=UserRole.teacher,
    )
    db_session.add(teacher)
    db_session.commit()
    db_session.refresh(teacher)
    return teacher


@pytest.fixture
def sample_student(db_session):
    """Create a sample student for model tests."""
    from classroom_rls.models import User
    student = User(
        email="student@test.com",
        full_name="John Doe",
        role=UserRole.student,
    )
    db_session.add(student)
    db_session.commit()
    db_session.refresh(student)
    return student


@pytest.fixture
def sample_classroom(db_session, sample_teacher):
    """Create a sample classroom owned by the sample teacher."""
    from classroom_rls.models import Classroom
    classroom = Classroom(
        name="Algebra I",
        description="Linear equations and inequalities",
        teacher_id=sample_teacher.id,
    )
    db_session.add(classroom)
    db_session.commit()
    db_session.refresh(classroom)
    return classroom


@pytest.fixture
def sample_assignment(db_session, sample_classroom):
    """Create a sample assignment in the sample classroom."""
    from classroom_rls.models import Assignment
    assignment = Assignment(
        classroom_id=sample_classroom.id,
        title="Solving for x",
        description="Ten practice problems",
        max_points=50,
    )
    db_session.add(assignment)
    db_session.commit()
    db_session.refresh(assignment)
    return assignment


@pytest.fixture
def sample_progress(db_session, sample_student, sample_assignment):
    """Create a pending progress record for the sample student."""
    from classroom_rls.models import Progress
    progress = Progress(
        user_id=sample_student.id,
        assignment_id=sample_assignment.id,
    )
    db_session.add(progress)
    db_session.commit()
    db_session.refresh(progress)
    return progress
