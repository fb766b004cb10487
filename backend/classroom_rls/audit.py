"""Policy audit harness.

Seeds a fixed classroom dataset, then replays every principal against every
relation, and one write per relation and write operation, through the
gateway and compares the rows returned or affected with an independent,
plain-Python restatement of the access rules. Any difference is a policy
bug.

Usage:
    python -m classroom_rls.audit [--database-url sqlite://] [-v]

The audit drops and recreates every table; never point it at a database
holding real data.
"""
import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from . import config
from .database import Database
from .gateway import QueryGateway
from .models import ProgressStatus, UserRole
from .security.catalog import CATALOG, get_relation
from .security.identity import Principal

logger = logging.getLogger(__name__)

TEST_USERS = {
    "TEACHER_1": "11111111-1111-1111-1111-111111111111",  # Ms. Sarah Johnson
    "TEACHER_2": "22222222-2222-2222-2222-222222222222",  # Mr. David Wilson
    "ADMIN": "33333333-3333-3333-3333-333333333333",
    "STUDENT_1": "44444444-4444-4444-4444-444444444444",  # Alice Smith
    "STUDENT_2": "55555555-5555-5555-5555-555555555555",  # Bob Jones
    "STUDENT_3": "66666666-6666-6666-6666-666666666666",  # Carol Davis
    "STUDENT_4": "77777777-7777-7777-7777-777777777777",  # David Brown
}

TEST_CLASSROOMS = {
    "MATH_101": "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa",
    "SCIENCE_101": "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb",
    "HISTORY_101": "cccccccc-cccc-cccc-cccc-cccccccccccc",
    "ENGLISH_101": "dddddddd-dddd-dddd-dddd-dddddddddddd",
}

TEST_ASSIGNMENTS = {
    "MATH_101": "a0000000-0000-0000-0000-000000000001",
    "SCIENCE_101": "a0000000-0000-0000-0000-000000000002",
    "HISTORY_101": "a0000000-0000-0000-0000-000000000003",
    "ENGLISH_101": "a0000000-0000-0000-0000-000000000004",
}

_U, _C, _A = TEST_USERS, TEST_CLASSROOMS, TEST_ASSIGNMENTS
_GRADED_AT = datetime(2024, 1, 20, 15, 0, tzinfo=UTC)


def _progress(n: int, student: str, classroom: str, status: ProgressStatus, **extra) -> Dict[str, Any]:
    return {
        "id": f"f0000000-0000-0000-0000-00000000000{n}",
        "user_id": _U[student],
        "assignment_id": _A[classroom],
        "status": status,
        **extra,
    }


SEED: Dict[str, List[Dict[str, Any]]] = {
    "users": [
        {"id": _U["TEACHER_1"], "email": "sarah.johnson@school.edu", "full_name": "Ms. Sarah Johnson", "role": UserRole.teacher},
        {"id": _U["TEACHER_2"], "email": "david.wilson@school.edu", "full_name": "Mr. David Wilson", "role": UserRole.teacher},
        {"id": _U["ADMIN"], "email": "admin@school.edu", "full_name": "Admin User", "role": UserRole.admin},
        {"id": _U["STUDENT_1"], "email": "alice.smith@student.edu", "full_name": "Alice Smith", "role": UserRole.student},
        {"id": _U["STUDENT_2"], "email": "bob.jones@student.edu", "full_name": "Bob Jones", "role": UserRole.student},
        {"id": _U["STUDENT_3"], "email": "carol.davis@student.edu", "full_name": "Carol Davis", "role": UserRole.student},
        {"id": _U["STUDENT_4"], "email": "david.brown@student.edu", "full_name": "David Brown", "role": UserRole.student},
    ],
    "classrooms": [
        {"id": _C["MATH_101"], "name": "Math 101", "teacher_id": _U["TEACHER_1"]},
        {"id": _C["SCIENCE_101"], "name": "Science 101", "teacher_id": _U["TEACHER_1"]},
        {"id": _C["HISTORY_101"], "name": "History 101", "teacher_id": _U["TEACHER_2"]},
        {"id": _C["ENGLISH_101"], "name": "English 101", "teacher_id": _U["TEACHER_2"]},
    ],
    "classroom_enrollments": [
        {"id": "e0000000-0000-0000-0000-000000000001", "classroom_id": _C["MATH_101"], "user_id": _U["STUDENT_1"]},
        {"id": "e0000000-0000-0000-0000-000000000002", "classroom_id": _C["SCIENCE_101"], "user_id": _U["STUDENT_1"]},
        {"id": "e0000000-0000-0000-0000-000000000003", "classroom_id": _C["MATH_101"], "user_id": _U["STUDENT_2"]},
        {"id": "e0000000-0000-0000-0000-000000000004", "classroom_id": _C["HISTORY_101"], "user_id": _U["STUDENT_2"]},
        {"id": "e0000000-0000-0000-0000-000000000005", "classroom_id": _C["SCIENCE_101"], "user_id": _U["STUDENT_3"]},
        {"id": "e0000000-0000-0000-0000-000000000006", "classroom_id": _C["ENGLISH_101"], "user_id": _U["STUDENT_3"]},
        {"id": "e0000000-0000-0000-0000-000000000007", "classroom_id": _C["HISTORY_101"], "user_id": _U["STUDENT_4"]},
        {"id": "e0000000-0000-0000-0000-000000000008", "classroom_id": _C["ENGLISH_101"], "user_id": _U["STUDENT_4"]},
    ],
    "assignments": [
        {"id": _A["MATH_101"], "classroom_id": _C["MATH_101"], "title": "Algebra Basics", "max_points": 100},
        {"id": _A["SCIENCE_101"], "classroom_id": _C["SCIENCE_101"], "title": "Lab Report", "max_points": 100},
        {"id": _A["HISTORY_101"], "classroom_id": _C["HISTORY_101"], "title": "Timeline Essay", "max_points": 50},
        {"id": _A["ENGLISH_101"], "classroom_id": _C["ENGLISH_101"], "title": "Book Review", "max_points": 100},
    ],
    "progress": [
        _progress(1, "STUDENT_1", "MATH_101", ProgressStatus.submitted, submission_text="x = 4"),
        _progress(2, "STUDENT_1", "SCIENCE_101", ProgressStatus.pending),
        _progress(3, "STUDENT_2", "MATH_101", ProgressStatus.graded, points_earned=90,
                  feedback="Nice work", graded_at=_GRADED_AT),
        _progress(4, "STUDENT_2", "HISTORY_101", ProgressStatus.submitted, submission_text="1776..."),
        _progress(5, "STUDENT_3", "SCIENCE_101", ProgressStatus.submitted, submission_text="Results"),
        _progress(6, "STUDENT_3", "ENGLISH_101", ProgressStatus.pending),
        _progress(7, "STUDENT_4", "HISTORY_101", ProgressStatus.pending),
        _progress(8, "STUDENT_4", "ENGLISH_101", ProgressStatus.submitted, submission_text="Review"),
    ],
}

SEED_ORDER = ("users", "classrooms", "classroom_enrollments", "assignments", "progress")


def load_seed(session) -> None:
    """Insert the seed dataset directly, bypassing the gateway."""
    for relation in SEED_ORDER:
        spec = get_relation(relation)
        for row in SEED[relation]:
            session.add(spec.model(**row))
        session.flush()


def seed_database(database: Database) -> None:
    """Drop, recreate and seed every table."""
    database.drop_tables()
    database.create_tables()
    with database.session() as session:
        load_seed(session)


def principals() -> List[Tuple[str, Optional[Principal]]]:
    """Every seeded principal plus the anonymous caller."""
    people = [(label, Principal(id=user_id, role=_role_of(user_id))) for label, user_id in TEST_USERS.items()]
    return people + [("ANONYMOUS", None)]


# Oracle: the access rules restated over the seed data, independent of the engine

def _role_of(user_id: str) -> UserRole:
    return next(u["role"] for u in SEED["users"] if u["id"] == user_id)


def _enrolled(user_id: str) -> Set[str]:
    return {e["classroom_id"] for e in SEED["classroom_enrollments"] if e["user_id"] == user_id}


def _taught(user_id: str) -> Set[str]:
    return {c["id"] for c in SEED["classrooms"] if c["teacher_id"] == user_id}


def _classroom_of_assignment(assignment_id: str) -> str:
    return next(a["classroom_id"] for a in SEED["assignments"] if a["id"] == assignment_id)


def can_read(principal: Optional[Principal], relation: str, row: Mapping[str, Any]) -> bool:
    if principal is None:
        return False
    role, me = principal.role, principal.id
    if role is UserRole.admin:
        return True
    student = role is UserRole.student
    if relation == "users":
        return not student or row["id"] == me
    if relation == "classrooms":
        return row["id"] in (_enrolled(me) if student else _taught(me))
    if relation == "classroom_enrollments":
        return row["user_id"] == me if student else row["classroom_id"] in _taught(me)
    if relation == "assignments":
        return row["classroom_id"] in (_enrolled(me) if student else _taught(me))
    if relation == "progress":
        if student:
            return row["user_id"] == me
        return _classroom_of_assignment(row["assignment_id"]) in _taught(me)
    return False


@dataclass(frozen=True)
class WriteCase:
    name: str
    relation: str
    operation: str
    target: Any
    patch: Optional[Dict[str, Any]]
    expect: Callable[[Optional[Principal], Mapping[str, Any]], bool]

    def candidates(self) -> List[Mapping[str, Any]]:
        if self.operation == "insert":
            return [self.target]
        return [
            row for row in SEED[self.relation]
            if all(_matches(row.get(k), v) for k, v in (self.target or {}).items())
        ]

    def expected_ids(self, principal: Optional[Principal]) -> Set[str]:
        return {row["id"] for row in self.candidates() if self.expect(principal, row)}


def _matches(stored, wanted) -> bool:
    return getattr(stored, "value", stored) == wanted


def _is(principal, role) -> bool:
    return principal is not None and principal.role is role


WRITE_CASES = [
    WriteCase(
        name="submit pending work",
        relation="progress", operation="update",
        target={"status": "pending"},
        patch={"status": "submitted", "submission_text": "My answer"},
        expect=lambda p, row: _is(p, UserRole.admin) or (_is(p, UserRole.student) and row["user_id"] == p.id),
    ),
    WriteCase(
        name="grade submitted work",
        relation="progress", operation="update",
        target={"status": "submitted"},
        patch={"status": "graded", "points_earned": 40, "feedback": "Good work!"},
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and _classroom_of_assignment(row["assignment_id"]) in _taught(p.id)
        ),
    ),
    WriteCase(
        name="tamper with a student's record",
        relation="progress", operation="update",
        target={"user_id": TEST_USERS["STUDENT_1"]},
        patch={"submission_text": "Hacking attempt", "points_earned": 100},
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
    WriteCase(
        name="start an assignment",
        relation="progress", operation="insert",
        target={"id": "f0000000-0000-0000-0000-000000000009", "user_id": TEST_USERS["STUDENT_1"],
                "assignment_id": TEST_ASSIGNMENTS["HISTORY_101"]},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (p is not None and row["user_id"] == p.id),
    ),
    WriteCase(
        name="describe classrooms",
        relation="classrooms", operation="update",
        target={},
        patch={"description": "Updated by audit"},
        expect=lambda p, row: _is(p, UserRole.admin) or (_is(p, UserRole.teacher) and row["teacher_id"] == p.id),
    ),
    WriteCase(
        name="delete classrooms",
        relation="classrooms", operation="delete",
        target={},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (_is(p, UserRole.teacher) and row["teacher_id"] == p.id),
    ),
    WriteCase(
        name="open a classroom",
        relation="classrooms", operation="insert",
        target={"id": "eeeeeeee-eeee-eeee-eeee-eeeeeeeeeeee", "name": "Art 101", "teacher_id": TEST_USERS["TEACHER_1"]},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (_is(p, UserRole.teacher) and row["teacher_id"] == p.id),
    ),
    # users
    WriteCase(
        name="rename profiles",
        relation="users", operation="update",
        target={},
        patch={"full_name": "Renamed by audit"},
        expect=lambda p, row: p is not None and (not _is(p, UserRole.student) or row["id"] == p.id),
    ),
    WriteCase(
        name="promote to admin",
        relation="users", operation="update",
        target={"id": TEST_USERS["STUDENT_1"]},
        patch={"role": "admin"},
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
    WriteCase(
        name="provision a user",
        relation="users", operation="insert",
        target={"id": "88888888-8888-8888-8888-888888888888", "email": "new.teacher@school.edu",
                "full_name": "New Teacher", "role": "teacher"},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
    WriteCase(
        name="remove a user",
        relation="users", operation="delete",
        target={"id": TEST_USERS["STUDENT_4"]},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
    # assignments
    WriteCase(
        name="post an assignment",
        relation="assignments", operation="insert",
        target={"id": "a0000000-0000-0000-0000-000000000005", "classroom_id": TEST_CLASSROOMS["MATH_101"],
                "title": "Pop Quiz"},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and row["classroom_id"] in _taught(p.id)
        ),
    ),
    WriteCase(
        name="retitle assignments",
        relation="assignments", operation="update",
        target={},
        patch={"title": "Revised by audit"},
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and row["classroom_id"] in _taught(p.id)
        ),
    ),
    WriteCase(
        name="withdraw assignments",
        relation="assignments", operation="delete",
        target={},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and row["classroom_id"] in _taught(p.id)
        ),
    ),
    # classroom_enrollments
    WriteCase(
        name="enroll a student",
        relation="classroom_enrollments", operation="insert",
        target={"id": "e0000000-0000-0000-0000-000000000009", "classroom_id": TEST_CLASSROOMS["HISTORY_101"],
                "user_id": TEST_USERS["STUDENT_1"]},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and row["classroom_id"] in _taught(p.id)
        ),
    ),
    WriteCase(
        name="move an enrollment",
        relation="classroom_enrollments", operation="update",
        target={"id": "e0000000-0000-0000-0000-000000000001"},
        patch={"classroom_id": TEST_CLASSROOMS["HISTORY_101"]},
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
    WriteCase(
        name="drop enrollments",
        relation="classroom_enrollments", operation="delete",
        target={},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin) or (
            _is(p, UserRole.teacher) and row["classroom_id"] in _taught(p.id)
        ),
    ),
    # progress
    WriteCase(
        name="discard progress",
        relation="progress", operation="delete",
        target={},
        patch=None,
        expect=lambda p, row: _is(p, UserRole.admin),
    ),
]


@dataclass
class AuditFailure:
    principal: str
    relation: str
    operation: str
    case: str
    expected: Set[str]
    actual: Set[str]

    def __str__(self):
        missing = sorted(self.expected - self.actual)
        leaked = sorted(self.actual - self.expected)
        return (f"{self.principal} {self.operation} {self.relation} [{self.case}]: "
                f"missing={missing} unexpected={leaked}")


@dataclass
class AuditReport:
    checks: int = 0
    failures: List[AuditFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record(self, principal: str, relation: str, operation: str, case: str,
               expected: Set[str], actual: Set[str]) -> None:
        self.checks += 1
        if expected != actual:
            failure = AuditFailure(principal, relation, operation, case, expected, actual)
            logger.error(f"Policy mismatch: {failure}")
            self.failures.append(failure)


def run_audit(gateway: QueryGateway, reset: Callable[[], None] = None) -> AuditReport:
    """Replay every principal/relation/operation combination and report mismatches."""
    if reset is None:
        def reset():
            seed_database(gateway.database)

    report = AuditReport()
    reset()
    for label, principal in principals():
        for relation in CATALOG:
            pk = get_relation(relation).primary_key
            expected = {row[pk] for row in SEED[relation] if can_read(principal, relation, row)}
            actual = {row[pk] for row in gateway.read(principal, relation)}
            report.record(label, relation, "read", "all rows", expected, actual)

    for case in WRITE_CASES:
        for label, principal in principals():
            reset()
            affected = gateway.write(principal, case.relation, case.operation, case.target, case.patch)
            actual = {row["id"] for row in affected}
            report.record(label, case.relation, case.operation, case.name,
                          case.expected_ids(principal), actual)

    logger.info(f"Audit finished: {report.checks} checks, {len(report.failures)} failure(s)")
    return report


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Replay the classroom access policy against a seeded store.")
    parser.add_argument("--database-url", default="sqlite://",
                        help="Database to seed and audit; all tables are dropped (default: in-memory SQLite)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log policy decisions")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.LOG_LEVEL.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    database = Database(args.database_url)
    try:
        report = run_audit(QueryGateway(database))
    finally:
        database.dispose()

    for failure in report.failures:
        print(f"FAIL {failure}")
    print(f"{report.checks} checks, {len(report.failures)} failure(s)")
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
