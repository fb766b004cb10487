"""Policy engine: who may read or change which rows.

The policy table maps ``(relation, operation)`` to a grant for every role.
A grant is a tuple of ``Policy`` records; an empty tuple denies. Reads and
the row-selection half of updates and deletes compile the ``using``
predicates into a SQL filter, inserts and the new image of an update are
checked in memory against ``check``.

The engine holds no mutable state and is safe to share between requests.
"""
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from sqlalchemy import false, func, or_
from sqlalchemy.orm import Session

from .. import config
from ..exceptions import GradeOutOfRangeError, UnknownOperationError
from ..models import Progress, ProgressStatus, UserRole
from .catalog import get_relation, resolve_path
from .identity import Principal
from .predicates import ALWAYS, AllOf, EnrolledIn, FieldIn, OwnedBy, Predicate

logger = logging.getLogger(__name__)


class Operation(str, enum.Enum):
    read = "read"
    insert = "insert"
    update = "update"
    delete = "delete"


class Decision(enum.Enum):
    allow = "allow"
    deny = "deny"


def parse_operation(value) -> Operation:
    """Accept an ``Operation`` or its name."""
    try:
        return Operation(value)
    except ValueError:
        raise UnknownOperationError(str(value)) from None


@dataclass(frozen=True)
class Policy:
    """One permissive rule.

    ``using`` selects existing rows, ``check`` validates the new row image
    (defaults to ``using``), ``columns`` limits which columns an update may
    set (``None`` means any).
    """
    using: Predicate = ALWAYS
    check: Optional[Predicate] = None
    columns: Optional[FrozenSet[str]] = None

    @property
    def with_check(self) -> Predicate:
        return self.check if self.check is not None else self.using

    def covers(self, columns: Iterable[str]) -> bool:
        return self.columns is None or set(columns) <= self.columns


ANY = (Policy(),)
DENY: Tuple[Policy, ...] = ()

PROFILE_FIELDS = frozenset({"email", "full_name"})
SUBMISSION_FIELDS = frozenset({"submission_text", "status", "submitted_at"})
GRADING_FIELDS = frozenset({"points_earned", "feedback", "status", "graded_at"})

_own_profile = OwnedBy("id")
_own_classroom = OwnedBy("teacher_id")
_taught_classroom_row = OwnedBy("classroom.teacher_id")
_own_rows = OwnedBy("user_id")
_taught_progress = OwnedBy("assignment.classroom.teacher_id")

# A student starts work with every grading column still blank
_new_ungraded_work = AllOf(
    _own_rows,
    FieldIn("status", ProgressStatus.pending),
    FieldIn("points_earned", 0),
    FieldIn("feedback", None),
    FieldIn("graded_at", None),
)

_teacher_manages_classroom = (Policy(_own_classroom),)
_teacher_manages_classroom_rows = (Policy(_taught_classroom_row),)

POLICY_TABLE: Dict[Tuple[str, Operation], Dict[UserRole, Tuple[Policy, ...]]] = {
    # users
    ("users", Operation.read): {
        UserRole.student: (Policy(_own_profile),),
        UserRole.teacher: ANY,
        UserRole.admin: ANY,
    },
    ("users", Operation.insert): {
        UserRole.student: DENY,
        UserRole.teacher: DENY,
        UserRole.admin: ANY,
    },
    ("users", Operation.update): {
        UserRole.student: (Policy(_own_profile, columns=PROFILE_FIELDS),),
        UserRole.teacher: (Policy(columns=PROFILE_FIELDS),),
        UserRole.admin: ANY,
    },
    ("users", Operation.delete): {
        UserRole.student: DENY,
        UserRole.teacher: DENY,
        UserRole.admin: ANY,
    },
    # classrooms
    ("classrooms", Operation.read): {
        UserRole.student: (Policy(EnrolledIn("id")),),
        UserRole.teacher: (Policy(_own_classroom),),
        UserRole.admin: ANY,
    },
    ("classrooms", Operation.insert): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom,
        UserRole.admin: ANY,
    },
    ("classrooms", Operation.update): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom,
        UserRole.admin: ANY,
    },
    ("classrooms", Operation.delete): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom,
        UserRole.admin: ANY,
    },
    # classroom_enrollments
    ("classroom_enrollments", Operation.read): {
        UserRole.student: (Policy(_own_rows),),
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    ("classroom_enrollments", Operation.insert): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    ("classroom_enrollments", Operation.update): {
        UserRole.student: DENY,
        UserRole.teacher: DENY,
        UserRole.admin: ANY,
    },
    ("classroom_enrollments", Operation.delete): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    # assignments
    ("assignments", Operation.read): {
        UserRole.student: (Policy(EnrolledIn("classroom_id")),),
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    ("assignments", Operation.insert): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    ("assignments", Operation.update): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    ("assignments", Operation.delete): {
        UserRole.student: DENY,
        UserRole.teacher: _teacher_manages_classroom_rows,
        UserRole.admin: ANY,
    },
    # progress
    ("progress", Operation.read): {
        UserRole.student: (Policy(_own_rows),),
        UserRole.teacher: (Policy(_taught_progress),),
        UserRole.admin: ANY,
    },
    ("progress", Operation.insert): {
        UserRole.student: (Policy(_new_ungraded_work),),
        UserRole.teacher: DENY,
        UserRole.admin: ANY,
    },
    ("progress", Operation.update): {
        UserRole.student: (
            Policy(
                using=AllOf(_own_rows, FieldIn("status", ProgressStatus.pending)),
                check=AllOf(_own_rows, FieldIn("status", ProgressStatus.submitted)),
                columns=SUBMISSION_FIELDS,
            ),
        ),
        UserRole.teacher: (
            Policy(
                using=_taught_progress,
                check=AllOf(_taught_progress, FieldIn("status", ProgressStatus.graded)),
                columns=GRADING_FIELDS,
            ),
        ),
        UserRole.admin: ANY,
    },
    ("progress", Operation.delete): {
        UserRole.student: DENY,
        UserRole.teacher: DENY,
        UserRole.admin: ANY,
    },
}


def validate_policy_table(table) -> None:
    """Every entry must name a catalog relation and grant every role explicitly."""
    for (relation, operation), grants in table.items():
        get_relation(relation)
        operation = parse_operation(operation)
        missing = set(UserRole) - set(grants)
        if missing:
            names = ", ".join(sorted(role.value for role in missing))
            raise ValueError(f"Policy for {relation}.{operation.value} has no grant for: {names}")


validate_policy_table(POLICY_TABLE)


class PolicyEngine:
    """Evaluates the policy table for a principal, relation and operation."""

    def __init__(self, table=None, strict_transitions: bool = None):
        self.table = POLICY_TABLE if table is None else table
        if table is not None:
            validate_policy_table(table)
        self.strict_transitions = (
            config.STRICT_STATUS_TRANSITIONS if strict_transitions is None else strict_transitions
        )

    def policies_for(self, principal: Optional[Principal], relation: str, operation,
                     columns: Optional[Iterable[str]] = None) -> Tuple[Policy, ...]:
        """Applicable policies; an anonymous principal gets none."""
        spec = get_relation(relation)
        operation = parse_operation(operation)
        if principal is None:
            return DENY
        grants = self.table.get((spec.name, operation))
        if grants is None:
            return DENY
        policies = grants[principal.role]
        if columns is not None:
            policies = tuple(p for p in policies if p.covers(columns))
        return policies

    def row_filter(self, principal: Optional[Principal], relation: str, operation=Operation.read,
                   columns: Optional[Iterable[str]] = None):
        """SQL clause selecting the rows ``principal`` may act on."""
        spec = get_relation(relation)
        policies = self.policies_for(principal, relation, operation, columns)
        if not policies:
            logger.debug(f"No policy grants {parse_operation(operation).value} on {spec.name}")
            return false()
        return or_(*(p.using.clause(spec, principal) for p in policies))

    def permits(self, session: Session, principal: Optional[Principal], relation: str, operation,
                row: Mapping[str, Any]) -> bool:
        """Decide a single row: inserts use ``check``, everything else ``using``."""
        spec = get_relation(relation)
        operation = parse_operation(operation)
        for policy in self.policies_for(principal, relation, operation):
            predicate = policy.with_check if operation is Operation.insert else policy.using
            if predicate.evaluate(session, spec, principal, row):
                return True
        return False

    def decide(self, session: Session, principal: Optional[Principal], relation: str, operation,
               row: Mapping[str, Any]) -> Decision:
        return Decision.allow if self.permits(session, principal, relation, operation, row) else Decision.deny

    def authorize_update(self, session: Session, principal: Optional[Principal], relation: str,
                         old: Mapping[str, Any], new: Mapping[str, Any], columns: Iterable[str]) -> bool:
        """An update passes when one policy selects ``old`` and accepts ``new``."""
        spec = get_relation(relation)
        if self.strict_transitions and not self._forward_transition(old, new):
            return False
        for policy in self.policies_for(principal, relation, Operation.update, columns):
            if (policy.using.evaluate(session, spec, principal, old)
                    and policy.with_check.evaluate(session, spec, principal, new)):
                return True
        return False

    @staticmethod
    def _forward_transition(old: Mapping[str, Any], new: Mapping[str, Any]) -> bool:
        before, after = old.get("status"), new.get("status")
        if not isinstance(before, ProgressStatus) or not isinstance(after, ProgressStatus):
            return True
        return after.rank >= before.rank

    def validate_row(self, session: Session, relation: str, values: Mapping[str, Any]) -> None:
        """Role-independent data invariants on a row about to be written."""
        spec = get_relation(relation)
        if spec.name == "progress" and values.get("points_earned") is not None:
            max_points = resolve_path(session, spec, "assignment.max_points", values)
            if max_points is not None and values["points_earned"] > max_points:
                raise GradeOutOfRangeError(values["points_earned"], max_points)
        elif spec.name == "assignments" and values.get("max_points") is not None and values.get("id"):
            # Lowering the ceiling must not strand grades already recorded above it
            highest = session.query(func.max(Progress.points_earned)).filter(
                Progress.assignment_id == values["id"]
            ).scalar()
            if highest is not None and highest > values["max_points"]:
                raise GradeOutOfRangeError(highest, values["max_points"])


__all__ = [
    "ANY",
    "DENY",
    "Decision",
    "GRADING_FIELDS",
    "Operation",
    "POLICY_TABLE",
    "Policy",
    "PolicyEngine",
    "SUBMISSION_FIELDS",
    "parse_operation",
    "validate_policy_table",
]
