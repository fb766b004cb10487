"""Predicate values used by the policy table.

Every predicate has two faces that must agree:

- ``clause(spec, principal)`` builds a SQL boolean expression so a bulk
  query only returns rows the principal may see;
- ``evaluate(session, spec, principal, values)`` decides a single candidate
  row held in memory (an insert row, or the new image of an updated row).
"""
from typing import Any, FrozenSet, Mapping

from sqlalchemy import and_, or_, select, true
from sqlalchemy.orm import Session

from ..models import ClassroomEnrollment
from .catalog import RelationSpec, path_clause, resolve_path


class Predicate:
    """Base class for policy predicates."""

    def clause(self, spec: RelationSpec, principal):
        raise NotImplementedError

    def evaluate(self, session: Session, spec: RelationSpec, principal, values: Mapping[str, Any]) -> bool:
        raise NotImplementedError


class Always(Predicate):
    """Matches every row."""

    def clause(self, spec, principal):
        return true()

    def evaluate(self, session, spec, principal, values):
        return True

    def __repr__(self):
        return "ALWAYS"


ALWAYS = Always()


class OwnedBy(Predicate):
    """Matches rows whose ``path`` ends at the principal's own id."""

    def __init__(self, path: str):
        self.path = path

    def clause(self, spec, principal):
        return path_clause(spec, self.path, lambda column: column == principal.id)

    def evaluate(self, session, spec, principal, values):
        return resolve_path(session, spec, self.path, values) == principal.id

    def __repr__(self):
        return f"OwnedBy({self.path!r})"


class EnrolledIn(Predicate):
    """Matches rows whose ``path`` ends at a classroom the principal is enrolled in."""

    def __init__(self, path: str):
        self.path = path

    @staticmethod
    def _enrolled_classrooms(principal):
        return select(ClassroomEnrollment.classroom_id).where(ClassroomEnrollment.user_id == principal.id)

    def clause(self, spec, principal):
        enrolled = self._enrolled_classrooms(principal)
        return path_clause(spec, self.path, lambda column: column.in_(enrolled))

    def evaluate(self, session, spec, principal, values):
        classroom_id = resolve_path(session, spec, self.path, values)
        if classroom_id is None:
            return False
        enrollment = session.query(ClassroomEnrollment).filter(
            ClassroomEnrollment.classroom_id == classroom_id,
            ClassroomEnrollment.user_id == principal.id,
        ).first()
        return enrollment is not None

    def __repr__(self):
        return f"EnrolledIn({self.path!r})"


class FieldIn(Predicate):
    """Matches rows whose ``column`` holds one of ``values``."""

    def __init__(self, column: str, *values):
        self.column = column
        self.values: FrozenSet = frozenset(values)

    def clause(self, spec, principal):
        column = spec.column(self.column)
        listed = column.in_(sorted((v for v in self.values if v is not None), key=str))
        if None in self.values:
            # IN (NULL) never matches
            return or_(column.is_(None), listed)
        return listed

    def evaluate(self, session, spec, principal, values):
        return values.get(self.column) in self.values

    def __repr__(self):
        shown = ", ".join(sorted(getattr(v, "value", str(v)) for v in self.values))
        return f"FieldIn({self.column!r}, {shown})"


class AllOf(Predicate):
    """Conjunction of predicates."""

    def __init__(self, *predicates: Predicate):
        self.predicates = predicates

    def clause(self, spec, principal):
        return and_(*(p.clause(spec, principal) for p in self.predicates))

    def evaluate(self, session, spec, principal, values):
        return all(p.evaluate(session, spec, principal, values) for p in self.predicates)

    def __repr__(self):
        return f"AllOf({', '.join(repr(p) for p in self.predicates)})"
