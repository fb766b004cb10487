"""Relation catalog: relations, their foreign keys, and ownership paths.

Ownership is expressed as a dotted path over foreign-key aliases, e.g.
``assignment.classroom.teacher_id`` on ``progress``. A path compiles to a
SQL clause (nested ``IN (SELECT ...)`` sub-queries) for bulk filtering, and
resolves against a single candidate row for insert and check evaluation.
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Type

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..exceptions import MalformedRequestError, UnknownColumnError, UnknownRelationError
from ..models import User, Classroom, ClassroomEnrollment, Assignment, Progress
from .. import schemas


@dataclass(frozen=True)
class ForeignKey:
    """A foreign key exposed under an alias (``progress.assignment``)."""
    column: str
    target: str
    target_column: str = "id"


@dataclass(frozen=True)
class RelationSpec:
    name: str
    model: Type
    insert_schema: Type[BaseModel]
    update_schema: Type[BaseModel]
    primary_key: str = "id"
    foreign_keys: Mapping[str, ForeignKey] = field(default_factory=dict)

    @property
    def columns(self):
        return [c.key for c in self.model.__table__.columns]

    def column(self, name: str):
        """Return the mapped column attribute for ``name``."""
        if name not in self.model.__table__.columns:
            raise UnknownColumnError(self.name, name)
        return getattr(self.model, name)

    def foreign_key(self, alias: str) -> ForeignKey:
        try:
            return self.foreign_keys[alias]
        except KeyError:
            raise UnknownColumnError(self.name, alias) from None


CATALOG: Dict[str, RelationSpec] = {
    "users": RelationSpec(
        name="users",
        model=User,
        insert_schema=schemas.UserInsert,
        update_schema=schemas.UserUpdate,
    ),
    "classrooms": RelationSpec(
        name="classrooms",
        model=Classroom,
        insert_schema=schemas.ClassroomInsert,
        update_schema=schemas.ClassroomUpdate,
        foreign_keys={"teacher": ForeignKey("teacher_id", "users")},
    ),
    "classroom_enrollments": RelationSpec(
        name="classroom_enrollments",
        model=ClassroomEnrollment,
        insert_schema=schemas.EnrollmentInsert,
        update_schema=schemas.EnrollmentUpdate,
        foreign_keys={
            "classroom": ForeignKey("classroom_id", "classrooms"),
            "user": ForeignKey("user_id", "users"),
        },
    ),
    "assignments": RelationSpec(
        name="assignments",
        model=Assignment,
        insert_schema=schemas.AssignmentInsert,
        update_schema=schemas.AssignmentUpdate,
        foreign_keys={"classroom": ForeignKey("classroom_id", "classrooms")},
    ),
    "progress": RelationSpec(
        name="progress",
        model=Progress,
        insert_schema=schemas.ProgressInsert,
        update_schema=schemas.ProgressUpdate,
        foreign_keys={
            "user": ForeignKey("user_id", "users"),
            "assignment": ForeignKey("assignment_id", "assignments"),
        },
    ),
}


def get_relation(name: str) -> RelationSpec:
    """Look up a relation by name."""
    try:
        return CATALOG[name]
    except (KeyError, TypeError):
        raise UnknownRelationError(str(name)) from None


def coerce_value(column, value):
    """Convert caller-supplied strings into the column's enum type."""
    enum_class = getattr(column.type, "enum_class", None)
    if enum_class is None or value is None or isinstance(value, enum_class):
        return value
    try:
        return enum_class(value)
    except ValueError:
        raise MalformedRequestError(f"Invalid value {value!r} for column '{column.key}'") from None


def path_clause(spec: RelationSpec, path: str, condition: Callable):
    """Compile ``path`` into a clause; ``condition`` builds the terminal comparison."""
    head, _, rest = path.partition(".")
    if not rest:
        return condition(spec.column(head))
    fk = spec.foreign_key(head)
    target = get_relation(fk.target)
    subquery = select(target.column(fk.target_column)).where(path_clause(target, rest, condition))
    return spec.column(fk.column).in_(subquery)


def filter_clause(spec: RelationSpec, key: str, value):
    """Clause for one caller filter entry; collections mean IN, None means IS NULL."""
    def condition(column):
        if isinstance(value, (list, tuple, set, frozenset)):
            return column.in_([coerce_value(column, v) for v in value])
        if value is None:
            return column.is_(None)
        return column == coerce_value(column, value)
    return path_clause(spec, key, condition)


def resolve_path(session: Session, spec: RelationSpec, path: str, values: Mapping[str, Any]) -> Optional[Any]:
    """Follow ``path`` from a candidate row, returning the terminal value or None."""
    head, _, rest = path.partition(".")
    if not rest:
        spec.column(head)
        return values.get(head)
    fk = spec.foreign_key(head)
    key = values.get(fk.column)
    if key is None:
        return None
    target = get_relation(fk.target)
    related = session.query(target.model).filter(target.column(fk.target_column) == key).one_or_none()
    if related is None:
        return None
    return resolve_path(session, target, rest, row_values(related))


def row_values(obj) -> Dict[str, Any]:
    """Raw column values of an ORM object."""
    return {c.key: getattr(obj, c.key) for c in obj.__table__.columns}


def serialize_row(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Caller-facing copy of a row: enums become their string values."""
    return {
        key: value.value if isinstance(value, enum.Enum) else value
        for key, value in values.items()
    }
