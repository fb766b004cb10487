"""Helper predicates callable directly or by name through the gateway."""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from ..exceptions import MalformedRequestError, UnknownHelperError
from ..models import Classroom, UserRole
from .identity import Principal


def is_teacher(principal: Optional[Principal]) -> bool:
    return principal is not None and principal.role is UserRole.teacher


def is_admin(principal: Optional[Principal]) -> bool:
    return principal is not None and principal.role is UserRole.admin


def owns_student_record(principal: Optional[Principal], user_id: str) -> bool:
    """True iff the record keyed by ``user_id`` is the principal's own."""
    return principal is not None and user_id is not None and principal.id == user_id


def validate_student_access(principal: Optional[Principal], target_user_id: str) -> bool:
    return owns_student_record(principal, target_user_id)


def owns_classroom(session: Session, principal: Optional[Principal], classroom_id: str) -> bool:
    """True iff the principal is the teacher recorded on the classroom."""
    if principal is None or classroom_id is None:
        return False
    teacher_id = session.query(Classroom.teacher_id).filter(Classroom.id == classroom_id).scalar()
    return teacher_id is not None and teacher_id == principal.id


@dataclass(frozen=True)
class Helper:
    func: Callable
    params: Tuple[str, ...] = ()
    needs_session: bool = False


HELPERS: Dict[str, Helper] = {
    "is_teacher": Helper(is_teacher),
    "is_admin": Helper(is_admin),
    "owns_student_record": Helper(owns_student_record, params=("user_id",)),
    "validate_student_access": Helper(validate_student_access, params=("target_user_id",)),
    "owns_classroom": Helper(owns_classroom, params=("classroom_id",), needs_session=True),
}


def call_helper(session: Session, principal: Optional[Principal], name: str,
                args: Optional[Mapping[str, Any]] = None):
    """Invoke a registered helper by name with keyword arguments."""
    helper = HELPERS.get(name)
    if helper is None:
        raise UnknownHelperError(str(name))
    args = dict(args or {})
    if set(args) != set(helper.params):
        expected = ", ".join(helper.params) or "no arguments"
        raise MalformedRequestError(f"Helper '{name}' takes {expected}; got {sorted(args)}")
    if helper.needs_session:
        return helper.func(session, principal, **args)
    return helper.func(principal, **args)
