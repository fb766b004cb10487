"""Row-level security package: identity, catalog, predicates and policy."""
from .identity import Principal, IdentityContext
from .catalog import CATALOG, ForeignKey, RelationSpec, get_relation
from .predicates import ALWAYS, AllOf, EnrolledIn, FieldIn, OwnedBy, Predicate
from .policy import Decision, Operation, Policy, PolicyEngine, POLICY_TABLE
from .helpers import (
    HELPERS, call_helper, is_admin, is_teacher, owns_classroom, owns_student_record, validate_student_access,
)

__all__ = [
    'Principal',
    'IdentityContext',
    'CATALOG',
    'ForeignKey',
    'RelationSpec',
    'get_relation',
    'ALWAYS',
    'AllOf',
    'EnrolledIn',
    'FieldIn',
    'OwnedBy',
    'Predicate',
    'Decision',
    'Operation',
    'Policy',
    'PolicyEngine',
    'POLICY_TABLE',
    'HELPERS',
    'call_helper',
    'is_admin',
    'is_teacher',
    'owns_classroom',
    'owns_student_record',
    'validate_student_access',
]
