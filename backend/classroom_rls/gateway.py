"""Query gateway: the only path from application code to storage.

Every call opens its own session and asks the policy engine afresh; nothing
about a principal is cached between calls. Denied reads come back empty and
denied writes affect zero rows, so callers cannot tell "unauthorized" apart
from "does not exist".
"""
import logging
from datetime import datetime, UTC
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import ValidationError
from pymongo.errors import PyMongoError
from sqlalchemy.orm import Session

from .database import Database
from .documents import COLLECTIONS, DocumentStore
from .exceptions import InvalidPayloadError, MalformedRequestError, UnknownOperationError
from .models import ProgressStatus
from .security.catalog import RelationSpec, filter_clause, get_relation, row_values, serialize_row
from .security.helpers import call_helper
from .security.identity import IdentityContext, Principal
from .security.policy import Operation, PolicyEngine, parse_operation

logger = logging.getLogger(__name__)

# Status transition -> timestamp column stamped in the same UPDATE
_STATUS_STAMPS = {
    ProgressStatus.submitted: "submitted_at",
    ProgressStatus.graded: "graded_at",
}


def _embed_tree(paths: Iterable[str]) -> Dict[str, dict]:
    tree: Dict[str, dict] = {}
    for path in paths:
        node = tree
        for part in path.split("."):
            node = node.setdefault(part, {})
    return tree


class QueryGateway:
    """Policy-enforcing read/write/call interface over the relational store."""

    def __init__(self, database: Database, policy: PolicyEngine = None,
                 documents: Optional[DocumentStore] = None, identity: IdentityContext = None):
        self.database = database
        self.policy = policy or PolicyEngine()
        self.documents = documents
        self.identity = identity or IdentityContext(database)

    def resolve(self, token: Optional[str]) -> Optional[Principal]:
        """Resolve a bearer token through the identity context."""
        return self.identity.resolve(token)

    # reads

    def read(self, principal: Optional[Principal], relation: str, filter: Optional[Mapping[str, Any]] = None,
             *, embed: Sequence[str] = (), order_by: Optional[str] = None, descending: bool = False,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Rows of ``relation`` matching ``filter`` that ``principal`` may see."""
        spec = get_relation(relation)
        if isinstance(embed, str):
            embed = (embed,)
        with self.database.session() as session:
            objects = self._select(session, principal, spec, filter, Operation.read,
                                   order_by=order_by, descending=descending, limit=limit)
            rows = [serialize_row(row_values(obj)) for obj in objects]
            if embed and rows:
                self._embed(session, principal, spec, rows, _embed_tree(embed))
        return rows

    def _caller_clauses(self, spec: RelationSpec, filter: Optional[Mapping[str, Any]]):
        if filter is None:
            return []
        if not isinstance(filter, Mapping):
            raise MalformedRequestError(f"Filter for '{spec.name}' must be a mapping of column to value")
        return [filter_clause(spec, key, value) for key, value in filter.items()]

    def _select(self, session: Session, principal: Optional[Principal], spec: RelationSpec,
                filter: Optional[Mapping[str, Any]], operation: Operation, *, columns=None,
                order_by: Optional[str] = None, descending: bool = False, limit: Optional[int] = None,
                for_update: bool = False):
        # The caller's filter never replaces the policy filter, it is intersected with it
        query = session.query(spec.model).filter(*self._caller_clauses(spec, filter))
        query = query.filter(self.policy.row_filter(principal, spec.name, operation, columns))
        if order_by is not None:
            column = spec.column(order_by)
            query = query.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            query = query.limit(limit)
        if for_update:
            query = query.with_for_update()
        return query.all()

    def _embed(self, session: Session, principal: Optional[Principal], spec: RelationSpec,
               rows: List[Dict[str, Any]], tree: Dict[str, dict]):
        """Attach related rows by foreign-key alias; rows the principal cannot see become None."""
        for alias, subtree in tree.items():
            fk = spec.foreign_key(alias)
            target = get_relation(fk.target)
            keys = sorted({row[fk.column] for row in rows if row.get(fk.column) is not None})
            related = []
            if keys:
                objects = self._select(session, principal, target, {fk.target_column: keys}, Operation.read)
                related = [serialize_row(row_values(obj)) for obj in objects]
                if subtree and related:
                    self._embed(session, principal, target, related, subtree)
            index = {row[fk.target_column]: row for row in related}
            for row in rows:
                row[alias] = index.get(row.get(fk.column))

    # writes

    def write(self, principal: Optional[Principal], relation: str, operation, target=None,
              patch: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """Insert, update or delete rows; returns the rows actually affected.

        ``insert`` takes the new row (or a list of rows) as ``target``;
        ``update`` and ``delete`` take a filter. Rows the principal may not
        touch are left out of the affected set without raising.
        """
        spec = get_relation(relation)
        operation = parse_operation(operation)
        if operation is Operation.read:
            raise UnknownOperationError(operation.value, "read is not a write operation; use read()")

        with self.database.session() as session:
            if operation is Operation.insert:
                affected = self._insert(session, principal, spec, target)
            elif operation is Operation.update:
                affected = self._update(session, principal, spec, target, patch)
            else:
                affected = self._delete(session, principal, spec, target)

        logger.debug(f"{operation.value} on {spec.name} affected {len(affected)} row(s)")
        self._record(principal, spec, operation, affected)
        return affected

    def _validate(self, spec: RelationSpec, schema, payload, **dump_options) -> Dict[str, Any]:
        if not isinstance(payload, Mapping):
            raise InvalidPayloadError(spec.name, message=f"Payload for '{spec.name}' must be a mapping")
        try:
            model = schema.model_validate(dict(payload))
        except ValidationError as e:
            raise InvalidPayloadError(spec.name, e.errors()) from e
        return model.model_dump(**dump_options)

    def _insert(self, session: Session, principal: Optional[Principal], spec: RelationSpec, target):
        rows = target if isinstance(target, (list, tuple)) else [target]
        candidates = [self._validate(spec, spec.insert_schema, row, exclude_none=True) for row in rows]

        created = []
        for values in candidates:
            if not self.policy.permits(session, principal, spec.name, Operation.insert, values):
                logger.debug(f"Insert into {spec.name} excluded by policy")
                continue
            self.policy.validate_row(session, spec.name, values)
            obj = spec.model(**values)
            session.add(obj)
            created.append(obj)

        if not created:
            return []
        session.flush()
        for obj in created:
            session.refresh(obj)
        return [serialize_row(row_values(obj)) for obj in created]

    @staticmethod
    def _stamp_column(spec: RelationSpec, changes: Dict[str, Any]) -> Optional[str]:
        """Timestamp column to stamp for the status this patch moves to, if any."""
        if "status" not in spec.columns:
            return None
        column = _STATUS_STAMPS.get(changes.get("status"))
        if column is None or column in changes:
            return None
        return column

    def _update(self, session: Session, principal: Optional[Principal], spec: RelationSpec,
                filter, patch):
        changes = self._validate(spec, spec.update_schema, patch, exclude_unset=True)
        if not changes:
            raise InvalidPayloadError(spec.name, message=f"Update patch for '{spec.name}' is empty")
        columns = frozenset(changes)
        stamp_column = self._stamp_column(spec, changes)

        candidates = self._select(session, principal, spec, filter, Operation.update,
                                  columns=columns, for_update=True)
        transitioned, unchanged = [], []
        for obj in candidates:
            old = row_values(obj)
            new = {**old, **changes}
            if not self.policy.authorize_update(session, principal, spec.name, old, new, columns):
                continue
            self.policy.validate_row(session, spec.name, new)
            # Only rows actually entering the new status get a fresh timestamp
            if stamp_column is not None and old["status"] != changes["status"]:
                transitioned.append(old[spec.primary_key])
            else:
                unchanged.append(old[spec.primary_key])

        authorized = transitioned + unchanged
        excluded = len(candidates) - len(authorized)
        if excluded:
            logger.debug(f"Update on {spec.name} excluded {excluded} row(s) failing policy check")
        if not authorized:
            return []

        # At most one statement per change set, inside this transaction
        pk = spec.column(spec.primary_key)
        if transitioned:
            stamped = {**changes, stamp_column: datetime.now(UTC)}
            session.query(spec.model).filter(pk.in_(transitioned)).update(stamped, synchronize_session=False)
        if unchanged:
            session.query(spec.model).filter(pk.in_(unchanged)).update(changes, synchronize_session=False)
        session.expire_all()
        updated = session.query(spec.model).filter(pk.in_(authorized)).all()
        return [serialize_row(row_values(obj)) for obj in updated]

    def _delete(self, session: Session, principal: Optional[Principal], spec: RelationSpec, filter):
        candidates = self._select(session, principal, spec, filter, Operation.delete, for_update=True)
        deleted = [serialize_row(row_values(obj)) for obj in candidates]
        for obj in candidates:
            session.delete(obj)
        session.flush()
        return deleted

    def _record(self, principal: Optional[Principal], spec: RelationSpec, operation: Operation,
                affected: List[Dict[str, Any]]):
        """Best-effort event in the document sideband; never undoes the committed write."""
        if self.documents is None:
            return
        try:
            self.documents.insert_document(COLLECTIONS["LOGS"], {
                "event": "write",
                "relation": spec.name,
                "operation": operation.value,
                "principal_id": principal.id if principal else None,
                "affected": len(affected),
                "row_ids": [row[spec.primary_key] for row in affected],
            })
        except PyMongoError as e:
            logger.warning(f"Could not record {operation.value} on {spec.name} in document store: {e}")

    # helper predicates

    def call(self, principal: Optional[Principal], helper_name: str,
             args: Optional[Mapping[str, Any]] = None):
        """Evaluate a named helper predicate for ``principal``."""
        with self.database.session() as session:
            return call_helper(session, principal, helper_name, args)
