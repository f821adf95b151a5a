"""
Row access rules for the founders table.

These predicates are the same ones the database enforces through RLS (see
migrations/001_founders.sql). The service evaluates them before a round trip
so a request the store would reject fails fast with PolicyDeniedError
instead of an empty result.
"""
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional

from app.core.errors import PolicyDeniedError
from app.modules.founders.models import DISCOVERABILITY_COLUMN


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def is_owner(actor_id: Optional[str], row: Mapping[str, Any]) -> bool:
    return actor_id is not None and str(row.get("id")) == str(actor_id)


def is_allowed(operation: Operation, actor_id: Optional[str], row: Mapping[str, Any]) -> bool:
    """Evaluate one rule for one row. Anonymous actors are always denied."""
    if actor_id is None:
        return False
    if operation == Operation.SELECT:
        return is_owner(actor_id, row) or bool(row.get(DISCOVERABILITY_COLUMN))
    # insert: the row being inserted must carry the actor's id
    # update/delete: only the owner
    return is_owner(actor_id, row)


def visible_rows(actor_id: Optional[str], rows: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    return [row for row in rows if is_allowed(Operation.SELECT, actor_id, row)]


def require_authenticated(actor_id: Optional[str], operation: Operation) -> str:
    if actor_id is None:
        raise PolicyDeniedError(
            f"Anonymous callers may not {operation.value} founder profiles",
            operation=operation.value,
        )
    return actor_id


def authorize(operation: Operation, actor_id: Optional[str], row: Mapping[str, Any]) -> None:
    """Raise PolicyDeniedError unless `actor_id` may perform `operation` on `row`."""
    require_authenticated(actor_id, operation)
    if not is_allowed(operation, actor_id, row):
        raise PolicyDeniedError(
            f"Identity {actor_id} may not {operation.value} founder profile {row.get('id')}",
            operation=operation.value,
        )
