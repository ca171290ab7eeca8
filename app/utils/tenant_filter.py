"""
Tenant Filter Utility
Single place where workspace ownership is applied to queries and verified on loaded records
"""
from typing import Any, Dict, Optional

from app.domain.interfaces.call_store import CallStore
from app.domain.models.askbob import EntityKind


class TenantMismatchError(Exception):
    """Raised when a record belongs to a different workspace than the caller"""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} does not belong to this workspace")


def apply_workspace_filter(query: Any, workspace_id: Optional[str], column: str = "workspace_id") -> Any:
    """
    Apply workspace filtering to a Supabase query.

    Args:
        query: Supabase query builder object
        workspace_id: Workspace the caller is acting in
        column: Name of the workspace column (default: "workspace_id")

    Returns:
        Modified query with the workspace filter applied

    Raises:
        ValueError: If workspace_id is empty (writes are never unscoped)
    """
    if not workspace_id:
        raise ValueError("workspace_id is required to scope a query")
    return query.eq(column, workspace_id)


def verify_workspace(record: Dict[str, Any], workspace_id: str, kind: EntityKind) -> Dict[str, Any]:
    """Return the record if it belongs to the workspace, else raise TenantMismatchError"""
    if record.get("workspace_id") != workspace_id:
        raise TenantMismatchError(kind.value, str(record.get("id")))
    return record


def load_for_workspace(
    store: CallStore,
    kind: EntityKind,
    record_id: Optional[str],
    workspace_id: str,
) -> Optional[Dict[str, Any]]:
    """
    Load a record and verify it belongs to the workspace.

    Every webhook handler and every AskBob task goes through this function,
    so tenant ownership is checked in exactly one place.

    Args:
        store: Call store adapter
        kind: Entity kind to load
        record_id: Record id (None behaves like a missing record)
        workspace_id: Workspace the caller is acting in

    Returns:
        The record dict, or None if it does not exist

    Raises:
        TenantMismatchError: If the record exists in another workspace
    """
    if not record_id:
        return None

    loaders = {
        EntityKind.CALL: store.get_call,
        EntityKind.JOB: store.get_job,
        EntityKind.QUOTE: store.get_quote,
        EntityKind.CUSTOMER: store.get_customer,
    }
    record = loaders[kind](record_id)
    if record is None:
        return None

    return verify_workspace(record, workspace_id, kind)
