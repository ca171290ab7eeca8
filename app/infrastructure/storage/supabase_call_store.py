"""
Supabase Call Store
Call record adapter over the Supabase `calls`, `jobs`, `quotes`, `customers`
and `workspaces` tables
"""
import logging
from typing import Any, Dict, Optional

from supabase import Client

from app.domain.interfaces.call_store import CallStore
from app.utils.tenant_filter import apply_workspace_filter

logger = logging.getLogger(__name__)


class SupabaseCallStore(CallStore):
    """CallStore backed by a Supabase client"""

    CALLS_TABLE = "calls"
    JOBS_TABLE = "jobs"
    QUOTES_TABLE = "quotes"
    CUSTOMERS_TABLE = "customers"
    WORKSPACES_TABLE = "workspaces"

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _first(self, table: str, column: str, value: str) -> Optional[Dict[str, Any]]:
        response = (
            self.supabase.table(table)
            .select("*")
            .eq(column, value)
            .limit(1)
            .execute()
        )
        if response.data:
            return response.data[0]
        return None

    def get_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        return self._first(self.CALLS_TABLE, "id", call_id)

    def find_call_by_provider_sid(self, call_sid: str) -> Optional[Dict[str, Any]]:
        return self._first(self.CALLS_TABLE, "twilio_call_sid", call_sid)

    def insert_call(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        if not fields.get("workspace_id"):
            raise ValueError("workspace_id is required to create a call")
        response = self.supabase.table(self.CALLS_TABLE).insert(fields).execute()
        if not response.data:
            raise RuntimeError("Call insert returned no row")
        return response.data[0]

    def update_call(
        self,
        call_id: str,
        workspace_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(self.CALLS_TABLE).update(fields).eq("id", call_id)
        response = apply_workspace_filter(query, workspace_id).execute()

        if not response.data:
            logger.warning(
                f"[calls-store] update matched no rows call_id={call_id} "
                f"workspace_id={workspace_id}"
            )
            return None
        return response.data[0]

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        return self._first(self.JOBS_TABLE, "id", job_id)

    def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        return self._first(self.QUOTES_TABLE, "id", quote_id)

    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        return self._first(self.CUSTOMERS_TABLE, "id", customer_id)

    def find_customer_by_phone(self, workspace_id: str, phone: str) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(self.CUSTOMERS_TABLE).select("*").eq("phone", phone)
        response = apply_workspace_filter(query, workspace_id).limit(1).execute()
        if response.data:
            return response.data[0]
        return None

    def find_workspace_by_phone_number(self, phone: str) -> Optional[Dict[str, Any]]:
        row = self._first(self.WORKSPACES_TABLE, "twilio_phone_number", phone)
        if row is None:
            return None
        return {"workspace_id": row["id"], "owner_id": row.get("owner_id")}
