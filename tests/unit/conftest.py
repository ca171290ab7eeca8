"""
Shared fixtures for unit tests
In-memory call store and canned call/job rows
"""
import copy
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Set test environment variables before importing app modules
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-twilio-token")

from app.domain.interfaces.call_store import CallStore  # noqa: E402


WORKSPACE_ID = "ws-1"
OTHER_WORKSPACE_ID = "ws-2"


class InMemoryCallStore(CallStore):
    """CallStore over plain dicts; records every update for assertions"""

    def __init__(self):
        self.calls: Dict[str, Dict[str, Any]] = {}
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.quotes: Dict[str, Dict[str, Any]] = {}
        self.customers: Dict[str, Dict[str, Any]] = {}
        self.workspaces: Dict[str, Dict[str, Any]] = {}
        self.updates: List[Tuple[str, str, Dict[str, Any]]] = []
        self.inserts: List[Dict[str, Any]] = []

    def get_call(self, call_id: str) -> Optional[Dict[str, Any]]:
        row = self.calls.get(call_id)
        return copy.deepcopy(row) if row else None

    def find_call_by_provider_sid(self, call_sid: str) -> Optional[Dict[str, Any]]:
        for row in self.calls.values():
            if row.get("twilio_call_sid") == call_sid:
                return copy.deepcopy(row)
        return None

    def insert_call(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        self.inserts.append(dict(fields))
        row = dict(fields, id=f"call-new-{len(self.inserts)}")
        self.calls[row["id"]] = row
        return copy.deepcopy(row)

    def update_call(self, call_id: str, workspace_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.updates.append((call_id, workspace_id, dict(fields)))
        row = self.calls.get(call_id)
        if row is None or row.get("workspace_id") != workspace_id:
            return None
        row.update(fields)
        return copy.deepcopy(row)

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        row = self.jobs.get(job_id)
        return copy.deepcopy(row) if row else None

    def get_quote(self, quote_id: str) -> Optional[Dict[str, Any]]:
        row = self.quotes.get(quote_id)
        return copy.deepcopy(row) if row else None

    def get_customer(self, customer_id: str) -> Optional[Dict[str, Any]]:
        row = self.customers.get(customer_id)
        return copy.deepcopy(row) if row else None

    def find_customer_by_phone(self, workspace_id: str, phone: str) -> Optional[Dict[str, Any]]:
        for row in self.customers.values():
            if row.get("workspace_id") == workspace_id and row.get("phone") == phone:
                return copy.deepcopy(row)
        return None

    def find_workspace_by_phone_number(self, phone: str) -> Optional[Dict[str, Any]]:
        for workspace in self.workspaces.values():
            if workspace.get("twilio_phone_number") == phone:
                return {"workspace_id": workspace["id"], "owner_id": workspace.get("owner_id")}
        return None


def make_call(**overrides) -> Dict[str, Any]:
    row = {
        "id": "call-9",
        "workspace_id": WORKSPACE_ID,
        "twilio_call_sid": None,
        "job_id": "job-1",
        "customer_id": "cust-1",
        "direction": "outbound",
        "twilio_status": "queued",
        "twilio_recording_sid": None,
        "twilio_recording_url": None,
        "twilio_recording_duration_seconds": None,
        "summary": None,
        "transcript": None,
        "ai_summary": None,
        "outcome": None,
        "reached_customer": None,
        "outcome_code": None,
        "outcome_notes": None,
        "outcome_recorded_at": None,
        "created_at": "2026-03-01T10:00:00+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def store():
    store = InMemoryCallStore()
    store.calls["call-9"] = make_call()
    store.jobs["job-1"] = {
        "id": "job-1",
        "workspace_id": WORKSPACE_ID,
        "title": "Leaking kitchen faucet",
        "description": "Drip under the sink, cabinet floor is wet.",
        "status": "open",
    }
    store.quotes["quote-1"] = {
        "id": "quote-1",
        "workspace_id": WORKSPACE_ID,
        "status": "sent",
        "total": 240,
        "line_items": [
            {"description": "Replace cartridge", "quantity": 1, "unit_price": 90, "line_total": 90},
        ],
    }
    store.jobs["job-1"]["customer_id"] = "cust-1"
    store.customers["cust-1"] = {
        "id": "cust-1",
        "workspace_id": WORKSPACE_ID,
        "name": "Dana Smith",
        "phone": "+15550100",
    }
    store.workspaces[WORKSPACE_ID] = {
        "id": WORKSPACE_ID,
        "owner_id": "owner-1",
        "twilio_phone_number": "+15550199",
    }
    return store
