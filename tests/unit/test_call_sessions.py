"""
Unit Tests for Inbound Call Sessions
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from app.domain.services.call_sessions import InboundCallSessions, normalize_phone
from app.utils.tenant_filter import TenantMismatchError
from conftest import OTHER_WORKSPACE_ID, WORKSPACE_ID, make_call

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sessions(store):
    return InboundCallSessions(store, now=lambda: FIXED_NOW)


class TestNormalizePhone:
    @pytest.mark.parametrize("raw,expected", [
        (" +15550100 ", "+15550100"),
        ("", None),
        ("   ", None),
        (None, None),
    ])
    def test_values(self, raw, expected):
        assert normalize_phone(raw) == expected


class TestEnsureInboundCallSession:
    """Tests for creating and reusing inbound sessions"""

    def test_creates_row(self, sessions, store):
        session = sessions.ensure_inbound_call_session(
            WORKSPACE_ID, "owner-1", " CA-in-1 ",
            from_number="+15550100", to_number="+15550199", customer_id="cust-1",
        )

        assert session.is_new is True
        row = store.calls[session.call_id]
        assert row["direction"] == "inbound"
        assert row["twilio_call_sid"] == "CA-in-1"
        assert row["customer_id"] == "cust-1"
        assert row["job_id"] is None
        assert row["started_at"] == FIXED_NOW.isoformat()

    def test_reuses_row_by_sid(self, sessions, store):
        store.calls["call-9"].update(direction="inbound", twilio_call_sid="CA-in-1")

        session = sessions.ensure_inbound_call_session(WORKSPACE_ID, "owner-1", "CA-in-1")

        assert (session.call_id, session.is_new) == ("call-9", False)
        assert store.inserts == []
        assert store.updates == []

    def test_fills_missing_customer_on_reuse(self, sessions, store):
        store.calls["call-9"].update(direction="inbound", twilio_call_sid="CA-in-1", customer_id=None)

        sessions.ensure_inbound_call_session(WORKSPACE_ID, "owner-1", "CA-in-1", customer_id="cust-1")

        assert store.calls["call-9"]["customer_id"] == "cust-1"

    def test_existing_customer_kept_on_reuse(self, sessions, store):
        store.calls["call-9"].update(direction="inbound", twilio_call_sid="CA-in-1", customer_id="cust-1")

        sessions.ensure_inbound_call_session(WORKSPACE_ID, "owner-1", "CA-in-1", customer_id="cust-2")

        assert store.calls["call-9"]["customer_id"] == "cust-1"
        assert store.updates == []

    def test_sid_in_other_workspace(self, sessions, store):
        store.calls["call-x"] = make_call(id="call-x", workspace_id=OTHER_WORKSPACE_ID, twilio_call_sid="CA-in-1")

        with pytest.raises(TenantMismatchError):
            sessions.ensure_inbound_call_session(WORKSPACE_ID, "owner-1", "CA-in-1")
        assert store.inserts == []

    def test_blank_sid_rejected(self, sessions, store):
        with pytest.raises(ValueError):
            sessions.ensure_inbound_call_session(WORKSPACE_ID, "owner-1", "  ")
        assert store.inserts == []


class TestLookups:
    """Tests for workspace and customer resolution"""

    def test_resolve_workspace(self, sessions):
        assert sessions.resolve_workspace(" +15550199") == {"workspace_id": WORKSPACE_ID, "owner_id": "owner-1"}
        assert sessions.resolve_workspace("+15550000") is None
        assert sessions.resolve_workspace(None) is None

    def test_match_customer_is_workspace_scoped(self, sessions, store):
        assert sessions.match_customer(WORKSPACE_ID, "+15550100") == "cust-1"
        assert sessions.match_customer(OTHER_WORKSPACE_ID, "+15550100") is None
        assert sessions.match_customer(WORKSPACE_ID, None) is None

    def test_customer_lookup_failure_is_no_match(self):
        store = MagicMock()
        store.find_customer_by_phone.side_effect = RuntimeError("connection reset")

        assert InboundCallSessions(store).match_customer(WORKSPACE_ID, "+15550100") is None
