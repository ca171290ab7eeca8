"""
Tests for Call Session Endpoints
"""
import pytest
from fastapi.testclient import TestClient

from app.api.v1.dependencies import CurrentUser, get_call_record_service, get_current_user
from app.domain.services.call_outcomes import OutcomeSchemaSentinel
from app.main import app
from app.services.call_assist_service import CallAssistService
from conftest import OTHER_WORKSPACE_ID, WORKSPACE_ID

USER = CurrentUser(id="user-1", email="bob@example.com", workspace_id=WORKSPACE_ID)
LINK_PATH = "/api/v1/calls/call-9/link"


@pytest.fixture
def client(store):
    store.calls["call-9"].update(direction="inbound", customer_id=None, job_id=None)
    app.dependency_overrides[get_current_user] = lambda: USER
    app.dependency_overrides[get_call_record_service] = lambda: CallAssistService(
        store, None, OutcomeSchemaSentinel()
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestLinkInboundCall:
    """Tests for POST /calls/{call_id}/link"""

    def test_links_call(self, client, store):
        response = client.post(LINK_PATH, json={"customer_id": "cust-1", "job_id": "job-1"})

        assert response.status_code == 200
        assert response.json()["link"] == {
            "call_id": "call-9",
            "customer_id": "cust-1",
            "job_id": "job-1",
            "direction": "inbound",
        }
        assert store.calls["call-9"]["customer_id"] == "cust-1"

    def test_other_workspace_in_body_is_forbidden(self, client, store):
        response = client.post(LINK_PATH, json={"workspace_id": OTHER_WORKSPACE_ID, "customer_id": "cust-1"})

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "forbidden_tenant_mismatch"
        assert store.updates == []

    def test_outbound_call_is_conflict(self, client, store):
        store.calls["call-9"]["direction"] = "outbound"

        response = client.post(LINK_PATH, json={"customer_id": "cust-1"})

        assert response.status_code == 409
        assert response.json()["detail"]["message"] == "not_inbound"

    def test_job_customer_mismatch(self, client, store):
        store.jobs["job-1"]["customer_id"] = "cust-2"

        response = client.post(LINK_PATH, json={"customer_id": "cust-1", "job_id": "job-1"})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_input"

    def test_unknown_customer(self, client):
        response = client.post(LINK_PATH, json={"customer_id": "cust-404"})

        assert response.status_code == 404

    def test_customer_required(self, client):
        response = client.post(LINK_PATH, json={"job_id": "job-1"})

        assert response.status_code == 422
