"""
Tests for AskBob API Endpoints
Authentication and services are replaced through FastAPI dependency overrides
"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from app.api.v1.dependencies import (
    CurrentUser,
    get_askbob_dispatcher,
    get_call_assist_service,
    get_call_record_service,
    get_call_store,
    get_current_user,
    get_supabase,
)
from app.domain.models.completion import CompletionResult
from app.domain.services.askbob_dispatcher import AskBobDispatcher
from app.domain.services.call_outcomes import OutcomeSchemaSentinel
from app.main import app
from app.services.call_assist_service import CallAssistService
from conftest import OTHER_WORKSPACE_ID, WORKSPACE_ID

USER = CurrentUser(id="user-1", email="bob@example.com", workspace_id=WORKSPACE_ID)


def make_provider(payload):
    provider = MagicMock()
    provider.name = "groq"
    provider.complete = AsyncMock(
        return_value=CompletionResult(content=json.dumps(payload), model="llama-3.3-70b-versatile")
    )
    return provider


@pytest.fixture
def provider():
    return make_provider({
        "scriptBody": "Hi, this is Bob.\nWe can come Tuesday.",
        "openingLine": "Hi, this is Bob.",
        "closingLine": "Thanks!",
        "keyPoints": ["Confirm Tuesday"],
    })


@pytest.fixture
def client(store, provider):
    dispatcher = AskBobDispatcher(store, provider)
    app.dependency_overrides[get_current_user] = lambda: USER
    app.dependency_overrides[get_askbob_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_call_assist_service] = lambda: CallAssistService(
        store, dispatcher, OutcomeSchemaSentinel()
    )
    app.dependency_overrides[get_call_record_service] = lambda: CallAssistService(
        store, None, OutcomeSchemaSentinel()
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestTasksEndpoint:
    """Tests for POST /askbob/tasks"""

    def test_runs_task(self, client):
        response = client.post("/api/v1/askbob/tasks", json={
            "job_id": "job-1",
            "task": {"task": "job.call_script", "job_id": "job-1", "call_persona_style": "direct_concise"},
        })

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["task"] == "job.call_script"
        assert body["result"]["opening_line"] == "Hi, this is Bob."
        assert "model_latency_ms" in body["result"]

    def test_other_workspace_is_forbidden(self, client, provider):
        response = client.post("/api/v1/askbob/tasks", json={
            "workspace_id": OTHER_WORKSPACE_ID,
            "task": {"task": "job.call_script", "job_id": "job-1"},
        })

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "forbidden_tenant_mismatch"
        provider.complete.assert_not_called()

    def test_context_job_differs_from_task_job(self, client, provider):
        response = client.post("/api/v1/askbob/tasks", json={
            "job_id": "job-2",
            "task": {"task": "job.call_script", "job_id": "job-1"},
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_input"
        provider.complete.assert_not_called()

    def test_unknown_task_tag_is_rejected(self, client):
        response = client.post("/api/v1/askbob/tasks", json={"task": {"task": "job.unknown"}})

        assert response.status_code == 422

    def test_invalid_model_output_is_bad_gateway(self, store):
        dispatcher = AskBobDispatcher(store, make_provider({"unexpected": True}))
        app.dependency_overrides[get_current_user] = lambda: USER
        app.dependency_overrides[get_askbob_dispatcher] = lambda: dispatcher

        response = TestClient(app).post("/api/v1/askbob/tasks", json={
            "task": {"task": "job.call_script", "job_id": "job-1"},
        })
        app.dependency_overrides.clear()

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "invalid_model_output"


class TestCallEndpoints:
    """Tests for call-bound AskBob routes"""

    def test_script_stores_plan(self, client, store):
        response = client.post("/api/v1/askbob/calls/call-9/script", json={
            "voice": "david",
            "greeting_style": "Friendly",
            "allow_voicemail": True,
        })

        assert response.status_code == 200
        assert "[askbob-speech-plan]" in store.calls["call-9"]["summary"]

    def test_post_enrichment_not_ready(self, client):
        response = client.post("/api/v1/askbob/calls/call-9/post-enrichment", json={})

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "not_ready"

    def test_missing_call_is_not_found(self, client):
        response = client.post("/api/v1/askbob/calls/nope/after-call", json={})

        assert response.status_code == 404

    def test_live_guidance_invalid_mode(self, client, store):
        store.calls["call-9"]["direction"] = "inbound"

        response = client.post("/api/v1/askbob/calls/call-9/live-guidance", json={
            "customer_id": "cust-1",
            "guidance_mode": "sales",
        })

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "invalid_input"

    def test_record_outcome(self, client, store):
        store.calls["call-9"]["twilio_status"] = "completed"

        response = client.post("/api/v1/askbob/calls/call-9/outcome", json={
            "reached_customer": True,
            "outcome_code": "reached_scheduled",
            "notes": "Tuesday 9am",
        })

        assert response.status_code == 200
        assert response.json()["call"]["outcome_code"] == "reached_scheduled"

    def test_record_outcome_on_live_call(self, client):
        response = client.post("/api/v1/askbob/calls/call-9/outcome", json={
            "reached_customer": True,
            "outcome_code": "reached_scheduled",
        })

        assert response.status_code == 409

    def test_readiness(self, client, store):
        store.calls["call-9"]["twilio_status"] = "completed"

        response = client.get("/api/v1/askbob/calls/call-9/readiness")

        assert response.status_code == 200
        body = response.json()
        assert body["post_enrichment"] == {"ready": True, "reasons": []}
        assert body["live_guidance"]["reasons"] == ["not_inbound"]

    def test_requires_authentication(self, store):
        """Without the auth override the bearer token is required"""
        app.dependency_overrides[get_supabase] = lambda: MagicMock()
        app.dependency_overrides[get_call_assist_service] = lambda: MagicMock()
        app.dependency_overrides[get_call_record_service] = lambda: MagicMock()

        response = TestClient(app).get("/api/v1/askbob/calls/call-9/readiness")
        app.dependency_overrides.clear()

        assert response.status_code == 401
        assert response.json()["detail"] == "Authorization header missing"


class TestWithoutCompletionProvider:
    """Routes that never reach the model keep working when AskBob is not configured"""

    @pytest.fixture
    def unconfigured_client(self, store, monkeypatch):
        monkeypatch.setattr(app.state, "llm_provider", None, raising=False)
        app.dependency_overrides[get_current_user] = lambda: USER
        app.dependency_overrides[get_call_store] = lambda: store
        with patch(
            "app.api.v1.dependencies.LLMFactory.create_initialized",
            new=AsyncMock(side_effect=ValueError("Groq API key not found in config or environment")),
        ):
            yield TestClient(app)
        app.dependency_overrides.clear()

    def test_outcome_recorded(self, unconfigured_client, store):
        store.calls["call-9"]["twilio_status"] = "completed"

        response = unconfigured_client.post("/api/v1/askbob/calls/call-9/outcome", json={
            "reached_customer": False,
            "outcome_code": "no_answer_left_voicemail",
        })

        assert response.status_code == 200
        assert store.calls["call-9"]["outcome_code"] == "no_answer_left_voicemail"

    def test_readiness_served(self, unconfigured_client, store):
        store.calls["call-9"]["twilio_status"] = "completed"

        response = unconfigured_client.get("/api/v1/askbob/calls/call-9/readiness")

        assert response.status_code == 200
        assert response.json()["outcome"]["ready"] is True

    def test_model_route_is_unavailable(self, unconfigured_client, store):
        store.calls["call-9"]["twilio_status"] = "completed"

        response = unconfigured_client.post("/api/v1/askbob/calls/call-9/post-enrichment", json={})

        assert response.status_code == 503
