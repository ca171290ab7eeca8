"""
Unit Tests for Core Modules
Configuration, startup validation, tenant middleware and tenant filtering
"""
import os
from unittest.mock import MagicMock, patch

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from app.core.config import ConfigManager, Settings, get_llm_provider_settings
from app.core.tenant_middleware import TenantMiddleware, decode_workspace_id, get_current_workspace
from app.core.validation import ProviderValidator, validate_providers_on_startup
from app.domain.models.askbob import EntityKind
from app.utils.tenant_filter import (
    TenantMismatchError,
    apply_workspace_filter,
    load_for_workspace,
)
from conftest import OTHER_WORKSPACE_ID, WORKSPACE_ID

REQUIRED_ENV = {
    "TWILIO_AUTH_TOKEN": "token",
    "GROQ_API_KEY": "gsk_test",
    "SUPABASE_URL": "https://test.supabase.co",
    "SUPABASE_SERVICE_KEY": "service",
    "PUBLIC_BASE_URL": "https://calls.example.com",
}


class TestConfigManager:
    """Tests for YAML provider configuration"""

    def test_active_llm_provider(self):
        config = ConfigManager(env="test")

        assert config.get("providers.llm.active") == "groq"
        assert config.get("providers.llm.groq.model") == "llama-3.3-70b-versatile"

    def test_missing_key_returns_default(self):
        assert ConfigManager(env="test").get("providers.nothing.here", "fallback") == "fallback"

    def test_env_placeholder_substituted(self):
        with patch.dict(os.environ, {"GROQ_API_KEY": "gsk_from_env"}):
            config = ConfigManager(env="test")

        assert config.get_provider_config("llm")["api_key"] == "gsk_from_env"

    def test_settings_override_yaml(self):
        settings = Settings(groq_api_key="gsk_settings", askbob_model="openai/gpt-oss-120b")

        name, config = get_llm_provider_settings(settings)

        assert name == "groq"
        assert config["api_key"] == "gsk_settings"
        assert config["model"] == "openai/gpt-oss-120b"
        assert "timeout_seconds" in config


class TestProviderValidator:
    """Tests for startup validation"""

    def test_all_required_present(self):
        with patch.dict(os.environ, REQUIRED_ENV):
            all_valid, results = ProviderValidator().validate_all()

        assert all_valid is True
        assert {r.setting for r in results} >= set(REQUIRED_ENV)

    def test_malformed_url_is_error(self):
        env = dict(REQUIRED_ENV, SUPABASE_URL="test.supabase.co")
        with patch.dict(os.environ, env):
            all_valid, results = ProviderValidator().validate_all()

        assert all_valid is False
        assert [r.setting for r in results if not r.is_valid] == ["SUPABASE_URL"]

    def test_strict_mode_fails_on_missing_optional(self):
        env = dict(REQUIRED_ENV, PUBLIC_BASE_URL="")
        with patch.dict(os.environ, env):
            lenient_valid, _ = ProviderValidator().validate_all()
            strict_valid, _ = ProviderValidator(strict=True).validate_all()

        assert lenient_valid is True
        assert strict_valid is False

    def test_missing_twilio_token_is_error(self):
        env = dict(REQUIRED_ENV, TWILIO_AUTH_TOKEN="")
        with patch.dict(os.environ, env):
            all_valid, results = ProviderValidator().validate_all()

        assert all_valid is False
        failed = [r for r in results if not r.is_valid]
        assert [r.setting for r in failed] == ["TWILIO_AUTH_TOKEN"]

    def test_startup_raises_with_summary(self):
        env = dict(REQUIRED_ENV, GROQ_API_KEY="")
        with patch.dict(os.environ, env):
            with pytest.raises(RuntimeError, match="GROQ_API_KEY"):
                validate_providers_on_startup()


class TestTenantMiddleware:
    """Tests for workspace extraction from bearer tokens"""

    def _app(self):
        app = FastAPI()
        app.add_middleware(TenantMiddleware)

        @app.get("/api/v1/whoami")
        async def whoami(request: Request):
            return {"workspace_id": get_current_workspace(request)}

        return app

    def test_decode_with_secret(self):
        token = jwt.encode({"workspace_id": WORKSPACE_ID}, "secret-1234567890-secret-1234567890", algorithm="HS256")

        assert decode_workspace_id(token, "secret-1234567890-secret-1234567890") == WORKSPACE_ID

    def test_decode_rejects_wrong_secret(self):
        token = jwt.encode({"workspace_id": WORKSPACE_ID}, "secret-1234567890-secret-1234567890", algorithm="HS256")

        with pytest.raises(jwt.InvalidTokenError):
            decode_workspace_id(token, "another-secret-0987654321-another")

    def test_decode_user_metadata_claim(self):
        token = jwt.encode({"user_metadata": {"workspace_id": WORKSPACE_ID}}, "k" * 32, algorithm="HS256")

        assert decode_workspace_id(token, None) == WORKSPACE_ID

    def test_request_state_populated(self):
        token = jwt.encode({"workspace_id": WORKSPACE_ID}, "k" * 32, algorithm="HS256")
        with patch("app.core.tenant_middleware.get_settings", return_value=Settings(supabase_jwt_secret=None)):
            response = TestClient(self._app()).get(
                "/api/v1/whoami", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.json() == {"workspace_id": WORKSPACE_ID}

    def test_invalid_token_leaves_workspace_empty(self):
        with patch("app.core.tenant_middleware.get_settings", return_value=Settings(supabase_jwt_secret="s" * 32)):
            response = TestClient(self._app()).get(
                "/api/v1/whoami", headers={"Authorization": "Bearer not-a-jwt"}
            )

        assert response.json() == {"workspace_id": None}


class TestTenantFilter:
    """Tests for the single load-and-verify primitive"""

    def test_apply_workspace_filter(self):
        query = MagicMock()

        apply_workspace_filter(query, WORKSPACE_ID)

        query.eq.assert_called_once_with("workspace_id", WORKSPACE_ID)

    def test_apply_workspace_filter_requires_workspace(self):
        with pytest.raises(ValueError):
            apply_workspace_filter(MagicMock(), None)

    def test_load_same_workspace(self, store):
        row = load_for_workspace(store, EntityKind.JOB, "job-1", WORKSPACE_ID)

        assert row["id"] == "job-1"

    def test_load_other_workspace_raises(self, store):
        with pytest.raises(TenantMismatchError) as exc_info:
            load_for_workspace(store, EntityKind.QUOTE, "quote-1", OTHER_WORKSPACE_ID)

        assert exc_info.value.kind == "quote"

    def test_load_missing_returns_none(self, store):
        assert load_for_workspace(store, EntityKind.CALL, "missing", WORKSPACE_ID) is None
        assert load_for_workspace(store, EntityKind.CUSTOMER, None, WORKSPACE_ID) is None
