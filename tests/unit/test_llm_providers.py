"""
Unit Tests for Completion Providers
Groq provider and LLM factory with the Groq client mocked
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.domain.models.completion import Message, MessageRole
from app.infrastructure.llm.factory import LLMFactory
from app.infrastructure.llm.groq import GroqLLMProvider


def _completion(content, model="llama-3.3-70b-versatile"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        model=model,
    )


class TestGroqLLMProvider:
    """Tests for GroqLLMProvider"""

    @pytest.mark.asyncio
    async def test_initialize_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)

        with pytest.raises(ValueError):
            await GroqLLMProvider().initialize({})

    @pytest.mark.asyncio
    async def test_complete_sends_json_mode_request(self):
        provider = GroqLLMProvider()
        with patch("app.infrastructure.llm.groq.AsyncGroq") as mock_groq:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(return_value=_completion('{"body": "hi"}'))
            mock_groq.return_value = client

            await provider.initialize({"api_key": "gsk_test", "model": "openai/gpt-oss-120b"})
            result = await provider.complete(
                [Message(role=MessageRole.USER, content="Draft a message")],
                system_prompt="You are AskBob",
                response_format={"type": "json_object"},
            )

        request = client.chat.completions.create.call_args.kwargs
        assert request["model"] == "openai/gpt-oss-120b"
        assert request["response_format"] == {"type": "json_object"}
        assert request["messages"][0] == {"role": "system", "content": "You are AskBob"}
        assert request["messages"][1] == {"role": "user", "content": "Draft a message"}
        assert request["temperature"] == 0.3
        assert result.content == '{"body": "hi"}'
        assert result.model == "llama-3.3-70b-versatile"

    @pytest.mark.asyncio
    async def test_complete_without_initialize(self):
        with pytest.raises(RuntimeError):
            await GroqLLMProvider().complete([Message(role=MessageRole.USER, content="hi")])

    @pytest.mark.asyncio
    async def test_temperature_bounds(self):
        provider = GroqLLMProvider()
        with patch("app.infrastructure.llm.groq.AsyncGroq"):
            await provider.initialize({"api_key": "gsk_test"})

        with pytest.raises(ValueError):
            await provider.complete([Message(role=MessageRole.USER, content="hi")], temperature=3.0)

    @pytest.mark.asyncio
    async def test_cleanup_closes_client(self):
        provider = GroqLLMProvider()
        with patch("app.infrastructure.llm.groq.AsyncGroq") as mock_groq:
            client = MagicMock()
            client.close = AsyncMock()
            mock_groq.return_value = client
            await provider.initialize({"api_key": "gsk_test"})

        await provider.cleanup()

        client.close.assert_awaited_once()

    def test_name_and_model(self):
        provider = GroqLLMProvider()

        assert provider.name == "groq"
        assert provider.model == GroqLLMProvider.DEFAULT_MODEL


class TestLLMFactory:
    """Tests for LLMFactory"""

    def test_groq_registered(self):
        assert "groq" in LLMFactory.list_providers()
        assert isinstance(LLMFactory.create("groq"), GroqLLMProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            LLMFactory.create("nope")

    @pytest.mark.asyncio
    async def test_create_initialized(self):
        with patch("app.infrastructure.llm.groq.AsyncGroq"):
            provider = await LLMFactory.create_initialized("groq", {"api_key": "gsk_test"})

        assert provider.model == GroqLLMProvider.DEFAULT_MODEL
