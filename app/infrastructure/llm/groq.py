"""
Groq LLM Provider Implementation
Chat completions with strict JSON output for AskBob tasks

Following Groq's API guidelines:
- https://console.groq.com/docs/text-chat
- Role channels (system, user, assistant)
- JSON mode via response_format={"type": "json_object"}
"""
import os
from typing import List, Optional
from groq import AsyncGroq
from app.domain.interfaces.llm_provider import LLMProvider
from app.domain.models.completion import CompletionResult, Message


class GroqLLMProvider(LLMProvider):
    """
    Groq LLM provider

    JSON mode requires a model that supports it, e.g.
    llama-3.3-70b-versatile or openai/gpt-oss-120b.
    """

    DEFAULT_MODEL = "llama-3.3-70b-versatile"

    def __init__(self):
        self._client: Optional[AsyncGroq] = None
        self._config: dict = {}
        self._model: str = self.DEFAULT_MODEL
        self._temperature: float = 0.3  # Low for structured output
        self._max_tokens: int = 1500

    async def initialize(self, config: dict) -> None:
        """Initialize Groq client with configuration"""
        self._config = config
        api_key = config.get("api_key") or os.getenv("GROQ_API_KEY")

        if not api_key:
            raise ValueError("Groq API key not found in config or environment")

        self._client = AsyncGroq(api_key=api_key)

        self._model = config.get("model") or self.DEFAULT_MODEL
        self._temperature = config.get("temperature", 0.3)
        self._max_tokens = config.get("max_tokens", 1500)

    async def complete(
        self,
        messages: List[Message],
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        response_format: Optional[dict] = None,
        **kwargs
    ) -> CompletionResult:
        """
        Run a chat completion against Groq

        Args:
            messages: User/assistant messages
            system_prompt: System instructions for the model
            temperature: Randomness (0.0-2.0)
            max_tokens: Maximum response length
            response_format: e.g. {"type": "json_object"}
            **kwargs: Additional parameters (model, seed)

        Returns:
            CompletionResult with message content and serving model
        """
        if not self._client:
            raise RuntimeError("Groq client not initialized. Call initialize() first.")

        temperature = temperature if temperature is not None else self._temperature
        max_tokens = max_tokens if max_tokens is not None else self._max_tokens

        if not 0.0 <= temperature <= 2.0:
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {temperature}")

        groq_messages = []
        if system_prompt:
            groq_messages.append({
                "role": "system",
                "content": system_prompt
            })
        for msg in messages:
            groq_messages.append({
                "role": msg.role.value,
                "content": msg.content
            })

        model = kwargs.get("model", self._model)

        request = {
            "model": model,
            "messages": groq_messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if response_format:
            request["response_format"] = response_format
        if kwargs.get("seed") is not None:
            request["seed"] = kwargs["seed"]

        completion = await self._client.chat.completions.create(**request)

        content = None
        if completion.choices:
            content = completion.choices[0].message.content

        return CompletionResult(content=content, model=completion.model or model)

    async def cleanup(self) -> None:
        """Release resources"""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def name(self) -> str:
        """Provider name"""
        return "groq"

    @property
    def model(self) -> str:
        return self._model

    def __repr__(self) -> str:
        return f"GroqLLMProvider(model={self._model}, temp={self._temperature})"
