"""
LLM Provider Factory
"""
from typing import Dict, Type
from app.domain.interfaces.llm_provider import LLMProvider
from app.infrastructure.llm.groq import GroqLLMProvider


class LLMFactory:
    """Factory for creating completion provider instances"""

    _providers: Dict[str, Type[LLMProvider]] = {}

    @classmethod
    def create(cls, provider_name: str) -> LLMProvider:
        """Create an (uninitialized) provider instance"""
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown LLM provider: {provider_name}. Available: {available}")

        provider_class = cls._providers[provider_name]
        return provider_class()

    @classmethod
    async def create_initialized(cls, provider_name: str, config: dict) -> LLMProvider:
        """Create a provider and run its initialize() with config"""
        provider = cls.create(provider_name)
        await provider.initialize(config)
        return provider

    @classmethod
    def register(cls, name: str, provider_class: Type[LLMProvider]) -> None:
        """Register a provider"""
        cls._providers[name] = provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available providers"""
        return list(cls._providers.keys())


LLMFactory.register("groq", GroqLLMProvider)
