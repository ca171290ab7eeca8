"""
LLM Provider Interface
Abstract base class for text-completion providers
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from app.domain.models.completion import CompletionResult, Message


class LLMProvider(ABC):
    """Abstract base class for Language Model providers"""

    @abstractmethod
    async def initialize(self, config: dict) -> None:
        """Initialize the provider with configuration"""
        pass

    @abstractmethod
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
        Run a single (non-streaming) chat completion

        Args:
            messages: User/assistant messages
            system_prompt: System instructions
            temperature: Randomness (0.0 - 2.0)
            max_tokens: Max response length
            response_format: Provider response format, e.g. {"type": "json_object"}

        Returns:
            CompletionResult with the raw content and the model that served it
        """
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
