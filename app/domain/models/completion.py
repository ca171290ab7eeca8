"""
Completion Domain Models
Messages exchanged with the text-completion service
"""
from pydantic import BaseModel
from typing import Optional
from enum import Enum


class MessageRole(str, Enum):
    """Message role in a completion request"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """Single message sent to the completion service"""
    role: MessageRole
    content: str


class CompletionResult(BaseModel):
    """Raw completion returned by a provider"""
    content: Optional[str] = None
    model: str
