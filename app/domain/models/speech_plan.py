"""
Speech Plan Models
How an automated outbound call greets and talks to the customer
"""
from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class SpeechVoice(str, Enum):
    """Voices offered for automated calls"""
    ALLOY = "alloy"
    SAMANTHA = "samantha"
    DAVID = "david"


DEFAULT_VOICE = SpeechVoice.ALLOY.value
DEFAULT_GREETING_STYLE = "Professional"

ASKBOB_AUTOMATED_CALL_SCRIPT_PREVIEW_LIMIT = 360


class SpeechPlan(BaseModel):
    """Decoded speech plan for an outbound automated call"""
    voice: str = DEFAULT_VOICE
    greeting_style: str = Field(default=DEFAULT_GREETING_STYLE)
    allow_voicemail: bool = False
    script_text: Optional[str] = None

    @classmethod
    def default(cls) -> "SpeechPlan":
        return cls()
