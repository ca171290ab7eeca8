"""Domain models"""

from .call import (
    CallStatus,
    CallDirection,
    CallOutcomeCode,
    CallRecord,
    LatestCallOutcome,
    TERMINAL_STATUSES,
    IN_PROGRESS_STATUSES,
)
from .speech_plan import SpeechPlan, SpeechVoice
from .completion import Message, MessageRole, CompletionResult
