"""
Call Domain Models
Call record, provider status sets and canonical business outcomes
"""
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum


class CallStatus(str, Enum):
    """Provider (Twilio) call status"""
    QUEUED = "queued"
    INITIATED = "initiated"
    RINGING = "ringing"
    IN_PROGRESS = "in-progress"
    ANSWERED = "answered"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({
    CallStatus.COMPLETED.value,
    CallStatus.FAILED.value,
    CallStatus.BUSY.value,
    CallStatus.NO_ANSWER.value,
    CallStatus.CANCELED.value,
})

IN_PROGRESS_STATUSES = frozenset({
    CallStatus.QUEUED.value,
    CallStatus.INITIATED.value,
    CallStatus.RINGING.value,
    CallStatus.IN_PROGRESS.value,
    CallStatus.ANSWERED.value,
})


class CallDirection(str, Enum):
    """Call direction"""
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class CallOutcomeCode(str, Enum):
    """Canonical business outcome of a call (closed set)"""
    REACHED_SCHEDULED = "reached_scheduled"
    REACHED_DECLINED = "reached_declined"
    REACHED_NEEDS_FOLLOWUP = "reached_needs_followup"
    NO_ANSWER_LEFT_VOICEMAIL = "no_answer_left_voicemail"
    NO_ANSWER_NO_VOICEMAIL = "no_answer_no_voicemail"
    WRONG_NUMBER = "wrong_number"
    OTHER = "other"


OUTCOME_LABELS = {
    CallOutcomeCode.REACHED_SCHEDULED: "Reached - scheduled",
    CallOutcomeCode.REACHED_DECLINED: "Reached - declined",
    CallOutcomeCode.REACHED_NEEDS_FOLLOWUP: "Reached - needs follow-up",
    CallOutcomeCode.NO_ANSWER_LEFT_VOICEMAIL: "No answer - left voicemail",
    CallOutcomeCode.NO_ANSWER_NO_VOICEMAIL: "No answer - no voicemail",
    CallOutcomeCode.WRONG_NUMBER: "Wrong number",
    CallOutcomeCode.OTHER: "Other",
}


def normalize_status(value: Optional[str]) -> Optional[str]:
    """Trim and lowercase a provider status; empty becomes None"""
    if value is None:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


def is_terminal_status(value: Optional[str]) -> bool:
    return normalize_status(value) in TERMINAL_STATUSES


class CallRecord(BaseModel):
    """
    Durable call row.

    The workspace is fixed at creation; every mutation is scoped by it.
    Status and recording fields are written by separate webhook paths
    and never overlap.
    """
    id: str
    workspace_id: str
    twilio_call_sid: Optional[str] = None
    job_id: Optional[str] = None
    customer_id: Optional[str] = None
    direction: Optional[CallDirection] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None

    # Technical state
    twilio_status: Optional[str] = None
    twilio_status_updated_at: Optional[datetime] = None
    twilio_error_code: Optional[str] = None
    twilio_error_message: Optional[str] = None

    # Recording state
    twilio_recording_sid: Optional[str] = None
    twilio_recording_url: Optional[str] = None
    twilio_recording_duration_seconds: Optional[float] = None
    twilio_recording_received_at: Optional[datetime] = None

    # AI artifacts
    summary: Optional[str] = None
    transcript: Optional[str] = None
    ai_summary: Optional[str] = None

    # Business outcome
    outcome: Optional[str] = None  # legacy free text
    reached_customer: Optional[bool] = None
    outcome_code: Optional[CallOutcomeCode] = None
    outcome_notes: Optional[str] = None
    outcome_recorded_at: Optional[datetime] = None

    created_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.twilio_status)

    @property
    def has_recording(self) -> bool:
        return bool(self.twilio_recording_url or self.twilio_recording_sid)

    @classmethod
    def from_row(cls, row: dict) -> "CallRecord":
        """Build from a store row, dropping unknown outcome codes"""
        data = dict(row)
        code = data.get("outcome_code")
        if code is not None and code not in {c.value for c in CallOutcomeCode}:
            data["outcome_code"] = None
        if data.get("twilio_error_code") is not None:
            data["twilio_error_code"] = str(data["twilio_error_code"])
        direction = data.get("direction")
        if direction is not None and direction not in {d.value for d in CallDirection}:
            data["direction"] = None
        return cls.model_validate(data)


class LatestCallOutcome(BaseModel):
    """Business outcome snapshot used when building prompts"""
    call_id: str
    occurred_at: Optional[datetime] = None
    reached_customer: Optional[bool] = None
    outcome_code: Optional[CallOutcomeCode] = None
    outcome_notes: Optional[str] = None
    is_askbob_assisted: bool = False
