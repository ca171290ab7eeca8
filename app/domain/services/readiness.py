"""
Call Readiness Gate
Pure predicates deciding which AskBob actions a call may receive
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.domain.models.call import CallDirection, CallRecord


class ReadinessReason:
    NOT_TERMINAL = "not_terminal"
    MISSING_CALL = "missing_call"
    ALREADY_ENRICHED = "already_enriched"
    NOT_INBOUND = "not_inbound"
    MISSING_ARTIFACTS = "missing_artifacts"


class Readiness(BaseModel):
    ready: bool
    reasons: List[str] = Field(default_factory=list)

    @classmethod
    def from_reasons(cls, reasons: List[str]) -> "Readiness":
        return cls(ready=not reasons, reasons=reasons)


def is_ready_for_post_enrichment(call: Optional[CallRecord]) -> Readiness:
    """After-call enrichment (which can claim a business outcome) needs a terminal call"""
    if call is None:
        return Readiness.from_reasons([ReadinessReason.MISSING_CALL])
    if not call.is_terminal:
        return Readiness.from_reasons([ReadinessReason.NOT_TERMINAL])
    return Readiness.from_reasons([])


def is_ready_for_outcome(call: Optional[CallRecord]) -> Readiness:
    """Business outcome fields may only be written on terminal calls"""
    return is_ready_for_post_enrichment(call)


def is_ready_for_live_guidance(call: Optional[CallRecord]) -> Readiness:
    if call is None:
        return Readiness.from_reasons([ReadinessReason.MISSING_CALL])

    reasons = []
    if call.direction != CallDirection.INBOUND:
        reasons.append(ReadinessReason.NOT_INBOUND)
    if call.is_terminal and call.outcome_code is not None:
        reasons.append(ReadinessReason.ALREADY_ENRICHED)
    return Readiness.from_reasons(reasons)


def is_ready_for_followup_draft(call: Optional[CallRecord]) -> Readiness:
    """Drafting a follow-up needs a finished call with a recording or notes to work from"""
    if call is None:
        return Readiness.from_reasons([ReadinessReason.MISSING_CALL])

    reasons = []
    if not call.is_terminal:
        reasons.append(ReadinessReason.NOT_TERMINAL)
    has_notes = bool((call.summary or "").strip() or (call.outcome_notes or "").strip()
                     or (call.transcript or "").strip())
    if not call.has_recording and not has_notes:
        reasons.append(ReadinessReason.MISSING_ARTIFACTS)
    return Readiness.from_reasons(reasons)
