"""
Call Outcome Normalization
Maps legacy/free-text outcomes onto canonical outcome codes and bounds outcome notes

Canonical codes are the closed set in CallOutcomeCode. Legacy text is translated
on read and never written back as free text.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

from app.domain.models.call import (
    CallOutcomeCode,
    LatestCallOutcome,
    OUTCOME_LABELS,
)

logger = logging.getLogger(__name__)

MAX_OUTCOME_NOTES_LENGTH = 200
ELLIPSIS = "…"

OUTCOME_COLUMNS = ("reached_customer", "outcome_code", "outcome_notes", "outcome_recorded_at")

_CANONICAL = {code.value: code for code in CallOutcomeCode}
_WHITESPACE = re.compile(r"\s+")
_INLINE_WHITESPACE = re.compile(r"[ \t\r\f\v]+")


class OutcomeSchemaSentinel:
    """
    Log-once flag for rows that predate the outcome columns.

    One instance lives on the application state for the process lifetime
    and is passed to the normalizer; nothing is stored at module level.
    """

    def __init__(self):
        self._warned = False

    @property
    def warned(self) -> bool:
        return self._warned

    def warn_missing_columns(self, call_id: Optional[str] = None) -> bool:
        """Log the migration warning the first time only. Returns True when it logged."""
        if self._warned:
            return False
        self._warned = True
        logger.warning(
            f"[calls-outcome-schema] missing columns, using legacy outcome text "
            f"call_id={call_id} columns={','.join(OUTCOME_COLUMNS)}"
        )
        return True


def normalize_outcome_code(raw: Optional[str]) -> Optional[CallOutcomeCode]:
    """
    Normalize a raw or legacy outcome string to a canonical code.

    Matching is case-insensitive. Canonical codes map to themselves, so the
    function is idempotent.

    Args:
        raw: Outcome text (may be None or legacy free text)

    Returns:
        Canonical CallOutcomeCode, or None for empty input
    """
    if raw is None:
        return None
    value = str(raw).strip().lower()
    if not value:
        return None

    if value in _CANONICAL:
        return _CANONICAL[value]

    if "scheduled" in value:
        return CallOutcomeCode.REACHED_SCHEDULED
    if "declined" in value:
        return CallOutcomeCode.REACHED_DECLINED
    if value in ("reached", "connected") or "connected_not_ready" in value:
        return CallOutcomeCode.REACHED_NEEDS_FOLLOWUP
    if "voicemail" in value:
        return CallOutcomeCode.NO_ANSWER_LEFT_VOICEMAIL
    if value == "missed" or "no_answer" in value or "no-answer" in value:
        return CallOutcomeCode.NO_ANSWER_NO_VOICEMAIL
    if value == "wrong_number":
        return CallOutcomeCode.WRONG_NUMBER

    return CallOutcomeCode.OTHER


def normalize_outcome_notes(
    value: Optional[str],
    limit: int = MAX_OUTCOME_NOTES_LENGTH,
) -> Optional[str]:
    """
    Trim, collapse whitespace runs and cap length.

    Output is never longer than `limit`; text over the cap ends with an
    ellipsis. Applying it twice yields the same result.
    """
    if value is None:
        return None
    collapsed = _WHITESPACE.sub(" ", str(value)).strip()
    if not collapsed:
        return None
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[: limit - 1].rstrip() + ELLIPSIS


def normalize_multiline_notes(value: Optional[str], limit: int) -> Optional[str]:
    """
    Like normalize_outcome_notes, but keeps line breaks.

    Whitespace runs inside a line collapse to one space and blank lines are
    dropped, so labelled sections stay on their own lines.
    """
    if value is None:
        return None
    lines = [_INLINE_WHITESPACE.sub(" ", line).strip() for line in str(value).splitlines()]
    text = "\n".join(line for line in lines if line)
    if not text:
        return None
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + ELLIPSIS


def outcome_label(code: Optional[CallOutcomeCode]) -> str:
    if code is None:
        return "Not recorded"
    return OUTCOME_LABELS[code]


class ResolvedOutcome(BaseModel):
    reached_customer: Optional[bool] = None
    outcome_code: Optional[CallOutcomeCode] = None
    outcome_notes: Optional[str] = None
    outcome_recorded_at: Optional[datetime] = None
    from_legacy: bool = False


def resolve_call_outcome(
    row: Dict[str, Any],
    sentinel: Optional[OutcomeSchemaSentinel] = None,
) -> ResolvedOutcome:
    """
    Read the business outcome from a call row.

    The canonical `outcome_code` column wins over legacy `outcome` text.
    Rows without any of the newer columns fall back to the legacy text and
    trigger the sentinel's one-time migration warning.
    """
    has_new_columns = any(column in row for column in OUTCOME_COLUMNS)

    if has_new_columns:
        code = normalize_outcome_code(row.get("outcome_code"))
        from_legacy = False
        if code is None:
            code = normalize_outcome_code(row.get("outcome"))
            from_legacy = code is not None
        return ResolvedOutcome(
            reached_customer=row.get("reached_customer"),
            outcome_code=code,
            outcome_notes=normalize_outcome_notes(row.get("outcome_notes")),
            outcome_recorded_at=row.get("outcome_recorded_at"),
            from_legacy=from_legacy,
        )

    if sentinel is not None:
        sentinel.warn_missing_columns(row.get("id"))

    return ResolvedOutcome(
        outcome_code=normalize_outcome_code(row.get("outcome")),
        from_legacy=True,
    )


def latest_outcome_from_row(
    row: Dict[str, Any],
    sentinel: Optional[OutcomeSchemaSentinel] = None,
    askbob_assisted: bool = False,
) -> LatestCallOutcome:
    resolved = resolve_call_outcome(row, sentinel)
    return LatestCallOutcome(
        call_id=row["id"],
        occurred_at=resolved.outcome_recorded_at or row.get("created_at"),
        reached_customer=resolved.reached_customer,
        outcome_code=resolved.outcome_code,
        outcome_notes=resolved.outcome_notes,
        is_askbob_assisted=askbob_assisted,
    )


def _yes_no_unknown(value: Optional[bool]) -> str:
    if value is None:
        return "unknown"
    return "yes" if value else "no"


def _format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "unknown"
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def format_latest_call_outcome_context(outcome: Optional[LatestCallOutcome]) -> Optional[str]:
    """Build the "Latest call outcome:" prompt block"""
    if outcome is None:
        return None

    code = outcome.outcome_code
    scheduled = code == CallOutcomeCode.REACHED_SCHEDULED
    voicemail = code == CallOutcomeCode.NO_ANSWER_LEFT_VOICEMAIL

    lines = [
        "Latest call outcome:",
        f"- Reached customer: {_yes_no_unknown(outcome.reached_customer)}",
        f"- Outcome: {outcome_label(code)}",
        f"- Occurred at: {_format_timestamp(outcome.occurred_at)}",
        f"- Appointment scheduled: {'yes' if scheduled else 'no'}",
        f"- Voicemail left: {'yes' if voicemail else 'no'}",
    ]
    notes = normalize_outcome_notes(outcome.outcome_notes)
    if notes:
        lines.append(f"- Notes: {notes}")
    lines.append(f"- AskBob-assisted call: {'yes' if outcome.is_askbob_assisted else 'no'}")
    return "\n".join(lines)
