"""
Call Session Reconciler
Applies Twilio status and recording callbacks to the durable call record

Both event paths are idempotent and never fail on an unknown call: an
unmatched event is logged and acknowledged so Twilio does not retry it.
Status and recording events write disjoint column sets.
"""
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import BaseModel

from app.domain.interfaces.call_store import CallStore
from app.domain.models.askbob import EntityKind
from app.domain.models.call import normalize_status
from app.utils.tenant_filter import TenantMismatchError, verify_workspace

logger = logging.getLogger(__name__)


class StatusEvent(BaseModel):
    """Status callback (CallSid, CallStatus, ErrorCode, ErrorMessage + correlation params)"""
    call_sid: Optional[str] = None
    call_status: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    call_id: Optional[str] = None
    workspace_id: Optional[str] = None


class RecordingEvent(BaseModel):
    """Recording callback (CallSid, RecordingSid, RecordingUrl, RecordingDuration)"""
    call_sid: Optional[str] = None
    recording_sid: Optional[str] = None
    recording_url: Optional[str] = None
    recording_duration: Optional[str] = None
    call_id: Optional[str] = None
    workspace_id: Optional[str] = None


class ReconcileOutcome(str, Enum):
    UPDATED = "update"
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    UNMATCHED = "unmatched"


class ReconcileResult(BaseModel):
    outcome: ReconcileOutcome
    call_id: Optional[str] = None
    matched_by: Optional[str] = None
    reason: Optional[str] = None


def parse_recording_duration(value: Optional[str]) -> Optional[float]:
    """Seconds as a number; None when absent or not finite"""
    if value is None or str(value).strip() == "":
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds):
        return None
    return int(seconds) if seconds.is_integer() else seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallSessionReconciler:
    """State machine over provider status for a single call record"""

    def __init__(self, store: CallStore, now: Callable[[], datetime] = _utcnow):
        self.store = store
        self.now = now

    def locate_call(
        self,
        call_sid: Optional[str],
        call_id: Optional[str],
        workspace_id: Optional[str],
    ) -> Tuple[Optional[Dict[str, Any]], Optional[str], Optional[str]]:
        """
        Find the call by provider SID, then by correlation id.

        Returns:
            (row, matched_by, unmatched_reason)
        """
        row = None
        matched_by = None
        try:
            if call_sid:
                row = self.store.find_call_by_provider_sid(call_sid)
                matched_by = "call_sid" if row else None
            if row is None and call_id:
                row = self.store.get_call(call_id)
                matched_by = "call_id" if row else None
        except Exception as e:
            logger.error(f"Call lookup failed sid={call_sid} call_id={call_id}: {e}", exc_info=True)
            return None, None, "lookup_failed"

        if row is None:
            return None, None, "not_found"

        if workspace_id:
            try:
                verify_workspace(row, workspace_id, EntityKind.CALL)
            except TenantMismatchError:
                return None, None, "workspace_mismatch"

        return row, matched_by, None

    def apply_status_event(self, event: StatusEvent) -> ReconcileResult:
        """
        Overwrite technical status/error fields (last write wins).

        Raises:
            Exception: Store errors while persisting propagate to the caller
        """
        row, matched_by, reason = self.locate_call(event.call_sid, event.call_id, event.workspace_id)
        if row is None:
            logger.info(
                f"[twilio-call-status] unmatched sid={event.call_sid} callId={event.call_id} "
                f"workspaceId={event.workspace_id} reason={reason}"
            )
            return ReconcileResult(outcome=ReconcileOutcome.UNMATCHED, reason=reason)

        fields: Dict[str, Any] = {
            "twilio_status_updated_at": self.now().isoformat(),
            "twilio_error_code": event.error_code or None,
            "twilio_error_message": event.error_message or None,
        }
        status = normalize_status(event.call_status)
        if status:
            fields["twilio_status"] = status
        if event.call_sid and not row.get("twilio_call_sid"):
            fields["twilio_call_sid"] = event.call_sid

        self.store.update_call(row["id"], row["workspace_id"], fields)

        logger.info(
            f"[twilio-call-status] update callId={row['id']} sid={event.call_sid} "
            f"status={status} previous={row.get('twilio_status')} matchedBy={matched_by}"
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.UPDATED,
            call_id=row["id"],
            matched_by=matched_by,
        )

    def apply_recording_event(self, event: RecordingEvent) -> ReconcileResult:
        """
        Apply recording fields once per recording SID.

        A repeated delivery of the stored recording SID is a no-op.
        A callback without a RecordingSid is acknowledged and never written,
        so an applied recording cannot be cleared.

        Raises:
            Exception: Store errors while persisting propagate to the caller
        """
        row, matched_by, reason = self.locate_call(event.call_sid, event.call_id, event.workspace_id)
        if row is None:
            logger.warning(
                f"[twilio-call-recording] unmatched sid={event.call_sid} callId={event.call_id} "
                f"recordingSid={event.recording_sid} reason={reason}"
            )
            return ReconcileResult(outcome=ReconcileOutcome.UNMATCHED, reason=reason)

        if not event.recording_sid:
            logger.warning(
                f"[twilio-call-recording] ignored callId={row['id']} sid={event.call_sid} "
                f"reason=missing_recording_sid"
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.IGNORED,
                call_id=row["id"],
                matched_by=matched_by,
                reason="missing_recording_sid",
            )

        if row.get("twilio_recording_sid") == event.recording_sid:
            logger.info(
                f"[twilio-call-recording] duplicate callId={row['id']} "
                f"recordingSid={event.recording_sid}"
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.DUPLICATE,
                call_id=row["id"],
                matched_by=matched_by,
            )

        duration = parse_recording_duration(event.recording_duration)
        fields = {
            "twilio_recording_sid": event.recording_sid,
            "twilio_recording_url": event.recording_url or None,
            "twilio_recording_duration_seconds": duration,
            "twilio_recording_received_at": self.now().isoformat(),
        }
        self.store.update_call(row["id"], row["workspace_id"], fields)

        logger.info(
            f"[twilio-call-recording] applied callId={row['id']} recordingSid={event.recording_sid} "
            f"durationSeconds={duration} matchedBy={matched_by}"
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.APPLIED,
            call_id=row["id"],
            matched_by=matched_by,
        )
