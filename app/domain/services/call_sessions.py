"""
Inbound Call Sessions
Creates (or reuses) the call row for a call Twilio delivers to a workspace number
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from app.domain.interfaces.call_store import CallStore
from app.domain.models.call import CallDirection
from app.utils.tenant_filter import TenantMismatchError

logger = logging.getLogger(__name__)

INBOUND_SUMMARY = "Inbound call"
INITIAL_INBOUND_STATUS = "ringing"


@dataclass
class InboundSession:
    call_id: str
    is_new: bool


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Trimmed phone number, None when blank"""
    if value is None:
        return None
    value = value.strip()
    return value or None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InboundCallSessions:
    """Maps inbound provider calls onto durable call rows"""

    def __init__(self, store: CallStore, now: Callable[[], datetime] = _utcnow):
        self.store = store
        self.now = now

    def resolve_workspace(self, to_number: Optional[str]) -> Optional[dict]:
        """Workspace that owns the dialed number, or None"""
        phone = normalize_phone(to_number)
        if not phone:
            return None
        return self.store.find_workspace_by_phone_number(phone)

    def match_customer(self, workspace_id: str, from_number: Optional[str]) -> Optional[str]:
        """
        Customer id whose phone equals the caller's number.

        A failed lookup is logged and treated as no match; the session is
        still created.
        """
        phone = normalize_phone(from_number)
        if not phone:
            return None
        try:
            customer = self.store.find_customer_by_phone(workspace_id, phone)
        except Exception as e:
            logger.error(
                f"[twilio-inbound-call] customer lookup failed workspaceId={workspace_id} "
                f"phone={phone}: {e}"
            )
            return None
        return customer["id"] if customer else None

    def ensure_inbound_call_session(
        self,
        workspace_id: str,
        user_id: Optional[str],
        call_sid: str,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
        customer_id: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> InboundSession:
        """
        Return the session for a provider call, creating it on first delivery.

        Redelivery of the same CallSid reuses the existing row; a customer
        matched later is filled in only when the row has none.

        Raises:
            TenantMismatchError: The CallSid is already stored for another workspace
            ValueError: call_sid is blank
        """
        sid = (call_sid or "").strip()
        if not sid:
            raise ValueError("call_sid is required for an inbound session")

        existing = self.store.find_call_by_provider_sid(sid)
        if existing is not None:
            if existing.get("workspace_id") != workspace_id:
                raise TenantMismatchError("call", str(existing.get("id")))
            if customer_id and not existing.get("customer_id"):
                self.store.update_call(existing["id"], workspace_id, {"customer_id": customer_id})
            return InboundSession(call_id=existing["id"], is_new=False)

        row = self.store.insert_call({
            "workspace_id": workspace_id,
            "user_id": user_id,
            "direction": CallDirection.INBOUND.value,
            "twilio_status": INITIAL_INBOUND_STATUS,
            "summary": INBOUND_SUMMARY,
            "from_number": normalize_phone(from_number),
            "to_number": normalize_phone(to_number),
            "customer_id": customer_id,
            "job_id": job_id,
            "twilio_call_sid": sid,
            "started_at": self.now().isoformat(),
        })
        return InboundSession(call_id=row["id"], is_new=True)
