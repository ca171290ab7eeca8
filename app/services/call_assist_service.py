"""
Call Assist Service
Orchestrates readiness checks, AskBob dispatch and persistence for call-bound actions

Integration Points:
- AskBob API endpoints (script, live guidance, post-enrichment, after-call, outcome)
- Calls API (linking an inbound call to a customer and job)
- Outbound voice route reads the speech plan this service writes into `calls.summary`
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.domain.interfaces.call_store import CallStore
from app.domain.models.askbob import (
    AfterCallTask,
    AskBobErrorCode,
    AskBobResponse,
    AskBobTaskContext,
    CallScriptTask,
    EntityKind,
    LiveGuidanceTask,
    PostEnrichmentTask,
)
from app.domain.models.call import CallDirection, CallRecord, LatestCallOutcome
from app.domain.models.speech_plan import SpeechPlan, SpeechVoice
from app.domain.services.askbob_dispatcher import AskBobDispatcher
from app.domain.services.call_outcomes import (
    OutcomeSchemaSentinel,
    latest_outcome_from_row,
    normalize_outcome_code,
    normalize_outcome_notes,
)
from app.domain.services.readiness import (
    Readiness,
    is_ready_for_followup_draft,
    is_ready_for_live_guidance,
    is_ready_for_outcome,
    is_ready_for_post_enrichment,
)
from app.domain.services.speech_plan_codec import (
    ASKBOB_AUTOMATED_SCRIPT_PREFIX,
    encode_speech_plan,
    strip_speech_plan,
)
from app.utils.tenant_filter import TenantMismatchError, load_for_workspace

logger = logging.getLogger(__name__)

POST_ENRICHMENT_NOTES_LIMIT = 2000
NOTES_SECTION_LIMIT = 800


class CallActionError(Exception):
    """Raised when a call-bound action cannot run; carries an AskBob error code"""

    def __init__(self, code: AskBobErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallAssistService:
    """
    Call-bound AskBob actions.

    The dispatcher never persists; this service decides what gets written
    back to the call record.
    """

    def __init__(
        self,
        store: CallStore,
        dispatcher: Optional[AskBobDispatcher],
        sentinel: Optional[OutcomeSchemaSentinel] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize call assist service.

        Args:
            store: Call store adapter
            dispatcher: AskBob task dispatcher; None for store-only actions
            sentinel: Process-wide log-once flag for legacy outcome rows
            now: Clock, injectable for tests
        """
        self.store = store
        self.dispatcher = dispatcher
        self.sentinel = sentinel
        self.now = now

    # ========================
    # Loading
    # ========================

    def _load_row(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
    ) -> Dict[str, Any]:
        if not authenticated_workspace_id or context.workspace_id != authenticated_workspace_id:
            raise CallActionError(
                AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH,
                "context workspace does not match the authenticated workspace",
            )
        return self._load_owned(EntityKind.CALL, call_id, context.workspace_id)

    def _load_owned(self, kind: EntityKind, record_id: str, workspace_id: str) -> Dict[str, Any]:
        try:
            row = load_for_workspace(self.store, kind, record_id, workspace_id)
        except TenantMismatchError as e:
            raise CallActionError(AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH, str(e))
        if row is None:
            raise CallActionError(AskBobErrorCode.NOT_FOUND, f"{kind.value} {record_id} not found")
        return row

    def _latest_outcome(self, row: Dict[str, Any]) -> LatestCallOutcome:
        summary = row.get("summary") or ""
        return latest_outcome_from_row(
            row,
            self.sentinel,
            askbob_assisted=summary.startswith(ASKBOB_AUTOMATED_SCRIPT_PREFIX),
        )

    @staticmethod
    def _require_ready(readiness: Readiness) -> None:
        if not readiness.ready:
            raise CallActionError(AskBobErrorCode.NOT_READY, ",".join(readiness.reasons))

    async def _dispatch(
        self,
        context: AskBobTaskContext,
        task: Any,
        authenticated_workspace_id: Optional[str],
    ) -> AskBobResponse:
        if self.dispatcher is None:
            raise RuntimeError("AskBob dispatcher is not configured for this service")
        return await self.dispatcher.run(context, task, authenticated_workspace_id)

    @staticmethod
    def _as_failure(task: str, error: CallActionError) -> AskBobResponse:
        logger.info(f"[call-assist] {task} rejected code={error.code.value} reason={error.message}")
        return AskBobResponse.failure(task, error.code, error.message)

    def get_readiness(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
    ) -> Dict[str, Readiness]:
        """All readiness predicates for a call, for UIs that explain disabled actions"""
        call = CallRecord.from_row(self._load_row(context, call_id, authenticated_workspace_id))
        return {
            "post_enrichment": is_ready_for_post_enrichment(call),
            "outcome": is_ready_for_outcome(call),
            "live_guidance": is_ready_for_live_guidance(call),
            "followup_draft": is_ready_for_followup_draft(call),
        }

    # ========================
    # Automated call script
    # ========================

    async def prepare_automated_call_script(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
        voice: str = SpeechVoice.ALLOY.value,
        greeting_style: str = "Professional",
        allow_voicemail: bool = False,
        call_purpose: str = "followup",
        call_persona_style: Optional[str] = None,
        call_intents: Optional[List[str]] = None,
    ) -> AskBobResponse:
        """
        Generate a call script and store it as the call's speech plan.

        The plan is encoded into `calls.summary`, where the outbound voice
        route decodes it when Twilio requests the TwiML.
        """
        task_name = "job.call_script"
        try:
            row = self._load_row(context, call_id, authenticated_workspace_id)
            if voice not in {v.value for v in SpeechVoice}:
                raise CallActionError(AskBobErrorCode.INVALID_INPUT, f"unsupported voice {voice}")
            greeting_style = (greeting_style or "").strip()
            if not greeting_style:
                raise CallActionError(AskBobErrorCode.INVALID_INPUT, "greeting style is required")
            if not row.get("job_id"):
                raise CallActionError(AskBobErrorCode.INVALID_INPUT, "call is not linked to a job")
            task = CallScriptTask(
                job_id=row["job_id"],
                call_purpose=call_purpose,
                call_tone=greeting_style,
                call_persona_style=call_persona_style,
                call_intents=call_intents or [],
                latest_call_outcome=self._latest_outcome(row),
            )
        except CallActionError as e:
            return self._as_failure(task_name, e)
        except ValidationError as e:
            return self._as_failure(task_name, CallActionError(AskBobErrorCode.INVALID_INPUT, str(e)))

        response = await self._dispatch(context, task, authenticated_workspace_id)
        if not response.ok:
            return response

        plan = SpeechPlan(
            voice=voice,
            greeting_style=greeting_style,
            allow_voicemail=allow_voicemail,
            script_text=response.result.script_body,
        )
        self.store.update_call(row["id"], row["workspace_id"], {"summary": encode_speech_plan(plan)})
        logger.info(
            f"[call-assist] speech plan stored callId={row['id']} voice={voice} "
            f"allowVoicemail={allow_voicemail}"
        )
        return response

    # ========================
    # Post-call enrichment
    # ========================

    def _post_enrichment_notes(self, row: Dict[str, Any]) -> Optional[str]:
        sections = []
        for label, value in (
            ("Summary", strip_speech_plan(row.get("summary"))),
            ("Outcome notes", row.get("outcome_notes")),
            ("Transcript", row.get("transcript")),
        ):
            text = normalize_outcome_notes(value, NOTES_SECTION_LIMIT)
            if text:
                sections.append(f"{label}: {text}")
        if not sections:
            return None
        return "\n".join(sections)[:POST_ENRICHMENT_NOTES_LIMIT]

    async def run_post_enrichment(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
    ) -> AskBobResponse:
        """Summarize a terminal call and suggest its outcome (nothing is persisted)"""
        task_name = "call.post_enrichment"
        try:
            row = self._load_row(context, call_id, authenticated_workspace_id)
            call = CallRecord.from_row(row)
            self._require_ready(is_ready_for_post_enrichment(call))
        except CallActionError as e:
            return self._as_failure(task_name, e)

        notes = self._post_enrichment_notes(row)
        task = PostEnrichmentTask(
            call_id=call.id,
            job_id=call.job_id,
            direction=call.direction.value if call.direction else None,
            twilio_status=call.twilio_status,
            has_recording=call.has_recording,
            has_notes=bool(notes),
            notes_text=notes,
            latest_call_outcome=self._latest_outcome(row),
        )
        return await self._dispatch(context, task, authenticated_workspace_id)

    def record_call_outcome(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
        reached_customer: Optional[bool],
        outcome_code: Optional[str],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Write the business outcome of a terminal call.

        Used for human-entered outcomes and for accepting a post-enrichment
        suggestion.

        Raises:
            CallActionError: not_found, forbidden, not_ready or invalid_input
        """
        row = self._load_row(context, call_id, authenticated_workspace_id)
        self._require_ready(is_ready_for_outcome(CallRecord.from_row(row)))

        code = None
        if outcome_code:
            code = normalize_outcome_code(outcome_code)
            if code is None or code.value != outcome_code.strip().lower():
                raise CallActionError(
                    AskBobErrorCode.INVALID_INPUT, f"unknown outcome code {outcome_code}"
                )

        fields = {
            "reached_customer": reached_customer,
            "outcome_code": code.value if code else None,
            "outcome_notes": normalize_outcome_notes(notes),
            "outcome_recorded_at": self.now().isoformat(),
        }
        updated = self.store.update_call(row["id"], row["workspace_id"], fields)
        if updated is None:
            raise CallActionError(AskBobErrorCode.NOT_FOUND, f"call {call_id} not found")

        logger.info(
            f"[call-assist] outcome recorded callId={row['id']} code={fields['outcome_code']} "
            f"reachedCustomer={reached_customer}"
        )
        return updated

    def apply_post_enrichment_outcome(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
        reached_customer: Optional[bool],
        outcome_code: Optional[str],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Accept (possibly edited) post-enrichment suggestions as the call's outcome"""
        logger.info(f"[call-assist] applying post-enrichment suggestion callId={call_id}")
        return self.record_call_outcome(
            context,
            call_id,
            authenticated_workspace_id,
            reached_customer=reached_customer,
            outcome_code=outcome_code,
            notes=notes,
        )

    # ========================
    # Inbound call linking
    # ========================

    def link_call_to_customer_job(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
        customer_id: Optional[str],
        job_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Attach an inbound call to a customer and, optionally, one of their jobs.

        The call, customer and job must all belong to the caller's workspace,
        and the job must belong to the chosen customer.

        Raises:
            CallActionError: not_found, forbidden, not_ready (not inbound) or invalid_input
        """
        customer_id = (customer_id or "").strip()
        job_id = (job_id or "").strip() or None
        if not customer_id:
            raise CallActionError(AskBobErrorCode.INVALID_INPUT, "customer_id is required")

        row = self._load_row(context, call_id, authenticated_workspace_id)
        if CallRecord.from_row(row).direction != CallDirection.INBOUND:
            raise CallActionError(AskBobErrorCode.NOT_READY, "not_inbound")

        workspace_id = row["workspace_id"]
        self._load_owned(EntityKind.CUSTOMER, customer_id, workspace_id)
        if job_id:
            job = self._load_owned(EntityKind.JOB, job_id, workspace_id)
            if job.get("customer_id") != customer_id:
                raise CallActionError(
                    AskBobErrorCode.INVALID_INPUT,
                    f"job {job_id} does not belong to customer {customer_id}",
                )

        updated = self.store.update_call(
            row["id"], workspace_id, {"customer_id": customer_id, "job_id": job_id}
        )
        if updated is None:
            raise CallActionError(AskBobErrorCode.NOT_FOUND, f"call {call_id} not found")

        logger.info(
            f"[calls-inbound-link] linked callId={row['id']} customerId={customer_id} jobId={job_id}"
        )
        return {
            "call_id": row["id"],
            "customer_id": customer_id,
            "job_id": job_id,
            "direction": row.get("direction"),
        }

    # ========================
    # Live guidance
    # ========================

    async def run_live_guidance(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
        customer_id: str,
        guidance_mode: str = "intake",
        notes_text: Optional[str] = None,
        call_guidance_session_id: Optional[str] = None,
        cycle_index: int = 1,
        prior_guidance_summary: Optional[str] = None,
    ) -> AskBobResponse:
        """Guidance for an inbound call whose linked customer matches the request"""
        task_name = "call.live_guidance"
        try:
            row = self._load_row(context, call_id, authenticated_workspace_id)
            call = CallRecord.from_row(row)
            self._require_ready(is_ready_for_live_guidance(call))
            if call.customer_id != customer_id:
                raise CallActionError(
                    AskBobErrorCode.INVALID_INPUT, "call is not linked to the requested customer"
                )

            customer = load_for_workspace(
                self.store, EntityKind.CUSTOMER, customer_id, context.workspace_id
            ) or {}
            job = load_for_workspace(
                self.store, EntityKind.JOB, call.job_id, context.workspace_id
            ) or {}

            task = LiveGuidanceTask(
                call_id=call.id,
                customer_id=customer_id,
                guidance_mode=guidance_mode,
                notes_text=notes_text,
                call_guidance_session_id=call_guidance_session_id,
                cycle_index=cycle_index,
                prior_guidance_summary=prior_guidance_summary,
                customer_name=customer.get("name"),
                job_title=job.get("title"),
                job_description=job.get("description"),
            )
        except CallActionError as e:
            return self._as_failure(task_name, e)
        except TenantMismatchError as e:
            return self._as_failure(
                task_name, CallActionError(AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH, str(e))
            )
        except ValidationError as e:
            return self._as_failure(task_name, CallActionError(AskBobErrorCode.INVALID_INPUT, str(e)))

        return await self._dispatch(context, task, authenticated_workspace_id)

    # ========================
    # After-call recommendation
    # ========================

    async def run_after_call(
        self,
        context: AskBobTaskContext,
        call_id: str,
        authenticated_workspace_id: Optional[str],
    ) -> AskBobResponse:
        task_name = "job.after_call"
        try:
            row = self._load_row(context, call_id, authenticated_workspace_id)
            call = CallRecord.from_row(row)
            self._require_ready(is_ready_for_post_enrichment(call))
            if not call.job_id:
                raise CallActionError(AskBobErrorCode.INVALID_INPUT, "call is not linked to a job")
        except CallActionError as e:
            return self._as_failure(task_name, e)

        task = AfterCallTask(
            job_id=call.job_id,
            call_id=call.id,
            call_outcome=call.twilio_status,
            call_duration_seconds=call.twilio_recording_duration_seconds,
            existing_call_summary=call.ai_summary or strip_speech_plan(call.summary),
            latest_call_outcome=self._latest_outcome(row),
        )
        return await self._dispatch(context, task, authenticated_workspace_id)
