"""
Twilio Webhooks API Endpoints
Handles call status callbacks, recording callbacks, inbound calls and the outbound voice document

Every route verifies the X-Twilio-Signature before reading or writing data.
Unknown calls and duplicate recordings are acknowledged with 200 so Twilio
does not retry them; only signature failures (403) and store outages (500)
are non-2xx. The inbound voice route answers TwiML even when the store fails.
"""
import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from app.api.v1.dependencies import get_call_store
from app.core.config import get_settings
from app.domain.interfaces.call_store import CallStore
from app.domain.models.speech_plan import SpeechPlan
from app.domain.services.call_script_renderer import render_call_script, render_empty_response
from app.domain.services.call_session_reconciler import (
    CallSessionReconciler,
    RecordingEvent,
    StatusEvent,
)
from app.domain.services.call_sessions import InboundCallSessions, normalize_phone
from app.domain.services.speech_plan_codec import decode_speech_plan
from app.domain.services.twilio_signature import (
    SIGNATURE_HEADER,
    SignatureCheck,
    first_value_params,
    verify_twilio_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

FORBIDDEN_BODY = {"error": "Forbidden"}


def get_call_session_reconciler(store: CallStore = Depends(get_call_store)) -> CallSessionReconciler:
    return CallSessionReconciler(store)


def get_inbound_call_sessions(store: CallStore = Depends(get_call_store)) -> InboundCallSessions:
    return InboundCallSessions(store)


def external_request_url(request: Request, public_base_url: Optional[str] = None) -> str:
    """
    Rebuild the URL Twilio actually called.

    PUBLIC_BASE_URL wins, then X-Forwarded-Proto/Host, then the URL as
    received. Path and query are always kept verbatim.
    """
    url = request.url
    path_and_query = url.path + (f"?{url.query}" if url.query else "")

    if public_base_url:
        return public_base_url.rstrip("/") + path_and_query

    forwarded_proto = request.headers.get("x-forwarded-proto")
    forwarded_host = request.headers.get("x-forwarded-host")
    if forwarded_proto or forwarded_host:
        scheme = (forwarded_proto or url.scheme).split(",")[0].strip()
        host = (forwarded_host or url.netloc).split(",")[0].strip()
        return f"{scheme}://{host}{path_and_query}"

    return str(url)


async def _form_items(request: Request) -> List[Tuple[str, str]]:
    if request.method != "POST":
        return []
    form = await request.form()
    return [(key, value) for key, value in form.multi_items() if isinstance(value, str)]


async def _verify(request: Request) -> Tuple[SignatureCheck, dict]:
    """Check the signature; returns the check and the collapsed form params"""
    items = await _form_items(request)
    url = external_request_url(request, get_settings().public_base_url)
    check = verify_twilio_signature(
        get_settings().twilio_auth_token,
        request.headers.get(SIGNATURE_HEADER),
        url,
        items,
    )
    return check, first_value_params(items)


def _forbidden() -> JSONResponse:
    return JSONResponse(status_code=403, content=FORBIDDEN_BODY)


@router.post("/calls/status")
async def twilio_call_status(
    request: Request,
    reconciler: CallSessionReconciler = Depends(get_call_session_reconciler),
):
    """
    Handle Twilio call status callbacks.

    Query params `callId` and `workspaceId` are set by the call-placing
    workflow so the event can be matched before the CallSid is stored.
    """
    check, params = await _verify(request)
    if not check.valid:
        logger.warning(
            f"[twilio-call-status] rejected reason={check.reason.value} "
            f"detail={check.detail} sid={params.get('CallSid')}"
        )
        return _forbidden()

    event = StatusEvent(
        call_sid=params.get("CallSid") or None,
        call_status=params.get("CallStatus") or None,
        error_code=params.get("ErrorCode") or None,
        error_message=params.get("ErrorMessage") or None,
        call_id=request.query_params.get("callId"),
        workspace_id=request.query_params.get("workspaceId"),
    )
    logger.info(
        f"[twilio-call-status] received sid={event.call_sid} status={event.call_status} "
        f"callId={event.call_id} workspaceId={event.workspace_id}"
    )

    try:
        reconciler.apply_status_event(event)
    except Exception as e:
        logger.error(f"[twilio-call-status] persist failed sid={event.call_sid}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return {"ok": True}


@router.post("/calls/recording")
async def twilio_call_recording(
    request: Request,
    reconciler: CallSessionReconciler = Depends(get_call_session_reconciler),
):
    """Handle Twilio recording status callbacks (applied once per RecordingSid)"""
    check, params = await _verify(request)
    if not check.valid:
        logger.warning(
            f"[twilio-call-recording] rejected reason={check.reason.value} "
            f"detail={check.detail} sid={params.get('CallSid')}"
        )
        return _forbidden()

    event = RecordingEvent(
        call_sid=params.get("CallSid") or None,
        recording_sid=params.get("RecordingSid") or None,
        recording_url=params.get("RecordingUrl") or None,
        recording_duration=params.get("RecordingDuration") or None,
        call_id=request.query_params.get("callId"),
        workspace_id=request.query_params.get("workspaceId"),
    )
    logger.info(
        f"[twilio-call-recording] received sid={event.call_sid} "
        f"recordingSid={event.recording_sid} callId={event.call_id}"
    )

    try:
        reconciler.apply_recording_event(event)
    except Exception as e:
        logger.error(
            f"[twilio-call-recording] persist failed sid={event.call_sid}: {e}", exc_info=True
        )
        return JSONResponse(status_code=500, content={"error": "Internal Server Error"})

    return {"ok": True}


@router.api_route("/voice/outbound", methods=["GET", "POST"])
async def twilio_outbound_voice(
    request: Request,
    reconciler: CallSessionReconciler = Depends(get_call_session_reconciler),
):
    """
    Serve the TwiML for an automated outbound call.

    The speech plan is decoded from the call's summary; calls without one
    (or not found) get the default plan.
    """
    check, params = await _verify(request)
    if not check.valid:
        logger.warning(
            f"[twilio-outbound-voice] rejected reason={check.reason.value} "
            f"detail={check.detail} sid={params.get('CallSid')}"
        )
        return _forbidden()

    call_sid = params.get("CallSid") or request.query_params.get("CallSid")
    call_id = params.get("callId") or request.query_params.get("callId")
    workspace_id = params.get("workspaceId") or request.query_params.get("workspaceId")

    row, _, reason = reconciler.locate_call(call_sid, call_id, workspace_id)
    plan = decode_speech_plan(row.get("summary")) if row else SpeechPlan.default()

    logger.info(
        f"[twilio-outbound-voice] served callId={row['id'] if row else call_id} "
        f"workspaceId={row['workspace_id'] if row else workspace_id} sid={call_sid} "
        f"voicemailEnabled={plan.allow_voicemail} unmatchedReason={reason}"
    )

    return Response(content=render_call_script(plan), media_type="text/xml")


@router.post("/voice/inbound")
async def twilio_inbound_voice(
    request: Request,
    sessions: InboundCallSessions = Depends(get_inbound_call_sessions),
):
    """
    Register an inbound call against the workspace that owns the dialed number.

    Always answers with an empty TwiML document once the signature checks
    out; a missing CallSid, an unassigned number or a failed insert is
    logged and acknowledged.
    """
    check, params = await _verify(request)
    if not check.valid:
        logger.warning(
            f"[twilio-inbound-call] rejected reason={check.reason.value} "
            f"detail={check.detail} sid={params.get('CallSid')}"
        )
        return _forbidden()

    call_sid = (params.get("CallSid") or "").strip() or None
    from_number = normalize_phone(params.get("From"))
    to_number = normalize_phone(params.get("To"))
    twiml = Response(content=render_empty_response(), media_type="text/xml")

    if not call_sid:
        logger.warning(f"[twilio-inbound-call] missing CallSid from={from_number} to={to_number}")
        return twiml

    try:
        workspace = sessions.resolve_workspace(to_number)
        if workspace is None:
            logger.warning(
                f"[twilio-inbound-call-unknown-workspace] sid={call_sid} to={to_number} "
                f"from={from_number} direction={params.get('Direction')} caller={params.get('Caller')}"
            )
            return twiml

        workspace_id = workspace["workspace_id"]
        customer_id = sessions.match_customer(workspace_id, from_number)
        session = sessions.ensure_inbound_call_session(
            workspace_id=workspace_id,
            user_id=workspace.get("owner_id"),
            call_sid=call_sid,
            from_number=from_number,
            to_number=to_number,
            customer_id=customer_id,
        )
    except Exception as e:
        logger.error(f"[twilio-inbound-call] session failed sid={call_sid} to={to_number}: {e}", exc_info=True)
        return twiml

    labels = f"workspaceId={workspace_id} sid={call_sid} to={to_number} from={from_number}"
    logger.info(
        f"[twilio-inbound-call-received] {labels} matchedCustomer={bool(customer_id)} "
        f"sessionId={session.call_id} isNew={session.is_new}"
    )
    if customer_id:
        logger.info(f"[twilio-inbound-call-customer-match] {labels} customerId={customer_id}")
    else:
        logger.info(f"[twilio-inbound-call-customer-miss] {labels}")

    return twiml
