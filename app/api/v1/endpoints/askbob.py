"""
AskBob API Endpoints
AI-assisted next actions for calls, jobs and quotes

All routes act in the authenticated user's workspace. A request that names
a different workspace is rejected, never rescoped.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.v1.dependencies import (
    CurrentUser,
    get_askbob_dispatcher,
    get_call_assist_service,
    get_call_record_service,
    get_current_user,
)
from app.domain.models.askbob import (
    AskBobErrorCode,
    AskBobResponse,
    AskBobTask,
    AskBobTaskContext,
)
from app.domain.models.speech_plan import DEFAULT_GREETING_STYLE, DEFAULT_VOICE
from app.domain.services.askbob_dispatcher import AskBobDispatcher
from app.services.call_assist_service import CallActionError, CallAssistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/askbob", tags=["askbob"])


ERROR_STATUS = {
    AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH: status.HTTP_403_FORBIDDEN,
    AskBobErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    AskBobErrorCode.NOT_READY: status.HTTP_409_CONFLICT,
    AskBobErrorCode.INVALID_INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AskBobErrorCode.INVALID_MODEL_OUTPUT: status.HTTP_502_BAD_GATEWAY,
    AskBobErrorCode.UPSTREAM_ERROR: status.HTTP_502_BAD_GATEWAY,
}


# ========================
# Request models
# ========================

class TaskRequest(BaseModel):
    workspace_id: Optional[str] = None
    job_id: Optional[str] = None
    customer_id: Optional[str] = None
    quote_id: Optional[str] = None
    call_id: Optional[str] = None
    task: AskBobTask


class CallActionRequest(BaseModel):
    workspace_id: Optional[str] = None


class CallScriptRequest(CallActionRequest):
    voice: str = DEFAULT_VOICE
    greeting_style: str = DEFAULT_GREETING_STYLE
    allow_voicemail: bool = False
    call_purpose: str = "followup"
    call_persona_style: Optional[str] = None
    call_intents: List[str] = []


class LiveGuidanceRequest(CallActionRequest):
    customer_id: str
    guidance_mode: str = "intake"
    notes_text: Optional[str] = None
    call_guidance_session_id: Optional[str] = None
    cycle_index: int = 1
    prior_guidance_summary: Optional[str] = None


class OutcomeRequest(CallActionRequest):
    reached_customer: Optional[bool] = None
    outcome_code: Optional[str] = None
    notes: Optional[str] = None
    from_post_enrichment: bool = False


# ========================
# Helpers
# ========================

def _context(user: CurrentUser, workspace_id: Optional[str], **ids) -> AskBobTaskContext:
    return AskBobTaskContext(
        workspace_id=workspace_id or user.workspace_id,
        user_id=user.id,
        **ids,
    )


def _raise_for(code: AskBobErrorCode, message: str) -> None:
    raise HTTPException(
        status_code=ERROR_STATUS.get(code, status.HTTP_400_BAD_REQUEST),
        detail={"code": code.value, "message": message},
    )


def _respond(response: AskBobResponse) -> dict:
    if not response.ok:
        _raise_for(response.error.code, response.error.message)
    return response.model_dump(mode="json")


# ========================
# Generic task entry point
# ========================

@router.post("/tasks")
async def run_task(
    request: TaskRequest,
    current_user: CurrentUser = Depends(get_current_user),
    dispatcher: AskBobDispatcher = Depends(get_askbob_dispatcher),
):
    """Run any AskBob task variant in the caller's workspace"""
    context = _context(
        current_user,
        request.workspace_id,
        job_id=request.job_id,
        customer_id=request.customer_id,
        quote_id=request.quote_id,
        call_id=request.call_id,
    )
    response = await dispatcher.run(context, request.task, current_user.workspace_id)
    return _respond(response)


# ========================
# Call-bound actions
# ========================

@router.post("/calls/{call_id}/script")
async def generate_call_script(
    call_id: str,
    request: CallScriptRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_assist_service),
):
    """Generate a call script and store it as the call's speech plan"""
    response = await service.prepare_automated_call_script(
        _context(current_user, request.workspace_id, call_id=call_id),
        call_id,
        current_user.workspace_id,
        voice=request.voice,
        greeting_style=request.greeting_style,
        allow_voicemail=request.allow_voicemail,
        call_purpose=request.call_purpose,
        call_persona_style=request.call_persona_style,
        call_intents=request.call_intents,
    )
    return _respond(response)


@router.post("/calls/{call_id}/post-enrichment")
async def post_call_enrichment(
    call_id: str,
    request: CallActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_assist_service),
):
    response = await service.run_post_enrichment(
        _context(current_user, request.workspace_id, call_id=call_id),
        call_id,
        current_user.workspace_id,
    )
    return _respond(response)


@router.post("/calls/{call_id}/live-guidance")
async def live_guidance(
    call_id: str,
    request: LiveGuidanceRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_assist_service),
):
    response = await service.run_live_guidance(
        _context(
            current_user,
            request.workspace_id,
            call_id=call_id,
            customer_id=request.customer_id,
        ),
        call_id,
        current_user.workspace_id,
        customer_id=request.customer_id,
        guidance_mode=request.guidance_mode,
        notes_text=request.notes_text,
        call_guidance_session_id=request.call_guidance_session_id,
        cycle_index=request.cycle_index,
        prior_guidance_summary=request.prior_guidance_summary,
    )
    return _respond(response)


@router.post("/calls/{call_id}/after-call")
async def after_call(
    call_id: str,
    request: CallActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_assist_service),
):
    response = await service.run_after_call(
        _context(current_user, request.workspace_id, call_id=call_id),
        call_id,
        current_user.workspace_id,
    )
    return _respond(response)


@router.post("/calls/{call_id}/outcome")
async def record_outcome(
    call_id: str,
    request: OutcomeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_record_service),
):
    """Record the business outcome of a finished call"""
    context = _context(current_user, request.workspace_id, call_id=call_id)
    record = (
        service.apply_post_enrichment_outcome
        if request.from_post_enrichment
        else service.record_call_outcome
    )
    try:
        call = record(
            context,
            call_id,
            current_user.workspace_id,
            reached_customer=request.reached_customer,
            outcome_code=request.outcome_code,
            notes=request.notes,
        )
    except CallActionError as e:
        _raise_for(e.code, e.message)

    return {"ok": True, "call": call}


@router.get("/calls/{call_id}/readiness")
async def call_readiness(
    call_id: str,
    workspace_id: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_record_service),
):
    """Which AskBob actions this call can receive, with reasons when it cannot"""
    try:
        readiness = service.get_readiness(
            _context(current_user, workspace_id, call_id=call_id),
            call_id,
            current_user.workspace_id,
        )
    except CallActionError as e:
        _raise_for(e.code, e.message)

    return {name: value.model_dump() for name, value in readiness.items()}
