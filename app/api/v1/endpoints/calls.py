"""
Call Session Endpoints
Links inbound calls to the customer and job they are about
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.v1.dependencies import CurrentUser, get_call_record_service, get_current_user
from app.api.v1.endpoints.askbob import ERROR_STATUS
from app.domain.models.askbob import AskBobTaskContext
from app.services.call_assist_service import CallActionError, CallAssistService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calls", tags=["calls"])


class LinkCallRequest(BaseModel):
    """Customer (and optional job) an inbound call should be filed under"""
    workspace_id: Optional[str] = None
    customer_id: str
    job_id: Optional[str] = None


@router.post("/{call_id}/link")
async def link_inbound_call(
    call_id: str,
    request: LinkCallRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CallAssistService = Depends(get_call_record_service),
):
    """
    Link an inbound call to a customer and job.

    Used by the call session page once the caller is identified.
    """
    context = AskBobTaskContext(
        workspace_id=request.workspace_id or current_user.workspace_id,
        user_id=current_user.id,
        call_id=call_id,
    )
    try:
        link = service.link_call_to_customer_job(
            context,
            call_id,
            current_user.workspace_id,
            customer_id=request.customer_id,
            job_id=request.job_id,
        )
    except CallActionError as e:
        logger.warning(
            f"[calls-inbound-link] rejected callId={call_id} code={e.code.value} reason={e.message}"
        )
        raise HTTPException(
            status_code=ERROR_STATUS.get(e.code, status.HTTP_400_BAD_REQUEST),
            detail={"code": e.code.value, "message": e.message},
        )

    return {"ok": True, "link": link}
