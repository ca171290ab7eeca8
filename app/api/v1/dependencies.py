"""
API Dependencies
Shared dependencies for authentication, Supabase access and AskBob services
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from supabase import Client, create_client

from app.core.config import get_llm_provider_settings, get_settings
from app.core.tenant_middleware import get_current_workspace
from app.domain.interfaces.call_store import CallStore
from app.domain.services.askbob_dispatcher import AskBobDispatcher
from app.domain.services.call_outcomes import OutcomeSchemaSentinel
from app.infrastructure.llm.factory import LLMFactory
from app.infrastructure.storage.supabase_call_store import SupabaseCallStore
from app.services.call_assist_service import CallAssistService

load_dotenv()

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    """Current authenticated user and the workspace they act in"""
    id: str
    email: Optional[str] = None
    workspace_id: str
    role: str = "member"


def get_supabase() -> Client:
    """
    Get Supabase client with validation.

    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_KEY")

    if not url:
        raise RuntimeError(
            "SUPABASE_URL is not configured. "
            "Set SUPABASE_URL environment variable."
        )
    if not key:
        raise RuntimeError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set SUPABASE_SERVICE_KEY environment variable."
        )

    return create_client(url, key)


async def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None, alias="Authorization"),
    supabase: Client = Depends(get_supabase),
) -> CurrentUser:
    """
    Dependency to get the current authenticated user from JWT token.

    The workspace comes from the user's `workspace_members` row; when the
    user has none, the workspace claim resolved by TenantMiddleware is used.

    Raises:
        HTTPException: 401 if the token is invalid, 403 if no workspace
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Use: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = parts[1]

    try:
        user_response = supabase.auth.get_user(token)

        if not user_response or not user_response.user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        auth_user = user_response.user

        membership = (
            supabase.table("workspace_members")
            .select("workspace_id, role")
            .eq("user_id", auth_user.id)
            .limit(1)
            .execute()
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token validation failed: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if membership.data:
        member = membership.data[0]
        workspace_id = member.get("workspace_id")
        role = member.get("role") or "member"
    else:
        workspace_id = get_current_workspace(request)
        role = "member"

    if not workspace_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any workspace",
        )

    return CurrentUser(
        id=str(auth_user.id),
        email=auth_user.email,
        workspace_id=str(workspace_id),
        role=role,
    )


def get_call_store(supabase: Client = Depends(get_supabase)) -> CallStore:
    return SupabaseCallStore(supabase)


def get_outcome_sentinel(request: Request) -> OutcomeSchemaSentinel:
    """Process-wide log-once flag created at startup"""
    sentinel = getattr(request.app.state, "outcome_sentinel", None)
    if sentinel is None:
        sentinel = OutcomeSchemaSentinel()
        request.app.state.outcome_sentinel = sentinel
    return sentinel


async def get_askbob_dispatcher(
    request: Request,
    store: CallStore = Depends(get_call_store),
) -> AskBobDispatcher:
    """
    Dispatcher bound to this request's store.

    Uses the provider initialized at startup; builds it lazily if startup
    could not (for example when GROQ_API_KEY was added after boot).
    """
    settings = get_settings()
    provider = getattr(request.app.state, "llm_provider", None)

    if provider is None:
        name, config = get_llm_provider_settings(settings)
        try:
            provider = await LLMFactory.create_initialized(name, config)
        except (ValueError, RuntimeError) as e:
            logger.error(f"Completion provider unavailable: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="AskBob is not configured",
            )
        request.app.state.llm_provider = provider

    return AskBobDispatcher(store, provider, timeout_seconds=settings.askbob_timeout_seconds)


def get_call_assist_service(
    store: CallStore = Depends(get_call_store),
    dispatcher: AskBobDispatcher = Depends(get_askbob_dispatcher),
    sentinel: OutcomeSchemaSentinel = Depends(get_outcome_sentinel),
) -> CallAssistService:
    return CallAssistService(store, dispatcher, sentinel)


def get_call_record_service(
    store: CallStore = Depends(get_call_store),
    sentinel: OutcomeSchemaSentinel = Depends(get_outcome_sentinel),
) -> CallAssistService:
    """
    Call actions that never reach the model (outcome entry, readiness, linking).

    Does not depend on the completion provider, so these routes keep working
    when AskBob is not configured.
    """
    return CallAssistService(store, None, sentinel)
