"""
AskBob Task Dispatcher
Single entry point that turns (context, task) into a typed result or a typed failure

Steps are the same for every variant:
1. context workspace must equal the caller's authenticated workspace,
   and any entity id on the context must equal the task's id of that kind
2. the referenced entity is loaded and its workspace re-checked
3. a deterministic prompt is built from bounded text
4. one completion call in JSON mode (no retry; timeouts are upstream errors)
5. JSON payload extraction
6. per-variant schema validation
7. result returned with elapsed latency
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from app.domain.interfaces.call_store import CallStore
from app.domain.interfaces.llm_provider import LLMProvider
from app.domain.models.askbob import (
    AskBobErrorCode,
    AskBobResponse,
    AskBobTaskContext,
    EntityKind,
    LiveGuidanceTask,
)
from app.domain.models.call import CallDirection, CallRecord
from app.domain.models.completion import Message, MessageRole
from app.domain.services.askbob_parsing import (
    InvalidModelOutputError,
    extract_model_payload,
    parse_task_result,
)
from app.domain.services.askbob_prompts import build_prompt
from app.domain.services.readiness import is_ready_for_post_enrichment
from app.utils.tenant_filter import TenantMismatchError, load_for_workspace

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
JSON_RESPONSE_FORMAT = {"type": "json_object"}
CONTEXT_ID_FIELDS = ("job_id", "quote_id", "call_id", "customer_id")


class UpstreamCompletionError(Exception):
    """Transport, timeout or provider failure from the completion service"""
    pass


class _TaskRejected(Exception):
    def __init__(self, code: AskBobErrorCode, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def _truncate_error(error: BaseException) -> str:
    message = str(error) or error.__class__.__name__
    return message if len(message) <= 200 else f"{message[:197]}..."


class AskBobDispatcher:
    """Runs AskBob tasks against a completion provider"""

    def __init__(
        self,
        store: CallStore,
        provider: LLMProvider,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.store = store
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def _check_context_ids(context: AskBobTaskContext, task: Any) -> None:
        """An id set on both the context and the task must name the same entity"""
        for field in CONTEXT_ID_FIELDS:
            context_id = getattr(context, field)
            task_id = getattr(task, field, None)
            if context_id and task_id and context_id != task_id:
                raise _TaskRejected(
                    AskBobErrorCode.INVALID_INPUT,
                    f"context {field} {context_id} does not match task {field} {task_id}",
                )

    def _load_entity(self, context: AskBobTaskContext, task: Any) -> Dict[str, Any]:
        kind: EntityKind = task.entity_kind
        entity_id = task.entity_id
        if not entity_id:
            raise _TaskRejected(AskBobErrorCode.INVALID_INPUT, f"{task.task} requires a {kind.value} id")

        try:
            entity = load_for_workspace(self.store, kind, entity_id, context.workspace_id)
        except TenantMismatchError as e:
            raise _TaskRejected(AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH, str(e))

        if entity is None:
            raise _TaskRejected(AskBobErrorCode.NOT_FOUND, f"{kind.value} {entity_id} not found")
        return entity

    def _check_preconditions(self, task: Any, entity: Dict[str, Any]) -> None:
        """Call-bound variants are gated on the call's lifecycle state"""
        if task.task == "call.post_enrichment":
            readiness = is_ready_for_post_enrichment(CallRecord.from_row(entity))
            if not readiness.ready:
                raise _TaskRejected(AskBobErrorCode.NOT_READY, ",".join(readiness.reasons))

        if isinstance(task, LiveGuidanceTask):
            call = CallRecord.from_row(entity)
            if call.direction != CallDirection.INBOUND:
                raise _TaskRejected(AskBobErrorCode.NOT_READY, "not_inbound")
            if not call.customer_id or call.customer_id != task.customer_id:
                raise _TaskRejected(
                    AskBobErrorCode.INVALID_INPUT,
                    "call is not linked to the requested customer",
                )

    async def _complete(self, system_prompt: str, user_prompt: str):
        try:
            return await asyncio.wait_for(
                self.provider.complete(
                    [Message(role=MessageRole.USER, content=user_prompt)],
                    system_prompt=system_prompt,
                    response_format=JSON_RESPONSE_FORMAT,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise UpstreamCompletionError(
                f"completion timed out after {self.timeout_seconds}s"
            )
        except Exception as e:
            raise UpstreamCompletionError(_truncate_error(e)) from e

    async def run(
        self,
        context: AskBobTaskContext,
        task: Any,
        authenticated_workspace_id: Optional[str],
    ) -> AskBobResponse:
        """
        Run one AskBob task.

        Args:
            context: Workspace/user/entity ids for the request
            task: One AskBobTask variant
            authenticated_workspace_id: Workspace of the authenticated caller

        Returns:
            AskBobResponse carrying either the typed result or a typed failure
        """
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        def fail(code: AskBobErrorCode, message: str) -> AskBobResponse:
            logger.warning(
                f"[askbob-task-failure] task={task.task} workspaceId={context.workspace_id} "
                f"userId={context.user_id} code={code.value} message={message}"
            )
            return AskBobResponse.failure(task.task, code, message, elapsed_ms())

        if not authenticated_workspace_id or context.workspace_id != authenticated_workspace_id:
            return fail(
                AskBobErrorCode.FORBIDDEN_TENANT_MISMATCH,
                "context workspace does not match the authenticated workspace",
            )

        try:
            self._check_context_ids(context, task)
            entity = self._load_entity(context, task)
            self._check_preconditions(task, entity)
        except _TaskRejected as e:
            return fail(e.code, e.message)

        system_prompt, user_prompt = build_prompt(task, context, entity)
        model_name = getattr(self.provider, "model", self.provider.name)
        model_started = time.monotonic()

        try:
            completion = await self._complete(system_prompt, user_prompt)
        except UpstreamCompletionError as e:
            logger.error(
                f"[askbob-model-call] task={task.task} model={model_name} "
                f"workspaceId={context.workspace_id} promptLength={len(user_prompt)} "
                f"latencyMs={int((time.monotonic() - model_started) * 1000)} success=False error={e}"
            )
            return fail(AskBobErrorCode.UPSTREAM_ERROR, str(e))

        latency_ms = int((time.monotonic() - model_started) * 1000)
        model_name = completion.model
        logger.info(
            f"[askbob-model-call] task={task.task} model={model_name} "
            f"workspaceId={context.workspace_id} promptLength={len(user_prompt)} "
            f"latencyMs={latency_ms} success=True"
        )

        try:
            payload = extract_model_payload(completion.content, context.workspace_id, model_name)
            result = parse_task_result(task.task, payload)
        except InvalidModelOutputError as e:
            return fail(AskBobErrorCode.INVALID_MODEL_OUTPUT, str(e))
        except ValueError as e:
            # pydantic ValidationError on a coerced field
            return fail(AskBobErrorCode.INVALID_MODEL_OUTPUT, _truncate_error(e))

        result.model_latency_ms = latency_ms
        result.raw_model_output = completion.content.strip() if isinstance(completion.content, str) else None

        return AskBobResponse.success(task.task, result, elapsed_ms())
