"""
AskBob Model Output Parsing
Extracts the JSON payload from a completion and validates it per task variant

Each variant has one parser. A parser either returns a fully populated
result model or raises InvalidModelOutputError; partial results are never
returned. Obviously-equivalent shapes are coerced (numeric strings, "true"
strings, alias keys) but required fields are never invented.
"""
import json
import logging
import math
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.domain.models.askbob import (
    AfterCallResult,
    AskBobResultBase,
    CallScriptResult,
    FollowupResult,
    FollowupStep,
    LineExplanation,
    LiveGuidanceResult,
    MaterialItem,
    MaterialsExplainResult,
    MaterialsGenerateResult,
    MessageDraftResult,
    PostEnrichmentResult,
    QuoteExplainResult,
    QuoteGenerateResult,
    QuoteLine,
    QuoteMaterialLine,
    ScheduleResult,
    SchedulerSlot,
)
from app.domain.services.call_outcomes import normalize_outcome_code

logger = logging.getLogger(__name__)

MAX_QUOTE_LINES = 20
MAX_MATERIAL_ITEMS = 25
MAX_EXPLANATION_ITEMS = 25
MAX_FOLLOWUP_STEPS = 10
MAX_SCHEDULE_SUGGESTIONS = 3
MAX_GUIDANCE_ITEMS = 8
MAX_KEY_POINTS = 8

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)

Payload = Dict[str, Any]


class InvalidModelOutputError(Exception):
    """Raised when a completion cannot be turned into a complete typed result"""
    pass


# ========================
# Payload extraction
# ========================

def clean_json_string(value: str) -> str:
    """Strip a Markdown code fence and keep the outermost {...} span"""
    trimmed = value.strip()

    fence = _FENCE.search(trimmed)
    if fence and fence.group(1):
        trimmed = fence.group(1).strip()

    first = trimmed.find("{")
    last = trimmed.rfind("}")
    if first != -1 and last > first:
        trimmed = trimmed[first:last + 1]

    return trimmed


def _snippet(candidate: Any) -> str:
    if candidate is None:
        return "null"
    if isinstance(candidate, str):
        return clean_json_string(candidate)[:200]
    try:
        return re.sub(r"\s+", " ", json.dumps(candidate))[:200]
    except (TypeError, ValueError):
        return str(candidate)[:200]


def extract_model_payload(raw: Any, workspace_id: str, model: str) -> Payload:
    """
    Turn raw completion content into a JSON object.

    Raises:
        InvalidModelOutputError: If no JSON object can be recovered
    """
    if isinstance(raw, dict):
        return raw

    if isinstance(raw, str):
        try:
            payload = json.loads(clean_json_string(raw))
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            return payload

    logger.warning(
        f"[askbob-json-parse-error] workspaceId={workspace_id} model={model} "
        f"candidateType={type(raw).__name__} rawSnippet={_snippet(raw)!r}"
    )
    raise InvalidModelOutputError("AskBob model returned invalid JSON")


# ========================
# Field coercion
# ========================

def normalize_nullable_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return None


def normalize_number(value: Any) -> Optional[float]:
    """Numbers pass through; numeric-looking strings become numbers"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        trimmed = value.strip()
        if not trimmed:
            return None
        try:
            parsed = float(trimmed)
        except ValueError:
            return None
        if not math.isfinite(parsed):
            return None
        return int(parsed) if parsed.is_integer() else parsed
    return None


def parse_boolean_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def parse_optional_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False
    return None


def ensure_string_array(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def first_present(record: Payload, *keys: str) -> Any:
    """First non-None value among alias keys"""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def limit_array(items: List[Any], max_length: int, label: str, log_context: str = "") -> List[Any]:
    """Cap a list, logging how many entries were dropped"""
    if len(items) <= max_length:
        return items
    logger.info(
        f"[askbob-{label}-truncated] before={len(items)} after={max_length} {log_context}".rstrip()
    )
    return items[:max_length]


def require_string(payload: Payload, *keys: str) -> str:
    value = normalize_nullable_string(first_present(payload, *keys))
    if not value:
        raise InvalidModelOutputError(f"AskBob response is missing required field '{keys[0]}'")
    return value


def _choice(value: Any, allowed: Tuple[str, ...]) -> Optional[str]:
    text = normalize_nullable_string(value)
    if text is None:
        return None
    lowered = text.lower()
    return lowered if lowered in allowed else None


def _records(value: Any) -> List[Payload]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


# ========================
# Variant parsers
# ========================

def parse_call_script(payload: Payload) -> CallScriptResult:
    key_points = ensure_string_array(first_present(payload, "keyPoints", "key_points"))
    if not key_points:
        raise InvalidModelOutputError("AskBob call script is missing keyPoints")
    return CallScriptResult(
        script_body=require_string(payload, "scriptBody", "script_body", "script"),
        opening_line=require_string(payload, "openingLine", "opening_line"),
        closing_line=require_string(payload, "closingLine", "closing_line"),
        key_points=limit_array(key_points, MAX_KEY_POINTS, "call-script"),
        suggested_duration_minutes=normalize_number(
            first_present(payload, "suggestedDurationMinutes", "durationMinutes")
        ),
    )


def parse_live_guidance(payload: Payload) -> LiveGuidanceResult:
    def items(*keys: str) -> List[str]:
        return limit_array(
            ensure_string_array(first_present(payload, *keys)),
            MAX_GUIDANCE_ITEMS,
            "call-live-guidance",
        )

    return LiveGuidanceResult(
        summary=require_string(payload, "summary", "guidanceSummary"),
        opening_line=normalize_nullable_string(payload.get("openingLine")),
        questions=items("questions"),
        confirmations=items("confirmations"),
        next_actions=items("nextActions", "next_actions"),
        guardrails=items("guardrails"),
        phased_plan=items("phasedPlan", "phased_plan"),
        next_best_question=normalize_nullable_string(payload.get("nextBestQuestion")),
        risk_flags=items("riskFlags", "risk_flags"),
        changed_recommendation=parse_boolean_flag(payload.get("changedRecommendation")),
        changed_reason=normalize_nullable_string(payload.get("changedReason")),
    )


def parse_post_enrichment(payload: Payload) -> PostEnrichmentResult:
    # Only canonical codes are accepted; free text here is not a suggestion
    raw_code = normalize_nullable_string(payload.get("suggestedOutcomeCode"))
    code = normalize_outcome_code(raw_code) if raw_code else None
    if code is not None and code.value != raw_code.lower():
        code = None

    return PostEnrichmentResult(
        summary_paragraph=require_string(payload, "summaryParagraph", "summary"),
        key_moments=limit_array(
            ensure_string_array(payload.get("keyMoments")), MAX_GUIDANCE_ITEMS, "call-post-enrichment"
        ),
        suggested_reached_customer=parse_optional_flag(payload.get("suggestedReachedCustomer")),
        suggested_outcome_code=code,
        outcome_rationale=normalize_nullable_string(payload.get("outcomeRationale")),
        suggested_followup_draft=normalize_nullable_string(payload.get("suggestedFollowupDraft")),
        risk_flags=ensure_string_array(payload.get("riskFlags")),
        confidence_label=_choice(payload.get("confidenceLabel"), ("low", "medium", "high")),
    )


def parse_after_call(payload: Payload) -> AfterCallResult:
    urgency = _choice(payload.get("urgencyLevel"), ("low", "normal", "high")) or "normal"
    return AfterCallResult(
        after_call_summary=require_string(payload, "afterCallSummary", "summary"),
        recommended_action_label=require_string(payload, "recommendedActionLabel", "recommendedAction"),
        recommended_action_steps=limit_array(
            ensure_string_array(payload.get("recommendedActionSteps")),
            MAX_FOLLOWUP_STEPS,
            "job-after-call",
        ),
        suggested_channel=_choice(payload.get("suggestedChannel"), ("sms", "email", "phone")),
        urgency_level=urgency,
    )


def parse_schedule(payload: Payload) -> ScheduleResult:
    if not isinstance(payload.get("slots"), list):
        raise InvalidModelOutputError("AskBob schedule response is missing slots")

    slots = []
    for record in _records(payload["slots"]):
        start_at = normalize_nullable_string(
            first_present(record, "startAt", "start", "windowStart", "startTime", "start_time")
        )
        end_at = normalize_nullable_string(
            first_present(record, "endAt", "end", "windowEnd", "endTime", "end_time")
        )
        label = normalize_nullable_string(first_present(record, "label", "title", "windowLabel"))
        if not start_at or not end_at or not label:
            continue
        slots.append(SchedulerSlot(
            start_at=start_at,
            end_at=end_at,
            label=label,
            location=normalize_nullable_string(first_present(record, "location", "place")),
            reason=normalize_nullable_string(first_present(record, "reason", "rationale", "why")),
            guidance=normalize_nullable_string(first_present(record, "guidance", "details", "notes")),
            urgency=_choice(first_present(record, "urgency", "priority"), ("low", "medium", "high")),
        ))

    return ScheduleResult(
        slots=limit_array(slots, MAX_SCHEDULE_SUGGESTIONS, "job-schedule"),
        rationale=normalize_nullable_string(payload.get("rationale")),
        safety_notes=normalize_nullable_string(payload.get("safetyNotes")),
        confirm_with_customer_notes=normalize_nullable_string(
            first_present(payload, "confirmWithCustomerNotes", "confirmNotes")
        ),
    )


def parse_followup(payload: Payload) -> FollowupResult:
    steps = []
    for record in _records(payload.get("steps")):
        label = normalize_nullable_string(first_present(record, "label", "action"))
        if not label:
            continue
        steps.append(FollowupStep(
            label=label,
            detail=normalize_nullable_string(first_present(record, "detail", "description", "notes")),
        ))

    return FollowupResult(
        recommended_action=require_string(payload, "recommendedAction"),
        rationale=require_string(payload, "rationale"),
        steps=limit_array(steps, MAX_FOLLOWUP_STEPS, "job-followup"),
        should_send_message=parse_boolean_flag(payload.get("shouldSendMessage")),
        should_schedule_visit=parse_boolean_flag(payload.get("shouldScheduleVisit")),
        should_call=parse_boolean_flag(payload.get("shouldCall")),
        should_wait=parse_boolean_flag(payload.get("shouldWait")),
        suggested_channel=_choice(payload.get("suggestedChannel"), ("sms", "email", "phone")),
        suggested_delay_days=normalize_number(payload.get("suggestedDelayDays")),
        risk_notes=normalize_nullable_string(payload.get("riskNotes")),
    )


def parse_quote_generate(payload: Payload) -> QuoteGenerateResult:
    lines = []
    for record in _records(payload.get("lines")):
        description = normalize_nullable_string(first_present(record, "description", "label", "scope"))
        if not description:
            continue
        quantity = normalize_number(first_present(record, "quantity", "qty"))
        lines.append(QuoteLine(
            description=description,
            quantity=quantity if quantity is not None else 1,
            unit=normalize_nullable_string(first_present(record, "unit", "units")),
            unit_price=normalize_number(first_present(record, "unitPrice", "price", "rate", "unit_cost")),
            line_total=normalize_number(first_present(record, "lineTotal", "total")),
        ))
    if not lines:
        raise InvalidModelOutputError("AskBob quote is missing line items")

    materials = []
    for record in _records(payload.get("materials")):
        name = normalize_nullable_string(first_present(record, "name", "label", "item"))
        if not name:
            continue
        quantity = normalize_number(first_present(record, "quantity", "qty"))
        materials.append(QuoteMaterialLine(
            name=name,
            quantity=quantity if quantity is not None else 1,
            unit=normalize_nullable_string(first_present(record, "unit", "units")),
            estimated_unit_cost=normalize_number(
                first_present(record, "estimatedUnitCost", "unitCost", "unit_cost")
            ),
            estimated_total_cost=normalize_number(
                first_present(record, "estimatedTotalCost", "total", "estimated_total")
            ),
        ))

    return QuoteGenerateResult(
        lines=limit_array(lines, MAX_QUOTE_LINES, "quote-generate"),
        materials=limit_array(materials, MAX_MATERIAL_ITEMS, "quote-generate") or None,
        notes=normalize_nullable_string(payload.get("notes")),
    )


def _parse_explanations(value: Any, index_key: str, max_items: int) -> List[LineExplanation]:
    explanations = []
    for record in _records(value):
        index = normalize_number(record.get(index_key))
        explanation = normalize_nullable_string(record.get("explanation"))
        if index is None or not explanation:
            continue
        explanations.append(LineExplanation(
            index=max(0, min(max_items - 1, int(math.floor(index)))),
            explanation=explanation,
            inclusions=ensure_string_array(record.get("inclusions")),
            exclusions=ensure_string_array(record.get("exclusions")),
        ))
    return explanations[:max_items]


def parse_quote_explain(payload: Payload) -> QuoteExplainResult:
    return QuoteExplainResult(
        overall_explanation=require_string(payload, "overallExplanation", "explanation"),
        line_explanations=_parse_explanations(
            payload.get("lineExplanations"), "lineIndex", MAX_QUOTE_LINES
        ),
        notes=normalize_nullable_string(payload.get("notes")),
    )


def parse_materials_generate(payload: Payload) -> MaterialsGenerateResult:
    items = []
    for record in _records(payload.get("items")):
        name = normalize_nullable_string(first_present(record, "name", "label", "item"))
        if not name:
            continue
        quantity = normalize_number(first_present(record, "quantity", "qty"))
        items.append(MaterialItem(
            name=name,
            sku=normalize_nullable_string(first_present(record, "sku", "partNumber", "part_number")),
            category=normalize_nullable_string(first_present(record, "category", "group", "type")),
            quantity=quantity if quantity is not None else 1,
            unit=normalize_nullable_string(first_present(record, "unit", "units")),
            estimated_unit_cost=normalize_number(
                first_present(record, "estimatedUnitCost", "unitCost", "unit_cost", "price")
            ),
            estimated_total_cost=normalize_number(
                first_present(record, "estimatedTotalCost", "total", "lineTotal")
            ),
            notes=normalize_nullable_string(first_present(record, "notes", "note", "details")),
        ))
    if not items:
        raise InvalidModelOutputError("AskBob materials list is empty")

    return MaterialsGenerateResult(
        items=limit_array(items, MAX_MATERIAL_ITEMS, "materials-generate"),
        notes=normalize_nullable_string(payload.get("notes")),
    )


def parse_materials_explain(payload: Payload) -> MaterialsExplainResult:
    return MaterialsExplainResult(
        overall_explanation=require_string(payload, "overallExplanation", "explanation"),
        item_explanations=_parse_explanations(
            payload.get("itemExplanations"), "itemIndex", MAX_EXPLANATION_ITEMS
        ),
        notes=normalize_nullable_string(payload.get("notes")),
    )


def parse_message_draft(payload: Payload) -> MessageDraftResult:
    return MessageDraftResult(
        body=require_string(payload, "body", "message"),
        suggested_channel=_choice(payload.get("suggestedChannel"), ("sms", "email")),
        summary=normalize_nullable_string(payload.get("summary")),
    )


RESULT_PARSERS: Dict[str, Callable[[Payload], AskBobResultBase]] = {
    "job.call_script": parse_call_script,
    "call.live_guidance": parse_live_guidance,
    "call.post_enrichment": parse_post_enrichment,
    "job.after_call": parse_after_call,
    "job.schedule": parse_schedule,
    "job.followup": parse_followup,
    "quote.generate": parse_quote_generate,
    "quote.explain": parse_quote_explain,
    "materials.generate": parse_materials_generate,
    "materials.explain": parse_materials_explain,
    "message.draft": parse_message_draft,
}


def parse_task_result(task: str, payload: Payload) -> AskBobResultBase:
    """Validate a payload for a task variant and build its typed result"""
    parser = RESULT_PARSERS.get(task)
    if parser is None:
        raise InvalidModelOutputError(f"No result schema for task {task}")
    return parser(payload)
