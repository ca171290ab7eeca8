"""
AskBob Prompt Builder
Deterministic system/user prompts for every AskBob task variant

User prompts only ever contain bounded text: every free-text field goes
through the notes normalizer with a per-field cap before it is included.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.domain.models.askbob import (
    AfterCallTask,
    AskBobTaskContext,
    CallScriptTask,
    FollowupTask,
    LiveGuidanceTask,
    MaterialsExplainTask,
    MaterialsGenerateTask,
    MessageDraftTask,
    PostEnrichmentTask,
    QuoteExplainTask,
    QuoteGenerateTask,
    ScheduleTask,
)
from app.domain.models.call import CallOutcomeCode
from app.domain.services.call_outcomes import (
    format_latest_call_outcome_context,
    normalize_multiline_notes,
    normalize_outcome_notes,
)

logger = logging.getLogger(__name__)

SHORT_TEXT_LIMIT = 200
LONG_TEXT_LIMIT = 1200
NOTES_TEXT_LIMIT = 2000
MAX_QUOTE_LINES_IN_PROMPT = 20

SAFETY_GUARDRAILS = (
    "Always mention critical safety hazards before any tooling or wiring steps, remind technicians "
    "to follow local building codes and manufacturer instructions, and when in doubt, consult a "
    "licensed professional rather than improvising."
)

COST_GUARDRAILS = (
    "State pricing as rough approximations (e.g., \"about $X-Y\"), note that rates vary by region "
    "and supplier, and do not guarantee any specific price."
)

SCOPE_LIMIT_GUARDRAILS = (
    "Favor fewer, clearer actions over long lists, focus on the most critical 5-10 steps, and do "
    "not invent extra scope that cannot be backed by the prompt."
)

PROFESSIONAL_VOICE = " ".join([
    "You assist a professional handyman or small home-services business owner.",
    "Keep guidance calm, confident, and practical for tradespeople working in the field.",
    "Avoid emojis, jokes, slang, and casual phrases.",
    "If you are unsure about something, say so briefly and explain what additional information you need.",
])

DEFAULT_PERSONA_DESCRIPTION = (
    "Speak in a friendly, professional tone that stays helpful, concise, and respectful while "
    "keeping the script clearly actionable."
)

PERSONA_DESCRIPTIONS = {
    "friendly_warm": (
        "Speak in a warm, friendly tone that builds rapport while keeping the conversation "
        "focused on next steps."
    ),
    "direct_concise": (
        "Speak in a clear, direct, concise tone that respects the customer's time and focuses on "
        "key facts."
    ),
    "calm_reassuring": (
        "Speak in a calm, reassuring tone that acknowledges concerns and explains next steps "
        "patiently."
    ),
}

CALL_INTENT_DESCRIPTIONS = {
    "intake_information": "Collect the details needed to understand the job and its urgency.",
    "quote_followup": (
        "Follow up on a quote, review status, and guide the customer toward a decision."
    ),
    "schedule_visit": (
        "Book or adjust an in-person visit, confirm timing, and clarify logistics."
    ),
    "payment_reminder": "Remind the customer about an outstanding balance politely and offer help paying.",
    "general_checkin": "Check in on the customer's satisfaction and surface any open questions.",
}

OUTCOME_GUIDANCE = {
    CallOutcomeCode.REACHED_SCHEDULED: (
        "The customer booked a visit. Recommend a confirmation that restates the scheduled time "
        "without asking for availability again."
    ),
    CallOutcomeCode.REACHED_DECLINED: (
        "The customer declined. Recommend a brief, respectful close-out and do not push for a "
        "new decision."
    ),
    CallOutcomeCode.REACHED_NEEDS_FOLLOWUP: (
        "The customer was reached but is not ready. Recommend a follow-up that answers open "
        "questions and proposes a clear next step."
    ),
    CallOutcomeCode.NO_ANSWER_LEFT_VOICEMAIL: (
        "We left a voicemail. Recommend a short message that mentions we left a voicemail and "
        "invites the customer to text back when convenient."
    ),
    CallOutcomeCode.NO_ANSWER_NO_VOICEMAIL: (
        "Nobody answered and no voicemail was left. Recommend a gentle check-in text rather than "
        "another immediate call."
    ),
    CallOutcomeCode.WRONG_NUMBER: (
        "The number was wrong. Recommend verifying the customer's contact details before any "
        "further outreach."
    ),
    CallOutcomeCode.OTHER: (
        "The outcome was unusual. Recommend a cautious next step and ask the technician to "
        "review the notes."
    ),
}


def _instructions(*parts: str) -> str:
    return " ".join(parts)


SYSTEM_PROMPTS = {
    "job.call_script": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, writing a short phone script a technician or an automated caller will read "
        "to a customer. Respond with strict JSON only containing: scriptBody (required, a few short "
        "lines), openingLine (required), closingLine (required), keyPoints (required array of short "
        "strings), and suggestedDurationMinutes (number).",
        "Keep every line natural when spoken aloud, avoid jargon, and never promise prices or dates "
        "that are not in the context.",
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "call.live_guidance": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, coaching a technician who is on a live inbound call right now. Respond with "
        "strict JSON only containing: summary (required), openingLine, questions (array), "
        "confirmations (array), nextActions (array), guardrails (array), phasedPlan (array), "
        "nextBestQuestion, riskFlags (array), changedRecommendation (boolean), and changedReason.",
        "Keep every item short enough to glance at mid-conversation. When prior guidance is given, "
        "set changedRecommendation to true only if the new notes change what the technician should do.",
        SAFETY_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "call.post_enrichment": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, reviewing a finished phone call. Respond with strict JSON only containing: "
        "summaryParagraph (required), keyMoments (array), suggestedReachedCustomer (boolean or null), "
        "suggestedOutcomeCode (one of reached_scheduled, reached_declined, reached_needs_followup, "
        "no_answer_left_voicemail, no_answer_no_voicemail, wrong_number, other, or null), "
        "outcomeRationale, suggestedFollowupDraft, riskFlags (array), and confidenceLabel "
        "(low, medium, or high).",
        "Only suggest an outcome the notes support; use null when the notes are inconclusive.",
    ),
    "job.after_call": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, helping a technician decide what to do right after a customer call. "
        "Respond with strict JSON only containing: afterCallSummary (required), "
        "recommendedActionLabel (required), recommendedActionSteps (array of short strings), "
        "suggestedChannel ('sms', 'email', or 'phone'), and urgencyLevel ('low', 'normal', or 'high').",
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "job.schedule": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, the scheduler. Recommend 1-3 time windows for a real visit. Respond with "
        "JSON only containing: slots (array of { startAt, endAt, label, location?, reason?, "
        "guidance?, urgency? }), rationale, safetyNotes, and confirmWithCustomerNotes.",
        "Express startAt and endAt in ISO 8601. If the context is too thin, return an empty slots "
        "array and a rationale such as 'Need more details to propose a time.' Do not auto-book.",
        SAFETY_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "job.followup": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, the follow-up advisor. Recommend practical next steps while keeping the "
        "customer experience calm and respectful; avoid pushy sales language.",
        "Respond with strict JSON matching: recommendedAction (required), rationale (required), "
        "steps (array of { label, detail? }), shouldSendMessage, shouldScheduleVisit, shouldCall, "
        "shouldWait (booleans), suggestedChannel ('sms' | 'email' | 'phone'), suggestedDelayDays "
        "(number), and riskNotes.",
        SAFETY_GUARDRAILS,
        COST_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "quote.generate": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, creating a structured job quote. Respond with JSON only matching: lines "
        "(array of { description, quantity, unit?, unitPrice?, lineTotal? }), materials (optional "
        "array of { name, quantity, unit?, estimatedUnitCost?, estimatedTotalCost? }), and notes.",
        "Use realistic rounded quantities and plain numerals, and label every amount as an estimate.",
        COST_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "quote.explain": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, explaining an existing quote to a cautious homeowner in plain, reassuring "
        "language. Respond with strict JSON matching: overallExplanation (required), "
        "lineExplanations (array of { lineIndex, explanation, inclusions?, exclusions? }), and notes.",
        SAFETY_GUARDRAILS,
        COST_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "materials.generate": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, the materials expert. Generate a materials checklist for the technician's "
        "prep work. Return JSON only with: items (array of { name, sku?, category?, quantity, unit?, "
        "estimatedUnitCost?, estimatedTotalCost?, notes? }) and notes.",
        SAFETY_GUARDRAILS,
        COST_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "materials.explain": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, explaining the materials on a quote to a homeowner. Respond with strict JSON "
        "matching: overallExplanation (required), itemExplanations (array of { itemIndex, "
        "explanation, inclusions?, exclusions? }), and notes.",
        SAFETY_GUARDRAILS,
        COST_GUARDRAILS,
        SCOPE_LIMIT_GUARDRAILS,
    ),
    "message.draft": _instructions(
        PROFESSIONAL_VOICE,
        "You are AskBob, drafting a customer-facing message. Respond with JSON only containing: body "
        "(required), suggestedChannel ('sms' or 'email'), and summary.",
        "Use the customer's name if provided; otherwise use a neutral greeting. Keep SMS to one or two "
        "short paragraphs; keep email to 2-3 short paragraphs with a concise closing line.",
    ),
}


# ========================
# Prompt helpers
# ========================

def bounded(value: Optional[str], limit: int = LONG_TEXT_LIMIT) -> Optional[str]:
    return normalize_outcome_notes(value, limit) if value else None


def context_line(context: AskBobTaskContext) -> str:
    parts = [f"workspaceId={context.workspace_id}", f"userId={context.user_id}"]
    for name in ("job_id", "customer_id", "quote_id", "call_id"):
        value = getattr(context, name)
        if value:
            camel = name.split("_")[0] + "Id"
            parts.append(f"{camel}={value}")
    return f"Context: {', '.join(parts)}"


class PromptBuilder:
    """Collects labelled blocks, skipping empty ones"""

    def __init__(self, context: AskBobTaskContext):
        self.parts: List[str] = [context_line(context)]

    def block(
        self,
        label: str,
        value: Optional[str],
        limit: int = LONG_TEXT_LIMIT,
        keep_lines: bool = False,
    ) -> "PromptBuilder":
        text = normalize_multiline_notes(value, limit) if keep_lines else bounded(value, limit)
        if text:
            self.parts.append(f"{label}:\n{text}")
        return self

    def raw(self, text: Optional[str]) -> "PromptBuilder":
        if text:
            self.parts.append(text)
        return self

    def build(self) -> str:
        return "\n\n".join(self.parts)


def _entity_text(entity: Dict[str, Any], key: str) -> Optional[str]:
    value = entity.get(key)
    return value if isinstance(value, str) else None


def _quote_lines_block(quote: Dict[str, Any]) -> Optional[str]:
    lines = quote.get("line_items") or []
    if not isinstance(lines, list) or not lines:
        return None
    rendered = []
    for index, line in enumerate(lines[:MAX_QUOTE_LINES_IN_PROMPT]):
        if not isinstance(line, dict):
            continue
        description = bounded(str(line.get("description") or line.get("name") or ""), SHORT_TEXT_LIMIT)
        rendered.append(
            f"{index}. {description or 'Untitled'} | qty={line.get('quantity')} "
            f"| unitPrice={line.get('unit_price')} | total={line.get('line_total')}"
        )
    return "Quote lines:\n" + "\n".join(rendered) if rendered else None


# ========================
# Variant builders
# ========================

def build_call_script_prompt(task: CallScriptTask, context: AskBobTaskContext, job: Dict[str, Any]) -> str:
    persona = PERSONA_DESCRIPTIONS.get(task.call_persona_style or "", DEFAULT_PERSONA_DESCRIPTION)
    builder = (
        PromptBuilder(context)
        .block("Call purpose", task.call_purpose, SHORT_TEXT_LIMIT)
        .raw(f"Persona / tone:\n{persona}")
        .block("Requested tone", task.call_tone, SHORT_TEXT_LIMIT)
    )
    if task.call_intents:
        goals = "\n".join(f"- {CALL_INTENT_DESCRIPTIONS[intent]}" for intent in task.call_intents)
        builder.raw(f"Primary call goals:\n{goals}")

    builder = (
        builder
        .block("Customer name", task.customer_name, SHORT_TEXT_LIMIT)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description or _entity_text(job, "description"))
        .block("Diagnosis summary", task.diagnosis_summary)
        .block("Materials summary", task.materials_summary)
        .block("Quote summary", task.quote_summary)
        .block("Follow-up summary", task.followup_summary)
        .raw(format_latest_call_outcome_context(task.latest_call_outcome))
    )

    logger.info(
        f"[askbob-call-script-request] workspaceId={context.workspace_id} jobId={task.job_id} "
        f"callPurpose={task.call_purpose} hasPersonaStyle={task.call_persona_style is not None} "
        f"personaStyle={task.call_persona_style} hasCallIntents={bool(task.call_intents)} "
        f"callIntentsCount={len(task.call_intents)}"
    )
    return builder.build()


def build_live_guidance_prompt(
    task: LiveGuidanceTask, context: AskBobTaskContext, call: Dict[str, Any]
) -> str:
    return (
        PromptBuilder(context)
        .raw(f"Guidance mode: {task.guidance_mode}")
        .raw(f"Guidance cycle: {task.cycle_index}")
        .block("Customer name", task.customer_name, SHORT_TEXT_LIMIT)
        .block("Job title", task.job_title, SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description)
        .block("Prior guidance summary", task.prior_guidance_summary)
        .block("Live call notes", task.notes_text, NOTES_TEXT_LIMIT, keep_lines=True)
        .build()
    )


def build_post_enrichment_prompt(
    task: PostEnrichmentTask, context: AskBobTaskContext, call: Dict[str, Any]
) -> str:
    direction = task.direction or call.get("direction") or "unknown"
    status = task.twilio_status or call.get("twilio_status") or "unknown"
    signals = (
        f"Call signals:\n- Direction: {direction}\n- Provider status: {status}\n"
        f"- Has recording: {'yes' if task.has_recording else 'no'}\n"
        f"- Has notes: {'yes' if task.has_notes else 'no'}"
    )
    return (
        PromptBuilder(context)
        .block("Job title", task.job_title, SHORT_TEXT_LIMIT)
        .raw(signals)
        .raw(format_latest_call_outcome_context(task.latest_call_outcome))
        .block("Call notes", task.notes_text, NOTES_TEXT_LIMIT, keep_lines=True)
        .build()
    )


def build_after_call_prompt(task: AfterCallTask, context: AskBobTaskContext, job: Dict[str, Any]) -> str:
    duration = (
        f"{int(task.call_duration_seconds)} seconds" if task.call_duration_seconds is not None else None
    )
    outcome_lines = [
        f"- Provider outcome: {task.call_outcome or 'unknown'}",
        f"- Duration: {duration or 'unknown'}",
    ]
    builder = (
        PromptBuilder(context)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description or _entity_text(job, "description"))
        .raw("Call outcome context:\n" + "\n".join(outcome_lines))
        .raw(format_latest_call_outcome_context(task.latest_call_outcome))
    )
    code = task.latest_call_outcome.outcome_code if task.latest_call_outcome else None
    if code is not None:
        builder.raw(f"Call outcome guidance:\n{OUTCOME_GUIDANCE[code]}")
    return (
        builder
        .block("Existing call summary", task.existing_call_summary)
        .block("Recent job signals", task.recent_job_signals)
        .block("Call summary signals", task.call_summary_signals)
        .build()
    )


def build_schedule_prompt(task: ScheduleTask, context: AskBobTaskContext, job: Dict[str, Any]) -> str:
    now = task.now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    timing = "\n".join([
        f"Today is {now.date().isoformat()}.",
        f"The current moment is {now.isoformat()}.",
        "Only propose appointment start times that are strictly in the future relative to today.",
        "Never suggest any time or date that has already passed.",
    ])
    return (
        PromptBuilder(context)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description or _entity_text(job, "description"))
        .block("Diagnosis summary", task.diagnosis_summary)
        .block("Materials summary", task.materials_summary)
        .block("Quote summary", task.quote_summary)
        .block("Follow-up summary", task.followup_summary)
        .block("Additional context", task.extra_details)
        .raw(timing)
        .build()
    )


def build_followup_prompt(task: FollowupTask, context: AskBobTaskContext, job: Dict[str, Any]) -> str:
    followup_context = {
        "jobStatus": task.job_status or job.get("status"),
        "hasScheduledVisit": task.has_scheduled_visit,
        "lastMessageAt": task.last_message_at,
        "lastCallAt": task.last_call_at,
        "lastQuoteAt": task.last_quote_at,
        "lastInvoiceDueAt": task.last_invoice_due_at,
        "followupDueStatus": task.followup_due_status,
        "followupDueLabel": bounded(task.followup_due_label, SHORT_TEXT_LIMIT),
        "recommendedDelayDays": task.recommended_delay_days,
        "hasOpenQuote": task.has_open_quote,
        "hasUnpaidInvoice": task.has_unpaid_invoice,
    }
    return (
        PromptBuilder(context)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .raw(f"Follow-up context:\n{json.dumps(followup_context, indent=2)}")
        .raw(format_latest_call_outcome_context(task.latest_call_outcome))
        .block("Notes", task.notes_summary)
        .build()
    )


def build_quote_generate_prompt(
    task: QuoteGenerateTask, context: AskBobTaskContext, job: Dict[str, Any]
) -> str:
    return (
        PromptBuilder(context)
        .block("Technician request", task.prompt)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description or _entity_text(job, "description"))
        .block("Materials summary", task.materials_summary)
        .block("Diagnosis summary", task.diagnosis_summary)
        .block("Additional context", task.extra_details)
        .build()
    )


def _explain_prompt(prompt: Optional[str], extra: Optional[str], context: AskBobTaskContext,
                    quote: Dict[str, Any]) -> str:
    summary = f"Quote status: {quote.get('status') or 'unknown'}\nQuote total: {quote.get('total')}"
    return (
        PromptBuilder(context)
        .block("Technician request", prompt)
        .raw(summary)
        .raw(_quote_lines_block(quote))
        .block("Additional context", extra)
        .build()
    )


def build_quote_explain_prompt(
    task: QuoteExplainTask, context: AskBobTaskContext, quote: Dict[str, Any]
) -> str:
    return _explain_prompt(task.prompt, task.extra_details, context, quote)


def build_materials_generate_prompt(
    task: MaterialsGenerateTask, context: AskBobTaskContext, job: Dict[str, Any]
) -> str:
    return (
        PromptBuilder(context)
        .block("Technician request", task.prompt)
        .block("Job title", task.job_title or _entity_text(job, "title"), SHORT_TEXT_LIMIT)
        .block("Job description", task.job_description or _entity_text(job, "description"))
        .block("Diagnosis summary", task.diagnosis_summary)
        .block("Additional context", task.extra_details)
        .build()
    )


def build_materials_explain_prompt(
    task: MaterialsExplainTask, context: AskBobTaskContext, quote: Dict[str, Any]
) -> str:
    return _explain_prompt(task.prompt, task.extra_details, context, quote)


def build_message_draft_prompt(
    task: MessageDraftTask, context: AskBobTaskContext, entity: Dict[str, Any]
) -> str:
    customer_name = task.customer_name or _entity_text(entity, "name")
    return (
        PromptBuilder(context)
        .block("Message purpose", task.purpose, SHORT_TEXT_LIMIT)
        .block("Tone", task.tone, SHORT_TEXT_LIMIT)
        .block("Customer name", customer_name, SHORT_TEXT_LIMIT)
        .block("Technician request", task.prompt)
        .raw(format_latest_call_outcome_context(task.latest_call_outcome))
        .block("Additional context", task.extra_details)
        .build()
    )


PROMPT_BUILDERS: Dict[str, Callable[[Any, AskBobTaskContext, Dict[str, Any]], str]] = {
    "job.call_script": build_call_script_prompt,
    "call.live_guidance": build_live_guidance_prompt,
    "call.post_enrichment": build_post_enrichment_prompt,
    "job.after_call": build_after_call_prompt,
    "job.schedule": build_schedule_prompt,
    "job.followup": build_followup_prompt,
    "quote.generate": build_quote_generate_prompt,
    "quote.explain": build_quote_explain_prompt,
    "materials.generate": build_materials_generate_prompt,
    "materials.explain": build_materials_explain_prompt,
    "message.draft": build_message_draft_prompt,
}


def build_prompt(task: Any, context: AskBobTaskContext, entity: Dict[str, Any]) -> Tuple[str, str]:
    """
    Build (system_prompt, user_prompt) for a task.

    Same inputs always produce the same prompts, except job.schedule which
    embeds the current time unless the task pins `now`.
    """
    return SYSTEM_PROMPTS[task.task], PROMPT_BUILDERS[task.task](task, context, entity)
