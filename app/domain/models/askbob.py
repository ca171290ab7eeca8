"""
AskBob Domain Models
Task context, tagged task variants, typed results and typed failures
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, ClassVar, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.domain.models.call import CallOutcomeCode, LatestCallOutcome


class AskBobTaskContext(BaseModel):
    """Tenant and actor for a single AskBob request"""
    workspace_id: str
    user_id: str
    job_id: Optional[str] = None
    customer_id: Optional[str] = None
    quote_id: Optional[str] = None
    call_id: Optional[str] = None


class EntityKind(str, Enum):
    """Entity a task loads and tenant-checks before calling the model"""
    CALL = "call"
    JOB = "job"
    QUOTE = "quote"
    CUSTOMER = "customer"


class AskBobErrorCode(str, Enum):
    FORBIDDEN_TENANT_MISMATCH = "forbidden_tenant_mismatch"
    NOT_FOUND = "not_found"
    NOT_READY = "not_ready"
    INVALID_INPUT = "invalid_input"
    INVALID_MODEL_OUTPUT = "invalid_model_output"
    UPSTREAM_ERROR = "upstream_error"


CallPurpose = Literal["intake", "scheduling", "followup"]
CallPersonaStyle = Literal["friendly_warm", "direct_concise", "calm_reassuring"]
CallIntent = Literal[
    "intake_information",
    "quote_followup",
    "schedule_visit",
    "payment_reminder",
    "general_checkin",
]
GuidanceMode = Literal["intake", "scheduling"]
MessageChannel = Literal["sms", "email"]
FollowupChannel = Literal["sms", "email", "phone"]
UrgencyLevel = Literal["low", "medium", "high"]
AfterCallUrgency = Literal["low", "normal", "high"]
ConfidenceLabel = Literal["low", "medium", "high"]

MAX_LIVE_GUIDANCE_NOTES = 2000


# ========================
# Task variants
# ========================

class _TaskBase(BaseModel):
    entity_kind: ClassVar[EntityKind]

    @property
    def entity_id(self) -> Optional[str]:
        return getattr(self, f"{self.entity_kind.value}_id", None)


class CallScriptTask(_TaskBase):
    """Generate a phone script for a job call"""
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["job.call_script"] = "job.call_script"
    job_id: str
    call_purpose: CallPurpose = "followup"
    call_tone: Optional[str] = None
    call_persona_style: Optional[CallPersonaStyle] = None
    call_intents: List[CallIntent] = Field(default_factory=list)
    customer_name: Optional[str] = None
    job_title: Optional[str] = None
    job_description: Optional[str] = None
    diagnosis_summary: Optional[str] = None
    materials_summary: Optional[str] = None
    quote_summary: Optional[str] = None
    followup_summary: Optional[str] = None
    latest_call_outcome: Optional[LatestCallOutcome] = None


class LiveGuidanceTask(_TaskBase):
    """In-call guidance for an inbound call"""
    entity_kind: ClassVar[EntityKind] = EntityKind.CALL

    task: Literal["call.live_guidance"] = "call.live_guidance"
    call_id: str
    customer_id: str
    guidance_mode: GuidanceMode = "intake"
    notes_text: Optional[str] = Field(default=None, max_length=MAX_LIVE_GUIDANCE_NOTES)
    call_guidance_session_id: Optional[str] = None
    cycle_index: int = Field(default=1, ge=1)
    prior_guidance_summary: Optional[str] = None
    customer_name: Optional[str] = None
    job_title: Optional[str] = None
    job_description: Optional[str] = None


class PostEnrichmentTask(_TaskBase):
    """Summarize a finished call and suggest its business outcome"""
    entity_kind: ClassVar[EntityKind] = EntityKind.CALL

    task: Literal["call.post_enrichment"] = "call.post_enrichment"
    call_id: str
    job_id: Optional[str] = None
    direction: Optional[str] = None
    twilio_status: Optional[str] = None
    has_recording: bool = False
    has_notes: bool = False
    notes_text: Optional[str] = None
    job_title: Optional[str] = None
    latest_call_outcome: Optional[LatestCallOutcome] = None


class AfterCallTask(_TaskBase):
    """Recommend what to do with a job after a call ended"""
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["job.after_call"] = "job.after_call"
    job_id: str
    call_id: str
    job_title: Optional[str] = None
    job_description: Optional[str] = None
    call_outcome: Optional[str] = None
    call_duration_seconds: Optional[float] = None
    existing_call_summary: Optional[str] = None
    recent_job_signals: Optional[str] = None
    call_summary_signals: Optional[str] = None
    latest_call_outcome: Optional[LatestCallOutcome] = None


class ScheduleTask(_TaskBase):
    """Suggest visit windows for a job"""
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["job.schedule"] = "job.schedule"
    job_id: str
    job_title: Optional[str] = None
    job_description: Optional[str] = None
    diagnosis_summary: Optional[str] = None
    materials_summary: Optional[str] = None
    quote_summary: Optional[str] = None
    followup_summary: Optional[str] = None
    extra_details: Optional[str] = None
    now: Optional[datetime] = None


class FollowupTask(_TaskBase):
    """Recommend the next follow-up step for a job"""
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["job.followup"] = "job.followup"
    job_id: str
    job_title: Optional[str] = None
    job_status: Optional[str] = None
    has_scheduled_visit: bool = False
    last_message_at: Optional[str] = None
    last_call_at: Optional[str] = None
    last_quote_at: Optional[str] = None
    last_invoice_due_at: Optional[str] = None
    followup_due_status: Optional[str] = None
    followup_due_label: Optional[str] = None
    recommended_delay_days: Optional[float] = None
    has_open_quote: bool = False
    has_unpaid_invoice: bool = False
    notes_summary: Optional[str] = None
    latest_call_outcome: Optional[LatestCallOutcome] = None


class QuoteGenerateTask(_TaskBase):
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["quote.generate"] = "quote.generate"
    job_id: str
    prompt: str
    job_title: Optional[str] = None
    job_description: Optional[str] = None
    diagnosis_summary: Optional[str] = None
    materials_summary: Optional[str] = None
    extra_details: Optional[str] = None


class QuoteExplainTask(_TaskBase):
    entity_kind: ClassVar[EntityKind] = EntityKind.QUOTE

    task: Literal["quote.explain"] = "quote.explain"
    quote_id: str
    prompt: Optional[str] = None
    extra_details: Optional[str] = None


class MaterialsGenerateTask(_TaskBase):
    entity_kind: ClassVar[EntityKind] = EntityKind.JOB

    task: Literal["materials.generate"] = "materials.generate"
    job_id: str
    prompt: str
    job_title: Optional[str] = None
    job_description: Optional[str] = None
    diagnosis_summary: Optional[str] = None
    extra_details: Optional[str] = None


class MaterialsExplainTask(_TaskBase):
    entity_kind: ClassVar[EntityKind] = EntityKind.QUOTE

    task: Literal["materials.explain"] = "materials.explain"
    quote_id: str
    prompt: Optional[str] = None
    extra_details: Optional[str] = None


class MessageDraftTask(_TaskBase):
    """Draft a customer-facing message for a job or customer"""
    task: Literal["message.draft"] = "message.draft"
    purpose: str
    job_id: Optional[str] = None
    customer_id: Optional[str] = None
    tone: Optional[str] = None
    prompt: Optional[str] = None
    customer_name: Optional[str] = None
    extra_details: Optional[str] = None
    latest_call_outcome: Optional[LatestCallOutcome] = None

    @property
    def entity_kind(self) -> EntityKind:  # type: ignore[override]
        return EntityKind.JOB if self.job_id else EntityKind.CUSTOMER


AskBobTask = Annotated[
    Union[
        CallScriptTask,
        LiveGuidanceTask,
        PostEnrichmentTask,
        AfterCallTask,
        ScheduleTask,
        FollowupTask,
        QuoteGenerateTask,
        QuoteExplainTask,
        MaterialsGenerateTask,
        MaterialsExplainTask,
        MessageDraftTask,
    ],
    Field(discriminator="task"),
]


# ========================
# Results
# ========================

class AskBobResultBase(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_latency_ms: int = 0
    raw_model_output: Optional[str] = None


class CallScriptResult(AskBobResultBase):
    script_body: str
    opening_line: str
    closing_line: str
    key_points: List[str]
    suggested_duration_minutes: Optional[float] = None


class LiveGuidanceResult(AskBobResultBase):
    summary: str
    opening_line: Optional[str] = None
    questions: List[str] = Field(default_factory=list)
    confirmations: List[str] = Field(default_factory=list)
    next_actions: List[str] = Field(default_factory=list)
    guardrails: List[str] = Field(default_factory=list)
    phased_plan: List[str] = Field(default_factory=list)
    next_best_question: Optional[str] = None
    risk_flags: List[str] = Field(default_factory=list)
    changed_recommendation: bool = False
    changed_reason: Optional[str] = None


class PostEnrichmentResult(AskBobResultBase):
    summary_paragraph: str
    key_moments: List[str] = Field(default_factory=list)
    suggested_reached_customer: Optional[bool] = None
    suggested_outcome_code: Optional[CallOutcomeCode] = None
    outcome_rationale: Optional[str] = None
    suggested_followup_draft: Optional[str] = None
    risk_flags: List[str] = Field(default_factory=list)
    confidence_label: Optional[ConfidenceLabel] = None


class AfterCallResult(AskBobResultBase):
    after_call_summary: str
    recommended_action_label: str
    recommended_action_steps: List[str] = Field(default_factory=list)
    suggested_channel: Optional[FollowupChannel] = None
    urgency_level: AfterCallUrgency = "normal"


class SchedulerSlot(BaseModel):
    start_at: str
    end_at: str
    label: str
    location: Optional[str] = None
    reason: Optional[str] = None
    guidance: Optional[str] = None
    urgency: Optional[UrgencyLevel] = None


class ScheduleResult(AskBobResultBase):
    slots: List[SchedulerSlot]
    rationale: Optional[str] = None
    safety_notes: Optional[str] = None
    confirm_with_customer_notes: Optional[str] = None


class FollowupStep(BaseModel):
    label: str
    detail: Optional[str] = None


class FollowupResult(AskBobResultBase):
    recommended_action: str
    rationale: str
    steps: List[FollowupStep] = Field(default_factory=list)
    should_send_message: bool = False
    should_schedule_visit: bool = False
    should_call: bool = False
    should_wait: bool = False
    suggested_channel: Optional[FollowupChannel] = None
    suggested_delay_days: Optional[float] = None
    risk_notes: Optional[str] = None


class QuoteLine(BaseModel):
    description: str
    quantity: float = 1
    unit: Optional[str] = None
    unit_price: Optional[float] = None
    line_total: Optional[float] = None


class QuoteMaterialLine(BaseModel):
    name: str
    quantity: float = 1
    unit: Optional[str] = None
    estimated_unit_cost: Optional[float] = None
    estimated_total_cost: Optional[float] = None


class QuoteGenerateResult(AskBobResultBase):
    lines: List[QuoteLine]
    materials: Optional[List[QuoteMaterialLine]] = None
    notes: Optional[str] = None


class LineExplanation(BaseModel):
    index: int
    explanation: str
    inclusions: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)


class QuoteExplainResult(AskBobResultBase):
    overall_explanation: str
    line_explanations: List[LineExplanation] = Field(default_factory=list)
    notes: Optional[str] = None


class MaterialItem(BaseModel):
    name: str
    sku: Optional[str] = None
    category: Optional[str] = None
    quantity: float = 1
    unit: Optional[str] = None
    estimated_unit_cost: Optional[float] = None
    estimated_total_cost: Optional[float] = None
    notes: Optional[str] = None


class MaterialsGenerateResult(AskBobResultBase):
    items: List[MaterialItem]
    notes: Optional[str] = None


class MaterialsExplainResult(AskBobResultBase):
    overall_explanation: str
    item_explanations: List[LineExplanation] = Field(default_factory=list)
    notes: Optional[str] = None


class MessageDraftResult(AskBobResultBase):
    body: str
    suggested_channel: Optional[MessageChannel] = None
    summary: Optional[str] = None


AskBobTaskResult = Union[
    CallScriptResult,
    LiveGuidanceResult,
    PostEnrichmentResult,
    AfterCallResult,
    ScheduleResult,
    FollowupResult,
    QuoteGenerateResult,
    QuoteExplainResult,
    MaterialsGenerateResult,
    MaterialsExplainResult,
    MessageDraftResult,
]


class AskBobFailure(BaseModel):
    """Typed failure returned by the dispatcher"""
    code: AskBobErrorCode
    message: str


class AskBobResponse(BaseModel):
    """Outcome of a single dispatch: a typed result or a typed failure"""
    task: str
    ok: bool
    result: Optional[Any] = None
    error: Optional[AskBobFailure] = None
    latency_ms: int = 0

    @classmethod
    def success(cls, task: str, result: AskBobResultBase, latency_ms: int) -> "AskBobResponse":
        return cls(task=task, ok=True, result=result, latency_ms=latency_ms)

    @classmethod
    def failure(
        cls,
        task: str,
        code: AskBobErrorCode,
        message: str,
        latency_ms: int = 0,
    ) -> "AskBobResponse":
        return cls(
            task=task,
            ok=False,
            error=AskBobFailure(code=code, message=message),
            latency_ms=latency_ms,
        )
