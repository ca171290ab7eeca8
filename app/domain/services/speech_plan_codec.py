"""
Speech Plan Codec
Stores the automated-call speech plan inside the call's free-text summary

Layout: "<prefix> <script text><marker><json payload>". The text before the
marker stays readable in the UI; the JSON after it is what the outbound
voice route reads back.
"""
import json
import logging
from typing import Optional

from app.domain.models.speech_plan import (
    ASKBOB_AUTOMATED_CALL_SCRIPT_PREVIEW_LIMIT,
    DEFAULT_GREETING_STYLE,
    DEFAULT_VOICE,
    SpeechPlan,
    SpeechVoice,
)

logger = logging.getLogger(__name__)

ASKBOB_AUTOMATED_SCRIPT_PREFIX = "AskBob automated call script:"
SPEECH_PLAN_METADATA_MARKER = "\n\n[askbob-speech-plan]"

_VOICES = {voice.value for voice in SpeechVoice}
SCRIPT_ELLIPSIS = "…"


def truncate_script_preview(text: Optional[str], limit: int = ASKBOB_AUTOMATED_CALL_SCRIPT_PREVIEW_LIMIT) -> Optional[str]:
    """Bound the stored script text; longer scripts are cut and end in an ellipsis"""
    if text is None:
        return None
    text = text.strip()
    if len(text) <= limit:
        return text or None
    return f"{text[:limit].rstrip()}{SCRIPT_ELLIPSIS}"


def encode_speech_plan(plan: SpeechPlan) -> str:
    """
    Encode a plan as legible text followed by the marker and a JSON payload.

    The script text is capped at the automated call preview limit so the
    summary column stays small.
    """
    script_text = truncate_script_preview(plan.script_text)
    payload = {
        "voice": plan.voice,
        "greetingStyle": plan.greeting_style,
        "allowVoicemail": plan.allow_voicemail,
        "scriptText": script_text,
    }
    legible = f"{ASKBOB_AUTOMATED_SCRIPT_PREFIX} {script_text or ''}".rstrip()
    return f"{legible}{SPEECH_PLAN_METADATA_MARKER}{json.dumps(payload, ensure_ascii=False)}"


def strip_speech_plan(summary: Optional[str]) -> Optional[str]:
    """Readable part of a summary: the marker and payload removed, prefix kept"""
    if not summary:
        return summary
    index = summary.rfind(SPEECH_PLAN_METADATA_MARKER)
    if index == -1:
        return summary
    return summary[:index].rstrip() or None


def _parse_flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def _legible_script(text: str) -> Optional[str]:
    text = text.strip()
    if text.startswith(ASKBOB_AUTOMATED_SCRIPT_PREFIX):
        text = text[len(ASKBOB_AUTOMATED_SCRIPT_PREFIX):].strip()
    return text or None


def decode_speech_plan(summary: Optional[str]) -> SpeechPlan:
    """
    Recover a speech plan from a stored summary.

    Never raises: summaries without the marker, or with a payload that does
    not parse, yield the default plan (alloy voice, professional greeting,
    no voicemail, no script).
    """
    if not summary:
        return SpeechPlan.default()

    index = summary.rfind(SPEECH_PLAN_METADATA_MARKER)
    if index == -1:
        return SpeechPlan.default()

    raw_payload = summary[index + len(SPEECH_PLAN_METADATA_MARKER):]
    try:
        payload = json.loads(raw_payload)
    except ValueError:
        logger.info(f"[speech-plan] unparsable payload, using default plan length={len(raw_payload)}")
        return SpeechPlan.default()

    if not isinstance(payload, dict):
        return SpeechPlan.default()

    voice = payload.get("voice")
    if not isinstance(voice, str) or voice not in _VOICES:
        voice = DEFAULT_VOICE

    greeting_style = payload.get("greetingStyle")
    if not isinstance(greeting_style, str) or not greeting_style.strip():
        greeting_style = DEFAULT_GREETING_STYLE

    if "scriptText" in payload:
        script_text = payload["scriptText"]
    else:
        script_text = payload.get("scriptSummary", _legible_script(summary[:index]))
    if not isinstance(script_text, str):
        script_text = None

    return SpeechPlan(
        voice=voice,
        greeting_style=greeting_style,
        allow_voicemail=_parse_flag(payload.get("allowVoicemail")),
        script_text=script_text,
    )
