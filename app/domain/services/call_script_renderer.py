"""
Call Script Renderer
Turns a speech plan into the TwiML document Twilio plays on an outbound call
"""
from typing import List, Optional, Tuple
from xml.sax.saxutils import escape

from app.domain.models.speech_plan import SpeechPlan

MAX_SCRIPT_LINES = 2

FALLBACK_SCRIPT_LINE = "Thank you for your time. We're following up on your job."
VOICEMAIL_LINES = (
    "If we don't connect, we'll leave a voicemail with these updates and next steps.",
    "Please call us back when you are ready to confirm or reschedule.",
)

# Twilio parses the document as XML; quotes and apostrophes are escaped too
_XML_ENTITIES = {'"': "&quot;", "'": "&#39;"}

# ("say", text) or ("pause", seconds)
Instruction = Tuple[str, object]


def escape_xml(value: str) -> str:
    return escape(value, _XML_ENTITIES)


def greeting_line(greeting_style: Optional[str]) -> str:
    tone = (greeting_style or "professional").strip().lower() or "professional"
    return f"Thank you for your time. We're following up in a {tone} tone."


def script_lines(script_text: Optional[str]) -> str:
    """First two non-empty lines of the script, joined into one spoken line"""
    if not script_text:
        return FALLBACK_SCRIPT_LINE
    lines = [line.strip() for line in script_text.splitlines() if line.strip()]
    if not lines:
        return FALLBACK_SCRIPT_LINE
    return " ".join(lines[:MAX_SCRIPT_LINES])


def build_instructions(plan: SpeechPlan) -> List[Instruction]:
    """Ordered say/pause instructions for a plan"""
    instructions: List[Instruction] = [
        ("say", greeting_line(plan.greeting_style)),
        ("say", script_lines(plan.script_text)),
    ]
    if plan.allow_voicemail:
        instructions.append(("pause", 1))
        instructions.extend(("say", line) for line in VOICEMAIL_LINES)
    return instructions


def render_call_script(plan: SpeechPlan) -> str:
    """
    Render TwiML for a plan.

    Every interpolated value (voice and spoken text) is XML-escaped.
    """
    voice = escape_xml(plan.voice)
    parts = ['<?xml version="1.0" encoding="UTF-8"?>', "<Response>"]
    for kind, value in build_instructions(plan):
        if kind == "pause":
            parts.append(f'<Pause length="{int(value)}"/>')
        else:
            parts.append(f'<Say voice="{voice}">{escape_xml(str(value))}</Say>')
    parts.append("</Response>")
    return "".join(parts)


def render_empty_response() -> str:
    """Acknowledgement document for calls that need no instructions"""
    return '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'
