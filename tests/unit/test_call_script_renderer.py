"""
Unit Tests for Call Script Renderer
"""
from xml.etree import ElementTree

from app.domain.models.speech_plan import SpeechPlan
from app.domain.services.call_script_renderer import (
    FALLBACK_SCRIPT_LINE,
    VOICEMAIL_LINES,
    build_instructions,
    escape_xml,
    greeting_line,
    render_call_script,
    script_lines,
)


def _spoken(document: str):
    root = ElementTree.fromstring(document.encode("utf-8"))
    return [(child.tag, child.text, dict(child.attrib)) for child in root]


class TestHelpers:
    """Tests for renderer helpers"""

    def test_escape_all_special_characters(self):
        assert escape_xml("a & b < c > d \" e ' f") == "a &amp; b &lt; c &gt; d &quot; e &#39; f"

    def test_greeting_uses_style(self):
        assert greeting_line("Friendly") == "Thank you for your time. We're following up in a friendly tone."

    def test_greeting_defaults_to_professional(self):
        assert "professional tone" in greeting_line(None)

    def test_script_lines_keeps_first_two(self):
        assert script_lines("One.\n\n  Two.\nThree.") == "One. Two."

    def test_script_lines_fallback(self):
        assert script_lines(None) == FALLBACK_SCRIPT_LINE
        assert script_lines("  \n ") == FALLBACK_SCRIPT_LINE


class TestRenderCallScript:
    """Tests for TwiML rendering"""

    def test_default_plan(self):
        document = render_call_script(SpeechPlan.default())

        spoken = _spoken(document)
        assert document.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert [tag for tag, _, _ in spoken] == ["Say", "Say"]
        assert spoken[1][1] == FALLBACK_SCRIPT_LINE
        assert all(attrs == {"voice": "alloy"} for _, _, attrs in spoken)

    def test_voicemail_appends_pause_and_lines(self):
        plan = SpeechPlan(voice="david", allow_voicemail=True, script_text="Hello.")

        spoken = _spoken(render_call_script(plan))

        assert [tag for tag, _, _ in spoken] == ["Say", "Say", "Pause", "Say", "Say"]
        assert spoken[2][2] == {"length": "1"}
        assert [text for _, text, _ in spoken[3:]] == list(VOICEMAIL_LINES)

    def test_special_characters_survive_parsing(self):
        """Escaped output parses back to the original text"""
        script = "Tom & Jerry's <plumbing> \"pros\""
        document = render_call_script(SpeechPlan(script_text=script))

        spoken = _spoken(document)

        assert spoken[1][1] == script
        assert "&#39;" in document
        assert "&quot;" in document

    def test_instructions_order(self):
        plan = SpeechPlan(greeting_style="Direct", script_text="Line one", allow_voicemail=False)

        assert build_instructions(plan) == [
            ("say", greeting_line("Direct")),
            ("say", "Line one"),
        ]
