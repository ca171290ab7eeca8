"""
Unit Tests for AskBob Model Output Parsing
"""
import logging

import pytest

from app.domain.models.call import CallOutcomeCode
from app.domain.services.askbob_parsing import (
    MAX_QUOTE_LINES,
    MAX_SCHEDULE_SUGGESTIONS,
    InvalidModelOutputError,
    clean_json_string,
    extract_model_payload,
    normalize_number,
    parse_task_result,
)


class TestExtractModelPayload:
    """Tests for JSON payload extraction"""

    def test_plain_json(self):
        assert extract_model_payload('{"body": "hi"}', "ws-1", "m") == {"body": "hi"}

    def test_markdown_fence(self):
        raw = "Here you go:\n```json\n{\"body\": \"hi\"}\n```"

        assert extract_model_payload(raw, "ws-1", "m") == {"body": "hi"}

    def test_outermost_braces(self):
        assert clean_json_string('Sure! {"a": {"b": 1}} Thanks') == '{"a": {"b": 1}}'

    def test_already_structured(self):
        payload = {"body": "hi"}
        assert extract_model_payload(payload, "ws-1", "m") is payload

    @pytest.mark.parametrize("raw", ["not json at all", "[1, 2]", None, ""])
    def test_invalid_output_raises(self, raw, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(InvalidModelOutputError):
                extract_model_payload(raw, "ws-1", "m")

        assert any("[askbob-json-parse-error]" in r.getMessage() for r in caplog.records)


class TestCoercion:
    """Tests for obviously-equivalent shapes"""

    @pytest.mark.parametrize("raw,expected", [
        (3, 3),
        ("4", 4),
        (" 2.5 ", 2.5),
        ("abc", None),
        (True, None),
        (None, None),
    ])
    def test_normalize_number(self, raw, expected):
        assert normalize_number(raw) == expected


class TestVariantParsers:
    """Tests for per-variant required-field checks"""

    def test_call_script(self):
        result = parse_task_result("job.call_script", {
            "scriptBody": "Hi, it's Bob.\nWe can come Tuesday.",
            "openingLine": "Hi, it's Bob.",
            "closingLine": "Thanks!",
            "keyPoints": ["Confirm Tuesday", "  "],
            "suggestedDurationMinutes": "3",
        })

        assert result.key_points == ["Confirm Tuesday"]
        assert result.suggested_duration_minutes == 3

    def test_call_script_missing_key_points(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("job.call_script", {
                "scriptBody": "Hi", "openingLine": "Hi", "closingLine": "Bye", "keyPoints": [],
            })

    def test_call_script_missing_opening_line(self):
        with pytest.raises(InvalidModelOutputError, match="openingLine"):
            parse_task_result("job.call_script", {
                "scriptBody": "Hi", "closingLine": "Bye", "keyPoints": ["a"],
            })

    def test_quote_generate_aliases_and_caps(self, caplog):
        lines = [{"description": f"Item {i}", "qty": "2", "price": "10.5"} for i in range(25)]

        with caplog.at_level(logging.INFO):
            result = parse_task_result("quote.generate", {"lines": lines})

        assert len(result.lines) == MAX_QUOTE_LINES
        assert result.lines[0].quantity == 2
        assert result.lines[0].unit_price == 10.5
        assert result.materials is None
        assert any("[askbob-quote-generate-truncated]" in r.getMessage() for r in caplog.records)

    def test_quote_generate_requires_a_line(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("quote.generate", {"lines": [{"qty": 1}]})

    def test_materials_generate_requires_an_item(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("materials.generate", {"items": []})

    def test_schedule_requires_slots_list(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("job.schedule", {"rationale": "Need more details"})

    def test_schedule_empty_slots_allowed(self):
        result = parse_task_result("job.schedule", {"slots": [], "rationale": "Need more details"})

        assert result.slots == []
        assert result.rationale == "Need more details"

    def test_schedule_skips_incomplete_and_caps(self):
        slots = [
            {"startAt": f"2026-03-0{i}T09:00:00Z", "endAt": f"2026-03-0{i}T11:00:00Z", "label": f"Slot {i}"}
            for i in range(1, 6)
        ]
        slots.append({"startAt": "2026-03-09T09:00:00Z", "label": "No end"})

        result = parse_task_result("job.schedule", {"slots": slots})

        assert len(result.slots) == MAX_SCHEDULE_SUGGESTIONS
        assert result.slots[0].label == "Slot 1"

    def test_followup_requires_rationale(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("job.followup", {"recommendedAction": "Send a text"})

    def test_followup_flags(self):
        result = parse_task_result("job.followup", {
            "recommendedAction": "Send a text",
            "rationale": "Quote is open",
            "shouldSendMessage": "true",
            "steps": [{"label": "Text customer"}, {"detail": "no label"}],
            "suggestedChannel": "SMS",
        })

        assert result.should_send_message is True
        assert result.should_call is False
        assert [step.label for step in result.steps] == ["Text customer"]
        assert result.suggested_channel == "sms"

    def test_post_enrichment_only_canonical_codes(self):
        result = parse_task_result("call.post_enrichment", {
            "summaryParagraph": "Customer booked Tuesday.",
            "suggestedOutcomeCode": "scheduled",
            "suggestedReachedCustomer": "yes",
            "confidenceLabel": "HIGH",
        })

        assert result.suggested_outcome_code is None
        assert result.suggested_reached_customer is True
        assert result.confidence_label == "high"

    def test_post_enrichment_canonical_code(self):
        result = parse_task_result("call.post_enrichment", {
            "summaryParagraph": "Left a voicemail.",
            "suggestedOutcomeCode": "no_answer_left_voicemail",
        })

        assert result.suggested_outcome_code == CallOutcomeCode.NO_ANSWER_LEFT_VOICEMAIL

    def test_live_guidance(self):
        result = parse_task_result("call.live_guidance", {
            "summary": "Leak under sink",
            "questions": ["When did it start?"] * 12,
            "changedRecommendation": "false",
        })

        assert len(result.questions) == 8
        assert result.changed_recommendation is False

    def test_after_call_defaults_urgency(self):
        result = parse_task_result("job.after_call", {
            "afterCallSummary": "Customer wants a quote",
            "recommendedActionLabel": "Send quote",
            "urgencyLevel": "urgent",
        })

        assert result.urgency_level == "normal"

    def test_quote_explain_clamps_index(self):
        result = parse_task_result("quote.explain", {
            "overallExplanation": "Covers parts and labor",
            "lineExplanations": [{"lineIndex": "99", "explanation": "Labor"}],
        })

        assert result.line_explanations[0].index == MAX_QUOTE_LINES - 1

    def test_message_draft_requires_body(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("message.draft", {"summary": "no body"})

    def test_unknown_task(self):
        with pytest.raises(InvalidModelOutputError):
            parse_task_result("job.unknown", {})
