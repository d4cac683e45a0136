"""Tests for JSON extraction and suggestion validation."""

import json

import pytest

from ideabank.core.response_parser import (
    ResponseParseError,
    clamp_confidence,
    parse_json_array,
    parse_slot_suggestions,
    parse_suggestions,
)

from .conftest import SLOTS_TEXT, SUGGESTIONS_TEXT

NOW = 1_700_000_000.0


def _parse(raw, max_suggestions=5, **kwargs):
    options = {"vision_used": True, "kb_used": False, "templates_used": True, "now": NOW}
    options.update(kwargs)
    return parse_suggestions(raw, max_suggestions=max_suggestions, **options)


class TestParseJsonArray:
    def setup_method(self):
        self.expected = json.loads(SUGGESTIONS_TEXT)

    def test_clean_json(self):
        assert parse_json_array(SUGGESTIONS_TEXT) == self.expected

    def test_fenced_json(self):
        assert parse_json_array(f"Here you go:\n```json\n{SUGGESTIONS_TEXT}\n```") == self.expected

    def test_truncated_json_is_repaired(self):
        assert SUGGESTIONS_TEXT.endswith("}]")
        assert parse_json_array(SUGGESTIONS_TEXT[:-2]) == self.expected

    def test_truncated_with_trailing_comma(self):
        assert parse_json_array('[{"prompt": "a"},') == [{"prompt": "a"}]

    def test_array_inside_prose(self):
        assert parse_json_array('Sure! [{"prompt": "a"}] Enjoy.') == [{"prompt": "a"}]

    @pytest.mark.parametrize("raw", ["", "   ", "no json here", '{"prompt": "a"}'])
    def test_unrecoverable_input_raises(self, raw):
        with pytest.raises(ResponseParseError):
            parse_json_array(raw)

    def test_garbage_after_bracket_raises(self):
        with pytest.raises(ResponseParseError):
            parse_json_array("[this is not json")


class TestClampConfidence:
    def test_bounds(self):
        assert clamp_confidence(150, 70) == 100
        assert clamp_confidence(-5, 70) == 0
        assert clamp_confidence(0, 70) == 0

    def test_defaults_for_missing_or_invalid(self):
        assert clamp_confidence(None, 70) == 70
        assert clamp_confidence("high", 70) == 70
        assert clamp_confidence(True, 70) == 70

    def test_numeric_strings(self):
        assert clamp_confidence("85%", 70) == 85

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf"), "inf", "NaN", "-Infinity"])
    def test_non_finite_values_use_default(self, value):
        assert clamp_confidence(value, 70) == 70

    def test_huge_integer_is_clamped(self):
        assert clamp_confidence(10**400, 70) == 100


class TestParseSuggestions:
    def test_confidence_is_clamped_to_100(self):
        suggestions = _parse(SUGGESTIONS_TEXT)

        assert [s.confidence for s in suggestions] == [88, 100]

    def test_fields_and_sources(self):
        first = _parse(SUGGESTIONS_TEXT)[0]

        assert first.id == f"suggestion-{int(NOW * 1000)}-0"
        assert first.mode == "inspiration"
        assert first.template_ids == ["tpl-floor"]
        assert first.recommended_platform == "instagram"
        assert first.recommended_aspect_ratio == "4:5"
        assert first.sources_used.vision_analysis is True
        assert first.sources_used.kb_retrieval is False
        assert first.sources_used.web_search is False
        assert first.sources_used.template_matching is True

    def test_records_without_prompt_are_dropped(self):
        raw = json.dumps([{"summary": "no prompt"}, {"prompt": "Oak floor at dusk"}, "junk"])
        suggestions = _parse(raw)

        assert len(suggestions) == 1
        assert suggestions[0].prompt == "Oak floor at dusk"
        assert suggestions[0].id.endswith("-1")

    def test_defaults_for_missing_fields(self):
        raw = json.dumps([{"prompt": "p" * 120, "mode": "surreal"}])
        suggestion = _parse(raw)[0]

        assert suggestion.mode == "standard"
        assert suggestion.confidence == 70
        assert suggestion.summary == "p" * 80 + "..."
        assert suggestion.template_ids is None

    def test_camel_case_keys(self):
        raw = json.dumps(
            [{"prompt": "a", "templateId": "t1", "recommendedPlatform": "tiktok"}]
        )
        suggestion = _parse(raw)[0]

        assert suggestion.template_ids == ["t1"]
        assert suggestion.recommended_platform == "tiktok"

    def test_truncated_to_max_suggestions(self):
        raw = json.dumps([{"prompt": f"idea {i}"} for i in range(6)])

        assert len(_parse(raw, max_suggestions=3)) == 3

    def test_empty_array_is_allowed(self):
        assert _parse("[]") == []

    def test_non_finite_confidence_tokens(self):
        raw = (
            '[{"prompt": "A rustic oak floor at dusk", "confidence": NaN},'
            ' {"prompt": "Oak stairs", "confidence": Infinity},'
            ' {"prompt": "Oak hallway", "confidence": "inf"}]'
        )

        assert [s.confidence for s in _parse(raw)] == [70, 70, 70]


class TestParseSlotSuggestions:
    def test_values_are_parsed(self):
        slots = parse_slot_suggestions(SLOTS_TEXT)

        assert len(slots) == 2
        assert slots[0].header_text == "Floors that feel like home"
        assert slots[1].scale_reference == "a sofa leg"
        assert slots[1].confidence == 91

    def test_defaults_and_caps(self):
        raw = json.dumps(
            [
                {
                    "product_highlights": ["a", "b", "c", "d", "e", "f", 7],
                    "header_text": "h" * 100,
                    "body_text": "b" * 200,
                    "cta_suggestion": "c" * 40,
                }
            ]
        )
        slot = parse_slot_suggestions(raw)[0]

        assert slot.product_highlights == ["a", "b", "c", "d", "e"]
        assert slot.product_placement == "center of frame"
        assert slot.lighting_notes == "Natural lighting"
        assert slot.reasoning == "Product-template compatibility analysis"
        assert slot.confidence == 70
        assert len(slot.header_text) == 60
        assert len(slot.body_text) == 150
        assert len(slot.cta_suggestion) == 30

    def test_non_finite_slot_confidence(self):
        slots = parse_slot_suggestions('[{"confidence": "Infinity"}, {"confidence": -Infinity}]')

        assert [slot.confidence for slot in slots] == [70, 70]

    def test_limited_to_max(self):
        raw = json.dumps([{} for _ in range(5)])

        assert len(parse_slot_suggestions(raw, max_suggestions=3)) == 3
