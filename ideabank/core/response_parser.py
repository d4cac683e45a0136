"""Extraction, repair and validation of structured model output."""

from __future__ import annotations

import json
import math
import re
import time
from typing import Any, Dict, List, Optional

from ideabank.config import logger
from ideabank.core.prompt_sanitizer import (
    sanitize_generated_prompt,
    sanitize_output_string,
)
from ideabank.models import SlotSuggestion, SourcesUsed, Suggestion

DEFAULT_SUGGESTION_CONFIDENCE = 70
MAX_LIST_ITEMS = 5
HEADER_TEXT_MAX = 60
BODY_TEXT_MAX = 150
CTA_MAX = 30
SUMMARY_FALLBACK_CHARS = 80

VALID_MODES = ("exact_insert", "inspiration", "standard")

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*$")


class ResponseParseError(ValueError):
    """Raised when model output holds no recoverable JSON array."""


def _extract_candidate(raw_text: str) -> str:
    fenced = _FENCED_BLOCK.search(raw_text)
    if fenced:
        return fenced.group(1).strip()

    start = raw_text.find("[")
    if start == -1:
        return ""
    end = raw_text.rfind("]")
    if end > start:
        return raw_text[start : end + 1].strip()
    # Truncated output: no closing bracket after the opening one.
    return raw_text[start:].strip()


def _repair_truncated(candidate: str) -> str:
    repaired = _TRAILING_COMMA.sub("", candidate.rstrip())
    missing_braces = repaired.count("{") - repaired.count("}")
    missing_brackets = repaired.count("[") - repaired.count("]")
    return repaired + "}" * max(0, missing_braces) + "]" * max(0, missing_brackets)


def parse_json_array(raw_text: Optional[str]) -> List[Any]:
    """
    Recover a JSON array from free-form model text.

    Args:
        raw_text: Model output, possibly wrapped in prose or a code fence

    Returns:
        The decoded list

    Raises:
        ResponseParseError: If no array can be extracted or repaired
    """
    if not raw_text or not raw_text.strip():
        raise ResponseParseError("Model response was empty")

    candidate = _extract_candidate(raw_text)
    if not candidate.startswith("["):
        raise ResponseParseError("No JSON array found in model response")

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        repaired = _repair_truncated(candidate)
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as exc:
            raise ResponseParseError(
                f"Model response is not valid JSON after repair: {exc}"
            ) from exc
        logger.info(
            "Repaired truncated model JSON",
            extra={"original_length": len(candidate), "repaired_length": len(repaired)},
        )

    if not isinstance(data, list):
        raise ResponseParseError("Model response JSON is not an array")
    return data


def _field(record: Dict[str, Any], name: str, camel: Optional[str] = None) -> Any:
    value = record.get(name)
    if value is None and camel:
        value = record.get(camel)
    return value


def clamp_confidence(value: Any, default: int) -> int:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return default
    if not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return int(min(100, max(0, round(value))))


def _string_list(value: Any, limit: int = MAX_LIST_ITEMS) -> List[str]:
    if not isinstance(value, list):
        return []
    cleaned = [sanitize_output_string(item) for item in value]
    return [item for item in cleaned if item][:limit]


def _optional_string(value: Any, max_length: int) -> Optional[str]:
    cleaned = sanitize_output_string(value, max_length)
    return cleaned or None


def parse_suggestions(
    raw_text: str,
    *,
    max_suggestions: int,
    vision_used: bool,
    kb_used: bool,
    templates_used: bool,
    now: Optional[float] = None,
) -> List[Suggestion]:
    """Validate freestyle suggestion records; records without a prompt are dropped."""
    records = parse_json_array(raw_text)
    stamp = int((now if now is not None else time.time()) * 1000)
    sources = SourcesUsed(
        vision_analysis=vision_used,
        kb_retrieval=kb_used,
        web_search=False,
        template_matching=templates_used,
    )

    suggestions: List[Suggestion] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning("Dropped non-object suggestion record", extra={"index": index})
            continue

        prompt = sanitize_generated_prompt(record.get("prompt"))
        if not prompt:
            logger.warning("Dropped suggestion without prompt", extra={"index": index})
            continue

        mode = record.get("mode")
        template_id = _field(record, "template_id", "templateId")
        suggestions.append(
            Suggestion(
                id=f"suggestion-{stamp}-{index}",
                summary=sanitize_output_string(record.get("summary"))
                or f"{prompt[:SUMMARY_FALLBACK_CHARS]}...",
                prompt=prompt,
                mode=mode if mode in VALID_MODES else "standard",
                template_ids=[str(template_id)] if template_id else None,
                reasoning=sanitize_output_string(record.get("reasoning")),
                confidence=clamp_confidence(
                    record.get("confidence"), DEFAULT_SUGGESTION_CONFIDENCE
                ),
                sources_used=sources.model_copy(),
                recommended_platform=_optional_string(
                    _field(record, "recommended_platform", "recommendedPlatform"), 50
                ),
                recommended_aspect_ratio=_optional_string(
                    _field(record, "recommended_aspect_ratio", "recommendedAspectRatio"),
                    20,
                ),
            )
        )

    return suggestions[:max_suggestions]


def parse_slot_suggestions(raw_text: str, *, max_suggestions: int = 3) -> List[SlotSuggestion]:
    """Validate template slot records, applying defaults and copy length caps."""
    records = parse_json_array(raw_text)

    slots: List[SlotSuggestion] = []
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            logger.warning("Dropped non-object slot record", extra={"index": index})
            continue

        slots.append(
            SlotSuggestion(
                product_highlights=_string_list(
                    _field(record, "product_highlights", "productHighlights")
                ),
                product_placement=sanitize_output_string(
                    _field(record, "product_placement", "productPlacement")
                )
                or "center of frame",
                details_to_emphasize=_string_list(
                    _field(record, "details_to_emphasize", "detailsToEmphasize")
                ),
                scale_reference=_optional_string(
                    _field(record, "scale_reference", "scaleReference"), 500
                ),
                header_text=_optional_string(
                    _field(record, "header_text", "headerText"), HEADER_TEXT_MAX
                ),
                body_text=_optional_string(
                    _field(record, "body_text", "bodyText"), BODY_TEXT_MAX
                ),
                cta_suggestion=_optional_string(
                    _field(record, "cta_suggestion", "ctaSuggestion"), CTA_MAX
                ),
                color_harmony=_string_list(_field(record, "color_harmony", "colorHarmony")),
                lighting_notes=sanitize_output_string(
                    _field(record, "lighting_notes", "lightingNotes")
                )
                or "Natural lighting",
                confidence=clamp_confidence(
                    record.get("confidence"), DEFAULT_SUGGESTION_CONFIDENCE
                ),
                reasoning=sanitize_output_string(record.get("reasoning"))
                or "Product-template compatibility analysis",
            )
        )

    return slots[:max_suggestions]


__all__ = [
    "ResponseParseError",
    "clamp_confidence",
    "parse_json_array",
    "parse_slot_suggestions",
    "parse_suggestions",
]
