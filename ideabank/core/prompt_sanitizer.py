"""
Neutralizes prompt-injection attempts in text headed for an LLM prompt.

Rules are ordered ``InjectionRule`` pairs. Matches are replaced with a visible
token, never deleted. Detection only classifies; the request boundary logs it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from ideabank.config import logger

FILTERED_TOKEN = "[filtered]"

DEFAULT_MAX_LENGTH = 2000
KB_MAX_LENGTH = 5000
USER_GOAL_MAX_LENGTH = 500
OUTPUT_MAX_LENGTH = 500
GENERATED_PROMPT_MAX_LENGTH = 1000


@dataclass(frozen=True)
class InjectionRule:
    pattern: re.Pattern
    category: str


def _rule(pattern: str, category: str) -> InjectionRule:
    return InjectionRule(re.compile(pattern, re.IGNORECASE), category)


ROLE_OVERRIDE_RULES = (
    _rule(r"\b(system|assistant|human|user)\s*:", "role_override"),
    _rule(r"\[INST\]|\[/INST\]", "role_override"),
    _rule(r"<\|.*?\|>", "role_override"),
    _rule(r"<<\s*SYS\s*>>|<<\s*/SYS\s*>>", "role_override"),
)

INSTRUCTION_OVERRIDE_RULES = (
    _rule(
        r"\b(ignore|disregard)\s+(?:all\s+)?(?:of\s+)?(?:the\s+|your\s+)?"
        r"(previous|above|all|prior|earlier)\s+(instructions?|prompts?|context|rules)",
        "instruction_override",
    ),
    _rule(
        r"\bforget\s+(?:all\s+)?(previous|above|all|everything|prior)\b",
        "instruction_override",
    ),
    _rule(r"\byou\s+are\s+now\b", "instruction_override"),
    _rule(r"\bpretend\s+to\s+be\b", "instruction_override"),
    _rule(r"\bact\s+as\s+if\b", "instruction_override"),
    _rule(r"\bnew\s+instructions?\s*:", "instruction_override"),
    _rule(r"\boverride\s+(previous|all|system)\b", "instruction_override"),
    _rule(r"\bfrom\s+now\s+on,?\s+(you|ignore|disregard)\b", "instruction_override"),
)

EXTRACTION_RULES = (
    _rule(
        r"\b(repeat|show(?:\s+me)?|reveal|output|print|what\s+(?:are|is))\s+"
        r"(your|the)\s+(instructions?|system\s*prompt|rules|initial\s+prompt)",
        "extraction",
    ),
    _rule(r"\bsystem\s*prompt\b", "extraction"),
)

CODE_BLOCK_RULE = _rule(r"```[\s\S]*?```", "code_block")

# Applied in this order by sanitize_for_prompt.
SANITIZE_RULES = ROLE_OVERRIDE_RULES + INSTRUCTION_OVERRIDE_RULES + EXTRACTION_RULES
DETECTION_RULES = INSTRUCTION_OVERRIDE_RULES + EXTRACTION_RULES

_ROLE_MARKER = re.compile(r"\b(system|assistant)\s*:", re.IGNORECASE)


def sanitize_for_prompt(
    text: Optional[str],
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
    strip_code_blocks: bool = True,
    strip_newlines: bool = False,
    context: str = "unknown",
) -> str:
    """
    Neutralize injection patterns and bound the length of ``text``.

    Never raises; ``None`` and empty input produce an empty string.

    Args:
        text: Untrusted text
        max_length: Hard cap applied after filtering
        strip_code_blocks: Replace fenced code blocks
        strip_newlines: Collapse newlines into spaces
        context: Label recorded with detection logs

    Returns:
        The filtered text, at most ``max_length`` characters long
    """
    if not text:
        return ""

    result = str(text)
    hits: List[str] = []

    rules = ((CODE_BLOCK_RULE,) if strip_code_blocks else ()) + SANITIZE_RULES
    for rule in rules:
        result, count = rule.pattern.subn(FILTERED_TOKEN, result)
        if count:
            hits.append(rule.category)

    result = re.sub(r"[<>]", "", result)

    if strip_newlines:
        result = re.sub(r"[\r\n]+", " ", result)

    result = result.strip()[:max_length]

    if hits:
        logger.warning(
            "Prompt content filtered",
            extra={
                "context": context,
                "categories": sorted(set(hits)),
                "original_length": len(text),
            },
        )
    return result


def sanitize_kb_content(text: Optional[str], max_length: int = KB_MAX_LENGTH) -> str:
    """Sanitize retrieved knowledge-base text, which gets a larger length limit."""
    return sanitize_for_prompt(
        text,
        max_length=max_length,
        strip_code_blocks=True,
        strip_newlines=False,
        context="kb_content",
    )


def sanitize_user_goal(text: Optional[str]) -> str:
    return sanitize_for_prompt(
        text,
        max_length=USER_GOAL_MAX_LENGTH,
        strip_newlines=True,
        context="user_goal",
    )


def detect_prompt_injection(text: Optional[str]) -> Dict[str, Union[bool, List[str]]]:
    """Classify ``text`` without modifying it."""
    if not text:
        return {"detected": False, "patterns": []}

    patterns: List[str] = []
    for rule in DETECTION_RULES:
        if rule.pattern.search(text) and rule.category not in patterns:
            patterns.append(rule.category)

    if len(_ROLE_MARKER.findall(text)) > 2:
        patterns.append("excessive_role_markers")

    return {"detected": bool(patterns), "patterns": patterns}


def sanitize_output_string(value: object, max_length: int = OUTPUT_MAX_LENGTH) -> str:
    """Clean a single string field taken from model output."""
    if not isinstance(value, str):
        return ""
    return re.sub(r"[<>]", "", value).strip()[:max_length]


def sanitize_generated_prompt(
    value: object, max_length: int = GENERATED_PROMPT_MAX_LENGTH
) -> str:
    if not isinstance(value, str):
        return ""
    cleaned = re.sub(r"[<>]", "", value)
    cleaned = re.sub(r"[\r\n]+", " ", cleaned)
    return cleaned.strip()[:max_length]


__all__ = [
    "FILTERED_TOKEN",
    "InjectionRule",
    "detect_prompt_injection",
    "sanitize_for_prompt",
    "sanitize_generated_prompt",
    "sanitize_kb_content",
    "sanitize_output_string",
    "sanitize_user_goal",
]
