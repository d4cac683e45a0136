"""Service helpers used by the Idea Bank router."""

from typing import Dict, List, Optional

from fastapi import HTTPException

from ideabank.config import logger
from ideabank.core.prompt_sanitizer import detect_prompt_injection
from ideabank.services.idea_bank_service import ErrorCode, IdeaBankError

ERROR_STATUS: Dict[ErrorCode, int] = {
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.PRODUCT_NOT_FOUND: 404,
    ErrorCode.TEMPLATE_NOT_FOUND: 404,
    ErrorCode.TEMPLATE_REQUIRED: 400,
    ErrorCode.ANALYSIS_FAILED: 502,
    ErrorCode.LLM_ERROR: 502,
}


def inspect_untrusted_input(
    user_id: str,
    user_goal: Optional[str],
    upload_descriptions: List[str],
) -> List[str]:
    """Log prompt-injection signals in user text. Never blocks the request."""
    findings: List[str] = []
    for field, text in [("user_goal", user_goal), *(("upload_description", d) for d in upload_descriptions)]:
        result = detect_prompt_injection(text)
        if result["detected"]:
            findings.extend(p for p in result["patterns"] if p not in findings)
            logger.warning(
                "Possible prompt injection in request",
                extra={"user_id": user_id, "field": field, "patterns": result["patterns"]},
            )
    return findings


def to_http_exception(
    error: IdeaBankError, headers: Optional[Dict[str, str]] = None
) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS.get(error.code, 500),
        detail=error.to_dict(),
        headers=headers,
    )
