"""FastAPI router for Idea Bank endpoints."""

from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ideabank.config import logger
from ideabank.models import SuggestResponse, TemplateResponse
from ideabank.services.idea_bank_service import (
    IdeaBankError,
    IdeaBankService,
    SuggestionRequest,
)

from .dependencies import get_idea_bank_service, get_user_id
from .models import (
    AnalyzeResponse,
    InvalidateCacheResponse,
    MatchedTemplatesResponse,
    RateLimitResponse,
    SuggestRequest,
)
from .services import inspect_untrusted_input, to_http_exception

router = APIRouter(prefix="/api/v1/idea-bank", tags=["Idea Bank"])


@router.post("/suggest", response_model=None)
async def suggest(
    payload: SuggestRequest,
    response: Response,
    user_id: str = Depends(get_user_id),
    service: IdeaBankService = Depends(get_idea_bank_service),
) -> Union[SuggestResponse, TemplateResponse]:
    """Generate ad concept suggestions, or slot content in template mode."""

    logger.info(
        "Idea Bank suggest request received",
        extra={
            "user_id": user_id,
            "product_id": payload.product_id,
            "mode": payload.mode,
            "uploads": len(payload.upload_descriptions),
        },
    )
    inspect_untrusted_input(user_id, payload.user_goal, payload.upload_descriptions)

    result = await service.generate_suggestions(
        SuggestionRequest(
            user_id=user_id,
            product_id=payload.product_id,
            user_goal=payload.user_goal,
            upload_descriptions=payload.upload_descriptions,
            max_suggestions=payload.max_suggestions,
            mode=payload.mode,
            template_id=payload.template_id,
        )
    )

    remaining = str(service.rate_limiter.status(user_id)["remaining"])
    if not result.success:
        raise to_http_exception(result.error, headers={"X-RateLimit-Remaining": remaining})

    response.headers["X-RateLimit-Remaining"] = remaining
    response.headers["X-Cache"] = "HIT" if result.from_cache else "MISS"
    return result.response


@router.get("/templates/{product_id}", response_model=MatchedTemplatesResponse)
async def matched_templates(
    product_id: str,
    user_id: str = Depends(get_user_id),
    service: IdeaBankService = Depends(get_idea_bank_service),
) -> MatchedTemplatesResponse:
    """Rank global scene templates against the product's image analysis."""

    matched = await service.get_matched_templates(product_id, user_id)
    if matched is None:
        raise HTTPException(
            status_code=404,
            detail="Unable to match templates for this product",
        )
    return MatchedTemplatesResponse(templates=matched.templates, analysis=matched.analysis)


@router.post("/analyze/{product_id}", response_model=AnalyzeResponse)
async def analyze_product(
    product_id: str,
    force_refresh: bool = Query(False),
    user_id: str = Depends(get_user_id),
    service: IdeaBankService = Depends(get_idea_bank_service),
) -> AnalyzeResponse:
    try:
        outcome = await service.analyze_product(
            product_id, user_id, force_refresh=force_refresh
        )
    except IdeaBankError as exc:
        raise to_http_exception(exc)
    return AnalyzeResponse(analysis=outcome.analysis, from_cache=outcome.from_cache)


@router.delete("/cache", response_model=InvalidateCacheResponse)
async def invalidate_cache(
    product_ids: Optional[List[str]] = Query(None),
    user_id: str = Depends(get_user_id),
    service: IdeaBankService = Depends(get_idea_bank_service),
) -> InvalidateCacheResponse:
    """Drop the caller's cached suggestions, optionally only for some products."""

    await service.invalidate_suggestion_cache(user_id, product_ids)
    return InvalidateCacheResponse(success=True, product_ids=product_ids)


@router.get("/rate-limit", response_model=RateLimitResponse)
async def rate_limit_status(
    user_id: str = Depends(get_user_id),
    service: IdeaBankService = Depends(get_idea_bank_service),
) -> RateLimitResponse:
    return RateLimitResponse(**service.rate_limiter.status(user_id))
