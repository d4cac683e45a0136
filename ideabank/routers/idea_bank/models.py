"""Pydantic models used by the Idea Bank router."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ideabank.models import AdSceneTemplate, ProductAnalysis


class SuggestRequest(BaseModel):
    """Request payload for suggestion generation."""

    product_id: Optional[str] = None
    user_goal: Optional[str] = Field(None, max_length=2000)
    upload_descriptions: List[str] = Field(default_factory=list, max_length=6)
    max_suggestions: int = Field(3, ge=1, le=5)
    mode: Literal["freestyle", "template"] = "freestyle"
    template_id: Optional[str] = None


class MatchedTemplatesResponse(BaseModel):
    templates: List[AdSceneTemplate]
    analysis: ProductAnalysis


class AnalyzeResponse(BaseModel):
    """Product analysis along with whether it was served from cache."""

    analysis: ProductAnalysis
    from_cache: bool


class InvalidateCacheResponse(BaseModel):
    success: bool
    product_ids: Optional[List[str]] = None


class RateLimitResponse(BaseModel):
    """Rate limit status details for the requester."""

    allowed: bool
    remaining: int
    reset_at: Optional[str] = None
    total: int
    limit: int
