"""Idea Bank orchestration: turns a product and a goal into ranked ad concepts."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ideabank.config import (
    ENABLE_DEBUG_CONTEXT,
    ENABLE_DURABLE_CACHE,
    GEMINI_REASONING_MODEL,
    logger,
)
from ideabank.core.cache import (
    IDEA_SUGGESTIONS_TTL,
    MemoryCacheBackend,
    ResponseCache,
    SupabaseCacheBackend,
    content_fingerprint,
    ideas_invalidation_pattern,
    suggestion_cache_key,
)
from ideabank.core.contracts import KnowledgeBaseClient, LLMClient, Storage
from ideabank.core.gemini import is_rate_limit_error
from ideabank.core.prompt_templates import (
    PromptContext,
    build_kb_query,
    build_suggestion_prompt,
    build_template_slot_prompt,
    merge_template_with_insights,
)
from ideabank.core.prompt_sanitizer import sanitize_kb_content
from ideabank.core.rate_limit import FixedWindowRateLimiter
from ideabank.core.response_parser import (
    ResponseParseError,
    parse_slot_suggestions,
    parse_suggestions,
)
from ideabank.core.template_matcher import match_templates
from ideabank.models import (
    AdSceneTemplate,
    AnalysisStatus,
    GenerationRecipe,
    Product,
    ProductAnalysis,
    SuggestResponse,
    TemplateContext,
    TemplateResponse,
)
from ideabank.services.product_knowledge import ProductKnowledgeService
from ideabank.services.recipe_builder import build_generation_recipe
from ideabank.services.vision_service import (
    AnalysisOutcome,
    VisionAnalysisError,
    VisionAnalysisService,
    generate_image_fingerprint,
)

FREESTYLE_MAX_SUGGESTIONS = 5
TEMPLATE_MAX_SUGGESTIONS = 3
DEFAULT_MAX_SUGGESTIONS = 3
LEARNED_PATTERN_LIMIT = 3
KB_MAX_RESULTS = 5

LLM_CONFIG = {"temperature": 0.7, "max_output_tokens": 8000}
LLM_RATE_LIMIT_MESSAGE = (
    "AI service is rate limited right now. Please wait a moment and try again."
)
_RATE_LIMIT_TEXT = re.compile(r"rate limit|429|resource_exhausted", re.IGNORECASE)


def _log(level: int, message: str, **context: Any) -> None:
    """Helper to emit structured logs with contextual metadata."""
    logger.log(level, "%s | context=%s", message, context)


class ErrorCode(str, Enum):
    RATE_LIMITED = "RATE_LIMITED"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"
    LLM_ERROR = "LLM_ERROR"
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    TEMPLATE_REQUIRED = "TEMPLATE_REQUIRED"


class IdeaBankError(Exception):
    """Typed pipeline failure surfaced to callers."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code.value, "message": self.message}


@dataclass(slots=True)
class SuggestionRequest:
    user_id: str
    product_id: Optional[str] = None
    user_goal: Optional[str] = None
    upload_descriptions: List[str] = field(default_factory=list)
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    mode: str = "freestyle"
    template_id: Optional[str] = None
    skip_rate_limit_check: bool = False


@dataclass(slots=True)
class SuggestionResult:
    success: bool
    response: Optional[Union[SuggestResponse, TemplateResponse]] = None
    error: Optional[IdeaBankError] = None
    from_cache: bool = False


@dataclass(slots=True)
class StageOutcome:
    """Result of an optional stage: a value, or absent with a reason."""

    value: Any = None
    reason: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.reason is None

    @classmethod
    def ok(cls, value: Any) -> "StageOutcome":
        return cls(value=value)

    @classmethod
    def absent(cls, reason: str) -> "StageOutcome":
        return cls(reason=reason)


@dataclass(slots=True)
class MatchedTemplates:
    templates: List[AdSceneTemplate]
    analysis: ProductAnalysis


def _clamp_suggestions(requested: int, template_mode: bool) -> int:
    ceiling = TEMPLATE_MAX_SUGGESTIONS if template_mode else FREESTYLE_MAX_SUGGESTIONS
    return max(1, min(requested or DEFAULT_MAX_SUGGESTIONS, ceiling))


class IdeaBankService:
    """
    Runs the suggestion pipeline.

    Stage order: intake, rate limit, template resolve (template mode), subject
    resolve, cache lookup (freestyle), then the optional enrichment stages,
    the model call, parsing, recipe assembly and cache write. Only subject
    resolution and response parsing abort a request; every optional stage
    degrades to an absent ``StageOutcome``.
    """

    def __init__(
        self,
        *,
        storage: Storage,
        vision: VisionAnalysisService,
        llm_client: LLMClient,
        kb_client: Optional[KnowledgeBaseClient] = None,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        knowledge: Optional[ProductKnowledgeService] = None,
        reasoning_model: str = GEMINI_REASONING_MODEL,
        include_debug_context: bool = ENABLE_DEBUG_CONTEXT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.vision = vision
        self.llm_client = llm_client
        self.kb_client = kb_client
        self.cache = cache or ResponseCache(clock=clock)
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            name="idea_bank_suggest", clock=clock
        )
        self.knowledge = knowledge or ProductKnowledgeService(storage, self.cache)
        self.reasoning_model = reasoning_model
        self.include_debug_context = include_debug_context
        self._clock = clock

    # -------------------------
    # Lifecycle
    # -------------------------
    def start(self) -> None:
        """Start background expiry sweeps of the in-process registries."""
        self.rate_limiter.registry.start()
        self.vision.rate_limiter.registry.start()
        self.cache.start()

    async def stop(self) -> None:
        await self.rate_limiter.registry.stop()
        await self.vision.rate_limiter.registry.stop()
        await self.cache.stop()

    # -------------------------
    # Exposed operations
    # -------------------------
    async def generate_suggestions(self, request: SuggestionRequest) -> SuggestionResult:
        """
        Generate ad concept suggestions (freestyle) or template slot fills.

        Args:
            request: Subject, goal, mode and limits for this generation

        Returns:
            SuggestionResult with either a response or a typed error
        """
        started = self._clock()
        try:
            response, from_cache = await self._run_pipeline(request, started)
        except IdeaBankError as exc:
            _log(
                logging.WARNING,
                "suggestions_failed",
                user_id=request.user_id,
                product_id=request.product_id,
                mode=request.mode,
                code=exc.code.value,
                error=exc.message,
            )
            return SuggestionResult(success=False, error=exc)

        _log(
            logging.INFO,
            "suggestions_completed",
            user_id=request.user_id,
            product_id=request.product_id,
            mode=request.mode,
            from_cache=from_cache,
            duration_ms=int((self._clock() - started) * 1000),
        )
        return SuggestionResult(success=True, response=response, from_cache=from_cache)

    async def get_matched_templates(
        self, product_id: str, user_id: str
    ) -> Optional[MatchedTemplates]:
        """Rank global templates for a product; None when it cannot be analyzed."""
        try:
            product = await self.storage.get_product_by_id(product_id)
        except Exception as exc:
            _log(logging.ERROR, "template_match_product_error", product_id=product_id, error=str(exc))
            return None
        if product is None:
            return None

        try:
            outcome = await self.vision.analyze_product(product, user_id)
        except VisionAnalysisError as exc:
            _log(
                logging.WARNING,
                "template_match_analysis_error",
                product_id=product_id,
                code=exc.code,
                error=exc.message,
            )
            return None

        templates = await self.storage.list_templates(is_global=True)
        return MatchedTemplates(
            templates=match_templates(templates, outcome.analysis),
            analysis=outcome.analysis,
        )

    async def invalidate_suggestion_cache(
        self, user_id: str, product_ids: Optional[List[str]] = None
    ) -> None:
        """Drop cached suggestions for a user, optionally scoped to products."""
        await self.cache.invalidate(ideas_invalidation_pattern(user_id, product_ids))

    async def analyze_product(
        self, product_id: str, user_id: str, *, force_refresh: bool = False
    ) -> AnalysisOutcome:
        """
        Analyze a product image on demand.

        Raises:
            IdeaBankError: PRODUCT_NOT_FOUND, RATE_LIMITED or ANALYSIS_FAILED
        """
        product = await self._resolve_product(product_id)
        try:
            return await self.vision.analyze_product(
                product, user_id, force_refresh=force_refresh
            )
        except VisionAnalysisError as exc:
            if exc.code == "RATE_LIMITED":
                raise IdeaBankError(ErrorCode.RATE_LIMITED, exc.message) from exc
            raise IdeaBankError(ErrorCode.ANALYSIS_FAILED, exc.message) from exc

    # -------------------------
    # Pipeline
    # -------------------------
    async def _run_pipeline(
        self, request: SuggestionRequest, started: float
    ) -> tuple:
        uploads = [desc.strip() for desc in request.upload_descriptions if desc and desc.strip()]
        if not request.product_id and not uploads:
            raise IdeaBankError(
                ErrorCode.PRODUCT_NOT_FOUND,
                "Provide a product or at least one uploaded image description",
            )

        template_mode = request.mode == "template"
        max_suggestions = _clamp_suggestions(request.max_suggestions, template_mode)
        ctx = {"user_id": request.user_id, "product_id": request.product_id}

        if not request.skip_rate_limit_check:
            status = self.rate_limiter.check(request.user_id)
            if not status["allowed"]:
                raise IdeaBankError(
                    ErrorCode.RATE_LIMITED,
                    "Too many requests. Please wait before generating more ideas.",
                )

        template: Optional[AdSceneTemplate] = None
        if template_mode:
            if not request.template_id:
                raise IdeaBankError(
                    ErrorCode.TEMPLATE_REQUIRED, "Template mode requires a template_id"
                )
            template = await self._resolve_template(request.template_id)

        product = await self._resolve_product(request.product_id) if request.product_id else None

        cache_key: Optional[str] = None
        fingerprint: Optional[str] = None
        if not template_mode and not uploads and product is not None:
            cache_key = suggestion_cache_key(
                request.user_id, [product.id], started, user_goal=request.user_goal
            )
            fingerprint = content_fingerprint(
                request.user_id,
                product.id,
                generate_image_fingerprint(product),
                request.user_goal or "",
                max_suggestions,
            )
            cached = await self.cache.lookup(cache_key, fingerprint)
            if cached is not None:
                _log(logging.INFO, "suggestions_cache_hit", key=cache_key, **ctx)
                return SuggestResponse.model_validate(cached), True

        vision = await self._vision_stage(product, request.user_id, ctx)
        analysis: Optional[ProductAnalysis] = vision.value

        brand, enhanced, kb = await asyncio.gather(
            self._run_optional(
                "brand_profile_fetch",
                lambda: self.storage.get_brand_profile_by_user_id(request.user_id),
                ctx,
            ),
            self._run_optional(
                "enhanced_context_build",
                (lambda: self.knowledge.build_enhanced_context(product, request.user_id))
                if product is not None
                else None,
                ctx,
            ),
            self._run_optional(
                "kb_retrieval",
                (lambda: self._query_kb(analysis, product, uploads, request.user_goal))
                if self.kb_client is not None
                else None,
                ctx,
            ),
        )

        matched = StageOutcome.absent("template_mode")
        if not template_mode:
            matched = await self._run_optional(
                "template_match",
                (lambda: self._match(analysis)) if analysis is not None else None,
                ctx,
            )

        patterns = await self._run_optional(
            "learned_pattern_fetch",
            lambda: self.storage.get_relevant_patterns(
                request.user_id,
                category=(analysis.category if analysis else None)
                or (product.category if product else None),
                industry=brand.value.industry if brand.present else None,
                max_patterns=LEARNED_PATTERN_LIMIT,
            ),
            ctx,
        )

        prompt_ctx = PromptContext(
            product=product,
            analysis=analysis,
            upload_descriptions=uploads,
            enhanced_context=enhanced.value,
            brand_profile=brand.value,
            kb_context=kb.value,
            matched_templates=matched.value or [],
            learned_patterns=patterns.value or [],
            user_goal=request.user_goal,
            max_suggestions=max_suggestions,
        )
        status = AnalysisStatus(
            vision_complete=analysis is not None,
            kb_queried=kb.present,
            templates_matched=1 if template_mode else len(prompt_ctx.matched_templates),
            web_search_used=False,
            product_knowledge_used=enhanced.present,
            upload_descriptions_used=len(uploads),
            learned_patterns_used=len(prompt_ctx.learned_patterns),
        )

        if template_mode:
            response = await self._template_branch(template, prompt_ctx, status, started, ctx)
            return response, False

        response = await self._freestyle_branch(prompt_ctx, status, kb.present, started, ctx)

        if cache_key is not None:
            await self.cache.store(
                cache_key,
                response.model_dump(mode="json"),
                IDEA_SUGGESTIONS_TTL,
                fingerprint=fingerprint,
            )
        return response, False

    async def _freestyle_branch(
        self,
        prompt_ctx: PromptContext,
        status: AnalysisStatus,
        kb_used: bool,
        started: float,
        ctx: Dict[str, Any],
    ) -> SuggestResponse:
        raw = await self._call_llm(build_suggestion_prompt(prompt_ctx), ctx)
        try:
            suggestions = parse_suggestions(
                raw,
                max_suggestions=prompt_ctx.max_suggestions,
                vision_used=prompt_ctx.analysis is not None,
                kb_used=kb_used,
                templates_used=bool(prompt_ctx.matched_templates),
                now=self._clock(),
            )
        except ResponseParseError as exc:
            _log(logging.ERROR, "suggestions_parse_error", error=str(exc), raw=raw[:500], **ctx)
            raise IdeaBankError(ErrorCode.LLM_ERROR, "Failed to parse AI suggestions") from exc

        recipe = await self._recipe(prompt_ctx, prompt_ctx.matched_templates, started, ctx)
        return SuggestResponse(suggestions=suggestions, analysis_status=status, recipe=recipe)

    async def _template_branch(
        self,
        template: AdSceneTemplate,
        prompt_ctx: PromptContext,
        status: AnalysisStatus,
        started: float,
        ctx: Dict[str, Any],
    ) -> TemplateResponse:
        raw = await self._call_llm(build_template_slot_prompt(template, prompt_ctx), ctx)
        try:
            slots = parse_slot_suggestions(raw, max_suggestions=prompt_ctx.max_suggestions)
        except ResponseParseError as exc:
            _log(logging.ERROR, "slot_parse_error", error=str(exc), raw=raw[:500], **ctx)
            raise IdeaBankError(ErrorCode.LLM_ERROR, "Failed to parse template slot suggestions") from exc

        if not slots:
            raise IdeaBankError(ErrorCode.LLM_ERROR, "No slot suggestions generated")

        best = max(slots, key=lambda slot: slot.confidence)
        product_name = prompt_ctx.product.name if prompt_ctx.product else None
        recipe = await self._recipe(prompt_ctx, [template], started, ctx)

        return TemplateResponse(
            slot_suggestions=slots,
            merged_prompt=merge_template_with_insights(template, best, product_name),
            template=TemplateContext(
                id=template.id,
                title=template.title,
                category=template.category,
                aspect_ratio_hints=template.aspect_ratio_hints,
                platform_hints=template.platform_hints,
                lighting_style=template.lighting_style,
                environment=template.environment,
            ),
            analysis_status=status,
            recipe=recipe,
        )

    # -------------------------
    # Stage helpers
    # -------------------------
    async def _run_optional(
        self,
        stage: str,
        operation: Optional[Callable[[], Awaitable[Any]]],
        ctx: Dict[str, Any],
    ) -> StageOutcome:
        if operation is None:
            return StageOutcome.absent("skipped")
        try:
            value = await operation()
        except Exception as exc:
            _log(logging.WARNING, f"{stage}_error", stage=stage, error=str(exc), **ctx)
            return StageOutcome.absent(f"error: {exc}")
        if value is None:
            return StageOutcome.absent("empty")
        return StageOutcome.ok(value)

    async def _vision_stage(
        self, product: Optional[Product], user_id: str, ctx: Dict[str, Any]
    ) -> StageOutcome:
        if product is None or not product.image_url:
            return StageOutcome.absent("no_image")

        async def _analyze() -> ProductAnalysis:
            outcome = await self.vision.analyze_product(product, user_id)
            return outcome.analysis

        return await self._run_optional("vision_analysis", _analyze, ctx)

    async def _query_kb(
        self,
        analysis: Optional[ProductAnalysis],
        product: Optional[Product],
        uploads: List[str],
        user_goal: Optional[str],
    ) -> Optional[str]:
        query = build_kb_query(
            analysis=analysis, product=product, upload_descriptions=uploads, user_goal=user_goal
        )
        result = await self.kb_client.query(query, max_results=KB_MAX_RESULTS)
        return sanitize_kb_content(result.context) if result else None

    async def _match(self, analysis: ProductAnalysis) -> List[AdSceneTemplate]:
        templates = await self.storage.list_templates(is_global=True)
        return match_templates(templates, analysis)

    async def _recipe(
        self,
        prompt_ctx: PromptContext,
        templates: List[AdSceneTemplate],
        started: float,
        ctx: Dict[str, Any],
    ) -> Optional[GenerationRecipe]:
        async def _build() -> Optional[GenerationRecipe]:
            return build_generation_recipe(
                product=prompt_ctx.product,
                enhanced_context=prompt_ctx.enhanced_context,
                matched_templates=templates,
                brand_profile=prompt_ctx.brand_profile,
                build_start_time=started,
                include_debug=self.include_debug_context,
                clock=self._clock,
            )

        outcome = await self._run_optional("recipe_build", _build, ctx)
        return outcome.value

    async def _call_llm(self, prompt: str, ctx: Dict[str, Any]) -> str:
        try:
            result = await self.llm_client.generate(self.reasoning_model, [prompt], dict(LLM_CONFIG))
        except Exception as exc:
            _log(logging.ERROR, "llm_call_error", model=self.reasoning_model, error=str(exc), **ctx)
            if is_rate_limit_error(exc) or _RATE_LIMIT_TEXT.search(str(exc)):
                raise IdeaBankError(ErrorCode.RATE_LIMITED, LLM_RATE_LIMIT_MESSAGE) from exc
            raise IdeaBankError(ErrorCode.LLM_ERROR, f"AI generation failed: {exc}") from exc
        return result.text

    async def _resolve_product(self, product_id: str) -> Product:
        try:
            product = await self.storage.get_product_by_id(product_id)
        except Exception as exc:
            _log(logging.ERROR, "product_lookup_error", product_id=product_id, error=str(exc))
            raise IdeaBankError(ErrorCode.PRODUCT_NOT_FOUND, "Product could not be loaded") from exc
        if product is None:
            raise IdeaBankError(ErrorCode.PRODUCT_NOT_FOUND, "Product not found")
        return product

    async def _resolve_template(self, template_id: str) -> AdSceneTemplate:
        try:
            template = await self.storage.get_template_by_id(template_id)
        except Exception as exc:
            _log(logging.ERROR, "template_lookup_error", template_id=template_id, error=str(exc))
            raise IdeaBankError(ErrorCode.TEMPLATE_NOT_FOUND, "Template could not be loaded") from exc
        if template is None:
            raise IdeaBankError(ErrorCode.TEMPLATE_NOT_FOUND, "Template not found")
        return template


def build_default_service() -> IdeaBankService:
    """Wire the service against Supabase and Gemini using environment configuration."""
    from ideabank.core.database_ops import SupabaseStorage
    from ideabank.core.gemini import GeminiLLMClient, GeminiVisionClient
    from ideabank.core.knowledge_base import GeminiKnowledgeBaseClient
    from ideabank.db import supabase_configured

    durable = SupabaseCacheBackend() if ENABLE_DURABLE_CACHE and supabase_configured() else None
    cache = ResponseCache(MemoryCacheBackend(), durable)
    storage = SupabaseStorage()

    service = IdeaBankService(
        storage=storage,
        vision=VisionAnalysisService(storage, GeminiVisionClient(), cache=cache),
        llm_client=GeminiLLMClient(),
        kb_client=GeminiKnowledgeBaseClient(),
        cache=cache,
    )
    logger.info(
        "Idea Bank service initialized",
        extra={"durable_cache": durable is not None, "model": service.reasoning_model},
    )
    return service


__all__ = [
    "ErrorCode",
    "IdeaBankError",
    "IdeaBankService",
    "MatchedTemplates",
    "StageOutcome",
    "SuggestionRequest",
    "SuggestionResult",
    "build_default_service",
]
