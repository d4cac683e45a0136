"""Product image analysis with fingerprint-validated caching."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ideabank.config import (
    ANALYSIS_RATE_LIMIT_MAX,
    ANALYSIS_RATE_LIMIT_WINDOW_SECONDS,
    GEMINI_VISION_MODEL,
    logger,
)
from ideabank.core.cache import VISION_ANALYSIS_TTL, ResponseCache, vision_key
from ideabank.core.contracts import Storage, VisionClient
from ideabank.core.gemini import fetch_and_encode, is_rate_limit_error
from ideabank.core.rate_limit import FixedWindowRateLimiter
from ideabank.core.response_parser import clamp_confidence
from ideabank.models import Product, ProductAnalysis

DEFAULT_ANALYSIS_CONFIDENCE = 80
FIELD_MAX_LENGTH = 500


def _log(level: int, message: str, **context: Any) -> None:
    """Helper to emit structured logs with contextual metadata."""
    logger.log(level, "%s | context=%s", message, context)


class VisionAnalysisError(Exception):
    """Analysis failure carrying one of RATE_LIMITED, INVALID_IMAGE or API_ERROR."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(slots=True)
class AnalysisOutcome:
    analysis: ProductAnalysis
    from_cache: bool


def generate_image_fingerprint(product: Product) -> Optional[str]:
    """Identity of the product's current image; changes whenever the image does."""
    return product.image_public_id or product.image_url


def _clean(value: Any, default: str = "") -> str:
    if not isinstance(value, str):
        return default
    cleaned = re.sub(r"[<>]", "", value)
    cleaned = re.sub(r"[\r\n]+", " ", cleaned).strip()[:FIELD_MAX_LENGTH]
    return cleaned or default


def _clean_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in (_clean(v) for v in value) if item][:10]


def normalize_analysis(
    raw: Dict[str, Any], product: Product, fingerprint: str, model_version: str
) -> ProductAnalysis:
    """Turn raw model JSON into a sanitized ``ProductAnalysis``."""
    detected = _clean(raw.get("detected_text") or raw.get("detectedText"))
    return ProductAnalysis(
        product_id=product.id,
        category=_clean(raw.get("category"), "product"),
        subcategory=_clean(raw.get("subcategory"), "general"),
        materials=_clean_list(raw.get("materials")),
        colors=_clean_list(raw.get("colors")),
        style=_clean(raw.get("style"), "modern"),
        usage_context=_clean(raw.get("usage_context") or raw.get("usageContext")),
        target_demographic=_clean(
            raw.get("target_demographic") or raw.get("targetDemographic")
        ),
        detected_text=detected or None,
        confidence=clamp_confidence(raw.get("confidence"), DEFAULT_ANALYSIS_CONFIDENCE),
        image_fingerprint=fingerprint,
        model_version=model_version,
    )


class VisionAnalysisService:
    """Analyzes product photos, reusing stored analyses while the image is unchanged."""

    def __init__(
        self,
        storage: Storage,
        vision_client: VisionClient,
        *,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        model_version: str = GEMINI_VISION_MODEL,
        image_loader: Callable[[str], Any] = fetch_and_encode,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.vision_client = vision_client
        self.cache = cache
        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=ANALYSIS_RATE_LIMIT_MAX,
            window_seconds=ANALYSIS_RATE_LIMIT_WINDOW_SECONDS,
            name="vision_analysis",
            clock=clock,
        )
        self.model_version = model_version
        self._load_image = image_loader

    async def get_cached_analysis(self, product: Product) -> Optional[ProductAnalysis]:
        """Return a stored analysis only if it was made from the current image."""
        fingerprint = generate_image_fingerprint(product)
        if not fingerprint:
            return None

        if self.cache is not None:
            cached = await self.cache.lookup(vision_key(product.id, fingerprint), fingerprint)
            if cached is not None:
                return ProductAnalysis.model_validate(cached)

        stored = await self.storage.get_analysis_by_product_id(product.id)
        if stored is None:
            return None
        if stored.image_fingerprint != fingerprint:
            _log(
                logging.INFO,
                "analysis_fingerprint_stale",
                product_id=product.id,
                stored=stored.image_fingerprint,
                current=fingerprint,
            )
            return None

        await self._remember(product.id, stored)
        return stored

    async def analyze_product(
        self, product: Product, user_id: str, *, force_refresh: bool = False
    ) -> AnalysisOutcome:
        """
        Analyze the product image, serving a valid cached analysis when available.

        Raises:
            VisionAnalysisError: With code RATE_LIMITED, INVALID_IMAGE or API_ERROR
        """
        fingerprint = generate_image_fingerprint(product)
        if not fingerprint or not product.image_url:
            raise VisionAnalysisError("INVALID_IMAGE", "Product has no image to analyze")

        if not force_refresh:
            try:
                cached = await self.get_cached_analysis(product)
            except Exception as exc:
                _log(logging.WARNING, "analysis_cache_read_error", product_id=product.id, error=str(exc))
                cached = None
            if cached is not None:
                _log(logging.INFO, "analysis_cache_hit", product_id=product.id)
                return AnalysisOutcome(analysis=cached, from_cache=True)

        limit = self.rate_limiter.check(user_id)
        if not limit["allowed"]:
            raise VisionAnalysisError(
                "RATE_LIMITED",
                "Too many image analyses. Please wait before analyzing more products.",
            )

        try:
            image_b64 = await self._load_image(product.image_url)
            raw = await self.vision_client.analyze(image_b64, product.name)
        except Exception as exc:
            code = "RATE_LIMITED" if is_rate_limit_error(exc) else "API_ERROR"
            _log(logging.ERROR, "analysis_failed", product_id=product.id, code=code, error=str(exc))
            raise VisionAnalysisError(code, f"Image analysis failed: {exc}") from exc

        analysis = normalize_analysis(raw, product, fingerprint, self.model_version)
        analysis = await self._persist(product.id, analysis)
        await self._remember(product.id, analysis)

        _log(
            logging.INFO,
            "analysis_completed",
            product_id=product.id,
            category=analysis.category,
            confidence=analysis.confidence,
        )
        return AnalysisOutcome(analysis=analysis, from_cache=False)

    async def invalidate_analysis(self, product_id: str) -> None:
        await self.storage.delete_analysis(product_id)
        if self.cache is not None:
            await self.cache.invalidate(f"vision:{product_id}:*")
        _log(logging.INFO, "analysis_invalidated", product_id=product_id)

    async def _persist(self, product_id: str, analysis: ProductAnalysis) -> ProductAnalysis:
        try:
            existing = await self.storage.get_analysis_by_product_id(product_id)
            if existing is not None:
                return await self.storage.update_analysis(product_id, analysis)
            return await self.storage.save_analysis(analysis)
        except Exception as exc:
            _log(logging.ERROR, "analysis_persist_error", product_id=product_id, error=str(exc))
            return analysis

    async def _remember(self, product_id: str, analysis: ProductAnalysis) -> None:
        if self.cache is None:
            return
        await self.cache.store(
            vision_key(product_id, analysis.image_fingerprint),
            analysis.model_dump(mode="json"),
            VISION_ANALYSIS_TTL,
            fingerprint=analysis.image_fingerprint,
        )


__all__ = [
    "AnalysisOutcome",
    "VisionAnalysisError",
    "VisionAnalysisService",
    "generate_image_fingerprint",
    "normalize_analysis",
]
