"""
Shared fixtures and in-memory collaborators for the Idea Bank test suite.

Nothing here talks to Supabase or Gemini: storage, vision, knowledge base and
LLM clients are fakes that record their calls so tests can assert on which
external operations a request performed.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pytest

from ideabank.core.cache import ResponseCache
from ideabank.core.rate_limit import FixedWindowRateLimiter
from ideabank.models import (
    AdSceneTemplate,
    BrandImage,
    BrandProfile,
    BrandVoice,
    InstallationScenario,
    KnowledgeBaseResult,
    LearnedPattern,
    Product,
    ProductAnalysis,
    RelatedProduct,
    TargetAudience,
)
from ideabank.services.idea_bank_service import IdeaBankService
from ideabank.services.vision_service import VisionAnalysisService

# 1_700_000_100 is an exact multiple of the 300 second cache bucket.
T0 = 1_700_000_100.0


class FrozenClock:
    """Manually advanced clock."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeStorage:
    def __init__(self) -> None:
        self.products: Dict[str, Product] = {}
        self.templates: Dict[str, AdSceneTemplate] = {}
        self.brand_profiles: Dict[str, BrandProfile] = {}
        self.analyses: Dict[str, ProductAnalysis] = {}
        self.patterns: List[LearnedPattern] = []
        self.related: Dict[str, List[RelatedProduct]] = {}
        self.scenarios: Dict[str, List[InstallationScenario]] = {}
        self.brand_images: Dict[str, List[BrandImage]] = {}
        self.calls: List[str] = []
        self.failures: Dict[str, Exception] = {}

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    async def get_product_by_id(self, product_id: str) -> Optional[Product]:
        self._record("get_product_by_id")
        return self.products.get(product_id)

    async def get_brand_profile_by_user_id(self, user_id: str) -> Optional[BrandProfile]:
        self._record("get_brand_profile_by_user_id")
        return self.brand_profiles.get(user_id)

    async def get_template_by_id(self, template_id: str) -> Optional[AdSceneTemplate]:
        self._record("get_template_by_id")
        return self.templates.get(template_id)

    async def list_templates(self, *, is_global: bool = True) -> List[AdSceneTemplate]:
        self._record("list_templates")
        return [t for t in self.templates.values() if t.is_global == is_global]

    async def get_analysis_by_product_id(self, product_id: str) -> Optional[ProductAnalysis]:
        self._record("get_analysis_by_product_id")
        return self.analyses.get(product_id)

    async def save_analysis(self, analysis: ProductAnalysis) -> ProductAnalysis:
        self._record("save_analysis")
        self.analyses[analysis.product_id] = analysis
        return analysis

    async def update_analysis(self, product_id: str, analysis: ProductAnalysis) -> ProductAnalysis:
        self._record("update_analysis")
        self.analyses[product_id] = analysis
        return analysis

    async def delete_analysis(self, product_id: str) -> None:
        self._record("delete_analysis")
        self.analyses.pop(product_id, None)

    async def get_relevant_patterns(self, user_id, *, category=None, industry=None, max_patterns=3):
        self._record("get_relevant_patterns")
        return self.patterns[:max_patterns]

    async def get_related_products(self, product_id: str) -> List[RelatedProduct]:
        self._record("get_related_products")
        return self.related.get(product_id, [])

    async def get_installation_scenarios(self, product_id, user_id=None):
        self._record("get_installation_scenarios")
        return self.scenarios.get(product_id, [])

    async def get_brand_images(self, user_id, *, product_id=None, limit=5):
        self._record("get_brand_images")
        return self.brand_images.get(user_id, [])[:limit]


class FakeVisionClient:
    def __init__(self, result: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None) -> None:
        self.result = result or {
            "category": "flooring",
            "subcategory": "hardwood",
            "materials": ["wood"],
            "colors": ["oak"],
            "style": "modern",
            "usage_context": "residential living room",
            "target_demographic": "homeowners",
            "detected_text": None,
            "confidence": 90,
        }
        self.error = error
        self.calls: List[str] = []

    async def analyze(self, image_b64: str, subject_name: str, *, mime_type: str = "image/jpeg"):
        self.calls.append(subject_name)
        if self.error:
            raise self.error
        return dict(self.result)


class FakeKnowledgeBase:
    def __init__(self, context: Optional[str] = "Flooring ads perform best with natural light.", error=None):
        self.context = context
        self.error = error
        self.queries: List[str] = []

    async def query(self, text: str, *, max_results: int = 5) -> Optional[KnowledgeBaseResult]:
        self.queries.append(text)
        if self.error:
            raise self.error
        if self.context is None:
            return None
        return KnowledgeBaseResult(context=self.context, citations=["flooring-guide.pdf"])


@dataclass
class FakeLLMResponse:
    text: str


class FakeLLMClient:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.prompts: List[str] = []
        self.configs: List[Dict[str, Any]] = []

    async def generate(self, model, prompt_parts, config=None):
        self.prompts.append("\n\n".join(prompt_parts))
        self.configs.append(config or {})
        if self.error:
            raise self.error
        return FakeLLMResponse(text=self.text)


async def fake_image_loader(reference: str) -> str:
    return "aGVsbG8="


# =============================================================================
# Sample data
# =============================================================================

SUGGESTIONS_TEXT = json.dumps(
    [
        {
            "summary": "Oak planks glowing in a sunlit living room",
            "prompt": "Wide shot of oak plank flooring in a bright modern living room",
            "mode": "inspiration",
            "template_id": "tpl-floor",
            "reasoning": "Natural light shows the grain.",
            "confidence": 88,
            "recommended_platform": "instagram",
            "recommended_aspect_ratio": "4:5",
        },
        {
            "summary": "Close-up of the plank texture",
            "prompt": "Macro shot of oak grain with soft side lighting",
            "mode": "standard",
            "reasoning": "Texture sells quality.",
            "confidence": 150,
        },
    ]
)

SLOTS_TEXT = json.dumps(
    [
        {
            "product_highlights": ["wide planks", "matte finish"],
            "product_placement": "foreground, spanning the frame",
            "details_to_emphasize": ["grain"],
            "color_harmony": ["cream", "sage"],
            "lighting_notes": "warm morning light",
            "header_text": "Floors that feel like home",
            "confidence": 72,
            "reasoning": "Fits the calm template mood.",
        },
        {
            "product_highlights": ["easy click install"],
            "product_placement": "center of frame",
            "details_to_emphasize": ["edges"],
            "scale_reference": "a sofa leg",
            "color_harmony": ["white"],
            "lighting_notes": "soft daylight",
            "confidence": 91,
            "reasoning": "Scale cue helps buyers.",
        },
    ]
)


def make_product(**overrides: Any) -> Product:
    data = {
        "id": "prod-1",
        "user_id": "user-1",
        "name": "Oak Plank Flooring",
        "category": "flooring",
        "description": "Engineered oak planks",
        "image_url": "https://cdn.example.com/oak.jpg",
        "image_public_id": "products/oak-v1",
    }
    data.update(overrides)
    return Product(**data)


def make_template(**overrides: Any) -> AdSceneTemplate:
    data = {
        "id": "tpl-floor",
        "title": "Sunlit Living Room",
        "category": "interior",
        "tags": ["oak", "wood", "modern"],
        "mood": "modern",
        "environment": "living room",
        "best_for_product_types": ["flooring"],
        "prompt_blueprint": "A {{product}} installed in a calm sunlit living room",
        "lighting_style": "natural",
        "aspect_ratio_hints": ["4:5", "1:1"],
        "platform_hints": ["instagram"],
    }
    data.update(overrides)
    return AdSceneTemplate(**data)


def make_brand_profile() -> BrandProfile:
    return BrandProfile(
        user_id="user-1",
        brand_name="Northwood Floors",
        industry="home improvement",
        brand_values=["craftsmanship", "sustainability"],
        voice=BrandVoice(principles=["warm"], words_to_use=["crafted"], words_to_avoid=["cheap"]),
        target_audience=TargetAudience(demographics="homeowners 30-55", pain_points=["noisy floors"]),
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def storage() -> FakeStorage:
    store = FakeStorage()
    store.products["prod-1"] = make_product()
    store.templates["tpl-floor"] = make_template()
    store.templates["tpl-beach"] = make_template(
        id="tpl-beach",
        title="Beach Day",
        tags=["cotton"],
        mood="playful",
        environment="beach",
        best_for_product_types=["apparel"],
    )
    store.brand_profiles["user-1"] = make_brand_profile()
    return store


@pytest.fixture
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def kb_client() -> FakeKnowledgeBase:
    return FakeKnowledgeBase()


@pytest.fixture
def llm_client() -> FakeLLMClient:
    return FakeLLMClient(text=SUGGESTIONS_TEXT)


@pytest.fixture
def build_service(storage, vision_client, kb_client, llm_client, clock):
    """Factory building an IdeaBankService wired to the fakes."""

    def _build(**overrides: Any) -> IdeaBankService:
        cache = overrides.pop("cache", None) or ResponseCache(clock=clock)
        vision = VisionAnalysisService(
            overrides.pop("storage", storage),
            overrides.pop("vision_client", vision_client),
            cache=cache,
            image_loader=fake_image_loader,
            clock=clock,
        )
        return IdeaBankService(
            storage=vision.storage,
            vision=vision,
            llm_client=overrides.pop("llm_client", llm_client),
            kb_client=overrides.pop("kb_client", kb_client),
            cache=cache,
            rate_limiter=overrides.pop(
                "rate_limiter", FixedWindowRateLimiter(max_requests=20, window_seconds=60, clock=clock)
            ),
            clock=clock,
            **overrides,
        )

    return _build
