"""Interfaces of the external collaborators the pipeline depends on."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

from ideabank.models import (
    AdSceneTemplate,
    BrandImage,
    BrandProfile,
    InstallationScenario,
    KnowledgeBaseResult,
    LearnedPattern,
    Product,
    ProductAnalysis,
    RelatedProduct,
)


class Storage(Protocol):
    async def get_product_by_id(self, product_id: str) -> Optional[Product]: ...

    async def get_brand_profile_by_user_id(self, user_id: str) -> Optional[BrandProfile]: ...

    async def get_template_by_id(self, template_id: str) -> Optional[AdSceneTemplate]: ...

    async def list_templates(self, *, is_global: bool = True) -> List[AdSceneTemplate]: ...

    async def get_analysis_by_product_id(self, product_id: str) -> Optional[ProductAnalysis]: ...

    async def save_analysis(self, analysis: ProductAnalysis) -> ProductAnalysis: ...

    async def update_analysis(self, product_id: str, analysis: ProductAnalysis) -> ProductAnalysis: ...

    async def delete_analysis(self, product_id: str) -> None: ...

    async def get_relevant_patterns(
        self,
        user_id: str,
        *,
        category: Optional[str] = None,
        industry: Optional[str] = None,
        max_patterns: int = 3,
    ) -> List[LearnedPattern]: ...

    async def get_related_products(self, product_id: str) -> List[RelatedProduct]: ...

    async def get_installation_scenarios(
        self, product_id: str, user_id: Optional[str] = None
    ) -> List[InstallationScenario]: ...

    async def get_brand_images(
        self, user_id: str, *, product_id: Optional[str] = None, limit: int = 5
    ) -> List[BrandImage]: ...


class VisionClient(Protocol):
    async def analyze(
        self, image_b64: str, subject_name: str, *, mime_type: str = "image/jpeg"
    ) -> Dict[str, Any]: ...


class KnowledgeBaseClient(Protocol):
    async def query(self, text: str, *, max_results: int = 5) -> Optional[KnowledgeBaseResult]: ...


class LLMResponse(Protocol):
    text: str


class LLMClient(Protocol):
    async def generate(
        self,
        model: str,
        prompt_parts: Sequence[str],
        config: Optional[Dict[str, Any]] = None,
    ) -> LLMResponse: ...


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float,
        fingerprint: Optional[str] = None,
    ) -> None: ...

    async def invalidate(self, pattern: str) -> int: ...
