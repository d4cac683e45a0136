"""Builds the enriched product context: relationships, scenarios and brand imagery."""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import List, Optional

from ideabank.config import logger
from ideabank.core.cache import PRODUCT_KNOWLEDGE_TTL, ResponseCache, kb_key
from ideabank.core.contracts import Storage
from ideabank.core.prompt_sanitizer import sanitize_for_prompt
from ideabank.models import (
    BrandImage,
    EnhancedProductContext,
    InstallationScenario,
    Product,
    RelatedProduct,
)

RELATIONSHIP_LABELS = {
    "pairs_with": "pairs with",
    "requires": "requires",
    "replaces": "replaces",
    "matches": "matches",
    "completes": "completes",
    "upgrades": "upgrades to",
}


def _format_category(category: str) -> str:
    return " ".join(word.capitalize() for word in category.split("_"))


def format_context_for_llm(
    product: Product,
    related_products: List[RelatedProduct],
    scenarios: List[InstallationScenario],
    brand_images: List[BrandImage],
) -> str:
    parts: List[str] = [f"## Product: {product.name}"]
    if product.category:
        parts.append(f"Category: {product.category}")
    if product.description:
        parts.append(
            "Description: "
            + sanitize_for_prompt(product.description, max_length=1000, context="product_description")
        )
    if product.tags:
        parts.append(f"\nTags: {', '.join(product.tags)}")

    if related_products:
        parts.append("\n## Related Products:")
        for related in related_products:
            label = RELATIONSHIP_LABELS.get(related.relationship_type, related.relationship_type)
            parts.append(f"- {related.product.name} ({label})")
            if related.relationship_description:
                parts.append(f"  {related.relationship_description}")

    if scenarios:
        parts.append("\n## Installation Scenarios:")
        for scenario in scenarios:
            parts.append(f"\n### {scenario.title}")
            parts.append(scenario.description)
            if scenario.installation_steps:
                parts.append(f"Steps: {'; '.join(scenario.installation_steps[:5])}")

    if brand_images:
        parts.append("\n## Available Brand Images:")
        for category, count in Counter(image.category for image in brand_images).items():
            parts.append(f"- {_format_category(category)}: {count} images")

    return "\n".join(parts)


class ProductKnowledgeService:
    """Assembles and caches ``EnhancedProductContext`` for a product."""

    def __init__(self, storage: Storage, cache: Optional[ResponseCache] = None) -> None:
        self.storage = storage
        self.cache = cache

    async def build_enhanced_context(
        self, product: Product, user_id: str
    ) -> EnhancedProductContext:
        key = kb_key(product.id)
        if self.cache is not None:
            cached = await self.cache.lookup(key)
            if cached is not None:
                logger.info("Product knowledge cache hit", extra={"product_id": product.id})
                return EnhancedProductContext.model_validate(cached)

        related, scenarios, brand_images = await asyncio.gather(
            self.storage.get_related_products(product.id),
            self.storage.get_installation_scenarios(product.id, user_id),
            self.storage.get_brand_images(user_id, product_id=product.id),
        )

        context = EnhancedProductContext(
            product=product,
            related_products=related,
            installation_scenarios=scenarios,
            brand_images=brand_images,
            formatted_context=format_context_for_llm(product, related, scenarios, brand_images),
        )

        if self.cache is not None:
            await self.cache.store(key, context.model_dump(mode="json"), PRODUCT_KNOWLEDGE_TTL)

        logger.info(
            "Product knowledge built",
            extra={
                "product_id": product.id,
                "related": len(related),
                "scenarios": len(scenarios),
                "brand_images": len(brand_images),
            },
        )
        return context

    async def invalidate(self, product_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate(kb_key(product_id))


__all__ = ["ProductKnowledgeService", "format_context_for_llm"]
