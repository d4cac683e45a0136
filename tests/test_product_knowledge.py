"""Tests for enhanced product context assembly."""

import pytest

from ideabank.core.cache import ResponseCache
from ideabank.models import BrandImage, InstallationScenario, RelatedProduct
from ideabank.services.product_knowledge import ProductKnowledgeService, format_context_for_llm

from .conftest import FakeStorage, FrozenClock, make_product


class TestFormatContext:
    def test_sections(self):
        product = make_product(tags=["oak", "matte"])
        text = format_context_for_llm(
            product,
            [RelatedProduct(product=make_product(id="p2", name="Trim"), relationship_type="upgrades")],
            [InstallationScenario(id="s1", title="Kitchen", description="Wet area", installation_steps=["prep"])],
            [
                BrandImage(id="b1", image_url="u1", category="room_shot"),
                BrandImage(id="b2", image_url="u2", category="room_shot"),
            ],
        )

        assert text.startswith("## Product: Oak Plank Flooring")
        assert "Tags: oak, matte" in text
        assert "- Trim (upgrades to)" in text
        assert "### Kitchen" in text
        assert "Steps: prep" in text
        assert "- Room Shot: 2 images" in text


class TestProductKnowledgeService:
    def setup_method(self):
        self.storage = FakeStorage()
        self.storage.scenarios["prod-1"] = [InstallationScenario(id="s1", title="Hallway")]
        self.service = ProductKnowledgeService(self.storage, ResponseCache(clock=FrozenClock()))
        self.product = make_product()

    @pytest.mark.asyncio
    async def test_context_is_cached(self):
        first = await self.service.build_enhanced_context(self.product, "user-1")
        second = await self.service.build_enhanced_context(self.product, "user-1")

        assert first == second
        assert first.installation_scenarios[0].title == "Hallway"
        assert self.storage.calls.count("get_installation_scenarios") == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_rebuild(self):
        await self.service.build_enhanced_context(self.product, "user-1")
        await self.service.invalidate("prod-1")
        await self.service.build_enhanced_context(self.product, "user-1")

        assert self.storage.calls.count("get_related_products") == 2
