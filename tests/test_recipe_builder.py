"""Tests for generation recipe assembly."""

from ideabank.models import (
    BrandImage,
    EnhancedProductContext,
    InstallationScenario,
    RelatedProduct,
)
from ideabank.services.recipe_builder import build_generation_recipe

from .conftest import FrozenClock, make_brand_profile, make_product, make_template


def _context(product):
    return EnhancedProductContext(
        product=product,
        related_products=[
            RelatedProduct(
                product=make_product(id="prod-2", name="Underlayment"),
                relationship_type="requires",
                relationship_description="Install beneath planks",
            )
        ],
        installation_scenarios=[
            InstallationScenario(id="s1", title="Kitchen", installation_steps=["prep", "lay"]),
            InstallationScenario(id="s2", title="Basement", is_active=False),
        ],
        brand_images=[BrandImage(id="b1", image_url="https://cdn.example.com/b1.jpg", category="lifestyle")],
    )


class TestBuildGenerationRecipe:
    def setup_method(self):
        self.product = make_product()
        self.clock = FrozenClock()

    def test_requires_product_and_context(self):
        assert build_generation_recipe(product=None, enhanced_context=_context(self.product)) is None
        assert build_generation_recipe(product=self.product, enhanced_context=None) is None

    def test_cross_references(self):
        recipe = build_generation_recipe(
            product=self.product,
            enhanced_context=_context(self.product),
            matched_templates=[make_template(), make_template(id="tpl-2")],
            brand_profile=make_brand_profile(),
            clock=self.clock,
        )

        assert recipe.version == "1.0"
        assert recipe.products[0].image_urls == ["https://cdn.example.com/oak.jpg"]
        assert recipe.relationships[0].target_product_name == "Underlayment"
        assert recipe.relationships[0].source_product_id == "prod-1"
        assert [s.steps for s in recipe.scenarios] == [["prep", "lay"], []]
        assert recipe.template.id == "tpl-floor"
        assert recipe.template.aspect_ratio == "4:5"
        assert recipe.brand_images[0].category == "lifestyle"
        assert recipe.brand_voice.brand_name == "Northwood Floors"
        assert recipe.debug_context is None

    def test_debug_context_when_enabled(self):
        started = self.clock()
        self.clock.advance(0.25)

        recipe = build_generation_recipe(
            product=self.product,
            enhanced_context=_context(self.product),
            build_start_time=started,
            include_debug=True,
            clock=self.clock,
        )

        debug = recipe.debug_context
        assert debug.relationships_found == 1
        assert debug.scenarios_found == 2
        assert debug.scenarios_active == 1
        assert debug.scenarios_inactive == 1
        assert debug.templates_matched == 0
        assert debug.brand_images_found == 1
        assert debug.build_time_ms == 250
        assert recipe.template is None
        assert recipe.brand_voice is None
