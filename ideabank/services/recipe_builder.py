"""Assembles the cross-referenced generation recipe handed to image generation."""

import time
from typing import Callable, List, Optional, Sequence

from ideabank.models import (
    AdSceneTemplate,
    BrandProfile,
    EnhancedProductContext,
    GenerationRecipe,
    Product,
    RecipeBrandImage,
    RecipeBrandVoice,
    RecipeDebugContext,
    RecipeProduct,
    RecipeRelationship,
    RecipeScenario,
    RecipeTemplate,
)


def _recipe_product(product: Product) -> RecipeProduct:
    return RecipeProduct(
        id=product.id,
        name=product.name,
        category=product.category,
        description=product.description,
        image_urls=[product.image_url] if product.image_url else [],
    )


def build_generation_recipe(
    *,
    product: Optional[Product],
    enhanced_context: Optional[EnhancedProductContext],
    matched_templates: Sequence[AdSceneTemplate] = (),
    brand_profile: Optional[BrandProfile] = None,
    build_start_time: Optional[float] = None,
    include_debug: bool = False,
    clock: Callable[[], float] = time.time,
) -> Optional[GenerationRecipe]:
    """
    Snapshot the product, its relationships and scenarios, the top template
    and brand data into a single recipe.

    Returns None unless both a product and an enhanced context are present.
    """
    if product is None or enhanced_context is None:
        return None

    relationships: List[RecipeRelationship] = [
        RecipeRelationship(
            source_product_id=product.id,
            source_product_name=product.name,
            target_product_id=related.product.id,
            target_product_name=related.product.name,
            relationship_type=related.relationship_type,
            description=related.relationship_description,
        )
        for related in enhanced_context.related_products
    ]

    scenarios = [
        RecipeScenario(
            id=scenario.id,
            title=scenario.title,
            description=scenario.description,
            steps=list(scenario.installation_steps),
            is_active=scenario.is_active,
            scenario_type=scenario.scenario_type,
        )
        for scenario in enhanced_context.installation_scenarios
    ]

    template = None
    if matched_templates:
        top = matched_templates[0]
        template = RecipeTemplate(
            id=top.id,
            title=top.title,
            category=top.category,
            aspect_ratio=top.aspect_ratio_hints[0] if top.aspect_ratio_hints else None,
        )

    brand_images = [
        RecipeBrandImage(id=image.id, image_url=image.image_url, category=image.category)
        for image in enhanced_context.brand_images
    ]

    brand_voice = None
    if brand_profile is not None:
        brand_voice = RecipeBrandVoice(
            brand_name=brand_profile.brand_name,
            industry=brand_profile.industry,
            values=list(brand_profile.brand_values),
        )

    debug_context = None
    if include_debug:
        active = sum(1 for scenario in scenarios if scenario.is_active)
        started = build_start_time if build_start_time is not None else clock()
        debug_context = RecipeDebugContext(
            relationships_found=len(relationships),
            scenarios_found=len(scenarios),
            scenarios_active=active,
            scenarios_inactive=len(scenarios) - active,
            templates_matched=len(matched_templates),
            brand_images_found=len(brand_images),
            build_time_ms=max(0, int((clock() - started) * 1000)),
        )

    return GenerationRecipe(
        products=[_recipe_product(product)],
        relationships=relationships,
        scenarios=scenarios,
        template=template,
        brand_images=brand_images,
        brand_voice=brand_voice,
        debug_context=debug_context,
    )
