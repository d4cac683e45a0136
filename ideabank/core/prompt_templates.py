"""Prompt templates and builders for the Idea Bank Gemini flows."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ideabank.core.prompt_sanitizer import sanitize_for_prompt, sanitize_user_goal
from ideabank.models import (
    AdSceneTemplate,
    BrandProfile,
    EnhancedProductContext,
    LearnedPattern,
    Product,
    ProductAnalysis,
    SlotSuggestion,
)

UPLOAD_DESCRIPTION_MAX_LENGTH = 500
BLUEPRINT_PREVIEW_CHARS = 100
GENERIC_KB_QUERY = "advertising ideas creative marketing"


# --- VISION ANALYSIS PROMPT ---

VISION_ANALYSIS_TEMPLATE = """Analyze this product image for an advertising platform. The product is named "{PRODUCT_NAME}".

Extract the following information in JSON format:
{{
  "category": "main product category (e.g., flooring, furniture, decor, fixture, appliance)",
  "subcategory": "specific type (e.g., hardwood, tile, laminate, sofa, lamp)",
  "materials": ["visible materials like wood, ceramic, metal, glass, fabric"],
  "colors": ["primary colors, descriptive names like 'oak', 'navy', 'cream'"],
  "style": "design style (modern, traditional, rustic, industrial, minimalist, contemporary)",
  "usage_context": "where this product is typically used (e.g., residential living room, commercial office)",
  "target_demographic": "who typically buys this (e.g., homeowners, contractors, interior designers)",
  "detected_text": "any text visible on the product or packaging, or null if none",
  "confidence": a number 0-100 indicating confidence in this analysis
}}

Be accurate and specific. If uncertain about a field, use your best judgment but lower the confidence score."""


# --- SUGGESTION OUTPUT CONTRACTS ---

SUGGESTION_OUTPUT_TEMPLATE = """
## Output Format
Return a JSON array of {MAX_SUGGESTIONS} suggestions. Each suggestion must have:
- summary: One-line description of what the image shows in plain language (10-20 words, NO technical jargon)
- prompt: A detailed image generation prompt (50-150 words)
- mode: Either "exact_insert" (use template reference image) or "inspiration" (use template as style guide) or "standard" (no template)
- template_id: The template ID if using a template, omit otherwise
- reasoning: Why this concept works for the product (2-3 sentences)
- confidence: 0-100 score for how well this matches the product
- recommended_platform: Best platform (instagram, linkedin, facebook, twitter, tiktok)
- recommended_aspect_ratio: Recommended ratio (1:1, 9:16, 16:9, 4:5)

Make suggestions diverse - vary the modes, platforms, and creative approaches.
For exact_insert mode, the prompt should describe placing the product in the template scene.
For inspiration mode, the prompt should capture the template's mood/style but create a new scene.

Return ONLY the JSON array, no other text."""

SLOT_OUTPUT_TEMPLATE = """
## Your Task
Generate {MAX_SUGGESTIONS} different slot suggestions to customize this template for the product. Each suggestion should fill these slots:

### Required Slots:
- product_highlights: 3-5 key features to visually show (strings array)
- product_placement: How/where to position product in the scene (string)
- details_to_emphasize: Visual details to highlight in the image (strings array)
- color_harmony: Colors that complement the product and work with the template mood (strings array)
- lighting_notes: How to light this specific product within the template's lighting style (string)
- confidence: 0-100 score for how well this fills the template (number)
- reasoning: 2-3 sentences explaining why these suggestions work (string)

### Optional Copy Slots (only include if appropriate for the template):
- scale_reference: Object or element to show scale (e.g., "worker's hands", "doorframe")
- header_text: Headline text, max 60 chars (string)
- body_text: Supporting copy, max 150 chars (string)
- cta_suggestion: Call to action, max 30 chars (string)

## Output Format
Return a JSON array of {MAX_SUGGESTIONS} slot suggestions. Each must have all required slots.

Return ONLY the JSON array, no other text."""


@dataclass(frozen=True)
class PromptDefaults:
    """Default wording shared by the suggestion and slot prompts."""

    suggestion_intro: str = (
        "You are an expert advertising creative director. "
        "Generate {MAX_SUGGESTIONS} distinct ad concept suggestions."
    )
    slot_intro: str = (
        "You are an expert advertising creative director. Your task is to suggest "
        "how to fill a template's content slots for a specific product."
    )
    not_specified: str = "Not specified"
    upload_guidance: str = (
        "IMPORTANT: These uploaded images should be incorporated into your ad concepts. "
        "Consider how they can be used alongside the products or as the main visual elements."
    )
    default_product_name: str = "product"


DEFAULTS = PromptDefaults()


@dataclass
class PromptContext:
    """Everything the prompt builders may draw on; absent stages stay None/empty."""

    product: Optional[Product] = None
    analysis: Optional[ProductAnalysis] = None
    upload_descriptions: List[str] = field(default_factory=list)
    enhanced_context: Optional[EnhancedProductContext] = None
    brand_profile: Optional[BrandProfile] = None
    kb_context: Optional[str] = None
    matched_templates: List[AdSceneTemplate] = field(default_factory=list)
    learned_patterns: List[LearnedPattern] = field(default_factory=list)
    user_goal: Optional[str] = None
    max_suggestions: int = 3


def build_vision_analysis_prompt(product_name: str) -> str:
    name = sanitize_for_prompt(product_name, max_length=200, strip_newlines=True, context="product_name")
    return VISION_ANALYSIS_TEMPLATE.format(PRODUCT_NAME=name or DEFAULTS.default_product_name)


def _join(values: Sequence[str]) -> str:
    return ", ".join(values) or DEFAULTS.not_specified


def _analysis_section(heading: str, product: Product, analysis: ProductAnalysis) -> str:
    return (
        f"\n## {heading}\n"
        f"- Name: {product.name}\n"
        f"- Category: {analysis.category} / {analysis.subcategory}\n"
        f"- Materials: {_join(analysis.materials)}\n"
        f"- Colors: {_join(analysis.colors)}\n"
        f"- Style: {analysis.style}\n"
        f"- Usage Context: {analysis.usage_context}\n"
        f"- Target Demographic: {analysis.target_demographic}\n"
    )


def _product_only_section(product: Product) -> str:
    lines = ["\n## Product Information", f"- Name: {product.name}"]
    if product.category:
        lines.append(f"- Category: {product.category}")
    if product.description:
        lines.append(
            "- Description: "
            + sanitize_for_prompt(product.description, max_length=500, strip_newlines=True, context="product_description")
        )
    return "\n".join(lines) + "\n"


def _uploads_section(heading: str, descriptions: Sequence[str], guidance: bool) -> str:
    cleaned = [
        sanitize_for_prompt(
            desc,
            max_length=UPLOAD_DESCRIPTION_MAX_LENGTH,
            strip_newlines=True,
            context="upload_description",
        )
        for desc in descriptions
    ]
    listed = "\n".join(f'{i + 1}. "{desc}"' for i, desc in enumerate(cleaned) if desc)
    if not listed:
        return ""
    section = f"\n## {heading}\n"
    if guidance:
        section += "The user has also uploaded the following images for context:\n"
    section += listed + "\n"
    if guidance:
        section += f"\n{DEFAULTS.upload_guidance}\n"
    return section


def _brand_section(brand: BrandProfile) -> str:
    section = (
        "\n## Brand Guidelines\n"
        f"- Brand: {brand.brand_name or DEFAULTS.not_specified}\n"
        f"- Industry: {brand.industry or DEFAULTS.not_specified}\n"
        f"- Values: {_join(brand.brand_values)}\n"
        f"- Preferred Styles: {_join(brand.preferred_styles)}\n"
    )

    voice = brand.voice
    if voice:
        section += "\n### Brand Voice\n"
        if voice.principles:
            section += f"- Voice Principles: {', '.join(voice.principles)}\n"
        if voice.words_to_use:
            section += f"- Words to USE: {', '.join(voice.words_to_use)}\n"
        if voice.words_to_avoid:
            section += f"- Words to AVOID: {', '.join(voice.words_to_avoid)}\n"

    audience = brand.target_audience
    if audience:
        section += "\n### Target Audience\n"
        if audience.demographics:
            section += f"- Demographics: {audience.demographics}\n"
        if audience.psychographics:
            section += f"- Psychographics: {audience.psychographics}\n"
        if audience.pain_points:
            section += f"- Pain Points: {', '.join(audience.pain_points)}\n"

    return section


def _shared_sections(ctx: PromptContext, *, upload_heading: str, upload_guidance: bool) -> str:
    prompt = ""
    if ctx.upload_descriptions:
        prompt += _uploads_section(upload_heading, ctx.upload_descriptions, upload_guidance)
    if ctx.enhanced_context and ctx.enhanced_context.formatted_context:
        prompt += f"\n## Enhanced Product Knowledge\n{ctx.enhanced_context.formatted_context}\n"
    goal = sanitize_user_goal(ctx.user_goal)
    if goal:
        prompt += f"\n## User's Goal\n{goal}\n"
    if ctx.brand_profile:
        prompt += _brand_section(ctx.brand_profile)
    if ctx.kb_context:
        prompt += f"\n## Relevant Context from Knowledge Base\n{ctx.kb_context}\n"
    return prompt


def format_patterns_for_prompt(patterns: Sequence[LearnedPattern]) -> str:
    """Render learned high-performing ad patterns as prompt guidance."""
    if not patterns:
        return ""

    def _get(data: Dict[str, Any], key: str, default: str) -> Any:
        value = data.get(key)
        return value if value else default

    blocks = []
    for index, pattern in enumerate(patterns):
        lines = [f'Pattern {index + 1}: "{pattern.name}"']

        if pattern.layout_pattern:
            lp = pattern.layout_pattern
            hierarchy = " -> ".join(lp.get("visual_hierarchy") or []) or "balanced"
            lines.append(
                f"  Layout: {_get(lp, 'structure', 'flexible')} structure, {hierarchy} flow, "
                f"{_get(lp, 'whitespace_usage', 'balanced')} whitespace"
            )
        if pattern.color_psychology:
            cp = pattern.color_psychology
            lines.append(
                f"  Color Mood: {_get(cp, 'dominant_mood', 'neutral')}, "
                f"{_get(cp, 'color_scheme', 'balanced')} scheme, "
                f"{_get(cp, 'contrast_level', 'medium')} contrast"
            )
        if pattern.hook_patterns:
            hp = pattern.hook_patterns
            lines.append(
                f"  Hook: {_get(hp, 'hook_type', 'benefit')} opening, "
                f"{_get(hp, 'headline_formula', 'direct')} headline, "
                f"{_get(hp, 'cta_style', 'direct')} CTA"
            )
        if pattern.visual_elements:
            ve = pattern.visual_elements
            people = "with people" if ve.get("human_presence") else "no people"
            lines.append(
                f"  Visuals: {_get(ve, 'image_style', 'photography')} style, "
                f"{_get(ve, 'product_visibility', 'prominent')} product focus, {people}"
            )
        if pattern.engagement_tier and pattern.engagement_tier != "unverified":
            lines.append(f"  Performance: {pattern.engagement_tier.replace('-', ' ')} percentile")

        blocks.append("\n".join(lines))

    return (
        "\nLEARNED SUCCESS PATTERNS FROM HIGH-PERFORMING ADS:\n"
        "Use these proven patterns as inspiration for the ad design.\n\n"
        + "\n\n".join(blocks)
        + "\n\nApply these patterns to create an effective ad while keeping the content original.\n"
    )


def build_suggestion_prompt(ctx: PromptContext) -> str:
    """Render the freestyle ad-concept prompt."""
    prompt = DEFAULTS.suggestion_intro.format(MAX_SUGGESTIONS=ctx.max_suggestions) + "\n"

    if ctx.product and ctx.analysis:
        prompt += _analysis_section("Product Information", ctx.product, ctx.analysis)
    elif ctx.product:
        prompt += _product_only_section(ctx.product)

    prompt += _shared_sections(
        ctx, upload_heading="Uploaded Images (User-Provided)", upload_guidance=True
    )

    if ctx.matched_templates:
        prompt += "\n## Available Scene Templates\n"
        for i, template in enumerate(ctx.matched_templates):
            prompt += (
                f'{i + 1}. "{template.title}" (ID: {template.id})\n'
                f"   - Category: {template.category}\n"
                f"   - Mood: {template.mood or DEFAULTS.not_specified}\n"
                f"   - Environment: {template.environment or DEFAULTS.not_specified}\n"
                f"   - Blueprint: {template.prompt_blueprint[:BLUEPRINT_PREVIEW_CHARS]}...\n"
            )

    patterns = format_patterns_for_prompt(ctx.learned_patterns)
    if patterns:
        prompt += f"\n{patterns}\n"

    prompt += SUGGESTION_OUTPUT_TEMPLATE.format(MAX_SUGGESTIONS=ctx.max_suggestions)
    return prompt


def build_template_slot_prompt(template: AdSceneTemplate, ctx: PromptContext) -> str:
    """Render the template-mode prompt asking the model to fill content slots."""
    prompt = (
        f"{DEFAULTS.slot_intro}\n\n"
        "## Template Structure\n"
        f"- Title: {template.title}\n"
        f"- Category: {template.category}\n"
        f"- Prompt Blueprint: {template.prompt_blueprint}\n"
    )
    if template.lighting_style:
        prompt += f"- Lighting Style: {template.lighting_style}\n"
    if template.mood:
        prompt += f"- Mood: {template.mood}\n"
    if template.environment:
        prompt += f"- Environment: {template.environment}\n"
    if template.placement_hints:
        hints = template.placement_hints
        prompt += (
            f"- Placement Hints: Position={hints.position or 'center'}, "
            f"Scale={hints.scale or 'medium'}\n"
        )
    if template.aspect_ratio_hints:
        prompt += f"- Recommended Aspect Ratios: {', '.join(template.aspect_ratio_hints)}\n"
    if template.platform_hints:
        prompt += f"- Best Platforms: {', '.join(template.platform_hints)}\n"
    if template.best_for_product_types:
        prompt += f"- Best For Product Types: {', '.join(template.best_for_product_types)}\n"

    if ctx.product and ctx.analysis:
        prompt += _analysis_section("Product Analysis", ctx.product, ctx.analysis)
    elif ctx.product:
        prompt += _product_only_section(ctx.product)

    prompt += _shared_sections(
        ctx, upload_heading="Additional Uploaded Images", upload_guidance=False
    )
    prompt += SLOT_OUTPUT_TEMPLATE.format(MAX_SUGGESTIONS=ctx.max_suggestions)
    return prompt


def merge_template_with_insights(
    template: AdSceneTemplate,
    slot: SlotSuggestion,
    product_name: Optional[str],
) -> str:
    """Fill the blueprint's product placeholder and append the slot guidance."""
    merged = re.sub(
        r"\{\{product\}\}",
        lambda _: product_name or DEFAULTS.default_product_name,
        template.prompt_blueprint,
        flags=re.IGNORECASE,
    )

    additions: List[str] = []
    if slot.product_highlights:
        additions.append(f"Emphasize these product features: {', '.join(slot.product_highlights)}.")
    if slot.product_placement:
        additions.append(f"Product placement: {slot.product_placement}.")
    if slot.details_to_emphasize:
        additions.append(f"Visual focus on: {', '.join(slot.details_to_emphasize)}.")
    if slot.scale_reference:
        additions.append(f"Include {slot.scale_reference} for scale reference.")
    if slot.color_harmony:
        additions.append(f"Color palette: {', '.join(slot.color_harmony)}.")
    if slot.lighting_notes:
        additions.append(f"Lighting: {slot.lighting_notes}.")

    if additions:
        merged += "\n\n" + " ".join(additions)
    return merged


def build_kb_query(
    *,
    analysis: Optional[ProductAnalysis] = None,
    product: Optional[Product] = None,
    upload_descriptions: Sequence[str] = (),
    user_goal: Optional[str] = None,
) -> str:
    """Compose the knowledge-base search text, falling back to a generic query."""
    parts: List[str] = []
    if analysis:
        parts.append(f"advertising ideas for {analysis.category}")
        parts.append(analysis.subcategory)
        parts.append(f"{analysis.style} style")
    if product:
        parts.append(product.name)
    parts.extend(desc for desc in list(upload_descriptions)[:3] if desc)
    if user_goal:
        parts.append(user_goal)

    query = " ".join(part for part in parts if part).strip()
    return sanitize_for_prompt(query, max_length=1000, strip_newlines=True, context="kb_query") or GENERIC_KB_QUERY


__all__ = [
    "DEFAULTS",
    "PromptContext",
    "PromptDefaults",
    "build_kb_query",
    "build_suggestion_prompt",
    "build_template_slot_prompt",
    "build_vision_analysis_prompt",
    "format_patterns_for_prompt",
    "merge_template_with_insights",
]
