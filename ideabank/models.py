"""Domain models shared across the Idea Bank pipeline."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


SuggestionMode = Literal["exact_insert", "inspiration", "standard"]
GenerationMode = Literal["freestyle", "template"]


class _Row(BaseModel):
    """Base for models hydrated from storage rows carrying extra columns."""

    model_config = ConfigDict(extra="ignore")


# -------------------------
# Catalog
# -------------------------
class Product(_Row):
    id: str
    user_id: Optional[str] = None
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_public_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ProductAnalysis(_Row):
    product_id: Optional[str] = None
    category: str = "product"
    subcategory: str = "general"
    materials: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    style: str = "modern"
    usage_context: str = ""
    target_demographic: str = ""
    detected_text: Optional[str] = None
    confidence: int = Field(80, ge=0, le=100)
    image_fingerprint: str = ""
    model_version: str = ""
    analyzed_at: Optional[str] = None


class PlacementHints(_Row):
    position: Optional[str] = None
    scale: Optional[str] = None


class AdSceneTemplate(_Row):
    id: str
    title: str
    description: Optional[str] = None
    category: str = "general"
    tags: List[str] = Field(default_factory=list)
    mood: Optional[str] = None
    environment: Optional[str] = None
    best_for_product_types: List[str] = Field(default_factory=list)
    prompt_blueprint: str = ""
    placement_hints: Optional[PlacementHints] = None
    lighting_style: Optional[str] = None
    aspect_ratio_hints: List[str] = Field(default_factory=list)
    platform_hints: List[str] = Field(default_factory=list)
    is_global: bool = True


# -------------------------
# Brand
# -------------------------
class BrandVoice(_Row):
    principles: List[str] = Field(default_factory=list)
    words_to_use: List[str] = Field(default_factory=list)
    words_to_avoid: List[str] = Field(default_factory=list)


class TargetAudience(_Row):
    demographics: Optional[str] = None
    psychographics: Optional[str] = None
    pain_points: List[str] = Field(default_factory=list)


class BrandProfile(_Row):
    id: Optional[str] = None
    user_id: Optional[str] = None
    brand_name: Optional[str] = None
    industry: Optional[str] = None
    brand_values: List[str] = Field(default_factory=list)
    preferred_styles: List[str] = Field(default_factory=list)
    color_preferences: List[str] = Field(default_factory=list)
    voice: Optional[BrandVoice] = None
    target_audience: Optional[TargetAudience] = None
    kb_tags: List[str] = Field(default_factory=list)


class LearnedPattern(_Row):
    id: Optional[str] = None
    name: str
    category: Optional[str] = None
    platform: Optional[str] = None
    industry: Optional[str] = None
    layout_pattern: Dict[str, Any] = Field(default_factory=dict)
    color_psychology: Dict[str, Any] = Field(default_factory=dict)
    hook_patterns: Dict[str, Any] = Field(default_factory=dict)
    visual_elements: Dict[str, Any] = Field(default_factory=dict)
    engagement_tier: Optional[str] = None
    confidence_score: float = 0.0


# -------------------------
# Enhanced product knowledge
# -------------------------
class RelatedProduct(BaseModel):
    product: Product
    relationship_type: str
    relationship_description: Optional[str] = None


class InstallationScenario(_Row):
    id: str
    title: str
    description: str = ""
    installation_steps: List[str] = Field(default_factory=list)
    scenario_type: str = "room_type"
    is_active: bool = True


class BrandImage(_Row):
    id: str
    image_url: str
    category: str = "general"
    product_ids: List[str] = Field(default_factory=list)


class EnhancedProductContext(BaseModel):
    product: Product
    related_products: List[RelatedProduct] = Field(default_factory=list)
    installation_scenarios: List[InstallationScenario] = Field(default_factory=list)
    brand_images: List[BrandImage] = Field(default_factory=list)
    formatted_context: str = ""


# -------------------------
# Suggestions
# -------------------------
class SourcesUsed(BaseModel):
    vision_analysis: bool = False
    kb_retrieval: bool = False
    web_search: bool = False
    template_matching: bool = False


class Suggestion(BaseModel):
    id: str
    summary: str
    prompt: str
    mode: SuggestionMode = "standard"
    template_ids: Optional[List[str]] = None
    reasoning: str = ""
    confidence: int = Field(70, ge=0, le=100)
    sources_used: SourcesUsed = Field(default_factory=SourcesUsed)
    recommended_platform: Optional[str] = None
    recommended_aspect_ratio: Optional[str] = None


class SlotSuggestion(BaseModel):
    product_highlights: List[str] = Field(default_factory=list)
    product_placement: str = "center of frame"
    details_to_emphasize: List[str] = Field(default_factory=list)
    scale_reference: Optional[str] = None
    header_text: Optional[str] = None
    body_text: Optional[str] = None
    cta_suggestion: Optional[str] = None
    color_harmony: List[str] = Field(default_factory=list)
    lighting_notes: str = "Natural lighting"
    confidence: int = Field(70, ge=0, le=100)
    reasoning: str = "Product-template compatibility analysis"


class AnalysisStatus(BaseModel):
    vision_complete: bool = False
    kb_queried: bool = False
    templates_matched: int = 0
    web_search_used: bool = False
    product_knowledge_used: bool = False
    upload_descriptions_used: int = 0
    learned_patterns_used: int = 0


class TemplateContext(BaseModel):
    id: str
    title: str
    category: str
    aspect_ratio_hints: List[str] = Field(default_factory=list)
    platform_hints: List[str] = Field(default_factory=list)
    lighting_style: Optional[str] = None
    environment: Optional[str] = None


# -------------------------
# Generation recipe
# -------------------------
class RecipeProduct(BaseModel):
    id: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    image_urls: List[str] = Field(default_factory=list)


class RecipeRelationship(BaseModel):
    source_product_id: str
    source_product_name: str
    target_product_id: str
    target_product_name: str
    relationship_type: str
    description: Optional[str] = None


class RecipeScenario(BaseModel):
    id: str
    title: str
    description: str
    steps: List[str] = Field(default_factory=list)
    is_active: bool = True
    scenario_type: str


class RecipeTemplate(BaseModel):
    id: str
    title: str
    category: str
    aspect_ratio: Optional[str] = None


class RecipeBrandImage(BaseModel):
    id: str
    image_url: str
    category: str


class RecipeBrandVoice(BaseModel):
    brand_name: Optional[str] = None
    industry: Optional[str] = None
    values: List[str] = Field(default_factory=list)


class RecipeDebugContext(BaseModel):
    relationships_found: int
    scenarios_found: int
    scenarios_active: int
    scenarios_inactive: int
    templates_matched: int
    brand_images_found: int
    build_time_ms: int


class GenerationRecipe(BaseModel):
    version: Literal["1.0"] = "1.0"
    products: List[RecipeProduct] = Field(default_factory=list)
    relationships: List[RecipeRelationship] = Field(default_factory=list)
    scenarios: List[RecipeScenario] = Field(default_factory=list)
    template: Optional[RecipeTemplate] = None
    brand_images: List[RecipeBrandImage] = Field(default_factory=list)
    brand_voice: Optional[RecipeBrandVoice] = None
    debug_context: Optional[RecipeDebugContext] = None


# -------------------------
# Responses
# -------------------------
class SuggestResponse(BaseModel):
    suggestions: List[Suggestion] = Field(default_factory=list)
    analysis_status: AnalysisStatus = Field(default_factory=AnalysisStatus)
    recipe: Optional[GenerationRecipe] = None


class TemplateResponse(BaseModel):
    slot_suggestions: List[SlotSuggestion] = Field(default_factory=list)
    merged_prompt: str
    template: TemplateContext
    analysis_status: AnalysisStatus = Field(default_factory=AnalysisStatus)
    recipe: Optional[GenerationRecipe] = None


class KnowledgeBaseResult(BaseModel):
    context: str
    citations: List[str] = Field(default_factory=list)
