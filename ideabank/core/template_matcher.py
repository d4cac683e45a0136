"""Deterministic scoring of ad scene templates against a product analysis."""

from typing import Iterable, List, Tuple

from ideabank.models import AdSceneTemplate, ProductAnalysis

AFFINITY_POINTS = 30
MOOD_POINTS = 20
ENVIRONMENT_POINTS = 15
TAG_POINTS = 5
DEFAULT_MATCH_LIMIT = 5


def _analysis_terms(analysis: ProductAnalysis) -> set:
    terms = [*analysis.materials, *analysis.colors, analysis.category, analysis.subcategory, analysis.style]
    return {term.lower() for term in terms if term}


def score_template(template: AdSceneTemplate, analysis: ProductAnalysis) -> int:
    """Relevance score of ``template`` for the analyzed product."""
    score = 0

    affinities = {kind.lower() for kind in template.best_for_product_types}
    if analysis.category.lower() in affinities or analysis.subcategory.lower() in affinities:
        score += AFFINITY_POINTS

    if template.mood and template.mood.lower() == analysis.style.lower():
        score += MOOD_POINTS

    if template.environment and template.environment.lower() in analysis.usage_context.lower():
        score += ENVIRONMENT_POINTS

    terms = _analysis_terms(analysis)
    score += TAG_POINTS * sum(1 for tag in template.tags if tag.lower() in terms)

    return score


def rank_templates(
    templates: Iterable[AdSceneTemplate],
    analysis: ProductAnalysis,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> List[Tuple[AdSceneTemplate, int]]:
    """Templates with a positive score, best first, ties in input order."""
    scored = [(template, score_template(template, analysis)) for template in templates]
    ranked = sorted(
        (pair for pair in scored if pair[1] > 0),
        key=lambda pair: pair[1],
        reverse=True,
    )
    return ranked[:limit]


def match_templates(
    templates: Iterable[AdSceneTemplate],
    analysis: ProductAnalysis,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> List[AdSceneTemplate]:
    return [template for template, _ in rank_templates(templates, analysis, limit)]
