"""
Database operations module for the Idea Bank Supabase tables.
Handles reads of catalog, brand and template records and the
lifecycle of cached product analyses.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

from ideabank.config import logger
from ideabank.db import get_supabase_client
from ideabank.models import (
    AdSceneTemplate,
    BrandImage,
    BrandProfile,
    InstallationScenario,
    LearnedPattern,
    Product,
    ProductAnalysis,
    RelatedProduct,
)

PRODUCTS_TABLE = "products"
BRAND_PROFILES_TABLE = "brand_profiles"
TEMPLATES_TABLE = "ad_scene_templates"
ANALYSES_TABLE = "product_analyses"
PATTERNS_TABLE = "learned_ad_patterns"
RELATIONSHIPS_TABLE = "product_relationships"
SCENARIOS_TABLE = "installation_scenarios"
BRAND_IMAGES_TABLE = "brand_images"


class SupabaseStorage:
    """Storage collaborator backed by Supabase tables."""

    def __init__(self, client: Optional[Client] = None) -> None:
        self._supabase = client

    def _client(self) -> Client:
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    def _first(self, table: str, column: str, value: str) -> Optional[Dict[str, Any]]:
        response = (
            self._client().table(table).select("*").eq(column, value).limit(1).execute()
        )
        return response.data[0] if response.data else None

    # -------------------------
    # Catalog
    # -------------------------
    async def get_product_by_id(self, product_id: str) -> Optional[Product]:
        """
        Fetch a product by ID.

        Args:
            product_id: UUID of the product

        Returns:
            The product, or None if not found

        Raises:
            Exception: If database operation fails
        """
        try:
            row = self._first(PRODUCTS_TABLE, "id", product_id)
            return Product.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to fetch product {product_id}: {e}")
            raise

    async def get_brand_profile_by_user_id(self, user_id: str) -> Optional[BrandProfile]:
        try:
            row = self._first(BRAND_PROFILES_TABLE, "user_id", user_id)
            return BrandProfile.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to fetch brand profile for user {user_id}: {e}")
            raise

    async def get_template_by_id(self, template_id: str) -> Optional[AdSceneTemplate]:
        try:
            row = self._first(TEMPLATES_TABLE, "id", template_id)
            return AdSceneTemplate.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to fetch template {template_id}: {e}")
            raise

    async def list_templates(self, *, is_global: bool = True) -> List[AdSceneTemplate]:
        try:
            response = (
                self._client()
                .table(TEMPLATES_TABLE)
                .select("*")
                .eq("is_global", is_global)
                .execute()
            )
            return [AdSceneTemplate.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Failed to list templates: {e}")
            raise

    # -------------------------
    # Product analyses
    # -------------------------
    async def get_analysis_by_product_id(self, product_id: str) -> Optional[ProductAnalysis]:
        try:
            row = self._first(ANALYSES_TABLE, "product_id", product_id)
            return ProductAnalysis.model_validate(row) if row else None
        except Exception as e:
            logger.error(f"Failed to fetch analysis for product {product_id}: {e}")
            raise

    async def save_analysis(self, analysis: ProductAnalysis) -> ProductAnalysis:
        """
        Insert a new product analysis record.

        Raises:
            Exception: If database operation fails or no record is returned
        """
        try:
            record = analysis.model_dump(mode="json")
            record["analyzed_at"] = datetime.now(timezone.utc).isoformat()
            response = self._client().table(ANALYSES_TABLE).insert(record).execute()
            if not response.data:
                raise Exception("No data returned from insert operation")
            logger.info(f"Saved analysis for product {analysis.product_id}")
            return ProductAnalysis.model_validate(response.data[0])
        except Exception as e:
            logger.error(f"Failed to save analysis for product {analysis.product_id}: {e}")
            raise

    async def update_analysis(self, product_id: str, analysis: ProductAnalysis) -> ProductAnalysis:
        """Replace every analysis column of an existing record."""
        try:
            record = analysis.model_dump(mode="json", exclude={"product_id"})
            record["analyzed_at"] = datetime.now(timezone.utc).isoformat()
            response = (
                self._client()
                .table(ANALYSES_TABLE)
                .update(record)
                .eq("product_id", product_id)
                .execute()
            )
            if not response.data:
                raise Exception(f"No analysis found for product {product_id}")
            logger.info(f"Replaced analysis for product {product_id}")
            return ProductAnalysis.model_validate(response.data[0])
        except Exception as e:
            logger.error(f"Failed to update analysis for product {product_id}: {e}")
            raise

    async def delete_analysis(self, product_id: str) -> None:
        try:
            self._client().table(ANALYSES_TABLE).delete().eq("product_id", product_id).execute()
            logger.info(f"Deleted analysis for product {product_id}")
        except Exception as e:
            logger.error(f"Failed to delete analysis for product {product_id}: {e}")
            raise

    # -------------------------
    # Learned patterns
    # -------------------------
    async def get_relevant_patterns(
        self,
        user_id: str,
        *,
        category: Optional[str] = None,
        industry: Optional[str] = None,
        max_patterns: int = 3,
    ) -> List[LearnedPattern]:
        try:
            query = (
                self._client()
                .table(PATTERNS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("is_active", True)
            )
            if category:
                query = query.eq("category", category)
            if industry:
                query = query.eq("industry", industry)
            response = (
                query.order("confidence_score", desc=True).limit(max_patterns).execute()
            )
            return [LearnedPattern.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Failed to fetch learned patterns for user {user_id}: {e}")
            raise

    # -------------------------
    # Product knowledge
    # -------------------------
    async def get_related_products(self, product_id: str) -> List[RelatedProduct]:
        try:
            response = (
                self._client()
                .table(RELATIONSHIPS_TABLE)
                .select("target_product_id, relationship_type, description")
                .eq("source_product_id", product_id)
                .execute()
            )
            links = response.data or []
            if not links:
                return []

            target_ids = [link["target_product_id"] for link in links]
            products = (
                self._client()
                .table(PRODUCTS_TABLE)
                .select("*")
                .in_("id", target_ids)
                .execute()
            )
            by_id = {row["id"]: Product.model_validate(row) for row in products.data or []}

            return [
                RelatedProduct(
                    product=by_id[link["target_product_id"]],
                    relationship_type=link["relationship_type"],
                    relationship_description=link.get("description"),
                )
                for link in links
                if link["target_product_id"] in by_id
            ]
        except Exception as e:
            logger.error(f"Failed to fetch related products for {product_id}: {e}")
            raise

    async def get_installation_scenarios(
        self, product_id: str, user_id: Optional[str] = None
    ) -> List[InstallationScenario]:
        try:
            query = (
                self._client()
                .table(SCENARIOS_TABLE)
                .select("*")
                .contains("product_ids", [product_id])
            )
            if user_id:
                query = query.eq("user_id", user_id)
            response = query.execute()
            return [InstallationScenario.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Failed to fetch installation scenarios for {product_id}: {e}")
            raise

    async def get_brand_images(
        self, user_id: str, *, product_id: Optional[str] = None, limit: int = 5
    ) -> List[BrandImage]:
        try:
            query = self._client().table(BRAND_IMAGES_TABLE).select("*").eq("user_id", user_id)
            if product_id:
                query = query.contains("product_ids", [product_id])
            response = query.limit(limit).execute()
            return [BrandImage.model_validate(row) for row in response.data or []]
        except Exception as e:
            logger.error(f"Failed to fetch brand images for user {user_id}: {e}")
            raise


__all__ = ["SupabaseStorage"]
