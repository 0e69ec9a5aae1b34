#!/usr/bin/env python3
"""
Product retrieval module for the chatdesk backend.

This module resolves a free-text customer query to catalog products by
running an ordered cascade of search strategies, from the most to the least
trustworthy, and stops at the first one that returns anything.
"""

from typing import Callable, List, Optional, Sequence, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..data.models import Product, ProductAlias
from ..data.store import contains_either_way, escape_like
from ..schemas.io_models import ProductSearchResult
from ..utils.logger import get_logger
from ..utils.security import mask_pii

logger = get_logger("retrieval")

EXACT_CONFIDENCE = 0.95
ALIAS_CONFIDENCE = 0.85
SEMANTIC_CONFIDENCE = 0.8
FULL_TEXT_CONFIDENCE = 0.6
LIKE_CONFIDENCE = 0.5
SAMPLE_CONFIDENCE = 0.3

StageOutput = Tuple[List[Product], float]


class ProductResolver:
    """Multi-strategy product search with confidence scoring."""

    def __init__(self, store, embedder=None, semantic_threshold: float = 0.7, default_limit: int = 10):
        """
        Initialize the resolver.

        Args:
            store: DataStore used for every lookup
            embedder: Optional EmbeddingClient; without one the semantic stage is skipped
            semantic_threshold: Minimum cosine similarity for a semantic match
            default_limit: Result cap when the caller does not pass one
        """
        self.store = store
        self.embedder = embedder
        self.semantic_threshold = semantic_threshold
        self.default_limit = default_limit

        self.stages: List[Tuple[str, Callable[[str, int], StageOutput]]] = [
            ("exact", self._exact_search),
            ("alias", self._alias_search),
        ]
        if embedder is not None:
            self.stages.append(("semantic", self._semantic_search))
        self.stages.append(("fuzzy", self._fuzzy_search))

    def resolve(self, query: str, limit: Optional[int] = None) -> ProductSearchResult:
        """
        Search for products using the strategy cascade.

        Each stage isolates its own failures: an exception is recorded in
        `errors` and the stage counts as empty, so later stages still run.

        Args:
            query: Customer text
            limit: Maximum number of products to return

        Returns:
            ProductSearchResult with the products, confidence and winning method
        """
        limit = limit or self.default_limit
        query = (query or "").strip()
        result = ProductSearchResult()
        logger.info("[RESOLVER] Searching for: %r", mask_pii(query))

        # A blank query can only be answered with sample rows
        stages = self.stages if query else []
        for name, stage in stages:
            items, confidence = self._run_stage(result, name, stage, query, limit)
            if items:
                logger.info("[RESOLVER] Found %d products via %s", len(items), name)
                result.items, result.confidence, result.method = items, confidence, name
                return result

        items, confidence = self._run_stage(result, "sample", self._sample_products, query, limit)
        if items:
            logger.info("[RESOLVER] No match, showing %d sample products", len(items))
            result.items, result.confidence, result.method = items, confidence, "sample"
            return result

        logger.info("[RESOLVER] No products found at all")
        return result

    def _run_stage(self, result: ProductSearchResult, name: str, stage, query: str, limit: int) -> StageOutput:
        result.stages_run.append(name)
        try:
            items, confidence = stage(query, limit)
        except Exception as e:
            logger.warning("[RESOLVER] %s search failed: %s", name, e)
            result.errors.append(name)
            return [], 0.0
        return list(items)[:limit], confidence

    # -- strategies ---------------------------------------------------------

    def _exact_search(self, query: str, limit: int) -> StageOutput:
        items = self.store.select(
            Product,
            or_(
                contains_either_way(Product.product_code, query),
                contains_either_way(Product.product_name_chinese, query),
                contains_either_way(Product.product_name_english, query),
            ),
            order_by=(Product.id,),
            limit=limit,
        )
        return items, EXACT_CONFIDENCE

    def _alias_search(self, query: str, limit: int) -> StageOutput:
        aliases = self.store.select(
            ProductAlias,
            ProductAlias.is_active.is_(True),
            contains_either_way(ProductAlias.alias_name, query),
        )
        if not aliases:
            return [], 0.0

        codes = list(dict.fromkeys(a.product_code for a in aliases))
        items = self.store.select(Product, Product.product_code.in_(codes), order_by=(Product.id,), limit=limit)
        if not items:
            return [], 0.0

        try:
            self.store.increment(ProductAlias, (ProductAlias.id.in_([a.id for a in aliases]),), "usage_count")
        except SQLAlchemyError as e:
            logger.warning("[RESOLVER] Failed to update alias usage counts: %s", e)
        return items, ALIAS_CONFIDENCE

    def _semantic_search(self, query: str, limit: int) -> StageOutput:
        embedding = self.embedder.embed(query)
        matches = self.store.match_products(embedding, self.semantic_threshold, limit)
        return [product for product, _ in matches], SEMANTIC_CONFIDENCE

    def _fuzzy_search(self, query: str, limit: int) -> StageOutput:
        try:
            items = self.store.text_search_products(query, limit)
        except Exception as e:
            logger.warning("[RESOLVER] Full-text search failed, falling back to LIKE: %s", e)
            items = []
        if items:
            return items, FULL_TEXT_CONFIDENCE

        items = self.store.select(
            Product,
            Product.search_text.ilike(f"%{escape_like(query)}%", escape="\\"),
            order_by=(Product.id,),
            limit=limit,
        )
        return items, (LIKE_CONFIDENCE if items else 0.0)

    def _sample_products(self, query: str, limit: int) -> StageOutput:
        items = self.store.select(Product, order_by=(Product.id,), limit=limit)
        return items, SAMPLE_CONFIDENCE

    # -- direct lookups -----------------------------------------------------

    def get_product_by_code(self, product_code: str) -> Optional[Product]:
        try:
            return self.store.select_one(Product, Product.product_code == product_code)
        except SQLAlchemyError:
            logger.exception("[RESOLVER] Get product by code failed")
            return None

    def get_products_by_codes(self, product_codes: Sequence[str]) -> List[Product]:
        if not product_codes:
            return []
        try:
            return self.store.select(Product, Product.product_code.in_(list(product_codes)))
        except SQLAlchemyError:
            logger.exception("[RESOLVER] Get products by codes failed")
            return []
