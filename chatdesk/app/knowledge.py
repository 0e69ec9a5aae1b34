#!/usr/bin/env python3
"""
Knowledge base module for the chatdesk backend.

Canned question/answer pairs are matched against the customer's message and
rendered into a context block for the system prompt.
"""

from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..data.models import KnowledgeEntry
from ..data.store import contains_either_way, escape_like
from ..utils.logger import get_logger

logger = get_logger("knowledge")

_HEADERS = {
    "zh": "相關知識庫資訊：",
    "en": "Relevant knowledge base information:",
}


def _ranked():
    # confidence desc, entries without a score last
    return (KnowledgeEntry.confidence_score.is_(None), KnowledgeEntry.confidence_score.desc(), KnowledgeEntry.id)


class KnowledgeRetriever:
    """Substring lookup over active knowledge entries."""

    def __init__(self, store, limit: int = 5):
        self.store = store
        self.limit = limit

    def retrieve(self, query: str, category: Optional[str] = None) -> List[KnowledgeEntry]:
        """
        Search the knowledge base for entries relevant to a message.

        Args:
            query: Customer message
            category: Optional category to restrict the search to

        Returns:
            Up to `limit` entries, best first; empty on any failure
        """
        query = (query or "").strip()
        if not query:
            return []

        criteria = [
            KnowledgeEntry.is_active.is_(True),
            or_(
                contains_either_way(KnowledgeEntry.question, query),
                KnowledgeEntry.answer.ilike(f"%{escape_like(query)}%", escape="\\"),
            ),
        ]
        if category:
            criteria.append(KnowledgeEntry.category == category)

        try:
            entries = self.store.select(KnowledgeEntry, *criteria, order_by=_ranked(), limit=self.limit)
        except Exception as e:
            logger.warning("[KNOWLEDGE] Knowledge base search failed: %s", e)
            return []

        if entries:
            try:
                self.store.increment(
                    KnowledgeEntry, (KnowledgeEntry.id.in_([e.id for e in entries]),), "usage_count"
                )
            except SQLAlchemyError as e:
                logger.warning("[KNOWLEDGE] Failed to update usage counts: %s", e)
        logger.info("[KNOWLEDGE] %d entries matched", len(entries))
        return entries

    def build_context(self, query: str, category: Optional[str] = None, language: str = "zh") -> str:
        """Render matching entries as a prompt block, or '' when nothing matches."""
        entries = self.retrieve(query, category)
        if not entries:
            return ""

        context = _HEADERS.get(language, _HEADERS["zh"]) + "\n\n"
        for index, entry in enumerate(entries, 1):
            context += f"{index}. Q: {entry.question}\n"
            context += f"   A: {entry.answer}\n\n"
        return context

    def get_by_category(self, category: str) -> List[KnowledgeEntry]:
        try:
            return self.store.select(
                KnowledgeEntry,
                KnowledgeEntry.category == category,
                KnowledgeEntry.is_active.is_(True),
                order_by=_ranked(),
            )
        except SQLAlchemyError:
            logger.exception("[KNOWLEDGE] Get by category failed")
            return []

    def get_categories(self) -> List[str]:
        try:
            entries = self.store.select(KnowledgeEntry, KnowledgeEntry.is_active.is_(True), order_by=(KnowledgeEntry.id,))
        except SQLAlchemyError:
            logger.exception("[KNOWLEDGE] Get categories failed")
            return []
        return list(dict.fromkeys(e.category for e in entries))

    def add_entry(self, question: str, answer: str, category: str = "general", source: str = "manual",
                  created_by: Optional[str] = None, confidence_score: Optional[float] = None) -> Optional[KnowledgeEntry]:
        try:
            return self.store.insert(
                KnowledgeEntry,
                question=question,
                answer=answer,
                category=category,
                source=source,
                created_by=created_by,
                confidence_score=confidence_score,
                is_active=True,
                usage_count=0,
            )
        except SQLAlchemyError:
            logger.exception("[KNOWLEDGE] Add entry failed")
            return None
