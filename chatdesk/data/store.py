"""Data store: the only component that talks to the database.

Services express their filters as SQLAlchemy criteria and receive detached
rows back, so no session ever outlives a single store call.
"""
import threading
from contextlib import contextmanager
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import String, and_, func, literal, or_
from whoosh.fields import Schema, ID, TEXT
from whoosh.filedb.filestore import RamStorage
from whoosh.qparser import OrGroup, QueryParser

from .database import build_engine, build_session_factory, create_tables
from .models import Product
from ..utils.logger import get_logger

logger = get_logger("store")


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def contains_either_way(column, query: str):
    """Case-insensitive substring match in both directions.

    Matches when the column contains the query, or when the query contains the
    column value (values shorter than two characters only match the first way).
    """
    forward = column.ilike(f"%{escape_like(query)}%", escape="\\")
    # Same escaping as escape_like, applied to the column in SQL
    escaped = func.replace(
        func.replace(func.replace(column, "\\", "\\\\"), "%", "\\%"), "_", "\\_", type_=String
    )
    reverse = and_(
        func.length(column) >= 2,
        literal(query, String).ilike(
            literal("%", String).concat(escaped).concat("%"), escape="\\"
        ),
    )
    return or_(forward, reverse)


class DataStore:
    """Filtered CRUD over the SQLAlchemy models plus the two search RPCs."""

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._index_lock = threading.Lock()
        self._text_index = None
        self._text_index_signature = None

    @classmethod
    def from_url(cls, database_url: str, create: bool = True) -> "DataStore":
        engine = build_engine(database_url)
        if create:
            create_tables(engine)
        return cls(build_session_factory(engine))

    @contextmanager
    def session(self):
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # -- generic CRUD -------------------------------------------------------

    def select(self, model, *criteria, order_by: Sequence = (), limit: Optional[int] = None) -> List[Any]:
        with self.session() as db:
            query = db.query(model).filter(*criteria)
            if order_by:
                query = query.order_by(*order_by)
            if limit is not None:
                query = query.limit(limit)
            return query.all()

    def select_one(self, model, *criteria, order_by: Sequence = ()) -> Optional[Any]:
        rows = self.select(model, *criteria, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def count(self, model, *criteria) -> int:
        with self.session() as db:
            return db.query(model).filter(*criteria).count()

    def insert(self, model, **values) -> Any:
        with self.session() as db:
            row = model(**values)
            db.add(row)
            db.flush()
            return row

    def update(self, model, criteria: Iterable, values: dict) -> int:
        with self.session() as db:
            return db.query(model).filter(*criteria).update(values, synchronize_session=False)

    def increment(self, model, criteria: Iterable, *columns: str, amount: int = 1) -> int:
        """Atomically add `amount` to counter columns on every matching row."""
        values = {}
        for column in columns:
            col = getattr(model, column)
            values[col] = col + amount
        with self.session() as db:
            return db.query(model).filter(*criteria).update(values, synchronize_session=False)

    # -- search RPCs --------------------------------------------------------

    def match_products(self, query_embedding: Sequence[float], match_threshold: float,
                       match_count: int) -> List[Tuple[Product, float]]:
        """
        Rank products by cosine similarity to the query embedding.

        Args:
            query_embedding: Query vector
            match_threshold: Minimum similarity to keep a product
            match_count: Maximum number of products to return

        Returns:
            List of (product, similarity) tuples, most similar first
        """
        query_vector = np.asarray(query_embedding, dtype="float32")
        if query_vector.ndim != 1 or not query_vector.size:
            raise ValueError("query embedding must be a non-empty vector")

        candidates = [
            p for p in self.select(Product, Product.embedding.isnot(None))
            if p.embedding and len(p.embedding) == query_vector.size
        ]
        if not candidates:
            return []

        matrix = np.asarray([p.embedding for p in candidates], dtype="float32")
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vector)
        norms[norms == 0] = 1.0
        similarities = matrix @ query_vector / norms

        ranked = sorted(zip(candidates, similarities.tolist()), key=lambda x: x[1], reverse=True)
        return [(p, s) for p, s in ranked if s >= match_threshold][:match_count]

    def text_search_products(self, query_text: str, limit: int = 10) -> List[Product]:
        """
        Full-text (BM25) search over products.search_text.

        Args:
            query_text: Free text query
            limit: Number of results to return

        Returns:
            Products ordered by relevance
        """
        index = self._get_text_index()
        with index.searcher() as searcher:
            query = QueryParser("content", index.schema, group=OrGroup.factory(0.9)).parse(query_text)
            codes = [hit["code"] for hit in searcher.search(query, limit=limit)]
        if not codes:
            return []

        by_code = {p.product_code: p for p in self.select(Product, Product.product_code.in_(codes))}
        return [by_code[c] for c in codes if c in by_code]

    def _catalog_signature(self):
        with self.session() as db:
            return db.query(func.count(Product.id), func.max(Product.updated_at)).one()

    def _get_text_index(self):
        signature = tuple(self._catalog_signature())
        with self._index_lock:
            if self._text_index is not None and self._text_index_signature == signature:
                return self._text_index

            schema = Schema(code=ID(stored=True, unique=True), content=TEXT())
            index = RamStorage().create_index(schema)
            writer = index.writer()
            products = self.select(Product)
            for product in products:
                writer.add_document(code=product.product_code,
                                    content=product.search_text or product.build_search_text())
            writer.commit()

            logger.info("[STORE] Rebuilt full-text index with %d products", len(products))
            self._text_index = index
            self._text_index_signature = signature
            return index
