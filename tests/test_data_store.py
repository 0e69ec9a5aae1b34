#!/usr/bin/env python3
"""
Data Store Tests

PURPOSE:
    Covers the store's search helpers and the catalog maintenance scripts.

TEST COVERAGE:
    - Cosine similarity ranking, threshold and dimension filtering
    - Full-text search and index refresh after catalog changes
    - Two-way substring matching with literal wildcards
    - Atomic counter increments
    - CSV seeding (counts, idempotency, optional fields)
    - Batch embedding generation
"""

import unittest
from unittest.mock import MagicMock

from chatdesk.data.models import KnowledgeEntry, Product, ProductAlias
from chatdesk.data.populate_db import populate_all
from chatdesk.data.store import DataStore, contains_either_way
from chatdesk.scripts.generate_embeddings import generate_product_embeddings


def add_product(store, code, name, embedding=None):
    return store.insert(Product, product_code=code, product_name_chinese=name,
                        product_name_english=name, search_text=f"{code} {name}", embedding=embedding)


class TestMatchProducts(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")
        add_product(self.store, "A-1", "alpha", [1.0, 0.0])
        add_product(self.store, "B-1", "beta", [0.8, 0.6])
        add_product(self.store, "C-1", "gamma", [0.0, 1.0])
        add_product(self.store, "D-1", "delta", [1.0, 0.0, 0.0])
        add_product(self.store, "E-1", "epsilon")

    def test_ranked_by_similarity_above_threshold(self):
        matches = self.store.match_products([1.0, 0.0], 0.5, 10)
        self.assertEqual([p.product_code for p, _ in matches], ["A-1", "B-1"])
        self.assertAlmostEqual(matches[0][1], 1.0, places=5)
        self.assertAlmostEqual(matches[1][1], 0.8, places=5)

    def test_match_count(self):
        matches = self.store.match_products([1.0, 0.0], 0.0, 1)
        self.assertEqual([p.product_code for p, _ in matches], ["A-1"])

    def test_rejects_empty_query(self):
        with self.assertRaises(ValueError):
            self.store.match_products([], 0.5, 10)


class TestTextSearch(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")
        populate_all(self.store)

    def test_finds_matching_words(self):
        self.assertEqual([p.product_code for p in self.store.text_search_products("napkin")], ["NP-500"])
        codes = [p.product_code for p in self.store.text_search_products("paper cup")]
        self.assertIn("PC-410", codes)
        self.assertIn("PC-412", codes)

    def test_limit(self):
        self.assertEqual(len(self.store.text_search_products("stainless steel takeaway", limit=2)), 2)

    def test_no_hits(self):
        self.assertEqual(self.store.text_search_products("xylophone"), [])

    def test_index_refreshes_after_catalog_change(self):
        self.assertEqual(self.store.text_search_products("foil"), [])
        add_product(self.store, "AL-700", "Foil Tray")
        self.assertEqual([p.product_code for p in self.store.text_search_products("foil")], ["AL-700"])


class TestContainsEitherWay(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")
        self.store.insert(ProductAlias, alias_name="A_1", product_code="ABC-100")
        self.store.insert(ProductAlias, alias_name="10% off", product_code="PC-410")

    def _aliases(self, query):
        rows = self.store.select(ProductAlias, contains_either_way(ProductAlias.alias_name, query),
                                 order_by=(ProductAlias.id,))
        return [row.alias_name for row in rows]

    def test_column_wildcards_are_literal(self):
        self.assertEqual(self._aliases("price of AX1"), [])
        self.assertEqual(self._aliases("is 10 pieces off?"), [])

    def test_literal_matches_still_found(self):
        self.assertEqual(self._aliases("price of a_1 please"), ["A_1"])
        self.assertEqual(self._aliases("any 10% off today?"), ["10% off"])
        self.assertEqual(self._aliases("10%"), ["10% off"])


class TestIncrement(unittest.TestCase):

    def test_increments_several_columns(self):
        store = DataStore.from_url("sqlite://")
        alias = store.insert(ProductAlias, alias_name="cup", product_code="PC-410")
        self.assertEqual(store.increment(ProductAlias, (ProductAlias.id == alias.id,), "usage_count", amount=3), 1)
        self.assertEqual(store.select_one(ProductAlias, ProductAlias.id == alias.id).usage_count, 3)


class TestPopulateDb(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")

    def test_seeds_every_table_once(self):
        self.assertEqual(populate_all(self.store), {"products": 8, "aliases": 9, "knowledge": 8})
        self.assertEqual(populate_all(self.store), {"products": 0, "aliases": 0, "knowledge": 0})
        self.assertEqual(self.store.count(Product), 8)

    def test_seeded_rows(self):
        populate_all(self.store)
        lunch_box = self.store.select_one(Product, Product.product_code == "ABC-100")
        self.assertEqual(lunch_box.wholesale_price, 38.5)
        self.assertEqual(lunch_box.search_text, "ABC-100 不鏽鋼餐盒 Stainless Steel Lunch Box 1000ml 24個/箱")
        self.assertIsNone(lunch_box.embedding)

        hours = self.store.select_one(KnowledgeEntry, KnowledgeEntry.question == "Opening hours")
        self.assertEqual(hours.category, "general")
        self.assertIsNone(hours.confidence_score)


class TestGenerateEmbeddings(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")
        populate_all(self.store)

    def test_embeds_every_product_once(self):
        embedder = MagicMock()
        embedder.embed_batch.side_effect = lambda texts: [[float(len(t)), 1.0] for t in texts]

        summary = generate_product_embeddings(self.store, embedder, batch_size=3)
        self.assertEqual(summary, {"total": 8, "processed": 8, "failed": 0})
        self.assertEqual(embedder.embed_batch.call_count, 3)
        self.assertEqual(self.store.count(Product, Product.embedding.is_(None)), 0)

        again = generate_product_embeddings(self.store, embedder)
        self.assertEqual(again, {"total": 0, "processed": 0, "failed": 0})

    def test_failed_batches_are_counted(self):
        embedder = MagicMock()
        embedder.embed_batch.side_effect = RuntimeError("model not available")
        summary = generate_product_embeddings(self.store, embedder, batch_size=5)
        self.assertEqual(summary, {"total": 8, "processed": 0, "failed": 8})


if __name__ == "__main__":
    unittest.main()
