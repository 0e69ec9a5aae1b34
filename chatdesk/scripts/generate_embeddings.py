#!/usr/bin/env python3
"""
Generate embeddings for products that do not have one yet.

Run this after importing products to enable semantic search:

    python -m chatdesk.scripts.generate_embeddings
"""

import sys
from typing import Dict

from ..data.models import Product
from ..data.store import DataStore
from ..utils.logger import get_logger

logger = get_logger("generate_embeddings")


def generate_product_embeddings(store: DataStore, embedder, batch_size: int = 32) -> Dict[str, int]:
    """
    Fill in search_text and embedding for every product missing an embedding.

    Args:
        store: DataStore holding the catalog
        embedder: Object with embed_batch(texts) -> vectors
        batch_size: Number of products embedded per model call

    Returns:
        Summary counts: total, processed, failed
    """
    products = store.select(Product, Product.embedding.is_(None), order_by=(Product.id,))
    summary = {"total": len(products), "processed": 0, "failed": 0}
    if not products:
        logger.info("No products found without embeddings")
        return summary

    logger.info("Found %d products to process", len(products))
    for start in range(0, len(products), batch_size):
        batch = products[start:start + batch_size]
        texts = [p.build_search_text() for p in batch]
        try:
            vectors = embedder.embed_batch(texts)
        except Exception as e:
            logger.error("Embedding batch starting at %d failed: %s", start, e)
            summary["failed"] += len(batch)
            continue

        for product, text, vector in zip(batch, texts, vectors):
            try:
                store.update(
                    Product,
                    (Product.id == product.id,),
                    {"embedding": [float(x) for x in vector], "search_text": text},
                )
                summary["processed"] += 1
            except Exception as e:
                logger.error("Failed to update %s: %s", product.product_code, e)
                summary["failed"] += 1

    logger.info("Embeddings: %(processed)d processed, %(failed)d failed of %(total)d", summary)
    return summary


def main():
    from ..app.config import Config
    from ..app.embed import EmbeddingClient

    summary = generate_product_embeddings(
        DataStore.from_url(Config.DATABASE_URL),
        EmbeddingClient(Config.EMBEDDING_MODEL),
    )
    print("\n=== Summary ===")
    print(f"Total products: {summary['total']}")
    print(f"Successfully processed: {summary['processed']}")
    print(f"Failed: {summary['failed']}")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
