import csv
import os

from .models import KnowledgeEntry, Product, ProductAlias
from .store import DataStore
from ..utils.logger import get_logger

logger = get_logger("populate_db")

RAW_DIR = os.path.join(os.path.dirname(__file__), "raw")
PRODUCTS_CSV_PATH = os.path.join(RAW_DIR, "products.csv")
ALIASES_CSV_PATH = os.path.join(RAW_DIR, "aliases.csv")
KNOWLEDGE_CSV_PATH = os.path.join(RAW_DIR, "knowledge.csv")


def _optional_float(value):
    value = (value or "").strip().replace("$", "")
    return float(value) if value else None


def _read_rows(path):
    with open(path, mode="r", encoding="utf-8") as csvfile:
        return list(csv.DictReader(csvfile))


def populate_products(store: DataStore, path: str = PRODUCTS_CSV_PATH) -> int:
    """Read products.csv and populate the products table."""
    if store.count(Product) > 0:
        logger.info("Products table is not empty. Skipping population.")
        return 0

    rows = _read_rows(path)
    with store.session() as db:
        for row in rows:
            product = Product(
                product_code=row["product_code"].strip(),
                product_name_chinese=row["product_name_chinese"].strip(),
                product_name_english=(row.get("product_name_english") or "").strip() or None,
                size=(row.get("size") or "").strip() or None,
                box_specification=(row.get("box_specification") or "").strip() or None,
                wholesale_price=_optional_float(row.get("wholesale_price")),
            )
            product.search_text = product.build_search_text()
            db.add(product)
    logger.info("Populated %d products", len(rows))
    return len(rows)


def populate_aliases(store: DataStore, path: str = ALIASES_CSV_PATH) -> int:
    """Read aliases.csv and populate the product_aliases table."""
    if store.count(ProductAlias) > 0:
        logger.info("Aliases table is not empty. Skipping population.")
        return 0

    rows = _read_rows(path)
    with store.session() as db:
        for row in rows:
            db.add(ProductAlias(
                alias_name=row["alias_name"].strip(),
                product_code=row["product_code"].strip(),
                product_name_display=(row.get("product_name_display") or "").strip() or None,
                created_by="seed",
                usage_count=0,
                is_active=True,
            ))
    logger.info("Populated %d aliases", len(rows))
    return len(rows)


def populate_knowledge(store: DataStore, path: str = KNOWLEDGE_CSV_PATH) -> int:
    """Read knowledge.csv and populate the knowledge_entries table."""
    if store.count(KnowledgeEntry) > 0:
        logger.info("Knowledge table is not empty. Skipping population.")
        return 0

    rows = _read_rows(path)
    with store.session() as db:
        for row in rows:
            db.add(KnowledgeEntry(
                question=row["question"].strip(),
                answer=row["answer"].strip(),
                category=(row.get("category") or "general").strip(),
                source="seed",
                confidence_score=_optional_float(row.get("confidence_score")),
                is_active=True,
                usage_count=0,
            ))
    logger.info("Populated %d knowledge entries", len(rows))
    return len(rows)


def populate_all(store: DataStore) -> dict:
    return {
        "products": populate_products(store),
        "aliases": populate_aliases(store),
        "knowledge": populate_knowledge(store),
    }


if __name__ == "__main__":
    from ..app.config import Config

    counts = populate_all(DataStore.from_url(Config.DATABASE_URL))
    print(f"Seeded: {counts}")
