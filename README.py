"""
CHATDESK — System Documentation
===============================

This module-style README documents the architecture, components, data flows
and operational practices of the chatdesk WhatsApp customer service backend.
It mirrors the live codebase and can be imported to inspect sections or
printed for human consumption.

How to use this file
--------------------
- View in an editor for structured reading.
- Run `python README.py` to print the outline.
- Import `README` in tools or scripts to surface sections.

Table of Contents
-----------------
1. System Overview
2. Architecture
3. Backend Components
4. Data & Persistence
5. Request Flow
6. Product Search Cascade
7. Escalation
8. Configuration & Environment
9. Data Lifecycle
10. Testing Strategy
11. Security & PII Handling
12. Running

"""

from __future__ import annotations

import textwrap


def section(title: str, body: str) -> str:
    return f"\n{title}\n{'-' * len(title)}\n{body.strip()}\n"


SYSTEM_OVERVIEW = section(
    "1. System Overview",
    """
    chatdesk answers wholesale customers on WhatsApp in Traditional Chinese or
    English. Each inbound message is persisted, matched against the product
    catalog and a Q&A knowledge base, answered by a chat-completions model and
    handed to a human agent when the conversation needs one.
    """,
)


ARCHITECTURE = section(
    "2. Architecture",
    """
    - API: FastAPI app exposing the WhatsApp webhook plus admin endpoints.
    - Gateway: One webhook delivery per call; per-phone lock drops duplicates.
    - Controller: Language, intent, retrieval, prompt, generation, escalation.
    - Data: SQLAlchemy models behind a single DataStore (SQLite or Postgres).
    - Locks: Redis SET NX when REDIS_URL is reachable, database rows otherwise.
    """,
)


BACKEND_COMPONENTS = section(
    "3. Backend Components",
    """
    chatdesk/app/
      - main.py: FastAPI app factory, routes, CORS.
      - container.py: Builds the service graph from `Config`.
      - webhook.py: Inbound delivery pipeline and hand-off message.
      - controller.py: Orchestrator; never raises, apologises on failure.
      - session.py: Customers, 24h sessions, messages, processing lock.
      - locks.py: Store-backed and Redis-backed session locks.
      - retrieval.py: Product resolver (exact → alias → semantic → fuzzy → sample).
      - knowledge.py: Q&A lookup, usage counters, prompt context.
      - preprocess.py/postprocess.py: Language detection and product rendering.
      - prompt_builder.py: Localized system prompts and product notices.
      - generate.py/embed.py: Chat-completions client, sentence-transformers.
      - whatsapp.py: Cloud API sends and webhook parsing.

    chatdesk/data/
      - models.py/database.py: SQLAlchemy models and engine/session setup.
      - store.py: Filtered CRUD, cosine matching, Whoosh full-text search.
      - populate_db.py: Seed products, aliases and knowledge from raw/*.csv.

    chatdesk/nlu/rules.py: Keyword intents and escalation vocabularies.
    chatdesk/scripts/generate_embeddings.py: Backfill product embeddings.
    """,
)


DATA_AND_PERSISTENCE = section(
    "4. Data & Persistence",
    """
    - Entities: Customer, Message, ConversationSession, Product, ProductAlias,
      KnowledgeEntry, SessionLock, WebhookLog.
    - Timestamps are naive UTC everywhere.
    - Session counters and usage counters are incremented in SQL, never
      read-modify-write.
    """,
)


REQUEST_FLOW = section(
    "5. Request Flow",
    """
    1) POST /api/webhook acknowledges at once; processing runs as a background task.
    2) Status callbacks are ignored; a held lock means a duplicate delivery.
    3) Inbound message saved, context built, controller produces an AIResponse.
    4) Reply saved with its response time, then sent.
    5) Escalate and send the hand-off notice, or record the intent as state.
    6) Lock released on every path.
    """,
)


SEARCH_CASCADE = section(
    "6. Product Search Cascade",
    """
    - exact (0.95): code or name contained in the message, or the reverse.
    - alias (0.85): active aliases; matched aliases gain a usage count.
    - semantic (0.8): cosine similarity over stored embeddings.
    - fuzzy (0.6 Whoosh BM25, 0.5 LIKE fallback).
    - sample (0.3): a few catalog rows when nothing matched.
    - A failing stage is recorded and skipped; if every stage failed the
      prompt tells the model that product search is unavailable.
    """,
)


ESCALATION = section(
    "7. Escalation",
    """
    - Triggers: a request for a person, complaint wording, the customer's
      stored needs_human_support flag, or an uncertain model reply.
    - Escalation marks the session escalated and human-mode and sets the
      customer to awaiting_human. Agents clear the flag out of band.
    """,
)


CONFIG_ENV = section(
    "8. Configuration & Environment",
    """
    - `.env` compatible; keys: DATABASE_URL, REDIS_URL, LLM_API_KEY, LLM_MODEL,
      LLM_API_BASE, EMBEDDING_MODEL, WHATSAPP_PHONE_NUMBER_ID,
      WHATSAPP_ACCESS_TOKEN, WHATSAPP_VERIFY_TOKEN, COMPANY_NAME, LOG_LEVEL.
    - Defaults and validation live in `chatdesk/app/config.py`.
    """,
)


DATA_LIFECYCLE = section(
    "9. Data Lifecycle",
    """
    - Edit `chatdesk/data/raw/*.csv`, then run `python -m chatdesk.data.populate_db`
      on an empty database.
    - Run `python -m chatdesk.scripts.generate_embeddings` to enable semantic search.
    - The full-text index rebuilds itself when the catalog changes.
    """,
)


TESTING = section(
    "10. Testing Strategy",
    """
    - `pip install -e .[test]` then `pytest`.
    - Tests use in-memory SQLite, mocked HTTP sessions and a scripted model.
    """,
)


SECURITY = section(
    "11. Security & PII Handling",
    """
    - `utils/security.py`: phone numbers are masked in every log line and prompt.
    - Keys: Loaded from env; do not commit secrets.
    """,
)


RUNNING = section(
    "12. Running",
    """
    - `uvicorn chatdesk.app.main:create_app --factory --reload`
    - Point the WhatsApp webhook at `/api/webhook` with the verify token.
    """,
)


def as_text() -> str:
    return "\n".join(
        [
            SYSTEM_OVERVIEW,
            ARCHITECTURE,
            BACKEND_COMPONENTS,
            DATA_AND_PERSISTENCE,
            REQUEST_FLOW,
            SEARCH_CASCADE,
            ESCALATION,
            CONFIG_ENV,
            DATA_LIFECYCLE,
            TESTING,
            SECURITY,
            RUNNING,
        ]
    )


def main() -> None:
    print(textwrap.dedent(as_text()))


if __name__ == "__main__":
    main()
