#!/usr/bin/env python3
"""
Service wiring for the chatdesk backend.

Every component is constructed once here and passed to the components that
depend on it.
"""

from dataclasses import dataclass
from datetime import timedelta

from .config import Config
from .controller import Controller
from .embed import EmbeddingClient
from .generate import GenerationClient
from .knowledge import KnowledgeRetriever
from .locks import build_session_lock
from .prompt_builder import PromptBuilder
from .retrieval import ProductResolver
from .session import ConversationManager
from .webhook import WebhookGateway
from .whatsapp import WhatsAppClient
from ..data.store import DataStore
from ..utils.logger import get_logger

logger = get_logger("container")


@dataclass
class Services:
    store: DataStore
    manager: ConversationManager
    resolver: ProductResolver
    knowledge: KnowledgeRetriever
    controller: Controller
    messenger: WhatsAppClient
    gateway: WebhookGateway
    company_name: str = "ShopToPlus"
    verify_token: str = ""


def build_services(config=Config) -> Services:
    """Build the full service graph from configuration."""
    config.validate()

    store = DataStore.from_url(config.DATABASE_URL)
    lock = build_session_lock(store, config.REDIS_URL)
    manager = ConversationManager(
        store,
        lock,
        session_window=timedelta(hours=config.SESSION_WINDOW_HOURS),
        history_limit=config.HISTORY_LIMIT,
        lock_seconds=config.SESSION_LOCK_SECONDS,
    )
    resolver = ProductResolver(
        store,
        embedder=EmbeddingClient(config.EMBEDDING_MODEL),
        semantic_threshold=config.SEMANTIC_MATCH_THRESHOLD,
        default_limit=config.PRODUCT_SEARCH_LIMIT,
    )
    knowledge = KnowledgeRetriever(store, limit=config.KNOWLEDGE_LIMIT)
    generator = GenerationClient(
        api_key=config.LLM_API_KEY,
        model=config.LLM_MODEL,
        api_base=config.LLM_API_BASE,
        timeout=config.LLM_TIMEOUT,
    )
    controller = Controller(
        resolver,
        knowledge,
        manager,
        generator,
        prompt_builder=PromptBuilder(config.COMPANY_NAME),
        history_limit=config.HISTORY_LIMIT,
        product_limit=config.PRODUCT_SEARCH_LIMIT,
        temperature=config.LLM_TEMPERATURE,
        max_tokens=config.LLM_MAX_TOKENS,
    )
    messenger = WhatsAppClient(
        api_url=config.WHATSAPP_API_URL,
        phone_number_id=config.WHATSAPP_PHONE_NUMBER_ID,
        access_token=config.WHATSAPP_ACCESS_TOKEN,
    )
    gateway = WebhookGateway(manager, controller, messenger, store=store)

    logger.info("Services initialized (model=%s)", config.LLM_MODEL)
    return Services(
        store=store,
        manager=manager,
        resolver=resolver,
        knowledge=knowledge,
        controller=controller,
        messenger=messenger,
        gateway=gateway,
        company_name=config.COMPANY_NAME,
        verify_token=config.WHATSAPP_VERIFY_TOKEN,
    )
