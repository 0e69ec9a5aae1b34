#!/usr/bin/env python3
"""
Configuration management for the chatdesk backend.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from None


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid float for {name}: {raw!r}") from None


class Config:
    """Configuration class for the application."""

    # Database / Redis
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./chatdesk.db")
    REDIS_URL = os.getenv("REDIS_URL", "")

    # Chat completion API (OpenAI-compatible)
    LLM_API_BASE = os.getenv("LLM_API_BASE", "https://api.openai.com/v1")
    LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE = _float("LLM_TEMPERATURE", 0.7)
    LLM_MAX_TOKENS = _int("LLM_MAX_TOKENS", 1000)
    LLM_TIMEOUT = _float("LLM_TIMEOUT", 60.0)

    # Embeddings (sentence-transformers)
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")

    # WhatsApp Cloud API
    WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "https://graph.facebook.com/v18.0")
    WHATSAPP_PHONE_NUMBER_ID = os.getenv("WHATSAPP_PHONE_NUMBER_ID", "")
    WHATSAPP_ACCESS_TOKEN = os.getenv("WHATSAPP_ACCESS_TOKEN", "")
    WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "")

    # Application Configuration
    COMPANY_NAME = os.getenv("COMPANY_NAME", "ShopToPlus")
    SESSION_LOCK_SECONDS = _int("SESSION_LOCK_SECONDS", 30)
    SESSION_WINDOW_HOURS = _int("SESSION_WINDOW_HOURS", 24)
    HISTORY_LIMIT = _int("HISTORY_LIMIT", 10)
    PRODUCT_SEARCH_LIMIT = _int("PRODUCT_SEARCH_LIMIT", 10)
    SEMANTIC_MATCH_THRESHOLD = _float("SEMANTIC_MATCH_THRESHOLD", 0.7)
    KNOWLEDGE_LIMIT = _int("KNOWLEDGE_LIMIT", 5)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls):
        """Validate that all required configuration is present."""
        missing = []

        if not cls.LLM_API_KEY:
            missing.append("LLM_API_KEY")
        if not cls.DATABASE_URL:
            missing.append("DATABASE_URL")

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        if cls.SESSION_LOCK_SECONDS <= 0:
            raise ValueError(f"SESSION_LOCK_SECONDS must be > 0, got {cls.SESSION_LOCK_SECONDS}")
        if cls.SESSION_WINDOW_HOURS <= 0:
            raise ValueError(f"SESSION_WINDOW_HOURS must be > 0, got {cls.SESSION_WINDOW_HOURS}")
        if not 0.0 <= cls.SEMANTIC_MATCH_THRESHOLD <= 1.0:
            raise ValueError(
                f"SEMANTIC_MATCH_THRESHOLD must be between 0.0 and 1.0, got {cls.SEMANTIC_MATCH_THRESHOLD}"
            )
        if not 0.0 <= cls.LLM_TEMPERATURE <= 2.0:
            raise ValueError(f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {cls.LLM_TEMPERATURE}")
        for name in ("HISTORY_LIMIT", "PRODUCT_SEARCH_LIMIT", "KNOWLEDGE_LIMIT", "LLM_MAX_TOKENS"):
            if getattr(cls, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(cls, name)}")

        return True
