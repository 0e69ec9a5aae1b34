#!/usr/bin/env python3
"""
Embedding module for the chatdesk backend.

This module handles text embedding using sentence-transformers. The model is
loaded on first use so processes that never embed (tests, the webhook path
when semantic search is disabled) do not pay for it.
"""

import threading
from typing import List

from .config import Config
from ..utils.logger import get_logger

logger = get_logger("embed")


class EmbeddingClient:
    """Client for generating text embeddings using sentence-transformers."""

    def __init__(self, model_name: str = None):
        self.model_name = model_name or Config.EMBEDDING_MODEL
        self._model = None
        self._lock = threading.Lock()

    @property
    def model(self):
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    logger.info("Loading embedding model %s", self.model_name)
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a text string.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as a list of floats
        """
        if not text or not text.strip():
            raise ValueError("cannot embed empty text")
        return self.model.encode(text).tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of text strings.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors
        """
        if not texts:
            return []
        return self.model.encode(list(texts)).tolist()


def main():
    """Main function for checking the embedding model."""
    client = EmbeddingClient()
    embeddings = client.embed_batch([
        "ABC-100 stainless steel food container",
        "不鏽鋼餐盒",
    ])
    print(f"Model: {client.model_name}")
    print(f"Embedding dimension: {len(embeddings[0])}")


if __name__ == "__main__":
    main()
