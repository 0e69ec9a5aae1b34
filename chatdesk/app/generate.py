#!/usr/bin/env python3
"""
Generation module for the chatdesk backend.

This module handles reply generation through an OpenAI-compatible
chat-completions API.
"""

from typing import List, Optional

import requests

from .config import Config
from ..schemas.io_models import Completion, HistoryMessage
from ..utils.logger import get_logger

logger = get_logger("generate")


class GenerationError(Exception):
    """The chat-completions call failed or returned an unusable payload."""


class GenerationClient:
    """Client for generating replies using a chat-completions API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 api_base: Optional[str] = None, timeout: Optional[float] = None,
                 http=None):
        """Initialize the generation client."""
        self.api_key = api_key or Config.LLM_API_KEY
        self.model = model or Config.LLM_MODEL
        self.api_base = (api_base or Config.LLM_API_BASE).rstrip("/")
        self.timeout = timeout or Config.LLM_TIMEOUT
        self.http = http or requests.Session()

        if not self.api_key:
            raise ValueError("LLM API key is required")

    def complete(self, system_prompt: str, history: List[HistoryMessage], user_message: str,
                 temperature: float = None, max_tokens: int = None) -> Completion:
        """
        Generate a reply.

        Args:
            system_prompt: System instructions
            history: Prior turns, oldest first
            user_message: Current user turn, with any appended context
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            Completion with the reply text and token usage

        Raises:
            GenerationError: on transport, HTTP or response-shape errors
        """
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        messages.append({"role": "user", "content": user_message})

        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": Config.LLM_TEMPERATURE if temperature is None else temperature,
            "max_tokens": max_tokens or Config.LLM_MAX_TOKENS,
        }

        logger.info("[AI] Calling %s with %d messages", self.model, len(messages))
        try:
            response = self.http.post(
                f"{self.api_base}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.error("[AI] Error response %s: %s", response.status_code, response.text[:500])
                response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error generating answer: {e}") from e
        except ValueError as e:
            raise GenerationError(f"Invalid JSON from generation API: {e}") from e

        try:
            text = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(f"Error parsing generation response: {e}") from e

        tokens = (data.get("usage") or {}).get("total_tokens")
        logger.info("[AI] Completion received, tokens used: %s", tokens)
        return Completion(text=text.strip(), total_tokens=tokens)


def main():
    """Main function for checking the generation client."""
    client = GenerationClient()
    completion = client.complete(
        "You are a helpful wholesale sales assistant. Reply in one sentence.",
        [],
        "Do you sell food containers?",
    )
    print(completion.text)
    print(f"Tokens: {completion.total_tokens}")


if __name__ == "__main__":
    main()
