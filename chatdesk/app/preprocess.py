#!/usr/bin/env python3
"""
Preprocessing module for the chatdesk backend.

This module handles reply-language detection and language marker stripping.
"""

import re
from typing import Optional, Tuple

MARKER = re.compile(r"^\[(EN|ZH)\]\s*")
ASCII_LETTERS = re.compile(r"[a-zA-Z]")
CJK_CHARS = re.compile(r"[\u4e00-\u9fff]")

ENGLISH_REQUESTS = ("english", "switch to english")
CHINESE_REQUESTS = ("中文", "繁體")


class Preprocessor:
    """Decides which locale to answer in and cleans the message for the pipeline."""

    default_language = "zh"

    def strip_marker(self, message: str) -> str:
        """Remove a leading [EN]/[ZH] marker added by a client."""
        return MARKER.sub("", message or "", count=1)

    def detect_language(self, message: str, stored_preference: Optional[str] = None) -> str:
        """
        Detect the reply language for a message.

        Precedence: explicit marker prefix, explicit request in the text, the
        stored preference, then a character-count heuristic.

        Args:
            message: Raw customer message
            stored_preference: Language saved on the customer, if any

        Returns:
            'en' or 'zh'
        """
        message = message or ""
        marker = MARKER.match(message)
        if marker:
            return marker.group(1).lower()

        lowered = message.strip().lower()
        if lowered == "en" or any(word in lowered for word in ENGLISH_REQUESTS):
            return "en"
        if lowered == "zh" or any(word in message for word in CHINESE_REQUESTS):
            return "zh"

        if stored_preference in ("en", "zh"):
            return stored_preference

        ascii_count = len(ASCII_LETTERS.findall(message))
        cjk_count = len(CJK_CHARS.findall(message))
        if ascii_count and cjk_count:
            # Mixed text reads as English only when it is mostly Latin
            if ascii_count > cjk_count * 2:
                return "en"
        elif ascii_count > 5:
            return "en"

        return self.default_language

    def prepare(self, message: str, stored_preference: Optional[str] = None) -> Tuple[str, str]:
        """Return (language, cleaned message)."""
        return self.detect_language(message, stored_preference), self.strip_marker(message).strip()
