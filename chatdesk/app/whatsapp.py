#!/usr/bin/env python3
"""
WhatsApp Cloud API client for the chatdesk backend.

Sends are best-effort: every method returns a boolean and never raises.
"""

from typing import Any, Dict, List, Optional

import requests

from .config import Config
from ..schemas.io_models import InboundMessage
from ..utils.logger import get_logger
from ..utils.security import mask_phone

logger = get_logger("whatsapp")


class WhatsAppClient:
    """Thin wrapper over the Graph API messages endpoint."""

    def __init__(self, api_url: Optional[str] = None, phone_number_id: Optional[str] = None,
                 access_token: Optional[str] = None, timeout: float = 30, http=None):
        self.api_url = (api_url or Config.WHATSAPP_API_URL).rstrip("/")
        self.phone_number_id = Config.WHATSAPP_PHONE_NUMBER_ID if phone_number_id is None else phone_number_id
        self.access_token = Config.WHATSAPP_ACCESS_TOKEN if access_token is None else access_token
        self.timeout = timeout
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.phone_number_id and self.access_token)

    def _post(self, payload: Dict[str, Any], action: str) -> bool:
        if not self.configured:
            logger.warning("[WHATSAPP] Credentials not configured, skipping %s", action)
            return False
        try:
            response = self.http.post(
                f"{self.api_url}/{self.phone_number_id}/messages",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.access_token}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            body = getattr(getattr(e, "response", None), "text", "")
            logger.error("[WHATSAPP] Failed to %s: %s %s", action, e, body[:300] if body else "")
            return False
        return True

    def send_text_message(self, to: str, message: str) -> bool:
        ok = self._post(
            {
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to,
                "type": "text",
                "text": {"preview_url": False, "body": message},
            },
            "send message",
        )
        if ok:
            logger.info("[WHATSAPP] Message sent to %s", mask_phone(to))
        return ok

    def send_template_message(self, to: str, template_name: str, language_code: str = "zh_HK",
                              components: Optional[List[Dict[str, Any]]] = None) -> bool:
        return self._post(
            {
                "messaging_product": "whatsapp",
                "to": to,
                "type": "template",
                "template": {
                    "name": template_name,
                    "language": {"code": language_code},
                    "components": components or [],
                },
            },
            "send template",
        )

    def mark_as_read(self, message_id: str) -> bool:
        return self._post(
            {"messaging_product": "whatsapp", "status": "read", "message_id": message_id},
            "mark message as read",
        )

    @staticmethod
    def parse_webhook_message(payload: Dict[str, Any]) -> Optional[InboundMessage]:
        """
        Extract the first message from a webhook payload.

        Args:
            payload: Decoded webhook JSON body

        Returns:
            InboundMessage, or None when the payload carries no message
            (status callbacks, malformed bodies)
        """
        try:
            value = payload["entry"][0]["changes"][0]["value"]
            messages = value.get("messages") or []
            if not messages:
                return None
            message = messages[0]
            message_type = message.get("type", "text")

            if message_type == "text":
                content = message["text"]["body"]
            elif message_type == "image":
                content = message.get("image", {}).get("caption") or "[Image]"
            elif message_type == "audio":
                content = "[Audio message]"
            elif message_type == "document":
                content = message.get("document", {}).get("filename") or "[Document]"
            elif message_type == "video":
                content = message.get("video", {}).get("caption") or "[Video]"
            else:
                content = f"[{message_type}]"

            return InboundMessage(
                phone_number=message["from"],
                text=content,
                message_id=message.get("id", ""),
                content_type=message_type,
                timestamp=message.get("timestamp"),
            )
        except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
            logger.warning("[WHATSAPP] Failed to parse webhook message: %s", e)
            return None
