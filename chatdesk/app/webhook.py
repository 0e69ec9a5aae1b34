#!/usr/bin/env python3
"""
Inbound webhook gateway for the chatdesk backend.

One call to `WebhookGateway.handle` processes one webhook delivery: parse,
take the per-phone lock, persist the inbound message, run the orchestrator,
persist and send the reply, escalate if needed, and release the lock.
"""

import enum
import time
from typing import Any, Dict, Optional

from .controller import APOLOGY
from ..data.models import WebhookLog
from ..utils.logger import get_logger
from ..utils.security import mask_phone, mask_pii

logger = get_logger("webhook")

HANDOFF = {
    "en": "I've transferred you to a human agent, please wait a moment.",
    "zh": "我已經為您轉接到真人客服，請稍候。",
}
ESCALATION_REASON = "AI determined human support is needed"


class GatewayOutcome(str, enum.Enum):
    ignored = "ignored"
    duplicate = "duplicate"
    processed = "processed"
    failed = "failed"


class WebhookGateway:
    def __init__(self, manager, controller, messenger, store=None, timer=time.perf_counter):
        self.manager = manager
        self.controller = controller
        self.messenger = messenger
        self.store = store
        self.timer = timer

    def _log_event(self, phone_number: Optional[str], message_id: Optional[str], event_type: str,
                   content: str = "", success: bool = True, error_message: Optional[str] = None,
                   details: Optional[Dict[str, Any]] = None) -> None:
        if self.store is None:
            return
        try:
            self.store.insert(
                WebhookLog,
                phone_number=phone_number,
                message_id=message_id,
                event_type=event_type,
                message_content=content,
                success=success,
                error_message=error_message,
                details=details or {},
            )
        except Exception as e:
            logger.warning("[WEBHOOK] Failed to log webhook event %s: %s", event_type, e)

    def handle(self, payload: Dict[str, Any]) -> GatewayOutcome:
        started = self.timer()
        inbound = self.messenger.parse_webhook_message(payload)
        if inbound is None:
            logger.info("[WEBHOOK] No valid message in webhook")
            return GatewayOutcome.ignored

        phone = inbound.phone_number
        logger.info("[WEBHOOK] Received message from %s: %r", mask_phone(phone), mask_pii(inbound.text))
        self._log_event(phone, inbound.message_id, "message_received", inbound.text)

        language = "zh"
        replied = False
        try:
            if self.manager.check_protection(phone):
                logger.info("[WEBHOOK] Session locked for %s, skipping duplicate", mask_phone(phone))
                return GatewayOutcome.duplicate

            with self.manager.protection(phone, inbound.message_id) as acquired:
                if not acquired:
                    logger.info("[WEBHOOK] Lost lock race for %s, skipping duplicate", mask_phone(phone))
                    return GatewayOutcome.duplicate

                self.messenger.mark_as_read(inbound.message_id)

                customer = self.manager.get_or_create_customer(phone)
                language = customer.preferences.language_preference or language
                # The session must exist before the inbound message so it is counted
                self.manager.get_or_create_session(customer)
                self.manager.save_incoming_message(
                    customer, inbound.text, inbound.content_type, inbound.message_id
                )
                context = self.manager.build_context(customer)

                ai_response = self.controller.process(inbound.text, context)
                language = ai_response.metadata.language

                response_time = int((self.timer() - started) * 1000)
                self.manager.save_outgoing_message(customer, ai_response.response, response_time)
                replied = True
                self.messenger.send_text_message(phone, ai_response.response)

                if ai_response.requires_human:
                    self.manager.escalate(phone, ESCALATION_REASON)
                    self.messenger.send_text_message(phone, HANDOFF.get(language, HANDOFF["zh"]))
                else:
                    self.manager.update_state(phone, ai_response.intent)

                self._log_event(
                    phone, inbound.message_id, "message_processed", inbound.text,
                    details={
                        "intent": ai_response.intent,
                        "confidence": ai_response.confidence,
                        "requires_human": ai_response.requires_human,
                        "response_time": response_time,
                    },
                )
                logger.info("[WEBHOOK] Processed message from %s in %d ms", mask_phone(phone), response_time)
                return GatewayOutcome.processed
        except Exception as e:
            logger.exception("[WEBHOOK] Processing error for %s", mask_phone(phone))
            self._log_event(phone, inbound.message_id, "error", inbound.text, success=False, error_message=str(e))
            if not replied:
                self.messenger.send_text_message(phone, APOLOGY.get(language, APOLOGY["zh"]))
            return GatewayOutcome.failed
