"""Controller / Orchestrator: turns one customer message into an AI reply.

Language detection, intent rules, product and knowledge retrieval, prompt
assembly, generation, confidence scoring and the escalation decision all run
here, strictly in sequence. `process` never raises.
"""
from typing import List, Optional

from .preprocess import Preprocessor
from .prompt_builder import PromptBuilder
from ..data.models import SenderType
from ..nlu.rules import Intent, classify_intent, is_complaint, is_specific, reply_is_uncertain, requests_human
from ..schemas.io_models import AIResponse, ConversationContext, HistoryMessage, ProductSummary, ResponseMetadata
from ..utils.logger import get_logger
from ..utils.security import mask_phone, mask_pii

logger = get_logger("controller")

PRODUCT_INTENTS = (Intent.product_inquiry, Intent.order)

APOLOGY = {
    "en": "Sorry, a system error occurred. Please try again later or contact customer service.",
    "zh": "抱歉，系統出現錯誤。請稍後再試或聯絡客服人員。",
}
EMPTY_REPLY = {
    "en": "Sorry, I am unable to respond at the moment. Please try again later.",
    "zh": "抱歉，我現在無法回答。請稍後再試。",
}

_ROLES = {SenderType.customer: "user", SenderType.ai: "assistant", SenderType.human: "assistant"}


def calculate_confidence(intent: str, products_found: int, knowledge_context: str) -> float:
    confidence = 0.5
    if is_specific(intent):
        confidence += 0.2
    if products_found > 0:
        confidence += 0.2
    if knowledge_context:
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def should_escalate(user_message: str, reply: str, customer) -> bool:
    """Any single trigger is enough to hand the conversation to a human."""
    if requests_human(user_message):
        return True
    if is_complaint(user_message):
        return True
    if getattr(customer, "needs_human_support", False):
        return True
    return reply_is_uncertain(reply)


class Controller:
    def __init__(self, resolver, knowledge, manager, generator, prompt_builder: Optional[PromptBuilder] = None,
                 preprocessor: Optional[Preprocessor] = None, history_limit: int = 10,
                 product_limit: int = 10, temperature: float = None, max_tokens: int = None):
        self.resolver = resolver
        self.knowledge = knowledge
        self.manager = manager
        self.generator = generator
        self.builder = prompt_builder or PromptBuilder()
        self.preprocessor = preprocessor or Preprocessor()
        self.history_limit = history_limit
        self.product_limit = product_limit
        self.temperature = temperature
        self.max_tokens = max_tokens
        model = getattr(generator, "model", None)
        self.model_name = model if isinstance(model, str) else None

    def _build_history(self, context: ConversationContext, raw_message: str) -> List[HistoryMessage]:
        messages = list(context.recent_messages)
        # The current inbound message is already persisted; it goes out as the user turn instead
        if messages:
            last = messages[-1]
            if SenderType(last.sender_type) == SenderType.customer and last.message_content == raw_message:
                messages = messages[:-1]

        history = []
        for msg in messages[-self.history_limit:]:
            role = _ROLES.get(SenderType(msg.sender_type))
            if role and msg.message_content:
                history.append(HistoryMessage(role=role, content=msg.message_content))
        return history

    def _search_products(self, query: str, language: str):
        """Returns (status, products, method, context text)."""
        try:
            result = self.resolver.resolve(query, self.product_limit)
        except Exception:
            logger.exception("[AI] Product search failed")
            status, products, method = "search_failed", [], None
        else:
            products, method = list(result.items), result.method
            if result.search_failed:
                status = "search_failed"
            elif products:
                status = "found"
            else:
                status = "none_found"
        return status, products, method, self.builder.build_product_context(status, products, language)

    def _knowledge_context(self, query: str, language: str) -> str:
        try:
            return self.knowledge.build_context(query, language=language)
        except Exception:
            logger.exception("[AI] Knowledge lookup failed")
            return ""

    def process(self, message: str, context: ConversationContext) -> AIResponse:
        language = context.preferred_language or "zh"
        customer = context.customer
        try:
            logger.info("[AI] 1. Processing message from %s: %r",
                        mask_phone(customer.phone_number), mask_pii(message))

            stored = context.preferred_language
            language, clean_message = self.preprocessor.prepare(message, stored)
            if language != stored:
                try:
                    self.manager.update_language_preference(customer.phone_number, language)
                except Exception:
                    logger.exception("[AI] Failed to save language preference")
            context.preferred_language = language
            logger.info("[AI] 1a. Language: %s", language)

            intent = classify_intent(clean_message)
            logger.info("[AI] 2. Intent detected: %s", intent.value)

            history = self._build_history(context, message)

            status, products, method, product_context = "not_attempted", [], None, ""
            if intent in PRODUCT_INTENTS:
                status, products, method, product_context = self._search_products(clean_message, language)
                logger.info("[AI] 3. Product search status: %s (%d products)", status, len(products))

            knowledge_context = self._knowledge_context(clean_message, language)
            logger.info("[AI] 4. Knowledge context found: %s", bool(knowledge_context))

            system_prompt = self.builder.build_system_prompt(customer, knowledge_context, language)
            completion = self.generator.complete(
                system_prompt,
                history,
                f"{clean_message}{product_context}",
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            reply = completion.text or EMPTY_REPLY[language]

            requires_human = should_escalate(clean_message, reply, customer)
            confidence = calculate_confidence(intent, len(products), knowledge_context)
            logger.info("[AI] 5. Reply ready: confidence=%.2f requires_human=%s", confidence, requires_human)

            return AIResponse(
                response=reply,
                confidence=confidence,
                intent=intent.value,
                requires_human=requires_human,
                suggested_products=[ProductSummary.model_validate(p) for p in products] or None,
                metadata=ResponseMetadata(
                    model=self.model_name,
                    tokens=completion.total_tokens,
                    product_search_status=status,
                    products_found=len(products),
                    search_method=method,
                    language=language,
                ),
            )
        except Exception:
            logger.exception("[AI] Orchestration failed, returning apology")
            return AIResponse(
                response=APOLOGY.get(language, APOLOGY["zh"]),
                confidence=0.0,
                intent=Intent.error.value,
                requires_human=True,
                metadata=ResponseMetadata(model=self.model_name, language=language),
            )
