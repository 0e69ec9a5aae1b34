"""Rule-based intent and escalation keywords (Traditional Chinese + English)."""
import enum
import re
from typing import List, Optional, Pattern, Tuple


class Intent(str, enum.Enum):
    product_inquiry = "product_inquiry"
    order = "order"
    delivery_inquiry = "delivery_inquiry"
    order_status = "order_status"
    complaint = "complaint"
    human_support_request = "human_support_request"
    general_inquiry = "general_inquiry"
    error = "error"


PRODUCT = ["產品", "商品", "價格", "價錢", "多少錢", "有沒有", "有無",
           "product", "item", "price", "how much", "cost", "do you have"]
ORDER = ["訂購", "下單", "買", "要", "order", "purchase", "buy", "want to order"]
DELIVERY = ["送貨", "運送", "配送", "幾時到", "何時到",
            "delivery", "shipping", "ship", "when will", "arrive"]
ORDER_STATUS = ["訂單", "狀態", "進度", "order status", "track order", "my order"]
COMPLAINT = ["投訴", "問題", "錯誤", "不滿", "complaint", "problem", "issue", "wrong", "error"]
HUMAN = ["客服", "真人", "人工", "職員", "customer service", "speak to someone",
         "human", "agent", "representative"]

QUANTITY = re.compile(r"\d+\s*(箱|盒|個|件|box|boxes|unit|units|piece|pieces)")

# First matching rule wins; the order is part of the contract.
INTENT_RULES: List[Tuple[Intent, List[str], Optional[Pattern]]] = [
    (Intent.product_inquiry, PRODUCT, None),
    (Intent.order, ORDER, QUANTITY),
    (Intent.delivery_inquiry, DELIVERY, None),
    (Intent.order_status, ORDER_STATUS, None),
    (Intent.complaint, COMPLAINT, None),
    (Intent.human_support_request, HUMAN, None),
]

# Escalation triggers
HUMAN_SUPPORT_KEYWORDS = ["客服", "真人", "人工", "human", "customer service",
                          "speak to someone", "representative", "real person"]
COMPLAINT_KEYWORDS = ["投訴", "不滿", "差勁", "complaint", "complain", "terrible", "unacceptable"]
UNCERTAIN_REPLY_KEYWORDS = ["不確定", "無法回答", "聯絡客服", "not sure", "unable to answer",
                            "contact customer service", "contact support"]


def _contains_any(text: str, vocab: List[str]) -> bool:
    tl = (text or "").lower()
    return any(word in tl for word in vocab)


def classify_intent(message: str) -> Intent:
    for intent, vocab, pattern in INTENT_RULES:
        if _contains_any(message, vocab):
            return intent
        if pattern is not None and pattern.search((message or "").lower()):
            return intent
    return Intent.general_inquiry


def requests_human(message: str) -> bool:
    return _contains_any(message, HUMAN_SUPPORT_KEYWORDS)


def is_complaint(message: str) -> bool:
    return _contains_any(message, COMPLAINT_KEYWORDS)


def reply_is_uncertain(reply: str) -> bool:
    return _contains_any(reply, UNCERTAIN_REPLY_KEYWORDS)


def is_specific(intent: str) -> bool:
    """Anything other than the generic fallback or the error marker."""
    return intent not in (Intent.general_inquiry, Intent.error)
