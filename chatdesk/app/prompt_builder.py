#!/usr/bin/env python3
"""
Prompt builder module for the chatdesk backend.

This module constructs the localized system prompt and the product context
that is appended to the customer's message.
"""

from typing import List

from .postprocess import format_products_for_chat
from ..utils.security import mask_phone

SYSTEM_PROMPT_EN = """You're an AI assistant for {company}, a wholesale company. Chat naturally like a friendly human sales rep.

YOUR PERSONALITY:
- Warm, helpful, and genuine, not robotic
- Casual but professional (like texting a colleague)
- Use contractions (I'm, you're, we'll, can't)
- Keep messages SHORT (2-3 sentences max)

HOW TO TALK:
Good: "Hey! I'd love to help you order. What are you looking for?"
Bad: "Thank you for your inquiry. To proceed with your order, please provide the following information..."

NEVER:
- Write long explanations or bullet lists unless asked
- Use phrases like "I apologize for any inconvenience"
- Number things unless showing products

{knowledge}
IF PRODUCTS ARE SHOWN:
- Present them naturally and ask which one they want

IF NO PRODUCTS FOUND:
- Say honestly that you couldn't find it and ask them to describe it differently

IF SEARCH IS BROKEN:
- Be direct: the product search is down right now, suggest contacting support or checking back shortly

Customer: {name}
Customer reference: {identity}
Conversation state: {state}
Reply in ENGLISH only. Be human, not corporate. Keep it short."""

SYSTEM_PROMPT_ZH = """你係{company}嘅AI助手，幫客人搵產品同落單。要好似真人咁傾偈，唔好太公式化。

你嘅性格：
- 親切、有禮、真誠，唔係機械人咁
- 輕鬆但專業（好似同朋友傾WhatsApp咁）
- 用口語化嘅廣東話／繁中
- 簡短有力（通常2-3句就夠）

點樣傾：
好：「你好呀！想訂啲咩？我幫你睇下。」
唔好：「感謝閣下的查詢。為了處理您的訂單，請提供以下資料...」

千祈唔好：
- 長篇大論或列一堆點
- 講「不便之處敬請原諒」呢啲
- 冇需要就編號

{knowledge}
如果搵到產品：
- 自然咁介紹，問佢想要邊款

如果搵唔到產品：
- 直接講搵唔到，請客人講詳細啲

如果搜尋壞咗：
- 直接講產品搜尋家下用唔到，建議聯絡客服或遲啲再試

客人：{name}
客人編號：{identity}
對話狀態：{state}
只用繁體中文。要似人，唔好太公式化。簡短啲。"""

PRODUCT_NOTICES = {
    "en": {
        "found": "\n\nRelevant products found:\n",
        "none_found": (
            "\n\n[IMPORTANT: Product search returned NO RESULTS. The customer is asking about products, "
            "but nothing matches their query. Be honest and tell them no matching products were found. "
            "Suggest they provide more details or browse the catalog.]"
        ),
        "search_failed": (
            "\n\n[CRITICAL: Product search system is currently UNAVAILABLE. You CANNOT search for products "
            "right now. Tell the customer that the product search system is temporarily unavailable and "
            "suggest they contact human support or try again later.]"
        ),
    },
    "zh": {
        "found": "\n\n找到的相關產品：\n",
        "none_found": "\n\n[重要：產品搜尋沒有結果。客戶查詢產品，但沒有找到匹配的項目。請誠實告知客戶沒有找到相關產品，建議提供更多細節或瀏覽目錄。]",
        "search_failed": "\n\n[重要：產品搜尋系統目前無法使用。你現在無法搜尋產品。請告知客戶產品搜尋系統暫時無法使用，建議聯絡客服人員或稍後再試。]",
    },
}


class PromptBuilder:
    """Builds the system prompt and product context for one turn."""

    def __init__(self, company_name: str = "ShopToPlus"):
        self.company_name = company_name

    def build_system_prompt(self, customer, knowledge_context: str, language: str = "zh") -> str:
        """
        Build the localized system prompt.

        Args:
            customer: Customer row (name, phone number, conversation state)
            knowledge_context: Rendered knowledge block, possibly empty
            language: 'zh' or 'en'

        Returns:
            System prompt text
        """
        template = SYSTEM_PROMPT_EN if language == "en" else SYSTEM_PROMPT_ZH
        knowledge = f"{knowledge_context.strip()}\n" if knowledge_context else ""
        return template.format(
            company=self.company_name,
            knowledge=knowledge,
            name=customer.name or ("there" if language == "en" else ""),
            identity=mask_phone(customer.phone_number),
            state=customer.conversation_state or "greeting",
        )

    def build_product_context(self, status: str, products: List, language: str = "zh") -> str:
        """Text appended to the user turn for a product search outcome."""
        notices = PRODUCT_NOTICES["en" if language == "en" else "zh"]
        if status == "found":
            return notices["found"] + format_products_for_chat(products, language)
        if status in ("none_found", "search_failed"):
            return notices[status]
        return ""
