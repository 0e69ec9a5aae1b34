#!/usr/bin/env python3
"""
Controller Tests

PURPOSE:
    Drives the orchestrator end to end over an in-memory database with a
    scripted language model.

TEST COVERAGE:
    - Product inquiries: found, none found and search failure notices
    - Escalation triggers (human request, stored flag, uncertain reply)
    - Confidence scoring
    - History de-duplication and language preference persistence
    - Apology fallback when generation fails
"""

import unittest
from unittest.mock import MagicMock

from chatdesk.app.controller import APOLOGY, EMPTY_REPLY, Controller, calculate_confidence, should_escalate
from chatdesk.app.generate import GenerationError
from chatdesk.app.knowledge import KnowledgeRetriever
from chatdesk.app.locks import StoreSessionLock
from chatdesk.app.prompt_builder import PromptBuilder
from chatdesk.app.retrieval import ProductResolver
from chatdesk.app.session import ConversationManager
from chatdesk.data.models import Customer, Product
from chatdesk.data.store import DataStore
from chatdesk.schemas.io_models import Completion

PHONE = "85291234567"


class FakeGenerator:
    model = "test-model"

    def __init__(self, reply="Sure, ABC-100 is in stock.", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def complete(self, system_prompt, history, user_message, temperature=None, max_tokens=None):
        self.calls.append({"system_prompt": system_prompt, "history": history, "user_message": user_message})
        if self.error is not None:
            raise self.error
        return Completion(text=self.reply, total_tokens=42)


def failing_store():
    store = MagicMock()
    store.select.side_effect = RuntimeError("database unreachable")
    store.text_search_products.side_effect = RuntimeError("database unreachable")
    return store


class TestController(unittest.TestCase):

    def setUp(self):
        self.store = DataStore.from_url("sqlite://")
        with self.store.session() as db:
            for code, zh, en, price in [
                ("ABC-100", "不鏽鋼餐盒", "Stainless Steel Lunch Box", 38.5),
                ("PC-410", "紙杯", "Paper Cup", 0.32),
            ]:
                product = Product(product_code=code, product_name_chinese=zh,
                                  product_name_english=en, wholesale_price=price)
                product.search_text = product.build_search_text()
                db.add(product)
        self.manager = ConversationManager(self.store, StoreSessionLock(self.store))
        self.knowledge = KnowledgeRetriever(self.store)
        self.generator = FakeGenerator()

    def _controller(self, resolver=None, generator=None):
        return Controller(
            resolver or ProductResolver(self.store),
            self.knowledge,
            self.manager,
            generator or self.generator,
            prompt_builder=PromptBuilder("Acme Supplies"),
        )

    def _context(self, message):
        customer = self.manager.get_or_create_customer(PHONE)
        self.manager.save_incoming_message(customer, message)
        return self.manager.build_context(customer)

    def _customer(self):
        return self.store.select_one(Customer, Customer.phone_number == PHONE)

    def test_product_inquiry_end_to_end(self):
        message = "Do you have product ABC-100?"
        response = self._controller().process(message, self._context(message))

        self.assertEqual(response.intent, "product_inquiry")
        self.assertFalse(response.requires_human)
        self.assertEqual(response.confidence, 0.9)
        self.assertIn("ABC-100", response.response)
        self.assertEqual([p.product_code for p in response.suggested_products], ["ABC-100"])
        self.assertEqual(response.metadata.product_search_status, "found")
        self.assertEqual(response.metadata.search_method, "exact")
        self.assertEqual(response.metadata.products_found, 1)
        self.assertEqual(response.metadata.language, "en")
        self.assertEqual(response.metadata.model, "test-model")
        self.assertEqual(response.metadata.tokens, 42)

        call = self.generator.calls[0]
        self.assertTrue(call["user_message"].startswith(message))
        self.assertIn("Relevant products found", call["user_message"])
        self.assertIn("Product Code: ABC-100", call["user_message"])
        self.assertIn("Acme Supplies", call["system_prompt"])
        self.assertIn("Reply in ENGLISH only", call["system_prompt"])

    def test_language_preference_is_persisted(self):
        message = "Do you have product ABC-100?"
        self._controller().process(message, self._context(message))
        self.assertEqual(self._customer().meta.get("language_preference"), "en")

    def test_history_excludes_current_message(self):
        customer = self.manager.get_or_create_customer(PHONE)
        self.manager.save_incoming_message(customer, "hi")
        self.manager.save_outgoing_message(customer, "Hello! How can I help?")
        context = self._context("Good morning")

        self._controller().process("Good morning", context)
        history = self.generator.calls[0]["history"]
        self.assertEqual([(m.role, m.content) for m in history],
                         [("user", "hi"), ("assistant", "Hello! How can I help?")])
        self.assertEqual(self.generator.calls[0]["user_message"], "Good morning")

    def test_history_keeps_ten_prior_turns(self):
        customer = self.manager.get_or_create_customer(PHONE)
        for i in range(12):
            self.manager.save_incoming_message(customer, f"earlier {i}")
        context = self._context("Good morning")

        self._controller().process("Good morning", context)
        history = self.generator.calls[0]["history"]
        self.assertEqual(len(history), 10)
        self.assertEqual(history[0].content, "earlier 2")
        self.assertEqual(history[-1].content, "earlier 11")

    def test_human_request_escalates(self):
        message = "我想搵真人客服"
        response = self._controller().process(message, self._context(message))
        self.assertTrue(response.requires_human)
        self.assertEqual(response.intent, "human_support_request")
        self.assertEqual(response.metadata.product_search_status, "not_attempted")
        self.assertEqual(response.metadata.language, "zh")
        self.assertEqual(response.confidence, 0.7)
        self.assertIsNone(response.suggested_products)

    def test_stored_human_flag_escalates(self):
        self.manager.get_or_create_customer(PHONE)
        self.manager.update_state(PHONE, "awaiting_human", needs_human=True)
        response = self._controller().process("Good morning", self._context("Good morning"))
        self.assertTrue(response.requires_human)

    def test_uncertain_reply_escalates(self):
        generator = FakeGenerator(reply="I'm not sure about that one.")
        response = self._controller(generator=generator).process("Good morning", self._context("Good morning"))
        self.assertTrue(response.requires_human)

    def test_all_stages_failing_reports_search_failed(self):
        message = "What is the price of ABC-100?"
        resolver = ProductResolver(failing_store())
        response = self._controller(resolver=resolver).process(message, self._context(message))

        self.assertEqual(response.metadata.product_search_status, "search_failed")
        self.assertEqual(response.metadata.products_found, 0)
        self.assertIn("UNAVAILABLE", self.generator.calls[0]["user_message"])
        self.assertEqual(response.intent, "product_inquiry")

    def test_raising_resolver_reports_search_failed(self):
        resolver = MagicMock()
        resolver.resolve.side_effect = RuntimeError("resolver crashed")
        message = "What is the price of ABC-100?"
        response = self._controller(resolver=resolver).process(message, self._context(message))

        self.assertEqual(response.metadata.product_search_status, "search_failed")
        self.assertIsNone(response.metadata.search_method)
        self.assertEqual(response.confidence, 0.7)

    def test_empty_catalog_reports_none_found(self):
        resolver = ProductResolver(DataStore.from_url("sqlite://"))
        message = "What is the price of ABC-100?"
        response = self._controller(resolver=resolver).process(message, self._context(message))

        self.assertEqual(response.metadata.product_search_status, "none_found")
        self.assertIn("NO RESULTS", self.generator.calls[0]["user_message"])

    def test_knowledge_context_is_in_system_prompt(self):
        self.knowledge.add_entry("Shipping fee?", "Free shipping over HKD 1000.", "delivery")
        message = "What is the shipping fee?"
        response = self._controller().process(message, self._context(message))

        self.assertEqual(response.intent, "delivery_inquiry")
        self.assertEqual(response.confidence, 0.8)
        self.assertIn("Free shipping over HKD 1000.", self.generator.calls[0]["system_prompt"])

    def test_generation_failure_returns_apology(self):
        generator = FakeGenerator(error=GenerationError("upstream timeout"))
        message = "Do you have product ABC-100?"
        response = self._controller(generator=generator).process(message, self._context(message))

        self.assertEqual(response.response, APOLOGY["en"])
        self.assertEqual(response.confidence, 0.0)
        self.assertEqual(response.intent, "error")
        self.assertTrue(response.requires_human)

    def test_empty_completion_uses_placeholder(self):
        generator = FakeGenerator(reply="")
        response = self._controller(generator=generator).process("你好", self._context("你好"))
        self.assertEqual(response.response, EMPTY_REPLY["zh"])


class TestScoring(unittest.TestCase):

    def test_calculate_confidence(self):
        self.assertEqual(calculate_confidence("general_inquiry", 0, ""), 0.5)
        self.assertEqual(calculate_confidence("order", 0, ""), 0.7)
        self.assertEqual(calculate_confidence("order", 3, ""), 0.9)
        self.assertEqual(calculate_confidence("order", 3, "context"), 1.0)

    def test_confidence_is_monotonic(self):
        base = calculate_confidence("general_inquiry", 0, "")
        self.assertLessEqual(base, calculate_confidence("general_inquiry", 1, ""))
        self.assertLessEqual(base, calculate_confidence("general_inquiry", 0, "context"))
        self.assertLessEqual(calculate_confidence("order", 5, "context"), 1.0)

    def test_should_escalate(self):
        calm = MagicMock(needs_human_support=False)
        self.assertFalse(should_escalate("price please", "HKD 38.5", calm))
        self.assertTrue(should_escalate("this is unacceptable", "HKD 38.5", calm))
        self.assertTrue(should_escalate("price please", "HKD 38.5", MagicMock(needs_human_support=True)))


if __name__ == "__main__":
    unittest.main()
