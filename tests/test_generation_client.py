#!/usr/bin/env python3
"""
Generation Client Tests

PURPOSE:
    Verifies the chat-completions request shape and the mapping of every
    failure mode to GenerationError, using a mocked HTTP session.
"""

import unittest
from unittest.mock import MagicMock, patch

import requests

from chatdesk.app.config import Config
from chatdesk.app.generate import GenerationClient, GenerationError
from chatdesk.schemas.io_models import HistoryMessage


def http_returning(status_code=200, data=None, json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = "upstream said no"
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = data
    if status_code != 200:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} Server Error")
    http = MagicMock()
    http.post.return_value = response
    return http


class TestGenerationClient(unittest.TestCase):

    def _client(self, http):
        return GenerationClient(api_key="sk-test", model="test-model", api_base="https://llm.example.com/v1/",
                                timeout=5, http=http)

    def test_complete_success(self):
        http = http_returning(data={
            "choices": [{"message": {"role": "assistant", "content": "  Hi there!  "}}],
            "usage": {"total_tokens": 57},
        })
        history = [HistoryMessage(role="user", content="hi"), HistoryMessage(role="assistant", content="hello")]

        completion = self._client(http).complete("be nice", history, "price?", temperature=0.2, max_tokens=50)

        self.assertEqual(completion.text, "Hi there!")
        self.assertEqual(completion.total_tokens, 57)
        args, kwargs = http.post.call_args
        self.assertEqual(args[0], "https://llm.example.com/v1/chat/completions")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer sk-test")
        self.assertEqual(kwargs["timeout"], 5)
        payload = kwargs["json"]
        self.assertEqual(payload["model"], "test-model")
        self.assertEqual(payload["temperature"], 0.2)
        self.assertEqual(payload["max_tokens"], 50)
        self.assertEqual(
            [(m["role"], m["content"]) for m in payload["messages"]],
            [("system", "be nice"), ("user", "hi"), ("assistant", "hello"), ("user", "price?")],
        )

    def test_missing_usage_is_tolerated(self):
        http = http_returning(data={"choices": [{"message": {"content": "ok"}}]})
        completion = self._client(http).complete("sys", [], "hi")
        self.assertEqual(completion.text, "ok")
        self.assertIsNone(completion.total_tokens)

    def test_http_error(self):
        with self.assertRaises(GenerationError):
            self._client(http_returning(status_code=503)).complete("sys", [], "hi")

    def test_transport_error(self):
        http = MagicMock()
        http.post.side_effect = requests.exceptions.Timeout("timed out")
        with self.assertRaises(GenerationError):
            self._client(http).complete("sys", [], "hi")

    def test_invalid_json(self):
        with self.assertRaises(GenerationError):
            self._client(http_returning(json_error=ValueError("Expecting value"))).complete("sys", [], "hi")

    def test_unexpected_shape(self):
        with self.assertRaises(GenerationError):
            self._client(http_returning(data={"choices": []})).complete("sys", [], "hi")
        with self.assertRaises(GenerationError):
            self._client(http_returning(data={"error": "quota"})).complete("sys", [], "hi")

    def test_api_key_is_required(self):
        with patch.object(Config, "LLM_API_KEY", None):
            with self.assertRaises(ValueError):
                GenerationClient(http=MagicMock())


if __name__ == "__main__":
    unittest.main()
