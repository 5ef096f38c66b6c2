"""
Tests for the completion client and its failure classification.
"""

import asyncio

import httpx

from relay.agents.prompts import EMPTY_MESSAGE_PLACEHOLDER
from relay.services.completion import CompletionResult, FailureKind
from helpers import SYSTEM_DIRECTIVE, FakeCompletionBackend, completion_body


class TestCompletionRequest:
    """The request sent to the backend."""

    def test_two_messages_in_order(self):
        backend = FakeCompletionBackend()
        asyncio.run(backend.client().complete("I have a headache"))

        request = backend.requests[0]
        assert request["messages"] == [
            {"role": "system", "content": SYSTEM_DIRECTIVE},
            {"role": "user", "content": "I have a headache"},
        ]

    def test_model_and_sampling_parameters(self):
        backend = FakeCompletionBackend()
        asyncio.run(backend.client().complete("hi"))

        request = backend.requests[0]
        assert request["model"] == "mistral-tiny"
        assert request["temperature"] == 0.7
        assert request["max_tokens"] == 500

    def test_missing_text_replaced_by_placeholder(self):
        backend = FakeCompletionBackend()
        client = backend.client()
        asyncio.run(client.complete(None))
        asyncio.run(client.complete("   "))

        assert backend.user_texts() == [EMPTY_MESSAGE_PLACEHOLDER, EMPTY_MESSAGE_PLACEHOLDER]


class TestCompletionResult:
    """Success and classified failures."""

    def test_success(self):
        backend = FakeCompletionBackend("Rest and hydrate.")
        result = asyncio.run(backend.client().complete("hi"))

        assert result == CompletionResult(text="Rest and hydrate.")
        assert result.ok

    def test_backend_unavailable(self):
        backend = FakeCompletionBackend(httpx.ConnectError("connection refused"))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.BACKEND_UNAVAILABLE
        assert result.text is None
        # No retries inside the client
        assert len(backend.requests) == 1

    def test_backend_error_keeps_body(self):
        backend = FakeCompletionBackend(httpx.Response(503, json={"message": "overloaded"}))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.BACKEND_ERROR
        assert "503" in result.detail
        assert "overloaded" in result.detail
        assert len(backend.requests) == 1

    def test_client_error_status(self):
        backend = FakeCompletionBackend(httpx.Response(401, json={"message": "Unauthorized"}))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.BACKEND_ERROR

    def test_missing_choices(self):
        backend = FakeCompletionBackend(httpx.Response(200, json={"id": "x", "object": "chat.completion"}))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.MALFORMED_RESPONSE

    def test_empty_choices(self):
        body = completion_body("x")
        body["choices"] = []
        backend = FakeCompletionBackend(httpx.Response(200, json=body))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.MALFORMED_RESPONSE

    def test_null_content(self):
        backend = FakeCompletionBackend(httpx.Response(200, json=completion_body(None)))
        result = asyncio.run(backend.client().complete("hi"))

        assert result.failure == FailureKind.MALFORMED_RESPONSE

    def test_choices_not_a_list(self):
        for choices in ({"a": 1}, 5, "text"):
            backend = FakeCompletionBackend(httpx.Response(200, json={"id": "x", "choices": choices}))
            result = asyncio.run(backend.client().complete("hi"))

            assert result.failure == FailureKind.MALFORMED_RESPONSE
