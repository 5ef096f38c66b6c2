"""
In-process fakes for the two HTTP backends the relay talks to.

Both fakes sit behind ``httpx.MockTransport`` so the real TelegramAPI and
CompletionClient code (including the openai SDK) runs unchanged.
"""

from __future__ import annotations

import json
from typing import Optional

import httpx

from relay.services.completion import CompletionClient
from relay.telegram_bot.bot import Pipeline
from relay.telegram_bot.telegram_api import TelegramAPI

SYSTEM_DIRECTIVE = "You are a test assistant."
NOTICE = "NOTICE"
APOLOGY = "APOLOGY"


class FakeTelegram:
    """
    Records every Bot API call.

    ``fail_sends`` holds 0-based indices of sendMessage calls that get a 400.
    ``batches`` are returned by successive getUpdates calls, then [].
    ``poll_errors`` getUpdates calls fail with a 502 before batches are served.
    ``poll_raises`` exceptions are raised (one per getUpdates call) before that.
    ``fail_methods`` other methods answer 500.
    """

    def __init__(
        self,
        fail_sends: Optional[set[int]] = None,
        batches: Optional[list[list[dict]]] = None,
        poll_errors: int = 0,
        poll_raises: Optional[list[Exception]] = None,
        fail_methods: Optional[set[str]] = None,
    ):
        self.calls: list[tuple[str, dict]] = []
        self.fail_sends = fail_sends or set()
        self.batches = list(batches or [])
        self.poll_errors = poll_errors
        self.poll_raises = list(poll_raises or [])
        self.fail_methods = fail_methods or set()
        self._sends = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.url.path.rsplit("/", 1)[-1]
        payload = json.loads(request.content or b"{}")
        self.calls.append((method, payload))

        if method == "sendMessage":
            index = self._sends
            self._sends += 1
            if index in self.fail_sends:
                return httpx.Response(400, json={"ok": False, "description": "Bad Request: chat not found"})
            return httpx.Response(200, json={"ok": True, "result": {"message_id": index, "text": payload["text"]}})

        if method in self.fail_methods:
            return httpx.Response(500, json={"ok": False, "description": "Internal Server Error"})

        if method == "getUpdates":
            if self.poll_raises:
                raise self.poll_raises.pop(0)
            if self.poll_errors:
                self.poll_errors -= 1
                return httpx.Response(502, text="Bad Gateway")
            result = self.batches.pop(0) if self.batches else []
            return httpx.Response(200, json={"ok": True, "result": result})

        return httpx.Response(200, json={"ok": True, "result": True, "description": f"{method} done"})

    def api(self) -> TelegramAPI:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return TelegramAPI("TEST:TOKEN", client=client)

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def sent(self, chat_id=None) -> list[str]:
        """Texts of sendMessage calls, in order (all attempts, failed ones included)."""
        return [
            payload["text"]
            for method, payload in self.calls
            if method == "sendMessage" and (chat_id is None or payload["chat_id"] == chat_id)
        ]


def completion_body(content) -> dict:
    return {
        "id": "cmpl-test",
        "object": "chat.completion",
        "created": 0,
        "model": "mistral-tiny",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


class FakeCompletionBackend:
    """
    OpenAI-compatible /chat/completions endpoint.

    ``answer`` may be a string (returned as content), an ``httpx.Response``
    (returned as-is) or an exception instance (raised as a transport error).
    """

    def __init__(self, answer="Drink water and rest."):
        self.answer = answer
        self.requests: list[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if isinstance(self.answer, Exception):
            raise self.answer
        if isinstance(self.answer, httpx.Response):
            return self.answer
        return httpx.Response(200, json=completion_body(self.answer))

    def client(self) -> CompletionClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return CompletionClient(
            api_key="test-key",
            system_directive=SYSTEM_DIRECTIVE,
            base_url="http://completion.test/v1",
            http_client=http_client,
        )

    def user_texts(self) -> list[str]:
        return [req["messages"][1]["content"] for req in self.requests]


def make_pipeline(
    telegram: FakeTelegram,
    backend: FakeCompletionBackend,
    max_message_length: int = 4096,
) -> Pipeline:
    return Pipeline(
        telegram=telegram.api(),
        completion=backend.client(),
        max_message_length=max_message_length,
        resources_notice=NOTICE,
        apology_message=APOLOGY,
    )
