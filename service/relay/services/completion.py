"""
Completion client: user text in, generated answer (or classified failure) out.

Talks to any OpenAI-compatible chat completions endpoint through the openai
SDK; the default configuration points at Mistral.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
import openai
from openai import AsyncOpenAI

from relay.agents.prompts import EMPTY_MESSAGE_PLACEHOLDER
from relay.config import get_settings

logger = logging.getLogger("relay_bot.completion")


class FailureKind(str, Enum):
    BACKEND_UNAVAILABLE = "backend_unavailable"  # could not reach the backend
    BACKEND_ERROR = "backend_error"  # non-success status
    MALFORMED_RESPONSE = "malformed_response"  # success without generated text


@dataclass(frozen=True)
class CompletionRequest:
    system_directive: str
    user_text: str

    def to_messages(self) -> list[dict]:
        return [
            {"role": "system", "content": self.system_directive},
            {"role": "user", "content": self.user_text},
        ]


@dataclass(frozen=True)
class CompletionResult:
    text: Optional[str] = None
    failure: Optional[FailureKind] = None
    detail: Optional[str] = None  # diagnostics only, never shown to users

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def failed(cls, kind: FailureKind, detail: str) -> "CompletionResult":
        return cls(failure=kind, detail=detail)


def _extract_text(response) -> Optional[str]:
    """Return choices[0].message.content if it is a non-empty string."""
    choices = getattr(response, "choices", None)
    if not isinstance(choices, list) or not choices:
        return None
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        return None
    return content


class CompletionClient:
    """
    Single-shot chat completion with a fixed system directive.

    No retries: the SDK's built-in retry loop is disabled and every failure
    is returned to the caller as a CompletionResult.
    """

    def __init__(
        self,
        api_key: str,
        system_directive: str,
        model: str = "mistral-tiny",
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.system_directive = system_directive
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            http_client=http_client,
        )

    def build_request(self, user_text: Optional[str]) -> CompletionRequest:
        if not user_text or not user_text.strip():
            user_text = EMPTY_MESSAGE_PLACEHOLDER
        return CompletionRequest(system_directive=self.system_directive, user_text=user_text)

    async def complete(self, user_text: Optional[str]) -> CompletionResult:
        """
        Generate an answer for ``user_text``.

        Args:
            user_text: Message text; None or blank is replaced by a placeholder

        Returns:
            CompletionResult with ``text`` on success, ``failure`` otherwise
        """
        request = self.build_request(user_text)
        logger.info(f"Requesting completion: model={self.model}, prompt_len={len(request.user_text)}")

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=request.to_messages(),
                temperature=self.temperature,
                max_tokens=self.max_tokens
            )
        except openai.APIConnectionError as e:
            logger.error(f"Completion backend unreachable: {e}")
            return CompletionResult.failed(FailureKind.BACKEND_UNAVAILABLE, str(e))
        except openai.APIStatusError as e:
            body = e.response.text[:1000]
            logger.error(f"Completion backend error: {e.status_code} {body}")
            return CompletionResult.failed(FailureKind.BACKEND_ERROR, f"{e.status_code} {body}")
        except openai.APIResponseValidationError as e:
            logger.error(f"Completion response failed validation: {e}")
            return CompletionResult.failed(FailureKind.MALFORMED_RESPONSE, str(e))
        except ValueError as e:
            # JSON content type with an unparseable body
            logger.error(f"Completion response is not valid JSON: {e}")
            return CompletionResult.failed(FailureKind.MALFORMED_RESPONSE, str(e))

        text = _extract_text(response)
        if text is None:
            logger.error(f"Completion response has no generated text: {response!r:.500}")
            return CompletionResult.failed(FailureKind.MALFORMED_RESPONSE, "missing choices[0].message.content")

        logger.info(f"Completion received: answer_len={len(text)}")
        return CompletionResult(text=text)

    async def close(self):
        await self.client.close()


# Global instance
_completion_client: Optional[CompletionClient] = None


def get_completion_client() -> CompletionClient:
    """Get or create completion client singleton."""
    global _completion_client
    if _completion_client is None:
        settings = get_settings()
        _completion_client = CompletionClient(
            api_key=settings.mistral_api_key,
            system_directive=settings.system_prompt,
            model=settings.completion_model,
            base_url=settings.completion_base_url,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )
    return _completion_client


async def close_completion_client() -> None:
    global _completion_client
    if _completion_client is not None:
        await _completion_client.close()
        _completion_client = None
