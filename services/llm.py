"""Streaming client for the Gemini text-generation API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Dict, List, Literal, Optional, Protocol, Sequence, Tuple

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from settings import get_settings

logger = logging.getLogger(__name__)

_QUOTA_MARKERS = ("quota", "429", "rate limit", "resource_exhausted")


class CompletionError(Exception):
    """The completion backend failed to produce (or finish) a response."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(CompletionError):
    """The backend rejected the request because of rate limits or quota."""


@dataclass(frozen=True)
class PromptMessage:
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionBackend(Protocol):
    def stream(
        self, system: str, messages: Sequence[PromptMessage]
    ) -> AsyncGenerator[str, None]:
        ...


def is_quota_error(message: str, status_code: Optional[int] = None) -> bool:
    if status_code == 429:
        return True
    lowered = message.lower()
    return any(marker in lowered for marker in _QUOTA_MARKERS)


def classify_error(message: str, status_code: Optional[int] = None) -> CompletionError:
    if is_quota_error(message, status_code):
        return QuotaExceededError(message, status_code)
    return CompletionError(message, status_code)


def _classify_sdk_error(exc: Exception) -> CompletionError:
    if isinstance(exc, google_exceptions.ResourceExhausted):
        return QuotaExceededError(str(exc), 429)
    code = getattr(exc, "code", None)
    return classify_error(str(exc), int(code) if isinstance(code, int) else None)


def _chunk_text(chunk: Any) -> str:
    # Trailing chunks can carry only a finish reason and no parts.
    try:
        return chunk.text
    except ValueError:
        return ""


class GeminiClient:
    """Relays a ``generate_content_async`` stream as text chunks."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = 60.0,
        model_factory: Callable[..., Any] = genai.GenerativeModel,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self._timeout = timeout
        self._model_factory = model_factory
        if api_key:
            genai.configure(api_key=api_key)

    @staticmethod
    def build_contents(
        system: str, messages: Sequence[PromptMessage]
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        """System turns join the system instruction; the rest map to contents."""
        instructions = [system]
        contents: List[Dict[str, Any]] = []
        for message in messages:
            if message.role == "system":
                instructions.append(message.content)
                continue
            role = "model" if message.role == "assistant" else "user"
            contents.append({"role": role, "parts": [message.content]})
        return instructions, contents

    async def stream(
        self, system: str, messages: Sequence[PromptMessage]
    ) -> AsyncGenerator[str, None]:
        if not self._api_key:
            raise CompletionError("GEMINI_API_KEY is not configured.")

        instructions, contents = self.build_contents(system, messages)
        model = self._model_factory(self.model, system_instruction=instructions)
        try:
            response = await model.generate_content_async(
                contents, stream=True, request_options={"timeout": self._timeout}
            )
            async for chunk in response:
                text = _chunk_text(chunk)
                if text:
                    yield text
        except (google_exceptions.GoogleAPIError, BlockedPromptException, StopCandidateException) as exc:
            logger.warning("Completion request failed", extra={"reason": str(exc)})
            raise _classify_sdk_error(exc) from exc


def build_default_backend() -> GeminiClient:
    settings = get_settings()
    return GeminiClient(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.gemini_timeout,
    )
