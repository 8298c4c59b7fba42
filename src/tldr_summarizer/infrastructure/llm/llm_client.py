"""Chat-completion capability port and simple adapter wrappers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from tldr_summarizer.application.dto.completion_models import ChatMessage, CompletionErrorKind


class ChatCompletionError(RuntimeError):
    """Raised by chat-completion adapters with a normalized failure kind."""

    def __init__(self, kind: CompletionErrorKind, message: str) -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}")


class ChatCompletionPort(Protocol):
    """Protocol for sending chat messages to one provider and reading the reply text."""

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        """Return first completion text or raise `ChatCompletionError`."""


class StaticChatCompletionClient:
    """Test-friendly static client returning fixed response text."""

    def __init__(self, response_text: str) -> None:
        self._response_text = response_text

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        return self._response_text
