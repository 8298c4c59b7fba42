"""Request and result models exchanged between the completion client and providers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class StrictModel(BaseModel):
    """Base model with strict unknown-field rejection."""

    model_config = ConfigDict(extra="forbid", frozen=True)


class CompletionErrorKind(StrEnum):
    """Failure categories surfaced by completion calls."""

    AUTHENTICATION_FAILED = "AuthenticationFailed"
    UNREACHABLE = "Unreachable"
    PROVIDER_ERROR = "ProviderError"
    CANCELLED = "Cancelled"


class ChatMessage(StrictModel):
    """One chat message sent to the provider."""

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(StrictModel):
    """Single-turn request built for one completion call."""

    model: str = Field(min_length=1)
    messages: tuple[ChatMessage, ...] = Field(min_length=1)
    max_tokens: int | None = Field(default=None, gt=0)

    @classmethod
    def single_turn(
        cls,
        *,
        model: str,
        prompt: str,
        max_tokens: int | None,
    ) -> CompletionRequest:
        """Build a request carrying the prompt as the only user message."""

        return cls(
            model=model,
            messages=(ChatMessage(role="user", content=prompt),),
            max_tokens=max_tokens,
        )


@dataclass(frozen=True)
class CompletionError:
    """Failure kind plus provider diagnostic message, when available."""

    kind: CompletionErrorKind
    message: str = ""

    def __str__(self) -> str:
        if not self.message:
            return str(self.kind)
        return f"{self.kind}: {self.message}"


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of one completion call: completion text or an error, never both."""

    text: str | None = None
    error: CompletionError | None = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.error is None):
            raise ValueError("CompletionResult requires exactly one of text or error")

    @classmethod
    def success(cls, text: str) -> CompletionResult:
        return cls(text=text)

    @classmethod
    def failure(cls, kind: CompletionErrorKind, message: str = "") -> CompletionResult:
        return cls(error=CompletionError(kind=kind, message=message))

    @property
    def ok(self) -> bool:
        return self.error is None
