"""OpenAI and Azure OpenAI chat-completions adapters implementing the chat-completion port."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from tldr_summarizer.application.dto.completion_models import ChatMessage, CompletionErrorKind
from tldr_summarizer.infrastructure.llm.llm_client import ChatCompletionError

logger = logging.getLogger(__name__)

_AUTH_FAILURE_STATUSES = frozenset({401, 403})


@dataclass(frozen=True)
class HttpResponse:
    """Normalized HTTP response data returned by HTTP transports."""

    status_code: int
    body_bytes: bytes


class HttpTransportPort(Protocol):
    """Transport protocol used by chat-completions HTTP adapters."""

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None,
        timeout_seconds: float,
    ) -> HttpResponse:
        """Execute one HTTP request and return normalized response data."""


class UrllibHttpTransport:
    """urllib-based async transport implementation for provider HTTP calls."""

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None,
        timeout_seconds: float,
    ) -> HttpResponse:
        """Execute HTTP request in a worker thread and normalize HTTP errors."""

        return await asyncio.to_thread(
            self._request_sync,
            method=method,
            url=url,
            headers=headers,
            body=body,
            timeout_seconds=timeout_seconds,
        )

    def _request_sync(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | None,
        timeout_seconds: float,
    ) -> HttpResponse:
        request = Request(url=url, data=body, headers=headers, method=method)
        try:
            with urlopen(request, timeout=timeout_seconds) as response:
                status_code = int(response.getcode())
                payload = response.read()
                return HttpResponse(status_code=status_code, body_bytes=payload)
        except HTTPError as error:
            payload = error.read()
            return HttpResponse(status_code=int(error.code), body_bytes=payload)
        except (URLError, TimeoutError) as error:
            raise ChatCompletionError(
                CompletionErrorKind.UNREACHABLE,
                f"transport connection failure: {error}",
            ) from error


class _ChatCompletionsHttpClient:
    """Shared POST and response handling for chat-completions style HTTP APIs."""

    def __init__(
        self,
        *,
        transport: HttpTransportPort | None,
        timeout_seconds: float,
    ) -> None:
        if timeout_seconds < 0:
            raise ValueError("timeout_seconds must be non-negative")
        self._transport = transport or UrllibHttpTransport()
        self._timeout_seconds = timeout_seconds

    async def complete(
        self,
        *,
        url: str,
        headers: dict[str, str],
        payload: dict[str, object],
    ) -> str:
        """POST one chat-completions payload and return the first choice text."""

        response = await self._request_json(
            operation="chat_completions",
            url=url,
            headers=headers,
            payload=payload,
        )
        return _extract_assistant_content(response=response)

    async def _request_json(
        self,
        *,
        operation: str,
        url: str,
        headers: dict[str, str],
        payload: dict[str, object],
    ) -> dict[str, object]:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        try:
            response = await self._transport.request(
                method="POST",
                url=url,
                headers={**headers, "Content-Type": "application/json"},
                body=body,
                timeout_seconds=self._timeout_seconds,
            )
        except ChatCompletionError:
            raise
        except Exception as error:  # noqa: BLE001
            raise ChatCompletionError(
                CompletionErrorKind.UNREACHABLE,
                f"{operation} transport failure: {error}",
            ) from error

        if response.status_code < 200 or response.status_code >= 300:
            details = _decode_error_payload(response.body_bytes)
            logger.debug(
                "%s_http_error status=%s details=%s",
                operation,
                response.status_code,
                details,
            )
            kind = (
                CompletionErrorKind.AUTHENTICATION_FAILED
                if response.status_code in _AUTH_FAILURE_STATUSES
                else CompletionErrorKind.PROVIDER_ERROR
            )
            raise ChatCompletionError(
                kind,
                f"{operation} failed with status {response.status_code}: {details}",
            )

        try:
            decoded = json.loads(response.body_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as error:
            raise ChatCompletionError(
                CompletionErrorKind.PROVIDER_ERROR,
                f"{operation} returned invalid JSON payload",
            ) from error
        if not isinstance(decoded, dict):
            raise ChatCompletionError(
                CompletionErrorKind.PROVIDER_ERROR,
                f"{operation} returned non-object JSON payload",
            )
        return cast("dict[str, object]", decoded)


class OpenAiChatCompletionsClient:
    """OpenAI `/v1/chat/completions` adapter implementing the chat-completion port."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com",
        transport: HttpTransportPort | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        self._http = _ChatCompletionsHttpClient(
            transport=transport,
            timeout_seconds=timeout_seconds,
        )
        self._api_key = api_key.strip()
        self._base_url = base_url.rstrip("/")

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        """Return assistant text for `messages` sent to model `model_id`."""

        payload: dict[str, object] = {
            "model": model_id,
            "messages": [message.model_dump() for message in messages],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return await self._http.complete(
            url=f"{self._base_url}/v1/chat/completions",
            headers={"Authorization": f"Bearer {self._api_key}"},
            payload=payload,
        )


class AzureOpenAiChatCompletionsClient:
    """Azure OpenAI deployment-scoped chat-completions adapter.

    The deployment is addressed by URL path, so no `model` field is sent.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str,
        api_version: str = "2024-02-01",
        transport: HttpTransportPort | None = None,
        timeout_seconds: float = 60.0,
    ) -> None:
        if not api_version.strip():
            raise ValueError("api_version must be a non-empty string")
        self._http = _ChatCompletionsHttpClient(
            transport=transport,
            timeout_seconds=timeout_seconds,
        )
        self._endpoint = endpoint.strip().rstrip("/")
        self._api_key = api_key.strip()
        self._api_version = api_version.strip()

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        """Return assistant text for `messages` sent to deployment `model_id`."""

        deployment = quote(model_id, safe="")
        query = urlencode({"api-version": self._api_version})
        payload: dict[str, object] = {
            "messages": [message.model_dump() for message in messages],
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        return await self._http.complete(
            url=f"{self._endpoint}/openai/deployments/{deployment}/chat/completions?{query}",
            headers={"api-key": self._api_key},
            payload=payload,
        )


def _extract_assistant_content(*, response: Mapping[str, Any]) -> str:
    choices = response.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ChatCompletionError(
            CompletionErrorKind.PROVIDER_ERROR,
            "chat_completions response missing choices",
        )

    first_choice = choices[0]
    if not isinstance(first_choice, Mapping):
        raise ChatCompletionError(
            CompletionErrorKind.PROVIDER_ERROR,
            "chat_completions response has invalid choices payload",
        )

    message = first_choice.get("message")
    if not isinstance(message, Mapping):
        raise ChatCompletionError(
            CompletionErrorKind.PROVIDER_ERROR,
            "chat_completions response missing message payload",
        )

    content = message.get("content")
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts: list[str] = []
        for part in content:
            if not isinstance(part, Mapping):
                continue
            if part.get("type") != "text":
                continue
            text_value = part.get("text")
            if isinstance(text_value, str):
                text_parts.append(text_value)
        if text_parts:
            return "".join(text_parts)

    raise ChatCompletionError(
        CompletionErrorKind.PROVIDER_ERROR,
        "chat_completions response missing assistant content",
    )


def _decode_error_payload(payload: bytes) -> str:
    if not payload:
        return "empty response body"
    try:
        decoded = payload.decode("utf-8")
    except UnicodeDecodeError:
        return "<binary>"
    return decoded[:200]
