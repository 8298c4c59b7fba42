"""Render a prompt template, send it to the configured provider, and return the completion."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from tldr_summarizer.application.dto.completion_models import (
    CompletionErrorKind,
    CompletionRequest,
    CompletionResult,
)
from tldr_summarizer.domain.prompt_template import PromptTemplate
from tldr_summarizer.infrastructure.llm.llm_client import ChatCompletionError, ChatCompletionPort
from tldr_summarizer.infrastructure.llm.openai_client import AzureOpenAiChatCompletionsClient

logger = logging.getLogger(__name__)


class CompletionClient:
    """Single-template prompt invocation against one chat-completion provider.

    Instances hold no mutable state, so one client can serve concurrent
    `complete` calls. Provider failures are returned as `CompletionResult`
    failures; only a missing placeholder value is raised.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        credential: str,
        model_or_deployment: str,
        chat_client: ChatCompletionPort | None = None,
        max_output_tokens: int | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._credential = credential
        self._model_or_deployment = model_or_deployment
        self._chat_client = chat_client or AzureOpenAiChatCompletionsClient(
            endpoint=endpoint,
            api_key=credential,
        )
        self._max_output_tokens = max_output_tokens

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def model_or_deployment(self) -> str:
        return self._model_or_deployment

    def __repr__(self) -> str:
        return (
            f"CompletionClient(endpoint={self._endpoint!r}, "
            f"model_or_deployment={self._model_or_deployment!r})"
        )

    async def complete(
        self,
        template: PromptTemplate,
        inputs: Mapping[str, str],
        *,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> CompletionResult:
        """Render `template` with `inputs` and return the provider completion.

        `cancel_event` and `timeout_seconds` end the call early with a
        `Cancelled` failure when they fire before the provider answers.
        """

        prompt = template.render(inputs)

        configuration_failure = self._check_configuration()
        if configuration_failure is not None:
            logger.warning(
                "completion_rejected model=%s error=%s",
                self._model_or_deployment,
                configuration_failure.error,
            )
            return configuration_failure

        if cancel_event is not None and cancel_event.is_set():
            return CompletionResult.failure(
                CompletionErrorKind.CANCELLED,
                "cancelled before request was sent",
            )

        request = CompletionRequest.single_turn(
            model=self._model_or_deployment,
            prompt=prompt,
            max_tokens=template.max_output_tokens or self._max_output_tokens,
        )
        logger.info(
            "completion_sent model=%s prompt_chars=%s max_tokens=%s",
            request.model,
            len(prompt),
            request.max_tokens,
        )

        try:
            text = await self._send_until_cancelled(
                request=request,
                cancel_event=cancel_event,
                timeout_seconds=timeout_seconds,
            )
        except ChatCompletionError as error:
            logger.warning(
                "completion_failed kind=%s model=%s message=%s",
                error.kind,
                request.model,
                error.message,
            )
            return CompletionResult.failure(error.kind, error.message)

        if text is None:
            logger.info("completion_cancelled model=%s", request.model)
            return CompletionResult.failure(
                CompletionErrorKind.CANCELLED,
                "cancelled before a response arrived",
            )

        logger.debug("completion_received model=%s chars=%s", request.model, len(text))
        return CompletionResult.success(text)

    def _check_configuration(self) -> CompletionResult | None:
        if not self._credential.strip():
            return CompletionResult.failure(
                CompletionErrorKind.AUTHENTICATION_FAILED,
                "credential is empty",
            )
        if not self._endpoint.strip():
            return CompletionResult.failure(
                CompletionErrorKind.UNREACHABLE,
                "endpoint is empty",
            )
        if not self._model_or_deployment.strip():
            return CompletionResult.failure(
                CompletionErrorKind.PROVIDER_ERROR,
                "model or deployment name is empty",
            )
        return None

    async def _send_until_cancelled(
        self,
        *,
        request: CompletionRequest,
        cancel_event: asyncio.Event | None,
        timeout_seconds: float | None,
    ) -> str | None:
        """Return completion text, or None when cancellation fires first."""

        send_task = asyncio.ensure_future(
            self._chat_client.send(
                model_id=request.model,
                messages=request.messages,
                max_tokens=request.max_tokens,
            )
        )
        waiters: set[asyncio.Future[Any]] = {send_task}
        cancel_task: asyncio.Task[bool] | None = None
        if cancel_event is not None:
            cancel_task = asyncio.create_task(cancel_event.wait())
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=timeout_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if cancel_task is not None:
                cancel_task.cancel()
            if not send_task.done():
                send_task.add_done_callback(_consume_abandoned_send)
                send_task.cancel()

        if send_task in done:
            return send_task.result()
        return None


def _consume_abandoned_send(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("abandoned_send_failed error=%s", error)
