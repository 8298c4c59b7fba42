from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import pytest

from tldr_summarizer.application.dto.completion_models import (
    ChatMessage,
    CompletionErrorKind,
)
from tldr_summarizer.application.services.completion_client import CompletionClient
from tldr_summarizer.domain.prompt_template import (
    MissingPlaceholderValueError,
    PromptTemplate,
)
from tldr_summarizer.infrastructure.llm.llm_client import (
    ChatCompletionError,
    StaticChatCompletionClient,
)

_TLDR_TEMPLATE = PromptTemplate(
    raw="{{input}}\n\nOne line TLDR with the fewest words.",
    max_output_tokens=100,
)


class _RecordingChatClient:
    def __init__(self, *, error: ChatCompletionError | None = None) -> None:
        self._error = error
        self.calls: list[dict[str, object]] = []

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        self.calls.append(
            {
                "model_id": model_id,
                "messages": list(messages),
                "max_tokens": max_tokens,
            }
        )
        if self._error is not None:
            raise self._error
        return f"summary of: {messages[-1].content}"


class _NeverRespondingChatClient:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.was_cancelled = False

    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        _ = model_id, messages, max_tokens
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.was_cancelled = True
            raise
        raise AssertionError("unreachable")


class _FailingOnCancelChatClient:
    async def send(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        max_tokens: int | None,
    ) -> str:
        _ = model_id, messages, max_tokens
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            raise RuntimeError("connection reset during cleanup") from None
        raise AssertionError("unreachable")


async def _let_cancellation_settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _client(chat_client: object, **overrides: str) -> CompletionClient:
    values = {
        "endpoint": "https://example.openai.azure.com",
        "credential": "secret-key",
        "model_or_deployment": "gpt-35-turbo",
    }
    values.update(overrides)
    return CompletionClient(chat_client=chat_client, **values)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_complete_sends_rendered_prompt_as_single_user_message() -> None:
    chat = _RecordingChatClient()
    client = _client(chat)

    result = await client.complete(_TLDR_TEMPLATE, {"input": "A\nB\nC"})

    assert result.ok
    assert result.error is None
    assert result.text == "summary of: A\nB\nC\n\nOne line TLDR with the fewest words."
    assert len(chat.calls) == 1
    call = chat.calls[0]
    assert call["model_id"] == "gpt-35-turbo"
    assert call["max_tokens"] == 100
    assert call["messages"] == [
        ChatMessage(role="user", content="A\nB\nC\n\nOne line TLDR with the fewest words.")
    ]


@pytest.mark.asyncio
async def test_completion_text_is_returned_verbatim_including_empty_text() -> None:
    for response_text in ("  padded answer \n", ""):
        client = _client(StaticChatCompletionClient(response_text))

        result = await client.complete(_TLDR_TEMPLATE, {"input": "text"})

        assert result.ok
        assert result.text == response_text


@pytest.mark.asyncio
async def test_client_default_max_tokens_applies_when_template_has_none() -> None:
    chat = _RecordingChatClient()
    client = CompletionClient(
        endpoint="https://example.openai.azure.com",
        credential="secret-key",
        model_or_deployment="gpt-35-turbo",
        chat_client=chat,
        max_output_tokens=42,
    )

    await client.complete(PromptTemplate(raw="{{input}}"), {"input": "x"})
    await client.complete(_TLDR_TEMPLATE, {"input": "x"})

    assert [call["max_tokens"] for call in chat.calls] == [42, 100]


@pytest.mark.asyncio
async def test_missing_placeholder_raises_before_any_provider_call() -> None:
    chat = _RecordingChatClient()
    client = _client(chat)

    with pytest.raises(MissingPlaceholderValueError) as error_info:
        await client.complete(_TLDR_TEMPLATE, {"text": "wrong key"})

    assert error_info.value.name == "input"
    assert chat.calls == []


@pytest.mark.asyncio
async def test_empty_credential_returns_authentication_failed_without_provider_call() -> None:
    chat = _RecordingChatClient()
    client = _client(chat, credential="")

    result = await client.complete(_TLDR_TEMPLATE, {"input": "text"})

    assert not result.ok
    assert result.text is None
    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.AUTHENTICATION_FAILED
    assert chat.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "expected_kind"),
    [
        ({"endpoint": " "}, CompletionErrorKind.UNREACHABLE),
        ({"model_or_deployment": ""}, CompletionErrorKind.PROVIDER_ERROR),
    ],
)
async def test_empty_endpoint_or_model_fails_at_call_time(
    overrides: dict[str, str],
    expected_kind: CompletionErrorKind,
) -> None:
    chat = _RecordingChatClient()
    client = _client(chat, **overrides)

    result = await client.complete(_TLDR_TEMPLATE, {"input": "text"})

    assert result.error is not None
    assert result.error.kind is expected_kind
    assert chat.calls == []


@pytest.mark.asyncio
async def test_provider_rejection_of_credential_is_returned_as_failure() -> None:
    chat = _RecordingChatClient(
        error=ChatCompletionError(
            CompletionErrorKind.AUTHENTICATION_FAILED,
            "chat_completions failed with status 401: invalid key",
        )
    )
    client = _client(chat)

    result = await client.complete(_TLDR_TEMPLATE, {"input": "text"})

    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.AUTHENTICATION_FAILED
    assert "invalid key" in result.error.message
    assert len(chat.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kind",
    [CompletionErrorKind.UNREACHABLE, CompletionErrorKind.PROVIDER_ERROR],
)
async def test_transport_failures_are_not_retried(kind: CompletionErrorKind) -> None:
    chat = _RecordingChatClient(error=ChatCompletionError(kind, "boom"))
    client = _client(chat)

    result = await client.complete(_TLDR_TEMPLATE, {"input": "text"})

    assert result.error is not None
    assert result.error.kind is kind
    assert result.error.message == "boom"
    assert str(result.error) == f"{kind}: boom"
    assert len(chat.calls) == 1


@pytest.mark.asyncio
async def test_sequential_calls_do_not_leak_rendered_text() -> None:
    chat = _RecordingChatClient()
    client = _client(chat)

    first = await client.complete(_TLDR_TEMPLATE, {"input": "first text"})
    second = await client.complete(_TLDR_TEMPLATE, {"input": "second text"})

    assert first.text is not None and "first text" in first.text
    assert second.text is not None and "second text" in second.text
    assert "first text" not in second.text
    assert "second text" not in first.text
    second_messages = chat.calls[1]["messages"]
    assert isinstance(second_messages, list)
    assert len(second_messages) == 1
    assert "first text" not in second_messages[0].content


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_client() -> None:
    chat = _RecordingChatClient()
    client = _client(chat)

    results = await asyncio.gather(
        *(client.complete(_TLDR_TEMPLATE, {"input": f"text {index}"}) for index in range(5))
    )

    for index, result in enumerate(results):
        assert result.text is not None
        assert result.text.startswith(f"summary of: text {index}\n")
    assert len(chat.calls) == 5


@pytest.mark.asyncio
async def test_cancel_event_fired_after_issue_returns_cancelled() -> None:
    chat = _NeverRespondingChatClient()
    client = _client(chat)
    cancel_event = asyncio.Event()

    pending = asyncio.create_task(
        client.complete(_TLDR_TEMPLATE, {"input": "text"}, cancel_event=cancel_event)
    )
    await asyncio.wait_for(chat.started.wait(), timeout=1.0)
    cancel_event.set()
    result = await asyncio.wait_for(pending, timeout=1.0)

    assert result.text is None
    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.CANCELLED
    await _let_cancellation_settle()
    assert chat.was_cancelled


@pytest.mark.asyncio
async def test_cancel_event_already_set_skips_provider_call() -> None:
    chat = _RecordingChatClient()
    client = _client(chat)
    cancel_event = asyncio.Event()
    cancel_event.set()

    result = await client.complete(_TLDR_TEMPLATE, {"input": "text"}, cancel_event=cancel_event)

    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.CANCELLED
    assert chat.calls == []


@pytest.mark.asyncio
async def test_deadline_returns_cancelled_within_budget() -> None:
    chat = _NeverRespondingChatClient()
    client = _client(chat)

    result = await asyncio.wait_for(
        client.complete(_TLDR_TEMPLATE, {"input": "text"}, timeout_seconds=0.05),
        timeout=1.0,
    )

    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.CANCELLED
    await _let_cancellation_settle()
    assert chat.was_cancelled


@pytest.mark.asyncio
async def test_cancelling_awaiting_task_raises_and_cancels_send() -> None:
    chat = _NeverRespondingChatClient()
    client = _client(chat)

    pending = asyncio.create_task(client.complete(_TLDR_TEMPLATE, {"input": "text"}))
    await asyncio.wait_for(chat.started.wait(), timeout=1.0)
    pending.cancel()

    with pytest.raises(asyncio.CancelledError):
        await pending

    await _let_cancellation_settle()
    assert chat.was_cancelled


@pytest.mark.asyncio
async def test_failure_while_abandoned_send_unwinds_is_consumed_and_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    chat = _FailingOnCancelChatClient()
    client = _client(chat)

    with caplog.at_level(
        logging.DEBUG,
        logger="tldr_summarizer.application.services.completion_client",
    ):
        result = await client.complete(
            _TLDR_TEMPLATE,
            {"input": "text"},
            timeout_seconds=0.05,
        )
        await _let_cancellation_settle()

    assert result.error is not None
    assert result.error.kind is CompletionErrorKind.CANCELLED
    assert "abandoned_send_failed error=connection reset during cleanup" in caplog.text


@pytest.mark.asyncio
async def test_response_before_cancellation_is_returned() -> None:
    client = _client(StaticChatCompletionClient("done"))
    cancel_event = asyncio.Event()

    result = await client.complete(
        _TLDR_TEMPLATE,
        {"input": "text"},
        cancel_event=cancel_event,
        timeout_seconds=1.0,
    )

    assert result.text == "done"


def test_construction_with_empty_values_succeeds_and_hides_credential() -> None:
    client = CompletionClient(endpoint="", credential="", model_or_deployment="")

    assert client.endpoint == ""
    assert client.model_or_deployment == ""
    assert "credential" not in repr(client)


def test_repr_does_not_include_credential() -> None:
    client = _client(StaticChatCompletionClient("x"), credential="super-secret")

    assert "super-secret" not in repr(client)
