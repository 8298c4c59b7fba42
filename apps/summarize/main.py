"""summarize entrypoint."""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import TextIO

from tldr_summarizer.application.dto.completion_models import CompletionResult
from tldr_summarizer.application.services.completion_client import CompletionClient
from tldr_summarizer.config.settings import Settings, load_settings
from tldr_summarizer.domain.prompt_template import PromptTemplate
from tldr_summarizer.infrastructure.llm.llm_client import ChatCompletionPort
from tldr_summarizer.infrastructure.llm.openai_client import (
    AzureOpenAiChatCompletionsClient,
    OpenAiChatCompletionsClient,
)
from tldr_summarizer.infrastructure.logging import configure_logging

logger = logging.getLogger(__name__)

SUMMARIZE_PROMPT = """{{$input}}

One line TLDR with the fewest words."""

THERMODYNAMICS_TEXT = """
1st Law of Thermodynamics - Energy cannot be created or destroyed.
2nd Law of Thermodynamics - For a spontaneous process, the entropy of the universe increases.
3rd Law of Thermodynamics - A perfect crystal at zero Kelvin has zero entropy."""

NEWTON_TEXT = """
1. An object at rest remains at rest, and an object in motion remains in motion at constant \
speed and in a straight line unless acted on by an unbalanced force.
2. The acceleration of an object depends on the mass of the object and the amount of force \
applied.
3. Whenever one object exerts a force on another object, the second object exerts an equal \
and opposite on the first."""

EXIT_PROMPT = "Press enter to exit."


def build_summarize_template(*, max_output_tokens: int) -> PromptTemplate:
    """Build the one-line TL;DR prompt template."""

    return PromptTemplate(raw=SUMMARIZE_PROMPT, max_output_tokens=max_output_tokens)


def build_completion_client(
    *,
    settings: Settings,
    chat_client: ChatCompletionPort | None = None,
) -> CompletionClient:
    """Build the completion client for the configured provider."""

    if settings.llm_provider == "openai":
        return CompletionClient(
            endpoint=settings.openai_base_url,
            credential=settings.openai_api_key,
            model_or_deployment=settings.openai_model,
            chat_client=chat_client
            or OpenAiChatCompletionsClient(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.llm_timeout_seconds,
            ),
        )

    return CompletionClient(
        endpoint=settings.azure_openai_endpoint,
        credential=settings.azure_openai_api_key,
        model_or_deployment=settings.azure_openai_deployment,
        chat_client=chat_client
        or AzureOpenAiChatCompletionsClient(
            endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
            api_version=settings.azure_openai_api_version,
            timeout_seconds=settings.llm_timeout_seconds,
        ),
    )


async def summarize_texts(
    *,
    client: CompletionClient,
    template: PromptTemplate,
    texts: Sequence[str],
) -> list[CompletionResult]:
    """Summarize each text in order; a failure does not stop the remaining texts."""

    results: list[CompletionResult] = []
    for index, text in enumerate(texts):
        result = await client.complete(template, {"input": text})
        if not result.ok:
            logger.warning("summary_failed index=%s error=%s", index, result.error)
        results.append(result)
    return results


def format_result(result: CompletionResult) -> str:
    """Return the console line for one completion result."""

    if result.error is not None:
        return f"error {result.error}"
    return result.text or ""


async def run_summaries(
    *,
    settings: Settings,
    out: TextIO,
    chat_client: ChatCompletionPort | None = None,
) -> list[CompletionResult]:
    """Summarize the built-in texts and print one line per result."""

    client = build_completion_client(settings=settings, chat_client=chat_client)
    template = build_summarize_template(max_output_tokens=settings.llm_max_output_tokens)
    logger.info(
        "summarize_starting provider=%s model=%s",
        settings.llm_provider,
        client.model_or_deployment,
    )

    results = await summarize_texts(
        client=client,
        template=template,
        texts=(THERMODYNAMICS_TEXT, NEWTON_TEXT),
    )
    for result in results:
        print(format_result(result), file=out)
    return results


def main() -> None:
    """Print TL;DR summaries for the built-in texts, then wait for enter."""

    settings = load_settings()
    configure_logging(level=settings.log_level)

    asyncio.run(run_summaries(settings=settings, out=sys.stdout))

    print(EXIT_PROMPT)
    sys.stdin.readline()


if __name__ == "__main__":
    main()
