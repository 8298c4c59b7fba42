"""Prompt template with named placeholders rendered against an input mapping."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass

# Double-brace form is tried first so `{{input}}` is one placeholder, not `{input}` in braces.
_PLACEHOLDER_PATTERN = re.compile(
    r"\{\{\s*\$?(?P<double>[A-Za-z_][A-Za-z0-9_]*)\s*\}\}"
    r"|\{(?P<single>[A-Za-z_][A-Za-z0-9_]*)\}"
)


class MissingPlaceholderValueError(LookupError):
    """Raised when render inputs lack a value for a template placeholder."""

    def __init__(self, *, name: str) -> None:
        self.name = name
        super().__init__(f"Missing value for prompt placeholder '{name}'")


@dataclass(frozen=True)
class PromptTemplate:
    """Immutable prompt text plus optional completion length limit."""

    raw: str
    max_output_tokens: int | None = None

    def __post_init__(self) -> None:
        if self.max_output_tokens is not None and self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be a positive integer")

    @property
    def placeholder_names(self) -> tuple[str, ...]:
        """Return placeholder names in order of first appearance."""

        names: list[str] = []
        for match in _PLACEHOLDER_PATTERN.finditer(self.raw):
            name = _placeholder_name(match)
            if name not in names:
                names.append(name)
        return tuple(names)

    def render(self, inputs: Mapping[str, str]) -> str:
        """Return raw text with every placeholder replaced by its input value."""

        for match in _PLACEHOLDER_PATTERN.finditer(self.raw):
            name = _placeholder_name(match)
            if name not in inputs:
                raise MissingPlaceholderValueError(name=name)

        return _PLACEHOLDER_PATTERN.sub(
            lambda match: inputs[_placeholder_name(match)],
            self.raw,
        )


def _placeholder_name(match: re.Match[str]) -> str:
    return match.group("double") or match.group("single")
