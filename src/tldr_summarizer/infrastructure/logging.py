"""Shared logging configuration for the command-line entry point."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(*, level: str, stream: TextIO | None = None) -> None:
    """Configure process logging on stderr so stdout carries only summaries."""

    normalized_level = level.strip().upper() if level.strip() else "INFO"
    resolved_level = getattr(logging, normalized_level, logging.INFO)

    logging.basicConfig(
        level=resolved_level,
        format=_LOG_FORMAT,
        stream=stream or sys.stderr,
    )
