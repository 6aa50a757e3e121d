"""Console helpers for llm-context."""

from __future__ import annotations

import os
import sys
from typing import IO, Optional

from rich.console import Console

_ENV_FALSE = {"0", "false", "no", "off", ""}


def _env_flag(name: str) -> bool:
    value = os.environ.get(name)
    return value is not None and value.strip().lower() not in _ENV_FALSE


def supports_color(stream: Optional[IO[str]] = None) -> bool:
    """Colour is on for a real terminal unless the environment turns it off.

    ``LLM_CONTEXT_FORCE_COLOR`` wins over ``LLM_CONTEXT_NO_COLOR``/``NO_COLOR``.
    Legacy Windows consoles are left to Rich's own detection.
    """

    if _env_flag("LLM_CONTEXT_FORCE_COLOR"):
        return True
    if _env_flag("LLM_CONTEXT_NO_COLOR") or _env_flag("NO_COLOR"):
        return False

    stream = stream if stream is not None else sys.stdout
    try:
        if not stream.isatty():
            return False
    except (AttributeError, OSError, ValueError):
        return False
    return os.environ.get("TERM", "").lower() not in ("", "dumb")


def create_console(*, plain: Optional[bool] = None, file: Optional[IO[str]] = None) -> Console:
    """Return a Rich console; ``plain`` overrides colour detection either way."""

    color = supports_color(file) if plain is None else not plain
    return Console(file=file, force_terminal=color, no_color=not color)


__all__ = ["supports_color", "create_console"]
