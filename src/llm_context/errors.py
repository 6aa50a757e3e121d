"""Error kinds raised by the selection engine and its export commands."""

from __future__ import annotations

from typing import Optional


class LLMContextError(RuntimeError):
    """Base class for recoverable llm-context failures."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class TraversalError(LLMContextError):
    """Raised when a directory cannot be listed."""


class FileReadError(LLMContextError):
    """Raised when a selected file cannot be read as text."""

    def __init__(self, message: str, *, path: Optional[str] = None, reason: str = "unreadable") -> None:
        super().__init__(message, path=path)
        self.reason = reason


class PersistenceError(LLMContextError):
    """Raised when the workspace state store cannot be read or written."""


class ExportError(LLMContextError):
    """Raised when the aggregated report cannot be copied or written."""


__all__ = [
    "LLMContextError",
    "TraversalError",
    "FileReadError",
    "PersistenceError",
    "ExportError",
]
