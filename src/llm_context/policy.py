"""Exclusion rules deciding which paths can ever be part of a context payload."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

DEFAULT_IGNORED_NAMES: frozenset[str] = frozenset(
    {
        # version control
        ".git", ".svn", ".hg",
        # dependencies
        "node_modules", "vendor", "bower_components", "venv", ".venv", "env", "virtualenv",
        # build output
        "dist", "build", "out", "target", ".next", "coverage", ".nyc_output",
        # editors and operating systems
        ".vscode", ".idea", ".DS_Store", "Thumbs.db", "desktop.ini",
        # secrets
        ".env",
        # lockfiles
        "package-lock.json", "yarn.lock", "pnpm-lock.yaml", "poetry.lock", "Pipfile.lock", "Cargo.lock",
        # logs and caches
        "logs", "*.log", "__pycache__", ".pytest_cache", ".mypy_cache", ".ruff_cache", ".cache", ".tox",
    }
)

DEFAULT_NON_TEXT_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".ico", ".webp", ".tif", ".tiff",
        ".mp4", ".avi", ".mov", ".wmv", ".mkv", ".webm",
        ".mp3", ".wav", ".flac", ".aac", ".ogg", ".wma",
        ".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz",
        ".exe", ".dll", ".so", ".dylib", ".bin", ".dat", ".o", ".a", ".class", ".jar",
        ".woff", ".woff2", ".ttf", ".otf", ".eot",
        ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
        ".pyc", ".pyo", ".pyd",
        ".db", ".sqlite", ".sqlite3", ".pkl", ".parquet", ".h5", ".hdf5", ".npy", ".npz", ".pt", ".ckpt",
    }
)

_GLOB_CHARS = frozenset("*?[")


def _coerce_names(values: Iterable[str]) -> frozenset[str]:
    return frozenset(str(entry).strip() for entry in values if str(entry).strip())


def _coerce_extensions(values: Iterable[str]) -> frozenset[str]:
    result: set[str] = set()
    for entry in values:
        text = str(entry).strip().lower()
        if not text:
            continue
        result.add(text if text.startswith(".") else f".{text}")
    return frozenset(result)


def _segments(path: str | Path) -> list[str]:
    text = str(path).replace("\\", "/")
    return [part for part in PurePosixPath(text).parts if part not in ("", ".", "/")]


@dataclass(frozen=True)
class ExclusionPolicy:
    """Immutable name and extension rules applied to root-relative paths.

    ``ignored_names`` holds literal base names and glob patterns; a path is
    structurally excluded when any of its segments matches. ``non_text_extensions``
    lists lower-cased suffixes that mark a file as binary content.
    """

    ignored_names: frozenset[str] = DEFAULT_IGNORED_NAMES
    non_text_extensions: frozenset[str] = DEFAULT_NON_TEXT_EXTENSIONS

    @classmethod
    def create(
        cls,
        ignored_names: Optional[Iterable[str]] = None,
        non_text_extensions: Optional[Iterable[str]] = None,
    ) -> "ExclusionPolicy":
        """Build a policy, falling back to the defaults for omitted rule sets."""

        return cls(
            ignored_names=DEFAULT_IGNORED_NAMES if ignored_names is None else _coerce_names(ignored_names),
            non_text_extensions=(
                DEFAULT_NON_TEXT_EXTENSIONS
                if non_text_extensions is None
                else _coerce_extensions(non_text_extensions)
            ),
        )

    @cached_property
    def _patterns(self) -> tuple[str, ...]:
        return tuple(sorted(rule for rule in self.ignored_names if _GLOB_CHARS & set(rule)))

    def matches_name(self, name: str) -> bool:
        if name in self.ignored_names:
            return True
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._patterns)

    def is_structurally_excluded(self, path: str | Path) -> bool:
        """Return True when any segment of ``path`` matches an ignore rule.

        ``path`` is expected to be relative to the workspace root; segments above
        the root would otherwise be tested too.
        """

        return any(self.matches_name(segment) for segment in _segments(path))

    def is_non_text_file(self, path: str | Path) -> bool:
        segments = _segments(path)
        if not segments:
            return False
        suffix = PurePosixPath(segments[-1]).suffix.lower()
        return bool(suffix) and suffix in self.non_text_extensions


DEFAULT_POLICY = ExclusionPolicy()


def is_structurally_excluded(path: str | Path, policy: Optional[ExclusionPolicy] = None) -> bool:
    return (policy or DEFAULT_POLICY).is_structurally_excluded(path)


def is_non_text_file(path: str | Path, policy: Optional[ExclusionPolicy] = None) -> bool:
    return (policy or DEFAULT_POLICY).is_non_text_file(path)


__all__ = [
    "DEFAULT_IGNORED_NAMES",
    "DEFAULT_NON_TEXT_EXTENSIONS",
    "DEFAULT_POLICY",
    "ExclusionPolicy",
    "is_non_text_file",
    "is_structurally_excluded",
]
