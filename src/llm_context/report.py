"""Aggregation of selected files into a single context payload."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import DefaultDict, Dict, Iterator, List, Optional, Protocol, Tuple

from .errors import FileReadError
from .logging import logger
from .selection import SelectionStore


class ProgressCallback(Protocol):
    """Callable invoked to report aggregation progress."""

    def __call__(self, *, advance: int, description: Optional[str] = None) -> None:  # pragma: no cover - Protocol definition
        ...


@dataclass
class ReportStats:
    """Structured information returned alongside a built report."""

    root: Path
    processed_paths: list[str]
    total_chars: int
    skipped_paths: Dict[str, list[str]]
    errors: list[str]

    @property
    def processed_files(self) -> int:
        return len(self.processed_paths)

    @property
    def skipped(self) -> Dict[str, int]:
        """Count of skipped files by reason."""

        return {reason: len(paths) for reason, paths in self.skipped_paths.items() if paths}

    def as_dict(self) -> Dict[str, object]:
        """Return stats in plain dict form for serialization/logging."""

        return {
            "root": str(self.root),
            "processed_paths": list(self.processed_paths),
            "processed_files": self.processed_files,
            "total_chars": self.total_chars,
            "skipped_paths": {reason: list(paths) for reason, paths in self.skipped_paths.items()},
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class Report:
    text: str
    stats: ReportStats


def format_record(relative_path: str, content: str) -> str:
    return f"\n--- File: {relative_path} ---\n{content}\n"


def read_text_file(file_path: Path, relative_path: str) -> str:
    """Read a file as strict UTF-8, keeping its newlines untouched.

    Raises:
        FileReadError: If the file cannot be opened or is not valid UTF-8.
    """

    try:
        with open(file_path, "r", encoding="utf-8", newline="") as handle:
            return handle.read()
    except UnicodeDecodeError as exc:
        raise FileReadError(f"'{relative_path}' is not valid UTF-8 text", path=relative_path, reason="not_text") from exc
    except OSError as exc:
        raise FileReadError(f"Unable to read '{relative_path}': {exc}", path=relative_path) from exc


class ReportBuilder:
    """Concatenate the effectively selected files of a ``SelectionStore``."""

    def __init__(self, store: SelectionStore) -> None:
        self.store = store

    def snapshot(self) -> List[str]:
        """Freeze the list of files to visit, reading fresh directory listings."""

        return list(self.store.selected_files(cached=False))

    def _read(
        self,
        relative_path: str,
        skipped_paths: DefaultDict[str, list[str]],
        errors: list[str],
    ) -> Optional[str]:
        try:
            return read_text_file(self.store.walker.absolute(relative_path), relative_path)
        except FileReadError as exc:
            logger.warning("file_read_failed", path=relative_path, reason=exc.reason, error=str(exc))
            skipped_paths[exc.reason].append(relative_path)
            errors.append(str(exc))
            return None

    def _records(
        self,
        skipped_paths: DefaultDict[str, list[str]],
        errors: list[str],
    ) -> Iterator[Tuple[str, str]]:
        for relative_path in self.snapshot():
            content = self._read(relative_path, skipped_paths, errors)
            if content is not None:
                yield relative_path, content

    def iter_records(self) -> Iterator[Tuple[str, str]]:
        """Lazily yield ``(relative_path, content)`` for every readable selected file."""

        return self._records(defaultdict(list), [])

    def _start(self) -> Tuple[DefaultDict[str, list[str]], list[str], list[str], list[str]]:
        return defaultdict(list), [], [], []

    def _finish(
        self,
        parts: list[str],
        processed: list[str],
        skipped_paths: DefaultDict[str, list[str]],
        errors: list[str],
    ) -> Report:
        text = "".join(parts)
        stats = ReportStats(
            root=self.store.root,
            processed_paths=processed,
            total_chars=len(text),
            skipped_paths={reason: list(paths) for reason, paths in skipped_paths.items()},
            errors=errors,
        )
        logger.info("report_built", **stats.as_dict())
        return Report(text=text, stats=stats)

    def build(self, *, progress_callback: Optional[ProgressCallback] = None) -> Report:
        """Build the report text in depth-first lexical order.

        Args:
            progress_callback: Optional callable compatible with
                ``rich.progress.Progress.update``. It receives ``advance`` and a
                ``description`` of the form ``"Processing: <path>"``.
        """

        skipped_paths, errors, parts, processed = self._start()
        for relative_path, content in self._records(skipped_paths, errors):
            parts.append(format_record(relative_path, content))
            processed.append(relative_path)
            if progress_callback is not None:
                progress_callback(advance=1, description=f"Processing: {relative_path}")
        return self._finish(parts, processed, skipped_paths, errors)

    async def abuild(self, *, progress_callback: Optional[ProgressCallback] = None) -> Report:
        """Variant of :meth:`build` that runs the directory walk and each file read in a worker thread."""

        skipped_paths, errors, parts, processed = self._start()
        for relative_path in await asyncio.to_thread(self.snapshot):
            content = await asyncio.to_thread(self._read, relative_path, skipped_paths, errors)
            if content is None:
                continue
            parts.append(format_record(relative_path, content))
            processed.append(relative_path)
            if progress_callback is not None:
                progress_callback(advance=1, description=f"Processing: {relative_path}")
        return self._finish(parts, processed, skipped_paths, errors)

    def build_report(self, *, progress_callback: Optional[ProgressCallback] = None) -> str:
        return self.build(progress_callback=progress_callback).text


def build_report(store: SelectionStore, *, progress_callback: Optional[ProgressCallback] = None) -> str:
    """Return the concatenated records of every effectively selected file under the store's root."""

    return ReportBuilder(store).build_report(progress_callback=progress_callback)


__all__ = [
    "ProgressCallback",
    "Report",
    "ReportBuilder",
    "ReportStats",
    "build_report",
    "format_record",
    "read_text_file",
]
