"""Lazy, iterative directory traversal rooted at a workspace."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterator, List, Optional

from .errors import TraversalError
from .logging import logger
from .policy import ExclusionPolicy


@dataclass(frozen=True)
class Entry:
    """One directory entry, addressed by its root-relative POSIX path."""

    name: str
    rel: str
    is_dir: bool


def join_rel(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


def parent_rel(rel: str) -> str:
    return rel.rpartition("/")[0]


class TreeWalker:
    """List and walk a directory tree, caching one listing per directory."""

    def __init__(self, root: str | Path, policy: Optional[ExclusionPolicy] = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self.policy = policy or ExclusionPolicy()
        self._listings: Dict[str, List[Entry]] = {}

    def relative(self, path: str | Path) -> str:
        """Return ``path`` as a root-relative POSIX string (``""`` for the root).

        Raises:
            ValueError: If the path escapes the workspace root.
        """

        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.root)
            except ValueError:
                try:
                    candidate = candidate.resolve().relative_to(self.root)
                except ValueError as exc:
                    raise ValueError(f"'{path}' is outside the workspace root {self.root}") from exc
        text = str(candidate).replace("\\", "/")
        parts = [part for part in PurePosixPath(text).parts if part not in ("", ".", "/")]
        if ".." in parts:
            raise ValueError(f"'{path}' is outside the workspace root {self.root}")
        return "/".join(parts)

    def absolute(self, rel: str) -> Path:
        return self.root.joinpath(*rel.split("/")) if rel else self.root

    def is_dir(self, rel: str) -> bool:
        path = self.absolute(rel)
        return path.is_dir() and not path.is_symlink()

    def exists(self, rel: str) -> bool:
        path = self.absolute(rel)
        return path.exists() or path.is_symlink()

    def is_excluded_entry(self, entry: Entry) -> bool:
        return self.policy.matches_name(entry.name)

    def list_children(self, rel: str = "", *, cached: bool = True) -> List[Entry]:
        """Return the sorted entries directly under ``rel``.

        Symlinked directories are not followed, and entries that are neither a
        regular file nor a directory (broken links, sockets) are left out.

        Raises:
            TraversalError: If the directory cannot be read.
        """

        if cached and rel in self._listings:
            return self._listings[rel]

        directory = self.absolute(rel)
        entries: List[Entry] = []
        try:
            with os.scandir(directory) as iterator:
                for item in iterator:
                    child = join_rel(rel, item.name)
                    try:
                        if item.is_dir(follow_symlinks=False):
                            entries.append(Entry(item.name, child, True))
                        elif item.is_file():
                            entries.append(Entry(item.name, child, False))
                        else:
                            logger.info("entry_skipped", path=child, reason="not a regular file or directory")
                    except OSError as exc:
                        logger.warning("entry_skipped", path=child, error=str(exc))
        except OSError as exc:
            self._listings.pop(rel, None)
            logger.warning("listing_failed", path=rel or ".", error=str(exc))
            raise TraversalError(f"Unable to list directory '{directory}': {exc}", path=rel) from exc

        entries.sort(key=lambda entry: entry.name)
        self._listings[rel] = entries
        return entries

    def walk(
        self,
        rel: str = "",
        *,
        prune: Optional[Callable[[Entry], bool]] = None,
        on_error: Optional[Callable[[TraversalError], None]] = None,
        cached: bool = True,
    ) -> Iterator[Entry]:
        """Yield every entry below ``rel`` depth-first, in lexical order.

        Uses an explicit stack of listing iterators instead of recursion. Entries
        for which ``prune`` returns True are neither yielded nor entered. A
        directory that cannot be listed is reported to ``on_error`` and skipped.
        """

        stack: List[Iterator[Entry]] = []

        def enter(directory: str) -> None:
            try:
                children = self.list_children(directory, cached=cached)
            except TraversalError as exc:
                if on_error is not None:
                    on_error(exc)
                return
            stack.append(iter(children))

        enter(rel)
        while stack:
            entry = next(stack[-1], None)
            if entry is None:
                stack.pop()
                continue
            if prune is not None and prune(entry):
                continue
            yield entry
            if entry.is_dir:
                enter(entry.rel)

    def iter_text_files(self, rel: str = "", *, cached: bool = True) -> Iterator[Entry]:
        """Yield files under ``rel`` that the policy allows to be selected."""

        for entry in self.walk(rel, prune=self.is_excluded_entry, cached=cached):
            if not entry.is_dir and not self.policy.is_non_text_file(entry.rel):
                yield entry

    def count_effectively_selected(self, rel: str, is_selected: Callable[[str], bool]) -> int:
        if rel and not self.is_dir(rel):
            return int(is_selected(rel))
        return sum(1 for entry in self.iter_text_files(rel) if is_selected(entry.rel))

    def invalidate(self, rel: Optional[str] = None) -> None:
        """Forget cached listings for ``rel``, its parent and its descendants."""

        if rel is None or rel == "":
            self._listings.clear()
            return
        prefix = f"{rel}/"
        for key in [key for key in self._listings if key == rel or key.startswith(prefix)]:
            del self._listings[key]
        self._listings.pop(parent_rel(rel), None)


__all__ = ["Entry", "TreeWalker", "join_rel", "parent_rel"]
