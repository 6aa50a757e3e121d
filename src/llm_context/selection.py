"""Selection state: which workspace paths go into the context payload.

The store keeps an *explicit set* of root-relative paths. A path is effectively
selected when it is not excluded by the policy and either the path itself or one
of its ancestors is in the explicit set. Directory checkboxes are derived
bottom-up: after every mutation, each ancestor of the touched path is recorded
iff all of its selectable descendant files are selected.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .errors import PersistenceError, TraversalError
from .logging import logger
from .policy import ExclusionPolicy
from .storage import MemoryWorkspaceState, WorkspaceState
from .walker import Entry, TreeWalker, parent_rel

CHECKED_ITEMS_KEY = "checkedItems"


class AggregateState(str, Enum):
    """Tri-state checkbox value of a directory."""

    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


class Materialization(str, Enum):
    """How a directory check is written into the explicit set."""

    EAGER = "eager"
    LAZY = "lazy"


def ancestors_of(rel: str) -> Iterator[str]:
    """Yield the directories above ``rel``, nearest first, excluding the root."""

    current = parent_rel(rel)
    while current:
        yield current
        current = parent_rel(current)


def _combine(states: Iterable[AggregateState]) -> Optional[AggregateState]:
    # None means "no selectable files below", which is neutral for the parent.
    collected = list(states)
    if not collected:
        return None
    if all(state is AggregateState.FULL for state in collected):
        return AggregateState.FULL
    if all(state is AggregateState.NONE for state in collected):
        return AggregateState.NONE
    return AggregateState.PARTIAL


class SelectionStore:
    """Explicit selection set with inheritance, aggregation and persistence."""

    def __init__(
        self,
        walker: TreeWalker,
        *,
        workspace_state: Optional[WorkspaceState] = None,
        materialization: Materialization | str = Materialization.EAGER,
        auto_initialize: bool = True,
    ) -> None:
        self.walker = walker
        self.workspace_state: WorkspaceState = (
            workspace_state if workspace_state is not None else MemoryWorkspaceState()
        )
        self.materialization = Materialization(materialization)
        self._explicit: set[str] = set()

        loaded = self._load()
        if loaded is not None:
            self._explicit = loaded
        elif auto_initialize:
            self.initialize()

    @property
    def root(self) -> Path:
        return self.walker.root

    @property
    def policy(self) -> ExclusionPolicy:
        return self.walker.policy

    @property
    def explicit(self) -> frozenset[str]:
        return frozenset(self._explicit)

    @property
    def checked_items(self) -> List[str]:
        return sorted(self._explicit)

    # -- queries -----------------------------------------------------------

    def is_selectable(self, rel: str, *, is_dir: Optional[bool] = None) -> bool:
        if not rel:
            return True
        if self.policy.is_structurally_excluded(rel):
            return False
        if not self.policy.is_non_text_file(rel):
            return True
        return self.walker.is_dir(rel) if is_dir is None else is_dir

    def _entry_selectable(self, entry: Entry) -> bool:
        if self.policy.matches_name(entry.name):
            return False
        return entry.is_dir or not self.policy.is_non_text_file(entry.name)

    def _is_inherited(self, rel: str) -> bool:
        return any(ancestor in self._explicit for ancestor in ancestors_of(rel))

    def effective_selection(self, path: str | Path) -> bool:
        """Return True if ``path`` or one of its ancestors is checked and the path is not excluded."""

        rel = self.walker.relative(path)
        if not rel or not self.is_selectable(rel):
            return False
        return rel in self._explicit or self._is_inherited(rel)

    def aggregate_state(self, path: str | Path = "") -> AggregateState:
        rel = self.walker.relative(path)
        if rel and self.effective_selection(rel):
            return AggregateState.FULL
        if rel and (not self.walker.is_dir(rel) or not self.is_selectable(rel, is_dir=True)):
            return AggregateState.NONE
        return self._children_state(rel, {}) or AggregateState.NONE

    def count_selected(self, path: str | Path = "") -> int:
        rel = self.walker.relative(path)
        return self.walker.count_effectively_selected(rel, self.effective_selection)

    def selected_files(self, path: str | Path = "", *, cached: bool = True) -> Iterator[str]:
        """Yield effectively selected files in depth-first lexical order."""

        rel = self.walker.relative(path)
        for entry in self.walker.iter_text_files(rel, cached=cached):
            if entry.rel in self._explicit or self._is_inherited(entry.rel):
                yield entry.rel

    def children(self, path: str | Path = "") -> List[Entry]:
        """Selectable entries directly under ``path``; empty when it cannot be listed."""

        rel = self.walker.relative(path)
        return [entry for entry in self._safe_children(rel) if self._entry_selectable(entry)]

    def _subtree_state(self, rel: str, memo: Dict[str, Optional[AggregateState]]) -> Optional[AggregateState]:
        if rel in memo:
            return memo[rel]
        state = self._children_state(rel, memo)
        if state is not None and rel in self._explicit:
            state = AggregateState.FULL
        memo[rel] = state
        return state

    def _children_state(self, rel: str, memo: Dict[str, Optional[AggregateState]]) -> Optional[AggregateState]:
        """Combine the states of the selectable children of ``rel``, ignoring ``rel`` itself."""

        try:
            children = self.walker.list_children(rel)
        except TraversalError:
            return None

        states: List[AggregateState] = []
        for child in children:
            if not self._entry_selectable(child):
                continue
            if child.is_dir:
                state = self._subtree_state(child.rel, memo)
                if state is not None:
                    states.append(state)
            else:
                states.append(AggregateState.FULL if child.rel in self._explicit else AggregateState.NONE)
        return _combine(states)

    # -- mutations ---------------------------------------------------------

    def initialize(self) -> None:
        """Select every text file that the policy allows, then derive directory states."""

        self._explicit.clear()
        unreadable: set[str] = set()
        directories: List[str] = []

        def on_error(exc: TraversalError) -> None:
            if exc.path is not None:
                unreadable.add(exc.path)

        for entry in self.walker.walk(prune=self.walker.is_excluded_entry, on_error=on_error, cached=False):
            if entry.is_dir:
                directories.append(entry.rel)
            elif not self.policy.is_non_text_file(entry.rel):
                self._explicit.add(entry.rel)

        # Reversed pre-order visits every directory after all of its descendants.
        memo: Dict[str, Optional[AggregateState]] = {}
        for rel in reversed(directories):
            if rel in unreadable:
                memo[rel] = None
                continue
            state = self._children_state(rel, memo)
            if state is None or state is AggregateState.FULL:
                self._explicit.add(rel)
            memo[rel] = state

        self._save()
        logger.info(
            "selection_initialized",
            root=str(self.root),
            selected=len(self._explicit),
            unreadable=sorted(unreadable),
        )

    def toggle(self, path: str | Path) -> bool:
        """Flip the effective selection of ``path`` and return the new value."""

        rel = self.walker.relative(path)
        if rel:
            checked = not self.effective_selection(rel)
        else:
            checked = self.aggregate_state(rel) is not AggregateState.FULL
        self.set_checked(rel, checked)
        return checked

    def set_checked(self, path: str | Path, checked: bool) -> None:
        """Record ``path`` as checked or unchecked and re-derive its ancestors.

        Checking an excluded path is a no-op. Unchecking a path that is only
        selected through a checked ancestor splits that ancestor first.

        Raises:
            FileNotFoundError: If a path that does not exist is checked.
        """

        rel = self.walker.relative(path)
        is_dir = not rel or self.walker.is_dir(rel)

        if checked:
            if rel and not self.walker.exists(rel):
                raise FileNotFoundError(f"'{rel}' does not exist under {self.root}")
            if not self.is_selectable(rel, is_dir=is_dir):
                logger.info("selection_excluded", path=rel)
                return
            if rel and self._is_inherited(rel):
                return
        else:
            self._split_inherited(rel)

        if is_dir:
            self._apply_to_descendants(rel, checked)
        if rel:
            if checked:
                self._explicit.add(rel)
            else:
                self._explicit.discard(rel)

        self._reconcile_ancestors(rel)
        self._save()

    def _apply_to_descendants(self, rel: str, checked: bool) -> None:
        prefix = f"{rel}/" if rel else ""
        if not checked or self.materialization is Materialization.LAZY:
            self._explicit = {item for item in self._explicit if not item.startswith(prefix)}
        if not checked:
            return

        if self.materialization is Materialization.EAGER:
            for entry in self.walker.walk(rel, prune=self.walker.is_excluded_entry):
                if self._entry_selectable(entry):
                    self._explicit.add(entry.rel)
        elif not rel:
            # The root is never recorded, so a lazy root check records its children.
            for entry in self._safe_children(rel):
                if self._entry_selectable(entry):
                    self._explicit.add(entry.rel)

    def _split_inherited(self, rel: str) -> None:
        """Replace checked ancestors of ``rel`` by explicit records of their other children."""

        route = list(reversed([rel, *ancestors_of(rel)]))
        explicit_ancestors = [item for item in route[:-1] if item in self._explicit]
        if not rel or not explicit_ancestors:
            return

        start = route.index(explicit_ancestors[0])
        for ancestor, towards in zip(route[start:], route[start + 1 :]):
            self._explicit.discard(ancestor)
            for child in self._safe_children(ancestor):
                if child.rel != towards and self._entry_selectable(child):
                    self._explicit.add(child.rel)

    def _reconcile_ancestors(self, rel: str) -> None:
        if not rel or self._is_inherited(rel):
            return
        memo: Dict[str, Optional[AggregateState]] = {}
        for ancestor in ancestors_of(rel):
            if self.policy.is_structurally_excluded(ancestor):
                self._explicit.discard(ancestor)
                memo[ancestor] = None
                continue
            state = self._children_state(ancestor, memo)
            if state is AggregateState.FULL:
                self._explicit.add(ancestor)
            elif state is not None:
                self._explicit.discard(ancestor)
            memo[ancestor] = state

    def _reconcile_all(self) -> None:
        """Re-derive every directory bottom-up, leaving file records untouched."""

        directories = [entry.rel for entry in self.walker.walk(prune=self.walker.is_excluded_entry) if entry.is_dir]
        memo: Dict[str, Optional[AggregateState]] = {}
        for rel in reversed(directories):
            # Checked directories and their subtrees are already consistent.
            if rel in self._explicit or self._is_inherited(rel):
                continue
            state = self._children_state(rel, memo)
            if state is AggregateState.FULL:
                self._explicit.add(rel)
            memo[rel] = state

    def _safe_children(self, rel: str) -> List[Entry]:
        try:
            return self.walker.list_children(rel)
        except TraversalError:
            return []

    def reset_to_default(self) -> None:
        self._explicit.clear()
        self.initialize()

    def clear_all(self) -> None:
        self._explicit.clear()
        self._save()

    def invalidate(self, path: str | Path | None = None) -> None:
        """Re-derive state after the filesystem changed at ``path`` (or anywhere)."""

        rel = None if path is None else self.walker.relative(path)
        self.walker.invalidate(rel)

        if not rel:
            stale = {item for item in self._explicit if not self.walker.exists(item)}
            self._explicit -= stale
            if stale:
                logger.info("selection_pruned", paths=sorted(stale))
            self._reconcile_all()
            self._save()
            return

        if not self.walker.exists(rel):
            prefix = f"{rel}/"
            self._explicit = {item for item in self._explicit if item != rel and not item.startswith(prefix)}
        elif self._is_inherited(rel):
            if self.materialization is Materialization.EAGER and self.is_selectable(rel):
                self._explicit.add(rel)
                if self.walker.is_dir(rel):
                    self._apply_to_descendants(rel, True)
        self._reconcile_ancestors(rel)
        self._save()

    # -- persistence -------------------------------------------------------

    def _load(self) -> Optional[set[str]]:
        try:
            stored = self.workspace_state.get(CHECKED_ITEMS_KEY)
        except PersistenceError as exc:
            logger.warning("selection_load_failed", error=str(exc))
            return None
        if stored is None:
            return None
        if not isinstance(stored, (list, tuple)):
            logger.warning("selection_load_failed", error=f"unexpected {type(stored).__name__} under {CHECKED_ITEMS_KEY}")
            return None

        items: set[str] = set()
        for item in stored:
            if not isinstance(item, str):
                continue
            try:
                rel = self.walker.relative(item)
            except ValueError:
                logger.info("selection_entry_dropped", path=item)
                continue
            if rel:
                items.add(rel)
        return items

    def _save(self) -> None:
        try:
            self.workspace_state.update(CHECKED_ITEMS_KEY, self.checked_items)
        except PersistenceError as exc:
            logger.warning("selection_save_failed", error=str(exc))


__all__ = ["AggregateState", "CHECKED_ITEMS_KEY", "Materialization", "SelectionStore", "ancestors_of"]
