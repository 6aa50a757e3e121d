import sys
from pathlib import Path
from typing import Callable, Iterator, List
from unittest.mock import patch

import pytest

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from llm_context.selection import Materialization, SelectionStore
from llm_context.session import ContextSession
from llm_context.storage import MemoryWorkspaceState
from llm_context.walker import TreeWalker


def write_tree(root: Path, files: dict) -> Path:
    """Create ``files`` (relative path -> str or bytes) under ``root``."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Small project with text files, a binary file and an ignored directory."""
    root = tmp_path / "project"
    root.mkdir()
    return write_tree(
        root,
        {
            "README.md": "# Project\n",
            "src/a.ts": "export const a = 1;\n",
            "src/b.png": b"\x89PNG\r\n\x1a\n",
            "src/lib/util.ts": "export function util() {}\n",
            "docs/guide.md": "Guide\n",
            "node_modules/x.js": "module.exports = {};\n",
            "app.log": "started\n",
        },
    )


@pytest.fixture
def scenario_workspace(tmp_path: Path) -> Path:
    """Root with src/a.ts, src/b.png and node_modules/x.js only."""
    root = tmp_path / "scenario"
    root.mkdir()
    return write_tree(
        root,
        {
            "src/a.ts": "A",
            "src/b.png": b"\x89PNG",
            "node_modules/x.js": "X",
        },
    )


@pytest.fixture(params=[Materialization.EAGER, Materialization.LAZY], ids=["eager", "lazy"])
def materialization(request) -> Materialization:
    return request.param


@pytest.fixture
def make_store() -> Callable[..., SelectionStore]:
    """Factory building a store over ``root`` backed by an in-memory workspace state."""

    def _make(root: Path, **kwargs) -> SelectionStore:
        walker = TreeWalker(root, kwargs.pop("policy", None))
        kwargs.setdefault("workspace_state", MemoryWorkspaceState())
        return SelectionStore(walker, **kwargs)

    return _make


class FakeClipboard:
    def __init__(self) -> None:
        self.copies: List[str] = []

    def __call__(self, text: str) -> None:
        self.copies.append(text)


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def session(workspace: Path, clipboard: FakeClipboard) -> ContextSession:
    return ContextSession(workspace, workspace_state=MemoryWorkspaceState(), clipboard=clipboard)


@pytest.fixture
def mock_config_path(tmp_path: Path) -> Iterator[Path]:
    """Point the settings file at a temporary location."""
    config_path = tmp_path / "config" / "settings.toml"
    with patch("llm_context.config._config_path") as mock_path:
        mock_path.return_value = config_path
        yield config_path


def assert_bottom_up(store: SelectionStore) -> None:
    """Every recorded directory has all selectable files below it selected, and vice versa."""
    for entry in store.walker.walk(prune=store.walker.is_excluded_entry):
        if not entry.is_dir:
            continue
        files = [item.rel for item in store.walker.iter_text_files(entry.rel)]
        if not files:
            continue
        all_selected = all(store.effective_selection(rel) for rel in files)
        if entry.rel in store.explicit:
            assert all_selected, f"{entry.rel} is recorded but not all files below are selected"
        elif not store._is_inherited(entry.rel):
            assert not all_selected, f"{entry.rel} has every file selected but is not recorded"
