"""Unit tests for directory traversal."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from llm_context import walker as walker_module
from llm_context.errors import TraversalError
from llm_context.walker import Entry, TreeWalker, join_rel, parent_rel


def _deny(monkeypatch, denied: Path) -> None:
    real_scandir = os.scandir

    def fake_scandir(path):
        if Path(path) == denied:
            raise PermissionError(13, "Permission denied", str(path))
        return real_scandir(path)

    monkeypatch.setattr(walker_module.os, "scandir", fake_scandir)


class TestPaths:
    """Conversion between absolute and root-relative paths."""

    def test_relative_accepts_absolute_and_relative(self, workspace):
        walker = TreeWalker(workspace)
        assert walker.relative(workspace / "src" / "a.ts") == "src/a.ts"
        assert walker.relative("src/a.ts") == "src/a.ts"
        assert walker.relative("./src//lib/") == "src/lib"
        assert walker.relative(workspace) == ""
        assert walker.relative("") == ""

    def test_relative_rejects_paths_outside_root(self, workspace, tmp_path):
        walker = TreeWalker(workspace)
        with pytest.raises(ValueError):
            walker.relative(tmp_path / "elsewhere.txt")
        with pytest.raises(ValueError):
            walker.relative("../escape.txt")

    def test_absolute_round_trip(self, workspace):
        walker = TreeWalker(workspace)
        assert walker.absolute("src/lib/util.ts") == workspace.resolve() / "src" / "lib" / "util.ts"
        assert walker.absolute("") == workspace.resolve()

    def test_helpers(self):
        assert join_rel("", "src") == "src"
        assert join_rel("src", "a.ts") == "src/a.ts"
        assert parent_rel("src/lib/util.ts") == "src/lib"
        assert parent_rel("src") == ""


class TestListing:
    """Per-directory listings."""

    def test_children_sorted_and_typed(self, workspace):
        walker = TreeWalker(workspace)
        names = [(entry.name, entry.is_dir) for entry in walker.list_children("src")]
        assert names == [("a.ts", False), ("b.png", False), ("lib", True)]

    def test_listing_is_cached_until_refreshed(self, workspace):
        walker = TreeWalker(workspace)
        walker.list_children("docs")
        (workspace / "docs" / "new.md").write_text("new", encoding="utf-8")

        assert [entry.name for entry in walker.list_children("docs")] == ["guide.md"]
        assert [entry.name for entry in walker.list_children("docs", cached=False)] == ["guide.md", "new.md"]

    def test_invalidate_drops_path_parent_and_descendants(self, workspace):
        walker = TreeWalker(workspace)
        for rel in ("", "src", "src/lib", "docs"):
            walker.list_children(rel)
        (workspace / "src" / "lib" / "more.ts").write_text("x", encoding="utf-8")
        (workspace / "docs" / "late.md").write_text("x", encoding="utf-8")

        walker.invalidate("src")

        assert "more.ts" in [entry.name for entry in walker.list_children("src/lib")]
        assert "late.md" not in [entry.name for entry in walker.list_children("docs")]

        walker.invalidate()
        assert "late.md" in [entry.name for entry in walker.list_children("docs")]

    def test_unreadable_directory_raises_traversal_error(self, workspace, monkeypatch):
        walker = TreeWalker(workspace)
        _deny(monkeypatch, walker.absolute("src/lib"))

        with capture_logs() as logs:
            with pytest.raises(TraversalError) as excinfo:
                walker.list_children("src/lib")

        assert excinfo.value.path == "src/lib"
        assert any(entry["event"] == "listing_failed" and entry["path"] == "src/lib" for entry in logs)

    def test_symlinked_directory_is_not_followed(self, workspace):
        try:
            os.symlink(workspace / "src", workspace / "docs" / "loop", target_is_directory=True)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks are not supported here")
        walker = TreeWalker(workspace)

        entries = {entry.name: entry for entry in walker.list_children("docs")}

        assert "loop" not in entries
        assert walker.is_dir("docs/loop") is False
        assert all(not entry.rel.startswith("docs/loop/") for entry in walker.walk())

    def test_broken_symlink_is_skipped(self, workspace):
        try:
            os.symlink(workspace / "missing.txt", workspace / "docs" / "dangling.md")
        except (OSError, NotImplementedError):
            pytest.skip("symlinks are not supported here")
        walker = TreeWalker(workspace)

        assert [entry.name for entry in walker.list_children("docs")] == ["guide.md"]


class TestWalk:
    """Depth-first traversal."""

    def test_preorder_lexical(self, workspace):
        walker = TreeWalker(workspace)
        visited = [entry.rel for entry in walker.walk()]
        assert visited == [
            "README.md",
            "app.log",
            "docs",
            "docs/guide.md",
            "node_modules",
            "node_modules/x.js",
            "src",
            "src/a.ts",
            "src/b.png",
            "src/lib",
            "src/lib/util.ts",
        ]

    def test_prune_skips_subtrees(self, workspace):
        walker = TreeWalker(workspace)
        visited = [entry.rel for entry in walker.walk(prune=walker.is_excluded_entry)]
        assert "node_modules" not in visited
        assert "node_modules/x.js" not in visited
        assert "app.log" not in visited

    def test_walk_below_a_subdirectory(self, workspace):
        walker = TreeWalker(workspace)
        assert [entry.rel for entry in walker.walk("src/lib")] == ["src/lib/util.ts"]

    def test_listing_errors_are_reported_and_skipped(self, workspace, monkeypatch):
        walker = TreeWalker(workspace)
        _deny(monkeypatch, walker.absolute("src/lib"))
        failures: list[TraversalError] = []

        visited = [entry.rel for entry in walker.walk(on_error=failures.append)]

        assert "src/lib" in visited
        assert "src/lib/util.ts" not in visited
        assert [exc.path for exc in failures] == ["src/lib"]

    def test_deep_tree(self, tmp_path):
        current = tmp_path / "deep"
        current.mkdir()
        for _ in range(150):
            current = current / "d"
            current.mkdir()
        (current / "leaf.txt").write_text("leaf", encoding="utf-8")
        walker = TreeWalker(tmp_path / "deep")

        files = [entry.rel for entry in walker.iter_text_files()]

        assert files == ["/".join(["d"] * 150 + ["leaf.txt"])]

    def test_iter_text_files_applies_policy(self, workspace):
        walker = TreeWalker(workspace)
        assert [entry.rel for entry in walker.iter_text_files()] == [
            "README.md",
            "docs/guide.md",
            "src/a.ts",
            "src/lib/util.ts",
        ]

    def test_count_effectively_selected(self, workspace):
        walker = TreeWalker(workspace)
        selected = {"src/a.ts", "docs/guide.md"}
        assert walker.count_effectively_selected("", selected.__contains__) == 2
        assert walker.count_effectively_selected("src", selected.__contains__) == 1
        assert walker.count_effectively_selected("src/a.ts", selected.__contains__) == 1
        assert walker.count_effectively_selected("README.md", selected.__contains__) == 0

    def test_entry_is_hashable_value(self):
        assert Entry("a.ts", "src/a.ts", False) == Entry("a.ts", "src/a.ts", False)
        assert len({Entry("a", "a", True), Entry("a", "a", True)}) == 1
