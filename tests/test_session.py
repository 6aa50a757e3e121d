"""Tests for the host command layer."""

from __future__ import annotations

import pyperclip
from structlog.testing import capture_logs

from llm_context.session import CommandResult, ContextSession
from llm_context.storage import MemoryWorkspaceState


class TestToggleSelection:
    def test_toggle_reports_new_state(self, session):
        result = session.toggle_selection("src")

        assert result == CommandResult(True, "Deselected 'src' (0 files selected)")
        assert session.store.effective_selection("src/a.ts") is False

        result = session.toggle_selection("src")
        assert result.success is True
        assert result.message == "Selected 'src' (2 files selected)"

    def test_toggle_single_file(self, session):
        session.store.clear_all()
        result = session.toggle_selection("README.md")
        assert result.message == "Selected 'README.md' (1 file selected)"

    def test_excluded_path_is_refused(self, session):
        result = session.toggle_selection("node_modules")
        assert result.success is False
        assert "excluded" in result.message

    def test_missing_path_is_refused(self, session):
        result = session.toggle_selection("src/missing.ts")
        assert result.success is False
        assert "does not exist" in result.message

    def test_path_outside_root_is_refused(self, session, tmp_path):
        result = session.toggle_selection(tmp_path / "elsewhere.txt")
        assert result.success is False
        assert "outside the workspace root" in result.message


class TestExport:
    def test_copy_to_clipboard(self, session, clipboard):
        result = session.copy_selected_to_clipboard()

        assert result.success is True
        assert result.message == "Copied 4 files to the clipboard"
        assert result.stats is not None and result.stats.processed_files == 4
        assert len(clipboard.copies) == 1
        assert clipboard.copies[0].startswith("\n--- File: README.md ---\n")

    def test_copy_with_nothing_selected_fails(self, session, clipboard):
        session.clear_all()

        result = session.copy_selected_to_clipboard()

        assert result.success is False
        assert result.message == "No files selected"
        assert clipboard.copies == []

    def test_clipboard_failure_is_reported(self, workspace):
        def broken(text: str) -> None:
            raise pyperclip.PyperclipException("no clipboard mechanism")

        session = ContextSession(workspace, workspace_state=MemoryWorkspaceState(), clipboard=broken)

        with capture_logs() as logs:
            result = session.copy_selected_to_clipboard()

        assert result.success is False
        assert "no clipboard mechanism" in result.message
        assert any(entry["event"] == "export_failed" for entry in logs)

    def test_default_clipboard_is_pyperclip(self, workspace, monkeypatch):
        copies: list[str] = []
        monkeypatch.setattr(pyperclip, "copy", copies.append)

        session = ContextSession(workspace, workspace_state=MemoryWorkspaceState())
        session.copy_selected_to_clipboard()

        assert len(copies) == 1

    def test_download_writes_file(self, session, tmp_path, clipboard):
        destination = tmp_path / "out" / "context.txt"
        progress: list[str] = []

        result = session.download_selected_to_file(
            destination,
            progress_callback=lambda *, advance, description=None: progress.append(description),
        )

        assert result.success is True
        assert result.message == f"Saved 4 files to {destination.resolve()}"
        session.copy_selected_to_clipboard()
        assert destination.read_text(encoding="utf-8") == clipboard.copies[0]
        assert progress[0] == "Processing: README.md"
        assert [path.name for path in destination.parent.iterdir()] == ["context.txt"]

    def test_download_failure_is_reported(self, session, tmp_path):
        destination = tmp_path / "taken"
        destination.mkdir()

        with capture_logs() as logs:
            result = session.download_selected_to_file(destination)

        assert result.success is False
        assert "Unable to write" in result.message
        assert any(entry["event"] == "export_failed" for entry in logs)
        assert list(tmp_path.joinpath("taken").iterdir()) == []

    def test_unreadable_selection_counts_as_empty(self, tmp_path):
        root = tmp_path / "binaryish"
        root.mkdir()
        (root / "data.txt").write_bytes(b"\xff\xfe\xfa")
        session = ContextSession(root, workspace_state=MemoryWorkspaceState(), clipboard=lambda text: None)

        result = session.copy_selected_to_clipboard()

        assert result.success is False
        assert "could not be read" in result.message


class TestMaintenance:
    def test_reset_and_clear(self, session):
        assert session.clear_all() == CommandResult(True, "Selection cleared")
        assert session.store.count_selected() == 0

        result = session.reset_to_default()

        assert result.success is True
        assert "4 files selected" in result.message
        assert session.store.count_selected() == 4

    def test_invalidate(self, session, workspace):
        (workspace / "src" / "new.ts").write_text("new", encoding="utf-8")

        result = session.invalidate("src/new.ts")

        assert result.success is True
        assert session.store.effective_selection("src/new.ts") is True

    def test_invalidate_outside_root(self, session, tmp_path):
        assert session.invalidate(tmp_path / "x").success is False
