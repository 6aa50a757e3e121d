"""Host-facing commands: toggle, copy, download, reset and clear."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple

import pyperclip

from .errors import ExportError
from .logging import logger
from .policy import ExclusionPolicy
from .report import ProgressCallback, ReportBuilder, ReportStats
from .selection import Materialization, SelectionStore
from .storage import WorkspaceState
from .walker import TreeWalker


@dataclass
class CommandResult:
    """Outcome of a host command, safe to show to the user."""

    success: bool
    message: str
    stats: Optional[ReportStats] = None


def write_atomic(destination: str | Path, text: str) -> Path:
    """Write ``text`` to ``destination`` through a temporary file and ``os.replace``.

    Raises:
        ExportError: If the file cannot be written.
    """

    output_path = Path(destination).expanduser().resolve()
    temp_path: Optional[Path] = None
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="",
            delete=False,
            dir=str(output_path.parent),
            prefix=f"{output_path.name}.",
            suffix=".tmp",
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, output_path)
    except OSError as exc:
        if temp_path is not None:
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
        raise ExportError(f"Unable to write '{output_path}': {exc}", path=str(output_path)) from exc
    return output_path


def _plural(count: int) -> str:
    return f"{count} file" if count == 1 else f"{count} files"


class ContextSession:
    """One workspace: its walker, selection store and export commands.

    Every command returns a ``CommandResult`` and never raises for user or
    filesystem errors.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        policy: Optional[ExclusionPolicy] = None,
        workspace_state: Optional[WorkspaceState] = None,
        materialization: Materialization | str = Materialization.EAGER,
        clipboard: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.walker = TreeWalker(root, policy)
        self.store = SelectionStore(
            self.walker,
            workspace_state=workspace_state,
            materialization=materialization,
        )
        self._clipboard = clipboard if clipboard is not None else pyperclip.copy

    @property
    def root(self) -> Path:
        return self.walker.root

    def toggle_selection(self, path: str | Path) -> CommandResult:
        try:
            rel = self.walker.relative(path)
            checked = self.store.toggle(rel)
        except (ValueError, FileNotFoundError) as exc:
            return CommandResult(False, str(exc))

        label = rel or "."
        if checked and not self.store.effective_selection(rel) and rel:
            return CommandResult(False, f"'{label}' is excluded and cannot be selected")
        count = self.store.count_selected(rel)
        state = "Selected" if checked else "Deselected"
        return CommandResult(True, f"{state} '{label}' ({_plural(count)} selected)")

    def _build(self, progress_callback: Optional[ProgressCallback]) -> Tuple[CommandResult, str]:
        report = ReportBuilder(self.store).build(progress_callback=progress_callback)
        if not report.stats.processed_files:
            message = "No files selected"
            if report.stats.errors:
                message += f"; {len(report.stats.errors)} selected file(s) could not be read"
            return CommandResult(False, message, report.stats), ""
        return CommandResult(True, "", report.stats), report.text

    def copy_selected_to_clipboard(self, progress_callback: Optional[ProgressCallback] = None) -> CommandResult:
        """Build the report and place it on the system clipboard."""

        result, text = self._build(progress_callback)
        if not result.success:
            return result
        try:
            self._clipboard(text)
        except pyperclip.PyperclipException as exc:
            logger.warning("export_failed", target="clipboard", error=str(exc))
            return CommandResult(False, f"Failed to copy to clipboard: {exc}", result.stats)
        result.message = f"Copied {_plural(result.stats.processed_files)} to the clipboard"
        return result

    def download_selected_to_file(
        self,
        destination: str | Path,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> CommandResult:
        """Build the report and write it to ``destination`` atomically."""

        result, text = self._build(progress_callback)
        if not result.success:
            return result
        try:
            output_path = write_atomic(destination, text)
        except ExportError as exc:
            logger.warning("export_failed", target=exc.path, error=str(exc))
            return CommandResult(False, str(exc), result.stats)
        result.message = f"Saved {_plural(result.stats.processed_files)} to {output_path}"
        return result

    def reset_to_default(self) -> CommandResult:
        self.store.reset_to_default()
        return CommandResult(True, f"Selection reset to defaults ({_plural(self.store.count_selected())} selected)")

    def clear_all(self) -> CommandResult:
        self.store.clear_all()
        return CommandResult(True, "Selection cleared")

    def invalidate(self, path: str | Path | None = None) -> CommandResult:
        try:
            self.store.invalidate(path)
        except ValueError as exc:
            return CommandResult(False, str(exc))
        return CommandResult(True, f"Refreshed '{path or '.'}'")


__all__ = ["CommandResult", "ContextSession", "write_atomic"]
