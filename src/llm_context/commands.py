"""Command handlers for the llm-context REPL."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .config import save_config
from .report import ReportStats
from .selection import AggregateState, SelectionStore
from .session import CommandResult, ContextSession
from .state import AppState
from .walker import Entry


@dataclass
class ShellContext:
    """Settings plus the live session they were built into."""

    state: AppState
    session: ContextSession
    clipboard: Optional[Callable[[str], None]] = None

    @classmethod
    def create(cls, state: AppState, *, clipboard: Optional[Callable[[str], None]] = None) -> "ShellContext":
        return cls(state=state, session=state.create_session(clipboard=clipboard), clipboard=clipboard)

    def reload(self) -> None:
        self.session = self.state.create_session(clipboard=self.clipboard)


CommandHandler = Callable[[Console, ShellContext, Tuple[str, ...]], bool]


SETTING_ALIASES: Dict[str, set[str]] = {
    "root": {"root", "workspace", "dir"},
    "output": {"output", "out", "file", "path", "output_path"},
    "materialization": {"materialization", "mode", "strategy"},
    "ignored_names": {"ignored_names", "ignore", "ignored"},
    "non_text_extensions": {"non_text_extensions", "binary", "extensions"},
}

MARKERS: Dict[AggregateState, str] = {
    AggregateState.FULL: "[x]",
    AggregateState.PARTIAL: "[-]",
    AggregateState.NONE: "[ ]",
}

_MARKER_STYLES: Dict[AggregateState, str] = {
    AggregateState.FULL: "green",
    AggregateState.PARTIAL: "yellow",
    AggregateState.NONE: "dim",
}


def _files_selected(count: int) -> str:
    return f"{count} file selected" if count == 1 else f"{count} files selected"


def _label(store: SelectionStore, name: str, rel: str, is_dir: bool) -> Text:
    state = store.aggregate_state(rel)
    text = Text(f"{MARKERS[state]} ", style=_MARKER_STYLES[state])
    if is_dir:
        text.append(f"{name}/", style="bold cyan")
        text.append(f" ({_files_selected(store.count_selected(rel))})", style="dim")
    else:
        text.append(name)
    return text


def render_tree(store: SelectionStore, path: str | Path = "", *, depth: Optional[int] = None) -> Tree:
    """Render the selectable entries under ``path`` with tri-state markers.

    ``depth`` limits how many directory levels below ``path`` are expanded.
    Excluded names and non-text files are hidden.
    """

    rel = store.walker.relative(path)
    name = rel.rpartition("/")[2] if rel else store.root.name or str(store.root)
    is_dir = not rel or store.walker.is_dir(rel)
    tree = Tree(_label(store, name, rel, is_dir), guide_style="dim")
    if not is_dir:
        return tree

    stack: List[Tuple[Tree, Entry, int]] = [
        (tree, entry, 1) for entry in reversed(store.children(rel))
    ]
    while stack:
        parent, entry, level = stack.pop()
        node = parent.add(_label(store, entry.name, entry.rel, entry.is_dir))
        if entry.is_dir and (depth is None or level < depth):
            stack.extend((node, child, level + 1) for child in reversed(store.children(entry.rel)))
    return tree


def _render_settings_table(state: AppState) -> Table:
    table = Table(title="Current Settings", show_header=True, header_style="bold magenta")
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("root", str(state.root))
    table.add_row("output_path", str(state.output_path))
    table.add_row("materialization", state.materialization)
    table.add_row("state_dir", str(state.state_dir) if state.state_dir is not None else "default")
    table.add_row(
        "ignored_names",
        "default" if state.ignored_names is None else ", ".join(sorted(state.ignored_names)) or "none",
    )
    table.add_row(
        "non_text_extensions",
        "default" if state.non_text_extensions is None else ", ".join(sorted(state.non_text_extensions)) or "none",
    )
    return table


def render_report_table(stats: ReportStats) -> Table:
    table = Table(title="Export Summary", show_header=True, header_style="bold blue")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Root", str(stats.root))
    table.add_row("Processed files", str(stats.processed_files))
    table.add_row("Total characters", str(stats.total_chars))
    for reason, count in sorted(stats.skipped.items()):
        table.add_row(f"Skipped - {reason}", str(count))
    return table


def _print_result(console: Console, result: CommandResult) -> None:
    colour = "green" if result.success else "red"
    console.print(Text(result.message, style=colour))
    if result.stats is not None and result.stats.errors:
        console.print("[yellow]Warnings during export:[/yellow]")
        for message in result.stats.errors:
            console.print(f"  • {message}", markup=False)


def cmd_help(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    table = Table(title="Available Commands", show_header=True, header_style="bold green")
    table.add_column("Command", style="cyan", no_wrap=True)
    table.add_column("Description", style="white")
    for command, description in COMMAND_HELP:
        table.add_row(Text(command), description)
    console.print(table)
    return True


def cmd_exit(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    try:
        save_config(context.state)
    except OSError as exc:
        console.print(f"[yellow]Warning: Failed to save settings: {exc}[/yellow]")
    console.print("[bold yellow]Goodbye![/bold yellow]")
    return False


def cmd_clear(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    console.clear()
    return True


def cmd_tree(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    parser = argparse.ArgumentParser(prog="/tree", add_help=False)
    parser.add_argument("path", nargs="?", default="")
    parser.add_argument("--depth", "-d", type=int)

    try:
        ns = parser.parse_args(list(args))
    except SystemExit:
        console.print("[red]Invalid arguments for /tree.[/red]")
        return True

    try:
        tree = render_tree(context.session.store, ns.path, depth=ns.depth)
    except ValueError as exc:
        console.print(Text(str(exc), style="red"))
        return True
    console.print(tree)
    return True


def cmd_status(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    store = context.session.store
    path = args[0] if args else ""
    try:
        rel = store.walker.relative(path)
    except ValueError as exc:
        console.print(Text(str(exc), style="red"))
        return True

    table = Table(title="Selection Status", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_row("Root", str(store.root))
    table.add_row("Path", rel or ".")
    table.add_row("Materialization", store.materialization.value)
    table.add_row("State", Text(MARKERS[store.aggregate_state(rel)]))
    if rel:
        table.add_row("Effectively selected", "yes" if store.effective_selection(rel) else "no")
    table.add_row("Selected files", str(store.count_selected(rel)))
    table.add_row("Explicit entries", str(len(store.explicit)))
    console.print(table)
    return True


def cmd_toggle(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    if not args:
        console.print("[red]/toggle requires at least one path.[/red]")
        return True
    for path in args:
        _print_result(console, context.session.toggle_selection(path))
    return True


def _with_progress(console: Console, description: str, run: Callable[..., CommandResult]) -> CommandResult:
    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(description, total=None)
        result = run(progress_callback=partial(progress.update, task_id))
        progress.update(task_id, description="Export complete", advance=0)
    return result


def cmd_copy(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    result = _with_progress(console, "Collecting files...", context.session.copy_selected_to_clipboard)
    if result.stats is not None and result.success:
        console.print(render_report_table(result.stats))
    _print_result(console, result)
    return True


def cmd_download(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    destination = Path(args[0]).expanduser() if args else context.state.output_path
    result = _with_progress(
        console,
        "Collecting files...",
        partial(context.session.download_selected_to_file, destination),
    )
    if result.stats is not None and result.success:
        console.print(render_report_table(result.stats))
    _print_result(console, result)
    return True


def cmd_reset(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    _print_result(console, context.session.reset_to_default())
    return True


def cmd_clear_all(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    _print_result(console, context.session.clear_all())
    return True


def cmd_refresh(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    _print_result(console, context.session.invalidate(args[0] if args else None))
    return True


def _split_values(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def cmd_settings(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:
    state = context.state
    if not args:
        console.print(_render_settings_table(state))
        return True

    raw_key = args[0]
    raw_value = " ".join(args[1:]) if len(args) > 1 else None

    if "=" in raw_key and raw_value is None:
        raw_key, raw_value = raw_key.split("=", 1)

    key = raw_key.lower()
    canonical = None
    for target, aliases in SETTING_ALIASES.items():
        if key in aliases:
            canonical = target
            break

    if canonical is None:
        console.print(Text(f"Unknown setting '{raw_key}'.", style="red"))
        return True

    if raw_value is None:
        console.print(Text(f"Provide a value for {canonical}.", style="red"))
        return True

    if canonical == "root":
        root = Path(raw_value).expanduser()
        if not root.is_dir():
            console.print(Text(f"'{raw_value}' is not a directory.", style="red"))
            return True
        state.set_root(root)
    elif canonical == "output":
        state.set_output_path(raw_value)
    elif canonical == "materialization":
        try:
            state.set_materialization(raw_value)
        except ValueError:
            console.print("[red]materialization must be 'eager' or 'lazy'.[/red]")
            return True
    elif canonical == "ignored_names":
        state.ignored_names = None if raw_value == "default" else set(_split_values(raw_value))
    elif canonical == "non_text_extensions":
        state.non_text_extensions = None if raw_value == "default" else set(_split_values(raw_value))

    if canonical != "output":
        context.reload()

    console.print("[green]Setting updated.[/green]")
    console.print(_render_settings_table(state))
    return True


def cmd_save(console: Console, context: ShellContext, args: Tuple[str, ...]) -> bool:  # noqa: ARG001
    try:
        save_config(context.state)
    except OSError as exc:
        console.print(f"[red]Failed to save settings:[/red] {exc}")
    else:
        console.print("[green]Settings saved.[/green]")
    return True


COMMAND_HELP: Iterable[Tuple[str, str]] = (
    ("/help", "Show this help table"),
    ("/tree [path] [--depth N]", "Show the selection tree"),
    ("/status [path]", "Show selection counts for the workspace or a path"),
    ("/toggle <path>...", "Flip the selection of files or directories"),
    ("/copy", "Copy the selected files to the clipboard"),
    ("/download [file]", "Write the selected files to a file"),
    ("/reset", "Restore the default selection"),
    ("/clear-all", "Deselect everything"),
    ("/refresh [path]", "Re-read the filesystem after external changes"),
    ("/settings [key value]", "View or update session settings"),
    ("/save", "Persist current settings to config"),
    ("/clear", "Clear the terminal output"),
    ("/exit", "Exit the application"),
)


COMMANDS: Dict[str, CommandHandler] = {
    "/help": cmd_help,
    "/tree": cmd_tree,
    "/status": cmd_status,
    "/toggle": cmd_toggle,
    "/copy": cmd_copy,
    "/download": cmd_download,
    "/reset": cmd_reset,
    "/clear-all": cmd_clear_all,
    "/refresh": cmd_refresh,
    "/settings": cmd_settings,
    "/save": cmd_save,
    "/clear": cmd_clear,
    "/exit": cmd_exit,
}


__all__ = ["COMMANDS", "COMMAND_HELP", "ShellContext", "render_report_table", "render_tree"]
