"""Entry point for the llm-context CLI and interactive shell."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Callable, Optional, Sequence

from rich.console import Console

from .commands import render_report_table, render_tree
from .config import apply_config, load_config
from .interactive import run_interactive
from .logging import setup_logging
from .selection import Materialization
from .session import CommandResult, ContextSession
from .state import AppState
from .utils import create_console


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-context",
        description="Select files in a workspace and bundle them as LLM prompt context.",
    )
    parser.add_argument("--root", "-r", help="Workspace root (defaults to the current directory)")
    parser.add_argument("--log-file", help="Write structured logs to this file instead of stderr")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log informational events")
    parser.add_argument(
        "--materialization",
        choices=[strategy.value for strategy in Materialization],
        help="How directory checks are recorded",
    )
    subparsers = parser.add_subparsers(dest="command")

    p_tree = subparsers.add_parser("tree", help="Show the selection tree")
    p_tree.add_argument("path", nargs="?", default="")
    p_tree.add_argument("--depth", "-d", type=int, help="Directory levels to expand")

    p_status = subparsers.add_parser("status", help="Show selection counts")
    p_status.add_argument("path", nargs="?", default="")

    p_toggle = subparsers.add_parser("toggle", help="Flip the selection of paths")
    p_toggle.add_argument("paths", nargs="+")

    subparsers.add_parser("copy", help="Copy the selected files to the clipboard")

    p_download = subparsers.add_parser("download", help="Write the selected files to a file")
    p_download.add_argument("--output", "-o", help="Output file path")

    subparsers.add_parser("reset", help="Restore the default selection")
    subparsers.add_parser("clear", help="Deselect everything")
    return parser


def _report(console: Console, result: CommandResult) -> int:
    if result.stats is not None and result.success:
        console.print(render_report_table(result.stats))
    style = "green" if result.success else "red"
    console.print(result.message, style=style, markup=False)
    if result.stats is not None:
        for warning in result.stats.errors:
            console.print(f"  • {warning}", style="yellow", markup=False)
    return 0 if result.success else 1


def _run_command(args: argparse.Namespace, state: AppState, console: Console, session: ContextSession) -> int:
    if args.command == "tree":
        try:
            console.print(render_tree(session.store, args.path, depth=args.depth))
        except ValueError as exc:
            console.print(str(exc), style="red", markup=False)
            return 1
        return 0

    if args.command == "status":
        try:
            count = session.store.count_selected(args.path)
        except ValueError as exc:
            console.print(str(exc), style="red", markup=False)
            return 1
        label = args.path or str(session.root)
        console.print(f"{count} files selected under {label}", markup=False)
        return 0

    if args.command == "toggle":
        exit_code = 0
        for path in args.paths:
            exit_code = max(exit_code, _report(console, session.toggle_selection(path)))
        return exit_code

    handlers: dict[str, Callable[[], CommandResult]] = {
        "copy": session.copy_selected_to_clipboard,
        "download": lambda: session.download_selected_to_file(args.output or state.output_path),
        "reset": session.reset_to_default,
        "clear": session.clear_all,
    }
    return _report(console, handlers[args.command]())


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(list(sys.argv[1:] if argv is None else argv))

    setup_logging(args.log_file, level=logging.INFO if args.verbose else logging.WARNING, force=True)

    state = apply_config(AppState(), load_config())
    if args.root:
        state.set_root(args.root)
    if args.materialization:
        state.set_materialization(args.materialization)

    console = create_console()
    if not state.root.is_dir():
        console.print(f"'{state.root}' is not a directory", style="red", markup=False)
        raise SystemExit(1)

    if args.command is None:
        run_interactive(console, state)
        return

    raise SystemExit(_run_command(args, state, console, state.create_session()))


if __name__ == "__main__":  # pragma: no cover
    main()
