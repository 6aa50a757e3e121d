"""Rich-powered interactive shell for llm-context."""

from __future__ import annotations

import shlex
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel

from .commands import COMMANDS, ShellContext
from .config import apply_config, load_config
from .state import AppState


def _tokenize(line: str) -> list[str]:
    try:
        return shlex.split(line)
    except ValueError:
        return line.split()


class InteractiveShell:
    """Read-eval loop dispatching slash commands to ``COMMANDS``."""

    prompt = "[bold cyan]llm-context[/bold cyan] › "

    def __init__(
        self,
        *,
        console: Console,
        state: Optional[AppState] = None,
        clipboard: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.console = console
        self.state = state if state is not None else apply_config(AppState(), load_config())
        self.context = ShellContext.create(self.state, clipboard=clipboard)

    @property
    def session(self):
        return self.context.session

    def handle_command(self, line: str) -> bool:
        """Run one input line; returns False when the shell should stop."""

        tokens = _tokenize(line.strip())
        if not tokens:
            return True

        name = tokens[0].lower()
        if not name.startswith("/"):
            name = f"/{name}"
        handler = COMMANDS.get(name)
        if handler is None:
            self.console.print(f"[red]Unknown command '{tokens[0]}'.[/red] Type [cyan]/help[/cyan] for a list.")
            return True
        return handler(self.console, self.context, tuple(tokens[1:]))

    def run(self) -> None:
        self.console.print(
            Panel.fit(
                f"Workspace: [cyan]{self.session.root}[/cyan]\nType [cyan]/help[/cyan] for commands.",
                title="llm-context",
                border_style="magenta",
            )
        )
        while True:
            try:
                line = self.console.input(self.prompt)
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                self.handle_command("/exit")
                return
            if not self.handle_command(line):
                return


def run_interactive(console: Console, state: Optional[AppState] = None) -> None:
    """Launch the interactive shell."""

    InteractiveShell(console=console, state=state).run()


__all__ = ["InteractiveShell", "run_interactive"]
