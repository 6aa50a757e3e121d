"""Session state management for the llm-context shell and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .policy import ExclusionPolicy
from .selection import Materialization
from .session import ContextSession
from .storage import FileWorkspaceState


@dataclass
class AppState:
    """Mutable configuration shared across shell commands and CLI subcommands."""

    root: Path = field(default_factory=Path.cwd)
    output_path: Path = field(default_factory=lambda: Path("selected_files.txt"))
    # Exclusion rules - ``None`` keeps the built-in defaults
    ignored_names: Optional[set[str]] = None
    non_text_extensions: Optional[set[str]] = None
    materialization: str = Materialization.EAGER.value
    state_dir: Optional[Path] = None

    def create_policy(self) -> ExclusionPolicy:
        return ExclusionPolicy.create(
            ignored_names=None if self.ignored_names is None else set(self.ignored_names),
            non_text_extensions=None if self.non_text_extensions is None else set(self.non_text_extensions),
        )

    def create_workspace_state(self) -> FileWorkspaceState:
        return FileWorkspaceState(self.root, self.state_dir)

    def create_session(self, *, clipboard: Optional[Callable[[str], None]] = None) -> ContextSession:
        """Instantiate a ``ContextSession`` for ``root`` with the current settings."""

        return ContextSession(
            self.root,
            policy=self.create_policy(),
            workspace_state=self.create_workspace_state(),
            materialization=self.materialization,
            clipboard=clipboard,
        )

    def set_root(self, path: str | Path) -> None:
        self.root = Path(path).expanduser().resolve()

    def set_output_path(self, path: str | Path) -> None:
        self.output_path = Path(path).expanduser()

    def set_materialization(self, value: str) -> None:
        """Raises ``ValueError`` for anything but ``eager`` or ``lazy``."""

        self.materialization = Materialization(str(value).strip().lower()).value

    def set_rules(
        self,
        *,
        ignored_names: Optional[Iterable[str]] = None,
        non_text_extensions: Optional[Iterable[str]] = None,
    ) -> None:
        if ignored_names is not None:
            self.ignored_names = {str(name) for name in ignored_names}
        if non_text_extensions is not None:
            self.non_text_extensions = {str(ext) for ext in non_text_extensions}


__all__ = ["AppState"]
