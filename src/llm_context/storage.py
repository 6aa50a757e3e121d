"""Workspace-scoped key-value stores backing the persisted selection."""

from __future__ import annotations

import hashlib
import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import tomli_w

from .errors import PersistenceError


def _default_state_dir() -> Path:
    return Path("~/.config/llm-context/workspaces").expanduser()


def workspace_key(root: str | Path) -> str:
    """Stable identifier for a workspace root."""

    resolved = str(Path(root).expanduser().resolve())
    return hashlib.sha1(resolved.encode("utf-8")).hexdigest()


class WorkspaceState(Protocol):
    """Minimal key-value contract the selection store persists through."""

    def get(self, key: str, default: Any = None) -> Any:  # pragma: no cover - Protocol definition
        ...

    def update(self, key: str, value: Any) -> None:  # pragma: no cover - Protocol definition
        ...


class MemoryWorkspaceState:
    """In-process store; state is lost when the session ends."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def update(self, key: str, value: Any) -> None:
        self._data[key] = value


class FileWorkspaceState:
    """One TOML document per workspace, rewritten atomically on every update."""

    def __init__(self, root: str | Path, state_dir: Optional[str | Path] = None) -> None:
        self.root = Path(root).expanduser().resolve()
        directory = Path(state_dir).expanduser() if state_dir is not None else _default_state_dir()
        self.path = directory / f"{workspace_key(self.root)}.toml"

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            return tomllib.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise PersistenceError(f"Unable to read workspace state '{self.path}': {exc}", path=str(self.path)) from exc

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def update(self, key: str, value: Any) -> None:
        try:
            data = self._read()
        except PersistenceError:
            data = {}
        data["root"] = str(self.root)
        data[key] = value

        temp_path: Optional[Path] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="wb",
                delete=False,
                dir=str(self.path.parent),
                prefix=f"{self.path.name}.",
                suffix=".tmp",
            ) as handle:
                temp_path = Path(handle.name)
                tomli_w.dump(data, handle)
            os.replace(temp_path, self.path)
        except (OSError, TypeError) as exc:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Unable to write workspace state '{self.path}': {exc}", path=str(self.path)) from exc


__all__ = ["FileWorkspaceState", "MemoryWorkspaceState", "WorkspaceState", "workspace_key"]
