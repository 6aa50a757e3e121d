"""Configuration persistence helpers for llm-context."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import tomli_w

from .logging import logger
from .state import AppState


def _config_path() -> Path:
    return Path("~/.config/llm-context/settings.toml").expanduser()


def load_config() -> Dict[str, Any]:
    path = _config_path()
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        logger.warning("config_load_failed", path=str(path), error=str(exc))
        return {}


def apply_config(state: AppState, data: Dict[str, Any]) -> AppState:
    if not data:
        return state

    output_path = data.get("output_path", state.output_path)
    state.output_path = Path(output_path).expanduser()

    materialization = data.get("materialization")
    if materialization is not None:
        try:
            state.set_materialization(materialization)
        except ValueError:
            logger.warning("config_value_ignored", key="materialization", value=str(materialization))

    state_dir = data.get("state_dir")
    if isinstance(state_dir, str) and state_dir:
        state.state_dir = Path(state_dir).expanduser()

    # Rule overrides replace the defaults wholesale
    ignored_names = data.get("ignored_names", state.ignored_names)
    if ignored_names is None:
        state.ignored_names = None
    elif isinstance(ignored_names, (list, set)):
        state.ignored_names = {str(item) for item in ignored_names}

    non_text_extensions = data.get("non_text_extensions", state.non_text_extensions)
    if non_text_extensions is None:
        state.non_text_extensions = None
    elif isinstance(non_text_extensions, (list, set)):
        state.non_text_extensions = {str(item) for item in non_text_extensions}

    return state


def save_config(state: AppState) -> None:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data: Dict[str, Any] = {
        "output_path": str(state.output_path),
        "materialization": str(state.materialization),
    }
    if state.state_dir is not None:
        data["state_dir"] = str(state.state_dir)

    def _serialize_optional_iterable(key: str, value: Optional[Iterable[str]]) -> None:
        if value is None:
            return
        data[key] = sorted(value)

    _serialize_optional_iterable("ignored_names", state.ignored_names)
    _serialize_optional_iterable("non_text_extensions", state.non_text_extensions)

    with path.open("wb") as handle:
        tomli_w.dump(data, handle)


__all__ = ["load_config", "apply_config", "save_config"]
