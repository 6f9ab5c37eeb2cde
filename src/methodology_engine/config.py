"""Load optional engine configuration from `.methodology_engine/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import CONFIG_FILE, STATE_DIR_NAME
from .io_utils import _load_data_with_error

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def config_path(project_dir: Path) -> Path:
    return project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Directory holding the `.methodology_engine/` state dir.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = config_path(project_dir)
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _positive_int(raw: Any) -> int | None:
    if isinstance(raw, bool) or not isinstance(raw, int):
        return None
    return raw if raw > 0 else None


def get_max_iterations(config: dict[str, Any]) -> int | None:
    """Return the configured iteration cap for repeatable phases, if valid."""
    return _positive_int(config.get("max_iterations"))


def get_max_concurrent_tasks(config: dict[str, Any]) -> int | None:
    """Return the configured per-batch concurrency bound, if valid."""
    return _positive_int(config.get("max_concurrent_tasks"))


def get_methodology_source(config: dict[str, Any]) -> str | None:
    """Extract the methodology source (directory path or base URL).

    Args:
        config: Engine configuration dictionary.

    Returns:
        The source string if set, or None.
    """
    raw = config.get("methodologies")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def get_log_level(config: dict[str, Any]) -> str | None:
    raw = config.get("log_level")
    if isinstance(raw, str) and raw.upper() in VALID_LOG_LEVELS:
        return raw.upper()
    return None
