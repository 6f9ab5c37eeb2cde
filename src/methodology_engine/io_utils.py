"""Read JSON and YAML documents from disk."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

YAML_SUFFIXES = {".yaml", ".yml"}


def _parse_text(text: str, suffix: str) -> Any:
    if suffix in YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def _load_document(path: Path) -> Any:
    """Parse a JSON or YAML file, choosing the parser from the suffix.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If a JSON file is malformed.
        yaml.YAMLError: If a YAML file is malformed.
    """
    with open(path, "r", encoding="utf-8") as handle:
        return _parse_text(handle.read(), path.suffix)


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load JSON/YAML and return (data, error_message).

    Reports parse/IO failures so callers can surface them instead of
    silently running with defaults.
    """
    if not path.exists():
        return default, None
    try:
        data = _load_document(path)
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except json.JSONDecodeError as exc:
        return default, f"{path.name}: JSONDecodeError: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"
    if data is None:
        return default, None
    if not isinstance(data, dict):
        return default, f"{path.name}: expected object, got {type(data).__name__}"
    return data, None
