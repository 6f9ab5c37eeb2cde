from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from .config import (
    VALID_LOG_LEVELS,
    get_log_level,
    get_max_concurrent_tasks,
    get_max_iterations,
    get_methodology_source,
    load_engine_config,
)
from .constants import DEFAULT_SUGGESTION_LIMIT
from .diagram import generate_mermaid, render_execution_plan, render_methodology_tree
from .errors import ConfigError, MethodologyEngineError, MethodologyValidationError
from .io_utils import _load_document
from .logging_utils import configure_logging
from .repository import MethodologyRepository, repository_from_source
from .schema import MethodologyMetadata, parse_methodology
from .suggest import MethodologySuggester


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _write_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def _meta_dict(meta: MethodologyMetadata) -> dict[str, Any]:
    return {
        "id": meta.id,
        "name": meta.display_name,
        "domains": list(meta.domains),
        "tags": list(meta.tags),
        "complexity": meta.complexity,
    }


def _config(args: argparse.Namespace) -> dict[str, Any]:
    config, err = load_engine_config(_resolve_project_dir(args.project_dir))
    if err:
        raise ConfigError(f"Invalid engine config: {err}")
    return config


def _repository(args: argparse.Namespace, config: Optional[dict[str, Any]] = None) -> MethodologyRepository:
    if config is None:
        config = _config(args)
    source = args.source or get_methodology_source(config)
    if not source:
        raise ConfigError("No methodology source; pass --source or set 'methodologies' in the engine config")
    return repository_from_source(source)


def _list(args: argparse.Namespace) -> int:
    repo = _repository(args)
    _write_json({"methodologies": [_meta_dict(m) for m in repo.list_available()]})
    return 0


def _search(args: argparse.Namespace) -> int:
    repo = _repository(args)
    _write_json({"methodologies": [_meta_dict(m) for m in repo.search(args.query, lang=args.lang)]})
    return 0


def _suggest(args: argparse.Namespace) -> int:
    suggester = MethodologySuggester(_repository(args))
    suggestions = suggester.suggest(args.domain, args.tag, args.complexity, limit=args.limit)
    _write_json({"suggestions": [s.to_dict() for s in suggestions]})
    return 0


def _show(args: argparse.Namespace) -> int:
    methodology = _repository(args).get(args.methodology_id)
    if args.format == "mermaid":
        sys.stdout.write(generate_mermaid(methodology))
    elif args.format == "json":
        _write_json(methodology.model_dump(by_alias=True, exclude_none=True, mode="json"))
    else:
        sys.stdout.write(render_methodology_tree(methodology))
    return 0


def _plan(args: argparse.Namespace) -> int:
    config = _config(args)
    methodology = _repository(args, config).get(args.methodology_id)
    sys.stdout.write(
        render_execution_plan(
            methodology,
            max_iterations=get_max_iterations(config),
            max_concurrency=get_max_concurrent_tasks(config),
        )
    )
    return 0


def _validate(args: argparse.Namespace) -> int:
    path = Path(args.path).expanduser()
    try:
        data = _load_document(path)
    except Exception as exc:
        sys.stderr.write(f"Cannot read {path}: {exc}\n")
        return 1
    try:
        methodology = parse_methodology(data, source=path.name)
    except MethodologyValidationError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1
    _write_json({
        "valid": True,
        "id": methodology.id,
        "phases": methodology.phase_ids(),
        "tasks": sum(len(p.tasks) for p in methodology.phases),
    })
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Methodology engine CLI")
    parser.add_argument("--project-dir", default=None, help="Directory holding .methodology_engine/config.yaml")
    parser.add_argument("--source", default=None, help="Methodology directory or http(s) base URL")
    parser.add_argument("--log-level", default=None, help="Log level (default: config or WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plist = subparsers.add_parser("list", help="List available methodologies")
    plist.set_defaults(func=_list)

    psearch = subparsers.add_parser("search", help="Search methodologies by name or id")
    psearch.add_argument("query")
    psearch.add_argument("--lang", default=None)
    psearch.set_defaults(func=_search)

    psuggest = subparsers.add_parser("suggest", help="Suggest methodologies for a profile")
    psuggest.add_argument("--domain", action="append", default=[])
    psuggest.add_argument("--tag", action="append", default=[])
    psuggest.add_argument("--complexity", default=None)
    psuggest.add_argument("--limit", type=int, default=DEFAULT_SUGGESTION_LIMIT)
    psuggest.set_defaults(func=_suggest)

    pshow = subparsers.add_parser("show", help="Show a methodology")
    pshow.add_argument("methodology_id")
    pshow.add_argument("--format", choices=("tree", "mermaid", "json"), default="tree")
    pshow.set_defaults(func=_show)

    pplan = subparsers.add_parser("plan", help="Show the ready batches of every phase (dry run)")
    pplan.add_argument("methodology_id")
    pplan.set_defaults(func=_plan)

    pvalidate = subparsers.add_parser("validate", help="Validate a methodology document")
    pvalidate.add_argument("path")
    pvalidate.set_defaults(func=_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = args.log_level
    if not level:
        config, _ = load_engine_config(_resolve_project_dir(args.project_dir))
        level = get_log_level(config) or "WARNING"
    if level.upper() not in VALID_LOG_LEVELS:
        sys.stderr.write(f"Invalid log level '{level}' (expected one of: {', '.join(sorted(VALID_LOG_LEVELS))})\n")
        return 1
    configure_logging(level)

    try:
        return int(args.func(args))
    except MethodologyEngineError as exc:
        logger.debug("Command {} failed: {!r}", args.command, exc)
        sys.stderr.write(f"{exc}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
