"""Command-line front end for the reconciliation engine.

Reads catalog records from YAML or JSON files, runs an N-way merge, a
three-way merge or a diff, and prints the result.  All log output goes
to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from . import __version__
from .config_loader import ensure_config, load_hierarchical_config, load_yaml_file
from .config_schema import UnifiedConfig, build_config
from .logger import setup_logging
from .reconcile import (
    Differ,
    ReconcileError,
    Reconciler,
    ResourceType,
    StrategyKind,
    changeset_to_json,
    conflicts_to_json,
    format_changeset,
    format_conflict_report,
    format_provenance_report,
    report_to_json,
)
from .reconcile.fieldpath import record_class

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFLICTS = 1
EXIT_ERROR = 2

_COLLECTION_KEYS = {
    ResourceType.MODEL: "models",
    ResourceType.PROVIDER: "providers",
    ResourceType.AUTHOR: "authors",
}


# ---------------------------------------------------------------------------
# Record loading
# ---------------------------------------------------------------------------


def load_records(path: Path, resource_type: ResourceType) -> list[BaseModel]:
    """Load a list of records from a YAML or JSON file.

    Accepted shapes: a list of records, a mapping with a ``models`` /
    ``providers`` / ``authors`` key holding that list, or a mapping of
    ``id -> record`` (ids are filled in from the keys when missing).
    """
    data = load_yaml_file(path)
    if isinstance(data, dict):
        key = _COLLECTION_KEYS[resource_type]
        if key in data:
            data = data[key]
        else:
            data = [
                {"id": rid, **(body or {})} if isinstance(body, dict) and "id" not in body else body
                for rid, body in data.items()
            ]
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of records, got {type(data).__name__}")

    cls = record_class(resource_type)
    return [cls.model_validate(item) for item in data]


def load_record(path: Path, resource_type: ResourceType) -> BaseModel:
    """Load exactly one record from a YAML or JSON file."""
    data = load_yaml_file(path)
    return record_class(resource_type).model_validate(data)


def _parse_source(value: str) -> tuple[str, Path]:
    name, sep, file_name = value.partition("=")
    if not sep or not name or not file_name:
        raise argparse.ArgumentTypeError(
            f"expected NAME=FILE, got '{value}'"
        )
    return name, Path(file_name)


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_merge(args: argparse.Namespace, config: UnifiedConfig) -> int:
    resource_type = ResourceType(args.type)
    sources = {name: load_records(path, resource_type) for name, path in args.source}
    baseline = load_records(args.baseline, resource_type) if args.baseline else None

    section = config.reconcile
    if args.strategy:
        section = section.model_copy(update={"strategy": StrategyKind(args.strategy)})
    reconciler = Reconciler.from_config(section)
    report = reconciler.reconcile(
        resource_type, sources, primary=args.primary, baseline=baseline
    )

    if args.json:
        _dump(report_to_json(report))
        return EXIT_OK

    print(report.summary())
    if report.changeset is not None and report.changeset.has_changes:
        print()
        print(format_changeset(report.changeset))
    if args.provenance:
        print()
        print(format_provenance_report(report.provenance))
    return EXIT_OK


def cmd_diff(args: argparse.Namespace, config: UnifiedConfig) -> int:
    resource_type = ResourceType(args.type)
    existing = load_records(args.existing, resource_type)
    new = load_records(args.new, resource_type)

    ignored = [*config.reconcile.diff_ignore_fields, *(args.ignore or [])]
    changeset = Differ(ignore_fields=ignored).diff(resource_type, existing, new)

    if args.json:
        _dump(changeset_to_json(changeset))
    else:
        print(format_changeset(changeset))
    return EXIT_OK


def cmd_three_way(args: argparse.Namespace, config: UnifiedConfig) -> int:
    resource_type = ResourceType(args.type)
    base = load_record(args.base, resource_type)
    ours = load_record(args.ours, resource_type)
    theirs = load_record(args.theirs, resource_type)

    reconciler = Reconciler.from_config(config)
    result = reconciler.merge_three_way(base, ours, theirs, resolution=args.resolve)
    merged = result.merged.model_dump(mode="json", exclude_none=True)

    if args.json:
        _dump(
            {
                "merged": merged,
                "conflicts": conflicts_to_json(result.conflicts),
                "resolutions": [r.model_dump(mode="json") for r in result.resolutions],
            }
        )
    else:
        print(format_conflict_report(result.conflicts))
        print()
        print(json.dumps(merged, indent=2, sort_keys=True))

    if result.has_conflicts and not result.resolved:
        return EXIT_CONFLICTS
    return EXIT_OK


def cmd_init(args: argparse.Namespace, config: UnifiedConfig) -> int:
    path = ensure_config(args.path)
    print(path)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catalog-reconcile",
        description="Reconcile AI model catalog records from multiple sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # N-way merge, keeping only models the provider API serves
  catalog-reconcile merge \\
      --source local_catalog=local.yml \\
      --source models_dev_http=models_dev.json \\
      --source provider_api=api.json --primary provider_api

  # Same merge, reporting what changed against the current catalog
  catalog-reconcile merge --source local_catalog=local.yml \\
      --source provider_api=api.json --baseline catalog.yml

  # Three-way merge of one model, auto-merging where possible
  catalog-reconcile three-way --base base.yml --ours ours.yml \\
      --theirs theirs.yml --resolve merge

  # Changes between two catalog snapshots, ignoring pricing
  catalog-reconcile diff --existing old.yml --new new.yml --ignore "pricing"
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write log records to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log record format (default: from config, else text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"catalog-reconcile version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    types = [t.value for t in ResourceType]

    merge = sub.add_parser("merge", help="N-way merge across named sources")
    merge.add_argument(
        "--source",
        action="append",
        type=_parse_source,
        required=True,
        metavar="NAME=FILE",
        help="Source name and record file; repeat per source",
    )
    merge.add_argument("--type", choices=types, default="model")
    merge.add_argument("--primary", help="Only produce ids this source serves")
    merge.add_argument("--json", action="store_true", help="Print JSON")
    merge.add_argument(
        "--provenance", action="store_true", help="Also print field provenance"
    )
    merge.add_argument(
        "--baseline",
        type=Path,
        metavar="FILE",
        help="Current records; report the changes the merge makes to them",
    )
    merge.add_argument(
        "--strategy",
        choices=[k.value for k in StrategyKind],
        help="Field strategy (default: from config, else authority-based)",
    )
    merge.set_defaults(handler=cmd_merge)

    three = sub.add_parser("three-way", help="Three-way merge of one record")
    three.add_argument("--base", type=Path, required=True)
    three.add_argument("--ours", type=Path, required=True)
    three.add_argument("--theirs", type=Path, required=True)
    three.add_argument("--type", choices=types, default="model")
    three.add_argument(
        "--resolve",
        choices=["ours", "theirs", "base", "merge"],
        help="Resolution strategy applied to every conflict",
    )
    three.add_argument("--json", action="store_true", help="Print JSON")
    three.set_defaults(handler=cmd_three_way)

    diff = sub.add_parser("diff", help="Changeset between two record files")
    diff.add_argument("--existing", type=Path, required=True)
    diff.add_argument("--new", type=Path, required=True)
    diff.add_argument("--type", choices=types, default="model")
    diff.add_argument(
        "--ignore",
        action="append",
        metavar="PATTERN",
        help="Field pattern to leave out; repeatable",
    )
    diff.add_argument("--json", action="store_true", help="Print JSON")
    diff.set_defaults(handler=cmd_diff)

    init = sub.add_parser("init-config", help="Write a starter config file")
    init.add_argument("--path", type=Path, default=None)
    init.set_defaults(handler=cmd_init)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the chosen command and return its exit code."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = build_config(load_hierarchical_config())
    except (OSError, ValueError, ValidationError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or config.logging.file,
        debug_format=args.log_format or config.logging.format,
        level=config.logging.level,
    )

    try:
        return args.handler(args, config)
    except (ReconcileError, ValidationError, OSError, ValueError, yaml.YAMLError) as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())
