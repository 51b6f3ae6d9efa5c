"""Reconcile report formatting functions.

Provides human-readable and machine-readable output for merge results:

- ``format_conflict_report`` -- one block per three-way conflict.
- ``format_conflict_diff`` -- unified diff of ours vs theirs for review.
- ``format_provenance_report`` -- which source won each field, and which
  sources disagreed about it.
- ``format_changeset`` -- records added, updated and removed since a
  baseline.
- ``conflicts_to_json`` / ``changeset_to_json`` / ``report_to_json`` --
  structured dicts for JSON.
"""

from __future__ import annotations

import difflib
import json
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter

if TYPE_CHECKING:
    from .models import Changeset, Conflict, FieldProvenance, ReconcileReport

# History entries shown per field in the provenance report.
MAX_HISTORY_SHOWN = 4

_ANY = TypeAdapter(Any)


def to_jsonable(value: Any) -> Any:
    """Convert a field value (records, dates, lists) to plain JSON types."""
    return _ANY.dump_python(value, mode="json")


def format_value(value: Any) -> str:
    """Render a field value on one line."""
    if value is None:
        return "<none>"
    if isinstance(value, str):
        return repr(value)
    return json.dumps(to_jsonable(value), sort_keys=True)


def _value_lines(value: Any) -> list[str]:
    if isinstance(value, str):
        return value.splitlines(keepends=True) or [""]
    text = json.dumps(to_jsonable(value), indent=2, sort_keys=True)
    return text.splitlines(keepends=True)


# ------------------------------------------------------------------
# Conflicts
# ------------------------------------------------------------------


def format_conflict_report(conflicts: Iterable[Conflict]) -> str:
    """Format a list of conflicts as human-readable text.

    Args:
        conflicts: Conflicts from a three-way merge.

    Returns:
        Multi-line formatted string.
    """
    conflicts = list(conflicts)
    if not conflicts:
        return "No conflicts."

    mergeable = sum(1 for c in conflicts if c.can_merge)
    lines = [
        f"{len(conflicts)} conflict(s): {mergeable} auto-mergeable, "
        f"{len(conflicts) - mergeable} need a decision",
        "",
    ]
    for conflict in conflicts:
        status = "auto-merge" if conflict.can_merge else "manual"
        lines.append(f"[{status}] {conflict.path}")
        lines.append(f"  base:   {format_value(conflict.base)}")
        lines.append(f"  ours:   {format_value(conflict.ours)}")
        lines.append(f"  theirs: {format_value(conflict.theirs)}")
        if conflict.can_merge:
            lines.append(f"  suggested: {format_value(conflict.suggested)}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_conflict_diff(conflict: Conflict) -> str:
    """Format a single conflict for interactive review.

    Shows a unified diff between our and their values.

    Args:
        conflict: The conflict details.

    Returns:
        Multi-line formatted string with the diff.
    """
    lines = [f"Conflict: {conflict.path}", ""]

    diff = difflib.unified_diff(
        _value_lines(conflict.ours),
        _value_lines(conflict.theirs),
        fromfile=f"ours: {conflict.path}",
        tofile=f"theirs: {conflict.path}",
    )
    diff_text = "".join(diff)
    if diff_text:
        lines.append(diff_text.rstrip())
    else:
        lines.append("(no textual differences)")
    lines.append("")

    if conflict.can_merge:
        lines.append(f"Suggested merge: {format_value(conflict.suggested)}")

    return "\n".join(lines).rstrip()


def conflicts_to_json(conflicts: Iterable[Conflict]) -> list[dict]:
    """Convert conflicts to JSON-ready dicts, in input order."""
    return [conflict.model_dump(mode="json") for conflict in conflicts]


# ------------------------------------------------------------------
# Provenance
# ------------------------------------------------------------------


def format_provenance_report(provenance: Mapping[str, FieldProvenance]) -> str:
    """Format a provenance map as text, sorted by key.

    At most ``MAX_HISTORY_SHOWN`` history entries are listed per field,
    newest first.
    """
    if not provenance:
        return "No provenance recorded."

    lines: list[str] = [f"Provenance ({len(provenance)} field(s))", ""]
    for key in sorted(provenance):
        entry = provenance[key]
        current = entry.current
        lines.append(f"{key}")
        lines.append(
            f"  current: {current.source.value} = {format_value(current.value)}"
            f" at {current.timestamp.isoformat()}"
        )
        if current.reason:
            lines.append(f"  reason:  {current.reason}")
        if entry.history:
            shown = list(reversed(entry.history))[:MAX_HISTORY_SHOWN]
            lines.append(f"  history ({len(entry.history)}):")
            for past in shown:
                lines.append(
                    f"    {past.source.value} = {format_value(past.value)}"
                    f" at {past.timestamp.isoformat()}"
                )
            hidden = len(entry.history) - len(shown)
            if hidden > 0:
                lines.append(f"    ... ({hidden} older)")
        if entry.conflicts:
            lines.append(f"  conflicts ({len(entry.conflicts)}):")
            for conflict in entry.conflicts:
                offered = ", ".join(
                    f"{source.value}={format_value(value)}"
                    for source, value in zip(conflict.sources, conflict.values)
                )
                lines.append(f"    {offered} -> {conflict.selected.value}")
                if conflict.reason:
                    lines.append(f"      ({conflict.reason})")
    return "\n".join(lines)


# ------------------------------------------------------------------
# Changesets
# ------------------------------------------------------------------

_CHANGE_MARK = {"add": "+", "update": "~", "remove": "-"}


def format_changeset(changeset: Changeset) -> str:
    """Format a changeset as text: one line per added or removed record,
    and one line per changed field of each updated record."""
    lines = [changeset.describe()]
    if not changeset.has_changes:
        return lines[0]

    lines.append("")
    for record in changeset.added:
        lines.append(f"+ {record.id}")
    for update in changeset.updated:
        lines.append(f"~ {update.id}")
        for change in update.changes:
            source = f"  [{change.source.value}]" if change.source else ""
            lines.append(
                f"    {_CHANGE_MARK[change.type.value]} {change.path}: "
                f"{format_value(change.old)} -> {format_value(change.new)}{source}"
            )
    for record in changeset.removed:
        lines.append(f"- {record.id}")
    return "\n".join(lines)


def changeset_to_json(changeset: Changeset) -> dict:
    """Convert a changeset to a JSON-ready dict keyed by record id."""
    summary = changeset.summary
    return {
        "resource_type": changeset.resource_type.value,
        "summary": {**summary.model_dump(), "total": summary.total},
        "added": [r.id for r in changeset.added],
        "updated": {
            update.id: [change.model_dump(mode="json") for change in update.changes]
            for update in changeset.updated
        },
        "removed": [r.id for r in changeset.removed],
    }


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: ReconcileReport) -> dict:
    """Convert a reconcile report to a structured dict for JSON serialisation.

    Args:
        report: The reconcile report.

    Returns:
        Dict with run info, counts, merged records, provenance and the
        baseline changeset (``None`` without a baseline).
    """
    return {
        "resource_type": report.resource_type.value,
        "sources": [s.value for s in report.sources],
        "primary": report.primary.value if report.primary else None,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": report.stats.model_dump(),
        "records": [
            record.model_dump(mode="json", exclude_none=True)
            for record in report.records
        ],
        "provenance": {
            key: entry.model_dump(mode="json")
            for key, entry in sorted(report.provenance.items())
        },
        "conflicted_fields": report.conflicted_fields,
        "changeset": (
            changeset_to_json(report.changeset)
            if report.changeset is not None
            else None
        ),
    }
