"""Pydantic models for the reconciliation engine.

Defines the core data contracts used across all reconcile modules:

- ``ResourceType``: Which kind of record is being merged.
- ``SourceName``: Origin of a value (N-way sources and three-way sides).
- ``MergePolicy``: How a field auto-merges when both sides changed it.
- ``Conflict`` / ``ConflictType``: A field both sides changed differently.
- ``ConflictResolution`` / ``Resolution``: Caller-chosen outcome per conflict.
- ``ProvenanceInfo`` / ``FieldProvenance``: Which source won a field, and when.
- ``ProvenanceConflict``: Sources that disagreed about a field.
- ``FieldChange`` / ``RecordUpdate`` / ``Changeset``: Differences between
  two record sets.
- ``ReconcileStats`` / ``ReconcileReport``: Aggregate result of an N-way run.
- ``ThreeWayResult``: Merged record, conflicts and applied resolutions.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class ResourceType(str, Enum):
    """Kinds of catalog records the engine can merge."""

    MODEL = "model"
    PROVIDER = "provider"
    AUTHOR = "author"


class SourceName(str, Enum):
    """Origin of a value.

    The first four members name N-way sources; ``BASE``, ``OURS`` and
    ``THEIRS`` name the sides of a three-way merge.
    """

    LOCAL_CATALOG = "local_catalog"
    MODELS_DEV_HTTP = "models_dev_http"
    MODELS_DEV_GIT = "models_dev_git"
    PROVIDER_API = "provider_api"

    BASE = "base"
    OURS = "ours"
    THEIRS = "theirs"


AGGREGATOR_SOURCES: tuple[SourceName, ...] = (
    SourceName.MODELS_DEV_HTTP,
    SourceName.MODELS_DEV_GIT,
)


class MergePolicy(str, Enum):
    """Auto-merge behaviour attached to each field path."""

    TAKE_EITHER = "take_either"
    NUMERIC_MAX = "numeric_max"
    SET_UNION = "set_union"
    BOOLEAN_OR = "boolean_or"
    MANUAL = "manual"


class StrategyKind(str, Enum):
    """Built-in N-way field strategies selectable from configuration."""

    AUTHORITY = "authority-based"
    SOURCE_PRIORITY = "source-priority"
    UNION = "union"


class ConflictType(str, Enum):
    MODIFIED = "modified"
    ADDED = "added"
    REMOVED = "removed"


class ConflictResolution(str, Enum):
    """Blanket policy a caller applies to a batch of conflicts."""

    OURS = "ours"
    THEIRS = "theirs"
    BASE = "base"
    MERGE = "merge"


class Conflict(BaseModel):
    """A field both sides changed to different values since the base.

    Attributes:
        path: Dot-separated field path (e.g. ``"limits.context_window"``).
        base: Value in the common ancestor.
        ours: Value on our side.
        theirs: Value on their side.
        type: Kind of conflict (currently always ``MODIFIED``).
        can_merge: Whether an automatic merge value exists.
        suggested: The automatic merge value, or ``None``.
    """

    path: str
    base: Any = None
    ours: Any = None
    theirs: Any = None
    type: ConflictType = ConflictType.MODIFIED
    can_merge: bool = False
    suggested: Any = None

    model_config = {"frozen": True}


class Resolution(BaseModel):
    """Final value chosen for one conflict.

    Attributes:
        path: Field path of the resolved conflict.
        value: Value to write into the merged record.
        decision: Strategy that produced the value.
        reason: Short human-readable explanation.
    """

    path: str
    value: Any = None
    decision: ConflictResolution
    reason: str = ""

    model_config = {"frozen": True}


class ProvenanceInfo(BaseModel):
    """Which source supplied a field value, and when."""

    source: SourceName
    field: str
    value: Any = None
    timestamp: datetime
    reason: str = ""

    model_config = {"frozen": True}


class ProvenanceConflict(BaseModel):
    """Sources that supplied different values for one field in one merge.

    Attributes:
        sources: Sources that supplied a value, in fallback priority order.
        values: Their values, parallel to ``sources``.
        selected: Source whose value ended up in the merged record.
        reason: Why ``selected`` won.
    """

    sources: list[SourceName]
    values: list[Any]
    selected: SourceName
    reason: str = ""

    model_config = {"frozen": True}


class FieldProvenance(BaseModel):
    """Current provenance of a field plus the entries it replaced.

    ``history`` is ordered oldest first.  ``conflicts`` lists every merge
    in which sources disagreed about the field, oldest first.
    """

    current: ProvenanceInfo
    history: list[ProvenanceInfo] = []
    conflicts: list[ProvenanceConflict] = []

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)


ProvenanceMap = dict[str, FieldProvenance]


def provenance_key(
    resource_type: ResourceType, resource_id: str, field: str
) -> str:
    """Build the ``"<type>.<id>.<field>"`` key used in a ``ProvenanceMap``."""
    return f"{resource_type.value}.{resource_id}.{field}"


# ---------------------------------------------------------------------------
# Changesets
# ---------------------------------------------------------------------------


class ChangeType(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class ApplyStrategy(str, Enum):
    """Which parts of a changeset a consumer should apply."""

    ALL = "all"
    ADDITIVE = "additive"
    UPDATES_ONLY = "updates-only"
    ADDITIONS_ONLY = "additions-only"


class FieldChange(BaseModel):
    """One field that differs between the existing and the new record.

    Attributes:
        path: Dot-separated field path.
        old: Value in the existing record.
        new: Value in the new record.
        type: ``ADD`` when the field was unset, ``REMOVE`` when it became
            unset, ``UPDATE`` otherwise.
        source: Source that supplied the new value, when provenance is known.
    """

    path: str
    old: Any = None
    new: Any = None
    type: ChangeType = ChangeType.UPDATE
    source: SourceName | None = None

    model_config = {"frozen": True}


class RecordUpdate(BaseModel):
    """An existing record whose fields changed."""

    id: str
    existing: Any
    new: Any
    changes: list[FieldChange]

    model_config = {"frozen": True}

    @property
    def paths(self) -> list[str]:
        return [change.path for change in self.changes]


class ChangesetSummary(BaseModel):
    added: int = 0
    updated: int = 0
    removed: int = 0

    model_config = {"frozen": True}

    @property
    def total(self) -> int:
        return self.added + self.updated + self.removed


class Changeset(BaseModel):
    """Records added, updated and removed between two record sets.

    Every list is sorted by record id.
    """

    resource_type: ResourceType
    added: list[Any] = []
    updated: list[RecordUpdate] = []
    removed: list[Any] = []

    model_config = {"frozen": True}

    @property
    def summary(self) -> ChangesetSummary:
        return ChangesetSummary(
            added=len(self.added),
            updated=len(self.updated),
            removed=len(self.removed),
        )

    @property
    def has_changes(self) -> bool:
        return self.summary.total > 0

    def filter(self, strategy: ApplyStrategy | str) -> Changeset:
        """Return the part of this changeset that *strategy* applies."""
        strategy = ApplyStrategy(strategy)
        if strategy is ApplyStrategy.ALL:
            return self
        keep_added = strategy in (ApplyStrategy.ADDITIVE, ApplyStrategy.ADDITIONS_ONLY)
        keep_updated = strategy in (ApplyStrategy.ADDITIVE, ApplyStrategy.UPDATES_ONLY)
        return Changeset(
            resource_type=self.resource_type,
            added=self.added if keep_added else [],
            updated=self.updated if keep_updated else [],
        )

    def describe(self) -> str:
        """One-line summary such as ``"Models: 2 added, 1 updated"``."""
        if not self.has_changes:
            return "No changes detected"
        summary = self.summary
        parts = [
            f"{count} {label}"
            for count, label in (
                (summary.added, "added"),
                (summary.updated, "updated"),
                (summary.removed, "removed"),
            )
            if count
        ]
        return f"{self.resource_type.value.capitalize()}s: {', '.join(parts)}"


class ReconcileStats(BaseModel):
    """Counters collected during one reconcile run."""

    records_in: int = 0
    records_out: int = 0
    records_skipped: int = 0
    fields_tracked: int = 0
    fields_conflicted: int = 0

    model_config = {"frozen": True}


class ReconcileReport(BaseModel):
    """Aggregate result of an N-way reconcile run.

    Attributes:
        resource_type: Kind of records that were merged.
        sources: Participating sources, in fallback priority order.
        primary: Source that decided which ids exist, if any.
        records: Merged records, sorted by id.
        provenance: Per-field provenance keyed by ``provenance_key``.
        stats: Run counters.
        changeset: Differences from the baseline records, when the caller
            supplied a baseline.
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run finished.
    """

    resource_type: ResourceType
    sources: list[SourceName] = []
    primary: SourceName | None = None
    records: list[Any] = []
    provenance: dict[str, FieldProvenance] = {}
    stats: ReconcileStats = ReconcileStats()
    changeset: Changeset | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def record_ids(self) -> list[str]:
        """Ids of the merged records, in output order."""
        return [r.id for r in self.records]

    @property
    def has_changes(self) -> bool:
        return self.changeset is not None and self.changeset.has_changes

    @property
    def conflicted_fields(self) -> list[str]:
        """Provenance keys of fields the sources disagreed on, sorted."""
        return sorted(k for k, entry in self.provenance.items() if entry.has_conflicts)

    def summary(self) -> str:
        """Format a human-readable summary of the run.

        Returns:
            Multi-line summary string with counts.
        """
        sources = ", ".join(s.value for s in self.sources) or "none"
        lines = [
            f"Reconcile report for {self.resource_type.value}s"
            + (f" (primary: {self.primary.value})" if self.primary else ""),
            f"  Sources:        {sources}",
            f"  Records in:     {self.stats.records_in}",
            f"  Records out:    {self.stats.records_out}",
            f"  Skipped:        {self.stats.records_skipped}",
            f"  Fields tracked: {self.stats.fields_tracked}",
            f"  Conflicted:     {self.stats.fields_conflicted}",
        ]
        if self.changeset is not None:
            lines.append(f"  Changes:        {self.changeset.describe()}")
        return "\n".join(lines)


class ThreeWayResult(BaseModel):
    """Outcome of a three-way merge, optionally with resolutions applied.

    Attributes:
        merged: The merged record (after resolutions, when any).
        conflicts: Conflicts in field order.
        resolutions: Resolutions applied to ``merged``; empty when the
            caller has not chosen a strategy yet.
    """

    merged: Any
    conflicts: list[Conflict] = []
    resolutions: list[Resolution] = []

    model_config = {"frozen": True}

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def resolved(self) -> bool:
        """Whether every conflict has a resolution."""
        return len(self.resolutions) == len(self.conflicts)
