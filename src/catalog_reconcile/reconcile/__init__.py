"""Catalog reconciliation engine.

Public API for merging catalog records (models, providers, authors)
reported by several sources, or edited divergently from a common base.

Architecture
------------
Two merge modes share one set of field paths and merge policies:

- **N-way strategic merge** -- every source's record for an id is merged
  field by field.  Authority rules decide which source is trusted for a
  field; a fixed source priority decides the rest.  Provenance records
  which source won each field.
- **Three-way merge** -- ours and theirs are diffed against their base.
  One-sided and convergent changes merge silently; fields both sides
  changed differently become ``Conflict`` values, auto-mergeable by
  numeric max or set union where the field allows it.  Boolean flags are
  OR-combined and never conflict.

Modules:

- ``models``     -- enums and frozen data contracts.
- ``fieldpath``  -- field registries and dot-path get/set.
- ``authority``  -- ``AuthorityTable`` and the default rules.
- ``strategy``   -- ``SourcePriority`` and the field strategies
                  (authority, source priority, union, custom, chains).
- ``provenance`` -- ``ProvenanceTracker`` ledger and conflict reports.
- ``strategic``  -- ``StrategicMerger`` (N-way).
- ``threeway``   -- ``ThreeWayMerger``.
- ``resolver``   -- blanket conflict resolution strategies.
- ``differ``     -- ``Differ`` changesets between record sets.
- ``engine``     -- ``Reconciler`` facade and reports.
- ``reporter``   -- human-readable and JSON formatting.

Usage example
-------------
::

    from catalog_reconcile.reconcile import Reconciler, SourceName

    reconciler = Reconciler()
    report = reconciler.reconcile_models(
        {
            SourceName.LOCAL_CATALOG: local_models,
            SourceName.MODELS_DEV_HTTP: models_dev_models,
            SourceName.PROVIDER_API: api_models,
        },
        primary=SourceName.PROVIDER_API,
    )
    print(report.summary())

    result = reconciler.merge_three_way(base, ours, theirs)
    for conflict in result.conflicts:
        print(conflict.path, conflict.can_merge)
"""

from .authority import AuthorityRule, AuthorityTable, default_authorities
from .differ import Differ
from .engine import Reconciler
from .errors import (
    InvalidSourceError,
    MissingResourceError,
    ReconcileError,
    ResourceTypeMismatchError,
)
from .fieldpath import (
    FieldSpec,
    field_policy,
    field_specs,
    get_field,
    is_unset,
    set_field,
)
from .models import (
    ApplyStrategy,
    Changeset,
    ChangesetSummary,
    ChangeType,
    Conflict,
    ConflictResolution,
    ConflictType,
    FieldChange,
    FieldProvenance,
    MergePolicy,
    ProvenanceConflict,
    ProvenanceInfo,
    ProvenanceMap,
    RecordUpdate,
    ReconcileReport,
    ResourceType,
    Resolution,
    SourceName,
    StrategyKind,
    ThreeWayResult,
)
from .provenance import ProvenanceTracker, ResourceProvenance, find_conflicts
from .reporter import (
    changeset_to_json,
    conflicts_to_json,
    format_changeset,
    format_conflict_diff,
    format_conflict_report,
    format_provenance_report,
    report_to_json,
)
from .resolver import apply_resolutions, create_resolver, resolve_conflicts
from .strategic import StrategicMerger
from .strategy import (
    DEFAULT_SOURCE_PRIORITY,
    THREE_WAY_PRIORITY,
    AuthorityStrategy,
    CustomStrategy,
    FieldResolution,
    FieldStrategy,
    SourcePriority,
    SourcePriorityStrategy,
    StrategyChain,
    UnionStrategy,
    create_strategy,
    present_values,
)
from .threeway import ThreeWayMerger

__all__ = [
    "DEFAULT_SOURCE_PRIORITY",
    "THREE_WAY_PRIORITY",
    "ApplyStrategy",
    "AuthorityRule",
    "AuthorityStrategy",
    "AuthorityTable",
    "ChangeType",
    "Changeset",
    "ChangesetSummary",
    "Conflict",
    "ConflictResolution",
    "ConflictType",
    "CustomStrategy",
    "Differ",
    "FieldChange",
    "FieldProvenance",
    "FieldResolution",
    "FieldSpec",
    "FieldStrategy",
    "InvalidSourceError",
    "MergePolicy",
    "MissingResourceError",
    "ProvenanceConflict",
    "ProvenanceInfo",
    "ProvenanceMap",
    "ProvenanceTracker",
    "ReconcileError",
    "ReconcileReport",
    "Reconciler",
    "RecordUpdate",
    "Resolution",
    "ResourceProvenance",
    "ResourceType",
    "ResourceTypeMismatchError",
    "SourceName",
    "SourcePriority",
    "SourcePriorityStrategy",
    "StrategicMerger",
    "StrategyChain",
    "StrategyKind",
    "ThreeWayMerger",
    "ThreeWayResult",
    "UnionStrategy",
    "apply_resolutions",
    "changeset_to_json",
    "conflicts_to_json",
    "create_resolver",
    "create_strategy",
    "default_authorities",
    "field_policy",
    "field_specs",
    "find_conflicts",
    "format_changeset",
    "format_conflict_diff",
    "format_conflict_report",
    "format_provenance_report",
    "get_field",
    "is_unset",
    "present_values",
    "report_to_json",
    "resolve_conflicts",
    "set_field",
]
