"""Reconciler facade that wires the mergers together from configuration.

The ``Reconciler`` owns one authority table, one field strategy and an
optional provenance ledger, and exposes:

1. ``reconcile_models`` / ``reconcile_providers`` / ``reconcile_authors``:
   N-way merges wrapped in a ``ReconcileReport``.  With a *primary*
   source, only ids the primary serves are produced; the other sources
   only enrich them.  With a *baseline*, the report also carries the
   changeset from the baseline to the merged records, filtered by the
   strategy's apply strategy.
2. ``merge_three_way``: a three-way merge that optionally applies a
   resolution strategy to the conflicts it finds.

Nothing here performs I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from pydantic import BaseModel

from catalog_reconcile.catalog.models import Author, Model, Provider

from .authority import AuthorityTable, default_authorities
from .differ import Differ
from .errors import InvalidSourceError, MissingResourceError, ResourceTypeMismatchError
from .models import (
    ConflictResolution,
    ReconcileReport,
    ReconcileStats,
    ResourceType,
    SourceName,
    ThreeWayResult,
)
from .provenance import ProvenanceTracker
from .resolver import apply_resolutions, resolve_conflicts
from .strategic import NWAY_SOURCES, Clock, StrategicMerger, coerce_source, utc_now
from .strategy import (
    DEFAULT_SOURCE_PRIORITY,
    THREE_WAY_PRIORITY,
    AuthorityStrategy,
    FieldStrategy,
    SourcePriority,
    create_strategy,
)
from .threeway import ThreeWayMerger

if TYPE_CHECKING:
    from catalog_reconcile.config_schema import ReconcileConfig, UnifiedConfig

logger = logging.getLogger(__name__)

_TYPE_BY_CLASS: dict[type, ResourceType] = {
    Model: ResourceType.MODEL,
    Provider: ResourceType.PROVIDER,
    Author: ResourceType.AUTHOR,
}


class Reconciler:
    """Run N-way and three-way merges with one shared configuration.

    Args:
        authorities: Authority rules.  Defaults to ``default_authorities()``.
        priority: Fallback source order for N-way merges.
        three_way_priority: Fallback side order for three-way conflicts.
        tracker: Ledger that accumulates provenance across calls.
        track_provenance: When ``False``, reports carry no provenance.
        default_resolution: Strategy ``merge_three_way`` applies when the
            caller passes none.
        clock: Timestamp source.
        strategy: N-way field strategy.  Defaults to an
            ``AuthorityStrategy`` over *authorities* and *priority*.
        differ: Differ used for baseline changesets.
    """

    def __init__(
        self,
        authorities: AuthorityTable | None = None,
        priority: SourcePriority = DEFAULT_SOURCE_PRIORITY,
        three_way_priority: SourcePriority = THREE_WAY_PRIORITY,
        tracker: ProvenanceTracker | None = None,
        track_provenance: bool = True,
        default_resolution: ConflictResolution | None = None,
        clock: Clock | None = None,
        strategy: FieldStrategy | None = None,
        differ: Differ | None = None,
    ) -> None:
        self.authorities = (
            authorities if authorities is not None else default_authorities()
        )
        self.track_provenance = track_provenance
        self.tracker = tracker if tracker is not None else ProvenanceTracker(
            enabled=track_provenance
        )
        self.default_resolution = default_resolution
        self._clock = clock or utc_now

        self.strategy = strategy or AuthorityStrategy(self.authorities, priority)
        self.differ = differ or Differ()
        self.merger = StrategicMerger(
            self.authorities, self.strategy, self.tracker, self._clock
        )
        self.three_way = ThreeWayMerger(
            self.authorities, three_way_priority, self.tracker, self._clock
        )

    @classmethod
    def from_config(
        cls,
        config: ReconcileConfig | UnifiedConfig,
        clock: Clock | None = None,
    ) -> Reconciler:
        """Build a reconciler from the ``reconcile`` config section.

        Accepts either the section itself or the whole ``UnifiedConfig``.
        """
        section = getattr(config, "reconcile", config)

        table = (
            default_authorities()
            if section.use_default_authorities
            else AuthorityTable()
        )
        if section.authorities:
            extra = AuthorityTable.from_rows(
                row.model_dump() for row in section.authorities
            )
            table = table.merged_with(extra)

        priority = SourcePriority(section.source_priority, section.field_priorities)
        logger.debug(
            "Reconciler configured with %d authority rule(s), %s strategy",
            len(table),
            section.strategy.value,
        )
        return cls(
            authorities=table,
            priority=priority,
            three_way_priority=SourcePriority(section.three_way_priority),
            track_provenance=section.track_provenance,
            default_resolution=section.default_resolution,
            clock=clock,
            strategy=create_strategy(section.strategy, table, priority),
            differ=Differ(ignore_fields=section.diff_ignore_fields),
        )

    # ------------------------------------------------------------------
    # N-way
    # ------------------------------------------------------------------

    def reconcile_models(
        self,
        sources: Mapping[SourceName | str, Iterable[Model]],
        primary: SourceName | str | None = None,
        baseline: Iterable[Model] | None = None,
    ) -> ReconcileReport:
        return self.reconcile(ResourceType.MODEL, sources, primary, baseline)

    def reconcile_providers(
        self,
        sources: Mapping[SourceName | str, Iterable[Provider]],
        primary: SourceName | str | None = None,
        baseline: Iterable[Provider] | None = None,
    ) -> ReconcileReport:
        return self.reconcile(ResourceType.PROVIDER, sources, primary, baseline)

    def reconcile_authors(
        self,
        sources: Mapping[SourceName | str, Iterable[Author]],
        primary: SourceName | str | None = None,
        baseline: Iterable[Author] | None = None,
    ) -> ReconcileReport:
        return self.reconcile(ResourceType.AUTHOR, sources, primary, baseline)

    def reconcile(
        self,
        resource_type: ResourceType,
        sources: Mapping[SourceName | str, Iterable[BaseModel]],
        primary: SourceName | str | None = None,
        baseline: Iterable[BaseModel] | None = None,
    ) -> ReconcileReport:
        """Merge *sources* and wrap the result in a ``ReconcileReport``.

        Args:
            resource_type: Kind of records merged.
            sources: Records keyed by source name.
            primary: Source whose ids define the output.
            baseline: Records to diff the merged output against, e.g. the
                current catalog.

        Raises:
            InvalidSourceError: If a source name is invalid, or *primary*
                is not among *sources*.
        """
        started_at = self._clock().isoformat()
        materialised = {
            coerce_source(name, NWAY_SOURCES): [r for r in records or () if r is not None]
            for name, records in sources.items()
        }

        primary_source: SourceName | None = None
        ids: set[str] | None = None
        if primary is not None:
            primary_source = coerce_source(primary, NWAY_SOURCES)
            if primary_source not in materialised:
                raise InvalidSourceError(
                    f"Primary source '{primary_source.value}' supplied no records"
                )
            ids = {r.id for r in materialised[primary_source]}

        records, provenance = self.merger.merge(resource_type, materialised, ids=ids)
        if not self.track_provenance:
            provenance = {}

        changeset = None
        if baseline is not None:
            changeset = self.differ.diff(
                resource_type, baseline, records, provenance
            ).filter(self.strategy.apply_strategy)

        all_ids = {r.id for batch in materialised.values() for r in batch}
        stats = ReconcileStats(
            records_in=sum(len(batch) for batch in materialised.values()),
            records_out=len(records),
            records_skipped=len(all_ids) - len(records),
            fields_tracked=len(provenance),
            fields_conflicted=sum(1 for e in provenance.values() if e.has_conflicts),
        )
        report = ReconcileReport(
            resource_type=resource_type,
            sources=self.strategy.priority.rank(materialised),
            primary=primary_source,
            records=records,
            provenance=provenance,
            stats=stats,
            changeset=changeset,
            started_at=started_at,
            completed_at=self._clock().isoformat(),
        )
        logger.info(
            "Reconciled %d %s record(s) (%d skipped, %d conflicted field(s))",
            stats.records_out,
            resource_type.value,
            stats.records_skipped,
            stats.fields_conflicted,
        )
        return report

    # ------------------------------------------------------------------
    # Three-way
    # ------------------------------------------------------------------

    def merge_three_way(
        self,
        base: BaseModel | None,
        ours: BaseModel | None,
        theirs: BaseModel | None,
        resolution: ConflictResolution | str | None = None,
    ) -> ThreeWayResult:
        """Three-way merge one record, applying *resolution* if given.

        When *resolution* is ``None`` the configured default resolution is
        used; with neither, conflicts are returned unresolved and the
        merged record keeps the merger's defaults.

        Raises:
            MissingResourceError: If any input is ``None``.
            ResourceTypeMismatchError: If the inputs are not all of one
                record class, or that class is not a catalog record.
        """
        if ours is None:
            raise MissingResourceError("ours")
        resource_type = _TYPE_BY_CLASS.get(type(ours))
        if resource_type is None:
            raise ResourceTypeMismatchError("ours", tuple(_TYPE_BY_CLASS), type(ours))

        merged, conflicts = self.three_way.merge(resource_type, base, ours, theirs)

        strategy = resolution if resolution is not None else self.default_resolution
        if strategy is None or not conflicts:
            return ThreeWayResult(merged=merged, conflicts=conflicts)

        resolutions = resolve_conflicts(conflicts, strategy)
        merged = apply_resolutions(merged, resolutions)
        logger.info(
            "Applied '%s' resolution to %d conflict(s) on %s '%s'",
            ConflictResolution(strategy).value,
            len(resolutions),
            resource_type.value,
            ours.id,
        )
        return ThreeWayResult(
            merged=merged, conflicts=conflicts, resolutions=resolutions
        )
