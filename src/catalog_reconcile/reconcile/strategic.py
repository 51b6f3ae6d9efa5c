"""N-way strategic merge across named sources.

Records from every source are grouped by id.  For each id, every
registered field path is resolved independently through the field
strategy (``AuthorityStrategy`` by default); the winner is written into a
fresh record and its provenance is tracked.  Models then get
composite-structure rules that do not reduce to independent fields:

- ``limits``, ``pricing`` and ``metadata``: the highest-ranked aggregator
  source carrying the sub-structure wins it wholesale.
- ``features``: the provider API's modalities and core sampling flags are
  current truth; aggregator capability flags are OR'd in (never cleared)
  and aggregator modalities fill lists that are still empty.

Finally ``updated_at`` is stamped from the clock and ``created_at`` is
carried over from the best source that has one.  Every field on which two
sources supplied different values gets a ``ProvenanceConflict`` naming the
source that won.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from catalog_reconcile.catalog.models import Author, Model, ModelFeatures, Provider

from .authority import AuthorityTable
from .errors import InvalidSourceError, ResourceTypeMismatchError
from .fieldpath import field_specs, get_field, is_unset, record_class, set_field
from .models import (
    AGGREGATOR_SOURCES,
    ProvenanceConflict,
    ProvenanceInfo,
    ProvenanceMap,
    ResourceType,
    SourceName,
)
from .provenance import ProvenanceTracker
from .strategy import AuthorityStrategy, FieldStrategy, present_values

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

NWAY_SOURCES: frozenset[SourceName] = frozenset(
    {
        SourceName.LOCAL_CATALOG,
        SourceName.MODELS_DEV_HTTP,
        SourceName.MODELS_DEV_GIT,
        SourceName.PROVIDER_API,
    }
)

# Sub-structures the aggregator owns wholesale.
AGGREGATOR_STRUCTURES: tuple[str, ...] = ("limits", "pricing", "metadata")

# Feature flags the provider API reports as current truth.
PROVIDER_CORE_FLAGS: tuple[str, ...] = (
    "streaming",
    "temperature",
    "top_p",
    "max_tokens",
)

# Capability flags the aggregator may switch on but never off.
AGGREGATOR_FLAGS: tuple[str, ...] = (
    "tool_calls",
    "tools",
    "tool_choice",
    "web_search",
    "attachments",
    "reasoning",
    "reasoning_effort",
    "structured_outputs",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def coerce_source(name: SourceName | str, allowed: Collection[SourceName]) -> SourceName:
    """Convert *name* to a ``SourceName`` valid for the merge mode.

    Raises:
        InvalidSourceError: If *name* is unknown or not in *allowed*.
    """
    try:
        source = SourceName(name)
    except ValueError:
        raise InvalidSourceError(f"Unknown source: '{name}'") from None
    if source not in allowed:
        raise InvalidSourceError(
            f"Source '{source.value}' is not valid here. "
            f"Valid sources: {sorted(s.value for s in allowed)}"
        )
    return source


class StrategicMerger:
    """Merge records of one resource type from several sources.

    Args:
        authorities: Authority rules consulted for every field.
        strategy: Field resolution strategy.  Defaults to an
            ``AuthorityStrategy`` over *authorities* with the default
            source priority.
        tracker: Optional long-lived ledger that also receives every
            provenance entry.
        clock: Returns the timestamp used for ``updated_at`` and
            provenance entries.
    """

    def __init__(
        self,
        authorities: AuthorityTable,
        strategy: FieldStrategy | None = None,
        tracker: ProvenanceTracker | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.authorities = authorities
        self.strategy = strategy or AuthorityStrategy(authorities)
        self.tracker = tracker
        self._clock = clock or utc_now

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def merge_models(
        self, sources: Mapping[SourceName | str, Iterable[Model]]
    ) -> tuple[list[Model], ProvenanceMap]:
        return self.merge(ResourceType.MODEL, sources)  # type: ignore[return-value]

    def merge_providers(
        self, sources: Mapping[SourceName | str, Iterable[Provider]]
    ) -> tuple[list[Provider], ProvenanceMap]:
        return self.merge(ResourceType.PROVIDER, sources)  # type: ignore[return-value]

    def merge_authors(
        self, sources: Mapping[SourceName | str, Iterable[Author]]
    ) -> tuple[list[Author], ProvenanceMap]:
        return self.merge(ResourceType.AUTHOR, sources)  # type: ignore[return-value]

    def merge(
        self,
        resource_type: ResourceType,
        sources: Mapping[SourceName | str, Iterable[BaseModel]],
        ids: Collection[str] | None = None,
    ) -> tuple[list[BaseModel], ProvenanceMap]:
        """Merge all records of *resource_type* across *sources*.

        Args:
            resource_type: Kind of record being merged.
            sources: Records keyed by source name.
            ids: When given, only these ids are produced.

        Returns:
            Tuple of ``(merged records sorted by id, provenance map)``.

        Raises:
            InvalidSourceError: If a source name is not an N-way source.
            ResourceTypeMismatchError: If a record has the wrong class.
        """
        grouped = self.group_by_id(resource_type, sources)
        ledger = ProvenanceTracker()
        now = self._clock()

        merged: list[BaseModel] = []
        for resource_id in sorted(grouped):
            if ids is not None and resource_id not in ids:
                continue
            merged.append(
                self._merge_record(
                    resource_type, resource_id, grouped[resource_id], ledger, now
                )
            )

        logger.info(
            "Merged %d %s record(s) from %d source(s)",
            len(merged),
            resource_type.value,
            len(sources),
        )
        return merged, ledger.export()

    def group_by_id(
        self,
        resource_type: ResourceType,
        sources: Mapping[SourceName | str, Iterable[BaseModel]],
    ) -> dict[str, dict[SourceName, BaseModel]]:
        """Group records by id, then by source.

        ``None`` records are skipped.  When one source lists an id twice,
        the first record is kept.
        """
        cls = record_class(resource_type)
        validated = {coerce_source(name, NWAY_SOURCES): records for name, records in sources.items()}

        grouped: dict[str, dict[SourceName, BaseModel]] = {}
        for source in sorted(validated, key=lambda s: s.value):
            for record in validated[source] or ():
                if record is None:
                    logger.warning("Skipping empty record from %s", source.value)
                    continue
                if not isinstance(record, cls):
                    raise ResourceTypeMismatchError(source.value, cls, type(record))
                by_source = grouped.setdefault(record.id, {})
                if source in by_source:
                    logger.warning(
                        "Duplicate %s '%s' from %s; keeping the first",
                        resource_type.value,
                        record.id,
                        source.value,
                    )
                    continue
                by_source[source] = record
        return grouped

    # ------------------------------------------------------------------
    # Per-record merge
    # ------------------------------------------------------------------

    def _merge_record(
        self,
        resource_type: ResourceType,
        resource_id: str,
        records: Mapping[SourceName, BaseModel],
        ledger: ProvenanceTracker,
        now: datetime,
    ) -> BaseModel:
        merged = record_class(resource_type)(id=resource_id)
        disputed: dict[str, dict[SourceName, Any]] = {}

        for spec in field_specs(resource_type):
            values = {s: get_field(r, spec.path) for s, r in records.items()}
            resolution = self.strategy.resolve_conflict(spec.path, values, resource_type)
            if not resolution.matched:
                continue
            present = present_values(spec.path, values, resource_type)
            if _disagree(present.values()):
                disputed[spec.path] = present
            merged = set_field(merged, spec.path, resolution.value)
            self._track(
                ledger,
                resource_type,
                resource_id,
                spec.path,
                resolution.source,
                resolution.value,
                now,
                resolution.reason,
            )

        if resource_type is ResourceType.MODEL:
            for root in AGGREGATOR_STRUCTURES:
                merged = self._take_from_aggregator(merged, records, root, ledger, now)
            merged = self._merge_features(merged, records, ledger, now)

        merged = self._stamp(merged, records, now)
        for path, present in disputed.items():
            self._flag_conflict(ledger, resource_type, resource_id, path, present)
        logger.debug(
            "Merged %s '%s' from %s",
            resource_type.value,
            resource_id,
            ", ".join(s.value for s in self.strategy.priority.rank(records)),
        )
        return merged

    def _aggregators(self, field_path: str) -> list[SourceName]:
        return self.strategy.priority.rank(AGGREGATOR_SOURCES, field_path)

    def _take_from_aggregator(
        self,
        merged: Model,
        records: Mapping[SourceName, BaseModel],
        root: str,
        ledger: ProvenanceTracker,
        now: datetime,
    ) -> Model:
        for source in self._aggregators(root):
            record = records.get(source)
            sub = getattr(record, root) if record is not None else None
            if sub is None:
                continue
            merged = merged.model_copy(update={root: sub})
            reason = f"aggregator owns {root}"
            self._track(ledger, ResourceType.MODEL, merged.id, root, source, sub, now, reason)
            for spec in field_specs(ResourceType.MODEL):
                if spec.root != root:
                    continue
                value = get_field(record, spec.path)
                if not is_unset(ResourceType.MODEL, spec.path, value):
                    self._track(
                        ledger, ResourceType.MODEL, merged.id, spec.path, source, value, now, reason
                    )
            return merged
        return merged

    def _merge_features(
        self,
        merged: Model,
        records: Mapping[SourceName, BaseModel],
        ledger: ProvenanceTracker,
        now: datetime,
    ) -> Model:
        features = merged.features
        api = records.get(SourceName.PROVIDER_API)

        if api is not None and api.features is not None:
            update: dict[str, Any] = {
                flag: getattr(api.features, flag) for flag in PROVIDER_CORE_FLAGS
            }
            update["modalities"] = api.features.modalities
            features = (features or ModelFeatures()).model_copy(update=update)
            reason = "provider API reports current capabilities"
            for flag in PROVIDER_CORE_FLAGS:
                self._track(
                    ledger, ResourceType.MODEL, merged.id, f"features.{flag}",
                    SourceName.PROVIDER_API, update[flag], now, reason,
                )
            self._track(
                ledger, ResourceType.MODEL, merged.id, "features.modalities",
                SourceName.PROVIDER_API, api.features.modalities, now, reason,
            )

        for source in self._aggregators("features"):
            record = records.get(source)
            if record is None or record.features is None:
                continue
            theirs = record.features
            current = features or ModelFeatures()
            update = {
                flag: True
                for flag in AGGREGATOR_FLAGS
                if getattr(theirs, flag) and not getattr(current, flag)
            }
            modalities = current.modalities
            if not modalities.input and theirs.modalities.input:
                modalities = modalities.model_copy(update={"input": theirs.modalities.input})
            if not modalities.output and theirs.modalities.output:
                modalities = modalities.model_copy(update={"output": theirs.modalities.output})
            if modalities is not current.modalities:
                update["modalities"] = modalities
            if not update and features is not None:
                continue
            features = current.model_copy(update=update)
            for key, value in sorted(update.items()):
                self._track(
                    ledger, ResourceType.MODEL, merged.id, f"features.{key}",
                    source, value, now, "aggregator capability added",
                )

        if features is merged.features:
            return merged
        return merged.model_copy(update={"features": features})

    def _stamp(
        self, merged: BaseModel, records: Mapping[SourceName, BaseModel], now: datetime
    ) -> BaseModel:
        created = None
        for source in self.strategy.priority.rank(records, "created_at"):
            created = records[source].created_at
            if created is not None:
                break
        return merged.model_copy(
            update={"created_at": created or now, "updated_at": now}
        )

    def _track(
        self,
        ledger: ProvenanceTracker,
        resource_type: ResourceType,
        resource_id: str,
        field: str,
        source: SourceName | None,
        value: Any,
        now: datetime,
        reason: str,
    ) -> None:
        if source is None:
            return
        info = ProvenanceInfo(
            source=source, field=field, value=value, timestamp=now, reason=reason
        )
        ledger.track(resource_type, resource_id, field, info)
        if self.tracker is not None:
            self.tracker.track(resource_type, resource_id, field, info)

    def _flag_conflict(
        self,
        ledger: ProvenanceTracker,
        resource_type: ResourceType,
        resource_id: str,
        field: str,
        present: Mapping[SourceName, Any],
    ) -> None:
        """Record that *present* disagreed, naming the source that won."""
        entry = ledger.get(resource_type, resource_id, field)
        if entry is None:
            return
        ranked = self.strategy.priority.rank(present, field)
        conflict = ProvenanceConflict(
            sources=ranked,
            values=[present[s] for s in ranked],
            selected=entry.current.source,
            reason=entry.current.reason,
        )
        logger.debug(
            "Sources disagree on %s '%s' %s; %s selected",
            resource_type.value,
            resource_id,
            field,
            conflict.selected.value,
        )
        ledger.record_conflict(resource_type, resource_id, field, conflict)
        if self.tracker is not None:
            self.tracker.record_conflict(resource_type, resource_id, field, conflict)


def _disagree(values: Iterable[Any]) -> bool:
    values = list(values)
    return any(value != values[0] for value in values[1:])
