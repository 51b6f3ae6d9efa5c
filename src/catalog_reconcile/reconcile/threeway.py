"""Three-way merge of a single record against a common ancestor.

Each registered field is compared across ``(base, ours, theirs)``:

==============  ================  ===============  ==========================
base vs ours    base vs theirs    ours vs theirs   outcome
==============  ================  ===============  ==========================
equal           equal             --               unchanged (base)
changed         equal             --               ours
equal           changed           --               theirs
changed         changed           equal            ours (convergent change)
changed         changed           different        conflict
==============  ================  ===============  ==========================

Conflicts are classified by the field's ``MergePolicy``:

- ``NUMERIC_MAX``: auto-mergeable, suggestion is the larger value.
- ``SET_UNION``: auto-mergeable, suggestion is the de-duplicated union.
- ``TAKE_EITHER``: auto-mergeable, suggestion is ours.
- ``MANUAL``: not mergeable; the merged record keeps the side an
  authority rule names for the field, else the first side in the
  three-way priority order (ours by default).

``BOOLEAN_OR`` fields never conflict.  They are combined as
``base or ours or theirs`` before any other field is diffed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from catalog_reconcile.catalog.models import Author, Model, Provider

from .authority import AuthorityTable
from .errors import MissingResourceError, ResourceTypeMismatchError
from .fieldpath import FieldSpec, field_specs, get_field, is_absent, record_class, set_field
from .models import (
    Conflict,
    ConflictType,
    MergePolicy,
    ProvenanceInfo,
    ResourceType,
    SourceName,
)
from .provenance import ProvenanceTracker
from .strategic import Clock, utc_now
from .strategy import THREE_WAY_PRIORITY, SourcePriority

logger = logging.getLogger(__name__)

_THREE_WAY_SOURCES = (SourceName.OURS, SourceName.THEIRS, SourceName.BASE)


def _normalize(value: Any) -> Any:
    return None if is_absent(value) else value


def values_equal(a: Any, b: Any, policy: MergePolicy = MergePolicy.MANUAL) -> bool:
    """Compare two field values; set-valued fields ignore order and duplicates."""
    a, b = _normalize(a), _normalize(b)
    if policy is MergePolicy.SET_UNION:
        return set(a or ()) == set(b or ())
    return a == b


def union(ours: Any, theirs: Any) -> list[Any]:
    """Ours' items in order, then theirs' new items, without duplicates."""
    result: list[Any] = []
    for item in [*(ours or ()), *(theirs or ())]:
        if item not in result:
            result.append(item)
    return result


def numeric_max(ours: Any, theirs: Any) -> Any:
    candidates = [v for v in (ours, theirs) if v is not None]
    return max(candidates) if candidates else None


class ThreeWayMerger:
    """Merge divergent edits of one record against their common base.

    Args:
        authorities: Optional rules naming ``ours``, ``theirs`` or ``base``
            as the default side for non-mergeable conflicts.
        priority: Fallback side order for non-mergeable conflicts.
        tracker: Optional ledger; every field that ends up with a value
            other than ours is tracked.
        clock: Timestamp source for provenance entries.
    """

    def __init__(
        self,
        authorities: AuthorityTable | None = None,
        priority: SourcePriority = THREE_WAY_PRIORITY,
        tracker: ProvenanceTracker | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.authorities = authorities or AuthorityTable()
        self.priority = priority
        self.tracker = tracker
        self._clock = clock or utc_now

    def merge_models(
        self, base: Model | None, ours: Model | None, theirs: Model | None
    ) -> tuple[Model, list[Conflict]]:
        return self.merge(ResourceType.MODEL, base, ours, theirs)  # type: ignore[return-value]

    def merge_providers(
        self, base: Provider | None, ours: Provider | None, theirs: Provider | None
    ) -> tuple[Provider, list[Conflict]]:
        return self.merge(ResourceType.PROVIDER, base, ours, theirs)  # type: ignore[return-value]

    def merge_authors(
        self, base: Author | None, ours: Author | None, theirs: Author | None
    ) -> tuple[Author, list[Conflict]]:
        return self.merge(ResourceType.AUTHOR, base, ours, theirs)  # type: ignore[return-value]

    def merge(
        self,
        resource_type: ResourceType,
        base: BaseModel | None,
        ours: BaseModel | None,
        theirs: BaseModel | None,
    ) -> tuple[BaseModel, list[Conflict]]:
        """Merge *ours* and *theirs* against *base*.

        Returns:
            Tuple of ``(merged record, conflicts in field order)``.

        Raises:
            MissingResourceError: If any input is ``None``.
            ResourceTypeMismatchError: If any input has the wrong class.
        """
        cls = record_class(resource_type)
        for role, record in (("base", base), ("ours", ours), ("theirs", theirs)):
            if record is None:
                raise MissingResourceError(role)
            if not isinstance(record, cls):
                raise ResourceTypeMismatchError(role, cls, type(record))

        now = self._clock()
        merged = ours
        conflicts: list[Conflict] = []

        if ours.id != theirs.id:
            conflicts.append(
                Conflict(path="id", base=base.id, ours=ours.id, theirs=theirs.id)
            )

        specs = field_specs(resource_type)
        for spec in specs:
            if spec.policy is MergePolicy.BOOLEAN_OR:
                merged = self._or_combine(resource_type, spec, base, ours, theirs, merged, now)

        for spec in specs:
            if spec.policy is MergePolicy.BOOLEAN_OR:
                continue
            merged, conflict = self._merge_field(
                resource_type, spec, base, ours, theirs, merged, now
            )
            if conflict is not None:
                conflicts.append(conflict)

        logger.debug(
            "Three-way merge of %s '%s': %d conflict(s)",
            resource_type.value,
            ours.id,
            len(conflicts),
        )
        return merged, conflicts

    # ------------------------------------------------------------------
    # Field handling
    # ------------------------------------------------------------------

    def _or_combine(
        self,
        resource_type: ResourceType,
        spec: FieldSpec,
        base: BaseModel,
        ours: BaseModel,
        theirs: BaseModel,
        merged: BaseModel,
        now: datetime,
    ) -> BaseModel:
        values = [get_field(r, spec.path) for r in (base, ours, theirs)]
        if all(v is None for v in values):
            return merged
        combined = any(bool(v) for v in values)
        if combined == bool(values[1]):
            return merged
        source = SourceName.THEIRS if bool(values[2]) == combined else SourceName.BASE
        self._track(resource_type, ours.id, spec.path, source, combined, now, "boolean OR")
        return set_field(merged, spec.path, combined)

    def _merge_field(
        self,
        resource_type: ResourceType,
        spec: FieldSpec,
        base: BaseModel,
        ours: BaseModel,
        theirs: BaseModel,
        merged: BaseModel,
        now: datetime,
    ) -> tuple[BaseModel, Conflict | None]:
        path, policy = spec.path, spec.policy
        b = get_field(base, path)
        o = get_field(ours, path)
        t = get_field(theirs, path)

        if values_equal(b, t, policy):
            return merged, None
        if values_equal(b, o, policy):
            self._track(resource_type, ours.id, path, SourceName.THEIRS, t, now, "their change")
            return set_field(merged, path, t), None
        if values_equal(o, t, policy):
            return merged, None

        conflict = self._classify(path, policy, b, o, t)
        if conflict.can_merge:
            value, source, reason = conflict.suggested, SourceName.THEIRS, policy.value
        else:
            source = self._default_side(resource_type, path)
            value = {SourceName.OURS: o, SourceName.THEIRS: t, SourceName.BASE: b}[source]
            reason = "ours by default" if source is SourceName.OURS else "default side"

        if values_equal(value, o, policy):
            return merged, conflict
        self._track(resource_type, ours.id, path, source, value, now, reason)
        return set_field(merged, path, value), conflict

    def _classify(
        self, path: str, policy: MergePolicy, base: Any, ours: Any, theirs: Any
    ) -> Conflict:
        can_merge = True
        suggested: Any = None
        if policy is MergePolicy.NUMERIC_MAX:
            suggested = numeric_max(ours, theirs)
        elif policy is MergePolicy.SET_UNION:
            suggested = union(ours, theirs)
        elif policy is MergePolicy.TAKE_EITHER:
            suggested = ours
        else:
            can_merge = False
        return Conflict(
            path=path,
            base=base,
            ours=ours,
            theirs=theirs,
            type=ConflictType.MODIFIED,
            can_merge=can_merge,
            suggested=suggested,
        )

    def _default_side(self, resource_type: ResourceType, path: str) -> SourceName:
        for rule in self.authorities.authorities_for(path, resource_type):
            if rule.source in _THREE_WAY_SOURCES:
                return rule.source
        return self.priority.rank(_THREE_WAY_SOURCES, path)[0]

    def _track(
        self,
        resource_type: ResourceType,
        resource_id: str,
        field: str,
        source: SourceName,
        value: Any,
        now: datetime,
        reason: str,
    ) -> None:
        if self.tracker is None:
            return
        self.tracker.track(
            resource_type,
            resource_id,
            field,
            ProvenanceInfo(
                source=source, field=field, value=value, timestamp=now, reason=reason
            ),
        )
