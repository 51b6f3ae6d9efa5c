"""In-memory provenance ledger.

Records, per ``(resource_type, resource_id, field)``, which source supplied
the current value, which entries it replaced, and the merges in which the
sources disagreed.  Accessors hand out deep copies so callers cannot alter
ledger state.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from pydantic import BaseModel

from .models import (
    FieldProvenance,
    ProvenanceConflict,
    ProvenanceInfo,
    ProvenanceMap,
    ResourceType,
    provenance_key,
)

logger = logging.getLogger(__name__)

_Key = tuple[ResourceType, str, str]


class ProvenanceTracker:
    """Append-only record of field winners.

    Args:
        enabled: When ``False``, ``track`` and ``record_conflict`` are no-ops.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._entries: dict[_Key, FieldProvenance] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def track(
        self,
        resource_type: ResourceType,
        resource_id: str,
        field: str,
        info: ProvenanceInfo,
    ) -> None:
        """Install *info* as current, pushing the previous current onto history."""
        if not self.enabled:
            return
        key = (resource_type, resource_id, field)
        existing = self._entries.get(key)
        if existing is None:
            entry = FieldProvenance(current=info)
        else:
            entry = existing.model_copy(
                update={
                    "current": info,
                    "history": [*existing.history, existing.current],
                }
            )
        self._entries[key] = entry
        logger.debug(
            "Tracked %s from %s",
            provenance_key(*key),
            info.source.value,
        )

    def record_conflict(
        self,
        resource_type: ResourceType,
        resource_id: str,
        field: str,
        conflict: ProvenanceConflict,
    ) -> None:
        """Attach *conflict* to a tracked field.

        Fields that were never tracked have nothing to attach to and are
        skipped.
        """
        if not self.enabled:
            return
        key = (resource_type, resource_id, field)
        existing = self._entries.get(key)
        if existing is None:
            logger.debug("No provenance for %s; conflict dropped", provenance_key(*key))
            return
        self._entries[key] = existing.model_copy(
            update={"conflicts": [*existing.conflicts, conflict]}
        )

    def get(
        self, resource_type: ResourceType, resource_id: str, field: str
    ) -> FieldProvenance | None:
        """Return a copy of the provenance for one field, or ``None``."""
        entry = self._entries.get((resource_type, resource_id, field))
        return entry.model_copy(deep=True) if entry is not None else None

    def get_resource(
        self, resource_type: ResourceType, resource_id: str
    ) -> dict[str, FieldProvenance]:
        """Return copies of all entries for one record, keyed by field."""
        return {
            field: entry.model_copy(deep=True)
            for (rtype, rid, field), entry in self._sorted()
            if rtype == resource_type and rid == resource_id
        }

    def export(self) -> ProvenanceMap:
        """Return a copy of the whole ledger keyed by ``"<type>.<id>.<field>"``."""
        return {
            provenance_key(*key): entry.model_copy(deep=True)
            for key, entry in self._sorted()
        }

    def report(self) -> list[ResourceProvenance]:
        """Group the ledger by record, sorted by type and id."""
        grouped: dict[tuple[ResourceType, str], dict[str, FieldProvenance]] = {}
        for (rtype, rid, field), entry in self._sorted():
            grouped.setdefault((rtype, rid), {})[field] = entry.model_copy(deep=True)
        return [
            ResourceProvenance(resource_type=rtype, resource_id=rid, fields=fields)
            for (rtype, rid), fields in grouped.items()
        ]

    def clear(self) -> None:
        self._entries.clear()

    def _sorted(self) -> list[tuple[_Key, FieldProvenance]]:
        return sorted(
            self._entries.items(),
            key=lambda item: (item[0][0].value, item[0][1], item[0][2]),
        )


class ResourceProvenance(BaseModel):
    """All tracked fields of one record."""

    resource_type: ResourceType
    resource_id: str
    fields: dict[str, FieldProvenance] = {}

    model_config = {"frozen": True}

    @property
    def conflicted_fields(self) -> list[str]:
        return sorted(f for f, entry in self.fields.items() if entry.has_conflicts)


def find_conflicts(
    provenance: Mapping[str, FieldProvenance],
) -> dict[str, list[ProvenanceConflict]]:
    """Return the conflicts of every disagreed-on field, keyed and sorted."""
    return {
        key: list(provenance[key].conflicts)
        for key in sorted(provenance)
        if provenance[key].has_conflicts
    }
