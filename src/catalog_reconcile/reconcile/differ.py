"""Changeset differ for catalog records.

Compares an existing set of records with a new one (typically the output
of an N-way merge) and reports which ids were added, updated or removed.
Updated records carry one ``FieldChange`` per registered field path that
differs, in registry order.  Unset values (``None``, empty strings and
containers, zero defaults) compare equal to each other, so filling in a
default never shows up as a change.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from catalog_reconcile.catalog.models import Author, Model, Provider

from .authority import match_pattern
from .fieldpath import field_specs, get_field, is_unset
from .models import (
    Changeset,
    ChangeType,
    FieldChange,
    FieldProvenance,
    RecordUpdate,
    ResourceType,
    provenance_key,
)

logger = logging.getLogger(__name__)


class Differ:
    """Detect changes between two record sets of one resource type.

    Args:
        ignore_fields: Field patterns never reported.  A pattern also hides
            the fields beneath it, so ``"pricing"`` ignores ``pricing.*``.
        deep: When ``False``, each top-level field is compared as a whole
            instead of leaf by leaf.
    """

    def __init__(self, ignore_fields: Iterable[str] = (), deep: bool = True) -> None:
        self.ignore_fields: tuple[str, ...] = tuple(ignore_fields)
        self.deep = deep

    def diff_models(
        self,
        existing: Iterable[Model],
        new: Iterable[Model],
        provenance: Mapping[str, FieldProvenance] | None = None,
    ) -> Changeset:
        return self.diff(ResourceType.MODEL, existing, new, provenance)

    def diff_providers(
        self,
        existing: Iterable[Provider],
        new: Iterable[Provider],
        provenance: Mapping[str, FieldProvenance] | None = None,
    ) -> Changeset:
        return self.diff(ResourceType.PROVIDER, existing, new, provenance)

    def diff_authors(
        self,
        existing: Iterable[Author],
        new: Iterable[Author],
        provenance: Mapping[str, FieldProvenance] | None = None,
    ) -> Changeset:
        return self.diff(ResourceType.AUTHOR, existing, new, provenance)

    def diff(
        self,
        resource_type: ResourceType,
        existing: Iterable[BaseModel],
        new: Iterable[BaseModel],
        provenance: Mapping[str, FieldProvenance] | None = None,
    ) -> Changeset:
        """Compare *existing* with *new*.

        Args:
            resource_type: Kind of records compared.
            existing: Records before the change.
            new: Records after the change.
            provenance: When given, each ``FieldChange`` names the source
                that supplied its new value.

        Returns:
            A ``Changeset`` with every list sorted by id.
        """
        before = _index(existing)
        after = _index(new)

        added = [after[rid] for rid in sorted(after) if rid not in before]
        removed = [before[rid] for rid in sorted(before) if rid not in after]
        updated: list[RecordUpdate] = []
        for rid in sorted(after):
            if rid not in before:
                continue
            changes = self.diff_record(
                resource_type, before[rid], after[rid], provenance
            )
            if changes:
                updated.append(
                    RecordUpdate(
                        id=rid, existing=before[rid], new=after[rid], changes=changes
                    )
                )

        changeset = Changeset(
            resource_type=resource_type,
            added=added,
            updated=updated,
            removed=removed,
        )
        logger.info("%s", changeset.describe())
        return changeset

    def diff_record(
        self,
        resource_type: ResourceType,
        existing: BaseModel,
        new: BaseModel,
        provenance: Mapping[str, FieldProvenance] | None = None,
    ) -> list[FieldChange]:
        """Return the field changes from *existing* to *new*."""
        changes: list[FieldChange] = []
        for path in self._paths(resource_type):
            old_value = get_field(existing, path)
            new_value = get_field(new, path)
            old_unset = is_unset(resource_type, path, old_value)
            new_unset = is_unset(resource_type, path, new_value)
            if old_unset and new_unset:
                continue
            if old_value == new_value:
                continue

            if old_unset:
                change_type = ChangeType.ADD
            elif new_unset:
                change_type = ChangeType.REMOVE
            else:
                change_type = ChangeType.UPDATE

            source = None
            if provenance is not None:
                entry = provenance.get(provenance_key(resource_type, new.id, path))
                if entry is not None:
                    source = entry.current.source

            changes.append(
                FieldChange(
                    path=path,
                    old=old_value,
                    new=new_value,
                    type=change_type,
                    source=source,
                )
            )
        return changes

    def _paths(self, resource_type: ResourceType) -> list[str]:
        paths: list[str] = []
        for spec in field_specs(resource_type):
            path = spec.path if self.deep else spec.root
            if path in paths or self._ignored(path):
                continue
            paths.append(path)
        return paths

    def _ignored(self, path: str) -> bool:
        return any(
            match_pattern(path, pattern) or path.startswith(pattern + ".")
            for pattern in self.ignore_fields
        )


def _index(records: Iterable[BaseModel]) -> dict[str, BaseModel]:
    """Index records by id; the first record of a duplicated id wins."""
    indexed: dict[str, Any] = {}
    for record in records:
        if record is None:
            continue
        indexed.setdefault(record.id, record)
    return indexed
