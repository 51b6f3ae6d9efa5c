"""Conflict resolution strategies for three-way merges.

Provides one resolver per blanket policy:

- ``OursResolver``: Always picks our value.
- ``TheirsResolver``: Always picks their value.
- ``BaseResolver``: Reverts to the common ancestor's value.
- ``MergeResolver``: Takes the auto-merge suggestion when one exists,
  otherwise falls back to our value.

The ``create_resolver()`` factory maps strategy names to resolver
instances.  ``resolve_conflicts()`` applies one strategy to a batch, and
``apply_resolutions()`` writes the chosen values into a record.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, TypeVar

from pydantic import BaseModel

from .fieldpath import set_field
from .models import Conflict, ConflictResolution, Resolution

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    def resolve(self, conflict: Conflict) -> Resolution:
        """Choose the final value for a conflict.

        Args:
            conflict: The conflicting field and its three values.

        Returns:
            A ``Resolution`` for the same path.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class OursResolver:
    """Always resolve in favour of our side."""

    def resolve(self, conflict: Conflict) -> Resolution:
        return Resolution(
            path=conflict.path,
            value=conflict.ours,
            decision=ConflictResolution.OURS,
            reason="Taking our changes",
        )


class TheirsResolver:
    """Always resolve in favour of their side."""

    def resolve(self, conflict: Conflict) -> Resolution:
        return Resolution(
            path=conflict.path,
            value=conflict.theirs,
            decision=ConflictResolution.THEIRS,
            reason="Taking their changes",
        )


class BaseResolver:
    """Discard both edits and keep the common ancestor's value."""

    def resolve(self, conflict: Conflict) -> Resolution:
        return Resolution(
            path=conflict.path,
            value=conflict.base,
            decision=ConflictResolution.BASE,
            reason="Reverting to base",
        )


class MergeResolver:
    """Use the auto-merge suggestion, falling back to our side."""

    def resolve(self, conflict: Conflict) -> Resolution:
        if conflict.can_merge:
            return Resolution(
                path=conflict.path,
                value=conflict.suggested,
                decision=ConflictResolution.MERGE,
                reason="Auto-merged",
            )
        logger.debug(
            "Conflict on %s cannot be auto-merged; keeping ours", conflict.path
        )
        return Resolution(
            path=conflict.path,
            value=conflict.ours,
            decision=ConflictResolution.MERGE,
            reason="Cannot auto-merge, taking our changes",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[ConflictResolution, type] = {
    ConflictResolution.OURS: OursResolver,
    ConflictResolution.THEIRS: TheirsResolver,
    ConflictResolution.BASE: BaseResolver,
    ConflictResolution.MERGE: MergeResolver,
}


def create_resolver(strategy: ConflictResolution | str) -> ConflictResolver:
    """Create a conflict resolver for the given strategy.

    Args:
        strategy: A ``ConflictResolution`` or one of ``"ours"``,
            ``"theirs"``, ``"base"``, ``"merge"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy is not recognised.
    """
    try:
        key = ConflictResolution(strategy)
    except ValueError:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. "
            f"Valid strategies: {sorted(s.value for s in _STRATEGY_MAP)}"
        ) from None
    return _STRATEGY_MAP[key]()  # type: ignore[return-value]


def resolve_conflicts(
    conflicts: Iterable[Conflict], strategy: ConflictResolution | str
) -> list[Resolution]:
    """Resolve every conflict with one strategy, preserving input order."""
    resolver = create_resolver(strategy)
    return [resolver.resolve(conflict) for conflict in conflicts]


def apply_resolutions(record: RecordT, resolutions: Iterable[Resolution]) -> RecordT:
    """Return a copy of *record* with each resolution's value written in."""
    for resolution in resolutions:
        record = set_field(record, resolution.path, resolution.value)  # type: ignore[assignment]
    return record
