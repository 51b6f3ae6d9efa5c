"""Conflict resolution strategies for N-way field merges.

Given the candidate values for one field keyed by source, a strategy
picks a single winner.  Unset values never win: ``None``, empty strings
and containers, and leaves still at a zero default such as
``limits.context_window == 0``.

- ``AuthorityStrategy``: authority rules matching the field, best first;
  then the ``SourcePriority`` fallback order for the field.
- ``SourcePriorityStrategy``: the fallback order alone.
- ``UnionStrategy``: first value present in the fallback order; its
  changesets include removals.
- ``CustomStrategy``: a caller-supplied function.
- ``StrategyChain``: the first strategy in a list that finds a value.

``create_strategy()`` maps a ``StrategyKind`` to an instance.  Candidates
are never visited in mapping order, so the same input always produces the
same winner.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, NamedTuple, Protocol

from .authority import AuthorityTable, match_pattern
from .fieldpath import is_unset
from .models import ApplyStrategy, ResourceType, SourceName, StrategyKind

logger = logging.getLogger(__name__)


class SourcePriority:
    """Fallback source order, optionally overridden per field pattern.

    Args:
        order: Default order, most trusted first.
        overrides: ``{field_pattern: order}``.  When several patterns match
            a field, the longest pattern wins.
    """

    def __init__(
        self,
        order: Iterable[SourceName],
        overrides: Mapping[str, Iterable[SourceName]] | None = None,
    ) -> None:
        self._order: tuple[SourceName, ...] = tuple(order)
        if len(set(self._order)) != len(self._order):
            raise ValueError("Source priority order contains duplicates")
        self._overrides: dict[str, tuple[SourceName, ...]] = {
            pattern: tuple(sources)
            for pattern, sources in (overrides or {}).items()
        }

    @property
    def order(self) -> tuple[SourceName, ...]:
        return self._order

    @property
    def overrides(self) -> dict[str, tuple[SourceName, ...]]:
        return dict(self._overrides)

    def __repr__(self) -> str:
        names = " > ".join(s.value for s in self._order)
        return f"SourcePriority({names}, overrides={len(self._overrides)})"

    def order_for(self, field_path: str) -> tuple[SourceName, ...]:
        """Return the fallback order that applies to *field_path*."""
        matching = sorted(
            (p for p in self._overrides if match_pattern(field_path, p)),
            key=lambda p: (-len(p), p),
        )
        if matching:
            return self._overrides[matching[0]]
        return self._order

    def rank(
        self, sources: Iterable[SourceName], field_path: str = ""
    ) -> list[SourceName]:
        """Sort *sources* by priority for *field_path*.

        Sources missing from the order come last, alphabetically.
        """
        order = self.order_for(field_path)
        position = {source: i for i, source in enumerate(order)}
        return sorted(
            set(sources),
            key=lambda s: (position.get(s, len(order)), s.value),
        )


DEFAULT_SOURCE_PRIORITY = SourcePriority(
    [
        SourceName.LOCAL_CATALOG,
        SourceName.MODELS_DEV_HTTP,
        SourceName.MODELS_DEV_GIT,
        SourceName.PROVIDER_API,
    ]
)

THREE_WAY_PRIORITY = SourcePriority(
    [SourceName.OURS, SourceName.THEIRS, SourceName.BASE]
)


class FieldResolution(NamedTuple):
    """Outcome of resolving one field.

    ``matched`` is ``False`` only when no source supplied a value.
    """

    value: Any
    source: SourceName | None
    matched: bool
    reason: str = ""


NO_VALUE = FieldResolution(None, None, False)


def present_values(
    field_path: str,
    values: Mapping[SourceName, Any],
    resource_type: ResourceType = ResourceType.MODEL,
) -> dict[SourceName, Any]:
    """Drop the sources that left *field_path* unset."""
    return {
        s: v for s, v in values.items() if not is_unset(resource_type, field_path, v)
    }


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class FieldStrategy(Protocol):
    """Protocol that all N-way field strategies must satisfy.

    Attributes:
        name: Short identifier used in logs and resolution reasons.
        description: Human-readable summary.
        priority: Source order the merger uses for composite structures
            and timestamps.
        apply_strategy: Which parts of a changeset this strategy applies.
    """

    name: str
    description: str
    priority: SourcePriority
    apply_strategy: ApplyStrategy

    def resolve_conflict(
        self,
        field_path: str,
        values: Mapping[SourceName, Any],
        resource_type: ResourceType = ResourceType.MODEL,
    ) -> FieldResolution:
        """Pick the winning value for *field_path* among *values*."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class AuthorityStrategy:
    """Resolve field values using authority rules, then source priority.

    Args:
        authorities: Authority rules to consult first.
        priority: Fallback order used when no authority applies.
    """

    name = StrategyKind.AUTHORITY.value
    description = "Resolves conflicts using field authority priorities"
    apply_strategy = ApplyStrategy.ADDITIVE

    def __init__(
        self,
        authorities: AuthorityTable,
        priority: SourcePriority = DEFAULT_SOURCE_PRIORITY,
    ) -> None:
        self.authorities = authorities
        self.priority = priority

    def resolve_conflict(
        self,
        field_path: str,
        values: Mapping[SourceName, Any],
        resource_type: ResourceType = ResourceType.MODEL,
    ) -> FieldResolution:
        present = present_values(field_path, values, resource_type)
        if not present:
            return NO_VALUE

        for rule in self.authorities.authorities_for(field_path, resource_type):
            if rule.source in present:
                return FieldResolution(
                    present[rule.source],
                    rule.source,
                    True,
                    f"authority {rule.field_path} (priority {rule.priority})",
                )

        winner = self.priority.rank(present, field_path)[0]
        logger.debug(
            "No authority for %s.%s; %s wins by source priority",
            resource_type.value,
            field_path,
            winner.value,
        )
        return FieldResolution(present[winner], winner, True, "source priority")


class SourcePriorityStrategy:
    """Ignore authorities; the first source in the fallback order wins.

    Args:
        priority: A ``SourcePriority`` or a plain order, most trusted first.
    """

    name = StrategyKind.SOURCE_PRIORITY.value
    apply_strategy = ApplyStrategy.ADDITIVE

    def __init__(
        self, priority: SourcePriority | Iterable[SourceName] = DEFAULT_SOURCE_PRIORITY
    ) -> None:
        if not isinstance(priority, SourcePriority):
            priority = SourcePriority(priority)
        self.priority = priority
        order = ", ".join(s.value for s in priority.order)
        self.description = f"Resolves conflicts using source priority: {order}"

    def resolve_conflict(
        self,
        field_path: str,
        values: Mapping[SourceName, Any],
        resource_type: ResourceType = ResourceType.MODEL,
    ) -> FieldResolution:
        present = present_values(field_path, values, resource_type)
        if not present:
            return NO_VALUE
        winner = self.priority.rank(present, field_path)[0]
        return FieldResolution(present[winner], winner, True, self._reason(winner))

    def _reason(self, winner: SourceName) -> str:
        return f"source priority ({winner.value})"


class UnionStrategy(SourcePriorityStrategy):
    """Combine every source; the first value present wins a field.

    Unlike the other built-ins, its changesets keep removals.
    """

    name = StrategyKind.UNION.value
    apply_strategy = ApplyStrategy.ALL

    def __init__(
        self, priority: SourcePriority | Iterable[SourceName] = DEFAULT_SOURCE_PRIORITY
    ) -> None:
        super().__init__(priority)
        self.description = "Combines all sources without authority rules"

    def _reason(self, winner: SourceName) -> str:
        return f"union: first value present (source: {winner.value})"


Resolve = Callable[[str, Mapping[SourceName, Any], ResourceType], FieldResolution]


class CustomStrategy:
    """Delegate field resolution to a caller-supplied function.

    *resolve* receives ``(field_path, present_values, resource_type)``
    with unset values already removed, and is never called when no source
    supplied a value.
    """

    apply_strategy = ApplyStrategy.ADDITIVE

    def __init__(
        self,
        name: str,
        resolve: Resolve,
        description: str = "",
        priority: SourcePriority = DEFAULT_SOURCE_PRIORITY,
    ) -> None:
        self.name = name
        self.description = description or f"Custom strategy '{name}'"
        self.priority = priority
        self._resolve = resolve

    def resolve_conflict(
        self,
        field_path: str,
        values: Mapping[SourceName, Any],
        resource_type: ResourceType = ResourceType.MODEL,
    ) -> FieldResolution:
        present = present_values(field_path, values, resource_type)
        if not present:
            return NO_VALUE
        return self._resolve(field_path, present, resource_type)


class StrategyChain:
    """Try several strategies in order until one finds a value.

    The chain takes its priority and apply strategy from the first member.

    Raises:
        ValueError: If *strategies* is empty.
    """

    description = "Tries multiple strategies in order until one succeeds"

    def __init__(self, *strategies: FieldStrategy) -> None:
        if not strategies:
            raise ValueError("A strategy chain needs at least one strategy")
        self.strategies = strategies
        self.name = f"chain({' -> '.join(s.name for s in strategies)})"
        self.priority = strategies[0].priority
        self.apply_strategy = strategies[0].apply_strategy

    def resolve_conflict(
        self,
        field_path: str,
        values: Mapping[SourceName, Any],
        resource_type: ResourceType = ResourceType.MODEL,
    ) -> FieldResolution:
        for strategy in self.strategies:
            resolution = strategy.resolve_conflict(field_path, values, resource_type)
            if resolution.matched:
                return resolution._replace(
                    reason=f"{resolution.reason} (via {strategy.name})"
                )
        return NO_VALUE


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_strategy(
    kind: StrategyKind | str,
    authorities: AuthorityTable | None = None,
    priority: SourcePriority = DEFAULT_SOURCE_PRIORITY,
) -> FieldStrategy:
    """Create a built-in field strategy.

    Args:
        kind: A ``StrategyKind`` or its value, e.g. ``"union"``.
        authorities: Rules for the authority-based strategy; an empty table
            when omitted.
        priority: Fallback source order.

    Raises:
        ValueError: If *kind* is not recognised.
    """
    try:
        key = StrategyKind(kind)
    except ValueError:
        raise ValueError(
            f"Unknown merge strategy: '{kind}'. "
            f"Valid strategies: {sorted(k.value for k in StrategyKind)}"
        ) from None
    if key is StrategyKind.AUTHORITY:
        table = authorities if authorities is not None else AuthorityTable()
        return AuthorityStrategy(table, priority)
    if key is StrategyKind.UNION:
        return UnionStrategy(priority)
    return SourcePriorityStrategy(priority)
