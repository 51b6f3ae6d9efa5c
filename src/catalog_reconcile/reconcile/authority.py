"""Field authority rules: which source is trusted for which field.

An ``AuthorityTable`` is an immutable, ordered collection of
``AuthorityRule`` entries.  Rule paths may be exact (``"limits.context_window"``),
prefix wildcards (``"pricing.*"``) or ``fnmatch`` patterns
(``"features.top_?"``).

When several rules match a path, the best one is chosen by:

1. **Priority** -- higher wins.
2. **Specificity** -- the longer pattern wins.
3. **Declaration order** -- the earlier rule wins.

Fields with no matching rule have no fixed authority; the strategy falls
back to its source-priority order for them.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from .models import ResourceType, SourceName


class AuthorityRule(BaseModel):
    """One ``{field_path, resource_type} -> source`` rule."""

    field_path: str
    resource_type: ResourceType
    source: SourceName
    priority: int = 100

    model_config = {"frozen": True}

    def matches(self, field_path: str) -> bool:
        return match_pattern(field_path, self.field_path)


def match_pattern(field_path: str, pattern: str) -> bool:
    """Check whether *field_path* matches an authority *pattern*.

    Supports exact matches, a trailing ``*`` as a prefix match, and
    ``fnmatch`` wildcards.
    """
    if field_path == pattern:
        return True
    if pattern.endswith("*") and field_path.startswith(pattern[:-1]):
        return True
    return fnmatch.fnmatchcase(field_path, pattern)


class AuthorityTable:
    """Immutable lookup from ``(field_path, resource_type)`` to a source.

    Args:
        rules: Rules in declaration order.  The order only matters for
            breaking ties between equally specific rules.
    """

    def __init__(self, rules: Iterable[AuthorityRule] = ()) -> None:
        self._rules: tuple[AuthorityRule, ...] = tuple(rules)

    @property
    def rules(self) -> tuple[AuthorityRule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"AuthorityTable({len(self._rules)} rules)"

    def rules_for(self, resource_type: ResourceType) -> list[AuthorityRule]:
        """All rules declared for *resource_type*, in declaration order."""
        return [r for r in self._rules if r.resource_type == resource_type]

    def authorities_for(
        self, field_path: str, resource_type: ResourceType
    ) -> list[AuthorityRule]:
        """Return every rule matching *field_path*, best first."""
        ranked = [
            (index, rule)
            for index, rule in enumerate(self._rules)
            if rule.resource_type == resource_type and rule.matches(field_path)
        ]
        ranked.sort(
            key=lambda item: (
                -item[1].priority,
                -len(item[1].field_path),
                item[0],
            )
        )
        return [rule for _, rule in ranked]

    def get_authority(
        self, field_path: str, resource_type: ResourceType
    ) -> AuthorityRule | None:
        """Return the single best rule for *field_path*, or ``None``."""
        matches = self.authorities_for(field_path, resource_type)
        return matches[0] if matches else None

    def merged_with(self, other: AuthorityTable) -> AuthorityTable:
        """Return a new table with *other*'s rules appended after ours."""
        return AuthorityTable(self._rules + other.rules)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> AuthorityTable:
        """Build a table from ``{field_path, resource_type, source[, priority]}`` rows.

        Raises:
            pydantic.ValidationError: If a row names an unknown resource
                type or source, or is missing a required key.
        """
        return cls(AuthorityRule.model_validate(dict(row)) for row in rows)


# ---------------------------------------------------------------------------
# Default policy
# ---------------------------------------------------------------------------

_HTTP = SourceName.MODELS_DEV_HTTP
_GIT = SourceName.MODELS_DEV_GIT
_API = SourceName.PROVIDER_API
_LOCAL = SourceName.LOCAL_CATALOG

# Sampling-parameter support is reported live by the provider API.
_PROVIDER_API_FEATURES = (
    "streaming",
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop",
    "seed",
    "logprobs",
)


def _rule(
    path: str, resource_type: ResourceType, source: SourceName, priority: int
) -> AuthorityRule:
    return AuthorityRule(
        field_path=path,
        resource_type=resource_type,
        source=source,
        priority=priority,
    )


def _model_rules() -> list[AuthorityRule]:
    m = ResourceType.MODEL
    rules = [
        _rule("pricing.*", m, _HTTP, 110),
        _rule("pricing.*", m, _GIT, 100),
        _rule("limits.*", m, _HTTP, 100),
        _rule("limits.*", m, _GIT, 90),
        _rule("metadata.knowledge_cutoff", m, _HTTP, 110),
        _rule("metadata.knowledge_cutoff", m, _GIT, 100),
        _rule("metadata.*", m, _HTTP, 105),
        _rule("metadata.*", m, _GIT, 95),
        _rule("generation.*", m, _API, 85),
    ]
    rules.extend(
        _rule(f"features.{flag}", m, _API, 95) for flag in _PROVIDER_API_FEATURES
    )
    return rules


def _provider_rules() -> list[AuthorityRule]:
    p = ResourceType.PROVIDER
    return [
        _rule("api_key.*", p, _LOCAL, 100),
        _rule("catalog.*", p, _LOCAL, 95),
        _rule("chat_completions.*", p, _LOCAL, 95),
        _rule("status_page_url", p, _LOCAL, 85),
        _rule("privacy_policy.*", p, _HTTP, 90),
        _rule("retention_policy.*", p, _HTTP, 90),
        _rule("governance_policy.*", p, _HTTP, 90),
        _rule("privacy_policy.*", p, _GIT, 85),
        _rule("retention_policy.*", p, _GIT, 85),
        _rule("governance_policy.*", p, _GIT, 85),
    ]


def _author_rules() -> list[AuthorityRule]:
    a = ResourceType.AUTHOR
    return [
        _rule("catalog.*", a, _LOCAL, 90),
        _rule("website", a, _LOCAL, 85),
        _rule("website", a, _HTTP, 75),
        _rule("website", a, _GIT, 65),
    ]


def default_authorities() -> AuthorityTable:
    """Build the default authority table.

    Identity fields (``name``, ``description``, ``authors``) have no
    authority.  Pricing, limits and metadata belong to the aggregator
    (HTTP before Git).  Live-capability flags and generation controls
    belong to the provider API.
    """
    return AuthorityTable([*_model_rules(), *_provider_rules(), *_author_rules()])
