"""Unified configuration schema for catalog_reconcile.

Defines Pydantic models for the unified config structure with dedicated
sections for the reconciliation engine and logging.

Usage:
    from catalog_reconcile.config_loader import load_hierarchical_config
    from catalog_reconcile.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

from .reconcile.models import ConflictResolution, ResourceType, SourceName, StrategyKind

logger = logging.getLogger(__name__)

_NWAY = [
    SourceName.LOCAL_CATALOG,
    SourceName.MODELS_DEV_HTTP,
    SourceName.MODELS_DEV_GIT,
    SourceName.PROVIDER_API,
]


def _no_duplicates(sources: list[SourceName]) -> list[SourceName]:
    if len(set(sources)) != len(sources):
        raise ValueError("source order must not contain duplicates")
    return sources


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class AuthorityRow(BaseModel):
    """One ``{field_path, resource_type, source[, priority]}`` authority row."""

    field_path: str
    resource_type: ResourceType = ResourceType.MODEL
    source: SourceName
    priority: int = 100

    model_config = {"frozen": True}


class ReconcileConfig(BaseModel):
    """Reconciliation engine settings.

    Every field has a default, so an empty section reproduces the built-in
    behaviour.
    """

    source_priority: list[SourceName] = Field(
        default_factory=lambda: list(_NWAY),
        description="Fallback order for N-way merges, most trusted first",
    )
    field_priorities: dict[str, list[SourceName]] = Field(
        default_factory=dict,
        description="Per-field-pattern overrides of source_priority",
    )
    three_way_priority: list[SourceName] = Field(
        default_factory=lambda: [
            SourceName.OURS,
            SourceName.THEIRS,
            SourceName.BASE,
        ],
        description="Fallback order for three-way merges",
    )
    authorities: list[AuthorityRow] = Field(
        default_factory=list,
        description="Extra authority rules, appended after the defaults",
    )
    use_default_authorities: bool = Field(
        default=True, description="Include the built-in authority rules"
    )
    track_provenance: bool = Field(
        default=True, description="Record which source won each field"
    )
    default_resolution: ConflictResolution | None = Field(
        default=None,
        description="Strategy applied to three-way conflicts automatically",
    )
    strategy: StrategyKind = Field(
        default=StrategyKind.AUTHORITY,
        description="N-way field strategy: authority-based, source-priority or union",
    )
    diff_ignore_fields: list[str] = Field(
        default_factory=list,
        description="Field patterns left out of baseline changesets",
    )

    model_config = {"frozen": True}

    @field_validator("source_priority", "three_way_priority")
    @classmethod
    def _check_order(cls, value: list[SourceName]) -> list[SourceName]:
        return _no_duplicates(value)

    @field_validator("field_priorities")
    @classmethod
    def _check_overrides(
        cls, value: dict[str, list[SourceName]]
    ) -> dict[str, list[SourceName]]:
        for order in value.values():
            _no_duplicates(order)
        return value


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``"text"`` or ``"json"``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    reconcile: ReconcileConfig = Field(default_factory=ReconcileConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)
