"""Dot-path field access over frozen catalog records.

Every resource type has a fixed, ordered registry of ``FieldSpec`` entries
naming the leaf paths the mergers compare and the ``MergePolicy`` each one
uses when both sides of a three-way merge changed it.  The registries are
checked against the record classes when this module is imported, so a
misspelt path fails immediately instead of during a merge.

``get_field`` and ``set_field`` never raise for bad paths or values; they
log a warning and treat the value as absent, so one malformed record
cannot abort a full-catalog merge.
"""

from __future__ import annotations

import functools
import logging
import types
import typing
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from catalog_reconcile.catalog.models import Author, Model, Provider

from .models import MergePolicy, ResourceType

logger = logging.getLogger(__name__)


class FieldSpec(BaseModel):
    """One mergeable leaf field of a resource type."""

    path: str
    policy: MergePolicy = MergePolicy.MANUAL

    model_config = {"frozen": True}

    @property
    def root(self) -> str:
        """First path segment (e.g. ``"pricing"`` for ``"pricing.currency"``)."""
        return self.path.split(".", 1)[0]


_M = MergePolicy.MANUAL
_MAX = MergePolicy.NUMERIC_MAX
_UNION = MergePolicy.SET_UNION
_OR = MergePolicy.BOOLEAN_OR


def _specs(*pairs: tuple[str, MergePolicy]) -> tuple[FieldSpec, ...]:
    return tuple(FieldSpec(path=p, policy=pol) for p, pol in pairs)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

FEATURE_FLAGS: tuple[str, ...] = (
    "tool_calls",
    "tools",
    "tool_choice",
    "web_search",
    "attachments",
    "reasoning",
    "reasoning_effort",
    "temperature",
    "top_p",
    "top_k",
    "max_tokens",
    "stop",
    "seed",
    "logprobs",
    "structured_outputs",
    "streaming",
)

MODEL_FIELDS: tuple[FieldSpec, ...] = _specs(
    ("name", _M),
    ("description", _M),
    ("authors", _UNION),
    # metadata
    ("metadata.release_date", _M),
    ("metadata.open_weights", _OR),
    ("metadata.knowledge_cutoff", _M),
    ("metadata.tags", _UNION),
    ("metadata.architecture.parameter_count", _M),
    ("metadata.architecture.type", _M),
    ("metadata.architecture.tokenizer", _M),
    ("metadata.architecture.quantization", _M),
    ("metadata.architecture.quantized", _OR),
    ("metadata.architecture.fine_tuned", _OR),
    ("metadata.architecture.base_model", _M),
    # features
    ("features.modalities.input", _UNION),
    ("features.modalities.output", _UNION),
    *((f"features.{flag}", _OR) for flag in FEATURE_FLAGS),
    # generation
    ("generation.temperature", _M),
    ("generation.top_p", _M),
    ("generation.top_k", _M),
    ("generation.max_tokens", _MAX),
    ("generation.frequency_penalty", _M),
    ("generation.presence_penalty", _M),
    # pricing
    ("pricing.tokens.input", _M),
    ("pricing.tokens.output", _M),
    ("pricing.tokens.reasoning", _M),
    ("pricing.tokens.cache_read", _M),
    ("pricing.tokens.cache_write", _M),
    ("pricing.operations.request", _M),
    ("pricing.operations.image_input", _M),
    ("pricing.operations.audio_input", _M),
    ("pricing.operations.image_gen", _M),
    ("pricing.operations.web_search", _M),
    ("pricing.operations.function_call", _M),
    ("pricing.currency", _M),
    # limits
    ("limits.context_window", _MAX),
    ("limits.output_tokens", _MAX),
)

PROVIDER_FIELDS: tuple[FieldSpec, ...] = _specs(
    ("name", _M),
    ("headquarters", _M),
    ("icon_url", _M),
    ("status_page_url", _M),
    ("aliases", _UNION),
    ("authors", _UNION),
    ("api_key.name", _M),
    ("api_key.pattern", _M),
    ("api_key.header", _M),
    ("api_key.scheme", _M),
    ("api_key.query_param", _M),
    ("catalog.docs_url", _M),
    ("catalog.api_url", _M),
    ("catalog.api_key_required", _M),
    ("chat_completions.url", _M),
    ("chat_completions.health_api_url", _M),
    ("privacy_policy.privacy_policy_url", _M),
    ("privacy_policy.terms_of_service_url", _M),
    ("privacy_policy.retains_data", _M),
    ("privacy_policy.trains_on_data", _M),
    ("retention_policy.type", _M),
    ("retention_policy.duration_days", _M),
    ("retention_policy.details", _M),
    ("governance_policy.moderation_required", _M),
    ("governance_policy.moderated", _M),
    ("governance_policy.moderator", _M),
)

AUTHOR_FIELDS: tuple[FieldSpec, ...] = _specs(
    ("name", _M),
    ("description", _M),
    ("website", _M),
    ("huggingface", _M),
    ("github", _M),
    ("twitter", _M),
    ("catalog.provider_id", _M),
    ("catalog.patterns", _UNION),
    ("catalog.description", _M),
)

RECORD_CLASSES: dict[ResourceType, type[BaseModel]] = {
    ResourceType.MODEL: Model,
    ResourceType.PROVIDER: Provider,
    ResourceType.AUTHOR: Author,
}

_REGISTRY: dict[ResourceType, tuple[FieldSpec, ...]] = {
    ResourceType.MODEL: MODEL_FIELDS,
    ResourceType.PROVIDER: PROVIDER_FIELDS,
    ResourceType.AUTHOR: AUTHOR_FIELDS,
}


# ---------------------------------------------------------------------------
# Type helpers
# ---------------------------------------------------------------------------


def _submodel_class(annotation: Any) -> type[BaseModel] | None:
    """Return the ``BaseModel`` subclass inside ``X`` or ``X | None``."""
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        for arg in typing.get_args(annotation):
            found = _submodel_class(arg)
            if found is not None:
                return found
    return None


@functools.lru_cache(maxsize=None)
def _adapter(cls: type[BaseModel], name: str) -> TypeAdapter:
    return TypeAdapter(cls.model_fields[name].annotation)


def _validate_path(cls: type[BaseModel], path: str) -> None:
    current: type[BaseModel] | None = cls
    parts = path.split(".")
    for i, part in enumerate(parts):
        if current is None or part not in current.model_fields:
            raise AttributeError(
                f"Field path '{path}' does not resolve on {cls.__name__}"
            )
        if i < len(parts) - 1:
            current = _submodel_class(current.model_fields[part].annotation)


def _validate_registry() -> None:
    for resource_type, specs in _REGISTRY.items():
        cls = RECORD_CLASSES[resource_type]
        seen: set[str] = set()
        for spec in specs:
            if spec.path in seen:
                raise ValueError(
                    f"Duplicate field path '{spec.path}' for {resource_type.value}"
                )
            seen.add(spec.path)
            _validate_path(cls, spec.path)


_validate_registry()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def field_specs(resource_type: ResourceType) -> tuple[FieldSpec, ...]:
    """Return the ordered field registry for *resource_type*."""
    return _REGISTRY[resource_type]


def field_policy(resource_type: ResourceType, path: str) -> MergePolicy:
    """Return the merge policy for *path*, ``MANUAL`` when unregistered."""
    for spec in _REGISTRY[resource_type]:
        if spec.path == path:
            return spec.policy
    return MergePolicy.MANUAL


def record_class(resource_type: ResourceType) -> type[BaseModel]:
    return RECORD_CLASSES[resource_type]


def is_absent(value: Any) -> bool:
    """Whether *value* counts as "not supplied" by a source.

    ``None``, empty strings and empty containers are absent; ``False`` and
    ``0`` are real values.
    """
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


@functools.lru_cache(maxsize=None)
def leaf_default(resource_type: ResourceType, path: str) -> Any:
    """Return the declared default of the leaf at *path*, or ``None``."""
    cls: type[BaseModel] | None = RECORD_CLASSES[resource_type]
    parts = path.split(".")
    for part in parts[:-1]:
        if cls is None or part not in cls.model_fields:
            return None
        cls = _submodel_class(cls.model_fields[part].annotation)
    if cls is None or parts[-1] not in cls.model_fields:
        return None
    default = cls.model_fields[parts[-1]].default
    return default if isinstance(default, (bool, int, float)) else None


def is_unset(resource_type: ResourceType, path: str, value: Any) -> bool:
    """Whether a source left the field at *path* unset.

    Besides absent values, a plain ``bool``/``int``/``float`` leaf holding
    its zero default (``False``, ``0``, ``0.0``) cannot be told apart from
    one the source never filled in.  Optional leaves default to ``None``,
    so an explicit ``False`` or ``0`` there is still a real value.
    """
    if is_absent(value):
        return True
    default = leaf_default(resource_type, path)
    if default is None or default:
        return False
    return type(value) is type(default) and value == default


def get_field(record: BaseModel | None, path: str) -> Any:
    """Read the value at dot-separated *path* from *record*.

    Returns ``None`` when the record or any intermediate sub-structure is
    missing.  An unknown path segment is logged and treated as absent.
    """
    current: Any = record
    for part in path.split("."):
        if current is None:
            return None
        if not isinstance(current, BaseModel) or part not in type(current).model_fields:
            logger.warning(
                "Cannot resolve field '%s' on %s", path, type(record).__name__
            )
            return None
        current = getattr(current, part)
    return current


def set_field(record: BaseModel, path: str, value: Any) -> BaseModel:
    """Return a copy of *record* with *value* written at *path*.

    Missing intermediate sub-structures are created with their defaults.
    On an unknown path or a value of the wrong type, a warning is logged
    and *record* is returned unchanged.
    """
    try:
        return _set(record, path.split("."), value)
    except (AttributeError, ValidationError) as exc:
        logger.warning(
            "Cannot set field '%s' on %s: %s",
            path,
            type(record).__name__,
            exc,
        )
        return record


def _set(obj: BaseModel, parts: list[str], value: Any) -> BaseModel:
    cls = type(obj)
    name = parts[0]
    if name not in cls.model_fields:
        raise AttributeError(f"{cls.__name__} has no field '{name}'")

    if len(parts) == 1:
        validated = _adapter(cls, name).validate_python(value)
        return obj.model_copy(update={name: validated})

    child = getattr(obj, name)
    if child is None:
        child_cls = _submodel_class(cls.model_fields[name].annotation)
        if child_cls is None:
            raise AttributeError(f"{cls.__name__}.{name} is not a sub-structure")
        child = child_cls()
    return obj.model_copy(update={name: _set(child, parts[1:], value)})
