"""
Configuration file loading for catalog_reconcile.

Config files are found by convention, may pull authority tables in from
other files with ``!include``, and may reference environment variables
(including those ``.env`` supplies) as ``${VAR}`` or ``${VAR:-default}``.

Usage:
    from catalog_reconcile.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CATALOG_RECONCILE_CONFIG"
CONFIG_DIR_NAME = ".catalog_reconcile"
CONFIG_FILE_NAMES = ("config.yml", "config.yaml")

_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def expand_env(obj: Any) -> Any:
    """Substitute environment references in every string inside *obj*.

    An unset or empty variable expands to its ``:-`` default, or to ``""``.
    """
    if isinstance(obj, str):
        return _ENV_REF.sub(
            lambda m: os.environ.get(m.group(1)) or m.group(2) or "", obj
        )
    if isinstance(obj, dict):
        return {key: expand_env(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [expand_env(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# YAML with !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """SafeLoader that resolves ``!include other.yml`` relative to the
    including file.  ``yaml.SafeLoader`` itself is left untouched."""

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    if target in loader.include_chain:
        cycle = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {cycle}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {loader.name})"
        )
    return load_yaml_file(target, _chain=loader.include_chain)


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML (or JSON) file, following ``!include`` directives."""
    path = Path(path).resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = (*_chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery and bootstrapping
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return the config files that exist, highest precedence first.

    1. The file named by ``CATALOG_RECONCILE_CONFIG``.
    2. ``.catalog_reconcile/config.yml`` (or ``.yaml``) in the CWD.
    3. ``~/.config/catalog_reconcile/config.yml``.
    """
    candidates: list[Path] = []
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.extend(Path.cwd() / CONFIG_DIR_NAME / name for name in CONFIG_FILE_NAMES)
    candidates.append(Path.home() / ".config" / "catalog_reconcile" / CONFIG_FILE_NAMES[0])
    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# catalog-reconcile configuration
#
# reconcile:
#   strategy: authority-based   # or source-priority, union
#   source_priority: [local_catalog, models_dev_http, models_dev_git, provider_api]
#   field_priorities:
#     "features.*": [provider_api, local_catalog]
#   three_way_priority: [ours, theirs, base]
#   use_default_authorities: true
#   authorities: !include authorities.yml
#   track_provenance: true
#   default_resolution: null
#   diff_ignore_fields: ["metadata.*"]
#
# logging:
#   level: INFO
#   file: null
#   format: text
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file to
    *target* (default ``./.catalog_reconcile/config.yml``) when none exists.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    path = target or Path.cwd() / CONFIG_DIR_NAME / CONFIG_FILE_NAMES[0]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Merge every discovered config file into one dict.

    Higher-precedence files replace whole top-level sections of lower ones.
    Environment references are expanded after the merge.  With no config
    files the result is ``{}``.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )
    if not merged:
        logger.debug("No config values found, using defaults")
    return expand_env(merged)
