"""Tests for catalog_reconcile.config_loader: hierarchical config loading."""

import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from catalog_reconcile.config_loader import (
    CONFIG_ENV_VAR,
    discover_config_files,
    ensure_config,
    expand_env,
    load_hierarchical_config,
    load_yaml_file,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no explicit config path."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestExpandEnv:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("RECONCILE_LEVEL", "DEBUG")
        assert expand_env("${RECONCILE_LEVEL}") == "DEBUG"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert expand_env("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert expand_env("${UNSET_VAR_XYZ:-merge}") == "merge"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("RESOLUTION", "theirs")
        assert expand_env("${RESOLUTION:-ours}") == "theirs"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert expand_env("${EMPTY_VAR:-fallback}") == "fallback"

    def test_multiple_vars_in_one_string(self, monkeypatch):
        monkeypatch.setenv("LOG_DIR", "/var/log")
        monkeypatch.setenv("LOG_NAME", "reconcile.log")
        assert expand_env("${LOG_DIR}/${LOG_NAME}") == "/var/log/reconcile.log"

    def test_literal_dollar_brace_no_closing(self):
        assert expand_env("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("PRIMARY", "provider_api")
        data = {
            "reconcile": {"source_priority": ["${PRIMARY}", "local_catalog"], "track_provenance": True},
            "count": 3,
        }

        assert expand_env(data) == {
            "reconcile": {"source_priority": ["provider_api", "local_catalog"], "track_provenance": True},
            "count": 3,
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    """Tests for !include YAML loading via IncludeLoader."""

    def test_include_authority_table(self, tmp_path):
        _write(
            tmp_path / "authorities.yml",
            """\
            - field_path: "pricing.*"
              source: local_catalog
              priority: 150
            """,
        )
        main = _write(
            tmp_path / "config.yml",
            """\
            reconcile:
              authorities: !include authorities.yml
            """,
        )

        result = load_yaml_file(main)

        assert result == {
            "reconcile": {
                "authorities": [
                    {"field_path": "pricing.*", "source": "local_catalog", "priority": 150}
                ]
            }
        }

    def test_include_absolute_path(self, tmp_path):
        logging_cfg = _write(tmp_path / "sub" / "logging.yml", "level: DEBUG\n")
        main = _write(tmp_path / "config.yml", f"logging: !include {logging_cfg}\n")

        assert load_yaml_file(main) == {"logging": {"level": "DEBUG"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = _write(tmp_path / "config.yml", "reconcile: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="missing.yml"):
            load_yaml_file(main)

    def test_circular_include_raises(self, tmp_path):
        a = _write(tmp_path / "a.yml", "x: !include b.yml\n")
        _write(tmp_path / "b.yml", "y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            load_yaml_file(a)

    def test_self_include_raises(self, tmp_path):
        a = _write(tmp_path / "a.yml", "x: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            load_yaml_file(a)

    def test_nested_includes(self, tmp_path):
        _write(tmp_path / "c.yml", "val: deep\n")
        _write(tmp_path / "b.yml", "inner: !include c.yml\n")
        a = _write(tmp_path / "a.yml", "outer: !include b.yml\n")

        assert load_yaml_file(a) == {"outer": {"inner": {"val": "deep"}}}

    def test_same_file_included_twice_is_not_circular(self, tmp_path):
        _write(tmp_path / "shared.yml", "level: INFO\n")
        main = _write(
            tmp_path / "config.yml",
            "a: !include shared.yml\nb: !include shared.yml\n",
        )

        assert load_yaml_file(main) == {"a": {"level": "INFO"}, "b": {"level": "INFO"}}

    def test_global_safe_loader_not_polluted(self, tmp_path):
        """!include is NOT registered on yaml.SafeLoader."""
        cfg = _write(tmp_path / "test.yml", "x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    """Tests for discover_config_files() precedence and filtering."""

    def test_env_var_takes_highest_precedence(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "custom: true\n")
        _write(isolated / ".catalog_reconcile" / "config.yml", "project: true\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(custom))

        result = discover_config_files()

        assert result[0] == custom.resolve()
        assert len(result) == 2

    def test_project_before_global(self, isolated):
        proj = _write(isolated / ".catalog_reconcile" / "config.yml", "project: true\n")
        global_cfg = _write(
            isolated / "home" / ".config" / "catalog_reconcile" / "config.yml",
            "global: true\n",
        )

        result = discover_config_files()

        assert result.index(proj) < result.index(global_cfg)

    def test_yaml_extension(self, isolated):
        proj_yaml = _write(isolated / ".catalog_reconcile" / "config.yaml", "alt: true\n")

        assert discover_config_files() == [proj_yaml]

    def test_missing_files_excluded(self, isolated):
        assert discover_config_files() == []


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    """Tests for load_hierarchical_config() merge and interpolation."""

    def test_zero_config_returns_empty_dict(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_overrides_global_at_section_level(self, isolated):
        _write(
            isolated / "home" / ".config" / "catalog_reconcile" / "config.yml",
            """\
            reconcile:
              track_provenance: false
              default_resolution: ours
            logging:
              level: DEBUG
            """,
        )
        _write(
            isolated / ".catalog_reconcile" / "config.yml",
            """\
            reconcile:
              default_resolution: merge
            """,
        )

        result = load_hierarchical_config()

        # Shallow merge: the project's reconcile section replaces the global one.
        assert result["reconcile"] == {"default_resolution": "merge"}
        assert result["logging"]["level"] == "DEBUG"

    def test_env_var_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("RECONCILE_LOG", "/tmp/reconcile.log")
        _write(
            isolated / ".catalog_reconcile" / "config.yml",
            """\
            logging:
              file: "${RECONCILE_LOG}"
            """,
        )

        assert load_hierarchical_config()["logging"]["file"] == "/tmp/reconcile.log"

    def test_include_within_merged_config(self, isolated):
        proj_dir = isolated / ".catalog_reconcile"
        _write(proj_dir / "priorities.yml", "\"features.*\": [provider_api, local_catalog]\n")
        _write(
            proj_dir / "config.yml",
            """\
            reconcile:
              field_priorities: !include priorities.yml
            """,
        )

        result = load_hierarchical_config()

        assert result["reconcile"]["field_priorities"] == {
            "features.*": ["provider_api", "local_catalog"]
        }

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        bad = _write(isolated / "bad.yml", "- item1\n- item2\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(bad))

        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        _write(isolated / ".catalog_reconcile" / "config.yml", "reconcile: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()


# -------------------------------------------------------------------------
# Config bootstrapping
# -------------------------------------------------------------------------


class TestEnsureConfig:
    """Tests for ensure_config()."""

    def test_noop_when_exists(self, isolated):
        existing_path = Path("/fake/existing/config.yml")

        with patch(
            "catalog_reconcile.config_loader.discover_config_files",
            return_value=[existing_path],
        ):
            assert ensure_config() == existing_path

        assert not (isolated / ".catalog_reconcile").exists()

    def test_creates_starter_file(self, isolated):
        result = ensure_config()

        assert result == isolated / ".catalog_reconcile" / "config.yml"
        content = result.read_text()
        assert "# catalog-reconcile configuration" in content
        assert "# reconcile:" in content
        assert "# logging:" in content

    def test_starter_file_is_zero_config(self, isolated):
        ensure_config()

        assert load_hierarchical_config() == {}

    def test_uses_explicit_target(self, isolated):
        target = isolated / "a" / "b" / "my-config.yml"

        result = ensure_config(target=target)

        assert result == target
        assert target.is_file()

    def test_starter_file_documents_reconcile_keys(self, isolated):
        content = ensure_config().read_text()

        for key in ("strategy:", "diff_ignore_fields:", "default_resolution:"):
            assert f"#   {key}" in content
