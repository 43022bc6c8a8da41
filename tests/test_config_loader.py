"""Tests for cookiejar_sync.config_loader: hierarchical YAML config loading."""

import textwrap

import pytest
import yaml

from cookiejar_sync.config_loader import (
    _interpolate_recursive,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty CWD and HOME, no COOKIEJAR_CONFIG."""
    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    monkeypatch.chdir(project)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("COOKIEJAR_CONFIG", raising=False)
    return project, home


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("MY_STATE", "/var/lib/cj")
        assert interpolate_env_vars("${MY_STATE}") == "/var/lib/cj"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset_or_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        monkeypatch.setenv("EMPTY_VAR_XYZ", "")
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"
        assert interpolate_env_vars("${EMPTY_VAR_XYZ:-fallback}") == "fallback"

    def test_default_ignored_when_set(self, monkeypatch):
        monkeypatch.setenv("MY_TIMEOUT", "30")
        assert interpolate_env_vars("${MY_TIMEOUT:-60}") == "30"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("ORIGIN_A", "https://a.com/*")
        data = {"triggers": {"granted_origins": ["${ORIGIN_A}", "plain"], "n": 5}}
        assert _interpolate_recursive(data) == {
            "triggers": {"granted_origins": ["https://a.com/*", "plain"], "n": 5}
        }


# -------------------------------------------------------------------------
# Discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_nothing_found(self, isolated):
        assert discover_config_files() == []

    def test_precedence_order(self, isolated, tmp_path, monkeypatch):
        project, home = isolated
        explicit = _write(tmp_path / "explicit.yml", "remote: {}\n")
        project_file = _write(project / ".cookiejar" / "config.yml", "remote: {}\n")
        global_file = _write(home / ".config" / "cookiejar" / "config.yml", "remote: {}\n")
        monkeypatch.setenv("COOKIEJAR_CONFIG", str(explicit))

        found = discover_config_files()

        assert found[0] == explicit.resolve()
        assert found[1] == project_file
        assert found[-1] == global_file

    def test_yaml_extension(self, isolated):
        project, _ = isolated
        path = _write(project / ".cookiejar" / "config.yaml", "remote: {}\n")
        assert discover_config_files() == [path]


# -------------------------------------------------------------------------
# Loading
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_project_section_replaces_global(self, isolated):
        project, home = isolated
        _write(
            home / ".config" / "cookiejar" / "config.yml",
            """
            remote:
              api_url: https://global.example.com
              timeout: 10
            storage:
              state_dir: /global/state
            """,
        )
        _write(
            project / ".cookiejar" / "config.yml",
            """
            remote:
              api_url: https://project.example.com
            """,
        )

        raw = load_hierarchical_config()

        assert raw["remote"] == {"api_url": "https://project.example.com"}
        assert raw["storage"] == {"state_dir": "/global/state"}

    def test_interpolation_after_merge(self, isolated, monkeypatch):
        project, _ = isolated
        monkeypatch.setenv("CJ_STATE", "/srv/cookiejar")
        monkeypatch.delenv("CJ_JAR", raising=False)
        _write(
            project / ".cookiejar" / "config.yml",
            """
            storage:
              state_dir: ${CJ_STATE}
              cookie_jar: ${CJ_JAR:-/tmp/jar.json}
            """,
        )
        raw = load_hierarchical_config()
        assert raw["storage"] == {
            "state_dir": "/srv/cookiejar",
            "cookie_jar": "/tmp/jar.json",
        }

    def test_non_dict_root_skipped(self, isolated):
        project, _ = isolated
        _write(project / ".cookiejar" / "config.yml", "- just\n- a list\n")
        assert load_hierarchical_config() == {}

    def test_invalid_yaml_raises(self, isolated):
        project, _ = isolated
        _write(project / ".cookiejar" / "config.yml", "remote: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()


# -------------------------------------------------------------------------
# Starter config
# -------------------------------------------------------------------------


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        project, _ = isolated

        path, created = ensure_config()

        assert created is True
        assert path == project / ".cookiejar" / "config.yml"
        assert "sync_secrets_set" in path.read_text()
        # Everything is commented out, so it loads as zero-config
        assert load_hierarchical_config() == {}

    def test_existing_config_untouched(self, isolated):
        project, _ = isolated
        existing = _write(project / ".cookiejar" / "config.yaml", "remote: {}\n")

        path, created = ensure_config()

        assert created is False
        assert path == existing
        assert existing.read_text() == "remote: {}\n"
