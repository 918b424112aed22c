"""
Unit tests for YAML configuration loading and placeholder resolution.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from hlskit.config.settings import (
    CONFIG_FILENAME,
    ConfigStore,
    HlsConfig,
    ManagementMode,
    config_from_dict,
    load_config,
    load_project_config,
    prepend_path,
    resolve_path_entry,
    resolve_path_placeholders,
    resolve_server_environment,
)
from hlskit.core.exceptions import ConfigError, ValidationError


class TestConfigFromDict:
    """Test config_from_dict()."""

    def test_defaults(self):
        config = config_from_dict({})

        assert config == HlsConfig()
        assert config.manage_hls is None
        assert config.upgrade_ghcup is True
        assert config.prompt_before_downloads is True
        assert config.log_level == "info"

    def test_full_document(self):
        config = config_from_dict(
            {
                "manage_hls": "GHCup",
                "ghcup_executable_path": "~/bin/ghcup",
                "server_environment": {"PATH": "/opt/bin:$PATH"},
                "upgrade_ghcup": False,
                "prompt_before_downloads": False,
                "log_level": "debug",
            }
        )

        assert config.manage_hls is ManagementMode.GHCUP
        assert config.ghcup_executable_path == "~/bin/ghcup"
        assert config.server_environment == {"PATH": "/opt/bin:$PATH"}
        assert config.upgrade_ghcup is False
        assert config.prompt_before_downloads is False
        assert config.log_level == "debug"

    def test_empty_strings_mean_unset(self):
        config = config_from_dict({"server_executable_path": "", "metadata_url": ""})

        assert config.server_executable_path is None
        assert config.metadata_url is None

    def test_invalid_values_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            config_from_dict(
                {"manage_hls": "Manual", "upgrade_ghcup": "yes", "typo_key": 1}
            )

        paths = {issue.path for issue in exc_info.value.issues}
        assert paths == {("manage_hls",), ("upgrade_ghcup",), ("typo_key",)}


class TestLoadConfig:
    """Test reading configuration files."""

    def test_load_config(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("manage_hls: PATH\nlog_level: error\n")

        config = load_config(config_file)

        assert config.manage_hls is ManagementMode.PATH
        assert config.log_level == "error"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("manage_hls: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_file)

    def test_non_mapping(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(config_file)

    def test_empty_file_is_defaults(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("")

        assert load_config(config_file) == HlsConfig()

    def test_project_config_defaults_without_file(self, tmp_path):
        assert load_project_config(tmp_path) == HlsConfig()

    def test_project_config_reads_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("upgrade_ghcup: false\n")

        assert load_project_config(tmp_path).upgrade_ghcup is False


class TestConfigStore:
    """Test persisting the management mode."""

    def test_creates_file(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME

        ConfigStore(config_file).save_management_mode(ManagementMode.GHCUP)

        assert yaml.safe_load(config_file.read_text()) == {"manage_hls": "GHCup"}

    def test_keeps_other_keys(self, tmp_path):
        config_file = tmp_path / CONFIG_FILENAME
        config_file.write_text("upgrade_ghcup: false\nlog_level: debug\n")

        ConfigStore(config_file).save_management_mode(ManagementMode.PATH)

        config = load_config(config_file)
        assert config.manage_hls is ManagementMode.PATH
        assert config.upgrade_ghcup is False
        assert config.log_level == "debug"


class TestPlaceholders:
    """Test path placeholder expansion."""

    def test_home_variants(self, isolated_home):
        home = str(isolated_home)

        assert resolve_path_placeholders("${HOME}/bin/ghcup") == f"{home}/bin/ghcup"
        assert resolve_path_placeholders("${home}/bin/ghcup") == f"{home}/bin/ghcup"
        assert resolve_path_placeholders("~/bin/ghcup") == f"{home}/bin/ghcup"

    def test_tilde_only_at_start(self, isolated_home):
        assert resolve_path_placeholders("/opt/~x") == "/opt/~x"

    def test_workspace_folder(self, tmp_path):
        result = resolve_path_placeholders(
            "${workspaceFolder}/a:${workspaceRoot}/b", tmp_path
        )
        assert result == f"{tmp_path}/a:{tmp_path}/b"

    def test_workspace_left_alone_without_folder(self):
        assert resolve_path_placeholders("${workspaceFolder}/a") == "${workspaceFolder}/a"

    def test_path_entry(self, isolated_home, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")

        assert resolve_path_entry("$PATH") == "/usr/bin"
        assert resolve_path_entry("${PATH}") == "/usr/bin"
        assert resolve_path_entry("${HOME}/.cabal/bin") == f"{isolated_home}/.cabal/bin"


class TestServerEnvironment:
    """Test server environment PATH handling."""

    @pytest.fixture(autouse=True)
    def unix_separator(self):
        with patch("hlskit.config.settings.is_windows", return_value=False):
            yield

    def test_resolve_server_environment(self, isolated_home, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")

        env = resolve_server_environment(
            {"PATH": "${HOME}/.ghcup/bin:$PATH", "LANG": "C"}
        )

        assert env == {"PATH": f"{isolated_home}/.ghcup/bin:/usr/bin", "LANG": "C"}

    def test_without_path(self):
        assert resolve_server_environment({"LANG": "C"}) == {"LANG": "C"}

    def test_prepend_to_inherited_path(self, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin:/bin")

        assert prepend_path(Path("/tools"), {}) == "/tools:/usr/bin:/bin"

    def test_prepend_to_configured_path(self, monkeypatch):
        monkeypatch.setenv("PATH", "/usr/bin")

        result = prepend_path("/tools", {"PATH": "/opt/bin:$PATH"})

        assert result == "/tools:/opt/bin:/usr/bin"

    def test_prepend_with_empty_path(self, monkeypatch):
        monkeypatch.delenv("PATH", raising=False)

        assert prepend_path("/tools", {}) == "/tools"
