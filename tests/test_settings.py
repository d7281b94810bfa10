"""Tests for settings and configuration loading."""

import json
import os
import tempfile
from pathlib import Path

import pytest
import yaml

from scoped_fs.settings import ScopedFsConfig, ScopedFsSettings, load_config


class TestScopedFsSettings:
    """Tests for environment-based settings."""

    def test_from_env(self, monkeypatch, temp_dir):
        """Test reading SCOPED_FS_* variables."""
        other = temp_dir / "other"
        monkeypatch.setenv(
            "SCOPED_FS_ALLOWED_DIRECTORIES", f"{temp_dir}{os.pathsep}{other}"
        )
        monkeypatch.setenv("SCOPED_FS_MAX_SEARCH_RESULTS", "25")
        monkeypatch.setenv("SCOPED_FS_FIND_EXCLUDE_DIRECTORIES", "build,.venv")
        monkeypatch.setenv("SCOPED_FS_LOG_LEVEL", "debug")

        config = ScopedFsConfig.from_env()
        assert config.filesystem.allowed_directories == [temp_dir, other]
        assert config.filesystem.max_search_results == 25
        assert config.filesystem.find_exclude_directories == ["build", ".venv"]
        assert config.log_level == "DEBUG"

    def test_unset_values_keep_defaults(self, monkeypatch):
        """Test that missing variables leave the defaults alone."""
        for name in list(os.environ):
            if name.startswith("SCOPED_FS_"):
                monkeypatch.delenv(name)

        settings = ScopedFsSettings()
        assert settings.filesystem_options() == {"allowed_directories": []}

        config = ScopedFsConfig.from_env(settings)
        assert config.filesystem.allowed_directories == []
        assert config.filesystem.file_read_line_limit == 1000


class TestScopedFsConfig:
    """Tests for ScopedFsConfig."""

    def test_default_config(self):
        """Test default configuration."""
        config = ScopedFsConfig()
        assert config.log_level == "INFO"
        assert config.filesystem.allowed_directories == []

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected."""
        with pytest.raises(ValueError):
            ScopedFsConfig(log_level="chatty")

    def test_extra_keys_rejected(self):
        """Test that unknown top-level keys are rejected."""
        with pytest.raises(ValueError):
            ScopedFsConfig.from_dict({"filesystem": {}, "unknown": 1})


class TestScopedFsConfigFile:
    """Tests for file-based ScopedFsConfig."""

    def test_from_yaml_file(self):
        """Test loading config from YAML file."""
        yaml_content = """
filesystem:
  allowed_directories:
    - /srv/workspace
  file_read_line_limit: 200
  search_timeout_seconds: 12
log_level: WARNING
"""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write(yaml_content)
            f.flush()

            try:
                config = ScopedFsConfig.from_file(f.name)
                assert config.filesystem.allowed_directories == [Path("/srv/workspace")]
                assert config.filesystem.file_read_line_limit == 200
                assert config.filesystem.search_timeout_seconds == 12
                assert config.log_level == "WARNING"
            finally:
                os.unlink(f.name)

    def test_from_json_file(self):
        """Test loading config from JSON file."""
        json_content = {"filesystem": {"allowed_directories": ["/srv/data"]}}

        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump(json_content, f)
            f.flush()

            try:
                config = ScopedFsConfig.from_file(f.name)
                assert config.filesystem.allowed_directories == [Path("/srv/data")]
            finally:
                os.unlink(f.name)

    def test_empty_file(self, temp_dir):
        """Test that an empty YAML file gives the defaults."""
        path = temp_dir / "empty.yaml"
        path.write_text("")
        assert ScopedFsConfig.from_file(path).filesystem.allowed_directories == []

    def test_from_file_not_found(self):
        """Test error when config file doesn't exist."""
        with pytest.raises(FileNotFoundError):
            ScopedFsConfig.from_file("/nonexistent/path/config.yaml")

    def test_save_yaml(self, temp_dir):
        """Test saving config to YAML file."""
        config = ScopedFsConfig.from_dict(
            {
                "filesystem": {
                    "allowed_directories": [str(temp_dir)],
                    "case_policy": "insensitive",
                },
                "log_level": "DEBUG",
            }
        )

        path = temp_dir / "config.yaml"
        config.save(path, format="yaml")

        data = yaml.safe_load(path.read_text())
        assert data["filesystem"]["allowed_directories"] == [str(temp_dir)]
        assert data["filesystem"]["case_policy"] == "insensitive"

        loaded = ScopedFsConfig.from_file(path)
        assert loaded == config

    def test_save_json(self, temp_dir):
        """Test saving config to JSON file."""
        path = temp_dir / "config.json"
        ScopedFsConfig().save(path, format="json")

        data = json.loads(path.read_text())
        assert data["log_level"] == "INFO"
        assert data["filesystem"]["file_read_line_limit"] == 1000


class TestLoadConfig:
    """Tests for load_config."""

    def test_env_directories_added_to_file(self, monkeypatch, temp_dir):
        """Test that SCOPED_FS_ALLOWED_DIRECTORIES extends the file's list."""
        path = temp_dir / "config.yaml"
        path.write_text(yaml.dump({"filesystem": {"allowed_directories": ["/srv/a"]}}))
        monkeypatch.setenv("SCOPED_FS_ALLOWED_DIRECTORIES", str(temp_dir))

        config = load_config(path)
        assert config.filesystem.allowed_directories == [Path("/srv/a"), temp_dir]

    def test_without_path_reads_env(self, monkeypatch, temp_dir):
        monkeypatch.setenv("SCOPED_FS_ALLOWED_DIRECTORIES", str(temp_dir))
        assert load_config().filesystem.allowed_directories == [temp_dir]
