"""Tests for configuration loading."""

import json

import pytest
from pydantic import ValidationError

from inky_notes import config as config_module
from inky_notes.config import (
    AutosaveConfig,
    Config,
    DatabaseConfig,
    LoggingConfig,
    get_config,
    load_config,
    set_config,
)


class TestConfig:
    """Test cases for configuration classes."""

    def test_defaults(self, tmp_path):
        """Test default values of every section."""
        config = Config(data_dir=tmp_path)

        assert config.autosave.enabled is True
        assert config.autosave.debounce_seconds == 1.0
        assert config.database.journal_mode == "WAL"
        assert config.logging.level == "INFO"

    def test_relative_database_placed_in_data_dir(self, tmp_path):
        """Test a relative SQLite path ends up inside the data directory."""
        config = Config(
            data_dir=tmp_path / "data",
            database=DatabaseConfig(url="sqlite:///notes.db"),
        )

        assert config.database_path == tmp_path / "data" / "notes.db"
        assert (tmp_path / "data").is_dir()

    def test_memory_database_has_no_path(self, tmp_path):
        """Test an in-memory database has no file path."""
        config = Config(
            data_dir=tmp_path, database=DatabaseConfig(url="sqlite:///:memory:")
        )
        assert config.database_path is None

    def test_env_prefix(self, monkeypatch):
        """Test sections read their prefixed environment variables."""
        monkeypatch.setenv("AUTOSAVE_DEBOUNCE_SECONDS", "0.25")
        monkeypatch.setenv("DB_JOURNAL_MODE", "delete")

        assert AutosaveConfig().debounce_seconds == 0.25
        assert DatabaseConfig().journal_mode == "DELETE"

    def test_invalid_values(self):
        """Test validators reject bad values."""
        with pytest.raises(ValidationError):
            AutosaveConfig(debounce_seconds=0)
        with pytest.raises(ValidationError):
            DatabaseConfig(journal_mode="sideways")
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_yaml_round_trip(self, tmp_path):
        """Test saving and loading a YAML configuration file."""
        config = Config(
            data_dir=tmp_path,
            autosave=AutosaveConfig(debounce_seconds=2.5),
        )
        path = tmp_path / "conf" / "config.yaml"
        config.save_to_file(path)

        loaded = Config.from_file(path)

        assert loaded.autosave.debounce_seconds == 2.5
        assert loaded.database.url == config.database.url

    def test_json_file(self, tmp_path):
        """Test loading a JSON configuration file."""
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"data_dir": str(tmp_path), "autosave": {"enabled": False}})
        )

        assert Config.from_file(path).autosave.enabled is False

    def test_unsupported_file(self, tmp_path):
        """Test unknown file formats are rejected."""
        path = tmp_path / "config.toml"
        path.write_text("")
        with pytest.raises(ValueError):
            Config.from_file(path)

    def test_load_config_sets_global(self, tmp_path):
        """Test load_config installs the global configuration."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"data_dir": str(tmp_path), "environment": "ci"}))
        previous = config_module._config
        try:
            config = load_config(path)
            assert get_config() is config
            assert config.environment == "ci"
        finally:
            set_config(previous)
