"""Configuration management for the Inky Notes core."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class DatabaseConfig(BaseSettings):
    """Database configuration settings."""

    url: str = Field(default="sqlite:///inky_notes.db", description="Database URL")
    echo: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    journal_mode: str = Field(default="WAL", description="SQLite journal mode")
    index_retry_attempts: int = Field(
        default=3, description="Attempts per index before giving up"
    )
    index_retry_delay: float = Field(
        default=0.1, description="Base delay between index creation attempts"
    )

    @field_validator("journal_mode")
    @classmethod
    def validate_journal_mode(cls, v):
        valid_modes = ["DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"]
        if v.upper() not in valid_modes:
            raise ValueError(f"Invalid journal mode: {v}. Must be one of {valid_modes}")
        return v.upper()

    @field_validator("index_retry_attempts")
    @classmethod
    def validate_index_retry_attempts(cls, v):
        if v < 1:
            raise ValueError("index_retry_attempts must be at least 1")
        return v

    model_config = {"env_prefix": "DB_"}


class AutosaveConfig(BaseSettings):
    """Autosave (debounced persistence) settings."""

    enabled: bool = Field(default=True, description="Enable debounced autosave")
    debounce_seconds: float = Field(
        default=1.0, description="Quiet period before a pending change is written"
    )

    @field_validator("debounce_seconds")
    @classmethod
    def validate_debounce_seconds(cls, v):
        if v <= 0:
            raise ValueError("debounce_seconds must be positive")
        return v

    model_config = {"env_prefix": "AUTOSAVE_"}


class LoggingConfig(BaseSettings):
    """Logging configuration settings."""

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size: int = Field(
        default=10485760, description="Max log file size in bytes"
    )  # 10MB
    backup_count: int = Field(default=5, description="Number of backup log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    model_config = {"env_prefix": "LOG_"}


class Config(BaseSettings):
    """Main configuration class that combines all configuration sections."""

    environment: str = Field(default="development", description="Environment name")
    data_dir: Path = Field(
        default=Path.home() / ".inky_notes", description="Data directory"
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    autosave: AutosaveConfig = Field(default_factory=AutosaveConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._ensure_data_dir()
        self._update_database_path()

    def _ensure_data_dir(self) -> None:
        """Ensure the data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _update_database_path(self) -> None:
        """Place a relative SQLite database file inside the data directory."""
        path = self.database.url[10:]
        if (
            self.database.url.startswith("sqlite:///")
            and path != ":memory:"
            and not os.path.isabs(path)
        ):
            self.database.url = f"sqlite:///{self.data_dir / path}"

    @property
    def database_path(self) -> Optional[Path]:
        """Filesystem path of the SQLite database, if the URL points at a file."""
        if not self.database.url.startswith("sqlite:///"):
            return None
        path = self.database.url[10:]
        if not path or path == ":memory:":
            return None
        return Path(path)

    @classmethod
    def from_file(cls, config_path: Path) -> "Config":
        """Load configuration from a YAML or JSON file."""
        import json

        import yaml

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as f:
            if config_path.suffix.lower() in [".yaml", ".yml"]:
                data = yaml.safe_load(f) or {}
            elif config_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported configuration file format: {config_path.suffix}"
                )

        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")

    def save_to_file(self, config_path: Path) -> None:
        """Save configuration to a YAML file."""
        import yaml

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2)


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or environment."""
    if config_path and config_path.exists():
        config = Config.from_file(config_path)
    else:
        config = Config()

    set_config(config)
    return config
