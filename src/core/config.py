"""
Run configuration.

Settings are resolved in this order, later sources winning:
model defaults, an optional YAML file, a ``.env`` file, process environment.

Expected YAML format:
```yaml
pipeline:
  data_dir: ./data
  batch_size: 500
  clean_database: false
  max_files: 10000
database:
  host: localhost
  port: 5432
  name: advocacy
  user: pipeline
```
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from src.core.errors import ConfigurationError
from src.utils.validation import (
    validate_batch_size,
    validate_data_dir,
    validate_file_pattern,
    validate_max_files,
)

DEFAULT_FILE_PATTERN = r"\.json$"

# environment variable -> settings field
ENV_FIELDS = {
    "DATA_DIR": "data_dir",
    "BATCH_SIZE": "batch_size",
    "CLEAN_DATABASE": "clean_database",
    "MAX_FILES": "max_files",
    "FILE_PATTERN": "file_pattern",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
    "METRICS_PORT": "metrics_port",
    "DB_HOST": "db_host",
    "DB_PORT": "db_port",
    "DB_NAME": "db_name",
    "DB_USER": "db_user",
    "DB_PASSWORD": "db_password",
}

# YAML section/key -> settings field
YAML_SECTIONS = {
    "pipeline": {
        "data_dir": "data_dir",
        "batch_size": "batch_size",
        "clean_database": "clean_database",
        "max_files": "max_files",
        "file_pattern": "file_pattern",
    },
    "logging": {"level": "log_level", "format": "log_format"},
    "metrics": {"port": "metrics_port"},
    "database": {
        "host": "db_host",
        "port": "db_port",
        "name": "db_name",
        "user": "db_user",
        "password": "db_password",
    },
}


class PipelineOptions(BaseModel):
    """Options for one pipeline run."""

    data_dir: str
    batch_size: int = 1000
    clean_database: bool = False
    max_files: int | None = None
    file_pattern: str = DEFAULT_FILE_PATTERN

    @field_validator("data_dir")
    @classmethod
    def check_data_dir(cls, v):
        return validate_data_dir(v)

    @field_validator("batch_size")
    @classmethod
    def check_batch_size(cls, v):
        return validate_batch_size(v)

    @field_validator("max_files")
    @classmethod
    def check_max_files(cls, v):
        return validate_max_files(v)

    @field_validator("file_pattern")
    @classmethod
    def check_file_pattern(cls, v):
        validate_file_pattern(v)
        return v


class PipelineSettings(BaseModel):
    """
    Full application settings: run options plus logging, metrics and database.
    """

    data_dir: str = "./data"
    batch_size: int = 1000
    clean_database: bool = False
    max_files: int | None = None
    file_pattern: str = DEFAULT_FILE_PATTERN
    log_level: str = "INFO"
    log_format: str = "json"
    metrics_port: int | None = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "advocacy"
    db_user: str = "pipeline"
    db_password: str | None = Field(default=None, repr=False)

    @field_validator("log_format")
    @classmethod
    def check_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @field_validator("max_files", "metrics_port", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def pipeline_options(self) -> PipelineOptions:
        return PipelineOptions(
            data_dir=self.data_dir,
            batch_size=self.batch_size,
            clean_database=self.clean_database,
            max_files=self.max_files,
            file_pattern=self.file_pattern,
        )

    def database_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for DatabaseConnectionPool."""
        return {
            "host": self.db_host,
            "port": self.db_port,
            "database": self.db_name,
            "user": self.db_user,
            "password": self.db_password,
        }


def _read_yaml(config_path: str | Path) -> dict[str, Any]:
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")

    values: dict[str, Any] = {}
    for section, keys in YAML_SECTIONS.items():
        section_values = config.get(section) or {}
        if not isinstance(section_values, dict):
            raise ConfigurationError(f"Section '{section}' in {config_path} must be a mapping")
        for key, field_name in keys.items():
            if key in section_values:
                values[field_name] = section_values[key]
    return values


def load_settings(
    config_path: str | Path | None = None,
    env_file: str | Path | None = None,
    **overrides: Any,
) -> PipelineSettings:
    """
    Build PipelineSettings from YAML, .env, environment and explicit overrides.

    Args:
        config_path: Optional YAML configuration file
        env_file: Optional .env file (defaults to python-dotenv's lookup)
        **overrides: Values that win over every other source (None is ignored)

    Returns:
        PipelineSettings instance

    Raises:
        ConfigurationError: If a source is unreadable or a value is invalid
    """
    values: dict[str, Any] = {}
    if config_path:
        values.update(_read_yaml(config_path))

    load_dotenv(env_file)
    for env_name, field_name in ENV_FIELDS.items():
        env_value = os.getenv(env_name)
        if env_value is not None:
            values[field_name] = env_value

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        settings = PipelineSettings(**values)
        # Run-option checks share the PipelineOptions validators
        settings.pipeline_options()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    return settings
