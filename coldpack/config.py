"""Configuration loading for coldpack."""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .storage.base import StorageBackend
from .storage.local import LocalStorageBackend
from .storage.rclone import RcloneStorageBackend

logger = logging.getLogger(__name__)

# Environment variable naming a config file when --config is not given
CONFIG_ENV_VAR = "COLDPACK_CONFIG"

LOG_LEVELS = {"debug", "info", "warn", "warning", "error"}


class ConfigError(ValueError):
    """Configuration file is unreadable or invalid."""


class BackendKind(str, Enum):
    """Storage backend selection."""

    LOCAL = "local"
    RCLONE = "rclone"


class ColdpackConfig(BaseModel):
    """Settings for the coldpack command line."""

    backend: BackendKind = Field(
        default=BackendKind.LOCAL, description="Storage backend for containers"
    )
    rclone_remote: Optional[str] = Field(
        None, description="Remote prefix for the rclone backend (e.g. s3:bucket)"
    )
    rclone_binary: str = Field(default="rclone", description="rclone executable")
    log_level: str = Field(default="info", description="Default logging level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one the CLI understands."""
        if v.lower() not in LOG_LEVELS:
            raise ValueError(f"Log level must be debug, info, warn or error: {v}")
        return v.lower()

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ColdpackConfig":
        """
        Deserialize config from YAML string.

        Args:
            yaml_str: YAML string to parse (empty means all defaults)

        Returns:
            ColdpackConfig instance

        Raises:
            ConfigError: If the YAML is malformed or a field is invalid
        """
        try:
            data = yaml.safe_load(yaml_str)
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config YAML: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Config must be a YAML mapping")

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config: {e}") from e

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        data = self.model_dump(exclude_none=True, mode="json")
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


def load_config(path: Optional[Path] = None) -> ColdpackConfig:
    """
    Load configuration from an explicit path, $COLDPACK_CONFIG, or defaults.

    Args:
        path: Config file path (overrides the environment variable)

    Returns:
        ColdpackConfig instance

    Raises:
        ConfigError: If the file cannot be read or is invalid
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return ColdpackConfig()
        path = Path(env_path)

    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    logger.debug("Loaded config from %s", path)
    return ColdpackConfig.from_yaml(text)


def build_backend(config: ColdpackConfig) -> StorageBackend:
    """
    Construct the storage backend named by the config.

    Raises:
        ConfigError: If the rclone backend is selected without a remote
    """
    if config.backend == BackendKind.RCLONE:
        if not config.rclone_remote:
            raise ConfigError("rclone backend requires rclone_remote")
        return RcloneStorageBackend(config.rclone_remote, binary=config.rclone_binary)
    return LocalStorageBackend()
