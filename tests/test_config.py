"""Tests for configuration loading."""

import pytest

from coldpack.config import (
    CONFIG_ENV_VAR,
    BackendKind,
    ColdpackConfig,
    ConfigError,
    build_backend,
    load_config,
)
from coldpack.storage.local import LocalStorageBackend
from coldpack.storage.rclone import RcloneStorageBackend


class TestColdpackConfig:
    """Test config parsing."""

    def test_defaults(self):
        """Test default settings."""
        config = ColdpackConfig()
        assert config.backend == BackendKind.LOCAL
        assert config.rclone_remote is None
        assert config.rclone_binary == "rclone"
        assert config.log_level == "info"

    def test_from_yaml(self):
        """Test parsing a full YAML config."""
        config = ColdpackConfig.from_yaml(
            "backend: rclone\n"
            "rclone_remote: s3:archive-bucket\n"
            "rclone_binary: /opt/rclone\n"
            "log_level: DEBUG\n"
        )
        assert config.backend == BackendKind.RCLONE
        assert config.rclone_remote == "s3:archive-bucket"
        assert config.rclone_binary == "/opt/rclone"
        assert config.log_level == "debug"

    def test_empty_yaml(self):
        """Test that an empty file yields defaults."""
        assert ColdpackConfig.from_yaml("") == ColdpackConfig()

    def test_yaml_round_trip(self):
        """Test to_yaml/from_yaml."""
        config = ColdpackConfig(backend="rclone", rclone_remote="gdrive:")
        assert ColdpackConfig.from_yaml(config.to_yaml()) == config

    @pytest.mark.parametrize(
        "text",
        [
            "backend: [unclosed",
            "- just\n- a list\n",
            "backend: ftp\n",
            "log_level: loud\n",
        ],
    )
    def test_invalid_yaml(self, text):
        """Test that malformed or invalid configs raise ConfigError."""
        with pytest.raises(ConfigError):
            ColdpackConfig.from_yaml(text)


class TestLoadConfig:
    """Test config file resolution."""

    def test_no_config(self, monkeypatch):
        """Test defaults when nothing is configured."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert load_config() == ColdpackConfig()

    def test_explicit_path(self, tmp_path):
        """Test loading an explicit config file."""
        path = tmp_path / "coldpack.yaml"
        path.write_text("log_level: warn\n")
        assert load_config(path).log_level == "warn"

    def test_env_var(self, tmp_path, monkeypatch):
        """Test loading the file named by the environment variable."""
        path = tmp_path / "env.yaml"
        path.write_text("backend: rclone\nrclone_remote: 'b2:bucket'\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().rclone_remote == "b2:bucket"

    def test_missing_file(self, tmp_path):
        """Test that an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError, match="Cannot read config"):
            load_config(tmp_path / "missing.yaml")


class TestBuildBackend:
    """Test backend construction from config."""

    def test_local(self):
        """Test default local backend."""
        assert isinstance(build_backend(ColdpackConfig()), LocalStorageBackend)

    def test_rclone(self):
        """Test rclone backend settings."""
        backend = build_backend(
            ColdpackConfig(backend="rclone", rclone_remote="s3:b", rclone_binary="rc")
        )
        assert isinstance(backend, RcloneStorageBackend)
        assert backend.remote == "s3:b"
        assert backend.binary == "rc"

    def test_rclone_requires_remote(self):
        """Test that rclone without a remote is rejected."""
        with pytest.raises(ConfigError, match="rclone_remote"):
            build_backend(ColdpackConfig(backend="rclone"))
