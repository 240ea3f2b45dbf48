"""Tests for configuration loading."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from managedcluster.config import Config
from managedcluster.errors import ConfigurationError


class TestConfig:
    """Tests for Config class."""

    def test_defaults(self) -> None:
        """Test that the default configuration is valid."""
        config = Config()

        assert config.kubelogin_path is None
        assert config.helper_executable == "kubelogin"
        assert config.kubelogin_timeout_seconds == 120
        assert config.cloud_call_timeout_seconds == 300
        assert config.max_concurrent_operations == 1
        assert config.client_secret_env_var == "AZURE_CLIENT_SECRET"

    def test_helper_path_override(self) -> None:
        """Test that an explicit helper path is used as the executable."""
        config = Config(kubelogin_path="/opt/bin/kubelogin")
        assert config.helper_executable == "/opt/bin/kubelogin"

    def test_blank_helper_path(self) -> None:
        """Test that a blank helper path is rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(kubelogin_path="  ")

        assert "KUBELOGIN_PATH" in str(exc_info.value)

    def test_invalid_kubelogin_timeout(self) -> None:
        """Test that out-of-range helper timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(kubelogin_timeout_seconds=1)  # Too low

        assert "KUBELOGIN_TIMEOUT" in str(exc_info.value)

    def test_invalid_cloud_call_timeout(self) -> None:
        """Test that out-of-range cloud call timeout raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(cloud_call_timeout_seconds=3600)  # Too high

        assert "CLOUD_CALL_TIMEOUT" in str(exc_info.value)

    def test_invalid_concurrency(self) -> None:
        """Test that zero concurrency raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(max_concurrent_operations=0)

        assert "MAX_CONCURRENT_OPERATIONS" in str(exc_info.value)

    def test_invalid_secret_variable(self) -> None:
        """Test that the fallback secret variable must be a valid name."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(client_secret_env_var="not-a-var")

        assert "CLIENT_SECRET_ENV_VAR" in str(exc_info.value)

    def test_missing_manifest(self, tmp_path: Path) -> None:
        """Test that a missing manifest file raises error."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(manifests_path=tmp_path / "missing.yaml")

        assert "does not exist" in str(exc_info.value)

    def test_errors_are_collected(self) -> None:
        """Test that every invalid field is reported at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(kubelogin_timeout_seconds=1, max_concurrent_operations=99)

        message = str(exc_info.value)
        assert "KUBELOGIN_TIMEOUT" in message
        assert "MAX_CONCURRENT_OPERATIONS" in message

    def test_from_env(self, tmp_path: Path) -> None:
        """Test loading configuration from environment."""
        manifest = tmp_path / "cluster.yaml"
        manifest.write_text("")

        env = {
            "KUBELOGIN_PATH": "/usr/local/bin/kubelogin",
            "KUBELOGIN_TIMEOUT": "60",
            "CLOUD_CALL_TIMEOUT": "120",
            "MAX_CONCURRENT_OPERATIONS": "4",
            "CLIENT_SECRET_ENV_VAR": "SP_SECRET",
            "MANIFESTS_PATH": str(manifest),
        }

        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.kubelogin_path == "/usr/local/bin/kubelogin"
        assert config.kubelogin_timeout_seconds == 60
        assert config.cloud_call_timeout_seconds == 120
        assert config.max_concurrent_operations == 4
        assert config.client_secret_env_var == "SP_SECRET"
        assert config.manifests_path == manifest

    def test_from_env_defaults(self) -> None:
        """Test that an empty environment yields the defaults."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()

        assert config == Config()

    def test_from_env_non_integer(self) -> None:
        """Test that a non-integer timeout raises error."""
        with patch.dict(os.environ, {"KUBELOGIN_TIMEOUT": "soon"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                Config.from_env()

        assert "KUBELOGIN_TIMEOUT must be an integer" in str(exc_info.value)

    def test_kubelogin_from_env(self, tmp_path: Path) -> None:
        """Test that only the helper settings are read for conversion."""
        env = {
            "KUBELOGIN_PATH": "/usr/local/bin/kubelogin",
            "KUBELOGIN_TIMEOUT": "60",
            "MAX_CONCURRENT_OPERATIONS": "99",
            "MANIFESTS_PATH": str(tmp_path / "missing.yaml"),
        }

        with patch.dict(os.environ, env, clear=True):
            config = Config.kubelogin_from_env()

        assert config.kubelogin_path == "/usr/local/bin/kubelogin"
        assert config.kubelogin_timeout_seconds == 60
        assert config.max_concurrent_operations == 1
        assert config.manifests_path is None

    def test_kubelogin_from_env_invalid_timeout(self) -> None:
        """Test that the helper settings are still validated."""
        with patch.dict(os.environ, {"KUBELOGIN_TIMEOUT": "1"}, clear=True):
            with pytest.raises(ConfigurationError) as exc_info:
                Config.kubelogin_from_env()

        assert "KUBELOGIN_TIMEOUT" in str(exc_info.value)
