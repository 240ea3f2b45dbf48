"""Configuration management with validation.

All runtime knobs are read from the environment once and validated at load
time, so a misconfigured operator fails at startup rather than mid-reconcile.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

# Environment references shared with the kubelogin helper contract
KUBECONFIG_ENV_VAR = "KUBECONFIG"
KUBELOGIN_PATH_ENV_VAR = "KUBELOGIN_PATH"
KUBELOGIN_DEFAULT = "kubelogin"

# Configuration constants with documented bounds
DEFAULT_KUBELOGIN_TIMEOUT_SECONDS = 120
MIN_KUBELOGIN_TIMEOUT_SECONDS = 5
MAX_KUBELOGIN_TIMEOUT_SECONDS = 900

DEFAULT_CLOUD_CALL_TIMEOUT_SECONDS = 300
MIN_CLOUD_CALL_TIMEOUT_SECONDS = 10
MAX_CLOUD_CALL_TIMEOUT_SECONDS = 1800

# Sequential by default; raise to process specs with bounded concurrency
DEFAULT_MAX_CONCURRENT_OPERATIONS = 1
MAX_CONCURRENT_OPERATIONS = 16

DEFAULT_CLIENT_SECRET_ENV_VAR = "AZURE_CLIENT_SECRET"

# Security constraints
MAX_MANIFEST_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max manifest file
MAX_KUBECONFIG_SIZE_BYTES = 1024 * 1024

# Input validation pattern
VALID_ENV_VAR_PATTERN = r"^[A-Z_][A-Z0-9_]*$"


def _get_int_env(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer: {value}") from e


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Helper executable override; None means look up KUBELOGIN_DEFAULT
    kubelogin_path: str | None = None
    kubelogin_timeout_seconds: int = DEFAULT_KUBELOGIN_TIMEOUT_SECONDS

    # Azure SDK calls
    cloud_call_timeout_seconds: int = DEFAULT_CLOUD_CALL_TIMEOUT_SECONDS
    max_concurrent_operations: int = DEFAULT_MAX_CONCURRENT_OPERATIONS

    # Fallback secret source used after any Kubernetes secret reference
    client_secret_env_var: str = DEFAULT_CLIENT_SECRET_ENV_VAR

    manifests_path: Path | None = None

    def __post_init__(self) -> None:
        import re

        errors: list[str] = []

        if self.kubelogin_path is not None and not self.kubelogin_path.strip():
            errors.append(f"{KUBELOGIN_PATH_ENV_VAR} must not be empty when set")

        if not (
            MIN_KUBELOGIN_TIMEOUT_SECONDS
            <= self.kubelogin_timeout_seconds
            <= MAX_KUBELOGIN_TIMEOUT_SECONDS
        ):
            errors.append(
                f"KUBELOGIN_TIMEOUT must be between {MIN_KUBELOGIN_TIMEOUT_SECONDS} "
                f"and {MAX_KUBELOGIN_TIMEOUT_SECONDS} seconds"
            )

        if not (
            MIN_CLOUD_CALL_TIMEOUT_SECONDS
            <= self.cloud_call_timeout_seconds
            <= MAX_CLOUD_CALL_TIMEOUT_SECONDS
        ):
            errors.append(
                f"CLOUD_CALL_TIMEOUT must be between {MIN_CLOUD_CALL_TIMEOUT_SECONDS} "
                f"and {MAX_CLOUD_CALL_TIMEOUT_SECONDS} seconds"
            )

        if not (1 <= self.max_concurrent_operations <= MAX_CONCURRENT_OPERATIONS):
            errors.append(
                f"MAX_CONCURRENT_OPERATIONS must be between 1 and {MAX_CONCURRENT_OPERATIONS}"
            )

        if not re.match(VALID_ENV_VAR_PATTERN, self.client_secret_env_var):
            errors.append(
                f"CLIENT_SECRET_ENV_VAR is not a valid variable name: {self.client_secret_env_var}"
            )

        if self.manifests_path is not None and not self.manifests_path.exists():
            errors.append(f"Manifest file does not exist: {self.manifests_path}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def helper_executable(self) -> str:
        """Name or path of the kubelogin helper to look up."""
        return self.kubelogin_path or KUBELOGIN_DEFAULT

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            KUBELOGIN_PATH: Location of the kubelogin helper (default: kubelogin on PATH)
            KUBELOGIN_TIMEOUT: Seconds to wait for the helper (default: 120)
            CLOUD_CALL_TIMEOUT: Seconds to wait for a single Azure call (default: 300)
            MAX_CONCURRENT_OPERATIONS: Specs processed in parallel per service (default: 1)
            CLIENT_SECRET_ENV_VAR: Fallback variable holding the client secret
                (default: AZURE_CLIENT_SECRET)
            MANIFESTS_PATH: Multi-document YAML with the cluster objects
        """

        manifests = os.environ.get("MANIFESTS_PATH")

        return cls(
            kubelogin_path=os.environ.get(KUBELOGIN_PATH_ENV_VAR),
            kubelogin_timeout_seconds=_get_int_env(
                "KUBELOGIN_TIMEOUT", DEFAULT_KUBELOGIN_TIMEOUT_SECONDS
            ),
            cloud_call_timeout_seconds=_get_int_env(
                "CLOUD_CALL_TIMEOUT", DEFAULT_CLOUD_CALL_TIMEOUT_SECONDS
            ),
            max_concurrent_operations=_get_int_env(
                "MAX_CONCURRENT_OPERATIONS", DEFAULT_MAX_CONCURRENT_OPERATIONS
            ),
            client_secret_env_var=os.environ.get(
                "CLIENT_SECRET_ENV_VAR", DEFAULT_CLIENT_SECRET_ENV_VAR
            ),
            manifests_path=Path(manifests) if manifests else None,
        )

    @classmethod
    def kubelogin_from_env(cls) -> Config:
        """Load only the kubelogin helper settings from the environment.

        Used by kubeconfig conversion, which must not fail on settings it
        does not use (such as a stale MANIFESTS_PATH).
        """
        return cls(
            kubelogin_path=os.environ.get(KUBELOGIN_PATH_ENV_VAR),
            kubelogin_timeout_seconds=_get_int_env(
                "KUBELOGIN_TIMEOUT", DEFAULT_KUBELOGIN_TIMEOUT_SECONDS
            ),
        )
