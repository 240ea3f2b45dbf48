"""Error taxonomy for the managed cluster operator core.

Every failure surfaced by this package derives from ManagedClusterError so
callers (the outer reconcile loop, the CLI) can catch the whole family in one
place. Errors are always propagated to the caller; the only local recovery
in this package is cleanup of temp files and environment overrides.

SECURITY: No error message in this module ever embeds a secret value.
Secret references are identified by namespace/name/key only.
"""

from __future__ import annotations

from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError

# HTTP status codes that indicate a transient condition worth retrying.
# The retry decision itself belongs to the outer control loop.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})


class ManagedClusterError(Exception):
    """Base class for all errors raised by this package."""

    pass


class ConfigurationError(ManagedClusterError):
    """Raised when configuration or required scope data is missing or invalid."""

    pass


class SecretResolutionError(ManagedClusterError):
    """Raised when a client secret cannot be looked up or decoded."""

    pass


class ExternalProcessError(ManagedClusterError):
    """Raised when the external helper process fails.

    Attributes:
        stderr: Captured standard error of the helper, if it ran.
        returncode: Exit status of the helper, if it ran.
    """

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class HelperNotFoundError(ExternalProcessError):
    """Raised when the helper executable cannot be found on the search path."""

    pass


class KubeconfigIOError(ManagedClusterError):
    """Raised when the temporary kubeconfig cannot be written or read back."""

    pass


class ManifestLoadError(ManagedClusterError):
    """Raised when a manifest file cannot be loaded or fails validation."""

    pass


class CloudAPIError(ManagedClusterError):
    """Opaque passthrough of an Azure SDK failure.

    Keeps enough structure for the caller to classify the failure without
    inspecting SDK types.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        not_found: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.not_found = not_found

    @property
    def retryable(self) -> bool:
        """True if the outer loop may reasonably retry this failure.

        Non-HTTP Azure errors (connection resets, auth token refresh
        failures) carry no status code and are treated as transient.
        """
        if self.status_code is None:
            return True
        return self.status_code in RETRYABLE_STATUS_CODES

    @classmethod
    def from_azure_error(cls, error: AzureError, operation: str) -> CloudAPIError:
        """Wrap an Azure SDK error raised during ``operation``."""
        if isinstance(error, HttpResponseError):
            error_code = error.error.code if error.error else None
            return cls(
                f"{operation} failed ({error.status_code}): {error.message}",
                status_code=error.status_code,
                error_code=error_code,
                not_found=isinstance(error, ResourceNotFoundError),
            )
        return cls(f"{operation} failed: {error}")


class ReconcileAggregateError(ManagedClusterError):
    """Raised when one or more specs failed during a reconcile or delete pass.

    Every spec is attempted before this is raised. ``failures`` maps the
    stable key of each failing spec to the error it produced.
    """

    def __init__(self, kind: str, failures: dict[str, Exception], summary: Any = None) -> None:
        keys = ", ".join(failures)
        super().__init__(f"{len(failures)} {kind} spec(s) failed: {keys}")
        self.kind = kind
        self.failures = failures
        self.summary = summary
