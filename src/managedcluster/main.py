"""Entry point for one reconcile pass over a cluster's node pools.

For every MachinePool / AzureManagedMachinePool pair in the manifest:
1. Build a ManagedControlPlaneScope (fresh per pass)
2. Reconcile role assignments for the pool's scale set identity
3. Reconcile the pool's VM scale set extensions

Scheduling, retries and backoff belong to the outer control loop; this module
runs exactly one pass and reports the outcome through its exit code.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import UTC

from kubernetes import client

from .config import Config
from .credentials import CredentialsProvider
from .errors import (
    ConfigurationError,
    ManagedClusterError,
    ManifestLoadError,
    ReconcileAggregateError,
    SecretResolutionError,
)
from .manifests import ManifestBundle, load_manifests
from .scope import ManagedControlPlaneScope, ManagedControlPlaneScopeParams
from .services.base import ReconcileSummary
from .services.roleassignments import RoleAssignmentService
from .services.vmssextensions import VMSSExtensionService


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging with JSON output for production."""
    import json
    from datetime import datetime

    class JsonFormatter(logging.Formatter):
        """Format logs as JSON for structured logging."""

        _RESERVED = frozenset(
            logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
            | {"message", "taskName"}
        )

        def format(self, record: logging.LogRecord) -> str:
            log_data = {
                "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
                "level": record.levelname,
                "message": record.getMessage(),
                "logger": record.name,
            }

            # Add extra fields from the record
            for key, value in record.__dict__.items():
                if key not in self._RESERVED:
                    log_data[key] = value

            if record.exc_info:
                log_data["exception"] = self.formatException(record.exc_info)

            return json.dumps(log_data, default=str)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from SDKs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def build_credentials_provider(
    bundle: ManifestBundle,
    config: Config,
    core_api: client.CoreV1Api | None = None,
) -> CredentialsProvider:
    """Credentials provider for the bundle's cluster identity.

    Raises:
        ConfigurationError: If the manifest has no identity or control plane.
    """
    if bundle.identity is None:
        raise ConfigurationError("Manifest has no AzureClusterIdentity")
    if bundle.control_plane is None:
        raise ConfigurationError("Manifest has no AzureManagedControlPlane")

    return CredentialsProvider.from_identity(
        bundle.identity,
        bundle.control_plane.spec.subscription_id,
        core_api=core_api,
        fallback_env_var=config.client_secret_env_var,
    )


def build_scopes(
    bundle: ManifestBundle,
    credentials_provider: CredentialsProvider,
) -> list[ManagedControlPlaneScope]:
    """One scope per pool pair in the bundle."""
    return [
        ManagedControlPlaneScope(
            ManagedControlPlaneScopeParams(
                cluster=bundle.cluster,
                control_plane=bundle.control_plane,
                machine_pool=machine_pool,
                infra_machine_pool=infra_pool,
                credentials_provider=credentials_provider,
            )
        )
        for machine_pool, infra_pool in bundle.pools()
    ]


async def reconcile_scope(
    scope: ManagedControlPlaneScope,
    config: Config,
) -> list[ReconcileSummary]:
    """Run every service for one pool; all services run even if one fails.

    Raises:
        ReconcileAggregateError: Combining the failures of all services.
    """
    services = (
        RoleAssignmentService(scope, config),
        VMSSExtensionService(scope, config),
    )
    summaries: list[ReconcileSummary] = []
    failures: dict[str, Exception] = {}

    for service in services:
        try:
            summaries.append(await service.reconcile())
        except ReconcileAggregateError as e:
            summaries.append(e.summary)
            failures.update(e.failures)

    if failures:
        raise ReconcileAggregateError(f"pool {scope.pool_name}", failures, summaries)
    return summaries


async def reconcile_cluster(
    bundle: ManifestBundle,
    config: Config,
    credentials_provider: CredentialsProvider,
) -> list[ReconcileSummary]:
    """Reconcile every pool of the cluster.

    Raises:
        ReconcileAggregateError: If any spec of any pool failed.
    """
    summaries: list[ReconcileSummary] = []
    failures: dict[str, Exception] = {}

    for scope in build_scopes(bundle, credentials_provider):
        try:
            summaries.extend(await reconcile_scope(scope, config))
        except ReconcileAggregateError as e:
            summaries.extend(e.summary)
            failures.update(e.failures)

    if failures:
        cluster = bundle.cluster.name if bundle.cluster else "cluster"
        raise ReconcileAggregateError(cluster, failures, summaries)
    return summaries


async def main() -> int:
    """Run one reconcile pass.

    Returns:
        Exit code (0 success, 1 configuration or reconcile failure,
        2 credential failure).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
        if config.manifests_path is None:
            raise ConfigurationError("MANIFESTS_PATH is required")
        bundle = load_manifests(config.manifests_path)
        credentials_provider = build_credentials_provider(bundle, config)
    except (ConfigurationError, ManifestLoadError) as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    try:
        summaries = await reconcile_cluster(bundle, config, credentials_provider)
    except SecretResolutionError as e:
        logger.critical("Client secret could not be resolved", extra={"error": str(e)})
        return 2
    except ReconcileAggregateError as e:
        logger.error(
            "Reconcile pass failed",
            extra={
                "failed_specs": sorted(e.failures),
                "retryable": all(getattr(f, "retryable", False) for f in e.failures.values()),
            },
        )
        return 1
    except ManagedClusterError as e:
        logger.error("Reconcile pass failed", extra={"error": str(e)})
        return 1

    logger.info(
        "Reconcile pass complete",
        extra={"services_run": len(summaries)},
    )
    return 0


def run() -> None:
    """Entry point for the reconcile pass."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
