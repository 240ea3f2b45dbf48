"""Scopes: per-pass context objects that turn cluster objects into specs.

A scope is built once per reconcile pass from already-fetched declarative
objects and is discarded afterwards. It owns no cloud resources.

Each reconciler service depends only on the narrow protocol it needs
(``RoleAssignmentScope``, ``VMSSExtensionScope``) rather than on the full
``ManagedControlPlaneScope``, so tests can hand it a small fake.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

from .credentials import CredentialsProvider
from .errors import ConfigurationError
from .models import AzureManagedControlPlane, AzureManagedMachinePool, Cluster, MachinePool
from .specs import (
    AutoScaling,
    NodePoolSpec,
    RoleAssignmentSpec,
    VMSSExtensionSpec,
    role_definition_id,
    subnet_id,
)

logger = logging.getLogger(__name__)

# Desired replica baseline for a newly derived pool spec; the autoscaler (when
# enabled) or the orchestrator adjusts the live count from there
DEFAULT_REPLICAS = 1


class ScopeLoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Tags records with the scope's cluster and pool, keeping caller extras."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


# =============================================================================
# Capability interfaces
# =============================================================================


class CredentialsScope(Protocol):
    """Capabilities every cloud-facing service needs."""

    @property
    def credentials_provider(self) -> CredentialsProvider: ...

    @property
    def logger(self) -> logging.Logger | logging.LoggerAdapter[Any]: ...

    @property
    def subscription_id(self) -> str: ...


class RoleAssignmentScope(CredentialsScope, Protocol):
    """Scope consumed by the role assignment service."""

    def role_assignment_specs(self) -> list[RoleAssignmentSpec]: ...


class VMSSExtensionScope(CredentialsScope, Protocol):
    """Scope consumed by the VMSS extension service."""

    def vmss_extension_specs(self) -> list[VMSSExtensionSpec]: ...


# =============================================================================
# Spec derivation
# =============================================================================


def derive_auto_scaling(infra_pool: AzureManagedMachinePool) -> AutoScaling | None:
    """Autoscaler bounds, or None unless both min and max are declared."""
    scaling = infra_pool.spec.scaling
    if scaling is None or scaling.min_size is None or scaling.max_size is None:
        return None
    return AutoScaling(min_count=scaling.min_size, max_count=scaling.max_size)


def derive_node_pool_spec(
    cluster: Cluster,
    control_plane: AzureManagedControlPlane,
    machine_pool: MachinePool,
    infra_pool: AzureManagedMachinePool,
) -> NodePoolSpec:
    """Build the desired node pool spec from the cluster objects.

    Pure and deterministic: no I/O, no shared state. Missing optional inputs
    degrade to empty values instead of raising.
    """
    vnet = control_plane.spec.virtual_network
    vnet_name = vnet.name if vnet else None
    vnet_resource_group = vnet.resource_group if vnet else None
    subnet_name = vnet.subnet.name if vnet and vnet.subnet else None

    pool = infra_pool.spec
    return NodePoolSpec(
        name=pool.name or infra_pool.metadata.name,
        sku=pool.sku,
        mode=pool.mode.value,
        cluster=cluster.name,
        replicas=DEFAULT_REPLICAS,
        vnet_subnet_id=subnet_id(
            control_plane.spec.subscription_id,
            vnet_resource_group,
            vnet_name,
            subnet_name,
        ),
        auto_scaling=derive_auto_scaling(infra_pool),
        os_disk_size_gb=pool.os_disk_size_gb,
        max_pods=pool.max_pods,
        availability_zones=tuple(pool.availability_zones),
        node_labels=tuple(sorted(pool.node_labels.items())),
        version=machine_pool.spec.version,
        resource_group=control_plane.spec.resource_group_name,
    )


# =============================================================================
# Managed control plane scope
# =============================================================================


@dataclass(frozen=True)
class ManagedControlPlaneScopeParams:
    """Inputs for building a ManagedControlPlaneScope."""

    cluster: Cluster | None
    control_plane: AzureManagedControlPlane | None
    machine_pool: MachinePool | None
    infra_machine_pool: AzureManagedMachinePool | None
    credentials_provider: CredentialsProvider | None


class ManagedControlPlaneScope:
    """Scope for one node pool of an Azure managed cluster.

    Satisfies both RoleAssignmentScope and VMSSExtensionScope.
    """

    def __init__(self, params: ManagedControlPlaneScopeParams) -> None:
        missing = [
            name
            for name, value in (
                ("cluster", params.cluster),
                ("control plane", params.control_plane),
                ("machine pool", params.machine_pool),
                ("infrastructure machine pool", params.infra_machine_pool),
                ("credentials provider", params.credentials_provider),
            )
            if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"Cannot create managed control plane scope without: {', '.join(missing)}"
            )

        # Narrowed by the check above
        self._cluster: Cluster = params.cluster  # type: ignore[assignment]
        self._control_plane: AzureManagedControlPlane = params.control_plane  # type: ignore[assignment]
        self._machine_pool: MachinePool = params.machine_pool  # type: ignore[assignment]
        self._infra_pool: AzureManagedMachinePool = params.infra_machine_pool  # type: ignore[assignment]
        self._credentials_provider: CredentialsProvider = params.credentials_provider  # type: ignore[assignment]

        self._logger = ScopeLoggerAdapter(
            logger,
            {"cluster": self.cluster_name, "pool": self._infra_pool.metadata.name},
        )

    @property
    def credentials_provider(self) -> CredentialsProvider:
        return self._credentials_provider

    @property
    def logger(self) -> ScopeLoggerAdapter:
        return self._logger

    @property
    def cluster_name(self) -> str:
        return self._cluster.name

    @property
    def subscription_id(self) -> str:
        return (
            self._control_plane.spec.subscription_id
            or self._credentials_provider.get_subscription_id()
        )

    @property
    def resource_group(self) -> str:
        return self._control_plane.spec.resource_group_name or ""

    @property
    def node_resource_group(self) -> str:
        """Resource group holding the pool's scale sets."""
        return self._control_plane.spec.node_resource_group_name or self.resource_group

    @property
    def location(self) -> str:
        return self._control_plane.spec.location or ""

    @property
    def pool_name(self) -> str:
        return self._infra_pool.spec.name or self._infra_pool.metadata.name

    def node_pool_spec(self) -> NodePoolSpec:
        return derive_node_pool_spec(
            self._cluster, self._control_plane, self._machine_pool, self._infra_pool
        )

    def role_assignment_specs(self) -> list[RoleAssignmentSpec]:
        """Contributor assignment for the pool's system-assigned identity, if enabled."""
        pool = self._infra_pool.spec
        if pool.identity != "SystemAssigned":
            return []

        # Deterministic name keeps the assignment idempotent across passes
        seed = f"{self.subscription_id}/{self.cluster_name}/{self.pool_name}"
        name = pool.role_assignment_name or str(uuid.uuid5(uuid.NAMESPACE_URL, seed))
        return [
            RoleAssignmentSpec(
                name=name,
                machine_name=self.pool_name,
                resource_group=self.node_resource_group,
                scope=f"/subscriptions/{self.subscription_id}/",
                role_definition_id=role_definition_id(self.subscription_id),
            )
        ]

    def vmss_extension_specs(self) -> list[VMSSExtensionSpec]:
        return [
            VMSSExtensionSpec(
                name=ext.name,
                vmss_name=self.pool_name,
                resource_group=self.node_resource_group,
                publisher=ext.publisher,
                version=ext.version,
                extension_type=ext.extension_type or ext.name,
                settings=dict(ext.settings),
                protected_settings=dict(ext.protected_settings),
            )
            for ext in self._infra_pool.spec.vm_extensions
        ]
