"""Declarative specs describing desired cloud-side resources.

Specs are plain immutable value objects built fresh for each reconcile pass.
Each reconcilable spec exposes a stable ``key`` used for idempotent existence
checks and for attributing failures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SUBNET_ID_TEMPLATE = (
    "/subscriptions/{subscription}/resourceGroups/{resource_group}"
    "/providers/Microsoft.Network/virtualNetworks/{vnet}/subnets/{subnet}"
)

# Well-known built-in role; same GUID in every tenant
CONTRIBUTOR_ROLE_ID = "b24988ac-6180-42a0-ab88-20f7382dd24c"


def subnet_id(
    subscription_id: str | None,
    resource_group: str | None,
    vnet_name: str | None,
    subnet_name: str | None,
) -> str:
    """Compose a subnet resource ID; absent segments become empty strings."""
    return SUBNET_ID_TEMPLATE.format(
        subscription=subscription_id or "",
        resource_group=resource_group or "",
        vnet=vnet_name or "",
        subnet=subnet_name or "",
    )


def role_definition_id(subscription_id: str, role_id: str = CONTRIBUTOR_ROLE_ID) -> str:
    """Fully qualified role definition ID at subscription scope."""
    return (
        f"/subscriptions/{subscription_id}"
        f"/providers/Microsoft.Authorization/roleDefinitions/{role_id}"
    )


@dataclass(frozen=True)
class AutoScaling:
    """Autoscaler bounds for a node pool."""

    min_count: int
    max_count: int


@dataclass(frozen=True)
class NodePoolSpec:
    """Desired state of one managed node pool.

    ``auto_scaling`` is None when the pool declares no scaling policy. Labels
    are kept as sorted key/value pairs so the spec stays hashable.
    """

    name: str
    sku: str
    mode: str
    cluster: str
    replicas: int
    vnet_subnet_id: str
    auto_scaling: AutoScaling | None = None
    os_disk_size_gb: int | None = None
    max_pods: int | None = None
    availability_zones: tuple[str, ...] = ()
    node_labels: tuple[tuple[str, str], ...] = ()
    version: str | None = None
    resource_group: str | None = None

    @property
    def enable_auto_scaling(self) -> bool:
        return self.auto_scaling is not None


@dataclass(frozen=True)
class RoleAssignmentSpec:
    """Binding of a scale set's system-assigned identity to a role."""

    name: str
    machine_name: str
    resource_group: str
    scope: str
    role_definition_id: str
    resource_type: str = "VirtualMachineScaleSet"

    @property
    def key(self) -> str:
        return f"{self.scope.rstrip('/')}/roleAssignments/{self.name}"


@dataclass(frozen=True)
class VMSSExtensionSpec:
    """Extension to install on a virtual machine scale set.

    Settings are free-form JSON, so extension specs are not hashable.
    """

    __hash__ = None  # type: ignore[assignment]

    name: str
    vmss_name: str
    resource_group: str
    publisher: str
    version: str
    extension_type: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    protected_settings: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def key(self) -> str:
        return f"{self.resource_group}/{self.vmss_name}/{self.name}"
