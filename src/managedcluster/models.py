"""Pydantic models for the declarative cluster objects.

These are read-only inputs supplied by the host orchestrator (or loaded from a
manifest file). They mirror the Cluster API / Azure provider objects closely
enough for spec derivation; admission and schema versioning are handled by
the orchestrator, so unknown fields are ignored here.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Common
# =============================================================================


class NodePoolMode(str, Enum):
    """Declared role of a node pool within the managed cluster."""

    SYSTEM = "System"
    USER = "User"


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata used by the operator."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1, max_length=253)]
    namespace: str = "default"
    labels: dict[str, str] = Field(default_factory=dict)


class SecretReference(BaseModel):
    """Pointer to one key of a namespaced Kubernetes Secret."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    namespace: str = "default"
    key: str = "clientSecret"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}[{self.key}]"


class ObjectReference(BaseModel):
    """Reference to another declarative object by name."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    namespace: str | None = None
    kind: str | None = None


# =============================================================================
# Cluster
# =============================================================================


class Cluster(BaseModel):
    """Top-level Cluster API cluster object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name


# =============================================================================
# Azure managed control plane
# =============================================================================


class SubnetConfig(BaseModel):
    """Subnet the node pools attach to."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    cidr_block: str | None = Field(None, alias="cidrBlock")


class VirtualNetworkConfig(BaseModel):
    """Virtual network hosting the cluster subnet."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    resource_group: str | None = Field(None, alias="resourceGroup")
    cidr_block: str | None = Field(None, alias="cidrBlock")
    subnet: SubnetConfig | None = None


class AzureManagedControlPlaneSpec(BaseModel):
    """Desired state of the managed control plane."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    subscription_id: str = Field("", alias="subscriptionID")
    resource_group_name: str | None = Field(None, alias="resourceGroupName")
    node_resource_group_name: str | None = Field(None, alias="nodeResourceGroupName")
    location: str | None = None
    version: str | None = None
    virtual_network: VirtualNetworkConfig | None = Field(None, alias="virtualNetwork")
    identity_ref: ObjectReference | None = Field(None, alias="identityRef")


class AzureManagedControlPlane(BaseModel):
    """Azure managed control plane object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    metadata: ObjectMeta
    spec: AzureManagedControlPlaneSpec = Field(default_factory=AzureManagedControlPlaneSpec)


# =============================================================================
# Machine pools
# =============================================================================


class MachinePoolSpec(BaseModel):
    """Provider-independent machine pool desired state."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    cluster_name: str = Field("", alias="clusterName")
    replicas: Annotated[int | None, Field(ge=0)] = None
    version: str | None = None


class MachinePool(BaseModel):
    """Cluster API machine pool object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    metadata: ObjectMeta
    spec: MachinePoolSpec = Field(default_factory=MachinePoolSpec)


class ManagedMachinePoolScaling(BaseModel):
    """Autoscaling bounds declared on an infrastructure pool."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    min_size: Annotated[int | None, Field(ge=0, alias="minSize")] = None
    max_size: Annotated[int | None, Field(ge=0, alias="maxSize")] = None


class VMExtension(BaseModel):
    """Post-provisioning agent to install on the pool's scale set."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    publisher: Annotated[str, Field(min_length=1)]
    version: Annotated[str, Field(min_length=1)]
    extension_type: str | None = Field(None, alias="type")
    settings: dict[str, Any] = Field(default_factory=dict)
    protected_settings: dict[str, Any] = Field(default_factory=dict, alias="protectedSettings")


class AzureManagedMachinePoolSpec(BaseModel):
    """Azure-specific desired state of a node pool."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    mode: NodePoolMode
    sku: Annotated[str, Field(min_length=1)]
    os_disk_size_gb: Annotated[int | None, Field(ge=0, alias="osDiskSizeGB")] = None
    max_pods: Annotated[int | None, Field(ge=1, alias="maxPods")] = None
    availability_zones: list[str] = Field(default_factory=list, alias="availabilityZones")
    node_labels: dict[str, str] = Field(default_factory=dict, alias="nodeLabels")
    scaling: ManagedMachinePoolScaling | None = None

    # System-assigned identity on the backing scale set; when enabled a
    # Contributor role assignment is created for it
    identity: str | None = None
    role_assignment_name: str | None = Field(None, alias="roleAssignmentName")

    vm_extensions: list[VMExtension] = Field(default_factory=list, alias="vmExtensions")

    @field_validator("identity")
    @classmethod
    def validate_identity(cls, v: str | None) -> str | None:
        valid = {"None", "SystemAssigned"}
        if v is not None and v not in valid:
            raise ValueError(f"identity must be one of {sorted(valid)}")
        return v


class AzureManagedMachinePool(BaseModel):
    """Azure managed machine pool (infrastructure pool) object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    metadata: ObjectMeta
    spec: AzureManagedMachinePoolSpec


# =============================================================================
# Identity
# =============================================================================


class AzureClusterIdentitySpec(BaseModel):
    """Service principal used to act on behalf of the cluster."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    client_id: Annotated[str, Field(min_length=1, alias="clientID")]
    tenant_id: Annotated[str, Field(min_length=1, alias="tenantID")]
    client_secret: SecretReference | None = Field(None, alias="clientSecret")


class AzureClusterIdentity(BaseModel):
    """Azure cluster identity object."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    metadata: ObjectMeta
    spec: AzureClusterIdentitySpec


# Registry mapping manifest kinds to model classes
KIND_REGISTRY: dict[str, type[BaseModel]] = {
    "Cluster": Cluster,
    "AzureManagedControlPlane": AzureManagedControlPlane,
    "MachinePool": MachinePool,
    "AzureManagedMachinePool": AzureManagedMachinePool,
    "AzureClusterIdentity": AzureClusterIdentity,
}


def get_model_class(kind: str) -> type[BaseModel]:
    """Get the model class for a manifest kind.

    Raises:
        ValueError: If kind is not recognized.
    """
    model_class = KIND_REGISTRY.get(kind)
    if model_class is None:
        valid_kinds = list(KIND_REGISTRY.keys())
        raise ValueError(f"Unknown kind '{kind}'. Valid kinds: {valid_kinds}")
    return model_class
