"""Builders for declarative test objects."""

from __future__ import annotations

from typing import Any

from managedcluster.models import (
    AzureClusterIdentity,
    AzureManagedControlPlane,
    AzureManagedMachinePool,
    Cluster,
    MachinePool,
    NodePoolMode,
)

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000000"


def get_cluster(name: str = "cluster1") -> Cluster:
    return Cluster.model_validate({"metadata": {"name": name, "namespace": "default"}})


def get_control_plane(
    name: str = "cluster1",
    *,
    subscription_id: str = SUBSCRIPTION_ID,
    **spec: Any,
) -> AzureManagedControlPlane:
    return AzureManagedControlPlane.model_validate(
        {
            "metadata": {"name": name, "namespace": "default"},
            "spec": {"subscriptionID": subscription_id, **spec},
        }
    )


def get_machine_pool(name: str, cluster_name: str = "cluster1") -> MachinePool:
    return MachinePool.model_validate(
        {
            "metadata": {
                "name": name,
                "namespace": "default",
                "labels": {"cluster.x-k8s.io/cluster-name": cluster_name},
            },
            "spec": {"clusterName": cluster_name},
        }
    )


def get_azure_machine_pool(
    name: str,
    /,
    mode: NodePoolMode = NodePoolMode.SYSTEM,
    **spec: Any,
) -> AzureManagedMachinePool:
    return AzureManagedMachinePool.model_validate(
        {
            "metadata": {"name": name, "namespace": "default"},
            "spec": {"mode": mode.value, "sku": "Standard_D2s_v3", "name": name, **spec},
        }
    )


def get_azure_machine_pool_with_scaling(
    name: str, min_size: int, max_size: int
) -> AzureManagedMachinePool:
    return get_azure_machine_pool(
        name,
        NodePoolMode.USER,
        scaling={"minSize": min_size, "maxSize": max_size},
    )


def get_cluster_identity(secret_name: str | None = "sp-secret") -> AzureClusterIdentity:
    spec: dict[str, Any] = {
        "clientID": "11111111-1111-1111-1111-111111111111",
        "tenantID": "22222222-2222-2222-2222-222222222222",
    }
    if secret_name:
        spec["clientSecret"] = {"name": secret_name, "namespace": "default"}
    return AzureClusterIdentity.model_validate(
        {"metadata": {"name": "cluster-identity", "namespace": "default"}, "spec": spec}
    )
