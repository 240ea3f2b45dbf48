"""VM scale set extension service.

Installs post-provisioning agents on a pool's scale set. Extensions are
treated as immutable once created; an existing extension is left untouched.
"""

from __future__ import annotations

from typing import Any

from azure.mgmt.compute import ComputeManagementClient
from azure.mgmt.compute.models import VirtualMachineScaleSetExtension

from ..config import Config
from ..scope import VMSSExtensionScope
from ..specs import VMSSExtensionSpec
from .base import ReconcilerService


class VMSSExtensionService(ReconcilerService[VMSSExtensionScope, VMSSExtensionSpec]):
    """Creates VM scale set extensions."""

    kind = "vmss extension"

    def __init__(
        self,
        scope: VMSSExtensionScope,
        config: Config | None = None,
        *,
        compute_client: ComputeManagementClient | None = None,
    ) -> None:
        super().__init__(scope, config)
        self._compute = compute_client

    def specs(self) -> list[VMSSExtensionSpec]:
        return self._scope.vmss_extension_specs()

    async def _connect(self) -> None:
        if self._compute is None:
            credential = await self._scope.credentials_provider.get_token_credential()
            self._compute = ComputeManagementClient(
                credential=credential,
                subscription_id=self._scope.subscription_id,
            )

    def _get(self, spec: VMSSExtensionSpec) -> Any:
        assert self._compute is not None
        return self._compute.virtual_machine_scale_set_extensions.get(
            resource_group_name=spec.resource_group,
            vm_scale_set_name=spec.vmss_name,
            vmss_extension_name=spec.name,
        )

    def _create(self, spec: VMSSExtensionSpec) -> None:
        assert self._compute is not None
        extension = VirtualMachineScaleSetExtension(
            name=spec.name,
            publisher=spec.publisher,
            type_properties_type=spec.extension_type or spec.name,
            type_handler_version=spec.version,
            auto_upgrade_minor_version=True,
            settings=spec.settings or None,
            protected_settings=spec.protected_settings or None,
        )
        poller = self._compute.virtual_machine_scale_set_extensions.begin_create_or_update(
            resource_group_name=spec.resource_group,
            vm_scale_set_name=spec.vmss_name,
            vmss_extension_name=spec.name,
            extension_parameters=extension,
        )
        poller.result()

    def _delete(self, spec: VMSSExtensionSpec) -> None:
        assert self._compute is not None
        poller = self._compute.virtual_machine_scale_set_extensions.begin_delete(
            resource_group_name=spec.resource_group,
            vm_scale_set_name=spec.vmss_name,
            vmss_extension_name=spec.name,
        )
        poller.result()
