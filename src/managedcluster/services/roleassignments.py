"""Role assignment service.

Grants the system-assigned identity of a pool's scale set (or VM) a role at
subscription scope. Role assignments are immutable once created: an existing
assignment with the same name is left untouched.
"""

from __future__ import annotations

import logging
from typing import Any

from azure.mgmt.authorization import AuthorizationManagementClient
from azure.mgmt.authorization.models import RoleAssignmentCreateParameters
from azure.mgmt.compute import ComputeManagementClient

from ..config import Config
from ..errors import ConfigurationError
from ..scope import RoleAssignmentScope
from ..specs import RoleAssignmentSpec
from .base import ReconcilerService

logger = logging.getLogger(__name__)

RESOURCE_TYPE_VMSS = "VirtualMachineScaleSet"
RESOURCE_TYPE_VM = "VirtualMachine"


class RoleAssignmentService(ReconcilerService[RoleAssignmentScope, RoleAssignmentSpec]):
    """Creates role assignments for machine identities."""

    kind = "role assignment"

    def __init__(
        self,
        scope: RoleAssignmentScope,
        config: Config | None = None,
        *,
        authorization_client: AuthorizationManagementClient | None = None,
        compute_client: ComputeManagementClient | None = None,
    ) -> None:
        super().__init__(scope, config)
        self._authorization = authorization_client
        self._compute = compute_client

    def specs(self) -> list[RoleAssignmentSpec]:
        return self._scope.role_assignment_specs()

    async def _connect(self) -> None:
        if self._authorization is not None and self._compute is not None:
            return
        credential = await self._scope.credentials_provider.get_token_credential()
        if self._authorization is None:
            self._authorization = AuthorizationManagementClient(
                credential=credential,
                subscription_id=self._scope.subscription_id,
            )
        if self._compute is None:
            self._compute = ComputeManagementClient(
                credential=credential,
                subscription_id=self._scope.subscription_id,
            )

    def _get(self, spec: RoleAssignmentSpec) -> Any:
        assert self._authorization is not None
        return self._authorization.role_assignments.get(
            scope=spec.scope,
            role_assignment_name=spec.name,
        )

    def _principal_id(self, spec: RoleAssignmentSpec) -> str:
        """Principal of the machine's system-assigned identity."""
        assert self._compute is not None
        if spec.resource_type == RESOURCE_TYPE_VMSS:
            machine = self._compute.virtual_machine_scale_sets.get(
                resource_group_name=spec.resource_group,
                vm_scale_set_name=spec.machine_name,
            )
        elif spec.resource_type == RESOURCE_TYPE_VM:
            machine = self._compute.virtual_machines.get(
                resource_group_name=spec.resource_group,
                vm_name=spec.machine_name,
            )
        else:
            raise ConfigurationError(f"Unsupported role assignment target: {spec.resource_type}")

        identity = getattr(machine, "identity", None)
        principal_id = getattr(identity, "principal_id", None)
        if not principal_id:
            raise ConfigurationError(
                f"{spec.resource_type} '{spec.machine_name}' has no system-assigned identity"
            )
        return principal_id

    def _create(self, spec: RoleAssignmentSpec) -> None:
        assert self._authorization is not None
        principal_id = self._principal_id(spec)
        self._authorization.role_assignments.create(
            scope=spec.scope,
            role_assignment_name=spec.name,
            parameters=RoleAssignmentCreateParameters(
                role_definition_id=spec.role_definition_id,
                principal_id=principal_id,
                principal_type="ServicePrincipal",
            ),
        )
        logger.info(
            f"Role assignment {spec.name} granted to {spec.resource_type} '{spec.machine_name}'",
            extra={"principal_id": principal_id, "scope": spec.scope},
        )

    def _delete(self, spec: RoleAssignmentSpec) -> None:
        assert self._authorization is not None
        self._authorization.role_assignments.delete(
            scope=spec.scope,
            role_assignment_name=spec.name,
        )
