"""
filename: azmachine/driver.py

MachineDriver: the create/delete/status contract exposed to a cluster
orchestrator. It owns nothing but a ClientFactory; every call builds its client
bundle from the request's secret and recomputes resource names from the
machine name, so calls are independent and delete is safe to repeat.
"""

from __future__ import annotations

import logging

from azmachine.clients import AzureDriverClients, ClientFactory
from azmachine.metrics import SERVICE_VM, on_arm_api_error_fail, on_arm_api_success
from azmachine.models.machine import (
    CreateMachineRequest,
    CreateMachineResponse,
    DeleteMachineRequest,
    DeleteMachineResponse,
    GetMachineStatusRequest,
    GetMachineStatusResponse,
    MachineRequest,
)
from azmachine.naming import DependentResourceNames
from azmachine.provisioning import create_vm_nic_disks
from azmachine.teardown import delete_vm_nic_disks

logger = logging.getLogger(__name__)


class MachineDriver:
    """Creates, deletes and inspects Azure machines."""

    def __init__(self, factory: ClientFactory) -> None:
        """
        Args:
            factory: Builds per-subscription client bundles (ARM-backed or fake).
        """
        self._factory = factory

    async def _clients(self, req: MachineRequest) -> AzureDriverClients:
        return await self._factory.setup(req.secret)

    async def create_machine(self, req: CreateMachineRequest) -> CreateMachineResponse:
        """Create the VM with its NIC and disks.

        Returns:
            CreateMachineResponse: Provider ID and node name of the new VM.

        Raises:
            ValueError: If the secret cannot be used to set up clients.
            AzureApiError: If creation failed; created resources were rolled back.
        """
        clients = await self._clients(req)
        spec = req.provider_spec
        logger.info("Creating machine %s in %s/%s", req.vm_name, spec.location, spec.resource_group)

        await create_vm_nic_disks(clients, spec, req.vm_name, req.secret.user_data)

        response = CreateMachineResponse.for_vm(spec.location, req.vm_name)
        logger.info("Created machine %s as %s", req.vm_name, response.provider_id)
        return response

    async def delete_machine(self, req: DeleteMachineRequest) -> DeleteMachineResponse:
        """Delete the VM and its NIC and disks; succeeds if they are already gone."""
        clients = await self._clients(req)
        spec = req.provider_spec
        names = DependentResourceNames.for_machine(req.vm_name, spec.data_disks)
        logger.info("Deleting machine %s in %s", req.vm_name, spec.resource_group)

        await delete_vm_nic_disks(clients, spec.resource_group, names)
        return DeleteMachineResponse()

    async def get_machine_status(
        self, req: GetMachineStatusRequest
    ) -> GetMachineStatusResponse:
        """Report the identity of an existing VM.

        Raises:
            NotFoundError: If the VM does not exist.
        """
        clients = await self._clients(req)
        spec = req.provider_spec
        try:
            await clients.vm.get(spec.resource_group, req.vm_name)
        except Exception as exc:
            raise on_arm_api_error_fail(
                SERVICE_VM, exc, "VM.Get failed for %s", req.vm_name, resource_name=req.vm_name
            ) from exc
        on_arm_api_success(SERVICE_VM, "VM.Get succeeded for %s", req.vm_name)
        return GetMachineStatusResponse.for_vm(spec.location, req.vm_name)
