"""
azmachine/provisioning.py

Creates a VM and its dependents in order:

  subnet -> NIC -> image (+ marketplace agreement) -> VM

Each step consumes what the previous one realized. The subnet lookup creates
nothing, so its failure is reported directly; a failure (or cancellation) in
any later step runs a single teardown of everything nameable so far before the
original error propagates.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from azmachine.clients import AzureDriverClients
from azmachine.errors import AzureApiError, BackendError
from azmachine.metrics import (
    SERVICE_NIC,
    SERVICE_SUBNET,
    SERVICE_VM,
    on_arm_api_error_fail,
    on_arm_api_success,
)
from azmachine.models.provider_spec import ProvisioningSpec
from azmachine.models.resources import (
    NetworkInterface,
    Subnet,
    VirtualMachine,
    VirtualMachineImage,
)
from azmachine.naming import DependentResourceNames
from azmachine.parameters import nic_parameters, vm_parameters
from azmachine.teardown import delete_vm_nic_disks

logger = logging.getLogger(__name__)


class ProvisioningStep(str, Enum):
    """Steps of the creation sequence, in order."""

    subnet = "subnet"
    nic = "nic"
    image = "image"
    vm = "vm"
    done = "done"


class VMProvisioner:
    """Runs the creation sequence for one VM.

    Attributes:
        names: Derived names of the VM, NIC, OS disk and data disks.
        step: The step currently executing (or `done`).
    """

    def __init__(
        self,
        clients: AzureDriverClients,
        spec: ProvisioningSpec,
        vm_name: str,
        user_data: str = "",
    ) -> None:
        self.clients = clients
        self.spec = spec
        self.user_data = user_data
        self.names = DependentResourceNames.for_machine(vm_name, spec.data_disks)
        self.step = ProvisioningStep.subnet

    @property
    def resource_group(self) -> str:
        return self.spec.resource_group

    async def run(self) -> VirtualMachine:
        """Create the VM and return it as realized by the backend.

        Raises:
            AzureApiError: The failure of the first step that failed. Teardown
                errors during rollback are logged, never raised instead.
            asyncio.CancelledError: If cancelled; rollback is attempted first.
        """
        subnet = await self._resolve_subnet()
        try:
            nic = await self._create_nic(subnet)
            image = await self._resolve_image()
            vm = await self._create_vm(nic, image)
        except (Exception, asyncio.CancelledError) as exc:
            await self._rollback(exc)
            raise
        self.step = ProvisioningStep.done
        return vm

    async def _resolve_subnet(self) -> Subnet:
        self.step = ProvisioningStep.subnet
        info = self.spec.subnet_info
        try:
            subnet = await self.clients.subnet.get(
                self.spec.vnet_resource_group, info.vnet_name, info.subnet_name
            )
        except Exception as exc:
            raise on_arm_api_error_fail(
                SERVICE_SUBNET,
                exc,
                "Subnet.Get failed for %s",
                info.subnet_name,
                resource_name=info.subnet_name,
            ) from exc
        on_arm_api_success(SERVICE_SUBNET, "Subnet.Get succeeded for %s", info.subnet_name)
        return subnet

    async def _create_nic(self, subnet: Subnet) -> NetworkInterface:
        self.step = ProvisioningStep.nic
        nic_name = self.names.nic_name
        definition = nic_parameters(self.spec, self.names, subnet)

        try:
            op = await self.clients.nic.create_or_update(
                self.resource_group, nic_name, definition
            )
        except Exception as exc:
            raise self._fail(SERVICE_NIC, exc, "NIC.CreateOrUpdate failed for %s", nic_name) from exc
        try:
            await op.wait()
        except Exception as exc:
            raise self._fail(SERVICE_NIC, exc, "NIC.WaitForCompletion failed for %s", nic_name) from exc
        on_arm_api_success(SERVICE_NIC, "NIC.CreateOrUpdate succeeded for %s", nic_name)

        try:
            nic = await op.result()
        except Exception as exc:
            raise self._fail(SERVICE_NIC, exc, "NIC.Result failed for %s", nic_name) from exc
        if not nic.id:
            raise BackendError(
                f"NIC {nic_name} was created without a resource ID",
                service=SERVICE_NIC,
                resource_name=nic_name,
            )
        return nic

    async def _resolve_image(self) -> Optional[VirtualMachineImage]:
        """Look up the marketplace image and accept its plan's terms if needed.

        Images referenced by ID are custom images and skip both lookups.
        """
        self.step = ProvisioningStep.image
        ref = self.spec.properties.storage_profile.image_reference
        if ref.id:
            return None

        publisher, offer, sku, version = ref.urn_parts()
        try:
            image = await self.clients.images.get(
                self.spec.location, publisher, offer, sku, version
            )
        except Exception as exc:
            raise self._fail(
                SERVICE_VM, exc, "VirtualMachineImages.Get failed for %s", ref.urn
            ) from exc

        plan = image.plan
        if plan is None:
            return image

        try:
            agreement = await self.clients.marketplace.get(
                plan.publisher, plan.product, plan.name
            )
        except Exception as exc:
            raise self._fail(
                SERVICE_VM, exc, "MarketplaceAgreements.Get failed for %s", plan.name
            ) from exc

        if not agreement.accepted:
            logger.info(
                "Accepting marketplace terms for plan %s/%s/%s",
                plan.publisher,
                plan.product,
                plan.name,
            )
            try:
                await self.clients.marketplace.create(
                    plan.publisher, plan.product, plan.name, agreement.accept()
                )
            except Exception as exc:
                raise self._fail(
                    SERVICE_VM, exc, "MarketplaceAgreements.Create failed for %s", plan.name
                ) from exc
        return image

    async def _create_vm(
        self, nic: NetworkInterface, image: Optional[VirtualMachineImage]
    ) -> VirtualMachine:
        self.step = ProvisioningStep.vm
        vm_name = self.names.vm_name
        assert nic.id is not None
        definition = vm_parameters(self.spec, self.names, nic.id, image, self.user_data)

        start = time.monotonic()
        try:
            op = await self.clients.vm.create_or_update(
                self.resource_group, vm_name, definition
            )
        except Exception as exc:
            raise self._fail(SERVICE_VM, exc, "VM.CreateOrUpdate failed for %s", vm_name) from exc
        try:
            await op.wait()
        except Exception as exc:
            raise self._fail(SERVICE_VM, exc, "VM.WaitForCompletion failed for %s", vm_name) from exc
        logger.info("VM %s created in %.1fs", vm_name, time.monotonic() - start)

        try:
            vm = await op.result()
        except Exception as exc:
            raise self._fail(SERVICE_VM, exc, "VM.Result failed for %s", vm_name) from exc
        on_arm_api_success(SERVICE_VM, "VM.CreateOrUpdate succeeded for %s", vm_name)
        return vm

    def _fail(
        self, service: str, exc: BaseException, message: str, name: Optional[str]
    ) -> AzureApiError:
        return on_arm_api_error_fail(service, exc, message, name, resource_name=name)

    async def _rollback(self, cause: BaseException) -> None:
        logger.warning(
            "Creating VM %s failed at step %s (%s); deleting the resources created so far",
            self.names.vm_name,
            self.step.value,
            cause if not isinstance(cause, asyncio.CancelledError) else "cancelled",
        )
        try:
            await delete_vm_nic_disks(self.clients, self.resource_group, self.names)
        except Exception as cleanup_exc:
            logger.error("Error occurred during resource clean up: %s", cleanup_exc)


async def create_vm_nic_disks(
    clients: AzureDriverClients,
    spec: ProvisioningSpec,
    vm_name: str,
    user_data: str = "",
) -> VirtualMachine:
    """Create a VM with its NIC and disks, rolling back on failure.

    Args:
        clients: Backend clients.
        spec: The provisioning spec.
        vm_name: Lower-cased VM name.
        user_data: Cloud-init payload for the VM's custom data.

    Returns:
        VirtualMachine: The realized VM.
    """
    return await VMProvisioner(clients, spec, vm_name, user_data).run()


__all__ = ["ProvisioningStep", "VMProvisioner", "create_vm_nic_disks"]
