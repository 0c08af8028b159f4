"""
azmachine/arm/resources.py

ARM-backed implementations of the per-resource-kind clients declared in
azmachine.clients. Each client knows its resource path and API version and
validates response bodies into the pydantic views of azmachine.models.resources.
"""

from __future__ import annotations

from typing import Any, Dict, Type, TypeVar

from azmachine.arm.client import AsyncArmClient
from azmachine.arm.operations import ArmOperation
from azmachine.clients import (
    DisksClient,
    MarketplaceAgreementsClient,
    NetworkInterfacesClient,
    Operation,
    SubnetsClient,
    VirtualMachineImagesClient,
    VirtualMachinesClient,
)
from azmachine.metrics import SERVICE_DISK, SERVICE_NIC, SERVICE_SUBNET, SERVICE_VM
from azmachine.models.resources import (
    ArmResource,
    Disk,
    MarketplaceAgreement,
    NetworkInterface,
    Subnet,
    VirtualMachine,
    VirtualMachineImage,
)
from azmachine.models.validator import validate_arm_payload

R = TypeVar("R", bound=ArmResource)


class _ArmResourceClient:
    """Shared GET/PUT/DELETE plumbing for resource-group scoped resources."""

    provider_path: str = ""
    service: str = ""

    def __init__(self, arm: AsyncArmClient, api_version: str) -> None:
        self._arm = arm
        self._api_version = api_version

    def _path(self, resource_group: str, name: str) -> str:
        return self._arm.subscription_path(
            f"/resourceGroups/{resource_group}/providers/{self.provider_path}/{name}"
        )

    async def _get(self, resource_group: str, name: str, model: Type[R]) -> R:
        resp = await self._arm.request(
            "GET",
            self._path(resource_group, name),
            api_version=self._api_version,
            service=self.service,
            resource_name=name,
        )
        return validate_arm_payload(
            resp.body_dict, model, service=self.service, resource_name=name
        )

    async def _put(
        self,
        resource_group: str,
        name: str,
        definition: Dict[str, Any],
        model: Type[R],
    ) -> Operation[R]:
        resp = await self._arm.request(
            "PUT",
            self._path(resource_group, name),
            api_version=self._api_version,
            body=definition,
            service=self.service,
            resource_name=name,
        )

        async def fetch() -> R:
            return await self._get(resource_group, name, model)

        return ArmOperation(
            self._arm, resp, fetch=fetch, service=self.service, resource_name=name
        )

    async def _delete(self, resource_group: str, name: str) -> Operation[None]:
        resp = await self._arm.request(
            "DELETE",
            self._path(resource_group, name),
            api_version=self._api_version,
            service=self.service,
            resource_name=name,
        )
        return ArmOperation(
            self._arm, resp, service=self.service, resource_name=name
        )


class ArmSubnetsClient(_ArmResourceClient, SubnetsClient):
    provider_path = "Microsoft.Network/virtualNetworks"
    service = SERVICE_SUBNET

    async def get(
        self, resource_group: str, vnet_name: str, subnet_name: str
    ) -> Subnet:
        return await self._get(resource_group, f"{vnet_name}/subnets/{subnet_name}", Subnet)


class ArmNetworkInterfacesClient(_ArmResourceClient, NetworkInterfacesClient):
    provider_path = "Microsoft.Network/networkInterfaces"
    service = SERVICE_NIC

    async def get(self, resource_group: str, name: str) -> NetworkInterface:
        return await self._get(resource_group, name, NetworkInterface)

    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[NetworkInterface]:
        return await self._put(resource_group, name, definition, NetworkInterface)

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        return await self._delete(resource_group, name)


class ArmVirtualMachinesClient(_ArmResourceClient, VirtualMachinesClient):
    provider_path = "Microsoft.Compute/virtualMachines"
    service = SERVICE_VM

    async def get(self, resource_group: str, name: str) -> VirtualMachine:
        return await self._get(resource_group, name, VirtualMachine)

    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[VirtualMachine]:
        return await self._put(resource_group, name, definition, VirtualMachine)

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        return await self._delete(resource_group, name)


class ArmDisksClient(_ArmResourceClient, DisksClient):
    provider_path = "Microsoft.Compute/disks"
    service = SERVICE_DISK

    async def get(self, resource_group: str, name: str) -> Disk:
        return await self._get(resource_group, name, Disk)

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        return await self._delete(resource_group, name)


class ArmVirtualMachineImagesClient(VirtualMachineImagesClient):
    service = SERVICE_VM

    def __init__(self, arm: AsyncArmClient, api_version: str) -> None:
        self._arm = arm
        self._api_version = api_version

    async def get(
        self, location: str, publisher: str, offer: str, sku: str, version: str
    ) -> VirtualMachineImage:
        urn = f"{publisher}:{offer}:{sku}:{version}"
        path = self._arm.subscription_path(
            f"/providers/Microsoft.Compute/locations/{location}/publishers/{publisher}"
            f"/artifacttypes/vmimage/offers/{offer}/skus/{sku}/versions/{version}"
        )
        resp = await self._arm.request(
            "GET",
            path,
            api_version=self._api_version,
            service=self.service,
            resource_name=urn,
        )
        return validate_arm_payload(
            resp.body_dict, VirtualMachineImage, service=self.service, resource_name=urn
        )


class ArmMarketplaceAgreementsClient(MarketplaceAgreementsClient):
    service = SERVICE_VM

    def __init__(self, arm: AsyncArmClient, api_version: str) -> None:
        self._arm = arm
        self._api_version = api_version

    def _path(self, publisher: str, offer: str, plan: str) -> str:
        return self._arm.subscription_path(
            "/providers/Microsoft.MarketplaceOrdering/offerTypes/virtualmachine"
            f"/publishers/{publisher}/offers/{offer}/plans/{plan}/agreements/current"
        )

    async def get(
        self, publisher: str, offer: str, plan: str
    ) -> MarketplaceAgreement:
        resp = await self._arm.request(
            "GET",
            self._path(publisher, offer, plan),
            api_version=self._api_version,
            service=self.service,
            resource_name=plan,
        )
        return validate_arm_payload(
            resp.body_dict, MarketplaceAgreement, service=self.service, resource_name=plan
        )

    async def create(
        self,
        publisher: str,
        offer: str,
        plan: str,
        agreement: MarketplaceAgreement,
    ) -> MarketplaceAgreement:
        resp = await self._arm.request(
            "PUT",
            self._path(publisher, offer, plan),
            api_version=self._api_version,
            body=agreement.to_arm(),
            service=self.service,
            resource_name=plan,
        )
        return validate_arm_payload(
            resp.body_dict, MarketplaceAgreement, service=self.service, resource_name=plan
        )
