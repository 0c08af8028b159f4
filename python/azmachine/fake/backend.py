"""
azmachine/fake/backend.py

An in-memory stand-in for Azure Resource Manager implementing every client in
azmachine.clients. It mimics the ARM behaviour the orchestrators depend on:

  - creating a VM creates its managed OS/data disks and attaches the NIC
  - updating a VM with fewer data disks detaches the rest
  - deleting a VM leaves its NIC and disks behind, detached
  - absent resources raise NotFoundError

Failures can be injected per (kind, method[, name]) and calls can be held on an
asyncio.Event to exercise cancellation. Every call is appended to `calls`.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple, TypeVar, cast

from azmachine.clients import (
    AzureDriverClients,
    ClientFactory,
    DisksClient,
    MarketplaceAgreementsClient,
    NetworkInterfacesClient,
    Operation,
    SubnetsClient,
    VirtualMachineImagesClient,
    VirtualMachinesClient,
)
from azmachine.errors import BackendError, NotFoundError
from azmachine.models.credentials import MachineSecret
from azmachine.models.provider_spec import ProvisioningSpec
from azmachine.models.resources import (
    Disk,
    MarketplaceAgreement,
    NetworkInterface,
    Subnet,
    VirtualMachine,
    VirtualMachineImage,
)

T = TypeVar("T")

FAKE_SUBSCRIPTION = "00000000-0000-0000-0000-000000000000"

Call = Tuple[str, str, str]


class _Failure:
    def __init__(self, exc: BaseException, name: Optional[str], times: Optional[int]) -> None:
        self.exc = exc
        self.name = name
        self.times = times


class FakeBackend:
    """Shared state of the fake subscription.

    Attributes:
        subnets: (resource group, vnet, subnet) -> Subnet
        nics: (resource group, name) -> NetworkInterface
        vms: (resource group, name) -> VirtualMachine
        disks: (resource group, name) -> Disk
        images: (location, publisher, offer, sku, version) -> VirtualMachineImage
        agreements: (publisher, offer, plan) -> MarketplaceAgreement
        calls: Every call as (kind, method, name), in order.
    """

    def __init__(self, subscription_id: str = FAKE_SUBSCRIPTION) -> None:
        self.subscription_id = subscription_id
        self.subnets: Dict[Tuple[str, str, str], Subnet] = {}
        self.nics: Dict[Tuple[str, str], NetworkInterface] = {}
        self.vms: Dict[Tuple[str, str], VirtualMachine] = {}
        self.disks: Dict[Tuple[str, str], Disk] = {}
        self.images: Dict[Tuple[str, str, str, str, str], VirtualMachineImage] = {}
        self.agreements: Dict[Tuple[str, str, str], MarketplaceAgreement] = {}
        self.calls: List[Call] = []
        self._failures: Dict[Tuple[str, str], List[_Failure]] = {}
        self._holds: Dict[Tuple[str, str], asyncio.Event] = {}

    # ------------------------------
    # Seeding and inspection
    # ------------------------------
    def resource_id(self, resource_group: str, provider_path: str, name: str) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{resource_group}"
            f"/providers/{provider_path}/{name}"
        )

    def add_subnet(self, resource_group: str, vnet_name: str, subnet_name: str) -> Subnet:
        subnet = Subnet(
            id=self.resource_id(
                resource_group,
                "Microsoft.Network/virtualNetworks",
                f"{vnet_name}/subnets/{subnet_name}",
            ),
            name=subnet_name,
        )
        self.subnets[(resource_group, vnet_name, subnet_name)] = subnet
        return subnet

    def add_image(
        self,
        location: str,
        urn: str,
        plan: Optional[Dict[str, str]] = None,
    ) -> VirtualMachineImage:
        publisher, offer, sku, version = urn.split(":")
        properties: Dict[str, Any] = {"plan": plan} if plan else {}
        image = VirtualMachineImage(name=version, location=location, properties=properties)
        self.images[(location, publisher, offer, sku, version)] = image
        return image

    def add_agreement(
        self, publisher: str, offer: str, plan: str, accepted: bool = False
    ) -> MarketplaceAgreement:
        agreement = MarketplaceAgreement(name=plan, properties={"accepted": accepted})
        self.agreements[(publisher, offer, plan)] = agreement
        return agreement

    def add_disk(
        self, resource_group: str, name: str, managed_by: Optional[str] = None
    ) -> Disk:
        disk = Disk(
            id=self.resource_id(resource_group, "Microsoft.Compute/disks", name),
            name=name,
            managed_by=managed_by,
        )
        self.disks[(resource_group, name)] = disk
        return disk

    def add_nic(
        self, resource_group: str, name: str, attached_vm_id: Optional[str] = None
    ) -> NetworkInterface:
        properties: Dict[str, Any] = {}
        if attached_vm_id:
            properties["virtualMachine"] = {"id": attached_vm_id}
        nic = NetworkInterface(
            id=self.resource_id(resource_group, "Microsoft.Network/networkInterfaces", name),
            name=name,
            properties=properties,
        )
        self.nics[(resource_group, name)] = nic
        return nic

    def seed_for_spec(self, spec: ProvisioningSpec) -> None:
        """Add the subnet and marketplace image a provisioning spec refers to."""
        info = spec.subnet_info
        self.add_subnet(spec.vnet_resource_group, info.vnet_name, info.subnet_name)
        urn = spec.properties.storage_profile.image_reference.urn
        if urn and not spec.properties.storage_profile.image_reference.id:
            self.add_image(spec.location, urn)

    def resource_names(self, resource_group: str) -> Dict[str, List[str]]:
        """Names of the NICs, VMs and disks currently in `resource_group`."""
        return {
            "nics": sorted(n for (rg, n) in self.nics if rg == resource_group),
            "vms": sorted(n for (rg, n) in self.vms if rg == resource_group),
            "disks": sorted(n for (rg, n) in self.disks if rg == resource_group),
        }

    def called(self, kind: str, method: str) -> List[str]:
        """Names passed to every (kind, method) call, in order."""
        return [n for (k, m, n) in self.calls if k == kind and m == method]

    # ------------------------------
    # Failure injection
    # ------------------------------
    def inject_failure(
        self,
        kind: str,
        method: str,
        exc: BaseException,
        *,
        name: Optional[str] = None,
        times: Optional[int] = None,
    ) -> None:
        """Raise `exc` from (kind, method), optionally only for `name` / `times` calls.

        kind is one of 'subnet', 'nic', 'vm', 'disk', 'images', 'marketplace';
        method is 'get', 'create_or_update', 'create', 'delete', 'wait' or 'result'.
        """
        self._failures.setdefault((kind, method), []).append(_Failure(exc, name, times))

    def hold(self, kind: str, method: str) -> asyncio.Event:
        """Block the next (kind, method) call until the returned event is set."""
        event = asyncio.Event()
        self._holds[(kind, method)] = event
        return event

    async def _enter(self, kind: str, method: str, name: str) -> None:
        self.calls.append((kind, method, name))
        event = self._holds.pop((kind, method), None)
        if event is not None:
            await event.wait()
        for failure in self._failures.get((kind, method), []):
            if failure.name is not None and failure.name != name:
                continue
            if failure.times is not None:
                if failure.times <= 0:
                    continue
                failure.times -= 1
            raise failure.exc
        await asyncio.sleep(0)

    # ------------------------------
    # ARM-like behaviour
    # ------------------------------
    def _require(self, table: Dict[Any, T], key: Any, kind: str, name: str) -> T:
        if key not in table:
            raise NotFoundError(
                f"{kind} {name} not found", service=kind, resource_name=name, status=404
            )
        return table[key]

    def put_vm(self, resource_group: str, name: str, definition: Dict[str, Any]) -> None:
        vm_id = self.resource_id(resource_group, "Microsoft.Compute/virtualMachines", name)
        body = copy.deepcopy(definition)
        body.setdefault("properties", {})["provisioningState"] = "Succeeded"
        body["id"] = vm_id
        body["name"] = name
        storage = body["properties"].get("storageProfile", {})

        previous = self.vms.get((resource_group, name))
        previous_disks = {d["name"] for d in previous.data_disks} if previous else set()
        wanted_disks = {d["name"] for d in storage.get("dataDisks", [])}

        for detached in previous_disks - wanted_disks:
            disk = self.disks.get((resource_group, detached))
            if disk is not None:
                self.disks[(resource_group, detached)] = disk.model_copy(
                    update={"managed_by": None}
                )

        os_disk = storage.get("osDisk")
        if os_disk and (resource_group, os_disk["name"]) not in self.disks:
            self.add_disk(resource_group, os_disk["name"], managed_by=vm_id)
        for data_disk in storage.get("dataDisks", []):
            self.add_disk(resource_group, data_disk["name"], managed_by=vm_id)

        for ref in body["properties"].get("networkProfile", {}).get("networkInterfaces", []):
            for key, nic in self.nics.items():
                if nic.id == ref["id"]:
                    self.nics[key] = _attach_nic(nic, vm_id)

        self.vms[(resource_group, name)] = VirtualMachine(**body)

    def remove_vm(self, resource_group: str, name: str) -> None:
        vm = self._require(self.vms, (resource_group, name), "virtual_machine", name)
        del self.vms[(resource_group, name)]
        for key, nic in self.nics.items():
            if nic.attached_vm_id == vm.id:
                self.nics[key] = _attach_nic(nic, None)
        for key, disk in self.disks.items():
            if disk.managed_by == vm.id:
                self.disks[key] = disk.model_copy(update={"managed_by": None})

    def remove_disk(self, resource_group: str, name: str) -> None:
        disk = self._require(self.disks, (resource_group, name), "disks", name)
        if disk.managed_by:
            raise BackendError(
                f"Disk {name} is attached to VM {disk.managed_by}",
                service="disks",
                resource_name=name,
                status=409,
                code="OperationNotAllowed",
            )
        del self.disks[(resource_group, name)]


def _attach_nic(nic: NetworkInterface, vm_id: Optional[str]) -> NetworkInterface:
    properties = dict(nic.properties)
    if vm_id:
        properties["virtualMachine"] = {"id": vm_id}
    else:
        properties.pop("virtualMachine", None)
    return nic.model_copy(update={"properties": properties})


class FakeOperation(Operation[T]):
    """Completed-at-submit operation whose wait/result can still fail."""

    def __init__(
        self, backend: FakeBackend, kind: str, name: str, value: Optional[T] = None
    ) -> None:
        self._backend = backend
        self._kind = kind
        self._name = name
        self._value = value

    async def wait(self) -> None:
        await self._backend._enter(self._kind, "wait", self._name)

    async def result(self) -> T:
        await self._backend._enter(self._kind, "result", self._name)
        return cast(T, self._value)


class FakeSubnetsClient(SubnetsClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(self, resource_group: str, vnet_name: str, subnet_name: str) -> Subnet:
        await self._b._enter("subnet", "get", subnet_name)
        return self._b._require(
            self._b.subnets, (resource_group, vnet_name, subnet_name), "subnet", subnet_name
        )


class FakeNetworkInterfacesClient(NetworkInterfacesClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(self, resource_group: str, name: str) -> NetworkInterface:
        await self._b._enter("nic", "get", name)
        return self._b._require(self._b.nics, (resource_group, name), "network_interfaces", name)

    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[NetworkInterface]:
        await self._b._enter("nic", "create_or_update", name)
        body = copy.deepcopy(definition)
        body["id"] = self._b.resource_id(
            resource_group, "Microsoft.Network/networkInterfaces", name
        )
        self._b.nics[(resource_group, name)] = NetworkInterface(**body)
        return FakeOperation(self._b, "nic", name, self._b.nics[(resource_group, name)])

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        await self._b._enter("nic", "delete", name)
        self._b._require(self._b.nics, (resource_group, name), "network_interfaces", name)
        del self._b.nics[(resource_group, name)]
        return FakeOperation(self._b, "nic", name)


class FakeVirtualMachinesClient(VirtualMachinesClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(self, resource_group: str, name: str) -> VirtualMachine:
        await self._b._enter("vm", "get", name)
        return self._b._require(self._b.vms, (resource_group, name), "virtual_machine", name)

    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[VirtualMachine]:
        await self._b._enter("vm", "create_or_update", name)
        self._b.put_vm(resource_group, name, definition)
        return FakeOperation(self._b, "vm", name, self._b.vms[(resource_group, name)])

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        await self._b._enter("vm", "delete", name)
        self._b.remove_vm(resource_group, name)
        return FakeOperation(self._b, "vm", name)


class FakeDisksClient(DisksClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(self, resource_group: str, name: str) -> Disk:
        await self._b._enter("disk", "get", name)
        return self._b._require(self._b.disks, (resource_group, name), "disks", name)

    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        await self._b._enter("disk", "delete", name)
        self._b.remove_disk(resource_group, name)
        return FakeOperation(self._b, "disk", name)


class FakeVirtualMachineImagesClient(VirtualMachineImagesClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(
        self, location: str, publisher: str, offer: str, sku: str, version: str
    ) -> VirtualMachineImage:
        urn = f"{publisher}:{offer}:{sku}:{version}"
        await self._b._enter("images", "get", urn)
        return self._b._require(
            self._b.images, (location, publisher, offer, sku, version), "virtual_machine", urn
        )


class FakeMarketplaceAgreementsClient(MarketplaceAgreementsClient):
    def __init__(self, backend: FakeBackend) -> None:
        self._b = backend

    async def get(self, publisher: str, offer: str, plan: str) -> MarketplaceAgreement:
        await self._b._enter("marketplace", "get", plan)
        return self._b._require(
            self._b.agreements, (publisher, offer, plan), "virtual_machine", plan
        )

    async def create(
        self,
        publisher: str,
        offer: str,
        plan: str,
        agreement: MarketplaceAgreement,
    ) -> MarketplaceAgreement:
        await self._b._enter("marketplace", "create", plan)
        self._b.agreements[(publisher, offer, plan)] = agreement
        return agreement


def fake_clients(backend: FakeBackend) -> AzureDriverClients:
    """A client bundle operating on `backend`."""
    return AzureDriverClients(
        subnet=FakeSubnetsClient(backend),
        nic=FakeNetworkInterfacesClient(backend),
        vm=FakeVirtualMachinesClient(backend),
        disk=FakeDisksClient(backend),
        images=FakeVirtualMachineImagesClient(backend),
        marketplace=FakeMarketplaceAgreementsClient(backend),
    )


class FakeClientFactory(ClientFactory):
    """Hands out bundles bound to one FakeBackend, regardless of the secret."""

    def __init__(self, backend: Optional[FakeBackend] = None) -> None:
        self.backend = backend or FakeBackend()

    async def setup(self, secret: MachineSecret) -> AzureDriverClients:
        if not secret.credentials.subscription_id.strip():
            raise ValueError("Secret has an empty subscription ID.")
        return fake_clients(self.backend)
