"""
azmachine/clients.py

The backend facade consumed by the orchestrators:
  - Operation: handle of a long-running create/update/delete
  - One abstract client per resource kind (subnets, NICs, VMs, disks, images,
    marketplace agreements)
  - AzureDriverClients: the bundle handed to the orchestrators
  - ClientFactory: builds a bundle from a MachineSecret

Concrete implementations live in azmachine.arm (aiohttp against Azure Resource
Manager) and azmachine.fake (in-memory).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Optional, TypeVar

from azmachine.models.credentials import MachineSecret
from azmachine.models.resources import (
    Disk,
    MarketplaceAgreement,
    NetworkInterface,
    Subnet,
    VirtualMachine,
    VirtualMachineImage,
)

T = TypeVar("T")


class Operation(ABC, Generic[T]):
    """Handle of a submitted long-running operation."""

    @abstractmethod
    async def wait(self) -> None:
        """Block until the operation reaches a terminal state.

        Raises:
            BackendError: If the operation failed or was canceled.
        """

    @abstractmethod
    async def result(self) -> T:
        """Fetch the realized resource (None for deletions).

        Only valid after `wait()` returned.
        """


class SubnetsClient(ABC):
    @abstractmethod
    async def get(
        self, resource_group: str, vnet_name: str, subnet_name: str
    ) -> Subnet:
        """Read a subnet; raises NotFoundError if absent."""


class NetworkInterfacesClient(ABC):
    @abstractmethod
    async def get(self, resource_group: str, name: str) -> NetworkInterface:
        """Read a NIC; raises NotFoundError if absent."""

    @abstractmethod
    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[NetworkInterface]:
        """Submit a NIC create/update."""

    @abstractmethod
    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        """Submit a NIC deletion."""


class VirtualMachinesClient(ABC):
    @abstractmethod
    async def get(self, resource_group: str, name: str) -> VirtualMachine:
        """Read a VM; raises NotFoundError if absent."""

    @abstractmethod
    async def create_or_update(
        self, resource_group: str, name: str, definition: Dict[str, Any]
    ) -> Operation[VirtualMachine]:
        """Submit a VM create/update."""

    @abstractmethod
    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        """Submit a VM deletion."""


class DisksClient(ABC):
    @abstractmethod
    async def get(self, resource_group: str, name: str) -> Disk:
        """Read a managed disk; raises NotFoundError if absent."""

    @abstractmethod
    async def delete(self, resource_group: str, name: str) -> Operation[None]:
        """Submit a disk deletion."""


class VirtualMachineImagesClient(ABC):
    @abstractmethod
    async def get(
        self, location: str, publisher: str, offer: str, sku: str, version: str
    ) -> VirtualMachineImage:
        """Read a marketplace image version."""


class MarketplaceAgreementsClient(ABC):
    @abstractmethod
    async def get(
        self, publisher: str, offer: str, plan: str
    ) -> MarketplaceAgreement:
        """Read the subscription's agreement for a plan."""

    @abstractmethod
    async def create(
        self,
        publisher: str,
        offer: str,
        plan: str,
        agreement: MarketplaceAgreement,
    ) -> MarketplaceAgreement:
        """Store (typically: accept) the agreement for a plan."""


class AzureDriverClients:
    """The per-resource-kind clients of one subscription."""

    def __init__(
        self,
        *,
        subnet: SubnetsClient,
        nic: NetworkInterfacesClient,
        vm: VirtualMachinesClient,
        disk: DisksClient,
        images: VirtualMachineImagesClient,
        marketplace: MarketplaceAgreementsClient,
    ) -> None:
        self.subnet = subnet
        self.nic = nic
        self.vm = vm
        self.disk = disk
        self.images = images
        self.marketplace = marketplace


class ClientFactory(ABC):
    """Builds an AzureDriverClients bundle for the credentials in a secret."""

    @abstractmethod
    async def setup(self, secret: MachineSecret) -> AzureDriverClients:
        """
        Raises:
            ValueError: If the secret cannot be used to reach the backend.
        """

    async def close(self) -> None:
        """Release any resources held by the factory."""

    async def __aenter__(self) -> ClientFactory:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.close()


__all__ = [
    "Operation",
    "SubnetsClient",
    "NetworkInterfacesClient",
    "VirtualMachinesClient",
    "DisksClient",
    "VirtualMachineImagesClient",
    "MarketplaceAgreementsClient",
    "AzureDriverClients",
    "ClientFactory",
]
