"""
azmachine/models/resources.py

Pydantic views of the Azure Resource Manager resources this package reads back:
  - Subnet
  - NetworkInterface
  - VirtualMachine
  - Disk
  - VirtualMachineImage (with an optional Plan)
  - MarketplaceAgreement

Only the fields the orchestrators rely on are typed; everything else in the ARM
document is kept as-is in `properties` (and extra top-level keys are allowed) so
a resource can be sent back in an update without losing data.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ArmResource(BaseModel):
    """Common envelope of an ARM resource document."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    location: Optional[str] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    properties: Dict[str, Any] = Field(default_factory=dict)

    def to_arm(self) -> Dict[str, Any]:
        """Return the resource as an ARM JSON document."""
        return self.model_dump(exclude_none=True, by_alias=True)


class Subnet(ArmResource):
    """A virtual network subnet."""


class NetworkInterface(ArmResource):
    """A network interface; `attached_vm_id` reports the VM holding it, if any."""

    @property
    def attached_vm_id(self) -> Optional[str]:
        vm = self.properties.get("virtualMachine") or {}
        vm_id = vm.get("id")
        return vm_id if vm_id else None


class VirtualMachine(ArmResource):
    """A compute instance."""

    zones: Optional[List[str]] = None
    plan: Optional[Dict[str, Any]] = None
    identity: Optional[Dict[str, Any]] = None

    @property
    def data_disks(self) -> List[Dict[str, Any]]:
        storage = self.properties.get("storageProfile") or {}
        disks = storage.get("dataDisks") or []
        return list(disks)

    @property
    def provisioning_state(self) -> Optional[str]:
        return self.properties.get("provisioningState")


class Disk(ArmResource):
    """A managed disk; `managed_by` is the VM ID it is attached to, if any."""

    managed_by: Optional[str] = Field(default=None, alias="managedBy")

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Plan(BaseModel):
    """Marketplace purchase plan attached to an image."""

    name: str
    product: str
    publisher: str


class VirtualMachineImage(ArmResource):
    """A marketplace image version."""

    @property
    def plan(self) -> Optional[Plan]:
        raw = self.properties.get("plan")
        return Plan(**raw) if raw else None


class MarketplaceAgreement(ArmResource):
    """Terms of a marketplace offer for the subscription."""

    @property
    def accepted(self) -> bool:
        return bool(self.properties.get("accepted"))

    def accept(self) -> MarketplaceAgreement:
        """Return a copy of this agreement with the terms accepted."""
        return self.model_copy(
            update={"properties": {**self.properties, "accepted": True}}
        )


__all__ = [
    "ArmResource",
    "Subnet",
    "NetworkInterface",
    "VirtualMachine",
    "Disk",
    "Plan",
    "VirtualMachineImage",
    "MarketplaceAgreement",
]
