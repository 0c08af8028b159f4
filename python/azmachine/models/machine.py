"""
azmachine/models/machine.py

Request/response models of the machine driver contract:
  - CreateMachineRequest / CreateMachineResponse (the InstanceHandle)
  - DeleteMachineRequest / DeleteMachineResponse
  - GetMachineStatusRequest / GetMachineStatusResponse
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from azmachine.models.credentials import MachineSecret
from azmachine.models.provider_spec import ProvisioningSpec


class MachineRequest(BaseModel):
    """Fields shared by every driver request.

    Attributes:
        machine_name: Name of the machine; lower-cased before any resource name
            is derived from it.
        provider_spec: The desired VM description.
        secret: Credentials and user data.
    """

    machine_name: str = Field(..., min_length=1)
    provider_spec: ProvisioningSpec
    secret: MachineSecret

    @property
    def vm_name(self) -> str:
        return self.machine_name.lower()


class CreateMachineRequest(MachineRequest):
    pass


class DeleteMachineRequest(MachineRequest):
    pass


class GetMachineStatusRequest(MachineRequest):
    pass


class InstanceHandle(BaseModel):
    """Identity of a realized instance.

    Attributes:
        provider_id: 'azure:///<location>/<vm name>'.
        node_name: The node name the orchestrator registers the machine under.
    """

    provider_id: str
    node_name: str

    @classmethod
    def for_vm(cls, location: str, vm_name: str) -> InstanceHandle:
        return cls(provider_id=f"azure:///{location}/{vm_name}", node_name=vm_name)


class CreateMachineResponse(InstanceHandle):
    pass


class GetMachineStatusResponse(InstanceHandle):
    pass


class DeleteMachineResponse(BaseModel):
    pass


__all__ = [
    "MachineRequest",
    "CreateMachineRequest",
    "DeleteMachineRequest",
    "GetMachineStatusRequest",
    "InstanceHandle",
    "CreateMachineResponse",
    "GetMachineStatusResponse",
    "DeleteMachineResponse",
]
