"""
azmachine/models/__init__.py

Aggregate imports so these models can be accessed directly from this package.
"""

from azmachine.models.credentials import AzureCredentials, MachineSecret
from azmachine.models.machine import (
    CreateMachineRequest,
    CreateMachineResponse,
    DeleteMachineRequest,
    DeleteMachineResponse,
    GetMachineStatusRequest,
    GetMachineStatusResponse,
    InstanceHandle,
)
from azmachine.models.provider_spec import DataDisk, ImageReference, ProvisioningSpec
from azmachine.models.settings import AzureSettings

__all__ = [
    "AzureCredentials",
    "MachineSecret",
    "CreateMachineRequest",
    "CreateMachineResponse",
    "DeleteMachineRequest",
    "DeleteMachineResponse",
    "GetMachineStatusRequest",
    "GetMachineStatusResponse",
    "InstanceHandle",
    "DataDisk",
    "ImageReference",
    "ProvisioningSpec",
    "AzureSettings",
]
