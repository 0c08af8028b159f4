"""
azmachine/naming.py

Derives the names of a VM's dependent resources (NIC, OS disk, data disks) from
the VM name. Every function here is pure: creation and teardown recompute the
same names instead of persisting a mapping.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from azmachine.models.provider_spec import DataDisk

NIC_SUFFIX = "-nic"
OS_DISK_SUFFIX = "-os-disk"
DATA_DISK_SUFFIX = "-data-disk"


def dependency_name_from_vm_name(vm_name: str, suffix: str) -> str:
    """e.g. ('vm-1', '-nic') -> 'vm-1-nic'."""
    return vm_name + suffix


def dependency_name_from_vm_name_and_dependency(
    dependency: str, vm_name: str, suffix: str
) -> str:
    """e.g. ('0', 'vm-1', '-data-disk') -> 'vm-1-0-data-disk'."""
    return vm_name + "-" + dependency + suffix


def data_disk_prefix(name: str, lun: int) -> str:
    """Return '<name>-<lun>' when a disk name is given, else just the LUN."""
    if name:
        return f"{name}-{lun}"
    return str(lun)


def effective_lun(disk: DataDisk, position: int) -> int:
    """The disk's explicit LUN, or its position in the list when unset."""
    return disk.lun if disk.lun is not None else position


def data_disk_names(
    data_disks: Sequence[DataDisk], vm_name: str, suffix: str = DATA_DISK_SUFFIX
) -> List[str]:
    """Names of all data disks, in list order."""
    return [
        dependency_name_from_vm_name_and_dependency(
            data_disk_prefix(disk.name, effective_lun(disk, i)), vm_name, suffix
        )
        for i, disk in enumerate(data_disks)
    ]


class DependentResourceNames(BaseModel):
    """Names of everything a VM owns besides itself.

    Attributes:
        vm_name: The (lower-cased) VM name the others derive from.
        nic_name: '<vm>-nic'.
        os_disk_name: '<vm>-os-disk'.
        data_disk_names: '<vm>-<prefix>-data-disk' per data disk, in list order.
    """

    model_config = ConfigDict(frozen=True)

    vm_name: str
    nic_name: str
    os_disk_name: str
    data_disk_names: List[str] = Field(default_factory=list)

    @classmethod
    def for_machine(
        cls, vm_name: str, data_disks: Optional[Sequence[DataDisk]] = None
    ) -> DependentResourceNames:
        return cls(
            vm_name=vm_name,
            nic_name=dependency_name_from_vm_name(vm_name, NIC_SUFFIX),
            os_disk_name=dependency_name_from_vm_name(vm_name, OS_DISK_SUFFIX),
            data_disk_names=data_disk_names(data_disks or [], vm_name),
        )


__all__ = [
    "NIC_SUFFIX",
    "OS_DISK_SUFFIX",
    "DATA_DISK_SUFFIX",
    "dependency_name_from_vm_name",
    "dependency_name_from_vm_name_and_dependency",
    "data_disk_prefix",
    "effective_lun",
    "data_disk_names",
    "DependentResourceNames",
]
