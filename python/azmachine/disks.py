"""
azmachine/disks.py

Turns the declarative data-disk list of a ProvisioningSpec into the concrete
data-disk attachments of a VM definition. Disks are always created empty.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from pydantic import BaseModel, ConfigDict

from azmachine.models.provider_spec import DataDisk
from azmachine.naming import (
    DATA_DISK_SUFFIX,
    data_disk_prefix,
    dependency_name_from_vm_name_and_dependency,
    effective_lun,
)

DEFAULT_CACHING = "None"
CREATE_OPTION_EMPTY = "Empty"


class DataDiskAttachment(BaseModel):
    """A data disk as it appears in the VM's storage profile."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lun: int
    name: str
    caching: str
    storage_account_type: str
    disk_size_gb: int

    @property
    def create_option(self) -> str:
        return CREATE_OPTION_EMPTY

    def to_arm(self) -> Dict[str, Any]:
        return {
            "lun": self.lun,
            "name": self.name,
            "caching": self.caching,
            "managedDisk": {"storageAccountType": self.storage_account_type},
            "diskSizeGB": self.disk_size_gb,
            "createOption": self.create_option,
        }


def generate_data_disks(
    vm_name: str,
    data_disks: Sequence[DataDisk],
    suffix: str = DATA_DISK_SUFFIX,
) -> List[DataDiskAttachment]:
    """Build one attachment per descriptor, in order.

    Args:
        vm_name: The VM the disks belong to.
        data_disks: Descriptors from the provisioning spec.
        suffix: Name suffix for data disks.

    Returns:
        A list parallel to `data_disks`; empty when `data_disks` is empty.
    """
    attachments = []
    for i, disk in enumerate(data_disks):
        lun = effective_lun(disk, i)
        attachments.append(
            DataDiskAttachment(
                lun=lun,
                name=dependency_name_from_vm_name_and_dependency(
                    data_disk_prefix(disk.name, lun), vm_name, suffix
                ),
                caching=disk.caching or DEFAULT_CACHING,
                storage_account_type=disk.storage_account_type,
                disk_size_gb=disk.disk_size_gb,
            )
        )
    return attachments


__all__ = [
    "DEFAULT_CACHING",
    "CREATE_OPTION_EMPTY",
    "DataDiskAttachment",
    "generate_data_disks",
]
