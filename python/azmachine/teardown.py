"""
azmachine/teardown.py

Deletes a VM and everything it depends on. Used both by explicit machine
deletion and by rollback of a failed creation, so every step tolerates the
resource already being gone and the whole teardown can be re-run with the same
names.

Order:
  1) If the VM exists: detach its data disks, then delete it.
  2) In parallel: the NIC (refused if still attached to a VM), the OS disk and
     every data disk. Failures are collected into a single TeardownError.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from azmachine.clients import AzureDriverClients
from azmachine.errors import ConflictError, NotFoundError, TeardownError
from azmachine.metrics import (
    SERVICE_DISK,
    SERVICE_NIC,
    SERVICE_VM,
    on_arm_api_error_fail,
    on_arm_api_success,
)
from azmachine.models.resources import VirtualMachine
from azmachine.naming import DependentResourceNames

logger = logging.getLogger(__name__)

Deleter = Callable[[], Awaitable[None]]


async def wait_for_data_disk_detachment(
    clients: AzureDriverClients, resource_group: str, vm: VirtualMachine
) -> None:
    """Detach every data disk from `vm` and block until ARM reports completion.

    Raises:
        AzureApiError: If the update fails for a reason other than the VM vanishing.
    """
    if not vm.data_disks or not vm.name:
        return

    logger.info("Detaching %d data disk(s) from VM %s", len(vm.data_disks), vm.name)
    definition = copy.deepcopy(vm.to_arm())
    definition["properties"]["storageProfile"]["dataDisks"] = []
    try:
        op = await clients.vm.create_or_update(resource_group, vm.name, definition)
        await op.wait()
    except NotFoundError:
        logger.info("VM %s disappeared while detaching data disks", vm.name)
        return
    except Exception as exc:
        raise on_arm_api_error_fail(
            SERVICE_VM,
            exc,
            "Detaching data disks from VM %s failed",
            vm.name,
            resource_name=vm.name,
        ) from exc
    on_arm_api_success(SERVICE_VM, "Data disks detached from VM %s", vm.name)


async def delete_vm(clients: AzureDriverClients, resource_group: str, name: str) -> None:
    """Delete the VM itself (not its disks or NIC); absent VMs are a no-op."""
    try:
        op = await clients.vm.delete(resource_group, name)
        await op.wait()
    except NotFoundError:
        logger.info("VM %s already deleted", name)
        return
    except Exception as exc:
        raise on_arm_api_error_fail(
            SERVICE_VM, exc, "VM.Delete failed for %s", name, resource_name=name
        ) from exc
    on_arm_api_success(SERVICE_VM, "VM.Delete succeeded for %s", name)


async def fetch_attached_vm_from_nic(
    clients: AzureDriverClients, resource_group: str, nic_name: str
) -> Optional[str]:
    """Return the ID of the VM holding `nic_name`, or None if it is unattached.

    Raises:
        NotFoundError: If the NIC does not exist.
    """
    nic = await clients.nic.get(resource_group, nic_name)
    return nic.attached_vm_id


async def delete_nic(
    clients: AzureDriverClients, resource_group: str, nic_name: str
) -> None:
    """Delete a NIC; absent NICs are a no-op."""
    try:
        op = await clients.nic.delete(resource_group, nic_name)
        await op.wait()
    except NotFoundError:
        return
    except Exception as exc:
        raise on_arm_api_error_fail(
            SERVICE_NIC, exc, "NIC.Delete failed for %s", nic_name, resource_name=nic_name
        ) from exc
    on_arm_api_success(SERVICE_NIC, "NIC.Delete succeeded for %s", nic_name)


def get_deleter_for_nic(
    clients: AzureDriverClients, resource_group: str, nic_name: str
) -> Deleter:
    """A deleter that refuses to remove a NIC still attached to a VM."""

    async def nic_deleter() -> None:
        try:
            vm_holding_nic = await fetch_attached_vm_from_nic(
                clients, resource_group, nic_name
            )
        except NotFoundError:
            logger.debug("NIC %s not found, nothing to delete", nic_name)
            return
        except Exception as exc:
            raise on_arm_api_error_fail(
                SERVICE_NIC, exc, "NIC.Get failed for %s", nic_name, resource_name=nic_name
            ) from exc

        if vm_holding_nic:
            raise ConflictError(
                f"Cannot delete NIC {nic_name} because it is attached to VM {vm_holding_nic}",
                service=SERVICE_NIC,
                resource_name=nic_name,
            )
        await delete_nic(clients, resource_group, nic_name)

    return nic_deleter


def get_deleter_for_disk(
    clients: AzureDriverClients, resource_group: str, disk_name: str
) -> Deleter:
    """A deleter for one managed disk; absent disks are a no-op."""

    async def disk_deleter() -> None:
        try:
            await clients.disk.get(resource_group, disk_name)
            op = await clients.disk.delete(resource_group, disk_name)
            await op.wait()
        except NotFoundError:
            logger.debug("Disk %s not found, nothing to delete", disk_name)
            return
        except Exception as exc:
            raise on_arm_api_error_fail(
                SERVICE_DISK,
                exc,
                "Disk.Delete failed for %s",
                disk_name,
                resource_name=disk_name,
            ) from exc
        on_arm_api_success(SERVICE_DISK, "Disk.Delete succeeded for %s", disk_name)

    return disk_deleter


async def run_in_parallel(deleters: Sequence[Deleter]) -> None:
    """Run every deleter concurrently, wait for all, and aggregate the failures.

    Raises:
        TeardownError: If at least one deleter failed. Deletions that succeeded
            are not undone.
        asyncio.CancelledError: If any deleter was cancelled.
    """
    results = await asyncio.gather(*(d() for d in deleters), return_exceptions=True)
    for r in results:
        if isinstance(r, asyncio.CancelledError):
            raise r
    failures: List[BaseException] = [r for r in results if isinstance(r, Exception)]
    if failures:
        raise TeardownError(failures)


async def delete_vm_nic_disks(
    clients: AzureDriverClients,
    resource_group: str,
    names: DependentResourceNames,
) -> None:
    """Delete the VM, then its NIC, OS disk and data disks.

    Args:
        clients: Backend clients.
        resource_group: Resource group holding the VM and its dependents.
        names: Derived names of the VM and its dependents.

    Raises:
        AzureApiError: If reading or deleting the VM fails (other than NotFound);
            nothing else is attempted in that case.
        TeardownError: If any of the parallel NIC/disk deletions failed.
    """
    vm_name = names.vm_name
    try:
        vm = await clients.vm.get(resource_group, vm_name)
    except NotFoundError:
        logger.debug("VM %s not found, skipping to dependent resources", vm_name)
    except Exception as exc:
        raise on_arm_api_error_fail(
            SERVICE_VM, exc, "VM.Get failed for %s", vm_name, resource_name=vm_name
        ) from exc
    else:
        on_arm_api_success(SERVICE_VM, "VM.Get was successful for %s", vm_name)
        await wait_for_data_disk_detachment(clients, resource_group, vm)
        await delete_vm(clients, resource_group, vm_name)

    deleters: List[Deleter] = [
        get_deleter_for_nic(clients, resource_group, names.nic_name),
        get_deleter_for_disk(clients, resource_group, names.os_disk_name),
    ]
    deleters.extend(
        get_deleter_for_disk(clients, resource_group, disk_name)
        for disk_name in names.data_disk_names
    )

    await run_in_parallel(deleters)
    logger.info(
        "Deleted VM %s with NIC %s, OS disk %s and %d data disk(s)",
        vm_name,
        names.nic_name,
        names.os_disk_name,
        len(names.data_disk_names),
    )


__all__ = [
    "wait_for_data_disk_detachment",
    "delete_vm",
    "fetch_attached_vm_from_nic",
    "delete_nic",
    "get_deleter_for_nic",
    "get_deleter_for_disk",
    "run_in_parallel",
    "delete_vm_nic_disks",
]
