"""
azmachine/parameters.py

Builds the ARM documents submitted by the provisioning orchestrator:
  - nic_parameters: NIC in the resolved subnet, IP forwarding on
  - image_reference: explicit ID or publisher/offer/sku/version from the URN
  - vm_parameters: the full VM definition (OS disk, data disks, OS profile,
    primary NIC, plan, zone or availability set, user-assigned identity)
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional

from azmachine.disks import generate_data_disks
from azmachine.models.provider_spec import ProvisioningSpec
from azmachine.models.resources import Subnet, VirtualMachineImage
from azmachine.naming import DependentResourceNames

logger = logging.getLogger(__name__)


def nic_parameters(
    spec: ProvisioningSpec, names: DependentResourceNames, subnet: Subnet
) -> Dict[str, Any]:
    """NIC definition with one dynamic IP configuration in `subnet`."""
    properties: Dict[str, Any] = {
        "ipConfigurations": [
            {
                "name": names.nic_name,
                "properties": {
                    "privateIPAllocationMethod": "Dynamic",
                    "subnet": {"id": subnet.id},
                },
            }
        ],
        "enableIPForwarding": True,
    }
    accelerated = spec.properties.network_profile.accelerated_networking
    if accelerated is not None:
        properties["enableAcceleratedNetworking"] = accelerated

    return {
        "name": names.nic_name,
        "location": spec.location,
        "properties": properties,
        "tags": dict(spec.tags),
    }


def image_reference(spec: ProvisioningSpec) -> Dict[str, str]:
    """The storage profile's imageReference; an explicit ID wins over the URN."""
    ref = spec.properties.storage_profile.image_reference
    if ref.id:
        return {"id": ref.id}
    publisher, offer, sku, version = ref.urn_parts()
    return {"publisher": publisher, "offer": offer, "sku": sku, "version": version}


def vm_parameters(
    spec: ProvisioningSpec,
    names: DependentResourceNames,
    nic_id: str,
    image: Optional[VirtualMachineImage] = None,
    user_data: str = "",
) -> Dict[str, Any]:
    """Build the VM definition.

    Args:
        spec: The provisioning spec.
        names: Derived names of the VM and its dependents.
        nic_id: Resource ID of the realized NIC.
        image: The resolved marketplace image, if the provisioning spec used a URN; its plan
            (if any) is attached to the VM.
        user_data: Cloud-init payload, sent base64-encoded as custom data.

    Returns:
        The ARM JSON document for the VM.
    """
    props = spec.properties
    os_disk = props.storage_profile.os_disk
    linux = props.os_profile.linux_configuration

    storage_profile: Dict[str, Any] = {
        "imageReference": image_reference(spec),
        "osDisk": {
            "name": names.os_disk_name,
            "caching": os_disk.caching,
            "managedDisk": {
                "storageAccountType": os_disk.managed_disk.storage_account_type
            },
            "diskSizeGB": os_disk.disk_size_gb,
            "createOption": os_disk.create_option,
        },
    }
    data_disks = generate_data_disks(names.vm_name, props.storage_profile.data_disks)
    if data_disks:
        storage_profile["dataDisks"] = [d.to_arm() for d in data_disks]

    vm_properties: Dict[str, Any] = {
        "hardwareProfile": {"vmSize": props.hardware_profile.vm_size},
        "storageProfile": storage_profile,
        "osProfile": {
            "computerName": names.vm_name,
            "adminUsername": props.os_profile.admin_username,
            "customData": base64.b64encode(user_data.encode("utf-8")).decode("ascii"),
            "linuxConfiguration": {
                "disablePasswordAuthentication": linux.disable_password_authentication,
                "ssh": {
                    "publicKeys": [
                        {
                            "path": linux.ssh.public_keys.path,
                            "keyData": linux.ssh.public_keys.key_data,
                        }
                    ]
                },
            },
        },
        "networkProfile": {
            "networkInterfaces": [{"id": nic_id, "properties": {"primary": True}}]
        },
    }

    definition: Dict[str, Any] = {
        "name": names.vm_name,
        "location": spec.location,
        "properties": vm_properties,
        "tags": dict(spec.tags),
    }

    plan = image.plan if image is not None else None
    if plan is not None:
        logger.info("Attaching marketplace plan %s to VM %s", plan.name, names.vm_name)
        definition["plan"] = {
            "name": plan.name,
            "product": plan.product,
            "publisher": plan.publisher,
        }

    # Zone and availability set are exclusive; zone wins.
    if props.zone is not None:
        definition["zones"] = [str(props.zone)]
    elif props.availability_set is not None:
        vm_properties["availabilitySet"] = {"id": props.availability_set.id}

    if props.identity_id:
        definition["identity"] = {
            "type": "UserAssigned",
            "userAssignedIdentities": {props.identity_id: {}},
        }

    return definition
