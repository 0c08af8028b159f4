"""
Tests for the NIC and VM definitions sent to Azure Resource Manager.
"""

import base64

from conftest import LOCATION, make_spec

from azmachine.models.resources import Subnet, VirtualMachineImage
from azmachine.naming import DependentResourceNames
from azmachine.parameters import image_reference, nic_parameters, vm_parameters

NIC_ID = "/subscriptions/s/resourceGroups/rg-1/providers/Microsoft.Network/networkInterfaces/vm-1-nic"
AVSET_ID = "/subscriptions/s/resourceGroups/rg-1/providers/Microsoft.Compute/availabilitySets/as-1"
IDENTITY_ID = "/subscriptions/s/resourceGroups/rg-1/providers/Microsoft.ManagedIdentity/userAssignedIdentities/id-1"


def _names(spec, vm_name="vm-1"):
    return DependentResourceNames.for_machine(vm_name, spec.data_disks)


class TestNicParameters:
    def test_basic(self):
        spec = make_spec()
        subnet = Subnet(id="/subnets/subnet-a", name="subnet-a")
        nic = nic_parameters(spec, _names(spec), subnet)

        assert nic["name"] == "vm-1-nic"
        assert nic["location"] == LOCATION
        assert nic["tags"] == spec.tags
        props = nic["properties"]
        assert props["enableIPForwarding"] is True
        assert props["enableAcceleratedNetworking"] is False
        (ip_config,) = props["ipConfigurations"]
        assert ip_config["properties"]["subnet"] == {"id": "/subnets/subnet-a"}
        assert ip_config["properties"]["privateIPAllocationMethod"] == "Dynamic"

    def test_accelerated_networking_unset(self):
        spec = make_spec(networkProfile={})
        nic = nic_parameters(spec, _names(spec), Subnet(id="/subnets/x"))
        assert "enableAcceleratedNetworking" not in nic["properties"]


class TestImageReference:
    def test_urn(self):
        ref = image_reference(make_spec())
        assert ref == {
            "publisher": "Canonical",
            "offer": "0001-com-ubuntu-server-jammy",
            "sku": "22_04-lts-gen2",
            "version": "latest",
        }

    def test_id_wins_over_urn(self):
        spec = make_spec(image={"id": "/images/custom", "urn": "a:b:c:d"})
        assert image_reference(spec) == {"id": "/images/custom"}


class TestVmParameters:
    def test_storage_and_os_profile(self):
        spec = make_spec(data_disks=[{"diskSizeGB": 50}])
        vm = vm_parameters(spec, _names(spec), NIC_ID, user_data="#cloud-config\n")

        props = vm["properties"]
        assert vm["name"] == "vm-1"
        assert props["hardwareProfile"] == {"vmSize": "Standard_D2s_v5"}
        os_disk = props["storageProfile"]["osDisk"]
        assert os_disk["name"] == "vm-1-os-disk"
        assert os_disk["diskSizeGB"] == 30
        assert os_disk["managedDisk"] == {"storageAccountType": "Premium_LRS"}
        (data_disk,) = props["storageProfile"]["dataDisks"]
        assert data_disk["name"] == "vm-1-0-data-disk"
        assert data_disk["lun"] == 0

        os_profile = props["osProfile"]
        assert os_profile["computerName"] == "vm-1"
        assert os_profile["adminUsername"] == "azureuser"
        assert base64.b64decode(os_profile["customData"]) == b"#cloud-config\n"
        (key,) = os_profile["linuxConfiguration"]["ssh"]["publicKeys"]
        assert key["keyData"].startswith("ssh-rsa")

        (nic_ref,) = props["networkProfile"]["networkInterfaces"]
        assert nic_ref == {"id": NIC_ID, "properties": {"primary": True}}

    def test_no_data_disks_omits_key(self):
        spec = make_spec()
        vm = vm_parameters(spec, _names(spec), NIC_ID)
        assert "dataDisks" not in vm["properties"]["storageProfile"]

    def test_zone_wins_over_availability_set(self):
        spec = make_spec(zone=2, availabilitySet={"id": AVSET_ID})
        vm = vm_parameters(spec, _names(spec), NIC_ID)
        assert vm["zones"] == ["2"]
        assert "availabilitySet" not in vm["properties"]

    def test_availability_set_without_zone(self):
        spec = make_spec(availabilitySet={"id": AVSET_ID})
        vm = vm_parameters(spec, _names(spec), NIC_ID)
        assert "zones" not in vm
        assert vm["properties"]["availabilitySet"] == {"id": AVSET_ID}

    def test_user_assigned_identity(self):
        spec = make_spec(identityID=IDENTITY_ID)
        vm = vm_parameters(spec, _names(spec), NIC_ID)
        assert vm["identity"] == {
            "type": "UserAssigned",
            "userAssignedIdentities": {IDENTITY_ID: {}},
        }

    def test_no_identity_by_default(self):
        spec = make_spec()
        assert "identity" not in vm_parameters(spec, _names(spec), NIC_ID)

    def test_plan_from_image(self):
        spec = make_spec()
        image = VirtualMachineImage(
            name="latest",
            properties={"plan": {"name": "p", "product": "o", "publisher": "pub"}},
        )
        vm = vm_parameters(spec, _names(spec), NIC_ID, image)
        assert vm["plan"] == {"name": "p", "product": "o", "publisher": "pub"}

    def test_image_without_plan(self):
        spec = make_spec()
        vm = vm_parameters(spec, _names(spec), NIC_ID, VirtualMachineImage(name="latest"))
        assert "plan" not in vm
