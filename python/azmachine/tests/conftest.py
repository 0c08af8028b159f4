"""Shared fixtures: a fake backend, its clients, and provisioning spec builders."""

import copy
from typing import Any, Dict, List, Optional

import pytest

from azmachine.fake.backend import FAKE_SUBSCRIPTION, FakeBackend, fake_clients
from azmachine.models.credentials import AzureCredentials, MachineSecret
from azmachine.models.provider_spec import ProvisioningSpec

LOCATION = "westeurope"
RESOURCE_GROUP = "rg-1"
VNET = "vnet-1"
SUBNET = "subnet-a"
URN = "Canonical:0001-com-ubuntu-server-jammy:22_04-lts-gen2:latest"

BASE_SPEC: Dict[str, Any] = {
    "location": LOCATION,
    "resourceGroup": RESOURCE_GROUP,
    "subnetInfo": {"vnetName": VNET, "subnetName": SUBNET},
    "properties": {
        "hardwareProfile": {"vmSize": "Standard_D2s_v5"},
        "storageProfile": {
            "imageReference": {"urn": URN},
            "osDisk": {
                "caching": "ReadWrite",
                "managedDisk": {"storageAccountType": "Premium_LRS"},
                "diskSizeGB": 30,
                "createOption": "FromImage",
            },
            "dataDisks": [],
        },
        "osProfile": {
            "adminUsername": "azureuser",
            "linuxConfiguration": {
                "disablePasswordAuthentication": True,
                "ssh": {
                    "publicKeys": {
                        "path": "/home/azureuser/.ssh/authorized_keys",
                        "keyData": "ssh-rsa AAAAB3Nza test@example",
                    }
                },
            },
        },
        "networkProfile": {"acceleratedNetworking": False},
    },
    "tags": {"kubernetes.io-role-node": "1"},
}


def make_spec(
    *,
    data_disks: Optional[List[Dict[str, Any]]] = None,
    image: Optional[Dict[str, str]] = None,
    **properties: Any,
) -> ProvisioningSpec:
    """Build a ProvisioningSpec from the camelCase wire format.

    Extra keyword arguments are merged into `properties` (e.g. zone=1,
    availabilitySet={"id": ...}, identityID="...").
    """
    raw = copy.deepcopy(BASE_SPEC)
    if data_disks is not None:
        raw["properties"]["storageProfile"]["dataDisks"] = data_disks
    if image is not None:
        raw["properties"]["storageProfile"]["imageReference"] = image
    raw["properties"].update(properties)
    return ProvisioningSpec.model_validate(raw)


@pytest.fixture
def backend() -> FakeBackend:
    """A fake subscription with the subnet and the default image in place."""
    b = FakeBackend()
    b.add_subnet(RESOURCE_GROUP, VNET, SUBNET)
    b.add_image(LOCATION, URN)
    return b


@pytest.fixture
def clients(backend):
    return fake_clients(backend)


@pytest.fixture
def spec() -> ProvisioningSpec:
    return make_spec()


@pytest.fixture
def secret() -> MachineSecret:
    return MachineSecret(
        credentials=AzureCredentials(
            client_id="client",
            client_secret="secret",
            tenant_id="tenant",
            subscription_id=FAKE_SUBSCRIPTION,
            access_token="token",
        ),
        user_data="#cloud-config\n",
    )
