"""
azmachine/arm/factory.py

ArmClientFactory builds AzureDriverClients backed by Azure Resource Manager. One
aiohttp session is shared by every bundle the factory hands out and is closed
with the factory.
"""

from __future__ import annotations

import logging
from typing import Optional

import aiohttp

from azmachine.arm.client import AsyncArmClient
from azmachine.arm.resources import (
    ArmDisksClient,
    ArmMarketplaceAgreementsClient,
    ArmNetworkInterfacesClient,
    ArmSubnetsClient,
    ArmVirtualMachineImagesClient,
    ArmVirtualMachinesClient,
)
from azmachine.clients import AzureDriverClients, ClientFactory
from azmachine.models.credentials import MachineSecret
from azmachine.models.settings import AzureSettings

logger = logging.getLogger(__name__)


class ArmClientFactory(ClientFactory):
    """Creates ARM-backed client bundles.

    Usage:
        async with ArmClientFactory() as factory:
            driver = MachineDriver(factory)
            ...
    """

    def __init__(self, settings: Optional[AzureSettings] = None) -> None:
        self._settings = settings or AzureSettings()
        self._session: Optional[aiohttp.ClientSession] = None

    async def setup(self, secret: MachineSecret) -> AzureDriverClients:
        """Build the client bundle for the secret's subscription.

        Raises:
            ValueError: If the secret carries no access token or subscription ID.
        """
        creds = secret.credentials
        if not creds.subscription_id.strip():
            raise ValueError("Secret has an empty subscription ID.")
        if not creds.access_token:
            raise ValueError(
                f"Secret for subscription {creds.subscription_id} has no access token."
            )

        if self._session is None:
            self._session = aiohttp.ClientSession()

        arm = AsyncArmClient(
            self._settings,
            subscription_id=creds.subscription_id.strip(),
            access_token=creds.access_token,
            session=self._session,
        )
        s = self._settings
        logger.debug("Set up ARM clients for subscription %s", creds.subscription_id)
        return AzureDriverClients(
            subnet=ArmSubnetsClient(arm, s.network_api_version),
            nic=ArmNetworkInterfacesClient(arm, s.network_api_version),
            vm=ArmVirtualMachinesClient(arm, s.compute_api_version),
            disk=ArmDisksClient(arm, s.disk_api_version),
            images=ArmVirtualMachineImagesClient(arm, s.compute_api_version),
            marketplace=ArmMarketplaceAgreementsClient(arm, s.marketplace_api_version),
        )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
