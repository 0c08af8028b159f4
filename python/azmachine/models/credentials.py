"""
filename: azmachine/models/credentials.py

Provides the AzureCredentials pydantic model and the MachineSecret bundle that
accompanies every create/delete request.
"""

from __future__ import annotations

from typing import Optional, Mapping
from pydantic import BaseModel, Field


class AzureCredentials(BaseModel):
    """Pydantic model for AzureCredentials.

    The bearer token is acquired outside this package (e.g. by a workload identity
    sidecar or `az account get-access-token`) and handed in as `access_token`.
    The service principal fields identify who the token was issued to and are
    carried for reporting only.
    """

    client_id: Optional[str] = Field(default=None, description="Azure Client ID")
    client_secret: Optional[str] = Field(
        default=None, description="Azure Client Secret"
    )
    tenant_id: Optional[str] = Field(default=None, description="Azure Tenant ID")
    subscription_id: str = Field(..., description="Azure Subscription ID")
    access_token: Optional[str] = Field(
        default=None, description="ARM bearer token for the subscription"
    )

    @classmethod
    def from_env_dict(cls, data: Mapping[str, str]) -> AzureCredentials:
        """Build credentials from ARM_* keys, trimming surrounding whitespace.

        Only ARM_SUBSCRIPTION_ID is required; absent or blank optional keys
        become None.

        Raises:
            KeyError: If ARM_SUBSCRIPTION_ID is missing.
        """

        def optional(key: str) -> Optional[str]:
            return (data.get(key) or "").strip() or None

        return cls(
            client_id=optional("ARM_CLIENT_ID"),
            client_secret=optional("ARM_CLIENT_SECRET"),
            tenant_id=optional("ARM_TENANT_ID"),
            subscription_id=data["ARM_SUBSCRIPTION_ID"].strip(),
            access_token=optional("ARM_ACCESS_TOKEN"),
        )


class MachineSecret(BaseModel):
    """Credentials plus the cloud-init user data rendered into the VM's custom data."""

    credentials: AzureCredentials
    user_data: str = ""


__all__ = ["AzureCredentials", "MachineSecret"]
