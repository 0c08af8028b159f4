# azmachine/models/settings.py

from pydantic_settings import BaseSettings, SettingsConfigDict


class AzureSettings(BaseSettings):
    """
    Pydantic settings for the Azure Resource Manager backend.
    By default, these fields map to environment variables prefixed with `AZMACHINE_`.
    For example, `AZMACHINE_ARM_ENDPOINT`, `AZMACHINE_POLL_INTERVAL_SECONDS`, etc.
    """

    arm_endpoint: str = "https://management.azure.com"
    verify_ssl: bool = True
    # Used only when ARM omits Retry-After on a long-running operation.
    poll_interval_seconds: float = 5.0
    network_api_version: str = "2023-09-01"
    compute_api_version: str = "2023-09-01"
    disk_api_version: str = "2023-04-02"
    marketplace_api_version: str = "2021-01-01"

    model_config = SettingsConfigDict(env_prefix="AZMACHINE_")
