"""Azure provider configuration from AZURE_* environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from scanplane.consts import (
    AZURE_DEFAULT_IMAGE_OFFER,
    AZURE_DEFAULT_IMAGE_PUBLISHER,
    AZURE_DEFAULT_IMAGE_SKU,
    AZURE_DEFAULT_IMAGE_VERSION,
    AZURE_DEFAULT_SCANNER_VM_SIZE,
    AZURE_MANAGEMENT_URL,
)
from scanplane.errors import FatalError


class AzureConfig(BaseSettings):
    subscription_id: str = ""
    scanner_location: str = ""
    scanner_resource_group: str = ""
    scanner_subnet_id: str = ""
    scanner_public_key: str = ""
    scanner_vm_size: str = AZURE_DEFAULT_SCANNER_VM_SIZE
    scanner_image_publisher: str = AZURE_DEFAULT_IMAGE_PUBLISHER
    scanner_image_offer: str = AZURE_DEFAULT_IMAGE_OFFER
    scanner_image_sku: str = AZURE_DEFAULT_IMAGE_SKU
    scanner_image_version: str = AZURE_DEFAULT_IMAGE_VERSION
    scanner_security_group: str = ""
    scanner_storage_account_name: str = ""
    scanner_storage_container_name: str = ""

    # Endpoint overrides (sovereign clouds, tests)
    management_url: str = AZURE_MANAGEMENT_URL

    model_config = SettingsConfigDict(
        env_prefix="AZURE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def missing_fields(self) -> list[str]:
        """Names of required settings that are empty."""
        required = [
            "subscription_id",
            "scanner_location",
            "scanner_resource_group",
            "scanner_subnet_id",
            "scanner_security_group",
            "scanner_storage_account_name",
            "scanner_storage_container_name",
        ]
        return [name for name in required if not getattr(self, name)]

    def validate_config(self) -> None:
        """Check that every required setting is present.

        Raises:
            FatalError: Listing the missing AZURE_* variables
        """
        missing = self.missing_fields()
        if missing:
            env_vars = [f"AZURE_{name.upper()}" for name in missing]
            raise FatalError(
                f"missing required Azure configuration: {', '.join(env_vars)}",
                details={"missing": env_vars},
            )

    @property
    def blob_base_url(self) -> str:
        """Base URL of the scanner storage container."""
        return (
            f"https://{self.scanner_storage_account_name}.blob.core.windows.net/"
            f"{self.scanner_storage_container_name}"
        )


@lru_cache(maxsize=1)
def get_azure_config() -> AzureConfig:
    """Return a cached AzureConfig instance."""
    return AzureConfig()
