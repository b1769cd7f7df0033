"""Azure provider."""

from scanplane.provider.azure.arm import (
    ArmClient,
    ManagedIdentityCredential,
    TokenCredential,
    classify_request_error,
)
from scanplane.provider.azure.blob import BlobClient
from scanplane.provider.azure.client import (
    AzureClient,
    resource_group_and_name_from_instance_id,
    vm_info_from_virtual_machine,
)
from scanplane.provider.azure.config import AzureConfig, get_azure_config

__all__ = [
    "ArmClient",
    "AzureClient",
    "AzureConfig",
    "BlobClient",
    "ManagedIdentityCredential",
    "TokenCredential",
    "classify_request_error",
    "get_azure_config",
    "resource_group_and_name_from_instance_id",
    "vm_info_from_virtual_machine",
]
