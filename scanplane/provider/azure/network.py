"""Network interface of the scanner VM."""

import logging
from typing import TYPE_CHECKING

from scanplane.consts import (
    AZURE_NETWORK_API_VERSION,
    NETWORK_INTERFACE_DELETE_ESTIMATE_TIME,
    NETWORK_INTERFACE_ESTIMATE_PROVISION_TIME,
    SCANNER_NIC_NAME_PREFIX,
)
from scanplane.models.model_azure import NetworkInterface, provisioning_succeeded
from scanplane.models.model_scan import ScanJobConfig
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists

if TYPE_CHECKING:
    from scanplane.provider.azure.client import AzureClient

logger = logging.getLogger(__name__)


def network_interface_name(config: ScanJobConfig) -> str:
    return f"{SCANNER_NIC_NAME_PREFIX}-{config.scan_result_id}"


def _nic_path(client: "AzureClient", name: str) -> str:
    return client.arm.resource_path(
        client.config.scanner_resource_group, "Microsoft.Network", "networkInterfaces", name
    )


async def get_network_interface(client: "AzureClient", name: str) -> NetworkInterface:
    data = await client.arm.get(
        _nic_path(client, name),
        AZURE_NETWORK_API_VERSION,
        action=f"getting network interface {name}",
    )
    return NetworkInterface.model_validate(data)


async def ensure_network_interface(
    client: "AzureClient", config: ScanJobConfig
) -> NetworkInterface:
    """Ensure the scanner NIC exists: dynamic private IP in the scanner subnet."""
    name = network_interface_name(config)

    async def create() -> None:
        body = {
            "location": client.config.scanner_location,
            "properties": {
                "ipConfigurations": [
                    {
                        "name": f"{name}-ipconfig",
                        "properties": {
                            "privateIPAllocationMethod": "Dynamic",
                            "subnet": {"id": client.config.scanner_subnet_id},
                        },
                    }
                ],
                "networkSecurityGroup": {"id": client.config.scanner_security_group},
            },
        }
        await client.arm.put(
            _nic_path(client, name),
            AZURE_NETWORK_API_VERSION,
            body,
            action=f"creating network interface {name}",
        )

    return await ensure_exists(
        "network interface",
        get=lambda: get_network_interface(client, name),
        create=create,
        is_ready=provisioning_succeeded,
        estimate=NETWORK_INTERFACE_ESTIMATE_PROVISION_TIME,
        state=lambda n: n.provisioning_state,
    )


async def ensure_network_interface_deleted(client: "AzureClient", config: ScanJobConfig) -> None:
    name = network_interface_name(config)
    await ensure_deleted(
        "network interface",
        get=lambda: get_network_interface(client, name),
        delete=lambda: client.arm.delete(
            _nic_path(client, name),
            AZURE_NETWORK_API_VERSION,
            action=f"deleting network interface {name}",
        ),
        estimate=NETWORK_INTERFACE_DELETE_ESTIMATE_TIME,
    )
