"""Managed disk holding the copy of the target's OS disk."""

import logging
from typing import TYPE_CHECKING

from scanplane.consts import (
    AZURE_DISKS_API_VERSION,
    DISK_DELETE_ESTIMATE_TIME,
    DISK_ESTIMATE_PROVISION_TIME,
    TARGET_VOLUME_NAME_PREFIX,
)
from scanplane.errors import ResourceNotFoundError
from scanplane.models.model_azure import Disk, Snapshot, provisioning_succeeded
from scanplane.models.model_scan import ScanJobConfig
from scanplane.provider.azure.blob import blob_url, ensure_snapshot_copied_to_blob
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists

if TYPE_CHECKING:
    from scanplane.provider.azure.client import AzureClient

logger = logging.getLogger(__name__)


def volume_name(config: ScanJobConfig) -> str:
    return f"{TARGET_VOLUME_NAME_PREFIX}-{config.scan_result_id}"


def _disk_path(client: "AzureClient", name: str) -> str:
    return client.arm.resource_path(
        client.config.scanner_resource_group, "Microsoft.Compute", "disks", name
    )


async def get_disk(client: "AzureClient", name: str) -> Disk:
    data = await client.arm.get(
        _disk_path(client, name), AZURE_DISKS_API_VERSION, action=f"getting disk {name}"
    )
    return Disk.model_validate(data)


async def _ensure_disk(
    client: "AzureClient", config: ScanJobConfig, creation_data: dict[str, str]
) -> Disk:
    name = volume_name(config)

    async def create() -> None:
        body = {
            "location": client.config.scanner_location,
            "sku": {"name": "Standard_LRS"},
            "properties": {"creationData": creation_data},
        }
        await client.arm.put(
            _disk_path(client, name), AZURE_DISKS_API_VERSION, body, action=f"creating disk {name}"
        )

    return await ensure_exists(
        "target disk",
        get=lambda: get_disk(client, name),
        create=create,
        is_ready=provisioning_succeeded,
        estimate=DISK_ESTIMATE_PROVISION_TIME,
        state=lambda d: d.provisioning_state,
    )


async def ensure_managed_disk_from_snapshot(
    client: "AzureClient", config: ScanJobConfig, snapshot: Snapshot
) -> Disk:
    """Ensure the target disk exists, copied from a snapshot in the scanner region."""
    return await _ensure_disk(
        client, config, {"createOption": "Copy", "sourceResourceId": snapshot.id}
    )


async def ensure_managed_disk_from_snapshot_in_different_region(
    client: "AzureClient", config: ScanJobConfig, snapshot: Snapshot
) -> Disk:
    """Ensure the target disk exists for a snapshot in another region.

    Snapshots cannot be copied across regions directly, so the snapshot is
    first copied to a blob in the scanner storage account and the disk is
    imported from that blob. Once the disk exists the blob step is skipped.
    """
    try:
        await get_disk(client, volume_name(config))
    except ResourceNotFoundError:
        await ensure_snapshot_copied_to_blob(client, config, snapshot)

    storage_account_id = client.arm.resource_path(
        client.config.scanner_resource_group,
        "Microsoft.Storage",
        "storageAccounts",
        client.config.scanner_storage_account_name,
    )
    return await _ensure_disk(
        client,
        config,
        {
            "createOption": "Import",
            "sourceUri": blob_url(client, config),
            "storageAccountId": storage_account_id,
        },
    )


async def ensure_target_disk_deleted(client: "AzureClient", config: ScanJobConfig) -> None:
    name = volume_name(config)
    await ensure_deleted(
        "target disk",
        get=lambda: get_disk(client, name),
        delete=lambda: client.arm.delete(
            _disk_path(client, name), AZURE_DISKS_API_VERSION, action=f"deleting disk {name}"
        ),
        estimate=DISK_DELETE_ESTIMATE_TIME,
    )
