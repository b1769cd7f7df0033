"""Snapshot of the target VM's OS disk."""

import logging
from typing import TYPE_CHECKING

from scanplane.consts import (
    AZURE_DISKS_API_VERSION,
    SNAPSHOT_CREATE_ESTIMATE_PROVISION_TIME,
    SNAPSHOT_DELETE_ESTIMATE_TIME,
    SNAPSHOT_NAME_PREFIX,
    SNAPSHOT_SAS_DURATION_SECONDS,
)
from scanplane.errors import FatalError, RetryableError
from scanplane.models.model_azure import Snapshot, VirtualMachine, provisioning_succeeded
from scanplane.models.model_scan import ScanJobConfig
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists

if TYPE_CHECKING:
    from scanplane.provider.azure.client import AzureClient

logger = logging.getLogger(__name__)


def snapshot_name(config: ScanJobConfig) -> str:
    return f"{SNAPSHOT_NAME_PREFIX}-{config.scan_result_id}"


def _snapshot_path(client: "AzureClient", name: str) -> str:
    return client.arm.resource_path(
        client.config.scanner_resource_group, "Microsoft.Compute", "snapshots", name
    )


async def get_snapshot(client: "AzureClient", name: str) -> Snapshot:
    data = await client.arm.get(
        _snapshot_path(client, name), AZURE_DISKS_API_VERSION, action=f"getting snapshot {name}"
    )
    return Snapshot.model_validate(data)


async def ensure_snapshot_for_vm_root_volume(
    client: "AzureClient", config: ScanJobConfig, target_vm: VirtualMachine
) -> Snapshot:
    """Ensure a snapshot of the target VM's OS disk exists.

    The snapshot is created in the scanner resource group but in the target's
    location, which is where its source disk lives.
    """
    name = snapshot_name(config)
    os_disk_id = target_vm.os_disk_id()
    if not os_disk_id:
        raise FatalError(f"target virtual machine {target_vm.name} has no managed OS disk")

    async def create() -> None:
        body = {
            "location": target_vm.location,
            "properties": {
                "creationData": {"createOption": "Copy", "sourceResourceId": os_disk_id},
            },
        }
        await client.arm.put(
            _snapshot_path(client, name),
            AZURE_DISKS_API_VERSION,
            body,
            action=f"creating snapshot {name}",
        )

    return await ensure_exists(
        "snapshot",
        get=lambda: get_snapshot(client, name),
        create=create,
        is_ready=provisioning_succeeded,
        estimate=SNAPSHOT_CREATE_ESTIMATE_PROVISION_TIME,
        state=lambda s: s.provisioning_state,
    )


async def grant_snapshot_access(client: "AzureClient", name: str) -> str:
    """Grant temporary read access to a snapshot.

    The grant is a long-running operation. While it is in progress its status
    URL is kept on the client, and each later call checks it once.

    Returns:
        SAS URL the snapshot can be read from

    Raises:
        RetryableError: Grant has not finished yet
    """
    action = f"granting SAS access for snapshot {name}"
    location = client.pending_access_grants.get(name)
    if location:
        operation = await client.arm.poll_operation(location, action=action)
    else:
        operation = await client.arm.begin_post(
            f"{_snapshot_path(client, name)}/beginGetAccess",
            AZURE_DISKS_API_VERSION,
            {"access": "Read", "durationInSeconds": SNAPSHOT_SAS_DURATION_SECONDS},
            action=action,
        )

    if not operation.done:
        client.pending_access_grants[name] = operation.location
        raise RetryableError("snapshot access grant in progress", after=operation.retry_after)
    client.pending_access_grants.pop(name, None)

    result = operation.result
    sas = result.get("accessSAS") or result.get("properties", {}).get("output", {}).get(
        "accessSAS"
    )
    if not sas:
        raise FatalError(f"no SAS URL returned for snapshot {name}")
    return sas


async def revoke_snapshot_access(client: "AzureClient", name: str) -> None:
    """Revoke the snapshot SAS. Azure completes the revoke in the background."""
    await client.arm.begin_post(
        f"{_snapshot_path(client, name)}/endGetAccess",
        AZURE_DISKS_API_VERSION,
        action=f"revoking SAS access for snapshot {name}",
    )
    logger.debug(f"Revoke of SAS access for snapshot {name} accepted")


async def ensure_snapshot_deleted(client: "AzureClient", config: ScanJobConfig) -> None:
    name = snapshot_name(config)
    await ensure_deleted(
        "snapshot",
        get=lambda: get_snapshot(client, name),
        delete=lambda: client.arm.delete(
            _snapshot_path(client, name),
            AZURE_DISKS_API_VERSION,
            action=f"deleting snapshot {name}",
        ),
        estimate=SNAPSHOT_DELETE_ESTIMATE_TIME,
    )
