"""Scanner virtual machine and attachment of the target disk."""

import logging
from typing import TYPE_CHECKING

from scanplane.consts import (
    AZURE_COMPUTE_API_VERSION,
    SCANNER_ADMIN_USERNAME,
    SCANNER_DATA_DISK_LUN,
    SCANNER_VM_NAME_PREFIX,
    VM_CREATE_ESTIMATE_PROVISION_TIME,
    VM_DELETE_ESTIMATE_TIME,
    VM_DISK_ATTACH_ESTIMATE_TIME,
)
from scanplane.errors import FatalError, RetryableError
from scanplane.models.model_azure import (
    Disk,
    NetworkInterface,
    VirtualMachine,
    provisioning_succeeded,
)
from scanplane.models.model_scan import ScanJobConfig
from scanplane.provider.azure.disk import get_disk
from scanplane.provider.cloudinit import encode_user_data, generate_cloud_init
from scanplane.provider.lifecycle import ensure_deleted, ensure_exists

if TYPE_CHECKING:
    from scanplane.provider.azure.client import AzureClient

logger = logging.getLogger(__name__)


def scanner_vm_name(config: ScanJobConfig) -> str:
    return f"{SCANNER_VM_NAME_PREFIX}-{config.scan_result_id}"


def _vm_path(client: "AzureClient", resource_group: str, name: str) -> str:
    return client.arm.resource_path(
        resource_group, "Microsoft.Compute", "virtualMachines", name
    )


async def get_virtual_machine(
    client: "AzureClient", resource_group: str, name: str
) -> VirtualMachine:
    data = await client.arm.get(
        _vm_path(client, resource_group, name),
        AZURE_COMPUTE_API_VERSION,
        action=f"getting virtual machine {name}",
    )
    return VirtualMachine.model_validate(data)


def scanner_vm_parameters(
    client: "AzureClient", config: ScanJobConfig, network_interface: NetworkInterface
) -> dict:
    """Request body creating the scanner VM.

    The VM has no identity, its OS disk is deleted with it, and its user
    data is the base64 cloud-init that starts the scanner.
    """
    cfg = client.config
    vm_name = scanner_vm_name(config)
    try:
        user_data = generate_cloud_init(config)
    except Exception as e:
        raise FatalError(f"failed to generate cloud-init: {e}") from e

    linux_configuration: dict = {"disablePasswordAuthentication": True}
    if cfg.scanner_public_key:
        linux_configuration["ssh"] = {
            "publicKeys": [
                {
                    "path": f"/home/{SCANNER_ADMIN_USERNAME}/.ssh/authorized_keys",
                    "keyData": cfg.scanner_public_key,
                }
            ]
        }

    return {
        "location": cfg.scanner_location,
        # Scanners need no access to Azure
        "identity": {"type": "None"},
        "properties": {
            "hardwareProfile": {"vmSize": cfg.scanner_vm_size},
            "storageProfile": {
                "imageReference": {
                    "publisher": cfg.scanner_image_publisher,
                    "offer": cfg.scanner_image_offer,
                    "sku": cfg.scanner_image_sku,
                    "version": cfg.scanner_image_version,
                },
                "osDisk": {
                    "name": f"{vm_name}-rootvolume",
                    "createOption": "FromImage",
                    "deleteOption": "Delete",
                    "caching": "ReadWrite",
                    "managedDisk": {"storageAccountType": "Standard_LRS"},
                },
            },
            "osProfile": {
                "computerName": vm_name,
                "adminUsername": SCANNER_ADMIN_USERNAME,
                "linuxConfiguration": linux_configuration,
            },
            "networkProfile": {"networkInterfaces": [{"id": network_interface.id}]},
            "userData": encode_user_data(user_data),
        },
    }


async def ensure_scanner_virtual_machine(
    client: "AzureClient", config: ScanJobConfig, network_interface: NetworkInterface
) -> VirtualMachine:
    rg = client.config.scanner_resource_group
    name = scanner_vm_name(config)

    async def create() -> None:
        await client.arm.put(
            _vm_path(client, rg, name),
            AZURE_COMPUTE_API_VERSION,
            scanner_vm_parameters(client, config, network_interface),
            action=f"creating virtual machine {name}",
        )

    return await ensure_exists(
        "scanner virtual machine",
        get=lambda: get_virtual_machine(client, rg, name),
        create=create,
        is_ready=provisioning_succeeded,
        estimate=VM_CREATE_ESTIMATE_PROVISION_TIME,
        state=lambda vm: vm.provisioning_state,
    )


async def ensure_scanner_virtual_machine_deleted(
    client: "AzureClient", config: ScanJobConfig
) -> None:
    rg = client.config.scanner_resource_group
    name = scanner_vm_name(config)
    await ensure_deleted(
        "scanner virtual machine",
        get=lambda: get_virtual_machine(client, rg, name),
        delete=lambda: client.arm.delete(
            _vm_path(client, rg, name),
            AZURE_COMPUTE_API_VERSION,
            action=f"deleting virtual machine {name}",
        ),
        estimate=VM_DELETE_ESTIMATE_TIME,
    )


async def ensure_disk_attached_to_scanner_vm(
    client: "AzureClient", vm: VirtualMachine, disk: Disk
) -> None:
    """Ensure the target disk is attached to the scanner VM at the fixed LUN.

    Raises:
        RetryableError: Attach was requested or the disk is not attached yet
    """
    attached_ids = {disk_id.lower() for disk_id in vm.data_disk_ids()}
    if (disk.id or "").lower() not in attached_ids:
        logger.info(f"Attaching disk {disk.name} to virtual machine {vm.name}")
        body = {
            "properties": {
                "storageProfile": {
                    "dataDisks": [
                        {
                            "createOption": "Attach",
                            "lun": SCANNER_DATA_DISK_LUN,
                            "name": disk.name,
                            "managedDisk": {"id": disk.id},
                        }
                    ]
                }
            }
        }
        await client.arm.patch(
            _vm_path(client, client.config.scanner_resource_group, vm.name),
            AZURE_COMPUTE_API_VERSION,
            body,
            action=f"attaching disk {disk.name} to VM {vm.name}",
        )

    current = await get_disk(client, disk.name)
    if not current.is_attached:
        raise RetryableError(
            f"volume is not yet attached, disk is in state: {current.properties.disk_state}",
            after=VM_DISK_ATTACH_ESTIMATE_TIME,
        )
