"""Azure provider: target discovery and the scanner resource lifecycle."""

import logging

from scanplane.consts import (
    AZURE_COMPUTE_API_VERSION,
    AZURE_INSTANCE_ID_PARTS_LENGTH,
    AZURE_RESOURCE_GROUP_PART_IDX,
    AZURE_RESOURCES_API_VERSION,
    AZURE_VM_NAME_PART_IDX,
)
from scanplane.errors import FatalError
from scanplane.models.model_azure import ResourceGroup, VirtualMachine
from scanplane.models.model_scan import (
    AzureResourceGroup,
    AzureScanScope,
    AzureSubscriptionScope,
    CloudProvider,
    ScanJobConfig,
    VMInfo,
)
from scanplane.provider.azure.arm import ArmClient, ManagedIdentityCredential, TokenCredential
from scanplane.provider.azure.blob import BlobClient, ensure_blob_deleted
from scanplane.provider.azure.config import AzureConfig, get_azure_config
from scanplane.provider.azure.disk import (
    ensure_managed_disk_from_snapshot,
    ensure_managed_disk_from_snapshot_in_different_region,
    ensure_target_disk_deleted,
)
from scanplane.provider.azure.network import (
    ensure_network_interface,
    ensure_network_interface_deleted,
)
from scanplane.provider.azure.scanner_vm import (
    ensure_disk_attached_to_scanner_vm,
    ensure_scanner_virtual_machine,
    ensure_scanner_virtual_machine_deleted,
    get_virtual_machine,
)
from scanplane.provider.azure.snapshot import (
    ensure_snapshot_deleted,
    ensure_snapshot_for_vm_root_volume,
)
from scanplane.provider.base import Provider
from scanplane.provider.tags import convert_tags, has_exclude_tags, has_include_tags

logger = logging.getLogger(__name__)


def resource_group_and_name_from_instance_id(instance_id: str) -> tuple[str, str]:
    """Split a VM instance id into resource group and VM name.

    Example:
        /subscriptions/{sub}/resourceGroups/my-rg/providers/Microsoft.Compute/virtualMachines/my-vm
        gives ("my-rg", "my-vm").

    Raises:
        FatalError: Instance id is not in the expected format
    """
    parts = instance_id.split("/")
    if len(parts) != AZURE_INSTANCE_ID_PARTS_LENGTH:
        raise FatalError(f"asset instance id in unexpected format got: {parts}")
    return parts[AZURE_RESOURCE_GROUP_PART_IDX], parts[AZURE_VM_NAME_PART_IDX]


def vm_info_from_virtual_machine(vm: VirtualMachine) -> VMInfo:
    """Convert an ARM virtual machine to a scan target."""
    profile = vm.properties.storage_profile
    image = ""
    platform = ""
    if profile is not None:
        if profile.image_reference is not None:
            image = profile.image_reference.urn()
        if profile.os_disk is not None and profile.os_disk.os_type:
            platform = profile.os_disk.os_type
    hardware = vm.properties.hardware_profile

    return VMInfo(
        instance_id=vm.id or "",
        instance_provider=CloudProvider.AZURE,
        location=vm.location or "",
        image=image,
        instance_type=(hardware.vm_size if hardware and hardware.vm_size else vm.type) or "",
        platform=platform,
        launch_time=vm.properties.time_created,
        tags=convert_tags(vm.tags),
        security_groups=[],
    )


class AzureClient(Provider):
    """Azure implementation of the provider interface.

    run_target_scan and remove_target_scan are single steps of the lifecycle
    state machine: each call advances as far as it can and raises
    RetryableError when the caller must come back later. Both are safe to
    call any number of times for the same job.
    """

    def __init__(
        self,
        config: AzureConfig,
        arm: ArmClient | None = None,
        blobs: BlobClient | None = None,
        credential: TokenCredential | None = None,
    ):
        """Initialize AzureClient.

        Args:
            config: Azure provider configuration
            arm: Resource Manager client (default: managed identity client)
            blobs: Blob storage client (default: managed identity client)
            credential: Credential for default clients (default: managed identity)
        """
        self.config = config
        credential = credential or ManagedIdentityCredential()
        self.arm = arm or ArmClient(
            config.subscription_id, credential, base_url=config.management_url
        )
        self.blobs = blobs or BlobClient(credential)
        # Snapshot name -> status URL of an access grant still in progress
        self.pending_access_grants: dict[str, str] = {}

    @classmethod
    def from_env(cls) -> "AzureClient":
        """Create a client from AZURE_* environment variables.

        Raises:
            FatalError: Required configuration is missing
        """
        config = get_azure_config()
        config.validate_config()
        return cls(config)

    def kind(self) -> CloudProvider:
        return CloudProvider.AZURE

    async def ensure_scanner_vm(self, config: ScanJobConfig) -> VirtualMachine:
        """Advance the scanner resources for a job one step towards ready.

        Order: snapshot of the target's OS disk, managed disk (via blob when
        the target is in another region), network interface, scanner VM,
        disk attached to the VM.

        Returns:
            The scanner VM once every resource is ready and the disk is attached

        Raises:
            RetryableError: Some resource is still being created
            FatalError: Unrecoverable condition (bad instance id, 4xx, ...)
            ProviderError: Transient Azure failure
        """
        resource_group, vm_name = resource_group_and_name_from_instance_id(
            config.target_info.instance_id
        )
        target_vm = await get_virtual_machine(self, resource_group, vm_name)

        snapshot = await ensure_snapshot_for_vm_root_volume(self, config, target_vm)

        if target_vm.location == self.config.scanner_location:
            disk = await ensure_managed_disk_from_snapshot(self, config, snapshot)
        else:
            logger.debug(
                f"Target {vm_name} is in {target_vm.location}, scanner in "
                f"{self.config.scanner_location}: copying snapshot through blob storage"
            )
            disk = await ensure_managed_disk_from_snapshot_in_different_region(
                self, config, snapshot
            )

        network_interface = await ensure_network_interface(self, config)
        scanner_vm = await ensure_scanner_virtual_machine(self, config, network_interface)
        await ensure_disk_attached_to_scanner_vm(self, scanner_vm, disk)

        logger.info(f"Scanner VM {scanner_vm.name} ready for scan result {config.scan_result_id}")
        return scanner_vm

    async def run_target_scan(self, config: ScanJobConfig) -> VirtualMachine:
        return await self.ensure_scanner_vm(config)

    async def remove_scanner_resources(self, config: ScanJobConfig) -> None:
        """Advance the teardown of a job's scanner resources one step.

        Deletes VM, network interface, target disk, snapshot copy blob and
        snapshot, in that order. A failed step stops the teardown; earlier
        deletions are not rolled back.
        """
        await ensure_scanner_virtual_machine_deleted(self, config)
        await ensure_network_interface_deleted(self, config)
        await ensure_target_disk_deleted(self, config)
        await ensure_blob_deleted(self, config)
        await ensure_snapshot_deleted(self, config)
        logger.info(f"Scanner resources removed for scan result {config.scan_result_id}")

    async def remove_target_scan(self, config: ScanJobConfig) -> None:
        await self.remove_scanner_resources(config)

    async def discover_scopes(self) -> AzureSubscriptionScope:
        """List the resource groups of the subscription."""
        items = await self.arm.list_all(
            f"{self.arm.subscription_path}/resourcegroups",
            AZURE_RESOURCES_API_VERSION,
            action="listing resource groups",
        )
        groups = [ResourceGroup.model_validate(item) for item in items]
        return AzureSubscriptionScope(
            subscription_id=self.config.subscription_id,
            resource_groups=[AzureResourceGroup(name=g.name) for g in groups if g.name],
        )

    async def discover_targets(self, scope: AzureScanScope) -> list[VMInfo]:
        """List the VMs a scan scope covers.

        Args:
            scope: All resource groups or a list of them, plus tag selectors

        Returns:
            Matching VMs as scan targets
        """
        vms = "providers/Microsoft.Compute/virtualMachines"
        if scope.all_resource_groups:
            paths = [f"{self.arm.subscription_path}/{vms}"]
        else:
            paths = [
                f"{self.arm.resource_group_path(rg.name)}/{vms}" for rg in scope.resource_groups
            ]

        targets: list[VMInfo] = []
        for path in paths:
            items = await self.arm.list_all(
                path, AZURE_COMPUTE_API_VERSION, action="listing virtual machines"
            )
            for item in items:
                vm = VirtualMachine.model_validate(item)
                if not has_include_tags(vm.tags, scope.instance_tag_selector):
                    continue
                if has_exclude_tags(vm.tags, scope.instance_tag_exclusion):
                    continue
                targets.append(vm_info_from_virtual_machine(vm))

        logger.info(f"Discovered {len(targets)} virtual machines")
        return targets

    async def close(self) -> None:
        await self.arm.close()
        await self.blobs.close()
