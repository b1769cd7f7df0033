"""Azure Resource Manager resource models.

Only the fields the scanner lifecycle reads are declared; everything else
returned by ARM is preserved as extra data.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scanplane.consts import AZURE_DISK_STATE_ATTACHED, AZURE_PROVISIONING_STATE_SUCCEEDED


class ArmModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class ManagedDiskParameters(ArmModel):
    id: str | None = None
    storage_account_type: str | None = None


class ImageReference(ArmModel):
    publisher: str | None = None
    offer: str | None = None
    sku: str | None = None
    version: str | None = None

    def urn(self) -> str:
        """Publisher/Offer/SKU/Version image URN."""
        return f"{self.publisher}/{self.offer}/{self.sku}/{self.version}"


class OSDisk(ArmModel):
    name: str | None = None
    os_type: str | None = None
    managed_disk: ManagedDiskParameters | None = None


class DataDisk(ArmModel):
    lun: int
    name: str | None = None
    create_option: str | None = None
    managed_disk: ManagedDiskParameters | None = None


class StorageProfile(ArmModel):
    image_reference: ImageReference | None = None
    os_disk: OSDisk | None = None
    data_disks: list[DataDisk] = Field(default_factory=list)


class HardwareProfile(ArmModel):
    vm_size: str | None = None


class VirtualMachineProperties(ArmModel):
    provisioning_state: str | None = None
    hardware_profile: HardwareProfile | None = None
    storage_profile: StorageProfile | None = None
    time_created: datetime | None = None


class ArmResource(ArmModel):
    id: str | None = None
    name: str | None = None
    type: str | None = None
    location: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)


class ProvisionedProperties(ArmModel):
    provisioning_state: str | None = None


class VirtualMachine(ArmResource):
    properties: VirtualMachineProperties = Field(default_factory=VirtualMachineProperties)

    @property
    def provisioning_state(self) -> str | None:
        return self.properties.provisioning_state

    def os_disk_id(self) -> str | None:
        profile = self.properties.storage_profile
        if profile is None or profile.os_disk is None or profile.os_disk.managed_disk is None:
            return None
        return profile.os_disk.managed_disk.id

    def data_disk_ids(self) -> list[str]:
        profile = self.properties.storage_profile
        if profile is None:
            return []
        return [
            d.managed_disk.id
            for d in profile.data_disks
            if d.managed_disk is not None and d.managed_disk.id
        ]


class Snapshot(ArmResource):
    properties: ProvisionedProperties = Field(default_factory=ProvisionedProperties)

    @property
    def provisioning_state(self) -> str | None:
        return self.properties.provisioning_state


class DiskProperties(ProvisionedProperties):
    disk_state: str | None = None


class Disk(ArmResource):
    properties: DiskProperties = Field(default_factory=DiskProperties)

    @property
    def provisioning_state(self) -> str | None:
        return self.properties.provisioning_state

    @property
    def is_attached(self) -> bool:
        return self.properties.disk_state == AZURE_DISK_STATE_ATTACHED


class NetworkInterface(ArmResource):
    properties: ProvisionedProperties = Field(default_factory=ProvisionedProperties)

    @property
    def provisioning_state(self) -> str | None:
        return self.properties.provisioning_state


class ResourceGroup(ArmResource):
    pass


def provisioning_succeeded(resource: VirtualMachine | Snapshot | Disk | NetworkInterface) -> bool:
    """Whether an ARM resource reached its terminal provisioning state."""
    return resource.provisioning_state == AZURE_PROVISIONING_STATE_SUCCEEDED
