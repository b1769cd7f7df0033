"""Scan job, target and scope models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from scanplane.consts import DEFAULT_SCAN_TIMEOUT_SECONDS
from scanplane.models.model_families import FamiliesConfig


class CloudProvider(str, Enum):
    """Supported cloud providers."""

    AWS = "AWS"
    AZURE = "Azure"
    GCP = "GCP"


class Tag(BaseModel):
    """Key/value tag on a cloud asset."""

    key: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "Tag":
        """Parse a 'key=value' string."""
        key, sep, value = text.partition("=")
        if not sep or not key:
            msg = f"tag must be in key=value format, got {text!r}"
            raise ValueError(msg)
        return cls(key=key, value=value)


class VMInfo(BaseModel):
    """Virtual machine target of a scan."""

    instance_id: str = Field(description="Provider-specific opaque instance id")
    instance_provider: CloudProvider
    location: str
    image: str = ""
    instance_type: str = ""
    platform: str = ""
    launch_time: datetime | None = None
    tags: list[Tag] = Field(default_factory=list)
    security_groups: list[str] = Field(default_factory=list)


class ScanJobConfig(BaseModel):
    """Immutable description of one target scan job.

    Built by the scheduler; read-only to the family manager and providers.
    """

    model_config = ConfigDict(frozen=True)

    scan_id: str
    scan_result_id: str = Field(description="Keys every scanner resource name")
    target_id: str
    target_info: VMInfo
    families: FamiliesConfig = Field(default_factory=FamiliesConfig)
    scanner_image: str = Field(default="ghcr.io/scanplane/scanner:latest")
    server_address: str = Field(default="", description="Control plane API address")
    timeout_seconds: int = Field(default=DEFAULT_SCAN_TIMEOUT_SECONDS, gt=0)


class AzureResourceGroup(BaseModel):
    name: str


class AzureSubscriptionScope(BaseModel):
    """Discovered scope of an Azure subscription."""

    subscription_id: str
    resource_groups: list[AzureResourceGroup] = Field(default_factory=list)


class AzureScanScope(BaseModel):
    """Which VMs of a subscription a scan covers."""

    all_resource_groups: bool = False
    resource_groups: list[AzureResourceGroup] = Field(default_factory=list)
    instance_tag_selector: list[Tag] | None = Field(
        default=None, description="Include only VMs carrying ALL of these tags"
    )
    instance_tag_exclusion: list[Tag] | None = Field(
        default=None, description="Exclude VMs carrying ALL of these tags"
    )
