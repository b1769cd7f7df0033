"""Pydantic models for scanplane."""

from scanplane.models.model_azure import (
    Disk,
    NetworkInterface,
    ResourceGroup,
    Snapshot,
    VirtualMachine,
    provisioning_succeeded,
)
from scanplane.models.model_families import (
    ExploitsConfig,
    FamiliesConfig,
    FamilyConfig,
    FamilyType,
    Input,
    InputType,
    MalwareConfig,
    MisconfigurationConfig,
    RootkitsConfig,
    SBOMConfig,
    SecretsConfig,
    VulnerabilitiesConfig,
)
from scanplane.models.model_results import (
    Exploit,
    ExploitsResult,
    FamilyResultBase,
    Malware,
    MalwareResult,
    Misconfiguration,
    MisconfigurationResult,
    MisconfigurationSeverity,
    Package,
    Rootkit,
    RootkitsResult,
    SBOMResult,
    Secret,
    SecretsResult,
    VulnerabilitiesResult,
    Vulnerability,
    VulnerabilitySeverity,
)
from scanplane.models.model_scan import (
    AzureResourceGroup,
    AzureScanScope,
    AzureSubscriptionScope,
    CloudProvider,
    ScanJobConfig,
    Tag,
    VMInfo,
)
from scanplane.models.model_scan_result import (
    RESULT_FIELD_BY_FAMILY,
    ScanFindingsSummary,
    ScanRelationship,
    ScanState,
    TargetRelationship,
    TargetScanResult,
    TargetScanState,
    TargetScanStatus,
)

__all__ = [
    # Azure resources
    "Disk",
    "NetworkInterface",
    "ResourceGroup",
    "Snapshot",
    "VirtualMachine",
    "provisioning_succeeded",
    # Family configuration
    "ExploitsConfig",
    "FamiliesConfig",
    "FamilyConfig",
    "FamilyType",
    "Input",
    "InputType",
    "MalwareConfig",
    "MisconfigurationConfig",
    "RootkitsConfig",
    "SBOMConfig",
    "SecretsConfig",
    "VulnerabilitiesConfig",
    # Family results
    "Exploit",
    "ExploitsResult",
    "FamilyResultBase",
    "Malware",
    "MalwareResult",
    "Misconfiguration",
    "MisconfigurationResult",
    "MisconfigurationSeverity",
    "Package",
    "Rootkit",
    "RootkitsResult",
    "SBOMResult",
    "Secret",
    "SecretsResult",
    "VulnerabilitiesResult",
    "Vulnerability",
    "VulnerabilitySeverity",
    # Scan jobs
    "AzureResourceGroup",
    "AzureScanScope",
    "AzureSubscriptionScope",
    "CloudProvider",
    "ScanJobConfig",
    "Tag",
    "VMInfo",
    # Scan result documents
    "RESULT_FIELD_BY_FAMILY",
    "ScanFindingsSummary",
    "ScanRelationship",
    "ScanState",
    "TargetRelationship",
    "TargetScanResult",
    "TargetScanState",
    "TargetScanStatus",
]
