"""Persisted per-target scan result document."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from scanplane.models.common import _utc_now
from scanplane.models.model_families import FamilyType
from scanplane.models.model_results import (
    ExploitsResult,
    MalwareResult,
    MisconfigurationResult,
    RootkitsResult,
    SBOMResult,
    SecretsResult,
    VulnerabilitiesResult,
    VulnerabilitySeverity,
)


class ScanState(str, Enum):
    """Lifecycle state of a target scan or of one of its families."""

    INIT = "INIT"
    ATTACHED = "ATTACHED"
    IN_PROGRESS = "IN_PROGRESS"
    ABORTED = "ABORTED"
    DONE = "DONE"
    NOT_SCANNED = "NOT_SCANNED"


class ScanRelationship(BaseModel):
    id: str


class TargetRelationship(BaseModel):
    id: str


class TargetScanState(BaseModel):
    state: ScanState = ScanState.INIT
    errors: list[str] = Field(default_factory=list)
    last_transition_time: datetime = Field(default_factory=_utc_now)


class TargetScanStatus(BaseModel):
    """Overall and per-family scan status."""

    general: TargetScanState = Field(default_factory=TargetScanState)
    families: dict[FamilyType, TargetScanState] = Field(default_factory=dict)


class ScanFindingsSummary(BaseModel):
    total_packages: int = 0
    total_secrets: int = 0
    total_rootkits: int = 0
    total_malware: int = 0
    total_misconfigurations: int = 0
    total_exploits: int = 0
    total_vulnerabilities: dict[str, int] = Field(
        default_factory=lambda: {s.value: 0 for s in VulnerabilitySeverity}
    )


class TargetScanResult(BaseModel):
    """Scan result of one target within one scan.

    At most one document may exist per (scan.id, target.id) pair.
    """

    id: str | None = None
    revision: int | None = None
    scan: ScanRelationship
    target: TargetRelationship
    status: TargetScanStatus = Field(default_factory=TargetScanStatus)
    summary: ScanFindingsSummary = Field(default_factory=ScanFindingsSummary)
    sboms: SBOMResult | None = None
    vulnerabilities: VulnerabilitiesResult | None = None
    secrets: SecretsResult | None = None
    rootkits: RootkitsResult | None = None
    malware: MalwareResult | None = None
    misconfigurations: MisconfigurationResult | None = None
    exploits: ExploitsResult | None = None

    def refresh_summary(self) -> None:
        """Recompute the findings summary from the stored family results."""
        self.summary = ScanFindingsSummary(
            total_packages=len(self.sboms.packages) if self.sboms else 0,
            total_secrets=len(self.secrets.secrets) if self.secrets else 0,
            total_rootkits=len(self.rootkits.rootkits) if self.rootkits else 0,
            total_malware=len(self.malware.malware) if self.malware else 0,
            total_misconfigurations=(
                len(self.misconfigurations.misconfigurations) if self.misconfigurations else 0
            ),
            total_exploits=len(self.exploits.exploits) if self.exploits else 0,
        )
        if self.vulnerabilities:
            self.summary.total_vulnerabilities = dict(self.vulnerabilities.totals)


# Document field holding each family's result
RESULT_FIELD_BY_FAMILY: dict[FamilyType, str] = {
    FamilyType.SBOM: "sboms",
    FamilyType.VULNERABILITIES: "vulnerabilities",
    FamilyType.SECRETS: "secrets",
    FamilyType.ROOTKITS: "rootkits",
    FamilyType.MALWARE: "malware",
    FamilyType.MISCONFIGURATION: "misconfigurations",
    FamilyType.EXPLOITS: "exploits",
}
