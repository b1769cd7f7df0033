"""Typed results produced by scan families."""

from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field, computed_field

from scanplane.models.model_families import FamilyType


class VulnerabilitySeverity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    NEGLIGIBLE = "NEGLIGIBLE"


class MisconfigurationSeverity(str, Enum):
    HIGH = "HighSeverity"
    MEDIUM = "MediumSeverity"
    LOW = "LowSeverity"


class FamilyResultBase(BaseModel):
    """Base class for typed family results.

    Subclasses pin `family_type` so the results store can key them.
    """

    family_type: ClassVar[FamilyType]


class Package(BaseModel):
    """Package found by an SBOM analyzer."""

    name: str
    version: str = ""
    type: str = ""
    language: str = ""
    purl: str = ""
    cpes: list[str] = Field(default_factory=list)
    licenses: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        """Identity used to merge packages across inputs."""
        return self.purl or f"{self.name}@{self.version}"


class SBOMResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.SBOM

    packages: list[Package] = Field(default_factory=list)
    sbom: dict[str, Any] = Field(
        default_factory=dict, description="Merged CycloneDX document"
    )
    analyzers: list[str] = Field(default_factory=list)


class Vulnerability(BaseModel):
    vulnerability_id: str
    severity: VulnerabilitySeverity = VulnerabilitySeverity.NEGLIGIBLE
    description: str = ""
    package_name: str = ""
    package_version: str = ""
    fix_versions: list[str] = Field(default_factory=list)
    fix_state: str = ""
    links: list[str] = Field(default_factory=list)


class VulnerabilitiesResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.VULNERABILITIES

    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    source: str = Field(default="inputs", description="'sbom' or 'inputs'")

    @computed_field
    @property
    def totals(self) -> dict[str, int]:
        """Vulnerability counts per severity."""
        counts = {s.value: 0 for s in VulnerabilitySeverity}
        for vuln in self.vulnerabilities:
            counts[vuln.severity.value] += 1
        return counts

    def cve_ids(self) -> list[str]:
        """Distinct CVE identifiers, in first-seen order."""
        seen: dict[str, None] = {}
        for vuln in self.vulnerabilities:
            if vuln.vulnerability_id.upper().startswith("CVE-"):
                seen.setdefault(vuln.vulnerability_id, None)
        return list(seen)


class Secret(BaseModel):
    description: str = ""
    file_path: str = ""
    start_line: int | None = None
    end_line: int | None = None
    start_column: int | None = None
    end_column: int | None = None
    fingerprint: str = ""
    rule_id: str = ""


class SecretsResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.SECRETS

    secrets: list[Secret] = Field(default_factory=list)


class Rootkit(BaseModel):
    rootkit_name: str
    rootkit_type: str = ""
    message: str = ""


class RootkitsResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.ROOTKITS

    rootkits: list[Rootkit] = Field(default_factory=list)


class Malware(BaseModel):
    malware_name: str
    malware_type: str = ""
    path: str = ""


class MalwareResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.MALWARE

    malware: list[Malware] = Field(default_factory=list)
    scanned_paths: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def infected_files(self) -> int:
        return len({m.path for m in self.malware})


class Misconfiguration(BaseModel):
    scanner_name: str
    scanned_path: str = ""
    test_id: str = ""
    test_category: str = ""
    test_description: str = ""
    severity: MisconfigurationSeverity = MisconfigurationSeverity.LOW
    message: str = ""
    remediation: str = ""


class MisconfigurationResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.MISCONFIGURATION

    misconfigurations: list[Misconfiguration] = Field(default_factory=list)


class Exploit(BaseModel):
    cve_id: str
    name: str = ""
    title: str = ""
    description: str = ""
    urls: list[str] = Field(default_factory=list)
    source_db: str = ""


class ExploitsResult(FamilyResultBase):
    family_type: ClassVar[FamilyType] = FamilyType.EXPLOITS

    exploits: list[Exploit] = Field(default_factory=list)
