"""Configuration models for scan families."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator

from scanplane.consts import DEFAULT_FAMILY_TOOL_TIMEOUT, EXPLOIT_DB_DEFAULT_URL


class FamilyType(str, Enum):
    """Scan family identifiers.

    Enumeration order is not run order; FamilyManager fixes the run order.
    """

    SBOM = "sbom"
    VULNERABILITIES = "vulnerabilities"
    SECRETS = "secrets"
    ROOTKITS = "rootkits"
    MALWARE = "malware"
    MISCONFIGURATION = "misconfiguration"
    EXPLOITS = "exploits"


class InputType(str, Enum):
    """Kinds of scan inputs."""

    IMAGE = "image"
    DIR = "dir"
    ROOTFS = "rootfs"
    FILE = "file"
    DOCKER_ARCHIVE = "docker-archive"
    CVE = "cve"


class Input(BaseModel):
    """Single scan input (image reference, directory, rootfs, ...)."""

    input: str = Field(description="Image reference, path or CVE id")
    input_type: InputType = Field(description="How to interpret the input")


def _check_scanners(names: list[str], supported: set[str], family: str) -> list[str]:
    unknown = [n for n in names if n not in supported]
    if unknown:
        msg = f"unsupported {family} scanners {unknown}, supported: {sorted(supported)}"
        raise ValueError(msg)
    return names


class BinaryConfig(BaseModel):
    """Location of an external scanner binary."""

    binary_path: str


class FamilyConfig(BaseModel):
    """Settings shared by every family."""

    enabled: bool = Field(default=False, description="Whether the family runs at all")
    inputs: list[Input] = Field(default_factory=list)
    timeout: int = Field(
        default=DEFAULT_FAMILY_TOOL_TIMEOUT, gt=0, description="Seconds per scanner invocation"
    )


class SBOMAnalyzersConfig(BaseModel):
    syft_path: str = "syft"
    output_format: str = "cyclonedx-json"


class SBOMConfig(FamilyConfig):
    analyzers_list: list[str] = Field(default_factory=lambda: ["syft"])
    analyzers_config: SBOMAnalyzersConfig = Field(default_factory=SBOMAnalyzersConfig)

    @field_validator("analyzers_list")
    @classmethod
    def known_analyzers(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"syft"}, "sbom")


class VulnerabilitiesScannersConfig(BaseModel):
    grype_path: str = "grype"


class VulnerabilitiesConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["grype"])
    input_from_sbom: bool = Field(
        default=False, description="Scan the SBOM family's output instead of the inputs"
    )
    scanners_config: VulnerabilitiesScannersConfig = Field(
        default_factory=VulnerabilitiesScannersConfig
    )

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"grype"}, "vulnerabilities")


class SecretsScannersConfig(BaseModel):
    gitleaks: BinaryConfig = Field(default_factory=lambda: BinaryConfig(binary_path="gitleaks"))


class SecretsConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["gitleaks"])
    scanners_config: SecretsScannersConfig = Field(default_factory=SecretsScannersConfig)

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"gitleaks"}, "secrets")


class RootkitsScannersConfig(BaseModel):
    chkrootkit: BinaryConfig = Field(
        default_factory=lambda: BinaryConfig(binary_path="chkrootkit")
    )


class RootkitsConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["chkrootkit"])
    scanners_config: RootkitsScannersConfig = Field(default_factory=RootkitsScannersConfig)

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"chkrootkit"}, "rootkits")


class ClamConfig(BaseModel):
    clamscan_binary_path: str = "clamscan"


class MalwareScannersConfig(BaseModel):
    clam: ClamConfig = Field(default_factory=ClamConfig)


class MalwareConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["clam"])
    scanners_config: MalwareScannersConfig = Field(default_factory=MalwareScannersConfig)

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"clam"}, "malware")


class MisconfigurationScannersConfig(BaseModel):
    lynis: BinaryConfig = Field(default_factory=lambda: BinaryConfig(binary_path="lynis"))


class MisconfigurationConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["lynis"])
    scanners_config: MisconfigurationScannersConfig = Field(
        default_factory=MisconfigurationScannersConfig
    )

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"lynis"}, "misconfiguration")


class ExploitDBConfig(BaseModel):
    base_url: str = EXPLOIT_DB_DEFAULT_URL


class ExploitsScannersConfig(BaseModel):
    exploit_db: ExploitDBConfig = Field(default_factory=ExploitDBConfig)


class ExploitsConfig(FamilyConfig):
    scanners_list: list[str] = Field(default_factory=lambda: ["exploitdb"])
    input_from_vuln: bool = Field(
        default=False, description="Look up exploits for the vulnerabilities family's CVEs"
    )
    scanners_config: ExploitsScannersConfig = Field(default_factory=ExploitsScannersConfig)

    @field_validator("scanners_list")
    @classmethod
    def known_scanners(cls, v: list[str]) -> list[str]:
        return _check_scanners(v, {"exploitdb"}, "exploits")


class FamiliesConfig(BaseModel):
    """Per-family enable flags and parameters for one target scan."""

    sbom: SBOMConfig = Field(default_factory=SBOMConfig)
    vulnerabilities: VulnerabilitiesConfig = Field(default_factory=VulnerabilitiesConfig)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    rootkits: RootkitsConfig = Field(default_factory=RootkitsConfig)
    malware: MalwareConfig = Field(default_factory=MalwareConfig)
    misconfiguration: MisconfigurationConfig = Field(default_factory=MisconfigurationConfig)
    exploits: ExploitsConfig = Field(default_factory=ExploitsConfig)

    def enabled_families(self) -> list[FamilyType]:
        """Family types with enabled=True, in declaration order."""
        return [ft for ft in FamilyType if getattr(self, ft.value).enabled]
