"""Vulnerabilities family: grype against inputs or the SBOM result."""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.sbom import anchore_source
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, VulnerabilitiesConfig
from scanplane.models.model_results import (
    SBOMResult,
    VulnerabilitiesResult,
    Vulnerability,
    VulnerabilitySeverity,
)

logger = logging.getLogger(__name__)


def _severity(value: str) -> VulnerabilitySeverity:
    try:
        return VulnerabilitySeverity(value.upper())
    except ValueError:
        # grype reports "Unknown" for unscored vulnerabilities
        return VulnerabilitySeverity.NEGLIGIBLE


def parse_grype_output(data: dict[str, Any]) -> list[Vulnerability]:
    """Parse grype JSON output into vulnerabilities.

    Args:
        data: Parsed `grype -o json` document

    Returns:
        Vulnerabilities, one per (id, package, version) match
    """
    vulnerabilities = []
    for match in data.get("matches", []):
        vuln = match.get("vulnerability", {})
        artifact = match.get("artifact", {})
        fix = vuln.get("fix", {})
        vulnerabilities.append(
            Vulnerability(
                vulnerability_id=vuln.get("id", ""),
                severity=_severity(vuln.get("severity", "")),
                description=vuln.get("description", ""),
                package_name=artifact.get("name", ""),
                package_version=artifact.get("version", ""),
                fix_versions=fix.get("versions", []),
                fix_state=fix.get("state", ""),
                links=vuln.get("urls", []),
            )
        )
    return vulnerabilities


class VulnerabilitiesFamily(Family):
    """Scans for known vulnerabilities with grype."""

    def __init__(self, config: VulnerabilitiesConfig, runner: ToolRunner | None = None):
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.VULNERABILITIES

    async def run(self, ctx: RunContext, results: FamilyResults) -> VulnerabilitiesResult:
        if self.config.input_from_sbom:
            sbom = results.get_results(SBOMResult)
            if sbom is not None:
                vulnerabilities = await self._scan_sbom(ctx, sbom)
                return VulnerabilitiesResult(
                    vulnerabilities=_dedupe(vulnerabilities), source="sbom"
                )
            logger.warning("SBOM results not available, scanning configured inputs instead")

        if not self.config.inputs:
            raise FamilyError("vulnerabilities family has no inputs configured")

        vulnerabilities = []
        for inp in self.config.inputs:
            vulnerabilities.extend(await self._scan(ctx, anchore_source(inp)))
        return VulnerabilitiesResult(vulnerabilities=_dedupe(vulnerabilities), source="inputs")

    async def _scan_sbom(self, ctx: RunContext, sbom: SBOMResult) -> list[Vulnerability]:
        with tempfile.TemporaryDirectory() as tmpdir:
            sbom_path = Path(tmpdir) / "sbom.cdx.json"
            sbom_path.write_text(json.dumps(sbom.sbom), encoding="utf-8")
            return await self._scan(ctx, f"sbom:{sbom_path}")

    async def _scan(self, ctx: RunContext, source: str) -> list[Vulnerability]:
        grype = self.config.scanners_config.grype_path
        logger.info(f"Scanning {source} for vulnerabilities")
        output = await self.runner.run(ctx, [grype, source, "-o", "json", "-q"])
        try:
            data = json.loads(output.stdout)
        except json.JSONDecodeError as e:
            raise FamilyError(f"invalid grype output for {source}: {e}") from e
        vulnerabilities = parse_grype_output(data)
        logger.debug(f"{source}: {len(vulnerabilities)} vulnerabilities")
        return vulnerabilities


def _dedupe(vulnerabilities: list[Vulnerability]) -> list[Vulnerability]:
    seen: dict[tuple[str, str, str], Vulnerability] = {}
    for vuln in vulnerabilities:
        key = (vuln.vulnerability_id, vuln.package_name, vuln.package_version)
        seen.setdefault(key, vuln)
    return list(seen.values())
