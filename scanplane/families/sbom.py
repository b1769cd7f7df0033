"""SBOM family: software bill of materials via syft."""

import json
import logging
from typing import Any

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, Input, InputType, SBOMConfig
from scanplane.models.model_results import Package, SBOMResult

logger = logging.getLogger(__name__)

# Source scheme understood by syft and grype for each input type
_SOURCE_SCHEMES: dict[InputType, str] = {
    InputType.DIR: "dir",
    InputType.ROOTFS: "dir",
    InputType.FILE: "file",
    InputType.DOCKER_ARCHIVE: "docker-archive",
}


def anchore_source(inp: Input) -> str:
    """Build a syft/grype source argument for an input.

    Args:
        inp: Scan input

    Returns:
        Source string, e.g. "dir:/mnt/snapshot" or a bare image reference
    """
    if inp.input_type == InputType.IMAGE:
        return inp.input
    scheme = _SOURCE_SCHEMES.get(inp.input_type)
    if scheme is None:
        msg = f"input type {inp.input_type.value} cannot be scanned by syft/grype"
        raise FamilyError(msg, details={"input": inp.input})
    return f"{scheme}:{inp.input}"


def _component_key(component: dict[str, Any]) -> str:
    return component.get("purl") or f"{component.get('name', '')}@{component.get('version', '')}"


def _component_licenses(component: dict[str, Any]) -> list[str]:
    licenses = []
    for entry in component.get("licenses", []):
        if "expression" in entry:
            licenses.append(entry["expression"])
            continue
        lic = entry.get("license", {})
        name = lic.get("id") or lic.get("name")
        if name:
            licenses.append(name)
    return licenses


def _component_language(component: dict[str, Any]) -> str:
    for prop in component.get("properties", []):
        if prop.get("name") == "syft:package:language":
            return prop.get("value", "")
    return ""


def component_to_package(component: dict[str, Any]) -> Package:
    """Convert a CycloneDX component to a Package."""
    cpes = [component["cpe"]] if component.get("cpe") else []
    return Package(
        name=component.get("name", ""),
        version=component.get("version", ""),
        type=component.get("type", ""),
        language=_component_language(component),
        purl=component.get("purl", ""),
        cpes=cpes,
        licenses=_component_licenses(component),
    )


def merge_cyclonedx(documents: list[dict[str, Any]]) -> dict[str, Any]:
    """Merge CycloneDX documents, deduplicating components.

    Components are keyed by purl, falling back to name@version; the first
    occurrence wins.

    Args:
        documents: Parsed CycloneDX JSON documents

    Returns:
        Single CycloneDX document holding every distinct component
    """
    merged: dict[str, dict[str, Any]] = {}
    for doc in documents:
        for component in doc.get("components", []):
            merged.setdefault(_component_key(component), component)

    spec_version = documents[0].get("specVersion", "1.4") if documents else "1.4"
    return {
        "bomFormat": "CycloneDX",
        "specVersion": spec_version,
        "version": 1,
        "components": list(merged.values()),
    }


class SBOMFamily(Family):
    """Generates a merged SBOM for all configured inputs."""

    def __init__(self, config: SBOMConfig, runner: ToolRunner | None = None):
        """Initialize SBOMFamily.

        Args:
            config: SBOM family configuration
            runner: Tool runner (default: one using the family timeout)
        """
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.SBOM

    async def run(self, ctx: RunContext, results: FamilyResults) -> SBOMResult:
        if not self.config.inputs:
            raise FamilyError("sbom family has no inputs configured")

        syft = self.config.analyzers_config.syft_path
        output_format = self.config.analyzers_config.output_format
        documents = []
        for inp in self.config.inputs:
            source = anchore_source(inp)
            logger.info(f"Generating SBOM for {source}")
            output = await self.runner.run(ctx, [syft, source, "-o", output_format, "-q"])
            try:
                documents.append(json.loads(output.stdout))
            except json.JSONDecodeError as e:
                raise FamilyError(f"invalid syft output for {source}: {e}") from e

        sbom = merge_cyclonedx(documents)
        packages = [component_to_package(c) for c in sbom["components"]]
        logger.info(f"SBOM complete: {len(packages)} packages from {len(documents)} inputs")
        return SBOMResult(packages=packages, sbom=sbom, analyzers=self.config.analyzers_list)
