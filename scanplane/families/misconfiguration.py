"""Misconfiguration family: Lynis audit of a mounted root filesystem."""

import logging
import tempfile
from pathlib import Path

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, InputType, MisconfigurationConfig
from scanplane.models.model_results import (
    Misconfiguration,
    MisconfigurationResult,
    MisconfigurationSeverity,
)

logger = logging.getLogger(__name__)

_SEVERITY_BY_KEY = {
    "warning[]": MisconfigurationSeverity.HIGH,
    "suggestion[]": MisconfigurationSeverity.LOW,
}


def parse_lynis_report(report: str, scanned_path: str) -> list[Misconfiguration]:
    """Parse a Lynis report file.

    Report lines look like `warning[]=SSH-7408|message|details|solution|`.

    Args:
        report: Report file contents
        scanned_path: Root the audit ran against

    Returns:
        One misconfiguration per warning or suggestion line
    """
    findings = []
    for line in report.splitlines():
        key, sep, value = line.partition("=")
        severity = _SEVERITY_BY_KEY.get(key)
        if not sep or severity is None:
            continue
        fields = value.split("|")
        test_id = fields[0]
        message = fields[1] if len(fields) > 1 else ""
        details = fields[2] if len(fields) > 2 else ""
        solution = fields[3] if len(fields) > 3 else ""
        findings.append(
            Misconfiguration(
                scanner_name="lynis",
                scanned_path=scanned_path,
                test_id=test_id,
                test_category=test_id.split("-", 1)[0],
                test_description=details if details != "-" else "",
                severity=severity,
                message=message,
                remediation=solution if solution != "-" else "",
            )
        )
    return findings


class MisconfigurationFamily(Family):
    def __init__(self, config: MisconfigurationConfig, runner: ToolRunner | None = None):
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.MISCONFIGURATION

    async def run(self, ctx: RunContext, results: FamilyResults) -> MisconfigurationResult:
        roots = [
            i.input
            for i in self.config.inputs
            if i.input_type in (InputType.ROOTFS, InputType.DIR)
        ]
        if not roots:
            raise FamilyError("misconfiguration family has no rootfs inputs configured")

        lynis = self.config.scanners_config.lynis.binary_path
        findings: list[Misconfiguration] = []
        with tempfile.TemporaryDirectory() as tmpdir:
            for idx, root in enumerate(roots):
                report_path = Path(tmpdir) / f"lynis-{idx}.dat"
                logger.info(f"Auditing {root} for misconfigurations")
                cmd = [
                    lynis,
                    "audit",
                    "system",
                    "--quick",
                    "--no-colors",
                    "--rootdir",
                    root,
                    "--report-file",
                    str(report_path),
                ]
                await self.runner.run(ctx, cmd)
                if report_path.exists():
                    findings.extend(
                        parse_lynis_report(report_path.read_text(encoding="utf-8"), root)
                    )

        return MisconfigurationResult(misconfigurations=findings)
