"""Secrets family: gitleaks over directories and files."""

import json
import logging
import tempfile
from pathlib import Path
from typing import Any

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, InputType, SecretsConfig
from scanplane.models.model_results import Secret, SecretsResult

logger = logging.getLogger(__name__)

_SCANNABLE = {InputType.DIR, InputType.ROOTFS, InputType.FILE}


def parse_gitleaks_report(findings: list[dict[str, Any]]) -> list[Secret]:
    """Convert a gitleaks JSON report into secrets."""
    return [
        Secret(
            description=f.get("Description", ""),
            file_path=f.get("File", ""),
            start_line=f.get("StartLine"),
            end_line=f.get("EndLine"),
            start_column=f.get("StartColumn"),
            end_column=f.get("EndColumn"),
            fingerprint=f.get("Fingerprint", ""),
            rule_id=f.get("RuleID", ""),
        )
        for f in findings
    ]


class SecretsFamily(Family):
    def __init__(self, config: SecretsConfig, runner: ToolRunner | None = None):
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.SECRETS

    async def run(self, ctx: RunContext, results: FamilyResults) -> SecretsResult:
        inputs = [i for i in self.config.inputs if i.input_type in _SCANNABLE]
        if not inputs:
            raise FamilyError("secrets family has no directory or file inputs configured")

        gitleaks = self.config.scanners_config.gitleaks.binary_path
        secrets: list[Secret] = []
        with tempfile.TemporaryDirectory() as tmpdir:
            for idx, inp in enumerate(inputs):
                report_path = Path(tmpdir) / f"gitleaks-{idx}.json"
                logger.info(f"Scanning {inp.input} for secrets")
                cmd = [
                    gitleaks,
                    "detect",
                    "--no-git",
                    "--source",
                    inp.input,
                    "--report-format",
                    "json",
                    "--report-path",
                    str(report_path),
                    "--exit-code",
                    "0",
                ]
                await self.runner.run(ctx, cmd)
                if not report_path.exists():
                    continue
                try:
                    report = json.loads(report_path.read_text(encoding="utf-8") or "[]")
                except json.JSONDecodeError as e:
                    raise FamilyError(f"invalid gitleaks report for {inp.input}: {e}") from e
                secrets.extend(parse_gitleaks_report(report))

        logger.info(f"Secrets scan complete: {len(secrets)} findings")
        return SecretsResult(secrets=secrets)
