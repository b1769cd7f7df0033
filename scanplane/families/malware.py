"""Malware family: ClamAV scan of files and directories."""

import logging
import re

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, InputType, MalwareConfig
from scanplane.models.model_results import Malware, MalwareResult

logger = logging.getLogger(__name__)

_FOUND_LINE = re.compile(r"^(?P<path>.+): (?P<signature>\S+) FOUND$")

# clamscan: 0 = clean, 1 = virus found, 2 = error
CLAMSCAN_OK_CODES = (0, 1)


def _malware_type(signature: str) -> str:
    # Signatures are Platform.Category.Name[-Rev]
    parts = signature.split(".")
    return parts[1] if len(parts) >= 3 else ""


def parse_clamscan_output(output: str) -> list[Malware]:
    """Parse `clamscan -i --no-summary` output into findings."""
    found = []
    for line in output.splitlines():
        match = _FOUND_LINE.match(line.strip())
        if not match:
            continue
        signature = match.group("signature")
        found.append(
            Malware(
                malware_name=signature,
                malware_type=_malware_type(signature),
                path=match.group("path"),
            )
        )
    return found


class MalwareFamily(Family):
    def __init__(self, config: MalwareConfig, runner: ToolRunner | None = None):
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.MALWARE

    async def run(self, ctx: RunContext, results: FamilyResults) -> MalwareResult:
        paths = [
            i.input
            for i in self.config.inputs
            if i.input_type in (InputType.DIR, InputType.ROOTFS, InputType.FILE)
        ]
        if not paths:
            raise FamilyError("malware family has no directory or file inputs configured")

        clamscan = self.config.scanners_config.clam.clamscan_binary_path
        malware: list[Malware] = []
        for path in paths:
            logger.info(f"Scanning {path} for malware")
            output = await self.runner.run(
                ctx,
                [clamscan, "-r", "-i", "--no-summary", path],
                ok_codes=CLAMSCAN_OK_CODES,
            )
            malware.extend(parse_clamscan_output(output.stdout))

        if malware:
            logger.warning(f"Malware scan found {len(malware)} infections")
        return MalwareResult(malware=malware, scanned_paths=paths)
