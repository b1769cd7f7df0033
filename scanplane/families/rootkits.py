"""Rootkits family: chkrootkit against a mounted root filesystem."""

import logging
import re

from scanplane.context import RunContext
from scanplane.errors import FamilyError
from scanplane.families.base import Family
from scanplane.families.results import FamilyResults
from scanplane.families.tool_runner import ToolRunner
from scanplane.models.model_families import FamilyType, InputType, RootkitsConfig
from scanplane.models.model_results import Rootkit, RootkitsResult

logger = logging.getLogger(__name__)

# "Checking `amd'... INFECTED" / "Searching for Suckit rootkit... Warning: ... INFECTED"
_CHECK_LINE = re.compile(
    r"^(?:Checking `(?P<check>[^']+)'|Searching for (?P<search>.+?))\.\.\.\s*(?P<status>.*)$"
)


def parse_chkrootkit_output(output: str) -> list[Rootkit]:
    """Extract INFECTED findings from chkrootkit output."""
    rootkits = []
    for line in output.splitlines():
        match = _CHECK_LINE.match(line.strip())
        if not match or "INFECTED" not in match.group("status"):
            continue
        rootkits.append(
            Rootkit(
                rootkit_name=match.group("check") or match.group("search"),
                rootkit_type="chkrootkit",
                message=match.group("status").strip(),
            )
        )
    return rootkits


class RootkitsFamily(Family):
    def __init__(self, config: RootkitsConfig, runner: ToolRunner | None = None):
        self.config = config
        self.runner = runner or ToolRunner(timeout=config.timeout)

    def get_type(self) -> FamilyType:
        return FamilyType.ROOTKITS

    async def run(self, ctx: RunContext, results: FamilyResults) -> RootkitsResult:
        roots = [
            i.input
            for i in self.config.inputs
            if i.input_type in (InputType.ROOTFS, InputType.DIR)
        ]
        if not roots:
            raise FamilyError("rootkits family has no rootfs inputs configured")

        chkrootkit = self.config.scanners_config.chkrootkit.binary_path
        rootkits: list[Rootkit] = []
        for root in roots:
            logger.info(f"Checking {root} for rootkits")
            output = await self.runner.run(ctx, [chkrootkit, "-r", root])
            rootkits.extend(parse_chkrootkit_output(output.stdout))

        return RootkitsResult(rootkits=rootkits)
