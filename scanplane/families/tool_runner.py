"""Async runner for external scanner CLIs (syft, grype, gitleaks, ...)."""

import asyncio
import contextlib
import logging
import shutil
import time
from collections.abc import Iterable
from dataclasses import dataclass

from scanplane.consts import DEFAULT_FAMILY_TOOL_TIMEOUT, TOOL_STDERR_LOG_LIMIT
from scanplane.context import RunContext
from scanplane.errors import FamilyAbortedError, ToolExecutionError, ToolNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class ToolOutput:
    """Captured output of one tool invocation."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float


class ToolRunner:
    """Runs scanner binaries as subprocesses with a timeout.

    The process is killed when the timeout expires, when the run context is
    cancelled, or when the awaiting task itself is cancelled.
    """

    def __init__(self, timeout: int = DEFAULT_FAMILY_TOOL_TIMEOUT):
        """Initialize ToolRunner.

        Args:
            timeout: Default per-invocation timeout in seconds (default: 600)
        """
        self.timeout = timeout

    def is_installed(self, binary: str) -> bool:
        """Check if a binary is installed and accessible.

        Returns:
            True if the binary is on PATH (or is an existing executable path)
        """
        return shutil.which(binary) is not None

    async def run(
        self,
        ctx: RunContext,
        cmd: list[str],
        ok_codes: Iterable[int] = (0,),
        timeout: int | None = None,
    ) -> ToolOutput:
        """Run a command and capture its output.

        Args:
            ctx: Run context; cancelling it kills the process
            cmd: Command line, binary first
            ok_codes: Exit codes that count as success
            timeout: Override of the default timeout in seconds

        Returns:
            ToolOutput with decoded stdout/stderr

        Raises:
            FamilyAbortedError: Context was cancelled before or during the run
            ToolNotFoundError: Binary does not exist
            ToolExecutionError: Timeout or exit code outside ok_codes
        """
        if ctx.cancelled:
            raise FamilyAbortedError(f"not running {cmd[0]}: {ctx.reason}")

        limit = timeout or self.timeout
        start_time = time.time()
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(
                f"{cmd[0]} is not installed", details={"command": cmd}
            ) from e

        communicate = asyncio.ensure_future(process.communicate())
        cancelled = asyncio.ensure_future(ctx.wait())
        try:
            done, _ = await asyncio.wait(
                {communicate, cancelled},
                timeout=limit,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            await self._kill(process, communicate)
            raise
        finally:
            cancelled.cancel()

        if communicate not in done:
            await self._kill(process, communicate)
            if ctx.cancelled:
                raise FamilyAbortedError(f"{cmd[0]} aborted: {ctx.reason}")
            raise ToolExecutionError(
                f"{cmd[0]} timed out after {limit}s", details={"command": cmd}
            )

        stdout, stderr = communicate.result()
        output = ToolOutput(
            command=cmd,
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            duration_seconds=time.time() - start_time,
        )

        if output.returncode not in set(ok_codes):
            raise ToolExecutionError(
                f"{cmd[0]} error (code {output.returncode}): "
                f"{output.stderr[:TOOL_STDERR_LOG_LIMIT]}",
                details={"command": cmd, "returncode": output.returncode},
            )

        logger.debug(f"{cmd[0]} finished in {output.duration_seconds:.1f}s")
        return output

    async def _kill(self, process: asyncio.subprocess.Process, communicate: asyncio.Future) -> None:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        # Pipes close once the process is gone, so communicate() completes
        await asyncio.gather(communicate, return_exceptions=True)
        await process.wait()
