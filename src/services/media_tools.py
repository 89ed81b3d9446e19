"""Async runner for external media tools (ffmpeg, ffprobe).

Every invocation is a child process with a hard timeout. On timeout or
cancellation the child is killed and reaped before the error propagates, so
no stray encoder outlives the run that started it.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of a finished child process."""

    args: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessTimeout(Exception):
    """The child process exceeded its timeout and was killed."""

    def __init__(self, args: list[str], timeout: float):
        super().__init__(f"{args[0]} timed out after {timeout:.0f}s")
        self.args_list = args
        self.timeout = timeout


class ProcessRunner:
    """Runs command lines as awaitable child processes."""

    def is_available(self, program: str) -> bool:
        """True if ``program`` resolves to an executable."""
        return shutil.which(program) is not None

    async def run(self, args: list[str], timeout: float, cwd: Path | None = None) -> ProcessResult:
        """Run ``args`` to completion, optionally from working directory ``cwd``.

        Raises:
            FileNotFoundError: If the executable does not exist
            ProcessTimeout: If the process ran longer than ``timeout`` seconds
        """
        logger.debug(f"Running: {' '.join(args)}")
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise ProcessTimeout(args, timeout) from None
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        return ProcessResult(
            args=list(args),
            returncode=proc.returncode,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                return
            await proc.wait()
            logger.warning(f"Killed child process {proc.pid}")
