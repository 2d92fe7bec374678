"""
Process execution for the cost tool.

Every tool call goes through a runner with the signature::

    await runner.run(command, args, silent=True, ignore_return_code=True) -> ExecOutput

so tests can substitute a scripted runner without spawning processes.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0
OUTPUT_LOG_LIMIT = 2000


@dataclass(frozen=True)
class ExecOutput:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Runner(Protocol):
    async def run(
        self,
        command: str,
        args: List[str],
        silent: bool = True,
        ignore_return_code: bool = True,
    ) -> ExecOutput:
        ...


class ProcessRunner:
    """
    Runs a command in a subprocess and captures its output.

    A timed-out process is killed and reported with exit code -1. A missing
    executable raises FileNotFoundError.
    """

    def __init__(self, timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.timeout = timeout

    async def run(
        self,
        command: str,
        args: List[str],
        silent: bool = True,
        ignore_return_code: bool = True,
    ) -> ExecOutput:
        cmd_str = " ".join([command, *args])
        logger.debug(f"Running: {cmd_str}")

        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ExecOutput(exit_code=-1, stderr=f"Command timed out after {self.timeout}s")

        result = ExecOutput(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=out.decode("utf-8", errors="replace"),
            stderr=err.decode("utf-8", errors="replace"),
        )

        if not silent:
            logger.info(f"{cmd_str} exited with {result.exit_code}")
            if result.stdout:
                logger.info(result.stdout[:OUTPUT_LOG_LIMIT])
            if result.stderr:
                logger.info(result.stderr[:OUTPUT_LOG_LIMIT])

        if result.exit_code != 0 and not ignore_return_code:
            raise RuntimeError(
                f"{cmd_str} failed with exit code {result.exit_code}: {result.stderr[:OUTPUT_LOG_LIMIT]}"
            )
        return result
