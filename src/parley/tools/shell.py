"""Async subprocess helper shared by tools and context hooks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    args: list[str] | str,
    *,
    cwd: str | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> CommandOutput:
    """Run ``args`` (argv list, or a shell string) and capture its output.

    Raises ``FileNotFoundError`` if the executable is missing and
    ``asyncio.TimeoutError`` if it runs past ``timeout``.
    """
    if isinstance(args, str):
        logger.debug("Running shell: %s", args[:200])
        proc = await asyncio.create_subprocess_shell(
            args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    else:
        logger.debug("Running: %s", " ".join(args))
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise

    return CommandOutput(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
