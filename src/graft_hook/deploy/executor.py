"""External command execution without a shell."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

import structlog

from graft_hook.core.exceptions import CommandSpawnError

logger = structlog.get_logger()

# Captured output kept per stream
MAX_OUTPUT_CHARS = 16 * 1024


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one finished (or killed) command."""

    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration: float = 0.0

    @property
    def exit_success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    text = data.decode("utf-8", errors="replace")
    if len(text) > MAX_OUTPUT_CHARS:
        text = "... (output truncated)\n" + text[-MAX_OUTPUT_CHARS:]
    return text


class CommandExecutor:
    """Runs argument vectors via asyncio subprocesses.

    Commands never go through a shell. Secrets must be handed over through
    `env` or `input` (stdin), never through `argv`, which is visible in
    process listings and is logged here.
    """

    def __init__(self, timeout: float = 600.0, kill_grace: float = 5.0):
        self.timeout = timeout
        self.kill_grace = kill_grace

    async def run(
        self,
        cwd: str | Path,
        argv: Sequence[str],
        *,
        env: Optional[Dict[str, str]] = None,
        input: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ExecutionResult:
        """Run `argv` in `cwd` and wait for it.

        Raises:
            CommandSpawnError: the process could not be started.
        """
        if not argv:
            raise ValueError("argv must not be empty")

        limit = timeout if timeout is not None else self.timeout
        full_env = {**os.environ, **env} if env else None
        program = argv[0]

        logger.debug("Starting command", command=list(argv), cwd=str(cwd))
        start_time = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(cwd),
                env=full_env,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            # Missing executable, permission denied or missing working directory
            raise CommandSpawnError(program, exc.strerror or str(exc)) from exc

        stdin_data = input.encode("utf-8") if input is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(stdin_data), timeout=limit)
        except asyncio.TimeoutError:
            await self._kill(process)
            duration = time.monotonic() - start_time
            logger.warning("Command timed out", command=program, cwd=str(cwd), timeout_seconds=limit)
            return ExecutionResult(
                returncode=process.returncode,
                stderr=f"timed out after {limit:g}s",
                timed_out=True,
                duration=duration,
            )

        duration = time.monotonic() - start_time
        result = ExecutionResult(
            returncode=process.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            duration=duration,
        )
        logger.debug(
            "Command finished",
            command=program,
            returncode=result.returncode,
            duration_seconds=round(duration, 3),
        )
        return result

    async def _kill(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            logger.error("Command did not exit after kill", pid=process.pid)
