"""Async subprocess execution shared by the git, tmux and assistant adapters.

Runs a command with asyncio so the event loop keeps serving other
callers while git or tmux work, captures output, and turns non-zero
exits, timeouts and missing executables into CommandError.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union

from src.workhub.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result of a finished subprocess.

    Attributes:
        exit_code: Process exit code.
        stdout: Captured standard output (decoded, not stripped).
        stderr: Captured standard error (decoded, not stripped).
    """

    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


async def run_command(
    args: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
    timeout: Optional[float] = None,
    check: bool = True,
) -> CommandResult:
    """Run a command and capture its output.

    Args:
        args: Executable and arguments; no shell is involved.
        cwd: Working directory for the command.
        timeout: Seconds before the process is killed. None waits forever.
        check: Raise CommandError on a non-zero exit code.

    Returns:
        CommandResult with exit code and decoded output.

    Raises:
        CommandError: If the command cannot start, times out, or exits
            non-zero while ``check`` is set.
    """
    argv = [str(arg) for arg in args]
    logger.debug(
        "Running command",
        extra={"command": argv[:3], "cwd": str(cwd) if cwd else None},
    )

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CommandError(argv, f"failed to execute: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        _kill_quietly(process)
        await process.wait()
        raise CommandError(argv, f"timed out after {timeout}s") from exc

    result = CommandResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )

    if check and not result.ok:
        raise CommandError(
            argv,
            result.stderr.strip() or f"exited with code {result.exit_code}",
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
    return result


def _kill_quietly(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
