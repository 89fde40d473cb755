"""
External command execution.

Every container, cluster and contract tool (docker, kubectl, helm, forge, cast)
is an opaque executable: invoked by path and arguments, observed through its
exit status and captured output.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from .errors import ConfigError, SubprocessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Captured outcome of an external command."""

    command: str
    """Executable that was run."""

    args: tuple[str, ...]
    """Arguments passed to the executable."""

    exit_code: int
    """Process exit status."""

    stdout: str
    """Captured standard output."""

    stderr: str
    """Captured standard error."""

    @property
    def ok(self) -> bool:
        """True if the command exited with status 0."""
        return self.exit_code == 0

    def check(self) -> CommandResult:
        """
        Return self if the command succeeded.

        Raises:
            SubprocessError: If the exit status is non-zero. Carries stderr verbatim.
        """
        if not self.ok:
            raise SubprocessError(
                self.command,
                self.args,
                self.exit_code,
                stdout=self.stdout,
                stderr=self.stderr,
            )
        return self


class CommandRunner(Protocol):
    """Anything that can run an external command and capture its result."""

    async def __call__(
        self,
        command: str,
        args: Sequence[str],
        *,
        timeout: float | None = None,
    ) -> CommandResult: ...


async def run_command(
    command: str,
    args: Sequence[str],
    *,
    timeout: float | None = None,
) -> CommandResult:
    """
    Run an external command to completion and capture its output.

    The command is not preempted from inside the harness.
    Pass `timeout` to bound it; on expiry the process is killed.

    Args:
        command: Executable name or path.
        args: Arguments to pass.
        timeout: Optional limit in seconds.

    Returns:
        Captured result. Non-zero exits are returned, not raised; call `check()`.

    Raises:
        ConfigError: If the executable is not installed.
        TimeoutError: If `timeout` expired before the process exited.
    """
    argv = [command, *args]
    logger.debug("Running command: %s", shlex.join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise ConfigError(f"Required command {command!r} is not installed", field=command) from exc

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except TimeoutError:
        proc.kill()
        await proc.wait()
        raise

    result = CommandResult(
        command=command,
        args=tuple(args),
        exit_code=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )

    if result.stdout.strip():
        logger.debug("Command stdout: %s", result.stdout.strip())
    if not result.ok:
        logger.debug("Command %s exited %d: %s", command, result.exit_code, result.stderr.strip())
    return result
