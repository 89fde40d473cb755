"""
Exception hierarchy for the bridge test-network harness.

The harness distinguishes a small, closed set of failure kinds:

- Configuration errors: a template, schema field or live value is missing or malformed.
  Never retried.
- Transient errors: a readiness condition did not hold within the poll budget.
- Subprocess errors: an external tool (docker, kubectl, helm, ...) exited non-zero.
- Bootstrap errors: a stage of the cross-chain bootstrap aborted.

Event timeouts are not errors. They are reported as an unmatched outcome.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any


class BridgenetError(Exception):
    """
    Base exception for all harness errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigError(BridgenetError):
    """
    Raised when configuration is missing or malformed.

    Attributes:
        path: The offending file, if the error is tied to one.
        field: The offending field, if the error is tied to one.
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        field: str | None = None,
    ) -> None:
        self.path = Path(path) if path is not None else None
        self.field = field

        if self.path is not None:
            message = f"{message} ({self.path})"
        super().__init__(message)


class TemplateNotFoundError(ConfigError):
    """Raised when a relay config template does not exist on disk."""

    def __init__(self, path: Path | str) -> None:
        super().__init__("Relay config template not found", path=path)


class SchemaViolationError(ConfigError):
    """
    Raised when a document does not match its expected schema.

    Attributes:
        schema: Name of the schema the document was validated against.
        errors: Flattened validation errors as (location, message) pairs.
    """

    def __init__(
        self,
        schema: str,
        errors: Sequence[tuple[str, str]],
        *,
        path: Path | str | None = None,
    ) -> None:
        self.schema = schema
        self.errors = list(errors)

        details = "; ".join(f"{loc}: {msg}" for loc, msg in self.errors[:5])
        if len(self.errors) > 5:
            details = f"{details}; ... {len(self.errors) - 5} more"

        first_field = self.errors[0][0] if self.errors else None
        super().__init__(f"Invalid {schema}: {details}", path=path, field=first_field)


class MissingLiveValueError(ConfigError):
    """Raised when a relayer kind needs a live network value that was not provided."""

    def __init__(self, field: str, kind: str) -> None:
        self.kind = kind
        super().__init__(f"{kind} relayer requires live value '{field}'", field=field)


class NotFoundError(BridgenetError, LookupError):
    """
    Raised when a registry lookup misses.

    Attributes:
        kind: What was being looked up (e.g. "container", "port").
        name: The name that was not found.
    """

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name!r} not found")


class UnsetEndpointError(BridgenetError, RuntimeError):
    """Raised when a write-once registry value is read before it was written."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"{name} has not been set for this network run")


class TransientError(BridgenetError):
    """
    Raised when a readiness condition is still false after the poll budget.

    Attributes:
        attempts: Number of predicate evaluations performed.
        last_error: The error raised by the final evaluation, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: BaseException | None = None,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error

        if last_error is not None:
            message = f"{message} after {attempts} attempts: {last_error!r}"
        else:
            message = f"{message} after {attempts} attempts"
        super().__init__(message)


class ChainConnectionError(BridgenetError):
    """
    Raised when a chain node cannot be reached.

    Attributes:
        url: The endpoint that was dialled.
    """

    def __init__(self, url: str, reason: BaseException) -> None:
        self.url = url
        super().__init__(f"Could not connect to {url}: {reason}")


class PollCancelledError(BridgenetError):
    """Raised when a poll is cancelled through its cancellation event."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Poll cancelled after {attempts} attempts")


class SubprocessError(BridgenetError):
    """
    Raised when an external command exits with a non-zero status.

    Attributes:
        command: The executable that was invoked.
        args: Arguments passed to the executable.
        exit_code: Process exit status.
        stdout: Captured standard output.
        stderr: Captured standard error, verbatim.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        exit_code: int,
        *,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = command
        self.args_ = list(args)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr

        msg = f"{command} exited with status {exit_code}"
        if stderr.strip():
            msg = f"{msg}:\n{stderr.rstrip()}"
        super().__init__(msg)


class BootstrapError(BridgenetError):
    """
    Raised when the cross-chain bootstrap aborts.

    Attributes:
        stage: Name of the stage that failed.
        status: Chain-reported result status for a failed extrinsic, if any.
    """

    def __init__(self, stage: str, message: str, *, status: Any = None) -> None:
        self.stage = stage
        self.status = status

        msg = f"[{stage}] {message}"
        if status is not None:
            msg = f"{msg} (status: {status!r})"
        super().__init__(msg)
