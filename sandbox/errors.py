"""Typed error hierarchy for sandbox orchestration.

Remote unavailability, timeouts, capability failures and checkpoint failures
each get their own branch so callers can decide what is recoverable.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base error for all sandbox orchestration errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SandboxNotFoundError(SandboxError):
    """The remote sandbox does not exist (or no longer exists)."""

    def __init__(self, sandbox_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Sandbox not found: {sandbox_id}")
        self.sandbox_id = sandbox_id


class ProcessNotFoundError(SandboxError):
    """A named process is not (yet) registered inside the sandbox."""

    def __init__(self, process_name: str) -> None:
        super().__init__(f"Process not found: {process_name}")
        self.process_name = process_name


class SandboxTimeoutError(SandboxError):
    """An operation exceeded its configured upper bound."""

    def __init__(self, message: str, *, timeout: float | None = None) -> None:
        super().__init__(message)
        self.timeout = timeout


class ProcessTimeoutError(SandboxTimeoutError):
    """A remote process did not reach a terminal state in time."""

    def __init__(self, process_name: str, *, timeout: float | None = None, attempts: int | None = None) -> None:
        if attempts is not None:
            message = f"{process_name} process timed out after {attempts} attempts"
        else:
            message = f"{process_name} process timed out"
        super().__init__(message, timeout=timeout)
        self.process_name = process_name
        self.attempts = attempts


class GenerationTimeoutError(SandboxTimeoutError):
    """The generation step loop exceeded its overall bound."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Generation timed out after {timeout:g}s", timeout=timeout)


class CapabilityError(SandboxError):
    """The AI capability (model call or tool execution) failed."""


class CheckpointError(SandboxError):
    """Writing the session state document failed."""
