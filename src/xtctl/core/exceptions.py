"""Custom exceptions for xtctl.

All exceptions provide:
- Clear error messages
- Optional hints for resolution
- Optional details for debugging
- Exit codes for proper shell integration
"""

from pathlib import Path
from typing import Optional


class XTError(Exception):
    """Base exception for all xtctl errors.

    Attributes:
        message: Human-readable error description
        hint: Suggested action to resolve the error
        details: Additional context for debugging
        exit_code: Shell exit code (1-127)
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or []

    def __str__(self) -> str:
        return self.message


class ConfigurationError(XTError):
    """Configuration file or settings errors.

    Raised when:
    - Config file unreadable
    - Invalid YAML syntax
    - Invalid configuration values
    """
    exit_code = 2


class PrerequisiteError(XTError):
    """Missing prerequisites.

    Raised when:
    - iptables/ip6tables binary not found on PATH
    - Configured binary path does not exist
    """
    exit_code = 6


class ProcessSpawnError(XTError):
    """The tool binary could not be started at all.

    Distinct from CommandError: the process never ran, so there is no
    exit status and no diagnostic output.
    """
    exit_code = 20

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        reason: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        details = [reason] if reason else None
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.reason = reason


class CommandError(XTError):
    """The tool ran and exited abnormally.

    Carries the exit status and the tool's standard error so callers can
    tell an expected negative answer (status 1 from ``-C``) from a real
    failure. A negative status means the process was killed by that signal.
    """
    exit_code = 21

    def __init__(
        self,
        message: str,
        *,
        exit_status: int,
        stderr: str = "",
        command: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> None:
        if exit_status == 0:
            raise ValueError("CommandError requires a non-zero exit status")
        details = [f"Exit status: {exit_status}"]
        if stderr.strip():
            details.append(f"Error output: {stderr.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.exit_status = exit_status
        self.stderr = stderr
        self.command = command

    def __str__(self) -> str:
        return f"exit status {self.exit_status}: {self.stderr.strip()}"


class LockError(XTError):
    """The xtables lock file could not be opened or locked."""
    exit_code = 22

    def __init__(
        self,
        message: str,
        *,
        lock_path: Optional[Path] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.lock_path = lock_path


class LockContentionError(LockError):
    """Another process currently holds the xtables lock."""
    exit_code = 23


class VersionDecodeError(XTError):
    """No ``v<major>.<minor>.<patch>`` string in the tool's version output."""
    exit_code = 24

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        hint: Optional[str] = None,
    ) -> None:
        details = [f"Version output: {output.strip()}"] if output.strip() else None
        super().__init__(message, hint=hint, details=details)
        self.output = output
