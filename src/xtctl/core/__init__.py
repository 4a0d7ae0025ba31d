"""Core framework components for xtctl."""

from xtctl.core.exceptions import (
    XTError,
    ConfigurationError,
    PrerequisiteError,
    ProcessSpawnError,
    CommandError,
    LockError,
    LockContentionError,
    VersionDecodeError,
)

from xtctl.core.context import ExecutionContext, create_context
from xtctl.core.output import console, Console, Verbosity
from xtctl.core.config import AppConfig, XtctlConfig

__all__ = [
    # Exceptions
    "XTError",
    "ConfigurationError",
    "PrerequisiteError",
    "ProcessSpawnError",
    "CommandError",
    "LockError",
    "LockContentionError",
    "VersionDecodeError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "XtctlConfig",
]
