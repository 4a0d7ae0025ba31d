"""iptables version probing.

The installed iptables decides which flags are usable:
- ``-C`` (check rule) appeared in 1.4.11
- ``--wait`` (serialize on the xtables lock) appeared in 1.4.20

Both are derived once from ``iptables --version`` and carried on the
tool handle; nothing re-probes per call.
"""

import re
import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional

from xtctl.core.exceptions import CommandError, ProcessSpawnError, VersionDecodeError
from xtctl.core.output import Console, console as default_console


VERSION_PATTERN = re.compile(r"v([0-9]+)\.([0-9]+)\.([0-9]+)")


@dataclass(frozen=True, order=True)
class VersionTriple:
    """A ``major.minor.patch`` iptables version."""
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


CHECK_MIN_VERSION = VersionTriple(1, 4, 11)
WAIT_MIN_VERSION = VersionTriple(1, 4, 20)


@dataclass(frozen=True)
class Capabilities:
    """Optional features of an installed iptables binary."""
    supports_check: bool
    supports_wait: bool

    @classmethod
    def for_version(cls, version: VersionTriple) -> "Capabilities":
        return cls(
            supports_check=has_check_command(version),
            supports_wait=has_wait_command(version),
        )


def extract_version(text: str) -> VersionTriple:
    """Pull the first ``v<major>.<minor>.<patch>`` out of free-form text.

    Example:
        >>> extract_version("iptables v1.3.66")
        VersionTriple(major=1, minor=3, patch=66)

    Raises:
        VersionDecodeError: If no version string is present
    """
    match = VERSION_PATTERN.search(text)
    if match is None:
        raise VersionDecodeError(
            f"No iptables version found in string: {text.strip()!r}",
            output=text,
        )
    major, minor, patch = (int(g) for g in match.groups())
    return VersionTriple(major, minor, patch)


def has_check_command(version: VersionTriple) -> bool:
    """True if this version understands ``-C``."""
    return version >= CHECK_MIN_VERSION


def has_wait_command(version: VersionTriple) -> bool:
    """True if this version understands ``--wait``."""
    return version >= WAIT_MIN_VERSION


def get_version_string(path: str) -> str:
    """Run ``<path> --version`` and return its standard output.

    Raises:
        ProcessSpawnError: If the binary cannot be executed
        CommandError: If the binary exits non-zero
    """
    command = [path, "--version"]
    try:
        result = subprocess.run(command, capture_output=True)
    except OSError as e:
        raise ProcessSpawnError(
            f"Cannot execute {path}",
            command=shlex.join(command),
            reason=str(e),
            hint="Check that iptables is installed and executable",
        ) from e

    if result.returncode != 0:
        raise CommandError(
            f"Version query failed: {shlex.join(command)}",
            exit_status=result.returncode,
            stderr=(result.stderr or b"").decode("utf-8", errors="replace"),
            command=shlex.join(command),
        )
    return (result.stdout or b"").decode("utf-8", errors="replace")


def probe_capabilities(
    path: str,
    console: Optional[Console] = None,
) -> tuple[VersionTriple, Capabilities]:
    """Query the binary's version and derive its capabilities.

    Spawns exactly one child process.

    Raises:
        ProcessSpawnError: If the binary cannot be executed
        CommandError: If ``--version`` exits non-zero
        VersionDecodeError: If the output has no version string
    """
    console = console or default_console
    version = extract_version(get_version_string(path))
    capabilities = Capabilities.for_version(version)
    console.debug(
        f"{path}: version {version}, "
        f"check={'yes' if capabilities.supports_check else 'no'}, "
        f"wait={'yes' if capabilities.supports_wait else 'no'}"
    )
    return version, capabilities
