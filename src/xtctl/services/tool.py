"""The xtables tool handle.

A ToolHandle pins down one installed binary (iptables or ip6tables) and the
capabilities probed from it. It is built once and never changes.
"""

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from xtctl.core.exceptions import PrerequisiteError
from xtctl.core.output import Console
from xtctl.services.version import VersionTriple, probe_capabilities


class Protocol(str, Enum):
    """Network-layer protocol family."""
    IPV4 = "ipv4"
    IPV6 = "ipv6"

    @property
    def command(self) -> str:
        """Binary name for this family."""
        return "ip6tables" if self is Protocol.IPV6 else "iptables"


@dataclass(frozen=True)
class ToolHandle:
    """An installed xtables binary and what it can do."""
    path: str
    protocol: Protocol
    version: VersionTriple
    supports_check: bool
    supports_wait: bool

    @classmethod
    def probe(
        cls,
        path: str,
        protocol: Protocol,
        console: Optional[Console] = None,
    ) -> "ToolHandle":
        """Probe ``path`` once and build a handle from the result."""
        version, capabilities = probe_capabilities(path, console=console)
        return cls(
            path=path,
            protocol=protocol,
            version=version,
            supports_check=capabilities.supports_check,
            supports_wait=capabilities.supports_wait,
        )


def find_tool_binary(
    protocol: Protocol,
    path: Optional[Union[str, Path]] = None,
) -> str:
    """Resolve the binary for ``protocol``.

    An explicit path is used as given (bare names are looked up on PATH).

    Raises:
        PrerequisiteError: If the binary cannot be found
    """
    candidate = str(path) if path else protocol.command
    if "/" in candidate:
        if not Path(candidate).is_file():
            raise PrerequisiteError(
                f"{protocol.command} binary not found: {candidate}",
                hint="Fix the configured path or unset it to search PATH",
            )
        return candidate

    found = shutil.which(candidate)
    if not found:
        raise PrerequisiteError(
            f"{candidate} not found on PATH",
            hint="Install it with: apt-get install iptables",
        )
    return found
