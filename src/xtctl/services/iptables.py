"""Iptables rule and chain operations.

Provides a small, safe interface over iptables/ip6tables with:
- Capability detection (``-C`` and ``--wait``) done once per binary
- Cross-process serialization on tools without ``--wait``
- Rule existence checks that also work on pre-1.4.11 tools
- Structured errors carrying the tool's exit status and stderr

Rule specifications are opaque token lists; nothing here interprets them.
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Optional, Union

from xtctl.core.config import AppConfig, DEFAULT_LOCK_PATH
from xtctl.core.exceptions import CommandError
from xtctl.core.output import Console, console as default_console
from xtctl.services.existence import rule_exists
from xtctl.services.lock import XtablesFileLock
from xtctl.services.runner import CommandRunner
from xtctl.services.tool import Protocol, ToolHandle, find_tool_binary


# Exit status of ``-N`` when the chain is already there
CHAIN_EXISTS_STATUS = 1

# ``-S`` prefixes for built-in chain policies and user chains
CHAIN_DEFINITION_PREFIXES = ("-P", "-N")


class IPTables:
    """Rule and chain operations for one protocol family.

    Usage:
        ipt = IPTables.new(Protocol.IPV4)
        ipt.append_unique("filter", "INPUT", "-p", "tcp", "--dport", "22", "-j", "ACCEPT")
        if ipt.exists("nat", "POSTROUTING", "-j", "MASQUERADE"):
            ...
    """

    def __init__(
        self,
        handle: ToolHandle,
        *,
        lock: Optional[XtablesFileLock] = None,
        console: Optional[Console] = None,
    ) -> None:
        """Initialize with an already probed handle.

        Args:
            handle: Tool handle from ToolHandle.probe
            lock: Shared xtables lock (default path if None)
            console: Console for output
        """
        self.handle = handle
        self.console = console or default_console
        self.runner = CommandRunner(handle, lock=lock, console=self.console)

    @classmethod
    def new(
        cls,
        protocol: Protocol = Protocol.IPV4,
        *,
        path: Optional[Union[str, Path]] = None,
        lock_path: Optional[Path] = None,
        console: Optional[Console] = None,
    ) -> "IPTables":
        """Find the binary for ``protocol``, probe it and wrap it.

        Raises:
            PrerequisiteError: If the binary cannot be found
            ProcessSpawnError: If the binary cannot be executed
            CommandError: If ``--version`` exits non-zero
            VersionDecodeError: If the version output is not understood
        """
        lock_path = lock_path or DEFAULT_LOCK_PATH
        binary = find_tool_binary(protocol, path)
        handle = ToolHandle.probe(binary, protocol, console=console)
        if not handle.supports_wait:
            (console or default_console).verbose(
                f"{binary} {handle.version} has no --wait, serializing on {lock_path}"
            )
        return cls(handle, lock=XtablesFileLock(lock_path), console=console)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        protocol: Protocol = Protocol.IPV4,
        *,
        console: Optional[Console] = None,
    ) -> "IPTables":
        """Like new(), with binary and lock paths taken from configuration."""
        path = config.ip6tables_path if protocol is Protocol.IPV6 else config.iptables_path
        return cls.new(protocol, path=path, lock_path=config.lock_path, console=console)

    @property
    def proto(self) -> Protocol:
        return self.handle.protocol

    @property
    def has_check(self) -> bool:
        return self.handle.supports_check

    @property
    def has_wait(self) -> bool:
        return self.handle.supports_wait

    # =========================================================================
    # Rule Management
    # =========================================================================

    def exists(self, table: str, chain: str, *rulespec: str) -> bool:
        """Check if ``rulespec`` exists in ``table``/``chain``."""
        return rule_exists(self.runner, table, chain, rulespec)

    def insert(self, table: str, chain: str, pos: int, *rulespec: str) -> None:
        """Insert ``rulespec`` at position ``pos`` (1 = top)."""
        self.runner.run(["-t", table, "-I", chain, str(pos), *rulespec])

    def append(self, table: str, chain: str, *rulespec: str) -> None:
        """Append ``rulespec`` to the end of ``chain``."""
        self.runner.run(["-t", table, "-A", chain, *rulespec])

    def append_unique(self, table: str, chain: str, *rulespec: str) -> bool:
        """Append unless the rule already exists.

        Returns:
            True if the rule was appended, False if it was already there
        """
        if self.exists(table, chain, *rulespec):
            self.console.debug(f"Rule already in {table}/{chain}, not appending")
            return False
        self.append(table, chain, *rulespec)
        return True

    def delete(self, table: str, chain: str, *rulespec: str) -> None:
        """Delete ``rulespec`` from ``chain``."""
        self.runner.run(["-t", table, "-D", chain, *rulespec])

    # =========================================================================
    # Listing
    # =========================================================================

    def list(self, table: str, chain: str) -> list[str]:
        """Rules of ``chain`` in ``iptables -S`` form."""
        return self.execute_list(["-t", table, "-S", chain])

    def list_chains(self, table: str) -> list[str]:
        """Names of all chains in ``table``, built-in ones first.

        ``-S`` prints every chain definition before any rule:
            -P INPUT ACCEPT
            -N custom
            -A INPUT -j custom
        """
        chains = []
        for line in self.execute_list(["-t", table, "-S"]):
            if not line.startswith(CHAIN_DEFINITION_PREFIXES):
                break
            chains.append(line.split()[1])
        return chains

    def execute_list(self, args: list[str]) -> list[str]:
        """Run a listing command and split its output into lines.

        A trailing empty line is dropped.
        """
        output = io.BytesIO()
        self.runner.run(args, sink=output)
        lines = output.getvalue().decode("utf-8", errors="replace").split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return lines

    # =========================================================================
    # Chain Management
    # =========================================================================

    def new_chain(self, table: str, chain: str) -> None:
        """Create ``chain``. Fails with CommandError if it exists."""
        self.runner.run(["-t", table, "-N", chain])

    def clear_chain(self, table: str, chain: str) -> None:
        """Flush ``chain``, creating it first if missing."""
        try:
            self.new_chain(table, chain)
        except CommandError as e:
            if e.exit_status != CHAIN_EXISTS_STATUS:
                raise
            self.runner.run(["-t", table, "-F", chain])

    def rename_chain(self, table: str, old_chain: str, new_chain: str) -> None:
        """Rename ``old_chain`` to ``new_chain``."""
        self.runner.run(["-t", table, "-E", old_chain, new_chain])

    def delete_chain(self, table: str, chain: str) -> None:
        """Delete ``chain``. The chain must be empty and unreferenced."""
        self.runner.run(["-t", table, "-X", chain])
