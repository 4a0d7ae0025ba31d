"""Single choke point for running iptables.

Every query and mutation goes through CommandRunner.run, which:
- appends ``--wait`` when the binary supports it, or
- holds the shared xtables file lock for the call otherwise,
then spawns the binary, captures stderr and turns a non-zero exit into a
CommandError. The two serialization strategies are never combined.
"""

import shlex
import subprocess
from contextlib import nullcontext
from dataclasses import dataclass
from typing import IO, ContextManager, Optional, Sequence

from rich.markup import escape

from xtctl.core.exceptions import CommandError, ProcessSpawnError
from xtctl.core.output import Console, console as default_console
from xtctl.services.lock import XtablesFileLock
from xtctl.services.tool import ToolHandle


WAIT_FLAG = "--wait"


@dataclass
class InvocationResult:
    """Result of one iptables invocation."""
    command: list[str]
    return_code: int
    stdout: bytes
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.return_code == 0


class CommandRunner:
    """Runs iptables for one ToolHandle."""

    def __init__(
        self,
        handle: ToolHandle,
        lock: Optional[XtablesFileLock] = None,
        console: Optional[Console] = None,
    ) -> None:
        """Initialize runner.

        Args:
            handle: Probed tool handle
            lock: Shared lock, only used when the tool lacks --wait
            console: Console for debug output
        """
        self.handle = handle
        self.lock = lock or XtablesFileLock()
        self.console = console or default_console

    def build_command(self, args: Sequence[str]) -> list[str]:
        """Full argv for ``args``, including ``--wait`` when supported."""
        command = [self.handle.path, *args]
        if self.handle.supports_wait:
            command.append(WAIT_FLAG)
        return command

    def _serialize(self) -> ContextManager:
        if self.handle.supports_wait:
            return nullcontext()
        self.console.debug(f"Taking xtables lock {self.lock.path}")
        return self.lock.try_lock()

    def run(
        self,
        args: Sequence[str],
        *,
        sink: Optional[IO[bytes]] = None,
        check: bool = True,
    ) -> InvocationResult:
        """Run iptables with ``args``.

        Args:
            args: Arguments after the binary (e.g. ``["-t", "filter", "-S"]``)
            sink: Binary writable receiving standard output; discarded if None
            check: Raise CommandError on non-zero exit

        Returns:
            InvocationResult; ``stdout`` is empty when no sink was given

        Raises:
            ProcessSpawnError: If the binary cannot be executed
            CommandError: If the tool exits non-zero and check=True
            LockContentionError: If the xtables lock is held elsewhere
            LockError: If the xtables lock file cannot be used
        """
        command = self.build_command(args)
        cmd_display = shlex.join(command)

        with self._serialize():
            self.console.debug(f"Running: {escape(cmd_display)}")
            try:
                completed = subprocess.run(
                    command,
                    stdout=subprocess.PIPE if sink is not None else subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                )
            except OSError as e:
                raise ProcessSpawnError(
                    f"Cannot execute {self.handle.path}",
                    command=cmd_display,
                    reason=str(e),
                ) from e

        stdout = completed.stdout or b""
        stderr = (completed.stderr or b"").decode("utf-8", errors="replace")
        if sink is not None:
            sink.write(stdout)

        result = InvocationResult(
            command=command,
            return_code=completed.returncode,
            stdout=stdout,
            stderr=stderr,
        )

        if check and not result.success:
            self.console.debug(
                f"Exit status {result.return_code}: {escape(stderr.strip())}"
            )
            raise CommandError(
                f"Command failed: {cmd_display}",
                exit_status=result.return_code,
                stderr=stderr,
                command=cmd_display,
            )

        return result
