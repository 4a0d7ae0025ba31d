"""End-to-end tests against a fake iptables script.

The script answers ``--version`` with a fixed version and records every
other invocation, so these tests exercise the real subprocess and flock
paths without touching the host firewall.
"""

import os
import stat
import sys

import pytest

from xtctl.core.exceptions import CommandError
from xtctl.services.iptables import IPTables
from xtctl.services.lock import XtablesFileLock
from xtctl.services.tool import Protocol


pytestmark = pytest.mark.skipif(
    not sys.platform.startswith("linux") or not os.path.exists("/bin/sh"),
    reason="needs /bin/sh and flock",
)

FAKE_TOOL = """#!/bin/sh
if [ "$1" = "--version" ]; then
    echo "iptables {version}"
    exit 0
fi
printf "%s\n" "$*" >> "{log}"
if [ -n "$FAKE_IPTABLES_STDERR" ]; then
    echo "$FAKE_IPTABLES_STDERR" >&2
fi
exit ${{FAKE_IPTABLES_EXIT:-0}}
"""


def _fake_tool(tmp_path, version):
    log = tmp_path / "calls.log"
    script = tmp_path / "iptables"
    script.write_text(FAKE_TOOL.format(version=version, log=log))
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script, log


def _calls(log):
    if not log.exists():
        return []
    return log.read_text().splitlines()


class TestModernTool:
    """v1.6.1: both capabilities, --wait serialization, no lock file."""

    def test_append_uses_wait_flag(self, tmp_path):
        script, log = _fake_tool(tmp_path, "v1.6.1")
        lock_path = tmp_path / "xtables.lock"

        ipt = IPTables.new(Protocol.IPV4, path=script, lock_path=lock_path)
        assert ipt.has_check is True
        assert ipt.has_wait is True

        ipt.append("filter", "INPUT", "-j", "ACCEPT")

        assert _calls(log) == ["-t filter -A INPUT -j ACCEPT --wait"]
        assert not lock_path.exists()


class TestLegacyTool:
    """v1.4.5: no capabilities, file lock serialization."""

    def test_append_takes_lock(self, tmp_path):
        script, log = _fake_tool(tmp_path, "v1.4.5")
        lock_path = tmp_path / "xtables.lock"

        ipt = IPTables.new(Protocol.IPV4, path=script, lock_path=lock_path)
        assert ipt.has_check is False
        assert ipt.has_wait is False

        ipt.append("filter", "INPUT", "-j", "ACCEPT")

        assert _calls(log) == ["-t filter -A INPUT -j ACCEPT"]
        assert lock_path.exists()
        XtablesFileLock(lock_path).try_lock().unlock()

    def test_lock_released_on_failure(self, tmp_path, monkeypatch):
        script, log = _fake_tool(tmp_path, "v1.4.5")
        lock_path = tmp_path / "xtables.lock"
        ipt = IPTables.new(Protocol.IPV4, path=script, lock_path=lock_path)

        monkeypatch.setenv("FAKE_IPTABLES_EXIT", "2")
        monkeypatch.setenv("FAKE_IPTABLES_STDERR", "iptables: No chain/target/match by that name.")
        with pytest.raises(CommandError) as exc:
            ipt.append("filter", "NOPE", "-j", "ACCEPT")

        assert exc.value.exit_status == 2
        assert "No chain/target/match" in exc.value.stderr
        XtablesFileLock(lock_path).try_lock().unlock()

    def test_exists_uses_listing(self, tmp_path):
        script, log = _fake_tool(tmp_path, "v1.4.5")
        ipt = IPTables.new(Protocol.IPV4, path=script, lock_path=tmp_path / "xtables.lock")

        # The fake prints nothing for -S, so nothing exists
        assert ipt.exists("filter", "FORWARD", "-j", "ACCEPT") is False
        assert _calls(log) == ["-t filter -S"]
