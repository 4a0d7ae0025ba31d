"""Rule existence checks.

With ``-C`` (iptables >= 1.4.11) the tool answers directly: exit 0 means
present, exit 1 means absent. Older tools get the whole table listed with
``-S`` and the rule is looked for as ``-A <chain> <rule...>`` in the text.

The listing fallback is a substring match. A rule whose printed form is a
prefix of another rule's (``-j ACCEPT`` inside ``-j ACCEPT --foo``) or that
iptables prints in a different order or spelling than given is reported
wrongly. That is how old-tool checks have always behaved here.
"""

import io
from typing import Sequence

from xtctl.core.exceptions import CommandError
from xtctl.services.runner import CommandRunner


RULE_ABSENT_STATUS = 1


def format_rule_line(chain: str, rulespec: Sequence[str]) -> str:
    """A rule as ``iptables -S`` prints it."""
    return " ".join(["-A", chain, *rulespec])


def rule_exists_native(
    runner: CommandRunner,
    table: str,
    chain: str,
    rulespec: Sequence[str],
) -> bool:
    """Ask iptables with ``-C``.

    Raises:
        CommandError: For any exit status other than 0 or 1
    """
    try:
        runner.run(["-t", table, "-C", chain, *rulespec])
    except CommandError as e:
        if e.exit_status == RULE_ABSENT_STATUS:
            return False
        raise
    return True


def rule_exists_in_listing(
    runner: CommandRunner,
    table: str,
    chain: str,
    rulespec: Sequence[str],
) -> bool:
    """Look for the rule in ``iptables -t <table> -S`` output."""
    listing = io.BytesIO()
    runner.run(["-t", table, "-S"], sink=listing)
    text = listing.getvalue().decode("utf-8", errors="replace")
    return format_rule_line(chain, rulespec) in text


def rule_exists(
    runner: CommandRunner,
    table: str,
    chain: str,
    rulespec: Sequence[str],
) -> bool:
    """Whether ``rulespec`` is present in ``table``/``chain``."""
    if runner.handle.supports_check:
        return rule_exists_native(runner, table, chain, rulespec)
    return rule_exists_in_listing(runner, table, chain, rulespec)
