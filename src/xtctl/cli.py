"""Main CLI entry point using Typer.

Thin front end over xtctl.services.iptables.IPTables. Rule tokens are
passed after ``--`` so they are not mistaken for xtctl options:

    xtctl append INPUT -- -p tcp --dport 22 -j ACCEPT
"""

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from xtctl import __version__
from xtctl.core.config import DEFAULT_CONFIG_PATH, init_config
from xtctl.core.context import ExecutionContext, create_context
from xtctl.core.exceptions import XTError
from xtctl.core.output import console as app_console
from xtctl.services.iptables import IPTables
from xtctl.services.tool import Protocol


# Rule tokens look like options (-j, --dport); let them through as arguments
RULE_COMMAND_SETTINGS = {"ignore_unknown_options": True}

app = typer.Typer(
    name="xtctl",
    help="Safe iptables/ip6tables rule and chain management.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

chain_app = typer.Typer(
    name="chain",
    help="Chain management commands.",
    no_args_is_help=True,
)

config_app = typer.Typer(
    name="config",
    help="Configuration management.",
    no_args_is_help=True,
)

app.add_typer(chain_app, name="chain")
app.add_typer(config_app, name="config")


# Type aliases for common options
IPv6Option = Annotated[
    bool,
    typer.Option("--ipv6", "-6", help="Operate on ip6tables instead of iptables."),
]

TableOption = Annotated[
    Optional[str],
    typer.Option("--table", "-t", help="Table to operate on. Default: from config (filter)."),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. -vv shows every iptables command line.",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option("--quiet", "-q", help="Suppress non-essential output. Only show errors."),
]

NoColorOption = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        dir_okay=False,
    ),
]

RuleArgument = Annotated[
    list[str],
    typer.Argument(help="Rule specification tokens, given after --."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        Console().print(f"xtctl version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """Safe iptables/ip6tables rule and chain management.

    Detects what the installed iptables supports, serializes access to the
    kernel ruleset (--wait or the shared xtables lock) and reports tool
    failures with their exit status and error output.

    [bold]Examples:[/bold]
        xtctl info
        xtctl exists INPUT -- -p tcp --dport 22 -j ACCEPT
        xtctl append --unique INPUT -- -p tcp --dport 22 -j ACCEPT
        xtctl chains -t nat
    """


def _handle_error(error: XTError) -> None:
    """Handle an XTError by printing formatted error and exiting."""
    app_console.error(error.message)

    if error.details:
        for detail in error.details:
            app_console.print(f"  [dim]{detail}[/dim]")

    if error.hint:
        app_console.hint(error.hint)

    raise typer.Exit(error.exit_code)


def _get_iptables(
    ipv6: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> tuple[ExecutionContext, IPTables]:
    """Create context and probed IPTables for the requested family."""
    ctx = create_context(verbose=verbose, quiet=quiet, no_color=no_color, config=config)
    protocol = Protocol.IPV6 if ipv6 else Protocol.IPV4
    return ctx, IPTables.from_config(ctx.config, protocol, console=ctx.console)


def _table(ctx: ExecutionContext, table: Optional[str]) -> str:
    return table or ctx.config.default_table


# =============================================================================
# Info
# =============================================================================

@app.command("info")
def tool_info(
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Show the detected binary, version and capabilities."""
    try:
        ctx, ipt = _get_iptables(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        handle = ipt.handle
        ctx.console.summary(f"{handle.protocol.command}", {
            "Binary": handle.path,
            "Version": str(handle.version),
            "Check (-C)": handle.supports_check,
            "Wait (--wait)": handle.supports_wait,
            "Serialization": "--wait" if handle.supports_wait else f"lock {ipt.runner.lock.path}",
        })
        if not handle.supports_check:
            ctx.console.warn("No -C support: rule checks match against -S output text")
    except XTError as e:
        _handle_error(e)


# =============================================================================
# Rule commands
# =============================================================================

@app.command("exists", context_settings=RULE_COMMAND_SETTINGS)
def rule_exists(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    rule: RuleArgument,
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Check whether a rule exists. Exits 0 if present, 1 if absent."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        found = ipt.exists(_table(ctx, table), chain, *rule)
    except XTError as e:
        _handle_error(e)
        return

    if found:
        ctx.console.info("Rule exists")
    else:
        ctx.console.info("Rule not found")
        raise typer.Exit(1)


@app.command("append", context_settings=RULE_COMMAND_SETTINGS)
def rule_append(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    rule: RuleArgument,
    unique: Annotated[
        bool,
        typer.Option("--unique", "-u", help="Skip if the rule already exists."),
    ] = False,
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Append a rule to the end of a chain."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        if unique:
            if not ipt.append_unique(target, chain, *rule):
                ctx.console.info(f"Rule already exists in {target}/{chain}, skipped")
                return
        else:
            ipt.append(target, chain, *rule)
        ctx.console.success(f"Appended rule to {target}/{chain}")
    except XTError as e:
        _handle_error(e)


@app.command("insert", context_settings=RULE_COMMAND_SETTINGS)
def rule_insert(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    position: Annotated[int, typer.Argument(min=1, help="Rule position (1 = top).")],
    rule: RuleArgument,
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Insert a rule at a position in a chain."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.insert(target, chain, position, *rule)
        ctx.console.success(f"Inserted rule at {target}/{chain}:{position}")
    except XTError as e:
        _handle_error(e)


@app.command("delete", context_settings=RULE_COMMAND_SETTINGS)
def rule_delete(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    rule: RuleArgument,
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete a rule from a chain."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.delete(target, chain, *rule)
        ctx.console.success(f"Deleted rule from {target}/{chain}")
    except XTError as e:
        _handle_error(e)


@app.command("list")
def rule_list(
    chain: Annotated[Optional[str], typer.Argument(help="Chain name (all chains if omitted).")] = None,
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Print rules in iptables -S form."""
    try:
        ctx, ipt = _get_iptables(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        target = _table(ctx, table)
        if chain:
            lines = ipt.list(target, chain)
        else:
            lines = ipt.execute_list(["-t", target, "-S"])
    except XTError as e:
        _handle_error(e)
        return

    for line in lines:
        ctx.console.print(line, markup=False)


@app.command("chains")
def chain_list(
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """List the chains of a table."""
    try:
        ctx, ipt = _get_iptables(ipv6=ipv6, verbose=verbose, no_color=no_color, config=config)
        target = _table(ctx, table)
        chains = ipt.list_chains(target)
    except XTError as e:
        _handle_error(e)
        return

    ctx.console.table(
        f"Chains in {target}",
        ["#", "Chain"],
        [[str(i), name] for i, name in enumerate(chains, start=1)],
    )


# =============================================================================
# Chain commands
# =============================================================================

@chain_app.command("new")
def chain_new(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Create a chain. Fails if it already exists."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.new_chain(target, chain)
        ctx.console.success(f"Created chain {target}/{chain}")
    except XTError as e:
        _handle_error(e)


@chain_app.command("clear")
def chain_clear(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Flush a chain, creating it if it does not exist."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.clear_chain(target, chain)
        ctx.console.success(f"Cleared chain {target}/{chain}")
    except XTError as e:
        _handle_error(e)


@chain_app.command("rename")
def chain_rename(
    old_chain: Annotated[str, typer.Argument(help="Current chain name.")],
    new_chain: Annotated[str, typer.Argument(help="New chain name.")],
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Rename a chain."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.rename_chain(target, old_chain, new_chain)
        ctx.console.success(f"Renamed chain {target}/{old_chain} to {new_chain}")
    except XTError as e:
        _handle_error(e)


@chain_app.command("delete")
def chain_delete(
    chain: Annotated[str, typer.Argument(help="Chain name.")],
    table: TableOption = None,
    ipv6: IPv6Option = False,
    verbose: VerboseOption = 0,
    quiet: QuietOption = False,
    no_color: NoColorOption = False,
    config: ConfigOption = None,
) -> None:
    """Delete an empty, unreferenced chain."""
    try:
        ctx, ipt = _get_iptables(ipv6, verbose, quiet, no_color, config)
        target = _table(ctx, table)
        ipt.delete_chain(target, chain)
        ctx.console.success(f"Deleted chain {target}/{chain}")
    except XTError as e:
        _handle_error(e)


# =============================================================================
# Config commands
# =============================================================================

@config_app.command("show")
def config_show(
    config: ConfigOption = None,
    verbose: VerboseOption = 0,
    no_color: NoColorOption = False,
) -> None:
    """Show the effective configuration."""
    ctx = create_context(verbose=verbose, no_color=no_color, config=config)

    try:
        app_config = ctx.config

        ctx.console.print()
        ctx.console.print(f"[bold]Configuration file:[/bold] {ctx.config_path}")
        ctx.console.print(f"[bold]File exists:[/bold] {ctx.config_path.exists()}")
        ctx.console.print()

        ctx.console.yaml(app_config.config.to_yaml(), title="Configuration")

        ctx.console.summary("Effective paths", {
            "iptables": app_config.iptables_path or "(PATH lookup)",
            "ip6tables": app_config.ip6tables_path or "(PATH lookup)",
            "Lock file": app_config.lock_path,
            "Default table": app_config.default_table,
        })
    except XTError as e:
        _handle_error(e)


@config_app.command("init")
def config_init(
    config: ConfigOption = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing configuration file."),
    ] = False,
    no_color: NoColorOption = False,
) -> None:
    """Write an example configuration file."""
    ctx = create_context(no_color=no_color, config=config)

    try:
        init_config(ctx.config_path, force=force)
        ctx.console.success(f"Configuration written to {ctx.config_path}")
    except XTError as e:
        _handle_error(e)


if __name__ == "__main__":
    app()
