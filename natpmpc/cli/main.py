"""Command line interface for natpmpc."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import click
from rich.console import Console
from rich.table import Table

from natpmpc.client import (
    NatpmpAsync,
    backoff_from_config,
    new_natpmp_async,
    new_natpmp_async_with,
)
from natpmpc.config.config import ConfigManager
from natpmpc.exceptions import ConfigurationError, NATPMPError
from natpmpc.gateway import discover_default_gateway
from natpmpc.models import ClientConfig, LogLevel
from natpmpc.protocol import Protocol
from natpmpc.utils.logging_config import get_logger, setup_logging

logger = get_logger("cli")

T = TypeVar("T")

PORT = click.IntRange(0, 0xFFFF)
LIFETIME = click.IntRange(0, 0xFFFFFFFF)
PROTOCOL = click.Choice([p.value for p in Protocol], case_sensitive=False)

_VERBOSITY_LEVELS = {0: None, 1: LogLevel.INFO, 2: LogLevel.DEBUG}


def _get_config_from_context(ctx: click.Context) -> ConfigManager:
    return ctx.obj["config"]


def _apply_cli_overrides(cfg_mgr: ConfigManager, options: dict[str, Any]) -> None:
    """Apply command line options on top of the loaded configuration."""
    client = cfg_mgr.config.client
    updates: dict[str, Any] = {}
    if options.get("gateway") is not None:
        updates["gateway"] = options["gateway"]
    if options.get("timeout") is not None:
        updates["timeout"] = options["timeout"]
    if options.get("attempts") is not None:
        updates["max_attempts"] = options["attempts"]
    if options.get("backoff") is not None:
        updates["retry_backoff"] = options["backoff"]
    if updates:
        try:
            cfg_mgr.config.client = ClientConfig.model_validate(
                {**client.model_dump(), **updates}
            )
        except ValueError as e:
            raise click.BadParameter(str(e)) from e

    level = _VERBOSITY_LEVELS.get(min(options.get("verbose", 0), 2))
    if level is not None:
        cfg_mgr.config.observability.log_level = level


async def _open_session(cfg: ClientConfig) -> NatpmpAsync:
    backoff = backoff_from_config(cfg)
    if cfg.gateway:
        return await new_natpmp_async_with(
            cfg.gateway, cfg.timeout, cfg.max_attempts, backoff
        )
    return await new_natpmp_async(cfg.timeout, cfg.max_attempts, backoff)


def _run_with_session(
    ctx: click.Context,
    action: Callable[[NatpmpAsync], Awaitable[T]],
) -> tuple[NatpmpAsync, T]:
    """Open a session from the configuration, run ``action`` and close it."""
    cfg = _get_config_from_context(ctx).config.client

    async def _run() -> tuple[NatpmpAsync, T]:
        session = await _open_session(cfg)
        async with session:
            return session, await action(session)

    try:
        return asyncio.run(_run())
    except NATPMPError as e:
        logger.debug("NAT-PMP request failed", exc_info=True)
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False),
    help="Configuration file (TOML)",
)
@click.option("--gateway", "-g", help="Gateway IPv4 address (default: default route)")
@click.option("--timeout", "-t", type=float, help="Per-receive timeout in seconds")
@click.option("--attempts", "-a", type=click.IntRange(1, 64), help="Receive attempts")
@click.option(
    "--backoff/--no-backoff",
    default=None,
    help="Exponential backoff between failed receives",
)
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v, -vv)")
@click.pass_context
def cli(ctx, config_file, gateway, timeout, attempts, backoff, verbose):
    """NAT-PMP (RFC 6886) client."""
    try:
        cfg_mgr = ConfigManager(config_file)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    _apply_cli_overrides(
        cfg_mgr,
        {
            "gateway": gateway,
            "timeout": timeout,
            "attempts": attempts,
            "backoff": backoff,
            "verbose": verbose,
        },
    )
    setup_logging(cfg_mgr.config.observability)
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg_mgr


@cli.command("gateway")
def gateway_cmd() -> None:
    """Show the default gateway."""
    console = Console()
    try:
        gateway = discover_default_gateway()
    except NATPMPError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Default gateway:[/green] {gateway}")


@cli.command("address")
@click.pass_context
def address_cmd(ctx) -> None:
    """Query the gateway's public IPv4 address."""
    console = Console()
    session, response = _run_with_session(ctx, lambda s: s.get_public_address())
    console.print(f"[green]Gateway:[/green] {session.gateway}")
    console.print(f"[green]Public address:[/green] {response.public_address}")
    console.print(f"[green]Epoch:[/green] {response.epoch} s")


def _print_mapping(console: Console, gateway: Any, mapping: Any) -> None:
    table = Table(title=f"Port mapping via {gateway}")
    table.add_column("Protocol", style="cyan")
    table.add_column("Private Port", style="magenta")
    table.add_column("Public Port", style="yellow")
    table.add_column("Lifetime (s)", style="blue")
    table.add_column("Epoch (s)", style="green")
    table.add_row(
        mapping.protocol.value.upper(),
        str(mapping.private_port),
        str(mapping.public_port),
        str(int(mapping.lifetime.total_seconds())),
        str(mapping.epoch),
    )
    console.print(table)


@cli.command("map")
@click.argument("protocol", type=PROTOCOL)
@click.argument("private_port", type=PORT)
@click.argument("public_port", type=PORT, required=False, default=0)
@click.option("--lifetime", "-l", type=LIFETIME, help="Lifetime in seconds")
@click.pass_context
def map_cmd(ctx, protocol, private_port, public_port, lifetime) -> None:
    """Create or renew a port mapping."""
    console = Console()
    if lifetime is None:
        lifetime = _get_config_from_context(ctx).config.client.mapping_lifetime
    proto = Protocol(protocol.lower())
    session, mapping = _run_with_session(
        ctx,
        lambda s: s.map_port(proto, private_port, public_port, lifetime),
    )
    _print_mapping(console, session.gateway, mapping)


@cli.command("unmap")
@click.argument("protocol", type=PROTOCOL)
@click.argument("private_port", type=PORT)
@click.pass_context
def unmap_cmd(ctx, protocol, private_port) -> None:
    """Delete a port mapping."""
    console = Console()
    proto = Protocol(protocol.lower())
    _run_with_session(ctx, lambda s: s.unmap_port(proto, private_port))
    console.print(
        f"[green]Removed {proto.value.upper()} mapping for port {private_port}[/green]"
    )


def main() -> None:
    """Console script entry point."""
    cli(obj={})
