#!/usr/bin/env python3
"""
Local File Transfer CLI

Command-line interface for moving files between two connected peers.
The link itself (Wi-Fi Direct group, hotspot, cable) is set up outside this
tool; pass whether this device is the group owner, or the owner's address.

Usage:
    localshare send a.zim b.zim --group-owner-address 192.168.49.1
    localshare receive --group-owner
    localshare config                  # Print an example config file
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table
from rich.live import Live
from rich.panel import Panel
from rich.logging import RichHandler

from .config import EXAMPLE_CONFIG, Config, load_config
from .controller import SessionController
from .session import FileStatus, LinkInfo, SessionResult, SessionState

console = Console()

STATUS_STYLES = {
    FileStatus.PENDING: "dim",
    FileStatus.TRANSFERRING: "yellow",
    FileStatus.DONE: "green",
    FileStatus.ERROR: "red",
}


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='JSON config file')
@click.option('--handshake-port', type=int, help='Handshake TCP port')
@click.option('--transfer-port', type=int, help='File transfer TCP port')
@click.pass_context
def cli(ctx, verbose, config_path, handshake_port, transfer_port):
    """Local File Transfer - move files between two directly linked devices."""
    config = load_config(config_path)
    if handshake_port is not None:
        config.handshake_port = handshake_port
    if transfer_port is not None:
        config.transfer_port = transfer_port

    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


def link_options(func):
    """Options describing the link handed over by the link layer."""
    func = click.option('--group-owner-address', help='Address of the group owner peer')(func)
    func = click.option('--group-owner', is_flag=True, help='This device is the group owner')(func)
    return func


def build_link(group_owner: bool, group_owner_address: Optional[str]) -> LinkInfo:
    try:
        return LinkInfo(is_group_owner=group_owner, group_owner_address=group_owner_address)
    except ValueError as e:
        raise click.UsageError(f"{e} (use --group-owner or --group-owner-address)")


@cli.command()
@click.argument('files', nargs=-1, required=True,
                type=click.Path(exists=True, dir_okay=False, path_type=Path))
@link_options
@click.pass_context
def send(ctx, files, group_owner, group_owner_address):
    """Send FILES to the connected peer."""
    config = ctx.obj['config']
    link = build_link(group_owner, group_owner_address)
    _run_and_exit(ctx, config, link, list(files))


@cli.command()
@link_options
@click.option('--storage-root', type=click.Path(file_okay=False, path_type=Path),
              help='Directory for received files')
@click.pass_context
def receive(ctx, group_owner, group_owner_address, storage_root):
    """Receive files from the connected peer."""
    config = ctx.obj['config']
    if storage_root is not None:
        config.storage_root = storage_root
    link = build_link(group_owner, group_owner_address)
    _run_and_exit(ctx, config, link, [])


@cli.command('config')
def show_config():
    """Print an example configuration file."""
    console.print("Example configuration file (config.json):")
    console.print(EXAMPLE_CONFIG, highlight=False)


def _run_and_exit(ctx, config: Config, link: LinkInfo, files: List[Path]):
    try:
        controller = SessionController(config, files=files)
    except ValueError as e:
        raise click.UsageError(str(e))

    try:
        result = asyncio.run(run_transfer(controller, link))
    except KeyboardInterrupt:
        console.print("\n[yellow]Transfer cancelled[/yellow]")
        ctx.exit(1)

    show_result(result)
    ctx.exit(0 if result.succeeded else 1)


async def run_transfer(controller: SessionController, link: LinkInfo) -> SessionResult:
    """Run one session with a live status table."""
    config = controller.config

    role = "Sending" if controller.is_sender else "Receiving"
    console.print(f"[dim]{role} - handshake on port {config.handshake_port}, "
                  f"data on port {config.transfer_port}[/dim]")

    with Live(render_items(controller), console=console, refresh_per_second=8) as live:
        controller.events.on_event(lambda event: live.update(render_items(controller)))
        controller.on_link_connected(link)
        try:
            return await controller.wait()
        finally:
            # Releases the listener and open connections on Ctrl+C too
            await controller.shutdown()


def render_items(controller: SessionController) -> Table:
    """Build the file status table."""
    table = Table(title=f"Session: {controller.state.value}")
    table.add_column("#", justify="right", style="dim")
    table.add_column("File", style="cyan")
    table.add_column("Status")

    for index, item in enumerate(controller.registry):
        style = STATUS_STYLES[item.status]
        table.add_row(str(index + 1), item.name, f"[{style}]{item.status.value}[/{style}]")

    if controller.state == SessionState.HANDSHAKING and not len(controller.registry):
        table.caption = "Waiting for file list..."

    return table


def show_result(result: SessionResult):
    color = {
        SessionState.COMPLETE: "green",
        SessionState.CANCELLED: "yellow",
    }.get(result.state, "red")

    console.print(Panel.fit(
        f"[bold {color}]{result.message}[/bold {color}]\n\n"
        f"Files: [yellow]{result.transferred}/{result.total}[/yellow]",
        title=result.state.value.capitalize()
    ))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
