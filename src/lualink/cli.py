"""Command-line interface for LuaLink."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lualink import __version__
from lualink.config import Settings, load_settings, save_settings, settings_path
from lualink.errors import InterfaceDiscoveryError, ValidationError
from lualink.agent.arp import read_arp_table
from lualink.agent.broadcaster import EventBroadcaster
from lualink.agent.delivery import DeliveryResult, deliver_payload, validate_target
from lualink.agent.events import EventType, ProgressEvent
from lualink.agent.interfaces import InterfaceLister
from lualink.agent.payloads import PayloadSource, PayloadStore
from lualink.agent.scanner import SubnetScanner


console = Console()

EVENT_STYLES = {
    EventType.STATUS: "cyan",
    EventType.DATA: "magenta",
    EventType.ERROR: "red",
    EventType.SUCCESS: "green",
}


def configure_logging(verbose: bool, quiet_level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else quiet_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_event(event: ProgressEvent) -> None:
    style = EVENT_STYLES.get(event.type, "white")
    label = event.type.value.upper()
    if event.type == EventType.DATA:
        console.print(f"[{style}]{label:<7}[/{style}] {event.length} bytes: [dim]{event.hex}[/dim]")
    else:
        console.print(f"[{style}]{label:<7}[/{style}] {event.message}")


def print_result(result: DeliveryResult) -> None:
    if result.success:
        body = result.response_text or "(no response)"
        console.print(Panel(body, title="Delivered", border_style="green"))
    else:
        console.print(Panel(
            f"[red]Delivery failed:[/red] {result.error}",
            title="Error",
            border_style="red",
        ))


@click.group()
@click.version_option(version=__version__, prog_name="lualink")
def main():
    """LuaLink - local network payload sender.

    Find loader-capable devices on the local network and send payloads to them.
    """
    pass


@main.command()
@click.option("-h", "--host", default=None, help="Host to bind to")
@click.option("-p", "--port", default=None, type=int, help="Port to listen on")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def serve(host: Optional[str], port: Optional[int], verbose: bool):
    """Start the web server."""
    import uvicorn

    configure_logging(verbose)
    settings = load_settings()
    host = host or settings.host
    port = port or settings.port

    console.print("[bold green]Starting LuaLink[/bold green]")
    console.print(f"[blue]http://{host}:{port}[/blue]")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    from lualink.web.app import create_app
    uvicorn.run(create_app(settings), host=host, port=port)


@main.group()
def config():
    """Show or change persisted settings."""
    pass


@config.command("show")
def config_show():
    """Print the effective settings."""
    settings = load_settings()
    table = Table(title=f"Settings ({settings_path()})")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key, value in settings.model_dump(mode="json").items():
        table.add_row(key, json.dumps(value))
    console.print(table)


@config.command("set")
@click.argument("key")
@click.argument("value")
def config_set(key: str, value: str):
    """Persist one setting.

    VALUE is read as JSON when it parses, otherwise as a plain string.

    Examples:

        lualink config set session_timeout_ms 10000

        lualink config set binary_extensions '[".elf", ".bin", ".self"]'
    """
    settings = load_settings()
    data = settings.model_dump(mode="json")
    if key not in data:
        console.print(f"[red]Error:[/red] Unknown setting: {key}")
        sys.exit(2)

    try:
        data[key] = json.loads(value)
    except json.JSONDecodeError:
        data[key] = value

    try:
        updated = Settings.model_validate(data)
    except PydanticValidationError as e:
        console.print(f"[red]Error:[/red] Invalid value for {key}: {e.errors()[0]['msg']}")
        sys.exit(2)

    if not save_settings(updated):
        console.print("[red]Error:[/red] Failed to save settings")
        sys.exit(1)
    console.print(f"[green]Saved[/green] {key} = {json.dumps(data[key])}")


@main.command()
def interfaces():
    """List local IPv4 interfaces."""
    found = InterfaceLister().list_interfaces()
    if not found:
        console.print("[red]No network interfaces found[/red]")
        sys.exit(1)

    table = Table(title="Local Interfaces")
    table.add_column("Interface", style="cyan")
    table.add_column("Address")
    table.add_column("Netmask", style="dim")
    for iface in found:
        table.add_row(iface.name, iface.ipv4, iface.netmask)
    console.print(table)


@main.command()
@click.option("-i", "--interface", default=None, help="Interface to scan from")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def scan(interface: Optional[str], as_json: bool, verbose: bool):
    """Scan the local /24 for devices with the loader port open."""
    configure_logging(verbose, quiet_level=logging.WARNING)
    settings = load_settings()
    scanner = SubnetScanner(
        primary_port=settings.primary_port,
        secondary_port=settings.secondary_port,
        probe_timeout=settings.probe_timeout,
        batch_size=settings.scan_batch_size,
    )

    try:
        with console.status("Scanning network...", spinner="dots"):
            result = asyncio.run(scanner.discover(interface))
    except InterfaceDiscoveryError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    console.print(f"[dim]Scanned from {result.selected.name} ({result.selected.ipv4})[/dim]")
    if not result.live_hosts:
        console.print("[yellow]No devices found[/yellow]")
        return

    table = Table(title=f"Devices ({len(result.live_hosts)})")
    table.add_column("Address", style="cyan")
    table.add_column("Open Ports")
    for host in result.live_hosts:
        table.add_row(host.ip, ", ".join(str(p) for p in host.open_ports))
    console.print(table)


@main.command()
def arp():
    """Show the OS ARP cache."""
    entries = asyncio.run(read_arp_table())
    if not entries:
        console.print("[yellow]ARP table is empty or unavailable[/yellow]")
        return

    table = Table(title="ARP Table")
    table.add_column("Address", style="cyan")
    table.add_column("MAC")
    for entry in entries:
        table.add_row(entry.ip, entry.mac)
    console.print(table)


@main.command()
@click.argument("ip")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-p", "--port", default=9026, type=int, help="Target port (default: 9026)")
@click.option("-t", "--timeout", default=None, type=float, help="Inactivity timeout in seconds")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def send(ip: str, payload: Path, port: int, timeout: Optional[float], verbose: bool):
    """Send a payload file to a device.

    Examples:

        lualink send 192.168.1.50 umtx.lua

        lualink send 192.168.1.50 elf_loader.lua -t 10

        lualink send 192.168.1.50 homebrew.elf -p 9021
    """
    configure_logging(verbose, quiet_level=logging.WARNING)
    settings = load_settings()
    if timeout is not None:
        settings = settings.model_copy(update={"session_timeout_ms": int(timeout * 1000)})

    try:
        target_ip, target_port = validate_target(ip, port)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(2)

    async def run_send() -> DeliveryResult:
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.subscribe("cli")

        async def printer():
            while True:
                print_event(await subscriber.get())

        task = asyncio.create_task(printer())
        try:
            store = PayloadStore(payload.parent, settings.uploads_dir)
            source = PayloadSource(name=payload.name, path=payload)
            return await deliver_payload(
                store, source, target_ip, target_port,
                broadcaster=broadcaster, settings=settings,
            )
        finally:
            task.cancel()
            while subscriber.pending():
                print_event(subscriber.get_nowait())
            broadcaster.unsubscribe(subscriber)

    try:
        result = asyncio.run(run_send())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)

    console.print()
    print_result(result)
    sys.exit(0 if result.success else 1)


if __name__ == "__main__":
    main()
