"""Command-line interface for NetSentinel."""

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from netsentinel import __version__
from netsentinel.agent.alerts import AlertService
from netsentinel.agent.daemon import NetSentinelDaemon, run_daemon
from netsentinel.agent.detector import default_rules
from netsentinel.agent.interfaces import InterfaceProvider, StaticInterfaceProvider
from netsentinel.agent.registry import DeviceRegistry
from netsentinel.agent.subnet import (
    broadcast_address,
    enumerate_hosts,
    network_address,
    prefix_length,
    usable_host_count,
)
from netsentinel.config import NetSentinelConfig, load_config
from netsentinel.errors import ConfigError, InvalidAddressError, NetSentinelError
from netsentinel.models import AlertSeverity, Device, NetworkInterfaceSnapshot
from netsentinel.storage import JsonStore


console = Console()

SEVERITY_STYLES = {
    AlertSeverity.CRITICAL: "[red]CRITICAL[/red]",
    AlertSeverity.WARNING: "[yellow]WARNING[/yellow]",
    AlertSeverity.INFO: "[blue]INFO[/blue]",
}


def _read_store(coro):
    """Run a data-directory read, exiting on unreadable files."""
    try:
        return asyncio.run(coro)
    except NetSentinelError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _config(ctx: click.Context) -> NetSentinelConfig:
    return ctx.obj["config"]


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_devices(devices: list[Device], title: str) -> None:
    table = Table(title=title)
    table.add_column("IP", style="cyan")
    table.add_column("MAC")
    table.add_column("Vendor")
    table.add_column("Hostname")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Last Seen", style="dim")

    for device in sorted(devices, key=lambda d: tuple(int(p) for p in d.ip_address.split("."))):
        status = "[green]online[/green]" if device.is_online else "[dim]offline[/dim]"
        ip = f"{device.ip_address} (gw)" if device.is_gateway else device.ip_address
        table.add_row(
            ip,
            device.mac_address,
            device.vendor,
            device.hostname or "-",
            device.device_type.value.replace("_", " "),
            status,
            device.last_seen.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="netsentinel")
@click.option("-c", "--config", "config_path", type=click.Path(dir_okay=False),
              default=None, help="YAML configuration file")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str]):
    """NetSentinel - local network discovery and security monitoring.

    Finds devices on your subnet and watches for gateway spoofing,
    unknown devices, traffic spikes and connection floods.
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


@main.command()
@click.argument("address")
@click.argument("mask")
@click.option("--list", "list_hosts", is_flag=True, help="Print every usable host address")
def subnet(address: str, mask: str, list_hosts: bool):
    """Show the subnet of ADDRESS with netmask MASK."""
    try:
        table = Table(title=f"Subnet of {address}", show_header=False)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Network", f"{network_address(address, mask)}/{prefix_length(mask)}")
        table.add_row("Broadcast", broadcast_address(address, mask))
        table.add_row("Usable hosts", str(usable_host_count(mask)))
        console.print(table)

        if list_hosts:
            for host in enumerate_hosts(address, mask):
                print(host)
    except InvalidAddressError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@main.command()
def interface():
    """Show the active network interface."""
    snapshot = asyncio.run(InterfaceProvider().refresh())
    if snapshot is None:
        console.print("[yellow]No active network interface found[/yellow]")
        sys.exit(1)

    lines = [
        f"[bold]Name:[/bold] {snapshot.name}",
        f"[bold]Address:[/bold] {snapshot.address}/{snapshot.subnet_mask}",
        f"[bold]Gateway:[/bold] {snapshot.gateway or '-'}",
        f"[bold]MAC:[/bold] {snapshot.mac_address or '-'}",
        f"[bold]Wireless:[/bold] {'yes' if snapshot.is_wireless else 'no'}"
        + (f" ({snapshot.ssid})" if snapshot.ssid else ""),
        f"[bold]DNS:[/bold] {', '.join(snapshot.dns_servers) or '-'}",
    ]
    console.print(Panel("\n".join(lines), title="Active Interface", border_style="cyan"))


@main.command()
@click.option("-n", "--concurrency", default=None, type=int, help="Probes in flight at once")
@click.option("--address", default=None, help="Override interface address")
@click.option("--mask", default=None, help="Override subnet mask")
@click.option("--gateway", default=None, help="Override gateway address")
@click.option("--json", "as_json", is_flag=True, help="Print the scan result as JSON")
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def scan(ctx: click.Context, concurrency: Optional[int], address: Optional[str],
         mask: Optional[str], gateway: Optional[str], as_json: bool, verbose: bool):
    """Run one discovery scan of the local subnet."""
    if verbose:
        _setup_logging(verbose)

    config = _config(ctx)
    if concurrency:
        config.scan.max_concurrency = concurrency

    provider = None
    if address or mask:
        if not (address and mask):
            console.print("[red]Error:[/red] --address and --mask must be given together")
            sys.exit(2)
        provider = StaticInterfaceProvider(NetworkInterfaceSnapshot(
            name="manual",
            address=address,
            subnet_mask=mask,
            gateway=gateway or "",
        ))

    daemon = NetSentinelDaemon(config, interface_provider=provider)

    async def run_scan():
        await daemon.registry.load()
        if not as_json:
            console.print("[cyan]Scanning...[/cyan]")
        return await daemon.scanner.scan()

    try:
        result = asyncio.run(run_scan())
    except NetSentinelError as e:
        console.print(f"[red]Scan failed:[/red] {e}")
        sys.exit(1)

    if result is None:
        console.print("[yellow]No scan performed (no active interface)[/yellow]")
        sys.exit(1)

    if as_json:
        console.print_json(json.dumps(result.to_dict()))
        return

    print_devices(result.discovered, f"Scan of {result.subnet}: {len(result.discovered)} online")
    if result.network_changed:
        console.print("[yellow]Network changed since the last scan[/yellow]")
    if result.marked_offline:
        console.print(f"[dim]{len(result.marked_offline)} devices went offline[/dim]")
    console.print(f"[dim]{result.probed} addresses probed in {result.duration:.1f}s[/dim]")


@main.command()
@click.option("--all", "show_all", is_flag=True, help="Include devices from other networks")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
@click.pass_context
def devices(ctx: click.Context, show_all: bool, as_json: bool):
    """List devices from the inventory."""
    config = _config(ctx)
    provider = InterfaceProvider()
    registry = DeviceRegistry(JsonStore(config.data_dir), provider)

    async def load():
        await registry.load()
        if show_all:
            return registry.snapshot()
        await provider.refresh()
        return registry.known_devices()

    found = asyncio.run(load())

    if as_json:
        console.print_json(json.dumps([d.to_dict() for d in found]))
        return

    if not found:
        console.print("[dim]No devices known. Run 'netsentinel scan' first.[/dim]")
        return

    online = sum(1 for d in found if d.is_online)
    print_devices(found, f"Device Inventory ({len(found)} total, {online} online)")


@main.command()
@click.option("-n", "--count", default=20, type=int, help="Number of alerts to show")
@click.option("--unread", is_flag=True, help="Only unread alerts")
@click.option("--mark-read", "mark_read", default=None, help="Mark an alert as read by id")
@click.pass_context
def alerts(ctx: click.Context, count: int, unread: bool, mark_read: Optional[str]):
    """View security alerts."""
    service = AlertService(JsonStore(_config(ctx).data_dir), notify=False)

    if mark_read:
        if _read_store(service.mark_read(mark_read)):
            console.print(f"[green]Marked {mark_read} as read[/green]")
        else:
            console.print(f"[red]No alert with id {mark_read}[/red]")
            sys.exit(1)
        return

    entries = _read_store(service.recent(count))
    if unread:
        entries = [a for a in entries if not a.is_read]

    if not entries:
        console.print("[dim]No alerts[/dim]")
        return

    table = Table(title=f"Security Alerts (showing {len(entries)})")
    table.add_column("Time", style="dim")
    table.add_column("Severity", style="bold")
    table.add_column("Title")
    table.add_column("Source")
    table.add_column("Id", style="dim")

    for alert in entries:
        title = alert.title if alert.is_read else f"[bold]{alert.title}[/bold]"
        table.add_row(
            alert.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            SEVERITY_STYLES.get(alert.severity, alert.severity.value),
            title,
            alert.source_ip or "-",
            alert.alert_id,
        )

    console.print(table)


@main.command()
@click.pass_context
def rules(ctx: click.Context):
    """Show the detection rules."""
    config = _config(ctx)
    settings = _read_store(JsonStore(config.data_dir).latest_settings()) or config.settings

    table = Table(title="Detection Rules")
    table.add_column("Rule", style="cyan")
    table.add_column("Severity")
    table.add_column("Interval", justify="right")
    table.add_column("Threshold", justify="right")
    table.add_column("Description")

    for rule in default_rules(settings):
        table.add_row(
            rule.name,
            SEVERITY_STYLES.get(rule.severity, rule.severity.value),
            f"{rule.interval:g}s",
            f"{rule.threshold:g}" if rule.threshold else "-",
            rule.description,
        )

    console.print(table)


@main.command()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
@click.pass_context
def run(ctx: click.Context, verbose: bool):
    """Run the monitoring daemon until interrupted."""
    console.print(Panel.fit(
        "[bold cyan]NETSENTINEL[/bold cyan]\n"
        "[dim]Scanning and monitoring the local network. Ctrl+C to stop.[/dim]",
        border_style="cyan",
    ))

    try:
        asyncio.run(run_daemon(_config(ctx), verbose=verbose))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping...[/yellow]")


if __name__ == "__main__":
    main()
