# NetSentinel Agent - Network Interface Detection
"""
Detects the active network interface: address, netmask, default gateway,
hardware address and (best effort) the wireless network name.
"""

import asyncio
import logging
import platform
import re
import socket
import struct
from pathlib import Path

import psutil

from ..models import NetworkInterfaceSnapshot
from .commands import run_command

logger = logging.getLogger("netsentinel.agent.interfaces")

PROC_ROUTE = Path("/proc/net/route")
RESOLV_CONF = Path("/etc/resolv.conf")

VIRTUAL_KEYWORDS = ("vmware", "virtualbox", "hyper-v", "docker", "wsl", "virtual", "vethernet", "veth", "br-")
WIRELESS_PREFIXES = ("wl", "wi-fi", "wifi", "wireless", "wlan")

RTF_GATEWAY = 0x2

_IPV4_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")


def parse_proc_route(text: str) -> list[tuple[str, str]]:
    """
    Default routes from /proc/net/route, lowest metric first.

    Returns:
        (interface name, gateway ip) pairs.
    """
    routes = []
    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 8:
            continue
        iface, destination, gateway, flags, metric = parts[0], parts[1], parts[2], parts[3], parts[6]
        try:
            if int(destination, 16) != 0 or not int(flags, 16) & RTF_GATEWAY:
                continue
            gateway_ip = socket.inet_ntoa(struct.pack("<L", int(gateway, 16)))
            routes.append((int(metric), iface, gateway_ip))
        except (ValueError, struct.error):
            continue
    return [(iface, gw) for _, iface, gw in sorted(routes)]


def parse_route_print(output: str) -> list[tuple[str, str]]:
    """
    Default routes from Windows `route print 0.0.0.0`.

    Returns:
        (interface address, gateway ip) pairs, lowest metric first.
    """
    routes = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[0] != "0.0.0.0" or parts[1] != "0.0.0.0":
            continue
        gateway, interface = parts[2], parts[3]
        if not _IPV4_RE.match(gateway) or not _IPV4_RE.match(interface):
            continue
        try:
            metric = int(parts[4])
        except ValueError:
            metric = 0
        routes.append((metric, interface, gateway))
    return [(iface, gw) for _, iface, gw in sorted(routes)]


def parse_bsd_route(output: str) -> list[tuple[str, str]]:
    """Default route from macOS `route -n get default`."""
    gateway = interface = None
    for line in output.splitlines():
        key, _, value = line.strip().partition(":")
        if key == "gateway":
            gateway = value.strip()
        elif key == "interface":
            interface = value.strip()
    if gateway and interface and _IPV4_RE.match(gateway):
        return [(interface, gateway)]
    return []


def parse_netsh_ssid(output: str) -> str | None:
    """SSID of the connected network from `netsh wlan show interfaces`."""
    for line in output.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == "SSID":
            value = value.strip()
            return value or None
    return None


def parse_resolv_conf(text: str) -> tuple[str, ...]:
    servers = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "nameserver":
            servers.append(parts[1])
    return tuple(servers)


def has_changed(old: NetworkInterfaceSnapshot | None, new: NetworkInterfaceSnapshot | None) -> bool:
    """True when the address, gateway or hardware address differ."""
    if old is None or new is None:
        return old is not new
    return (
        old.address != new.address
        or old.gateway != new.gateway
        or old.mac_address != new.mac_address
    )


def interface_key(snapshot: NetworkInterfaceSnapshot) -> str:
    """Identity of an attachment; a new key means a new network."""
    return f"{snapshot.name}/{snapshot.address}/{snapshot.gateway}"


def is_virtual(name: str) -> bool:
    lowered = name.lower()
    return any(keyword in lowered for keyword in VIRTUAL_KEYWORDS)


class InterfaceProvider:
    """
    Tracks the active interface.

    current() is cheap and returns the cached snapshot; refresh() re-detects.
    """

    def __init__(self, system: str | None = None):
        self.system = system or platform.system()
        self._current: NetworkInterfaceSnapshot | None = None

    def current(self) -> NetworkInterfaceSnapshot | None:
        return self._current

    async def refresh(self) -> NetworkInterfaceSnapshot | None:
        try:
            snapshot = await self._detect()
        except Exception as e:
            logger.error(f"Interface detection failed: {e}")
            return self._current

        if has_changed(self._current, snapshot):
            if self._current is not None:
                logger.warning(
                    f"Interface changed: {self._current.name} {self._current.address} "
                    f"-> {snapshot.name + ' ' + snapshot.address if snapshot else 'none'}"
                )
            elif snapshot is not None:
                logger.info(f"Network initialized: {snapshot.name} {snapshot.address} gw={snapshot.gateway}")
        self._current = snapshot
        return snapshot

    async def _detect(self) -> NetworkInterfaceSnapshot | None:
        loop = asyncio.get_running_loop()
        addrs, stats = await loop.run_in_executor(None, self._read_nics)
        routes = await self._default_routes()

        candidates = []
        for name, entries in addrs.items():
            stat = stats.get(name)
            if stat is not None and not stat.isup:
                continue
            if name.lower().startswith("lo") or "loopback" in name.lower() or is_virtual(name):
                continue

            ipv4 = next((a for a in entries if a.family == socket.AF_INET), None)
            if ipv4 is None or not ipv4.netmask or ipv4.address.startswith("127."):
                continue
            mac = next((a.address for a in entries if a.family == psutil.AF_LINK), "") or ""
            candidates.append((name, ipv4.address, ipv4.netmask, mac.upper().replace("-", ":")))

        if not candidates:
            return None

        chosen, gateway = candidates[0], ""
        for route_iface, route_gw in routes:
            match = next((c for c in candidates if route_iface in (c[0], c[1])), None)
            if match:
                chosen, gateway = match, route_gw
                break

        name, address, netmask, mac = chosen
        ssid = await self._wireless_ssid(name)

        return NetworkInterfaceSnapshot(
            name=name,
            address=address,
            subnet_mask=netmask,
            gateway=gateway,
            mac_address=mac,
            ssid=ssid,
            description=name,
            dns_servers=self._dns_servers(),
            is_wireless=ssid is not None or name.lower().startswith(WIRELESS_PREFIXES),
        )

    @staticmethod
    def _read_nics():
        return psutil.net_if_addrs(), psutil.net_if_stats()

    async def _default_routes(self) -> list[tuple[str, str]]:
        try:
            if self.system == "Windows":
                return parse_route_print(await run_command("route", "print", "0.0.0.0"))
            if self.system == "Linux" and PROC_ROUTE.exists():
                return parse_proc_route(PROC_ROUTE.read_text())
            return parse_bsd_route(await run_command("route", "-n", "get", "default"))
        except Exception as e:
            logger.debug(f"Gateway detection error: {e}")
            return []

    async def _wireless_ssid(self, name: str) -> str | None:
        try:
            if self.system == "Windows":
                return parse_netsh_ssid(await run_command("netsh", "wlan", "show", "interfaces"))
            if self.system == "Linux":
                return (await run_command("iwgetid", "-r", name)).strip() or None
        except Exception as e:
            logger.debug(f"SSID lookup failed: {e}")
        return None

    def _dns_servers(self) -> tuple[str, ...]:
        try:
            if RESOLV_CONF.exists():
                return parse_resolv_conf(RESOLV_CONF.read_text())
        except OSError:
            pass
        return ()


class StaticInterfaceProvider:
    """Provider returning a fixed snapshot; swap it with set()."""

    def __init__(self, snapshot: NetworkInterfaceSnapshot | None = None):
        self._current = snapshot

    def current(self) -> NetworkInterfaceSnapshot | None:
        return self._current

    async def refresh(self) -> NetworkInterfaceSnapshot | None:
        return self._current

    def set(self, snapshot: NetworkInterfaceSnapshot | None) -> None:
        self._current = snapshot
