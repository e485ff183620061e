# NetSentinel Agent - Neighbor Table
"""
Hardware address resolution from the OS neighbor (ARP) cache.

Parsers for the formats we read:
- Windows `arp -a` (grouped by "Interface:" sections)
- Linux `ip neigh`
- Linux /proc/net/arp
- macOS/BSD `arp -n`, which drops leading zeros from each octet
"""

import logging
import platform
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from .classifier import is_valid_mac, normalize_mac
from .commands import run_command

logger = logging.getLogger("netsentinel.agent.neighbors")

PROC_ARP = Path("/proc/net/arp")

_IPV4_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
_INTERFACE_RE = re.compile(r"^Interface:\s+(\d{1,3}(?:\.\d{1,3}){3})")
_BSD_ARP_RE = re.compile(r"\((\d{1,3}(?:\.\d{1,3}){3})\)\s+at\s+(\S+)")
_SHORT_OCTETS_RE = re.compile(r"^[0-9A-Fa-f]{1,2}(:[0-9A-Fa-f]{1,2}){5}$")

# /proc/net/arp flag bits
ATF_COM = 0x02
ATF_PERM = 0x04


class EntryKind(str, Enum):
    """Neighbor cache entry kinds."""
    DYNAMIC = "dynamic"
    STATIC = "static"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class NeighborEntry:
    """One row of the neighbor cache."""
    ip: str
    mac: str
    kind: EntryKind = EntryKind.DYNAMIC
    interface: str | None = None  # interface address, when the source groups by it


def _kind_from_text(text: str) -> EntryKind:
    text = text.lower()
    if "incomplete" in text or "failed" in text:
        return EntryKind.INCOMPLETE
    if "static" in text or "permanent" in text:
        return EntryKind.STATIC
    return EntryKind.DYNAMIC


def parse_windows_arp(output: str) -> list[NeighborEntry]:
    """
    Parse `arp -a` output from Windows.

        Interface: 192.168.1.10 --- 0xb
          Internet Address      Physical Address      Type
          192.168.1.1           aa-bb-cc-dd-ee-ff     dynamic
    """
    entries = []
    interface = None

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue

        match = _INTERFACE_RE.match(line)
        if match:
            interface = match.group(1)
            continue

        parts = line.split()
        if len(parts) < 3 or not _IPV4_RE.match(parts[0]):
            continue

        entries.append(NeighborEntry(
            ip=parts[0],
            mac=parts[1],
            kind=_kind_from_text(" ".join(parts[2:])),
            interface=interface,
        ))

    return entries


def parse_ip_neigh(output: str) -> list[NeighborEntry]:
    """Parse `ip neigh` output, e.g. `192.168.1.1 dev wlan0 lladdr aa:bb:.. REACHABLE`."""
    entries = []

    for line in output.splitlines():
        parts = line.split()
        if not parts or not _IPV4_RE.match(parts[0]):
            continue

        mac = ""
        if "lladdr" in parts:
            idx = parts.index("lladdr")
            if idx + 1 < len(parts):
                mac = parts[idx + 1]

        state = parts[-1]
        kind = _kind_from_text(state)
        if not mac:
            kind = EntryKind.INCOMPLETE

        entries.append(NeighborEntry(ip=parts[0], mac=mac, kind=kind))

    return entries


def parse_proc_arp(text: str) -> list[NeighborEntry]:
    """Parse the kernel ARP table from /proc/net/arp."""
    entries = []

    for line in text.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 4 or not _IPV4_RE.match(parts[0]):
            continue

        try:
            flags = int(parts[2], 16)
        except ValueError:
            continue

        if not flags & ATF_COM:
            kind = EntryKind.INCOMPLETE
        elif flags & ATF_PERM:
            kind = EntryKind.STATIC
        else:
            kind = EntryKind.DYNAMIC

        entries.append(NeighborEntry(ip=parts[0], mac=parts[3], kind=kind))

    return entries


def _pad_octets(mac: str) -> str:
    """`0:1a:2b:3:4:5` -> `00:1a:2b:03:04:05`; anything else is returned unchanged."""
    if not _SHORT_OCTETS_RE.match(mac):
        return mac
    return ":".join(octet.zfill(2) for octet in mac.split(":"))


def parse_bsd_arp(output: str) -> list[NeighborEntry]:
    """Parse macOS/BSD `arp -n` output, e.g. `? (192.168.1.1) at aa:bb:.. on en0 ifscope [ethernet]`."""
    entries = []

    for line in output.splitlines():
        match = _BSD_ARP_RE.search(line)
        if not match:
            continue
        ip, mac = match.groups()
        if "incomplete" in mac:
            kind = EntryKind.INCOMPLETE
        elif "permanent" in line:
            kind = EntryKind.STATIC
        else:
            kind = EntryKind.DYNAMIC
        entries.append(NeighborEntry(ip=ip, mac=_pad_octets(mac), kind=kind))

    return entries


def _is_placeholder_mac(mac: str) -> bool:
    stripped = mac.replace("-", "").replace(":", "").replace(".", "")
    return not stripped.strip("0") or not stripped.strip("f").strip("F")


def select_hardware_address(
    entries: Iterable[NeighborEntry],
    ip: str,
    interface_ip: str | None = None,
) -> str | None:
    """
    Pick the hardware address for `ip` from parsed neighbor entries.

    Incomplete, static, all-zero and truncated entries are rejected. When the
    source groups entries per interface, only the active interface counts.

    Returns:
        The MAC in upper-case colon form, or None.
    """
    for entry in entries:
        if entry.ip != ip:
            continue

        if interface_ip and entry.interface and entry.interface != interface_ip:
            continue

        mac = entry.mac.strip()

        if entry.kind == EntryKind.INCOMPLETE or "incomplete" in mac.lower():
            logger.debug(f"Rejected incomplete neighbor entry for {ip}")
            continue

        if len(mac) < 12 or _is_placeholder_mac(mac):
            logger.debug(f"Rejected placeholder MAC {mac!r} for {ip}")
            continue

        if entry.kind == EntryKind.STATIC:
            logger.debug(f"Rejected static neighbor entry for {ip}")
            continue

        if not is_valid_mac(mac):
            logger.debug(f"Rejected malformed MAC {mac!r} for {ip}")
            continue

        return normalize_mac(mac)

    return None


class NeighborTable:
    """Reads the OS neighbor cache for the current platform."""

    def __init__(self, timeout: float = 5.0, system: str | None = None):
        self.timeout = timeout
        self.system = system or platform.system()

    async def entries(self, ip: str | None = None) -> list[NeighborEntry]:
        if self.system == "Windows":
            return parse_windows_arp(await run_command("arp", "-a", timeout=self.timeout))

        if self.system == "Linux":
            if PROC_ARP.exists():
                return parse_proc_arp(PROC_ARP.read_text())
            args = ["ip", "neigh", "show"] + ([ip] if ip else [])
            return parse_ip_neigh(await run_command(*args, timeout=self.timeout))

        args = ["arp", "-n"] + ([ip] if ip else ["-a"])
        return parse_bsd_arp(await run_command(*args, timeout=self.timeout))

    async def lookup(self, ip: str, interface_ip: str | None = None) -> str | None:
        """Resolve `ip` to a hardware address; any failure yields None."""
        try:
            entries = await self.entries(ip)
        except Exception as e:
            logger.debug(f"Neighbor lookup failed for {ip}: {e}")
            return None
        return select_hardware_address(entries, ip, interface_ip)
