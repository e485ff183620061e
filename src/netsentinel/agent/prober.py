# NetSentinel Agent - Host Prober
"""
Per-address reachability probing with bounded concurrency.

A probe is: ping -> short settle -> neighbor cache lookup -> optional
reverse name lookup -> vendor and device type. Any failure means the host
is simply not discovered this session.
"""

import asyncio
import logging
import platform
import socket
from datetime import datetime
from typing import Awaitable, Callable, Iterable

from ..config import ScanSettings
from ..models import Device
from .classifier import DeviceClassifier, HeuristicClassifier, lookup_vendor
from .neighbors import NeighborTable

logger = logging.getLogger("netsentinel.agent.prober")

PingFunc = Callable[[str, float], Awaitable[bool]]
NeighborFunc = Callable[[str, str | None], Awaitable[str | None]]
ResolveFunc = Callable[[str, float], Awaitable[str | None]]
DiscoveredFunc = Callable[[Device], Awaitable[None]]


def ping_command(ip: str, timeout: float, system: str | None = None) -> list[str]:
    """Single echo request with a timeout, using the platform's flags."""
    system = system or platform.system()
    if system == "Windows":
        return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), ip]
    if system == "Darwin":
        return ["ping", "-c", "1", "-W", str(int(timeout * 1000)), ip]
    return ["ping", "-c", "1", "-W", str(max(1, round(timeout))), ip]


async def system_ping(ip: str, timeout: float) -> bool:
    proc = await asyncio.create_subprocess_exec(
        *ping_command(ip, timeout),
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        return await asyncio.wait_for(proc.wait(), timeout=timeout + 0.5) == 0
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return False


async def reverse_lookup(ip: str, timeout: float) -> str | None:
    """Resolve IP to hostname."""
    try:
        result = await asyncio.wait_for(
            asyncio.get_running_loop().run_in_executor(None, socket.gethostbyaddr, ip),
            timeout=timeout,
        )
        return result[0]
    except Exception:
        return None


class HostProber:
    """Probes addresses and builds Device records for the ones that answer."""

    def __init__(
        self,
        settings: ScanSettings | None = None,
        classifier: DeviceClassifier | None = None,
        ping: PingFunc | None = None,
        neighbors: NeighborFunc | None = None,
        resolver: ResolveFunc | None = None,
    ):
        self.settings = settings or ScanSettings()
        self.classifier = classifier or HeuristicClassifier()
        self._ping = ping or system_ping
        self._neighbors = neighbors or NeighborTable().lookup
        self._resolve = resolver or reverse_lookup

        self.in_flight = 0
        self.peak_in_flight = 0

    async def is_reachable(self, ip: str) -> bool:
        try:
            return await self._ping(ip, self.settings.ping_timeout)
        except Exception as e:
            logger.debug(f"Ping failed for {ip}: {e}")
            return False

    async def probe(
        self,
        ip: str,
        gateway_ip: str | None,
        interface_ip: str | None,
        session_ts: datetime,
    ) -> Device | None:
        """Probe a single address. Returns None for anything short of a full identification."""
        try:
            if not await self._ping(ip, self.settings.ping_timeout):
                return None

            if self.settings.neighbor_settle:
                await asyncio.sleep(self.settings.neighbor_settle)

            mac = await self._neighbors(ip, interface_ip)
            if not mac:
                logger.debug(f"{ip} replied but has no usable neighbor entry")
                return None

            hostname = None
            if self.settings.resolve_hostnames:
                try:
                    hostname = await self._resolve(ip, self.settings.resolve_timeout)
                except Exception as e:
                    logger.debug(f"Name lookup failed for {ip}: {e}")

            vendor = lookup_vendor(mac)
            return Device(
                mac_address=mac,
                ip_address=ip,
                vendor=vendor,
                hostname=hostname,
                first_seen=session_ts,
                last_seen=session_ts,
                is_online=True,
                is_gateway=ip == gateway_ip,
                device_type=self.classifier.classify(vendor, hostname, mac),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Probe failed for {ip}: {e}")
            return None

    async def probe_all(
        self,
        addresses: Iterable[str],
        gateway_ip: str | None,
        interface_ip: str | None,
        session_ts: datetime,
        on_discovered: DiscoveredFunc | None = None,
        stop: asyncio.Event | None = None,
    ) -> set[str]:
        """
        Probe every address, at most `max_concurrency` at a time.

        Once `stop` is set no new probe starts; probes already running finish.

        Returns:
            MAC addresses discovered this session.
        """
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        discovered: set[str] = set()

        async def run_one(ip: str) -> None:
            async with semaphore:
                if stop is not None and stop.is_set():
                    return
                self.in_flight += 1
                self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
                try:
                    device = await self.probe(ip, gateway_ip, interface_ip, session_ts)
                finally:
                    self.in_flight -= 1

            if device is None:
                return
            discovered.add(device.mac_address)
            if on_discovered is not None:
                try:
                    await on_discovered(device)
                except Exception as e:
                    logger.error(f"Discovery handler failed for {device.ip_address}: {e}")

        await asyncio.gather(*[run_one(ip) for ip in addresses])
        return discovered
