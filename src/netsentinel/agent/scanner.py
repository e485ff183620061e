# NetSentinel Agent - Device Scanner
"""
Scan sessions: enumerate the active subnet, probe every host, merge what
answers into the registry and mark the rest offline.
"""

import asyncio
import logging

from ..errors import InvalidAddressError, ScanError
from ..models import Device, ScanResult, utcnow
from .events import DeviceDiscovered, EventBus, EventType, NetworkChanged, ScanCompleted
from .prober import HostProber
from .registry import DeviceRegistry
from .subnet import enumerate_hosts, subnet_cidr

logger = logging.getLogger("netsentinel.agent.scanner")


class DeviceScanner:
    """Runs one scan session at a time."""

    def __init__(
        self,
        interface_provider,
        registry: DeviceRegistry,
        prober: HostProber,
        bus: EventBus | None = None,
    ):
        self.interface_provider = interface_provider
        self.registry = registry
        self.prober = prober
        self.bus = bus or EventBus()

        self._scanning = False
        self._stop = asyncio.Event()
        self._last_gateway: str | None = None
        self.last_result: ScanResult | None = None

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def cancel(self) -> None:
        """Stop the running session: no new probes, no absentee marking."""
        if self._scanning:
            logger.info("Scan cancellation requested")
            self._stop.set()

    async def is_device_online(self, ip: str) -> bool:
        return await self.prober.is_reachable(ip)

    async def scan(self) -> ScanResult | None:
        """
        Run a scan session.

        Returns:
            The session result, or None when a scan is already running or
            there is no active interface.

        Raises:
            ScanError: If the interface address or mask cannot be parsed.
        """
        if self._scanning:
            logger.warning("Scan already in progress, skipping")
            return None

        self._scanning = True
        self._stop = asyncio.Event()
        try:
            return await self._run_session()
        finally:
            self._scanning = False

    async def _run_session(self) -> ScanResult | None:
        snapshot = self.interface_provider.current()
        if snapshot is None:
            snapshot = await self.interface_provider.refresh()
        if snapshot is None:
            logger.warning("No active network interface, scan skipped")
            return None

        session_ts = utcnow()
        network_changed = await self._check_network_change(snapshot)

        try:
            hosts = enumerate_hosts(snapshot.address, snapshot.subnet_mask)
            subnet = subnet_cidr(snapshot.address, snapshot.subnet_mask)
        except InvalidAddressError as e:
            logger.error(f"Scan failed, bad interface address: {e}")
            raise ScanError(f"Cannot enumerate subnet of {snapshot.name}: {e}") from e

        result = ScanResult(
            started_at=session_ts,
            subnet=subnet,
            probed=len(hosts),
            network_changed=network_changed,
        )
        logger.info(f"Starting scan of {subnet} ({len(hosts)} hosts)")

        async def on_discovered(device: Device) -> None:
            stored = await self.registry.upsert(device)
            result.discovered.append(stored)
            self.bus.publish(EventType.DEVICE_DISCOVERED, DeviceDiscovered(stored))

        discovered = await self.prober.probe_all(
            hosts,
            gateway_ip=snapshot.gateway or None,
            interface_ip=snapshot.address,
            session_ts=session_ts,
            on_discovered=on_discovered,
            stop=self._stop,
        )

        if self._stop.is_set():
            result.cancelled = True
            logger.info(f"Scan cancelled after {len(discovered)} devices")
        else:
            result.marked_offline = await self.registry.mark_absent_offline(discovered, session_ts)

        result.finished_at = utcnow()
        self.last_result = result
        self.bus.publish(EventType.SCAN_COMPLETED, ScanCompleted(result))

        logger.info(
            f"Scan complete: {len(result.discovered)} online, "
            f"{len(result.marked_offline)} went offline, {result.duration:.1f}s"
        )
        return result

    async def _check_network_change(self, snapshot) -> bool:
        gateway = snapshot.gateway or None

        if self._last_gateway is None:
            self._last_gateway = gateway or ""
            logger.info(f"Network initialized: gateway {gateway}")
            return False

        if (gateway or "") == self._last_gateway:
            return False

        old = self._last_gateway or None
        logger.warning(f"Network changed: gateway {old} -> {gateway}")
        await self.registry.mark_all_offline(utcnow())
        self._last_gateway = gateway or ""
        self.bus.publish(EventType.NETWORK_CHANGED, NetworkChanged(old, gateway, snapshot))
        return True
