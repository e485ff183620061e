# NetSentinel Agent - Device Registry
"""
Owner of the device inventory. Devices are keyed by hardware address, so
an address that moves to a new IP updates the existing record.

All mutation goes through one lock; readers get copies.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable

from ..models import Device, NetworkInterfaceSnapshot
from ..storage import Store
from .subnet import same_subnet

logger = logging.getLogger("netsentinel.agent.registry")


class DeviceRegistry:
    """In-memory device inventory mirrored to a persistence sink."""

    def __init__(self, store: Store, interface_provider=None):
        self.store = store
        self.interface_provider = interface_provider
        self._devices: dict[str, Device] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> int:
        """Seed the registry from the sink. Returns the number of devices loaded."""
        try:
            devices = await self.store.all_devices()
        except Exception as e:
            logger.error(f"Failed to load device inventory: {e}")
            return 0

        async with self._lock:
            for device in devices:
                self._devices[device.mac_address] = device
        logger.info(f"Loaded {len(devices)} devices from inventory")
        return len(devices)

    async def _persist(self, devices: Iterable[Device]) -> None:
        for device in devices:
            try:
                await self.store.upsert_device(device)
            except Exception as e:
                logger.error(f"Failed to persist {device.mac_address}: {e}")

    async def upsert(self, device: Device) -> Device:
        """Insert or merge a discovered device. Returns a copy of the stored record."""
        async with self._lock:
            existing = self._devices.get(device.mac_address)
            if existing is None:
                stored = device.copy()
                stored.is_online = True
                self._devices[device.mac_address] = stored
                logger.debug(f"New device {stored.mac_address} at {stored.ip_address}")
            else:
                stored = existing
                if stored.ip_address != device.ip_address:
                    logger.debug(f"{stored.mac_address} moved {stored.ip_address} -> {device.ip_address}")
                stored.ip_address = device.ip_address
                stored.hostname = device.hostname or stored.hostname
                stored.vendor = device.vendor
                stored.device_type = device.device_type
                stored.is_gateway = device.is_gateway
                stored.is_online = True
                stored.last_seen = max(stored.last_seen, device.last_seen)
            result = stored.copy()

        await self._persist([result])
        return result

    async def mark_absent_offline(self, discovered_macs: set[str], session_ts: datetime) -> list[Device]:
        """
        Mark previously-online devices missing from this session as offline.
        Idempotent: a second call with the same inputs changes nothing.
        """
        async with self._lock:
            changed = []
            for device in self._devices.values():
                if device.is_online and device.mac_address not in discovered_macs:
                    device.is_online = False
                    device.last_seen = max(device.last_seen, session_ts)
                    changed.append(device.copy())

        if changed:
            logger.info(f"Marked {len(changed)} devices offline")
            await self._persist(changed)
        return changed

    async def mark_all_offline(self, ts: datetime) -> list[Device]:
        """Network changed: nothing from the old network is known to be reachable."""
        return await self.mark_absent_offline(set(), ts)

    def snapshot(self) -> list[Device]:
        return [d.copy() for d in self._devices.values()]

    def get(self, mac: str) -> Device | None:
        device = self._devices.get(mac)
        return device.copy() if device else None

    def __len__(self) -> int:
        return len(self._devices)

    def known_devices(self, snapshot: NetworkInterfaceSnapshot | None = None) -> list[Device]:
        """Devices in the current interface's subnet."""
        if snapshot is None and self.interface_provider is not None:
            snapshot = self.interface_provider.current()
        if snapshot is None:
            return []
        return [
            d for d in self.snapshot()
            if same_subnet(d.ip_address, snapshot.address, snapshot.subnet_mask)
        ]

    def online_devices(self, snapshot: NetworkInterfaceSnapshot | None = None) -> list[Device]:
        return [d for d in self.known_devices(snapshot) if d.is_online]

    def gateway(self, snapshot: NetworkInterfaceSnapshot | None = None) -> Device | None:
        """The device currently holding the gateway address, if known."""
        if snapshot is None and self.interface_provider is not None:
            snapshot = self.interface_provider.current()
        if snapshot is None or not snapshot.gateway:
            return None
        for device in self.known_devices(snapshot):
            if device.ip_address == snapshot.gateway and device.is_online:
                return device
        return None
