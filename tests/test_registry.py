"""Tests for the device registry."""

from datetime import datetime, timedelta, timezone

import pytest

from netsentinel.agent.interfaces import StaticInterfaceProvider
from netsentinel.agent.registry import DeviceRegistry
from netsentinel.errors import StorageError
from netsentinel.models import Device, DeviceType, NetworkInterfaceSnapshot
from netsentinel.storage import MemoryStore


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

HOME = NetworkInterfaceSnapshot(
    name="eth0",
    address="192.168.1.10",
    subnet_mask="255.255.255.0",
    gateway="192.168.1.1",
)


class FailingStore(MemoryStore):
    """Store whose writes always fail."""

    async def upsert_device(self, device):
        raise StorageError("disk full")


def seen(ip: str, mac: str, ts: datetime = T0, **kwargs) -> Device:
    return Device(mac_address=mac, ip_address=ip, first_seen=ts, last_seen=ts, is_online=True, **kwargs)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store):
    return DeviceRegistry(store, StaticInterfaceProvider(HOME))


class TestUpsert:
    """One record per hardware address."""

    @pytest.mark.asyncio
    async def test_insert(self, registry, store):
        stored = await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))

        assert stored.is_online
        assert len(registry) == 1
        assert "AA:00:00:00:00:01" in store.devices

    @pytest.mark.asyncio
    async def test_ip_reuse_updates_existing(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        later = T0 + timedelta(minutes=5)
        stored = await registry.upsert(seen("192.168.1.21", "AA:00:00:00:00:01", later,
                                            hostname="desk", device_type=DeviceType.DESKTOP))

        assert len(registry) == 1
        assert stored.ip_address == "192.168.1.21"
        assert stored.first_seen == T0
        assert stored.last_seen == later
        assert stored.hostname == "desk"
        assert stored.device_type == DeviceType.DESKTOP

    @pytest.mark.asyncio
    async def test_last_seen_never_moves_back(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01", T0))
        stored = await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01", T0 - timedelta(hours=1)))

        assert stored.last_seen == T0

    @pytest.mark.asyncio
    async def test_keeps_hostname_when_lookup_fails(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01", hostname="printer"))
        stored = await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))

        assert stored.hostname == "printer"

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        registry.snapshot()[0].ip_address = "1.2.3.4"

        assert registry.get("AA:00:00:00:00:01").ip_address == "192.168.1.20"

    @pytest.mark.asyncio
    async def test_store_failure_does_not_raise(self):
        registry = DeviceRegistry(FailingStore(), StaticInterfaceProvider(HOME))
        stored = await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))

        assert stored.is_online
        assert len(registry) == 1


class TestOffline:
    """Absentee marking and network clears."""

    @pytest.mark.asyncio
    async def test_mark_absent(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        await registry.upsert(seen("192.168.1.21", "AA:00:00:00:00:02"))

        session = T0 + timedelta(minutes=5)
        changed = await registry.mark_absent_offline({"AA:00:00:00:00:01"}, session)

        assert [d.mac_address for d in changed] == ["AA:00:00:00:00:02"]
        assert registry.get("AA:00:00:00:00:01").is_online
        gone = registry.get("AA:00:00:00:00:02")
        assert not gone.is_online
        assert gone.last_seen == session

    @pytest.mark.asyncio
    async def test_idempotent(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        session = T0 + timedelta(minutes=5)

        await registry.mark_absent_offline(set(), session)
        before = registry.snapshot()
        again = await registry.mark_absent_offline(set(), session)

        assert again == []
        assert registry.snapshot() == before

    @pytest.mark.asyncio
    async def test_offline_keeps_later_last_seen(self, registry):
        later = T0 + timedelta(hours=1)
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01", later))
        await registry.mark_absent_offline(set(), T0)

        assert registry.get("AA:00:00:00:00:01").last_seen == later

    @pytest.mark.asyncio
    async def test_mark_all_offline(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        await registry.upsert(seen("192.168.1.21", "AA:00:00:00:00:02"))

        changed = await registry.mark_all_offline(T0)

        assert len(changed) == 2
        assert registry.online_devices() == []


class TestQueries:
    """Subnet-scoped views."""

    @pytest.mark.asyncio
    async def test_known_devices_filtered_to_subnet(self, registry):
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))
        await registry.upsert(seen("10.0.0.20", "AA:00:00:00:00:02"))

        assert [d.mac_address for d in registry.known_devices()] == ["AA:00:00:00:00:01"]
        assert len(registry.snapshot()) == 2

    @pytest.mark.asyncio
    async def test_no_interface_means_nothing_known(self, store):
        registry = DeviceRegistry(store, StaticInterfaceProvider(None))
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:01"))

        assert registry.known_devices() == []
        assert registry.gateway() is None

    @pytest.mark.asyncio
    async def test_gateway(self, registry):
        await registry.upsert(seen("192.168.1.1", "AA:00:00:00:00:01", is_gateway=True))
        await registry.upsert(seen("192.168.1.20", "AA:00:00:00:00:02"))

        assert registry.gateway().mac_address == "AA:00:00:00:00:01"

    @pytest.mark.asyncio
    async def test_load_from_store(self, store):
        await store.upsert_device(seen("192.168.1.20", "AA:00:00:00:00:01"))
        registry = DeviceRegistry(store, StaticInterfaceProvider(HOME))

        assert await registry.load() == 1
        assert registry.get("AA:00:00:00:00:01") is not None
