"""Tests for the connection and bandwidth feeds."""

import socket
from collections import namedtuple
from datetime import date

import psutil
import pytest

from netsentinel.agent.feeds import (
    BandwidthMonitor,
    ByteCounters,
    ConnectionMonitor,
    _Sampler,
    compute_speeds,
    connection_records,
    summarize_connections,
)
from netsentinel.agent.interfaces import StaticInterfaceProvider
from netsentinel.models import NetworkConnection, NetworkInterfaceSnapshot


Conn = namedtuple("Conn", "type status laddr raddr pid", defaults=((), (), None))
Addr = namedtuple("Addr", "ip port")
Nic = namedtuple("Nic", "bytes_sent bytes_recv")


def tcp(status):
    return Conn(socket.SOCK_STREAM, status)


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestSummarize:
    """Counting psutil connection records."""

    def test_counts(self):
        conns = [
            tcp(psutil.CONN_ESTABLISHED),
            tcp(psutil.CONN_ESTABLISHED),
            tcp(psutil.CONN_TIME_WAIT),
            tcp(psutil.CONN_LISTEN),
            Conn(socket.SOCK_DGRAM, psutil.CONN_NONE),
        ]
        stats = summarize_connections(connection_records(conns))

        assert stats.total == 5
        assert stats.established == 2
        assert stats.tcp == 3
        assert stats.listening == 1
        assert stats.udp == 1

    def test_empty(self):
        assert summarize_connections([]).total == 0


class TestConnectionRecords:
    """Converting psutil connection tuples to records."""

    def test_endpoints_and_process(self):
        names = []

        def resolve(pid):
            names.append(pid)
            return "firefox"

        conns = [
            Conn(socket.SOCK_STREAM, psutil.CONN_ESTABLISHED,
                 Addr("192.168.1.10", 51000), Addr("93.184.216.34", 443), 4242),
            Conn(socket.SOCK_STREAM, psutil.CONN_TIME_WAIT,
                 Addr("192.168.1.10", 51001), Addr("93.184.216.34", 443), 4242),
            Conn(socket.SOCK_DGRAM, psutil.CONN_NONE, Addr("0.0.0.0", 5353)),
        ]
        records = connection_records(conns, resolve)

        assert records[0] == NetworkConnection(
            local_address="192.168.1.10",
            local_port=51000,
            remote_address="93.184.216.34",
            remote_port=443,
            protocol="TCP",
            state=psutil.CONN_ESTABLISHED,
            pid=4242,
            process_name="firefox",
        )
        assert records[2].protocol == "UDP"
        assert records[2].remote_address == ""
        assert records[2].remote_port == 0
        assert records[2].pid is None
        assert records[2].process_name == ""
        assert names == [4242]

    def test_process_gone(self, monkeypatch):
        def vanished(pid):
            raise psutil.NoSuchProcess(pid)

        monkeypatch.setattr(psutil, "Process", vanished)
        conns = [Conn(socket.SOCK_STREAM, psutil.CONN_LISTEN, Addr("0.0.0.0", 22), (), 1)]

        assert connection_records(conns)[0].process_name == ""


class TestComputeSpeeds:
    def test_kilobits_per_second(self):
        speeds = compute_speeds(ByteCounters(0, 0), ByteCounters(125_000, 250_000), 1.0)

        assert speeds.upload_kbps == pytest.approx(1000.0)
        assert speeds.download_kbps == pytest.approx(2000.0)

    def test_scales_with_elapsed(self):
        speeds = compute_speeds(ByteCounters(0, 0), ByteCounters(125_000, 0), 2.0)
        assert speeds.upload_kbps == pytest.approx(500.0)

    def test_rollover_skipped(self):
        assert compute_speeds(ByteCounters(1000, 1000), ByteCounters(10, 2000), 1.0) is None

    def test_empty_interval_skipped(self):
        assert compute_speeds(ByteCounters(0, 0), ByteCounters(10, 10), 0) is None


class TestSampler:
    def test_sample_is_abstract(self):
        class Incomplete(_Sampler):
            name = "incomplete"

        with pytest.raises(TypeError):
            _Sampler(1.0)
        with pytest.raises(TypeError):
            Incomplete(1.0)


class TestConnectionMonitor:
    @pytest.mark.asyncio
    async def test_sample_updates_latest(self):
        monitor = ConnectionMonitor(source=lambda: [tcp(psutil.CONN_ESTABLISHED)] * 4)
        assert monitor.latest_stats().total == 0

        stats = await monitor.sample()

        assert stats.established == 4
        assert monitor.latest_stats() == stats

    @pytest.mark.asyncio
    async def test_latest_connections(self):
        conns = [
            Conn(socket.SOCK_STREAM, psutil.CONN_ESTABLISHED, Addr("10.0.0.2", 40000), Addr("10.0.0.9", 22), 7),
            Conn(socket.SOCK_STREAM, psutil.CONN_LISTEN, Addr("0.0.0.0", 8080), (), 7),
        ]
        monitor = ConnectionMonitor(source=lambda: conns, resolve_name=lambda pid: "sshd")
        assert monitor.latest_connections() == []

        stats = await monitor.sample()
        records = monitor.latest_connections()

        assert [(c.remote_address, c.remote_port) for c in records] == [("10.0.0.9", 22), ("", 0)]
        assert {c.process_name for c in records} == {"sshd"}
        assert stats.established == 1
        assert stats.listening == 1
        assert stats.total == len(records)

    @pytest.mark.asyncio
    async def test_start_stop(self):
        monitor = ConnectionMonitor(interval=0.01, source=lambda: [])
        await monitor.start()
        assert monitor.running

        await monitor.stop()
        assert not monitor.running


class TestBandwidthMonitor:
    """Speeds from successive NIC counter readings."""

    def make(self, readings, provider=None):
        clock = FakeClock()
        queue = list(readings)
        monitor = BandwidthMonitor(interface_provider=provider, source=lambda: queue.pop(0), clock=clock)
        return monitor, clock

    @pytest.mark.asyncio
    async def test_first_sample_has_no_speed(self):
        monitor, _ = self.make([{"eth0": Nic(0, 0)}])

        assert await monitor.sample() is None
        assert monitor.latest_speeds().download_kbps == 0

    @pytest.mark.asyncio
    async def test_speed_and_daily_totals(self):
        monitor, clock = self.make([{"eth0": Nic(0, 0)}, {"eth0": Nic(125_000, 1_250_000)}])
        await monitor.sample()
        clock.now = 1.0

        speeds = await monitor.sample()

        assert speeds.upload_kbps == pytest.approx(1000.0)
        assert speeds.download_kbps == pytest.approx(10000.0)
        assert monitor.total_sent_today == 125_000
        assert monitor.total_recv_today == 1_250_000

    @pytest.mark.asyncio
    async def test_rollover_keeps_previous_speed(self):
        monitor, clock = self.make([
            {"eth0": Nic(0, 0)},
            {"eth0": Nic(1000, 1000)},
            {"eth0": Nic(10, 10)},
        ])
        await monitor.sample()
        clock.now = 1.0
        first = await monitor.sample()
        clock.now = 2.0

        assert await monitor.sample() is None
        assert monitor.latest_speeds() == first

    @pytest.mark.asyncio
    async def test_loopback_and_virtual_excluded(self):
        monitor, clock = self.make([
            {"lo": Nic(0, 0), "docker0": Nic(0, 0), "eth0": Nic(0, 0)},
            {"lo": Nic(999_999, 999_999), "docker0": Nic(999_999, 999_999), "eth0": Nic(1000, 0)},
        ])
        await monitor.sample()
        clock.now = 1.0

        speeds = await monitor.sample()
        assert speeds.upload_kbps == pytest.approx(8.0)

    @pytest.mark.asyncio
    async def test_active_interface_only(self):
        provider = StaticInterfaceProvider(NetworkInterfaceSnapshot(
            name="wlan0", address="192.168.1.10", subnet_mask="255.255.255.0", gateway="192.168.1.1",
        ))
        monitor, clock = self.make([
            {"eth0": Nic(0, 0), "wlan0": Nic(0, 0)},
            {"eth0": Nic(50_000, 0), "wlan0": Nic(1000, 0)},
        ], provider)
        await monitor.sample()
        clock.now = 1.0

        speeds = await monitor.sample()
        assert speeds.upload_kbps == pytest.approx(8.0)

    @pytest.mark.asyncio
    async def test_daily_totals_reset(self):
        monitor, clock = self.make([{"eth0": Nic(0, 0)}, {"eth0": Nic(100, 100)}])
        monitor.total_sent_today = 5000
        monitor._day = date(2000, 1, 1)
        await monitor.sample()
        clock.now = 1.0
        await monitor.sample()

        assert monitor.total_sent_today == 100
