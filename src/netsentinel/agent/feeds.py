# NetSentinel Agent - Connection & Bandwidth Feeds
"""
Periodic samplers publishing the latest connection counts and NIC
throughput. The detector reads the latest values; it never drives them.
"""

import asyncio
import logging
import socket
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable

import psutil

from ..models import BandwidthSpeeds, ConnectionStats, NetworkConnection, utcnow
from .interfaces import is_virtual

logger = logging.getLogger("netsentinel.agent.feeds")


def process_name(pid: int) -> str:
    try:
        return psutil.Process(pid).name()
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return ""


def connection_records(
    connections: Iterable,
    resolve_name: Callable[[int], str] = process_name,
) -> list[NetworkConnection]:
    """
    Convert psutil connection tuples (type, status, laddr, raddr, pid) to
    NetworkConnection records. Each pid is resolved to a process name once.
    """
    names: dict[int, str] = {}
    records = []
    for conn in connections:
        local_address, local_port = conn.laddr if conn.laddr else ("", 0)
        remote_address, remote_port = conn.raddr if conn.raddr else ("", 0)
        pid = conn.pid
        if pid and pid not in names:
            names[pid] = resolve_name(pid)
        records.append(NetworkConnection(
            local_address=local_address,
            local_port=local_port,
            remote_address=remote_address,
            remote_port=remote_port,
            protocol="UDP" if conn.type == socket.SOCK_DGRAM else "TCP",
            state=conn.status,
            pid=pid,
            process_name=names.get(pid, "") if pid else "",
        ))
    return records


def summarize_connections(connections: Iterable[NetworkConnection]) -> ConnectionStats:
    total = tcp = udp = listening = established = 0
    for conn in connections:
        total += 1
        if conn.protocol == "UDP":
            udp += 1
            continue
        if conn.state == psutil.CONN_LISTEN:
            listening += 1
            continue
        tcp += 1
        if conn.state == psutil.CONN_ESTABLISHED:
            established += 1
    return ConnectionStats(
        total=total,
        established=established,
        tcp=tcp,
        udp=udp,
        listening=listening,
    )


@dataclass(frozen=True)
class ByteCounters:
    bytes_sent: int
    bytes_recv: int


def compute_speeds(
    previous: ByteCounters,
    current: ByteCounters,
    elapsed: float,
    timestamp: datetime | None = None,
) -> BandwidthSpeeds | None:
    """
    Throughput between two counter readings in kilobits per second.

    Returns:
        None when the interval is empty or a counter went backwards
        (rollover or NIC reset); the sample is skipped.
    """
    if elapsed <= 0:
        return None
    sent = current.bytes_sent - previous.bytes_sent
    recv = current.bytes_recv - previous.bytes_recv
    if sent < 0 or recv < 0:
        return None
    return BandwidthSpeeds(
        upload_kbps=sent * 8 / (elapsed * 1000),
        download_kbps=recv * 8 / (elapsed * 1000),
        timestamp=timestamp or utcnow(),
    )


class _Sampler(ABC):
    """Shared start/stop loop for the feeds."""

    name = "sampler"

    def __init__(self, interval: float):
        self.interval = interval
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.debug(f"{self.name} started (every {self.interval}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.sample()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"{self.name} sample error: {e}")
            await asyncio.sleep(self.interval)

    @abstractmethod
    async def sample(self):
        """Take one reading and publish it."""


class ConnectionMonitor(_Sampler):
    """Samples the system connection table."""

    name = "connection monitor"

    def __init__(
        self,
        interval: float = 2.0,
        source: Callable[[], list] | None = None,
        resolve_name: Callable[[int], str] = process_name,
    ):
        super().__init__(interval)
        self._source = source or (lambda: psutil.net_connections(kind="inet"))
        self._resolve_name = resolve_name
        self._connections: list[NetworkConnection] = []
        self._latest = ConnectionStats()

    def latest_stats(self) -> ConnectionStats:
        return self._latest

    def latest_connections(self) -> list[NetworkConnection]:
        return list(self._connections)

    def _collect(self) -> list[NetworkConnection]:
        return connection_records(self._source(), self._resolve_name)

    async def sample(self) -> ConnectionStats:
        loop = asyncio.get_running_loop()
        self._connections = await loop.run_in_executor(None, self._collect)
        self._latest = summarize_connections(self._connections)
        return self._latest


class BandwidthMonitor(_Sampler):
    """Samples NIC byte counters of the active interface."""

    name = "bandwidth monitor"

    def __init__(
        self,
        interval: float = 1.0,
        interface_provider=None,
        source: Callable[[], dict] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(interval)
        self.interface_provider = interface_provider
        self._source = source or (lambda: psutil.net_io_counters(pernic=True))
        self._clock = clock

        self._latest = BandwidthSpeeds()
        self._previous: ByteCounters | None = None
        self._previous_at: float | None = None

        self.total_sent_today = 0
        self.total_recv_today = 0
        self._day = date.today()

    def latest_speeds(self) -> BandwidthSpeeds:
        return self._latest

    def _counters(self, per_nic: dict) -> ByteCounters:
        snapshot = self.interface_provider.current() if self.interface_provider else None
        if snapshot is not None and snapshot.name in per_nic:
            nic = per_nic[snapshot.name]
            return ByteCounters(nic.bytes_sent, nic.bytes_recv)

        sent = recv = 0
        for name, nic in per_nic.items():
            if name.lower().startswith("lo") or "loopback" in name.lower() or is_virtual(name):
                continue
            sent += nic.bytes_sent
            recv += nic.bytes_recv
        return ByteCounters(sent, recv)

    def _roll_day(self) -> None:
        today = date.today()
        if today != self._day:
            logger.info("Resetting daily bandwidth totals")
            self._day = today
            self.total_sent_today = 0
            self.total_recv_today = 0

    async def sample(self) -> BandwidthSpeeds | None:
        loop = asyncio.get_running_loop()
        per_nic = await loop.run_in_executor(None, self._source)
        current = self._counters(per_nic)
        now = self._clock()

        previous, previous_at = self._previous, self._previous_at
        self._previous, self._previous_at = current, now
        if previous is None:
            return None

        speeds = compute_speeds(previous, current, now - previous_at)
        if speeds is None:
            logger.debug("Counter rollover, bandwidth sample skipped")
            return None

        self._roll_day()
        self.total_sent_today += current.bytes_sent - previous.bytes_sent
        self.total_recv_today += current.bytes_recv - previous.bytes_recv
        self._latest = speeds
        return speeds
