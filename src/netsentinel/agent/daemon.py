# NetSentinel Agent - Main Daemon
"""
The NetSentinel daemon wires discovery, the feeds and the security
detector together and runs the scan scheduler.

Three independent loops share the event loop: the scan scheduler, the
detector and the feed samplers. None of them waits on another.
"""

import asyncio
import logging
import signal
import sys
import time
from datetime import datetime, timezone
from typing import Any

from ..config import AppSettings, NetSentinelConfig, load_config
from ..errors import ScanError
from ..models import ScanResult
from ..storage import JsonStore, Store
from .alerts import AlertService
from .classifier import HeuristicClassifier
from .detector import SecurityDetector
from .events import EventBus, EventType
from .feeds import BandwidthMonitor, ConnectionMonitor
from .interfaces import InterfaceProvider
from .neighbors import NeighborTable
from .prober import HostProber
from .registry import DeviceRegistry
from .scanner import DeviceScanner

logger = logging.getLogger("netsentinel.agent.daemon")


class NetSentinelDaemon:
    """
    Main NetSentinel daemon.
    Scans on a schedule and evaluates detection rules continuously.
    """

    def __init__(
        self,
        config: NetSentinelConfig | None = None,
        store: Store | None = None,
        interface_provider=None,
        prober: HostProber | None = None,
        connections: ConnectionMonitor | None = None,
        bandwidth: BandwidthMonitor | None = None,
        neighbors=None,
    ):
        """
        Initialize the daemon.

        Args:
            config: Configuration; defaults apply when omitted
            store: Persistence sink (JSON files under data_dir by default)
            interface_provider: Source of the active interface snapshot
            prober: Host prober used by the scanner
            connections: Connection count feed
            bandwidth: Throughput feed
            neighbors: Async (ip, interface_ip) -> MAC lookup
        """
        self.config = config or NetSentinelConfig()
        self.store = store or JsonStore(self.config.data_dir)
        self.bus = EventBus()
        self.settings = self.config.settings

        self.interface_provider = interface_provider or InterfaceProvider()
        neighbors = neighbors or NeighborTable().lookup

        self.registry = DeviceRegistry(self.store, self.interface_provider)
        self.prober = prober or HostProber(
            self.config.scan,
            classifier=HeuristicClassifier(),
            neighbors=neighbors,
        )
        self.scanner = DeviceScanner(self.interface_provider, self.registry, self.prober, self.bus)

        self.connections = connections or ConnectionMonitor(self.config.feeds.connection_interval)
        self.bandwidth = bandwidth or BandwidthMonitor(
            self.config.feeds.bandwidth_interval,
            interface_provider=self.interface_provider,
        )

        self.alerts = AlertService(self.store, self.bus, notify=self.settings.show_notifications)
        self.detector = SecurityDetector(
            self.registry,
            self.interface_provider,
            self.alerts,
            connections=self.connections,
            bandwidth=self.bandwidth,
            settings=self.config.detector,
            app_settings=self.settings,
            neighbors=neighbors,
        )

        self._running = False
        self._stop_event = asyncio.Event()
        self._start_time: datetime | None = None
        self._last_scan: float | None = None

        # Statistics
        self._scans_completed = 0
        self._scans_failed = 0
        self._alerts_raised = 0

        self.bus.subscribe(EventType.ALERT_RAISED, self._count_alert)

    def _count_alert(self, _event) -> None:
        self._alerts_raised += 1

    async def start(self) -> None:
        """Start the daemon and run until stopped."""
        if self._running:
            logger.warning("Daemon already running")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._start_time = datetime.now(timezone.utc)

        await self.load_settings()
        snapshot = await self.interface_provider.refresh()

        logger.info("=" * 60)
        logger.info("NETSENTINEL DAEMON STARTING")
        if snapshot:
            logger.info(f"Interface: {snapshot.name} {snapshot.address}/{snapshot.subnet_mask} gw={snapshot.gateway}")
        else:
            logger.info("Interface: none detected")
        logger.info(f"Auto-scan: {self.settings.auto_scan} every {self.settings.scan_interval_minutes}m")
        logger.info(f"Data dir: {self.config.data_dir}")
        logger.info("=" * 60)

        await self.registry.load()
        await self.connections.start()
        await self.bandwidth.start()
        await self.detector.start()

        self._setup_signals()

        try:
            await self._scheduler_loop()
        except asyncio.CancelledError:
            logger.info("Daemon cancelled")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the daemon."""
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        self.scanner.cancel()

        await self.detector.stop()
        await self.connections.stop()
        await self.bandwidth.stop()
        await self.bus.drain()

        logger.info("=" * 60)
        logger.info("NETSENTINEL DAEMON STOPPED")
        logger.info(f"Runtime: {self._get_runtime()}")
        logger.info(f"Scans completed: {self._scans_completed}")
        logger.info(f"Alerts raised: {self._alerts_raised}")
        logger.info("=" * 60)

    async def _scheduler_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Scheduler error: {e}")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.scan.scheduler_tick)
            except asyncio.TimeoutError:
                pass

    async def tick(self, now: float | None = None) -> ScanResult | None:
        """One scheduler pass: refresh the interface, scan if one is due."""
        now = time.monotonic() if now is None else now
        await self.interface_provider.refresh()

        if not self.settings.auto_scan:
            return None

        interval = self.settings.scan_interval_minutes * 60
        if self._last_scan is not None and now - self._last_scan < interval:
            return None

        self._last_scan = now
        return await self.scan_now()

    async def scan_now(self) -> ScanResult | None:
        """Run a scan immediately. Failures are logged, not raised."""
        try:
            result = await self.scanner.scan()
        except ScanError as e:
            self._scans_failed += 1
            logger.error(f"Scan session failed: {e}")
            return None

        if result is not None and not result.cancelled:
            self._scans_completed += 1
        return result

    async def load_settings(self) -> AppSettings:
        try:
            stored = await self.store.latest_settings()
        except Exception as e:
            logger.error(f"Failed to load settings, using configured defaults: {e}")
            return self.settings
        if stored is not None:
            self.settings = stored
        self.detector.apply_settings(self.settings)
        self.alerts.notify = self.settings.show_notifications
        return self.settings

    async def update_settings(self, settings: AppSettings) -> None:
        self.settings = settings
        self.detector.apply_settings(settings)
        self.alerts.notify = settings.show_notifications
        try:
            await self.store.save_settings(settings)
        except Exception as e:
            logger.error(f"Failed to save settings: {e}")

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda: asyncio.create_task(self.stop()))

    def _get_runtime(self) -> str:
        """Get formatted runtime string."""
        if not self._start_time:
            return "0s"

        delta = datetime.now(timezone.utc) - self._start_time
        hours, remainder = divmod(int(delta.total_seconds()), 3600)
        minutes, seconds = divmod(remainder, 60)

        if hours:
            return f"{hours}h {minutes}m {seconds}s"
        elif minutes:
            return f"{minutes}m {seconds}s"
        return f"{seconds}s"

    @property
    def stats(self) -> dict[str, Any]:
        """Get daemon statistics."""
        snapshot = self.interface_provider.current()
        last = self.scanner.last_result
        return {
            "running": self._running,
            "start_time": self._start_time.isoformat() if self._start_time else None,
            "runtime": self._get_runtime(),
            "interface": snapshot.to_dict() if snapshot else None,
            "hotspot_mode": self.detector.hotspot_mode,
            "devices_known": len(self.registry),
            "devices_online": len(self.registry.online_devices()),
            "scans_completed": self._scans_completed,
            "scans_failed": self._scans_failed,
            "last_scan": last.to_dict() if last else None,
            "alerts_raised": self._alerts_raised,
            "connections": self.connections.latest_stats().total,
        }

    @property
    def is_running(self) -> bool:
        """Check if daemon is running."""
        return self._running


async def run_daemon(config: NetSentinelConfig | None = None, verbose: bool = False) -> None:
    """
    Convenience function to run the NetSentinel daemon.

    Args:
        config: Configuration, loaded from $NETSENTINEL_CONFIG when omitted
        verbose: Enable verbose logging
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    daemon = NetSentinelDaemon(config or load_config())
    await daemon.start()
