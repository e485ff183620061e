# NetSentinel Agent - Security Detector
"""
Periodic evaluation of the detection rules:

- Gateway MAC change (ARP spoofing), confirmed over time
- Unknown devices joining the network, plus hotspot device limits
- Upload/download traffic spikes
- Connection floods against a rolling baseline

Each rule runs on its own interval. A failing rule is logged and the
others keep running.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

from ..config import AppSettings, DetectorSettings
from ..models import AlertSeverity, DetectionRule, RuleType, SecurityAlert
from .alerts import AlertService
from .classifier import HotspotPolicy, SubnetHotspotPolicy
from .interfaces import interface_key
from .neighbors import NeighborTable
from .registry import DeviceRegistry
from .spoof import GatewayObservation, SpoofDetection, SpoofTracker, Suspected, advance

logger = logging.getLogger("netsentinel.agent.detector")


def default_rules(settings: AppSettings | None = None) -> list[DetectionRule]:
    settings = settings or AppSettings()
    return [
        DetectionRule(
            name="Gateway MAC Change",
            description="Detects changes to the default gateway's hardware address (ARP spoofing)",
            rule_type=RuleType.GATEWAY_MAC_CHANGE,
            severity=AlertSeverity.CRITICAL,
            interval=5,
        ),
        DetectionRule(
            name="Unknown Device",
            description="Alerts when a device not seen before joins the network",
            rule_type=RuleType.UNKNOWN_DEVICE,
            severity=AlertSeverity.WARNING,
            interval=60,
        ),
        DetectionRule(
            name="Traffic Spike",
            description="Alerts on upload or download rates above the threshold (kbps)",
            rule_type=RuleType.TRAFFIC_SPIKE,
            severity=AlertSeverity.WARNING,
            threshold=settings.traffic_spike_threshold_kbps,
            interval=10,
        ),
        DetectionRule(
            name="Excessive Connections",
            description="Alerts when active connections jump well above the recent baseline",
            rule_type=RuleType.EXCESSIVE_CONNECTIONS,
            severity=AlertSeverity.WARNING,
            interval=5,
        ),
    ]


@dataclass
class DetectorState:
    """Everything the rules remember between evaluations."""
    tracker: SpoofTracker = field(default_factory=SpoofTracker)
    seen_macs: set[str] = field(default_factory=set)
    samples: deque = field(default_factory=deque)  # (monotonic time, connection total)
    last_flood_alert: float | None = None
    hotspot: bool = False


class SecurityDetector:
    """Runs the detection rules against the registry and the feeds."""

    def __init__(
        self,
        registry: DeviceRegistry,
        interface_provider,
        alerts: AlertService,
        connections=None,
        bandwidth=None,
        settings: DetectorSettings | None = None,
        app_settings: AppSettings | None = None,
        hotspot_policy: HotspotPolicy | None = None,
        neighbors: Callable[[str, str | None], Awaitable[str | None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.interface_provider = interface_provider
        self.alerts = alerts
        self.connections = connections
        self.bandwidth = bandwidth
        self.settings = settings or DetectorSettings()
        self.hotspot_policy = hotspot_policy or SubnetHotspotPolicy(self.settings.hotspot_networks)
        self._neighbors = neighbors or NeighborTable().lookup
        self._clock = clock

        self._rules = {r.rule_type: r for r in default_rules(app_settings)}
        self._last_run: dict[RuleType, float] = {}
        self._routines = {
            RuleType.GATEWAY_MAC_CHANGE: self._check_gateway,
            RuleType.UNKNOWN_DEVICE: self._check_unknown_devices,
            RuleType.TRAFFIC_SPIKE: self._check_traffic,
            RuleType.EXCESSIVE_CONNECTIONS: self._check_connections,
        }

        self.state = DetectorState()
        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        if self._running:
            return

        await self.prime()
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Security detector started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Security detector stopped")

    async def prime(self, now: float | None = None) -> None:
        """
        Seed known devices from the registry and open the startup grace period.

        The persisted gateway address is not trusted as a baseline since the
        host may have moved networks while stopped. Gateway observations are
        ignored for `network_change_grace` seconds, then the first one seen is
        adopted.
        """
        now = self._clock() if now is None else now
        snapshot = self.interface_provider.current()

        async with self._lock:
            self.state.seen_macs.update(d.mac_address for d in self.registry.snapshot())
            self.state.tracker = SpoofTracker(
                interface=interface_key(snapshot) if snapshot else None,
                changed_at=now,
            )
            self._update_hotspot(snapshot.gateway if snapshot else None)

        logger.debug(f"Detector primed with {len(self.state.seen_macs)} known devices")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.evaluate_due()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Detector loop error: {e}")
            await asyncio.sleep(self.settings.tick)

    async def evaluate_due(self, now: float | None = None) -> list[SecurityAlert]:
        """Run every enabled rule whose interval has elapsed. Returns the alerts raised."""
        now = self._clock() if now is None else now
        raised = []

        for rule in list(self._rules.values()):
            if not rule.enabled:
                continue
            last = self._last_run.get(rule.rule_type)
            if last is not None and now - last < rule.interval:
                continue
            self._last_run[rule.rule_type] = now

            try:
                alerts = await self._routines[rule.rule_type](rule, now)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Rule '{rule.name}' failed")
                continue

            for alert in alerts:
                raised.append(await self.alerts.raise_alert(alert))

        return raised

    # =========================================================================
    # RULES
    # =========================================================================

    def rules(self) -> list[DetectionRule]:
        return [replace(r) for r in self._rules.values()]

    def update_rule(
        self,
        rule_type: RuleType,
        enabled: bool | None = None,
        threshold: float | None = None,
        interval: float | None = None,
    ) -> DetectionRule:
        rule = self._rules[rule_type]
        if enabled is not None:
            rule.enabled = enabled
        if threshold is not None:
            rule.threshold = threshold
        if interval is not None:
            if interval <= 0:
                raise ValueError(f"Rule interval must be positive, got {interval}")
            rule.interval = interval
        logger.info(f"Rule updated: {rule.name} enabled={rule.enabled} threshold={rule.threshold} interval={rule.interval}s")
        return replace(rule)

    def apply_settings(self, settings: AppSettings) -> None:
        self.update_rule(RuleType.TRAFFIC_SPIKE, threshold=settings.traffic_spike_threshold_kbps)

    @property
    def hotspot_mode(self) -> bool:
        return self.state.hotspot

    def _update_hotspot(self, gateway_ip: str | None) -> bool:
        hotspot = self.hotspot_policy.is_hotspot(gateway_ip)
        if hotspot != self.state.hotspot:
            if hotspot:
                logger.info(f"Hotspot mode enabled (gateway {gateway_ip})")
            else:
                logger.info("Hotspot mode disabled")
        self.state.hotspot = hotspot
        return hotspot

    # =========================================================================
    # ROUTINES
    # =========================================================================

    async def _check_gateway(self, rule: DetectionRule, now: float) -> list[SecurityAlert]:
        snapshot = self.interface_provider.current()
        if snapshot is None or not snapshot.gateway:
            return []

        mac = await self._neighbors(snapshot.gateway, snapshot.address)

        async with self._lock:
            hotspot = self._update_hotspot(snapshot.gateway)
            observation = GatewayObservation(
                interface=interface_key(snapshot),
                gateway_ip=snapshot.gateway,
                mac=mac,
                hotspot=hotspot,
            )
            before = self.state.tracker.state
            self.state.tracker, detection = advance(self.state.tracker, observation, now, self.settings)
            after = self.state.tracker.state

        if detection is None:
            if isinstance(after, Suspected) and after != before:
                logger.warning(f"Gateway {snapshot.gateway} MAC mismatch: {after.baseline} vs {after.suspect}")
            return []

        return [self._spoof_alert(rule, detection)]

    def _spoof_alert(self, rule: DetectionRule, detection: SpoofDetection) -> SecurityAlert:
        if detection.hotspot:
            return SecurityAlert(
                severity=AlertSeverity.WARNING,
                title="Hotspot Gateway MAC Changed",
                description=(
                    f"The hotspot gateway {detection.gateway_ip} changed hardware address from "
                    f"{detection.previous_mac} to {detection.new_mac}. Mobile hotspots do this "
                    f"occasionally, but it can also indicate ARP spoofing."
                ),
                source_ip=detection.gateway_ip,
                source_mac=detection.new_mac,
                rule_type=rule.rule_type,
            )
        return SecurityAlert(
            severity=rule.severity,
            title="Gateway MAC Address Changed!",
            description=(
                f"The gateway {detection.gateway_ip} changed hardware address from "
                f"{detection.previous_mac} to {detection.new_mac} "
                f"(confirmed {detection.rechecks} times over {detection.elapsed:.0f}s). "
                f"This may indicate an ARP spoofing attack."
            ),
            source_ip=detection.gateway_ip,
            source_mac=detection.new_mac,
            rule_type=rule.rule_type,
        )

    async def _check_unknown_devices(self, rule: DetectionRule, now: float) -> list[SecurityAlert]:
        online = self.registry.online_devices()

        async with self._lock:
            new_devices = [d for d in online if d.mac_address not in self.state.seen_macs]
            self.state.seen_macs.update(d.mac_address for d in new_devices)
            hotspot = self.state.hotspot

        alerts = [
            SecurityAlert(
                severity=rule.severity,
                title="New Device Detected",
                description=(
                    f"A new device joined the network: {d.hostname or d.ip_address} "
                    f"({d.vendor}, {d.mac_address})"
                ),
                source_ip=d.ip_address,
                source_mac=d.mac_address,
                rule_type=rule.rule_type,
            )
            for d in new_devices
        ]

        limit = self.settings.hotspot_max_devices
        if hotspot and len(online) > limit:
            alerts.append(SecurityAlert(
                severity=AlertSeverity.WARNING,
                title="Hotspot Device Limit Exceeded",
                description=f"{len(online)} devices are connected to the hotspot (expected at most {limit})",
                rule_type=rule.rule_type,
            ))

        return alerts

    async def _check_traffic(self, rule: DetectionRule, now: float) -> list[SecurityAlert]:
        if self.bandwidth is None:
            return []

        speeds = self.bandwidth.latest_speeds()
        alerts = []

        if speeds.upload_kbps > rule.threshold:
            alerts.append(SecurityAlert(
                severity=rule.severity,
                title="High Upload Traffic Detected",
                description=f"Upload rate {speeds.upload_kbps:.0f} kbps exceeds {rule.threshold:.0f} kbps",
                rule_type=rule.rule_type,
            ))
        if speeds.download_kbps > rule.threshold:
            alerts.append(SecurityAlert(
                severity=rule.severity,
                title="High Download Traffic Detected",
                description=f"Download rate {speeds.download_kbps:.0f} kbps exceeds {rule.threshold:.0f} kbps",
                rule_type=rule.rule_type,
            ))

        return alerts

    async def _check_connections(self, rule: DetectionRule, now: float) -> list[SecurityAlert]:
        if self.connections is None:
            return []

        total = self.connections.latest_stats().total

        async with self._lock:
            samples = self.state.samples
            samples.append((now, total))
            while samples and samples[0][0] < now - self.settings.baseline_window:
                samples.popleft()

            if len(samples) < self.settings.baseline_min_samples:
                logger.debug(f"Building connection baseline ({len(samples)}/{self.settings.baseline_min_samples})")
                return []

            average = sum(count for _, count in samples) / len(samples)
            multiplier = (
                self.settings.hotspot_threshold_multiplier
                if self.state.hotspot
                else self.settings.threshold_multiplier
            )
            threshold = average * multiplier

            if total <= threshold:
                return []

            last = self.state.last_flood_alert
            if last is not None and now - last < self.settings.connection_debounce:
                logger.debug(f"Connection alert debounced ({total} > {threshold:.0f})")
                return []
            self.state.last_flood_alert = now

        return [SecurityAlert(
            severity=rule.severity,
            title="Excessive Network Connections",
            description=(
                f"{total} active connections, well above the recent average of "
                f"{average:.0f} (threshold {threshold:.0f})"
            ),
            rule_type=rule.rule_type,
        )]
