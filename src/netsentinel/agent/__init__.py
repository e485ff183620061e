# NetSentinel Agent - Discovery & Detection
"""
The NetSentinel agent scans the local subnet for devices and evaluates
what it finds against a small set of security heuristics.
"""

from .alerts import AlertService
from .classifier import (
    DeviceClassifier,
    HeuristicClassifier,
    HotspotPolicy,
    SubnetHotspotPolicy,
    lookup_vendor,
)
from .daemon import NetSentinelDaemon, run_daemon
from .detector import SecurityDetector, default_rules
from .events import (
    AlertRaised,
    DeviceDiscovered,
    EventBus,
    EventType,
    NetworkChanged,
    ScanCompleted,
)
from .feeds import BandwidthMonitor, ConnectionMonitor
from .interfaces import InterfaceProvider, StaticInterfaceProvider
from .neighbors import NeighborTable
from .prober import HostProber
from .registry import DeviceRegistry
from .scanner import DeviceScanner

__all__ = [
    # Alerts
    "AlertService",
    # Classification
    "DeviceClassifier",
    "HeuristicClassifier",
    "HotspotPolicy",
    "SubnetHotspotPolicy",
    "lookup_vendor",
    # Daemon
    "NetSentinelDaemon",
    "run_daemon",
    # Detection
    "SecurityDetector",
    "default_rules",
    # Events
    "AlertRaised",
    "DeviceDiscovered",
    "EventBus",
    "EventType",
    "NetworkChanged",
    "ScanCompleted",
    # Feeds
    "BandwidthMonitor",
    "ConnectionMonitor",
    # Discovery
    "InterfaceProvider",
    "StaticInterfaceProvider",
    "NeighborTable",
    "HostProber",
    "DeviceRegistry",
    "DeviceScanner",
]
