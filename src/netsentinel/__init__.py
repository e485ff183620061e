"""
NetSentinel - local network discovery and security heuristics.

Discovers devices on the active subnet and watches them for gateway
spoofing, unknown devices, traffic spikes and connection floods.
"""

__version__ = "0.3.0"
__author__ = "ByteCreeper"

from netsentinel.config import NetSentinelConfig, load_config
from netsentinel.models import (
    AlertSeverity,
    Device,
    DeviceType,
    NetworkInterfaceSnapshot,
    SecurityAlert,
)

__all__ = [
    "NetSentinelConfig",
    "load_config",
    "AlertSeverity",
    "Device",
    "DeviceType",
    "NetworkInterfaceSnapshot",
    "SecurityAlert",
]
