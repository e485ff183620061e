"""Data models for NetSentinel."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceType(str, Enum):
    """Device type categories."""
    UNKNOWN = "unknown"
    DESKTOP = "desktop"
    LAPTOP = "laptop"
    MOBILE = "mobile"
    TABLET = "tablet"
    ROUTER = "router"
    SMART_TV = "smart_tv"
    IOT = "iot"
    PRINTER = "printer"
    CONSOLE = "console"


class AlertSeverity(str, Enum):
    """Alert severity levels."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RuleType(str, Enum):
    """Detection routines the security detector can dispatch to."""
    GATEWAY_MAC_CHANGE = "gateway_mac_change"
    UNKNOWN_DEVICE = "unknown_device"
    TRAFFIC_SPIKE = "traffic_spike"
    EXCESSIVE_CONNECTIONS = "excessive_connections"


@dataclass(frozen=True)
class NetworkInterfaceSnapshot:
    """
    The active network interface at one point in time.
    Replaced wholesale when the interface changes, never mutated.
    """
    name: str
    address: str
    subnet_mask: str
    gateway: str
    mac_address: str = ""
    ssid: str | None = None
    description: str = ""
    dns_servers: tuple[str, ...] = ()
    is_wireless: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "subnet_mask": self.subnet_mask,
            "gateway": self.gateway,
            "mac_address": self.mac_address,
            "ssid": self.ssid,
            "description": self.description,
            "dns_servers": list(self.dns_servers),
            "is_wireless": self.is_wireless,
        }


@dataclass
class Device:
    """A device on the local network, identified by its hardware address."""
    mac_address: str
    ip_address: str
    vendor: str = "Unknown Vendor"
    hostname: str | None = None
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)
    is_online: bool = False
    is_gateway: bool = False
    device_type: DeviceType = DeviceType.UNKNOWN

    def copy(self) -> "Device":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "mac_address": self.mac_address,
            "ip_address": self.ip_address,
            "vendor": self.vendor,
            "hostname": self.hostname,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "is_online": self.is_online,
            "is_gateway": self.is_gateway,
            "device_type": self.device_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Device":
        """Create from dictionary."""
        now = utcnow().isoformat()
        return cls(
            mac_address=data["mac_address"],
            ip_address=data["ip_address"],
            vendor=data.get("vendor") or "Unknown Vendor",
            hostname=data.get("hostname"),
            first_seen=datetime.fromisoformat(data.get("first_seen", now)),
            last_seen=datetime.fromisoformat(data.get("last_seen", now)),
            is_online=data.get("is_online", False),
            is_gateway=data.get("is_gateway", False),
            device_type=DeviceType(data.get("device_type", "unknown")),
        )


@dataclass
class SecurityAlert:
    """
    An alert raised by the security detector.
    Append-only: only the read flag changes after creation.
    """
    severity: AlertSeverity
    title: str
    description: str
    timestamp: datetime = field(default_factory=utcnow)
    source_ip: str | None = None
    source_mac: str | None = None
    rule_type: RuleType | None = None
    is_read: bool = False
    alert_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "source_ip": self.source_ip,
            "source_mac": self.source_mac,
            "rule_type": self.rule_type.value if self.rule_type else None,
            "is_read": self.is_read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SecurityAlert":
        rule_type = data.get("rule_type")
        return cls(
            alert_id=data.get("alert_id", str(uuid.uuid4())),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            severity=AlertSeverity(data.get("severity", "info")),
            title=data.get("title", ""),
            description=data.get("description", ""),
            source_ip=data.get("source_ip"),
            source_mac=data.get("source_mac"),
            rule_type=RuleType(rule_type) if rule_type else None,
            is_read=data.get("is_read", False),
        )


@dataclass
class DetectionRule:
    """A detection rule: static configuration, changed only by explicit update."""
    name: str
    description: str
    rule_type: RuleType
    severity: AlertSeverity
    enabled: bool = True
    threshold: float = 0
    interval: float = 60.0  # seconds

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "rule_type": self.rule_type.value,
            "severity": self.severity.value,
            "enabled": self.enabled,
            "threshold": self.threshold,
            "interval": self.interval,
        }


@dataclass(frozen=True)
class NetworkConnection:
    """One entry of the system connection table."""
    local_address: str
    local_port: int
    remote_address: str = ""
    remote_port: int = 0
    protocol: str = "TCP"  # TCP or UDP
    state: str = ""  # psutil status, e.g. ESTABLISHED, LISTEN, NONE
    pid: int | None = None
    process_name: str = ""


@dataclass(frozen=True)
class ConnectionStats:
    """Latest connection-count snapshot published by the connection feed."""
    total: int = 0
    established: int = 0
    tcp: int = 0
    udp: int = 0
    listening: int = 0


@dataclass(frozen=True)
class BandwidthSpeeds:
    """Latest throughput sample published by the bandwidth feed."""
    upload_kbps: float = 0.0
    download_kbps: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ScanResult:
    """Outcome of one scan session."""
    started_at: datetime
    subnet: str
    finished_at: datetime | None = None
    probed: int = 0
    discovered: list[Device] = field(default_factory=list)
    marked_offline: list[Device] = field(default_factory=list)
    network_changed: bool = False
    cancelled: bool = False

    @property
    def duration(self) -> float:
        if not self.finished_at:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "subnet": self.subnet,
            "probed": self.probed,
            "discovered": [d.to_dict() for d in self.discovered],
            "marked_offline": [d.mac_address for d in self.marked_offline],
            "network_changed": self.network_changed,
            "cancelled": self.cancelled,
        }
