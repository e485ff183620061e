# NetSentinel Agent - Device Classification
"""
Vendor lookup from the MAC OUI prefix and heuristic device classification.
Both the device-type patterns and the hotspot ranges are approximations;
they sit behind small protocols so they can be swapped out.
"""

import logging
import re
from dataclasses import dataclass
from ipaddress import IPv4Network, ip_address
from typing import Iterable, Protocol

from ..models import DeviceType

logger = logging.getLogger("netsentinel.agent.classifier")

UNKNOWN_VENDOR = "Unknown Vendor"

_MAC_RE = re.compile(r"^[0-9A-Fa-f]{12}$")


# MAC OUI prefixes for vendor identification (common ones)
MAC_VENDORS = {
    # Cisco
    "00:00:0C": "Cisco Systems",
    "00:01:42": "Cisco Systems",
    "00:C0:CA": "Cisco Systems",
    "00:1A:2B": "Cisco Systems",
    "00:1B:54": "Cisco Systems",
    "00:17:DF": "Cisco Systems",
    "00:22:55": "Cisco Systems",
    "00:24:50": "Cisco Meraki",
    "00:18:0A": "Cisco Meraki",
    "00:1F:C9": "Cisco Linksys",
    "68:7F:74": "Cisco Linksys",
    # Apple
    "00:03:93": "Apple Inc.",
    "00:0A:95": "Apple Inc.",
    "00:0D:93": "Apple Inc.",
    "00:14:51": "Apple Inc.",
    "00:16:CB": "Apple Inc.",
    "00:17:F2": "Apple Inc.",
    "00:19:E3": "Apple Inc.",
    "00:1B:63": "Apple Inc.",
    "00:1C:B3": "Apple Inc.",
    "00:1D:4F": "Apple Inc.",
    "00:1E:52": "Apple Inc.",
    "00:1F:5B": "Apple Inc.",
    "00:23:24": "Apple Inc.",
    "00:23:32": "Apple Inc.",
    "00:23:DF": "Apple Inc.",
    "00:25:00": "Apple Inc.",
    "00:25:4B": "Apple Inc.",
    "00:25:BC": "Apple Inc.",
    "00:26:08": "Apple Inc.",
    "00:26:B0": "Apple Inc.",
    "00:26:BB": "Apple Inc.",
    "00:30:65": "Apple Inc.",
    "08:00:07": "Apple Inc.",
    "10:DD:B1": "Apple Inc.",
    "14:10:9F": "Apple Inc.",
    "18:65:90": "Apple Inc.",
    "20:C9:D0": "Apple Inc.",
    "28:CF:E9": "Apple Inc.",
    "34:15:9E": "Apple Inc.",
    "3C:15:C2": "Apple Inc.",
    "3C:22:FB": "Apple Inc.",
    "40:6C:8F": "Apple Inc.",
    "88:66:A5": "Apple Inc.",
    "98:5A:EB": "Apple Inc.",
    "AC:DE:48": "Apple Inc.",
    "D8:1D:72": "Apple Inc.",
    "E0:B5:2D": "Apple Inc.",
    "F0:18:98": "Apple Inc.",
    "F0:D1:A9": "Apple Inc.",
    # Dell
    "00:13:72": "Dell Inc.",
    "00:14:22": "Dell Inc.",
    "00:1A:A0": "Dell Inc.",
    "00:21:E9": "Dell Inc.",
    "00:22:19": "Dell Inc.",
    "18:3E:EF": "Dell Inc.",
    "18:DB:F2": "Dell Inc.",
    "F4:8E:38": "Dell Inc.",
    # Lenovo / Intel / HP
    "00:1E:4F": "Lenovo",
    "00:21:CC": "Lenovo",
    "00:26:E8": "Lenovo",
    "00:03:47": "Intel Corporate",
    "00:15:17": "Intel Corporate",
    "00:1B:21": "Intel Corporate",
    "00:1C:C0": "Intel Corporate",
    "00:1E:67": "Intel Corporate",
    "4C:EB:42": "Intel Corporate",
    "00:11:0A": "HP",
    "00:1E:68": "HP",
    "18:A9:05": "HP",
    "3C:D9:2B": "HP",
    # Virtualisation
    "00:0C:29": "VMware Inc.",
    "00:50:56": "VMware Inc.",
    "08:00:27": "VirtualBox",
    "00:15:5D": "Microsoft Corporation",
    # Microsoft
    "00:50:F2": "Microsoft Corporation",
    "28:18:78": "Microsoft Corporation",
    "7C:ED:8D": "Microsoft Xbox",
    "98:5F:D3": "Microsoft Xbox",
    # Samsung / Android vendors
    "00:12:47": "Samsung Electronics",
    "10:1D:C0": "Samsung Electronics",
    "50:32:75": "Samsung Electronics",
    "78:BD:BC": "Samsung Electronics",
    "AC:5F:3E": "Samsung Electronics",
    "D0:22:BE": "Samsung Electronics",
    "F8:FC:00": "Samsung Electronics",
    "64:A2:F9": "OnePlus",
    "28:6C:07": "Xiaomi",
    "F8:A4:5F": "Xiaomi",
    "00:E0:FC": "Huawei",
    # Google / Nest
    "3C:5A:B4": "Google Inc.",
    "54:60:09": "Google Inc.",
    "DC:A9:04": "Google Inc.",
    "F4:F5:D8": "Google Inc.",
    "18:B4:30": "Nest Labs",
    "64:16:66": "Nest Labs",
    # Network gear
    "00:24:E4": "Ubiquiti Networks",
    "04:18:D6": "Ubiquiti Networks",
    "24:A4:3C": "Ubiquiti Networks",
    "F0:9F:C2": "Ubiquiti Networks",
    "FC:EC:DA": "Ubiquiti Networks",
    "00:14:6C": "Netgear",
    "00:1F:33": "Netgear",
    "E4:38:83": "Netgear",
    "00:15:F2": "ASUSTek",
    "9C:D3:6D": "ASUSTek",
    "60:45:CB": "ASUSTek",
    "14:CC:20": "TP-Link",
    "50:C7:BF": "TP-Link",
    "74:D4:35": "TP-Link",
    "EC:08:6B": "TP-Link",
    "00:1C:F0": "D-Link",
    "4C:5E:0C": "MikroTik",
    # Media / smart home
    "B0:A7:37": "Roku",
    "D8:31:34": "Roku",
    "F0:D2:F1": "Amazon Technologies",
    "FC:65:DE": "Amazon Technologies",
    "00:04:1F": "Sony Interactive Entertainment",
    "00:17:88": "Philips Lighting",
    "6C:2A:DF": "Ring",
    "00:09:BF": "Nintendo",
    "B8:27:EB": "Raspberry Pi Foundation",
    "DC:A6:32": "Raspberry Pi Trading Ltd",
    # Printers
    "00:00:48": "Epson",
    "00:80:77": "Brother",
    "00:00:85": "Canon",
}


def normalize_mac(mac: str) -> str:
    """Normalize a MAC address to upper-case colon-separated form."""
    cleaned = re.sub(r"[^0-9A-Fa-f]", "", mac or "").upper()
    if len(cleaned) != 12:
        return (mac or "").upper().replace("-", ":")
    return ":".join(cleaned[i:i + 2] for i in range(0, 12, 2))


def is_valid_mac(mac: str) -> bool:
    """Validate MAC address format (any of the common separators)."""
    if not mac or not mac.strip():
        return False
    cleaned = mac.replace("-", "").replace(":", "").replace(".", "")
    return bool(_MAC_RE.match(cleaned))


def lookup_vendor(mac: str) -> str:
    """Look up vendor from MAC address OUI prefix."""
    if not is_valid_mac(mac):
        return UNKNOWN_VENDOR
    prefix = normalize_mac(mac)[:8]
    return MAC_VENDORS.get(prefix, UNKNOWN_VENDOR)


class DeviceClassifier(Protocol):
    """Strategy mapping vendor/name evidence to a device type."""

    def classify(self, vendor: str | None, hostname: str | None, mac: str | None = None) -> DeviceType:
        ...


@dataclass(frozen=True)
class PatternRule:
    """
    One classification rule.

    With `either` set the rule matches when any vendor OR any hostname
    pattern hits; otherwise every non-empty pattern group must hit.
    """
    device_type: DeviceType
    vendors: tuple[str, ...] = ()
    hostnames: tuple[str, ...] = ()
    either: bool = False

    def matches(self, vendor: str, hostname: str) -> bool:
        vendor_hit = any(v in vendor for v in self.vendors)
        host_hit = any(h in hostname for h in self.hostnames)
        if self.either:
            return vendor_hit or host_hit
        return (vendor_hit or not self.vendors) and (host_hit or not self.hostnames)


_ROUTER_VENDORS = ("cisco", "netgear", "asus", "tp-link", "d-link", "linksys", "ubiquiti", "mikrotik")
_PHONE_VENDORS = ("xiaomi", "huawei", "oppo", "vivo", "oneplus", "realme", "motorola", "nokia")
_PC_VENDORS = ("dell", "lenovo", "asus", "acer", "msi", "toshiba")
_NIC_VENDORS = ("intel", "realtek", "broadcom", "qualcomm")

# Order matters: first match wins.
DEFAULT_RULES: tuple[PatternRule, ...] = (
    # Hostnames are more specific than vendors
    PatternRule(DeviceType.MOBILE, hostnames=("iphone", "android")),
    PatternRule(DeviceType.TABLET, hostnames=("ipad",)),

    PatternRule(DeviceType.ROUTER, vendors=_ROUTER_VENDORS,
                hostnames=("router", "gateway", "ap-", "access"), either=True),

    PatternRule(DeviceType.TABLET, vendors=("apple",), hostnames=("ipad",)),
    PatternRule(DeviceType.MOBILE, vendors=("apple",), hostnames=("iphone",)),
    PatternRule(DeviceType.DESKTOP, vendors=("apple",), hostnames=("imac",)),
    PatternRule(DeviceType.LAPTOP, vendors=("apple",), hostnames=("macbook", "mac")),
    PatternRule(DeviceType.MOBILE, vendors=("apple",)),

    PatternRule(DeviceType.TABLET, vendors=("samsung",), hostnames=("galaxy-tab", "galaxy tab", "tab")),
    PatternRule(DeviceType.SMART_TV, vendors=("samsung",), hostnames=("tv",)),
    PatternRule(DeviceType.MOBILE, vendors=("samsung",)),
    PatternRule(DeviceType.MOBILE, vendors=_PHONE_VENDORS),

    PatternRule(DeviceType.MOBILE, vendors=("google",), hostnames=("pixel",)),
    PatternRule(DeviceType.IOT, vendors=("google",), hostnames=("nest", "home")),
    PatternRule(DeviceType.SMART_TV, vendors=("google",), hostnames=("chromecast",)),

    PatternRule(DeviceType.TABLET, hostnames=("tablet", "tab-")),
    PatternRule(DeviceType.SMART_TV, vendors=("sony", "lg", "roku", "amazon"),
                hostnames=("tv", "firetv", "chromecast", "bravia"), either=True),
    PatternRule(DeviceType.PRINTER, vendors=("hp", "canon", "epson", "brother"),
                hostnames=("printer", "print"), either=True),
    PatternRule(DeviceType.CONSOLE, vendors=("sony", "microsoft", "nintendo"),
                hostnames=("playstation", "ps3", "ps4", "ps5", "xbox", "switch"), either=True),
    PatternRule(DeviceType.IOT, vendors=("ring", "nest", "philips", "ecobee", "tuya", "shelly", "raspberry"),
                hostnames=("iot", "smart", "alexa", "echo", "sensor", "camera"), either=True),

    PatternRule(DeviceType.LAPTOP, vendors=_PC_VENDORS, hostnames=("laptop", "notebook")),
    PatternRule(DeviceType.DESKTOP, vendors=_PC_VENDORS, hostnames=("desktop", "pc")),
    PatternRule(DeviceType.LAPTOP, vendors=_PC_VENDORS),

    PatternRule(DeviceType.DESKTOP, vendors=_NIC_VENDORS, hostnames=("desktop", "pc")),
    PatternRule(DeviceType.LAPTOP, vendors=_NIC_VENDORS, hostnames=("laptop", "notebook")),
    PatternRule(DeviceType.DESKTOP, vendors=_NIC_VENDORS),

    # Hostname-only fallbacks for unknown vendors
    PatternRule(DeviceType.DESKTOP, hostnames=("desktop", "-pc")),
    PatternRule(DeviceType.LAPTOP, hostnames=("laptop", "notebook")),
    PatternRule(DeviceType.MOBILE, hostnames=("phone", "pixel")),
    PatternRule(DeviceType.DESKTOP, hostnames=("server", "nas")),
    PatternRule(DeviceType.ROUTER, hostnames=("wifi",)),
)


class HeuristicClassifier:
    """Classifies devices by walking an ordered list of pattern rules."""

    def __init__(self, rules: Iterable[PatternRule] | None = None):
        self.rules = tuple(rules) if rules is not None else DEFAULT_RULES

    def classify(self, vendor: str | None, hostname: str | None, mac: str | None = None) -> DeviceType:
        vendor_lower = (vendor or "").lower()
        if vendor_lower == UNKNOWN_VENDOR.lower():
            vendor_lower = ""
        hostname_lower = (hostname or "").lower()

        if not vendor_lower and not hostname_lower:
            return DeviceType.UNKNOWN

        for rule in self.rules:
            if rule.matches(vendor_lower, hostname_lower):
                return rule.device_type
        return DeviceType.UNKNOWN


class HotspotPolicy(Protocol):
    """Strategy deciding whether the active network is a mobile hotspot."""

    def is_hotspot(self, gateway_ip: str | None) -> bool:
        ...


class SubnetHotspotPolicy:
    """Treats gateways inside well-known tethering ranges as hotspots."""

    def __init__(self, networks: Iterable[str]):
        self.networks = [IPv4Network(n, strict=False) for n in networks]

    def is_hotspot(self, gateway_ip: str | None) -> bool:
        if not gateway_ip:
            return False
        try:
            addr = ip_address(gateway_ip)
        except ValueError:
            return False
        return any(addr in network for network in self.networks)
