"""Tests for neighbor table parsing and hardware address selection."""

import pytest

from netsentinel.agent import neighbors
from netsentinel.agent.neighbors import (
    EntryKind,
    NeighborEntry,
    NeighborTable,
    parse_bsd_arp,
    parse_ip_neigh,
    parse_proc_arp,
    parse_windows_arp,
    select_hardware_address,
)


WINDOWS_ARP = """
Interface: 192.168.1.10 --- 0xb
  Internet Address      Physical Address      Type
  192.168.1.1           aa-bb-cc-dd-ee-ff     dynamic
  192.168.1.20          00-00-00-00-00-00     invalid
  192.168.1.30          zz-zz-zz-zz-zz-zz     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
  224.0.0.22            01-00-5e-00-00-16     static

Interface: 10.0.0.5 --- 0x12
  Internet Address      Physical Address      Type
  192.168.1.1           11-22-33-44-55-66     dynamic
  10.0.0.1              66-55-44-33-22-11     dynamic
"""

IP_NEIGH = """\
192.168.1.1 dev wlan0 lladdr aa:bb:cc:dd:ee:ff REACHABLE
192.168.1.7 dev wlan0  FAILED
192.168.1.8 dev wlan0  INCOMPLETE
192.168.1.9 dev wlan0 lladdr 11:22:33:44:55:66 PERMANENT
192.168.1.12 dev wlan0 lladdr 22:33:44:55:66:77 STALE
fe80::1 dev wlan0 lladdr aa:bb:cc:dd:ee:ff router REACHABLE
"""

PROC_ARP = """\
IP address       HW type     Flags       HW address            Mask     Device
192.168.1.1      0x1         0x2         aa:bb:cc:dd:ee:ff     *        wlan0
192.168.1.50     0x1         0x0         00:00:00:00:00:00     *        wlan0
192.168.1.60     0x1         0x6         11:22:33:44:55:66     *        wlan0
"""

BSD_ARP = """\
? (192.168.1.1) at aa:bb:cc:dd:ee:ff on en0 ifscope [ethernet]
? (192.168.1.4) at (incomplete) on en0 ifscope [ethernet]
? (192.168.1.9) at 11:22:33:44:55:66 on en0 ifscope permanent [ethernet]
? (192.168.1.20) at 0:1a:2b:3:4:5 on en0 ifscope [ethernet]
"""


class TestParsers:
    """Each platform format is parsed into NeighborEntry rows."""

    def test_windows_sections(self):
        entries = parse_windows_arp(WINDOWS_ARP)

        assert len(entries) == 7
        assert entries[0] == NeighborEntry("192.168.1.1", "aa-bb-cc-dd-ee-ff", EntryKind.DYNAMIC, "192.168.1.10")
        assert entries[3].kind == EntryKind.STATIC
        assert entries[-1].interface == "10.0.0.5"

    def test_ip_neigh(self):
        entries = {e.ip: e for e in parse_ip_neigh(IP_NEIGH)}

        assert set(entries) == {"192.168.1.1", "192.168.1.7", "192.168.1.8", "192.168.1.9", "192.168.1.12"}
        assert entries["192.168.1.1"].mac == "aa:bb:cc:dd:ee:ff"
        assert entries["192.168.1.7"].kind == EntryKind.INCOMPLETE
        assert entries["192.168.1.8"].kind == EntryKind.INCOMPLETE
        assert entries["192.168.1.9"].kind == EntryKind.STATIC
        assert entries["192.168.1.20"].mac == "00:1a:2b:03:04:05"
        assert entries["192.168.1.4"].mac == "(incomplete)"
        assert entries["192.168.1.12"].kind == EntryKind.DYNAMIC

    def test_proc_arp_flags(self):
        entries = {e.ip: e for e in parse_proc_arp(PROC_ARP)}

        assert entries["192.168.1.1"].kind == EntryKind.DYNAMIC
        assert entries["192.168.1.50"].kind == EntryKind.INCOMPLETE
        assert entries["192.168.1.60"].kind == EntryKind.STATIC

    def test_bsd_arp(self):
        entries = {e.ip: e for e in parse_bsd_arp(BSD_ARP)}

        assert entries["192.168.1.1"].kind == EntryKind.DYNAMIC
        assert entries["192.168.1.4"].kind == EntryKind.INCOMPLETE
        assert entries["192.168.1.9"].kind == EntryKind.STATIC

    def test_empty_output(self):
        assert parse_windows_arp("") == []
        assert parse_ip_neigh("") == []
        assert parse_proc_arp("") == []


class TestSelectHardwareAddress:
    """Only complete, dynamic, well-formed entries resolve."""

    def test_normalizes_to_colons(self):
        entries = parse_windows_arp(WINDOWS_ARP)
        assert select_hardware_address(entries, "192.168.1.1", "192.168.1.10") == "AA:BB:CC:DD:EE:FF"

    def test_restricted_to_interface_section(self):
        entries = parse_windows_arp(WINDOWS_ARP)
        assert select_hardware_address(entries, "192.168.1.1", "10.0.0.5") == "11:22:33:44:55:66"

    def test_without_interface_takes_first(self):
        entries = parse_windows_arp(WINDOWS_ARP)
        assert select_hardware_address(entries, "192.168.1.1") == "AA:BB:CC:DD:EE:FF"

    @pytest.mark.parametrize("ip", ["192.168.1.20", "192.168.1.30", "192.168.1.255", "224.0.0.22", "192.168.1.99"])
    def test_rejected(self, ip):
        entries = parse_windows_arp(WINDOWS_ARP)
        assert select_hardware_address(entries, ip, "192.168.1.10") is None

    def test_linux_incomplete_and_permanent_rejected(self):
        entries = parse_ip_neigh(IP_NEIGH)

        assert select_hardware_address(entries, "192.168.1.7") is None
        assert select_hardware_address(entries, "192.168.1.9") is None
        assert select_hardware_address(entries, "192.168.1.12") == "22:33:44:55:66:77"

    def test_short_mac_rejected(self):
        entries = [NeighborEntry("10.0.0.2", "aa:bb:cc")]
        assert select_hardware_address(entries, "10.0.0.2") is None

    def test_incomplete_text_rejected(self):
        entries = [NeighborEntry("10.0.0.2", "(incomplete)")]
        assert select_hardware_address(entries, "10.0.0.2") is None

    def test_bsd_unpadded_octets_resolve(self):
        entries = parse_bsd_arp(BSD_ARP)

        assert select_hardware_address(entries, "192.168.1.20") == "00:1A:2B:03:04:05"
        assert select_hardware_address(entries, "192.168.1.4") is None
        assert select_hardware_address(entries, "192.168.1.9") is None


class TestNeighborTable:
    """Lookup runs the platform command and never raises."""

    @pytest.mark.asyncio
    async def test_lookup_windows(self, monkeypatch):
        async def fake_run(*args, timeout):
            assert args == ("arp", "-a")
            return WINDOWS_ARP

        monkeypatch.setattr(neighbors, "run_command", fake_run)
        table = NeighborTable(system="Windows")

        assert await table.lookup("10.0.0.1", "10.0.0.5") == "66:55:44:33:22:11"

    @pytest.mark.asyncio
    async def test_lookup_failure_is_none(self, monkeypatch):
        async def failing_run(*args, timeout):
            raise OSError("arp not found")

        monkeypatch.setattr(neighbors, "run_command", failing_run)
        table = NeighborTable(system="Windows")

        assert await table.lookup("192.168.1.1", "192.168.1.10") is None
