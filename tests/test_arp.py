"""Tests for ARP table parsing."""

import pytest

from lualink.agent import arp
from lualink.agent.arp import ArpEntry, parse_arp_output, read_arp_table


LINUX_OUTPUT = """\
? (192.168.1.1) at a4:2b:b0:11:22:33 [ether] on wlan0
ps5.lan (192.168.1.50) at 00:d9:d1:aa:bb:cc [ether] on wlan0
? (192.168.1.255) at ff:ff:ff:ff:ff:ff [ether] on wlan0
? (224.0.0.251) at 01:00:5e:00:00:fb [ether] on wlan0
? (192.168.1.77) at <incomplete> on wlan0
"""

WINDOWS_OUTPUT = """\
Interface: 192.168.1.10 --- 0x7
  Internet Address      Physical Address      Type
  192.168.1.1           a4-2b-b0-11-22-33     dynamic
  192.168.1.255         ff-ff-ff-ff-ff-ff     static
"""


class TestArpParsing:
    """Test `arp -a` output parsing."""

    def test_linux_output(self):
        entries = parse_arp_output(LINUX_OUTPUT)
        assert entries == [
            ArpEntry("192.168.1.1", "a4:2b:b0:11:22:33"),
            ArpEntry("192.168.1.50", "00:d9:d1:aa:bb:cc"),
        ]

    def test_windows_output(self):
        entries = parse_arp_output(WINDOWS_OUTPUT)
        assert entries == [ArpEntry("192.168.1.1", "a4-2b-b0-11-22-33")]

    def test_empty_output(self):
        assert parse_arp_output("") == []

    @pytest.mark.asyncio
    async def test_missing_command_returns_empty(self, monkeypatch):
        async def missing(*args, **kwargs):
            raise FileNotFoundError("arp")

        monkeypatch.setattr(arp.asyncio, "create_subprocess_exec", missing)
        assert await read_arp_table() == []
