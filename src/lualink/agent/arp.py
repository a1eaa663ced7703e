# LuaLink Agent - ARP Cache
"""Read the OS address-resolution table through `arp -a`."""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("lualink.agent.arp")

IP_PATTERN = re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")
MAC_PATTERN = re.compile(r"([0-9A-Fa-f]{2}[:-]){5}[0-9A-Fa-f]{2}")


@dataclass(frozen=True)
class ArpEntry:
    ip: str
    mac: str

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "mac": self.mac}


def parse_arp_output(output: str) -> list[ArpEntry]:
    """Extract (ip, mac) pairs, skipping broadcast and multicast entries."""
    entries = []
    for line in output.splitlines():
        ip_match = IP_PATTERN.search(line)
        mac_match = MAC_PATTERN.search(line)
        if not ip_match or not mac_match:
            continue
        ip = ip_match.group(1)
        if ip.endswith(".255") or ip.startswith("224."):
            continue
        entries.append(ArpEntry(ip=ip, mac=mac_match.group()))
    return entries


async def read_arp_table(timeout: float = 10.0) -> list[ArpEntry]:
    """Run `arp -a`; an unavailable or failing command yields an empty table."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "arp", "-a",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Error getting ARP table: {e!r}")
        return []
    return parse_arp_output(stdout.decode(errors="replace"))
