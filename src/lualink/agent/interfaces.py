# LuaLink Agent - Local Interfaces
"""Enumerate the host's non-loopback IPv4 addresses."""

import logging
import socket
from dataclasses import dataclass
from ipaddress import ip_address
from typing import Any

import psutil

logger = logging.getLogger("lualink.agent.interfaces")


@dataclass(frozen=True)
class NetworkInterface:
    """A local IPv4 address and the interface that owns it."""
    name: str
    ipv4: str
    netmask: str

    @property
    def is_link_local(self) -> bool:
        return ip_address(self.ipv4).is_link_local

    def to_dict(self) -> dict[str, Any]:
        return {
            "interface": self.name,
            "ip": self.ipv4,
            "netmask": self.netmask,
        }


class InterfaceLister:
    """Reads interface addresses through psutil on every call."""

    def list_interfaces(self) -> list[NetworkInterface]:
        interfaces = []
        for name, addrs in psutil.net_if_addrs().items():
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                try:
                    if ip_address(addr.address).is_loopback:
                        continue
                except ValueError:
                    logger.debug(f"Skipping unparseable address on {name}: {addr.address}")
                    continue
                interfaces.append(NetworkInterface(
                    name=name,
                    ipv4=addr.address,
                    netmask=addr.netmask or "",
                ))
        return interfaces
