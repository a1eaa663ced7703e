# LuaLink Agent - Subnet Scanner
"""
Discovery of loader-capable devices on the local /24.

Every address of the selected interface's /24 is probed on the primary
loader port; hosts that answer are probed once more on the secondary port.
Probing runs in fixed-size batches: all probes of a batch run concurrently,
batches run one after another to bound the number of open sockets.

Known limitation: the prefix is always the first three octets of the local
IPv4 address, whatever the real netmask is.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import InterfaceNotFoundError, NoInterfacesError
from .broadcaster import EventBroadcaster
from .events import ProgressEvent
from .interfaces import InterfaceLister, NetworkInterface
from .probe import PortProbe

logger = logging.getLogger("lualink.agent.scanner")

PRIMARY_PORT = 9026
SECONDARY_PORT = 9021


@dataclass(frozen=True)
class ScanTarget:
    """The /24 being swept and the local address to leave out."""
    prefix: str
    excluded_address: str

    @classmethod
    def from_interface(cls, interface: NetworkInterface) -> "ScanTarget":
        octets = interface.ipv4.split(".")
        return cls(prefix=".".join(octets[:3]), excluded_address=interface.ipv4)

    def candidates(self) -> list[str]:
        """prefix.1 .. prefix.254 without the local address."""
        return [
            ip for ip in (f"{self.prefix}.{i}" for i in range(1, 255))
            if ip != self.excluded_address
        ]


@dataclass(frozen=True)
class LiveHost:
    """A device that answered on the primary port."""
    ip: str
    open_ports: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"ip": self.ip, "ports": list(self.open_ports)}


@dataclass
class DiscoveryResult:
    """Outcome of one discovery request."""
    local_interfaces: list[NetworkInterface]
    selected: NetworkInterface
    live_hosts: list[LiveHost] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "localIPs": [iface.to_dict() for iface in self.local_interfaces],
            "activeHosts": [host.to_dict() for host in self.live_hosts],
        }


def select_interface(
    interfaces: list[NetworkInterface],
    name: Optional[str] = None,
) -> NetworkInterface:
    """
    Pick the interface to scan from.

    A requested name must match exactly. Without one, the first address
    outside 169.254.0.0/16 wins, falling back to the first entry.
    """
    if not interfaces:
        raise NoInterfacesError()

    if name:
        for iface in interfaces:
            if iface.name == name:
                return iface
        raise InterfaceNotFoundError(name)

    for iface in interfaces:
        if not iface.is_link_local:
            return iface
    return interfaces[0]


class SubnetScanner:
    """Batched two-port sweep of the local /24."""

    def __init__(
        self,
        lister: InterfaceLister | None = None,
        prober: PortProbe | None = None,
        broadcaster: EventBroadcaster | None = None,
        primary_port: int = PRIMARY_PORT,
        secondary_port: int = SECONDARY_PORT,
        probe_timeout: float = 0.1,
        batch_size: int = 50,
    ):
        """
        Initialize the scanner.

        Args:
            lister: Source of local interfaces
            prober: Port probe used for every connection attempt
            broadcaster: Receives scan progress STATUS events
            primary_port: Port that marks a host as live
            secondary_port: Port checked only on live hosts
            probe_timeout: Per-probe connect timeout in seconds
            batch_size: Number of hosts probed concurrently
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.lister = lister or InterfaceLister()
        self.prober = prober or PortProbe(timeout=probe_timeout)
        self.broadcaster = broadcaster
        self.primary_port = primary_port
        self.secondary_port = secondary_port
        self.probe_timeout = probe_timeout
        self.batch_size = batch_size

    def list_interfaces(self) -> list[NetworkInterface]:
        return self.lister.list_interfaces()

    async def discover(self, interface_name: Optional[str] = None) -> DiscoveryResult:
        """List interfaces, select one and sweep its /24."""
        interfaces = self.list_interfaces()
        logger.info(f"Local IPs found: {[iface.to_dict() for iface in interfaces]}")
        selected = select_interface(interfaces, interface_name)
        hosts = await self._sweep(selected)
        return DiscoveryResult(local_interfaces=interfaces, selected=selected, live_hosts=hosts)

    async def scan(self, interface_name: Optional[str] = None) -> list[LiveHost]:
        result = await self.discover(interface_name)
        return result.live_hosts

    async def _sweep(self, selected: NetworkInterface) -> list[LiveHost]:
        target = ScanTarget.from_interface(selected)
        candidates = target.candidates()
        batches = [
            candidates[i:i + self.batch_size]
            for i in range(0, len(candidates), self.batch_size)
        ]

        message = f"Scanning network {target.prefix}.x on interface {selected.name}..."
        logger.info(message)
        self._publish(message)

        hosts: list[LiveHost] = []
        for index, batch in enumerate(batches, start=1):
            found = await self.scan_batch(batch)
            hosts.extend(found)
            logger.debug(f"Batch {index}/{len(batches)} done: {len(found)} live")
            self._publish(f"Scanned batch {index}/{len(batches)} ({len(hosts)} found so far)")

        message = f"Scan complete. Found {len(hosts)} device(s) on network {target.prefix}.x"
        logger.info(message)
        self._publish(message)
        return hosts

    async def scan_batch(self, ips: list[str]) -> list[LiveHost]:
        """Probe a batch concurrently; keep only hosts with the primary port open."""
        results = await asyncio.gather(*[self.probe_host(ip) for ip in ips])
        return [host for host in results if host is not None]

    async def probe_host(self, ip: str) -> LiveHost | None:
        if not await self._check(ip, self.primary_port):
            return None
        if await self._check(ip, self.secondary_port):
            return LiveHost(ip=ip, open_ports=(self.primary_port, self.secondary_port))
        return LiveHost(ip=ip, open_ports=(self.primary_port,))

    async def _check(self, ip: str, port: int) -> bool:
        try:
            return await self.prober.probe(ip, port, self.probe_timeout)
        except Exception as e:
            logger.debug(f"Probe error {ip}:{port}: {e}")
            return False

    def _publish(self, message: str) -> None:
        if self.broadcaster is not None:
            self.broadcaster.publish(ProgressEvent.status(message))
