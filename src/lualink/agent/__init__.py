# LuaLink Agent - Discovery & Delivery
"""
The LuaLink agent finds loader-capable devices on the local network
and delivers payloads to them.
"""

from .events import EventType, ProgressEvent, EventJournal
from .broadcaster import EventBroadcaster, Subscriber
from .interfaces import InterfaceLister, NetworkInterface
from .probe import PortProbe
from .scanner import (
    SubnetScanner,
    ScanTarget,
    LiveHost,
    DiscoveryResult,
    select_interface,
    PRIMARY_PORT,
    SECONDARY_PORT,
)
from .payloads import PayloadStore, PayloadSource
from .delivery import (
    DeliverySession,
    DeliveryRequest,
    DeliveryResult,
    SessionState,
    deliver_payload,
    validate_target,
)
from .arp import ArpEntry, read_arp_table

__all__ = [
    # Events
    "EventType",
    "ProgressEvent",
    "EventJournal",
    "EventBroadcaster",
    "Subscriber",
    # Discovery
    "InterfaceLister",
    "NetworkInterface",
    "PortProbe",
    "SubnetScanner",
    "ScanTarget",
    "LiveHost",
    "DiscoveryResult",
    "select_interface",
    "PRIMARY_PORT",
    "SECONDARY_PORT",
    # Delivery
    "PayloadStore",
    "PayloadSource",
    "DeliverySession",
    "DeliveryRequest",
    "DeliveryResult",
    "SessionState",
    "deliver_payload",
    "validate_target",
    # ARP
    "ArpEntry",
    "read_arp_table",
]
