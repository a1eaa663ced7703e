# LuaLink Agent - Event Models
"""Progress events emitted by scans and delivery sessions."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .broadcaster import EventBroadcaster

logger = logging.getLogger("lualink.agent.events")


class EventType(str, Enum):
    """Kinds of progress events."""
    STATUS = "status"
    DATA = "data"
    ERROR = "error"
    SUCCESS = "success"


@dataclass
class ProgressEvent:
    """
    One entry of a session timeline.
    DATA events also carry the raw bytes received from the device.
    """
    type: EventType
    message: str
    data: bytes | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def hex(self) -> str | None:
        return self.data.hex() if self.data is not None else None

    @property
    def length(self) -> int | None:
        return len(self.data) if self.data is not None else None

    @classmethod
    def status(cls, message: str) -> "ProgressEvent":
        return cls(EventType.STATUS, message)

    @classmethod
    def error(cls, message: str) -> "ProgressEvent":
        return cls(EventType.ERROR, message)

    @classmethod
    def success(cls, message: str) -> "ProgressEvent":
        return cls(EventType.SUCCESS, message)

    @classmethod
    def received(cls, chunk: bytes) -> "ProgressEvent":
        return cls(EventType.DATA, chunk.decode("utf-8", errors="replace"), data=bytes(chunk))

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape used by the live event stream."""
        result: dict[str, Any] = {"type": self.type.value, "message": self.message}
        if self.type == EventType.DATA:
            result["hex"] = self.hex
            result["length"] = self.length
        return result


class EventJournal:
    """
    Ordered record of one request's events plus its textual log.

    Every emitted event is appended here first and then published to the
    broadcaster, so the journal and live observers see the same order.
    """

    def __init__(self, broadcaster: Optional["EventBroadcaster"] = None):
        self.broadcaster = broadcaster
        self.events: list[ProgressEvent] = []
        self.logs: list[str] = []

    def note(self, line: str) -> None:
        """Append a line to the textual log only."""
        self.logs.append(line)

    def emit(self, event: ProgressEvent) -> ProgressEvent:
        self.events.append(event)
        self.logs.append(event.message if event.type != EventType.DATA
                         else f"Received data from device ({event.length} bytes)")
        if self.broadcaster is not None:
            self.broadcaster.publish(event)
        return event

    def status(self, message: str) -> ProgressEvent:
        return self.emit(ProgressEvent.status(message))

    def error(self, message: str) -> ProgressEvent:
        return self.emit(ProgressEvent.error(message))

    def success(self, message: str) -> ProgressEvent:
        return self.emit(ProgressEvent.success(message))
