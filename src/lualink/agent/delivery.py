# LuaLink Agent - Payload Delivery
"""
Single-connection payload delivery to a loader port.

A DeliverySession walks one TCP connection through

    CONNECTING -> CONNECTED -> (FRAMING_WAIT ->) SENDING
               -> OPEN_AWAITING_CLOSE -> CLOSED

with ERRORED reachable from any non-terminal state. Every transition emits
a progress event. An inactivity timer guards every connect, write and read;
the timer firing is a successful outcome: the loader either crashed as
intended or is still busy with the payload.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Iterable, Optional, TypeVar

from ..config import Settings
from ..errors import PayloadReadError, ValidationError
from .broadcaster import EventBroadcaster
from .events import EventJournal, EventType, ProgressEvent
from .payloads import PayloadSource, PayloadStore
from .protocol import (
    BINARY_EXTENSIONS,
    CRASH_PAYLOAD,
    RESPONSE_PAYLOAD,
    ascii_dump,
    build_size_header,
    hex_dump,
    is_binary_payload,
)

logger = logging.getLogger("lualink.agent.delivery")

T = TypeVar("T")

MISSING_TARGET = "Missing required fields (IP address or port)"


class SessionState(str, Enum):
    """Delivery session lifecycle."""
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FRAMING_WAIT = "framing_wait"
    SENDING = "sending"
    OPEN_AWAITING_CLOSE = "open_awaiting_close"
    CLOSED = "closed"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.ERRORED})


class SessionTimeout(Exception):
    """The session inactivity timer fired."""


def validate_target(ip: Optional[str], port: Any) -> tuple[str, int]:
    """Normalize a target address coming from a form or the command line."""
    if not ip or port is None or str(port).strip() == "":
        raise ValidationError(MISSING_TARGET)
    try:
        port_number = int(str(port).strip())
    except ValueError:
        raise ValidationError(f"Invalid port: {port}") from None
    if not 1 <= port_number <= 65535:
        raise ValidationError(f"Invalid port: {port_number}")
    return ip.strip(), port_number


@dataclass(frozen=True)
class DeliveryRequest:
    """What to send and where. Immutable once built."""
    target_ip: str
    target_port: int
    payload_name: str
    payload: bytes

    def __post_init__(self):
        if not self.target_ip:
            raise ValidationError(MISSING_TARGET)
        if not 1 <= self.target_port <= 65535:
            raise ValidationError(f"Invalid port: {self.target_port}")
        if not self.payload_name:
            raise ValidationError("Missing payload name")


@dataclass
class DeliveryResult:
    """Final outcome of a delivery, produced exactly once."""
    success: bool
    message: str = ""
    response: bytes = b""
    error: Optional[str] = None
    events: list[ProgressEvent] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)

    @property
    def response_text(self) -> str:
        if self.response:
            return self.response.decode("utf-8", errors="replace")
        return self.message

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "response": self.response_text, "logs": self.logs}
        return {"success": False, "error": self.error, "logs": self.logs}


class DeliverySession:
    """
    Owns one connection to a target device and the state machine around it.
    A session runs once; run() always returns the same result afterwards.
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        request: DeliveryRequest,
        broadcaster: EventBroadcaster | None = None,
        journal: EventJournal | None = None,
        timeout: float = 30.0,
        header_delay: float = 0.1,
        binary_extensions: Iterable[str] = BINARY_EXTENSIONS,
        crash_payload: str = CRASH_PAYLOAD,
        response_payload: str = RESPONSE_PAYLOAD,
        artifact: Path | None = None,
    ):
        """
        Initialize a session.

        Args:
            request: Target and payload
            broadcaster: Live observers, ignored when a journal is given
            journal: Existing timeline to continue (events already emitted
                by the caller stay in front)
            timeout: Inactivity timer in seconds
            header_delay: Pause between size header and payload
            binary_extensions: Name suffixes sent without a size header
            crash_payload: Payload whose timeout means the device went down
            response_payload: Payload expected to answer before closing
            artifact: Uploaded file removed when the session ends
        """
        self.request = request
        self.journal = journal or EventJournal(broadcaster)
        self.timeout = timeout
        self.header_delay = header_delay
        self.binary_extensions = tuple(binary_extensions)
        self.crash_payload = crash_payload
        self.response_payload = response_payload
        self.artifact = artifact

        self.state = SessionState.CONNECTING
        self.response = bytearray()
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._result: DeliveryResult | None = None
        self._cleaned_up = False

    @property
    def events(self) -> list[ProgressEvent]:
        return self.journal.events

    @property
    def logs(self) -> list[str]:
        return self.journal.logs

    @property
    def target(self) -> str:
        return f"{self.request.target_ip}:{self.request.target_port}"

    @property
    def framed(self) -> bool:
        return not is_binary_payload(self.request.payload_name, self.binary_extensions)

    @property
    def is_crash_payload(self) -> bool:
        return self.request.payload_name.lower() == self.crash_payload.lower()

    @property
    def expects_response(self) -> bool:
        return self.request.payload_name.lower() == self.response_payload.lower()

    @property
    def finalized(self) -> bool:
        return self._result is not None

    async def run(self) -> DeliveryResult:
        if self._result is not None:
            return self._result

        try:
            await self._connect()
            if self.framed:
                await self._send_framed()
                await self._await_close()
            else:
                await self._send_raw()
        except SessionTimeout:
            self._on_timeout()
        except (OSError, ValueError) as e:
            self._on_error(e)
        finally:
            await self._cleanup()

        return self._result

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        self.journal.status(f"Connection timeout set to {int(self.timeout * 1000)}ms")
        self._emit(EventType.STATUS, f"Attempting to connect to {self.target}...")
        # A device that already went down never completes the handshake;
        # the timer firing here is handled like any other timeout.
        self._reader, self._writer = await self._guard(
            asyncio.open_connection(self.request.target_ip, self.request.target_port)
        )

        logger.info(f"Connected to device {self.target}")
        self._transition(SessionState.CONNECTED, f"Successfully connected to {self.target}")
        self.journal.status(f"File size: {len(self.request.payload)} bytes")

    async def _send_raw(self) -> None:
        payload = self.request.payload
        self._transition(SessionState.SENDING, "Sending binary file data directly...")
        self._writer.write(payload)
        await self._guard(self._writer.drain())
        logger.info(f"Binary payload sent to {self.target} ({len(payload)} bytes)")
        self.journal.status(f"Binary file sent successfully ({len(payload)} bytes)")

        # Nothing is expected back from a raw binary; close right away.
        await self._close_writer(abort=False)
        self._transition(SessionState.CLOSED, "Connection closed")
        self._finalize(True, message=f"Binary file sent ({len(payload)} bytes)")

    async def _send_framed(self) -> None:
        payload = self.request.payload
        header = build_size_header(len(payload))

        self.journal.note(f"Size header (8 bytes, little-endian): {header.hex()}")
        self._transition(SessionState.FRAMING_WAIT, f"Size header: {header.hex()}")
        self._writer.write(header)
        await self._guard(self._writer.drain())
        self.journal.status("Size header sent successfully")

        # Give the loader time to parse the header before the body starts.
        await asyncio.sleep(self.header_delay)

        self._transition(SessionState.SENDING, f"Sending file data ({len(payload)} bytes)...")
        self._writer.write(payload)
        await self._guard(self._writer.drain())
        logger.info(f"Payload {self.request.payload_name} sent to {self.target}")
        self.journal.status(f"File data sent successfully ({len(payload)} bytes)")

        self._transition(SessionState.OPEN_AWAITING_CLOSE, "Connection kept open for loader")
        if self.expects_response:
            self.journal.status(f"Waiting for response from {self.request.payload_name}...")
        elif self.is_crash_payload:
            self.journal.status("Kernel panic should be triggered now")

    async def _await_close(self) -> None:
        while True:
            chunk = await self._guard(self._reader.read(self.CHUNK_SIZE))
            if not chunk:
                break
            self._on_data(chunk)

        logger.info(f"Connection to {self.target} closed by remote")
        self._transition(SessionState.CLOSED, "Connection closed")
        self._finalize(True, message="Connection closed by remote")

    def _on_data(self, chunk: bytes) -> None:
        self.response.extend(chunk)
        logger.info(f"Received data from device: {chunk!r}")
        self.journal.emit(ProgressEvent.received(chunk))
        self.journal.note(f"RECEIVED [HEX]: {hex_dump(chunk)}")
        self.journal.note(f"RECEIVED [ASCII]: {ascii_dump(chunk)}")

    def _on_timeout(self) -> None:
        if self.is_crash_payload:
            message = "Kernel panic triggered successfully"
            logger.info("Connection timed out - kernel panic triggered")
            self.journal.note("Connection timed out - kernel panic triggered")
            self.journal.note(f"This is expected behavior for {self.request.payload_name}")
            self.journal.success("Payload delivered - kernel panic triggered")
        else:
            message = "Payload sent - waiting for kernel panic"
            logger.info("Connection timed out - waiting for kernel panic")
            self.journal.status("Connection timed out - waiting for kernel panic")

        self.journal.note(f"Connection state at timeout: {self.state.value}")
        if self._writer is not None:
            self._writer.transport.abort()
        self._transition(SessionState.CLOSED, "Connection closed")
        self._finalize(True, message=message)

    def _on_error(self, exc: Exception) -> None:
        message = str(exc) or exc.__class__.__name__
        if self.finalized:
            # The caller already has its result; late socket errors are only logged.
            logger.warning(f"Connection error after completion for {self.target}: {message}")
            return

        logger.error(f"Connection error for {self.target}: {message}")
        code = getattr(exc, "errno", None)
        if code is not None:
            self.journal.note(f"Error code: {code}")
        if self.state not in TERMINAL_STATES:
            self._transition(SessionState.ERRORED, f"Connection error: {message}", EventType.ERROR)
        self._finalize(False, error=message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _guard(self, aw: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.timeout)
        except asyncio.TimeoutError:
            raise SessionTimeout() from None

    def _emit(self, event_type: EventType, message: str) -> None:
        self.journal.emit(ProgressEvent(event_type, message))

    def _transition(
        self,
        state: SessionState,
        message: str,
        event_type: EventType = EventType.STATUS,
    ) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Session already {self.state.value}, cannot move to {state.value}")
        logger.debug(f"{self.target}: {self.state.value} -> {state.value}")
        self.state = state
        self._emit(event_type, message)

    def _finalize(
        self,
        success: bool,
        message: str = "",
        error: Optional[str] = None,
    ) -> None:
        if self._result is not None:
            return
        self._result = DeliveryResult(
            success=success,
            message=message,
            response=bytes(self.response),
            error=error,
            events=self.journal.events,
            logs=self.journal.logs,
        )

    async def _close_writer(self, abort: bool) -> None:
        writer, self._writer = self._writer, None
        if writer is None:
            return
        if abort:
            writer.transport.abort()
        else:
            writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Socket teardown for {self.target}: {e!r}")

    async def _cleanup(self) -> None:
        if self._cleaned_up:
            return
        self._cleaned_up = True

        await self._close_writer(abort=self.state != SessionState.CLOSED)

        if self.artifact is not None:
            try:
                self.artifact.unlink()
                self.journal.note("Temporary file deleted")
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"Failed to delete temporary file {self.artifact}: {e}")


async def deliver_payload(
    store: PayloadStore,
    source: PayloadSource,
    target_ip: str,
    target_port: int,
    broadcaster: EventBroadcaster | None = None,
    settings: Settings | None = None,
) -> DeliveryResult:
    """
    Read a payload and push it to a device.

    Read failures end the request before any connection is attempted. A
    staged upload is removed however the request ends.
    """
    settings = settings or Settings()
    journal = EventJournal(broadcaster)
    journal.status(f"Starting process for file: {source.name}")
    journal.note(f"Target: {target_ip}:{target_port}")
    logger.info(f"Sending {source.name} to {target_ip}:{target_port}")

    try:
        payload = await store.read(source)
        request = DeliveryRequest(
            target_ip=target_ip,
            target_port=target_port,
            payload_name=source.name,
            payload=payload,
        )
    except PayloadReadError as e:
        logger.error(str(e))
        journal.error(str(e))
        if store.discard(source):
            journal.note("Temporary file deleted")
        return DeliveryResult(
            success=False,
            error=str(e),
            events=journal.events,
            logs=journal.logs,
        )
    except ValidationError:
        store.discard(source)
        raise

    journal.status(f"File read successfully, content size: {len(payload)} bytes")

    session = DeliverySession(
        request,
        journal=journal,
        timeout=settings.session_timeout,
        header_delay=settings.header_delay,
        binary_extensions=settings.binary_extensions,
        crash_payload=settings.crash_payload,
        response_payload=settings.response_payload,
        artifact=source.path if source.staged else None,
    )
    return await session.run()
