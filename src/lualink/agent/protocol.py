# LuaLink Agent - Loader Wire Protocol
"""
Framing rules for payloads sent to the loader port.

Binary payloads (.elf/.bin) go out raw. Everything else is preceded by an
8-byte little-endian size header: bytes 0-3 hold the payload length as an
unsigned 32-bit integer, bytes 4-7 are zero.
"""

import re
import struct
from typing import Iterable

SIZE_HEADER_FORMAT = "<II"
SIZE_HEADER_LEN = struct.calcsize(SIZE_HEADER_FORMAT)
MAX_FRAMED_PAYLOAD = 0xFFFFFFFF

BINARY_EXTENSIONS = (".elf", ".bin")
CRASH_PAYLOAD = "elf_loader.lua"
RESPONSE_PAYLOAD = "umtx.lua"

DUMP_DISPLAY_LIMIT = 100

_NON_PRINTABLE = re.compile(rb"[^\x20-\x7e]")


def build_size_header(length: int) -> bytes:
    """Size header for a payload of `length` bytes."""
    if not 0 <= length <= MAX_FRAMED_PAYLOAD:
        raise ValueError(f"Payload of {length} bytes cannot be framed (limit {MAX_FRAMED_PAYLOAD})")
    return struct.pack(SIZE_HEADER_FORMAT, length, 0)


def parse_size_header(header: bytes) -> int:
    if len(header) != SIZE_HEADER_LEN:
        raise ValueError(f"Size header must be {SIZE_HEADER_LEN} bytes, got {len(header)}")
    length, high = struct.unpack(SIZE_HEADER_FORMAT, header)
    if high:
        raise ValueError("Size header high word must be zero")
    return length


def is_binary_payload(name: str, extensions: Iterable[str] = BINARY_EXTENSIONS) -> bool:
    """Suffix match, case-sensitive: "LOADER.ELF" is framed like any script."""
    return any(name.endswith(ext) for ext in extensions)


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def hex_dump(data: bytes, limit: int = DUMP_DISPLAY_LIMIT) -> str:
    """Space separated hex pairs, cut at `limit` characters."""
    return _truncate(data.hex(" "), limit)


def ascii_dump(data: bytes, limit: int = DUMP_DISPLAY_LIMIT) -> str:
    """Printable ASCII with every other byte shown as '.'."""
    return _truncate(_NON_PRINTABLE.sub(b".", data).decode("ascii"), limit)
