# LuaLink Agent - Payload Store
"""Pre-staged payloads and temporary upload artifacts."""

import logging
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from ..errors import PayloadReadError, ValidationError

logger = logging.getLogger("lualink.agent.payloads")


@dataclass(frozen=True)
class PayloadSource:
    """Where a payload lives on disk. Staged sources are deleted after use."""
    name: str
    path: Path
    staged: bool = False


def _safe_name(filename: str | None) -> str:
    # Drop any directory part, including Windows separators from browsers.
    name = Path((filename or "").replace("\\", "/")).name
    if not name or name in {".", ".."}:
        raise ValidationError("Invalid payload file name")
    return name


class PayloadStore:
    """File-system access for payloads."""

    def __init__(self, payloads_dir: Path, uploads_dir: Path):
        self.payloads_dir = Path(payloads_dir)
        self.uploads_dir = Path(uploads_dir)

    def available(self) -> list[str]:
        """Names of the pre-staged payloads."""
        if not self.payloads_dir.is_dir():
            return []
        return sorted(p.name for p in self.payloads_dir.iterdir() if p.is_file())

    def predefined(self, name: str) -> PayloadSource:
        safe = _safe_name(name)
        path = self.payloads_dir / safe
        if not path.is_file():
            raise ValidationError(f"Predefined file {safe} not found")
        return PayloadSource(name=safe, path=path, staged=False)

    async def stage_upload(self, filename: str | None, data: bytes) -> PayloadSource:
        """Write an uploaded payload under its original name."""
        name = _safe_name(filename)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        path = self.uploads_dir / name
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.debug(f"Staged upload {name} ({len(data)} bytes) at {path}")
        return PayloadSource(name=name, path=path, staged=True)

    async def read(self, source: PayloadSource) -> bytes:
        try:
            async with aiofiles.open(source.path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise PayloadReadError(f"Error reading file: {e.strerror or e}") from e

    def discard(self, source: PayloadSource) -> bool:
        """Remove a staged artifact. Returns True when a file was deleted."""
        if not source.staged:
            return False
        try:
            source.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete temporary file {source.path}: {e}")
            return False
        return True
