"""Settings persistence for LuaLink."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

logger = logging.getLogger("lualink.config")

DATA_DIR = Path.home() / ".lualink"
SETTINGS_FILE = DATA_DIR / "settings.json"


class Settings(BaseModel):
    """Runtime settings. Every value has a working default."""
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)

    uploads_dir: Path = DATA_DIR / "uploads"
    payloads_dir: Path = DATA_DIR / "payloads"

    # Discovery
    primary_port: int = 9026
    secondary_port: int = 9021
    probe_timeout_ms: int = 100
    scan_batch_size: int = Field(50, ge=1)

    # Delivery
    session_timeout_ms: int = 30000
    header_delay_ms: int = 100
    binary_extensions: list[str] = Field(default_factory=lambda: [".elf", ".bin"])
    crash_payload: str = "elf_loader.lua"
    response_payload: str = "umtx.lua"

    @property
    def probe_timeout(self) -> float:
        return self.probe_timeout_ms / 1000

    @property
    def session_timeout(self) -> float:
        return self.session_timeout_ms / 1000

    @property
    def header_delay(self) -> float:
        return self.header_delay_ms / 1000


def settings_path() -> Path:
    env_path = os.environ.get("LUALINK_SETTINGS")
    return Path(env_path) if env_path else SETTINGS_FILE


def load_settings(path: Optional[Path] = None) -> Settings:
    """Load settings from file or return defaults."""
    path = path or settings_path()
    data: dict = {}
    try:
        if path.exists():
            data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load settings from {path}: {e}")
        data = {}

    if os.environ.get("PORT"):
        data["port"] = os.environ["PORT"]

    try:
        return Settings.model_validate(data)
    except PydanticValidationError as e:
        logger.warning(f"Invalid settings in {path}, using defaults: {e}")
        return Settings()


def save_settings(settings: Settings, path: Optional[Path] = None) -> bool:
    """Save settings to file."""
    path = path or settings_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(settings.model_dump_json(indent=2))
        return True
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        return False
