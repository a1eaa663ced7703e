"""
LuaLink - local network payload sender.

Finds devices on the local subnet that listen on the loader ports and
delivers Lua/ELF payloads to them while streaming progress to observers.
"""

__version__ = "0.3.0"
__author__ = "LuaLink Contributors"

from lualink.config import Settings, load_settings
from lualink.errors import (
    LuaLinkError,
    ValidationError,
    InterfaceDiscoveryError,
    NoInterfacesError,
    InterfaceNotFoundError,
    PayloadReadError,
)

__all__ = [
    "Settings",
    "load_settings",
    "LuaLinkError",
    "ValidationError",
    "InterfaceDiscoveryError",
    "NoInterfacesError",
    "InterfaceNotFoundError",
    "PayloadReadError",
]
