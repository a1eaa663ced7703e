"""Exception types shared by the agent and the web layer."""


class LuaLinkError(Exception):
    """Base class for all LuaLink errors."""


class ValidationError(LuaLinkError):
    """A request is missing fields or carries invalid values."""


class InterfaceDiscoveryError(LuaLinkError):
    """No usable local network interface could be selected."""


class NoInterfacesError(InterfaceDiscoveryError):
    def __init__(self, message: str = "No network interfaces found"):
        super().__init__(message)


class InterfaceNotFoundError(InterfaceDiscoveryError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Network interface {name} not found")


class PayloadReadError(LuaLinkError):
    """The payload file could not be read from disk."""
