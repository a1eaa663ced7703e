# LuaLink Agent - Port Probe
"""Bounded-time TCP connect checks."""

import asyncio
import logging
import socket

logger = logging.getLogger("lualink.agent.probe")


class PortProbe:
    """
    Single-port reachability check.

    probe() never raises: a completed handshake within the timeout is True,
    anything else (timeout, refusal, unroutable, bad address) is False.
    """

    def __init__(self, timeout: float = 0.1):
        self.timeout = timeout

    async def probe(self, ip: str, port: int, timeout: float | None = None) -> bool:
        timeout = self.timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        sock = None
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setblocking(False)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            await asyncio.wait_for(loop.sock_connect(sock, (ip, port)), timeout=timeout)
            return True
        except Exception as e:
            logger.debug(f"Probe {ip}:{port} closed: {e!r}")
            return False
        finally:
            if sock is not None:
                sock.close()
