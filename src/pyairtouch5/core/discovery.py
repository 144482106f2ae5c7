# src/pyairtouch5/core/discovery.py
import asyncio
import logging
from collections.abc import Callable

from pydantic import ValidationError

from .constants import (
    DISCOVERY_BROADCAST_ADDRESS,
    DISCOVERY_PORT,
    DISCOVERY_REQUEST,
    DISCOVERY_TIMEOUT,
)
from .models import DiscoveredController

log = logging.getLogger(__name__)

# ip, console id, <unused>, controller id, device name
MIN_REPLY_FIELDS = 5


def parse_discovery_reply(data: bytes) -> DiscoveredController | None:
    """Parses one UDP reply; returns None for our own broadcast or junk."""
    if data == DISCOVERY_REQUEST:
        return None
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        log.debug(f"Ignoring non-text discovery reply {data.hex()}")
        return None
    fields = [f.strip() for f in text.split(",")]
    if len(fields) < MIN_REPLY_FIELDS or not fields[0]:
        log.debug(f"Ignoring malformed discovery reply {text!r}")
        return None
    try:
        return DiscoveredController(
            ip=fields[0],
            console_id=fields[1],
            controller_id=fields[3],
            name=fields[4],
        )
    except ValidationError as e:
        log.debug(f"Ignoring discovery reply {text!r}: {e}")
        return None


class DiscoveryProtocol(asyncio.DatagramProtocol):
    def __init__(
        self,
        on_found: Callable[[DiscoveredController], None],
        broadcast_address: str,
        port: int,
    ):
        self.on_found = on_found
        self.broadcast_address = broadcast_address
        self.port = port
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]
        log.debug(f"Broadcasting discovery request to {self.broadcast_address}:{self.port}")
        self.transport.sendto(DISCOVERY_REQUEST, (self.broadcast_address, self.port))

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        controller = parse_discovery_reply(data)
        if controller is None:
            return
        log.info(f"Found controller {controller.controller_id} on {controller.ip}")
        try:
            self.on_found(controller)
        except Exception:
            log.exception(f"Discovery callback failed for {controller.ip}")

    def error_received(self, exc: Exception) -> None:
        log.warning(f"Discovery socket error: {exc!r}")


async def discover_controllers(
    on_found: Callable[[DiscoveredController], None],
    *,
    port: int = DISCOVERY_PORT,
    timeout: float = DISCOVERY_TIMEOUT,
    broadcast_address: str = DISCOVERY_BROADCAST_ADDRESS,
) -> None:
    """
    Broadcasts the discovery request and reports each reply to ``on_found``
    as it arrives. The socket is closed after ``timeout`` seconds
    regardless of how many controllers answered.
    """
    loop = asyncio.get_running_loop()
    transport, _ = await loop.create_datagram_endpoint(
        lambda: DiscoveryProtocol(on_found, broadcast_address, port),
        local_addr=("0.0.0.0", port),
        allow_broadcast=True,
    )
    try:
        await asyncio.sleep(timeout)
    finally:
        log.debug("Discovery window closed")
        transport.close()
