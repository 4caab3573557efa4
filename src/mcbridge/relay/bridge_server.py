"""
Internal control port of the relay.

The origin dials this port for two purposes, told apart by the first bytes
it sends:

    AUTH_CONTROL        -> becomes the control channel
    TUNNEL_FOR:<id>     -> origin half of a pending tunnel

Only one control channel is active. A second AUTH_CONTROL replaces the first
one, which is closed explicitly.
"""

import asyncio

from mcbridge.models.enums import PeerRole
from mcbridge.protocol.control import Hello, parse_hello
from mcbridge.protocol.exceptions import HelloError
from mcbridge.relay.config import RelayConfig
from mcbridge.relay.registry import TunnelRegistry
from mcbridge.relay.state import ControlChannel, ControlChannelHolder
from mcbridge.tunnel.pipe import close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)

HELLO_READ_SIZE: int = 256


class BridgeServer:
    """Accepts control channel and tunnel connections from the origin."""

    def __init__(
        self,
        config: RelayConfig,
        control: ControlChannelHolder,
        registry: TunnelRegistry,
    ):
        self.config = config
        self.control = control
        self.registry = registry
        self._server: asyncio.Server | None = None

    async def handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        """Handle a single incoming connection to the internal port."""
        peer = writer.get_extra_info("peername")
        log_prefix = f"[Bridge {peer}]"

        try:
            hello = await asyncio.wait_for(
                self._read_hello(reader), timeout=self.config.HELLO_TIMEOUT
            )
        except asyncio.TimeoutError:
            logger.warning(f"{log_prefix} Timeout waiting for hello.")
            await close_writer(writer)
            return
        except HelloError as e:
            logger.warning(f"{log_prefix} Rejected: {e}")
            await close_writer(writer)
            return
        except OSError as e:
            logger.debug(f"{log_prefix} Error before hello: {e}")
            await close_writer(writer)
            return

        if hello is None:
            logger.debug(f"{log_prefix} Closed before hello.")
            await close_writer(writer)
            return

        if hello.role == PeerRole.CONTROL:
            await self._serve_control(reader, writer, peer)
        else:
            await self.registry.complete_tunnel(
                hello.connection_id, reader, writer, hello.remainder
            )

    async def _read_hello(self, reader: asyncio.StreamReader) -> Hello | None:
        received = bytearray()
        while True:
            chunk = await reader.read(HELLO_READ_SIZE)
            if not chunk:
                return None
            received += chunk
            hello = parse_hello(bytes(received), self.config.CONTROL_TOKEN)
            if hello is not None:
                return hello

    async def _serve_control(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        peer,
    ):
        channel = ControlChannel(reader=reader, writer=writer, peer=peer)
        previous = self.control.set(channel)
        if previous is not None:
            logger.warning(
                f"[Game] Replacing existing control channel from {previous.peer} "
                f"(up {previous.uptime:.0f}s)"
            )
            await previous.close()
        logger.info(f"[Game] Bridge connected from {peer}.")

        try:
            # The origin sends nothing after the token; read only to see EOF
            while True:
                data = await reader.read(1024)
                if not data:
                    break
                logger.debug(f"[Game] Ignoring {len(data)} bytes on control channel")
        except OSError as e:
            logger.error(f"[Game] Control channel error: {e}")
        finally:
            if self.control.clear(channel):
                logger.warning(
                    f"[Game] Bridge disconnected after {channel.uptime:.0f}s! "
                    "Switching to offline mode."
                )
            await channel.close()

    async def start(self) -> asyncio.Server:
        """Start listening on the internal control port."""
        try:
            self._server = await asyncio.start_server(
                self.handle_connection, self.config.BIND_IP, self.config.CONTROL_PORT
            )
        except Exception as e:
            logger.opt(exception=e).critical(
                f"FATAL: Bridge server failed to start on "
                f"{self.config.BIND_IP}:{self.config.CONTROL_PORT}: {e}"
            )
            raise
        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"[Info] Game bridge ready on {addrs}.")
        return self._server
