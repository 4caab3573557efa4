"""
Relay application.

Wires the relay components together and runs the four listeners:

    CONTROL_PORT       (TCP)  control channel + tunnel connections from origin
    VOICE_BRIDGE_PORT  (TCP)  voice bridge stream from origin
    PUBLIC_GAME_PORT   (TCP)  public game clients
    PUBLIC_VOICE_PORT  (UDP)  public voice clients
"""

import asyncio

from mcbridge.relay.bridge_server import BridgeServer
from mcbridge.relay.config import RelayConfig, config as default_config
from mcbridge.relay.game_server import GameServer
from mcbridge.relay.registry import TunnelRegistry
from mcbridge.relay.state import ControlChannelHolder
from mcbridge.relay.voice_server import VoiceRelay
from mcbridge.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def _bound_port(server: asyncio.Server | None) -> int | None:
    if server is None or not server.sockets:
        return None
    return server.sockets[0].getsockname()[1]


class RelayApp:
    """Owns the relay's shared state and listeners."""

    def __init__(self, config: RelayConfig | None = None):
        self.config = config or default_config
        self.control = ControlChannelHolder()
        self.registry = TunnelRegistry(
            self.control,
            max_pending=self.config.MAX_PENDING_TUNNELS,
            max_buffered_bytes=self.config.MAX_PENDING_CLIENT_BYTES,
        )
        self.bridge_server = BridgeServer(self.config, self.control, self.registry)
        self.game_server = GameServer(self.config, self.control, self.registry)
        self.voice_relay = VoiceRelay(self.config)

        self._servers: list[asyncio.Server] = []
        self._control_server: asyncio.Server | None = None
        self._game_server: asyncio.Server | None = None
        self._voice_bridge_server: asyncio.Server | None = None

    @property
    def control_port(self) -> int | None:
        return _bound_port(self._control_server)

    @property
    def game_port(self) -> int | None:
        return _bound_port(self._game_server)

    @property
    def voice_bridge_port(self) -> int | None:
        return _bound_port(self._voice_bridge_server)

    @property
    def voice_port(self) -> int | None:
        transport = self.voice_relay.transport
        if transport is None:
            return None
        return transport.get_extra_info("sockname")[1]

    async def start(self) -> None:
        """Bind all listeners. Raises if any port cannot be bound."""
        try:
            self._control_server = await self.bridge_server.start()
            self._servers.append(self._control_server)
            self._voice_bridge_server, _ = await self.voice_relay.start()
            self._servers.append(self._voice_bridge_server)
            self._game_server = await self.game_server.start()
            self._servers.append(self._game_server)
        except Exception:
            await self.close()
            raise

    async def serve_forever(self) -> None:
        """Run until cancelled."""
        await asyncio.gather(*(server.serve_forever() for server in self._servers))

    async def close(self) -> None:
        """Stop listening and drop the control channel."""
        for server in self._servers:
            server.close()
        self.voice_relay.close()
        channel = self.control.get()
        if channel is not None:
            self.control.clear(channel)
            await channel.close()
        for server in self._servers:
            try:
                await asyncio.wait_for(server.wait_closed(), timeout=1.0)
            except (OSError, asyncio.TimeoutError):
                pass
        self._servers.clear()
        logger.info("Relay stopped.")

    async def __aenter__(self) -> "RelayApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


async def serve(config: RelayConfig | None = None) -> None:
    """Start the relay and serve until cancelled."""
    async with RelayApp(config) as app:
        await app.serve_forever()


def run(config: RelayConfig | None = None):
    """Run the relay (blocking)."""
    config = config or default_config

    # Configure logging (IMPORTANT: must be called before any server starts)
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Relay interrupted.")


def main():
    """Entry point for ``python -m mcbridge.relay.app``."""
    run()


if __name__ == "__main__":
    main()
