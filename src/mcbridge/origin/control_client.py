"""
Origin side of the control channel.

Keeps one control connection to the relay open, retrying forever with a
fixed delay. For every CREATE_TUNNEL:<id> command it opens a connection to
the local game server, dials the relay's internal port again, introduces
itself with TUNNEL_FOR:<id>, and links the two connections.
"""

import asyncio

from mcbridge.origin.config import OriginConfig
from mcbridge.protocol.control import CommandParser, build_auth, build_tunnel_hello
from mcbridge.tunnel.pipe import LinkedPair, close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)


class ControlClient:
    """Maintains the control channel and opens tunnels on request."""

    def __init__(self, config: OriginConfig):
        self.config = config
        self.connected = asyncio.Event()
        self._tunnel_tasks: set[asyncio.Task] = set()

    @property
    def active_tunnels(self) -> int:
        return len(self._tunnel_tasks)

    async def run_forever(self) -> None:
        """Connect, serve, and reconnect after a fixed delay, forever."""
        while True:
            try:
                await self.connect_once()
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError) as e:
                logger.error(f"[Game Error] Connection failed: {e}")
            except Exception as e:
                logger.exception(f"[Game Error] Unexpected error: {e}")

            logger.info(
                f"[Game] Disconnected ({self.active_tunnels} tunnels still open). "
                f"Retrying in {self.config.RECONNECT_DELAY:g}s..."
            )
            await asyncio.sleep(self.config.RECONNECT_DELAY)

    async def connect_once(self) -> None:
        """Run one control channel session until the relay closes it."""
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(self.config.RELAY_ADDRESS, self.config.CONTROL_PORT),
            timeout=self.config.CONNECT_TIMEOUT,
        )
        logger.info(
            f"[Game] Connected to control channel at "
            f"{self.config.get_relay_address(self.config.CONTROL_PORT)}."
        )

        parser = CommandParser()
        try:
            writer.write(build_auth(self.config.CONTROL_TOKEN))
            await writer.drain()
            self.connected.set()

            while True:
                data = await reader.read(4096)
                if not data:
                    break
                for connection_id in parser.feed(data):
                    self._spawn_tunnel(connection_id)
                if parser.discarded:
                    logger.warning(
                        f"[Game] Skipped {parser.discarded} unexpected bytes on control channel"
                    )
                    parser.discarded = 0
        finally:
            self.connected.clear()
            await close_writer(writer)

    def _spawn_tunnel(self, connection_id: str) -> None:
        task = asyncio.create_task(self.create_tunnel(connection_id))
        self._tunnel_tasks.add(task)
        task.add_done_callback(self._tunnel_tasks.discard)

    async def create_tunnel(self, connection_id: str) -> None:
        """Open the local and relay halves of one tunnel and link them."""
        log_prefix = f"[Tunnel {connection_id[:8]}]"

        try:
            local_reader, local_writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.config.LOCAL_GAME_HOST, self.config.LOCAL_GAME_PORT
                ),
                timeout=self.config.CONNECT_TIMEOUT,
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"{log_prefix} Local game server unreachable: {e}")
            return

        relay_writer = None
        try:
            relay_reader, relay_writer = await asyncio.wait_for(
                asyncio.open_connection(
                    self.config.RELAY_ADDRESS, self.config.CONTROL_PORT
                ),
                timeout=self.config.CONNECT_TIMEOUT,
            )
            relay_writer.write(build_tunnel_hello(connection_id))
            await relay_writer.drain()
        except (OSError, asyncio.TimeoutError) as e:
            logger.warning(f"{log_prefix} Could not dial relay: {e}")
            await asyncio.gather(close_writer(local_writer), close_writer(relay_writer))
            return

        logger.debug(f"{log_prefix} Opened.")
        pair = LinkedPair(
            f"Tunnel {connection_id[:8]}",
            (relay_reader, relay_writer),
            (local_reader, local_writer),
        )
        await pair.run()
        logger.debug(f"{log_prefix} Finished.")

    async def close(self) -> None:
        """Cancel every open tunnel."""
        tasks = list(self._tunnel_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
