"""
Public game port of the relay.

With a control channel up, every public connection is tunneled to the origin.
Without one, the relay answers server list status and ping queries itself
(offline mode). An offline connection switches to the tunnel path once, as
soon as a control channel appears. The tunnel gets the handshake and any
bytes not yet answered, so the real server never sees a request twice. It
never switches back.
"""

import asyncio

from mcbridge.protocol.exceptions import ProtocolError
from mcbridge.protocol.game import GameProtocolStateMachine
from mcbridge.protocol.status import build_status_response
from mcbridge.relay.config import RelayConfig
from mcbridge.relay.registry import TunnelRegistry
from mcbridge.relay.state import ControlChannelHolder
from mcbridge.tunnel.pipe import READ_SIZE, LinkedPair, close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)


class GameServer:
    """Accepts public game connections."""

    def __init__(
        self,
        config: RelayConfig,
        control: ControlChannelHolder,
        registry: TunnelRegistry,
    ):
        self.config = config
        self.control = control
        self.registry = registry
        self._status_response = build_status_response(
            config.OFFLINE_DESCRIPTION, config.OFFLINE_MOTD_FOOTER
        )
        self._server: asyncio.Server | None = None

    async def handle_player(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        """Handle a single public game connection."""
        peer = writer.get_extra_info("peername")
        log_prefix = f"[Game {peer}]"

        try:
            initial = b""
            if not self.control.is_authenticated():
                switch = await self._serve_offline(reader, writer, log_prefix)
                if switch is None:
                    return
                initial = switch
            await self._serve_tunnel(reader, writer, initial, log_prefix)

        except ProtocolError as e:
            logger.debug(f"{log_prefix} Dropping connection: {e}")
        except OSError as e:
            logger.debug(f"{log_prefix} Connection error: {e}")
        except Exception as e:
            logger.exception(f"{log_prefix} Unexpected error in game handler: {e}")
        finally:
            await close_writer(writer)

    async def _serve_offline(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        log_prefix: str,
    ) -> bytes | None:
        """
        Answer status/ping queries until the client leaves or a control
        channel comes up.

        Returns:
            Bytes to replay into the tunnel if the connection should switch,
            None if it ended in offline mode
        """
        machine = GameProtocolStateMachine(lambda: self._status_response)

        while True:
            chunk = await reader.read(READ_SIZE)
            if not chunk:
                return None

            if self.control.is_authenticated():
                logger.info(
                    f"{log_prefix} Origin came online, switching to tunnel "
                    f"({machine.pending_bytes}B unanswered)."
                )
                return machine.replay_bytes() + chunk

            replies = machine.feed(chunk)
            if replies:
                for reply in replies:
                    writer.write(reply)
                await writer.drain()

    async def _serve_tunnel(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        initial: bytes,
        log_prefix: str,
    ):
        pending = await self.registry.request_tunnel(reader, writer, initial)
        if pending is None:
            logger.warning(f"{log_prefix} Could not request a tunnel, closing.")
            return

        origin = await self.registry.wait_for_match(
            pending, self.config.PENDING_TUNNEL_TIMEOUT
        )
        if origin is None:
            return

        logger.info(f"{log_prefix} Tunnel {pending.short_id} established.")
        pair = LinkedPair(
            f"Tunnel {pending.short_id}",
            (reader, writer),
            (origin.reader, origin.writer),
        )
        await pair.run(
            a_to_b_initial=bytes(pending.buffered),
            b_to_a_initial=origin.initial,
        )
        logger.info(
            f"{log_prefix} Tunnel {pending.short_id} closed "
            f"({pair.bytes_a_to_b}B up, {pair.bytes_b_to_a}B down)."
        )

    async def start(self) -> asyncio.Server:
        """Start listening on the public game port."""
        try:
            self._server = await asyncio.start_server(
                self.handle_player, self.config.BIND_IP, self.config.PUBLIC_GAME_PORT
            )
        except Exception as e:
            logger.opt(exception=e).critical(
                f"FATAL: Game server failed to start on "
                f"{self.config.BIND_IP}:{self.config.PUBLIC_GAME_PORT}: {e}"
            )
            raise
        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"[Info] Game server ready on {addrs}.")
        return self._server
