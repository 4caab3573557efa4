"""
Voice relay: public UDP socket <-> voice bridge stream.

Datagrams from public voice clients are wrapped in records and written to the
bridge stream the origin keeps open. Records coming back from the origin are
unwrapped and sent to the public endpoint they name.
"""

import asyncio

from mcbridge.protocol.exceptions import VoiceRecordError
from mcbridge.protocol.voice import RecordFramer, decode_record, encode_record
from mcbridge.relay.config import RelayConfig
from mcbridge.tunnel.pipe import READ_SIZE, close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)


class PublicVoiceProtocol(asyncio.DatagramProtocol):
    """Public voice UDP socket."""

    def __init__(self, relay: "VoiceRelay"):
        self.relay = relay

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.relay.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.relay.forward_to_bridge(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning(f"[Voice] UDP error: {exc}")


class VoiceRelay:
    """Bridges the public voice UDP port to the origin's bridge stream."""

    def __init__(self, config: RelayConfig):
        self.config = config
        self.transport: asyncio.DatagramTransport | None = None
        self._bridge_writer: asyncio.StreamWriter | None = None
        self._server: asyncio.Server | None = None

    @property
    def bridge_connected(self) -> bool:
        return self._bridge_writer is not None and not self._bridge_writer.is_closing()

    def forward_to_bridge(self, payload: bytes, addr: tuple) -> None:
        """Wrap a public datagram and write it to the bridge stream."""
        writer = self._bridge_writer
        if writer is None or writer.is_closing():
            logger.debug(f"[Voice] No bridge, dropping {len(payload)}B from {addr}")
            return

        if writer.transport.get_write_buffer_size() > self.config.MAX_BRIDGE_WRITE_BUFFER:
            logger.warning("[Voice] Bridge is backed up, dropping datagram")
            return

        writer.write(encode_record(addr[0], addr[1], payload))

    def send_to_public(self, payload: bytes, endpoint: tuple[str, int]) -> None:
        """Send an unwrapped datagram out of the public UDP socket."""
        if self.transport is None or self.transport.is_closing():
            return
        try:
            self.transport.sendto(payload, endpoint)
        except (OSError, ValueError) as e:
            logger.error(f"[Voice] Send error to {endpoint}: {e}")

    async def handle_bridge(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ):
        """Handle the origin's voice bridge connection."""
        peer = writer.get_extra_info("peername")
        previous = self._bridge_writer
        self._bridge_writer = writer
        if previous is not None:
            logger.warning(f"[Voice] Replacing existing bridge with {peer}.")
            await close_writer(previous)
        logger.info(f"[Voice] Bridge connected from {peer}.")

        framer = RecordFramer(self.config.MAX_RECORD_LINE)
        try:
            while True:
                chunk = await reader.read(READ_SIZE)
                if not chunk:
                    break
                for line in framer.feed(chunk):
                    try:
                        record, payload = decode_record(line)
                    except VoiceRecordError as e:
                        logger.warning(f"[Voice] Skipping record: {e}")
                        continue
                    self.send_to_public(payload, record.endpoint)
        except OSError as e:
            logger.error(f"[Voice] Bridge error: {e}")
        finally:
            if self._bridge_writer is writer:
                self._bridge_writer = None
                logger.info("[Voice] Bridge disconnected.")
            await close_writer(writer)

    async def start(self) -> tuple[asyncio.Server, asyncio.DatagramTransport]:
        """Bind the public UDP port and start the bridge listener."""
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: PublicVoiceProtocol(self),
                local_addr=(self.config.BIND_IP, self.config.PUBLIC_VOICE_PORT),
            )
            self.transport = transport
            self._server = await asyncio.start_server(
                self.handle_bridge, self.config.BIND_IP, self.config.VOICE_BRIDGE_PORT
            )
        except Exception as e:
            logger.opt(exception=e).critical(f"FATAL: Voice relay failed to start: {e}")
            if self.transport is not None:
                self.transport.close()
            raise

        logger.info(
            f"[Info] Voice server (UDP) listening on "
            f"{self.transport.get_extra_info('sockname')}."
        )
        addrs = ", ".join(str(sock.getsockname()) for sock in self._server.sockets)
        logger.info(f"[Info] Voice bridge ready on {addrs}.")
        return self._server, self.transport

    def close(self) -> None:
        if self.transport is not None:
            self.transport.close()
        if self._bridge_writer is not None:
            self._bridge_writer.close()
