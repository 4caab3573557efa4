"""
Offline game protocol state machine.

Runs against one public game connection while no origin is connected and
answers exactly what the server list needs:

    HANDSHAKE --0x00--> STATUS
    STATUS:  0x00 -> status response
             0x01 -> pong (same ID, same payload)

Any other packet ID is ignored in every state. The handshake body itself is
never parsed.
"""

from typing import Callable

from mcbridge.models.enums import GameProtocolState
from mcbridge.protocol.exceptions import (
    IncompleteVarintError,
    MalformedPacketError,
    ProtocolError,
)
from mcbridge.protocol.status import build_status_response
from mcbridge.protocol.varint import Packet, decode_varint, encode_packet, parse_frame
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)

HANDSHAKE_ID: int = 0x00
STATUS_REQUEST_ID: int = 0x00
PING_ID: int = 0x01

# Upper bound on bytes held while waiting for a frame to complete
MAX_PENDING_BYTES: int = 2 * 1024 * 1024


class GameProtocolStateMachine:
    """
    Incremental parser for the status/ping part of the game protocol.

    Feed it raw chunks as they arrive; it returns the replies to write back,
    in order. Partial frames are kept until the next chunk completes them.

    The raw handshake frame is kept so a connection that later moves to a
    tunnel can hand the real server a fresh start: the handshake plus
    whatever has not been answered yet (see ``replay_bytes``).
    """

    def __init__(
        self,
        status_factory: Callable[[], bytes] = build_status_response,
        max_pending_bytes: int = MAX_PENDING_BYTES,
    ):
        """
        Args:
            status_factory: Builds the status response packet
            max_pending_bytes: Buffered bytes allowed before giving up
        """
        self.state = GameProtocolState.HANDSHAKE
        self._status_factory = status_factory
        self._max_pending_bytes = max_pending_bytes
        self._buffer = bytearray()
        self.handshake_frame = b""

    @property
    def pending_bytes(self) -> int:
        """Bytes received but not yet part of a complete frame."""
        return len(self._buffer)

    def replay_bytes(self) -> bytes:
        """Handshake frame followed by the bytes not yet consumed."""
        return self.handshake_frame + bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """
        Consume a chunk and return the reply packets it triggers.

        Raises:
            ProtocolError: Length prefix is corrupt (no frame boundary to
                resume from) or too many bytes are buffered
        """
        self._buffer += chunk
        replies: list[bytes] = []

        while self._buffer:
            try:
                length, header = decode_varint(self._buffer)
            except IncompleteVarintError:
                break
            # MalformedVarintError propagates: the stream cannot be resynced

            end = header + length
            if len(self._buffer) < end:
                break

            raw = bytes(self._buffer[:end])
            frame = raw[header:]
            del self._buffer[:end]

            try:
                packet = parse_frame(frame)
            except MalformedPacketError as e:
                logger.debug(f"Dropping malformed frame ({len(frame)} bytes): {e}")
                continue

            if (
                self.state == GameProtocolState.HANDSHAKE
                and packet.packet_id == HANDSHAKE_ID
            ):
                self.handshake_frame = raw

            reply = self._handle_packet(packet)
            if reply is not None:
                replies.append(reply)

        if len(self._buffer) > self._max_pending_bytes:
            raise ProtocolError(
                f"{len(self._buffer)} bytes buffered without a complete frame"
            )

        return replies

    def _handle_packet(self, packet: Packet) -> bytes | None:
        match self.state:
            case GameProtocolState.HANDSHAKE:
                if packet.packet_id == HANDSHAKE_ID:
                    self.state = GameProtocolState.STATUS
            case GameProtocolState.STATUS:
                if packet.packet_id == STATUS_REQUEST_ID:
                    return self._status_factory()
                if packet.packet_id == PING_ID:
                    return encode_packet(PING_ID, packet.body)
        return None
