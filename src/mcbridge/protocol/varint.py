"""
Varint packet codec for the game status protocol.

Wire format of one packet:
┌────────────────────┬──────────────────┬─────────────────────┐
│ Length (varint)    │ Packet ID        │  Body (var)         │
│ = len(ID) + len(B) │ (varint)         │                     │
└────────────────────┴──────────────────┴─────────────────────┘

The length counts the bytes that follow it, not itself.

Varints carry 7 payload bits per byte, least significant group first, with
the high bit (0x80) set on every byte except the last.
"""

from dataclasses import dataclass

from mcbridge.protocol.exceptions import (
    IncompletePacketError,
    IncompleteVarintError,
    MalformedPacketError,
    MalformedVarintError,
)

# =============================================================================
# Constants
# =============================================================================

MAX_VARINT_BYTES: int = 5  # Enough for 32 bits; more is treated as hostile

SEGMENT_BITS: int = 0x7F
CONTINUE_BIT: int = 0x80


@dataclass
class Packet:
    """Decoded game protocol packet."""

    packet_id: int
    body: bytes


# =============================================================================
# Varint
# =============================================================================


def encode_varint(value: int) -> bytes:
    """
    Encode a non-negative integer as a varint.

    Args:
        value: Integer to encode (must be >= 0)

    Returns:
        Encoded bytes

    Raises:
        ValueError: If value is negative
    """
    if value < 0:
        raise ValueError(f"Varint value must be non-negative, got {value}")

    out = bytearray()
    while True:
        if value & ~SEGMENT_BITS == 0:
            out.append(value)
            return bytes(out)
        out.append((value & SEGMENT_BITS) | CONTINUE_BIT)
        value >>= 7


def decode_varint(buffer: bytes | bytearray, offset: int = 0) -> tuple[int, int]:
    """
    Decode a varint starting at ``offset``.

    Args:
        buffer: Bytes to read from
        offset: Position of the first varint byte

    Returns:
        Tuple of (value, bytes consumed)

    Raises:
        IncompleteVarintError: Buffer ends before the terminating byte
        MalformedVarintError: No terminating byte within MAX_VARINT_BYTES
    """
    value = 0
    for position in range(MAX_VARINT_BYTES):
        index = offset + position
        if index >= len(buffer):
            raise IncompleteVarintError("Buffer ended inside varint")
        byte = buffer[index]
        value |= (byte & SEGMENT_BITS) << (7 * position)
        if not byte & CONTINUE_BIT:
            return value, position + 1
    raise MalformedVarintError(MAX_VARINT_BYTES)


# =============================================================================
# Strings
# =============================================================================


def encode_string(text: str) -> bytes:
    """Encode a string as varint length + UTF-8 bytes."""
    data = text.encode("utf-8")
    return encode_varint(len(data)) + data


def decode_string(buffer: bytes | bytearray, offset: int = 0) -> tuple[str, int]:
    """
    Decode a varint-length-prefixed UTF-8 string.

    Returns:
        Tuple of (text, bytes consumed including the length prefix)

    Raises:
        IncompleteVarintError: Length prefix is incomplete
        IncompletePacketError: String bytes are incomplete
        MalformedPacketError: String bytes are not valid UTF-8
    """
    length, header = decode_varint(buffer, offset)
    start = offset + header
    end = start + length
    if end > len(buffer):
        raise IncompletePacketError(f"String needs {length} bytes")
    try:
        text = bytes(buffer[start:end]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPacketError(f"String is not valid UTF-8: {e}") from e
    return text, header + length


# =============================================================================
# Packets
# =============================================================================


def encode_packet(packet_id: int, body: bytes = b"") -> bytes:
    """
    Build a length-prefixed game protocol packet.

    Args:
        packet_id: Packet ID (0x00 status/handshake, 0x01 ping, ...)
        body: Packet body

    Returns:
        Complete packet as bytes
    """
    id_bytes = encode_varint(packet_id)
    return encode_varint(len(id_bytes) + len(body)) + id_bytes + body


def parse_frame(frame: bytes) -> Packet:
    """
    Split a frame (the bytes covered by the length prefix) into ID and body.

    Raises:
        MalformedPacketError: ID varint is missing, overruns the frame,
            or is too long
    """
    try:
        packet_id, id_length = decode_varint(frame)
    except IncompleteVarintError as e:
        raise MalformedPacketError("Packet ID overruns the declared length") from e
    except MalformedVarintError as e:
        raise MalformedPacketError(str(e)) from e
    return Packet(packet_id=packet_id, body=bytes(frame[id_length:]))


def decode_packet(buffer: bytes | bytearray, offset: int = 0) -> tuple[Packet, int]:
    """
    Decode one complete packet starting at ``offset``.

    Returns:
        Tuple of (packet, bytes consumed)

    Raises:
        IncompletePacketError: More bytes are needed
        MalformedPacketError: Length prefix or packet ID is corrupt
    """
    try:
        length, header = decode_varint(buffer, offset)
    except IncompleteVarintError as e:
        raise IncompletePacketError("Length prefix incomplete") from e
    except MalformedVarintError as e:
        raise MalformedPacketError(f"Bad length prefix: {e}") from e

    start = offset + header
    end = start + length
    if end > len(buffer):
        raise IncompletePacketError(
            f"Packet needs {length} bytes, have {len(buffer) - start}"
        )
    return parse_frame(bytes(buffer[start:end])), header + length
