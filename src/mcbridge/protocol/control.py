"""
Control channel wire format.

Origin -> Relay (first bytes of a connection to the internal port):
    AUTH_CONTROL            this connection is the control channel
    TUNNEL_FOR:<id>         this connection is the origin half of tunnel <id>

Relay -> Origin (on the control channel):
    CREATE_TUNNEL:<id>      open a tunnel for pending connection <id>

Commands carry no delimiter. Connection IDs have a fixed length, which makes
each command self-delimiting on a raw byte stream where several commands can
arrive in one read or one command can be split over two.
"""

import secrets
import string
from dataclasses import dataclass

from mcbridge.models.enums import PeerRole
from mcbridge.protocol.exceptions import HelloError

# =============================================================================
# Constants
# =============================================================================

CONTROL_TOKEN: str = "AUTH_CONTROL"
TUNNEL_FOR_PREFIX: bytes = b"TUNNEL_FOR:"
CREATE_TUNNEL_PREFIX: bytes = b"CREATE_TUNNEL:"

CONNECTION_ID_BYTES: int = 16
CONNECTION_ID_LENGTH: int = CONNECTION_ID_BYTES * 2  # hex encoded

# Hello bytes accepted before the role must be known
MAX_HELLO_BYTES: int = 256

_ID_ALPHABET = frozenset(string.hexdigits.lower().encode())


# =============================================================================
# Connection IDs
# =============================================================================


def generate_connection_id() -> str:
    """Generate a random, fixed-length connection identifier."""
    return secrets.token_hex(CONNECTION_ID_BYTES)


def is_valid_connection_id(value: bytes | str) -> bool:
    """Check that a value has the shape generate_connection_id() produces."""
    if isinstance(value, str):
        value = value.encode("ascii", errors="replace")
    return len(value) == CONNECTION_ID_LENGTH and all(c in _ID_ALPHABET for c in value)


# =============================================================================
# Message Builders
# =============================================================================


def build_auth(token: str = CONTROL_TOKEN) -> bytes:
    """Build the control channel authentication message."""
    return token.encode("utf-8")


def build_tunnel_hello(connection_id: str) -> bytes:
    """Build the first message of an origin-side tunnel connection."""
    return TUNNEL_FOR_PREFIX + connection_id.encode("ascii")


def build_create_tunnel(connection_id: str) -> bytes:
    """Build the relay's tunnel creation command."""
    return CREATE_TUNNEL_PREFIX + connection_id.encode("ascii")


# =============================================================================
# Hello Parsing (relay side)
# =============================================================================


@dataclass
class Hello:
    """Parsed first message on the internal port."""

    role: PeerRole
    connection_id: str | None = None
    remainder: bytes = b""  # Tunnel payload that arrived with the hello


def parse_hello(data: bytes, token: str = CONTROL_TOKEN) -> Hello | None:
    """
    Work out the role of a connection from the bytes received so far.

    Leading whitespace is ignored.

    Args:
        data: All bytes received on the connection so far
        token: Expected control channel token

    Returns:
        Hello once the role is known, None if more bytes are needed

    Raises:
        HelloError: The bytes cannot start any known hello
    """
    if len(data) > MAX_HELLO_BYTES and not data.lstrip():
        raise HelloError("Hello is only whitespace")

    stripped = data.lstrip()
    if not stripped:
        return None

    token_bytes = token.encode("utf-8")
    if stripped.startswith(token_bytes):
        return Hello(role=PeerRole.CONTROL)
    if token_bytes.startswith(stripped):
        return None

    if stripped.startswith(TUNNEL_FOR_PREFIX):
        id_start = len(TUNNEL_FOR_PREFIX)
        id_end = id_start + CONNECTION_ID_LENGTH
        candidate = stripped[id_start:id_end]
        if any(c not in _ID_ALPHABET for c in candidate):
            raise HelloError(f"Invalid connection ID: {candidate[:64]!r}")
        if len(candidate) < CONNECTION_ID_LENGTH:
            return None
        return Hello(
            role=PeerRole.TUNNEL,
            connection_id=candidate.decode("ascii"),
            remainder=stripped[id_end:],
        )
    if TUNNEL_FOR_PREFIX.startswith(stripped):
        return None

    raise HelloError(f"Unknown hello: {stripped[:32]!r}")


# =============================================================================
# Command Parsing (origin side)
# =============================================================================


class CommandParser:
    """
    Extracts CREATE_TUNNEL commands from the raw control stream.

    Bytes that are not part of a well-formed command are skipped up to the
    next command prefix; ``discarded`` counts them (whitespace excluded).
    """

    def __init__(self):
        self._buffer = bytearray()
        self.discarded = 0

    def feed(self, data: bytes) -> list[str]:
        """Consume a chunk and return the connection IDs it completes."""
        self._buffer += data
        ids: list[str] = []

        while True:
            start = self._buffer.find(CREATE_TUNNEL_PREFIX)
            if start == -1:
                keep = self._partial_prefix_length()
                self._discard(len(self._buffer) - keep)
                break

            self._discard(start)

            id_start = len(CREATE_TUNNEL_PREFIX)
            id_end = id_start + CONNECTION_ID_LENGTH
            if len(self._buffer) < id_end:
                candidate = bytes(self._buffer[id_start:])
                if all(c in _ID_ALPHABET for c in candidate):
                    break
                # Cannot become a valid ID; skip this prefix
                self._discard(id_start)
                continue

            candidate = bytes(self._buffer[id_start:id_end])
            if is_valid_connection_id(candidate):
                ids.append(candidate.decode("ascii"))
                del self._buffer[:id_end]
            else:
                self._discard(id_start)

        return ids

    def _partial_prefix_length(self) -> int:
        """Length of the buffer tail that could still grow into a prefix."""
        longest = min(len(self._buffer), len(CREATE_TUNNEL_PREFIX) - 1)
        for size in range(longest, 0, -1):
            if self._buffer.endswith(CREATE_TUNNEL_PREFIX[:size]):
                return size
        return 0

    def _discard(self, count: int) -> None:
        if count <= 0:
            return
        self.discarded += len(bytes(self._buffer[:count]).translate(None, b" \t\r\n"))
        del self._buffer[:count]
