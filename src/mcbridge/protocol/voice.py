"""
Voice bridge record format.

Each relayed UDP datagram travels over the bridge stream as one JSON object
on its own line:

    {"ip":"1.2.3.4","port":5000,"data":"<base64 payload>"}\\n

``ip``/``port`` always name the public client endpoint, in both directions.
Compact JSON and base64 never contain a raw newline, so the newline is an
unambiguous record delimiter.
"""

import base64
import binascii

from pydantic import BaseModel, Field, ValidationError

from mcbridge.protocol.exceptions import VoiceRecordError

RECORD_DELIMITER: bytes = b"\n"

# Largest UDP payload base64-encoded plus JSON overhead, with headroom
MAX_RECORD_LINE: int = 128 * 1024


class VoiceRecord(BaseModel):
    """One relayed datagram and the public endpoint it belongs to."""

    ip: str = Field(..., min_length=1, description="Public client address")
    port: int = Field(..., ge=0, le=65535, description="Public client port")
    data: str = Field(..., description="Base64-encoded datagram payload")

    @classmethod
    def from_datagram(cls, payload: bytes, address: tuple) -> "VoiceRecord":
        """Build a record from a datagram and its (ip, port[, ...]) endpoint."""
        return cls(
            ip=address[0],
            port=address[1],
            data=base64.b64encode(payload).decode("ascii"),
        )

    @property
    def endpoint(self) -> tuple[str, int]:
        return (self.ip, self.port)

    def payload(self) -> bytes:
        """
        Decode the datagram payload.

        Raises:
            VoiceRecordError: Data is not valid base64
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise VoiceRecordError(f"Invalid base64 payload: {e}") from e

    def to_line(self) -> bytes:
        """Serialize to one newline-terminated record."""
        return self.model_dump_json().encode("utf-8") + RECORD_DELIMITER


def encode_record(ip: str, port: int, payload: bytes) -> bytes:
    """Encode a datagram for the bridge stream."""
    return VoiceRecord.from_datagram(payload, (ip, port)).to_line()


def decode_record(line: bytes) -> tuple[VoiceRecord, bytes]:
    """
    Decode one record line (delimiter optional).

    Returns:
        Tuple of (record, decoded payload)

    Raises:
        VoiceRecordError: Line is not a valid record
    """
    try:
        record = VoiceRecord.model_validate_json(line.strip())
    except ValidationError as e:
        raise VoiceRecordError(
            f"Invalid voice record: {e.error_count()} validation error(s)"
        ) from e
    return record, record.payload()


class RecordFramer:
    """
    Splits the bridge byte stream into record lines.

    Blank lines are skipped. A line longer than ``max_line`` is dropped as a
    whole (``dropped`` counts them) and framing resumes after its delimiter.
    """

    def __init__(self, max_line: int = MAX_RECORD_LINE):
        self._buffer = bytearray()
        self._max_line = max_line
        self._skipping = False
        self.dropped = 0

    def feed(self, data: bytes) -> list[bytes]:
        """Consume a chunk and return the complete lines it finishes."""
        self._buffer += data
        lines: list[bytes] = []

        while True:
            index = self._buffer.find(RECORD_DELIMITER)
            if index == -1:
                if len(self._buffer) > self._max_line:
                    if not self._skipping:
                        self.dropped += 1
                    self._skipping = True
                    self._buffer.clear()
                break

            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]

            if self._skipping:
                # Tail end of an oversized line
                self._skipping = False
                continue
            if len(line) > self._max_line:
                self.dropped += 1
                continue
            if line.strip():
                lines.append(line)

        return lines
