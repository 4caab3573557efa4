"""Protocol-level exception classes."""


class ProtocolError(Exception):
    """Base exception for wire protocol errors."""

    pass


class VarintError(ProtocolError):
    """Varint could not be decoded."""

    pass


class IncompleteVarintError(VarintError):
    """Buffer ended before the varint's terminating byte."""

    pass


class MalformedVarintError(VarintError):
    """Varint ran past the maximum length without terminating."""

    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(f"Varint longer than {max_bytes} bytes")


class PacketError(ProtocolError):
    """Game protocol packet could not be decoded."""

    pass


class IncompletePacketError(PacketError):
    """Buffer does not hold a complete packet yet."""

    pass


class MalformedPacketError(PacketError):
    """Packet frame is corrupt."""

    pass


class HelloError(ProtocolError):
    """First message on the internal control port is not a known role."""

    pass


class VoiceRecordError(ProtocolError):
    """Voice bridge record could not be parsed."""

    pass
