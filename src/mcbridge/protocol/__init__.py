"""
Wire protocols spoken by mcbridge.

- varint:  length-prefixed, varint-tagged game status protocol codec
- status:  fixed offline status response
- game:    offline status/ping state machine
- control: control channel handshake and tunnel commands
- voice:   newline-delimited voice datagram records
"""

from mcbridge.protocol.control import (
    CONNECTION_ID_LENGTH,
    CONTROL_TOKEN,
    CommandParser,
    Hello,
    build_auth,
    build_create_tunnel,
    build_tunnel_hello,
    generate_connection_id,
    parse_hello,
)
from mcbridge.protocol.exceptions import (
    HelloError,
    IncompletePacketError,
    IncompleteVarintError,
    MalformedPacketError,
    MalformedVarintError,
    PacketError,
    ProtocolError,
    VarintError,
    VoiceRecordError,
)
from mcbridge.protocol.game import GameProtocolStateMachine
from mcbridge.protocol.status import build_status_response
from mcbridge.protocol.varint import (
    Packet,
    decode_packet,
    decode_string,
    decode_varint,
    encode_packet,
    encode_string,
    encode_varint,
)
from mcbridge.protocol.voice import RecordFramer, VoiceRecord, decode_record, encode_record

__all__ = [
    "CONNECTION_ID_LENGTH",
    "CONTROL_TOKEN",
    "CommandParser",
    "GameProtocolStateMachine",
    "Hello",
    "HelloError",
    "IncompletePacketError",
    "IncompleteVarintError",
    "MalformedPacketError",
    "MalformedVarintError",
    "Packet",
    "PacketError",
    "ProtocolError",
    "RecordFramer",
    "VarintError",
    "VoiceRecord",
    "VoiceRecordError",
    "build_auth",
    "build_create_tunnel",
    "build_status_response",
    "build_tunnel_hello",
    "decode_packet",
    "decode_record",
    "decode_string",
    "decode_varint",
    "encode_packet",
    "encode_record",
    "encode_string",
    "encode_varint",
    "generate_connection_id",
    "parse_hello",
]
