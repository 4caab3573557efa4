"""Tests for the varint packet codec."""

from __future__ import annotations

import pytest

from mcbridge.protocol.exceptions import (
    IncompletePacketError,
    IncompleteVarintError,
    MalformedPacketError,
    MalformedVarintError,
)
from mcbridge.protocol.varint import (
    decode_packet,
    decode_string,
    decode_varint,
    encode_packet,
    encode_string,
    encode_varint,
    parse_frame,
)


class TestVarint:
    @pytest.mark.parametrize(
        ("value", "encoded"),
        [
            (0, b"\x00"),
            (1, b"\x01"),
            (127, b"\x7f"),
            (128, b"\x80\x01"),
            (255, b"\xff\x01"),
            (300, b"\xac\x02"),
            (25565, b"\xdd\xc7\x01"),
            (2097151, b"\xff\xff\x7f"),
            (2147483647, b"\xff\xff\xff\xff\x07"),
        ],
    )
    def test_known_encodings(self, value: int, encoded: bytes) -> None:
        assert encode_varint(value) == encoded
        assert decode_varint(encoded) == (value, len(encoded))

    def test_round_trip_range(self) -> None:
        for value in [0, 1, 2**7 - 1, 2**7, 2**14, 2**21, 2**28, 2**32 - 1]:
            encoded = encode_varint(value)
            assert decode_varint(encoded) == (value, len(encoded))

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            encode_varint(-1)

    def test_decode_at_offset(self) -> None:
        buffer = b"\xaa\xbb" + encode_varint(300) + b"tail"
        assert decode_varint(buffer, 2) == (300, 2)

    def test_empty_buffer_is_incomplete(self) -> None:
        with pytest.raises(IncompleteVarintError):
            decode_varint(b"")

    def test_truncated_is_incomplete(self) -> None:
        with pytest.raises(IncompleteVarintError):
            decode_varint(b"\x80\x80")

    def test_overlong_is_malformed(self) -> None:
        with pytest.raises(MalformedVarintError) as excinfo:
            decode_varint(b"\xff\xff\xff\xff\xff\x01")
        assert excinfo.value.max_bytes == 5

    def test_incomplete_is_not_malformed(self) -> None:
        with pytest.raises(IncompleteVarintError):
            decode_varint(b"\xff\xff\xff\xff")


class TestString:
    def test_round_trip_unicode(self) -> None:
        encoded = encode_string("§4Offline ✓")
        text, consumed = decode_string(encoded)
        assert text == "§4Offline ✓"
        assert consumed == len(encoded)

    def test_length_counts_utf8_bytes(self) -> None:
        encoded = encode_string("é")
        assert encoded == b"\x02\xc3\xa9"

    def test_truncated_string(self) -> None:
        with pytest.raises(IncompletePacketError):
            decode_string(b"\x05abc")

    def test_invalid_utf8(self) -> None:
        with pytest.raises(MalformedPacketError):
            decode_string(b"\x02\xff\xfe")


class TestPacket:
    def test_length_counts_id_and_body(self) -> None:
        packet = encode_packet(0x01, b"\x00" * 8)
        assert packet[0] == 9
        assert packet[1] == 0x01
        assert len(packet) == 10

    def test_empty_status_request(self) -> None:
        assert encode_packet(0x00) == b"\x01\x00"

    def test_decode_round_trip(self) -> None:
        data = encode_packet(0x2A, b"payload")
        packet, consumed = decode_packet(data)
        assert packet.packet_id == 0x2A
        assert packet.body == b"payload"
        assert consumed == len(data)

    def test_decode_two_packets_back_to_back(self) -> None:
        data = encode_packet(0x00) + encode_packet(0x01, b"12345678")
        first, consumed = decode_packet(data)
        second, _ = decode_packet(data, consumed)
        assert (first.packet_id, first.body) == (0x00, b"")
        assert (second.packet_id, second.body) == (0x01, b"12345678")

    def test_large_packet_id(self) -> None:
        data = encode_packet(300, b"x")
        packet, _ = decode_packet(data)
        assert packet.packet_id == 300

    def test_partial_body_is_incomplete(self) -> None:
        data = encode_packet(0x01, b"12345678")
        with pytest.raises(IncompletePacketError):
            decode_packet(data[:-1])

    def test_partial_length_is_incomplete(self) -> None:
        with pytest.raises(IncompletePacketError):
            decode_packet(b"\x80")

    def test_corrupt_length_is_malformed(self) -> None:
        with pytest.raises(MalformedPacketError):
            decode_packet(b"\xff\xff\xff\xff\xff\xff")

    def test_zero_length_frame_has_no_id(self) -> None:
        with pytest.raises(MalformedPacketError):
            decode_packet(b"\x00")

    def test_parse_frame_id_overruns(self) -> None:
        with pytest.raises(MalformedPacketError):
            parse_frame(b"\x80")
