"""Tests for the voice bridge: session pool, relay side, and both ends together."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import origin_config_for, start_udp_echo, udp_client, wait_until
from mcbridge.origin.app import OriginApp
from mcbridge.origin.config import OriginConfig
from mcbridge.origin.voice_client import VoiceBridgeClient, VoiceSessionPool
from mcbridge.protocol.voice import decode_record, encode_record
from mcbridge.relay.app import RelayApp
from mcbridge.relay.voice_server import VoiceRelay


def _pool(port: int, sent: list[bytes], **kwargs) -> VoiceSessionPool:
    return VoiceSessionPool("127.0.0.1", port, sent.append, **kwargs)


class TestVoiceSessionPool:
    @pytest.mark.asyncio
    async def test_reply_is_tagged_with_public_endpoint(self) -> None:
        echo = await start_udp_echo()
        sent: list[bytes] = []
        pool = _pool(echo.port, sent)

        await pool.dispatch(("1.2.3.4", 5000), b"hello")
        await wait_until(lambda: len(sent) == 1)

        record, payload = decode_record(sent[0])
        assert record.endpoint == ("1.2.3.4", 5000)
        assert payload == b"echo:hello"

        pool.close_all()
        echo.transport.close()

    @pytest.mark.asyncio
    async def test_one_local_socket_per_endpoint(self) -> None:
        echo = await start_udp_echo()
        sent: list[bytes] = []
        pool = _pool(echo.port, sent)

        await pool.dispatch(("1.2.3.4", 5000), b"a")
        await pool.dispatch(("1.2.3.4", 5000), b"b")
        await pool.dispatch(("5.6.7.8", 6000), b"c")
        await wait_until(lambda: len(sent) == 3)

        assert len(pool) == 2
        # Two public endpoints, two distinct local source ports
        assert len(set(echo.senders)) == 2
        endpoints = {decode_record(line)[0].endpoint for line in sent}
        assert endpoints == {("1.2.3.4", 5000), ("5.6.7.8", 6000)}

        pool.close_all()
        echo.transport.close()

    @pytest.mark.asyncio
    async def test_reap_idle(self) -> None:
        echo = await start_udp_echo()
        pool = _pool(echo.port, [], idle_timeout=10.0)

        session = await pool.get_or_create(("1.2.3.4", 5000))
        fresh = await pool.get_or_create(("5.6.7.8", 6000))
        session.last_active -= 60
        now = fresh.last_active + 1

        assert pool.reap_idle(now) == 1
        assert ("1.2.3.4", 5000) not in pool
        assert ("5.6.7.8", 6000) in pool

        pool.close_all()
        echo.transport.close()

    @pytest.mark.asyncio
    async def test_evicts_oldest_when_full(self) -> None:
        echo = await start_udp_echo()
        pool = _pool(echo.port, [], max_sessions=2)

        oldest = await pool.get_or_create(("10.0.0.1", 1))
        await pool.get_or_create(("10.0.0.2", 2))
        oldest.last_active -= 60
        await pool.get_or_create(("10.0.0.3", 3))

        assert len(pool) == 2
        assert ("10.0.0.1", 1) not in pool
        assert ("10.0.0.3", 3) in pool

        pool.close_all()
        echo.transport.close()

    @pytest.mark.asyncio
    async def test_close_all(self, advance) -> None:
        echo = await start_udp_echo()
        pool = _pool(echo.port, [])
        sessions = [await pool.get_or_create(("10.0.0.1", port)) for port in range(1, 4)]

        pool.close_all()
        await advance()
        assert len(pool) == 0
        assert all(s.transport.is_closing() for s in sessions)
        echo.transport.close()

    @pytest.mark.asyncio
    async def test_closed_socket_is_forgotten(self, advance) -> None:
        echo = await start_udp_echo()
        pool = _pool(echo.port, [])
        session = await pool.get_or_create(("10.0.0.1", 1))

        session.transport.close()
        await advance()
        assert len(pool) == 0
        echo.transport.close()


class TestVoiceBridgeClient:
    def test_upstream_dropped_when_backed_up(self) -> None:
        client = VoiceBridgeClient(OriginConfig(MAX_BRIDGE_WRITE_BUFFER=1024))
        writer = MagicMock()
        writer.is_closing.return_value = False
        writer.transport.get_write_buffer_size.return_value = 4096
        client._writer = writer

        client.send_upstream(b"record\n")
        writer.write.assert_not_called()

        writer.transport.get_write_buffer_size.return_value = 0
        client.send_upstream(b"record\n")
        writer.write.assert_called_once_with(b"record\n")

    def test_upstream_without_bridge(self) -> None:
        client = VoiceBridgeClient(OriginConfig())
        client.send_upstream(b"record\n")

    @pytest.mark.asyncio
    async def test_bad_records_are_skipped(self) -> None:
        echo = await start_udp_echo()
        accepted: asyncio.Queue = asyncio.Queue()

        async def on_bridge(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            await accepted.put((reader, writer))

        bridge = await asyncio.start_server(on_bridge, "127.0.0.1", 0)
        config = OriginConfig(
            RELAY_ADDRESS="127.0.0.1",
            VOICE_BRIDGE_PORT=bridge.sockets[0].getsockname()[1],
            LOCAL_VOICE_PORT=echo.port,
            CONNECT_TIMEOUT=2.0,
        )
        client = VoiceBridgeClient(config)
        session = asyncio.create_task(client.connect_once())
        reader, writer = await asyncio.wait_for(accepted.get(), timeout=3.0)

        writer.write(b"garbage\n")
        writer.write(b'{"ip": "1.2.3.4", "port": 99999, "data": ""}\n')
        writer.write(encode_record("1.2.3.4", 5000, b"still flowing"))
        await writer.drain()

        line = await asyncio.wait_for(reader.readline(), timeout=3.0)
        record, payload = decode_record(line)
        assert record.endpoint == ("1.2.3.4", 5000)
        assert payload == b"echo:still flowing"

        # Closing the relay side ends the session and its voice sessions
        writer.close()
        await asyncio.wait_for(session, timeout=3.0)
        assert len(client.pool) == 0

        bridge.close()
        echo.transport.close()


class TestVoiceRelay:
    @pytest.mark.asyncio
    async def test_drops_without_bridge(self, relay_config) -> None:
        relay = VoiceRelay(relay_config)
        assert not relay.bridge_connected
        relay.forward_to_bridge(b"x", ("1.2.3.4", 5000))

    @pytest.mark.asyncio
    async def test_datagram_becomes_record(self, relay_config) -> None:
        async with RelayApp(relay_config) as app:
            reader, writer = await asyncio.open_connection("127.0.0.1", app.voice_bridge_port)
            await wait_until(lambda: app.voice_relay.bridge_connected)

            player = await udp_client(app.voice_port)
            player.transport.sendto(b"voice packet")
            line = await asyncio.wait_for(reader.readline(), timeout=3.0)

            record, payload = decode_record(line)
            assert payload == b"voice packet"
            local = player.transport.get_extra_info("sockname")
            assert record.endpoint == ("127.0.0.1", local[1])

            # A record coming back goes out to the named endpoint
            writer.write(encode_record("127.0.0.1", local[1], b"reply"))
            await writer.drain()
            data, _ = await player.next()
            assert data == b"reply"

            player.transport.close()
            writer.close()

    @pytest.mark.asyncio
    async def test_bad_records_are_skipped(self, relay_config) -> None:
        async with RelayApp(relay_config) as app:
            reader, writer = await asyncio.open_connection("127.0.0.1", app.voice_bridge_port)
            await wait_until(lambda: app.voice_relay.bridge_connected)
            player = await udp_client(app.voice_port)
            port = player.transport.get_extra_info("sockname")[1]

            writer.write(b"garbage\n")
            writer.write(b'{"ip": "127.0.0.1", "port": 99999, "data": ""}\n')
            writer.write(encode_record("127.0.0.1", port, b"still flowing"))
            await writer.drain()

            data, _ = await player.next()
            assert data == b"still flowing"
            player.transport.close()
            writer.close()

    @pytest.mark.asyncio
    async def test_new_bridge_replaces_old(self, relay_config) -> None:
        async with RelayApp(relay_config) as app:
            old_reader, old_writer = await asyncio.open_connection(
                "127.0.0.1", app.voice_bridge_port
            )
            await wait_until(lambda: app.voice_relay.bridge_connected)
            _, new_writer = await asyncio.open_connection("127.0.0.1", app.voice_bridge_port)

            assert await asyncio.wait_for(old_reader.read(), timeout=3.0) == b""
            assert app.voice_relay.bridge_connected
            old_writer.close()
            new_writer.close()


class TestVoiceEndToEnd:
    @pytest.mark.asyncio
    async def test_round_trip(self, relay_config) -> None:
        echo = await start_udp_echo()

        async with RelayApp(relay_config) as relay:
            config = origin_config_for(relay, LOCAL_VOICE_PORT=echo.port)
            async with OriginApp(config) as origin:
                await wait_until(lambda: relay.voice_relay.bridge_connected)
                await asyncio.wait_for(origin.voice_client.connected.wait(), timeout=3.0)

                alice = await udp_client(relay.voice_port)
                bob = await udp_client(relay.voice_port)
                alice.transport.sendto(b"from alice")
                bob.transport.sendto(b"from bob")

                assert (await alice.next())[0] == b"echo:from alice"
                assert (await bob.next())[0] == b"echo:from bob"
                assert len(origin.voice_client.pool) == 2

                alice.transport.close()
                bob.transport.close()

        echo.transport.close()

    @pytest.mark.asyncio
    async def test_sessions_cleared_on_bridge_loss(self, relay_config) -> None:
        echo = await start_udp_echo()

        async with RelayApp(relay_config) as relay:
            config = origin_config_for(relay, LOCAL_VOICE_PORT=echo.port, RECONNECT_DELAY=30.0)
            async with OriginApp(config) as origin:
                await asyncio.wait_for(origin.voice_client.connected.wait(), timeout=3.0)
                await wait_until(lambda: relay.voice_relay.bridge_connected)

                player = await udp_client(relay.voice_port)
                player.transport.sendto(b"hi")
                await player.next()
                pool = origin.voice_client.pool
                assert len(pool) == 1

                relay.voice_relay.close()
                await wait_until(lambda: not origin.voice_client.connected.is_set())
                assert len(pool) == 0
                player.transport.close()

        echo.transport.close()
