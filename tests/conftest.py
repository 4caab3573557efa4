"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from mcbridge.origin.config import OriginConfig
from mcbridge.relay.config import RelayConfig


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


@pytest.fixture
def relay_config() -> RelayConfig:
    """Relay config bound to loopback with ephemeral ports."""
    return RelayConfig(
        BIND_IP="127.0.0.1",
        CONTROL_PORT=0,
        VOICE_BRIDGE_PORT=0,
        PUBLIC_GAME_PORT=0,
        PUBLIC_VOICE_PORT=0,
        HELLO_TIMEOUT=2.0,
        PENDING_TUNNEL_TIMEOUT=5.0,
    )


def origin_config_for(relay_app, **overrides: Any) -> OriginConfig:
    """Origin config pointing at a started RelayApp."""
    values: dict[str, Any] = {
        "RELAY_ADDRESS": "127.0.0.1",
        "CONTROL_PORT": relay_app.control_port,
        "VOICE_BRIDGE_PORT": relay_app.voice_bridge_port,
        "RECONNECT_DELAY": 0.05,
        "CONNECT_TIMEOUT": 2.0,
    }
    values.update(overrides)
    return OriginConfig(**values)


async def wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> None:
    """Poll a condition until it holds; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def read_exactly(reader: asyncio.StreamReader, size: int, timeout: float = 3.0) -> bytes:
    return await asyncio.wait_for(reader.readexactly(size), timeout=timeout)


class TcpPair:
    """
    A loopback TCP connection.

    ``client`` is the (reader, writer) the test drives; ``server`` is the
    accepted end handed to the code under test.
    """

    def __init__(self) -> None:
        self.client: tuple[asyncio.StreamReader, asyncio.StreamWriter] | None = None
        self.server: tuple[asyncio.StreamReader, asyncio.StreamWriter] | None = None
        self._listener: asyncio.Server | None = None

    async def open(self) -> "TcpPair":
        accepted = asyncio.Event()

        async def on_accept(reader, writer):
            self.server = (reader, writer)
            accepted.set()

        self._listener = await asyncio.start_server(on_accept, "127.0.0.1", 0)
        port = self._listener.sockets[0].getsockname()[1]
        self.client = await asyncio.open_connection("127.0.0.1", port)
        await asyncio.wait_for(accepted.wait(), timeout=3.0)
        return self

    async def close(self) -> None:
        for side in (self.client, self.server):
            if side is not None:
                side[1].close()
        if self._listener is not None:
            self._listener.close()
            await asyncio.wait_for(self._listener.wait_closed(), timeout=3.0)


async def tcp_pair() -> TcpPair:
    return await TcpPair().open()


async def start_echo_server() -> asyncio.Server:
    """TCP server standing in for the local game server: echoes everything."""

    async def echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                data = await reader.read(65536)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except OSError:
            pass
        finally:
            writer.close()

    return await asyncio.start_server(echo, "127.0.0.1", 0)


class DatagramCollector(asyncio.DatagramProtocol):
    """UDP endpoint that queues every datagram it receives."""

    def __init__(self) -> None:
        self.transport: asyncio.DatagramTransport | None = None
        self.received: asyncio.Queue[tuple[bytes, tuple]] = asyncio.Queue()

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.received.put_nowait((data, addr))

    async def next(self, timeout: float = 3.0) -> tuple[bytes, tuple]:
        return await asyncio.wait_for(self.received.get(), timeout=timeout)


class UdpEcho(asyncio.DatagramProtocol):
    """UDP server standing in for the local voice service."""

    def __init__(self, prefix: bytes = b"echo:") -> None:
        self.prefix = prefix
        self.transport: asyncio.DatagramTransport | None = None
        self.senders: list[tuple] = []

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.senders.append(addr)
        self.transport.sendto(self.prefix + data, addr)

    @property
    def port(self) -> int:
        return self.transport.get_extra_info("sockname")[1]


async def start_udp_echo() -> UdpEcho:
    loop = asyncio.get_running_loop()
    _, protocol = await loop.create_datagram_endpoint(
        UdpEcho, local_addr=("127.0.0.1", 0)
    )
    return protocol


async def udp_client(port: int) -> DatagramCollector:
    """UDP socket connected to 127.0.0.1:port, standing in for a player."""
    loop = asyncio.get_running_loop()
    _, protocol = await loop.create_datagram_endpoint(
        DatagramCollector, remote_addr=("127.0.0.1", port)
    )
    return protocol
