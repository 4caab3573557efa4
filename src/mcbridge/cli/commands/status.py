"""
Status command: query a game port the way the server list does.

Works against a real game server, a relay with the origin online (the query
is tunneled) and a relay in offline mode (the relay answers itself).

Example:
    mcbridge status play.example.com
    mcbridge status 127.0.0.1:25566 --json
"""

import asyncio
import json
import struct
import time
from dataclasses import dataclass
from typing import Annotated

import typer
from rich.panel import Panel

from mcbridge.cli.output import console, print_error, print_warning
from mcbridge.protocol.exceptions import MalformedVarintError, ProtocolError
from mcbridge.protocol.varint import (
    MAX_VARINT_BYTES,
    Packet,
    decode_string,
    encode_packet,
    encode_string,
    encode_varint,
    parse_frame,
)

app = typer.Typer(help="Query a game port for its status")

DEFAULT_PORT: int = 25565
PROTOCOL_VERSION: int = 767  # Servers answer status queries for any version
NEXT_STATE_STATUS: int = 1
MAX_STATUS_FRAME: int = 1024 * 1024


@dataclass
class StatusResult:
    """Outcome of a status query."""

    document: dict
    latency_ms: float | None


def build_handshake(host: str, port: int) -> bytes:
    """Build a handshake packet announcing a status query."""
    body = (
        encode_varint(PROTOCOL_VERSION)
        + encode_string(host)
        + struct.pack(">H", port)
        + encode_varint(NEXT_STATE_STATUS)
    )
    return encode_packet(0x00, body)


async def read_packet(reader: asyncio.StreamReader) -> Packet:
    """
    Read one length-prefixed packet from a stream.

    Raises:
        asyncio.IncompleteReadError: Stream closed mid-packet
        ProtocolError: Length prefix or frame is corrupt
    """
    length = 0
    for position in range(MAX_VARINT_BYTES):
        byte = (await reader.readexactly(1))[0]
        length |= (byte & 0x7F) << (7 * position)
        if not byte & 0x80:
            break
    else:
        raise MalformedVarintError(MAX_VARINT_BYTES)

    if length > MAX_STATUS_FRAME:
        raise ProtocolError(f"Frame of {length} bytes is too large")
    return parse_frame(await reader.readexactly(length))


async def probe_status(
    host: str, port: int = DEFAULT_PORT, timeout: float = 5.0
) -> StatusResult:
    """
    Send a handshake, a status request and a ping; collect the answers.

    Returns:
        The decoded status document and the ping round trip (None if the
        server closed the connection before answering the ping)
    """
    reader, writer = await asyncio.wait_for(
        asyncio.open_connection(host, port), timeout=timeout
    )
    try:
        writer.write(build_handshake(host, port) + encode_packet(0x00))
        await writer.drain()

        packet = await asyncio.wait_for(read_packet(reader), timeout=timeout)
        if packet.packet_id != 0x00:
            raise ProtocolError(f"Expected status response, got ID {packet.packet_id:#x}")
        text, _ = decode_string(packet.body)
        document = json.loads(text)

        token = int(time.time() * 1000)
        sent = time.perf_counter()
        writer.write(encode_packet(0x01, struct.pack(">q", token)))
        await writer.drain()

        latency_ms = None
        try:
            pong = await asyncio.wait_for(read_packet(reader), timeout=timeout)
        except asyncio.IncompleteReadError:
            pong = None
        if pong is not None and pong.packet_id == 0x01:
            if pong.body != struct.pack(">q", token):
                raise ProtocolError("Pong payload does not match ping")
            latency_ms = (time.perf_counter() - sent) * 1000
        return StatusResult(document=document, latency_ms=latency_ms)
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        return address.strip("[]"), DEFAULT_PORT
    return host.strip("[]"), int(port)


def _plain_text(component) -> str:
    """Flatten a chat text component to plain text."""
    if isinstance(component, str):
        return component
    if not isinstance(component, dict):
        return ""
    text = component.get("text", "")
    for child in component.get("extra") or []:
        text += _plain_text(child)
    return text


@app.callback(invoke_without_command=True)
def status(
    address: Annotated[str, typer.Argument(help="HOST[:PORT] of the game port")],
    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Seconds to wait for each answer"),
    ] = 5.0,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the raw status document"),
    ] = False,
):
    """Query a game port and show what the server list would show."""
    try:
        host, port = _split_address(address)
    except ValueError:
        print_error(f"Invalid address: {address}")
        raise typer.Exit(1)

    try:
        result = asyncio.run(probe_status(host, port, timeout))
    except (OSError, asyncio.TimeoutError, asyncio.IncompleteReadError) as e:
        print_error(f"Could not query {host}:{port}: {e or type(e).__name__}")
        raise typer.Exit(1)
    except (ProtocolError, json.JSONDecodeError) as e:
        print_error(f"Bad status response from {host}:{port}: {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(data=result.document)
        return

    document = result.document
    version = document.get("version", {})
    players = document.get("players", {})
    latency = (
        f"{result.latency_ms:.1f} ms" if result.latency_ms is not None else "no pong"
    )
    console.print(
        Panel(
            f"{_plain_text(document.get('description', ''))}\n\n"
            f"[bold]Version:[/bold]  {version.get('name', '?')} "
            f"(protocol {version.get('protocol', '?')})\n"
            f"[bold]Players:[/bold]  {players.get('online', 0)}/{players.get('max', 0)}\n"
            f"[bold]Latency:[/bold]  {latency}",
            title=f"{host}:{port}",
            expand=False,
        )
    )
    if result.latency_ms is None:
        print_warning("Server closed the connection without answering the ping")
