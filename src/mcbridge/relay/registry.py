"""
Tunnel registry for the relay.

Tracks public game connections that are waiting for the origin to dial back.
Each waiting connection gets a random connection ID; the relay sends
CREATE_TUNNEL:<id> on the control channel and the origin answers with a new
connection to the internal port starting with TUNNEL_FOR:<id>. The registry
matches the two halves.

Every entry is removed on every exit path: matched, public side closed or
errored, timed out.
"""

import asyncio
import time
from dataclasses import dataclass, field

from mcbridge.protocol.control import build_create_tunnel, generate_connection_id
from mcbridge.relay.state import ControlChannelHolder
from mcbridge.tunnel.pipe import READ_SIZE, close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OriginConnection:
    """Origin half of a tunnel, handed to the waiting public connection."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    initial: bytes = b""  # Bytes that arrived with the TUNNEL_FOR hello


@dataclass
class PendingTunnel:
    """A public connection waiting for its origin half."""

    connection_id: str
    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    buffered: bytearray = field(default_factory=bytearray)
    created_at: float = field(default_factory=time.monotonic)
    matched: asyncio.Future = field(
        default_factory=lambda: asyncio.get_running_loop().create_future()
    )

    @property
    def short_id(self) -> str:
        return self.connection_id[:8]


class TunnelRegistry:
    """
    Pairs waiting public connections with origin tunnel connections.

    All mutation happens without an await between lookup and update, so the
    table is consistent on the single event loop without locking.
    """

    def __init__(
        self,
        control: ControlChannelHolder,
        max_pending: int = 256,
        max_buffered_bytes: int = 1024 * 1024,
    ):
        """
        Args:
            control: Holder of the current control channel
            max_pending: Waiting connections allowed at once
            max_buffered_bytes: Client bytes kept per waiting connection
        """
        self._control = control
        self._max_pending = max_pending
        self._max_buffered_bytes = max_buffered_bytes
        self._pending: dict[str, PendingTunnel] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._pending

    def _new_connection_id(self) -> str:
        while True:
            connection_id = generate_connection_id()
            if connection_id not in self._pending:
                return connection_id

    async def request_tunnel(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        initial: bytes = b"",
    ) -> PendingTunnel | None:
        """
        Register a public connection and ask the origin for a tunnel.

        Args:
            reader: Public connection reader
            writer: Public connection writer
            initial: Client bytes already read, replayed into the tunnel

        Returns:
            The pending entry, or None if there is no control channel, the
            table is full, or the command could not be sent
        """
        channel = self._control.get()
        if channel is None or not self._control.is_authenticated():
            return None

        if len(self._pending) >= self._max_pending:
            logger.warning(
                f"[Registry] {len(self._pending)} tunnels already pending, "
                "refusing new request"
            )
            return None

        pending = PendingTunnel(
            connection_id=self._new_connection_id(),
            reader=reader,
            writer=writer,
            buffered=bytearray(initial),
        )
        self._pending[pending.connection_id] = pending

        if not await channel.send(build_create_tunnel(pending.connection_id)):
            self._pending.pop(pending.connection_id, None)
            return None

        logger.debug(f"[Tunnel {pending.short_id}] Requested from origin")
        return pending

    async def complete_tunnel(
        self,
        connection_id: str,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        initial: bytes = b"",
    ) -> bool:
        """
        Hand an origin tunnel connection to the public connection waiting
        for it.

        Unknown, already consumed, or abandoned IDs close the origin
        connection.

        Returns:
            True if the tunnel was matched
        """
        pending = self._pending.pop(connection_id, None)
        if pending is None or pending.matched.done() or pending.writer.is_closing():
            logger.warning(
                f"[Tunnel {connection_id[:8]}] No waiting client, closing origin side"
            )
            await close_writer(writer)
            return False

        pending.matched.set_result(OriginConnection(reader, writer, initial))
        logger.debug(f"[Tunnel {pending.short_id}] Matched")
        return True

    def discard(self, connection_id: str) -> PendingTunnel | None:
        """Remove a pending entry without matching it."""
        pending = self._pending.pop(connection_id, None)
        if pending is not None and not pending.matched.done():
            pending.matched.cancel()
        return pending

    async def wait_for_match(
        self,
        pending: PendingTunnel,
        timeout: float,
    ) -> OriginConnection | None:
        """
        Wait for the origin half while watching the public connection.

        The public connection keeps being read while waiting, so a client
        that disconnects releases its entry at once. Bytes it sends in the
        meantime are kept in ``pending.buffered`` for replay.

        Returns:
            The origin connection, or None if the client left, the wait
            timed out, or the client sent too much (entry discarded in
            every None case)
        """
        deadline = time.monotonic() + timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(f"[Tunnel {pending.short_id}] Origin did not answer in time")
                break

            read_task = asyncio.ensure_future(pending.reader.read(READ_SIZE))
            try:
                done, _ = await asyncio.wait(
                    {read_task, pending.matched},
                    timeout=remaining,
                    return_when=asyncio.FIRST_COMPLETED,
                )
            except asyncio.CancelledError:
                read_task.cancel()
                self.discard(pending.connection_id)
                raise

            if read_task not in done:
                read_task.cancel()
                await asyncio.gather(read_task, return_exceptions=True)
            elif not self._absorb(pending, read_task):
                if not pending.matched.done():
                    break

            if pending.matched.done():
                if pending.matched.cancelled():
                    break
                return pending.matched.result()

        self.discard(pending.connection_id)
        return None

    def _absorb(self, pending: PendingTunnel, read_task: asyncio.Future) -> bool:
        """Keep client bytes read while waiting. False if the client is gone."""
        try:
            data = read_task.result()
        except OSError as e:
            logger.debug(f"[Tunnel {pending.short_id}] Client error while waiting: {e}")
            return False
        if not data:
            logger.debug(f"[Tunnel {pending.short_id}] Client left before match")
            return False
        pending.buffered += data
        if len(pending.buffered) > self._max_buffered_bytes:
            logger.warning(
                f"[Tunnel {pending.short_id}] Client sent {len(pending.buffered)} "
                "bytes before match, dropping"
            )
            return False
        return True
