"""
Origin side of the voice bridge.

Every public voice client the relay reports gets its own local UDP socket,
connected to the local voice service. Replies arriving on that socket are
therefore known to belong to that client and are sent back over the bridge
tagged with the client's public endpoint.

Architecture:
    Relay (bridge stream) <-> VoiceBridgeClient <-> VoiceSessionPool
                                                     └─ one UDP socket per
                                                        public endpoint
"""

import asyncio
import time
from typing import Callable

from mcbridge.origin.config import OriginConfig
from mcbridge.protocol.exceptions import VoiceRecordError
from mcbridge.protocol.voice import RecordFramer, decode_record, encode_record
from mcbridge.tunnel.pipe import READ_SIZE, close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)

Endpoint = tuple[str, int]


# =============================================================================
# Voice Sessions
# =============================================================================


class LocalVoiceProtocol(asyncio.DatagramProtocol):
    """Local UDP socket of one voice session."""

    def __init__(self, pool: "VoiceSessionPool", endpoint: Endpoint):
        self.pool = pool
        self.endpoint = endpoint

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self.pool.on_reply(self.endpoint, data)

    def error_received(self, exc: Exception) -> None:
        logger.debug(f"[Voice {self.endpoint}] Local socket error: {exc}")
        self.pool.drop(self.endpoint)

    def connection_lost(self, exc: Exception | None) -> None:
        self.pool.forget(self.endpoint, self)


class VoiceSession:
    """Relay state for one public voice endpoint."""

    def __init__(
        self,
        endpoint: Endpoint,
        transport: asyncio.DatagramTransport,
        protocol: LocalVoiceProtocol,
    ):
        self.endpoint = endpoint
        self.transport = transport
        self.protocol = protocol
        self.last_active = time.monotonic()

    def send(self, payload: bytes) -> None:
        """Send a datagram to the local voice service."""
        self.last_active = time.monotonic()
        self.transport.sendto(payload)

    def touch(self) -> None:
        self.last_active = time.monotonic()

    def close(self) -> None:
        self.transport.close()


class VoiceSessionPool:
    """Per-endpoint UDP sockets towards the local voice service."""

    def __init__(
        self,
        local_host: str,
        local_port: int,
        send_upstream: Callable[[bytes], None],
        max_sessions: int = 1024,
        idle_timeout: float = 120.0,
    ):
        """
        Args:
            local_host: Local voice service address
            local_port: Local voice service port
            send_upstream: Writes an encoded record to the bridge stream
            max_sessions: Sessions kept at once; the longest idle is evicted
            idle_timeout: Seconds without traffic before a session is reaped
        """
        self.local_host = local_host
        self.local_port = local_port
        self._send_upstream = send_upstream
        self._max_sessions = max_sessions
        self._idle_timeout = idle_timeout
        self._sessions: dict[Endpoint, VoiceSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, endpoint: Endpoint) -> bool:
        return endpoint in self._sessions

    def get(self, endpoint: Endpoint) -> VoiceSession | None:
        return self._sessions.get(endpoint)

    async def get_or_create(self, endpoint: Endpoint) -> VoiceSession:
        """Return the session for an endpoint, opening its socket if new."""
        session = self._sessions.get(endpoint)
        if session is not None:
            return session

        loop = asyncio.get_running_loop()
        transport, protocol = await loop.create_datagram_endpoint(
            lambda: LocalVoiceProtocol(self, endpoint),
            remote_addr=(self.local_host, self.local_port),
        )

        # Another record for the same endpoint may have won the race
        existing = self._sessions.get(endpoint)
        if existing is not None:
            transport.close()
            return existing

        if len(self._sessions) >= self._max_sessions:
            self._evict_oldest()

        session = VoiceSession(endpoint, transport, protocol)
        self._sessions[endpoint] = session
        logger.debug(f"[Voice] New session for {endpoint} ({len(self._sessions)} active)")
        return session

    async def dispatch(self, endpoint: Endpoint, payload: bytes) -> None:
        """Send a datagram from a public endpoint to the local service."""
        session = await self.get_or_create(endpoint)
        session.send(payload)

    def on_reply(self, endpoint: Endpoint, data: bytes) -> None:
        """Forward a local service reply to the public endpoint it belongs to."""
        session = self._sessions.get(endpoint)
        if session is not None:
            session.touch()
        self._send_upstream(encode_record(endpoint[0], endpoint[1], data))

    def drop(self, endpoint: Endpoint) -> None:
        """Close and remove one session."""
        session = self._sessions.pop(endpoint, None)
        if session is not None:
            session.close()

    def forget(self, endpoint: Endpoint, protocol: LocalVoiceProtocol) -> None:
        """Remove a session whose socket has closed."""
        session = self._sessions.get(endpoint)
        if session is not None and session.protocol is protocol:
            del self._sessions[endpoint]

    def reap_idle(self, now: float | None = None) -> int:
        """
        Close sessions idle for longer than the idle timeout.

        Returns:
            Number of sessions closed
        """
        now = time.monotonic() if now is None else now
        stale = [
            endpoint
            for endpoint, session in self._sessions.items()
            if now - session.last_active > self._idle_timeout
        ]
        for endpoint in stale:
            self.drop(endpoint)
        if stale:
            logger.debug(f"[Voice] Reaped {len(stale)} idle session(s)")
        return len(stale)

    def close_all(self) -> None:
        """Close every session and clear the pool."""
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.close()

    def _evict_oldest(self) -> None:
        oldest = min(self._sessions.values(), key=lambda s: s.last_active)
        logger.warning(f"[Voice] Session limit reached, evicting {oldest.endpoint}")
        self.drop(oldest.endpoint)


# =============================================================================
# Bridge Client
# =============================================================================


class VoiceBridgeClient:
    """Keeps the voice bridge stream to the relay open."""

    def __init__(self, config: OriginConfig):
        self.config = config
        self.connected = asyncio.Event()
        self.pool: VoiceSessionPool | None = None
        self._writer: asyncio.StreamWriter | None = None

    async def run_forever(self) -> None:
        """Connect, serve, and reconnect after a fixed delay, forever."""
        while True:
            try:
                await self.connect_once()
            except asyncio.CancelledError:
                raise
            except (OSError, asyncio.TimeoutError) as e:
                logger.error(f"[Voice Error] {e}")
            except Exception as e:
                logger.exception(f"[Voice Error] Unexpected error: {e}")

            logger.info(
                f"[Voice] Disconnected. Retrying in {self.config.RECONNECT_DELAY:g}s..."
            )
            await asyncio.sleep(self.config.RECONNECT_DELAY)

    async def connect_once(self) -> None:
        """Run one bridge session; all voice sessions end with it."""
        logger.info("[Voice] Connecting to relay voice bridge...")
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                self.config.RELAY_ADDRESS, self.config.VOICE_BRIDGE_PORT
            ),
            timeout=self.config.CONNECT_TIMEOUT,
        )
        logger.info("[Voice] Connected.")

        pool = VoiceSessionPool(
            self.config.LOCAL_VOICE_HOST,
            self.config.LOCAL_VOICE_PORT,
            self.send_upstream,
            max_sessions=self.config.MAX_VOICE_SESSIONS,
            idle_timeout=self.config.VOICE_SESSION_IDLE_TIMEOUT,
        )
        self._writer = writer
        self.pool = pool
        self.connected.set()
        reaper = asyncio.create_task(self._reap_loop(pool))
        framer = RecordFramer(self.config.MAX_RECORD_LINE)

        try:
            while True:
                chunk = await reader.read(READ_SIZE)
                if not chunk:
                    break
                for line in framer.feed(chunk):
                    try:
                        record, payload = decode_record(line)
                    except VoiceRecordError as e:
                        logger.error(f"[Voice] Packet error: {e}")
                        continue
                    try:
                        await pool.dispatch(record.endpoint, payload)
                    except OSError as e:
                        logger.warning(
                            f"[Voice] Could not relay to local voice service: {e}"
                        )
        finally:
            self.connected.clear()
            reaper.cancel()
            await asyncio.gather(reaper, return_exceptions=True)
            pool.close_all()
            self._writer = None
            await close_writer(writer)

    def send_upstream(self, line: bytes) -> None:
        """Write a record to the relay, dropping it if the bridge is backed up."""
        writer = self._writer
        if writer is None or writer.is_closing():
            return

        if writer.transport.get_write_buffer_size() > self.config.MAX_BRIDGE_WRITE_BUFFER:
            logger.warning("[Voice] Relay bridge is backed up, dropping datagram")
            return

        writer.write(line)

    async def _reap_loop(self, pool: VoiceSessionPool) -> None:
        while True:
            await asyncio.sleep(self.config.VOICE_REAP_INTERVAL)
            pool.reap_idle()
