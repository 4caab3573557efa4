"""
Control channel state for the relay.

The relay has at most one control channel at a time. Rather than a module
global, the relay application owns one ControlChannelHolder and hands it to
every component that needs to check for, use, or replace the channel.
"""

import asyncio
import time
from dataclasses import dataclass, field

from mcbridge.models.enums import ControlChannelState
from mcbridge.tunnel.pipe import close_writer
from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ControlChannel:
    """The origin's control connection."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    peer: object = None
    state: ControlChannelState = ControlChannelState.UNAUTHENTICATED
    connected_at: float = field(default_factory=time.time)

    @property
    def uptime(self) -> float:
        """Seconds since the channel was accepted."""
        return time.time() - self.connected_at

    @property
    def is_open(self) -> bool:
        return (
            self.state == ControlChannelState.AUTHENTICATED
            and not self.writer.is_closing()
        )

    async def send(self, data: bytes) -> bool:
        """
        Send a command to the origin.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_open:
            return False
        try:
            self.writer.write(data)
            await self.writer.drain()
            return True
        except OSError as e:
            logger.warning(f"[Control {self.peer}] Failed to send: {e}")
            return False

    async def close(self) -> None:
        self.state = ControlChannelState.CLOSED
        await close_writer(self.writer)


class ControlChannelHolder:
    """Holds the current control channel, if any."""

    def __init__(self):
        self._channel: ControlChannel | None = None

    def is_authenticated(self) -> bool:
        """Whether an authenticated, open control channel exists."""
        return self._channel is not None and self._channel.is_open

    def get(self) -> ControlChannel | None:
        return self._channel

    def set(self, channel: ControlChannel) -> ControlChannel | None:
        """
        Install a new control channel.

        Returns:
            The channel it replaced, if any (the caller closes it)
        """
        previous = self._channel
        channel.state = ControlChannelState.AUTHENTICATED
        self._channel = channel
        return previous if previous is not channel else None

    def clear(self, channel: ControlChannel | None = None) -> bool:
        """
        Drop the current control channel.

        Args:
            channel: Only clear if this is still the current channel

        Returns:
            True if a channel was cleared
        """
        if self._channel is None:
            return False
        if channel is not None and channel is not self._channel:
            return False
        self._channel.state = ControlChannelState.CLOSED
        self._channel = None
        return True
