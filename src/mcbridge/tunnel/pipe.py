"""
Bidirectional stream linking.

A LinkedPair joins two connected streams: bytes read from either side are
written to the other until one side closes or errors, at which point both
sides are closed. There is no half-open state.
"""

import asyncio
from typing import Callable

from mcbridge.utils.logger import get_logger

logger = get_logger(__name__)

READ_SIZE: int = 65536


async def close_writer(writer: asyncio.StreamWriter | None, timeout: float = 1.0):
    """Close a stream writer and wait briefly for the transport to go away."""
    if writer is None:
        return
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
    except (OSError, asyncio.TimeoutError):
        pass


async def pump(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    on_chunk: Callable[[int], None] | None = None,
) -> int:
    """
    Pipe data from reader to writer until EOF or error.

    Waits for the writer to drain after every chunk so a slow receiver
    throttles the sender through the transport's own flow control.

    Args:
        reader: Source stream
        writer: Destination stream
        on_chunk: Called with the size of every forwarded chunk

    Returns:
        Number of bytes forwarded
    """
    total = 0
    while True:
        try:
            data = await reader.read(READ_SIZE)
            if not data:
                break
            writer.write(data)
            await writer.drain()
        except OSError:
            break
        total += len(data)
        if on_chunk is not None:
            on_chunk(len(data))
    return total


class LinkedPair:
    """Two streams whose lifetimes are tied together."""

    def __init__(
        self,
        name: str,
        a: tuple[asyncio.StreamReader, asyncio.StreamWriter],
        b: tuple[asyncio.StreamReader, asyncio.StreamWriter],
    ):
        """
        Args:
            name: Label used in log lines
            a: (reader, writer) of the first stream
            b: (reader, writer) of the second stream
        """
        self.name = name
        self.a_reader, self.a_writer = a
        self.b_reader, self.b_writer = b
        self.bytes_a_to_b = 0
        self.bytes_b_to_a = 0
        self._tasks: list[asyncio.Task] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self, a_to_b_initial: bytes = b"", b_to_a_initial: bytes = b"") -> None:
        """
        Forward in both directions until either side ends, then close both.

        Args:
            a_to_b_initial: Bytes already read from a, written to b first
            b_to_a_initial: Bytes already read from b, written to a first
        """
        try:
            if not await self._write_initial(a_to_b_initial, b_to_a_initial):
                return

            a_to_b = asyncio.create_task(
                pump(self.a_reader, self.b_writer, self._count_a_to_b)
            )
            b_to_a = asyncio.create_task(
                pump(self.b_reader, self.a_writer, self._count_b_to_a)
            )
            self._tasks = [a_to_b, b_to_a]

            done, pending = await asyncio.wait(
                self._tasks, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        finally:
            for task in self._tasks:
                task.cancel()
            await self.close()

    async def close(self) -> None:
        """Close both sides. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await asyncio.gather(close_writer(self.a_writer), close_writer(self.b_writer))
        logger.debug(
            f"[{self.name}] Closed "
            f"(a→b {self.bytes_a_to_b}B, b→a {self.bytes_b_to_a}B)"
        )

    async def _write_initial(self, a_to_b: bytes, b_to_a: bytes) -> bool:
        try:
            if a_to_b:
                self.b_writer.write(a_to_b)
                await self.b_writer.drain()
                self.bytes_a_to_b += len(a_to_b)
            if b_to_a:
                self.a_writer.write(b_to_a)
                await self.a_writer.drain()
                self.bytes_b_to_a += len(b_to_a)
        except OSError as e:
            logger.debug(f"[{self.name}] Failed to flush buffered bytes: {e}")
            return False
        return True

    def _count_a_to_b(self, size: int) -> None:
        self.bytes_a_to_b += size

    def _count_b_to_a(self, size: int) -> None:
        self.bytes_b_to_a += size
