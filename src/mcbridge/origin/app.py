"""
Origin agent application.

Runs next to the game and voice servers and keeps two outbound connections
to the relay: the control channel and the voice bridge. Both reconnect on
their own after a fixed delay.
"""

import asyncio

from mcbridge.origin.config import OriginConfig, config as default_config
from mcbridge.origin.control_client import ControlClient
from mcbridge.origin.voice_client import VoiceBridgeClient
from mcbridge.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


class OriginApp:
    """Owns the origin's control client and voice bridge client."""

    def __init__(self, config: OriginConfig | None = None):
        self.config = config or default_config
        self.control_client = ControlClient(self.config)
        self.voice_client = VoiceBridgeClient(self.config)
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        """Start both connection loops in the background."""
        logger.info(
            f"Origin agent: relay {self.config.RELAY_ADDRESS}, "
            f"game {self.config.LOCAL_GAME_HOST}:{self.config.LOCAL_GAME_PORT}, "
            f"voice {self.config.LOCAL_VOICE_HOST}:{self.config.LOCAL_VOICE_PORT}"
        )
        self._tasks = [
            asyncio.create_task(self.control_client.run_forever()),
            asyncio.create_task(self.voice_client.run_forever()),
        ]

    async def wait(self) -> None:
        """Wait for the connection loops (they only end when cancelled)."""
        await asyncio.gather(*self._tasks)

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.control_client.close()
        logger.info("Origin agent stopped.")

    async def __aenter__(self) -> "OriginApp":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


async def serve(config: OriginConfig | None = None) -> None:
    """Run the origin agent until cancelled."""
    async with OriginApp(config) as app:
        await app.wait()


def run(config: OriginConfig | None = None):
    """Run the origin agent (blocking)."""
    config = config or default_config

    # Configure logging (IMPORTANT: must be called before connecting)
    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Origin agent interrupted.")


def main():
    """Entry point for ``python -m mcbridge.origin.app``."""
    run()


if __name__ == "__main__":
    main()
