"""
Origin agent configuration.

A global Config instance that can be modified at runtime.
"""

from dataclasses import dataclass

from mcbridge.models.enums import LogLevel
from mcbridge.protocol.control import CONTROL_TOKEN
from mcbridge.protocol.voice import MAX_RECORD_LINE


@dataclass
class OriginConfig:
    """Origin agent configuration."""

    # Relay Configuration
    RELAY_ADDRESS: str = "127.0.0.1"  # Change to the relay's public address
    CONTROL_PORT: int = 5000
    VOICE_BRIDGE_PORT: int = 5001
    CONTROL_TOKEN: str = CONTROL_TOKEN

    # Local Service Configuration
    LOCAL_GAME_HOST: str = "127.0.0.1"
    LOCAL_GAME_PORT: int = 25565
    LOCAL_VOICE_HOST: str = "127.0.0.1"
    LOCAL_VOICE_PORT: int = 24454

    # Timing Configuration
    RECONNECT_DELAY: float = 5.0  # Fixed delay, retried forever
    CONNECT_TIMEOUT: float = 15.0
    VOICE_SESSION_IDLE_TIMEOUT: float = 120.0
    VOICE_REAP_INTERVAL: float = 30.0

    # Limits
    MAX_VOICE_SESSIONS: int = 1024
    MAX_RECORD_LINE: int = MAX_RECORD_LINE
    MAX_BRIDGE_WRITE_BUFFER: int = 4 * 1024 * 1024  # Voice is dropped above this

    # Logging Configuration
    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    def get_relay_address(self, port: int) -> str:
        """Format a relay address for log lines."""
        return f"{self.RELAY_ADDRESS}:{port}"


# Global config instance
config = OriginConfig()
