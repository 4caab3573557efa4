"""
Relay configuration for mcbridge.

This module defines the configuration dataclass for the public relay host.

Configuration can be modified at runtime by importing the global config
instance and updating its attributes before starting the relay.

Usage:
    from mcbridge.relay.config import config

    # Modify configuration before starting
    config.PUBLIC_GAME_PORT = 25566
    config.LOG_LEVEL = LogLevel.DEBUG
"""

from dataclasses import dataclass

from mcbridge.models.enums import LogLevel
from mcbridge.protocol.control import CONTROL_TOKEN
from mcbridge.protocol.status import DEFAULT_DESCRIPTION, DEFAULT_FOOTER
from mcbridge.protocol.voice import MAX_RECORD_LINE


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass
class RelayConfig:
    """
    Relay configuration.

    Attributes:
        BIND_IP: IP address every listener binds to.
        CONTROL_PORT: Internal TCP port for the control channel and tunnels.
        VOICE_BRIDGE_PORT: Internal TCP port for the voice bridge stream.
        PUBLIC_GAME_PORT: Public TCP port game clients connect to.
        PUBLIC_VOICE_PORT: Public UDP port voice clients send to.
        CONTROL_TOKEN: Token the origin sends to claim the control channel.
        LOG_LEVEL: Logging verbosity level.
    """

    # -------------------------------------------------------------------------
    # Network Configuration
    # -------------------------------------------------------------------------

    BIND_IP: str = "0.0.0.0"
    CONTROL_PORT: int = 5000
    VOICE_BRIDGE_PORT: int = 5001
    PUBLIC_GAME_PORT: int = 25565
    PUBLIC_VOICE_PORT: int = 24454

    # -------------------------------------------------------------------------
    # Protocol Configuration
    # -------------------------------------------------------------------------

    CONTROL_TOKEN: str = CONTROL_TOKEN
    OFFLINE_DESCRIPTION: str = DEFAULT_DESCRIPTION
    OFFLINE_MOTD_FOOTER: str = DEFAULT_FOOTER

    # -------------------------------------------------------------------------
    # Limits and Timeouts
    # -------------------------------------------------------------------------

    HELLO_TIMEOUT: float = 10.0  # Seconds to wait for a role on the internal port
    PENDING_TUNNEL_TIMEOUT: float = 30.0  # Seconds a public client waits for the origin
    MAX_PENDING_TUNNELS: int = 256
    MAX_PENDING_CLIENT_BYTES: int = 1024 * 1024  # Buffered per waiting client
    MAX_RECORD_LINE: int = MAX_RECORD_LINE
    MAX_BRIDGE_WRITE_BUFFER: int = 4 * 1024 * 1024  # Voice is dropped above this

    # -------------------------------------------------------------------------
    # Logging Configuration
    # -------------------------------------------------------------------------

    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""  # Empty = console only


# Global config instance
config = RelayConfig()
