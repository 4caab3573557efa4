"""
Enumeration types for mcbridge.

This module defines the enumeration types shared by the relay and the origin
agent for connection state tracking and configuration options.
"""

from enum import Enum


# =============================================================================
# Connection-Related Enums
# =============================================================================


class ControlChannelState(str, Enum):
    """
    Lifecycle of the control channel on the relay.

    State transitions:
        UNAUTHENTICATED -> AUTHENTICATED (token received)
        AUTHENTICATED -> CLOSED (origin disconnected or replaced)
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


class PeerRole(str, Enum):
    """
    Role a connection to the internal control port takes on.

    Selected by the first bytes the origin sends.
    """

    CONTROL = "control"  # The single long-lived control channel
    TUNNEL = "tunnel"  # Origin half of one game connection


class GameProtocolState(str, Enum):
    """
    Offline game protocol parser state.

    State transitions:
        HANDSHAKE -> STATUS (handshake packet 0x00 received)
    """

    HANDSHAKE = "handshake"
    STATUS = "status"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels for mcbridge components.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
