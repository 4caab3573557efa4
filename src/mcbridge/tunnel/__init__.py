"""
Tunnel plumbing shared by the relay and the origin agent.

A tunnel is one dedicated connection pair carrying a single public client's
game traffic end to end.
"""

from mcbridge.tunnel.pipe import LinkedPair, close_writer, pump

__all__ = [
    "LinkedPair",
    "close_writer",
    "pump",
]
