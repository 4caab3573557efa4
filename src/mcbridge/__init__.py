"""
mcbridge: expose a game server and its voice chat through a public relay.

The relay host accepts public connections and forwards them to an origin
machine that only ever dials out, so the origin never opens inbound ports.
"""

__version__ = "0.1.0"
