"""
Origin side of mcbridge: runs next to the game and voice servers.

Only ever dials out to the relay, so the origin machine needs no inbound
ports or public address.
"""
