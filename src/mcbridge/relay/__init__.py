"""
Relay side of mcbridge: runs on the public host.

Accepts public game and voice clients and forwards them to the origin over
connections the origin dials out to the relay.
"""
