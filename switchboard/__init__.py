"""
Switchboard: a minimal HTTP/1.1 server with in-place WebSocket upgrade.

Serves text echo, file read/write and WebSocket broadcast messaging on one
listening port.
"""

__version__ = "0.1.0"
