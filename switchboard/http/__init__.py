"""
Switchboard HTTP subsystem.

HTTP/1.1 request handling with in-place upgrade to WebSocket. Upgraded
connections are tracked by WebSocketConnectionManager for broadcast.
"""

from switchboard.http.connection_manager import WebSocketConnectionManager
from switchboard.http.server import HTTPServer

__all__ = [
    "HTTPServer",
    "WebSocketConnectionManager",
]
