"""
Network layer for the party rooms server.

Provides WebSocket server, connection management, and message handling.
"""

from server.network.connection_manager import ConnectionManager, RoomConnection
from server.network.game_manager import GameManager, ManagedRoom, RoomUpdate
from server.network.message_handler import MessageHandler, HandleResult
from server.network.server import PartyServer, run_server


__all__ = [
    "ConnectionManager",
    "RoomConnection",
    "GameManager",
    "ManagedRoom",
    "RoomUpdate",
    "MessageHandler",
    "HandleResult",
    "PartyServer",
    "run_server",
]
