"""
Connection manager for WebSocket clients.

Tracks which socket is authenticated as which member of which room and
handles sending messages to single members or broadcasting to a room.
A socket only becomes room-bound after a successful CONNECT.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from websockets.asyncio.server import ServerConnection

from shared.protocol import Message
from server.utils import now


logger = logging.getLogger(__name__)


@dataclass
class RoomConnection:
    """An authenticated socket."""
    room_code: str
    player_id: str
    websocket: ServerConnection
    connected_at: float = field(default_factory=now)
    last_activity: float = field(default_factory=now)

    def update_activity(self) -> None:
        self.last_activity = now()


class ConnectionManager:
    """
    Manages WebSocket connections and their room bindings.

    Provides methods for:
    - Binding an authenticated socket to (room, player)
    - Unbinding on disconnect, leave or kick
    - Sending messages to specific members
    - Broadcasting messages to all connected members of a room
    """

    def __init__(self):
        # websocket -> RoomConnection
        self._connections: dict[ServerConnection, RoomConnection] = {}

        # room_code -> player_id -> websocket
        self._room_sockets: dict[str, dict[str, ServerConnection]] = {}

        self._lock = asyncio.Lock()

    # =========================================================================
    # Binding
    # =========================================================================

    async def bind(
        self,
        websocket: ServerConnection,
        room_code: str,
        player_id: str
    ) -> RoomConnection:
        """
        Bind a socket to a room member.

        A member has at most one bound socket; binding a new one silently
        unbinds the previous socket, which keeps its transport open.
        """
        async with self._lock:
            previous = self._connections.pop(websocket, None)
            if previous is not None:
                self._forget(previous)

            sockets = self._room_sockets.setdefault(room_code, {})
            old_socket = sockets.get(player_id)
            if old_socket is not None and old_socket is not websocket:
                self._connections.pop(old_socket, None)
                logger.info(f"Player {player_id} replaced an older socket in room {room_code}")

            connection = RoomConnection(room_code=room_code, player_id=player_id, websocket=websocket)
            self._connections[websocket] = connection
            sockets[player_id] = websocket

            logger.info(f"Player {player_id} connected to room {room_code}")
            return connection

    async def unbind(self, websocket: ServerConnection) -> RoomConnection | None:
        """
        Forget a socket.

        Returns:
            The binding it held, or None if it was not (or no longer) bound
        """
        async with self._lock:
            connection = self._connections.pop(websocket, None)
            if connection is not None:
                self._forget(connection)
            return connection

    async def unbind_player(self, room_code: str, player_id: str) -> RoomConnection | None:
        """Forget whatever socket a member has, e.g. after a kick."""
        async with self._lock:
            websocket = self._room_sockets.get(room_code, {}).get(player_id)
            if websocket is None:
                return None
            connection = self._connections.pop(websocket, None)
            if connection is not None:
                self._forget(connection)
            return connection

    def _forget(self, connection: RoomConnection) -> None:
        """Drop the room index entry (caller holds the lock)."""
        sockets = self._room_sockets.get(connection.room_code)
        if sockets is None:
            return
        if sockets.get(connection.player_id) is connection.websocket:
            del sockets[connection.player_id]
        if not sockets:
            del self._room_sockets[connection.room_code]

    # =========================================================================
    # Queries
    # =========================================================================

    def get_connection(self, websocket: ServerConnection) -> RoomConnection | None:
        return self._connections.get(websocket)

    def get_room_connections(self, room_code: str) -> list[RoomConnection]:
        sockets = self._room_sockets.get(room_code, {})
        return [self._connections[ws] for ws in sockets.values() if ws in self._connections]

    def is_player_connected(self, room_code: str, player_id: str) -> bool:
        return player_id in self._room_sockets.get(room_code, {})

    # =========================================================================
    # Messaging
    # =========================================================================

    async def send_to_player(self, room_code: str, player_id: str, message: Message | dict | str) -> bool:
        """
        Send a message to one member of a room.

        Returns:
            True if sent successfully, False if the member is not connected
        """
        websocket = self._room_sockets.get(room_code, {}).get(player_id)
        if websocket is None:
            return False
        return await self._send_to_websocket(websocket, message)

    async def send_to_connection(self, websocket: ServerConnection, message: Message | dict | str) -> bool:
        return await self._send_to_websocket(websocket, message)

    async def broadcast_to_room(
        self,
        room_code: str,
        message: Message | dict | str,
        exclude_player_id: str | None = None
    ) -> int:
        """
        Broadcast a message to all connected members of a room.

        Returns:
            Number of members the message was sent to
        """
        data = self._serialize(message)
        sent_count = 0
        for connection in self.get_room_connections(room_code):
            if exclude_player_id and connection.player_id == exclude_player_id:
                continue
            if await self._send_to_websocket(connection.websocket, data):
                sent_count += 1
        return sent_count

    @staticmethod
    def _serialize(message: Message | dict | str) -> str:
        if isinstance(message, Message):
            return message.to_json()
        if isinstance(message, dict):
            return json.dumps(message, ensure_ascii=False)
        return message

    async def _send_to_websocket(self, websocket: ServerConnection, message: Message | dict | str) -> bool:
        try:
            await websocket.send(self._serialize(message))
        except Exception as e:
            logger.error(f"Failed to send message: {e}")
            return False

        connection = self._connections.get(websocket)
        if connection is not None:
            connection.update_activity()
        return True

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return {
            "total_connections": len(self._connections),
            "rooms_with_connections": len(self._room_sockets),
            "connections_per_room": {
                code: len(sockets) for code, sockets in self._room_sockets.items()
            },
        }
