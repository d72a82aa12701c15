"""
WebSocket server for the party rooms.

Main entry point that ties together connection management,
room management, and message handling.
"""

import asyncio
import logging
import signal
from typing import Any

import websockets
from websockets.asyncio.server import ServerConnection, serve

from server.config import settings
from server.content import load_board, load_quiz_content
from server.network.connection_manager import ConnectionManager
from server.network.game_manager import GameManager
from server.network.message_handler import MessageHandler
from server.rooms.registry import RoomRegistry
from shared.enums import ErrorCode
from shared.protocol import ErrorMessage, HostTransferredMessage, StateSyncMessage


logger = logging.getLogger(__name__)


class PartyServer:
    """
    WebSocket server for quiz and board rooms.

    Handles client connections, routes messages, and pushes each room's
    events and snapshots to its connected members.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        game_manager: GameManager | None = None
    ):
        self.host = host or settings.HOST
        self.port = port or settings.PORT

        # Initialize managers
        self._connections = ConnectionManager()
        self._games = game_manager or self._build_game_manager()
        self._handler = MessageHandler(self._games, self._connections)
        self._games.set_listener(self._schedule_flush)

        # Server state
        self._server = None
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._flush_tasks: set[asyncio.Task] = set()

    @staticmethod
    def _build_game_manager() -> GameManager:
        return GameManager(
            registry=RoomRegistry(session_ttl_seconds=settings.session_ttl_seconds),
            quiz_content=load_quiz_content(settings.CONTENT_DIR),
            board=load_board(settings.CONTENT_DIR, settings.BOARD_ID),
            answer_seconds=settings.ANSWER_SECONDS,
            drawing_seconds=settings.DRAWING_SECONDS,
            auto_advance_seconds=settings.AUTO_ADVANCE_SECONDS,
            turn_seconds=settings.TURN_SECONDS,
        )

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._running = True
        self._shutdown_event.clear()

        self._server = await serve(
            self._handle_client,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10,
        )

        logger.info(f"Party server started on ws://{self.host}:{self.port}")

        # Wait for shutdown signal
        await self._shutdown_event.wait()

    async def stop(self) -> None:
        """Stop the server gracefully."""
        logger.info("Shutting down server...")
        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()

        for code in self._games.registry.list_room_codes():
            self._games.dispose_room(code)

        self._shutdown_event.set()
        logger.info("Server stopped")

    def request_shutdown(self) -> None:
        """Request server shutdown (can be called from signal handler)."""
        asyncio.create_task(self.stop())

    # =========================================================================
    # Client loop
    # =========================================================================

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """
        Handle a client connection.

        Lobby requests (create, join, reconnect, meta) may be sent on any
        socket. Room actions require a successful CONNECT first. The first
        frame must arrive within CONNECT_TIMEOUT.
        """
        try:
            try:
                first = await asyncio.wait_for(websocket.recv(), timeout=settings.CONNECT_TIMEOUT)
            except asyncio.TimeoutError:
                await self._send_error(websocket, "Connection timeout", ErrorCode.TIMEOUT)
                await websocket.close()
                return

            if not await self._handle_frame(websocket, first):
                return

            # Handle messages until disconnect
            async for raw_message in websocket:
                if not self._running:
                    break
                if not await self._handle_frame(websocket, raw_message):
                    break

        except websockets.ConnectionClosed:
            logger.debug("Connection closed by client")
        except Exception as e:
            logger.exception(f"Error handling client: {e}")
        finally:
            await self._handle_disconnect(websocket)

    async def _handle_frame(self, websocket: ServerConnection, raw: str | bytes) -> bool:
        """
        Process one frame.

        Returns:
            False when the socket has been closed and the loop should stop
        """
        result = await self._handler.handle_message(websocket, raw)

        if result.response:
            await self._connections.send_to_connection(websocket, result.response)

        if result.close:
            await websocket.close()
            return False

        if result.room_code:
            await self.flush_room(result.room_code)
        return True

    async def _handle_disconnect(self, websocket: ServerConnection) -> None:
        """Handle socket loss for an authenticated member."""
        connection = await self._connections.unbind(websocket)
        if connection is None:
            return

        # A newer socket may already be bound for the same member
        if self._connections.is_player_connected(connection.room_code, connection.player_id):
            return

        self._games.mark_disconnected(connection.room_code, connection.player_id)
        logger.info(f"Player {connection.player_id} disconnected from room {connection.room_code}")
        await self.flush_room(connection.room_code)

    # =========================================================================
    # Broadcasting
    # =========================================================================

    async def flush_room(self, room_code: str) -> None:
        """Send a room's buffered events, host change and snapshot to its members."""
        update = self._games.drain(room_code)
        if update is None:
            return

        code = room_code.strip().upper()

        for event in update.events:
            await self._connections.broadcast_to_room(code, event)

        if update.new_host_id:
            await self._connections.broadcast_to_room(
                code,
                HostTransferredMessage.create(code, update.new_host_id)
            )

        if update.state is not None:
            await self._connections.broadcast_to_room(code, StateSyncMessage.create(code, update.state))

        for player_id in update.removed_player_ids:
            connection = await self._connections.unbind_player(code, player_id)
            if connection is not None:
                await connection.websocket.close()

    def _schedule_flush(self, room_code: str) -> None:
        """Timer callbacks run outside any client loop; flush on the event loop."""
        task = asyncio.get_running_loop().create_task(self.flush_room(room_code))
        self._flush_tasks.add(task)
        task.add_done_callback(self._flush_tasks.discard)

    async def _send_error(self, websocket: ServerConnection, message: str, code: ErrorCode) -> None:
        """Send an error message to a websocket."""
        try:
            await websocket.send(ErrorMessage.create(message, code).to_json())
        except websockets.ConnectionClosed:
            logger.debug("Could not send error, connection already closed")

    def get_stats(self) -> dict[str, Any]:
        """Get server statistics."""
        return {
            "running": self._running,
            "connections": self._connections.get_stats(),
            "rooms": self._games.get_stats(),
        }


async def run_server(host: str | None = None, port: int | None = None) -> None:
    """
    Run the party server.

    Sets up signal handlers for graceful shutdown.
    """
    server = PartyServer(host, port)

    # Set up signal handlers
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, server.request_shutdown)

    try:
        await server.start()
    finally:
        # Clean up signal handlers
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def main():
    """Entry point for running the server."""
    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print(f"Starting party server on ws://{settings.HOST}:{settings.PORT}")
    print("Press Ctrl+C to stop")

    try:
        asyncio.run(run_server())
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
