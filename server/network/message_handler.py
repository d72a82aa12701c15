"""
Message handler for routing client messages to room actions.

Parses incoming frames, validates their payloads, and executes the
appropriate lobby or room action. Room-bound actions require an
authenticated socket; lobby requests do not.
"""

import logging
from dataclasses import dataclass

from pydantic import BaseModel, ValidationError
from websockets.asyncio.server import ServerConnection

from server.errors import GameError
from server.network.connection_manager import ConnectionManager
from server.network.game_manager import GameManager
from shared.enums import ErrorCode, GameType, MessageType
from shared.protocol import (
    ConnectedMessage,
    ErrorMessage,
    Message,
    RoomMetaMessage,
    RoomSessionMessage,
    parse_message,
)
from shared.schemas import (
    AnswerPayload,
    BidPayload,
    BoardHostActionPayload,
    BuyPayload,
    BuzzPayload,
    CloseAuctionPayload,
    ConnectPayload,
    DrawingSubmitPayload,
    DrawingVotePayload,
    EndTurnPayload,
    GiveUpPayload,
    HousePayload,
    JoinRoomPayload,
    LeaveRoomPayload,
    MortgagePayload,
    NextRoundPayload,
    QuizHostActionPayload,
    ReadyPayload,
    ReconnectPayload,
    RepeatVotePayload,
    RollPayload,
    RoomMetaPayload,
    StartBoardPayload,
    StartQuizPayload,
    TradeCancelPayload,
    TradeDecisionPayload,
    TradeProposalPayload,
    create_room_adapter,
)


logger = logging.getLogger(__name__)


# Room action message -> (room type it is valid in, payload schema)
ROOM_ACTIONS: dict[MessageType, tuple[GameType, type[BaseModel]]] = {
    MessageType.QUIZ_START: (GameType.QUIZ, StartQuizPayload),
    MessageType.QUIZ_NEXT_ROUND: (GameType.QUIZ, NextRoundPayload),
    MessageType.QUIZ_BUZZ: (GameType.QUIZ, BuzzPayload),
    MessageType.QUIZ_ANSWER: (GameType.QUIZ, AnswerPayload),
    MessageType.QUIZ_READY: (GameType.QUIZ, ReadyPayload),
    MessageType.QUIZ_SUBMIT_DRAWING: (GameType.QUIZ, DrawingSubmitPayload),
    MessageType.QUIZ_VOTE_DRAWING: (GameType.QUIZ, DrawingVotePayload),
    MessageType.QUIZ_VOTE_REPEAT: (GameType.QUIZ, RepeatVotePayload),
    MessageType.QUIZ_GIVE_UP: (GameType.QUIZ, GiveUpPayload),
    MessageType.QUIZ_HOST_ACTION: (GameType.QUIZ, QuizHostActionPayload),
    MessageType.BOARD_START: (GameType.BOARD, StartBoardPayload),
    MessageType.BOARD_ROLL: (GameType.BOARD, RollPayload),
    MessageType.BOARD_BUY: (GameType.BOARD, BuyPayload),
    MessageType.BOARD_BID: (GameType.BOARD, BidPayload),
    MessageType.BOARD_CLOSE_AUCTION: (GameType.BOARD, CloseAuctionPayload),
    MessageType.BOARD_END_TURN: (GameType.BOARD, EndTurnPayload),
    MessageType.BOARD_MORTGAGE: (GameType.BOARD, MortgagePayload),
    MessageType.BOARD_HOUSE: (GameType.BOARD, HousePayload),
    MessageType.BOARD_PROPOSE_TRADE: (GameType.BOARD, TradeProposalPayload),
    MessageType.BOARD_DECIDE_TRADE: (GameType.BOARD, TradeDecisionPayload),
    MessageType.BOARD_CANCEL_TRADE: (GameType.BOARD, TradeCancelPayload),
    MessageType.BOARD_HOST_ACTION: (GameType.BOARD, BoardHostActionPayload),
}


@dataclass
class HandleResult:
    """Result of handling a message."""
    # Response to send back to the requesting socket (None if no response needed)
    response: Message | None = None
    # Room whose buffered events and state should be flushed afterwards
    room_code: str | None = None
    # Whether the socket should be closed after the response is sent
    close: bool = False


class MessageHandler:
    """
    Routes incoming messages to lobby operations or room engines.

    Each handler method returns a HandleResult containing:
    - A response to send to the requesting socket
    - The room to flush, if any room state may have changed
    - Whether to close the socket
    """

    def __init__(self, game_manager: GameManager, connection_manager: ConnectionManager):
        self._games = game_manager
        self._connections = connection_manager

    async def handle_message(self, websocket: ServerConnection, raw: str | bytes) -> HandleResult:
        """
        Handle one frame received on a socket.

        Errors never escape: they come back as an ERROR response for this
        socket only.
        """
        try:
            message = parse_message(raw)
        except (ValueError, KeyError) as e:
            logger.warning(f"Failed to parse message: {e}")
            return HandleResult(
                response=ErrorMessage.create(f"Invalid message format: {e}", ErrorCode.PARSE_ERROR)
            )

        handler = self._get_handler(message.type)
        if handler is None:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Unknown message type: {message.type.value}",
                    ErrorCode.UNKNOWN_MESSAGE_TYPE,
                    message.request_id
                )
            )

        try:
            result = await handler(websocket, message)
        except ValidationError as e:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Invalid payload: {e.errors(include_url=False)}",
                    ErrorCode.INVALID_PAYLOAD,
                    message.request_id
                )
            )
        except GameError as e:
            connection = self._connections.get_connection(websocket)
            return HandleResult(
                response=ErrorMessage.create(e.message, e.code, message.request_id),
                room_code=connection.room_code if connection else None,
            )
        except Exception as e:
            logger.exception(f"Error handling message {message.type.value}: {e}")
            return HandleResult(
                response=ErrorMessage.create("Internal error", ErrorCode.INTERNAL_ERROR, message.request_id)
            )

        # Preserve request_id in response
        if result.response and message.request_id:
            result.response.request_id = message.request_id
        return result

    def _get_handler(self, message_type: MessageType):
        """Get the handler method for a message type."""
        if message_type in ROOM_ACTIONS:
            return self._handle_room_action

        handlers = {
            # Lobby
            MessageType.CREATE_ROOM: self._handle_create_room,
            MessageType.JOIN_ROOM: self._handle_join_room,
            MessageType.RECONNECT: self._handle_reconnect,
            MessageType.ROOM_META: self._handle_room_meta,

            # Connection
            MessageType.CONNECT: self._handle_connect,
            MessageType.LEAVE_ROOM: self._handle_leave_room,
        }
        return handlers.get(message_type)

    # =========================================================================
    # Lobby Handlers
    # =========================================================================

    async def _handle_create_room(self, websocket: ServerConnection, message: Message) -> HandleResult:
        payload = create_room_adapter.validate_python(message.data)
        grant = self._games.create_room(payload)
        return HandleResult(response=RoomSessionMessage.create(grant.to_dict()))

    async def _handle_join_room(self, websocket: ServerConnection, message: Message) -> HandleResult:
        payload = JoinRoomPayload.model_validate(message.data)
        grant = self._games.join_room(payload.room_code, payload.name, payload.language, payload.piece_color)
        return HandleResult(
            response=RoomSessionMessage.create(grant.to_dict()),
            room_code=grant.room_code,
        )

    async def _handle_reconnect(self, websocket: ServerConnection, message: Message) -> HandleResult:
        payload = ReconnectPayload.model_validate(message.data)
        grant = self._games.reconnect(payload.room_code, payload.session_token)
        return HandleResult(
            response=RoomSessionMessage.create(grant.to_dict()),
            room_code=grant.room_code,
        )

    async def _handle_room_meta(self, websocket: ServerConnection, message: Message) -> HandleResult:
        payload = RoomMetaPayload.model_validate(message.data)
        meta = self._games.get_room_meta(payload.room_code)
        return HandleResult(response=RoomMetaMessage.create(meta.to_dict()))

    # =========================================================================
    # Connection Handlers
    # =========================================================================

    async def _handle_connect(self, websocket: ServerConnection, message: Message) -> HandleResult:
        """Authenticate the socket; failures close it."""
        try:
            payload = ConnectPayload.model_validate(message.data)
            room_code = self._games.authenticate(
                payload.game_type,
                payload.room_code,
                payload.player_id,
                payload.session_token,
            )
        except ValidationError as e:
            return HandleResult(
                response=ErrorMessage.create(
                    f"Invalid payload: {e.errors(include_url=False)}",
                    ErrorCode.INVALID_PAYLOAD
                ),
                close=True,
            )
        except GameError as e:
            logger.info(f"Rejected connection to room {message.data.get('room_code')}: {e.code.value}")
            return HandleResult(response=ErrorMessage.create(e.message, e.code), close=True)

        await self._connections.bind(websocket, room_code, payload.player_id)
        return HandleResult(
            response=ConnectedMessage.create(room_code, payload.player_id),
            room_code=room_code,
        )

    async def _handle_leave_room(self, websocket: ServerConnection, message: Message) -> HandleResult:
        LeaveRoomPayload.model_validate(message.data)
        connection = self._require_connection(websocket)

        await self._connections.unbind(websocket)
        self._games.leave_room(connection.room_code, connection.player_id)
        return HandleResult(
            response=Message(type=MessageType.LEAVE_ROOM, data={"success": True}),
            room_code=connection.room_code,
        )

    # =========================================================================
    # Room Action Handler
    # =========================================================================

    async def _handle_room_action(self, websocket: ServerConnection, message: Message) -> HandleResult:
        connection = self._require_connection(websocket)
        game_type, schema = ROOM_ACTIONS[message.type]

        room = self._games.get_room(connection.room_code)
        if room is None:
            raise GameError(ErrorCode.ROOM_NOT_FOUND, f"Room {connection.room_code} not found")
        if room.game_type != game_type:
            raise GameError(
                ErrorCode.INVALID_ACTION,
                f"{message.type.value} is not available in {room.game_type.value} rooms"
            )

        action = schema.model_validate(message.data)
        connection.update_activity()
        self._games.apply_action(connection.room_code, connection.player_id, action)

        return HandleResult(room_code=connection.room_code)

    def _require_connection(self, websocket: ServerConnection):
        connection = self._connections.get_connection(websocket)
        if connection is None:
            raise GameError(ErrorCode.CONNECT_REQUIRED, "Send CONNECT before room actions")
        return connection
