"""
Game manager for the rooms hosted by this process.

Wraps the room registry: builds an engine for every new room, routes
validated actions into it, and buffers what each room produced (events,
a dirty snapshot, host changes, removed members) until the transport
drains it and broadcasts.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable

from shared.enums import ErrorCode, HostMode
from shared.constants import ANSWER_SECONDS, AUTO_ADVANCE_SECONDS, DRAWING_SECONDS, TURN_SECONDS
from shared.protocol import EventMessage
from shared.schemas import BoardAction, CreateBoardRoomPayload, CreateQuizRoomPayload, QuizAction

from server.board_engine import BoardConfig, BoardEngine, BoardRoom, build_classic_board
from server.errors import GameError
from server.quiz_engine import QuizContent, QuizEngine, QuizRoom
from server.rooms import Room, RoomEngine, RoomMetaView, SessionGrant
from server.rooms.registry import RoomRegistry
from server.timers import Scheduler


logger = logging.getLogger(__name__)


@dataclass
class ManagedRoom:
    """Outbound buffer for one room between two flushes."""
    code: str
    engine: RoomEngine
    last_host_id: str
    events: list[EventMessage] = field(default_factory=list)
    removed_player_ids: list[str] = field(default_factory=list)
    dirty: bool = False


@dataclass
class RoomUpdate:
    """Everything a flush has to send for one room."""
    events: list[EventMessage]
    state: dict | None
    new_host_id: str | None
    removed_player_ids: list[str]


class GameManager:
    """
    Manages the engines of all rooms.

    Provides methods for:
    - Creating rooms and their engines
    - Joining, reconnecting, authenticating and leaving
    - Applying validated actions
    - Draining per-room updates for broadcast
    """

    def __init__(
        self,
        registry: RoomRegistry | None = None,
        quiz_content: QuizContent | None = None,
        board: BoardConfig | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        answer_seconds: float = ANSWER_SECONDS,
        drawing_seconds: float = DRAWING_SECONDS,
        auto_advance_seconds: float = AUTO_ADVANCE_SECONDS,
        turn_seconds: float = TURN_SECONDS
    ):
        self.registry = registry or RoomRegistry()
        self._quiz_content = quiz_content or QuizContent()
        self._board = board or build_classic_board()
        self._scheduler = scheduler
        self._rng = rng

        self.answer_seconds = answer_seconds
        self.drawing_seconds = drawing_seconds
        self.auto_advance_seconds = auto_advance_seconds
        self.turn_seconds = turn_seconds

        # room_code -> ManagedRoom
        self._rooms: dict[str, ManagedRoom] = {}

        # Called with a room code when a timer changed that room
        self._listener: Callable[[str], None] | None = None

    def set_listener(self, listener: Callable[[str], None] | None) -> None:
        self._listener = listener

    # =========================================================================
    # Lobby
    # =========================================================================

    def create_room(self, payload: CreateQuizRoomPayload | CreateBoardRoomPayload) -> SessionGrant:
        if isinstance(payload, CreateQuizRoomPayload):
            grant = self.registry.create_quiz_room(
                host_name=payload.host_name,
                language=payload.language,
                host_mode=payload.host_mode,
                target_score=payload.target_score,
            )
        else:
            grant = self.registry.create_board_room(
                host_name=payload.host_name,
                board=self._board,
                language=payload.language,
                host_mode=payload.host_mode,
                rule_preset=payload.rule_preset,
                piece_color=payload.piece_color,
            )

        room = self.registry.require_room(grant.room_code)
        engine = self._build_engine(room)
        self.registry.attach_engine(room.code, engine)
        self._rooms[room.code] = ManagedRoom(code=room.code, engine=engine, last_host_id=room.meta.host_id)
        return grant

    def join_room(self, room_code: str, name: str, language, piece_color: str | None = None) -> SessionGrant:
        grant = self.registry.join_room(room_code, name, language, piece_color)
        self._record_event(grant.room_code, "room:player_joined", {"player_id": grant.player_id, "name": name})
        return grant

    def reconnect(self, room_code: str, session_token: str) -> SessionGrant:
        grant = self.registry.reconnect(room_code, session_token)
        self._mark_dirty(grant.room_code)
        return grant

    def get_room_meta(self, room_code: str) -> RoomMetaView:
        meta = self.registry.get_room_meta(room_code)
        if meta is None:
            raise GameError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_code} not found")
        return meta

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def authenticate(self, game_type, room_code: str, player_id: str, session_token: str) -> str:
        """
        Validate connection credentials.

        Returns:
            The canonical room code

        Raises:
            GameError: ROOM_NOT_FOUND or INVALID_SESSION
        """
        room = self.registry.require_room(room_code)
        if not self.registry.validate_session(game_type, room.code, player_id, session_token):
            raise GameError(ErrorCode.INVALID_SESSION, "Invalid session")
        self._record_event(room.code, "room:player_connected", {"player_id": player_id})
        return room.code

    def mark_disconnected(self, room_code: str, player_id: str) -> None:
        if self.registry.get_room(room_code) is None:
            return
        self._record_event(room_code, "room:player_disconnected", {"player_id": player_id})
        self.registry.mark_disconnected(room_code, player_id)

    def leave_room(self, room_code: str, player_id: str) -> None:
        """Voluntary removal; an emptied room is disposed."""
        self._remove_member(room_code, player_id, "left")

        room = self.registry.get_room(room_code)
        if room is not None and not self._has_members(room):
            self.dispose_room(room.code)

    def dispose_room(self, room_code: str) -> None:
        room = self.registry.get_room(room_code)
        if room is None:
            return
        self._rooms.pop(room.code, None)
        self.registry.dispose_room(room.code)

    # =========================================================================
    # Actions
    # =========================================================================

    def apply_action(self, room_code: str, player_id: str, action: QuizAction | BoardAction) -> None:
        """
        Run one validated action through the room's engine.

        Ignored actions leave the room untouched, so nothing is queued for
        broadcast. Events recorded by the engine mark the room dirty on their own.

        Raises:
            GameError: when the engine rejects the action
        """
        managed = self._require_managed(room_code)
        before = managed.engine.snapshot()
        managed.engine.apply(player_id, action)
        if managed.engine.snapshot() != before:
            managed.dirty = True

    def get_room(self, room_code: str) -> Room | None:
        return self.registry.get_room(room_code)

    def snapshot(self, room_code: str) -> dict | None:
        managed = self._rooms.get(self._canonical(room_code))
        return managed.engine.snapshot() if managed else None

    def drain(self, room_code: str) -> RoomUpdate | None:
        """Take everything buffered for a room since the last flush."""
        managed = self._rooms.get(self._canonical(room_code))
        if managed is None:
            return None

        room = self.registry.get_room(managed.code)
        new_host_id = None
        if room is not None and room.meta.host_id != managed.last_host_id:
            new_host_id = room.meta.host_id
            managed.last_host_id = new_host_id

        update = RoomUpdate(
            events=managed.events,
            state=managed.engine.snapshot() if managed.dirty or managed.events else None,
            new_host_id=new_host_id,
            removed_player_ids=managed.removed_player_ids,
        )
        managed.events = []
        managed.removed_player_ids = []
        managed.dirty = False
        return update

    # =========================================================================
    # Engine wiring
    # =========================================================================

    def _build_engine(self, room: Room) -> RoomEngine:
        code = room.code

        def emit(event: str, payload: dict) -> None:
            self._record_event(code, event, payload)

        def remove_player(player_id: str) -> bool:
            return self._remove_member(code, player_id, "kicked")

        def on_state_change() -> None:
            self._mark_dirty(code)
            if self._listener is not None:
                self._listener(code)

        if isinstance(room, QuizRoom):
            return QuizEngine(
                room,
                self._quiz_content,
                emit=emit,
                remove_player=remove_player,
                on_state_change=on_state_change,
                scheduler=self._scheduler,
                rng=self._rng,
                answer_seconds=self.answer_seconds,
                drawing_seconds=self.drawing_seconds,
                auto_advance_seconds=self.auto_advance_seconds,
            )
        if isinstance(room, BoardRoom):
            return BoardEngine(
                room,
                emit=emit,
                remove_player=remove_player,
                on_state_change=on_state_change,
                scheduler=self._scheduler,
                rng=self._rng,
                turn_seconds=self.turn_seconds,
            )
        raise TypeError(f"No engine for room type {type(room).__name__}")

    def _remove_member(self, room_code: str, player_id: str, reason: str) -> bool:
        code = self._canonical(room_code)
        if not self.registry.remove_player(code, player_id):
            return False

        managed = self._rooms.get(code)
        if managed is not None:
            managed.removed_player_ids.append(player_id)
        self._record_event(code, "room:player_removed", {"player_id": player_id, "reason": reason})
        return True

    def _record_event(self, room_code: str, event: str, payload: dict) -> None:
        managed = self._rooms.get(self._canonical(room_code))
        if managed is None:
            return
        managed.events.append(EventMessage.create(event, payload))
        managed.dirty = True

    def _mark_dirty(self, room_code: str) -> None:
        managed = self._rooms.get(self._canonical(room_code))
        if managed is not None:
            managed.dirty = True

    def _require_managed(self, room_code: str) -> ManagedRoom:
        managed = self._rooms.get(self._canonical(room_code))
        if managed is None:
            raise GameError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_code} not found")
        return managed

    @staticmethod
    def _has_members(room: Room) -> bool:
        """An AI host alone does not keep a room alive."""
        ai_host_id = None
        if isinstance(room, QuizRoom) and room.host_mode == HostMode.AI:
            ai_host_id = room.meta.host_id
        return any(p.id != ai_host_id for p in room.players)

    @staticmethod
    def _canonical(room_code: str) -> str:
        return room_code.strip().upper()

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        return self.registry.get_stats()
