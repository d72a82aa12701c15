"""
Room registry.

Owns every room, member and session in the process. Creates rooms,
processes joins and reconnections, handles disconnects with host failover,
and removes members. Each room's engine is notified through the RoomEngine
interface; the registry itself never touches game-specific state.
"""

import logging
import time
from typing import Callable

from shared.constants import (
    AI_HOST_NAME,
    DEFAULT_TARGET_SCORE,
    PIECE_COLORS,
    ROOM_LIMITS,
    SESSION_TTL_SECONDS,
)
from shared.enums import ErrorCode, GameType, HostMode, Language, Role, RulePreset

from server.board_engine.board import BoardConfig, build_classic_board
from server.board_engine.state import BoardRoom
from server.errors import GameError
from server.quiz_engine.state import QuizRoom
from server.rooms.models import (
    Player,
    Room,
    RoomEngine,
    RoomMeta,
    RoomMetaView,
    Session,
    SessionGrant,
)
from server.utils import create_id, create_room_code, create_session_token


logger = logging.getLogger(__name__)


class RoomRegistry:
    """
    Manages all rooms and their sessions.

    Provides methods for:
    - Creating quiz and board rooms
    - Joining, reconnecting and authenticating members
    - Disconnect handling with host failover
    - Removing members and disposing rooms
    """

    def __init__(
        self,
        session_ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self._session_ttl = session_ttl_seconds
        self._clock = clock

        # room_code -> Room (both game types share one code space)
        self._rooms: dict[str, Room] = {}

        # room_code -> engine attached at creation
        self._engines: dict[str, RoomEngine] = {}

    # =========================================================================
    # Room Creation
    # =========================================================================

    def create_quiz_room(
        self,
        host_name: str,
        language: Language = Language.AR,
        host_mode: HostMode = HostMode.PLAYER,
        target_score: int = DEFAULT_TARGET_SCORE
    ) -> SessionGrant:
        """Create a trivia/buzzer room with its host as the first member."""
        code = self._generate_unique_code()
        if host_mode == HostMode.AI:
            host_name = AI_HOST_NAME
        host = self._build_host(host_name, language, host_mode)

        room = QuizRoom(
            meta=RoomMeta(code=code, game_type=GameType.QUIZ, host_id=host.id),
            players=[host],
            target_score=target_score,
            host_mode=host_mode,
        )
        self._rooms[code] = room

        logger.info(f"Quiz room {code} created by {host.name} ({host_mode.value} host)")
        return self._issue_session(room, host.id)

    def create_board_room(
        self,
        host_name: str,
        board: BoardConfig | None = None,
        language: Language = Language.AR,
        host_mode: HostMode = HostMode.PLAYER,
        rule_preset: RulePreset = RulePreset.OFFICIAL,
        piece_color: str | None = None
    ) -> SessionGrant:
        """Create a board-game room with its host as the first member."""
        code = self._generate_unique_code()
        host = self._build_host(host_name, language, host_mode)
        if host.is_playable:
            host.piece_color = self._resolve_piece_color([], piece_color)

        room = BoardRoom(
            meta=RoomMeta(code=code, game_type=GameType.BOARD, host_id=host.id),
            players=[host],
            rule_preset=rule_preset,
            board=board or build_classic_board(),
        )
        self._rooms[code] = room

        logger.info(f"Board room {code} created by {host.name} ({rule_preset.value} rules)")
        return self._issue_session(room, host.id)

    def attach_engine(self, room_code: str, engine: RoomEngine) -> None:
        """Bind the engine that runs a room; replaces any previous one."""
        previous = self._engines.get(room_code)
        if previous is not None and previous is not engine:
            previous.dispose()
        self._engines[room_code] = engine

    def dispose_room(self, room_code: str) -> bool:
        """Tear a room down, cancelling its timers and sessions."""
        room_code = self._normalize(room_code)
        engine = self._engines.pop(room_code, None)
        if engine is not None:
            engine.dispose()

        room = self._rooms.pop(room_code, None)
        if room is None:
            return False

        room.sessions_by_token.clear()
        room.token_by_player.clear()
        logger.info(f"Room {room_code} disposed")
        return True

    # =========================================================================
    # Membership
    # =========================================================================

    def join_room(
        self,
        room_code: str,
        name: str,
        language: Language = Language.AR,
        piece_color: str | None = None
    ) -> SessionGrant:
        """
        Add a new playing member to a room.

        Raises:
            GameError: ROOM_NOT_FOUND, ROOM_FULL or PIECE_COLOR_TAKEN
        """
        room = self.require_room(room_code)

        playable = room.playable_players()
        if len(playable) >= ROOM_LIMITS[room.game_type.value]:
            raise GameError(ErrorCode.ROOM_FULL, f"Room {room.code} is full")

        color = None
        if room.game_type == GameType.BOARD:
            color = self._resolve_piece_color(room.players, piece_color)

        player = Player(
            name=name,
            role=Role.PLAYER,
            seat_index=len(playable),
            language=language,
            piece_color=color,
        )
        room.players.append(player)
        room.touch()

        engine = self._engines.get(room.code)
        if engine is not None:
            engine.on_player_joined(player)

        logger.info(f"Player {name} ({player.id}) joined room {room.code}")
        return self._issue_session(room, player.id)

    def reconnect(self, room_code: str, session_token: str) -> SessionGrant:
        """
        Exchange a live session token for a fresh one.

        Raises:
            GameError: ROOM_NOT_FOUND or INVALID_SESSION
        """
        room = self.require_room(room_code)

        session = room.sessions_by_token.get(session_token)
        if session is None:
            raise GameError(ErrorCode.INVALID_SESSION, "Unknown session")

        if session.is_expired(self._clock()):
            self._drop_session(room, session.player_id)
            raise GameError(ErrorCode.INVALID_SESSION, "Session expired")

        player = room.get_player(session.player_id)
        if player is None:
            self._drop_session(room, session.player_id)
            raise GameError(ErrorCode.INVALID_SESSION, "Player no longer in room")

        player.connected = True
        player.last_seen_at = self._clock()
        room.touch()

        logger.info(f"Player {player.name} ({player.id}) reconnected to room {room.code}")
        return self._issue_session(room, player.id)

    def validate_session(
        self,
        game_type: GameType,
        room_code: str,
        player_id: str,
        session_token: str
    ) -> bool:
        """
        Check a (room, player, token, game type) tuple and mark the member connected.
        """
        room = self.get_room(room_code)
        if room is None or room.game_type != game_type:
            return False

        session = room.sessions_by_token.get(session_token)
        if session is None or session.player_id != player_id:
            return False

        if session.is_expired(self._clock()):
            self._drop_session(room, player_id)
            return False

        player = room.get_player(player_id)
        if player is None:
            return False

        player.connected = True
        player.last_seen_at = self._clock()
        return True

    def mark_disconnected(self, room_code: str, player_id: str) -> str | None:
        """
        Flag a member as disconnected and fail host authority over if needed.

        Returns:
            The new host's player id when host authority moved, else None
        """
        room = self.get_room(room_code)
        if room is None:
            return None

        player = room.get_player(player_id)
        if player is None:
            return None

        player.connected = False
        player.last_seen_at = self._clock()
        room.touch()

        engine = self._engines.get(room.code)
        if engine is not None:
            engine.on_player_disconnected(player_id)

        if not player.is_host:
            return None

        next_host = next(
            (p for p in room.players if p.connected and p.id != player_id),
            None
        )
        if next_host is None:
            return None

        self._set_host(room, next_host)

        logger.info(f"Host of room {room.code} transferred to {next_host.name} ({next_host.id})")
        if engine is not None:
            engine.on_host_transferred(next_host.id)
        return next_host.id

    def remove_player(self, room_code: str, player_id: str) -> bool:
        """
        Permanently remove a member (kick or leave).

        Seats are renumbered, the member's session is revoked and host
        authority passes to the first remaining member when needed.
        """
        room = self.get_room(room_code)
        if room is None:
            return False

        removed = room.get_player(player_id)
        if removed is None:
            return False

        room.players.remove(removed)
        room.reseat()
        self._drop_session(room, player_id)

        engine = self._engines.get(room.code)

        if removed.is_host and room.players:
            next_host = room.players[0]
            self._set_host(room, next_host)
            logger.info(f"Host of room {room.code} passed to {next_host.name} ({next_host.id})")
            if engine is not None:
                engine.on_host_transferred(next_host.id)

        room.touch()
        logger.info(f"Player {removed.name} ({player_id}) removed from room {room.code}")

        if engine is not None:
            engine.on_player_removed(player_id)
        return True

    # =========================================================================
    # Queries
    # =========================================================================

    def get_room(self, room_code: str) -> Room | None:
        return self._rooms.get(self._normalize(room_code))

    def require_room(self, room_code: str) -> Room:
        room = self.get_room(room_code)
        if room is None:
            raise GameError(ErrorCode.ROOM_NOT_FOUND, f"Room {room_code} not found")
        return room

    def get_engine(self, room_code: str) -> RoomEngine | None:
        return self._engines.get(self._normalize(room_code))

    def get_room_meta(self, room_code: str) -> RoomMetaView | None:
        room = self.get_room(room_code)
        if room is None:
            return None

        host = room.host
        return RoomMetaView(
            code=room.code,
            game_type=room.game_type,
            status=room.status,
            players_count=len(room.players),
            host_name=host.name if host else None,
            used_piece_colors=room.used_piece_colors(),
        )

    def list_room_codes(self) -> list[str]:
        return list(self._rooms.keys())

    def get_stats(self) -> dict:
        return {
            "rooms": len(self._rooms),
            "rooms_by_type": {
                game_type.value: sum(1 for r in self._rooms.values() if r.game_type == game_type)
                for game_type in GameType
            },
            "members": sum(len(r.players) for r in self._rooms.values()),
        }

    # =========================================================================
    # Internals
    # =========================================================================

    def _issue_session(self, room: Room, player_id: str) -> SessionGrant:
        """Issue a new token for a member, revoking the previous one."""
        self._drop_session(room, player_id)

        token = create_session_token()
        room.sessions_by_token[token] = Session(
            token=token,
            player_id=player_id,
            room_code=room.code,
            expires_at=self._clock() + self._session_ttl,
        )
        room.token_by_player[player_id] = token

        return SessionGrant(
            room_code=room.code,
            player_id=player_id,
            session_token=token,
            game_type=room.game_type,
        )

    @staticmethod
    def _drop_session(room: Room, player_id: str) -> None:
        token = room.token_by_player.pop(player_id, None)
        if token is not None:
            room.sessions_by_token.pop(token, None)

    @staticmethod
    def _set_host(room: Room, new_host: Player) -> None:
        for player in room.players:
            player.is_host = player.id == new_host.id
        room.meta.host_id = new_host.id

    @staticmethod
    def _build_host(name: str, language: Language, host_mode: HostMode) -> Player:
        host_can_play = host_mode == HostMode.PLAYER
        return Player(
            id=create_id("host"),
            name=name,
            role=Role.PLAYER if host_can_play else Role.HOST,
            seat_index=0 if host_can_play else -1,
            is_host=True,
            language=language,
        )

    @staticmethod
    def _resolve_piece_color(existing: list[Player], preferred: str | None) -> str:
        used = {p.piece_color for p in existing if p.piece_color}
        if preferred:
            if preferred in used:
                raise GameError(ErrorCode.PIECE_COLOR_TAKEN, f"Color {preferred} is already taken")
            return preferred

        for color in PIECE_COLORS:
            if color not in used:
                return color
        raise GameError(ErrorCode.ROOM_FULL, "No piece colors left")

    def _generate_unique_code(self) -> str:
        code = create_room_code()
        while code in self._rooms:
            code = create_room_code()
        return code

    @staticmethod
    def _normalize(room_code: str) -> str:
        return room_code.strip().upper()
