"""
Room, member and session models shared by both game types.
"""
from dataclasses import dataclass, field
from typing import Protocol

from shared.enums import GameType, Language, Role, RoomStatus

from server.utils import create_id, now, to_millis


@dataclass
class Player:
    """A member of one room."""

    name: str
    role: Role
    seat_index: int
    is_host: bool = False
    id: str = field(default_factory=lambda: create_id("p"))
    connected: bool = True
    language: Language = Language.AR
    score: int = 0
    piece_color: str | None = None
    joined_at: float = field(default_factory=now)
    last_seen_at: float = field(default_factory=now)

    @property
    def is_playable(self) -> bool:
        return self.role == Role.PLAYER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "seat_index": self.seat_index,
            "is_host": self.is_host,
            "connected": self.connected,
            "language": self.language.value,
            "score": self.score,
            "piece_color": self.piece_color,
            "joined_at": to_millis(self.joined_at),
            "last_seen_at": to_millis(self.last_seen_at),
        }


@dataclass
class Session:
    """Bearer credential binding a token to one member of one room."""
    token: str
    player_id: str
    room_code: str
    expires_at: float

    def is_expired(self, at: float) -> bool:
        return self.expires_at < at


@dataclass
class SessionGrant:
    """What create/join/reconnect hand back to the caller."""
    room_code: str
    player_id: str
    session_token: str
    game_type: GameType

    def to_dict(self) -> dict:
        return {
            "room_code": self.room_code,
            "player_id": self.player_id,
            "session_token": self.session_token,
            "game_type": self.game_type.value,
        }


@dataclass
class RoomMeta:
    code: str
    game_type: GameType
    host_id: str
    status: RoomStatus = RoomStatus.LOBBY
    created_at: float = field(default_factory=now)
    updated_at: float = field(default_factory=now)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "game_type": self.game_type.value,
            "host_id": self.host_id,
            "status": self.status.value,
            "created_at": to_millis(self.created_at),
            "updated_at": to_millis(self.updated_at),
        }


@dataclass
class RoomMetaView:
    """Public lobby summary of a room."""
    code: str
    game_type: GameType
    status: RoomStatus
    players_count: int
    host_name: str | None = None
    used_piece_colors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "game_type": self.game_type.value,
            "status": self.status.value,
            "players_count": self.players_count,
            "host_name": self.host_name,
            "used_piece_colors": list(self.used_piece_colors),
        }


@dataclass
class Room:
    """
    State common to every room.

    Game-specific variants extend this with their own sub-state. The session
    maps are private to the registry and never appear in snapshots.
    """

    meta: RoomMeta
    players: list[Player] = field(default_factory=list)
    paused: bool = False
    started_at: float | None = None
    ended_at: float | None = None
    winner_id: str | None = None
    sessions_by_token: dict[str, Session] = field(default_factory=dict, repr=False)
    token_by_player: dict[str, str] = field(default_factory=dict, repr=False)

    @property
    def code(self) -> str:
        return self.meta.code

    @property
    def game_type(self) -> GameType:
        return self.meta.game_type

    @property
    def status(self) -> RoomStatus:
        return self.meta.status

    @property
    def in_game(self) -> bool:
        return self.meta.status == RoomStatus.IN_GAME

    @property
    def host(self) -> Player | None:
        return self.get_player(self.meta.host_id)

    def get_player(self, player_id: str) -> Player | None:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def playable_players(self) -> list[Player]:
        """Members with role ``player``, in seat order."""
        return [p for p in self.players if p.is_playable]

    def is_host(self, player_id: str) -> bool:
        return self.meta.host_id == player_id

    def used_piece_colors(self) -> list[str]:
        return [p.piece_color for p in self.players if p.piece_color]

    def reseat(self) -> None:
        """Renumber seats so playing members stay dense from zero."""
        for seat_index, player in enumerate(self.playable_players()):
            player.seat_index = seat_index

    def touch(self) -> None:
        self.meta.updated_at = now()

    def base_dict(self) -> dict:
        return {
            "meta": self.meta.to_dict(),
            "players": [p.to_dict() for p in self.players],
            "paused": self.paused,
            "started_at": to_millis(self.started_at),
            "ended_at": to_millis(self.ended_at),
            "winner_id": self.winner_id,
        }

    def to_dict(self) -> dict:
        return self.base_dict()


class RoomEngine(Protocol):
    """
    The narrow interface the registry uses to notify a room's engine.

    One engine is attached per room at creation time.
    """

    def apply(self, player_id: str, action) -> None: ...

    def on_player_joined(self, player: Player) -> None: ...

    def on_player_disconnected(self, player_id: str) -> None: ...

    def on_host_transferred(self, new_host_id: str) -> None: ...

    def on_player_removed(self, player_id: str) -> None: ...

    def snapshot(self) -> dict: ...

    def dispose(self) -> None: ...
