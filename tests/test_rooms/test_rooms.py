"""
Tests for the room registry, sessions and ID utilities.

Run from project root: python -m pytest tests/test_rooms -v
"""

import re
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from shared.constants import AI_HOST_NAME, PIECE_COLORS, ROOM_CODE_ALPHABET, ROOM_LIMITS
from shared.enums import ErrorCode, GameType, HostMode, Language, Role, RoomStatus
from server.errors import GameError
from server.rooms.registry import RoomRegistry
from server.utils import create_id, create_room_code, create_session_token, shuffled


class RecordingEngine:
    """Captures registry hook calls."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.disposed = False

    def apply(self, player_id, action) -> None:
        self.calls.append(("apply", player_id))

    def on_player_joined(self, player) -> None:
        self.calls.append(("joined", player.id))

    def on_player_disconnected(self, player_id: str) -> None:
        self.calls.append(("disconnected", player_id))

    def on_host_transferred(self, new_host_id: str) -> None:
        self.calls.append(("host", new_host_id))

    def on_player_removed(self, player_id: str) -> None:
        self.calls.append(("removed", player_id))

    def snapshot(self) -> dict:
        return {}

    def dispose(self) -> None:
        self.disposed = True


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value


# =============================================================================
# ID utilities
# =============================================================================

def test_create_id_has_prefix_and_hex():
    assert re.fullmatch(r"p_[0-9a-f]{32}", create_id("p"))
    assert create_id("p") != create_id("p")


def test_room_code_alphabet_and_length():
    for _ in range(50):
        code = create_room_code()
        assert len(code) == 5
        assert all(char in ROOM_CODE_ALPHABET for char in code)


def test_session_token_is_urlsafe():
    token = create_session_token()
    assert len(token) >= 40
    assert re.fullmatch(r"[A-Za-z0-9_\-]+", token)


def test_shuffled_returns_copy():
    items = [1, 2, 3, 4]
    result = shuffled(items)
    assert sorted(result) == items
    assert result is not items


# =============================================================================
# Room creation
# =============================================================================

def test_create_quiz_room_with_playing_host(registry):
    grant = registry.create_quiz_room("Alice", target_score=7)
    room = registry.get_room(grant.room_code)

    assert grant.game_type == GameType.QUIZ
    assert room.status == RoomStatus.LOBBY
    assert room.target_score == 7
    host = room.host
    assert host.id == grant.player_id
    assert host.role == Role.PLAYER and host.seat_index == 0 and host.is_host


def test_ai_host_is_not_a_player(registry):
    grant = registry.create_quiz_room("Ignored", host_mode=HostMode.AI)
    room = registry.get_room(grant.room_code)

    assert room.host.name == AI_HOST_NAME
    assert room.host.role == Role.HOST
    assert room.host.seat_index == -1
    assert room.playable_players() == []


def test_board_room_assigns_first_free_color(registry):
    grant = registry.create_board_room("Alice")
    room = registry.get_room(grant.room_code)
    assert room.host.piece_color == PIECE_COLORS[0]

    bob = registry.join_room(room.code, "Bob")
    assert room.get_player(bob.player_id).piece_color == PIECE_COLORS[1]


def test_piece_color_taken(registry):
    grant = registry.create_board_room("Alice", piece_color="green")
    with pytest.raises(GameError) as exc:
        registry.join_room(grant.room_code, "Bob", piece_color="green")
    assert exc.value.code == ErrorCode.PIECE_COLOR_TAKEN


def test_room_codes_are_unique_across_game_types(registry):
    codes = {registry.create_quiz_room("A").room_code for _ in range(20)}
    codes |= {registry.create_board_room("B").room_code for _ in range(20)}
    assert len(codes) == 40
    assert len(registry.list_room_codes()) == 40


# =============================================================================
# Joining
# =============================================================================

def test_join_unknown_room(registry):
    with pytest.raises(GameError) as exc:
        registry.join_room("ZZZZZ", "Bob")
    assert exc.value.code == ErrorCode.ROOM_NOT_FOUND


def test_join_is_case_insensitive_and_seats_densely(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code.lower(), "Bob", Language.EN)
    room = registry.get_room(grant.room_code)

    player = room.get_player(bob.player_id)
    assert player.seat_index == 1
    assert player.language == Language.EN


def test_join_notifies_engine(registry):
    grant = registry.create_quiz_room("Alice")
    engine = RecordingEngine()
    registry.attach_engine(grant.room_code, engine)

    bob = registry.join_room(grant.room_code, "Bob")
    assert ("joined", bob.player_id) in engine.calls


def test_quiz_room_limit_counts_players_only(registry):
    grant = registry.create_quiz_room("Mod", host_mode=HostMode.MODERATOR)
    limit = ROOM_LIMITS["quiz"]
    for index in range(limit):
        registry.join_room(grant.room_code, f"P{index}")

    with pytest.raises(GameError) as exc:
        registry.join_room(grant.room_code, "Late")
    assert exc.value.code == ErrorCode.ROOM_FULL


# =============================================================================
# Sessions
# =============================================================================

def test_validate_session(registry):
    grant = registry.create_quiz_room("Alice")

    assert registry.validate_session(GameType.QUIZ, grant.room_code, grant.player_id, grant.session_token)
    assert not registry.validate_session(GameType.BOARD, grant.room_code, grant.player_id, grant.session_token)
    assert not registry.validate_session(GameType.QUIZ, grant.room_code, "p_other", grant.session_token)
    assert not registry.validate_session(GameType.QUIZ, "NOPE1", grant.player_id, grant.session_token)


def test_reconnect_reissues_token(registry):
    grant = registry.create_quiz_room("Alice")
    fresh = registry.reconnect(grant.room_code, grant.session_token)

    assert fresh.player_id == grant.player_id
    assert fresh.session_token != grant.session_token
    assert not registry.validate_session(GameType.QUIZ, grant.room_code, grant.player_id, grant.session_token)
    assert registry.validate_session(GameType.QUIZ, grant.room_code, grant.player_id, fresh.session_token)

    room = registry.get_room(grant.room_code)
    assert len(room.sessions_by_token) == 1


def test_reconnect_with_unknown_token(registry):
    grant = registry.create_quiz_room("Alice")
    with pytest.raises(GameError) as exc:
        registry.reconnect(grant.room_code, "not-a-real-token")
    assert exc.value.code == ErrorCode.INVALID_SESSION


def test_expired_session_is_purged():
    clock = FakeClock()
    registry = RoomRegistry(session_ttl_seconds=60, clock=clock)
    grant = registry.create_quiz_room("Alice")

    clock.value += 61
    assert not registry.validate_session(GameType.QUIZ, grant.room_code, grant.player_id, grant.session_token)
    with pytest.raises(GameError) as exc:
        registry.reconnect(grant.room_code, grant.session_token)
    assert exc.value.code == ErrorCode.INVALID_SESSION


# =============================================================================
# Disconnects and host failover
# =============================================================================

def test_host_disconnect_fails_over_to_connected_member(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code, "Bob")
    engine = RecordingEngine()
    registry.attach_engine(grant.room_code, engine)

    new_host = registry.mark_disconnected(grant.room_code, grant.player_id)
    room = registry.get_room(grant.room_code)

    assert new_host == bob.player_id
    assert room.meta.host_id == bob.player_id
    assert room.get_player(bob.player_id).is_host
    assert not room.get_player(grant.player_id).is_host
    assert not room.get_player(grant.player_id).connected
    assert ("disconnected", grant.player_id) in engine.calls
    assert ("host", bob.player_id) in engine.calls


def test_host_disconnect_without_other_connected_member(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code, "Bob")
    registry.mark_disconnected(grant.room_code, bob.player_id)

    assert registry.mark_disconnected(grant.room_code, grant.player_id) is None
    assert registry.get_room(grant.room_code).meta.host_id == grant.player_id


def test_moderator_failover_keeps_player_seats(registry):
    grant = registry.create_quiz_room("Mod", host_mode=HostMode.MODERATOR)
    bob = registry.join_room(grant.room_code, "Bob")
    carol = registry.join_room(grant.room_code, "Carol")

    registry.mark_disconnected(grant.room_code, grant.player_id)
    room = registry.get_room(grant.room_code)

    assert room.meta.host_id == bob.player_id
    assert room.get_player(bob.player_id).seat_index == 0
    assert room.get_player(carol.player_id).seat_index == 1


def test_returning_moderator_regains_host_without_a_seat(registry):
    grant = registry.create_quiz_room("Mod", host_mode=HostMode.MODERATOR)
    bob = registry.join_room(grant.room_code, "Bob")
    carol = registry.join_room(grant.room_code, "Carol")
    registry.mark_disconnected(grant.room_code, grant.player_id)
    registry.reconnect(grant.room_code, grant.session_token)

    assert registry.mark_disconnected(grant.room_code, bob.player_id) == grant.player_id

    room = registry.get_room(grant.room_code)
    moderator = room.get_player(grant.player_id)
    assert moderator.is_host
    assert moderator.role == Role.HOST
    assert moderator.seat_index == -1
    assert [p.id for p in room.playable_players()] == [bob.player_id, carol.player_id]
    assert room.get_player(carol.player_id).seat_index == 1


def test_non_host_disconnect_keeps_host(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code, "Bob")

    assert registry.mark_disconnected(grant.room_code, bob.player_id) is None
    assert registry.get_room(grant.room_code).meta.host_id == grant.player_id


# =============================================================================
# Removal and disposal
# =============================================================================

def test_remove_player_reseats_and_revokes(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code, "Bob")
    carol = registry.join_room(grant.room_code, "Carol")
    engine = RecordingEngine()
    registry.attach_engine(grant.room_code, engine)

    assert registry.remove_player(grant.room_code, bob.player_id)
    room = registry.get_room(grant.room_code)

    assert [p.seat_index for p in room.playable_players()] == [0, 1]
    assert room.get_player(carol.player_id).seat_index == 1
    assert not registry.validate_session(GameType.QUIZ, grant.room_code, bob.player_id, bob.session_token)
    assert ("removed", bob.player_id) in engine.calls
    assert not registry.remove_player(grant.room_code, bob.player_id)


def test_removing_host_passes_authority(registry):
    grant = registry.create_quiz_room("Alice")
    bob = registry.join_room(grant.room_code, "Bob")

    registry.remove_player(grant.room_code, grant.player_id)
    room = registry.get_room(grant.room_code)
    assert room.meta.host_id == bob.player_id
    assert room.get_player(bob.player_id).seat_index == 0


def test_dispose_room_cancels_engine(registry):
    grant = registry.create_quiz_room("Alice")
    engine = RecordingEngine()
    registry.attach_engine(grant.room_code, engine)

    assert registry.dispose_room(grant.room_code)
    assert engine.disposed
    assert registry.get_room(grant.room_code) is None
    assert not registry.dispose_room(grant.room_code)


def test_attach_engine_disposes_previous(registry):
    grant = registry.create_quiz_room("Alice")
    first, second = RecordingEngine(), RecordingEngine()
    registry.attach_engine(grant.room_code, first)
    registry.attach_engine(grant.room_code, second)

    assert first.disposed and not second.disposed
    assert registry.get_engine(grant.room_code) is second


# =============================================================================
# Queries
# =============================================================================

def test_room_meta(registry):
    grant = registry.create_board_room("Alice", piece_color="blue")
    registry.join_room(grant.room_code, "Bob")

    meta = registry.get_room_meta(grant.room_code).to_dict()
    assert meta["code"] == grant.room_code
    assert meta["game_type"] == "board"
    assert meta["status"] == "lobby"
    assert meta["players_count"] == 2
    assert meta["host_name"] == "Alice"
    assert meta["used_piece_colors"] == ["blue", "red"]
    assert registry.get_room_meta("NOPE1") is None


def test_snapshot_hides_sessions(registry):
    grant = registry.create_quiz_room("Alice")
    state = registry.get_room(grant.room_code).to_dict()

    assert grant.session_token not in str(state)
    assert state["meta"]["host_id"] == grant.player_id


def test_stats(registry):
    registry.create_quiz_room("A")
    grant = registry.create_board_room("B")
    registry.join_room(grant.room_code, "C")

    stats = registry.get_stats()
    assert stats["rooms"] == 2
    assert stats["rooms_by_type"] == {"quiz": 1, "board": 1}
    assert stats["members"] == 3
