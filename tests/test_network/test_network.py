"""
Test suite for the network layer.

Tests connection management, the game manager's per-room buffers,
message handling, and broadcasting through the server.

Run from project root: python -m pytest tests/test_network -v
"""

import asyncio
import json
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from shared.enums import ErrorCode, HostAction, HostMode, Language, MessageType
from shared.schemas import (
    BuzzPayload,
    CreateBoardRoomPayload,
    CreateQuizRoomPayload,
    QuizHostActionPayload,
    StartQuizPayload,
)
from server.errors import GameError
from server.network import ConnectionManager, GameManager, MessageHandler, PartyServer


class MockWebSocket:
    """Mock WebSocket for testing without real connections."""

    def __init__(self, id: str):
        self.id = id
        self.sent_messages = []
        self.closed = False

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionError("Connection closed")
        self.sent_messages.append(data)

    async def recv(self) -> str:
        raise NotImplementedError("Use real WebSocket for recv tests")

    async def close(self) -> None:
        self.closed = True

    def __hash__(self):
        return hash(self.id)

    def __eq__(self, other):
        return isinstance(other, MockWebSocket) and self.id == other.id

    def get_messages(self) -> list[dict]:
        return [json.loads(m) for m in self.sent_messages]

    def events(self) -> list[str]:
        return [m["data"]["event"] for m in self.get_messages() if m["type"] == "EVENT"]

    def clear_messages(self) -> None:
        self.sent_messages.clear()


def frame(message_type: MessageType, data: dict | None = None, request_id: str | None = None) -> str:
    return json.dumps({"type": message_type.value, "data": data or {}, "request_id": request_id})


def connect_frame(grant: dict) -> str:
    return frame(MessageType.CONNECT, {
        "room_code": grant["room_code"],
        "player_id": grant["player_id"],
        "session_token": grant["session_token"],
        "game_type": grant["game_type"],
    })


@pytest.fixture
def games(scheduler, content_factory):
    return GameManager(quiz_content=content_factory(), scheduler=scheduler, rng=random.Random(3))


def quiz_room(games: GameManager, **options):
    grant = games.create_room(CreateQuizRoomPayload(game_type="quiz", host_name="Alice", **options))
    games.drain(grant.room_code)
    return grant


# =============================================================================
# Connection manager
# =============================================================================

def test_connection_manager_bind_and_broadcast():
    async def run():
        manager = ConnectionManager()
        alice, bob = MockWebSocket("alice"), MockWebSocket("bob")

        await manager.bind(alice, "ABCDE", "p_alice")
        await manager.bind(bob, "ABCDE", "p_bob")
        assert manager.is_player_connected("ABCDE", "p_alice")
        assert len(manager.get_room_connections("ABCDE")) == 2

        assert await manager.broadcast_to_room("ABCDE", {"hello": 1}) == 2
        assert await manager.broadcast_to_room("ABCDE", {"hello": 2}, exclude_player_id="p_bob") == 1
        assert alice.get_messages() == [{"hello": 1}, {"hello": 2}]
        assert bob.get_messages() == [{"hello": 1}]

        assert await manager.send_to_player("ABCDE", "p_bob", "raw") is True
        assert await manager.send_to_player("ABCDE", "p_nobody", "raw") is False

        connection = await manager.unbind(alice)
        assert connection.player_id == "p_alice"
        assert not manager.is_player_connected("ABCDE", "p_alice")
        assert await manager.unbind(alice) is None

        await manager.unbind(bob)
        assert manager.get_stats()["total_connections"] == 0
        assert manager.get_stats()["rooms_with_connections"] == 0

    asyncio.run(run())


def test_connection_manager_replaces_older_socket():
    async def run():
        manager = ConnectionManager()
        old, new = MockWebSocket("old"), MockWebSocket("new")

        await manager.bind(old, "ABCDE", "p_alice")
        await manager.bind(new, "ABCDE", "p_alice")

        assert manager.get_connection(old) is None
        assert manager.get_connection(new).player_id == "p_alice"
        assert not old.closed

        # Losing the stale socket must not unbind the member
        assert await manager.unbind(old) is None
        assert manager.is_player_connected("ABCDE", "p_alice")

    asyncio.run(run())


def test_connection_manager_failed_send():
    async def run():
        manager = ConnectionManager()
        alive, dead = MockWebSocket("alive"), MockWebSocket("dead")
        await manager.bind(alive, "ABCDE", "p_1")
        await manager.bind(dead, "ABCDE", "p_2")
        dead.closed = True

        assert await manager.broadcast_to_room("ABCDE", {"x": 1}) == 1
        assert await manager.send_to_connection(dead, {"x": 1}) is False

    asyncio.run(run())


# =============================================================================
# Game manager
# =============================================================================

def test_create_room_attaches_engine(games):
    grant = games.create_room(CreateBoardRoomPayload(game_type="board", host_name="Alice", piece_color="green"))

    room = games.get_room(grant.room_code)
    assert room.host.piece_color == "green"
    assert games.registry.get_engine(grant.room_code) is not None
    assert games.snapshot(grant.room_code)["meta"]["game_type"] == "board"


def test_drain_returns_buffered_events_once(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code.lower(), "Bob", Language.EN)

    update = games.drain(grant.room_code)
    assert [e.data["event"] for e in update.events] == ["room:player_joined"]
    assert update.events[0].data["payload"] == {"player_id": bob.player_id, "name": "Bob"}
    assert len(update.state["players"]) == 2

    update = games.drain(grant.room_code)
    assert update.events == [] and update.state is None
    assert games.drain("NOPE1") is None


def test_apply_action_runs_engine(games):
    grant = quiz_room(games)
    games.join_room(grant.room_code, "Bob", Language.AR)
    games.drain(grant.room_code)

    games.apply_action(grant.room_code, grant.player_id, StartQuizPayload())

    update = games.drain(grant.room_code)
    assert [e.data["event"] for e in update.events][:2] == ["quiz:game_start", "quiz:round_start"]
    assert update.state["meta"]["status"] == "in_game"


def test_apply_action_rejections_propagate(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)

    with pytest.raises(GameError) as exc:
        games.apply_action(grant.room_code, bob.player_id, StartQuizPayload())
    assert exc.value.code == ErrorCode.FORBIDDEN

    with pytest.raises(GameError) as exc:
        games.apply_action("NOPE1", bob.player_id, StartQuizPayload())
    assert exc.value.code == ErrorCode.ROOM_NOT_FOUND


def test_ignored_action_queues_nothing(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)
    games.apply_action(grant.room_code, grant.player_id, StartQuizPayload())
    games.drain(grant.room_code)

    games.apply_action(grant.room_code, bob.player_id, BuzzPayload(window_id="w_stale_window_0000"))

    update = games.drain(grant.room_code)
    assert update.events == []
    assert update.state is None


def test_authenticate(games):
    grant = quiz_room(games)

    assert games.authenticate(grant.game_type, grant.room_code.lower(), grant.player_id, grant.session_token) == grant.room_code

    with pytest.raises(GameError) as exc:
        games.authenticate(grant.game_type, grant.room_code, grant.player_id, "wrong-token")
    assert exc.value.code == ErrorCode.INVALID_SESSION

    with pytest.raises(GameError) as exc:
        games.authenticate("board", grant.room_code, grant.player_id, grant.session_token)
    assert exc.value.code == ErrorCode.INVALID_SESSION

    with pytest.raises(GameError) as exc:
        games.authenticate(grant.game_type, "NOPE1", grant.player_id, grant.session_token)
    assert exc.value.code == ErrorCode.ROOM_NOT_FOUND


def test_host_change_reported_on_drain(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)
    games.drain(grant.room_code)

    games.mark_disconnected(grant.room_code, grant.player_id)

    update = games.drain(grant.room_code)
    assert update.new_host_id == bob.player_id
    assert [e.data["event"] for e in update.events] == ["room:player_disconnected"]
    assert games.drain(grant.room_code).new_host_id is None


def test_last_member_leaving_disposes_room(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)

    games.leave_room(grant.room_code, grant.player_id)
    assert games.get_room(grant.room_code) is not None

    games.leave_room(grant.room_code, bob.player_id)
    assert games.get_room(grant.room_code) is None
    assert games.drain(grant.room_code) is None


def test_ai_host_alone_does_not_keep_room(games):
    grant = quiz_room(games, host_mode=HostMode.AI)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)

    games.leave_room(grant.room_code, bob.player_id)
    assert games.get_room(grant.room_code) is None


def test_kick_is_recorded_for_socket_cleanup(games):
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)
    games.drain(grant.room_code)

    games.apply_action(
        grant.room_code,
        grant.player_id,
        QuizHostActionPayload(action=HostAction.KICK, player_id=bob.player_id),
    )

    update = games.drain(grant.room_code)
    assert update.removed_player_ids == [bob.player_id]
    removed = [e.data["payload"] for e in update.events if e.data["event"] == "room:player_removed"]
    assert removed == [{"player_id": bob.player_id, "reason": "kicked"}]


def test_timer_changes_notify_listener(games, scheduler):
    calls = []
    games.set_listener(calls.append)
    grant = quiz_room(games)
    bob = games.join_room(grant.room_code, "Bob", Language.AR)
    games.apply_action(grant.room_code, grant.player_id, StartQuizPayload())
    window = games.get_room(grant.room_code).current_round.window_id
    games.apply_action(grant.room_code, bob.player_id, BuzzPayload(window_id=window))
    games.drain(grant.room_code)

    scheduler.advance(games.answer_seconds)

    assert calls == [grant.room_code]
    update = games.drain(grant.room_code)
    assert "quiz:score_update" in [e.data["event"] for e in update.events]
    assert update.state is not None


# =============================================================================
# Message handler
# =============================================================================

@pytest.fixture
def handler(games):
    return MessageHandler(games, ConnectionManager())


def test_lobby_requests(handler):
    async def run():
        ws = MockWebSocket("lobby")

        result = await handler.handle_message(
            ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}, "req-1")
        )
        assert result.response.type == MessageType.ROOM_SESSION
        assert result.response.request_id == "req-1"
        grant = result.response.data
        assert grant["game_type"] == "quiz"

        result = await handler.handle_message(ws, frame(MessageType.ROOM_META, {"room_code": grant["room_code"].lower()}))
        assert result.response.type == MessageType.ROOM_META
        assert result.response.data["players_count"] == 1

        result = await handler.handle_message(ws, frame(MessageType.JOIN_ROOM, {"room_code": grant["room_code"], "name": "Bob"}))
        assert result.response.type == MessageType.ROOM_SESSION
        assert result.room_code == grant["room_code"]

        result = await handler.handle_message(
            ws, frame(MessageType.RECONNECT, {"room_code": grant["room_code"], "session_token": grant["session_token"]})
        )
        assert result.response.data["player_id"] == grant["player_id"]
        assert result.response.data["session_token"] != grant["session_token"]

    asyncio.run(run())


def test_connect_binds_socket(handler):
    async def run():
        ws = MockWebSocket("client")
        created = await handler.handle_message(ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}))
        grant = created.response.data

        result = await handler.handle_message(ws, connect_frame(grant))

        assert result.response.type == MessageType.CONNECT
        assert result.response.data == {"success": True, "room_code": grant["room_code"], "player_id": grant["player_id"]}
        assert not result.close
        assert result.room_code == grant["room_code"]

    asyncio.run(run())


def test_connect_with_bad_session_closes(handler):
    async def run():
        ws = MockWebSocket("client")
        created = await handler.handle_message(ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}))
        grant = dict(created.response.data, session_token="not-the-right-token")

        result = await handler.handle_message(ws, connect_frame(grant))
        assert result.close
        assert result.response.data["code"] == ErrorCode.INVALID_SESSION.value

        result = await handler.handle_message(ws, frame(MessageType.CONNECT, {"room_code": grant["room_code"]}))
        assert result.close
        assert result.response.data["code"] == ErrorCode.INVALID_PAYLOAD.value

    asyncio.run(run())


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"data": {}}', '{"type": "NOT_A_TYPE"}'])
def test_malformed_frames(handler, raw):
    result = asyncio.run(handler.handle_message(MockWebSocket("client"), raw))
    assert result.response.data["code"] == ErrorCode.PARSE_ERROR.value
    assert not result.close


def test_server_only_message_type(handler):
    result = asyncio.run(handler.handle_message(MockWebSocket("client"), frame(MessageType.STATE_SYNC, request_id="r9")))
    assert result.response.data["code"] == ErrorCode.UNKNOWN_MESSAGE_TYPE.value
    assert result.response.request_id == "r9"


def test_invalid_payloads(handler):
    async def run():
        ws = MockWebSocket("client")
        missing = await handler.handle_message(ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz"}))
        extra = await handler.handle_message(
            ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "A", "admin": True})
        )
        unknown_game = await handler.handle_message(ws, frame(MessageType.CREATE_ROOM, {"game_type": "chess", "host_name": "A"}))
        return missing, extra, unknown_game

    for result in asyncio.run(run()):
        assert result.response.data["code"] == ErrorCode.INVALID_PAYLOAD.value


def test_room_actions_require_connect(handler):
    result = asyncio.run(handler.handle_message(MockWebSocket("client"), frame(MessageType.QUIZ_START)))
    assert result.response.data["code"] == ErrorCode.CONNECT_REQUIRED.value
    assert result.room_code is None


def test_unknown_room_on_join(handler):
    result = asyncio.run(handler.handle_message(
        MockWebSocket("client"), frame(MessageType.JOIN_ROOM, {"room_code": "ZZZZZ", "name": "Bob"})
    ))
    assert result.response.data["code"] == ErrorCode.ROOM_NOT_FOUND.value


def test_room_action_errors(handler):
    async def run():
        host_ws, bob_ws = MockWebSocket("host"), MockWebSocket("bob")
        host = (await handler.handle_message(host_ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}))).response.data
        bob = (await handler.handle_message(bob_ws, frame(MessageType.JOIN_ROOM, {"room_code": host["room_code"], "name": "Bob"}))).response.data
        await handler.handle_message(host_ws, connect_frame(host))
        await handler.handle_message(bob_ws, connect_frame(bob))

        wrong_game = await handler.handle_message(host_ws, frame(MessageType.BOARD_ROLL))
        not_host = await handler.handle_message(bob_ws, frame(MessageType.QUIZ_START, request_id="r2"))
        bad_payload = await handler.handle_message(host_ws, frame(MessageType.QUIZ_BUZZ, {"window": "x"}))
        ok = await handler.handle_message(host_ws, frame(MessageType.QUIZ_START))
        return host, wrong_game, not_host, bad_payload, ok

    host, wrong_game, not_host, bad_payload, ok = asyncio.run(run())

    assert wrong_game.response.data["code"] == ErrorCode.INVALID_ACTION.value
    assert not_host.response.data["code"] == ErrorCode.FORBIDDEN.value
    assert not_host.response.request_id == "r2"
    assert not_host.room_code == host["room_code"]
    assert bad_payload.response.data["code"] == ErrorCode.INVALID_PAYLOAD.value
    assert ok.response is None
    assert ok.room_code == host["room_code"]


def test_leave_room(handler, games):
    async def run():
        ws = MockWebSocket("client")
        grant = (await handler.handle_message(ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}))).response.data

        before_connect = await handler.handle_message(ws, frame(MessageType.LEAVE_ROOM))
        await handler.handle_message(ws, connect_frame(grant))
        left = await handler.handle_message(ws, frame(MessageType.LEAVE_ROOM))
        return grant, before_connect, left

    grant, before_connect, left = asyncio.run(run())

    assert before_connect.response.data["code"] == ErrorCode.CONNECT_REQUIRED.value
    assert left.response.data == {"success": True}
    assert games.get_room(grant["room_code"]) is None


# =============================================================================
# Server broadcasting
# =============================================================================

async def seat_two_players(server: PartyServer) -> tuple[MockWebSocket, MockWebSocket, dict, dict]:
    host_ws, bob_ws = MockWebSocket("host"), MockWebSocket("bob")
    await server._handle_frame(host_ws, frame(MessageType.CREATE_ROOM, {"game_type": "quiz", "host_name": "Alice"}))
    host = host_ws.get_messages()[-1]["data"]
    await server._handle_frame(bob_ws, frame(MessageType.JOIN_ROOM, {"room_code": host["room_code"], "name": "Bob"}))
    bob = bob_ws.get_messages()[-1]["data"]
    await server._handle_frame(host_ws, connect_frame(host))
    await server._handle_frame(bob_ws, connect_frame(bob))
    host_ws.clear_messages()
    bob_ws.clear_messages()
    return host_ws, bob_ws, host, bob


def test_actions_are_broadcast_to_room(games):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)

        await server._handle_frame(host_ws, frame(MessageType.QUIZ_START))

        for ws in (host_ws, bob_ws):
            messages = ws.get_messages()
            assert ws.events()[:3] == ["quiz:game_start", "quiz:round_start", "quiz:buzzer_open"]
            assert messages[-1]["type"] == MessageType.STATE_SYNC.value
            assert messages[-1]["data"]["room_code"] == host["room_code"]
            assert messages[-1]["data"]["state"]["meta"]["status"] == "in_game"

    asyncio.run(run())


def test_error_goes_only_to_sender(games):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)

        await server._handle_frame(bob_ws, frame(MessageType.QUIZ_START))

        assert bob_ws.get_messages()[0]["type"] == MessageType.ERROR.value
        assert host_ws.get_messages() == []

    asyncio.run(run())


def test_stale_buzz_is_not_broadcast(games):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)
        await server._handle_frame(host_ws, frame(MessageType.QUIZ_START))
        host_ws.clear_messages()
        bob_ws.clear_messages()

        await server._handle_frame(bob_ws, frame(MessageType.QUIZ_BUZZ, {"window_id": "w_stale_window_0000"}))

        assert host_ws.get_messages() == []
        assert bob_ws.get_messages() == []

        window = games.get_room(host["room_code"]).current_round.window_id
        await server._handle_frame(bob_ws, frame(MessageType.QUIZ_BUZZ, {"window_id": window}))

        assert host_ws.events() == ["quiz:buzz_lock"]
        assert host_ws.get_messages()[-1]["type"] == MessageType.STATE_SYNC.value

    asyncio.run(run())


def test_kicked_member_socket_is_closed(games):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)

        await server._handle_frame(
            host_ws,
            frame(MessageType.QUIZ_HOST_ACTION, {"action": "kick", "player_id": bob["player_id"]}),
        )

        assert "room:player_removed" in bob_ws.events()
        assert bob_ws.closed
        assert not host_ws.closed
        assert server.get_stats()["connections"]["total_connections"] == 1

    asyncio.run(run())


def test_disconnect_transfers_host(games):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)

        await server._handle_disconnect(host_ws)

        messages = bob_ws.get_messages()
        transfers = [m for m in messages if m["type"] == MessageType.HOST_TRANSFERRED.value]
        assert transfers[0]["data"] == {"room_code": host["room_code"], "host_id": bob["player_id"]}
        assert "room:player_disconnected" in bob_ws.events()
        assert host_ws.get_messages() == []

    asyncio.run(run())


def test_timer_changes_are_flushed(games, scheduler):
    async def run():
        server = PartyServer(game_manager=games)
        host_ws, bob_ws, host, bob = await seat_two_players(server)
        await server._handle_frame(host_ws, frame(MessageType.QUIZ_START))
        window = games.get_room(host["room_code"]).current_round.window_id
        await server._handle_frame(bob_ws, frame(MessageType.QUIZ_BUZZ, {"window_id": window}))
        host_ws.clear_messages()

        scheduler.advance(games.answer_seconds)
        await asyncio.gather(*list(server._flush_tasks))

        assert "quiz:answer_result" in host_ws.events()
        assert host_ws.get_messages()[-1]["type"] == MessageType.STATE_SYNC.value

    asyncio.run(run())
