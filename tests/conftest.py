"""
Shared fixtures: a virtual-time scheduler, scripted dice, small content
banks and ready-made rooms with their engines attached.
"""

import json
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from server.board_engine import BoardEngine, DiceResult
from server.quiz_engine import FlagQuestion, QuizContent, QuizEngine, ReversedQuestion, TriviaQuestion
from server.rooms.registry import RoomRegistry


# =============================================================================
# Timers and dice
# =============================================================================

class ManualHandle:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when a test advances it."""

    def __init__(self):
        self.time = 0.0
        self.handles: list[ManualHandle] = []

    def call_later(self, delay: float, callback) -> ManualHandle:
        handle = ManualHandle(self.time + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[ManualHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Fire every live callback due within the next ``seconds``."""
        target = self.time + seconds
        while True:
            due = sorted(
                (h for h in self.handles if not h.cancelled and h.due <= target),
                key=lambda h: h.due
            )
            if not due:
                break
            handle = due[0]
            self.handles.remove(handle)
            self.time = handle.due
            handle.callback()
        self.time = target
        self.handles = [h for h in self.handles if not h.cancelled]


class ScriptedDice:
    """Returns queued rolls in order."""

    def __init__(self, *rolls: tuple[int, int]):
        self.rolls = [DiceResult(a, b) for a, b in rolls]

    def queue(self, *rolls: tuple[int, int]) -> None:
        self.rolls.extend(DiceResult(a, b) for a, b in rolls)

    def roll(self) -> DiceResult:
        return self.rolls.pop(0)


class EventLog:
    """Collects (event, payload) pairs emitted by an engine."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def __call__(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[dict]:
        return [payload for event, payload in self.events if event == name]

    def last(self, name: str) -> dict | None:
        matching = self.of(name)
        return matching[-1] if matching else None

    def clear(self) -> None:
        self.events.clear()


# =============================================================================
# Content
# =============================================================================

def make_content(
    trivia: bool = True,
    reversed_words: bool = False,
    flags: bool = False,
    drawing: bool = False
) -> QuizContent:
    return QuizContent(
        trivia=[
            TriviaQuestion(id="t1", answer="Paris", question="Capital of France?", alt=("باريس",)),
        ] if trivia else [],
        reversed=[
            ReversedQuestion(id="r1", answer="مدرسة", reversed="ةسردم"),
        ] if reversed_words else [],
        flags=[
            FlagQuestion(id="f1", answer="Egypt", country_code="eg", alt=("مصر",)),
        ] if flags else [],
        drawing=["قطة"] if drawing else [],
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def events():
    return EventLog()


@pytest.fixture
def dice():
    return ScriptedDice()


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def content_factory():
    return make_content


@pytest.fixture
def quiz_setup(registry, scheduler, events):
    """
    Build a quiz room with ``players`` joined members (host plays).

    Returns (room, engine, player_ids) where player_ids[0] is the host.
    """
    def build(players: int = 2, content: QuizContent | None = None, **room_options):
        grant = registry.create_quiz_room("Host", **room_options)
        room = registry.require_room(grant.room_code)
        engine = QuizEngine(
            room,
            content or make_content(),
            emit=events,
            remove_player=lambda pid: registry.remove_player(room.code, pid),
            scheduler=scheduler,
            rng=random.Random(7),
        )
        registry.attach_engine(room.code, engine)

        ids = [grant.player_id]
        for index in range(1, players):
            ids.append(registry.join_room(room.code, f"Player{index}").player_id)
        return room, engine, ids

    return build


@pytest.fixture
def board_setup(registry, scheduler, events, dice):
    """
    Build a board room with ``players`` members (host plays).

    Returns (room, engine, player_ids) where player_ids[0] is the host.
    """
    def build(players: int = 2, board=None, **room_options):
        grant = registry.create_board_room("Host", board=board, **room_options)
        room = registry.require_room(grant.room_code)
        engine = BoardEngine(
            room,
            emit=events,
            remove_player=lambda pid: registry.remove_player(room.code, pid),
            scheduler=scheduler,
            dice=dice,
            rng=random.Random(7),
        )
        registry.attach_engine(room.code, engine)

        ids = [grant.player_id]
        for index in range(1, players):
            ids.append(registry.join_room(room.code, f"Player{index}").player_id)
        return room, engine, ids

    return build


@pytest.fixture
def content_dir(tmp_path):
    """A CONTENT_DIR holding one question per bank."""
    quiz_dir = tmp_path / "quiz"
    quiz_dir.mkdir()
    (quiz_dir / "trivia.json").write_text(json.dumps([
        {"id": "t1", "answer": "Paris", "question": "Capital of France?", "alt": ["باريس"]},
    ]), encoding="utf-8")
    (quiz_dir / "reversed.json").write_text(json.dumps([
        {"id": "r1", "answer": "مدرسة", "reversed": "ةسردم"},
    ]), encoding="utf-8")
    (quiz_dir / "drawing.json").write_text(json.dumps(["قطة", "  "]), encoding="utf-8")
    return tmp_path
