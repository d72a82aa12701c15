"""
Quiz room state: question content, round variants and the room itself.
"""
from dataclasses import dataclass, field
from typing import ClassVar

from shared.constants import DEFAULT_TARGET_SCORE
from shared.enums import DrawingPhase, HostMode, RoundType

from server.rooms.models import Room
from server.utils import to_millis


# =============================================================================
# Content
# =============================================================================

@dataclass(frozen=True)
class ReversedQuestion:
    """A word shown letter-reversed; players type the real word."""
    round_type: ClassVar[RoundType] = RoundType.REVERSED
    id: str
    answer: str
    reversed: str
    alt: tuple[str, ...] = ()

    def public_dict(self) -> dict:
        return {"id": self.id, "type": self.round_type.value, "reversed": self.reversed}


@dataclass(frozen=True)
class FlagQuestion:
    """A country flag; players name the country."""
    round_type: ClassVar[RoundType] = RoundType.FLAG
    id: str
    answer: str
    country_code: str
    alt: tuple[str, ...] = ()

    def public_dict(self) -> dict:
        return {"id": self.id, "type": self.round_type.value, "country_code": self.country_code}


@dataclass(frozen=True)
class TriviaQuestion:
    """A free-text trivia question."""
    round_type: ClassVar[RoundType] = RoundType.TRIVIA
    id: str
    answer: str
    question: str
    alt: tuple[str, ...] = ()

    def public_dict(self) -> dict:
        return {"id": self.id, "type": self.round_type.value, "question": self.question}


Question = ReversedQuestion | FlagQuestion | TriviaQuestion


@dataclass(frozen=True)
class DrawingPrompt:
    round_type: ClassVar[RoundType] = RoundType.DRAWING
    id: str
    word: str

    def public_dict(self) -> dict:
        return {"id": self.id, "type": self.round_type.value, "word": self.word}


@dataclass
class QuizContent:
    """Question banks by round type, already loaded and validated."""
    reversed: list[ReversedQuestion] = field(default_factory=list)
    flags: list[FlagQuestion] = field(default_factory=list)
    trivia: list[TriviaQuestion] = field(default_factory=list)
    drawing: list[str] = field(default_factory=list)

    def questions_for(self, round_type: RoundType) -> list[Question]:
        if round_type == RoundType.REVERSED:
            return self.reversed
        if round_type == RoundType.FLAG:
            return self.flags
        if round_type == RoundType.TRIVIA:
            return self.trivia
        return []

    def has_content(self, round_type: RoundType) -> bool:
        if round_type == RoundType.DRAWING:
            return bool(self.drawing)
        return bool(self.questions_for(round_type))


# =============================================================================
# Rounds
# =============================================================================

@dataclass
class BuzzerRound:
    """A timed question round arbitrated by the buzzer."""

    round_number: int
    question: Question
    window_id: str
    started_at: float
    buzzed_player_id: str | None = None
    answer_deadline_at: float | None = None
    excluded_player_ids: list[str] = field(default_factory=list)
    revealed: bool = False
    revealed_answer: str | None = None
    winner_id: str | None = None
    repeat_voter_ids: list[str] = field(default_factory=list)
    repeat_triggered: bool = False
    give_up_voter_ids: list[str] = field(default_factory=list)

    @property
    def round_type(self) -> RoundType:
        return self.question.round_type

    @property
    def is_locked(self) -> bool:
        return self.buzzed_player_id is not None

    def to_dict(self) -> dict:
        question = self.question.public_dict()
        if self.revealed:
            question["answer"] = self.question.answer
        return {
            "round_number": self.round_number,
            "type": self.round_type.value,
            "started_at": to_millis(self.started_at),
            "question": question,
            "window_id": self.window_id,
            "buzzed_player_id": self.buzzed_player_id,
            "answer_deadline_at": to_millis(self.answer_deadline_at),
            "excluded_player_ids": list(self.excluded_player_ids),
            "answer_revealed": self.revealed,
            "revealed_answer": self.revealed_answer,
            "winner_id": self.winner_id,
            "repeat_vote_count": len(self.repeat_voter_ids),
            "repeat_voter_ids": list(self.repeat_voter_ids),
            "give_up_count": len(self.give_up_voter_ids),
            "give_up_voter_ids": list(self.give_up_voter_ids),
        }


@dataclass
class DrawingSubmission:
    player_id: str
    image_data_url: str
    submitted_at: float


@dataclass
class DrawingVote:
    voter_id: str
    target_player_id: str
    voted_at: float


@dataclass
class DrawingRound:
    """
    Simultaneous drawing followed by turn-based voting.

    ``participant_ids`` is fixed when the round starts and only shrinks when
    a member is removed from the room.
    """

    round_number: int
    prompt: DrawingPrompt
    started_at: float
    participant_ids: list[str]
    phase: DrawingPhase = DrawingPhase.READY_UP
    ready_player_ids: list[str] = field(default_factory=list)
    submissions: dict[str, DrawingSubmission] = field(default_factory=dict)
    drawing_deadline_at: float | None = None
    voter_order: list[str] = field(default_factory=list)
    current_voter_index: int = 0
    votes: list[DrawingVote] = field(default_factory=list)
    revealed: bool = False
    winner_ids: list[str] = field(default_factory=list)

    @property
    def round_type(self) -> RoundType:
        return RoundType.DRAWING

    @property
    def current_voter_id(self) -> str | None:
        if self.phase != DrawingPhase.VOTING:
            return None
        if self.current_voter_index < len(self.voter_order):
            return self.voter_order[self.current_voter_index]
        return None

    def has_voted(self, player_id: str) -> bool:
        return any(vote.voter_id == player_id for vote in self.votes)

    def vote_targets_for(self, voter_id: str) -> list[str]:
        """Members this voter may vote for: anyone else who submitted."""
        return [pid for pid in self.submissions if pid != voter_id]

    def tally(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for vote in self.votes:
            counts[vote.target_player_id] = counts.get(vote.target_player_id, 0) + 1
        return counts

    def to_dict(self) -> dict:
        return {
            "round_number": self.round_number,
            "type": self.round_type.value,
            "started_at": to_millis(self.started_at),
            "question": self.prompt.public_dict(),
            "answer_revealed": self.revealed,
            "drawing": {
                "phase": self.phase.value,
                "participant_ids": list(self.participant_ids),
                "ready_player_ids": list(self.ready_player_ids),
                "submissions": [
                    {
                        "player_id": s.player_id,
                        "image_data_url": s.image_data_url,
                        "submitted_at": to_millis(s.submitted_at),
                    }
                    for s in self.submissions.values()
                ],
                "drawing_deadline_at": to_millis(self.drawing_deadline_at),
                "voter_order": list(self.voter_order),
                "current_voter_id": self.current_voter_id,
                "votes": [
                    {"voter_id": v.voter_id, "target_player_id": v.target_player_id}
                    for v in self.votes
                ],
                "winner_ids": list(self.winner_ids),
            },
        }


QuizRound = BuzzerRound | DrawingRound


# =============================================================================
# Room
# =============================================================================

def _empty_used_ids() -> dict[RoundType, list[str]]:
    return {round_type: [] for round_type in RoundType}


@dataclass
class QuizRoom(Room):
    """A trivia/buzzer room."""

    target_score: int = DEFAULT_TARGET_SCORE
    host_mode: HostMode = HostMode.PLAYER
    current_round: QuizRound | None = None
    round_queue: list[RoundType] = field(default_factory=list)
    last_round_type: RoundType | None = None
    used_question_ids: dict[RoundType, list[str]] = field(default_factory=_empty_used_ids)

    def to_dict(self) -> dict:
        state = self.base_dict()
        state.update({
            "game_type": self.game_type.value,
            "target_score": self.target_score,
            "host_mode": self.host_mode.value,
            "current_round": self.current_round.to_dict() if self.current_round else None,
        })
        return state
