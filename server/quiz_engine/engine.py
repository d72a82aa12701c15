"""
Quiz engine - one instance per trivia/buzzer room.

Runs the round lifecycle, arbitrates the buzzer, scores answers and drives
the drawing-and-vote mini-game. Every transition, whether caused by a player
action or by a timer, goes through the methods below and reports what
happened through the ``emit`` callback.
"""

import logging
import math
import random
from typing import Callable

from shared.constants import (
    ANSWER_SECONDS,
    AUTO_ADVANCE_SECONDS,
    DRAWING_SECONDS,
    VOTE_THRESHOLD_RATIO,
)
from shared.enums import DrawingPhase, ErrorCode, HostAction, HostMode, RoomStatus, RoundType
from shared.schemas import (
    AnswerPayload,
    BuzzPayload,
    DrawingSubmitPayload,
    DrawingVotePayload,
    GiveUpPayload,
    NextRoundPayload,
    QuizAction,
    QuizHostActionPayload,
    ReadyPayload,
    RepeatVotePayload,
    StartQuizPayload,
)

from server.errors import GameError
from server.quiz_engine.fuzzy import matches_answer
from server.quiz_engine.state import (
    BuzzerRound,
    DrawingPrompt,
    DrawingRound,
    DrawingSubmission,
    DrawingVote,
    Question,
    QuizContent,
    QuizRoom,
)
from server.rooms.models import Player
from server.timers import LoopScheduler, RoomTimer, Scheduler
from server.utils import create_id, now, shuffled, to_millis


logger = logging.getLogger(__name__)


class QuizEngine:
    """
    Authoritative state machine for one quiz room.

    Callbacks:
        emit(event, payload): an event happened, in order
        remove_player(player_id): ask the registry to remove a member
        on_state_change(): a timer changed the room outside any action
    """

    def __init__(
        self,
        room: QuizRoom,
        content: QuizContent,
        emit: Callable[[str, dict], None],
        remove_player: Callable[[str], bool],
        on_state_change: Callable[[], None] | None = None,
        scheduler: Scheduler | None = None,
        rng: random.Random | None = None,
        answer_seconds: float = ANSWER_SECONDS,
        drawing_seconds: float = DRAWING_SECONDS,
        auto_advance_seconds: float = AUTO_ADVANCE_SECONDS,
        clock: Callable[[], float] = now
    ):
        self.room = room
        self.content = content
        self._emit = emit
        self._remove_player = remove_player
        self._on_state_change = on_state_change
        self._rng = rng or random.Random()
        self._clock = clock

        self.answer_seconds = answer_seconds
        self.drawing_seconds = drawing_seconds
        self.auto_advance_seconds = auto_advance_seconds

        scheduler = scheduler or LoopScheduler()
        self._answer_timer = RoomTimer(scheduler, f"{room.code}:answer")
        self._drawing_timer = RoomTimer(scheduler, f"{room.code}:drawing")
        self._advance_timer = RoomTimer(scheduler, f"{room.code}:auto_advance")

    # =========================================================================
    # Action dispatch
    # =========================================================================

    def apply(self, player_id: str, action: QuizAction) -> None:
        """Route a validated action payload to its handler."""
        match action:
            case StartQuizPayload():
                self.start_game(player_id)
            case NextRoundPayload():
                self.next_round(player_id)
            case BuzzPayload(window_id=window_id):
                self.press_buzzer(player_id, window_id)
            case AnswerPayload(answer=answer):
                self.submit_answer(player_id, answer)
            case ReadyPayload():
                self.signal_ready(player_id)
            case DrawingSubmitPayload(image_data_url=image_data_url):
                self.submit_drawing(player_id, image_data_url)
            case DrawingVotePayload(target_player_id=target_id):
                self.cast_vote(player_id, target_id)
            case RepeatVotePayload():
                self.vote_repeat(player_id)
            case GiveUpPayload():
                self.give_up(player_id)
            case QuizHostActionPayload():
                self.host_action(player_id, action)
            case _:
                raise GameError(ErrorCode.INVALID_PAYLOAD, f"Unsupported quiz action {type(action).__name__}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_game(self, player_id: str) -> None:
        """Reset scores and open the first round."""
        self._require_host(player_id)
        if self.room.in_game:
            raise GameError(ErrorCode.ALREADY_STARTED, "Game already in progress")
        if not self.room.playable_players():
            raise GameError(ErrorCode.INVALID_ACTION, "No players to start with")
        if not any(self.content.has_content(t) for t in RoundType):
            raise GameError(ErrorCode.INVALID_ACTION, "No questions available")

        self._cancel_timers()
        for player in self.room.players:
            player.score = 0

        room = self.room
        room.meta.status = RoomStatus.IN_GAME
        room.started_at = self._clock()
        room.ended_at = None
        room.winner_id = None
        room.current_round = None
        room.round_queue = []
        room.last_round_type = None
        room.touch()

        logger.info(f"Quiz game started in room {room.code} (target {room.target_score})")
        self._emit("quiz:game_start", {
            "target_score": room.target_score,
            "player_ids": [p.id for p in room.playable_players()],
        })
        self._start_round()

    def next_round(self, player_id: str) -> None:
        self._require_host(player_id)
        if not self.room.in_game:
            raise GameError(ErrorCode.NOT_STARTED, "Game is not running")
        self._start_round()

    def _start_round(self) -> None:
        self._cancel_timers()
        room = self.room

        round_type = self._next_round_type()
        if round_type is None:
            logger.error(f"Room {room.code} ran out of playable round types")
            return

        round_number = room.current_round.round_number + 1 if room.current_round else 1
        started_at = self._clock()

        if round_type == RoundType.DRAWING:
            room.current_round = DrawingRound(
                round_number=round_number,
                prompt=self._pick_prompt(),
                started_at=started_at,
                participant_ids=[p.id for p in room.playable_players() if p.connected],
            )
        else:
            room.current_round = BuzzerRound(
                round_number=round_number,
                question=self._pick_question(round_type),
                window_id=create_id("w"),
                started_at=started_at,
            )
        room.touch()

        current = room.current_round
        self._emit("quiz:round_start", {
            "round_number": round_number,
            "type": round_type.value,
            "question": current.to_dict()["question"],
        })
        if isinstance(current, BuzzerRound):
            self._emit("quiz:buzzer_open", {
                "round_number": round_number,
                "window_id": current.window_id,
            })

    def _next_round_type(self) -> RoundType | None:
        """Draw from the shuffled bag, refilling it when empty."""
        room = self.room
        available = [t for t in RoundType if self.content.has_content(t)]
        if not available:
            return None

        queue = [t for t in room.round_queue if t in available]
        if not queue:
            queue = shuffled(available, self._rng)
            # Avoid the same type twice in a row across refills
            if len(queue) > 1 and queue[0] == room.last_round_type:
                queue.append(queue.pop(0))

        round_type = queue.pop(0)
        room.round_queue = queue
        room.last_round_type = round_type
        return round_type

    def _pick_question(self, round_type: RoundType) -> Question:
        bank = self.content.questions_for(round_type)
        used = self.room.used_question_ids[round_type]
        fresh = [q for q in bank if q.id not in used]
        if not fresh:
            used.clear()
            fresh = list(bank)

        question = self._rng.choice(fresh)
        used.append(question.id)
        return question

    def _pick_prompt(self) -> DrawingPrompt:
        used = self.room.used_question_ids[RoundType.DRAWING]
        fresh = [word for word in self.content.drawing if word not in used]
        if not fresh:
            used.clear()
            fresh = list(self.content.drawing)

        word = self._rng.choice(fresh)
        used.append(word)
        return DrawingPrompt(id=create_id("d"), word=word)

    # =========================================================================
    # Buzzer
    # =========================================================================

    def press_buzzer(self, player_id: str, window_id: str) -> None:
        """Lock the buzzer for the first eligible press on the open window."""
        current = self._open_buzzer_round()
        if current is None or current.is_locked:
            return
        if window_id != current.window_id:
            logger.debug(f"Stale buzz from {player_id} in room {self.room.code}")
            return
        if player_id not in self._eligible_ids(current):
            return

        deadline = self._clock() + self.answer_seconds
        current.buzzed_player_id = player_id
        current.answer_deadline_at = deadline

        round_number = current.round_number
        window = current.window_id
        self._answer_timer.arm(
            self.answer_seconds,
            lambda: self._on_answer_timeout(round_number, window)
        )

        self._emit("quiz:buzz_lock", {
            "round_number": round_number,
            "player_id": player_id,
            "answer_deadline_at": to_millis(deadline),
        })

    def submit_answer(self, player_id: str, answer: str) -> None:
        """Score the locked-in player's answer."""
        current = self._open_buzzer_round()
        if current is None or current.buzzed_player_id != player_id:
            return

        self._answer_timer.cancel()
        question = current.question
        correct = matches_answer(answer, question.answer, question.alt)

        self._emit("quiz:answer_result", {
            "round_number": current.round_number,
            "player_id": player_id,
            "answer": answer,
            "correct": correct,
        })

        if correct:
            self._award(player_id, 1)
            current.winner_id = player_id
            self._reveal(current)
            self._finish_round()
            return

        # Wrong answers cost a point but the player may buzz again
        self._award(player_id, -1)
        self._reopen_buzzer(current)

    def _on_answer_timeout(self, round_number: int, window_id: str) -> None:
        current = self._open_buzzer_round()
        if (
            current is None
            or current.round_number != round_number
            or current.window_id != window_id
            or not current.is_locked
        ):
            return

        self._timeout_locked_player(current)
        self._notify()

    def _timeout_locked_player(self, current: BuzzerRound) -> None:
        player_id = current.buzzed_player_id
        self._answer_timer.cancel()

        self._emit("quiz:answer_result", {
            "round_number": current.round_number,
            "player_id": player_id,
            "answer": None,
            "correct": False,
            "timed_out": True,
        })
        self._award(player_id, -1)
        if player_id not in current.excluded_player_ids:
            current.excluded_player_ids.append(player_id)
        self._reopen_buzzer(current)

    def _reopen_buzzer(self, current: BuzzerRound) -> None:
        """Release the lock and open a fresh window, or reveal if nobody can buzz."""
        self._answer_timer.cancel()
        current.buzzed_player_id = None
        current.answer_deadline_at = None

        if not self._eligible_ids(current):
            self._reveal(current)
            self._finish_round()
            return

        current.window_id = create_id("w")
        self._emit("quiz:buzzer_open", {
            "round_number": current.round_number,
            "window_id": current.window_id,
        })

    def _eligible_ids(self, current: BuzzerRound) -> list[str]:
        return [
            p.id for p in self.room.playable_players()
            if p.connected and p.id not in current.excluded_player_ids
        ]

    def _open_buzzer_round(self) -> BuzzerRound | None:
        current = self.room.current_round
        if not self.room.in_game or not isinstance(current, BuzzerRound) or current.revealed:
            return None
        return current

    # =========================================================================
    # Votes
    # =========================================================================

    def vote_repeat(self, player_id: str) -> None:
        """Ask for the reversed word to be shown again."""
        current = self._open_buzzer_round()
        if current is None or current.round_type != RoundType.REVERSED:
            return
        if not self._is_playable(player_id) or current.repeat_triggered:
            return
        if player_id in current.repeat_voter_ids:
            return

        current.repeat_voter_ids.append(player_id)
        triggered = len(current.repeat_voter_ids) >= self._vote_threshold()
        if triggered:
            current.repeat_triggered = True

        self._emit("quiz:vote_repeat", {
            "round_number": current.round_number,
            "repeat_vote_count": len(current.repeat_voter_ids),
            "triggered": triggered,
        })

    def give_up(self, player_id: str) -> None:
        """Vote to reveal the answer; reveals once enough players agree."""
        current = self._open_buzzer_round()
        if current is None or not self._is_playable(player_id):
            return
        if player_id in current.give_up_voter_ids:
            return

        current.give_up_voter_ids.append(player_id)
        triggered = len(current.give_up_voter_ids) >= self._vote_threshold()

        self._emit("quiz:give_up_vote", {
            "round_number": current.round_number,
            "give_up_count": len(current.give_up_voter_ids),
            "triggered": triggered,
        })

        if triggered:
            self._reveal(current)
            self._finish_round()

    def _vote_threshold(self) -> int:
        playable = len(self.room.playable_players())
        return max(1, math.ceil(playable * VOTE_THRESHOLD_RATIO))

    # =========================================================================
    # Drawing round
    # =========================================================================

    def signal_ready(self, player_id: str) -> None:
        current = self._drawing_round(DrawingPhase.READY_UP)
        if current is None or player_id not in current.participant_ids:
            return
        if player_id in current.ready_player_ids:
            return

        current.ready_player_ids.append(player_id)
        self._emit("quiz:drawing_ready", {
            "round_number": current.round_number,
            "player_id": player_id,
            "ready_count": len(current.ready_player_ids),
            "total": len(current.participant_ids),
        })
        self._check_all_ready(current)

    def _check_all_ready(self, current: DrawingRound) -> None:
        if current.participant_ids and all(
            pid in current.ready_player_ids for pid in current.participant_ids
        ):
            self._start_drawing_phase(current)

    def _start_drawing_phase(self, current: DrawingRound) -> None:
        deadline = self._clock() + self.drawing_seconds
        current.phase = DrawingPhase.DRAWING
        current.drawing_deadline_at = deadline

        round_number = current.round_number
        self._drawing_timer.arm(
            self.drawing_seconds,
            lambda: self._on_drawing_timeout(round_number)
        )

        self._emit("quiz:drawing_start", {
            "round_number": round_number,
            "word": current.prompt.word,
            "drawing_deadline_at": to_millis(deadline),
        })

    def submit_drawing(self, player_id: str, image_data_url: str) -> None:
        """Store (or overwrite) a participant's drawing."""
        current = self._drawing_round(DrawingPhase.DRAWING)
        if current is None or player_id not in current.participant_ids:
            return

        current.submissions[player_id] = DrawingSubmission(
            player_id=player_id,
            image_data_url=image_data_url,
            submitted_at=self._clock(),
        )
        self._emit("quiz:drawing_submitted", {
            "round_number": current.round_number,
            "player_id": player_id,
            "submitted_count": len(current.submissions),
            "total": len(current.participant_ids),
        })
        self._check_all_submitted(current)

    def _check_all_submitted(self, current: DrawingRound) -> None:
        if current.participant_ids and all(
            pid in current.submissions for pid in current.participant_ids
        ):
            self._start_voting(current)

    def _on_drawing_timeout(self, round_number: int) -> None:
        current = self._drawing_round(DrawingPhase.DRAWING)
        if current is None or current.round_number != round_number:
            return
        self._start_voting(current)
        self._notify()

    def _start_voting(self, current: DrawingRound) -> None:
        self._drawing_timer.cancel()
        current.phase = DrawingPhase.VOTING
        current.voter_order = list(current.participant_ids)
        current.current_voter_index = 0

        self._emit("quiz:voting_start", {
            "round_number": current.round_number,
            "voter_order": list(current.voter_order),
            "submitted_player_ids": list(current.submissions),
        })
        self._advance_voting(current)

    def _advance_voting(self, current: DrawingRound) -> None:
        """Move past voters who have nobody to vote for; tally when done."""
        order = current.voter_order
        while current.current_voter_index < len(order):
            voter_id = order[current.current_voter_index]
            if current.vote_targets_for(voter_id) and not current.has_voted(voter_id):
                break
            current.current_voter_index += 1

        if current.current_voter_index >= len(order):
            self._complete_drawing(current)
            return

        self._emit("quiz:voting_progress", {
            "round_number": current.round_number,
            "current_voter_id": current.current_voter_id,
            "votes_cast": len(current.votes),
        })

    def cast_vote(self, player_id: str, target_player_id: str) -> None:
        current = self._drawing_round(DrawingPhase.VOTING)
        if current is None or current.current_voter_id != player_id:
            return
        if current.has_voted(player_id):
            return
        if target_player_id == player_id:
            raise GameError(ErrorCode.INVALID_ACTION, "You cannot vote for yourself")
        if target_player_id not in current.submissions:
            raise GameError(ErrorCode.INVALID_ACTION, "That player has no drawing")

        current.votes.append(DrawingVote(
            voter_id=player_id,
            target_player_id=target_player_id,
            voted_at=self._clock(),
        ))
        current.current_voter_index += 1
        self._advance_voting(current)

    def _complete_drawing(self, current: DrawingRound) -> None:
        """Plurality tally: every tied leader scores, nobody on zero votes."""
        self._drawing_timer.cancel()
        counts = current.tally()
        top = max(counts.values(), default=0)
        winners = [pid for pid, count in counts.items() if count == top] if top > 0 else []

        current.phase = DrawingPhase.DONE
        current.revealed = True
        current.winner_ids = winners
        for pid in winners:
            self._award(pid, 1)

        self._finish_round(tally=counts)

    def _drawing_round(self, phase: DrawingPhase) -> DrawingRound | None:
        current = self.room.current_round
        if not self.room.in_game or not isinstance(current, DrawingRound):
            return None
        if current.phase != phase:
            return None
        return current

    # =========================================================================
    # Round end and scoring
    # =========================================================================

    def _reveal(self, current: BuzzerRound) -> None:
        self._answer_timer.cancel()
        current.buzzed_player_id = None
        current.answer_deadline_at = None
        current.revealed = True
        current.revealed_answer = current.question.answer

    def _finish_round(self, tally: dict[str, int] | None = None) -> None:
        current = self.room.current_round
        payload = {
            "round_number": current.round_number,
            "type": current.round_type.value,
        }
        if isinstance(current, BuzzerRound):
            payload["answer"] = current.question.answer
            payload["winner_id"] = current.winner_id
        else:
            payload["word"] = current.prompt.word
            payload["winner_ids"] = list(current.winner_ids)
            payload["votes"] = dict(tally or {})
        self._emit("quiz:round_end", payload)

        if self._check_winner():
            return

        if self.room.host_mode == HostMode.AI:
            round_number = current.round_number
            self._advance_timer.arm(
                self.auto_advance_seconds,
                lambda: self._on_auto_advance(round_number)
            )

    def _on_auto_advance(self, round_number: int) -> None:
        current = self.room.current_round
        if not self.room.in_game or current is None:
            return
        if current.round_number != round_number or not current.revealed:
            return
        self._start_round()
        self._notify()

    def _award(self, player_id: str, delta: int) -> None:
        player = self.room.get_player(player_id)
        if player is None:
            return
        player.score += delta
        self._emit("quiz:score_update", {
            "player_id": player_id,
            "delta": delta,
            "score": player.score,
        })

    def _check_winner(self) -> bool:
        """First playable member at or above the target wins."""
        room = self.room
        if not room.in_game:
            return False

        for player in room.playable_players():
            if player.score >= room.target_score:
                self._cancel_timers()
                room.meta.status = RoomStatus.FINISHED
                room.ended_at = self._clock()
                room.winner_id = player.id
                room.touch()

                logger.info(f"Quiz room {room.code} won by {player.name} ({player.score})")
                self._emit("quiz:game_end", {
                    "winner_id": player.id,
                    "scores": {p.id: p.score for p in room.playable_players()},
                })
                return True
        return False

    # =========================================================================
    # Host actions
    # =========================================================================

    def host_action(self, player_id: str, payload: QuizHostActionPayload) -> None:
        self._require_host(player_id)
        room = self.room
        action = payload.action

        if action == HostAction.PAUSE:
            room.paused = True
        elif action == HostAction.RESUME:
            room.paused = False
        elif action == HostAction.SKIP:
            self._skip()
        elif action == HostAction.KICK:
            target = self._require_target(payload.player_id)
            if target.id == player_id:
                raise GameError(ErrorCode.INVALID_ACTION, "Host cannot kick themselves")
        elif action == HostAction.SCORE_ADJUST:
            target = self._require_target(payload.player_id)
            if payload.score_delta is None:
                raise GameError(ErrorCode.INVALID_PAYLOAD, "score_delta is required")
            if not target.is_playable:
                raise GameError(ErrorCode.INVALID_ACTION, "Only players have scores")

        room.touch()
        self._emit("quiz:host_action", {
            "action": action.value,
            "player_id": payload.player_id,
            "score_delta": payload.score_delta,
            "paused": room.paused,
        })

        if action == HostAction.KICK:
            self._remove_player(payload.player_id)
        elif action == HostAction.SCORE_ADJUST:
            self._award(payload.player_id, payload.score_delta)
            self._check_winner()

    def _skip(self) -> None:
        if not self.room.in_game:
            raise GameError(ErrorCode.NOT_STARTED, "Game is not running")

        current = self.room.current_round
        if current is None or current.revealed:
            self._start_round()
        elif isinstance(current, BuzzerRound):
            self._reveal(current)
            self._finish_round()
        else:
            self._complete_drawing(current)

    # =========================================================================
    # Registry hooks
    # =========================================================================

    def on_player_joined(self, player: Player) -> None:
        logger.debug(f"{player.name} joined quiz room {self.room.code}")

    def on_player_disconnected(self, player_id: str) -> None:
        """A locked-in player who drops out is treated as having timed out."""
        current = self._open_buzzer_round()
        if current is not None and current.buzzed_player_id == player_id:
            self._timeout_locked_player(current)

    def on_host_transferred(self, new_host_id: str) -> None:
        logger.debug(f"Quiz room {self.room.code} host is now {new_host_id}")

    def on_player_removed(self, player_id: str) -> None:
        current = self.room.current_round
        if current is None:
            return

        if isinstance(current, BuzzerRound):
            for ids in (current.excluded_player_ids, current.repeat_voter_ids, current.give_up_voter_ids):
                if player_id in ids:
                    ids.remove(player_id)
            if (
                self.room.in_game
                and not current.revealed
                and current.buzzed_player_id == player_id
            ):
                self._reopen_buzzer(current)
            return

        self._purge_from_drawing(current, player_id)

    def _purge_from_drawing(self, current: DrawingRound, player_id: str) -> None:
        if player_id in current.participant_ids:
            current.participant_ids.remove(player_id)
        if player_id in current.ready_player_ids:
            current.ready_player_ids.remove(player_id)
        current.submissions.pop(player_id, None)
        current.votes = [
            v for v in current.votes
            if v.voter_id != player_id and v.target_player_id != player_id
        ]
        if player_id in current.voter_order:
            index = current.voter_order.index(player_id)
            current.voter_order.remove(player_id)
            if index < current.current_voter_index:
                current.current_voter_index -= 1

        if not self.room.in_game:
            return
        if current.phase == DrawingPhase.READY_UP:
            self._check_all_ready(current)
        elif current.phase == DrawingPhase.DRAWING:
            self._check_all_submitted(current)
        elif current.phase == DrawingPhase.VOTING:
            self._advance_voting(current)

    def snapshot(self) -> dict:
        return self.room.to_dict()

    def dispose(self) -> None:
        self._cancel_timers()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_host(self, player_id: str) -> None:
        if not self.room.is_host(player_id):
            raise GameError(ErrorCode.FORBIDDEN, "Only the host can do that")

    def _require_target(self, player_id: str | None) -> Player:
        if not player_id:
            raise GameError(ErrorCode.INVALID_PAYLOAD, "player_id is required")
        target = self.room.get_player(player_id)
        if target is None:
            raise GameError(ErrorCode.INVALID_ACTION, f"Player {player_id} is not in this room")
        return target

    def _is_playable(self, player_id: str) -> bool:
        player = self.room.get_player(player_id)
        return player is not None and player.is_playable

    def _cancel_timers(self) -> None:
        self._answer_timer.cancel()
        self._drawing_timer.cancel()
        self._advance_timer.cancel()

    def _notify(self) -> None:
        if self._on_state_change is not None:
            self._on_state_change()
