"""
Pydantic schemas for inbound message payloads.

Every payload is validated here before it reaches the registry or an engine.
Each room-bound action has its own model so engines can dispatch on the
model class with structural pattern matching.
"""

from typing import Annotated, Literal

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    field_validator,
)

from shared.constants import DEFAULT_TARGET_SCORE, MIN_TARGET_SCORE, MAX_TARGET_SCORE, PIECE_COLORS
from shared.enums import HostAction, HostMode, HouseOperation, Language, RulePreset, GameType


def _normalize_room_code(value):
    if isinstance(value, str):
        return value.strip().upper()
    return value


DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=24)]
RoomCode = Annotated[str, BeforeValidator(_normalize_room_code), Field(pattern=r"^[A-Z0-9]{4,8}$")]
SessionToken = Annotated[str, Field(min_length=8, max_length=256)]
PlayerId = Annotated[str, Field(min_length=3)]
TileId = Annotated[int, Field(ge=0, le=100)]
TradeCash = Annotated[int, Field(ge=0, le=10_000)]
PieceColor = Literal[PIECE_COLORS]


class StrictModel(BaseModel):
    """Base for all payloads: unknown fields are rejected."""
    model_config = ConfigDict(extra="forbid")


# =============================================================================
# Lobby
# =============================================================================

class CreateQuizRoomPayload(StrictModel):
    game_type: Literal["quiz"]
    host_name: DisplayName
    language: Language = Language.AR
    host_mode: HostMode = HostMode.PLAYER
    target_score: int = Field(default=DEFAULT_TARGET_SCORE, ge=MIN_TARGET_SCORE, le=MAX_TARGET_SCORE)


class CreateBoardRoomPayload(StrictModel):
    game_type: Literal["board"]
    host_name: DisplayName
    language: Language = Language.AR
    host_mode: HostMode = HostMode.PLAYER
    rule_preset: RulePreset = RulePreset.OFFICIAL
    piece_color: PieceColor | None = None


CreateRoomPayload = Annotated[
    CreateQuizRoomPayload | CreateBoardRoomPayload,
    Field(discriminator="game_type"),
]
create_room_adapter = TypeAdapter(CreateRoomPayload)


class JoinRoomPayload(StrictModel):
    room_code: RoomCode
    name: DisplayName
    language: Language = Language.AR
    piece_color: PieceColor | None = None


class ReconnectPayload(StrictModel):
    room_code: RoomCode
    session_token: SessionToken


class RoomMetaPayload(StrictModel):
    room_code: RoomCode


class ConnectPayload(StrictModel):
    """Connection-time authentication."""
    room_code: RoomCode
    player_id: PlayerId
    session_token: SessionToken
    game_type: GameType


class LeaveRoomPayload(StrictModel):
    pass


# =============================================================================
# Quiz actions
# =============================================================================

class StartQuizPayload(StrictModel):
    pass


class NextRoundPayload(StrictModel):
    pass


class BuzzPayload(StrictModel):
    window_id: str = Field(min_length=8)
    sent_at: int | None = None


class AnswerPayload(StrictModel):
    answer: str = Field(max_length=120)


class ReadyPayload(StrictModel):
    pass


class DrawingSubmitPayload(StrictModel):
    image_data_url: str = Field(min_length=32, max_length=2_000_000)


class DrawingVotePayload(StrictModel):
    target_player_id: PlayerId


class RepeatVotePayload(StrictModel):
    pass


class GiveUpPayload(StrictModel):
    pass


class QuizHostActionPayload(StrictModel):
    action: HostAction
    player_id: str | None = None
    score_delta: int | None = Field(default=None, ge=-20, le=20)

    @field_validator("action")
    @classmethod
    def quiz_actions_only(cls, value: HostAction) -> HostAction:
        if value == HostAction.TOGGLE_TIMER:
            raise ValueError("toggle_timer is not available in quiz rooms")
        return value


QuizAction = (
    StartQuizPayload
    | NextRoundPayload
    | BuzzPayload
    | AnswerPayload
    | ReadyPayload
    | DrawingSubmitPayload
    | DrawingVotePayload
    | RepeatVotePayload
    | GiveUpPayload
    | QuizHostActionPayload
)


# =============================================================================
# Board actions
# =============================================================================

class StartBoardPayload(StrictModel):
    pass


class RollPayload(StrictModel):
    pass


class BuyPayload(StrictModel):
    tile_id: TileId
    accept: bool = True


class BidPayload(StrictModel):
    amount: int = Field(gt=0)


class CloseAuctionPayload(StrictModel):
    pass


class EndTurnPayload(StrictModel):
    pass


class MortgagePayload(StrictModel):
    tile_id: TileId
    mortgaged: bool


class HousePayload(StrictModel):
    tile_id: TileId
    operation: HouseOperation


class TradeProposalPayload(StrictModel):
    to_player_id: PlayerId
    cash_from: TradeCash = 0
    cash_to: TradeCash = 0
    assets_from: list[TileId] = Field(default_factory=list)
    assets_to: list[TileId] = Field(default_factory=list)


class TradeDecisionPayload(StrictModel):
    trade_id: str = Field(min_length=8)
    accept: bool


class TradeCancelPayload(StrictModel):
    trade_id: str = Field(min_length=8)


class BoardHostActionPayload(StrictModel):
    action: HostAction
    player_id: str | None = None
    timer_enabled: bool | None = None
    cash_delta: int | None = Field(default=None, ge=-5000, le=5000)


BoardAction = (
    StartBoardPayload
    | RollPayload
    | BuyPayload
    | BidPayload
    | CloseAuctionPayload
    | EndTurnPayload
    | MortgagePayload
    | HousePayload
    | TradeProposalPayload
    | TradeDecisionPayload
    | TradeCancelPayload
    | BoardHostActionPayload
)
