"""
Board room state: pending actions, turn, auction, trades and the room.
"""
from dataclasses import dataclass, field
from typing import ClassVar

from shared.enums import PendingActionType, RulePreset, TradeStatus

from server.rooms.models import Room
from server.utils import now, to_millis

from .board import BoardConfig, build_classic_board
from .dice import DiceResult
from .player import BankPlayer


# =============================================================================
# Pending actions
# =============================================================================

@dataclass(frozen=True)
class RollPending:
    type: ClassVar[PendingActionType] = PendingActionType.ROLL

    def to_dict(self) -> dict:
        return {"type": self.type.value}


@dataclass(frozen=True)
class BuyOrAuctionPending:
    type: ClassVar[PendingActionType] = PendingActionType.BUY_OR_AUCTION
    tile_id: int

    def to_dict(self) -> dict:
        return {"type": self.type.value, "tile_id": self.tile_id}


@dataclass(frozen=True)
class AuctionPending:
    type: ClassVar[PendingActionType] = PendingActionType.AUCTION
    tile_id: int

    def to_dict(self) -> dict:
        return {"type": self.type.value, "tile_id": self.tile_id}


@dataclass(frozen=True)
class EndTurnPending:
    type: ClassVar[PendingActionType] = PendingActionType.END_TURN

    def to_dict(self) -> dict:
        return {"type": self.type.value}


PendingAction = RollPending | BuyOrAuctionPending | AuctionPending | EndTurnPending


# =============================================================================
# Turn, auction, trades
# =============================================================================

@dataclass
class Turn:
    current_player_id: str
    turn_number: int = 1
    deadline_at: float | None = None
    has_rolled: bool = False
    extra_turn: bool = False

    def to_dict(self) -> dict:
        return {
            "current_player_id": self.current_player_id,
            "turn_number": self.turn_number,
            "deadline_at": to_millis(self.deadline_at),
            "has_rolled": self.has_rolled,
            "extra_turn": self.extra_turn,
        }


@dataclass
class Bid:
    player_id: str
    amount: int


@dataclass
class Auction:
    """An ascending auction for one unowned tile."""

    tile_id: int
    participant_ids: list[str]
    bids: list[Bid] = field(default_factory=list)
    started_at: float = field(default_factory=now)

    @property
    def highest(self) -> Bid | None:
        if not self.bids:
            return None
        return max(self.bids, key=lambda b: b.amount)

    @property
    def highest_amount(self) -> int:
        top = self.highest
        return top.amount if top else 0

    def to_dict(self) -> dict:
        top = self.highest
        return {
            "tile_id": self.tile_id,
            "participant_ids": list(self.participant_ids),
            "highest_bid": top.amount if top else 0,
            "highest_bidder_id": top.player_id if top else None,
            "bids": [{"player_id": b.player_id, "amount": b.amount} for b in self.bids],
            "started_at": to_millis(self.started_at),
        }


@dataclass
class TradeOffer:
    id: str
    from_player_id: str
    to_player_id: str
    cash_from: int = 0
    cash_to: int = 0
    assets_from: list[int] = field(default_factory=list)
    assets_to: list[int] = field(default_factory=list)
    status: TradeStatus = TradeStatus.PENDING
    created_at: float = field(default_factory=now)

    def involves(self, player_id: str) -> bool:
        return player_id in (self.from_player_id, self.to_player_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "from_player_id": self.from_player_id,
            "to_player_id": self.to_player_id,
            "cash_from": self.cash_from,
            "cash_to": self.cash_to,
            "assets_from": list(self.assets_from),
            "assets_to": list(self.assets_to),
            "status": self.status.value,
            "created_at": to_millis(self.created_at),
        }


# =============================================================================
# Room
# =============================================================================

@dataclass
class BoardRoom(Room):
    """A Monopoly-style room."""

    rule_preset: RulePreset = RulePreset.OFFICIAL
    board: BoardConfig = field(default_factory=build_classic_board)

    # player_id -> BankPlayer, for role=player members only
    bank_players: dict[str, BankPlayer] = field(default_factory=dict)

    # Seat order fixed at game start; mid-game joiners are appended
    turn_order: list[str] = field(default_factory=list)

    turn: Turn | None = None
    pending_action: PendingAction | None = None
    auction: Auction | None = None
    trade_offers: list[TradeOffer] = field(default_factory=list)
    free_parking_pot: int = 0
    turn_timer_enabled: bool = False
    last_dice: DiceResult | None = None

    @property
    def jackpot_enabled(self) -> bool:
        return self.rule_preset == RulePreset.HOUSE and self.board.free_parking_jackpot

    def active_bank_players(self) -> list[BankPlayer]:
        """Non-bankrupt bank players in turn order."""
        order = self.turn_order or list(self.bank_players)
        return [
            self.bank_players[pid] for pid in order
            if pid in self.bank_players and not self.bank_players[pid].bankrupt
        ]

    def to_dict(self) -> dict:
        state = self.base_dict()
        state.update({
            "game_type": self.game_type.value,
            "rule_preset": self.rule_preset.value,
            "board": self.board.to_dict(),
            "bank_players": {pid: bp.to_dict() for pid, bp in self.bank_players.items()},
            "turn_order": list(self.turn_order),
            "turn": self.turn.to_dict() if self.turn else None,
            "pending_action": self.pending_action.to_dict() if self.pending_action else None,
            "auction": self.auction.to_dict() if self.auction else None,
            "trade_offers": [offer.to_dict() for offer in self.trade_offers],
            "free_parking_pot": self.free_parking_pot,
            "turn_timer_enabled": self.turn_timer_enabled,
            "last_dice": self.last_dice.to_list() if self.last_dice else None,
        })
        return state
