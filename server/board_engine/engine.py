"""
Board engine - one instance per board room.

Turn order, dice, movement, landing resolution, the property economy,
auctions, trades, bankruptcy and win detection. ``pending_action`` says
which input is valid right now; anything else from the turn holder, or
anything from a player without standing, is ignored.
"""

import logging
import random
from typing import Callable

from shared.constants import MAX_CONSECUTIVE_DOUBLES, MAX_JAIL_TURNS, TURN_SECONDS
from shared.enums import ErrorCode, HostAction, HouseOperation, RoomStatus, TileKind, TradeStatus
from shared.schemas import (
    BidPayload,
    BoardAction,
    BoardHostActionPayload,
    BuyPayload,
    CloseAuctionPayload,
    EndTurnPayload,
    HousePayload,
    MortgagePayload,
    RollPayload,
    StartBoardPayload,
    TradeCancelPayload,
    TradeDecisionPayload,
    TradeProposalPayload,
)

from server.errors import GameError
from server.rooms.models import Player
from server.timers import LoopScheduler, RoomTimer, Scheduler
from server.utils import create_id, now, to_millis

from .board import PropertyTile, TaxTile
from .cards import CHANCE_CARDS, CHEST_CARDS, Card, CardAction, CardDeck
from .dice import Dice, DiceResult
from .player import Asset, BankPlayer
from .rules import RuleEngine, redeem_cost
from .state import (
    Auction,
    AuctionPending,
    Bid,
    BoardRoom,
    BuyOrAuctionPending,
    EndTurnPending,
    RollPending,
    TradeOffer,
    Turn,
)


logger = logging.getLogger(__name__)

MIN_PLAYERS = 2


class BoardEngine:
    """
    Authoritative state machine for one board room.

    Callbacks:
        emit(event, payload): an event happened, in order
        remove_player(player_id): ask the registry to remove a member
        on_state_change(): a timer changed the room outside any action
    """

    def __init__(
        self,
        room: BoardRoom,
        emit: Callable[[str, dict], None],
        remove_player: Callable[[str], bool],
        on_state_change: Callable[[], None] | None = None,
        scheduler: Scheduler | None = None,
        dice: Dice | None = None,
        rng: random.Random | None = None,
        turn_seconds: float = TURN_SECONDS,
        clock: Callable[[], float] = now
    ):
        self.room = room
        self._emit = emit
        self._remove_player = remove_player
        self._on_state_change = on_state_change
        self._clock = clock
        self.turn_seconds = turn_seconds

        rng = rng or random.Random()
        self.dice = dice or Dice(rng=rng)
        self.rules = RuleEngine(room.board, room.bank_players)
        self.chance = CardDeck("chance", CHANCE_CARDS, rng)
        self.chest = CardDeck("chest", CHEST_CARDS, rng)

        self._turn_timer = RoomTimer(scheduler or LoopScheduler(), f"{room.code}:turn")

        for player in room.playable_players():
            self._ensure_bank_player(player.id)

    # =========================================================================
    # Action dispatch
    # =========================================================================

    def apply(self, player_id: str, action: BoardAction) -> None:
        """Route a validated action payload to its handler."""
        match action:
            case StartBoardPayload():
                self.start_game(player_id)
            case RollPayload():
                self.roll(player_id)
            case BuyPayload(tile_id=tile_id, accept=accept):
                self.decide_purchase(player_id, tile_id, accept)
            case BidPayload(amount=amount):
                self.place_bid(player_id, amount)
            case CloseAuctionPayload():
                self.close_auction(player_id)
            case EndTurnPayload():
                self.end_turn(player_id)
            case MortgagePayload(tile_id=tile_id, mortgaged=mortgaged):
                self.set_mortgage(player_id, tile_id, mortgaged)
            case HousePayload(tile_id=tile_id, operation=operation):
                self.house_action(player_id, tile_id, operation)
            case TradeProposalPayload():
                self.propose_trade(player_id, action)
            case TradeDecisionPayload(trade_id=trade_id, accept=accept):
                self.decide_trade(player_id, trade_id, accept)
            case TradeCancelPayload(trade_id=trade_id):
                self.cancel_trade(player_id, trade_id)
            case BoardHostActionPayload():
                self.host_action(player_id, action)
            case _:
                raise GameError(ErrorCode.INVALID_PAYLOAD, f"Unsupported board action {type(action).__name__}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_game(self, player_id: str) -> None:
        self._require_host(player_id)
        room = self.room
        if room.status != RoomStatus.LOBBY:
            raise GameError(ErrorCode.ALREADY_STARTED, "Game already started")

        for player in room.playable_players():
            self._ensure_bank_player(player.id)
        room.turn_order = [p.id for p in room.playable_players()]

        active = room.active_bank_players()
        if len(active) < MIN_PLAYERS:
            raise GameError(ErrorCode.INVALID_ACTION, f"Need at least {MIN_PLAYERS} players to start")

        room.meta.status = RoomStatus.IN_GAME
        room.started_at = self._clock()
        room.touch()

        logger.info(f"Board game started in room {room.code} with {len(active)} players")
        self._emit("board:game_start", {
            "turn_order": list(room.turn_order),
            "rule_preset": room.rule_preset.value,
        })
        room.turn = Turn(current_player_id=active[0].player_id, turn_number=0)
        self._begin_turn(active[0].player_id)

    def _begin_turn(self, player_id: str) -> None:
        room = self.room
        turn = room.turn
        turn.current_player_id = player_id
        turn.turn_number += 1
        turn.has_rolled = False
        turn.extra_turn = False
        room.pending_action = RollPending()
        self._restart_turn_clock()

        self._emit("board:turn_start", {
            "player_id": player_id,
            "turn_number": turn.turn_number,
            "deadline_at": to_millis(turn.deadline_at),
        })

    def _next_player_after(self, player_id: str, start_index: int | None = None) -> str | None:
        """Next non-bankrupt player in seat order, wrapping around."""
        order = self.room.turn_order
        if not order:
            return None

        if start_index is None:
            start_index = order.index(player_id) + 1 if player_id in order else 0

        for offset in range(len(order)):
            candidate = order[(start_index + offset) % len(order)]
            bank_player = self.room.bank_players.get(candidate)
            if bank_player is not None and not bank_player.bankrupt:
                return candidate
        return None

    def _advance_turn(self) -> None:
        """Hand the turn on, or replay it for a doubles roller."""
        room = self.room
        turn = room.turn
        if turn is None or not room.in_game:
            return

        current = room.bank_players.get(turn.current_player_id)
        if turn.extra_turn and current is not None and not current.bankrupt and not current.in_jail:
            self._begin_turn(current.player_id)
            return

        if current is not None:
            current.doubles_in_row = 0
        next_id = self._next_player_after(turn.current_player_id)
        if next_id is None:
            return
        self._begin_turn(next_id)

    def end_turn(self, player_id: str) -> None:
        if not self._is_turn_holder(player_id) or not isinstance(self.room.pending_action, EndTurnPending):
            logger.debug(f"Ignoring end_turn from {player_id} in room {self.room.code}")
            return
        self._advance_turn()

    def _force_end_turn(self) -> None:
        """End the current turn whatever it is waiting for."""
        room = self.room
        if room.auction is not None:
            self._settle_auction()
        # An undecided purchase simply lapses
        room.pending_action = EndTurnPending()
        if room.turn is not None:
            room.turn.extra_turn = False
        self._advance_turn()

    def _check_winner(self) -> bool:
        """One active player left ends the game."""
        room = self.room
        if not room.in_game:
            return False

        active = room.active_bank_players()
        if len(active) > 1:
            return False

        self._turn_timer.cancel()
        room.meta.status = RoomStatus.FINISHED
        room.ended_at = self._clock()
        room.winner_id = active[0].player_id if active else None
        room.pending_action = None
        room.auction = None
        if room.turn is not None:
            room.turn.deadline_at = None
        room.touch()

        logger.info(f"Board room {room.code} finished, winner {room.winner_id}")
        self._emit("board:game_end", {"winner_id": room.winner_id})
        return True

    # =========================================================================
    # Turn clock
    # =========================================================================

    def _restart_turn_clock(self) -> None:
        room = self.room
        self._turn_timer.cancel()
        if room.turn is None:
            return
        room.turn.deadline_at = None

        if not room.turn_timer_enabled or room.paused or not room.in_game:
            return

        room.turn.deadline_at = self._clock() + self.turn_seconds
        turn_number = room.turn.turn_number
        holder = room.turn.current_player_id
        self._turn_timer.arm(
            self.turn_seconds,
            lambda: self._on_turn_timeout(turn_number, holder)
        )

    def _on_turn_timeout(self, turn_number: int, player_id: str) -> None:
        turn = self.room.turn
        if not self.room.in_game or turn is None:
            return
        if turn.turn_number != turn_number or turn.current_player_id != player_id:
            return

        logger.info(f"Turn {turn_number} timed out for {player_id} in room {self.room.code}")
        self._emit("board:turn_timeout", {"player_id": player_id, "turn_number": turn_number})
        self._force_end_turn()
        self._notify()

    # =========================================================================
    # Dice and movement
    # =========================================================================

    def roll(self, player_id: str) -> None:
        room = self.room
        if not self._is_turn_holder(player_id) or not isinstance(room.pending_action, RollPending):
            logger.debug(f"Ignoring roll from {player_id} in room {room.code}")
            return

        bank_player = room.bank_players[player_id]
        dice = self.dice.roll()
        room.last_dice = dice
        room.turn.has_rolled = True
        room.turn.extra_turn = False
        room.pending_action = None

        self._emit("board:dice_result", {
            "player_id": player_id,
            "dice": dice.to_list(),
            "total": dice.total,
            "is_double": dice.is_double,
        })

        if bank_player.in_jail:
            self._roll_in_jail(bank_player, dice)
        elif dice.is_double and bank_player.doubles_in_row + 1 >= MAX_CONSECUTIVE_DOUBLES:
            bank_player.doubles_in_row = 0
            self._send_to_jail(bank_player, "three_doubles")
        else:
            if dice.is_double:
                bank_player.doubles_in_row += 1
                room.turn.extra_turn = True
            else:
                bank_player.doubles_in_row = 0
            self._move(bank_player, dice.total)
            self._resolve_landing(bank_player)

        self._after_resolution(bank_player)

    def _roll_in_jail(self, bank_player: BankPlayer, dice: DiceResult) -> None:
        if dice.is_double:
            # Released by the double; no extra turn for it
            bank_player.in_jail = False
            bank_player.jail_turns = 0
            self._emit("board:jail_update", {
                "player_id": bank_player.player_id,
                "in_jail": False,
                "reason": "double",
            })
            self._move(bank_player, dice.total)
            self._resolve_landing(bank_player)
            return

        bank_player.jail_turns += 1
        if bank_player.jail_turns >= MAX_JAIL_TURNS:
            bank_player.in_jail = False
            bank_player.jail_turns = 0
            self._emit("board:jail_update", {
                "player_id": bank_player.player_id,
                "in_jail": False,
                "reason": "fine",
                "fine": self.room.board.jail_fine,
            })
            self._pay(bank_player, self.room.board.jail_fine, None, "jail_fine")
            return

        self._emit("board:jail_update", {
            "player_id": bank_player.player_id,
            "in_jail": True,
            "jail_turns": bank_player.jail_turns,
        })

    def _after_resolution(self, bank_player: BankPlayer) -> None:
        room = self.room
        if not room.in_game:
            return
        if bank_player.bankrupt:
            room.pending_action = EndTurnPending()
            room.turn.extra_turn = False
            self._advance_turn()
            return
        if room.pending_action is None:
            room.pending_action = EndTurnPending()

    def _move(self, bank_player: BankPlayer, steps: int) -> None:
        board = self.room.board
        target = bank_player.position + steps
        passed_go = target >= board.size
        bank_player.position = target % board.size
        if passed_go:
            bank_player.cash += board.go_salary

    def _send_to_jail(self, bank_player: BankPlayer, reason: str) -> None:
        bank_player.position = self.room.board.jail_position
        bank_player.in_jail = True
        bank_player.jail_turns = 0
        bank_player.doubles_in_row = 0
        if self.room.turn is not None and self.room.turn.current_player_id == bank_player.player_id:
            self.room.turn.extra_turn = False

        self._emit("board:jail_update", {
            "player_id": bank_player.player_id,
            "in_jail": True,
            "reason": reason,
        })

    # =========================================================================
    # Landing
    # =========================================================================

    def _resolve_landing(self, bank_player: BankPlayer) -> None:
        room = self.room
        tile = room.board.get_tile(bank_player.position)
        if tile is None:
            return

        self._emit("board:land", {
            "player_id": bank_player.player_id,
            "tile_id": tile.id,
            "kind": tile.kind.value,
            "position": bank_player.position,
            "cash": bank_player.cash,
        })

        match tile.kind:
            case TileKind.GO | TileKind.JAIL:
                pass
            case TileKind.GO_TO_JAIL:
                self._send_to_jail(bank_player, "go_to_jail")
            case TileKind.TAX:
                self._collect_tax(bank_player, tile)
            case TileKind.CHANCE:
                self._draw_card(bank_player, self.chance, "board:chance_card")
            case TileKind.CHEST:
                self._draw_card(bank_player, self.chest, "board:chest_card")
            case TileKind.FREE_PARKING:
                self._collect_free_parking(bank_player)
            case TileKind.PROPERTY | TileKind.RAILROAD | TileKind.UTILITY:
                self._land_on_asset(bank_player, tile.id)

    def _collect_tax(self, bank_player: BankPlayer, tile: TaxTile) -> None:
        paid = self._pay(bank_player, tile.amount, None, "tax", to_pot=True)
        self._emit("board:tax_paid", {
            "player_id": bank_player.player_id,
            "tile_id": tile.id,
            "amount": paid,
            "free_parking_pot": self.room.free_parking_pot,
        })

    def _collect_free_parking(self, bank_player: BankPlayer) -> None:
        room = self.room
        if not room.jackpot_enabled or room.free_parking_pot <= 0:
            return

        amount = room.free_parking_pot
        room.free_parking_pot = 0
        bank_player.cash += amount
        self._emit("board:free_parking", {"player_id": bank_player.player_id, "amount": amount})

    def _draw_card(self, bank_player: BankPlayer, deck: CardDeck, event: str) -> None:
        card = deck.draw()
        self._emit(event, {"player_id": bank_player.player_id, "card": card.to_dict()})
        self._apply_card(bank_player, card)

    def _apply_card(self, bank_player: BankPlayer, card: Card) -> None:
        match card.action:
            case CardAction.GAIN:
                bank_player.cash += card.amount
            case CardAction.PAY:
                self._pay(bank_player, card.amount, None, "card", to_pot=True)
            case CardAction.ADVANCE_TO_GO:
                bank_player.position = 0
                bank_player.cash += self.room.board.go_salary
                self._resolve_landing(bank_player)
            case CardAction.GO_TO_JAIL:
                self._send_to_jail(bank_player, "card")

    def _land_on_asset(self, bank_player: BankPlayer, tile_id: int) -> None:
        room = self.room
        owner = self.rules.owner_of(tile_id)

        if owner is None:
            tile = room.board.get_asset(tile_id)
            room.pending_action = BuyOrAuctionPending(tile_id=tile_id)
            self._emit("board:buy_offer", {
                "player_id": bank_player.player_id,
                "tile_id": tile_id,
                "price": tile.price,
            })
            return

        if owner is bank_player or owner.assets[tile_id].mortgaged:
            return

        dice_total = room.last_dice.total if room.last_dice else None
        rent = self.rules.calculate_rent(tile_id, dice_total)
        paid = self._pay(bank_player, rent, owner, "rent")
        self._emit("board:rent_paid", {
            "player_id": bank_player.player_id,
            "owner_id": owner.player_id,
            "tile_id": tile_id,
            "rent": rent,
            "paid": paid,
        })

    # =========================================================================
    # Payments and bankruptcy
    # =========================================================================

    def _pay(
        self,
        payer: BankPlayer,
        amount: int,
        creditor: BankPlayer | None,
        reason: str,
        to_pot: bool = False
    ) -> int:
        """
        Move ``amount`` from ``payer`` to ``creditor`` (None is the bank).

        A payer who cannot cover the amount pays everything they have and
        goes bankrupt. Returns what was actually paid.
        """
        if amount <= 0:
            return 0

        paid = min(amount, payer.cash)
        payer.cash -= paid

        if creditor is not None:
            creditor.cash += paid
        elif to_pot and self.room.jackpot_enabled:
            self.room.free_parking_pot += paid

        if paid < amount:
            self._declare_bankrupt(payer, creditor, reason)
        return paid

    def _declare_bankrupt(self, payer: BankPlayer, creditor: BankPlayer | None, reason: str) -> None:
        room = self.room
        asset_ids = list(payer.assets)

        if creditor is not None:
            for tile_id, asset in payer.assets.items():
                creditor.assets[tile_id] = asset
        payer.assets = {}
        payer.cash = 0
        payer.bankrupt = True
        payer.in_jail = False
        payer.jail_turns = 0

        for offer in list(room.trade_offers):
            if offer.involves(payer.player_id):
                room.trade_offers.remove(offer)

        logger.info(
            f"Player {payer.player_id} bankrupt in room {room.code} ({reason}), "
            f"creditor {creditor.player_id if creditor else 'bank'}"
        )
        self._emit("board:bankruptcy", {
            "player_id": payer.player_id,
            "creditor_id": creditor.player_id if creditor else None,
            "asset_ids": asset_ids,
            "reason": reason,
        })
        self._check_winner()

    # =========================================================================
    # Purchase and auction
    # =========================================================================

    def decide_purchase(self, player_id: str, tile_id: int, accept: bool) -> None:
        room = self.room
        pending = room.pending_action
        if not self._is_turn_holder(player_id) or not isinstance(pending, BuyOrAuctionPending):
            return
        if pending.tile_id != tile_id:
            return

        if not accept:
            self._start_auction(tile_id)
            return

        tile = room.board.get_asset(tile_id)
        bank_player = room.bank_players[player_id]
        if bank_player.cash < tile.price:
            raise GameError(ErrorCode.INVALID_ACTION, f"You need ${tile.price} to buy {tile.name}")

        bank_player.cash -= tile.price
        bank_player.assets[tile_id] = Asset(tile_id=tile_id)
        room.pending_action = EndTurnPending()
        self._emit("board:buy_commit", {
            "player_id": player_id,
            "tile_id": tile_id,
            "price": tile.price,
        })

    def _start_auction(self, tile_id: int) -> None:
        room = self.room
        room.auction = Auction(
            tile_id=tile_id,
            participant_ids=[bp.player_id for bp in room.active_bank_players()],
            started_at=self._clock(),
        )
        room.pending_action = AuctionPending(tile_id=tile_id)
        self._emit("board:auction_start", {
            "tile_id": tile_id,
            "participant_ids": list(room.auction.participant_ids),
        })

    def place_bid(self, player_id: str, amount: int) -> None:
        room = self.room
        auction = room.auction
        if not room.in_game or auction is None or player_id not in auction.participant_ids:
            return
        bank_player = room.bank_players.get(player_id)
        if bank_player is None or bank_player.bankrupt:
            return

        if amount <= auction.highest_amount:
            raise GameError(ErrorCode.INVALID_ACTION, f"Bid must exceed ${auction.highest_amount}")
        if amount > bank_player.cash:
            raise GameError(ErrorCode.INVALID_ACTION, "You cannot cover that bid")

        auction.bids.append(Bid(player_id=player_id, amount=amount))
        self._emit("board:auction_bid", {
            "tile_id": auction.tile_id,
            "player_id": player_id,
            "amount": amount,
        })

    def close_auction(self, player_id: str) -> None:
        room = self.room
        if not room.in_game or room.auction is None:
            return
        if not self._is_turn_holder(player_id) and not room.is_host(player_id):
            raise GameError(ErrorCode.FORBIDDEN, "Only the turn holder or host can close the auction")
        self._settle_auction()

    def _settle_auction(self) -> None:
        """Sell to the highest bidder who can still pay; proceeds go to the bank."""
        room = self.room
        auction = room.auction
        room.auction = None
        if auction is None:
            return

        winner_id = None
        amount = 0
        for bid in sorted(auction.bids, key=lambda b: b.amount, reverse=True):
            bidder = room.bank_players.get(bid.player_id)
            if bidder is not None and not bidder.bankrupt and bidder.cash >= bid.amount:
                bidder.cash -= bid.amount
                bidder.assets[auction.tile_id] = Asset(tile_id=auction.tile_id)
                winner_id = bid.player_id
                amount = bid.amount
                break

        if room.in_game:
            room.pending_action = EndTurnPending()
        self._emit("board:auction_end", {
            "tile_id": auction.tile_id,
            "winner_id": winner_id,
            "amount": amount,
        })

    # =========================================================================
    # Mortgages and buildings
    # =========================================================================

    def set_mortgage(self, player_id: str, tile_id: int, mortgaged: bool) -> None:
        bank_player = self._require_active_bank_player(player_id)
        tile = self.room.board.get_asset(tile_id)

        if mortgaged:
            validation = self.rules.validate_mortgage(bank_player, tile_id)
            if not validation.valid:
                raise GameError(ErrorCode.INVALID_ACTION, validation.message)
            bank_player.assets[tile_id].mortgaged = True
            amount = tile.mortgage_value
            bank_player.cash += amount
        else:
            validation = self.rules.validate_redeem(bank_player, tile_id)
            if not validation.valid:
                raise GameError(ErrorCode.INVALID_ACTION, validation.message)
            amount = redeem_cost(tile.mortgage_value)
            bank_player.cash -= amount
            bank_player.assets[tile_id].mortgaged = False

        self._emit("board:mortgage_toggled", {
            "player_id": player_id,
            "tile_id": tile_id,
            "mortgaged": mortgaged,
            "amount": amount,
        })

    def house_action(self, player_id: str, tile_id: int, operation: HouseOperation) -> None:
        bank_player = self._require_active_bank_player(player_id)

        if operation == HouseOperation.BUY:
            validation = self.rules.validate_build(bank_player, tile_id)
        else:
            validation = self.rules.validate_sell(bank_player, tile_id)
        if not validation.valid:
            raise GameError(ErrorCode.INVALID_ACTION, validation.message)

        tile: PropertyTile = self.room.board.get_tile(tile_id)
        asset = bank_player.assets[tile_id]

        if operation == HouseOperation.BUY:
            amount = tile.house_price
            bank_player.cash -= amount
            if asset.houses >= 4:
                asset.houses = 0
                asset.hotel = True
            else:
                asset.houses += 1
        else:
            amount = tile.house_price // 2
            bank_player.cash += amount
            if asset.hotel:
                asset.hotel = False
                asset.houses = 4
            else:
                asset.houses -= 1

        self._emit("board:house_action", {
            "player_id": player_id,
            "tile_id": tile_id,
            "operation": operation.value,
            "houses": asset.houses,
            "hotel": asset.hotel,
            "amount": amount,
        })

    # =========================================================================
    # Trading
    # =========================================================================

    def propose_trade(self, player_id: str, proposal: TradeProposalPayload) -> None:
        room = self.room
        proposer = self._require_active_bank_player(player_id)

        target_id = proposal.to_player_id
        target = room.bank_players.get(target_id)
        if target_id == player_id or target is None or target.bankrupt:
            raise GameError(ErrorCode.INVALID_ACTION, "Invalid trade partner")

        assets_from = list(dict.fromkeys(proposal.assets_from))
        assets_to = list(dict.fromkeys(proposal.assets_to))
        if not assets_from and not assets_to and not proposal.cash_from and not proposal.cash_to:
            raise GameError(ErrorCode.INVALID_ACTION, "Trade is empty")
        if any(not proposer.owns(tile_id) for tile_id in assets_from):
            raise GameError(ErrorCode.INVALID_ACTION, "You don't own every offered asset")
        if any(not target.owns(tile_id) for tile_id in assets_to):
            raise GameError(ErrorCode.INVALID_ACTION, "They don't own every requested asset")

        offer = TradeOffer(
            id=create_id("t"),
            from_player_id=player_id,
            to_player_id=target_id,
            cash_from=proposal.cash_from,
            cash_to=proposal.cash_to,
            assets_from=assets_from,
            assets_to=assets_to,
            created_at=self._clock(),
        )
        room.trade_offers.append(offer)
        self._emit("board:trade_proposed", offer.to_dict())

    def decide_trade(self, player_id: str, trade_id: str, accept: bool) -> None:
        offer = self._require_offer(trade_id)
        if offer.to_player_id != player_id:
            raise GameError(ErrorCode.FORBIDDEN, "Only the recipient can answer this trade")

        self.room.trade_offers.remove(offer)
        if not accept:
            offer.status = TradeStatus.REJECTED
            self._emit("board:trade_rejected", {"trade_id": offer.id, "reason": "declined"})
            return

        reason = self._execute_trade(offer)
        if reason is not None:
            offer.status = TradeStatus.REJECTED
            self._emit("board:trade_rejected", {"trade_id": offer.id, "reason": reason})
            return

        offer.status = TradeStatus.ACCEPTED
        self._emit("board:trade_accepted", offer.to_dict())

    def _execute_trade(self, offer: TradeOffer) -> str | None:
        """
        Apply a trade all at once.

        Everything is checked before anything moves, so a failed check
        leaves both players untouched. Returns the failure reason or None.
        """
        giver = self.room.bank_players.get(offer.from_player_id)
        taker = self.room.bank_players.get(offer.to_player_id)
        if giver is None or taker is None or giver.bankrupt or taker.bankrupt:
            return "player_unavailable"
        if giver.cash < offer.cash_from or taker.cash < offer.cash_to:
            return "insufficient_cash"
        if any(not giver.owns(t) for t in offer.assets_from) or any(not taker.owns(t) for t in offer.assets_to):
            return "assets_changed"

        giver.cash += offer.cash_to - offer.cash_from
        taker.cash += offer.cash_from - offer.cash_to
        for tile_id in offer.assets_from:
            taker.assets[tile_id] = giver.assets.pop(tile_id)
        for tile_id in offer.assets_to:
            giver.assets[tile_id] = taker.assets.pop(tile_id)
        return None

    def cancel_trade(self, player_id: str, trade_id: str) -> None:
        offer = self._require_offer(trade_id)
        if offer.from_player_id != player_id:
            raise GameError(ErrorCode.FORBIDDEN, "Only the proposer can cancel this trade")

        self.room.trade_offers.remove(offer)
        offer.status = TradeStatus.CANCELLED
        self._emit("board:trade_cancelled", {"trade_id": offer.id})

    def _require_offer(self, trade_id: str) -> TradeOffer:
        for offer in self.room.trade_offers:
            if offer.id == trade_id and offer.status == TradeStatus.PENDING:
                return offer
        raise GameError(ErrorCode.INVALID_ACTION, "Trade not found")

    # =========================================================================
    # Host actions
    # =========================================================================

    def host_action(self, player_id: str, payload: BoardHostActionPayload) -> None:
        self._require_host(player_id)
        room = self.room
        action = payload.action

        if action == HostAction.PAUSE:
            room.paused = True
            self._restart_turn_clock()
        elif action == HostAction.RESUME:
            room.paused = False
            self._restart_turn_clock()
        elif action == HostAction.SKIP:
            self._skip(payload.player_id)
        elif action == HostAction.KICK:
            target = self._require_member(payload.player_id)
            if target.id == player_id:
                raise GameError(ErrorCode.INVALID_ACTION, "Host cannot kick themselves")
        elif action == HostAction.SCORE_ADJUST:
            if payload.cash_delta is None:
                raise GameError(ErrorCode.INVALID_PAYLOAD, "cash_delta is required")
            self._require_member(payload.player_id)
            bank_player = room.bank_players.get(payload.player_id)
            if bank_player is None or bank_player.bankrupt:
                raise GameError(ErrorCode.INVALID_ACTION, "Player has no bank account")
            bank_player.cash = max(0, bank_player.cash + payload.cash_delta)
        elif action == HostAction.TOGGLE_TIMER:
            if payload.timer_enabled is None:
                room.turn_timer_enabled = not room.turn_timer_enabled
            else:
                room.turn_timer_enabled = payload.timer_enabled
            self._restart_turn_clock()

        room.touch()
        self._emit("board:host_action", {
            "action": action.value,
            "player_id": payload.player_id,
            "cash_delta": payload.cash_delta,
            "paused": room.paused,
            "turn_timer_enabled": room.turn_timer_enabled,
        })

        if action == HostAction.KICK:
            self._remove_player(payload.player_id)

    def _skip(self, target_id: str | None) -> None:
        room = self.room
        if not room.in_game or room.turn is None:
            raise GameError(ErrorCode.NOT_STARTED, "Game is not running")

        if target_id:
            target = room.bank_players.get(target_id)
            if target is None or target.bankrupt:
                raise GameError(ErrorCode.INVALID_ACTION, "Player cannot hold the turn")
            room.turn.current_player_id = target_id
        self._force_end_turn()

    # =========================================================================
    # Registry hooks
    # =========================================================================

    def on_player_joined(self, player: Player) -> None:
        if not player.is_playable:
            return
        self._ensure_bank_player(player.id)
        if self.room.in_game and player.id not in self.room.turn_order:
            self.room.turn_order.append(player.id)

    def on_player_disconnected(self, player_id: str) -> None:
        """Without a turn clock, a disconnected turn holder would stall everyone."""
        room = self.room
        if not room.in_game or room.turn_timer_enabled:
            return
        if room.turn is not None and room.turn.current_player_id == player_id:
            logger.info(f"Ending turn of disconnected player {player_id} in room {room.code}")
            self._force_end_turn()

    def on_host_transferred(self, new_host_id: str) -> None:
        player = self.room.get_player(new_host_id)
        if player is not None and player.is_playable:
            self.on_player_joined(player)

    def on_player_removed(self, player_id: str) -> None:
        room = self.room
        room.bank_players.pop(player_id, None)
        room.trade_offers = [o for o in room.trade_offers if not o.involves(player_id)]

        if room.auction is not None:
            auction = room.auction
            if player_id in auction.participant_ids:
                auction.participant_ids.remove(player_id)
            auction.bids = [b for b in auction.bids if b.player_id != player_id]

        removed_index = None
        if player_id in room.turn_order:
            removed_index = room.turn_order.index(player_id)
            room.turn_order.remove(player_id)

        if not room.in_game or self._check_winner():
            return

        turn = room.turn
        if turn is not None and turn.current_player_id == player_id:
            if room.auction is not None:
                self._settle_auction()
            next_id = self._next_player_after(player_id, start_index=removed_index or 0)
            if next_id is not None:
                self._begin_turn(next_id)

    def snapshot(self) -> dict:
        return self.room.to_dict()

    def dispose(self) -> None:
        self._turn_timer.cancel()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _ensure_bank_player(self, player_id: str) -> BankPlayer:
        bank_player = self.room.bank_players.get(player_id)
        if bank_player is None:
            bank_player = BankPlayer(player_id=player_id)
            self.room.bank_players[player_id] = bank_player
        return bank_player

    def _is_turn_holder(self, player_id: str) -> bool:
        room = self.room
        return room.in_game and room.turn is not None and room.turn.current_player_id == player_id

    def _require_host(self, player_id: str) -> None:
        if not self.room.is_host(player_id):
            raise GameError(ErrorCode.FORBIDDEN, "Only the host can do that")

    def _require_member(self, player_id: str | None) -> Player:
        if not player_id:
            raise GameError(ErrorCode.INVALID_PAYLOAD, "player_id is required")
        player = self.room.get_player(player_id)
        if player is None:
            raise GameError(ErrorCode.INVALID_ACTION, f"Player {player_id} is not in this room")
        return player

    def _require_active_bank_player(self, player_id: str) -> BankPlayer:
        if not self.room.in_game:
            raise GameError(ErrorCode.NOT_STARTED, "Game is not running")
        bank_player = self.room.bank_players.get(player_id)
        if bank_player is None or bank_player.bankrupt:
            raise GameError(ErrorCode.FORBIDDEN, "You are not playing")
        return bank_player

    def _notify(self) -> None:
        if self._on_state_change is not None:
            self._on_state_change()
