"""
Board engine package.
"""
from .dice import Dice, DiceResult
from .board import (
    BoardConfig,
    PropertyTile,
    RailroadTile,
    TaxTile,
    Tile,
    UtilityTile,
    build_tile,
    build_classic_board,
)
from .cards import Card, CardAction, CardDeck
from .player import Asset, BankPlayer
from .rules import RuleEngine, ValidationResult, ActionResult, redeem_cost
from .state import BoardRoom, TradeOffer, Turn
from .engine import BoardEngine

__all__ = [
    "Dice",
    "DiceResult",
    "BoardConfig",
    "PropertyTile",
    "RailroadTile",
    "TaxTile",
    "Tile",
    "UtilityTile",
    "build_tile",
    "build_classic_board",
    "Card",
    "CardAction",
    "CardDeck",
    "Asset",
    "BankPlayer",
    "RuleEngine",
    "ValidationResult",
    "ActionResult",
    "redeem_cost",
    "BoardRoom",
    "TradeOffer",
    "Turn",
    "BoardEngine",
]
