"""
Chance and Community Chest decks.

Each draw is an independent uniform pick from a small fixed table, so a
deck has no order to persist between draws.
"""
import random
from dataclasses import dataclass
from enum import Enum


class CardAction(str, Enum):
    """What a card does to the player who drew it."""
    GAIN = "gain"
    PAY = "pay"
    ADVANCE_TO_GO = "advance_to_go"
    GO_TO_JAIL = "go_to_jail"


@dataclass(frozen=True)
class Card:
    text: str
    action: CardAction
    amount: int = 0

    def to_dict(self) -> dict:
        return {"text": self.text, "action": self.action.value, "amount": self.amount}


CHANCE_CARDS = (
    Card("Bank pays you dividend of $100", CardAction.GAIN, 100),
    Card("Speeding fine $50", CardAction.PAY, 50),
    Card("Advance to Go (Collect $200)", CardAction.ADVANCE_TO_GO),
    Card("Go directly to Jail", CardAction.GO_TO_JAIL),
)

CHEST_CARDS = (
    Card("From sale of stock you get $50", CardAction.GAIN, 50),
    Card("School fees $30", CardAction.PAY, 30),
    Card("Holiday fund matures, receive $150", CardAction.GAIN, 150),
    Card("Hospital fees $100", CardAction.PAY, 100),
)


class CardDeck:
    """A deck that draws uniformly at random with replacement."""

    def __init__(self, name: str, cards: tuple[Card, ...], rng: random.Random | None = None):
        self.name = name
        self.cards = cards
        self._random = rng or random.Random()

    def draw(self) -> Card:
        return self._random.choice(self.cards)
