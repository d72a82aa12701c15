"""
Dice rolling mechanics.
"""
import random
from dataclasses import dataclass


@dataclass
class DiceResult:
    """Result of rolling two dice."""
    die1: int
    die2: int

    @property
    def total(self) -> int:
        """Sum of both dice."""
        return self.die1 + self.die2

    @property
    def is_double(self) -> bool:
        """Check if both dice show the same value."""
        return self.die1 == self.die2

    def to_list(self) -> list[int]:
        return [self.die1, self.die2]


class Dice:
    """Two independent uniform six-sided dice."""

    def __init__(self, seed: int | None = None, rng: random.Random | None = None):
        """
        Args:
            seed: Optional seed for reproducible rolls
            rng: Shared random source; takes precedence over ``seed``
        """
        self._random = rng or random.Random(seed)

    def roll(self) -> DiceResult:
        return DiceResult(
            die1=self._random.randint(1, 6),
            die2=self._random.randint(1, 6),
        )
