"""
Per-player bank state for board rooms.
"""
from dataclasses import dataclass, field

from shared.constants import HOTEL_DEVELOPMENT_LEVEL, STARTING_CASH


@dataclass
class Asset:
    """An owned tile together with its development and mortgage flags."""
    tile_id: int
    houses: int = 0
    hotel: bool = False
    mortgaged: bool = False

    @property
    def development_level(self) -> int:
        """
        0 = undeveloped, 1-4 = houses, 5 = hotel
        """
        if self.hotel:
            return HOTEL_DEVELOPMENT_LEVEL
        return self.houses

    def to_dict(self) -> dict:
        return {
            "tile_id": self.tile_id,
            "houses": self.houses,
            "hotel": self.hotel,
            "mortgaged": self.mortgaged,
        }


@dataclass
class BankPlayer:
    """Cash, position and holdings of one playing member."""

    player_id: str
    cash: int = STARTING_CASH
    position: int = 0
    in_jail: bool = False
    jail_turns: int = 0
    doubles_in_row: int = 0
    bankrupt: bool = False

    # tile_id -> Asset
    assets: dict[int, Asset] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return not self.bankrupt

    def owns(self, tile_id: int) -> bool:
        return tile_id in self.assets

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "cash": self.cash,
            "position": self.position,
            "in_jail": self.in_jail,
            "jail_turns": self.jail_turns,
            "doubles_in_row": self.doubles_in_row,
            "bankrupt": self.bankrupt,
            "assets": [asset.to_dict() for asset in self.assets.values()],
        }
