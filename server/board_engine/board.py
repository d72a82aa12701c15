"""
Board layout: tiles, color groups and loaders.

A layout is static for the lifetime of a room. Ownership and development
live on the players' bank state, never on the tiles.
"""
from dataclasses import dataclass, field

from shared.constants import CLASSIC_TILES, GO_SALARY, JAIL_FINE, JAIL_POSITION, UTILITY_MULTIPLIERS
from shared.enums import TileKind


@dataclass
class Tile:
    """A single square on the board."""
    id: int
    kind: TileKind
    name: str

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind.value, "name": self.name}


@dataclass(kw_only=True)
class PropertyTile(Tile):
    """A color-group street that can be developed."""

    color: str
    price: int
    base_rent: int
    house_rents: tuple[int, int, int, int]
    hotel_rent: int
    house_price: int
    mortgage_value: int

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "color": self.color,
            "price": self.price,
            "base_rent": self.base_rent,
            "house_rents": list(self.house_rents),
            "hotel_rent": self.hotel_rent,
            "house_price": self.house_price,
            "mortgage_value": self.mortgage_value,
        })
        return data


@dataclass(kw_only=True)
class RailroadTile(Tile):
    price: int
    mortgage_value: int
    rent_by_count: tuple[int, int, int, int]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "price": self.price,
            "mortgage_value": self.mortgage_value,
            "rent_by_count": list(self.rent_by_count),
        })
        return data


@dataclass(kw_only=True)
class UtilityTile(Tile):
    price: int
    mortgage_value: int
    multiplier_one: int = UTILITY_MULTIPLIERS[1]
    multiplier_two: int = UTILITY_MULTIPLIERS[2]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            "price": self.price,
            "mortgage_value": self.mortgage_value,
            "multiplier_one": self.multiplier_one,
            "multiplier_two": self.multiplier_two,
        })
        return data


@dataclass(kw_only=True)
class TaxTile(Tile):
    amount: int

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["amount"] = self.amount
        return data


AssetTile = PropertyTile | RailroadTile | UtilityTile


@dataclass
class BoardConfig:
    """A complete board layout plus its economy constants."""

    id: str
    name: str
    tiles: list[Tile]
    go_salary: int = GO_SALARY
    jail_fine: int = JAIL_FINE
    free_parking_jackpot: bool = True
    _by_id: dict[int, Tile] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        self.tiles = sorted(self.tiles, key=lambda t: t.id)
        self._by_id = {tile.id: tile for tile in self.tiles}

    @property
    def size(self) -> int:
        return len(self.tiles)

    @property
    def jail_position(self) -> int:
        for tile in self.tiles:
            if tile.kind == TileKind.JAIL:
                return tile.id
        return JAIL_POSITION

    def get_tile(self, tile_id: int) -> Tile | None:
        return self._by_id.get(tile_id)

    def get_asset(self, tile_id: int) -> AssetTile | None:
        """The tile if it can be owned, else None."""
        tile = self._by_id.get(tile_id)
        if isinstance(tile, (PropertyTile, RailroadTile, UtilityTile)):
            return tile
        return None

    def color_group(self, color: str) -> list[int]:
        """Tile ids of every property sharing ``color``."""
        return [
            tile.id for tile in self.tiles
            if isinstance(tile, PropertyTile) and tile.color == color
        ]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "go_salary": self.go_salary,
            "jail_fine": self.jail_fine,
            "free_parking_jackpot": self.free_parking_jackpot,
            "tiles": [tile.to_dict() for tile in self.tiles],
        }


# =============================================================================
# Loaders
# =============================================================================

def build_tile(
    position: int,
    name: str,
    kind: TileKind,
    price: int | None,
    color: str | None,
    rents: list[int] | None,
    house_price: int | None,
    mortgage_value: int | None = None
) -> Tile:
    if mortgage_value is None and price is not None:
        mortgage_value = price // 2

    if kind == TileKind.PROPERTY:
        if not rents or len(rents) != 6:
            raise ValueError(f"Property {position} needs six rent values")
        return PropertyTile(
            id=position,
            kind=kind,
            name=name,
            color=color,
            price=price,
            base_rent=rents[0],
            house_rents=tuple(rents[1:5]),
            hotel_rent=rents[5],
            house_price=house_price,
            mortgage_value=mortgage_value,
        )
    if kind == TileKind.RAILROAD:
        if not rents or len(rents) != 4:
            raise ValueError(f"Railroad {position} needs four rent values")
        return RailroadTile(
            id=position,
            kind=kind,
            name=name,
            price=price,
            mortgage_value=mortgage_value,
            rent_by_count=tuple(rents),
        )
    if kind == TileKind.UTILITY:
        return UtilityTile(id=position, kind=kind, name=name, price=price, mortgage_value=mortgage_value)
    if kind == TileKind.TAX:
        # Tax tiles keep their amount in the price column
        return TaxTile(id=position, kind=kind, name=name, amount=price)
    return Tile(id=position, kind=kind, name=name)


def build_classic_board() -> BoardConfig:
    """The built-in 40-tile layout."""
    tiles = [
        build_tile(position, name, TileKind(kind), price, color, rents, house_price)
        for position, name, kind, price, color, rents, house_price in CLASSIC_TILES
    ]
    return BoardConfig(id="classic", name="Classic", tiles=tiles)

