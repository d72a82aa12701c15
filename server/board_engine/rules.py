"""
Rule enforcement and validation for the board game.

The rule engine reads the layout and the live bank state but never
mutates either; the engine applies whatever a validation allows.
"""
from dataclasses import dataclass
from enum import Enum, auto

from shared.constants import DEFAULT_DICE_TOTAL, HOTEL_DEVELOPMENT_LEVEL

from .board import BoardConfig, PropertyTile, RailroadTile, UtilityTile
from .player import Asset, BankPlayer


class ActionResult(Enum):
    """Result of attempting an action."""
    SUCCESS = auto()
    INSUFFICIENT_FUNDS = auto()
    INVALID_PROPERTY = auto()
    NOT_OWNER = auto()
    NO_MONOPOLY = auto()
    UNEVEN_BUILDING = auto()
    MAX_DEVELOPMENT = auto()
    PROPERTY_MORTGAGED = auto()
    NOT_MORTGAGED = auto()
    HAS_BUILDINGS = auto()
    NO_BUILDINGS = auto()


@dataclass
class ValidationResult:
    """Result of validating an action."""
    valid: bool
    result: ActionResult
    message: str = ""

    @classmethod
    def success(cls, message: str = "") -> "ValidationResult":
        return cls(valid=True, result=ActionResult.SUCCESS, message=message)

    @classmethod
    def failure(cls, result: ActionResult, message: str = "") -> "ValidationResult":
        return cls(valid=False, result=result, message=message)


def redeem_cost(mortgage_value: int) -> int:
    """110% of the mortgage value, rounded up."""
    return (mortgage_value * 11 + 9) // 10


class RuleEngine:
    """
    Rent calculation and validation of property operations.
    """

    def __init__(self, board: BoardConfig, bank_players: dict[str, BankPlayer]):
        """
        Args:
            board: The room's layout
            bank_players: Live player_id -> BankPlayer map owned by the room
        """
        self.board = board
        self.bank_players = bank_players

    # =========================================================================
    # Ownership
    # =========================================================================

    def owner_of(self, tile_id: int) -> BankPlayer | None:
        for bank_player in self.bank_players.values():
            if tile_id in bank_player.assets:
                return bank_player
        return None

    def has_monopoly(self, owner: BankPlayer, color: str) -> bool:
        """Full unmortgaged ownership of a color group."""
        group = self.board.color_group(color)
        return bool(group) and all(
            tile_id in owner.assets and not owner.assets[tile_id].mortgaged
            for tile_id in group
        )

    def owns_full_group(self, owner: BankPlayer, color: str) -> bool:
        """Full ownership of a color group, mortgaged tiles included."""
        group = self.board.color_group(color)
        return bool(group) and all(tile_id in owner.assets for tile_id in group)

    def _count_unmortgaged(self, owner: BankPlayer, tile_type: type) -> int:
        return sum(
            1 for asset in owner.assets.values()
            if not asset.mortgaged and isinstance(self.board.get_tile(asset.tile_id), tile_type)
        )

    def _group_levels(self, owner: BankPlayer, color: str) -> list[int]:
        return [
            owner.assets[tile_id].development_level
            for tile_id in self.board.color_group(color)
            if tile_id in owner.assets
        ]

    # =========================================================================
    # Rent
    # =========================================================================

    def calculate_rent(self, tile_id: int, dice_total: int | None = None) -> int:
        """
        Rent owed by a visitor landing on ``tile_id``.

        Mortgaged or unowned tiles charge nothing.
        """
        tile = self.board.get_asset(tile_id)
        owner = self.owner_of(tile_id)
        if tile is None or owner is None:
            return 0

        asset = owner.assets[tile_id]
        if asset.mortgaged:
            return 0

        if isinstance(tile, PropertyTile):
            if asset.hotel:
                return tile.hotel_rent
            if asset.houses > 0:
                return tile.house_rents[asset.houses - 1]
            if self.has_monopoly(owner, tile.color):
                return tile.base_rent * 2
            return tile.base_rent

        if isinstance(tile, RailroadTile):
            count = self._count_unmortgaged(owner, RailroadTile)
            index = min(max(count - 1, 0), len(tile.rent_by_count) - 1)
            return tile.rent_by_count[index]

        if isinstance(tile, UtilityTile):
            count = self._count_unmortgaged(owner, UtilityTile)
            multiplier = tile.multiplier_two if count >= 2 else tile.multiplier_one
            return multiplier * (dice_total or DEFAULT_DICE_TOTAL)

        return 0

    # =========================================================================
    # Building
    # =========================================================================

    def _owned_property(self, player: BankPlayer, tile_id: int) -> tuple[PropertyTile | None, Asset | None, ValidationResult | None]:
        tile = self.board.get_tile(tile_id)
        if not isinstance(tile, PropertyTile):
            return None, None, ValidationResult.failure(
                ActionResult.INVALID_PROPERTY,
                "Can only build on color properties"
            )
        asset = player.assets.get(tile_id)
        if asset is None:
            return None, None, ValidationResult.failure(
                ActionResult.NOT_OWNER,
                "You don't own this property"
            )
        return tile, asset, None

    def validate_build(self, player: BankPlayer, tile_id: int) -> ValidationResult:
        """Validate buying one house (or the hotel after four houses)."""
        tile, asset, failure = self._owned_property(player, tile_id)
        if failure:
            return failure

        if asset.mortgaged:
            return ValidationResult.failure(
                ActionResult.PROPERTY_MORTGAGED,
                "Cannot build on mortgaged property"
            )

        if not self.has_monopoly(player, tile.color):
            return ValidationResult.failure(
                ActionResult.NO_MONOPOLY,
                "You need an unmortgaged monopoly to build"
            )

        if asset.development_level >= HOTEL_DEVELOPMENT_LEVEL:
            return ValidationResult.failure(
                ActionResult.MAX_DEVELOPMENT,
                "Property already has a hotel"
            )

        # Even building rule
        if asset.development_level > min(self._group_levels(player, tile.color)):
            return ValidationResult.failure(
                ActionResult.UNEVEN_BUILDING,
                "Must build evenly across all properties in group"
            )

        if player.cash < tile.house_price:
            return ValidationResult.failure(
                ActionResult.INSUFFICIENT_FUNDS,
                f"You need ${tile.house_price} to build"
            )

        return ValidationResult.success()

    def validate_sell(self, player: BankPlayer, tile_id: int) -> ValidationResult:
        """Validate selling one house, or breaking a hotel back to four houses."""
        tile, asset, failure = self._owned_property(player, tile_id)
        if failure:
            return failure

        if not self.owns_full_group(player, tile.color):
            return ValidationResult.failure(
                ActionResult.NO_MONOPOLY,
                "You must own the whole group to sell buildings"
            )

        if asset.development_level == 0:
            return ValidationResult.failure(
                ActionResult.NO_BUILDINGS,
                "No buildings to sell"
            )

        # Even selling rule
        if not asset.hotel and asset.development_level < max(self._group_levels(player, tile.color)):
            return ValidationResult.failure(
                ActionResult.UNEVEN_BUILDING,
                "Must sell evenly across all properties in group"
            )

        return ValidationResult.success()

    # =========================================================================
    # Mortgage
    # =========================================================================

    def validate_mortgage(self, player: BankPlayer, tile_id: int) -> ValidationResult:
        if self.board.get_asset(tile_id) is None:
            return ValidationResult.failure(
                ActionResult.INVALID_PROPERTY,
                "This is not a property"
            )

        asset = player.assets.get(tile_id)
        if asset is None:
            return ValidationResult.failure(
                ActionResult.NOT_OWNER,
                "You don't own this property"
            )

        if asset.mortgaged:
            return ValidationResult.failure(
                ActionResult.PROPERTY_MORTGAGED,
                "Property is already mortgaged"
            )

        if asset.development_level > 0:
            return ValidationResult.failure(
                ActionResult.HAS_BUILDINGS,
                "Must sell all buildings before mortgaging"
            )

        return ValidationResult.success()

    def validate_redeem(self, player: BankPlayer, tile_id: int) -> ValidationResult:
        tile = self.board.get_asset(tile_id)
        if tile is None:
            return ValidationResult.failure(
                ActionResult.INVALID_PROPERTY,
                "This is not a property"
            )

        asset = player.assets.get(tile_id)
        if asset is None:
            return ValidationResult.failure(
                ActionResult.NOT_OWNER,
                "You don't own this property"
            )

        if not asset.mortgaged:
            return ValidationResult.failure(
                ActionResult.NOT_MORTGAGED,
                "Property is not mortgaged"
            )

        cost = redeem_cost(tile.mortgage_value)
        if player.cash < cost:
            return ValidationResult.failure(
                ActionResult.INSUFFICIENT_FUNDS,
                f"You need ${cost} to lift the mortgage"
            )

        return ValidationResult.success()
