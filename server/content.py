"""
Static content: quiz question banks and board layouts.

Loaded once at startup from CONTENT_DIR and handed to the engines as plain
in-memory collections. Engines never read files themselves.
"""

import json
import logging
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator, model_validator

from shared.constants import GO_SALARY, JAIL_FINE
from shared.enums import TileKind

from server.board_engine.board import BoardConfig, build_classic_board, build_tile
from server.quiz_engine.state import FlagQuestion, QuizContent, ReversedQuestion, TriviaQuestion


logger = logging.getLogger(__name__)


class _QuestionRecord(BaseModel):
    id: str = Field(min_length=1)
    answer: str = Field(min_length=1)
    alt: list[str] = Field(default_factory=list)


class ReversedRecord(_QuestionRecord):
    reversed: str = Field(min_length=1)


class FlagRecord(_QuestionRecord):
    country_code: str = Field(min_length=2, max_length=3)


class TriviaRecord(_QuestionRecord):
    question: str = Field(min_length=1)


class TileRecord(BaseModel):
    """One tile of a board layout; which fields are required depends on ``kind``."""

    id: int = Field(ge=0)
    kind: TileKind
    name: str | None = None
    price: int | None = Field(default=None, ge=0)
    amount: int | None = Field(default=None, ge=0)
    color: str | None = None
    rents: list[Annotated[int, Field(ge=0)]] | None = None
    house_price: int | None = Field(default=None, ge=0)
    mortgage_value: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_kind_fields(self):
        if self.kind == TileKind.PROPERTY:
            if self.price is None or self.house_price is None or not self.color:
                raise ValueError(f"Property {self.id} needs price, color and house_price")
            if self.rents is None or len(self.rents) != 6:
                raise ValueError(f"Property {self.id} needs six rent values")
        elif self.kind == TileKind.RAILROAD:
            if self.price is None:
                raise ValueError(f"Railroad {self.id} needs a price")
            if self.rents is None or len(self.rents) != 4:
                raise ValueError(f"Railroad {self.id} needs four rent values")
        elif self.kind == TileKind.UTILITY:
            if self.price is None:
                raise ValueError(f"Utility {self.id} needs a price")
        elif self.kind == TileKind.TAX:
            if self.amount is None:
                raise ValueError(f"Tax {self.id} needs an amount")
        return self


class BoardRecord(BaseModel):
    id: str = "custom"
    name: str | None = None
    go_salary: int = Field(default=GO_SALARY, ge=0)
    jail_fine: int = Field(default=JAIL_FINE, ge=0)
    free_parking_jackpot: bool = True
    tiles: list[TileRecord] = Field(min_length=1)

    @field_validator("tiles")
    @classmethod
    def _contiguous_ids(cls, tiles: list[TileRecord]) -> list[TileRecord]:
        ids = sorted(tile.id for tile in tiles)
        if ids != list(range(len(tiles))):
            raise ValueError("Board tile ids must run from 0 without gaps")
        return tiles


_reversed_adapter = TypeAdapter(list[ReversedRecord])
_flags_adapter = TypeAdapter(list[FlagRecord])
_trivia_adapter = TypeAdapter(list[TriviaRecord])
_drawing_adapter = TypeAdapter(list[str])


def _read_json(path: Path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _load_bank(path: Path, adapter: TypeAdapter) -> list:
    """Missing banks are empty; malformed ones are an error."""
    if not path.exists():
        logger.warning(f"Question bank {path} not found, round type disabled")
        return []
    try:
        return adapter.validate_python(_read_json(path))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid question bank {path}: {e}") from e


def load_quiz_content(content_dir: Path) -> QuizContent:
    """Read ``quiz/{reversed,flags,trivia,drawing}.json`` under ``content_dir``."""
    quiz_dir = Path(content_dir) / "quiz"

    reversed_records = _load_bank(quiz_dir / "reversed.json", _reversed_adapter)
    flag_records = _load_bank(quiz_dir / "flags.json", _flags_adapter)
    trivia_records = _load_bank(quiz_dir / "trivia.json", _trivia_adapter)
    drawing = _load_bank(quiz_dir / "drawing.json", _drawing_adapter)

    content = QuizContent(
        reversed=[
            ReversedQuestion(id=r.id, answer=r.answer, reversed=r.reversed, alt=tuple(r.alt))
            for r in reversed_records
        ],
        flags=[
            FlagQuestion(id=r.id, answer=r.answer, country_code=r.country_code.lower(), alt=tuple(r.alt))
            for r in flag_records
        ],
        trivia=[
            TriviaQuestion(id=r.id, answer=r.answer, question=r.question, alt=tuple(r.alt))
            for r in trivia_records
        ],
        drawing=[word.strip() for word in drawing if word.strip()],
    )

    logger.info(
        f"Loaded quiz content: {len(content.reversed)} reversed, {len(content.flags)} flags, "
        f"{len(content.trivia)} trivia, {len(content.drawing)} drawing prompts"
    )
    return content


def board_from_dict(data) -> BoardConfig:
    """
    Build a layout from its JSON form.

    Raises:
        ValidationError: if tiles are missing, duplicated or malformed
    """
    record = BoardRecord.model_validate(data)
    tiles = [
        build_tile(
            position=tile.id,
            name=tile.name or tile.kind.value,
            kind=tile.kind,
            price=tile.amount if tile.kind == TileKind.TAX else tile.price,
            color=tile.color,
            rents=tile.rents,
            house_price=tile.house_price,
            mortgage_value=tile.mortgage_value,
        )
        for tile in record.tiles
    ]
    return BoardConfig(
        id=record.id,
        name=record.name or record.id,
        tiles=tiles,
        go_salary=record.go_salary,
        jail_fine=record.jail_fine,
        free_parking_jackpot=record.free_parking_jackpot,
    )


def load_board(content_dir: Path, board_id: str) -> BoardConfig:
    """Read ``board/<board_id>.json``, falling back to the built-in classic layout."""
    path = Path(content_dir) / "board" / f"{board_id}.json"
    if not path.exists():
        if board_id != "classic":
            logger.warning(f"Board layout {board_id} not found, using classic board")
        return build_classic_board()

    try:
        board = board_from_dict(_read_json(path))
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid board layout {path}: {e}") from e

    logger.info(f"Loaded board layout {board.id} with {board.size} tiles")
    return board
