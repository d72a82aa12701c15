"""
Identifier, token and randomness helpers.
"""
import random
import secrets
import time
import uuid
from typing import Sequence, TypeVar

from shared.constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH

T = TypeVar("T")


def create_id(prefix: str) -> str:
    """Opaque identifier such as ``p_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def create_session_token() -> str:
    """32 random bytes, URL-safe base64."""
    return secrets.token_urlsafe(32)


def create_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    """Short human-friendly code without ambiguous characters (0/O, 1/I)."""
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def now() -> float:
    """Wall-clock time in seconds."""
    return time.time()


def to_millis(timestamp: float | None) -> int | None:
    """Epoch milliseconds for snapshots, None passes through."""
    if timestamp is None:
        return None
    return int(timestamp * 1000)


def shuffled(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a shuffled copy of ``items``."""
    copy = list(items)
    (rng or random).shuffle(copy)
    return copy
