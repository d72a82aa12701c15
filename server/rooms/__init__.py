"""
Room, member and session models.

The registry lives in ``server.rooms.registry``; it builds the game-specific
room variants, which themselves extend the models exported here.
"""
from .models import Player, Session, SessionGrant, Room, RoomMeta, RoomMetaView, RoomEngine

__all__ = [
    "Player",
    "Session",
    "SessionGrant",
    "Room",
    "RoomMeta",
    "RoomMetaView",
    "RoomEngine",
]
