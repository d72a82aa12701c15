"""
Message protocol for client-server communication.

All messages are JSON objects with a "type" field and optional "data" field.
"""

from dataclasses import dataclass, field
from typing import Any
import json
import time

from shared.enums import MessageType, ErrorCode


@dataclass
class Message:
    """Base message structure for all client-server communication."""
    type: MessageType
    data: dict[str, Any] = field(default_factory=dict)
    request_id: str | None = None  # Optional, for matching requests to responses

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "type": self.type.value,
            "data": self.data,
            "request_id": self.request_id,
        }

    @classmethod
    def from_json(cls, json_str: str) -> "Message":
        """Deserialize message from JSON string."""
        raw = json.loads(json_str)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict) -> "Message":
        """Create message from dictionary."""
        data = raw.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("data must be an object")
        return cls(
            type=MessageType(raw["type"]),
            data=data,
            request_id=raw.get("request_id"),
        )


@dataclass
class ErrorMessage(Message):
    """Error response message."""
    type: MessageType = MessageType.ERROR

    @classmethod
    def create(
        cls,
        message: str,
        code: ErrorCode | str = ErrorCode.INTERNAL_ERROR,
        request_id: str | None = None
    ) -> "ErrorMessage":
        """Create an error message."""
        if isinstance(code, ErrorCode):
            code = code.value
        return cls(
            data={"message": message, "code": code},
            request_id=request_id,
        )


# =============================================================================
# Server -> Client Messages
# =============================================================================

@dataclass
class RoomSessionMessage(Message):
    """Credentials issued by create, join and reconnect."""
    type: MessageType = MessageType.ROOM_SESSION

    @classmethod
    def create(cls, grant: dict, request_id: str | None = None) -> "RoomSessionMessage":
        return cls(data=grant, request_id=request_id)


@dataclass
class RoomMetaMessage(Message):
    """Public summary of a room, used by lobby screens."""
    type: MessageType = MessageType.ROOM_META

    @classmethod
    def create(cls, meta: dict, request_id: str | None = None) -> "RoomMetaMessage":
        return cls(data=meta, request_id=request_id)


@dataclass
class ConnectedMessage(Message):
    """Acknowledges a successful CONNECT."""
    type: MessageType = MessageType.CONNECT

    @classmethod
    def create(
        cls,
        room_code: str,
        player_id: str,
        request_id: str | None = None
    ) -> "ConnectedMessage":
        return cls(
            data={"success": True, "room_code": room_code, "player_id": player_id},
            request_id=request_id,
        )


@dataclass
class StateSyncMessage(Message):
    """Authoritative full snapshot of a room."""
    type: MessageType = MessageType.STATE_SYNC

    @classmethod
    def create(cls, room_code: str, state: dict) -> "StateSyncMessage":
        return cls(data={
            "room_code": room_code,
            "state": state,
            "server_time": int(time.time() * 1000),
        })


@dataclass
class EventMessage(Message):
    """Point-in-time notification produced by an engine."""
    type: MessageType = MessageType.EVENT

    @classmethod
    def create(cls, event: str, payload: dict) -> "EventMessage":
        return cls(data={"event": event, "payload": payload})


@dataclass
class HostTransferredMessage(Message):
    """Host authority moved to another member."""
    type: MessageType = MessageType.HOST_TRANSFERRED

    @classmethod
    def create(cls, room_code: str, host_id: str) -> "HostTransferredMessage":
        return cls(data={"room_code": room_code, "host_id": host_id})


# =============================================================================
# Helper Functions
# =============================================================================

def parse_message(json_str: str) -> Message:
    """
    Parse a JSON string into a Message.

    Raises:
        ValueError: if the frame is not a JSON object with a known type
    """
    raw = json.loads(json_str)
    if not isinstance(raw, dict):
        raise ValueError("Message must be a JSON object")
    if "type" not in raw:
        raise ValueError("Message has no type")
    return Message.from_dict(raw)
