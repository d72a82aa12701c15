"""
Enumerations used throughout the server and the wire protocol.
"""
from enum import Enum


class GameType(str, Enum):
    """Kinds of room the server can host."""
    QUIZ = "quiz"
    BOARD = "board"


class Role(str, Enum):
    """Role of a member inside a room."""
    HOST = "host"
    PLAYER = "player"


class HostMode(str, Enum):
    """How the room creator takes part in the game."""
    PLAYER = "player"
    MODERATOR = "moderator"
    AI = "ai"


class RoomStatus(str, Enum):
    """Lifecycle of a room."""
    LOBBY = "lobby"
    IN_GAME = "in_game"
    FINISHED = "finished"


class Language(str, Enum):
    """Display language preference of a member."""
    AR = "ar"
    EN = "en"


# =============================================================================
# Quiz
# =============================================================================

class RoundType(str, Enum):
    """Round flavours of the quiz game."""
    REVERSED = "reversed"
    FLAG = "flag"
    TRIVIA = "trivia"
    DRAWING = "drawing"


class DrawingPhase(str, Enum):
    """Phases of a drawing-and-vote round."""
    READY_UP = "ready_up"
    DRAWING = "drawing"
    VOTING = "voting"
    DONE = "done"


# =============================================================================
# Board
# =============================================================================

class RulePreset(str, Enum):
    """Rule set of a board room."""
    OFFICIAL = "official"
    HOUSE = "house"


class TileKind(str, Enum):
    """Types of tiles on the board."""
    GO = "go"
    PROPERTY = "property"
    RAILROAD = "railroad"
    UTILITY = "utility"
    TAX = "tax"
    CHANCE = "chance"
    CHEST = "chest"
    JAIL = "jail"
    GO_TO_JAIL = "go_to_jail"
    FREE_PARKING = "free_parking"


class PendingActionType(str, Enum):
    """What input the board engine accepts right now."""
    ROLL = "roll"
    BUY_OR_AUCTION = "buy_or_auction"
    AUCTION = "auction"
    END_TURN = "end_turn"


class TradeStatus(str, Enum):
    """Status of a trade offer."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class HouseOperation(str, Enum):
    """Building operations on a property."""
    BUY = "buy"
    SELL = "sell"


class HostAction(str, Enum):
    """Administrative actions available to the room host."""
    PAUSE = "pause"
    RESUME = "resume"
    SKIP = "skip"
    KICK = "kick"
    SCORE_ADJUST = "score_adjust"
    TOGGLE_TIMER = "toggle_timer"


# =============================================================================
# Protocol
# =============================================================================

class ErrorCode(str, Enum):
    """Codes carried by ERROR messages."""
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    ROOM_FULL = "ROOM_FULL"
    INVALID_SESSION = "INVALID_SESSION"
    FORBIDDEN = "FORBIDDEN"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    INVALID_ACTION = "INVALID_ACTION"
    ALREADY_STARTED = "ALREADY_STARTED"
    NOT_STARTED = "NOT_STARTED"
    PIECE_COLOR_TAKEN = "PIECE_COLOR_TAKEN"

    # Transport
    PARSE_ERROR = "PARSE_ERROR"
    UNKNOWN_MESSAGE_TYPE = "UNKNOWN_MESSAGE_TYPE"
    CONNECT_REQUIRED = "CONNECT_REQUIRED"
    TIMEOUT = "TIMEOUT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class MessageType(str, Enum):
    """Types of messages between client and server."""
    # Connection
    CONNECT = "CONNECT"

    # Lobby
    CREATE_ROOM = "CREATE_ROOM"
    JOIN_ROOM = "JOIN_ROOM"
    RECONNECT = "RECONNECT"
    ROOM_META = "ROOM_META"
    ROOM_SESSION = "ROOM_SESSION"
    LEAVE_ROOM = "LEAVE_ROOM"

    # Quiz actions
    QUIZ_START = "QUIZ_START"
    QUIZ_NEXT_ROUND = "QUIZ_NEXT_ROUND"
    QUIZ_BUZZ = "QUIZ_BUZZ"
    QUIZ_ANSWER = "QUIZ_ANSWER"
    QUIZ_READY = "QUIZ_READY"
    QUIZ_SUBMIT_DRAWING = "QUIZ_SUBMIT_DRAWING"
    QUIZ_VOTE_DRAWING = "QUIZ_VOTE_DRAWING"
    QUIZ_VOTE_REPEAT = "QUIZ_VOTE_REPEAT"
    QUIZ_GIVE_UP = "QUIZ_GIVE_UP"
    QUIZ_HOST_ACTION = "QUIZ_HOST_ACTION"

    # Board actions
    BOARD_START = "BOARD_START"
    BOARD_ROLL = "BOARD_ROLL"
    BOARD_BUY = "BOARD_BUY"
    BOARD_BID = "BOARD_BID"
    BOARD_CLOSE_AUCTION = "BOARD_CLOSE_AUCTION"
    BOARD_END_TURN = "BOARD_END_TURN"
    BOARD_MORTGAGE = "BOARD_MORTGAGE"
    BOARD_HOUSE = "BOARD_HOUSE"
    BOARD_PROPOSE_TRADE = "BOARD_PROPOSE_TRADE"
    BOARD_DECIDE_TRADE = "BOARD_DECIDE_TRADE"
    BOARD_CANCEL_TRADE = "BOARD_CANCEL_TRADE"
    BOARD_HOST_ACTION = "BOARD_HOST_ACTION"

    # Server -> client
    STATE_SYNC = "STATE_SYNC"
    EVENT = "EVENT"
    HOST_TRANSFERRED = "HOST_TRANSFERRED"

    # Errors
    ERROR = "ERROR"
