"""
Errors reported back to the caller that triggered them.
"""
from shared.enums import ErrorCode


class GameError(Exception):
    """
    An authorization or validation failure.

    Raised before any state is mutated; the transport turns it into an
    ERROR message for the originating connection only.
    """

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or code.value.replace("_", " ").capitalize()
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}
