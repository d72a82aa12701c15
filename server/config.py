"""
Server configuration loaded from environment variables.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Server configuration."""

    # Server settings
    HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("SERVER_PORT", "8765"))
    CONNECT_TIMEOUT: float = float(os.getenv("CONNECT_TIMEOUT", "30"))

    # Content
    CONTENT_DIR: Path = Path(os.getenv("CONTENT_DIR", "./content"))
    BOARD_ID: str = os.getenv("BOARD_ID", "classic")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Sessions
    SESSION_TTL_HOURS: float = float(os.getenv("SESSION_TTL_HOURS", "24"))

    # Game timings (seconds)
    ANSWER_SECONDS: float = float(os.getenv("ANSWER_SECONDS", "5"))
    DRAWING_SECONDS: float = float(os.getenv("DRAWING_SECONDS", "30"))
    TURN_SECONDS: float = float(os.getenv("TURN_SECONDS", "45"))
    AUTO_ADVANCE_SECONDS: float = float(os.getenv("AUTO_ADVANCE_SECONDS", "5"))

    @property
    def session_ttl_seconds(self) -> float:
        return self.SESSION_TTL_HOURS * 60 * 60


config = Config()
settings = config  # Alias used by the network layer
