"""Session state and session errors."""
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple


class SessionStage(str, Enum):
    """Conversation stage for a sender.

    Attributes:
        AWAITING_FILE: Waiting for the user to send an attachment.
        AWAITING_FORMAT_CHOICE: File received, waiting for the target format.
    """
    AWAITING_FILE = "awaiting_file"
    AWAITING_FORMAT_CHOICE = "awaiting_format_choice"


@dataclass
class Session:
    """Per-sender conversation state.

    ``uploaded_file`` is set only while the session is in
    AWAITING_FORMAT_CHOICE; the session owns that file until it is handed to a
    conversion or deleted by expiry.
    """
    sender:          str
    stage:           SessionStage    = SessionStage.AWAITING_FILE
    last_active_at:  float           = field(default_factory=time.time)
    uploaded_file:   Optional[Path]  = None
    detected_format: Optional[str]   = None
    options:         Tuple[str, ...] = ()

    def is_stale(self, now: float, timeout_seconds: float) -> bool:
        return now - self.last_active_at > timeout_seconds


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class SessionNotFound(SessionError):
    """No usable session exists for the sender (never started or expired)."""

    def __init__(self, sender: str, reason: str = "no active session"):
        super().__init__(f"{reason} for {sender}")
        self.sender = sender


class InvalidChoice(SessionError):
    """The user's reply does not name one of the offered formats."""

    def __init__(self, raw_input: str):
        super().__init__(f"invalid format choice: {raw_input!r}")
        self.raw_input = raw_input


class InvalidTransition(SessionError):
    """An operation was attempted from a stage that does not allow it."""
