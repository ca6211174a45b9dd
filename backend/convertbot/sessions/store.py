"""Session store: the single source of truth for in-flight conversations.

``SessionStore`` is the interface the orchestrator depends on, so a shared
store (Redis, a database) can replace ``InMemorySessionStore`` without touching
the conversation logic.

Thread Safety:
    ``InMemorySessionStore`` is a plain dict without locks. Every operation is
    synchronous, so on a single asyncio event loop no other coroutine can run
    in the middle of one. It is NOT safe to share across threads.
"""
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .schemas import (
    InvalidChoice,
    InvalidTransition,
    Session,
    SessionNotFound,
    SessionStage,
)

logger = logging.getLogger(__name__)


def discard_file(path: Optional[Path]) -> bool:
    """Delete *path* if it exists; log and swallow filesystem errors.

    Returns:
        True if a file was removed.
    """
    if path is None:
        return False
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")
        return False


class SessionStore(ABC):
    """Abstract per-sender session store."""

    @abstractmethod
    def get(self, sender: str) -> Optional[Session]:
        """Return the session for *sender* without touching it."""

    @abstractmethod
    def get_or_create(self, sender: str) -> Session:
        """Return the sender's session, creating an AWAITING_FILE one if absent.

        Always refreshes ``last_active_at``.
        """

    @abstractmethod
    def advance_to_format_choice(
        self,
        sender: str,
        file_path: Path,
        detected_format: str,
        options: Iterable[str],
    ) -> Session:
        """Record the upload and move the session to AWAITING_FORMAT_CHOICE.

        Raises:
            SessionNotFound: If the sender has no session.
            InvalidTransition: If the session is not in AWAITING_FILE.
        """

    @abstractmethod
    def resolve_choice(self, sender: str, raw_input: str) -> str:
        """Resolve a menu reply to a canonical format.

        Accepts a 1-based option number or an exact, case-insensitive format
        name. Out-of-range numbers are treated as literal text.

        Raises:
            SessionNotFound: If the session is gone or lacks its upload.
            InvalidChoice: If the input matches no option.
        """

    @abstractmethod
    def hand_off_upload(self, sender: str) -> Optional[Path]:
        """Detach the uploaded file from the session and return it.

        After a conversion starts, the caller owns the file and must delete
        it. The session stays in the store without an upload, so expiring it
        no longer touches the file.
        """

    @abstractmethod
    def complete_and_remove(
        self, sender: str, expected: Optional[Session] = None
    ) -> Optional[Session]:
        """Remove the sender's session (no-op if absent).

        The caller must already have disposed of the uploaded file. When
        *expected* is given, the session is removed only if it is that exact
        object, so a newer conversation for the same sender survives.
        """

    @abstractmethod
    def expire_stale(self, now: float, timeout_seconds: float) -> List[str]:
        """Remove sessions idle for longer than *timeout_seconds*.

        Deletes any uploaded file an expired session still owns.

        Returns:
            Sender ids of the sessions that were removed.
        """

    @abstractmethod
    def senders(self) -> List[str]:
        """Sender ids with an active session."""

    def __len__(self) -> int:
        return len(self.senders())


class InMemorySessionStore(SessionStore):
    """Process-local session store backed by a dict."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._sessions: Dict[str, Session] = {}
        self._clock = clock

    def get(self, sender: str) -> Optional[Session]:
        return self._sessions.get(sender)

    def get_or_create(self, sender: str) -> Session:
        now = self._clock()
        session = self._sessions.get(sender)
        if session is None:
            session = Session(sender=sender, last_active_at=now)
            self._sessions[sender] = session
            logger.debug(f"Created session for {sender}")
        session.last_active_at = now
        return session

    def _require(self, sender: str) -> Session:
        session = self._sessions.get(sender)
        if session is None:
            raise SessionNotFound(sender)
        return session

    def advance_to_format_choice(
        self,
        sender: str,
        file_path: Path,
        detected_format: str,
        options: Iterable[str],
    ) -> Session:
        session = self._require(sender)
        if session.stage is not SessionStage.AWAITING_FILE:
            raise InvalidTransition(
                f"cannot accept a file for {sender} in stage {session.stage.value}"
            )
        session.uploaded_file = Path(file_path)
        session.detected_format = detected_format
        session.options = tuple(options)
        session.stage = SessionStage.AWAITING_FORMAT_CHOICE
        logger.info(f"Session {sender}: {detected_format} file stored at {file_path}")
        return session

    def resolve_choice(self, sender: str, raw_input: str) -> str:
        session = self._require(sender)
        if (
            session.stage is not SessionStage.AWAITING_FORMAT_CHOICE
            or not session.options
            or session.uploaded_file is None
        ):
            raise SessionNotFound(sender, reason="session has no pending upload")

        chosen = (raw_input or "").strip().lower()
        # ASCII digits only
        if chosen.isascii() and chosen.isdigit():
            index = int(chosen) - 1
            if 0 <= index < len(session.options):
                chosen = session.options[index]

        if chosen not in session.options:
            raise InvalidChoice(raw_input)
        return chosen

    def hand_off_upload(self, sender: str) -> Optional[Path]:
        session = self._sessions.get(sender)
        if session is None:
            return None
        upload, session.uploaded_file = session.uploaded_file, None
        return upload

    def complete_and_remove(
        self, sender: str, expected: Optional[Session] = None
    ) -> Optional[Session]:
        session = self._sessions.get(sender)
        if session is None:
            return None
        if expected is not None and session is not expected:
            logger.debug(f"Session for {sender} was replaced; leaving it in place")
            return None
        del self._sessions[sender]
        logger.debug(f"Removed session for {sender}")
        return session

    def expire_stale(self, now: float, timeout_seconds: float) -> List[str]:
        expired = [
            sender
            for sender, session in self._sessions.items()
            if session.is_stale(now, timeout_seconds)
        ]
        for sender in expired:
            session = self._sessions.pop(sender)
            discard_file(session.uploaded_file)
            logger.info(f"Cleared expired session for {sender}")
        return expired

    def senders(self) -> List[str]:
        return list(self._sessions)
