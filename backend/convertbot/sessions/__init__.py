"""Conversation sessions.

Tracks which stage each sender is in, owns their uploaded file until a
conversion takes it over, and sweeps idle sessions and old files.
"""
from .janitor import Janitor, SweepTarget, sweep_old_files
from .schemas import (
    InvalidChoice,
    InvalidTransition,
    Session,
    SessionError,
    SessionNotFound,
    SessionStage,
)
from .store import InMemorySessionStore, SessionStore, discard_file

__all__ = [
    "Janitor",
    "SweepTarget",
    "sweep_old_files",
    "InvalidChoice",
    "InvalidTransition",
    "Session",
    "SessionError",
    "SessionNotFound",
    "SessionStage",
    "InMemorySessionStore",
    "SessionStore",
    "discard_file",
]
