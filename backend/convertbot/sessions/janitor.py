"""Background sweeps for idle sessions and old files.

Two independent loops run for the process lifetime:

* a short-interval session sweep that expires idle conversations and
  deletes the uploads they still own, and
* a long-interval artifact sweep that removes ``converted_*`` files from
  the public directory and ``temp_*`` downloads from the upload directory
  once they are older than the configured maximum age.

Neither loop aborts on a filesystem error for a single entry.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .store import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepTarget:
    directory: Path
    prefix:    str


def sweep_old_files(
    directory: Path,
    prefix: str,
    max_age_seconds: float,
    now: Optional[float] = None,
) -> List[Path]:
    """Delete files in *directory* named ``prefix*`` older than *max_age_seconds*.

    Age is measured from the file's modification time. Entries that vanish or
    cannot be stat'ed/deleted are logged and skipped.

    Returns:
        The paths that were deleted.
    """
    now = time.time() if now is None else now
    removed: List[Path] = []
    try:
        entries = list(Path(directory).iterdir())
    except OSError as e:
        logger.warning("Cannot list %s for cleanup: %s", directory, e)
        return removed

    for path in entries:
        if not path.name.startswith(prefix):
            continue
        try:
            if not path.is_file():
                continue
            if now - path.stat().st_mtime <= max_age_seconds:
                continue
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning("Cleanup skipped %s: %s", path, e)
            continue
        removed.append(path)
        logger.info("Removed old file: %s", path)
    return removed


class Janitor:
    """Runs the session-idle and artifact-age sweeps as asyncio tasks."""

    def __init__(
        self,
        store: SessionStore,
        targets: Sequence[SweepTarget],
        session_timeout_seconds: float,
        session_sweep_interval: float,
        artifact_max_age_seconds: float,
        artifact_sweep_interval: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._targets = list(targets)
        self._session_timeout = session_timeout_seconds
        self._session_interval = session_sweep_interval
        self._artifact_max_age = artifact_max_age_seconds
        self._artifact_interval = artifact_sweep_interval
        self._clock = clock
        self._tasks: List[asyncio.Task] = []  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start both sweep loops."""
        self._tasks = [
            asyncio.create_task(self._session_loop(), name="session-sweep"),
            asyncio.create_task(self._artifact_loop(), name="artifact-sweep"),
        ]
        logger.info(
            "Janitor started (session timeout=%ss every %ss, artifact max age=%ss every %ss)",
            self._session_timeout,
            self._session_interval,
            self._artifact_max_age,
            self._artifact_interval,
        )

    async def stop(self) -> None:
        """Cancel the sweep loops."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Janitor stopped")

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def sweep_sessions(self) -> List[str]:
        """Expire idle sessions once."""
        expired = self._store.expire_stale(self._clock(), self._session_timeout)
        if expired:
            logger.info("Session sweep: expired %d idle sessions", len(expired))
        return expired

    def sweep_artifacts(self) -> List[Path]:
        """Remove old converted files and stale downloads once."""
        now = self._clock()
        removed: List[Path] = []
        for target in self._targets:
            removed.extend(
                sweep_old_files(target.directory, target.prefix, self._artifact_max_age, now)
            )
        if removed:
            logger.info("Artifact sweep: removed %d files", len(removed))
        return removed

    async def _session_loop(self) -> None:
        while True:
            await asyncio.sleep(self._session_interval)
            try:
                self.sweep_sessions()
            except Exception:
                logger.exception("Session sweep failed")

    async def _artifact_loop(self) -> None:
        while True:
            await asyncio.sleep(self._artifact_interval)
            try:
                await asyncio.to_thread(self.sweep_artifacts)
            except Exception:
                logger.exception("Artifact sweep failed")
