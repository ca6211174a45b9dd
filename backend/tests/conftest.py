"""Shared test fixtures and fakes for the converter bot tests."""
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from convertbot.conversion.service import CopyConverter
from convertbot.publishing.publisher import PublicUrlResolver
from convertbot.sessions.store import InMemorySessionStore
from convertbot.transport.twilio_client import MessageSendError
from convertbot.webhook.orchestrator import ConversationOrchestrator

PDF_BYTES = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n1 0 obj\n"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTwilio:
    """Stands in for TwilioClient: writes canned downloads, records sends."""

    def __init__(self, content: bytes = PDF_BYTES):
        self.content = content
        self.download_error: Optional[Exception] = None
        self.fail_media_sends = False
        self.fail_all_sends = False
        self.downloads: List[str] = []
        self.sent: List[Tuple[str, str, Optional[List[str]]]] = []
        self._counter = 0

    async def download_media(self, url: str, dest_dir: Path) -> Path:
        self.downloads.append(url)
        if self.download_error is not None:
            raise self.download_error
        self._counter += 1
        path = Path(dest_dir) / f"temp_test_{self._counter}"
        path.write_bytes(self.content)
        return path

    async def send_message(self, to: str, body: str, media_urls=None) -> str:
        if self.fail_all_sends or (media_urls and self.fail_media_sends):
            raise MessageSendError(f"send to {to} failed")
        self.sent.append((to, body, media_urls))
        return f"SM{len(self.sent):032d}"

    async def aclose(self) -> None:
        pass


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def fake_twilio() -> FakeTwilio:
    return FakeTwilio()


@pytest.fixture
def public_dir(tmp_path) -> Path:
    path = tmp_path / "public" / "files"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def upload_dir(tmp_path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def orchestrator(store, fake_twilio, public_dir, upload_dir) -> ConversationOrchestrator:
    return ConversationOrchestrator(
        store=store,
        transport=fake_twilio,
        converter=CopyConverter(public_dir),
        publisher=PublicUrlResolver("https://bot.example.com"),
        upload_dir=upload_dir,
    )
