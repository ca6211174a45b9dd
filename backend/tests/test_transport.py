"""Tests for the Twilio client and TwiML replies.

Twilio is never contacted: every test injects an ``httpx.AsyncClient``
backed by ``httpx.MockTransport``.
"""
from urllib.parse import parse_qs

import httpx
import pytest

from convertbot.transport.twilio_client import (
    MediaDownloadError,
    MediaTooLargeError,
    MediaUnauthorizedError,
    MessageSendError,
    TwilioClient,
)
from convertbot.transport.twiml import messaging_response

MEDIA_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123/Messages/MM1/Media/ME1"


class _Recorder:
    """MockTransport handler returning queued responses in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def _client(handler, **kwargs) -> TwilioClient:
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    client = TwilioClient(
        account_sid="AC123",
        auth_token="secret",
        from_number="whatsapp:+14155238886",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=fake_sleep,
        **kwargs,
    )
    client.sleeps = sleeps
    return client


# ---------------------------------------------------------------------------
# download_media
# ---------------------------------------------------------------------------


class TestDownloadMedia:
    @pytest.mark.asyncio
    async def test_downloads_to_temp_file(self, tmp_path):
        handler = _Recorder(httpx.Response(200, content=b"%PDF-1.4 body"))
        client = _client(handler)

        path = await client.download_media(MEDIA_URL, tmp_path)

        assert path.parent == tmp_path
        assert path.name.startswith("temp_")
        assert path.read_bytes() == b"%PDF-1.4 body"
        assert handler.requests[0].headers["authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_follows_redirect(self, tmp_path):
        def handler(request):
            if request.url.host == "api.twilio.com":
                return httpx.Response(307, headers={"location": "https://media.example.com/f"})
            return httpx.Response(200, content=b"png")

        client = _client(handler)
        path = await client.download_media(MEDIA_URL, tmp_path)
        assert path.read_bytes() == b"png"

    @pytest.mark.asyncio
    async def test_unauthorized_fails_fast(self, tmp_path):
        handler = _Recorder(httpx.Response(401))
        client = _client(handler)

        with pytest.raises(MediaUnauthorizedError):
            await client.download_media(MEDIA_URL, tmp_path)

        assert len(handler.requests) == 1
        assert client.sleeps == []
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_too_large_is_rejected_and_removed(self, tmp_path):
        handler = _Recorder(httpx.Response(200, content=b"x" * 2048))
        client = _client(handler, max_file_size_bytes=1024)

        with pytest.raises(MediaTooLargeError):
            await client.download_media(MEDIA_URL, tmp_path)

        assert len(handler.requests) == 1
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_retries_transient_failures_with_linear_backoff(self, tmp_path):
        handler = _Recorder(
            httpx.ConnectError("boom"),
            httpx.Response(503),
            httpx.Response(200, content=b"ok"),
        )
        client = _client(handler)

        path = await client.download_media(MEDIA_URL, tmp_path)

        assert path.read_bytes() == b"ok"
        assert len(handler.requests) == 3
        assert client.sleeps == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, tmp_path):
        handler = _Recorder(httpx.Response(500))
        client = _client(handler, download_retries=2)

        with pytest.raises(MediaDownloadError):
            await client.download_media(MEDIA_URL, tmp_path)

        assert len(handler.requests) == 3
        assert list(tmp_path.iterdir()) == []

    def test_unauthorized_is_a_download_error(self):
        assert issubclass(MediaUnauthorizedError, MediaDownloadError)
        assert issubclass(MediaTooLargeError, MediaDownloadError)


# ---------------------------------------------------------------------------
# send_message
# ---------------------------------------------------------------------------


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_posts_form_with_media(self):
        handler = _Recorder(httpx.Response(201, json={"sid": "SM1"}))
        client = _client(handler)

        sid = await client.send_message(
            "whatsapp:+15550001", "Here", ["https://bot.example.com/files/a.png"]
        )

        assert sid == "SM1"
        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        form = parse_qs(request.content.decode())
        assert form["To"] == ["whatsapp:+15550001"]
        assert form["From"] == ["whatsapp:+14155238886"]
        assert form["Body"] == ["Here"]
        assert form["MediaUrl"] == ["https://bot.example.com/files/a.png"]

    @pytest.mark.asyncio
    async def test_text_only_has_no_media(self):
        handler = _Recorder(httpx.Response(201, json={"sid": "SM2"}))
        client = _client(handler)

        await client.send_message("whatsapp:+15550001", "Sorry")

        form = parse_qs(handler.requests[0].content.decode())
        assert "MediaUrl" not in form

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        handler = _Recorder(
            httpx.Response(500, json={"message": "oops"}),
            httpx.Response(201, json={"sid": "SM3"}),
        )
        client = _client(handler)

        assert await client.send_message("to", "body") == "SM3"
        assert client.sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises(self):
        handler = _Recorder(httpx.Response(400, json={"message": "bad media url"}))
        client = _client(handler, send_attempts=3)

        with pytest.raises(MessageSendError):
            await client.send_message("to", "body", ["https://x/files/a"])

        assert len(handler.requests) == 3
        assert client.sleeps == [1.0, 2.0]


# ---------------------------------------------------------------------------
# TwiML
# ---------------------------------------------------------------------------


def test_messaging_response_escapes_xml():
    xml = messaging_response('1) pdf <b> & "x"')
    assert xml == (
        "<Response><Message>1) pdf &lt;b&gt; &amp; &quot;x&quot;</Message></Response>"
    )


def test_empty_messaging_response():
    assert messaging_response(None) == "<Response></Response>"
