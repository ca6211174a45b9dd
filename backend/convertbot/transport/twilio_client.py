"""Twilio REST client for media download and outbound WhatsApp messages.

Uses httpx directly instead of the Twilio SDK: the bot only needs two calls,
an authenticated media GET and a POST to the Messages resource.

Failure model:
    - Media download: 401 fails immediately with MediaUnauthorizedError, an
      oversized body fails immediately with MediaTooLargeError, anything else
      is retried ``download_retries`` times with linear backoff.
    - Send: retried up to ``send_attempts`` times; exhaustion raises
      MessageSendError so the caller can fall back to a text-only notice.
"""
import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import httpx

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"

DOWNLOAD_PREFIX = "temp_"

DOWNLOAD_BACKOFF_SECONDS = 0.5
SEND_BACKOFF_SECONDS = 1.0


# =============================================================================
# Errors
# =============================================================================


class TransportError(Exception):
    """Base class for messaging transport failures."""


class MediaDownloadError(TransportError):
    """The inbound attachment could not be fetched."""


class MediaUnauthorizedError(MediaDownloadError):
    """Twilio rejected the account credentials (HTTP 401)."""


class MediaTooLargeError(MediaDownloadError):
    """The attachment exceeds the configured size limit."""


class MessageSendError(TransportError):
    """An outbound message could not be delivered after all retries."""


# =============================================================================
# Client
# =============================================================================


def _temp_name() -> str:
    return f"{DOWNLOAD_PREFIX}{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class TwilioClient:
    """Async Twilio client bound to one account and one sender number.

    Args:
        account_sid: Twilio account SID (also the basic-auth username).
        auth_token: Twilio auth token.
        from_number: Sender address, e.g. ``whatsapp:+14155238886``.
        max_file_size_bytes: Download size limit.
        http_client: Optional pre-built ``httpx.AsyncClient`` (tests inject a
            client with a MockTransport).
        sleep: Backoff sleep function.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        max_file_size_bytes: int = 10 * 1024 * 1024,
        download_timeout: float = 60.0,
        download_retries: int = 2,
        send_attempts: int = 3,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._account_sid = account_sid
        self._auth = (account_sid, auth_token)
        self._from = from_number
        self._max_bytes = max_file_size_bytes
        self._download_timeout = download_timeout
        self._download_retries = download_retries
        self._send_attempts = send_attempts
        self._http = http_client or httpx.AsyncClient(max_redirects=5)
        self._sleep = sleep

    @property
    def messages_url(self) -> str:
        return f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"

    async def aclose(self) -> None:
        await self._http.aclose()

    # -------------------------------------------------------------------------
    # Download
    # -------------------------------------------------------------------------

    async def download_media(self, url: str, dest_dir: Path) -> Path:
        """Download an inbound attachment to ``dest_dir/temp_<ms>_<id>``.

        Returns:
            Path of the downloaded file.

        Raises:
            MediaUnauthorizedError: Credentials rejected; not retried.
            MediaTooLargeError: Body exceeds the size limit; not retried.
            MediaDownloadError: All attempts failed.
        """
        last_error: Optional[Exception] = None
        for attempt in range(self._download_retries + 1):
            dest = Path(dest_dir) / _temp_name()
            logger.info(f"Downloading Twilio media (attempt {attempt + 1}) from: {url}")
            try:
                size = await self._stream_to_file(url, dest)
                logger.info(f"Downloaded media to {dest} sizeBytes={size}")
                return dest
            except (MediaUnauthorizedError, MediaTooLargeError):
                dest.unlink(missing_ok=True)
                raise
            except (httpx.HTTPError, OSError) as e:
                dest.unlink(missing_ok=True)
                last_error = e
                logger.warning(f"Download attempt {attempt + 1} failed: {e}")
                if attempt < self._download_retries:
                    await self._sleep(DOWNLOAD_BACKOFF_SECONDS * (attempt + 1))

        raise MediaDownloadError(f"Failed to download media: {last_error}") from last_error

    async def _stream_to_file(self, url: str, dest: Path) -> int:
        written = 0
        async with self._http.stream(
            "GET",
            url,
            auth=self._auth,
            timeout=self._download_timeout,
            follow_redirects=True,
        ) as response:
            if response.status_code == 401:
                logger.error(
                    "Twilio media download returned 401 Unauthorized. Check "
                    "TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN; they seem incorrect."
                )
                raise MediaUnauthorizedError(
                    "Unauthorized fetching Twilio media (401). Check Twilio credentials."
                )
            response.raise_for_status()

            with dest.open("wb") as fh:
                async for chunk in response.aiter_bytes():
                    written += len(chunk)
                    if written > self._max_bytes:
                        raise MediaTooLargeError(
                            f"File too large (> {self._max_bytes} bytes)."
                        )
                    fh.write(chunk)
        return written

    # -------------------------------------------------------------------------
    # Send
    # -------------------------------------------------------------------------

    async def send_message(
        self,
        to: str,
        body: str,
        media_urls: Optional[List[str]] = None,
    ) -> str:
        """Send a WhatsApp message, optionally with media.

        Returns:
            The Twilio message SID.

        Raises:
            MessageSendError: Every attempt failed.
        """
        data = {"From": self._from, "To": to, "Body": body}
        if media_urls:
            data["MediaUrl"] = list(media_urls)

        last_error: Optional[Exception] = None
        for attempt in range(self._send_attempts):
            try:
                logger.info(
                    f"Sending message to {to} via Twilio (attempt {attempt + 1})"
                    + (f": {', '.join(media_urls)}" if media_urls else "")
                )
                response = await self._http.post(self.messages_url, data=data, auth=self._auth)
                response.raise_for_status()
                sid = response.json().get("sid", "")
                logger.info(f"Twilio send success sid={sid}")
                return sid
            except httpx.HTTPStatusError as e:
                last_error = e
                logger.warning(
                    f"Twilio send attempt {attempt + 1} failed: "
                    f"{e.response.status_code} {e.response.text}"
                )
            except (httpx.HTTPError, ValueError) as e:
                last_error = e
                logger.warning(f"Twilio send attempt {attempt + 1} failed: {e}")
            if attempt < self._send_attempts - 1:
                await self._sleep(SEND_BACKOFF_SECONDS * (attempt + 1))

        logger.error(f"Twilio final send error: {last_error}")
        raise MessageSendError(f"Could not send message to {to}: {last_error}") from last_error
