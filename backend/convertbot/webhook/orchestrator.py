"""Conversation state machine behind the WhatsApp webhook.

Stages per sender::

    (none) -> AWAITING_FILE -> AWAITING_FORMAT_CHOICE -> (removed)

Twilio expects the webhook to answer quickly, so once a format is chosen the
reply is only an acknowledgement. Conversion, publishing and delivery run in
a detached asyncio task. The task takes the uploaded file over from the
session, so an idle sweep during delivery cannot delete it. Whatever happens
in that task, a single done callback deletes the uploaded input and removes
the session.

Thread Safety:
    Runs on one event loop. Session lookups and updates are synchronous, so
    events for one sender are applied in order; other senders interleave.
    A download awaits, so the stage is re-checked before it is recorded: an
    attachment overlapping one that already produced a menu is dropped.
"""
import asyncio
import functools
import logging
from pathlib import Path
from typing import Dict, Optional

from ..conversion.service import Converter
from ..formats.detector import detect_file, resolve_format
from ..formats.schemas import is_supported, options_for
from ..publishing.publisher import PublicUrlResolver
from ..sessions.schemas import (
    InvalidChoice,
    Session,
    SessionError,
    SessionNotFound,
    SessionStage,
)
from ..sessions.store import SessionStore, discard_file
from ..transport.twilio_client import (
    MediaDownloadError,
    MediaUnauthorizedError,
    MessageSendError,
    TransportError,
    TwilioClient,
)
from .schemas import (
    ASK_FOR_FILE,
    CONVERSION_FAILED,
    CONVERTING,
    DELIVERY_BODY,
    DELIVERY_FAILED,
    DOWNLOAD_FAILED,
    INVALID_CHOICE,
    SESSION_EXPIRED,
    SOMETHING_WENT_WRONG,
    STILL_CONVERTING,
    UNSUPPORTED_FORMAT,
    InboundMessage,
    format_menu,
)

logger = logging.getLogger(__name__)


class ConversationOrchestrator:
    """Routes inbound messages to the handler for the sender's stage.

    Args:
        store: Session store (single source of truth for conversations).
        transport: Twilio client used for downloads and outbound messages.
        converter: Converter producing files in the public directory.
        publisher: Resolves the public URL of converted files.
        upload_dir: Where inbound attachments are downloaded.
    """

    def __init__(
        self,
        store: SessionStore,
        transport: TwilioClient,
        converter: Converter,
        publisher: PublicUrlResolver,
        upload_dir: Path,
    ) -> None:
        self._store = store
        self._transport = transport
        self._converter = converter
        self._publisher = publisher
        self._upload_dir = Path(upload_dir)
        self._upload_dir.mkdir(parents=True, exist_ok=True)
        self._deliveries: Dict[str, asyncio.Task] = {}  # type: ignore[type-arg]

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def publisher(self) -> PublicUrlResolver:
        return self._publisher

    def is_delivering(self, sender: str) -> bool:
        return sender in self._deliveries

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def handle(self, message: InboundMessage, request_base_url: str) -> str:
        """Process one inbound message and return the synchronous reply text.

        Raises:
            Exception: Unexpected errors propagate after the sender's session
                and upload have been cleaned up.
        """
        sender = message.sender
        session = self._store.get_or_create(sender)

        if self.is_delivering(sender):
            return STILL_CONVERTING

        try:
            if session.stage is SessionStage.AWAITING_FILE:
                return await self._on_awaiting_file(session, message)
            if session.stage is SessionStage.AWAITING_FORMAT_CHOICE:
                return self._on_format_choice(session, message, request_base_url)
        except SessionNotFound as e:
            logger.info(f"Session for {sender} is gone: {e}")
            self._abandon(session)
            return SESSION_EXPIRED
        except SessionError as e:
            logger.warning(f"Unexpected session state for {sender}: {e}")
            self._abandon(session)
            return SOMETHING_WENT_WRONG
        except Exception:
            logger.exception(f"Webhook error for {sender}")
            self._abandon(session)
            raise

        self._abandon(session)
        return SOMETHING_WENT_WRONG

    # -------------------------------------------------------------------------
    # Stage handlers
    # -------------------------------------------------------------------------

    async def _on_awaiting_file(self, session: Session, message: InboundMessage) -> str:
        if not message.has_attachment:
            return ASK_FOR_FILE

        try:
            path = await self._transport.download_media(message.media_url, self._upload_dir)
        except MediaUnauthorizedError as e:
            logger.error(f"Failed to download media (credentials rejected): {e}")
            return DOWNLOAD_FAILED
        except MediaDownloadError as e:
            logger.error(f"Failed to download media: {e}")
            return DOWNLOAD_FAILED

        # Until the session records it, the download is owned by this handler
        try:
            detected = await asyncio.to_thread(detect_file, path)
            detected = resolve_format(
                detected, message.media_content_type, message.media_filename
            )
            if not is_supported(detected):
                discard_file(path)
                logger.info(
                    f"Unsupported upload from {session.sender} ({message.media_content_type})"
                )
                return UNSUPPORTED_FORMAT

            # Another upload from this sender may have finished while this one downloaded
            current = self._store.get(session.sender)
            if current is not session or current.stage is not SessionStage.AWAITING_FILE:
                discard_file(path)
                logger.info(f"Dropping overlapping upload from {session.sender}")
                return self._overlap_reply(session.sender, current)

            options = options_for(detected)
            self._store.advance_to_format_choice(session.sender, path, detected, options)
        except BaseException:
            discard_file(path)
            raise
        return format_menu(detected, options)

    def _overlap_reply(self, sender: str, current: Optional[Session]) -> str:
        if self.is_delivering(sender):
            return STILL_CONVERTING
        if current is not None and current.stage is SessionStage.AWAITING_FORMAT_CHOICE:
            return format_menu(current.detected_format, current.options)
        return SESSION_EXPIRED

    def _on_format_choice(
        self, session: Session, message: InboundMessage, request_base_url: str
    ) -> str:
        try:
            target = self._store.resolve_choice(session.sender, message.body)
        except InvalidChoice:
            return INVALID_CHOICE

        self._launch_delivery(session, target, request_base_url)
        return CONVERTING

    # -------------------------------------------------------------------------
    # Detached delivery
    # -------------------------------------------------------------------------

    def _launch_delivery(self, session: Session, target: str, request_base_url: str) -> None:
        # From here on the delivery task owns the upload, not the session
        upload = self._store.hand_off_upload(session.sender)
        logger.info(f"Converting {upload} for {session.sender} to {target}")
        task = asyncio.create_task(
            self._deliver(session.sender, upload, target, request_base_url),
            name=f"deliver-{session.sender}",
        )
        self._deliveries[session.sender] = task
        task.add_done_callback(functools.partial(self._finalize, session, upload))

    async def _deliver(
        self, sender: str, upload: Path, target: str, request_base_url: str
    ) -> None:
        try:
            converted = await asyncio.to_thread(self._converter.convert, upload, target)
            url = await self._publisher.public_url_for(converted, request_base_url)
            try:
                await self._transport.send_message(sender, DELIVERY_BODY, [url])
            except MessageSendError:
                await self._notify(sender, DELIVERY_FAILED)
                return
            # The converted copy stays for Twilio to fetch; the artifact sweep removes it
            logger.info(f"Delivered converted file to user: {sender} file: {converted}")
        except Exception:
            logger.exception(f"Async convert/send error for {sender}")
            await self._notify(sender, CONVERSION_FAILED)

    async def _notify(self, sender: str, text: str) -> None:
        try:
            await self._transport.send_message(sender, text)
        except TransportError as e:
            logger.error(f"Failed to send notice to {sender}: {e}")

    def _finalize(
        self, session: Session, upload: Optional[Path], task: asyncio.Task  # type: ignore[type-arg]
    ) -> None:
        """Done callback: the only cleanup path for a launched delivery."""
        if task.cancelled():
            logger.warning(f"Delivery for {session.sender} was cancelled")
        elif task.exception() is not None:
            logger.error(f"Delivery for {session.sender} failed: {task.exception()!r}")

        discard_file(upload)
        self._store.complete_and_remove(session.sender, expected=session)
        if self._deliveries.get(session.sender) is task:
            del self._deliveries[session.sender]

    def _abandon(self, session: Session) -> None:
        discard_file(session.uploaded_file)
        self._store.complete_and_remove(session.sender, expected=session)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries to finish (shutdown, tests)."""
        pending = list(self._deliveries.values())
        if not pending:
            return
        logger.info(f"Waiting for {len(pending)} in-flight deliveries")
        await asyncio.wait(pending, timeout=timeout)
        # Let done callbacks run
        await asyncio.sleep(0)

