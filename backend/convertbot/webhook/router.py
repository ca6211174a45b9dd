"""FastAPI router for the Twilio WhatsApp webhook."""
import logging
from typing import Optional

from fastapi import APIRouter, Form, HTTPException, Request, Response
from fastapi.responses import PlainTextResponse

from ..transport.twiml import messaging_response
from .orchestrator import ConversationOrchestrator
from .schemas import InboundMessage

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_orchestrator: Optional[ConversationOrchestrator] = None


def get_orchestrator() -> Optional[ConversationOrchestrator]:
    """Return the global orchestrator, or None if not yet initialised."""
    return _orchestrator


def set_orchestrator(orchestrator: Optional[ConversationOrchestrator]) -> None:
    """Set (or replace) the global orchestrator instance."""
    global _orchestrator
    _orchestrator = orchestrator


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/whatsapp_webhook")
async def whatsapp_webhook(
    request: Request,
    sender: str = Form("", alias="From"),
    body: str = Form("", alias="Body"),
    media_url: Optional[str] = Form(None, alias="MediaUrl0"),
    media_content_type: Optional[str] = Form(None, alias="MediaContentType0"),
    media_filename: Optional[str] = Form(None, alias="MediaFilename0"),
):
    """Handle one inbound WhatsApp message and answer with TwiML.

    Raises:
        HTTPException 503: If the bot has not finished starting up.
    """
    orchestrator = get_orchestrator()
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Bot is not ready")

    message = InboundMessage(
        sender=sender,
        body=body.strip(),
        media_url=media_url or None,
        media_content_type=media_content_type or None,
        media_filename=media_filename or None,
    )
    try:
        reply = await orchestrator.handle(message, str(request.base_url))
    except Exception:
        # Orchestrator already logged and cleaned up the sender's session
        return PlainTextResponse("Internal Server Error", status_code=500)

    return Response(content=messaging_response(reply), media_type="text/xml")
