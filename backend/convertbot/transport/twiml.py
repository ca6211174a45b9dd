"""TwiML replies for the synchronous webhook response."""
from html import escape
from typing import Optional


def messaging_response(text: Optional[str] = None) -> str:
    """Build a ``<Response>`` with one ``<Message>``, or an empty response."""
    if not text:
        return "<Response></Response>"
    return f"<Response><Message>{escape(text, quote=True)}</Message></Response>"
