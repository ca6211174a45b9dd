"""Messaging transport (Twilio WhatsApp).

Downloads inbound attachments, sends outbound messages with retries and
renders the TwiML body returned from the webhook.
"""
from .twilio_client import (
    MediaDownloadError,
    MediaTooLargeError,
    MediaUnauthorizedError,
    MessageSendError,
    TransportError,
    TwilioClient,
)
from .twiml import messaging_response

__all__ = [
    "MediaDownloadError",
    "MediaTooLargeError",
    "MediaUnauthorizedError",
    "MessageSendError",
    "TransportError",
    "TwilioClient",
    "messaging_response",
]
