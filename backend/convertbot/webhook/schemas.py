"""Inbound webhook payload and the user-facing reply texts."""
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class InboundMessage:
    """Normalized Twilio WhatsApp webhook message.

    Only the first attachment (``MediaUrl0``) is considered.
    """
    sender:             str
    body:               str = ""
    media_url:          Optional[str] = None
    media_content_type: Optional[str] = None
    media_filename:     Optional[str] = None

    @property
    def has_attachment(self) -> bool:
        return bool(self.media_url)


# =============================================================================
# Replies
# =============================================================================

ASK_FOR_FILE        = "Please send the file you want to convert."
DOWNLOAD_FAILED     = "Could not download your file. Check bot logs or Twilio credentials; please try again."
UNSUPPORTED_FORMAT  = "Unsupported file type. Send PDF, PNG, JPG, Word (doc/docx), CSV, or TXT."
SESSION_EXPIRED     = "Session expired. Please send your file again."
INVALID_CHOICE      = "Invalid choice. Reply with option number or format name."
CONVERTING          = "Converting your file, please wait..."
STILL_CONVERTING    = "Your previous file is still being converted, please wait."
SOMETHING_WENT_WRONG = "Something went wrong. Please send your file again."

DELIVERY_BODY       = "Here is your converted file!"
DELIVERY_FAILED     = "Failed to deliver converted file. Please try again later or check bot logs."
CONVERSION_FAILED   = "An error occurred while converting your file. Please try again."


def format_menu(detected: str, options: Sequence[str]) -> str:
    """Reply listing the numbered target formats for a detected upload."""
    lines = [f"{i}) {fmt}" for i, fmt in enumerate(options, start=1)]
    return (
        f"You have uploaded a {detected} file.\n"
        "Which format would you like to convert it to?\n" + "\n".join(lines)
    )
