"""Canonical format tags and the lookup tables used by detection.

Every file the bot handles is described by one of six canonical tags,
regardless of the extension or content-type the user's client reported.
"""
from enum import Enum
from typing import Dict, List, Tuple


class FileFormat(str, Enum):
    """Canonical format tags.

    Word covers legacy ``.doc`` and ZIP-based ``.docx`` files alike.
    """
    PDF = "pdf"
    PNG = "png"
    JPG = "jpg"
    WORD = "word"
    CSV = "csv"
    TXT = "txt"


UNKNOWN = "unknown"

# Menu order matters: it is the order options are offered to the user
SUPPORTED_FORMATS: List[str] = [f.value for f in FileFormat]

# Bytes inspected by the text heuristic
TEXT_SAMPLE_SIZE = 4096
PRINTABLE_RATIO_THRESHOLD = 0.9

# (signature, tag) in priority order
MAGIC_SIGNATURES: List[Tuple[bytes, str]] = [
    (b"%PDF", FileFormat.PDF.value),
    (b"\x89PNG\r\n\x1a\n", FileFormat.PNG.value),
    (b"\xff\xd8\xff", FileFormat.JPG.value),
    (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", FileFormat.WORD.value),  # OLE compound document
    # Any ZIP container (docx, but also xlsx/pptx/plain zip) is reported as word
    (b"PK\x03\x04", FileFormat.WORD.value),
]

# Substring of the reported content-type -> tag, checked in order
CONTENT_TYPE_TOKENS: List[Tuple[str, str]] = [
    ("png", FileFormat.PNG.value),
    ("jpeg", FileFormat.JPG.value),
    ("jpg", FileFormat.JPG.value),
    ("pdf", FileFormat.PDF.value),
    ("csv", FileFormat.CSV.value),
    ("msword", FileFormat.WORD.value),
    ("wordprocessingml", FileFormat.WORD.value),
    ("text", FileFormat.TXT.value),
]

EXTENSION_ALIASES: Dict[str, str] = {
    "jpeg": FileFormat.JPG.value,
    "doc": FileFormat.WORD.value,
    "docx": FileFormat.WORD.value,
}

# File extension written for converted output
OUTPUT_EXTENSIONS: Dict[str, str] = {
    FileFormat.WORD.value: "docx",
}


def is_supported(tag: str) -> bool:
    return tag in SUPPORTED_FORMATS


def options_for(detected: str) -> List[str]:
    """Every supported format except *detected*, in menu order."""
    return [f for f in SUPPORTED_FORMATS if f != detected]
