"""Magic-byte format detection.

Detection is a heuristic: binary signatures are checked first, then a
printable-ratio test on the first 4 KB separates text from binary. When the
bytes are inconclusive, :func:`resolve_format` falls back to the content-type
Twilio reported and finally to the original filename extension.
"""
import logging
from pathlib import Path, PurePath
from typing import Optional, Union

from .schemas import (
    CONTENT_TYPE_TOKENS,
    EXTENSION_ALIASES,
    MAGIC_SIGNATURES,
    PRINTABLE_RATIO_THRESHOLD,
    TEXT_SAMPLE_SIZE,
    UNKNOWN,
    FileFormat,
    is_supported,
)

logger = logging.getLogger(__name__)

# Tab, LF, CR count as printable
_WHITESPACE_CONTROLS = frozenset((0x09, 0x0A, 0x0D))


def _printable_ratio(sample: bytes) -> float:
    printable = sum(
        1 for b in sample if 0x20 <= b <= 0x7E or b in _WHITESPACE_CONTROLS
    )
    return printable / max(1, len(sample))


def detect_format(data: bytes) -> str:
    """Classify raw bytes as a canonical format tag or ``"unknown"``.

    Args:
        data: The file content, or at least its first 4096 bytes.

    Returns:
        One of ``pdf, png, jpg, word, csv, txt`` or ``"unknown"``.
    """
    for signature, tag in MAGIC_SIGNATURES:
        if data.startswith(signature):
            return tag

    sample = data[:TEXT_SAMPLE_SIZE]
    if _printable_ratio(sample) > PRINTABLE_RATIO_THRESHOLD:
        return FileFormat.CSV.value if b"," in sample else FileFormat.TXT.value

    return UNKNOWN


def detect_file(path: Union[str, Path]) -> str:
    """Detect the format of a file on disk, reading only the sampled prefix."""
    try:
        with open(path, "rb") as fh:
            head = fh.read(TEXT_SAMPLE_SIZE)
    except OSError as e:
        logger.error(f"Format detection failed for {path}: {e}")
        return UNKNOWN
    return detect_format(head)


def format_from_content_type(content_type: Optional[str]) -> str:
    """Map a content-type string to a tag by substring match."""
    if not content_type:
        return UNKNOWN
    ct = content_type.lower()
    for token, tag in CONTENT_TYPE_TOKENS:
        if token in ct:
            return tag
    return UNKNOWN


def format_from_filename(filename: Optional[str]) -> str:
    """Map a filename extension to a tag, honouring the alias map."""
    if not filename:
        return UNKNOWN
    ext = PurePath(filename).suffix.lstrip(".").lower()
    tag = EXTENSION_ALIASES.get(ext, ext)
    return tag if is_supported(tag) else UNKNOWN


def resolve_format(
    detected: str,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> str:
    """Apply the fallback chain: bytes, then content-type, then filename."""
    if detected != UNKNOWN:
        return detected

    tag = format_from_content_type(content_type)
    if tag != UNKNOWN:
        logger.info(f"Format resolved from content-type {content_type!r}: {tag}")
        return tag

    tag = format_from_filename(filename)
    if tag != UNKNOWN:
        logger.info(f"Format resolved from filename {filename!r}: {tag}")
    return tag
