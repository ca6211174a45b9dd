"""File format detection.

Classifies uploads into canonical tags (pdf, png, jpg, word, csv, txt)
from magic bytes, with content-type and filename fallbacks.
"""
from .detector import detect_file, detect_format, resolve_format
from .schemas import SUPPORTED_FORMATS, UNKNOWN, FileFormat, options_for

__all__ = [
    "detect_file",
    "detect_format",
    "resolve_format",
    "SUPPORTED_FORMATS",
    "UNKNOWN",
    "FileFormat",
    "options_for",
]
