"""File conversion.

``CopyConverter`` is a placeholder: it duplicates the input bytes under the
new name. A real converter must keep the same contract: the input file is
never modified or deleted, and every call writes a fresh output file.
"""
import logging
import re
import shutil
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from ..formats.schemas import OUTPUT_EXTENSIONS, is_supported

logger = logging.getLogger(__name__)

CONVERTED_PREFIX = "converted_"

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_.\-]")


class ConversionError(Exception):
    """The input could not be converted to the requested format."""


def sanitize_filename(filename: str) -> str:
    """Replace anything outside ``[A-Za-z0-9_.-]`` and cap the length."""
    return _UNSAFE_CHARS.sub("_", filename)[:200]


def output_filename(target_format: str) -> str:
    """Timestamp-based name for a converted file, e.g. ``converted_1712..._ab12cd34.png``."""
    ext = OUTPUT_EXTENSIONS.get(target_format, target_format)
    stamp = int(time.time() * 1000)
    return sanitize_filename(f"{CONVERTED_PREFIX}{stamp}_{uuid.uuid4().hex[:8]}.{ext}")


class Converter(ABC):
    """Converts a local file into another canonical format."""

    @abstractmethod
    def convert(self, input_path: Path, target_format: str) -> Path:
        """Write a converted copy of *input_path* and return its path.

        Raises:
            ConversionError: On unsupported targets or I/O failure.
        """


class CopyConverter(Converter):
    """Placeholder converter that copies bytes into the output directory."""

    def __init__(self, output_dir: Path) -> None:
        self._output_dir = Path(output_dir)
        self._output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    def convert(self, input_path: Path, target_format: str) -> Path:
        if not is_supported(target_format):
            raise ConversionError(f"Unsupported target format: {target_format}")

        out_path = self._output_dir / output_filename(target_format)
        try:
            shutil.copyfile(input_path, out_path)
        except OSError as e:
            raise ConversionError(f"Could not convert {input_path}: {e}") from e

        logger.info(f"Conversion placeholder: copied to {out_path}")
        return out_path
