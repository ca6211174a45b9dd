"""File conversion (placeholder copy converter)."""
from .service import ConversionError, Converter, CopyConverter, output_filename

__all__ = ["ConversionError", "Converter", "CopyConverter", "output_filename"]
