"""Tests for magic-byte detection and the content-type/filename fallbacks."""
import pytest

from convertbot.formats.detector import (
    detect_file,
    detect_format,
    format_from_content_type,
    format_from_filename,
    resolve_format,
)
from convertbot.formats.schemas import SUPPORTED_FORMATS, UNKNOWN, options_for


class TestDetectFormat:
    @pytest.mark.parametrize("data,expected", [
        (b"%PDF-1.4 rest of file", "pdf"),
        (b"\x89PNG\r\n\x1a\n\x00\x00", "png"),
        (b"\xff\xd8\xff\xe0\x00\x10JFIF", "jpg"),
        (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1\x00\x00", "word"),
        (b"PK\x03\x04\x14\x00\x06\x00", "word"),
    ])
    def test_binary_signatures(self, data, expected):
        assert detect_format(data) == expected

    def test_signature_wins_over_text_heuristic(self):
        # "%PDF" followed by printable text with commas is still a PDF
        assert detect_format(b"%PDF,a,b,c\n" * 10) == "pdf"

    def test_zip_container_is_reported_as_word(self):
        # xlsx/pptx/plain zips share the signature; all map to word
        assert detect_format(b"PK\x03\x04" + b"\x00" * 100) == "word"

    def test_printable_text_with_comma_is_csv(self):
        sample = (b"name,age,city\n" + b"alice,30,paris\n" * 300)[:4096]
        assert len(sample) == 4096
        assert detect_format(sample) == "csv"

    def test_printable_text_without_comma_is_txt(self):
        sample = (b"hello world\tthis is text\r\n" * 200)[:4096]
        assert detect_format(sample) == "txt"

    def test_binary_noise_is_unknown(self):
        assert detect_format(bytes(range(256)) * 16) == UNKNOWN

    def test_empty_is_unknown(self):
        assert detect_format(b"") == UNKNOWN

    def test_ratio_must_exceed_threshold(self):
        # exactly 90% printable is not enough
        sample = b"a" * 90 + b"\x00" * 10
        assert detect_format(sample) == UNKNOWN
        sample = b"a" * 91 + b"\x00" * 9
        assert detect_format(sample) == "txt"

    def test_only_first_4096_bytes_are_sampled(self):
        data = b"plain text " * 400 + b"\x00" * 10000
        assert detect_format(data) == "txt"

    def test_comma_outside_sample_is_ignored(self):
        data = b"x" * 4096 + b","
        assert detect_format(data) == "txt"


class TestDetectFile:
    def test_reads_file_from_disk(self, tmp_path):
        path = tmp_path / "doc.bin"
        path.write_bytes(b"%PDF-1.5\n")
        assert detect_file(path) == "pdf"

    def test_missing_file_is_unknown(self, tmp_path):
        assert detect_file(tmp_path / "nope") == UNKNOWN


class TestFallbacks:
    @pytest.mark.parametrize("content_type,expected", [
        ("image/png", "png"),
        ("image/jpeg", "jpg"),
        ("application/pdf", "pdf"),
        ("text/csv", "csv"),
        ("text/plain", "txt"),
        ("application/msword", "word"),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "word"),
        ("application/octet-stream", UNKNOWN),
        (None, UNKNOWN),
    ])
    def test_content_type(self, content_type, expected):
        assert format_from_content_type(content_type) == expected

    @pytest.mark.parametrize("filename,expected", [
        ("photo.JPEG", "jpg"),
        ("report.docx", "word"),
        ("old.doc", "word"),
        ("data.csv", "csv"),
        ("notes.txt", "txt"),
        ("archive.tar.gz", UNKNOWN),
        ("noext", UNKNOWN),
        ("", UNKNOWN),
    ])
    def test_filename(self, filename, expected):
        assert format_from_filename(filename) == expected

    def test_detected_format_is_kept(self):
        assert resolve_format("png", "application/pdf", "x.pdf") == "png"

    def test_content_type_before_filename(self):
        assert resolve_format(UNKNOWN, "image/png", "x.pdf") == "png"

    def test_filename_used_last(self):
        assert resolve_format(UNKNOWN, "application/octet-stream", "x.docx") == "word"

    def test_gives_up(self):
        assert resolve_format(UNKNOWN, None, "x.exe") == UNKNOWN


class TestOptions:
    @pytest.mark.parametrize("detected", SUPPORTED_FORMATS)
    def test_options_exclude_detected(self, detected):
        options = options_for(detected)
        assert detected not in options
        assert len(options) == len(SUPPORTED_FORMATS) - 1
