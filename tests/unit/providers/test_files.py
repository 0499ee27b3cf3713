"""
Unit tests for document input helpers.
"""

import base64

import pytest

from docproc.providers.exceptions import ProviderRequestError
from docproc.providers.files import (
    decode_base64_document,
    default_filename,
    detect_mime_type,
    filename_from_url,
    mime_type_from_filename,
)


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"%PDF-1.7\n...", "application/pdf"),
        (b"\x89PNG\r\n\x1a\n....", "image/png"),
        (b"\xff\xd8\xff\xe0....", "image/jpeg"),
        (b"GIF89a....", "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"II*\x00....", "image/tiff"),
        (b"MM\x00*....", "image/tiff"),
        (b"BM......", "image/bmp"),
        (b"PK\x03\x04....", "application/zip"),
        (b"hello world", "application/octet-stream"),
        (b"", "application/octet-stream"),
    ],
)
def test_detect_mime_type(data, expected):
    assert detect_mime_type(data) == expected


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("scan.PDF", "application/pdf"),
        ("photo.jpeg", "image/jpeg"),
        ("report.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
        ("archive.unknown", "application/octet-stream"),
        ("no-extension", "application/octet-stream"),
    ],
)
def test_mime_type_from_filename(filename, expected):
    assert mime_type_from_filename(filename) == expected


def test_filename_from_url():
    assert filename_from_url("https://example.com/files/My%20Scan.pdf?sig=1") == "My Scan.pdf"
    assert filename_from_url("https://example.com/") == "document.pdf"


def test_default_filename():
    assert default_filename(None) == "document.pdf"
    assert default_filename("image/png") == "document.png"


class TestDecodeBase64Document:
    """Tests for base64 / data URL decoding."""

    def test_raw_base64(self):
        data, mime_type = decode_base64_document(base64.b64encode(b"%PDF-1.4").decode(), 1024)
        assert data == b"%PDF-1.4"
        assert mime_type is None

    def test_data_url(self):
        encoded = base64.b64encode(b"\x89PNG").decode()
        data, mime_type = decode_base64_document(f"data:image/PNG;base64,{encoded}", 1024)
        assert data == b"\x89PNG"
        assert mime_type == "image/png"

    def test_whitespace_ignored(self):
        encoded = base64.b64encode(b"hello document").decode()
        wrapped = encoded[:8] + "\n" + encoded[8:]
        assert decode_base64_document(wrapped, 1024)[0] == b"hello document"

    def test_invalid_base64(self):
        with pytest.raises(ProviderRequestError, match="Invalid base64"):
            decode_base64_document("not*base64!", 1024)

    def test_too_large(self):
        encoded = base64.b64encode(b"x" * 300).decode()
        with pytest.raises(ProviderRequestError, match="too large") as exc_info:
            decode_base64_document(encoded, 100)
        assert exc_info.value.retryable is False
