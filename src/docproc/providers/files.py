"""
Document input helpers: base64 decoding, filenames and MIME types.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

from docproc.providers.exceptions import ProviderRequestError

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,", re.IGNORECASE)

MIME_TYPES_BY_EXTENSION = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "heic": "image/heic",
    "webp": "image/webp",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "doc": "application/msword",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
    "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "ppt": "application/vnd.ms-powerpoint",
    "csv": "text/csv",
    "txt": "text/plain",
    "rtf": "application/rtf",
}

_EXTENSIONS_BY_MIME = {
    "application/pdf": "pdf",
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/tiff": "tiff",
    "image/webp": "webp",
    "image/bmp": "bmp",
}


@dataclass(frozen=True)
class LoadedDocument:
    """Raw document bytes ready for multipart upload."""

    data: bytes
    filename: str
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def mime_type_from_filename(filename: str, default: str = "application/octet-stream") -> str:
    """MIME type from a filename extension (case-insensitive)."""
    if "." not in filename:
        return default
    extension = filename.rsplit(".", 1)[-1].lower()
    return MIME_TYPES_BY_EXTENSION.get(extension, default)


def detect_mime_type(data: bytes) -> str:
    """
    MIME type from magic bytes.

    ZIP containers (DOCX/XLSX/PPTX) are reported as application/zip since
    telling them apart needs the archive listing.
    """
    head = data[:16]
    if head.startswith(b"%PDF"):
        return "application/pdf"
    if head.startswith(b"\x89PNG"):
        return "image/png"
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"GIF8"):
        return "image/gif"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    if head.startswith(b"II*\x00") or head.startswith(b"MM\x00*"):
        return "image/tiff"
    if head.startswith(b"BM"):
        return "image/bmp"
    if head.startswith(b"PK\x03\x04"):
        return "application/zip"
    return "application/octet-stream"


def filename_from_url(url: str, default: str = "document.pdf") -> str:
    """Last path segment of ``url``, or ``default`` when there is none."""
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or default


def default_filename(mime_type: Optional[str]) -> str:
    extension = _EXTENSIONS_BY_MIME.get(mime_type or "application/pdf", "pdf")
    return f"document.{extension}"


def decode_base64_document(value: str, max_size: int) -> tuple[bytes, Optional[str]]:
    """
    Decode raw base64 or a ``data:<mime>;base64,`` URL.

    The size check runs on the estimated decoded size before decoding.

    Returns:
        Tuple of (decoded bytes, MIME type from the data URL or None)

    Raises:
        ProviderRequestError: Payload too large or not valid base64
    """
    mime_type = None
    match = _DATA_URL_RE.match(value)
    if match:
        mime_type = match.group(1).lower()
        value = value[match.end():]
    value = "".join(value.split())

    estimated_size = (len(value) * 3) // 4
    if estimated_size > max_size:
        raise ProviderRequestError(
            f"Document too large: ~{estimated_size} bytes (limit {max_size})",
            details={"estimated_size": estimated_size, "max_size": max_size},
        )

    try:
        data = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProviderRequestError(
            "Invalid base64 document data",
            details={"error": str(e)},
        ) from e
    return data, mime_type
