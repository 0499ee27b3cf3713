"""
Datalab Marker client: document to markdown without LLM extraction.

Marker shares the Datalab upload and check-URL protocol with Surya; only
the form fields and the result shape differ. Results carry the whole
document as markdown plus a JSON block tree, so pages are recovered from
markdown page breaks when the document has more than one.
"""

import re
from typing import Any, Optional

import structlog

from docproc.models.document_models import BBox, DocumentIR, IRLine, IRPage
from docproc.providers.surya import SuryaClient

logger = structlog.get_logger(__name__)

MARKER_MODES = ("fast", "balanced", "high_accuracy")

# USD per page by processing mode
MARKER_USD_PER_PAGE = {"fast": 0.002, "balanced": 0.004, "high_accuracy": 0.006}

_PAGE_BREAK = re.compile(r"\n---\n|\f")
_HTML_TAG = re.compile(r"<[^>]*>")
_IMAGE_PAGE = re.compile(r"/page/(\d+)/")
_IMAGE_TYPE = re.compile(r"/page/\d+/(\w+)/")


def _text_lines(text: str, bbox: Optional[BBox] = None) -> list[IRLine]:
    return [IRLine(text=line, bbox=bbox) for line in text.split("\n") if line.strip()]


def _block_lines(block: dict[str, Any]) -> list[IRLine]:
    corners = block.get("bbox")
    bbox = BBox.from_corners(corners) if corners else None
    return _text_lines(_HTML_TAG.sub("", block.get("html") or ""), bbox)


def _extract_images(images: dict[str, str]) -> list[dict[str, Any]]:
    """Image ids look like "/page/0/Figure/9"; Datalab returns PNG data."""
    extracted = []
    for image_id, data in images.items():
        page_match = _IMAGE_PAGE.search(image_id)
        type_match = _IMAGE_TYPE.search(image_id)
        block_type = type_match.group(1) if type_match else "Image"
        extracted.append(
            {
                "id": image_id,
                "page_number": int(page_match.group(1)) if page_match else 0,
                "base64": data,
                "mime_type": "image/png",
                "caption": block_type if block_type != "Image" else None,
            }
        )
    return extracted


class MarkerClient(SuryaClient):
    """
    Marker OCR via the Datalab ``/marker`` endpoint.

    Requests both JSON and markdown output with ``use_llm`` off. Polls the
    check URL like Surya, waiting before each check.
    """

    provider = "marker"
    DEFAULT_ENDPOINT = "https://www.datalab.to/api/v1/marker"
    DEFAULT_MAX_ATTEMPTS = 60
    CHECK_BEFORE_FIRST_WAIT = False

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        mode: Optional[str] = None,
        force_ocr: bool = True,
        max_pages: Optional[int] = None,
        page_range: Optional[str] = None,
        langs: Optional[list[str]] = None,
        extract_images: bool = True,
        paginate: bool = False,
        strip_existing_ocr: bool = False,
        format_lines: bool = False,
        **kwargs: Any,
    ):
        """
        Initialize Marker client.

        Args:
            mode: "fast", "balanced" or "high_accuracy" (sets the per-page cost)
            force_ocr: OCR every page even when text is embedded
            max_pages: Process only the first N pages
            page_range: 0-indexed pages, e.g. "0,2-4,10"
            langs: ISO language codes for OCR
            extract_images: Return embedded figures/tables as base64
            paginate: Add page delimiters to the markdown
            strip_existing_ocr: Discard an existing OCR layer first
            format_lines: Format lines in the output
            **kwargs: BaseProviderClient options

        Raises:
            ValueError: Unknown mode
        """
        if mode is not None and mode not in MARKER_MODES:
            raise ValueError(f"Unknown Marker mode: {mode!r} (expected one of {', '.join(MARKER_MODES)})")
        super().__init__(endpoint=endpoint, api_key=api_key, **kwargs)
        self.mode = mode
        self.force_ocr = force_ocr
        self.max_pages = max_pages
        self.page_range = page_range
        self.langs = langs
        self.extract_images = extract_images
        self.paginate = paginate
        self.strip_existing_ocr = strip_existing_ocr
        self.format_lines = format_lines

    def _form_fields(self) -> dict[str, str]:
        fields = {
            "output_format": "json,markdown",
            "force_ocr": str(self.force_ocr).lower(),
            "use_llm": "false",
        }
        if self.mode:
            # Datalab calls high accuracy "accurate"
            fields["mode"] = "accurate" if self.mode == "high_accuracy" else self.mode
        if self.max_pages is not None:
            fields["max_pages"] = str(self.max_pages)
        if self.page_range:
            fields["page_range"] = self.page_range
        if self.langs:
            fields["langs"] = ",".join(self.langs)
        if not self.extract_images:
            fields["disable_image_extraction"] = "true"
        if self.paginate:
            fields["paginate"] = "true"
        if self.strip_existing_ocr:
            fields["strip_existing_ocr"] = "true"
        if self.format_lines:
            fields["format_lines"] = "true"
        return fields

    def to_document_ir(self, data: dict[str, Any]) -> DocumentIR:
        """
        Convert a Marker result into DocumentIR.

        Markdown is split on page breaks ("\\n---\\n" or form feed) when the
        JSON tree confirms a multi-page document; otherwise it becomes one
        page. Without markdown, text is taken from the HTML of the top-level
        JSON blocks.
        """
        page_count = data.get("page_count") or 0
        markdown = data.get("markdown") or ""
        children = (data.get("json") or {}).get("children") or []

        pages = []
        if markdown:
            parts = _PAGE_BREAK.split(markdown)
            if len(parts) > 1 and children:
                for part in parts:
                    page_markdown = part.strip()
                    if page_markdown:
                        pages.append(
                            IRPage(
                                page_number=len(pages) + 1,
                                lines=_text_lines(page_markdown),
                                markdown=page_markdown,
                            )
                        )
            else:
                pages.append(IRPage(page_number=1, lines=_text_lines(markdown), markdown=markdown))
        elif children:
            lines = [line for block in children for line in _block_lines(block)]
            pages.append(IRPage(page_number=1, lines=lines))

        images = None
        if data.get("images") and self.extract_images:
            images = _extract_images(data["images"]) or None

        usd_per_page = MARKER_USD_PER_PAGE.get(self.mode or "balanced")
        logger.debug(
            "Converted Marker result",
            page_count=page_count,
            ir_pages=len(pages),
            images=len(images or []),
        )
        return DocumentIR(
            pages=pages,
            extras={
                "raw": data,
                "cost_usd": page_count * usd_per_page,
                "page_count": page_count,
                "status": data.get("status"),
                "success": data.get("success"),
                "images": images,
                "provider": "marker",
            },
        )
