"""
Unsiloed client: semantic parsing plus extraction-style endpoints.

Parse flow: multipart ``POST /parse`` -> ``job_id`` -> poll ``GET /parse/{id}``
until the job reports a success status. Unsiloed returns semantic chunks
rather than pages; each chunk becomes one IRPage.

Other endpoints return JSON as a StructuredResult:

    /cite      extract  (PDF or image)  poll /jobs/{id}, then /jobs/{id}/result
    /tables    tables   (PDF)           poll /jobs/{id}, then /jobs/{id}/result
    /classify  classify (PDF)           poll /classify/{id}
    /splitter  split    (PDF)           synchronous
"""

import json
from typing import Any, Callable, Optional

import structlog

from docproc.models.document_models import (
    DocumentIR,
    DocumentSource,
    IRLine,
    IRPage,
    StructuredResult,
)
from docproc.models.job_models import JobStatus
from docproc.polling.classifier import UNSILOED_CLASSIFIER
from docproc.providers.base_client import BaseProviderClient
from docproc.providers.exceptions import (
    ProviderRequestError,
    ProviderResponseError,
    UnsupportedFormatError,
)
from docproc.providers.files import LoadedDocument, detect_mime_type
from docproc.resilience.executor import is_retryable_error

logger = structlog.get_logger(__name__)

PARSE_SUPPORTED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/tiff",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        # Office files sniff as plain ZIP
        "application/zip",
    }
)

_SUPPORTED_FORMATS_HINT = "Unsiloed /parse supports: PDF, PNG, JPEG, TIFF, DOCX, XLSX, PPTX."

_CONVERSION_HINTS = {
    "image/webp": ("WebP", "please convert to JPEG or PNG first"),
    "image/gif": ("GIF", "please convert to PNG first"),
    "image/bmp": ("BMP", "please convert to PNG first"),
}


def validate_parse_format(mime_type: str, filename: Optional[str] = None) -> None:
    """
    Reject formats the ``/parse`` endpoint does not accept.

    Raises:
        UnsupportedFormatError: With the supported formats and, for common
            image formats, the conversion to apply
    """
    if mime_type in PARSE_SUPPORTED_MIME_TYPES or mime_type.startswith(
        "application/vnd.openxmlformats"
    ):
        return

    filename_hint = f" (file: {filename})" if filename else ""
    details = {"mime_type": mime_type, "filename": filename}

    if mime_type in _CONVERSION_HINTS:
        label, conversion = _CONVERSION_HINTS[mime_type]
        raise UnsupportedFormatError(
            f"Unsupported file format: {label}{filename_hint}. "
            f"{_SUPPORTED_FORMATS_HINT} {label} is not supported - {conversion}.",
            details=details,
        )
    raise UnsupportedFormatError(
        f"Unsupported file format: {mime_type}{filename_hint}. {_SUPPORTED_FORMATS_HINT}",
        details=details,
    )


EXTRACT_SUPPORTED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/tiff",
        "image/webp",
        "image/gif",
    }
)


def validate_extract_format(mime_type: str, filename: Optional[str] = None) -> None:
    """
    Reject formats the ``/cite`` extraction endpoint does not accept.

    The form field is called ``pdf_file`` but images are accepted too.
    """
    if mime_type in EXTRACT_SUPPORTED_MIME_TYPES:
        return

    filename_hint = f" (file: {filename})" if filename else ""
    supported = "Unsiloed /cite supports: PDF, PNG, JPEG, TIFF, WebP, GIF."
    details = {"mime_type": mime_type, "filename": filename}
    if mime_type == "image/bmp":
        raise UnsupportedFormatError(
            f"Unsupported file format: BMP{filename_hint}. {supported} "
            f"BMP is not supported - please convert to PNG first.",
            details=details,
        )
    raise UnsupportedFormatError(
        f"Unsupported file format: {mime_type}{filename_hint}. {supported}",
        details=details,
    )


def validate_pdf_format(mime_type: str, endpoint: str, filename: Optional[str] = None) -> None:
    """Reject anything but PDF for the PDF-only endpoints (/tables, /classify, /splitter)."""
    if mime_type == "application/pdf":
        return

    filename_hint = f" (file: {filename})" if filename else ""
    label = mime_type.replace("image/", "").replace("application/", "").upper()
    raise UnsupportedFormatError(
        f"Unsupported file format: {label}{filename_hint}. "
        f"Unsiloed {endpoint} only supports PDF files. "
        f"For image processing, use the /parse or /cite endpoints instead.",
        details={"mime_type": mime_type, "filename": filename, "endpoint": endpoint},
    )


def conditions_from_schema(
    schema: Optional[dict[str, Any]], default: Optional[list[str]] = None
) -> Optional[list[str]]:
    """Classification labels: the first property enum, the schema's own enum, or ``default``."""
    if not schema:
        return default

    for prop in (schema.get("properties") or {}).values():
        if isinstance(prop, dict) and isinstance(prop.get("enum"), list):
            return prop["enum"]
    if isinstance(schema.get("enum"), list):
        return schema["enum"]
    return default


def categories_from_schema(
    schema: Optional[dict[str, Any]], default: Optional[dict[str, str]] = None
) -> Optional[dict[str, str]]:
    """
    Split categories (name -> description) from a JSON schema.

    Looks for ``properties.categories.properties`` first (descriptions
    become the category description), then for the first property enum.
    """
    if not schema:
        return default

    properties = schema.get("properties") or {}
    described = (properties.get("categories") or {}).get("properties") or {}
    if described:
        return {
            name: (prop.get("description") if isinstance(prop, dict) else None) or name
            for name, prop in described.items()
        }

    for prop in properties.values():
        if isinstance(prop, dict) and isinstance(prop.get("enum"), list):
            return {category: category for category in prop["enum"]}
    return default


def credits_from_quota(before: Optional[float], after: Optional[float]) -> Optional[float]:
    """Credits consumed between two quota readings (None when unknown or not positive)."""
    if before is None or after is None:
        return None
    used = before - after
    return used if used > 0 else None


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    """Value of the first key present (not None) in ``payload``, else ``payload``."""
    for key in keys:
        if payload.get(key) is not None:
            return payload[key]
    return payload


def _text_to_lines(text: str) -> list[IRLine]:
    """Split text on newlines, tracking character offsets into ``text``."""
    if not text:
        return []

    lines = []
    current = 0
    for index, line_text in enumerate(text.split("\n")):
        end = current + len(line_text)
        lines.append(
            IRLine(text=line_text, start_char=current, end_char=end, line_id=f"line-{index}")
        )
        current = end + 1
    return lines


def chunks_to_document_ir(chunks: list[dict[str, Any]]) -> DocumentIR:
    """
    Convert Unsiloed semantic chunks into DocumentIR, one page per chunk.

    Chunks either carry ``segments`` (current API) or flat ``text`` /
    ``markdown`` fields (older responses).
    """
    pages = []
    for index, chunk in enumerate(chunks):
        segments = chunk.get("segments") or []
        page_number = index + 1

        if segments:
            text = "\n".join(s.get("content") or "" for s in segments)
            markdown = "\n".join(s.get("markdown") or s.get("content") or "" for s in segments)
            page_number = segments[0].get("page_number") or page_number
            first_segment = segments[0]
        else:
            text = chunk.get("text") or ""
            markdown = chunk.get("markdown") or text
            first_segment = {}

        pages.append(
            IRPage(
                page_number=page_number,
                lines=_text_to_lines(text),
                markdown=markdown,
                extras={
                    "semantic_chunk_type": chunk.get("type") or first_segment.get("segment_type"),
                    "confidence": chunk.get("confidence") or first_segment.get("confidence"),
                    "bounding_boxes": chunk.get("bounding_boxes"),
                    "original_page_numbers": chunk.get("page_numbers"),
                    "chunk_index": index,
                    "is_semantic_chunk": True,
                    "segment_count": len(segments) if segments else None,
                },
            )
        )

    return DocumentIR(
        pages=pages,
        extras={
            "total_semantic_chunks": len(chunks),
            "provider": "unsiloed",
        },
    )


class UnsiloedClient(BaseProviderClient):
    """
    Unsiloed ``/parse`` (YOLO segmentation + VLM + OCR).

    Parse jobs are sometimes done by the time they are submitted, so the
    first status check runs immediately.
    """

    provider = "unsiloed"
    DEFAULT_ENDPOINT = "https://prod.visionapi.unsiloed.ai"
    DEFAULT_MAX_ATTEMPTS = 150
    CHECK_BEFORE_FIRST_WAIT = True

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        ocr_engine: Optional[str] = None,
        use_high_resolution: Optional[bool] = None,
        segmentation_method: Optional[str] = None,
        ocr_mode: Optional[str] = None,
        **kwargs: Any,
    ):
        """
        Initialize Unsiloed client.

        Args:
            ocr_engine: "UnsiloedHawk" (accuracy) or "UnsiloedStorm" (speed)
            use_high_resolution: Process pages at high resolution
            segmentation_method: "smart_layout_detection" or "page_by_page"
            ocr_mode: "auto_ocr" or "full_ocr"
            **kwargs: BaseProviderClient options
        """
        super().__init__(endpoint=endpoint, api_key=api_key, **kwargs)
        self.ocr_engine = ocr_engine
        self.use_high_resolution = use_high_resolution
        self.segmentation_method = segmentation_method
        self.ocr_mode = ocr_mode

    def _auth_headers(self) -> dict[str, str]:
        return {"api-key": self.api_key} if self.api_key else {}

    def _form_fields(self) -> dict[str, str]:
        fields = {}
        if self.use_high_resolution is not None:
            fields["use_high_resolution"] = str(self.use_high_resolution).lower()
        if self.segmentation_method:
            fields["segmentation_method"] = self.segmentation_method
        if self.ocr_mode:
            fields["ocr_mode"] = self.ocr_mode
        if self.ocr_engine:
            fields["ocr_engine"] = self.ocr_engine
        return fields

    async def _post_document(
        self,
        path: str,
        operation: str,
        document: LoadedDocument,
        mime_type: str,
        *,
        file_field: str = "pdf_file",
        data: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        logger.info(
            "Submitting document to Unsiloed",
            operation=operation,
            filename=document.filename,
            mime_type=mime_type,
            size=document.size,
        )
        return await self._request_json(
            "POST",
            f"{self.endpoint}{path}",
            operation=operation,
            files={file_field: (document.filename, document.data, mime_type)},
            data=data or {},
            params=params,
        )

    def _require_job_id(self, response: dict[str, Any], operation: str) -> str:
        job_id = response.get("job_id")
        if not job_id:
            raise ProviderResponseError(
                f"Unsiloed {operation} request did not return a job_id",
                details={"response_keys": sorted(response)},
            )
        logger.info(
            "Unsiloed job submitted",
            operation=operation,
            job_id=job_id,
            status=response.get("status"),
            quota_remaining=response.get("quota_remaining"),
        )
        return job_id

    async def submit(self, document: LoadedDocument) -> str:
        """Submit a parse job and return its ``job_id``."""
        # Magic bytes beat extensions and data URL prefixes
        mime_type = detect_mime_type(document.data)
        validate_parse_format(mime_type, document.filename)

        response = await self._post_document(
            "/parse",
            "parse",
            document,
            mime_type,
            file_field="file",
            data=self._form_fields(),
        )
        return self._require_job_id(response, "parse")

    async def wait_for_job(self, job_id: str, status_path: Optional[str] = None) -> dict[str, Any]:
        """
        Poll a job until it completes.

        ``status_path`` defaults to ``/parse/{job_id}``; extraction jobs are
        polled on ``/jobs/{job_id}`` and classification on ``/classify/{job_id}``.
        """
        url = f"{self.endpoint}{status_path or f'/parse/{job_id}'}"

        async def check_status() -> JobStatus:
            payload = await self._request_json("GET", url, operation="status")
            return JobStatus.from_payload(job_id, payload)

        return await self.poll_job(job_id, check_status, UNSILOED_CLASSIFIER)

    async def get_job_result(self, job_id: str) -> dict[str, Any]:
        """
        Fetch ``/jobs/{job_id}/result`` for a completed job.

        Uses the polling retry policy; the "unsiloed:getJobResult" breaker
        gates the call when a breaker is configured.
        """
        breaker = None
        if self.poll_options.breaker is not None:
            breaker = self.registry.get_or_create(
                f"{self.provider}:getJobResult", self.poll_options.breaker
            )

        async def fetch_result() -> dict[str, Any]:
            return await self._request_json(
                "GET", f"{self.endpoint}/jobs/{job_id}/result", operation="result"
            )

        return await self.poller.executor.execute(
            fetch_result,
            self.poll_options.retry,
            breaker,
            operation_name=f"{self.provider}:getJobResult",
            retry_if=is_retryable_error,
        )

    async def parse_to_ir(self, source: DocumentSource) -> DocumentIR:
        document = await self.load_document(source)
        job_id = await self.submit(document)
        completed = await self.wait_for_job(job_id)

        chunks = completed.get("chunks")
        if not isinstance(chunks, list) or not chunks:
            raise ProviderResponseError(
                f"Unsiloed parse result did not contain valid chunks. "
                f"Response keys: {', '.join(sorted(completed))}",
                details={"job_id": job_id},
            )

        ir = chunks_to_document_ir(chunks)
        ir.extras["job_id"] = job_id
        return ir

    async def _load_checked(
        self, source: DocumentSource, validate: Callable[[str, Optional[str]], None]
    ) -> tuple[LoadedDocument, str]:
        document = await self.load_document(source)
        mime_type = detect_mime_type(document.data)
        validate(mime_type, document.filename)
        return document, mime_type

    async def extract(self, source: DocumentSource, schema: dict[str, Any]) -> StructuredResult:
        """
        Schema-driven extraction with citations (``POST /cite``).

        The job is polled on ``/jobs/{job_id}`` and the extracted data read
        from ``/jobs/{job_id}/result``.
        """
        document, mime_type = await self._load_checked(source, validate_extract_format)
        submitted = await self._post_document(
            "/cite",
            "extract",
            document,
            mime_type,
            data={"schema_data": json.dumps(schema)},
        )
        job_id = self._require_job_id(submitted, "extract")

        await self.wait_for_job(job_id, f"/jobs/{job_id}")
        result = await self.get_job_result(job_id)
        return StructuredResult(
            provider=self.provider,
            operation="extract",
            data=_first_present(result, "extracted_data", "data"),
            job_id=job_id,
            credits_used=credits_from_quota(
                submitted.get("quota_remaining"), result.get("quota_remaining")
            ),
            raw=result,
        )

    async def extract_tables(self, source: DocumentSource) -> StructuredResult:
        """Table extraction from a PDF (``POST /tables``), read via the job result."""
        document, mime_type = await self._load_checked(
            source, lambda mime, name: validate_pdf_format(mime, "/tables", name)
        )
        submitted = await self._post_document("/tables", "tables", document, mime_type)
        job_id = self._require_job_id(submitted, "tables")

        await self.wait_for_job(job_id, f"/jobs/{job_id}")
        result = await self.get_job_result(job_id)
        return StructuredResult(
            provider=self.provider,
            operation="tables",
            data=_first_present(result, "tables", "data"),
            job_id=job_id,
            credits_used=credits_from_quota(
                submitted.get("quota_remaining"), result.get("quota_remaining")
            ),
            raw=result,
        )

    async def classify(
        self,
        source: DocumentSource,
        conditions: Optional[list[str]] = None,
        schema: Optional[dict[str, Any]] = None,
    ) -> StructuredResult:
        """
        Classify a PDF into one of ``conditions`` (``POST /classify``).

        Labels come from the first enum in ``schema`` when there is one,
        otherwise from ``conditions``. The completed status payload carries
        the classification, so no result fetch is needed.

        Raises:
            ProviderRequestError: No labels were given
        """
        labels = conditions_from_schema(schema, conditions)
        if not labels:
            raise ProviderRequestError(
                "Unsiloed classify requires conditions/categories. "
                "Provide them as conditions or as an enum in the schema."
            )

        document, mime_type = await self._load_checked(
            source, lambda mime, name: validate_pdf_format(mime, "/classify", name)
        )
        submitted = await self._post_document(
            "/classify",
            "classify",
            document,
            mime_type,
            data={"conditions": json.dumps(labels)},
        )
        job_id = self._require_job_id(submitted, "classify")

        completed = await self.wait_for_job(job_id, f"/classify/{job_id}")
        return StructuredResult(
            provider=self.provider,
            operation="classify",
            data=_first_present(completed, "classification", "result"),
            job_id=job_id,
            credits_used=credits_from_quota(
                submitted.get("quota_remaining"), completed.get("quota_remaining")
            ),
            raw=completed,
        )

    async def split(
        self,
        source: DocumentSource,
        categories: Optional[dict[str, str]] = None,
        schema: Optional[dict[str, Any]] = None,
    ) -> StructuredResult:
        """
        Split a PDF into page ranges per category (``POST /splitter/split-pdf-v1``).

        The splitter answers synchronously; there is no job to poll.

        Raises:
            ProviderRequestError: No categories were given
        """
        named = categories_from_schema(schema, categories)
        if not named:
            raise ProviderRequestError(
                "Unsiloed split requires categories. "
                "Provide them as categories or define them in the schema."
            )

        document, mime_type = await self._load_checked(
            source, lambda mime, name: validate_pdf_format(mime, "/splitter", name)
        )
        result = await self._post_document(
            "/splitter/split-pdf-v1",
            "split",
            document,
            mime_type,
            file_field="file",
            data={"categories": json.dumps(named)},
            params={"classes": ",".join(named)},
        )

        quota_after = result.get("quota_remaining")
        if quota_after is None:
            quota_after = result.get("quota_after")
        return StructuredResult(
            provider=self.provider,
            operation="split",
            data=_first_present(result, "splits", "pages"),
            job_id=result.get("job_id"),
            credits_used=credits_from_quota(result.get("quota_before"), quota_after),
            raw=result,
        )
