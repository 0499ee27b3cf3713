"""
Surya OCR client (Datalab API or a self-hosted Surya server).

The OCR endpoint accepts a multipart upload. Hosted Datalab answers with a
``request_check_url`` that is polled until the status is "complete";
self-hosted servers usually answer synchronously with the result itself.
"""

from typing import Any, Optional

import httpx
import structlog

from docproc.models.document_models import BBox, DocumentIR, DocumentSource, IRLine, IRPage
from docproc.models.job_models import JobStatus
from docproc.polling.classifier import SURYA_CLASSIFIER
from docproc.providers.base_client import BaseProviderClient

logger = structlog.get_logger(__name__)

# Surya is billed at one cent per page
SURYA_USD_PER_PAGE = 0.01

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "::1")


class SuryaClient(BaseProviderClient):
    """
    Surya OCR via the Datalab ``/ocr`` endpoint.

    Datalab needs a moment before the check URL reports anything useful, so
    this client waits before every status check, including the first.
    """

    provider = "surya"
    DEFAULT_ENDPOINT = "https://www.datalab.to/api/v1/ocr"
    DEFAULT_MAX_ATTEMPTS = 30
    CHECK_BEFORE_FIRST_WAIT = False

    @property
    def method(self) -> str:
        """Either self-hosted (local endpoint) or native (Datalab API)."""
        host = httpx.URL(self.endpoint).host
        return "self-hosted" if host in _LOCAL_HOSTS else "native"

    def _auth_headers(self) -> dict[str, str]:
        return {"X-API-Key": self.api_key} if self.api_key else {}

    def _form_fields(self) -> dict[str, str]:
        """Extra multipart fields sent with the upload."""
        return {}

    async def submit(self, source: DocumentSource) -> dict[str, Any]:
        """Upload the document; returns either a check handle or the result."""
        document = await self.load_document(source)
        logger.info(
            "Submitting document to Datalab",
            provider=self.provider,
            filename=document.filename,
            mime_type=document.mime_type,
            size=document.size,
            method=self.method,
        )
        return await self._request_json(
            "POST",
            self.endpoint,
            operation="submit",
            files={"file": (document.filename, document.data, document.mime_type)},
            data=self._form_fields(),
        )

    async def wait_for_result(self, check_url: str, job_id: Optional[str] = None) -> dict[str, Any]:
        """Poll a Datalab check URL until the OCR job is complete."""
        job_id = job_id or check_url

        async def check_status() -> JobStatus:
            payload = await self._request_json("GET", check_url, operation="status")
            return JobStatus.from_payload(job_id, payload, message_keys=("error", "message"))

        return await self.poll_job(job_id, check_status, SURYA_CLASSIFIER)

    async def parse_to_ir(self, source: DocumentSource) -> DocumentIR:
        result = await self.submit(source)

        check_url = result.get("request_check_url")
        if check_url:
            result = await self.wait_for_result(check_url, result.get("request_id"))

        return self.to_document_ir(result)

    @staticmethod
    def to_document_ir(data: dict[str, Any]) -> DocumentIR:
        """
        Convert a Datalab OCR result into DocumentIR.

        Page size comes from ``image_bbox``; line boxes are ``[x1, y1, x2, y2]``.
        """
        pages_data = data.get("pages") or []
        page_count = data.get("page_count") or len(pages_data)

        pages = []
        for index, page in enumerate(pages_data):
            image_bbox = page.get("image_bbox") or [0, 0, 0, 0]
            lines = [
                IRLine(
                    text=line.get("text") or "",
                    bbox=BBox.from_corners(line["bbox"]) if line.get("bbox") else None,
                    confidence=line.get("confidence"),
                )
                for line in page.get("text_lines") or []
            ]
            pages.append(
                IRPage(
                    page_number=page.get("page") or index + 1,
                    width=image_bbox[2] - image_bbox[0],
                    height=image_bbox[3] - image_bbox[1],
                    lines=lines,
                )
            )

        return DocumentIR(
            pages=pages,
            extras={
                "raw": data,
                "cost_usd": page_count * SURYA_USD_PER_PAGE,
                "page_count": page_count,
                "status": data.get("status"),
                "success": data.get("success"),
                "provider": "surya",
            },
        )
