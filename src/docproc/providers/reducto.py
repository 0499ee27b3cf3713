"""
Reducto Parse client.

Flow: ``POST /upload`` (multipart) -> ``POST /parse`` referencing the
uploaded file -> if the parse runs asynchronously, poll ``GET /job/{id}``
until "completed". The parse result is grouped into pages of blocks with
bounding boxes and confidence levels.
"""

from typing import Any, Optional, Sequence, Union

import structlog

from docproc.models.document_models import BBox, DocumentIR, DocumentSource, IRLine, IRPage
from docproc.models.job_models import JobStatus
from docproc.polling.classifier import REDUCTO_CLASSIFIER
from docproc.providers.base_client import BaseProviderClient
from docproc.providers.exceptions import ProviderResponseError
from docproc.providers.files import LoadedDocument

logger = structlog.get_logger(__name__)

USD_PER_CREDIT = 0.004

PageRange = Union[Sequence[int], dict[str, int]]


def _block_markdown(block: dict[str, Any]) -> str:
    """Render one Reducto block as markdown according to its type."""
    block_type = block.get("type")
    content = block.get("content") or ""

    if block_type in ("Header", "Footer", "Page Number"):
        return ""
    if block_type in ("Title", "Section Header"):
        return f"# {content}"
    if block_type == "List Item":
        return content if content.startswith("-") else f"- {content}"
    if block_type == "Figure":
        image_url = block.get("image_url")
        return f"![Figure]({image_url})" if image_url else f"[Figure: {content}]"
    if block_type == "Key Value":
        return f"**{content}**"
    if block_type == "Comment":
        return f"<!-- {content} -->"
    if block_type == "Signature":
        return f"*[Signature: {content}]*"
    return content


def _block_bbox(bbox: dict[str, Any]) -> BBox:
    return BBox(x=bbox["left"], y=bbox["top"], w=bbox["width"], h=bbox["height"])


class ReductoClient(BaseProviderClient):
    """
    Reducto ``/parse`` with upload, optional chunking and async jobs.

    Reducto jobs never finish instantly, so the client waits before every
    status check.
    """

    provider = "reducto"
    DEFAULT_ENDPOINT = "https://platform.reducto.ai"
    DEFAULT_MAX_ATTEMPTS = 120
    CHECK_BEFORE_FIRST_WAIT = False

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        chunk_mode: Optional[str] = None,
        chunk_size: Optional[int] = None,
        table_output_format: Optional[str] = None,
        add_page_markers: bool = False,
        agentic: bool = False,
        page_range: Optional[PageRange] = None,
        max_pages: Optional[int] = None,
        **kwargs: Any,
    ):
        """
        Initialize Reducto client.

        Args:
            chunk_mode: Retrieval chunking mode ("variable", "section", ...);
                None or "disabled" turns chunking off
            chunk_size: Target chunk size for chunking
            table_output_format: "md", "html", "json", ...
            add_page_markers: Insert page markers into content
            agentic: Enable Reducto's enhanced (agentic) parsing
            page_range: List of 0-indexed pages or {"start": .., "end": ..}
            max_pages: Shorthand for page_range {0 .. max_pages-1}
            **kwargs: BaseProviderClient options
        """
        super().__init__(endpoint=endpoint, api_key=api_key, **kwargs)
        self.chunk_mode = chunk_mode
        self.chunk_size = chunk_size
        self.table_output_format = table_output_format
        self.add_page_markers = add_page_markers
        self.agentic = agentic
        self.page_range = page_range
        self.max_pages = max_pages

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def upload(self, document: LoadedDocument) -> dict[str, Any]:
        """Upload a document; the response carries ``file_id`` and maybe ``presigned_url``."""
        response = await self._request_json(
            "POST",
            f"{self.endpoint}/upload",
            operation="upload",
            files={"file": (document.filename, document.data, document.mime_type)},
        )
        if not response.get("file_id"):
            raise ProviderResponseError(
                "Reducto upload did not return a file_id",
                details={"response_keys": sorted(response)},
            )
        return response

    def build_parse_request(self, document_input: str) -> dict[str, Any]:
        """Assemble the ``/parse`` request body from the client options."""
        request: dict[str, Any] = {"input": document_input}

        if self.chunk_mode and self.chunk_mode != "disabled":
            chunking: dict[str, Any] = {"mode": self.chunk_mode}
            if self.chunk_size:
                chunking["target_size"] = self.chunk_size
            request["retrieval"] = {"chunking": chunking}

        formatting: dict[str, Any] = {}
        if self.table_output_format:
            formatting["table_output_format"] = self.table_output_format
        if self.add_page_markers:
            formatting["add_page_markers"] = True
        if formatting:
            request["formatting"] = formatting

        if self.agentic:
            request["enhance"] = {"enabled": True}

        settings: dict[str, Any] = {}
        if self.page_range is not None:
            if isinstance(self.page_range, dict):
                settings["page_range"] = {
                    "start": self.page_range.get("start", 0),
                    "end": self.page_range.get("end"),
                }
            else:
                settings["page_range"] = list(self.page_range)
        elif self.max_pages:
            settings["page_range"] = {"start": 0, "end": self.max_pages - 1}
        if settings:
            request["settings"] = settings

        return request

    async def wait_for_job(self, job_id: str) -> dict[str, Any]:
        """Poll ``/job/{job_id}`` and return the job's ``result`` field."""

        async def check_status() -> JobStatus:
            payload = await self._request_json(
                "GET", f"{self.endpoint}/job/{job_id}", operation="status"
            )
            return JobStatus.from_payload(job_id, payload, message_keys=("error", "reason"))

        payload = await self.poll_job(job_id, check_status, REDUCTO_CLASSIFIER)
        result = payload.get("result")
        if not isinstance(result, dict):
            raise ProviderResponseError(
                f"Reducto job {job_id} completed without a result",
                details={"job_id": job_id, "response_keys": sorted(payload)},
            )
        return result

    async def parse_to_ir(self, source: DocumentSource) -> DocumentIR:
        document = await self.load_document(source)
        upload = await self.upload(document)

        file_id = upload["file_id"]
        document_ref = file_id if file_id.startswith("reducto://") else f"reducto://{file_id}"
        request = self.build_parse_request(upload.get("presigned_url") or document_ref)

        logger.info(
            "Submitting parse request to Reducto",
            filename=document.filename,
            size=document.size,
            chunk_mode=self.chunk_mode,
            agentic=self.agentic,
        )
        response = await self._request_json(
            "POST", f"{self.endpoint}/parse", operation="parse", json=request
        )

        if "status" in response and response["status"] != "completed":
            job_id = response.get("job_id")
            if not job_id:
                raise ProviderResponseError(
                    "Reducto parse returned a pending status without a job_id",
                    details={"status": response["status"]},
                )
            response = await self.wait_for_job(job_id)

        return self.to_document_ir(response)

    @staticmethod
    def to_document_ir(response: dict[str, Any]) -> DocumentIR:
        """
        Group parse blocks by page, top to bottom.

        Reducto reports no page geometry, so pages get the default size.
        At least one (empty) page is always returned.
        """
        try:
            chunks = response["result"]["chunks"]
        except (KeyError, TypeError) as e:
            raise ProviderResponseError(
                "Reducto parse response has no result.chunks",
                details={"response_keys": sorted(response) if isinstance(response, dict) else []},
            ) from e

        page_blocks: dict[int, list[tuple[dict[str, Any], BBox]]] = {}
        block_confidence: dict[str, Any] = {}
        images = []
        block_index = 0
        for chunk in chunks:
            for block in chunk.get("blocks") or []:
                try:
                    page_num = int(block["bbox"]["page"])
                    bbox = _block_bbox(block["bbox"])
                except (KeyError, TypeError, ValueError) as e:
                    raise ProviderResponseError(
                        "Reducto block has no usable bbox",
                        details={"block_index": block_index, "block_type": block.get("type")},
                    ) from e
                page_blocks.setdefault(page_num, []).append((block, bbox))
                block_confidence[f"block-{block_index}"] = block.get("confidence")
                block_index += 1

                if block.get("image_url") and block.get("type") in ("Figure", "Table"):
                    images.append(
                        {
                            "id": f"{block['type'].lower()}-{page_num}-{len(page_blocks[page_num])}",
                            "page_number": page_num,
                            "url": block["image_url"],
                            "bbox": bbox.model_dump(),
                            "caption": block["type"],
                        }
                    )

        pages = []
        for page_num in sorted(page_blocks):
            placed = sorted(page_blocks[page_num], key=lambda item: item[1].y)
            lines = [
                IRLine(
                    text=block.get("content") or "",
                    bbox=bbox,
                    confidence=block.get("confidence"),
                    block_type=block.get("type"),
                )
                for block, bbox in placed
            ]
            markdown = "\n\n".join(_block_markdown(block) for block, _ in placed)
            pages.append(IRPage(page_number=page_num, lines=lines, markdown=markdown))

        if not pages:
            pages.append(IRPage(lines=[], markdown=""))

        usage = response.get("usage") or {}
        credits = usage.get("credits") or 0
        return DocumentIR(
            pages=pages,
            extras={
                "raw": response,
                "cost_usd": credits * USD_PER_CREDIT,
                "credits": credits,
                "num_pages": usage.get("num_pages"),
                "job_id": response.get("job_id"),
                "duration": response.get("duration"),
                "chunks": chunks,
                "block_confidence": block_confidence,
                "images": images or None,
                "provider": "reducto",
            },
        )
