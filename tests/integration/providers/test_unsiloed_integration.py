"""Integration tests for the Unsiloed client.

Format validation, job submission, check-first polling and chunk
conversion against a scripted Unsiloed API.
"""

import base64

import httpx
import pytest

from docproc.models.document_models import DocumentSource
from docproc.models.enums import CircuitState
from docproc.models.policy_models import CircuitBreakerConfig, PollOptions, RetryConfig
from docproc.providers.exceptions import ProviderRequestError, ProviderResponseError, UnsupportedFormatError
from docproc.providers.unsiloed import (
    UnsiloedClient,
    categories_from_schema,
    chunks_to_document_ir,
    conditions_from_schema,
    credits_from_quota,
    validate_extract_format,
    validate_parse_format,
)
from docproc.resilience.exceptions import CircuitOpenError, JobFailedError, PollTimeoutError, RetryExhaustedError

pytestmark = pytest.mark.integration

CHUNKS = [
    {
        "segments": [
            {"segment_type": "Title", "content": "Terms", "markdown": "# Terms", "page_number": 1, "confidence": 0.97},
            {"segment_type": "Text", "content": "Line one\nLine two", "page_number": 1},
        ]
    },
    {"text": "Legacy chunk", "type": "Table", "confidence": 0.8, "page_numbers": [2]},
]


@pytest.fixture
def client(api, poller):
    return UnsiloedClient(
        api_key="unsiloed-key",
        transport=api.transport,
        poller=poller,
        poll_options=PollOptions(max_attempts=4, poll_interval_ms=2000),
        ocr_engine="UnsiloedHawk",
        use_high_resolution=True,
    )


def submitted(job_id="job-7"):
    return httpx.Response(200, json={"job_id": job_id, "status": "Starting", "quota_remaining": 99})


@pytest.mark.asyncio
async def test_parse_polls_until_succeeded(api, client, pdf_source, fake_sleep):
    api.add("POST", "/parse", submitted())
    api.add(
        "GET",
        "/parse/job-7",
        httpx.Response(200, json={"job_id": "job-7", "status": "Starting"}),
        httpx.Response(200, json={"job_id": "job-7", "status": "Processing"}),
        httpx.Response(200, json={"job_id": "job-7", "status": "Succeeded", "chunks": CHUNKS}),
    )

    async with client:
        ir = await client.parse_to_ir(pdf_source)

    assert len(api.calls("GET", "/parse/job-7")) == 3
    # first check is immediate
    assert fake_sleep.calls_ms == [2000, 2000]
    assert len(ir.pages) == 2
    assert ir.extras["job_id"] == "job-7"
    assert ir.extras["total_semantic_chunks"] == 2


@pytest.mark.asyncio
async def test_submission_form(api, client, pdf_source):
    api.add("POST", "/parse", submitted())
    api.add("GET", "/parse/job-7", httpx.Response(200, json={"status": "succeeded", "chunks": CHUNKS}))

    async with client:
        await client.parse_to_ir(pdf_source)

    request = api.calls("POST", "/parse")[0]
    assert request.headers["api-key"] == "unsiloed-key"
    assert b'name="ocr_engine"' in request.content
    assert b"UnsiloedHawk" in request.content
    assert b'name="use_high_resolution"' in request.content
    assert b'Content-Type: application/pdf' in request.content


@pytest.mark.asyncio
async def test_job_failure(api, client, pdf_source):
    api.add("POST", "/parse", submitted())
    api.add("GET", "/parse/job-7", httpx.Response(200, json={"status": "Failed", "message": "OCR crashed"}))

    async with client:
        with pytest.raises(JobFailedError) as exc_info:
            await client.parse_to_ir(pdf_source)

    assert exc_info.value.reason == "OCR crashed"
    assert exc_info.value.attempts == 1


@pytest.mark.asyncio
async def test_timeout(api, client, pdf_source):
    api.add("POST", "/parse", submitted())
    api.add("GET", "/parse/job-7", httpx.Response(200, json={"status": "Processing"}))

    async with client:
        with pytest.raises(PollTimeoutError) as exc_info:
            await client.parse_to_ir(pdf_source)

    assert exc_info.value.attempts == 4
    assert exc_info.value.budget_ms == 8000


@pytest.mark.asyncio
async def test_missing_job_id(api, client, pdf_source):
    api.add("POST", "/parse", httpx.Response(200, json={"status": "queued"}))

    async with client:
        with pytest.raises(ProviderResponseError, match="job_id"):
            await client.parse_to_ir(pdf_source)


@pytest.mark.asyncio
async def test_empty_chunks_rejected(api, client, pdf_source):
    api.add("POST", "/parse", submitted())
    api.add("GET", "/parse/job-7", httpx.Response(200, json={"status": "Succeeded", "chunks": []}))

    async with client:
        with pytest.raises(ProviderResponseError, match="valid chunks"):
            await client.parse_to_ir(pdf_source)


@pytest.mark.asyncio
async def test_webp_rejected_before_submission(api, client):
    webp = b"RIFF\x00\x00\x00\x00WEBPVP8 rest"
    source = DocumentSource(base64=base64.b64encode(webp).decode())

    async with client:
        with pytest.raises(UnsupportedFormatError, match="convert to JPEG or PNG"):
            await client.parse_to_ir(source)

    assert api.requests == []


@pytest.mark.asyncio
async def test_get_job_result_uses_own_breaker(api, poller, registry):
    api.add(
        "GET",
        "/jobs/job-7/result",
        httpx.Response(502),
        httpx.Response(200, json={"chunks": CHUNKS}),
    )
    client = UnsiloedClient(
        transport=api.transport,
        poller=poller,
        poll_options=PollOptions(
            retry=RetryConfig(max_retries=1, retry_delay_ms=10),
            breaker=CircuitBreakerConfig(threshold_failures=3),
        ),
    )

    async with client:
        result = await client.get_job_result("job-7")

    assert result == {"chunks": CHUNKS}
    breaker = registry.get("unsiloed:getJobResult")
    assert breaker.state == CircuitState.CLOSED
    assert "unsiloed:polling" not in registry


@pytest.mark.asyncio
async def test_get_job_result_breaker_open(api, poller, registry):
    api.add("GET", "/jobs/job-7/result", httpx.Response(500))
    client = UnsiloedClient(
        transport=api.transport,
        poller=poller,
        poll_options=PollOptions(breaker=CircuitBreakerConfig(threshold_failures=1)),
    )

    async with client:
        with pytest.raises(RetryExhaustedError):
            await client.get_job_result("job-7")
        with pytest.raises(CircuitOpenError):
            await client.get_job_result("job-7")

    assert len(api.calls("GET", "/jobs/job-7/result")) == 1


class TestFormatValidation:
    """Tests for /parse format validation."""

    @pytest.mark.parametrize(
        "mime_type",
        [
            "application/pdf",
            "image/png",
            "image/jpeg",
            "image/tiff",
            "application/zip",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ],
    )
    def test_supported(self, mime_type):
        validate_parse_format(mime_type)

    @pytest.mark.parametrize(
        "mime_type, hint",
        [("image/webp", "WebP"), ("image/gif", "GIF"), ("image/bmp", "BMP")],
    )
    def test_known_unsupported_have_hints(self, mime_type, hint):
        with pytest.raises(UnsupportedFormatError, match=f"{hint} is not supported") as exc_info:
            validate_parse_format(mime_type, "scan.img")
        assert "(file: scan.img)" in exc_info.value.message

    def test_other_unsupported(self):
        with pytest.raises(UnsupportedFormatError, match="application/octet-stream"):
            validate_parse_format("application/octet-stream")


class TestChunkConversion:
    """Tests for chunks_to_document_ir."""

    def test_segments_chunk(self):
        page = chunks_to_document_ir(CHUNKS).pages[0]

        assert page.page_number == 1
        assert [line.text for line in page.lines] == ["Terms", "Line one", "Line two"]
        assert [(line.start_char, line.end_char) for line in page.lines] == [(0, 5), (6, 14), (15, 23)]
        assert [line.line_id for line in page.lines] == ["line-0", "line-1", "line-2"]
        assert page.markdown == "# Terms\nLine one\nLine two"
        assert page.extras["semantic_chunk_type"] == "Title"
        assert page.extras["confidence"] == 0.97
        assert page.extras["segment_count"] == 2

    def test_legacy_chunk(self):
        page = chunks_to_document_ir(CHUNKS).pages[1]

        assert page.page_number == 2
        assert page.markdown == "Legacy chunk"
        assert page.extras["semantic_chunk_type"] == "Table"
        assert page.extras["original_page_numbers"] == [2]
        assert page.extras["chunk_index"] == 1
        assert page.extras["segment_count"] is None


class TestExtractionEndpoints:
    """Extract, tables, classify and split against the scripted API."""

    @pytest.mark.asyncio
    async def test_extract_polls_jobs_then_reads_result(self, api, client, pdf_source, fake_sleep):
        schema = {"type": "object", "properties": {"total": {"type": "number"}}}
        api.add("POST", "/cite", httpx.Response(200, json={"job_id": "ex-1", "status": "queued", "quota_remaining": 100}))
        api.add(
            "GET",
            "/jobs/ex-1",
            httpx.Response(200, json={"status": "Processing"}),
            httpx.Response(200, json={"status": "Succeeded"}),
        )
        api.add(
            "GET",
            "/jobs/ex-1/result",
            httpx.Response(200, json={"extracted_data": {"total": 42.5}, "quota_remaining": 97}),
        )

        async with client:
            result = await client.extract(pdf_source, schema)

        assert result.operation == "extract"
        assert result.data == {"total": 42.5}
        assert result.job_id == "ex-1"
        assert result.credits_used == 3
        assert fake_sleep.calls_ms == [2000]

        request = api.calls("POST", "/cite")[0]
        assert b'name="pdf_file"' in request.content
        assert b'name="schema_data"' in request.content
        assert b'"total"' in request.content

    @pytest.mark.asyncio
    async def test_extract_accepts_images(self, api, client):
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
        source = DocumentSource(base64=base64.b64encode(png).decode())
        api.add("POST", "/cite", httpx.Response(200, json={"job_id": "ex-2"}))
        api.add("GET", "/jobs/ex-2", httpx.Response(200, json={"status": "completed"}))
        api.add("GET", "/jobs/ex-2/result", httpx.Response(200, json={"data": {"name": "ACME"}}))

        async with client:
            result = await client.extract(source, {"type": "object"})

        assert result.data == {"name": "ACME"}
        assert result.credits_used is None

    @pytest.mark.asyncio
    async def test_extract_job_failure_skips_result(self, api, client, pdf_source):
        api.add("POST", "/cite", httpx.Response(200, json={"job_id": "ex-3"}))
        api.add("GET", "/jobs/ex-3", httpx.Response(200, json={"status": "Failed", "message": "schema invalid"}))

        async with client:
            with pytest.raises(JobFailedError, match="schema invalid"):
                await client.extract(pdf_source, {"type": "object"})

        assert api.calls("GET", "/jobs/ex-3/result") == []

    @pytest.mark.asyncio
    async def test_tables(self, api, client, pdf_source):
        tables = [{"rows": [["a", "b"]]}]
        api.add("POST", "/tables", httpx.Response(200, json={"job_id": "tb-1"}))
        api.add("GET", "/jobs/tb-1", httpx.Response(200, json={"status": "Succeeded"}))
        api.add("GET", "/jobs/tb-1/result", httpx.Response(200, json={"tables": tables}))

        async with client:
            result = await client.extract_tables(pdf_source)

        assert result.operation == "tables"
        assert result.data == tables

    @pytest.mark.asyncio
    async def test_tables_reject_images(self, api, client):
        png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
        source = DocumentSource(base64=base64.b64encode(png).decode())

        async with client:
            with pytest.raises(UnsupportedFormatError, match="/tables only supports PDF"):
                await client.extract_tables(source)

        assert api.requests == []

    @pytest.mark.asyncio
    async def test_classify_uses_schema_enum(self, api, client, pdf_source):
        schema = {"properties": {"category": {"enum": ["invoice", "receipt"]}}}
        api.add("POST", "/classify", httpx.Response(200, json={"job_id": "cl-1", "quota_remaining": 50}))
        api.add(
            "GET",
            "/classify/cl-1",
            httpx.Response(
                200,
                json={"status": "Completed", "classification": {"label": "invoice"}, "quota_remaining": 49},
            ),
        )

        async with client:
            result = await client.classify(pdf_source, conditions=["contract"], schema=schema)

        assert result.data == {"label": "invoice"}
        assert result.credits_used == 1
        assert b'["invoice", "receipt"]' in api.calls("POST", "/classify")[0].content
        assert api.calls("GET", "/jobs/cl-1/result") == []

    @pytest.mark.asyncio
    async def test_classify_requires_labels(self, api, client, pdf_source):
        async with client:
            with pytest.raises(ProviderRequestError, match="conditions"):
                await client.classify(pdf_source)

        assert api.requests == []

    @pytest.mark.asyncio
    async def test_split_is_synchronous(self, api, client, pdf_source, fake_sleep):
        splits = [{"class": "invoice", "pages": [1, 2]}]
        api.add(
            "POST",
            "/splitter/split-pdf-v1",
            httpx.Response(200, json={"splits": splits, "quota_before": 20, "quota_after": 18}),
        )

        async with client:
            result = await client.split(
                pdf_source, categories={"invoice": "Billing document", "contract": "Agreement"}
            )

        assert result.data == splits
        assert result.credits_used == 2
        assert fake_sleep.calls == []

        request = api.calls("POST", "/splitter/split-pdf-v1")[0]
        assert request.url.params["classes"] == "invoice,contract"
        assert b'name="file"' in request.content

    @pytest.mark.asyncio
    async def test_split_requires_categories(self, client, pdf_source):
        async with client:
            with pytest.raises(ProviderRequestError, match="categories"):
                await client.split(pdf_source)


class TestSchemaHelpers:
    """Tests for label/category discovery and quota accounting."""

    def test_conditions_from_schema(self):
        assert conditions_from_schema({"enum": ["a", "b"]}) == ["a", "b"]
        assert conditions_from_schema({"properties": {"x": {"type": "string"}}}, ["d"]) == ["d"]
        assert conditions_from_schema(None, ["d"]) == ["d"]

    def test_categories_from_described_properties(self):
        schema = {
            "properties": {
                "categories": {
                    "properties": {"invoice": {"description": "Billing document"}, "memo": {}}
                }
            }
        }
        assert categories_from_schema(schema) == {"invoice": "Billing document", "memo": "memo"}

    def test_categories_from_enum(self):
        schema = {"properties": {"kind": {"enum": ["invoice", "contract"]}}}
        assert categories_from_schema(schema) == {"invoice": "invoice", "contract": "contract"}

    @pytest.mark.parametrize(
        "before, after, expected",
        [(10, 7, 3), (10, 10, None), (None, 5, None), (5, None, None)],
    )
    def test_credits_from_quota(self, before, after, expected):
        assert credits_from_quota(before, after) == expected

    def test_extract_format_rejects_bmp(self):
        with pytest.raises(UnsupportedFormatError, match="convert to PNG"):
            validate_extract_format("image/bmp", "scan.bmp")
