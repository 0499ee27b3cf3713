"""Integration tests for the Marker client.

Form fields, check-URL polling, markdown page splitting and image
extraction against a scripted Datalab API.
"""

import httpx
import pytest

from docproc.models.enums import CircuitState
from docproc.models.policy_models import CircuitBreakerConfig, PollOptions
from docproc.providers.marker import MarkerClient
from docproc.resilience.exceptions import JobFailedError

pytestmark = pytest.mark.integration

MARKER_PATH = "/api/v1/marker"
CHECK_PATH = "/api/v1/marker/req-5"
CHECK_URL = f"https://www.datalab.to{CHECK_PATH}"

COMPLETE_PAYLOAD = {
    "status": "complete",
    "success": True,
    "page_count": 2,
    "markdown": "# Invoice\n\nTotal: 10 EUR\n---\nTerms apply\n",
    "json": {"children": [{"id": "/page/0"}, {"id": "/page/1"}]},
    "images": {"/page/1/Figure/3": "iVBORw0KGgo="},
}


@pytest.fixture
def client(api, poller):
    return MarkerClient(
        api_key="marker-key",
        transport=api.transport,
        poller=poller,
        poll_options=PollOptions(
            max_attempts=3,
            poll_interval_ms=2000,
            check_before_first_wait=False,
            breaker=CircuitBreakerConfig(threshold_failures=2),
        ),
        mode="high_accuracy",
        langs=["en", "de"],
        max_pages=4,
    )


def submitted():
    return httpx.Response(200, json={"request_id": "req-5", "request_check_url": CHECK_URL})


@pytest.mark.asyncio
async def test_parse_polls_and_splits_pages(api, client, pdf_source, fake_sleep, registry):
    api.add("POST", MARKER_PATH, submitted())
    api.add(
        "GET",
        CHECK_PATH,
        httpx.Response(200, json={"status": "processing"}),
        httpx.Response(200, json=COMPLETE_PAYLOAD),
    )

    async with client:
        ir = await client.parse_to_ir(pdf_source)

    assert fake_sleep.calls_ms == [2000, 2000]
    assert [page.markdown for page in ir.pages] == ["# Invoice\n\nTotal: 10 EUR", "Terms apply"]
    assert [line.text for line in ir.pages[0].lines] == ["# Invoice", "Total: 10 EUR"]
    assert ir.extras["cost_usd"] == pytest.approx(0.012)
    assert ir.extras["images"] == [
        {
            "id": "/page/1/Figure/3",
            "page_number": 1,
            "base64": "iVBORw0KGgo=",
            "mime_type": "image/png",
            "caption": "Figure",
        }
    ]
    assert registry.get("marker:polling").state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_form_fields(api, client, pdf_source):
    api.add("POST", MARKER_PATH, httpx.Response(200, json=COMPLETE_PAYLOAD))

    async with client:
        await client.parse_to_ir(pdf_source)

    request = api.calls("POST", MARKER_PATH)[0]
    assert request.headers["X-API-Key"] == "marker-key"
    body = request.content
    assert b'name="output_format"\r\n\r\njson,markdown' in body
    assert b'name="use_llm"\r\n\r\nfalse' in body
    assert b'name="mode"\r\n\r\naccurate' in body
    assert b'name="langs"\r\n\r\nen,de' in body
    assert b'name="max_pages"\r\n\r\n4' in body
    assert b"disable_image_extraction" not in body


@pytest.mark.asyncio
async def test_failed_job(api, client, pdf_source):
    api.add("POST", MARKER_PATH, submitted())
    api.add("GET", CHECK_PATH, httpx.Response(200, json={"status": "failed", "error": "Corrupt PDF"}))

    async with client:
        with pytest.raises(JobFailedError, match="Corrupt PDF"):
            await client.parse_to_ir(pdf_source)


class TestMarkerConversion:
    """Tests for MarkerClient.to_document_ir."""

    def test_single_page_without_block_tree(self):
        data = {"markdown": "a\n---\nb", "page_count": 1}
        ir = MarkerClient().to_document_ir(data)

        assert len(ir.pages) == 1
        assert ir.pages[0].markdown == "a\n---\nb"
        assert ir.extras["cost_usd"] == pytest.approx(0.004)

    def test_html_blocks_when_no_markdown(self):
        data = {
            "json": {
                "children": [
                    {"html": "<h1>Title</h1>", "bbox": [10, 20, 110, 40]},
                    {"html": "<p>Line one\nLine two</p>"},
                ]
            }
        }
        ir = MarkerClient(mode="fast").to_document_ir(data)

        lines = ir.pages[0].lines
        assert [line.text for line in lines] == ["Title", "Line one", "Line two"]
        assert lines[0].bbox.model_dump() == {"x": 10, "y": 20, "w": 100, "h": 20}
        assert lines[1].bbox is None
        assert ir.pages[0].markdown is None

    def test_images_dropped_when_disabled(self):
        ir = MarkerClient(extract_images=False).to_document_ir(COMPLETE_PAYLOAD)
        assert ir.extras["images"] is None

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValueError, match="Unknown Marker mode"):
            MarkerClient(mode="turbo")
