"""Integration test fixtures (scripted provider APIs).

Provider clients are composed with the real JobPoller, RetryExecutor and
breaker registry; only the HTTP layer is replaced by an httpx.MockTransport
that replays scripted responses per route.
"""

import base64
from collections import defaultdict, deque
from typing import Callable, Union

import httpx
import pytest

from docproc.models.document_models import DocumentSource

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF"

Scripted = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


class ScriptedAPI:
    """Replays responses per (method, path); the last response of a route repeats."""

    def __init__(self):
        self.routes: dict[tuple[str, str], deque] = defaultdict(deque)
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Scripted) -> "ScriptedAPI":
        self.routes[(method.upper(), path)].extend(responses)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"detail": f"no route for {request.url.path}"})

        item = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        # fresh copy, a route may replay the same response many times
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def api() -> ScriptedAPI:
    return ScriptedAPI()


@pytest.fixture
def pdf_source() -> DocumentSource:
    """A small PDF passed as a base64 data URL."""
    encoded = base64.b64encode(PDF_BYTES).decode()
    return DocumentSource(base64=f"data:application/pdf;base64,{encoded}")
