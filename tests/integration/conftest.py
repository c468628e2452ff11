from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from litestar.testing import AsyncTestClient

from astrocache.services.astrologer import AstrologerClient
from astrocache.services.storage import MemoryStorage

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from litestar import Litestar


class FakeAstrologerAPI:
    """``httpx.MockTransport`` handler answering the two computation endpoints."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.subject_status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path.endswith("/chart-data/transit"):
            transit = body["transit_subject"]
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "chart_data": {
                        "chart_type": "Transit",
                        "second_subject": {"name": "Transit", "day": transit["day"]},
                        "aspects": [{"p1_name": "Sun", "p2_name": "Moon", "aspect": "sextile", "orbit": 2.1}],
                    },
                },
            )
        if self.subject_status != 200:
            return httpx.Response(self.subject_status, text="upstream down")
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "subject": {
                    "sun": {"name": "Sun", "sign": "Cap", "abs_pos": 280.1, "house": "Tenth_House"},
                    "first_house": {"name": "First_House", "sign": "Lib"},
                },
            },
        )

    def count(self, suffix: str) -> int:
        return sum(1 for path, _ in self.requests if path.endswith(suffix))


class FakeVertexAI:
    def __init__(self) -> None:
        self.chunks = ["Mars squares ", "your Sun."]
        self.calls = 0

    @property
    def is_initialized(self) -> bool:
        return True

    async def generate_chat_response_stream(self, messages: list[dict[str, str]]) -> AsyncGenerator[str, None]:
        self.calls += 1
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def astrologer_api() -> FakeAstrologerAPI:
    return FakeAstrologerAPI()


@pytest.fixture
def vertex_ai() -> FakeVertexAI:
    return FakeVertexAI()


@pytest.fixture
async def astrologer_client(astrologer_api: FakeAstrologerAPI) -> AsyncGenerator[AstrologerClient, None]:
    async with AstrologerClient(
        base_url="http://astrologer.test/api/v5",
        transport=httpx.MockTransport(astrologer_api),
    ) as client:
        yield client


@pytest.fixture
async def client(app: Litestar) -> AsyncGenerator[AsyncTestClient, None]:
    """Create test client."""
    async with AsyncTestClient(app=app) as c:
        yield c


@pytest.fixture
def app(astrologer_client: AstrologerClient, vertex_ai: FakeVertexAI) -> Litestar:
    """Create test app instance."""
    from astrocache.server.asgi import create_app

    app = create_app()
    app.state.cache_storage = MemoryStorage()
    app.state.astrologer_client = astrologer_client
    app.state.vertex_ai_service = vertex_ai
    return app
