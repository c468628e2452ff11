from __future__ import annotations

import io
from datetime import date
from typing import TYPE_CHECKING

import msgspec
import pytest
import structlog
from litestar.logging.config import default_logger_factory

from astrocache.lib import log as log_conf
from astrocache.services.cache import ResultCache
from astrocache.services.storage import MemoryStorage
from astrocache.services.transits import TransitRangeService

if TYPE_CHECKING:
    from collections.abc import Iterator

    from astrocache.schemas import Subject
    from tests.conftest import RecordingSleep, StubAstrologerClient


@pytest.fixture
def json_log() -> Iterator[io.BytesIO]:
    output = io.BytesIO()
    structlog.reset_defaults()
    structlog.configure(
        processors=log_conf.structlog_processors(as_json=True),
        logger_factory=structlog.BytesLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )
    yield output
    structlog.reset_defaults()


def _lines(output: io.BytesIO) -> list[dict[str, object]]:
    return [msgspec.json.decode(line) for line in output.getvalue().splitlines() if line]


def test_json_renderer_matches_json_logger_factory() -> None:
    renderer = log_conf.structlog_processors(as_json=True)[-1]

    rendered = renderer(None, "info", {"event": "hello", "store": "ephemeris"})

    assert isinstance(default_logger_factory(as_json=True), structlog.BytesLoggerFactory)
    assert isinstance(rendered, bytes)
    assert msgspec.json.decode(rendered) == {"event": "hello", "store": "ephemeris"}


async def test_cache_operations_log_json_lines(json_log: io.BytesIO) -> None:
    cache: ResultCache[int] = ResultCache(MemoryStorage(), "s", 1000, 1, payload_type=int)

    assert await cache.set("k", 1)
    assert await cache.get("k") == 1
    assert await cache.get("missing") is None

    events = [line["event"] for line in _lines(json_log)]
    assert events == ["Cache write", "Cache hit", "Cache miss"]


async def test_transit_range_logs_json_lines(
    json_log: io.BytesIO,
    natal_subject: Subject,
    stub_client_factory: type[StubAstrologerClient],
    recording_sleep: RecordingSleep,
) -> None:
    client = stub_client_factory(failures={2: 1})
    service = TransitRangeService(client, sleep=recording_sleep)  # type: ignore[arg-type]

    results = await service.get_transit_range(natal_subject, date(2024, 1, 1), date(2024, 1, 3))

    assert len(results) == 3
    lines = _lines(json_log)
    assert any(line["event"] == "Transit fetch failed, retrying" for line in lines)
    assert all(isinstance(line["timestamp"], str) for line in lines)
