from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any

import msgspec
import pytest

# Settings are read once per process, so the environment is fixed before anything imports them.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="astrocache-tests-"))
os.environ["CACHE_DATABASE_PATH"] = str(_TEST_DIR / "cache.db")
os.environ["ASTROLOGER_API_URL"] = "http://astrologer.test/api/v5"
os.environ["ASTROLOGER_API_KEY"] = ""
os.environ["VERTEX_AI_PROJECT_ID"] = ""

from astrocache.schemas import Subject, TransitChartData, TransitChartResponse  # noqa: E402
from astrocache.services.storage import MemoryStorage  # noqa: E402

if TYPE_CHECKING:
    from astrocache.schemas import ComputationOptions


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_transit_response(day: int, status: str = "OK", with_subject: bool = True) -> TransitChartResponse:
    chart_data: dict[str, Any] = {
        "chart_type": "Transit",
        "aspects": [
            {"p1_name": "Sun", "p2_name": "Moon", "aspect": "trine", "orbit": 1.5, "aspect_degrees": 120},
        ],
    }
    if with_subject:
        chart_data["second_subject"] = {"name": "Transit", "day": day}
    return TransitChartResponse(status=status, chart_data=msgspec.convert(chart_data, type=TransitChartData))


class StubAstrologerClient:
    """In-process stand-in for the remote API that records its call pattern.

    Args:
        failures: ``{day_of_month: n}`` fails the first ``n`` calls for that day.
        incomplete: Days answered with status ``OK`` but no transit subject.
        delay: Seconds each call takes.
    """

    def __init__(
        self,
        failures: dict[int, int] | None = None,
        incomplete: set[int] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.failures = dict(failures or {})
        self.incomplete = incomplete or set()
        self.delay = delay
        self.calls: list[Subject] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_transit_chart_data(
        self,
        natal_subject: Subject,
        transit_subject: Subject,
        options: ComputationOptions | None = None,
    ) -> TransitChartResponse:
        self.calls.append(transit_subject)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            remaining = self.failures.get(transit_subject.day, 0)
            if remaining:
                self.failures[transit_subject.day] = remaining - 1
                msg = f"boom on day {transit_subject.day}"
                raise RuntimeError(msg)
            if transit_subject.day in self.incomplete:
                return make_transit_response(transit_subject.day, with_subject=False)
            return make_transit_response(transit_subject.day)
        finally:
            self.in_flight -= 1

    def calls_for(self, day: int) -> int:
        return sum(1 for call in self.calls if call.day == day)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def natal_subject() -> Subject:
    return Subject(
        name="John",
        year=1990,
        month=1,
        day=15,
        hour=8,
        minute=30,
        city="London",
        nation="GB",
        timezone="Europe/London",
        longitude=-0.1276,
        latitude=51.5072,
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def stub_client_factory() -> type[StubAstrologerClient]:
    return StubAstrologerClient
