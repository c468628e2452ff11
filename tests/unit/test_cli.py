from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

import httpx
import pytest
import structlog
from click.testing import CliRunner

from astrocache.cli import commands
from astrocache.config import log
from astrocache.lib.settings import get_settings
from astrocache.services.astrologer import AstrologerClient
from astrocache.services.cache import DAY_MS, CacheRegistry, now_ms
from astrocache.services.storage import SQLiteStorage

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def empty_cache(runner: CliRunner) -> None:
    result = runner.invoke(commands.cache_group, ["clear"])
    assert result.exit_code == 0, result.output


def _seed(clock_offset_ms: int = 0) -> None:
    settings = get_settings()

    async def _write() -> None:
        async with SQLiteStorage(settings.cache.DATABASE_PATH) as storage:
            registry = CacheRegistry(
                storage,
                settings.cache,
                clock=lambda: now_ms() + clock_offset_ms,
            )
            await registry.interpretations.save_chunk("natal-John-1990-01-15", "text", is_complete=True)
            await registry.ephemeris.set("2024-01-01_to_2024-01-02", [])

    asyncio.run(_write())


def test_cache_info_lists_every_store(runner: CliRunner) -> None:
    _seed()

    result = runner.invoke(commands.cache_group, ["info", "--entries"])

    assert result.exit_code == 0, result.output
    for store in ("ephemeris", "interpretations", "transits"):
        assert store in result.output
    assert "natal-John-1990-01-15" in result.output


def test_cache_clear_single_store(runner: CliRunner) -> None:
    _seed()

    result = runner.invoke(commands.cache_group, ["clear", "--store", "interpretations"])

    assert result.exit_code == 0, result.output
    assert "interpretations: cleared" in result.output
    assert "ephemeris" not in result.output


def test_cache_clear_unknown_store_is_usage_error(runner: CliRunner) -> None:
    result = runner.invoke(commands.cache_group, ["clear", "--store", "horoscopes"])

    assert result.exit_code == 2
    assert "unknown store" in result.output


def test_cache_purge_removes_expired_entries(runner: CliRunner) -> None:
    _seed(clock_offset_ms=-400 * DAY_MS)

    result = runner.invoke(commands.cache_group, ["purge"])

    assert result.exit_code == 0, result.output
    assert "Purged 2 expired entries" in result.output


def test_transits_fetch_writes_results(
    runner: CliRunner,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        day = json.loads(request.content)["transit_subject"]["day"]
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "chart_data": {
                    "second_subject": {"name": "Transit", "day": day},
                    "aspects": [{"p1_name": "Sun", "p2_name": "Venus", "aspect": "conjunction", "orbit": 0.2}],
                },
            },
        )

    monkeypatch.setattr(
        commands,
        "_build_client",
        lambda settings: AstrologerClient.from_settings(settings.astrologer, transport=httpx.MockTransport(handler)),
    )
    subject_file = tmp_path / "john.json"
    subject_file.write_text(
        json.dumps({"name": "John", "year": 1990, "month": 1, "day": 15, "city": "London", "nation": "GB"}),
    )
    output = tmp_path / "transits.json"

    result = runner.invoke(
        commands.transits_group,
        ["fetch", "--subject", str(subject_file), "--start", "2024-01-01", "--end", "2024-01-03", "-o", str(output)],
    )

    assert result.exit_code == 0, result.output
    assert "Fetched 3 of 3 days" in result.output
    written = json.loads(output.read_text())
    assert [day["date"] for day in written] == [
        "2024-01-01T12:00:00Z",
        "2024-01-02T12:00:00Z",
        "2024-01-03T12:00:00Z",
    ]
    assert written[0]["houseComparison"]["first_points_in_second_houses"] == []
    assert written[0]["houseComparison"]["second_points_in_first_houses"] == []


def test_transits_fetch_rejects_invalid_subject(runner: CliRunner, tmp_path: Path) -> None:
    subject_file = tmp_path / "bad.json"
    subject_file.write_text('{"name": "John"}')

    result = runner.invoke(
        commands.transits_group,
        ["fetch", "--subject", str(subject_file), "--start", "2024-01-01", "--end", "2024-01-03"],
    )

    assert result.exit_code == 2


def test_cache_group_configures_logging(runner: CliRunner) -> None:
    structlog.reset_defaults()

    result = runner.invoke(commands.cache_group, ["info"])

    assert result.exit_code == 0, result.output
    assert structlog.get_config()["logger_factory"] is log.structlog_logging_config.logger_factory
