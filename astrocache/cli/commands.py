# Copyright 2024 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""CLI commands for managing the local result cache and fetching transits."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import click
import msgspec
import structlog
from rich import get_console
from rich.table import Table

from astrocache.config import setup_logging
from astrocache.lib.settings import get_settings
from astrocache.schemas import Subject
from astrocache.services.astrologer import AstrologerClient
from astrocache.services.cache import CacheRegistry
from astrocache.services.storage import SQLiteStorage
from astrocache.services.transits import TransitRangeService, TransitTimelineService
from astrocache.utils.sync_tools import run_

if TYPE_CHECKING:
    from astrocache.lib.settings import Settings
    from astrocache.schemas import CacheInfo, TransitDayResult


logger = structlog.get_logger()

MAX_KEY_DISPLAY = 48


def _build_client(settings: Settings) -> AstrologerClient:
    return AstrologerClient.from_settings(settings.astrologer)


def _format_timestamp(stored_at: int) -> str:
    return datetime.fromtimestamp(stored_at / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _display_cache_info(infos: list[CacheInfo], show_entries: bool) -> None:
    console = get_console()
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Store", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Oldest (UTC)", style="dim")
    table.add_column("Newest (UTC)", style="dim")
    for info in infos:
        stamps = [entry.stored_at for entry in info.entries]
        table.add_row(
            info.store,
            str(info.count),
            _format_timestamp(min(stamps)) if stamps else "-",
            _format_timestamp(max(stamps)) if stamps else "-",
        )
    console.print(table)

    if not show_entries:
        return
    for info in infos:
        if not info.entries:
            continue
        entries = Table(title=info.store, show_header=True, header_style="bold blue")
        entries.add_column("Key", style="cyan")
        entries.add_column("Stored (UTC)")
        entries.add_column("Schema", justify="right")
        for entry in info.entries:
            key = entry.key if len(entry.key) <= MAX_KEY_DISPLAY else entry.key[:MAX_KEY_DISPLAY] + "..."
            entries.add_row(key, _format_timestamp(entry.stored_at), str(entry.schema_version))
        console.print(entries)


@click.group(name="cache", invoke_without_command=False, help="Manage the local result cache.")
def cache_group() -> None:
    """Manage the local result cache."""
    setup_logging()


@cache_group.command(name="info", help="Show entry counts per cache store.")
@click.option("--entries", "show_entries", is_flag=True, help="List every entry")
def cache_info_cmd(show_entries: bool) -> None:
    settings = get_settings()

    async def _info() -> list[CacheInfo]:
        async with SQLiteStorage(settings.cache.DATABASE_PATH) as storage:
            return await CacheRegistry(storage, settings.cache).info()

    _display_cache_info(run_(_info)(), show_entries)


@cache_group.command(name="clear", help="Clear one cache store, or all of them.")
@click.option("--store", "-s", help="Store to clear (clears every store if not specified)")
def cache_clear_cmd(store: str | None) -> None:
    console = get_console()
    settings = get_settings()

    async def _clear() -> dict[str, bool]:
        async with SQLiteStorage(settings.cache.DATABASE_PATH) as storage:
            registry = CacheRegistry(storage, settings.cache)
            result = await (registry.clear_store(store) if store else registry.clear_all())
            return result.stores

    try:
        stores = run_(_clear)()
    except KeyError as e:
        raise click.BadParameter(f"unknown store {store!r}", param_hint="--store") from e

    for name, success in stores.items():
        status = "[green]cleared[/green]" if success else "[red]failed[/red]"
        console.print(f"  • {name}: {status}")
    if not all(stores.values()):
        raise click.exceptions.Exit(1)


@cache_group.command(name="purge", help="Delete expired and stale entries from every store.")
def cache_purge_cmd() -> None:
    console = get_console()
    settings = get_settings()

    async def _purge() -> int:
        async with SQLiteStorage(settings.cache.DATABASE_PATH) as storage:
            return await CacheRegistry(storage, settings.cache).purge_expired()

    purged = run_(_purge)()
    console.print(f"[bold green]Purged {purged} expired entries[/bold green]")


@click.group(name="transits", invoke_without_command=False, help="Fetch transit data.")
def transits_group() -> None:
    """Fetch transit data."""
    setup_logging()


def _display_transits(days: list[TransitDayResult]) -> None:
    console = get_console()
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Date", style="cyan")
    table.add_column("Aspects", justify="right")
    table.add_column("Tightest aspect", style="dim")
    for day in days:
        tightest = min(day.aspects, key=lambda a: abs(a.orbit), default=None)
        table.add_row(
            day.date[:10],
            str(len(day.aspects)),
            f"{tightest.p1_name} {tightest.aspect} {tightest.p2_name}" if tightest else "-",
        )
    console.print(table)


@transits_group.command(name="fetch", help="Fetch daily transits of a subject over a date range.")
@click.option(
    "--subject",
    "subject_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file describing the natal subject",
)
@click.option("--start", "start_date", required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help="First day")
@click.option("--end", "end_date", required=True, type=click.DateTime(formats=["%Y-%m-%d"]), help="Last day")
@click.option("--subject-id", help="Serve and store complete months in the transit cache under this id")
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the results as JSON to this file",
)
def transits_fetch_cmd(
    subject_file: Path,
    start_date: datetime,
    end_date: datetime,
    subject_id: str | None,
    output: Path | None,
) -> None:
    console = get_console()
    settings = get_settings()
    try:
        subject = msgspec.json.decode(subject_file.read_bytes(), type=Subject)
    except (msgspec.DecodeError, msgspec.ValidationError) as e:
        raise click.BadParameter(str(e), param_hint="--subject") from e
    start: date = start_date.date()
    end: date = end_date.date()

    async def _fetch() -> list[TransitDayResult]:
        async with _build_client(settings) as client:
            range_service = TransitRangeService.from_settings(client, settings.transits)
            if subject_id is None:
                return await range_service.get_transit_range(subject, start, end)
            async with SQLiteStorage(settings.cache.DATABASE_PATH) as storage:
                registry = CacheRegistry(storage, settings.cache)
                timeline = TransitTimelineService(range_service, registry.transits)
                return await timeline.load(subject_id, subject, start, end)

    with console.status("[bold yellow]Fetching transits...", spinner="dots"):
        days = run_(_fetch)()

    requested = (end - start).days + 1
    _display_transits(days)
    console.print(f"[bold]Fetched {len(days)} of {max(requested, 0)} days[/bold]")
    if output is not None:
        output.write_bytes(msgspec.json.encode(days))
        console.print(f"[dim]Wrote {output}[/dim]")
