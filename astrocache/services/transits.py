"""Batch fetching of daily transit data over date ranges."""

from __future__ import annotations

import asyncio
import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING

import structlog

from astrocache.schemas import HouseComparison, Subject, TransitDayResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from astrocache.lib.settings import TransitSettings
    from astrocache.schemas import ComputationOptions
    from astrocache.services.astrologer import AstrologerClient
    from astrocache.services.cache import TransitMonthCache

logger = structlog.get_logger()

__all__ = (
    "TransitRangeService",
    "TransitTimelineService",
    "build_transit_subject",
    "expand_days",
    "format_day",
)

NOON = time(12, 0, tzinfo=timezone.utc)


def _as_utc_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(timezone.utc).date()
    return value


def expand_days(start: date | datetime, end: date | datetime) -> list[datetime]:
    """One instant per UTC calendar day from ``start`` to ``end`` inclusive, at noon UTC.

    Empty when ``end`` precedes ``start``.
    """
    first, last = _as_utc_date(start), _as_utc_date(end)
    return [datetime.combine(first + timedelta(days=offset), NOON) for offset in range((last - first).days + 1)]


def format_day(day: datetime) -> str:
    """ISO-8601 UTC timestamp with a ``Z`` suffix."""
    return day.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def build_transit_subject(base: Subject, day: datetime) -> Subject:
    """Transit chart subject for ``day``, located where ``base`` is."""
    return Subject(
        name="Transit",
        year=day.year,
        month=day.month,
        day=day.day,
        hour=12,
        minute=0,
        second=0,
        city=base.city,
        nation=base.nation,
        timezone=base.timezone or "UTC",
        longitude=base.longitude or 0,
        latitude=base.latitude or 0,
    )


class TransitRangeService:
    """Fetch one transit computation per day with bounded concurrency and retries.

    Args:
        client: Remote computation client.
        concurrency: Maximum number of calls in flight.
        max_attempts: Attempts per day, first call included.
        retry_delay: Backoff unit in seconds; failed attempt ``n`` waits ``n * retry_delay``.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        client: AstrologerClient,
        concurrency: int = 5,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            msg = "concurrency must be at least 1"
            raise ValueError(msg)
        if max_attempts < 1:
            msg = "max_attempts must be at least 1"
            raise ValueError(msg)
        self.client = client
        self.concurrency = concurrency
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.sleep = sleep

    @classmethod
    def from_settings(cls, client: AstrologerClient, settings: TransitSettings) -> TransitRangeService:
        return cls(
            client,
            concurrency=settings.CONCURRENCY,
            max_attempts=settings.MAX_ATTEMPTS,
            retry_delay=settings.RETRY_DELAY_MS / 1000,
        )

    async def fetch_day(
        self,
        subject: Subject,
        day: datetime,
        options: ComputationOptions | None = None,
    ) -> TransitDayResult | None:
        """Fetch the transits of a single day.

        Returns:
            The day's result, or ``None`` when every attempt failed or the API
            answered without the data needed (the latter is not retried).
        """
        transit_subject = build_transit_subject(subject, day)
        date_str = format_day(day)
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.get_transit_chart_data(subject, transit_subject, options)
            except Exception as e:  # noqa: BLE001
                if attempt >= self.max_attempts:
                    logger.error(
                        "Transit fetch failed, giving up",
                        date=date_str,
                        attempts=attempt,
                        error=str(e),
                    )
                    return None
                delay = attempt * self.retry_delay
                logger.warning("Transit fetch failed, retrying", date=date_str, attempt=attempt, delay=delay, error=str(e))
                await self.sleep(delay)
                continue

            chart_data = response.chart_data
            if response.status != "OK" or chart_data is None or not chart_data.second_subject:
                logger.warning("Transit response incomplete", date=date_str, status=response.status)
                return None
            return TransitDayResult(
                date=date_str,
                transit_subject=chart_data.second_subject,
                aspects=chart_data.aspects or [],
                house_comparison=chart_data.house_comparison or HouseComparison(),
            )
        return None

    async def get_transit_range(
        self,
        subject: Subject,
        start: date | datetime,
        end: date | datetime,
        options: ComputationOptions | None = None,
    ) -> list[TransitDayResult]:
        """Fetch every day from ``start`` to ``end`` inclusive.

        Days that cannot be fetched are left out; the result is sorted by date.
        """
        days = expand_days(start, end)
        if not days:
            return []
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(day: datetime) -> TransitDayResult | None:
            async with semaphore:
                return await self.fetch_day(subject, day, options)

        results = await asyncio.gather(*(_bounded(day) for day in days))
        fetched = sorted((result for result in results if result is not None), key=lambda r: r.date)
        logger.info(
            "Transit range fetched",
            start=format_day(days[0]),
            end=format_day(days[-1]),
            requested=len(days),
            fetched=len(fetched),
        )
        return fetched


def _months(first: date, last: date) -> list[tuple[int, int]]:
    months = []
    year, month = first.year, first.month
    while (year, month) <= (last.year, last.month):
        months.append((year, month))
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)
    return months


class TransitTimelineService:
    """Month-cached transit timeline for a saved subject."""

    def __init__(self, range_service: TransitRangeService, month_cache: TransitMonthCache) -> None:
        self.range_service = range_service
        self.month_cache = month_cache

    async def load(
        self,
        subject_id: str,
        subject: Subject,
        start: date | datetime,
        end: date | datetime,
        options: ComputationOptions | None = None,
    ) -> list[TransitDayResult]:
        """Transits from ``start`` to ``end``, served from complete cached months when possible.

        A month is written back to the cache only when the fetch covered the
        whole month and every day of it came back.
        """
        first, last = _as_utc_date(start), _as_utc_date(end)
        if last < first:
            return []
        collected: list[TransitDayResult] = []
        for year, month in _months(first, last):
            cached = await self.month_cache.get_month(subject_id, year, month)
            if cached is not None:
                collected.extend(cached)
                continue
            days_in_month = calendar.monthrange(year, month)[1]
            month_start = max(first, date(year, month, 1))
            month_end = min(last, date(year, month, days_in_month))
            fetched = await self.range_service.get_transit_range(subject, month_start, month_end, options)
            covers_month = month_start.day == 1 and month_end.day == days_in_month
            if covers_month and len(fetched) == days_in_month:
                await self.month_cache.set_month(subject_id, year, month, fetched)
            collected.extend(fetched)

        lower, upper = format_day(datetime.combine(first, NOON)), format_day(datetime.combine(last, NOON))
        return sorted((day for day in collected if lower <= day.date <= upper), key=lambda r: r.date)
