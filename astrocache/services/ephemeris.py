"""Daily ephemeris built from per-day subject computations."""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog

from astrocache.lib.exceptions import EphemerisUnavailableError
from astrocache.schemas import EphemerisDay, EphemerisPoint, Subject
from astrocache.services.transits import expand_days, format_day

if TYPE_CHECKING:
    from astrocache.services.astrologer import AstrologerClient
    from astrocache.services.cache import EphemerisCache

logger = structlog.get_logger()

# Subject key -> display name override (None keeps the API's name).
PLANET_KEYS: tuple[tuple[str, str | None], ...] = (
    ("sun", None),
    ("moon", None),
    ("mercury", None),
    ("venus", None),
    ("mars", None),
    ("jupiter", None),
    ("saturn", None),
    ("uranus", None),
    ("neptune", None),
    ("pluto", None),
    ("mean_north_lunar_node", "Mean_North_Lunar_Node"),
    ("true_north_lunar_node", "True_North_Lunar_Node"),
    ("mean_south_lunar_node", "Mean_South_Lunar_Node"),
    ("true_south_lunar_node", "True_South_Lunar_Node"),
    ("chiron", "Chiron"),
    ("pholus", "Pholus"),
    ("mean_lilith", "Mean_Lilith"),
    ("true_lilith", "True_Lilith"),
    ("earth", "Earth"),
    ("ceres", "Ceres"),
    ("pallas", "Pallas"),
    ("juno", "Juno"),
    ("vesta", "Vesta"),
    ("eris", "Eris"),
    ("sedna", "Sedna"),
    ("haumea", "Haumea"),
    ("makemake", "Makemake"),
    ("ixion", "Ixion"),
    ("orcus", "Orcus"),
    ("quaoar", "Quaoar"),
    ("regulus", "Regulus"),
    ("spica", "Spica"),
    ("ascendant", "Ascendant"),
    ("medium_coeli", "Medium_Coeli"),
    ("descendant", "Descendant"),
    ("imum_coeli", "Imum_Coeli"),
    ("vertex", "Vertex"),
    ("anti_vertex", "Anti_Vertex"),
    ("pars_fortunae", "Pars_Fortunae"),
    ("pars_spiritus", "Pars_Spiritus"),
    ("pars_amoris", "Pars_Amoris"),
    ("pars_fidei", "Pars_Fidei"),
)

HOUSE_KEYS: tuple[str, ...] = (
    "first_house",
    "second_house",
    "third_house",
    "fourth_house",
    "fifth_house",
    "sixth_house",
    "seventh_house",
    "eighth_house",
    "ninth_house",
    "tenth_house",
    "eleventh_house",
    "twelfth_house",
)

DEFAULT_RANGE_DAYS = 365


def ephemeris_subject(day: datetime) -> Subject:
    """Noon UTC at Greenwich on ``day``."""
    return Subject(
        name="Ephemeris",
        year=day.year,
        month=day.month,
        day=day.day,
        hour=12,
        minute=0,
        second=0,
        city="Greenwich",
        nation="GB",
        timezone="UTC",
        longitude=0,
        latitude=51.4778,
    )


def _point(data: dict[str, Any], name: str | None, *, is_house: bool) -> EphemerisPoint:
    return EphemerisPoint(
        name=name or data.get("name", ""),
        quality=data.get("quality") or "",
        element=data.get("element") or "",
        sign=data.get("sign") or "",
        sign_num=data.get("sign_num") or 0,
        position=data.get("position") or 0.0,
        abs_pos=data.get("abs_pos") or 0.0,
        emoji=data.get("emoji") or "",
        point_type=data.get("point_type") or "",
        house="" if is_house else (data.get("house") or ""),
        retrograde=False if is_house else bool(data.get("retrograde")),
    )


def flatten_subject(date_str: str, subject: dict[str, Any]) -> EphemerisDay:
    """Turn a computed subject into ordered planet and house point lists."""
    planets = [_point(subject[key], name, is_house=False) for key, name in PLANET_KEYS if subject.get(key)]
    houses = [_point(subject[key], None, is_house=True) for key in HOUSE_KEYS if subject.get(key)]
    return EphemerisDay(date=date_str, planets=planets, houses=houses)


class EphemerisService:
    """Daily positions over a date range, cached per range."""

    def __init__(self, client: AstrologerClient, cache: EphemerisCache, concurrency: int = 5) -> None:
        self.client = client
        self.cache = cache
        self.concurrency = concurrency

    async def _fetch_day(
        self,
        semaphore: asyncio.Semaphore,
        day: datetime,
        active_points: list[str] | None,
    ) -> EphemerisDay | None:
        date_str = format_day(day)
        async with semaphore:
            try:
                response = await self.client.get_subject(ephemeris_subject(day), active_points=active_points)
            except Exception as e:  # noqa: BLE001
                logger.error("Ephemeris fetch failed", date=date_str, error=str(e))
                return None
        if not response.subject:
            logger.warning("Ephemeris response without subject", date=date_str, status=response.status)
            return None
        return flatten_subject(date_str, response.subject)

    async def fetch_ephemeris(
        self,
        start: date | datetime | None = None,
        end: date | datetime | None = None,
        active_points: list[str] | None = None,
        skip_cache: bool = False,
    ) -> list[EphemerisDay]:
        """Return one :class:`EphemerisDay` per day from ``start`` to ``end``.

        Defaults to the next year starting today. Days that fail are skipped.

        Raises:
            EphemerisUnavailableError: If no day could be fetched.
        """
        start = start or datetime.now(timezone.utc).date()
        end = end or (start + timedelta(days=DEFAULT_RANGE_DAYS))

        if not skip_cache:
            cached = await self.cache.get_range(start, end)
            if cached is not None:
                logger.debug("Returning cached ephemeris", days=len(cached))
                return cached

        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(self._fetch_day(semaphore, day, active_points) for day in expand_days(start, end)),
        )
        days = sorted((day for day in results if day is not None), key=lambda d: d.date)
        if not days:
            msg = "No ephemeris data could be fetched"
            raise EphemerisUnavailableError(msg)

        await self.cache.set_range(start, end, days)
        return days
