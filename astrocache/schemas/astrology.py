"""Astrology data schemas exchanged with the chart computation API."""

from typing import Any, Literal

import msgspec

from astrocache.schemas.base import BaseStruct, CamelizedBaseStruct, drop_none

__all__ = (
    "Aspect",
    "ComputationOptions",
    "EphemerisDay",
    "EphemerisPoint",
    "HouseComparison",
    "HouseComparisonPoint",
    "Subject",
    "SubjectResponse",
    "TransitChartData",
    "TransitChartResponse",
    "TransitDayResult",
)


class Subject(BaseStruct):
    """Birth (or event) data for a chart subject.

    Only the location fields matter for the transit subjects derived from it;
    the name is carried through untouched.
    """

    name: str
    year: int
    month: int
    day: int
    hour: int = 12
    minute: int = 0
    second: int = 0
    city: str = ""
    nation: str = ""
    timezone: str | None = None
    longitude: float | None = None
    latitude: float | None = None

    def to_payload(self) -> dict[str, Any]:
        """Basic fields only, the form the computation API accepts."""
        return drop_none(self)


class ComputationOptions(BaseStruct, omit_defaults=True):
    """Optional computation configuration forwarded to the API."""

    active_points: list[str] | None = None
    active_aspects: list[dict[str, Any]] | None = None
    distribution_method: Literal["weighted", "pure_count"] | None = None
    custom_distribution_weights: dict[str, float] | None = None

    def to_payload(self) -> dict[str, Any]:
        return drop_none(self)


class Aspect(BaseStruct, omit_defaults=True):
    """Aspect between two points."""

    p1_name: str
    p2_name: str
    aspect: str
    orbit: float = 0.0
    aspect_degrees: float = 0.0
    diff: float = 0.0
    p1: int | dict[str, Any] | None = None
    p2: int | dict[str, Any] | None = None
    p1_owner: str | None = None
    p2_owner: str | None = None
    p1_abs_pos: float | None = None
    p2_abs_pos: float | None = None
    aspect_movement: str | None = None


class HouseComparisonPoint(BaseStruct, omit_defaults=True):
    """A point of one subject projected into the other subject's houses."""

    point_name: str
    point_degree: float = 0.0
    point_sign: str = ""
    point_owner_name: str = ""
    point_owner_house_number: int | None = None
    point_owner_house_name: str | None = None
    projected_house_number: int | None = None
    projected_house_name: str | None = None
    projected_house_owner_name: str = ""


class HouseComparison(BaseStruct):
    first_subject_name: str | None = None
    second_subject_name: str | None = None
    first_points_in_second_houses: list[HouseComparisonPoint] = msgspec.field(default_factory=list)
    second_points_in_first_houses: list[HouseComparisonPoint] = msgspec.field(default_factory=list)


class TransitChartData(BaseStruct):
    chart_type: str | None = None
    first_subject: dict[str, Any] | None = None
    second_subject: dict[str, Any] | None = None
    aspects: list[Aspect] | None = None
    house_comparison: HouseComparison | None = None


class TransitChartResponse(BaseStruct):
    """Response of ``POST /chart-data/transit``."""

    status: str
    chart_data: TransitChartData | None = None
    message: str | None = None


class SubjectResponse(BaseStruct):
    """Response of ``POST /subject``."""

    status: str
    subject: dict[str, Any] | None = None
    message: str | None = None


class TransitDayResult(CamelizedBaseStruct):
    """Transit computation for a single day of a range."""

    date: str
    transit_subject: dict[str, Any]
    aspects: list[Aspect] = msgspec.field(default_factory=list)
    house_comparison: HouseComparison = msgspec.field(default_factory=HouseComparison)


class EphemerisPoint(BaseStruct):
    """Position of one planet or house cusp on a given day."""

    name: str
    quality: str = ""
    element: str = ""
    sign: str = ""
    sign_num: int = 0
    position: float = 0.0
    abs_pos: float = 0.0
    emoji: str = ""
    point_type: str = ""
    house: str = ""
    retrograde: bool = False


class EphemerisDay(BaseStruct):
    date: str
    planets: list[EphemerisPoint] = msgspec.field(default_factory=list)
    houses: list[EphemerisPoint] = msgspec.field(default_factory=list)
