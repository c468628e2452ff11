"""Dependency providers for the services held in application state."""

from __future__ import annotations

from litestar.datastructures import State  # noqa: TC002

from astrocache.services.cache import CacheRegistry  # noqa: TC001
from astrocache.services.ephemeris import EphemerisService  # noqa: TC001
from astrocache.services.interpretation import InterpretationService  # noqa: TC001
from astrocache.services.transits import TransitRangeService, TransitTimelineService  # noqa: TC001


def provide_cache_registry(state: State) -> CacheRegistry:
    return state.cache_registry


def provide_transit_range_service(state: State) -> TransitRangeService:
    return state.transit_range_service


def provide_transit_timeline_service(state: State) -> TransitTimelineService:
    return state.transit_timeline_service


def provide_ephemeris_service(state: State) -> EphemerisService:
    return state.ephemeris_service


def provide_interpretation_service(state: State) -> InterpretationService:
    return state.interpretation_service
