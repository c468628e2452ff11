"""Request bodies accepted by the HTTP API."""

from datetime import date

from astrocache.schemas.astrology import ComputationOptions, Subject
from astrocache.schemas.base import CamelizedBaseStruct

__all__ = (
    "InterpretationRequest",
    "TransitRangeRequest",
    "TransitTimelineRequest",
)


class TransitRangeRequest(CamelizedBaseStruct):
    subject: Subject
    start_date: date
    end_date: date
    options: ComputationOptions | None = None


class TransitTimelineRequest(CamelizedBaseStruct):
    subject_id: str
    subject: Subject
    start_date: date
    end_date: date
    options: ComputationOptions | None = None


class InterpretationRequest(CamelizedBaseStruct):
    """Identity of the chart to interpret plus the prompt to send."""

    chart_type: str
    subject_name: str
    prompt: str
    subject_date: str = ""
    second_subject_name: str | None = None
    second_subject_date: str | None = None
    regenerate: bool = False
