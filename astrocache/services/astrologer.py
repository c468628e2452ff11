"""Client for the remote astrology calculation API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import msgspec
import structlog

from astrocache.lib.exceptions import AstrologerAPIError
from astrocache.schemas import SubjectResponse, TransitChartResponse

if TYPE_CHECKING:
    from typing_extensions import Self

    from astrocache.lib.settings import AstrologerSettings
    from astrocache.schemas import ComputationOptions, Subject

logger = structlog.get_logger()


class AstrologerClient:
    """Async client for the chart computation endpoints.

    Auth headers are only sent when a value for them is configured, so the
    same client works against a self-hosted instance and the hosted API.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        host: str = "",
        host_header: str = "X-RapidAPI-Host",
        key_header: str = "X-RapidAPI-Key",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if host:
            headers[host_header] = host
        if api_key:
            headers[key_header] = api_key
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: AstrologerSettings, transport: httpx.AsyncBaseTransport | None = None) -> Self:
        return cls(
            base_url=settings.URL,
            api_key=settings.KEY,
            host=settings.HOST,
            host_header=settings.HOST_HEADER,
            key_header=settings.KEY_HEADER,
            timeout=settings.TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(self, endpoint: str, body: dict[str, Any]) -> bytes:
        """POST ``body`` to ``endpoint`` and return the raw response body.

        Raises:
            AstrologerAPIError: On a non-2xx status or a timeout.
            httpx.HTTPError: On other transport failures.
        """
        logger.debug("Calling astrology API", endpoint=endpoint)
        try:
            response = await self.client.post(endpoint, content=msgspec.json.encode(body))
        except httpx.TimeoutException as e:
            msg = f"Request timeout after {int(self.timeout * 1000)}ms"
            logger.error("Astrology API timeout", endpoint=endpoint, timeout=self.timeout)
            raise AstrologerAPIError(msg) from e
        except httpx.HTTPError as e:
            logger.error("Astrology API request failed", endpoint=endpoint, error=str(e))
            raise
        if response.is_error:
            msg = f"API Error {response.status_code}: {response.text}"
            logger.error("Astrology API error", endpoint=endpoint, status_code=response.status_code)
            raise AstrologerAPIError(msg, status_code=response.status_code)
        return response.content

    async def get_transit_chart_data(
        self,
        natal_subject: Subject,
        transit_subject: Subject,
        options: ComputationOptions | None = None,
    ) -> TransitChartResponse:
        """Aspects and house overlays between a natal chart and a transit moment."""
        body: dict[str, Any] = {
            "first_subject": natal_subject.to_payload(),
            "transit_subject": transit_subject.to_payload(),
            "include_house_comparison": True,
        }
        if options is not None:
            body.update(options.to_payload())
        content = await self._post("/chart-data/transit", body)
        return msgspec.json.decode(content, type=TransitChartResponse)

    async def get_subject(self, subject: Subject, active_points: list[str] | None = None) -> SubjectResponse:
        """Computed positions for a single subject."""
        body: dict[str, Any] = {"subject": subject.to_payload()}
        if active_points:
            body["active_points"] = active_points
        content = await self._post("/subject", body)
        return msgspec.json.decode(content, type=SubjectResponse)
