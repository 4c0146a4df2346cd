"""
SearchAPI Calendar Provider - Google Flights price calendar
https://www.searchapi.io/docs/google-flights-calendar
"""
from typing import List, Optional
import httpx
import logging

from benetrip.config import settings
from benetrip.schemas.calendar import CalendarChunk
from .base import FlightProvider, ProviderError

logger = logging.getLogger(__name__)


class SearchApiProvider(FlightProvider):
    """
    Round-trip price calendar through SearchAPI's ``google_flights_calendar``
    engine. One call covers up to 200 outbound/return date combinations.
    """

    name = "searchapi"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 15.0,
        currency: str = "BRL",
        language: str = "pt",
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        super().__init__(client, retry_attempts=retry_attempts, retry_backoff=retry_backoff)
        self._api_key = settings.SEARCHAPI_KEY if api_key is None else api_key
        self.base_url = base_url or settings.SEARCHAPI_URL
        self._timeout = timeout
        self._currency = currency
        self._language = language

    @property
    def is_configured(self) -> bool:
        """Check if SearchAPI key is configured"""
        return bool(self._api_key)

    async def fetch_calendar(self, origin: str, destination: str, chunk: CalendarChunk) -> List[dict]:
        """Fetch the calendar entries of one date window"""
        if not self.is_configured:
            raise ProviderError(self.name, "SEARCHAPI_KEY not configured", status_code=500)

        params = {
            "engine": "google_flights_calendar",
            "api_key": self._api_key,
            "flight_type": "round_trip",
            "departure_id": origin,
            "arrival_id": destination,
            "currency": self._currency,
            "hl": self._language,
            "outbound_date": chunk.outbound_date.isoformat(),
            "return_date": chunk.return_date.isoformat(),
            "outbound_date_start": chunk.outbound_date_start.isoformat(),
            "outbound_date_end": chunk.outbound_date_end.isoformat(),
            "return_date_start": chunk.return_date_start.isoformat(),
            "return_date_end": chunk.return_date_end.isoformat(),
        }

        response = await self._request(
            "GET",
            self.base_url,
            params=params,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        self._raise_for_status(response, "Calendar query")

        data = self._body(response)
        if not isinstance(data, dict):
            raise ProviderError(self.name, "Unexpected calendar response", body=data)
        if data.get("error"):
            error = ProviderError(self.name, str(data["error"]), body=data)
            self.record_failure(error)
            raise error

        self.record_success()
        calendar = data.get("calendar")
        return calendar if isinstance(calendar, list) else []
