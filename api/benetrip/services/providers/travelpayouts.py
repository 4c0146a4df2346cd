"""
Travelpayouts Flight Provider - Aviasales Flight Search API
https://support.travelpayouts.com/hc/en-us/articles/203956163
"""
from typing import Any, Optional
from urllib.parse import quote
import httpx
import logging

from benetrip.config import settings
from benetrip.schemas.flight_search import ClickLink, SearchRequest
from .base import FlightProvider, InvalidRequest, ProviderError
from .signature import sign_request

logger = logging.getLogger(__name__)


class TravelpayoutsProvider(FlightProvider):
    """
    Travelpayouts (Aviasales) real-time flight search.

    Searches are asynchronous: ``submit_search`` returns a search id and the
    offers are collected afterwards from the results endpoint.
    """

    name = "travelpayouts"

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: Optional[str] = None,
        marker: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        results_timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        super().__init__(client, retry_attempts=retry_attempts, retry_backoff=retry_backoff)
        self._token = settings.AVIASALES_TOKEN if token is None else token
        self.marker = settings.AVIASALES_MARKER if marker is None else marker
        self.base_url = (base_url or settings.AVIASALES_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self._results_timeout = results_timeout or settings.RESULTS_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        """Check if the partner token and marker are configured"""
        return bool(self._token and self.marker)

    async def submit_search(self, request: SearchRequest) -> dict:
        """
        Sign and submit a search.

        Returns:
            The provider body, guaranteed to hold a non-empty ``search_id``

        Raises:
            ProviderError: error status, or a response without search id
            NetworkError: no response received
        """
        if not self.is_configured:
            raise ProviderError(
                self.name,
                "AVIASALES_MARKER and AVIASALES_TOKEN must be configured",
                status_code=500,
            )

        signed = sign_request(request, self._token)
        segments = signed.segments
        logger.info(
            f"Submitting flight search {segments[0].origin}->{segments[0].destination} "
            f"on {segments[0].date}{f' returning {segments[1].date}' if len(segments) > 1 else ''} "
            f"| {signed.passengers.adults}a {signed.passengers.children}c {signed.passengers.infants}i"
        )

        response = await self._request(
            "POST",
            f"{self.base_url}/flight_search",
            json=signed.to_payload(),
            headers={"Content-Type": "application/json"},
            timeout=self._timeout,
        )
        self._raise_for_status(response, "Search submission")

        data = self._body(response)
        if not isinstance(data, dict) or not data.get("search_id"):
            error = ProviderError(self.name, "Response has no search_id", status_code=502, body=data)
            self.record_failure(error)
            raise error

        self.record_success()
        logger.info(f"Travelpayouts search_id {data['search_id']} | gates: {data.get('gates_count', '?')}")
        return data

    async def fetch_results(self, search_id: str) -> Any:
        """Query the results endpoint once and return the body unchanged"""
        if not search_id or not search_id.strip():
            raise InvalidRequest("search_id is required")

        response = await self._request(
            "GET",
            f"{self.base_url}/flight_search_results",
            params={"uuid": search_id},
            headers={"Accept": "application/json"},
            timeout=self._results_timeout,
        )
        self._raise_for_status(response, "Results query")

        body = self._body(response)
        message = self.error_message(body)
        if message:
            error = ProviderError(self.name, message, status_code=502, body=body)
            self.record_failure(error)
            raise error

        self.record_success()
        return body

    @staticmethod
    def error_message(body: Any) -> Optional[str]:
        """Error reported inside a 2xx results body, if any chunk carries one"""
        chunks = body if isinstance(body, list) else [body]
        for chunk in chunks:
            if isinstance(chunk, dict) and chunk.get("error"):
                return str(chunk["error"])
        return None

    @staticmethod
    def is_complete(body: Any) -> bool:
        """
        A results body signals completion when any chunk carries proposals,
        sets ``complete``, or is the terminator chunk holding only ``search_id``.
        """
        chunks = body if isinstance(body, list) else [body]
        for chunk in chunks:
            if not isinstance(chunk, dict):
                continue
            if chunk.get("proposals") or chunk.get("complete") is True:
                return True
            if set(chunk) == {"search_id"}:
                return True
        return False

    async def get_click_link(
        self,
        search_id: str,
        terms_url: str,
        currency: Optional[str] = None,
        locale: Optional[str] = None,
    ) -> ClickLink:
        """
        Resolve the booking link for one proposal.

        The provider forbids collecting these links automatically; only call
        this in response to a user clicking "book".
        """
        if not self.marker:
            raise ProviderError(self.name, "AVIASALES_MARKER must be configured", status_code=500)
        if not search_id or not terms_url:
            raise InvalidRequest("search_id and terms_url are required")

        params = {"marker": self.marker}
        if currency:
            params["currency"] = currency
        if locale:
            params["locale"] = locale

        logger.info(f"Resolving booking link for search {search_id[:8]}... terms={terms_url}")
        response = await self._request(
            "GET",
            f"{self.base_url}/flight_searches/{quote(search_id, safe='')}/clicks/{quote(str(terms_url), safe='')}.json",
            params=params,
            headers={"Accept": "application/json"},
            timeout=self._timeout,
        )
        self._raise_for_status(response, "Booking link")

        data = self._body(response)
        if not isinstance(data, dict) or not data.get("url"):
            error = ProviderError(self.name, "Response has no url", status_code=502, body=data)
            self.record_failure(error)
            raise error

        self.record_success()
        logger.info(f"Booking link via gate {data.get('gate_id')} method={data.get('method', 'GET')}")
        return ClickLink(
            url=data["url"],
            method=data.get("method") or "GET",
            params=data.get("params") or {},
            gate_id=data.get("gate_id"),
            gate_name=data.get("gate_name"),
            click_id=data.get("str_click_id") or data.get("click_id"),
            raw=data,
        )

