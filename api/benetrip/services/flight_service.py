"""
Flight Search Service - Caller-facing flows on top of the Travelpayouts provider
"""
from typing import Any, Dict, Mapping, Optional
import asyncio
import logging
import time

from pydantic import ValidationError

from benetrip.config import settings
from benetrip.schemas.flight_search import (
    ClickLink,
    Passengers,
    PollResult,
    SearchRequest,
    SearchStarted,
    SearchStatus,
    Segment,
    TripSearchParams,
)
from benetrip.services.providers import (
    InvalidRequest,
    ProviderError,
    SearchPoller,
    TravelpayoutsProvider,
)
from benetrip.services.redirect_links import apply_parameter_changes
from benetrip.utils.cache import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_IP = "127.0.0.1"


def resolve_client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer"""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    return real_ip or peer or DEFAULT_CLIENT_IP


class FlightSearchService:
    """
    Search flows exposed to the web front end:

    - async: ``start_search`` returns the search id, the browser polls ``get_results``
    - sync: ``search_and_wait`` submits and polls server-side
    """

    def __init__(
        self,
        provider: TravelpayoutsProvider,
        poller: SearchPoller,
        cache: TTLCache,
        host: Optional[str] = None,
        locale: Optional[str] = None,
    ):
        self._provider = provider
        self._poller = poller
        self._cache = cache
        self.host = host or settings.AVIASALES_HOST
        self.locale = locale or settings.AVIASALES_LOCALE

    def _ensure_configured(self):
        if not self._provider.is_configured:
            raise ProviderError(
                self._provider.name,
                "AVIASALES_MARKER and AVIASALES_TOKEN must be configured",
                status_code=500,
            )

    def build_request(self, params: TripSearchParams, user_ip: str) -> SearchRequest:
        """
        Turn trip parameters into a provider request.

        Round trips get a second segment with origin and destination swapped.
        """
        try:
            segments = [
                Segment(origin=params.origin, destination=params.destination, date=params.departure_date)
            ]
            if params.return_date:
                segments.append(
                    Segment(origin=params.destination, destination=params.origin, date=params.return_date)
                )

            return SearchRequest(
                host=self.host,
                locale=self.locale,
                marker=self._provider.marker,
                trip_class=params.trip_class,
                user_ip=user_ip,
                passengers=Passengers(
                    adults=params.adults,
                    children=params.children,
                    infants=params.infants,
                ),
                segments=segments,
                know_english=True,
            )
        except ValidationError as e:
            raise InvalidRequest(
                "Invalid flight search request",
                [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()],
            )

    async def start_search(self, params: TripSearchParams, user_ip: str) -> SearchStarted:
        """Submit a search and hand the search id back to the caller"""
        self._ensure_configured()
        request = self.build_request(params, user_ip)
        data = await self._provider.submit_search(request)
        payload = request.to_payload()

        return SearchStarted(
            search_id=data["search_id"],
            currency_rates=data.get("currency_rates") or {},
            segments=data.get("segments") or payload["segments"],
            passengers=data.get("passengers") or payload["passengers"],
            gates_count=data.get("gates_count") or 0,
            meta={
                "origin": params.origin,
                "destination": params.destination,
                "departure_date": params.departure_date.isoformat(),
                "return_date": params.return_date.isoformat() if params.return_date else None,
                "currency": params.currency,
                "locale": self.locale,
            },
        )

    async def get_results(self, search_id: str) -> Any:
        """One results query, passed through unchanged; finished searches come from cache"""
        cache_key = f"results:{search_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache HIT for results of {search_id}")
            return cached

        body = await self._provider.fetch_results(search_id)
        if self._provider.is_complete(body):
            self._cache.set(cache_key, body, settings.CACHE_TTL_RESULTS)
        return body

    async def search_and_wait(
        self,
        params: TripSearchParams,
        user_ip: str,
        max_attempts: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """Submit and poll server-side; completed results are cached per trip"""
        self._ensure_configured()
        cache_key = params.cache_key()
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache HIT for flight search: {params.origin} -> {params.destination}")
            return cached.copy()

        logger.info(f"Cache MISS - searching flights: {params.origin} -> {params.destination}")
        request = self.build_request(params, user_ip)
        result = await self._poller.submit_and_poll(request, max_attempts=max_attempts, cancel=cancel)

        if result.status is SearchStatus.COMPLETE:
            self._cache.set(cache_key, result.copy(), settings.CACHE_TTL_RESULTS)
            self._cache.set(f"results:{result.search_id}", result.payload, settings.CACHE_TTL_RESULTS)
        return result

    async def resume(self, search_id: str, max_attempts: Optional[int] = None) -> PollResult:
        """Poll again a search that timed out earlier"""
        return await self._poller.poll(search_id, max_attempts=max_attempts)

    async def get_click_link(self, search_id: str, terms_url: str) -> ClickLink:
        return await self._provider.get_click_link(search_id, terms_url)

    async def get_redirect_link(
        self,
        search_id: str,
        terms_url: str,
        currency: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Booking link with the partner URL rewritten to the user's currency
        and language, plus expiry and diagnostic metadata.
        """
        language = language or "pt-BR"
        wants_portuguese = language.lower().startswith("pt")
        language_to_use = "pt-BR" if wants_portuguese else language

        link = await self._provider.get_click_link(
            search_id,
            terms_url,
            currency=currency,
            locale="pt-BR" if wants_portuguese else "en-US",
        )

        rewritten = apply_parameter_changes(link.url, currency, language_to_use)
        data = dict(link.raw)
        if rewritten.modified:
            data["url"] = rewritten.url
            logger.info(f"Partner URL rewritten for {rewritten.domain}")

        data["_benetrip_info"] = {
            "expires_in": settings.CLICK_LINK_TTL,
            "timestamp": int(time.time() * 1000),
            "currency": currency or "default",
        }
        data["_benetrip_meta"] = {
            "language_requested": language_to_use,
            "currency_requested": currency or "default",
            "url_modified": rewritten.modified,
            "gate_id": link.gate_id or "",
            "gate_name": link.gate_name or "",
            "partner_domain": rewritten.domain,
        }
        return data
