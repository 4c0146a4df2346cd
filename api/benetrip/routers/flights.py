"""
Flight Search, Results & Booking Link Endpoints
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import ORJSONResponse
from typing import Optional
import logging

from benetrip.schemas.calendar import CheapestPeriodsRequest, CheapestPeriodsResponse
from benetrip.schemas.flight_search import (
    ClickLink,
    ClickRequest,
    SearchStarted,
    TripSearchParams,
)
from benetrip.services.calendar_service import CalendarService
from benetrip.services.flight_service import FlightSearchService, resolve_client_ip

router = APIRouter()
logger = logging.getLogger(__name__)


def get_flight_service(request: Request) -> FlightSearchService:
    """
    Dependency that provides the flight search service built in the lifespan
    Usage: service: FlightSearchService = Depends(get_flight_service)
    """
    return request.app.state.flight_service


def get_calendar_service(request: Request) -> CalendarService:
    return request.app.state.calendar_service


def client_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return resolve_client_ip(request.headers, peer)


@router.post("/search", response_model=SearchStarted)
async def start_search(
    params: TripSearchParams,
    user_ip: str = Depends(client_ip),
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Start an asynchronous flight search.
    Poll `/flights/results?uuid=<search_id>` for the offers.
    """
    return await service.start_search(params, user_ip)


@router.get("/results")
async def get_results(
    uuid: str = Query(..., min_length=1, description="search_id returned by /flights/search"),
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Fetch the current results chunk of a search, unchanged from the provider.
    """
    logger.info(f"Fetching results chunk for search_id {uuid}")
    return await service.get_results(uuid.strip())


@router.post("/search/sync")
async def search_and_wait(
    params: TripSearchParams,
    max_attempts: Optional[int] = Query(None, ge=1, le=30, description="Polling attempts"),
    user_ip: str = Depends(client_ip),
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Submit a search and poll it server-side.

    Answers 200 with the provider payload when complete, or 202 with the
    partial payload and the search id when polling ran out of attempts.
    """
    result = await service.search_and_wait(params, user_ip, max_attempts=max_attempts)
    return result.raise_for_status().to_dict()


@router.get("/search/{search_id}/wait")
async def resume_search(
    search_id: str,
    max_attempts: Optional[int] = Query(None, ge=1, le=30, description="Polling attempts"),
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Keep polling a search that timed out earlier.
    """
    result = await service.resume(search_id, max_attempts=max_attempts)
    return result.raise_for_status().to_dict()


@router.post("/click", response_model=ClickLink)
async def click(
    body: ClickRequest,
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Booking link for one proposal. Only call on an explicit user click.
    """
    return await service.get_click_link(body.search_id, body.terms_url)


@router.get("/redirect")
async def redirect(
    request: Request,
    search_id: str = Query(..., min_length=1),
    term_url: str = Query(..., min_length=1),
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    language: Optional[str] = Query(None),
    service: FlightSearchService = Depends(get_flight_service),
):
    """
    Booking link with the partner URL rewritten to the user's currency and
    language. Never cached by the browser.
    """
    if not language:
        accept_language = request.headers.get("accept-language", "")
        language = accept_language.split(",")[0].strip() or None

    data = await service.get_redirect_link(
        search_id,
        term_url,
        currency=currency.upper() if currency else None,
        language=language,
    )
    return ORJSONResponse(
        content=data,
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
            "Pragma": "no-cache",
            "Expires": "0",
        },
    )


@router.post("/cheapest", response_model=CheapestPeriodsResponse, response_model_by_alias=True)
async def cheapest_periods(
    body: CheapestPeriodsRequest,
    service: CalendarService = Depends(get_calendar_service),
):
    """
    Cheapest departure/return pairs for a route over the next six months.
    """
    return await service.cheapest_periods(body)
