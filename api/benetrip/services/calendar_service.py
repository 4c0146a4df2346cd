"""
Cheapest Travel Periods - Scan six months of round-trip fares for a route
"""
from typing import Callable, Iterable, List, Optional, Tuple
from datetime import date, datetime, timedelta, timezone
import asyncio
import logging

from benetrip.config import settings
from benetrip.schemas.calendar import (
    CalendarChunk,
    CheapestPeriod,
    CheapestPeriodsRequest,
    CheapestPeriodsResponse,
)
from benetrip.services.providers import ProviderError, SearchApiProvider
from benetrip.utils.cache import TTLCache

logger = logging.getLogger(__name__)

MAX_COMBINATIONS = 190  # SearchAPI accepts up to 200 date pairs per call
DAYS_AHEAD = 180
LEAD_DAYS = 3
TOP_RESULTS = 10
BATCH_SIZE = 8


def date_range(start: date, end: date) -> List[date]:
    """Every day from start to end, both included"""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def _chunk(outbound: List[date], first_return: int, last_return: int) -> CalendarChunk:
    first, last = outbound[0], outbound[-1]
    return CalendarChunk(
        outbound_date=first,
        return_date=first + timedelta(days=first_return),
        outbound_date_start=first,
        outbound_date_end=last,
        return_date_start=first + timedelta(days=first_return),
        return_date_end=last + timedelta(days=last_return),
    )


def build_fixed_chunks(start: date, end: date, duration_days: int) -> List[CalendarChunk]:
    """Fixed trip length: one return date per outbound date"""
    outbound = date_range(start, end - timedelta(days=duration_days))
    return [
        _chunk(outbound[i:i + MAX_COMBINATIONS], duration_days, duration_days)
        for i in range(0, len(outbound), MAX_COMBINATIONS)
    ]


def build_flex_chunks(start: date, end: date, flex_min: int, flex_max: int) -> List[CalendarChunk]:
    """Flexible trip length: every outbound date pairs with flex_min..flex_max return dates"""
    per_chunk = max(1, MAX_COMBINATIONS // (flex_max - flex_min + 1))
    outbound = date_range(start, end - timedelta(days=flex_min))
    return [
        _chunk(outbound[i:i + per_chunk], flex_min, flex_max)
        for i in range(0, len(outbound), per_chunk)
    ]


def _parse_day(value) -> Optional[date]:
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        return None


def select_cheapest(
    entries: Iterable[dict],
    fixed_days: Optional[int] = None,
    limit: int = TOP_RESULTS,
) -> Tuple[int, List[CheapestPeriod]]:
    """
    Filter, dedupe and rank calendar entries.

    Returns:
        (number of usable entries, cheapest periods sorted by price)
    """
    valid = []
    for entry in entries:
        if not entry.get("price") or entry.get("has_no_flights"):
            continue
        departure = _parse_day(entry.get("departure"))
        return_day = _parse_day(entry.get("return"))
        if departure is None or return_day is None:
            continue
        valid.append((departure, return_day, entry))

    if fixed_days:
        candidates = [item for item in valid if (item[1] - item[0]).days == fixed_days]
    else:
        candidates = valid

    seen = set()
    unique = []
    for departure, return_day, entry in candidates:
        if (departure, return_day) in seen:
            continue
        seen.add((departure, return_day))
        unique.append(CheapestPeriod(
            departure=departure,
            return_=return_day,
            price=float(entry["price"]),
            is_lowest_price=bool(entry.get("is_lowest_price", False)),
        ))

    unique.sort(key=lambda period: period.price)
    return len(valid), unique[:limit]


class CalendarService:
    """
    Finds the cheapest departure/return pairs for a route over the next
    six months, starting three days from today.
    """

    def __init__(
        self,
        provider: SearchApiProvider,
        cache: TTLCache,
        today: Callable[[], date] = date.today,
    ):
        self._provider = provider
        self._cache = cache
        self._today = today

    async def cheapest_periods(self, request: CheapestPeriodsRequest) -> CheapestPeriodsResponse:
        today = self._today()
        cache_key = (
            f"calendar:{request.origin}:{request.destination}:{request.duration_type}:"
            f"{request.flex_min}:{request.flex_max}:{today}"
        )
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.info(f"Cache HIT for calendar: {request.origin} -> {request.destination}")
            return cached

        start = today + timedelta(days=LEAD_DAYS)
        end = today + timedelta(days=DAYS_AHEAD)
        fixed_days = request.fixed_days
        if fixed_days:
            chunks = build_fixed_chunks(start, end, fixed_days)
        else:
            chunks = build_flex_chunks(start, end, request.flex_min, request.flex_max)

        logger.info(
            f"Calendar scan {request.origin}->{request.destination} "
            f"| duration: {request.duration_type} | chunks: {len(chunks)}"
        )

        entries: List[dict] = []
        error_count = 0
        for i in range(0, len(chunks), BATCH_SIZE):
            batch = chunks[i:i + BATCH_SIZE]
            settled = await asyncio.gather(
                *(self._provider.fetch_calendar(request.origin, request.destination, chunk) for chunk in batch),
                return_exceptions=True,
            )
            for outcome in settled:
                if isinstance(outcome, BaseException):
                    error_count += 1
                    logger.error(f"Calendar chunk failed: {outcome}")
                else:
                    entries.extend(outcome)

        if not entries and error_count:
            raise ProviderError(
                self._provider.name,
                "Could not fetch fares right now. Try again in a few moments.",
                status_code=502,
            )

        total_scanned, periods = select_cheapest(entries, fixed_days)
        logger.info(f"{total_scanned} valid calendar entries -> {len(periods)} selected")

        response = CheapestPeriodsResponse(
            origin=request.origin,
            destination=request.destination,
            duration_type=request.duration_type,
            lowest_price=periods[0].price if periods else None,
            total_scanned=total_scanned,
            results=periods,
            generated_at=datetime.now(timezone.utc),
        )
        self._cache.set(cache_key, response, settings.CACHE_TTL_CALENDAR)
        return response
