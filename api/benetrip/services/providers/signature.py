"""
Travelpayouts request signing

The flight_search endpoint authenticates each submission with an MD5 digest
of the partner token followed by every signable parameter value, ordered by
the full parameter name (``passengers.adults``, ``segments[0].date``, ...).
"""
from typing import Any, List, Mapping, Tuple, Union
from datetime import date
import hashlib
import logging

from benetrip.schemas.flight_search import SearchRequest
from .base import InvalidRequest

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("host", "locale", "marker", "trip_class", "user_ip")
OPTIONAL_FIELDS = ("currency", "know_english", "direct", "flexible")
PASSENGER_FIELDS = ("adults", "children", "infants")
SEGMENT_FIELDS = ("date", "destination", "origin")


def _stringify(value: Any) -> str:
    """Render a value the way it appears in the JSON body"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def signable_params(request: Union[SearchRequest, Mapping[str, Any]]) -> List[Tuple[str, Any]]:
    """
    Flatten a search request into sorted ``(parameter name, value)`` pairs.

    Segments are flattened using their position in the request, so the
    segment list must never be reordered before signing.

    Raises:
        InvalidRequest: if a required signable field is missing
    """
    data = request.to_payload() if isinstance(request, SearchRequest) else dict(request)

    missing = [name for name in REQUIRED_FIELDS if _is_blank(data.get(name))]

    passengers = data.get("passengers") or {}
    missing.extend(
        f"passengers.{name}" for name in PASSENGER_FIELDS if passengers.get(name) is None
    )

    segments = data.get("segments") or []
    if not segments:
        missing.append("segments")
    for index, segment in enumerate(segments):
        missing.extend(
            f"segments[{index}].{name}" for name in SEGMENT_FIELDS if _is_blank(segment.get(name))
        )

    if missing:
        raise InvalidRequest(f"Missing signable fields: {', '.join(missing)}", missing)

    params = [(name, data[name]) for name in REQUIRED_FIELDS]
    params.extend((name, data[name]) for name in OPTIONAL_FIELDS if data.get(name) is not None)
    params.extend((f"passengers.{name}", passengers[name]) for name in PASSENGER_FIELDS)
    for index, segment in enumerate(segments):
        params.extend((f"segments[{index}].{name}", segment[name]) for name in SEGMENT_FIELDS)

    # Plain str ordering compares code points
    return sorted(params, key=lambda pair: pair[0])


def compute_signature(request: Union[SearchRequest, Mapping[str, Any]], secret: str) -> str:
    """Return the hex MD5 signature of ``secret:value1:...:valueN``"""
    if not secret:
        raise ValueError("Signing secret must not be empty")

    values = ":".join(_stringify(value) for _, value in signable_params(request))
    signature = hashlib.md5(f"{secret}:{values}".encode("utf-8")).hexdigest()

    logger.debug(f"Signed flight search ({len(values)} chars of values) -> {signature}")
    return signature


def sign_request(request: SearchRequest, secret: str) -> SearchRequest:
    """Return a copy of the request with its signature attached"""
    return request.model_copy(update={"signature": compute_signature(request, secret)})
