"""
Flight Search Schemas
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
import datetime as dt

IATA_PATTERN = r"^[A-Z]{3}$"


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


class Passengers(BaseModel):
    """Passenger counts by age band"""
    adults: int = Field(1, ge=1, le=9)
    children: int = Field(0, ge=0, le=9)
    infants: int = Field(0, ge=0, le=9)


class Segment(BaseModel):
    """One directed leg of the trip. List position marks outbound vs. return."""
    origin: str = Field(..., pattern=IATA_PATTERN)
    destination: str = Field(..., pattern=IATA_PATTERN)
    date: dt.date

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def normalize_codes(cls, value):
        return _upper(value)


class SearchRequest(BaseModel):
    """
    Body submitted to the Travelpayouts flight_search endpoint.

    Optional fields stay ``None`` when the caller did not provide them and
    are then left out of both the signature and the serialized body.
    """
    host: str = Field(..., min_length=1)
    locale: str = Field(..., min_length=1)
    marker: str = Field(..., min_length=1)
    trip_class: str = Field("Y", pattern=r"^[A-Z]$")
    user_ip: str = Field(..., min_length=1)
    passengers: Passengers = Field(default_factory=Passengers)
    segments: List[Segment] = Field(..., min_length=1)

    currency: Optional[str] = None
    know_english: Optional[bool] = None
    direct: Optional[bool] = None
    flexible: Optional[bool] = None

    signature: Optional[str] = None

    @field_validator("trip_class", mode="before")
    @classmethod
    def normalize_trip_class(cls, value):
        return _upper(value)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready body with absent optional fields omitted"""
        return self.model_dump(mode="json", exclude_none=True)


class TripSearchParams(BaseModel):
    """Caller-facing trip parameters"""
    origin: str = Field(..., pattern=IATA_PATTERN, description="Origin airport code (IATA)")
    destination: str = Field(..., pattern=IATA_PATTERN, description="Destination airport code (IATA)")
    departure_date: date
    return_date: Optional[date] = Field(None, description="Return date for round trip")
    adults: int = Field(1, ge=1, le=9)
    children: int = Field(0, ge=0, le=9)
    infants: int = Field(0, ge=0, le=9)
    trip_class: str = Field("Y", pattern=r"^[A-Z]$", description="Y=Economy, C=Business")
    currency: str = Field("BRL", min_length=3, max_length=3)

    @field_validator("origin", "destination", "trip_class", "currency", mode="before")
    @classmethod
    def normalize_codes(cls, value):
        return _upper(value)

    @model_validator(mode="after")
    def check_dates(self):
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("Return date must be after departure date")
        return self

    def cache_key(self) -> str:
        return (
            f"flights:{self.origin}:{self.destination}:{self.departure_date}:{self.return_date}:"
            f"{self.adults}:{self.children}:{self.infants}:{self.trip_class}"
        )


class SearchStarted(BaseModel):
    """Response of the asynchronous search flow"""
    success: bool = True
    search_id: str
    currency_rates: Dict[str, Any] = Field(default_factory=dict)
    segments: List[Dict[str, Any]] = Field(default_factory=list)
    passengers: Dict[str, Any] = Field(default_factory=dict)
    gates_count: int = 0
    meta: Dict[str, Any] = Field(default_factory=dict, serialization_alias="_meta")


class ClickRequest(BaseModel):
    """Booking link request; must only be issued on an explicit user action"""
    search_id: str = Field(..., min_length=1)
    terms_url: str = Field(..., min_length=1)


class ClickLink(BaseModel):
    """Booking link returned by the provider"""
    url: str
    method: str = "GET"
    params: Dict[str, Any] = Field(default_factory=dict)
    gate_id: Optional[Any] = None
    gate_name: Optional[str] = None
    click_id: Optional[Any] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class SearchStatus(str, Enum):
    """Lifecycle of a submitted search"""
    PENDING = "pending"
    COMPLETE = "complete"
    TIMED_OUT = "timedOut"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SearchStatus.PENDING


@dataclass
class PollResult:
    """Outcome of a submit-and-poll run"""
    search_id: Optional[str]
    status: SearchStatus
    attempts: int = 0
    payload: Any = None
    chunks: List[Any] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def proposals(self) -> List[Dict[str, Any]]:
        """All proposals found across the received chunks"""
        found = []
        for chunk in self.chunks:
            for item in chunk if isinstance(chunk, list) else [chunk]:
                if isinstance(item, dict):
                    found.extend(item.get("proposals") or [])
        return found

    def raise_for_status(self) -> "PollResult":
        """Raise the stored error (failed) or SearchTimeout (timedOut)"""
        from benetrip.services.providers.base import SearchTimeout

        if self.status is SearchStatus.FAILED and self.error is not None:
            raise self.error
        if self.status is SearchStatus.TIMED_OUT:
            raise SearchTimeout(self.search_id, self.attempts, self.payload)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "search_id": self.search_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "data": self.payload,
            "chunks": self.chunks,
        }

    def copy(self) -> "PollResult":
        """Shallow copy with its own chunk list"""
        return replace(self, chunks=list(self.chunks))
