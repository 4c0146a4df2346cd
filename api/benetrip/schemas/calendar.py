"""
Price Calendar Schemas
"""
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Literal, Optional
from datetime import date, datetime

from .flight_search import IATA_PATTERN


class CheapestPeriodsRequest(BaseModel):
    """Cheapest travel periods for a route over the next six months"""
    origin: str = Field(..., pattern=IATA_PATTERN)
    destination: str = Field(..., pattern=IATA_PATTERN)
    duration_type: Literal["7", "14", "21", "flex"] = Field(..., alias="durationType")
    flex_min: Optional[int] = Field(None, alias="flexMin")
    flex_max: Optional[int] = Field(None, alias="flexMax")

    model_config = {"populate_by_name": True}

    @field_validator("duration_type", mode="before")
    @classmethod
    def coerce_duration(cls, value):
        return str(value) if isinstance(value, int) else value

    @model_validator(mode="after")
    def check_route(self):
        if self.origin == self.destination:
            raise ValueError("Origin and destination must differ")
        if self.duration_type == "flex":
            if self.flex_min is None or self.flex_max is None:
                raise ValueError("flexMin and flexMax are required for flexible duration")
            if self.flex_min < 2 or self.flex_max > 35 or self.flex_max <= self.flex_min:
                raise ValueError("Invalid flexible range")
        return self

    @property
    def fixed_days(self) -> Optional[int]:
        return None if self.duration_type == "flex" else int(self.duration_type)


class CalendarChunk(BaseModel):
    """One SearchAPI query window"""
    outbound_date: date
    return_date: date
    outbound_date_start: date
    outbound_date_end: date
    return_date_start: date
    return_date_end: date


class CheapestPeriod(BaseModel):
    departure: date
    return_: date = Field(..., alias="return")
    price: float
    is_lowest_price: bool = False

    model_config = {"populate_by_name": True}


class CheapestPeriodsResponse(BaseModel):
    origin: str
    destination: str
    duration_type: str = Field(..., serialization_alias="durationType")
    lowest_price: Optional[float] = Field(None, serialization_alias="lowestPrice")
    total_scanned: int = Field(0, serialization_alias="totalScanned")
    results: List[CheapestPeriod]
    generated_at: datetime = Field(..., serialization_alias="generatedAt")
