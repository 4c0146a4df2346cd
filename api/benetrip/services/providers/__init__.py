"""
Flight Search Providers - External APIs behind the flight endpoints
"""
from .base import (
    FlightProvider,
    FlightSearchError,
    InvalidRequest,
    NetworkError,
    ProviderError,
    ProviderStatus,
    SearchTimeout,
)
from .signature import compute_signature, sign_request, signable_params
from .travelpayouts import TravelpayoutsProvider
from .poller import SearchPoller, SearchSession
from .searchapi import SearchApiProvider

__all__ = [
    "FlightProvider",
    "FlightSearchError",
    "InvalidRequest",
    "NetworkError",
    "ProviderError",
    "ProviderStatus",
    "SearchTimeout",
    "compute_signature",
    "sign_request",
    "signable_params",
    "TravelpayoutsProvider",
    "SearchPoller",
    "SearchSession",
    "SearchApiProvider",
]
