"""
Base Flight Provider - Shared health tracking and the error taxonomy
"""
from typing import Any, List, Optional
from enum import Enum
import httpx
import logging
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from benetrip.config import settings

logger = logging.getLogger(__name__)


class ProviderStatus(Enum):
    """Provider health status"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class FlightProvider:
    """
    Base class for external flight data providers.

    Owns the shared HTTP client and tracks consecutive failures so the
    health endpoint can report which upstream APIs are misbehaving.
    """

    # Provider identification
    name: str = "base"

    _max_failures_before_degraded: int = 3
    _max_failures_before_unavailable: int = 10

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        self._client = client
        self._retry_attempts = settings.NETWORK_RETRY_ATTEMPTS if retry_attempts is None else retry_attempts
        if self._retry_attempts < 1:
            raise ValueError("retry_attempts must be at least 1")
        self._retry_backoff = settings.NETWORK_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        self._status = ProviderStatus.HEALTHY
        self._consecutive_failures = 0

    @property
    def status(self) -> ProviderStatus:
        """Get current provider status"""
        return self._status

    @property
    def is_configured(self) -> bool:
        """Check if provider has required configuration (API keys, etc.)"""
        return True  # Override in subclasses

    def record_success(self):
        """Record a successful request"""
        self._consecutive_failures = 0
        self._status = ProviderStatus.HEALTHY

    def record_failure(self, error: Exception):
        """Record a failed request"""
        self._consecutive_failures += 1
        logger.warning(f"{self.name} provider failure #{self._consecutive_failures}: {error}")

        if self._consecutive_failures >= self._max_failures_before_unavailable:
            self._status = ProviderStatus.UNAVAILABLE
            logger.error(f"{self.name} provider marked as UNAVAILABLE after {self._consecutive_failures} failures")
        elif self._consecutive_failures >= self._max_failures_before_degraded:
            self._status = ProviderStatus.DEGRADED
            logger.warning(f"{self.name} provider marked as DEGRADED after {self._consecutive_failures} failures")

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue one call, retrying only when no response arrived at all"""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=self._retry_backoff, max=10),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    return await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            self.record_failure(e)
            raise NetworkError(self.name, f"No response from {url}: {e}", e)

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _raise_for_status(self, response: httpx.Response, action: str):
        """Raise ProviderError carrying the untouched body for any non-2xx answer"""
        if response.is_success:
            return
        error = ProviderError(
            self.name,
            f"{action} failed with HTTP {response.status_code}",
            status_code=response.status_code,
            body=self._body(response),
        )
        self.record_failure(error)
        raise error


class FlightSearchError(Exception):
    """Base class for every error surfaced by the flight search layer"""
    status_code: int = 500


class InvalidRequest(FlightSearchError):
    """Malformed or incomplete search input. Detected before any network call."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or [message]
        super().__init__(message)


class ProviderError(FlightSearchError):
    """Exception raised when a provider answers with an error status or payload"""
    def __init__(
        self,
        provider_name: str,
        message: str,
        status_code: int = 502,
        body: Any = None,
        original_error: Optional[Exception] = None,
    ):
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        self.body = body
        self.original_error = original_error
        super().__init__(f"{provider_name}: {message}")


class NetworkError(FlightSearchError):
    """No response was received from the provider at all"""
    status_code = 504

    def __init__(self, provider_name: str, message: str, original_error: Optional[Exception] = None):
        self.provider_name = provider_name
        self.message = message
        self.original_error = original_error
        super().__init__(f"{provider_name}: {message}")


class SearchTimeout(FlightSearchError):
    """
    Polling used up its attempt budget without a completion signal.

    Recoverable: the search id stays valid on the provider side and can be
    polled again later.
    """
    status_code = 202

    def __init__(self, search_id: str, attempts: int, payload: Any = None):
        self.search_id = search_id
        self.attempts = attempts
        self.payload = payload
        super().__init__(f"search {search_id} not complete after {attempts} attempts")
