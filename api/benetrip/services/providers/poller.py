"""
Search Poller - Submit once, then poll the results endpoint until done

State machine per search:

    submitting --(search id)--> polling --(proposals / completion flag)--> complete
        |                          |------(attempt budget used up)-------> timedOut
        |                          '------(error status / no response)---> failed
        '--(error status / no response)----------------------------------> failed

Abandoning the loop through the cancel event leaves the session ``pending``;
the search stays alive on the provider side.
"""
from typing import Any, Awaitable, Callable, List, Optional
from dataclasses import dataclass, field
import asyncio
import logging

from benetrip.config import settings
from benetrip.schemas.flight_search import PollResult, SearchRequest, SearchStatus
from .base import InvalidRequest, NetworkError, ProviderError
from .travelpayouts import TravelpayoutsProvider

logger = logging.getLogger(__name__)


@dataclass
class SearchSession:
    """Transient state of one submitted search"""
    search_id: str
    attempt: int = 0
    status: SearchStatus = SearchStatus.PENDING
    payload: Any = None
    chunks: List[Any] = field(default_factory=list)
    error: Optional[Exception] = None

    def record(self, body: Any):
        """Count one poll and keep its body"""
        self.attempt += 1
        self.payload = body
        if body:
            self.chunks.append(body)

    def finish(self, status: SearchStatus, error: Optional[Exception] = None):
        if self.status.is_terminal:
            raise RuntimeError(f"search {self.search_id} already {self.status.value}")
        self.status = status
        self.error = error

    def to_result(self) -> PollResult:
        return PollResult(
            search_id=self.search_id,
            status=self.status,
            attempts=self.attempt,
            payload=None if self.status is SearchStatus.FAILED else self.payload,
            chunks=list(self.chunks),
            error=self.error,
        )


class SearchPoller:
    """
    Drives the asynchronous search protocol against a provider.

    Submission and polls run strictly one after another; independent
    searches may run concurrently since they share no state.
    """

    def __init__(
        self,
        provider: TravelpayoutsProvider,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._provider = provider
        self.max_attempts = settings.FLIGHT_SEARCH_MAX_ATTEMPTS if max_attempts is None else max_attempts
        self.delay = settings.FLIGHT_SEARCH_POLL_DELAY if delay is None else delay
        self._sleep = sleep

    def _budget(self, max_attempts: Optional[int], delay: Optional[float]):
        max_attempts = self.max_attempts if max_attempts is None else max_attempts
        delay = self.delay if delay is None else delay
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if delay < 0:
            raise ValueError("delay must not be negative")
        return max_attempts, delay

    async def submit_and_poll(
        self,
        request: SearchRequest,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """
        Submit a search and poll until it completes, times out or fails.

        Provider and network failures come back as a ``failed`` result;
        ``InvalidRequest`` is raised before anything is sent.
        """
        max_attempts, delay = self._budget(max_attempts, delay)

        try:
            submitted = await self._provider.submit_search(request)
        except (ProviderError, NetworkError) as e:
            logger.warning(f"Flight search submission failed: {e}")
            return PollResult(search_id=None, status=SearchStatus.FAILED, error=e)

        session = SearchSession(search_id=submitted["search_id"])
        return await self._run(session, max_attempts, delay, cancel)

    async def poll(
        self,
        search_id: str,
        max_attempts: Optional[int] = None,
        delay: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """Poll an already submitted search, e.g. after an earlier timeout"""
        if not search_id:
            raise InvalidRequest("search_id is required")
        max_attempts, delay = self._budget(max_attempts, delay)
        return await self._run(SearchSession(search_id=search_id), max_attempts, delay, cancel)

    async def _run(
        self,
        session: SearchSession,
        max_attempts: int,
        delay: float,
        cancel: Optional[asyncio.Event],
    ) -> PollResult:
        while True:
            try:
                body = await self._provider.fetch_results(session.search_id)
            except (ProviderError, NetworkError) as e:
                session.finish(SearchStatus.FAILED, e)
                logger.warning(f"Polling {session.search_id} failed on attempt {session.attempt + 1}: {e}")
                break

            session.record(body)
            logger.debug(f"Poll {session.attempt}/{max_attempts} for {session.search_id}")

            if self._provider.is_complete(body):
                session.finish(SearchStatus.COMPLETE)
                logger.info(f"Search {session.search_id} complete after {session.attempt} polls")
                break

            if session.attempt >= max_attempts:
                session.finish(SearchStatus.TIMED_OUT)
                logger.info(f"Search {session.search_id} still running after {session.attempt} polls")
                break

            if cancel is not None and cancel.is_set():
                logger.info(f"Polling {session.search_id} abandoned after {session.attempt} polls")
                break

            await self._sleep(delay)

        return session.to_result()
