"""Shared fixtures: scripted Travelpayouts API behind httpx.MockTransport."""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx
import pytest

from benetrip.schemas.flight_search import Passengers, SearchRequest, Segment
from benetrip.services.providers import SearchPoller, TravelpayoutsProvider

BASE_URL = "https://api.travelpayouts.test/v1"
TOKEN = "tok"
MARKER = "123456"


def make_request(**overrides: Any) -> SearchRequest:
    fields: dict[str, Any] = {
        "host": "www.benetrip.com.br",
        "locale": "pt",
        "marker": MARKER,
        "trip_class": "Y",
        "user_ip": "127.0.0.1",
        "passengers": Passengers(adults=1, children=0, infants=0),
        "segments": [
            Segment(origin="GRU", destination="JFK", date=date(2025, 6, 1)),
            Segment(origin="JFK", destination="GRU", date=date(2025, 6, 10)),
        ],
    }
    fields.update(overrides)
    return SearchRequest(**fields)


class FakeTravelpayouts:
    """Scripted provider: answers submissions and result polls, records every request.

    ``results`` is a list of ``(status_code, body)`` pairs served in order; the
    last one keeps being served once the script runs out.
    """

    def __init__(self, results=None, submit=(200, {"search_id": "sid-1", "gates_count": 12})):
        self.submit = submit
        self.results = list(results or [(200, {"proposals": [{"sign": "a"}]})])
        self.clicks = (200, {"url": "https://partner.example/book?currency=USD", "method": "GET", "gate_id": 7})
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/flight_search"):
            status, body = self.submit
        elif path.endswith("/flight_search_results"):
            status, body = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        elif "/clicks/" in path:
            status, body = self.clicks
        else:
            status, body = 404, {"error": "not found"}
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body)

    @property
    def submissions(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/flight_search")]

    @property
    def polls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/flight_search_results")]


def build_provider(handler, **kwargs: Any) -> TravelpayoutsProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {
        "token": TOKEN,
        "marker": MARKER,
        "base_url": BASE_URL,
        "retry_attempts": 1,
        "retry_backoff": 0,
    }
    options.update(kwargs)
    return TravelpayoutsProvider(client, **options)


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_api() -> FakeTravelpayouts:
    return FakeTravelpayouts()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def provider(fake_api) -> TravelpayoutsProvider:
    return build_provider(fake_api)


@pytest.fixture
def poller(provider, sleeper) -> SearchPoller:
    return SearchPoller(provider, max_attempts=10, delay=2.0, sleep=sleeper)
