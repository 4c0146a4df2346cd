"""Submit-then-poll state machine"""

import asyncio

import httpx
import pytest

from benetrip.schemas.flight_search import SearchStatus
from benetrip.services.providers import (
    InvalidRequest,
    NetworkError,
    ProviderError,
    SearchPoller,
    SearchSession,
    SearchTimeout,
)

from conftest import FakeTravelpayouts, build_provider, make_request

EMPTY = (200, [{"proposals": [], "search_id": "sid-1"}])
FOUND = (200, [{"proposals": [{"sign": "abc", "terms": {}}], "search_id": "sid-1"}])


@pytest.mark.asyncio
async def test_completes_when_proposals_arrive(sleeper):
    api = FakeTravelpayouts(results=[EMPTY, EMPTY, EMPTY, FOUND])
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=2.0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.COMPLETE
    assert result.search_id == "sid-1"
    assert result.attempts == 4
    assert len(api.submissions) == 1
    assert len(api.polls) == 4
    assert sleeper.delays == [2.0, 2.0, 2.0]
    assert result.proposals == [{"sign": "abc", "terms": {}}]
    assert api.polls[0].url.params["uuid"] == "sid-1"


@pytest.mark.asyncio
async def test_times_out_without_raising(sleeper):
    api = FakeTravelpayouts(results=[EMPTY])
    poller = SearchPoller(build_provider(api), max_attempts=3, delay=2.0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.TIMED_OUT
    assert result.attempts == 3
    assert len(api.polls) == 3
    # no wait after the last attempt
    assert sleeper.delays == [2.0, 2.0]
    assert result.payload == EMPTY[1]
    assert result.error is None


@pytest.mark.asyncio
async def test_timed_out_result_raises_search_timeout(sleeper):
    api = FakeTravelpayouts(results=[EMPTY])
    poller = SearchPoller(build_provider(api), max_attempts=2, delay=0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    with pytest.raises(SearchTimeout) as exc_info:
        result.raise_for_status()
    assert exc_info.value.search_id == "sid-1"
    assert exc_info.value.attempts == 2
    assert exc_info.value.status_code == 202


@pytest.mark.asyncio
async def test_submission_error_fails_without_polling(sleeper):
    api = FakeTravelpayouts(submit=(400, {"error": "wrong signature"}))
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=2.0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert result.search_id is None
    assert result.attempts == 0
    assert api.polls == []
    assert sleeper.delays == []
    assert isinstance(result.error, ProviderError)
    assert result.error.status_code == 400
    assert result.error.body == {"error": "wrong signature"}
    with pytest.raises(ProviderError):
        result.raise_for_status()


@pytest.mark.asyncio
async def test_submission_without_search_id_fails(sleeper):
    api = FakeTravelpayouts(submit=(200, {"gates_count": 3}))
    poller = SearchPoller(build_provider(api), sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert result.error.status_code == 502
    assert api.polls == []


@pytest.mark.asyncio
async def test_results_error_fails_the_search(sleeper):
    api = FakeTravelpayouts(results=[EMPTY, (500, "upstream exploded")])
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=1.0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert result.search_id == "sid-1"
    assert result.attempts == 1
    assert result.payload is None
    assert result.error.status_code == 500
    assert result.error.body == "upstream exploded"


@pytest.mark.asyncio
async def test_network_failure_on_submission_fails(sleeper):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    poller = SearchPoller(build_provider(handler, retry_attempts=2), sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert isinstance(result.error, NetworkError)
    assert result.error.status_code == 504
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_error_payload_fails_after_one_poll(sleeper):
    body = {"error": "search not found", "search_id": "sid-1", "x": 1}
    api = FakeTravelpayouts(results=[(200, body)])
    poller = SearchPoller(build_provider(api), max_attempts=3, delay=0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert len(api.polls) == 1
    assert result.payload is None
    assert isinstance(result.error, ProviderError)
    assert result.error.status_code == 502
    assert result.error.message == "search not found"
    assert result.error.body == body


@pytest.mark.asyncio
async def test_error_chunk_inside_list_fails(sleeper):
    api = FakeTravelpayouts(results=[(200, [{"proposals": []}, {"error": "gate timeout"}])])
    poller = SearchPoller(build_provider(api), max_attempts=3, delay=0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert len(api.polls) == 1


@pytest.mark.asyncio
async def test_network_failure_while_polling_fails(sleeper):
    def handler(request):
        if request.url.path.endswith("/flight_search"):
            return httpx.Response(200, json={"search_id": "sid-1"})
        raise httpx.ConnectError("connection reset", request=request)

    poller = SearchPoller(build_provider(handler, retry_attempts=2), max_attempts=5, delay=0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.FAILED
    assert result.search_id == "sid-1"
    assert result.attempts == 0
    assert result.payload is None
    assert isinstance(result.error, NetworkError)
    with pytest.raises(NetworkError):
        result.raise_for_status()


@pytest.mark.asyncio
async def test_terminator_chunk_completes(sleeper):
    api = FakeTravelpayouts(results=[EMPTY, (200, [{"search_id": "sid-1"}])])
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request())

    assert result.status is SearchStatus.COMPLETE
    assert result.attempts == 2
    assert result.proposals == []


@pytest.mark.asyncio
async def test_cancel_leaves_search_pending(sleeper):
    api = FakeTravelpayouts(results=[EMPTY])
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=2.0, sleep=sleeper)
    cancel = asyncio.Event()
    cancel.set()

    result = await poller.submit_and_poll(make_request(), cancel=cancel)

    assert result.status is SearchStatus.PENDING
    assert result.attempts == 1
    assert sleeper.delays == []
    assert result.raise_for_status() is result


@pytest.mark.asyncio
async def test_poll_existing_search_skips_submission(sleeper):
    api = FakeTravelpayouts(results=[FOUND])
    poller = SearchPoller(build_provider(api), sleep=sleeper)

    result = await poller.poll("sid-9")

    assert result.status is SearchStatus.COMPLETE
    assert api.submissions == []
    assert api.polls[0].url.params["uuid"] == "sid-9"


@pytest.mark.asyncio
async def test_poll_requires_search_id(poller):
    with pytest.raises(InvalidRequest):
        await poller.poll("")


@pytest.mark.asyncio
async def test_blank_signable_field_raises_before_network(fake_api, poller):
    with pytest.raises(InvalidRequest):
        await poller.submit_and_poll(make_request(marker=" "))

    assert fake_api.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("max_attempts, delay", [(0, 1.0), (3, -1.0)])
async def test_invalid_budget_is_rejected(fake_api, poller, max_attempts, delay):
    with pytest.raises(ValueError):
        await poller.submit_and_poll(make_request(), max_attempts=max_attempts, delay=delay)

    assert fake_api.requests == []


@pytest.mark.asyncio
async def test_zero_attempts_from_constructor_is_rejected(fake_api, provider, sleeper):
    poller = SearchPoller(provider, max_attempts=0, sleep=sleeper)

    assert poller.max_attempts == 0
    with pytest.raises(ValueError):
        await poller.submit_and_poll(make_request())
    assert fake_api.requests == []


def test_zero_retry_attempts_is_rejected(fake_api):
    with pytest.raises(ValueError):
        build_provider(fake_api, retry_attempts=0)


@pytest.mark.asyncio
async def test_per_call_budget_overrides_defaults(sleeper):
    api = FakeTravelpayouts(results=[EMPTY])
    poller = SearchPoller(build_provider(api), max_attempts=10, delay=2.0, sleep=sleeper)

    result = await poller.submit_and_poll(make_request(), max_attempts=2, delay=0.5)

    assert result.attempts == 2
    assert sleeper.delays == [0.5]


def test_session_cannot_leave_terminal_state():
    session = SearchSession(search_id="sid-1")
    session.finish(SearchStatus.COMPLETE)

    with pytest.raises(RuntimeError):
        session.finish(SearchStatus.FAILED)
