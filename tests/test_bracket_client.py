from unittest.mock import AsyncMock, patch

import pytest

from matcharc.integrations.bracket_client import (
    BracketAuthError, BracketRateLimitError, BracketServiceError,
    StartGGClient, calculate_delay, with_retry
)


class FakeResponse:
    def __init__(self, status=200, body=None, text=""):
        self.status = status
        self._body = body or {}
        self._text = text

    async def json(self):
        return self._body

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Stands in for aiohttp.ClientSession; replays queued responses"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def post(self, url, json=None, headers=None):
        self.requests.append({'url': url, 'json': json, 'headers': headers})
        return self.responses.pop(0)


def make_client(*responses, api_key="secret"):
    session = FakeSession(*responses)
    return StartGGClient(api_key=api_key, api_url="https://example.test/gql", http_client=session), session


@pytest.fixture(autouse=True)
def no_sleep():
    with patch('matcharc.integrations.bracket_client.asyncio.sleep', new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.mark.asyncio
async def test_report_set_posts_mutation():
    client, session = make_client(FakeResponse(body={'data': {'reportBracketSet': [{'id': '1', 'state': 3}]}}))

    reported = await client.report_set("set-1", "entrant-9")

    assert reported == [{'id': '1', 'state': 3}]
    request = session.requests[0]
    assert request['url'] == "https://example.test/gql"
    assert request['headers'] == {'Authorization': 'Bearer secret'}
    assert request['json']['variables'] == {'setId': "set-1", 'winnerId': "entrant-9"}
    assert "reportBracketSet" in request['json']['query']


@pytest.mark.asyncio
async def test_missing_api_key():
    client, session = make_client(api_key="")

    with pytest.raises(BracketAuthError):
        await client.report_set("set-1", "entrant-9")
    assert session.requests == []


@pytest.mark.asyncio
async def test_rejected_credentials():
    client, _ = make_client(FakeResponse(status=401))

    with pytest.raises(BracketAuthError):
        await client.report_set("set-1", "entrant-9")


@pytest.mark.asyncio
async def test_graphql_errors_are_raised():
    client, _ = make_client(FakeResponse(body={'errors': [{'message': 'Set is already completed'}]}))

    with pytest.raises(BracketServiceError, match="already completed"):
        await client.report_set("set-1", "entrant-9")


@pytest.mark.asyncio
async def test_server_error_is_not_retried():
    client, session = make_client(FakeResponse(status=500, text="boom"), FakeResponse())

    with pytest.raises(BracketServiceError, match="HTTP 500"):
        await client.report_set("set-1", "entrant-9")
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_rate_limit_is_retried(no_sleep):
    client, session = make_client(
        FakeResponse(status=429),
        FakeResponse(status=429),
        FakeResponse(body={'data': {'reportBracketSet': [{'id': '1'}]}}),
    )

    assert await client.report_set("set-1", "entrant-9") == [{'id': '1'}]
    assert len(session.requests) == 3
    assert no_sleep.await_count == 2


@pytest.mark.asyncio
async def test_with_retry_gives_up():
    calls = []

    async def always_limited():
        calls.append(1)
        raise BracketRateLimitError("429 Too Many Requests")

    with pytest.raises(BracketRateLimitError, match="after 2 retries"):
        await with_retry(always_limited, max_retries=2, base_delay=0.01, max_delay=0.02)
    assert len(calls) == 3


def test_calculate_delay_grows_and_caps():
    with patch('matcharc.integrations.bracket_client.random.random', return_value=0.0):
        assert calculate_delay(1, 1.0, 30.0) == 1.0
        assert calculate_delay(3, 1.0, 30.0) == 4.0
        assert calculate_delay(10, 1.0, 30.0) == 30.0
    with patch('matcharc.integrations.bracket_client.random.random', return_value=1.0):
        assert calculate_delay(1, 1.0, 30.0) == pytest.approx(1.3)
