"""
start.gg client: reports finalized set results to the bracket of record.

Only the reportBracketSet mutation is needed by the match flow. Requests
are retried on rate limiting with exponential backoff and jitter; any other
failure is raised straight away for the sync worker to record.
"""

import asyncio
import contextlib
import random
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp

from matcharc.config import Config
from matcharc.constants import SyncConstants
from matcharc.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar('T')

REPORT_SET_MUTATION = """
mutation ReportSet($setId: ID!, $winnerId: ID!) {
  reportBracketSet(setId: $setId, winnerId: $winnerId) {
    id
    state
  }
}
"""


class BracketServiceError(Exception):
    """Base class for bracket service failures."""
    pass


class BracketAuthError(BracketServiceError):
    """Raised when the API key is missing or rejected."""
    pass


class BracketRateLimitError(BracketServiceError):
    """Raised when the service keeps answering 429 after all retries."""
    pass


def is_rate_limit_error(error: Exception) -> bool:
    if isinstance(error, BracketRateLimitError):
        return True
    message = str(error).lower()
    return 'rate limit' in message or '429' in message or 'too many requests' in message


def calculate_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff with 0-30% jitter, capped at `max_delay`"""
    exponential = base_delay * (2 ** (attempt - 1))
    jitter = random.random() * SyncConstants.BACKOFF_JITTER * exponential
    return min(exponential + jitter, max_delay)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    on_retry: Optional[Callable[[int, float, Exception], None]] = None
) -> T:
    """
    Call `func`, retrying only rate-limit failures.

    Raises:
        BracketRateLimitError: If still rate limited after `max_retries` retries
        Exception: Any non-rate-limit error from `func`, unchanged
    """
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            if attempt > max_retries:
                raise BracketRateLimitError(
                    f"Rate limit exceeded after {max_retries} retries: {e}"
                ) from e

            delay = calculate_delay(attempt, base_delay, max_delay)
            if on_retry:
                on_retry(attempt, delay, e)
            await asyncio.sleep(delay)
            attempt += 1


class StartGGClient:
    """Minimal GraphQL client for start.gg."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[aiohttp.ClientSession] = None
    ):
        self._api_key = api_key if api_key is not None else Config.STARTGG_API_KEY
        self._api_url = api_url or Config.STARTGG_API_URL
        self._timeout = aiohttp.ClientTimeout(total=timeout or Config.STARTGG_TIMEOUT_SECONDS)
        # Tests pass their own session; its lifecycle is handled by the caller.
        self._http_client = http_client

    @contextlib.asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            yield self._http_client
            return

        async with aiohttp.ClientSession(timeout=self._timeout) as client:
            yield client

    async def _request(self, query: str, variables: dict) -> dict:
        if not self._api_key:
            raise BracketAuthError("STARTGG_API_KEY is not configured")

        headers = {'Authorization': f'Bearer {self._api_key}'}
        payload = {'query': query, 'variables': variables}

        async with self._client() as client:
            async with client.post(self._api_url, json=payload, headers=headers) as resp:
                if resp.status == 429:
                    raise BracketRateLimitError("429 Too Many Requests")
                if resp.status in (401, 403):
                    raise BracketAuthError(f"start.gg rejected credentials (HTTP {resp.status})")
                if resp.status >= 400:
                    text = await resp.text()
                    raise BracketServiceError(f"start.gg HTTP {resp.status}: {text[:200]}")
                body = await resp.json()

        errors = body.get('errors')
        if errors:
            messages = '; '.join(str(err.get('message', err)) for err in errors)
            raise BracketServiceError(f"start.gg GraphQL error: {messages}")

        return body.get('data') or {}

    async def report_set(self, set_id: str, winner_id: str) -> Optional[dict]:
        """
        Report the winner of a set.

        Args:
            set_id: start.gg set id
            winner_id: start.gg entrant id of the winner

        Returns:
            {'id': ..., 'state': ...} for the reported set, or None if the
            service returned nothing
        """
        async def call():
            return await self._request(REPORT_SET_MUTATION, {'setId': set_id, 'winnerId': winner_id})

        def log_retry(attempt, delay, error):
            logger.warning(f"start.gg rate limited reporting set {set_id}, retry {attempt} in {delay:.1f}s: {error}")

        data = await with_retry(
            call,
            max_retries=Config.SYNC_MAX_RETRIES,
            base_delay=Config.SYNC_BASE_DELAY_SECONDS,
            max_delay=Config.SYNC_MAX_DELAY_SECONDS,
            on_retry=log_retry
        )
        return data.get('reportBracketSet')
