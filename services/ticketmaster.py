"""
Ticketmaster Discovery API client.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from services.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://app.ticketmaster.com/discovery/v2/"
MISSING_KEY_MESSAGE = "Ticketmaster API key is not configured"


def is_transient(exc: BaseException) -> bool:
    """Transport errors, rate limiting and 5xx answers are worth another try."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, UpstreamError):
        return exc.status_code >= 500 or exc.status_code == 429
    return False


class TicketmasterClient:
    """Thin Discovery API wrapper sharing the application's HTTP client."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: Optional[str],
        timeout: float = 15.0,
        retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.client = http_client
        self.api_key = api_key
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay

    def require_key(self) -> str:
        if not self.api_key:
            logger.error("Ticketmaster API key is not configured in environment variables")
            raise ConfigurationError(MISSING_KEY_MESSAGE)
        return self.api_key

    def build_url(self, endpoint: str) -> str:
        return API_BASE_URL + endpoint.lstrip("/")

    async def proxy(self, endpoint: str, params: Mapping[str, str]) -> httpx.Response:
        """Forward a GET to the Discovery API with the server-held key injected."""
        api_key = self.require_key()
        query = [("apikey", api_key)]
        query.extend((k, v) for k, v in params.items() if k not in ("endpoint", "apikey"))

        url = self.build_url(endpoint)
        logger.info(f"Proxying Ticketmaster API request to: {url}")
        return await self.client.get(
            url,
            params=query,
            headers={"Accept": "application/json"},
            timeout=self.timeout,
        )

    async def _fetch_event(self, event_id: str) -> Dict[str, Any]:
        response = await self.proxy(f"events/{event_id}.json", {})
        if response.status_code >= 400:
            raise UpstreamError(
                f"Ticketmaster API Error: {response.reason_phrase}",
                status_code=response.status_code,
                extra={"details": response.text},
            )
        try:
            return response.json()
        except ValueError:
            raise UpstreamError(
                "Ticketmaster API returned an invalid response",
                extra={"details": response.text[:500]},
            )

    async def get_event(self, event_id: str) -> Dict[str, Any]:
        """Fetch a single event, retrying transient failures with exponential backoff."""
        self.require_key()

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.retry_delay),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
        ):
            with attempt:
                event = await self._fetch_event(event_id)
        return event
