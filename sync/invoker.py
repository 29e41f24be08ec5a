"""
Calls the hosted sync function and normalizes its answer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from services.errors import ConfigurationError, SyncFailure
from sync.requests import SyncRequest

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def _error_message(body: Dict[str, Any]) -> str:
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or "Unknown function error"
    return error or body.get("message") or "Unknown function error"


class SyncInvoker:
    """
    Sends a validated SyncRequest to ``{base_url}/functions/v1/{function_name}``.

    The HTTP client is passed in so the connection pool is owned by whoever
    constructs the invoker (the app lifespan, a CLI run, a test).
    Failures are raised as SyncFailure and never retried here.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: Optional[str],
        service_key: Optional[str],
        function_name: str = "unified-sync-v2",
        timeout: float = 60.0,
    ):
        self.client = http_client
        self.base_url = base_url
        self.service_key = service_key
        self.function_name = function_name
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/functions/v1/{self.function_name}"

    async def invoke(self, request: SyncRequest) -> SyncResult:
        if not self.base_url or not self.service_key:
            raise ConfigurationError("Sync function URL or service role key is not configured")

        payload = request.to_payload()
        logger.info(f"Invoking {self.function_name} for {request.entity_type.value} {request.identifier}")

        try:
            response = await self.client.post(
                self.url,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.service_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Error invoking {self.function_name}: {e}")
            raise SyncFailure(f"Error invoking {self.function_name}: {e}")

        try:
            body = response.json()
        except ValueError:
            logger.error(f"{self.function_name} returned non-JSON body ({response.status_code})")
            raise SyncFailure(
                f"Sync function returned error ({response.status_code}): {response.text[:200]}"
            )

        if not isinstance(body, dict):
            raise SyncFailure(f"{self.function_name} returned an unexpected response")

        if response.status_code >= 400 or not body.get("success"):
            message = _error_message(body)
            logger.warning(
                f"{self.function_name} reported failure for {request.entity_type.value} "
                f"{request.identifier}: {message}"
            )
            raise SyncFailure(message, extra={"functionStatus": response.status_code})

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise SyncFailure(f"{self.function_name} returned data of unexpected shape")

        logger.info(f"Successfully invoked {self.function_name} for {request.entity_type.value} {request.identifier}")
        return SyncResult(success=True, data=data)
