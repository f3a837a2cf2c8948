"""
Graph Client — Authenticated requests to the Facebook Graph API.

Every Graph call in the connector goes through GraphClient.call:
bearer auth, JSON bodies for writes, error-envelope classification, and
retry with exponential backoff for everything except credential errors.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from adsconnect.config import get_settings
from adsconnect.errors import ExpiredCredential, GraphError, RemoteApiError, TransportError
from adsconnect.retry import CallResult, retry_call

logger = logging.getLogger(__name__)

# Graph error code for an invalid or expired access token
EXPIRED_TOKEN_CODE = 190
OAUTH_EXCEPTION_TYPE = "OAuthException"

_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def parse_error_response(status_code: int, data: Any, reason: str = "") -> GraphError:
    """Turn a non-2xx Graph response into the matching domain error."""
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        code = error.get("code")
        error_type = error.get("type")
        if code == EXPIRED_TOKEN_CODE or error_type == OAUTH_EXCEPTION_TYPE:
            return ExpiredCredential(code=code)
        return RemoteApiError(
            code=code,
            message=error.get("message") or reason or f"HTTP {status_code}",
            error_type=error_type,
            status_code=status_code,
        )
    return TransportError(f"HTTP {status_code}: {reason}".rstrip(": "))


class GraphClient:
    """
    Thin async wrapper over the Graph API.
    One instance per request; close it (or use ``async with``) when done.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.graph_base_url).rstrip("/")
        self.max_attempts = max_attempts or settings.graph_max_attempts
        self.backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.graph_backoff_base_seconds
        )
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.graph_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    async def _attempt(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        params: Optional[dict],
        body: Optional[dict],
    ) -> CallResult:
        try:
            response = await self._client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=body if body is not None and method in _WRITE_METHODS else None,
            )
        except httpx.TimeoutException as e:
            return CallResult.failure(TransportError(f"Request timed out: {e}"))
        except httpx.HTTPError as e:
            return CallResult.failure(TransportError(f"Network error: {e}"))

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_success:
            if data is None:
                return CallResult.failure(
                    TransportError(f"Unparseable response from Graph API (HTTP {response.status_code})")
                )
            return CallResult.success(data)

        return CallResult.failure(parse_error_response(response.status_code, data, response.reason_phrase))

    async def call(
        self,
        endpoint: str,
        credential: Optional[str] = None,
        method: str = "GET",
        body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """
        Issue one logical Graph request and return the parsed JSON.

        Raises ExpiredCredential immediately on a token rejection; raises the
        last RemoteApiError/TransportError once all attempts are used up.
        """
        method = method.upper()
        url = self._url(endpoint)
        headers = {"Content-Type": "application/json"}
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        path = endpoint.split("?", 1)[0]
        logger.info(f"Graph call: {method} {path}")

        result = await retry_call(
            lambda: self._attempt(method, url, headers, params, body),
            max_attempts=self.max_attempts,
            backoff_base_seconds=self.backoff_base_seconds,
            sleep=self._sleep,
            description=f"Graph {method} {path}",
        )
        return result.unwrap()

    # ── Convenience Methods ──────────────────────────────────────────

    async def get(self, endpoint: str, credential: Optional[str] = None, params: Optional[dict] = None) -> Any:
        return await self.call(endpoint, credential, "GET", params=params)

    async def post(self, endpoint: str, credential: str, body: Optional[dict] = None) -> Any:
        return await self.call(endpoint, credential, "POST", body=body)

    async def delete(self, endpoint: str, credential: str) -> Any:
        return await self.call(endpoint, credential, "DELETE")


async def get_graph_client():
    """FastAPI dependency: one GraphClient per request, closed afterwards."""
    client = GraphClient()
    try:
        yield client
    finally:
        await client.close()
