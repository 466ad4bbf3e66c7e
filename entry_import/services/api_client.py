"""HTTP adapter for backend API operations."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ApiError, NetworkError

logger = logging.getLogger(__name__)


def _error_from_response(response: httpx.Response, method: str, endpoint: str) -> ApiError:
    try:
        data = response.json()
    except ValueError:
        data = response.text or None

    message = None
    code = None
    if isinstance(data, dict):
        message = data.get("detail") or data.get("message")
        code = data.get("code")
    if not isinstance(message, str) or not message:
        message = f"HTTP {response.status_code}"

    return ApiError(
        f"API error {response.status_code} on {method} {endpoint}: {message}",
        response.status_code,
        code=code,
        data=data,
    )


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    if "application/json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            return None
    return response.text


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Implements IAPIClient protocol. GETs are retried on 5xx and transport
    errors; POSTs are sent once unless the caller asks for retries, since
    creation endpoints are not idempotent.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60,
        max_retries: int = 3,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        attempts: int,
        json: Optional[Dict] = None,
    ) -> Any:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            try:
                response = await self._client.request(method, endpoint, json=json)
            except httpx.RequestError as exc:
                if not last_attempt:
                    logger.debug(f"{method} {endpoint} failed ({exc!r}), retrying")
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise NetworkError(f"Network request failed: {method} {endpoint}: {exc}", exc) from exc

            if response.status_code >= 500 and not last_attempt:
                logger.debug(f"{method} {endpoint} returned {response.status_code}, retrying")
                await asyncio.sleep(0.5 * (attempt + 1))
                continue

            if response.status_code >= 400:
                raise _error_from_response(response, method, endpoint)

            return _decode(response)

        raise RuntimeError(f"Failed to {method} {endpoint} after {attempts} attempts")

    async def post(self, endpoint: str, json: Dict, retries: int = 1) -> Any:
        return await self._request("POST", endpoint, max(1, retries), json=json)

    async def get(self, endpoint: str) -> Any:
        return await self._request("GET", endpoint, self._max_retries)
