"""
Thin async HTTP client for the contact-center platform APIs.

Every error status, timeout or transport failure is raised as `UpstreamError`
carrying the status, URL and body so callers can decide whether a fallback
applies.
"""

from __future__ import annotations

from typing import Any

import httpx

from capture_bridge.config import Settings
from capture_bridge.shared.exceptions import UpstreamError
from capture_bridge.shared.logging import get_logger

logger = get_logger(__name__)


def response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class UpstreamClient:
    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._http_client = http_client
        self._owns_client = http_client is None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.query_timeout_seconds),
            )
        return self._http_client

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def url(self, path: str) -> str:
        return self._settings.api_url(path)

    @staticmethod
    def _headers(token: str, accept: str = "application/json") -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": accept}

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        token: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            UpstreamError: For any status >= 400 (status preserved), 504 on
                timeout, 502 on transport failure.
        """
        url = self.url(path)
        client = self._get_http_client()
        try:
            response = await client.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(token),
                timeout=timeout or self._settings.query_timeout_seconds,
            )
        except httpx.TimeoutException as e:
            logger.error("Upstream request timed out", extra={"method": method, "url": url})
            raise UpstreamError(504, url, str(e), message="Upstream request timed out") from e
        except httpx.HTTPError as e:
            logger.error(
                "Upstream transport failure",
                extra={"method": method, "url": url, "error": str(e)},
            )
            raise UpstreamError(502, url, str(e), message="Upstream request failed") from e

        if response.status_code >= 400:
            body = response_body(response)
            logger.warning(
                "Upstream returned error status",
                extra={"method": method, "url": url, "status_code": response.status_code},
            )
            raise UpstreamError(response.status_code, url, body)

        if not response.content:
            return None
        return response_body(response)

    async def open_stream(
        self,
        path: str,
        *,
        token: str,
        timeout: float | None = None,
        accept: str = "*/*",
    ) -> httpx.Response:
        """Start a streamed GET; the caller owns closing the returned response.

        Raises:
            UpstreamError: If the upstream answers with an error status (the
                response is read and closed first), times out or fails.
        """
        url = self.url(path)
        client = self._get_http_client()
        request = client.build_request(
            "GET",
            url,
            headers=self._headers(token, accept=accept),
            timeout=timeout or self._settings.stream_timeout_seconds,
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.error("Upstream stream timed out", extra={"url": url})
            raise UpstreamError(504, url, str(e), message="Upstream request timed out") from e
        except httpx.HTTPError as e:
            logger.error("Upstream stream transport failure", extra={"url": url, "error": str(e)})
            raise UpstreamError(502, url, str(e), message="Upstream request failed") from e

        if response.status_code >= 400:
            try:
                await response.aread()
                body = response_body(response)
            finally:
                await response.aclose()
            logger.warning(
                "Upstream stream returned error status",
                extra={"url": url, "status_code": response.status_code},
            )
            raise UpstreamError(response.status_code, url, body)

        return response
