"""
Media relay: proxy one capture's audio from the upstream download endpoint.

The upstream status is checked before any byte reaches the caller, so a
rejected download still produces a JSON error. Once streaming has started an
upstream failure can only abort the response; the caller must treat a
truncated body as a failed fetch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable
from urllib.parse import quote

import httpx

from capture_bridge.config import Settings
from capture_bridge.shared.exceptions import ValidationError
from capture_bridge.shared.logging import get_logger
from capture_bridge.upstream.client import UpstreamClient

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "audio/mpeg"


@dataclass
class RelayedMedia:
    content_type: str
    chunks: AsyncIterator[bytes]
    close: Callable[[], Awaitable[None]]


class MediaRelay:
    def __init__(self, settings: Settings, client: UpstreamClient) -> None:
        self._settings = settings
        self._client = client

    async def open(self, capture_id: str, *, token: str) -> RelayedMedia:
        """Open the upstream download for ``capture_id``.

        Raises:
            ValidationError: Empty capture id.
            UpstreamError: Upstream error status, timeout or transport failure.
        """
        if not capture_id or not capture_id.strip():
            raise ValidationError("capture id is required")

        path = self._settings.capture_download_path.format(capture_id=quote(capture_id.strip(), safe=""))
        response = await self._client.open_stream(
            path,
            token=token,
            timeout=self._settings.stream_timeout_seconds,
        )
        content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE

        logger.info(
            "Relaying capture media",
            extra={"capture_id": capture_id, "content_type": content_type},
        )
        return RelayedMedia(
            content_type=content_type,
            chunks=self._relay(response, capture_id),
            close=response.aclose,
        )

    @staticmethod
    async def _relay(response: httpx.Response, capture_id: str) -> AsyncIterator[bytes]:
        sent = 0
        try:
            async for chunk in response.aiter_bytes():
                sent += len(chunk)
                yield chunk
        except httpx.HTTPError:
            logger.exception(
                "Capture relay aborted mid-stream",
                extra={"capture_id": capture_id, "bytes_sent": sent},
            )
            raise
        finally:
            await response.aclose()
