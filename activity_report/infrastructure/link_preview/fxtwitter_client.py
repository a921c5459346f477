from __future__ import annotations

import asyncio
from typing import Any

import httpx


class LinkPreviewError(RuntimeError):
    pass


class FxTwitterClient:
    """Reads public post metadata from the fxtwitter status API."""

    def __init__(
        self,
        *,
        api_base_url: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def status_url(self, status_id: str) -> str:
        return f"{self.api_base_url}/status/{status_id}"

    async def fetch_status(self, status_id: str) -> dict[str, Any]:
        """Return the ``tweet`` object for ``status_id``.

        The whole exchange, body included, must finish within
        ``timeout_seconds``; httpx alone only bounds each read.

        Raises :class:`LinkPreviewError` for timeouts, transport errors,
        non-2xx statuses, unparsable bodies and API-level ``code`` failures.
        """
        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with httpx.AsyncClient(
                    timeout=self.timeout_seconds,
                    transport=self._transport,
                ) as client:
                    response = await client.get(self.status_url(status_id))
        except (TimeoutError, httpx.TimeoutException) as exc:
            raise LinkPreviewError(
                f"fxtwitter timed out after {self.timeout_seconds}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise LinkPreviewError(f"fxtwitter request failed: {exc}") from exc

        if not response.is_success:
            raise LinkPreviewError(f"fxtwitter returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise LinkPreviewError("fxtwitter returned invalid JSON") from exc

        if not isinstance(data, dict) or data.get("code") != 200:
            code = data.get("code") if isinstance(data, dict) else None
            raise LinkPreviewError(f"fxtwitter returned code {code}")
        tweet = data.get("tweet")
        if not isinstance(tweet, dict):
            raise LinkPreviewError("fxtwitter response had no tweet")
        return tweet
