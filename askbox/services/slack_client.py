"""
Slack Web API client.

Every call returns a SlackResult instead of raising, so callers decide what
a failure means for them. Failures are logged with Slack's error code.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.config import get_settings
from ..core.security import mask_token

logger = logging.getLogger(__name__)

_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Shared HTTP client for Slack calls."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=30.0)
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None


@dataclass
class SlackResult:
    """Outcome of a Slack Web API call."""
    ok: bool
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ts(self) -> str | None:
        return self.data.get("ts")


class SlackClient:
    """Thin async wrapper over the Web API methods Askbox uses."""

    def __init__(
        self,
        token: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
    ):
        self._token = token
        self._http = http_client or get_http_client()
        self._base_url = (base_url or get_settings().slack_api_base_url).rstrip("/")

    async def _call(self, method: str, payload: dict[str, Any]) -> SlackResult:
        try:
            response = await self._http.post(
                f"{self._base_url}/{method}",
                headers={"Authorization": f"Bearer {self._token}"},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error(f"Slack {method} request failed: {e}")
            return SlackResult(ok=False, error="request_failed")

        if response.status_code == 429:
            logger.warning(
                f"Slack {method} rate limited (retry after {response.headers.get('Retry-After', '?')}s)"
            )
            return SlackResult(ok=False, error="ratelimited")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"Slack {method} returned non-JSON response (HTTP {response.status_code})")
            return SlackResult(ok=False, error="invalid_response")

        if not data.get("ok"):
            error = data.get("error", "unknown_error")
            logger.error(f"Slack API error on {method}: {error} (token {mask_token(self._token)})")
            return SlackResult(ok=False, error=error, data=data)

        return SlackResult(ok=True, data=data)

    async def post_message(
        self,
        channel: str,
        text: str,
        blocks: list[dict] | None = None,
        thread_ts: str | None = None,
    ) -> SlackResult:
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        if thread_ts:
            payload["thread_ts"] = thread_ts
        return await self._call("chat.postMessage", payload)

    async def update_message(
        self,
        channel: str,
        ts: str,
        text: str,
        blocks: list[dict] | None = None,
    ) -> SlackResult:
        payload: dict[str, Any] = {"channel": channel, "ts": ts, "text": text}
        if blocks is not None:
            payload["blocks"] = blocks
        return await self._call("chat.update", payload)

    async def post_ephemeral(self, channel: str, user: str, text: str) -> SlackResult:
        return await self._call("chat.postEphemeral", {"channel": channel, "user": user, "text": text})

    async def open_view(self, trigger_id: str, view: dict) -> SlackResult:
        return await self._call("views.open", {"trigger_id": trigger_id, "view": view})

    async def add_reaction(self, channel: str, ts: str, name: str) -> SlackResult:
        return await self._call("reactions.add", {"channel": channel, "timestamp": ts, "name": name})
