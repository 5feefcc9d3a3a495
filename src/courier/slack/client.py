"""Slack Web API client for message delivery and workspace queries."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from courier.errors import CourierError, DeliveryError
from courier.slack.oauth import SLACK_API_URL

logger = logging.getLogger(__name__)

CHANNEL_PAGE_LIMIT = 200


@dataclass(frozen=True)
class SlackChannel:
    """A conversation a message can be delivered to."""

    id: str
    name: str


class SlackClient:
    """Thin async wrapper over the Slack Web API.

    One HTTP request per call and no internal retry; the scheduler owns
    the retry policy.
    """

    def __init__(
        self,
        *,
        api_url: str = SLACK_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def send(self, access_token: str, channel: str, text: str) -> None:
        """Post a message with ``chat.postMessage``.

        Raises:
            DeliveryError: On transport failure or a non-ok API response.
        """
        try:
            data = await self._call(
                "chat.postMessage",
                access_token,
                json={"channel": channel, "text": text},
            )
        except httpx.TimeoutException as e:
            raise DeliveryError("timeout", f"Slack request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DeliveryError("transport_error", f"Slack request failed: {e}") from e

        if not data.get("ok"):
            reason = str(data.get("error") or "unknown_error")
            raise DeliveryError(reason, f"Slack API error: {reason}")

        logger.debug(f"Posted message to {channel} (ts={data.get('ts')})")

    async def list_channels(self, access_token: str) -> list[SlackChannel]:
        """List public, private and direct conversations, sorted by name.

        Raises:
            CourierError: If any listing request fails.
        """
        channels: list[SlackChannel] = []
        for raw in await self._list_conversations(access_token, "public_channel"):
            if raw.get("id") and raw.get("name"):
                channels.append(SlackChannel(raw["id"], f"#{raw['name']}"))
        for raw in await self._list_conversations(access_token, "private_channel"):
            if raw.get("id") and raw.get("name"):
                channels.append(SlackChannel(raw["id"], f"#{raw['name']} (private)"))
        for raw in await self._list_conversations(access_token, "im,mpim"):
            if raw.get("id"):
                channels.append(SlackChannel(raw["id"], "Direct Message"))

        return sorted(channels, key=lambda c: c.name)

    async def auth_test(self, access_token: str) -> bool:
        """Check whether an access token is still accepted."""
        try:
            data = await self._call("auth.test", access_token)
        except httpx.HTTPError as e:
            logger.warning("Token test failed: %s", e)
            return False
        return data.get("ok") is True

    async def _list_conversations(
        self, access_token: str, types: str
    ) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"types": types, "limit": CHANNEL_PAGE_LIMIT}
            if cursor:
                params["cursor"] = cursor
            try:
                data = await self._call(
                    "conversations.list", access_token, params=params
                )
            except httpx.HTTPError as e:
                raise CourierError(f"Failed to fetch channels: {e}") from e
            if not data.get("ok"):
                raise CourierError(f"Failed to fetch channels: {data.get('error')}")

            results.extend(data.get("channels") or [])
            cursor = (data.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return results

    async def _call(
        self,
        method: str,
        access_token: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Call a Web API method and return the decoded body.

        HTTP 429 is reported as ``{"ok": False, "error": "ratelimited"}``.
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            url = f"{self._api_url}/{method}"
            if params is not None:
                response = await client.get(url, params=params, headers=headers)
            else:
                response = await client.post(url, json=json or {}, headers=headers)

        if response.status_code == 429:
            return {"ok": False, "error": "ratelimited"}
        if response.status_code != 200:
            return {"ok": False, "error": f"http_{response.status_code}"}
        try:
            return response.json()
        except ValueError:
            return {"ok": False, "error": "invalid_response"}
