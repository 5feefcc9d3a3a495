"""Slack OAuth token rotation.

Workspaces installed with token rotation enabled receive short-lived access
tokens plus a refresh token. This module exchanges the refresh token for a
new access token; persisting the result is the caller's job.
"""

import logging

import httpx

from courier.errors import RefreshError
from courier.scheduling.types import RefreshedToken

logger = logging.getLogger(__name__)

SLACK_API_URL = "https://slack.com/api"
# Slack's rotated tokens live 12 hours when expires_in is omitted
DEFAULT_EXPIRES_IN = 43200


class SlackTokenRefresher:
    """Refresh Slack access tokens with the app's client credentials."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        api_url: str = SLACK_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._token_url = f"{api_url.rstrip('/')}/oauth.v2.access"
        self._timeout = timeout
        self._transport = transport

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        """Exchange a refresh token for a new access token.

        Raises:
            RefreshError: If the request fails or Slack rejects the token.
        """
        if not refresh_token:
            raise RefreshError(
                "No refresh token available - token rotation may not be enabled"
            )
        if not self._client_id or not self._client_secret:
            raise RefreshError("Slack client_id/client_secret are not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._token_url,
                    data={
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "grant_type": "refresh_token",
                        "refresh_token": refresh_token,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise RefreshError(f"Token refresh request failed: {e}") from e

        if response.status_code != 200:
            logger.error("Token refresh failed: HTTP %d", response.status_code)
            raise RefreshError(f"Token refresh failed: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RefreshError("Token refresh returned invalid JSON") from e

        if not data.get("ok"):
            raise RefreshError(f"Slack token refresh error: {data.get('error')}")

        access_token = data.get("access_token")
        if not access_token:
            raise RefreshError(
                f"Token refresh response missing fields: {list(data.keys())}"
            )

        expires_in = data.get("expires_in")
        if not isinstance(expires_in, int | float) or expires_in <= 0:
            expires_in = DEFAULT_EXPIRES_IN

        return RefreshedToken(
            access_token=access_token,
            expires_in=int(expires_in),
            refresh_token=data.get("refresh_token") or None,
        )
