"""Error taxonomy for the scheduling and delivery subsystem.

- NotFoundError: a referenced credential or message does not exist
- InvalidArgumentError: malformed scheduling request, rejected before storage
- RefreshError: the identity provider refused or failed a token refresh
- DeliveryError: transport or remote API failure on a delivery attempt
- TokenExpiredError: an immediate send found an expired access token
"""


class CourierError(Exception):
    """Base class for all Courier errors."""


class NotFoundError(CourierError):
    """Referenced credential or message does not exist."""


class InvalidArgumentError(CourierError):
    """Malformed request (e.g. a send time that is not in the future)."""


class RefreshError(CourierError):
    """Access token refresh failed. Re-authorization is required."""


class DeliveryError(CourierError):
    """A single delivery attempt failed.

    Attributes:
        reason: Short machine-readable cause (e.g. Slack's ``channel_not_found``).
    """

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Delivery failed: {reason}")


class TokenExpiredError(CourierError):
    """Access token has expired and was not refreshed.

    Attributes:
        refreshable: Whether a refresh token is available, so the workspace
            can be refreshed instead of re-authorized.
    """

    def __init__(self, workspace_id: str, refreshable: bool) -> None:
        self.workspace_id = workspace_id
        self.refreshable = refreshable
        hint = "refresh it" if refreshable else "reconnect the workspace"
        super().__init__(
            f"Access token for workspace {workspace_id} has expired; {hint}"
        )
