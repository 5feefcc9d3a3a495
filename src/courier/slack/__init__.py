"""Slack Web API integration.

- SlackTokenRefresher: rotates access tokens via ``oauth.v2.access``
- SlackClient: message delivery and workspace queries
"""

from courier.slack.client import SlackChannel, SlackClient
from courier.slack.oauth import DEFAULT_EXPIRES_IN, SlackTokenRefresher

__all__ = [
    "DEFAULT_EXPIRES_IN",
    "SlackChannel",
    "SlackClient",
    "SlackTokenRefresher",
]
