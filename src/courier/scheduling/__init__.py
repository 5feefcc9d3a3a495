"""Scheduling subsystem - deferred message delivery.

Public API:
- MessageScheduler: Polling loop that delivers due messages with retry
- SqlMessageStore / SqlCredentialStore: Database-backed stores

Types:
- ScheduledMessage, MessageStatus: A message and its lifecycle state
- Credential, RefreshedToken: Workspace OAuth tokens
- RetryPolicy, Outcome, Transition, next_state: The retry state machine
"""

from courier.scheduling.retry import Outcome, RetryPolicy, Transition, next_state
from courier.scheduling.scheduler import MessageScheduler
from courier.scheduling.store import SqlCredentialStore, SqlMessageStore
from courier.scheduling.types import (
    Credential,
    MessageStatus,
    RefreshedToken,
    ScheduledMessage,
)

__all__ = [
    "Credential",
    "MessageScheduler",
    "MessageStatus",
    "Outcome",
    "RefreshedToken",
    "RetryPolicy",
    "ScheduledMessage",
    "SqlCredentialStore",
    "SqlMessageStore",
    "Transition",
    "next_state",
]
