"""Database layer."""

from courier.db.engine import Database
from courier.db.models import (
    Base,
    CredentialRecord,
    ScheduledMessageRecord,
)

__all__ = [
    # Engine
    "Database",
    # Models
    "Base",
    "CredentialRecord",
    "ScheduledMessageRecord",
]
