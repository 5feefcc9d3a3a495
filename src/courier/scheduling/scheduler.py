"""Message scheduler - polls for due messages and delivers them.

The scheduler owns the polling loop, the per-tick worker pool and the
per-message claim set. Data access goes through the injected stores, token
refresh and delivery through the injected clients.

Guarantees:
- A message id is claimed synchronously before any work is dispatched and
  re-read after the claim, so overlapping ticks never deliver it twice.
- The "read credential, check expiry, refresh, persist" sequence holds a
  per-workspace lock, so concurrent messages for one workspace trigger at
  most one refresh.
- State is written only after each attempt completes. Stopping mid-tick
  leaves unprocessed messages pending for the next start.
"""

import asyncio
import logging
import time
import weakref
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import replace
from typing import Any

from courier.errors import (
    DeliveryError,
    InvalidArgumentError,
    NotFoundError,
    RefreshError,
    TokenExpiredError,
)
from courier.scheduling.protocols import (
    CredentialStore,
    DeliveryClient,
    MessageStore,
    TokenRefresher,
)
from courier.scheduling.retry import Outcome, RetryPolicy, Transition, next_state
from courier.scheduling.types import Credential, ScheduledMessage, new_message_id

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_MAX_WORKERS = 4
DEFAULT_REQUEST_TIMEOUT = 10.0

# Heartbeat every 60 ticks (~1 hour at the default interval)
HEARTBEAT_INTERVAL = 60


class MessageScheduler:
    """Drives due messages to a terminal or rescheduled state.

    Example:
        scheduler = MessageScheduler(
            messages=SqlMessageStore(db),
            credentials=SqlCredentialStore(db),
            refresher=slack,
            delivery=slack,
        )
        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        messages: MessageStore,
        credentials: CredentialStore,
        refresher: TokenRefresher,
        delivery: DeliveryClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_workers: int = DEFAULT_MAX_WORKERS,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._messages = messages
        self._credentials = credentials
        self._refresher = refresher
        self._delivery = delivery
        self._poll_interval = poll_interval
        self._max_workers = max_workers
        self._request_timeout = request_timeout
        self._policy = policy or RetryPolicy()
        self._clock = clock

        self._workers = asyncio.Semaphore(max_workers)
        self._in_flight: set[str] = set()
        # Entries vanish once no task holds or waits on the lock
        self._workspace_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._tick_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "ticks": self._tick_count,
            "in_flight": len(self._in_flight),
            "workspace_locks": len(self._workspace_locks),
            "poll_interval": self._poll_interval,
            "max_workers": self._max_workers,
        }

    # ------------------------------------------------------------------
    # Public API (used by the API layer and CLI)
    # ------------------------------------------------------------------

    async def schedule(
        self, owner_id: str, channel: str, text: str, send_at: int
    ) -> str:
        """Create a pending message.

        Raises:
            InvalidArgumentError: If a field is empty or send_at is not in the future.
        """
        _validate_message(owner_id, channel, text)
        if int(send_at) <= self._now():
            raise InvalidArgumentError("send_at must be in the future")

        message = ScheduledMessage(
            id=new_message_id(),
            owner_id=owner_id,
            channel=channel,
            text=text,
            send_at=int(send_at),
        )
        message_id = await self._messages.create(message)
        logger.info(
            "message_scheduled",
            extra={
                "message.id": message_id,
                "workspace.id": owner_id,
                "messaging.channel": channel,
                "message.send_at": message.send_at,
            },
        )
        return message_id

    async def cancel(self, message_id: str, owner_id: str) -> None:
        """Delete a pending message owned by ``owner_id``.

        Raises:
            NotFoundError: If no pending message with that id belongs to the
                owner, or it is being delivered right now.
        """
        # Holding the claim keeps a concurrent tick from picking it up
        with self._claim(message_id) as claimed:
            if not claimed:
                raise NotFoundError(f"Message {message_id} is being delivered")

            message = await self._messages.get(message_id)
            if message is None or message.owner_id != owner_id:
                raise NotFoundError(f"Message {message_id} not found")
            if not message.is_pending:
                raise NotFoundError(
                    f"Message {message_id} already {message.status.value}"
                )

            if not await self._messages.delete_if_owned(message_id, owner_id):
                raise NotFoundError(f"Message {message_id} not found")

        logger.info(
            "message_cancelled",
            extra={"message.id": message_id, "workspace.id": owner_id},
        )

    async def list_by_owner(self, owner_id: str) -> list[ScheduledMessage]:
        return await self._messages.list_by_owner(owner_id)

    async def send_now(self, owner_id: str, channel: str, text: str) -> None:
        """Deliver a message immediately, without storing it.

        An expired token is reported rather than refreshed; nothing is retried.

        Raises:
            InvalidArgumentError: If a field is empty.
            NotFoundError: If the workspace has no credential.
            TokenExpiredError: If the access token has expired.
            DeliveryError: If Slack rejects the message or the call times out.
        """
        _validate_message(owner_id, channel, text)
        credential = await self._credentials.get_by_owner(owner_id)
        if credential is None:
            raise NotFoundError(f"Workspace {owner_id} is not connected")
        if credential.is_expired(self._now()):
            raise TokenExpiredError(owner_id, refreshable=credential.can_refresh)

        try:
            await asyncio.wait_for(
                self._delivery.send(credential.access_token, channel, text),
                timeout=self._request_timeout,
            )
        except TimeoutError as e:
            raise DeliveryError(
                "timeout", f"Delivery timed out after {self._request_timeout}s"
            ) from e
        logger.info(
            "message_sent_immediately",
            extra={"workspace.id": owner_id, "messaging.channel": channel},
        )

    async def refresh_credential(self, owner_id: str) -> Credential:
        """Refresh a workspace's access token on demand and persist it.

        Raises:
            NotFoundError: If the workspace has no credential.
            RefreshError: If there is no refresh token or the refresh fails.
        """
        async with self._workspace_lock(owner_id):
            credential = await self._credentials.get_by_owner(owner_id)
            if credential is None:
                raise NotFoundError(f"Workspace {owner_id} is not connected")
            if not credential.can_refresh:
                raise RefreshError(
                    f"No refresh token for workspace {owner_id}; "
                    "token rotation may not be enabled for this app"
                )
            return await self._refresh(credential)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "scheduler_started",
            extra={
                "scheduler.poll_interval": self._poll_interval,
                "scheduler.max_workers": self._max_workers,
            },
        )

    async def stop(self) -> None:
        """Halt future ticks and wait for the current one to finish."""
        if not self._running:
            return
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        logger.info("scheduler_stopped", extra={"scheduler.ticks": self._tick_count})

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time()
        while self._running:
            self._tick_count += 1
            if self._tick_count % HEARTBEAT_INTERVAL == 0:
                logger.info(
                    "scheduler_heartbeat",
                    extra={
                        "scheduler.ticks": self._tick_count,
                        "scheduler.in_flight": len(self._in_flight),
                    },
                )
            try:
                await self.tick()
            except Exception as e:
                logger.error(
                    "scheduler_tick_error",
                    extra={"error.message": str(e)},
                    exc_info=True,
                )

            # Fixed cadence; a slow tick is followed immediately by the next one
            next_run += self._poll_interval
            delay = next_run - loop.time()
            if delay <= 0:
                next_run = loop.time()
                delay = 0
            assert self._stop_event is not None
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def tick(self) -> int:
        """Process every due message once.

        Returns:
            Number of messages processed by this tick.
        """
        now = self._now()
        try:
            due = await self._messages.list_due(now)
        except Exception as e:
            logger.error(
                "list_due_failed",
                extra={"error.message": str(e)},
                exc_info=True,
            )
            return 0

        if not due:
            return 0

        # Claim synchronously so no other tick can dispatch these ids
        claimed = [m for m in due if self._try_claim(m.id)]
        skipped = len(due) - len(claimed)
        logger.debug(
            f"Tick: {len(due)} due, {len(claimed)} claimed, {skipped} in flight"
        )
        if not claimed:
            return 0

        results = await asyncio.gather(
            *(self._run_claimed(message) for message in claimed),
            return_exceptions=True,
        )
        processed = 0
        for message, result in zip(claimed, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "message_processing_error",
                    extra={"message.id": message.id, "error.message": str(result)},
                )
            elif result is not None:
                processed += 1
        return processed

    async def process_one(self, message: ScheduledMessage) -> Transition | None:
        """Process a single message outside of a tick.

        Returns:
            The applied transition, or None if the message was skipped
            (already in flight, no longer due, or its state could not be
            written).
        """
        with self._claim(message.id) as claimed:
            if not claimed:
                return None
            async with self._workers:
                return await self._process_claimed(message)

    async def _run_claimed(self, message: ScheduledMessage) -> Transition | None:
        try:
            async with self._workers:
                return await self._process_claimed(message)
        finally:
            self._release(message.id)

    async def _process_claimed(self, message: ScheduledMessage) -> Transition | None:
        try:
            # Re-read: another tick may have finished this message after our
            # listing but before our claim
            current = await self._messages.get(message.id)
            if current is None or not current.is_due(self._now()):
                logger.debug(f"Message {message.id} no longer due, skipping")
                return None

            outcome = await self._attempt(current)
            transition = next_state(
                current.status,
                current.retry_count,
                outcome,
                self._now(),
                self._policy,
            )
            await self._messages.update_status(current.id, transition.as_fields())
        except Exception as e:
            # Store failure: leave the message as-is for the next tick
            logger.error(
                "message_state_error",
                extra={"message.id": message.id, "error.message": str(e)},
                exc_info=True,
            )
            return None

        self._log_transition(current, outcome, transition)
        return transition

    async def _attempt(self, message: ScheduledMessage) -> Outcome:
        async with self._workspace_lock(message.owner_id):
            credential = await self._credentials.get_by_owner(message.owner_id)
            if credential is None:
                logger.warning(
                    "credential_missing",
                    extra={
                        "message.id": message.id,
                        "workspace.id": message.owner_id,
                    },
                )
                return Outcome.NO_CREDENTIAL

            if credential.is_expired(self._now()):
                if not credential.can_refresh:
                    logger.warning(
                        "credential_expired_no_refresh",
                        extra={"workspace.id": credential.workspace_id},
                    )
                    return Outcome.NO_REFRESH_TOKEN
                try:
                    credential = await self._refresh(credential)
                except RefreshError as e:
                    logger.warning(
                        "credential_refresh_failed",
                        extra={
                            "workspace.id": credential.workspace_id,
                            "error.message": str(e),
                        },
                    )
                    return Outcome.REFRESH_FAILED

        try:
            await asyncio.wait_for(
                self._delivery.send(
                    credential.access_token, message.channel, message.text
                ),
                timeout=self._request_timeout,
            )
        except DeliveryError as e:
            logger.warning(
                "delivery_failed",
                extra={
                    "message.id": message.id,
                    "delivery.reason": e.reason,
                    "message.retry_count": message.retry_count,
                },
            )
            return Outcome.DELIVERY_FAILED
        except TimeoutError:
            logger.warning(
                "delivery_timeout",
                extra={
                    "message.id": message.id,
                    "timeout_s": self._request_timeout,
                },
            )
            return Outcome.DELIVERY_FAILED
        except Exception as e:
            logger.error(
                "delivery_error",
                extra={"message.id": message.id, "error.message": str(e)},
                exc_info=True,
            )
            return Outcome.DELIVERY_FAILED

        return Outcome.DELIVERED

    async def _refresh(self, credential: Credential) -> Credential:
        """Refresh and persist a credential. Caller holds the workspace lock.

        Raises:
            RefreshError: If the refresh fails or times out.
        """
        assert credential.refresh_token is not None
        logger.info(
            "credential_refreshing",
            extra={"workspace.id": credential.workspace_id},
        )
        try:
            token = await asyncio.wait_for(
                self._refresher.refresh(credential.refresh_token),
                timeout=self._request_timeout,
            )
        except TimeoutError as e:
            raise RefreshError(
                f"Token refresh timed out after {self._request_timeout}s"
            ) from e
        except RefreshError:
            raise
        except Exception as e:
            raise RefreshError(f"Token refresh failed: {e}") from e

        fields: dict[str, Any] = {
            "access_token": token.access_token,
            "expires_at": self._now() + token.expires_in,
        }
        if token.refresh_token:
            fields["refresh_token"] = token.refresh_token
        await self._persist_refresh(credential.workspace_id, fields)
        logger.info(
            "credential_refreshed",
            extra={
                "workspace.id": credential.workspace_id,
                "credential.expires_at": fields["expires_at"],
                "credential.rotated": "refresh_token" in fields,
            },
        )
        return replace(credential, **fields)

    async def _persist_refresh(self, workspace_id: str, fields: dict[str, Any]) -> None:
        # The old refresh token is already spent; one retry before giving up
        try:
            await self._credentials.update(workspace_id, fields)
            return
        except NotFoundError:
            raise
        except Exception as e:
            logger.warning(
                "credential_persist_retry",
                extra={"workspace.id": workspace_id, "error.message": str(e)},
            )
        try:
            await self._credentials.update(workspace_id, fields)
        except Exception as e:
            logger.error(
                "credential_persist_failed",
                extra={
                    "workspace.id": workspace_id,
                    "credential.rotated": "refresh_token" in fields,
                    "error.message": str(e),
                },
                exc_info=True,
            )
            raise

    def _log_transition(
        self, message: ScheduledMessage, outcome: Outcome, transition: Transition
    ) -> None:
        extra = {
            "message.id": message.id,
            "workspace.id": message.owner_id,
            "message.outcome": outcome.value,
            "message.status": transition.status.value,
            "message.retry_count": transition.retry_count,
        }
        if outcome is Outcome.DELIVERED:
            logger.info("message_sent", extra=extra)
        elif transition.rescheduled:
            extra["message.send_at"] = transition.send_at
            logger.info("message_rescheduled", extra=extra)
        else:
            logger.warning("message_failed", extra=extra)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    @asynccontextmanager
    async def _workspace_lock(self, workspace_id: str) -> AsyncIterator[None]:
        lock = self._workspace_locks.get(workspace_id)
        if lock is None:
            lock = asyncio.Lock()
            self._workspace_locks[workspace_id] = lock
        async with lock:
            yield

    def _try_claim(self, message_id: str) -> bool:
        if message_id in self._in_flight:
            return False
        self._in_flight.add(message_id)
        return True

    def _release(self, message_id: str) -> None:
        self._in_flight.discard(message_id)

    @contextmanager
    def _claim(self, message_id: str) -> Iterator[bool]:
        claimed = self._try_claim(message_id)
        try:
            yield claimed
        finally:
            if claimed:
                self._release(message_id)


def _validate_message(owner_id: str, channel: str, text: str) -> None:
    if not owner_id:
        raise InvalidArgumentError("owner_id is required")
    if not channel:
        raise InvalidArgumentError("channel is required")
    if not text or not text.strip():
        raise InvalidArgumentError("text is required")
