"""
Reflecta API - Coaching Scheduler.

One cycle per trigger invocation:
1. Bootstrap users that were never scheduled
2. Defer due users that are outside their local delivery window
3. Dispatch one processor job per remaining due user

Jobs are fire-and-forget HTTP calls; the scheduler never waits for
generation to finish and never sees processor-level failures.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from app.models.coaching import SchedulingMode
from app.schemas.coaching import SchedulerSummary
from app.services.due_time import ensure_utc, is_in_time_window, next_due, next_window_start
from settings import settings

logger = logging.getLogger(__name__)

# Time a queued request gets to reach the processor once the shared deadline has passed
MIN_ACK_WINDOW_SECONDS = 0.05


@dataclass
class DispatchOutcome:
    """Result of handing one user to the processor."""
    user_id: str
    dispatched: bool
    in_flight: bool = False
    error: Optional[str] = None


class HttpJobDispatcher:
    """
    Dispatches processor jobs over HTTP.

    The processor acknowledges as soon as it has accepted a job. If it has
    not answered within the ack window the job is still running on its
    side, so a read timeout counts as dispatched. Connection failures and
    non-2xx answers are dispatch errors.

    All dispatches in one batch share a single ack deadline: a slow
    processor costs the batch at most `DISPATCH_ACK_TIMEOUT_SECONDS`
    (plus a short send window per queued request), not that bound once
    per `concurrency` users.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        secret: Optional[str] = None,
        concurrency: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.processor_url
        self.secret = secret or settings.CRON_SECRET or "dev"
        self.concurrency = concurrency or settings.DISPATCH_CONCURRENCY
        self.transport = transport

    @staticmethod
    def _timeout(ack_seconds: float) -> httpx.Timeout:
        connect = settings.DISPATCH_CONNECT_TIMEOUT_SECONDS
        return httpx.Timeout(connect=connect, read=ack_seconds, write=connect, pool=connect)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout(settings.DISPATCH_ACK_TIMEOUT_SECONDS),
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.secret}"},
        )

    async def dispatch(
        self,
        client: httpx.AsyncClient,
        user_id: str,
        ack_seconds: Optional[float] = None,
    ) -> DispatchOutcome:
        if ack_seconds is None:
            ack_seconds = settings.DISPATCH_ACK_TIMEOUT_SECONDS
        try:
            response = await client.post(
                self.url, json={"userId": user_id}, timeout=self._timeout(ack_seconds)
            )
        except httpx.ReadTimeout:
            return DispatchOutcome(user_id=user_id, dispatched=True, in_flight=True)
        except httpx.HTTPError as e:
            return DispatchOutcome(user_id=user_id, dispatched=False, error=f"{type(e).__name__}: {e}")

        if response.is_success:
            return DispatchOutcome(user_id=user_id, dispatched=True)
        return DispatchOutcome(user_id=user_id, dispatched=False, error=f"HTTP {response.status_code}")

    async def dispatch_many(self, user_ids: List[str]) -> List[DispatchOutcome]:
        """Dispatch all jobs concurrently, bounded by `concurrency` and one shared ack deadline."""
        if not user_ids:
            return []

        loop = asyncio.get_running_loop()
        deadline = loop.time() + settings.DISPATCH_ACK_TIMEOUT_SECONDS
        semaphore = asyncio.Semaphore(self.concurrency)
        async with self._client() as client:

            async def bounded(user_id: str) -> DispatchOutcome:
                async with semaphore:
                    ack_seconds = max(deadline - loop.time(), MIN_ACK_WINDOW_SECONDS)
                    return await self.dispatch(client, user_id, ack_seconds)

            return await asyncio.gather(*(bounded(uid) for uid in user_ids))


class CoachingScheduler:
    """
    Periodic coaching scheduler.

    Attributes:
        store: Document-store collaborator.
        dispatcher: Anything with `dispatch_many(user_ids)`.
    """

    def __init__(self, store, dispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def _bootstrap(self, users, now: datetime, summary: SchedulerSummary) -> None:
        for user in users:
            due_at = next_due(
                now,
                user.coaching.frequency,
                user.coaching.time_preference,
                user.coaching.timezone,
                SchedulingMode.BOOTSTRAP,
            )
            try:
                if await self.store.update_next_due(user.uid, due_at):
                    summary.users_bootstrapped += 1
                    logger.info(f"Bootstrapped user {user.uid}, first due at {due_at.isoformat()}")
                    continue
                logger.error(f"Bootstrap matched no profile for user {user.uid}")
            except Exception as e:
                logger.error(f"Failed to bootstrap user {user.uid}: {e}")
            summary.errors += 1

    async def _defer(self, user, now: datetime, summary: SchedulerSummary) -> None:
        due_at = next_window_start(now, user.coaching.time_preference, user.coaching.timezone)
        try:
            if await self.store.update_next_due(user.uid, due_at):
                summary.users_deferred += 1
                logger.info(
                    f"User {user.uid} outside {user.coaching.time_preference.value} window, "
                    f"deferred to {due_at.isoformat()}"
                )
                return
            logger.error(f"Deferral matched no profile for user {user.uid}")
        except Exception as e:
            logger.error(f"Failed to defer user {user.uid}: {e}")
        summary.errors += 1

    async def run(self, now: Optional[datetime] = None) -> SchedulerSummary:
        """
        Run one scheduling cycle.

        Returns:
            SchedulerSummary with due/bootstrap/deferred/dispatched/error counts.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        summary = SchedulerSummary()

        due_users, bootstrap_users = await asyncio.gather(
            self.store.get_users_due(now),
            self.store.get_users_needing_bootstrap(),
        )
        summary.users_due = len(due_users)
        logger.info(f"Scheduler run: {len(due_users)} due, {len(bootstrap_users)} need bootstrap")

        await self._bootstrap(bootstrap_users, now, summary)

        ready = []
        for user in due_users:
            if is_in_time_window(now, user.coaching.time_preference, user.coaching.timezone):
                ready.append(user.uid)
            else:
                await self._defer(user, now, summary)

        for outcome in await self.dispatcher.dispatch_many(ready):
            if outcome.dispatched:
                summary.jobs_created += 1
            else:
                summary.errors += 1
                logger.error(f"Failed to dispatch processor for user {outcome.user_id}: {outcome.error}")

        logger.info(
            f"Scheduler complete: {summary.jobs_created} jobs, {summary.users_bootstrapped} bootstrapped, "
            f"{summary.users_deferred} deferred, {summary.errors} errors"
        )
        return summary


def get_coaching_scheduler() -> CoachingScheduler:
    """Scheduler wired to the production store and HTTP dispatcher."""
    from app.services.coaching_store import get_coaching_store

    return CoachingScheduler(get_coaching_store(), HttpJobDispatcher())
