"""Remote document repository over the Gist API.

Wraps the blocking ``GistClient`` for use on the event loop and owns the
rate-limit retry path for mutating calls:

* ``create`` / ``update`` / ``delete`` that hit ``RateLimitError`` are
  written to the durable ``JobQueue`` (never with the token), the
  ``queue-retry`` timer is armed, and the error is re-raised so the caller
  can report "queued".
* ``get`` and ``find_latest_own_matching`` propagate every error unchanged.
* ``process_queue`` is the drain loop run by the timer.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.async_utils import run_sync
from ..core.client import GistClient
from ..errors import RateLimitError, RemoteError
from .models import JobOperation, Notice, SyncJob
from .queue import JobQueue, next_attempt, retry_wakeup
from .timers import Timers

logger = logging.getLogger(__name__)

QUEUE_TIMER = "queue-retry"
GISTS_PER_PAGE = 100
MAX_GIST_PAGES = 30

TokenProvider = Callable[[], Awaitable[str | None]]
NoticeSink = Callable[[Notice], None]
JobCompletedHook = Callable[[SyncJob, Any], Awaitable[None]]


class RemoteDocumentRepository:
    """Async facade over the Gist API with a durable retry queue.

    Args:
        client: Blocking wire client.
        queue: Persisted job list.
        timers: Named timer registry; the drain timer is ``queue-retry``.
        token_provider: Loads the token on demand when draining the queue.
        notify: Receives info/warn/error notices about queued jobs.
        on_job_completed: Awaited after a queued job succeeds, with the job
            and the API response.
        rng: Jitter source in ``[0, 1)``.
    """

    def __init__(
        self,
        client: GistClient,
        queue: JobQueue,
        timers: Timers,
        token_provider: TokenProvider,
        notify: NoticeSink | None = None,
        on_job_completed: JobCompletedHook | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._client = client
        self._queue = queue
        self._timers = timers
        self._token_provider = token_provider
        self._notify = notify
        self.on_job_completed = on_job_completed
        self._rng = rng
        self._drain_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, gist_id: str, token: str) -> dict[str, Any]:
        return await run_sync(self._client.get_gist, gist_id, token)

    async def find_latest_own_matching(
        self, required_filenames: list[str], token: str
    ) -> dict[str, Any] | None:
        """Most recently updated own gist holding every required file.

        Gists with the same ``updated_at`` keep the order the API listed
        them in.
        """
        gists: list[dict[str, Any]] = []
        for page in range(1, MAX_GIST_PAGES + 1):
            batch = await run_sync(
                self._client.list_gists, token, page, GISTS_PER_PAGE
            )
            gists.extend(batch)
            if len(batch) < GISTS_PER_PAGE:
                break

        gists.sort(key=lambda g: g.get("updated_at") or "", reverse=True)
        for gist in gists:
            files = gist.get("files") or {}
            if all(name in files for name in required_filenames):
                logger.info("Resolved remote document %s", gist.get("id"))
                return gist
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, body: dict[str, Any], token: str) -> str:
        """Create a gist and return its id."""
        try:
            response = await run_sync(self._client.create_gist, body, token)
        except RateLimitError as e:
            await self._defer(JobOperation.CREATE, e, body=body)
            raise
        return response["id"]

    async def update(
        self, gist_id: str, body: dict[str, Any], token: str
    ) -> dict[str, Any]:
        try:
            return await run_sync(
                self._client.update_gist, gist_id, body, token
            )
        except RateLimitError as e:
            await self._defer(
                JobOperation.UPDATE, e, body=body, remote_document_id=gist_id
            )
            raise

    async def delete(self, gist_id: str, token: str) -> None:
        try:
            await run_sync(self._client.delete_gist, gist_id, token)
        except RateLimitError as e:
            await self._defer(
                JobOperation.DELETE, e, remote_document_id=gist_id
            )
            raise

    async def _defer(
        self,
        operation: JobOperation,
        error: RateLimitError,
        body: dict[str, Any] | None = None,
        remote_document_id: str | None = None,
    ) -> None:
        await self._queue.enqueue(
            operation,
            error.reset_at,
            body=body,
            remote_document_id=remote_document_id,
        )
        self._arm(retry_wakeup(error.reset_at, self._timers.now()))
        self._emit(
            "warn",
            "Sync queued",
            f"GitHub rate limit hit; {operation.value} will be retried "
            "automatically.",
        )

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    async def pending_jobs(self) -> list[SyncJob]:
        return await self._queue.load()

    async def resume(self) -> None:
        """Arm the drain timer for jobs persisted by an earlier run."""
        jobs = await self._queue.load()
        soonest = JobQueue.soonest(jobs)
        if soonest is None:
            return
        logger.info("Resuming %d queued job(s)", len(jobs))
        self._arm(retry_wakeup(soonest, self._timers.now()))

    async def process_queue(self) -> None:
        """Run every due job once, then reschedule or cancel the timer.

        Returns at once if a drain is already running; that pass picks up
        anything enqueued meanwhile.
        """
        if self._drain_lock.locked():
            logger.debug("Queue drain already running")
            return
        async with self._drain_lock:
            await self._drain()

    async def _drain(self) -> None:
        jobs = await self._queue.load()
        if not jobs:
            self._timers.cancel(QUEUE_TIMER)
            return

        token = await self._token_provider()
        if not token:
            # Jobs stay queued; the next explicit process or restart retries.
            self._emit(
                "error",
                "Sync failed",
                "No GitHub token available to process queued sync jobs.",
            )
            return

        now = self._timers.now()
        remaining: list[SyncJob] = []
        for job in jobs:
            if job.next_attempt_at > now:
                remaining.append(job)
                continue
            try:
                response = await self._execute(job, token)
            except RateLimitError as e:
                retried = job.model_copy(
                    update={
                        "attempts": job.attempts + 1,
                        "next_attempt_at": next_attempt(
                            job, e.reset_at, self._rng
                        ),
                    }
                )
                logger.info(
                    "Job %s rate limited again (attempt %d)",
                    job.id,
                    retried.attempts,
                )
                remaining.append(retried)
                continue
            except RemoteError as e:
                logger.error("Dropping job %s: %s", job.id, e)
                self._emit(
                    "error",
                    "Sync failed",
                    f"Queued {job.operation.value} failed: {e}",
                )
                continue

            self._emit(
                "info",
                "Sync completed",
                f"Queued {job.operation.value} completed.",
            )
            if self.on_job_completed is not None:
                await self.on_job_completed(job, response)

        # Keep jobs enqueued by other flows while this pass was awaiting.
        seen = {job.id for job in jobs}
        remaining.extend(
            job for job in await self._queue.load() if job.id not in seen
        )
        await self._queue.save(remaining)
        soonest = JobQueue.soonest(remaining)
        if soonest is None:
            self._timers.cancel(QUEUE_TIMER)
        else:
            self._arm(retry_wakeup(soonest, self._timers.now()))

    async def _execute(self, job: SyncJob, token: str) -> Any:
        if job.operation == JobOperation.CREATE:
            return await run_sync(self._client.create_gist, job.body, token)
        if job.operation == JobOperation.UPDATE:
            return await run_sync(
                self._client.update_gist,
                job.remote_document_id,
                job.body,
                token,
            )
        return await run_sync(
            self._client.delete_gist, job.remote_document_id, token
        )

    def _arm(self, when: float) -> None:
        self._timers.schedule(QUEUE_TIMER, when, self.process_queue)

    def _emit(self, level: str, title: str, detail: str) -> None:
        if self._notify is not None:
            self._notify(Notice(level=level, title=title, detail=detail))
