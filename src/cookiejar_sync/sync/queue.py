"""Durable retry queue for rate-limited Gist writes.

Split in two parts:

* Pure scheduling policy -- ``next_attempt()`` and ``retry_wakeup()``
  decide *when* a job may run again.  No I/O, independently testable.
* ``JobQueue`` -- the persisted list of ``SyncJob`` records, stored under
  a single key of the key-value store so a restart mid-backoff does not
  lose a write.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from ..storage import QUEUE_KEY, KeyValueStore
from .models import JobOperation, SyncJob

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 15 * 60
MIN_WAKEUP_DELAY_SECONDS = 5.0


def backoff_window(attempts: int) -> float:
    """Upper bound of the jitter added after *attempts* rate-limited replays."""
    if attempts >= 10:
        return float(MAX_BACKOFF_SECONDS)
    return float(min(MAX_BACKOFF_SECONDS, 2**attempts))


def next_attempt(
    job: SyncJob,
    reset_at: float,
    rng: Callable[[], float] = random.random,
) -> float:
    """Earliest time *job* may be replayed after another rate-limit response.

    ``reset_at`` plus a random jitter in ``[0, min(15 min, 2**attempts s))``,
    using the attempt count *before* it is incremented.
    """
    return reset_at + rng() * backoff_window(job.attempts)


def retry_wakeup(reset_at: float, now: float) -> float:
    """When the drain timer should fire: never sooner than 5 s from *now*."""
    return max(reset_at, now + MIN_WAKEUP_DELAY_SECONDS)


class JobQueue:
    """Persisted list of pending ``SyncJob`` records.

    Args:
        store: Durable key-value store.
        clock: Wall clock returning epoch seconds.
    """

    def __init__(
        self, store: KeyValueStore, clock: Callable[[], float]
    ) -> None:
        self._store = store
        self._clock = clock

    async def load(self) -> list[SyncJob]:
        """Return persisted jobs.  Unreadable entries are logged and dropped."""
        raw = await self._store.get_item(QUEUE_KEY)
        if not isinstance(raw, list):
            return []
        jobs: list[SyncJob] = []
        for entry in raw:
            try:
                jobs.append(SyncJob.model_validate(entry))
            except ValidationError as e:
                logger.error("Dropping unreadable queued job %r: %s", entry, e)
        return jobs

    async def save(self, jobs: list[SyncJob]) -> None:
        await self._store.set_item(
            QUEUE_KEY, [job.to_storage() for job in jobs]
        )

    async def enqueue(
        self,
        operation: JobOperation,
        next_attempt_at: float,
        body: dict[str, Any] | None = None,
        remote_document_id: str | None = None,
    ) -> SyncJob:
        """Append a new job and persist the queue."""
        job = SyncJob(
            id=uuid.uuid4().hex,
            operation=operation,
            created_at=self._clock(),
            attempts=0,
            next_attempt_at=next_attempt_at,
            body=body,
            remote_document_id=remote_document_id,
        )
        jobs = await self.load()
        jobs.append(job)
        await self.save(jobs)
        logger.info(
            "Queued %s job %s (next attempt at %.0f)",
            operation.value,
            job.id,
            next_attempt_at,
        )
        return job

    @staticmethod
    def soonest(jobs: list[SyncJob]) -> float | None:
        if not jobs:
            return None
        return min(job.next_attempt_at for job in jobs)
