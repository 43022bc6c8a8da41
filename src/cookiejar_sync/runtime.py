"""Wiring of the sync engine.

``build_runtime()`` constructs every component once and passes shared
instances through constructors.  ``SyncRuntime`` is what the MCP server
holds for its lifetime.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import Config
from .cookie_store import (
    CookieStore,
    FileCookieStore,
    PermissionGate,
    StaticPermissionGate,
)
from .core.client import GistClient
from .storage import JsonFileStore, KeyValueStore
from .sync.events import EventLog, ProgressChannel
from .sync.models import (
    ApplyReport,
    AppStage,
    FlowOutcome,
    FlowResult,
    JobOperation,
    Notice,
    PullHandoff,
    SyncJob,
    utcnow,
)
from .sync.pull import APPLY_DELAY_SECONDS, PullService
from .sync.push import PushService
from .sync.queue import JobQueue
from .sync.repository import RemoteDocumentRepository
from .sync.scheduler import TriggerScheduler
from .sync.settings import SecretsStore, SettingsReconciler
from .sync.timers import Timers

logger = logging.getLogger(__name__)


def notice_to_event(channel: ProgressChannel, notice: Notice) -> None:
    """Publish a repository notice.  Error notices use the terminal stage."""
    if notice.level == "error":
        channel.publish(AppStage.ERROR, notice.title, error=notice.detail)
        return
    message = notice.title
    if notice.detail:
        message = f"{notice.title}: {notice.detail}"
    channel.publish(AppStage.QUEUE_UPDATED, message)


@dataclass
class SyncRuntime:
    """Every long-lived component of one sync engine instance."""

    config: Config
    client: GistClient
    channel: ProgressChannel
    events: EventLog
    timers: Timers
    secrets: SecretsStore
    reconciler: SettingsReconciler
    repository: RemoteDocumentRepository
    cookie_store: CookieStore
    push: PushService
    pull: PullService
    scheduler: TriggerScheduler
    pending_handoff: PullHandoff | None = field(default=None)

    async def start(self) -> None:
        """Load settings, program the triggers and resume queued jobs."""
        await self.reconciler.load()
        await self.scheduler.start()
        await self.repository.resume()

    async def stop(self) -> None:
        self.scheduler.stop()
        self.timers.cancel_all()
        await self.timers.drain()

    async def run_push(self) -> FlowResult:
        return await self.push.run()

    async def run_pull(self) -> FlowResult:
        """Run pull and keep the handoff for a later ``cookie_apply``."""
        result = await self.pull.run()
        if result.outcome == FlowOutcome.AWAITING_PERMISSION:
            self.pending_handoff = result.handoff
        return result

    async def apply_pending(self) -> tuple[FlowResult, ApplyReport]:
        """Apply the handoff kept by the last pull.

        Raises:
            ValueError: No pull is awaiting apply.
        """
        if self.pending_handoff is None:
            raise ValueError(
                "No pulled cookies awaiting apply. Run cookie_pull first."
            )
        handoff = self.pending_handoff
        self.pending_handoff = None
        return await self.pull.apply(handoff)

    async def on_job_completed(self, job: SyncJob, response: Any) -> None:
        """Record what a queued write achieved once it finally succeeds."""
        current = self.reconciler.current()
        if job.operation == JobOperation.CREATE:
            gist_id = (response or {}).get("id")
            if gist_id:
                await self.reconciler.update(
                    remote_document_id=gist_id, last_sync_timestamp=utcnow()
                )
        elif job.operation == JobOperation.UPDATE:
            await self.reconciler.update(
                remote_document_id=job.remote_document_id,
                last_sync_timestamp=utcnow(),
            )
        elif current.remote_document_id == job.remote_document_id:
            await self.reconciler.update(remote_document_id=None)


def build_runtime(
    config: Config,
    store: KeyValueStore | None = None,
    cookie_store: CookieStore | None = None,
    permissions: PermissionGate | None = None,
    client: GistClient | None = None,
    timers: Timers | None = None,
    clock: Callable[[], float] = time.time,
    apply_delay: float = APPLY_DELAY_SECONDS,
) -> SyncRuntime:
    """Construct a ``SyncRuntime`` from *config*.

    Every collaborator can be replaced; the defaults are the file-backed
    stores under ``config.state_dir`` and a permission gate granting
    ``config.granted_origins``.
    """
    channel = ProgressChannel()
    events = EventLog()
    channel.subscribe(events)

    store = store if store is not None else JsonFileStore(Path(config.state_dir))
    if cookie_store is None:
        cookie_store = FileCookieStore(Path(config.cookie_jar_path))
    if permissions is None:
        permissions = StaticPermissionGate(config.granted_origins)
    client = client if client is not None else GistClient(config, clock=clock)
    timers = timers if timers is not None else Timers(clock)

    secrets = SecretsStore(store)
    reconciler = SettingsReconciler(store, channel, cookie_store)
    repository = RemoteDocumentRepository(
        client,
        JobQueue(store, clock),
        timers,
        secrets.token,
        notify=lambda notice: notice_to_event(channel, notice),
    )
    push = PushService(
        reconciler, secrets, cookie_store, repository, channel, clock
    )
    pull = PullService(
        reconciler,
        secrets,
        cookie_store,
        repository,
        permissions,
        channel,
        clock,
        apply_delay=apply_delay,
    )
    scheduler = TriggerScheduler(
        reconciler,
        cookie_store,
        timers,
        push.run,
        channel,
        debounce_seconds=config.debounce_seconds,
    )
    runtime = SyncRuntime(
        config=config,
        client=client,
        channel=channel,
        events=events,
        timers=timers,
        secrets=secrets,
        reconciler=reconciler,
        repository=repository,
        cookie_store=cookie_store,
        push=push,
        pull=pull,
        scheduler=scheduler,
    )
    repository.on_job_completed = runtime.on_job_completed
    logger.debug("Runtime built for state dir %s", config.state_dir)
    return runtime
