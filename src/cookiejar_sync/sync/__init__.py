"""Encrypted cookie sync engine.

Public API for pushing a browser cookie jar to a private GitHub Gist as an
AES-GCM envelope and pulling it back on another device.

Architecture
------------
Everything runs on one asyncio event loop.  Blocking work (HTTP, key
derivation, file I/O) is pushed to worker threads with ``run_sync``.
Flows never raise to their caller: progress and failures travel on the
``ProgressChannel`` and each run returns a tagged ``FlowResult``.

Modules:

- ``models``     -- settings, jobs, events and flow results.
- ``patterns``   -- origin pattern compilation and cookie matching.
- ``queue``      -- retry policy and the durable job queue.
- ``repository`` -- ``RemoteDocumentRepository``: Gist calls plus queue drain.
- ``settings``   -- ``SettingsReconciler`` and ``SecretsStore``.
- ``push``       -- ``PushService``: dump, encrypt, send.
- ``pull``       -- ``PullService``: resolve, download, decrypt, apply.
- ``scheduler``  -- ``TriggerScheduler``: interval and change-debounce pushes.
- ``timers``     -- named one-shot timers on the running loop.
- ``events``     -- ``ProgressChannel`` and ``EventLog``.
- ``reporter``   -- text and JSON formatting of results.

Usage example
-------------
::

    from cookiejar_sync.config import load_config
    from cookiejar_sync.runtime import build_runtime
    from cookiejar_sync.sync import format_flow_result

    runtime = build_runtime(load_config())
    await runtime.start()
    result = await runtime.push.run()
    print(format_flow_result(result))
"""

from .events import EventLog, ProgressChannel
from .models import (
    ApplyReport,
    AppEvent,
    AppStage,
    CookieChange,
    FlowOutcome,
    FlowResult,
    PullHandoff,
    SyncJob,
    SyncSettings,
)
from .patterns import compile_patterns, matches
from .pull import PullService
from .push import PushService
from .queue import JobQueue, next_attempt, retry_wakeup
from .reporter import format_duration, format_flow_result, result_to_json
from .repository import RemoteDocumentRepository
from .scheduler import TriggerScheduler
from .settings import SecretsStore, SettingsReconciler
from .timers import Timers

__all__ = [
    "AppEvent",
    "AppStage",
    "ApplyReport",
    "CookieChange",
    "EventLog",
    "FlowOutcome",
    "FlowResult",
    "JobQueue",
    "ProgressChannel",
    "PullHandoff",
    "PullService",
    "PushService",
    "RemoteDocumentRepository",
    "SecretsStore",
    "SettingsReconciler",
    "SyncJob",
    "SyncSettings",
    "Timers",
    "TriggerScheduler",
    "compile_patterns",
    "format_duration",
    "format_flow_result",
    "matches",
    "next_attempt",
    "result_to_json",
    "retry_wakeup",
]
