"""Trigger scheduler: interval and change-debounce pushes.

Two triggers, both ending in the push flow:

* ``auto-sync-interval`` fires every ``sync_interval_minutes`` while
  ``auto_sync_enabled``.
* ``sync-on-change-debounce`` is (re)armed by every qualifying cookie
  change while ``auto_sync_enabled`` and ``sync_on_change``; a burst of
  changes collapses into one push once the quiet window has elapsed.

Timer callbacks read the settings from the reconciler when they fire,
never from the settings that armed them.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .events import ProgressChannel
from .models import AppStage, CompiledPattern, CookieChange, SyncSettings
from .patterns import compile_patterns, matches
from .settings import SettingsReconciler
from .timers import Timers

if TYPE_CHECKING:
    from ..cookie_store import CookieStore

logger = logging.getLogger(__name__)

INTERVAL_TIMER = "auto-sync-interval"
DEBOUNCE_TIMER = "sync-on-change-debounce"
DEBOUNCE_SECONDS = 60.0

# Browser change causes written by a user or a server, as opposed to
# expiry and eviction.
QUALIFYING_CAUSES = frozenset({"explicit", "overwrite"})


def _active(settings: SyncSettings | None) -> bool:
    return settings is not None and settings.auto_sync_enabled


def _watching(settings: SyncSettings | None) -> bool:
    return _active(settings) and settings.sync_on_change


class TriggerScheduler:
    """Programs the push triggers from the current settings.

    Args:
        reconciler: Settings owner; the scheduler subscribes to it.
        cookie_store: Source of change notifications.
        timers: Named timer registry.
        push: Runs one push flow.
        channel: Progress channel.
        debounce_seconds: Quiet window after the last qualifying change.
    """

    def __init__(
        self,
        reconciler: SettingsReconciler,
        cookie_store: CookieStore,
        timers: Timers,
        push: Callable[[], Awaitable[Any]],
        channel: ProgressChannel,
        debounce_seconds: float = DEBOUNCE_SECONDS,
    ) -> None:
        self._reconciler = reconciler
        self._cookie_store = cookie_store
        self._timers = timers
        self._push = push
        self._channel = channel
        self._debounce_seconds = debounce_seconds
        self._period: float | None = None
        self._attached = False
        self._unsubscribe: Callable[[], None] | None = None
        self._patterns_key: tuple[str, ...] | None = None
        self._patterns: list[CompiledPattern] = []

    @property
    def listening(self) -> bool:
        return self._attached

    async def start(self) -> None:
        """Subscribe to settings changes and program the current settings."""
        if self._unsubscribe is None:
            self._unsubscribe = self._reconciler.subscribe(self.apply)
        await self.apply(self._reconciler.settings)

    def stop(self) -> None:
        """Cancel both triggers and stop listening."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._timers.cancel(INTERVAL_TIMER)
        self._period = None
        self._detach()

    async def apply(self, settings: SyncSettings | None) -> None:
        """Reprogram the interval timer and the change listener."""
        self._channel.publish(
            AppStage.APPLY_AUTO_SYNC_INTERVAL, "Applying auto sync interval"
        )
        if _active(settings):
            period = settings.sync_interval_minutes * 60.0
            if period != self._period or not self._timers.is_armed(
                INTERVAL_TIMER
            ):
                self._period = period
                self._arm_interval()
            message = (
                f"Auto sync every {settings.sync_interval_minutes} minutes"
            )
        else:
            self._timers.cancel(INTERVAL_TIMER)
            self._period = None
            message = "Auto sync disabled"
        self._channel.publish(
            AppStage.APPLY_AUTO_SYNC_INTERVAL_COMPLETED, message
        )

        self._channel.publish(
            AppStage.APPLY_SYNC_ON_CHANGE, "Applying sync on change"
        )
        if _watching(settings):
            self._attach()
            message = "Sync on change enabled"
        else:
            self._detach()
            message = "Sync on change disabled"
        self._channel.publish(AppStage.APPLY_SYNC_ON_CHANGE_COMPLETED, message)

    def on_cookie_changed(self, change: CookieChange) -> None:
        """Cookie-store listener: rearm the debounce timer on a matching write."""
        if change.cause not in QUALIFYING_CAUSES:
            return
        settings = self._reconciler.settings
        if not _watching(settings):
            return
        if not matches(change.cookie, self._compiled(settings.sync_urls)):
            return
        when = self._timers.now() + self._debounce_seconds
        self._timers.schedule(DEBOUNCE_TIMER, when, self._on_debounce)
        logger.debug(
            "Cookie %s changed on %s; push in %.0fs",
            change.cookie.get("name"),
            change.cookie.get("domain"),
            self._debounce_seconds,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _attach(self) -> None:
        if self._attached:
            return
        self._cookie_store.add_change_listener(self.on_cookie_changed)
        self._attached = True
        logger.info("Listening for cookie changes")

    def _detach(self) -> None:
        self._timers.cancel(DEBOUNCE_TIMER)
        if not self._attached:
            return
        self._cookie_store.remove_change_listener(self.on_cookie_changed)
        self._attached = False
        logger.info("Stopped listening for cookie changes")

    def _compiled(self, sync_urls: list[str]) -> list[CompiledPattern]:
        key = tuple(sync_urls)
        if key != self._patterns_key:
            self._patterns = compile_patterns(sync_urls)
            self._patterns_key = key
        return self._patterns

    def _arm_interval(self) -> None:
        when = self._timers.now() + self._period
        self._timers.schedule(INTERVAL_TIMER, when, self._on_interval)

    async def _on_interval(self) -> None:
        settings = self._reconciler.settings
        if not _active(settings):
            self._period = None
            return
        self._period = settings.sync_interval_minutes * 60.0
        self._arm_interval()
        logger.info("Interval sync triggered")
        await self._push()

    async def _on_debounce(self) -> None:
        if not _watching(self._reconciler.settings):
            return
        logger.info("Change sync triggered")
        await self._push()
