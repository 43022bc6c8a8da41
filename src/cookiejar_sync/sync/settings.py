"""Settings reconciler and secrets store.

``SettingsReconciler`` owns the in-memory ``SyncSettings`` snapshot.  Every
change goes through ``update()``, which persists the full settings
document and then awaits each subscriber with the same object before
returning, so persisted and broadcast settings never disagree.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import SecretStr, ValidationError

from ..errors import ConfigurationError
from ..storage import SECRETS_KEY, SETTINGS_KEY, KeyValueStore
from .events import ProgressChannel
from .models import AppStage, Secrets, SyncSettings

if TYPE_CHECKING:
    from ..cookie_store import CookieStore

logger = logging.getLogger(__name__)

SettingsListener = Callable[[SyncSettings], Awaitable[None]]

_FIELDS = frozenset(SyncSettings.model_fields)


class SettingsReconciler:
    """Single owner of the persisted sync settings.

    Args:
        store: Durable key-value store.
        channel: Progress channel for settings events.
        cookie_store: Used to count cookies held for an origin.
    """

    def __init__(
        self,
        store: KeyValueStore,
        channel: ProgressChannel,
        cookie_store: CookieStore,
    ) -> None:
        self._store = store
        self._channel = channel
        self._cookie_store = cookie_store
        self._settings: SyncSettings | None = None
        self._listeners: list[SettingsListener] = []

    @property
    def settings(self) -> SyncSettings | None:
        """In-memory snapshot, ``None`` until loaded or first updated."""
        return self._settings

    def current(self) -> SyncSettings:
        """In-memory settings, or the defaults when none exist yet."""
        return self._settings or SyncSettings()

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def load(self) -> SyncSettings | None:
        """Read persisted settings into memory.

        An unreadable document is logged and treated as absent.
        """
        self._channel.publish(AppStage.SETTINGS_LOADING, "Loading settings")
        raw = await self._store.get_item(SETTINGS_KEY)
        settings = None
        if raw is not None:
            try:
                settings = SyncSettings.model_validate(raw)
            except ValidationError as e:
                logger.error("Ignoring invalid stored settings: %s", e)
        self._settings = settings
        self._channel.publish(
            AppStage.SETTINGS_LOADING_COMPLETED,
            "Settings loaded" if settings else "No saved settings",
        )
        return settings

    async def update(self, **changes: Any) -> SyncSettings:
        """Merge *changes* into the current settings, persist and broadcast.

        Omitted fields keep their in-memory value (or the default).  Passing
        ``None`` for an optional field clears it.

        Raises:
            ValueError: Unknown setting name.
            pydantic.ValidationError: A value fails validation.
        """
        settings = await self._commit(changes)
        self._channel.publish(
            AppStage.SETTINGS_UPDATING_COMPLETED, "Settings updated successfully"
        )
        return settings

    async def _commit(self, changes: dict[str, Any]) -> SyncSettings:
        unknown = set(changes) - _FIELDS
        if unknown:
            raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

        merged = self.current().model_dump()
        merged.update(changes)
        settings = SyncSettings.model_validate(merged)

        self._channel.publish(AppStage.SETTINGS_UPDATING, "Updating settings")
        await self._store.set_item(SETTINGS_KEY, settings.to_storage())
        self._settings = settings
        for listener in list(self._listeners):
            await listener(settings)
        logger.debug("Settings updated: %s", sorted(changes))
        return settings

    async def add_sync_url(self, origin: str) -> SyncSettings:
        """Add *origin* to ``sync_urls``.  Adding a present origin is a no-op."""
        origin = origin.strip()
        urls = list(self.current().sync_urls)
        if origin not in urls:
            urls.append(origin)
        settings = await self._commit({"sync_urls": urls})
        count = len(await self._cookie_store.get_all_for_origin(origin))
        self._channel.publish(
            AppStage.SETTINGS_UPDATING_COMPLETED,
            f"Added new sync URL: {origin} with {count} cookies associated.",
            urls=list(settings.sync_urls),
        )
        return settings

    async def remove_sync_url(self, origin: str) -> SyncSettings:
        """Remove *origin* from ``sync_urls``.  Removing an absent one is a no-op."""
        origin = origin.strip()
        urls = [u for u in self.current().sync_urls if u != origin]
        settings = await self._commit({"sync_urls": urls})
        count = len(await self._cookie_store.get_all_for_origin(origin))
        self._channel.publish(
            AppStage.SETTINGS_UPDATING_COMPLETED,
            f"Removed sync URL: {origin} with {count} cookies associated.",
            urls=list(settings.sync_urls),
        )
        return settings


class SecretsStore:
    """Token and passphrase persistence."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def load(self) -> Secrets | None:
        raw = await self._store.get_item(SECRETS_KEY)
        if not raw:
            return None
        try:
            return Secrets.model_validate(raw)
        except ValidationError:
            logger.error("Stored secrets are unreadable; ignoring them")
            return None

    async def save(self, token: str, passphrase: str) -> Secrets:
        """Persist both secrets.

        Raises:
            ConfigurationError: Token or passphrase is empty.
        """
        if not token.strip():
            raise ConfigurationError("GitHub token must not be empty")
        if not passphrase:
            raise ConfigurationError("Passphrase must not be empty")
        secrets = Secrets(
            token=SecretStr(token.strip()), passphrase=SecretStr(passphrase)
        )
        await self._store.set_item(SECRETS_KEY, secrets.to_storage())
        logger.info("Secrets saved")
        return secrets

    async def token(self) -> str | None:
        secrets = await self.load()
        if secrets is None:
            return None
        return secrets.token.get_secret_value() or None
