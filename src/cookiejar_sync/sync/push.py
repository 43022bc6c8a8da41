"""Push flow: dump, encrypt and send cookies to the remote document.

Stages, each announced on the progress channel::

    initial -> push_dumping -> push_dumping_completed -> push_encrypting
    -> push_encrypting_completed -> push_sending -> push_sending_completed
    -> push_completed

A rate limit while sending is not a failure: the repository has already
queued the write, so the flow reports when it will be retried and returns
a ``queued`` result.  Any other error ends the flow with a ``push_error``
event and a ``failed`` result naming the stage it stopped at.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..core.async_utils import run_sync
from ..crypto import encrypt
from ..errors import (
    ConfigurationError,
    CookieJarError,
    CryptoError,
    RateLimitError,
)
from .events import ProgressChannel
from .models import (
    CONTENT_FILE,
    GIST_DESCRIPTION,
    SETTINGS_FILE,
    AppStage,
    FlowOutcome,
    FlowResult,
    SyncSettings,
    utcnow,
)
from .reporter import format_duration
from .repository import RemoteDocumentRepository
from .settings import SecretsStore, SettingsReconciler

if TYPE_CHECKING:
    from ..cookie_store import CookieStore

logger = logging.getLogger(__name__)


def build_document_body(
    encrypted_content: str, settings: SyncSettings, create: bool
) -> dict[str, Any]:
    """Gist request body carrying the envelope and the settings file."""
    body: dict[str, Any] = {
        "files": {
            CONTENT_FILE: {"content": encrypted_content},
            SETTINGS_FILE: {"content": json.dumps(settings.to_storage())},
        }
    }
    if create:
        body = {"description": GIST_DESCRIPTION, "public": False, **body}
    return body


class PushService:
    """Runs the push flow.

    Args:
        reconciler: Settings owner; receives the new id and timestamp.
        secrets: Token and passphrase source.
        cookie_store: Cookies to dump.
        repository: Remote document repository.
        channel: Progress channel.
        clock: Wall clock returning epoch seconds.
    """

    def __init__(
        self,
        reconciler: SettingsReconciler,
        secrets: SecretsStore,
        cookie_store: CookieStore,
        repository: RemoteDocumentRepository,
        channel: ProgressChannel,
        clock: Callable[[], float],
    ) -> None:
        self._reconciler = reconciler
        self._secrets = secrets
        self._cookie_store = cookie_store
        self._repository = repository
        self._channel = channel
        self._clock = clock

    async def run(self) -> FlowResult:
        stage = AppStage.INITIAL
        self._channel.publish(stage, "Starting push process")
        try:
            settings = self._reconciler.settings
            secrets = await self._secrets.load()
            if settings is None or secrets is None:
                raise ConfigurationError("Settings or secrets not found")
            token = secrets.token.get_secret_value()
            passphrase = secrets.passphrase.get_secret_value()
            if not token or not passphrase:
                raise ConfigurationError("Settings or secrets not found")

            stage = AppStage.PUSH_DUMPING
            self._channel.publish(stage, "Dumping data", progress=0)
            origins = list(settings.sync_urls)
            cookies = await self._cookie_store.list_all_for_origins(origins)
            self._channel.publish(
                AppStage.PUSH_DUMPING_COMPLETED,
                f"Dumping completed with {len(cookies)} cookies",
                progress=20,
            )

            stage = AppStage.PUSH_ENCRYPTING
            self._channel.publish(stage, "Encrypting data", progress=20)
            payload = {
                "cookies": cookies,
                "origins": origins,
                "latestSyncTimestamp": utcnow().isoformat(),
            }
            encrypted = await run_sync(encrypt, payload, passphrase)
            self._channel.publish(
                AppStage.PUSH_ENCRYPTING_COMPLETED,
                "Encryption completed",
                progress=40,
            )

            stage = AppStage.PUSH_SENDING
            self._channel.publish(stage, "Sending data", progress=40)
            gist_id = settings.remote_document_id
            try:
                if not gist_id:
                    gist_id = await self._repository.create(
                        build_document_body(encrypted, settings, create=True),
                        token,
                    )
                    message = f"New Gist created with ID: {gist_id}"
                else:
                    await self._repository.update(
                        gist_id,
                        build_document_body(encrypted, settings, create=False),
                        token,
                    )
                    message = f"Gist updated with ID: {gist_id}"
            except RateLimitError as e:
                wait = format_duration(e.reset_at - self._clock())
                message = (
                    "GitHub rate limit, request queued. "
                    f"Will retry automatically in {wait}."
                )
                self._channel.publish(
                    stage, message, progress=80, retry_at=e.reset_at
                )
                return FlowResult(
                    outcome=FlowOutcome.QUEUED,
                    stage=stage,
                    message=message,
                    remote_document_id=gist_id,
                    retry_at=e.reset_at,
                )
            self._channel.publish(
                AppStage.PUSH_SENDING_COMPLETED, message, progress=80
            )

            await self._reconciler.update(
                remote_document_id=gist_id, last_sync_timestamp=utcnow()
            )
        except CookieJarError as e:
            return self._fail(stage, e)
        except Exception as e:
            logger.exception("Unexpected error during push at %s", stage.value)
            return self._fail(stage, e)

        stage = AppStage.PUSH_COMPLETED
        message = "Push process completed successfully"
        self._channel.publish(stage, message, progress=100)
        return FlowResult(
            outcome=FlowOutcome.COMPLETED,
            stage=stage,
            message=message,
            remote_document_id=gist_id,
        )

    def _fail(self, stage: AppStage, error: Exception) -> FlowResult:
        if isinstance(error, ConfigurationError):
            message = str(error)
        elif isinstance(error, CryptoError):
            message = "Encryption failed"
        else:
            message = "An error occurred while processing the push request"
        self._channel.publish(
            AppStage.ERROR, message, progress=100, error=str(error)
        )
        return FlowResult(
            outcome=FlowOutcome.FAILED,
            stage=stage,
            message=message,
            error=str(error),
        )
