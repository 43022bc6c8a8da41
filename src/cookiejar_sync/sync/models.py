"""Pydantic models for the cookie sync engine.

Defines the data contracts shared across the sync modules:

- ``SyncSettings``: the persisted sync configuration singleton.
- ``Secrets``: the Gist token and the encryption passphrase.
- ``SyncJob``: a queued mutating Gist call awaiting retry.
- ``CompiledPattern``: a normalized origin pattern.
- ``AppStage`` / ``AppEvent``: the progress vocabulary sent to listeners.
- ``FlowResult``, ``PullHandoff``, ``ApplyReport``: flow outcomes.
- ``CookieChange``: a cookie-store change notification.

Persisted models use camelCase aliases on the wire so stored documents
stay readable by other clients of the same Gist.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

from ..crypto import EncryptedEnvelope

__all__ = [
    "AppEvent",
    "AppStage",
    "ApplyReport",
    "CompiledPattern",
    "CookieChange",
    "EncryptedEnvelope",
    "FlowOutcome",
    "FlowResult",
    "JobOperation",
    "Notice",
    "PullHandoff",
    "Scheme",
    "Secrets",
    "SyncJob",
    "SyncSettings",
]

CONTENT_FILE = "cookiejar_content.json"
SETTINGS_FILE = "cookiejar_settings.json"
GIST_DESCRIPTION = "CookieJar - Encrypted Cookies"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


class SyncSettings(_CamelModel):
    """Canonical sync configuration.

    ``sync_on_change`` only takes effect while ``auto_sync_enabled`` is true.

    Attributes:
        remote_document_id: Gist id learned by the first push or pull.
        auto_sync_enabled: Master switch for the interval and change triggers.
        sync_interval_minutes: Period of the interval trigger.
        sync_on_change: Push after a quiet window following cookie changes.
        sync_urls: Origin patterns in scope, an ordered set.
        last_sync_timestamp: When the last push or apply finished.
    """

    remote_document_id: str | None = None
    auto_sync_enabled: bool = True
    sync_interval_minutes: int = Field(default=15, ge=1)
    sync_on_change: bool = True
    sync_urls: list[str] = Field(default_factory=list)
    last_sync_timestamp: datetime | None = None

    model_config = {"frozen": True}

    @field_validator("sync_urls")
    @classmethod
    def _dedupe_urls(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    def to_storage(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Secrets(BaseModel):
    """Gist token and encryption passphrase.

    ``SecretStr`` keeps both values out of reprs, logs and tool output.
    """

    token: SecretStr
    passphrase: SecretStr

    model_config = {"frozen": True}

    def to_storage(self) -> dict[str, str]:
        return {
            "token": self.token.get_secret_value(),
            "passphrase": self.passphrase.get_secret_value(),
        }


class JobOperation(str, Enum):
    """Mutating Gist operations that can be queued."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncJob(_CamelModel):
    """A queued Gist write.  Never carries the token.

    Attributes:
        id: Unique job id.
        operation: Which call to replay.
        created_at: Epoch seconds when the job was queued.
        attempts: Rate-limited replays so far; only ever grows.
        next_attempt_at: Epoch seconds before which the job must not run.
        body: Request body for create/update.
        remote_document_id: Target gist for update/delete.
    """

    id: str
    operation: JobOperation
    created_at: float
    attempts: int = Field(default=0, ge=0)
    next_attempt_at: float
    body: dict[str, Any] | None = None
    remote_document_id: str | None = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


class Scheme(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    ANY = "any"


class CompiledPattern(BaseModel):
    """Normalized form of one ``sync_urls`` entry."""

    scheme: Scheme
    host: str
    allow_subdomains: bool = False

    model_config = {"frozen": True}


class CookieChange(BaseModel):
    """Cookie-store change notification.

    ``cause`` follows the browser vocabulary: ``explicit``, ``overwrite``,
    ``expired``, ``expired_overwrite``, ``evicted``.
    """

    cookie: dict[str, Any]
    cause: str = "explicit"
    removed: bool = False


# ---------------------------------------------------------------------------
# Progress events
# ---------------------------------------------------------------------------


class AppStage(str, Enum):
    """Progress stages.  Values are the wire vocabulary listeners rely on."""

    INITIAL = "initial"
    ERROR = "push_error"

    PUSH_DUMPING = "push_dumping"
    PUSH_DUMPING_COMPLETED = "push_dumping_completed"
    PUSH_ENCRYPTING = "push_encrypting"
    PUSH_ENCRYPTING_COMPLETED = "push_encrypting_completed"
    PUSH_SENDING = "push_sending"
    PUSH_SENDING_COMPLETED = "push_sending_completed"
    PUSH_COMPLETED = "push_completed"

    PULL_RESOLVING = "pull_resolving"
    PULL_RESOLVING_COMPLETED = "pull_resolving_completed"
    PULL_DOWNLOADING = "pull_downloading"
    PULL_DOWNLOADING_COMPLETED = "pull_downloading_completed"
    PULL_DECRYPTING = "pull_decrypting"
    PULL_DECRYPTING_COMPLETED = "pull_decrypting_completed"
    PULL_APPLYING = "pull_applying"
    PULL_WAIT_FOR_PERMISSION = "pull_wait_for_permission"
    PULL_WAIT_FOR_PERMISSION_COMPLETED = "pull_wait_for_permission_completed"
    PULL_APPLYING_COMPLETED = "pull_applying_completed"
    PULL_COMPLETED = "pull_completed"

    SETTINGS_LOADING = "settings_loading"
    SETTINGS_LOADING_COMPLETED = "settings_loading_completed"
    SETTINGS_UPDATING = "settings_updating"
    SETTINGS_UPDATING_COMPLETED = "settings_updating_completed"

    APPLY_AUTO_SYNC_INTERVAL = "apply_auto_sync_interval"
    APPLY_AUTO_SYNC_INTERVAL_COMPLETED = "apply_auto_sync_interval_completed"
    APPLY_SYNC_ON_CHANGE = "apply_sync_on_change"
    APPLY_SYNC_ON_CHANGE_COMPLETED = "apply_sync_on_change_completed"
    APPLY_COOKIE_SUCCESS = "apply_cookie_success"
    APPLY_COOKIE_FAILED = "apply_cookie_failed"

    QUEUE_UPDATED = "queue_updated"


class AppEvent(BaseModel):
    """One-way progress notification.

    Receiving an event with ``stage == AppStage.ERROR`` means the flow
    that emitted it has terminated.
    """

    stage: AppStage
    message: str
    progress: int | None = Field(default=None, ge=0, le=100)
    error: str | None = None
    urls: list[str] | None = None
    cookies: list[dict[str, Any]] | None = None
    latest_sync_timestamp: str | None = None
    retry_at: float | None = None

    model_config = {"frozen": True}

    @property
    def is_error(self) -> bool:
        return self.stage == AppStage.ERROR


class Notice(BaseModel):
    """Repository-level notification about queued jobs."""

    level: str
    title: str
    detail: str | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Flow results
# ---------------------------------------------------------------------------


class FlowOutcome(str, Enum):
    COMPLETED = "completed"
    QUEUED = "queued"
    RATE_LIMITED = "rate_limited"
    AWAITING_PERMISSION = "awaiting_permission"
    FAILED = "failed"


class PullHandoff(BaseModel):
    """What pull hands to the apply step.

    Attributes:
        remote_document_id: Gist the cookies came from.
        origins: Covered origins, in payload order.
        cookies_by_origin: Cookies grouped under the origin that covers them.
        latest_sync_timestamp: Timestamp recorded by the pushing device.
    """

    remote_document_id: str
    origins: list[str] = Field(default_factory=list)
    cookies_by_origin: dict[str, list[dict[str, Any]]] = Field(
        default_factory=dict
    )
    latest_sync_timestamp: str | None = None

    model_config = {"frozen": True}

    @property
    def cookie_count(self) -> int:
        return sum(len(c) for c in self.cookies_by_origin.values())


class FlowResult(BaseModel):
    """Tagged outcome of a push, pull or apply run.

    Attributes:
        outcome: How the flow ended.
        stage: Last stage reached (the failing stage for ``FAILED``).
        message: Human-readable summary.
        error: Underlying error message for ``FAILED``.
        remote_document_id: Gist id the flow worked against, if known.
        retry_at: Epoch seconds for ``QUEUED`` / ``RATE_LIMITED``.
        handoff: Pull payload for ``AWAITING_PERMISSION``.
    """

    outcome: FlowOutcome
    stage: AppStage
    message: str
    error: str | None = None
    remote_document_id: str | None = None
    retry_at: float | None = None
    handoff: PullHandoff | None = None

    model_config = {"frozen": True}

    @property
    def ok(self) -> bool:
        return self.outcome != FlowOutcome.FAILED


class ApplyReport(BaseModel):
    """Per-cookie result of applying a pull handoff."""

    applied: list[dict[str, Any]] = Field(default_factory=list)
    failed: list[dict[str, Any]] = Field(default_factory=list)
    denied_origins: list[str] = Field(default_factory=list)
    granted_origins: list[str] = Field(default_factory=list)
